"""Tests for factory_monitor.classifier - per-metric severity strategies."""

from __future__ import annotations

import pytest

from factory_monitor.classifier import STRATEGIES, classify, describe
from factory_monitor.models import Metric, Severity, Threshold

# -----------------------------------------------------------------------
# Upper-bound metrics (vibration, noise, pm25)
# -----------------------------------------------------------------------


class TestUpperBound:
    """High values are bad; critical is checked before warning."""

    T = Threshold(warning=5, critical=8)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(3, Severity.SAFE), (5, Severity.WARNING), (7.9, Severity.WARNING), (8, Severity.CRITICAL), (50, Severity.CRITICAL)],
    )
    def test_vibration(self, value: float, expected: Severity) -> None:
        assert classify("vibration", value, self.T) is expected

    def test_critical_takes_precedence(self) -> None:
        # a warning bound above the critical bound must never downgrade
        t = Threshold(warning=20, critical=8)
        assert classify(Metric.NOISE, 25, t) is Severity.CRITICAL

    def test_no_warning_bound(self) -> None:
        assert classify(Metric.VIBRATION, 7, Threshold(critical=9)) is Severity.SAFE

    def test_pm25(self) -> None:
        assert classify(Metric.PM25, 36, Threshold(critical=35)) is Severity.CRITICAL


# -----------------------------------------------------------------------
# Band metrics (pressure, temperature, humidity)
# -----------------------------------------------------------------------


class TestBand:
    T = Threshold(min=10, max=35)

    def test_inside_band_safe(self) -> None:
        assert classify(Metric.TEMPERATURE, 20, self.T) is Severity.SAFE

    def test_edges_are_critical(self) -> None:
        assert classify(Metric.TEMPERATURE, 10, self.T) is Severity.CRITICAL
        assert classify(Metric.TEMPERATURE, 35, self.T) is Severity.CRITICAL

    def test_outside_band_critical(self) -> None:
        assert classify(Metric.HUMIDITY, 5, self.T) is Severity.CRITICAL
        assert classify(Metric.PRESSURE, 90, self.T) is Severity.CRITICAL

    def test_warning_only_when_set(self) -> None:
        assert classify(Metric.TEMPERATURE, 31, self.T) is Severity.SAFE
        assert classify(Metric.TEMPERATURE, 31, self.T.replace(warning=30)) is Severity.WARNING
        assert classify(Metric.TEMPERATURE, 30, self.T.replace(warning=30)) is Severity.SAFE

    def test_negative_min(self) -> None:
        t = Threshold(min=-20, max=5)
        assert classify(Metric.TEMPERATURE, -25, t) is Severity.CRITICAL
        assert classify(Metric.TEMPERATURE, -10, t) is Severity.SAFE


# -----------------------------------------------------------------------
# CO2 and AQI
# -----------------------------------------------------------------------


class TestCeilingAndInverted:
    def test_co2(self) -> None:
        t = Threshold(min=0, max=70)
        assert classify(Metric.CO2, 69.9, t) is Severity.SAFE
        assert classify(Metric.CO2, 70, t) is Severity.CRITICAL

    def test_aqi_low_is_bad(self) -> None:
        assert classify("aqi", 40, {}) is Severity.CRITICAL
        assert classify("aqi", 60, {}) is Severity.WARNING
        assert classify("aqi", 80, {}) is Severity.SAFE

    def test_aqi_boundaries(self) -> None:
        assert classify(Metric.AQI, 50, None) is Severity.WARNING
        assert classify(Metric.AQI, 75, None) is Severity.SAFE

    def test_aqi_ignores_configured_bounds(self) -> None:
        assert classify(Metric.AQI, 40, Threshold(max=10, critical=5)) is Severity.CRITICAL


# -----------------------------------------------------------------------
# General contract
# -----------------------------------------------------------------------


class TestContract:
    def test_none_value_is_unknown(self) -> None:
        assert classify(Metric.VIBRATION, None, Threshold(critical=1)) is None

    def test_unknown_metric_raises(self) -> None:
        with pytest.raises(KeyError):
            classify("radiation", 1.0, None)

    def test_every_metric_has_strategy(self) -> None:
        assert set(STRATEGIES) == set(Metric)

    def test_deterministic(self) -> None:
        t = Threshold(warning=5, critical=8)
        results = {classify(Metric.VIBRATION, 6, t) for _ in range(10)}
        assert results == {Severity.WARNING}

    def test_dict_thresholds(self) -> None:
        assert classify("noise", 95, {"critical": 90}) is Severity.CRITICAL


class TestDescribe:
    def test_upper_message(self) -> None:
        msg = describe(Metric.VIBRATION, 9, Severity.CRITICAL)
        assert msg.startswith("Vibration Critical: 9 mm/s")
        assert "critical threshold" in msg

    def test_band_message_names_bound(self) -> None:
        msg = describe(Metric.TEMPERATURE, 5, Severity.CRITICAL, Threshold(min=10, max=35))
        assert "min threshold" in msg

    def test_aqi_message(self) -> None:
        assert "air quality" in describe(Metric.AQI, 40, Severity.CRITICAL)
