"""Status classifier - maps ``(metric, value, thresholds)`` to a severity.

Pure functions only.  Each metric is bound to one comparison strategy in
``STRATEGIES``; adding a metric without a strategy fails at import time.

Strategies (critical is always checked before warning):

- ``upper``    vibration, noise, pm25 - high is bad.
  critical if ``value >= critical``, warning if ``value >= warning``.
- ``band``     pressure, temperature, humidity - safe inside ``(min, max)``.
  critical if ``value <= min`` or ``value >= max``; warning only when an
  explicit ``warning`` bound is set and ``value > warning``.
- ``ceiling``  co2 - critical if ``value >= max``.
- ``inverted`` aqi - *low is bad*.  The AQI channel reports an air-quality
  score where 100 is clean air, so the scale runs the other way from every
  other metric: critical below 50, warning below 75.  Configured bounds are
  ignored for this metric.

A ``None`` value classifies as ``None`` (unknown), never as safe.
"""

from __future__ import annotations

from collections.abc import Callable

from factory_monitor.models import Metric, Severity, Threshold

__all__ = ["AQI_CRITICAL_BELOW", "AQI_WARNING_BELOW", "STRATEGIES", "classify", "describe"]

AQI_CRITICAL_BELOW = 50.0
AQI_WARNING_BELOW = 75.0

Strategy = Callable[[float, Threshold], Severity]


def _upper(value: float, t: Threshold) -> Severity:
    if t.critical is not None and value >= t.critical:
        return Severity.CRITICAL
    if t.warning is not None and value >= t.warning:
        return Severity.WARNING
    return Severity.SAFE


def _band(value: float, t: Threshold) -> Severity:
    if t.min is not None and value <= t.min:
        return Severity.CRITICAL
    if t.max is not None and value >= t.max:
        return Severity.CRITICAL
    if t.warning is not None and value > t.warning:
        return Severity.WARNING
    return Severity.SAFE


def _ceiling(value: float, t: Threshold) -> Severity:
    if t.max is not None and value >= t.max:
        return Severity.CRITICAL
    return Severity.SAFE


def _inverted(value: float, t: Threshold) -> Severity:
    if value < AQI_CRITICAL_BELOW:
        return Severity.CRITICAL
    if value < AQI_WARNING_BELOW:
        return Severity.WARNING
    return Severity.SAFE


STRATEGIES: dict[Metric, Strategy] = {
    Metric.VIBRATION: _upper,
    Metric.NOISE: _upper,
    Metric.PM25: _upper,
    Metric.PRESSURE: _band,
    Metric.TEMPERATURE: _band,
    Metric.HUMIDITY: _band,
    Metric.CO2: _ceiling,
    Metric.AQI: _inverted,
}

_missing = set(Metric) - set(STRATEGIES)
if _missing:  # pragma: no cover
    raise RuntimeError(f"No classification strategy for: {sorted(_missing)}")


def classify(metric: Metric | str, value: float | None, thresholds: Threshold | dict | None) -> Severity | None:
    """Classify *value* for *metric*.

    *thresholds* may be a :class:`Threshold`, a plain dict of bounds, or
    ``None``.  Raises ``KeyError`` for an unknown metric.
    """
    parsed = Metric.parse(metric)
    if parsed is None:
        raise KeyError(metric)
    if value is None:
        return None
    if thresholds is None:
        thresholds = Threshold()
    elif isinstance(thresholds, dict):
        thresholds = Threshold(**thresholds)
    return STRATEGIES[parsed](float(value), thresholds)


_LABELS: dict[Metric, tuple[str, str]] = {
    Metric.VIBRATION: ("Vibration", " mm/s"),
    Metric.PRESSURE: ("Pressure", " kPa"),
    Metric.TEMPERATURE: ("Temperature", "°C"),
    Metric.HUMIDITY: ("Humidity", "%"),
    Metric.NOISE: ("Noise", " dB"),
    Metric.CO2: ("CO2", "%"),
    Metric.AQI: ("AQI", ""),
    Metric.PM25: ("PM2.5", " µg/m³"),
}


def describe(metric: Metric, value: float, severity: Severity, thresholds: Threshold | None = None) -> str:
    """Build the alert message for a classified reading."""
    label, unit = _LABELS[metric]
    t = thresholds or Threshold()
    head = f"{label} {severity.value.title()}: {value:g}{unit}"

    strategy = STRATEGIES[metric]
    if strategy is _inverted:
        return f"{head} indicates poor air quality"
    if strategy is _band:
        if t.min is not None and value <= t.min:
            return f"{head} is at or below min threshold ({t.min:g}{unit})"
        if t.max is not None and value >= t.max:
            return f"{head} is at or above max threshold ({t.max:g}{unit})"
        return f"{head} exceeds warning threshold"
    if strategy is _ceiling:
        return f"{head} exceeds max threshold"
    return f"{head} exceeds {severity.value} threshold"
