"""Tests for factory_monitor.history."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from factory_monitor.history import SensorHistory, production_kpi, production_trend
from factory_monitor.models import Metric, ProductionLogEntry, Reading
from factory_monitor.persistence import MemoryStore

NOW = datetime(2026, 3, 10, 12, 0)


def _reading(metric: Metric, value: float, ts: datetime, device_id: str = "d1") -> Reading:
    return Reading(metric=metric, value=value, device_id=device_id, timestamp=ts)


def _unit(ts: datetime, tag: str = "T") -> ProductionLogEntry:
    return ProductionLogEntry(tag_id=tag, product_name="Widget", timestamp=ts)


class TestSensorHistory:
    def test_newest_first(self) -> None:
        history = SensorHistory(MemoryStore(), clock=lambda: NOW)
        history.record(_reading(Metric.NOISE, 60, NOW - timedelta(minutes=2)))
        history.record(_reading(Metric.NOISE, 70, NOW - timedelta(minutes=1)))
        assert [r.value for r in history.readings("d1")] == [70, 60]

    def test_filter_by_metric_and_latest(self) -> None:
        history = SensorHistory(MemoryStore(), clock=lambda: NOW)
        history.record(_reading(Metric.NOISE, 60, NOW))
        history.record(_reading(Metric.PRESSURE, 40, NOW))
        history.record(_reading(Metric.NOISE, 65, NOW))
        assert [r.value for r in history.readings("d1", Metric.NOISE)] == [65, 60]
        latest = history.latest("d1")
        assert latest[Metric.NOISE].value == 65
        assert latest[Metric.PRESSURE].value == 40
        assert len(history.grouped("d1")[Metric.NOISE]) == 2

    def test_expired_entries_pruned_on_read(self) -> None:
        store = MemoryStore()
        clock_now = [NOW]
        history = SensorHistory(store, clock=lambda: clock_now[0], retention_hours=24)
        history.record(_reading(Metric.CO2, 10, NOW - timedelta(hours=23)))
        history.record(_reading(Metric.CO2, 20, NOW))
        clock_now[0] = NOW + timedelta(hours=2)
        assert [r.value for r in history.readings("d1")] == [20]
        assert len(store.get_json("device:d1:sensor_history")) == 1

    def test_capped(self) -> None:
        history = SensorHistory(MemoryStore(), clock=lambda: NOW, max_entries=3)
        for i in range(5):
            history.record(_reading(Metric.NOISE, i, NOW))
        assert [r.value for r in history.readings("d1")] == [4, 3, 2]

    def test_survives_reload(self) -> None:
        store = MemoryStore()
        SensorHistory(store, clock=lambda: NOW).record(_reading(Metric.HUMIDITY, 45, NOW))
        reloaded = SensorHistory(store, clock=lambda: NOW)
        (reading,) = reloaded.readings("d1")
        assert reading.metric is Metric.HUMIDITY
        assert reading.timestamp == NOW

    def test_per_device_and_clear(self) -> None:
        history = SensorHistory(MemoryStore(), clock=lambda: NOW)
        history.record(_reading(Metric.NOISE, 60, NOW, "d1"))
        history.record(_reading(Metric.NOISE, 61, NOW, "d2"))
        history.clear("d1")
        assert history.readings("d1") == []
        assert len(history.readings("d2")) == 1


class TestProductionTrend:
    def test_hourly_buckets_sorted(self) -> None:
        entries = [
            _unit(datetime(2026, 3, 10, 10, 5)),
            _unit(datetime(2026, 3, 10, 9, 59)),
            _unit(datetime(2026, 3, 10, 10, 45)),
        ]
        buckets = production_trend(entries, "hour")
        assert [(b.period, b.count) for b in buckets] == [
            ("2026-03-10 09:00", 1),
            ("2026-03-10 10:00", 2),
        ]

    def test_daily_buckets(self) -> None:
        entries = [_unit(datetime(2026, 3, 9, 23, 59)), _unit(datetime(2026, 3, 10, 0, 0))]
        assert [b.period for b in production_trend(entries, "day")] == ["2026-03-09", "2026-03-10"]

    def test_bad_grouping(self) -> None:
        with pytest.raises(ValueError):
            production_trend([], "week")  # type: ignore[arg-type]

    def test_kpi(self) -> None:
        entries = [
            _unit(datetime(2026, 3, 9, 23, 0)),
            _unit(datetime(2026, 3, 10, 8, 0)),
            _unit(datetime(2026, 3, 10, 11, 0)),
        ]
        kpi = production_kpi(entries, clock=lambda: NOW)
        assert kpi == {"daily": 2, "last_unit_at": datetime(2026, 3, 10, 11, 0)}

    def test_kpi_empty(self) -> None:
        assert production_kpi([], clock=lambda: NOW) == {"daily": 0, "last_unit_at": None}
