"""Rolling sensor history and production trend helpers.

``SensorHistory`` keeps a bounded, most-recent-first log of readings per
device with a fixed retention window (24 h by default).  Expired entries
are filtered out whenever the log is read and the pruned list is written
back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from factory_monitor.clock import Clock, in_day, local_now
from factory_monitor.errors import PersistenceError
from factory_monitor.models import Metric, ProductionLogEntry, Reading
from factory_monitor.persistence.base import KeyValueStore, device_key

__all__ = ["SensorHistory", "TrendBucket", "production_kpi", "production_trend"]

logger = logging.getLogger("factory_monitor.history")

HISTORY = "sensor_history"


class SensorHistory:
    """Per-device rolling log of sensor readings.

    Parameters:
        store: Persistence backend.
        clock: Returns the current naive local time.
        retention_hours: Readings older than this are expired.
        max_entries: Cap per device; the oldest readings fall off first.
    """

    def __init__(
        self,
        store: KeyValueStore,
        *,
        clock: Clock = local_now,
        retention_hours: float = 24.0,
        max_entries: int = 10_000,
    ) -> None:
        self._store = store
        self._clock = clock
        self._retention = timedelta(hours=retention_hours)
        self._max_entries = max_entries
        self._cache: dict[str, list[Reading]] = {}

    def record(self, reading: Reading) -> None:
        entries = self._entries(reading.device_id)
        entries.insert(0, reading)
        if len(entries) > self._max_entries:
            logger.debug("History for %s exceeded %d entries - oldest removed", reading.device_id, self._max_entries)
            del entries[self._max_entries :]
        self._save(reading.device_id, entries)

    def readings(self, device_id: str, metric: Metric | None = None) -> list[Reading]:
        """Unexpired readings for *device_id*, newest first."""
        entries = self._entries(device_id)
        if metric is None:
            return list(entries)
        return [r for r in entries if r.metric is metric]

    def grouped(self, device_id: str) -> dict[Metric, list[Reading]]:
        out: dict[Metric, list[Reading]] = {}
        for r in self._entries(device_id):
            out.setdefault(r.metric, []).append(r)
        return out

    def latest(self, device_id: str) -> dict[Metric, Reading]:
        out: dict[Metric, Reading] = {}
        for r in self._entries(device_id):
            out.setdefault(r.metric, r)
        return out

    def clear(self, device_id: str) -> None:
        self._cache[device_id] = []
        try:
            self._store.delete(device_key(device_id, HISTORY))
        except PersistenceError as exc:
            logger.error("Failed to clear history for %s: %s", device_id, exc)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _entries(self, device_id: str) -> list[Reading]:
        entries = self._cache.get(device_id)
        if entries is None:
            entries = self._load(device_id)
            self._cache[device_id] = entries
        cutoff = self._clock() - self._retention
        valid = [r for r in entries if r.timestamp > cutoff]
        if len(valid) != len(entries):
            logger.debug("Expired %d history entries for %s", len(entries) - len(valid), device_id)
            entries[:] = valid
            self._save(device_id, entries)
        return entries

    def _load(self, device_id: str) -> list[Reading]:
        try:
            raw = self._store.get_json(device_key(device_id, HISTORY))
        except PersistenceError as exc:
            logger.error("Ignoring unreadable history for %s: %s", device_id, exc)
            return []
        out: list[Reading] = []
        for item in raw or []:
            try:
                out.append(Reading.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed history entry for %s: %r", device_id, item)
        return out

    def _save(self, device_id: str, entries: list[Reading]) -> None:
        try:
            self._store.set_json(device_key(device_id, HISTORY), [r.model_dump(mode="json") for r in entries])
        except PersistenceError as exc:
            logger.error("Failed to persist history for %s: %s", device_id, exc)


# -----------------------------------------------------------------------
# Production trend
# -----------------------------------------------------------------------


class TrendBucket(BaseModel):
    """Units counted in one hour or one day."""

    period: str
    count: int


def _bucket_label(ts: datetime, group_by: str) -> str:
    if group_by == "hour":
        return ts.strftime("%Y-%m-%d %H:00")
    return ts.strftime("%Y-%m-%d")


def production_trend(
    entries: Iterable[ProductionLogEntry],
    group_by: Literal["hour", "day"] = "hour",
) -> list[TrendBucket]:
    """Aggregate log entries into chronologically ordered buckets."""
    if group_by not in ("hour", "day"):
        raise ValueError(f"group_by must be 'hour' or 'day', got {group_by!r}")
    counts: dict[str, int] = {}
    for e in entries:
        label = _bucket_label(e.timestamp, group_by)
        counts[label] = counts.get(label, 0) + 1
    return [TrendBucket(period=k, count=v) for k, v in sorted(counts.items())]


def production_kpi(entries: Iterable[ProductionLogEntry], clock: Clock = local_now) -> dict[str, Any]:
    """Today's unit total and the time of the most recent unit."""
    today = clock().date()
    todays = [e for e in entries if in_day(e.timestamp, today)]
    last = max((e.timestamp for e in todays), default=None)
    return {"daily": len(todays), "last_unit_at": last}
