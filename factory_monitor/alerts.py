"""Alert aggregator - turns classified readings into a deduplicated alert list.

Alerts are keyed by ``(metric, rounded value, device_id)``.  A repeat
breach with the same key replaces the existing entry and moves it to the
front; it never appends a duplicate.

Alerts are *sticky*: a later safe reading does not clear them.  They leave
the list only through :meth:`AlertAggregator.dismiss`,
:meth:`AlertAggregator.dismiss_device` or :meth:`AlertAggregator.clear`.
"""

from __future__ import annotations

import collections
import logging
from collections.abc import Iterator
from datetime import datetime

from factory_monitor.classifier import describe
from factory_monitor.clock import Clock, local_now
from factory_monitor.errors import UnknownMetricError
from factory_monitor.models import Alert, AlertKey, Metric, Severity, Threshold

__all__ = ["AlertAggregator", "SUMMARY_CAP"]

logger = logging.getLogger("factory_monitor.alerts")

SUMMARY_CAP = 5


class AlertAggregator:
    """Ordered set of active alerts, most recently raised first."""

    def __init__(self, *, clock: Clock = local_now) -> None:
        self._clock = clock
        # insertion order == update order; the newest entry sits at the end
        self._alerts: collections.OrderedDict[AlertKey, Alert] = collections.OrderedDict()

    def __len__(self) -> int:
        return len(self._alerts)

    def __contains__(self, key: object) -> bool:
        return key in self._alerts

    def __iter__(self) -> Iterator[Alert]:
        return iter(self.list())

    def ingest(
        self,
        metric: Metric | str,
        value: float,
        device_id: str,
        severity: Severity | None,
        *,
        time: datetime | None = None,
        thresholds: Threshold | None = None,
    ) -> Alert | None:
        """Record a classified reading.

        Warning/critical readings upsert an alert and return it.  Safe or
        unknown readings leave the list untouched and return ``None``.
        Unknown metrics are logged and dropped.
        """
        parsed = Metric.parse(metric)
        if parsed is None:
            logger.warning("Dropping alert input: %s", UnknownMetricError(metric))
            return None
        if severity is None or not severity.is_alerting:
            return None

        key = AlertKey.of(parsed, value, device_id)
        alert = Alert(
            metric=parsed,
            value=key.value,
            device_id=device_id,
            severity=severity,
            message=describe(parsed, key.value, severity, thresholds),
            time=time or self._clock(),
        )
        existed = self._alerts.pop(key, None) is not None
        self._alerts[key] = alert
        logger.debug("%s alert %s", "Refreshed" if existed else "Raised", alert.message)
        return alert

    def list(self, limit: int | None = None) -> list[Alert]:
        """Return active alerts, newest first, optionally capped at *limit*."""
        alerts = list(reversed(self._alerts.values()))
        if limit is not None:
            alerts = alerts[: max(0, limit)]
        return alerts

    def summary(self) -> list[Alert]:
        return self.list(SUMMARY_CAP)

    def dismiss(self, key: AlertKey | tuple) -> bool:
        """Remove one alert.  Returns ``False`` if it was not present."""
        metric, value, device_id = key
        parsed = Metric.parse(metric)
        if parsed is None:
            return False
        removed = self._alerts.pop(AlertKey.of(parsed, value, device_id), None)
        return removed is not None

    def dismiss_device(self, device_id: str) -> int:
        """Remove every alert owned by *device_id*.  Returns the number removed."""
        stale = [k for k in self._alerts if k.device_id == device_id]
        for k in stale:
            del self._alerts[k]
        if stale:
            logger.debug("Dismissed %d alert(s) for %s", len(stale), device_id)
        return len(stale)

    def clear(self) -> None:
        self._alerts.clear()
