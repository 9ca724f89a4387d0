"""Error taxonomy.

- ``ThresholdValidationError`` - a threshold edit failed validation.  Carries
  a ``{"metric.field": message}`` map; nothing is ever partially applied.
- ``DeliveryError`` - a control command failed on every channel.
- ``PersistenceError`` - a local state read/write failed.  Callers log it and
  keep their in-memory state authoritative.
- ``UnknownMetricError`` - an ingest payload named an unrecognised metric.
  Dropped with a log line, never surfaced to the user.
- ``EmergencyStopActiveError`` - a motor command was refused because the
  emergency stop is latched.
"""

from __future__ import annotations

__all__ = [
    "DeliveryError",
    "EmergencyStopActiveError",
    "FactoryMonitorError",
    "PersistenceError",
    "ThresholdValidationError",
    "UnknownMetricError",
]


class FactoryMonitorError(Exception):
    """Base class for all factory monitor errors."""


class ThresholdValidationError(FactoryMonitorError, ValueError):
    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        detail = "; ".join(f"{field}: {msg}" for field, msg in sorted(self.errors.items()))
        super().__init__(f"Invalid thresholds - {detail}")


class DeliveryError(FactoryMonitorError):
    def __init__(self, device_id: str, command: str, reasons: list[str] | None = None) -> None:
        self.device_id = device_id
        self.command = command
        self.reasons = list(reasons or [])
        msg = f"Failed to deliver {command} to {device_id} on all channels"
        if self.reasons:
            msg += f" ({'; '.join(self.reasons)})"
        super().__init__(msg)


class PersistenceError(FactoryMonitorError):
    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        super().__init__(f"Persistence failure for {key!r}: {reason}")


class UnknownMetricError(FactoryMonitorError, KeyError):
    def __init__(self, metric: object) -> None:
        self.metric = metric
        super().__init__(f"Unknown metric: {metric!r}")

    def __str__(self) -> str:
        return self.args[0]


class EmergencyStopActiveError(FactoryMonitorError):
    def __init__(self, device_id: str | None) -> None:
        self.device_id = device_id
        super().__init__(f"Emergency stop is active for {device_id}; reset it before changing motor state")
