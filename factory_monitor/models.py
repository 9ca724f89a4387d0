"""Common data models for the factory monitor.

Defines the metric and severity enums plus the records that flow between
the ingest boundary, the classifier, the alert aggregator and the daily
production ledger.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, Field, field_validator

__all__ = [
    "Alert",
    "AlertKey",
    "DailyCounter",
    "MachineCommand",
    "Metric",
    "ProductionLogEntry",
    "Reading",
    "Severity",
    "Threshold",
]

# Alert identity uses the value rounded to this many decimals.
VALUE_PRECISION = 2


class Metric(StrEnum):
    """Sensor channels reported by a factory device."""

    VIBRATION = "vibration"
    PRESSURE = "pressure"
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    NOISE = "noise"
    CO2 = "co2"
    AQI = "aqi"
    PM25 = "pm25"

    @classmethod
    def parse(cls, raw: str | Metric) -> Metric | None:
        """Return the metric named by *raw*, or ``None`` if unrecognised."""
        if isinstance(raw, Metric):
            return raw
        if not isinstance(raw, str):
            return None
        name = raw.strip().lower()
        # the stream labels AQI as "airQuality"
        if name == "airquality":
            name = "aqi"
        try:
            return cls(name)
        except ValueError:
            return None


_SEVERITY_RANK = {"safe": 0, "warning": 1, "critical": 2}


class Severity(StrEnum):
    """Classification of a reading.  Totally ordered: safe < warning < critical."""

    SAFE = "safe"
    WARNING = "warning"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self.value]

    @property
    def is_alerting(self) -> bool:
        return self is not Severity.SAFE

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


class MachineCommand(StrEnum):
    """Commands accepted by the machine-control topic."""

    RUN = "RUN"
    STOP = "STOP"
    IDLE = "IDLE"

    @classmethod
    def parse(cls, raw: str | MachineCommand) -> MachineCommand:
        if isinstance(raw, MachineCommand):
            return raw
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            raise ValueError(
                f"Invalid machine command: {raw!r}. Valid: {', '.join(c.value for c in cls)}"
            ) from None


class Threshold(BaseModel):
    """Configured bounds for one metric.  Every field is optional."""

    model_config = {"frozen": True}

    min: float | None = None
    max: float | None = None
    warning: float | None = None
    critical: float | None = None

    def replace(self, **changes: float | None) -> Threshold:
        return self.model_copy(update=changes)

    def fields_set(self) -> dict[str, float]:
        """Return the populated bounds as a plain dict."""
        return {k: v for k, v in self.model_dump().items() if v is not None}


class Reading(BaseModel):
    """A single sensor value delivered by the ingest channel."""

    metric: Metric
    value: float | None
    device_id: str
    timestamp: datetime


class AlertKey(NamedTuple):
    """Alert identity: two alerts with the same key collapse into one."""

    metric: Metric
    value: float
    device_id: str

    @classmethod
    def of(cls, metric: Metric, value: float, device_id: str) -> AlertKey:
        return cls(metric, round(float(value), VALUE_PRECISION), device_id)


class Alert(BaseModel):
    """An active alert shown in the dashboard alert list.

    Attributes:
        metric: Metric that breached its thresholds.
        value: Reading value, rounded to ``VALUE_PRECISION`` decimals.
        device_id: Device that produced the reading.
        severity: ``warning`` or ``critical``.
        message: Human-readable description, consistent with *severity*.
        time: When the alert was last raised (later repeats overwrite it).
    """

    metric: Metric
    value: float
    device_id: str
    severity: Severity
    message: str
    time: datetime

    @property
    def key(self) -> AlertKey:
        return AlertKey(self.metric, self.value, self.device_id)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class DailyCounter(BaseModel):
    """Production units counted for one calendar day."""

    date: date
    count: int = Field(default=0, ge=0)


class ProductionLogEntry(BaseModel):
    """One product detected on the line (an RFID tag scan)."""

    tag_id: str
    product_name: str
    timestamp: datetime

    @field_validator("tag_id", "product_name", mode="before")
    @classmethod
    def _blank_to_unknown(cls, v: Any, info: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "UNKNOWN" if info.field_name == "tag_id" else "Unknown Product"
        return v

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProductionLogEntry:
        return cls.model_validate(data)
