"""Threshold store - owns the per-metric threshold configuration.

Edits are validated field by field, errors are accumulated, and a commit
is applied all-or-nothing: the classifier never sees a half-edited set
(for example a ``min`` already raised above the old ``max``).
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

from factory_monitor.errors import ThresholdValidationError
from factory_monitor.models import Metric, Threshold

__all__ = [
    "DEFAULT_THRESHOLDS",
    "FIELDS",
    "ThresholdSet",
    "ThresholdStore",
    "parse_threshold_value",
    "validate_threshold_set",
]

logger = logging.getLogger("factory_monitor.thresholds")

ThresholdSet = dict[Metric, Threshold]

FIELDS = ("min", "max", "warning", "critical")

DEFAULT_THRESHOLDS: ThresholdSet = {
    Metric.VIBRATION: Threshold(min=0, critical=9),
    Metric.PRESSURE: Threshold(min=5, max=80),
    Metric.NOISE: Threshold(min=0, critical=90),
    Metric.TEMPERATURE: Threshold(min=10, max=35),
    Metric.HUMIDITY: Threshold(min=10, max=80),
    Metric.CO2: Threshold(min=0, max=70),
    Metric.AQI: Threshold(),
    Metric.PM25: Threshold(critical=35),
}

TEMPERATURE_FLOOR = -40.0
TEMPERATURE_CEILING = 100.0
PERCENT_CEILING = 100.0
VIBRATION_CRITICAL_CEILING = 50.0
NOISE_CRITICAL_CEILING = 150.0


def _key(metric: Metric, field: str) -> str:
    return f"{metric.value}.{field}"


def parse_threshold_value(raw: Any) -> float | None:
    """Parse a user-entered bound.

    ``None`` clears the bound.  Anything else must be a finite number or a
    string that parses as one; otherwise ``ValueError`` is raised.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError("must be a number")
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise ValueError("must be a number")
        try:
            value = float(text)
        except ValueError:
            raise ValueError("must be a number") from None
    elif isinstance(raw, (int, float)):
        value = float(raw)
    else:
        raise ValueError("must be a number")
    if not math.isfinite(value):
        raise ValueError("must be a finite number")
    return value


def _field_error(metric: Metric, field: str, value: float) -> str | None:
    """Single-field range rules."""
    if not math.isfinite(value):
        return "must be a finite number"
    if metric is Metric.TEMPERATURE:
        if value < TEMPERATURE_FLOOR:
            return f"must be >= {TEMPERATURE_FLOOR:g}"
        if field != "min" and value < 0:
            return "must be >= 0"
        if field == "max" and value > TEMPERATURE_CEILING:
            return f"must be <= {TEMPERATURE_CEILING:g}"
        return None

    if value < 0:
        return "must be >= 0"
    if metric in (Metric.HUMIDITY, Metric.CO2) and value > PERCENT_CEILING:
        return f"must be <= {PERCENT_CEILING:g}"
    if metric is Metric.VIBRATION and field == "critical" and value > VIBRATION_CRITICAL_CEILING:
        return f"must be <= {VIBRATION_CRITICAL_CEILING:g}"
    if metric is Metric.NOISE and field == "critical" and value > NOISE_CRITICAL_CEILING:
        return f"must be <= {NOISE_CRITICAL_CEILING:g}"
    return None


def _threshold_errors(metric: Metric, threshold: Threshold) -> dict[str, str]:
    errors: dict[str, str] = {}
    for field, value in threshold.fields_set().items():
        msg = _field_error(metric, field, value)
        if msg:
            errors[_key(metric, field)] = msg

    if threshold.min is not None and threshold.max is not None and threshold.min >= threshold.max:
        errors.setdefault(_key(metric, "min"), "must be lower than max")
        errors.setdefault(_key(metric, "max"), "must be greater than min")
    if (
        threshold.warning is not None
        and threshold.critical is not None
        and threshold.warning >= threshold.critical
    ):
        errors.setdefault(_key(metric, "warning"), "must be lower than critical")
        errors.setdefault(_key(metric, "critical"), "must be greater than warning")
    return errors


def validate_threshold_set(thresholds: Mapping[Metric, Threshold]) -> dict[str, str]:
    """Return every validation error in *thresholds* keyed ``"metric.field"``."""
    errors: dict[str, str] = {}
    for metric, threshold in thresholds.items():
        errors.update(_threshold_errors(metric, threshold))
    return errors


def _coerce_set(
    raw: Mapping[Any, Any], base: Mapping[Metric, Threshold]
) -> tuple[ThresholdSet, dict[str, str]]:
    """Merge *raw* (metric -> Threshold or dict of bounds) over *base*.

    Returns the merged set and any parse errors.  Fields that fail to parse
    are left unset in the merged set.
    """
    merged: ThresholdSet = dict(base)
    errors: dict[str, str] = {}
    for name, value in raw.items():
        metric = Metric.parse(name)
        if metric is None:
            errors[str(name)] = "unknown metric"
            continue
        if isinstance(value, Threshold):
            merged[metric] = value
            continue
        if not isinstance(value, Mapping):
            errors[metric.value] = "must be a mapping of bounds"
            continue
        bounds: dict[str, float | None] = {}
        for field, raw_value in value.items():
            if field not in FIELDS:
                errors[_key(metric, str(field))] = "unknown field"
                continue
            try:
                bounds[field] = parse_threshold_value(raw_value)
            except ValueError as exc:
                errors[_key(metric, field)] = str(exc)
        merged[metric] = Threshold(**bounds)
    return merged, errors


class ThresholdStore:
    """Holds the committed threshold set.

    Parameters:
        overrides: Optional per-metric bounds replacing the defaults, either
            :class:`Threshold` instances or plain dicts.  Validated exactly
            like a user commit.
    """

    def __init__(self, overrides: Mapping[Any, Any] | None = None) -> None:
        self._thresholds: ThresholdSet = dict(DEFAULT_THRESHOLDS)
        self._version = 0
        if overrides:
            self.commit(overrides)

    @property
    def version(self) -> int:
        """Incremented on every successful commit."""
        return self._version

    def get(self, metric: Metric | str) -> Threshold:
        parsed = Metric.parse(metric)
        if parsed is None:
            raise KeyError(metric)
        return self._thresholds.get(parsed, Threshold())

    def snapshot(self) -> ThresholdSet:
        return dict(self._thresholds)

    def propose_update(self, metric: Metric | str, field: str, raw_value: Any) -> float | None:
        """Validate a single edit against the current set without applying it.

        Returns the parsed value.  Raises :class:`ThresholdValidationError`
        naming the offending field(s).
        """
        parsed = Metric.parse(metric)
        if parsed is None:
            raise ThresholdValidationError({str(metric): "unknown metric"})
        if field not in FIELDS:
            raise ThresholdValidationError({_key(parsed, field): "unknown field"})
        try:
            value = parse_threshold_value(raw_value)
        except ValueError as exc:
            raise ThresholdValidationError({_key(parsed, field): str(exc)}) from None

        candidate = self.get(parsed).replace(**{field: value})
        errors = _threshold_errors(parsed, candidate)
        if errors:
            raise ThresholdValidationError(errors)
        return value

    def commit(self, threshold_set: Mapping[Any, Any]) -> None:
        """Apply *threshold_set* atomically.

        Metrics absent from *threshold_set* keep their current bounds.  If
        any field fails, nothing is applied and every error is reported.
        """
        candidate, errors = _coerce_set(threshold_set, self._thresholds)
        for field, msg in validate_threshold_set(candidate).items():
            errors.setdefault(field, msg)
        if errors:
            logger.info("Rejected threshold commit: %d invalid field(s)", len(errors))
            raise ThresholdValidationError(errors)
        self._thresholds = candidate
        self._version += 1
        logger.info("Committed thresholds (version %d)", self._version)
