"""Configuration loader for the monitor YAML format.

Parses YAML files with the following top-level sections::

    monitor:       # log level, alert summary cap
    thresholds:    # per-metric bound overrides (merged over the defaults)
    persistence:   # store config passed to the store factory
    ledger:        # production ledger bounds
    history:       # rolling sensor log bounds
    control:       # primary / fallback control channel configs

Example:

.. code-block:: yaml

    monitor:
      log_level: INFO
      alert_summary_cap: 5

    thresholds:
      vibration: {warning: 6, critical: 9}
      temperature: {min: -5, max: 40}

    persistence:
      type: file
      path: ./state/monitor.json

    control:
      fallback:
        type: rest
        base_url: https://api.example.com
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from factory_monitor.control.factory import create_channel
from factory_monitor.control.gateway import ControlGateway
from factory_monitor.models import Metric
from factory_monitor.persistence.base import KeyValueStore
from factory_monitor.persistence.factory import create_store
from factory_monitor.thresholds import DEFAULT_THRESHOLDS, ThresholdStore

__all__ = [
    "HistorySettings",
    "LedgerSettings",
    "MonitorYAMLConfig",
    "build_gateway",
    "build_store",
    "build_thresholds",
    "load_yaml_config",
]

logger = logging.getLogger("factory_monitor.config")


class LedgerSettings(BaseModel):
    max_log_entries: int = Field(default=100, gt=0)
    rollover_grace_s: float = Field(default=5.0, ge=0)


class HistorySettings(BaseModel):
    retention_hours: float = Field(default=24.0, gt=0)
    max_entries: int = Field(default=10_000, gt=0)


class MonitorYAMLConfig(BaseModel):
    """Parsed representation of the full YAML configuration.

    Attributes:
        log_level: Logging level string.
        alert_summary_cap: Alerts shown in summary views.
        thresholds: Raw per-metric overrides, validated by :func:`build_thresholds`.
        persistence: Raw dict passed to the store factory.
        ledger: Production ledger settings.
        history: Sensor history settings.
        control_primary: Raw channel config for the primary control channel.
        control_fallback: Raw channel config for the fallback channel.
    """

    log_level: str = "INFO"
    alert_summary_cap: int = 5
    thresholds: dict[str, dict[str, Any]] = Field(default_factory=dict)
    persistence: dict[str, Any] = Field(default_factory=lambda: {"type": "memory"})
    ledger: LedgerSettings = Field(default_factory=LedgerSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    control_primary: dict[str, Any] | None = None
    control_fallback: dict[str, Any] | None = None


def load_yaml_config(path: str | Path) -> MonitorYAMLConfig:
    """Load and validate a YAML configuration file."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    monitor_section = raw.get("monitor") or {}
    control_section = raw.get("control") or {}

    config = MonitorYAMLConfig(
        log_level=str(monitor_section.get("log_level", "INFO")).upper(),
        alert_summary_cap=int(monitor_section.get("alert_summary_cap", 5)),
        thresholds=raw.get("thresholds") or {},
        persistence=raw.get("persistence") or {"type": "memory"},
        ledger=LedgerSettings(**(raw.get("ledger") or {})),
        history=HistorySettings(**(raw.get("history") or {})),
        control_primary=control_section.get("primary"),
        control_fallback=control_section.get("fallback"),
    )

    logger.info(
        "Loaded config: %d threshold override(s), %s store, %d control channel(s)",
        len(config.thresholds),
        config.persistence.get("type", "memory"),
        sum(c is not None for c in (config.control_primary, config.control_fallback)),
    )
    return config


def build_thresholds(config: MonitorYAMLConfig) -> ThresholdStore:
    """Merge the config overrides field-wise over the defaults and validate them.

    Raises ``ThresholdValidationError`` if the merged set is invalid.
    """
    merged: dict[str, dict[str, Any]] = {}
    for name, bounds in config.thresholds.items():
        metric = Metric.parse(name)
        base = DEFAULT_THRESHOLDS[metric].fields_set() if metric is not None else {}
        merged[name] = {**base, **(bounds or {})}
    return ThresholdStore(merged)


def build_store(config: MonitorYAMLConfig) -> KeyValueStore:
    return create_store(config.persistence)


def build_gateway(config: MonitorYAMLConfig) -> ControlGateway | None:
    """Build the control gateway.  A lone fallback is promoted to primary."""
    configs = [c for c in (config.control_primary, config.control_fallback) if c]
    if not configs:
        return None
    channels = [create_channel(c) for c in configs]
    return ControlGateway(channels[0], channels[1] if len(channels) > 1 else None)
