"""Factory Monitor - real-time threshold evaluation, alerting and daily
production counting for factory sensor streams.

Quick start::

    from factory_monitor import FactoryMonitor

    monitor = FactoryMonitor()
    await monitor.select_device("line-1")
    monitor.bus.on_reading("line-1", "vibration", 9.4, None)
    monitor.bus.on_unit_event("line-1", "TAG-001", "Widget", None)
    await monitor.drain()
    print(monitor.alerts.list(), monitor.ledger.count("line-1"))
"""

from __future__ import annotations

from factory_monitor.alerts import AlertAggregator
from factory_monitor.classifier import classify
from factory_monitor.ledger import DailyCounterLedger
from factory_monitor.models import Alert, Metric, ProductionLogEntry, Severity, Threshold
from factory_monitor.monitor import FactoryMonitor
from factory_monitor.thresholds import ThresholdStore

__all__ = [
    "Alert",
    "AlertAggregator",
    "DailyCounterLedger",
    "FactoryMonitor",
    "Metric",
    "ProductionLogEntry",
    "Severity",
    "Threshold",
    "ThresholdStore",
    "classify",
]

__version__ = "0.1.0"
