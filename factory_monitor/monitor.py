"""FactoryMonitor - the context object that wires the ingest bus to the
classifier, alert aggregator, production ledger and control gateway.

Example::

    from factory_monitor import FactoryMonitor

    monitor = FactoryMonitor()
    await monitor.select_device("line-1")
    monitor.bus.on_reading("line-1", "vibration", 9.4, None)
    await monitor.drain()
    monitor.alerts.list()
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
from collections.abc import Mapping
from typing import Any

from factory_monitor.alerts import AlertAggregator
from factory_monitor.classifier import classify
from factory_monitor.clock import Clock, local_now, to_local
from factory_monitor.config import MonitorYAMLConfig, build_gateway, build_store, build_thresholds
from factory_monitor.control.gateway import ControlGateway
from factory_monitor.errors import DeliveryError, EmergencyStopActiveError, UnknownMetricError
from factory_monitor.events import IngestBus, IngestListener
from factory_monitor.history import SensorHistory
from factory_monitor.ledger import DailyCounterLedger
from factory_monitor.models import Alert, MachineCommand, Metric, Reading, Severity
from factory_monitor.persistence.base import KeyValueStore
from factory_monitor.persistence.memory import MemoryStore
from factory_monitor.thresholds import ThresholdStore

__all__ = ["DeviceSession", "FactoryMonitor"]

logger = logging.getLogger("factory_monitor")


def _coerce_value(value: Any) -> float | None:
    """Stream values arrive as numbers or numeric strings."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"not a sensor value: {value!r}")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError(f"non-finite sensor value: {value!r}")
    return number


class DeviceSession(IngestListener):
    """Ingest listener bound to one selected device and one generation.

    Callbacks only enqueue; a single worker task applies the events in
    delivery order.  Once the monitor moves to another generation the
    session is inert: late callbacks and queued events are discarded.
    """

    def __init__(self, monitor: FactoryMonitor, device_id: str, generation: int) -> None:
        self._monitor = monitor
        self.device_id = device_id
        self.generation = generation
        self.latest: dict[Metric, float | None] = {}
        self._queue: asyncio.Queue[tuple[str, tuple[Any, ...]]] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None

    @property
    def active(self) -> bool:
        return self._monitor.generation == self.generation

    # -- IngestListener --

    def on_reading(self, device_id: str, metric: str, value: Any, timestamp: Any) -> None:
        if device_id == self.device_id and self.active:
            self._queue.put_nowait(("reading", (metric, value, timestamp)))

    def on_unit_event(self, device_id: str, tag_id: str | None, product_name: str | None, timestamp: Any) -> None:
        if device_id == self.device_id and self.active:
            self._queue.put_nowait(("unit", (tag_id, product_name, timestamp)))

    def on_connection_change(self, is_connected: bool) -> None:
        if self.active:
            self._monitor._on_connection_change(is_connected)

    def request_rollover(self, device_id: str) -> None:
        """Rollover timer callback: queue the reset behind pending events."""
        if device_id == self.device_id and self.active:
            self._queue.put_nowait(("rollover", ()))

    # -- worker --

    def start(self) -> None:
        self._worker = asyncio.create_task(self._run(), name=f"device-{self.device_id}")

    async def stop(self) -> None:
        if self._worker and not self._worker.done():
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        self._worker = None

    async def drain(self) -> None:
        """Wait until every queued event has been applied."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            kind, args = await self._queue.get()
            try:
                if self.active:
                    self._monitor._apply(self, kind, args)
            except Exception:
                logger.exception("Failed to apply %s event for %s", kind, self.device_id)
            finally:
                self._queue.task_done()


class FactoryMonitor:
    """Real-time threshold evaluation, alerting and production counting.

    Parameters:
        thresholds: Threshold store (defaults apply when omitted).
        store: Persistence backend for the ledger and sensor history.
        gateway: Control gateway for machine commands (optional).
        clock: Returns the current naive local time.
        alert_summary_cap: Number of alerts shown in summary views.
        max_log_entries: Bound on the daily production log.
        rollover_grace_s: Delay after midnight before the counter resets.
        history_retention_hours / history_max_entries: Sensor history bounds.
        record_history: Disable to skip the rolling sensor log.
    """

    def __init__(
        self,
        *,
        thresholds: ThresholdStore | None = None,
        store: KeyValueStore | None = None,
        gateway: ControlGateway | None = None,
        clock: Clock = local_now,
        alert_summary_cap: int = 5,
        max_log_entries: int = 100,
        rollover_grace_s: float = 5.0,
        history_retention_hours: float = 24.0,
        history_max_entries: int = 10_000,
        record_history: bool = True,
    ) -> None:
        self._clock = clock
        self.bus = IngestBus()
        self.thresholds = thresholds or ThresholdStore()
        self.store = store or MemoryStore()
        self.alerts = AlertAggregator(clock=clock)
        self.ledger = DailyCounterLedger(
            self.store,
            clock=clock,
            max_log_entries=max_log_entries,
            rollover_grace_s=rollover_grace_s,
        )
        self.history = SensorHistory(
            self.store,
            clock=clock,
            retention_hours=history_retention_hours,
            max_entries=history_max_entries,
        )
        self.gateway = gateway
        self.alert_summary_cap = alert_summary_cap
        self.record_history = record_history

        self._generation = 0
        self._session: DeviceSession | None = None
        self._connected = False
        self._in_flight = 0
        self.emergency_stop_active = False
        self.motor_state: MachineCommand | None = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def device_id(self) -> str | None:
        return self._session.device_id if self._session else None

    @property
    def session(self) -> DeviceSession | None:
        return self._session

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def command_in_flight(self) -> bool:
        """``True`` while a control command awaits confirmation."""
        return self._in_flight > 0

    # ------------------------------------------------------------------
    # Device selection
    # ------------------------------------------------------------------

    async def select_device(self, device_id: str) -> None:
        """Make *device_id* the current device.

        The previous device's listener, alerts and rollover timer are
        detached and the new ones attached without yielding to the event
        loop, so no callback can observe a half-switched monitor.
        """
        old = self._session
        if old is not None and old.device_id == device_id:
            return

        if old is not None:
            self.bus.unsubscribe(old)
            self.alerts.dismiss_device(old.device_id)
        self._generation += 1
        session = DeviceSession(self, device_id, self._generation)
        self._session = session
        if self.ledger.is_loaded(device_id):
            # in-memory state may hold units whose writes failed
            self.ledger.roll_over(device_id)
        else:
            self.ledger.load(device_id)
        self.ledger.schedule_rollover(device_id, session.request_rollover)
        self.bus.subscribe(session)
        session.start()
        logger.info("Selected device %s (generation %d)", device_id, self._generation)

        if old is not None:
            await old.stop()

    async def connect(self) -> None:
        """Open the control channels."""
        if self.gateway is not None:
            await self.gateway.connect()

    async def close(self) -> None:
        """Detach the current device and release the control channels."""
        old = self._session
        if old is not None:
            self.bus.unsubscribe(old)
            self._session = None
        self._generation += 1
        self.ledger.cancel_rollover()
        if old is not None:
            await old.stop()
        if self.gateway is not None:
            await self.gateway.close()

    async def drain(self) -> None:
        if self._session is not None:
            await self._session.drain()

    # ------------------------------------------------------------------
    # Event application (runs on the session worker)
    # ------------------------------------------------------------------

    def _apply(self, session: DeviceSession, kind: str, args: tuple[Any, ...]) -> None:
        if kind == "reading":
            self._apply_reading(session, *args)
        elif kind == "unit":
            self._apply_unit(session, *args)
        elif kind == "rollover":
            self.ledger.roll_over(session.device_id)
        else:
            logger.warning("Unknown event kind %r", kind)

    def _apply_reading(self, session: DeviceSession, metric: Any, value: Any, timestamp: Any) -> None:
        parsed = Metric.parse(metric)
        if parsed is None:
            logger.warning("Dropping reading from %s: %s", session.device_id, UnknownMetricError(metric))
            return
        try:
            number = _coerce_value(value)
        except (TypeError, ValueError):
            logger.warning("Dropping %s reading from %s: bad value %r", parsed.value, session.device_id, value)
            return
        ts = to_local(timestamp, self._clock)

        session.latest[parsed] = number
        if number is None:
            return

        threshold = self.thresholds.get(parsed)
        severity = classify(parsed, number, threshold)
        if self.record_history:
            self.history.record(Reading(metric=parsed, value=number, device_id=session.device_id, timestamp=ts))
        self.alerts.ingest(parsed, number, session.device_id, severity, time=ts, thresholds=threshold)

    def _apply_unit(self, session: DeviceSession, tag_id: Any, product_name: Any, timestamp: Any) -> None:
        entry = self.ledger.record_unit(session.device_id, tag_id, product_name, timestamp)
        if entry is not None:
            logger.debug("Unit %s on %s - count %d", entry.tag_id, session.device_id, self.ledger.count(session.device_id))

    def _on_connection_change(self, is_connected: bool) -> None:
        self._connected = is_connected

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def statuses(self) -> dict[Metric, Severity | None]:
        """Severity of each metric's latest value against the *current* thresholds."""
        if self._session is None:
            return {}
        return {
            metric: classify(metric, value, self.thresholds.get(metric))
            for metric, value in self._session.latest.items()
        }

    def alert_summary(self) -> list[Alert]:
        return self.alerts.list(self.alert_summary_cap)

    def kpi(self) -> dict[str, Any]:
        device_id = self._require_device()
        yesterday = self.ledger.load_yesterday(device_id)
        return {
            "device_id": device_id,
            "daily": self.ledger.count(device_id),
            "yesterday": yesterday.count if yesterday else None,
            "trend_pct": self.ledger.trend_vs_yesterday(device_id),
            "log": self.ledger.log(device_id),
        }

    # ------------------------------------------------------------------
    # User edits
    # ------------------------------------------------------------------

    def update_thresholds(self, threshold_set: Mapping[Any, Any]) -> None:
        """Commit a threshold edit; raises ``ThresholdValidationError``."""
        self.thresholds.commit(threshold_set)

    # ------------------------------------------------------------------
    # Machine control
    # ------------------------------------------------------------------

    async def send_command(self, command: MachineCommand | str) -> None:
        """Deliver *command* to the current device or raise :class:`DeliveryError`."""
        cmd = MachineCommand.parse(command)
        device_id = self._require_device()
        if self.gateway is None:
            raise DeliveryError(device_id, cmd.value, ["no control gateway configured"])

        self._in_flight += 1
        try:
            delivered = await self.gateway.send(device_id, cmd)
        finally:
            self._in_flight -= 1
        if not delivered:
            raise DeliveryError(device_id, cmd.value, self.gateway.last_failures)

    async def set_motor_state(self, state: MachineCommand | str) -> None:
        """Run or stop the motor.  Refused while the emergency stop is latched."""
        cmd = MachineCommand.parse(state)
        if self.emergency_stop_active:
            raise EmergencyStopActiveError(self.device_id)
        await self.send_command(cmd)
        self.motor_state = cmd

    async def emergency_stop(self) -> None:
        """Latch the emergency stop and send STOP.

        The latch and local motor state apply immediately; delivery failure
        still raises :class:`DeliveryError` and leaves the latch set.
        """
        logger.warning("EMERGENCY STOP on %s", self.device_id)
        self.emergency_stop_active = True
        self.motor_state = MachineCommand.STOP
        await self.send_command(MachineCommand.STOP)

    def reset_emergency(self) -> None:
        self.emergency_stop_active = False
        logger.info("Emergency stop reset on %s", self.device_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_device(self) -> str:
        if self._session is None:
            raise RuntimeError("No device selected - call select_device() first")
        return self._session.device_id

    # ------------------------------------------------------------------
    # Alternative constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_config(cls, config: MonitorYAMLConfig, **overrides: Any) -> FactoryMonitor:
        """Build a monitor from a parsed YAML config."""
        kwargs: dict[str, Any] = {
            "thresholds": build_thresholds(config),
            "store": build_store(config),
            "gateway": build_gateway(config),
            "alert_summary_cap": config.alert_summary_cap,
            "max_log_entries": config.ledger.max_log_entries,
            "rollover_grace_s": config.ledger.rollover_grace_s,
            "history_retention_hours": config.history.retention_hours,
            "history_max_entries": config.history.max_entries,
        }
        kwargs.update(overrides)
        return cls(**kwargs)
