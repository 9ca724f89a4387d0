"""Ingest bus - fans stream callbacks out to an explicit list of listeners.

The realtime client calls the bus; the bus calls every subscribed
listener in subscription order.  A listener that raises is logged and the
remaining listeners still run, so one bad consumer cannot stall the
stream.
"""

from __future__ import annotations

import logging
from typing import Any

__all__ = ["IngestBus", "IngestListener"]

logger = logging.getLogger("factory_monitor.events")


class IngestListener:
    """Base class for ingest consumers.  Override the callbacks you need."""

    def on_reading(self, device_id: str, metric: str, value: Any, timestamp: Any) -> None:
        """A sensor value arrived."""

    def on_unit_event(self, device_id: str, tag_id: str | None, product_name: str | None, timestamp: Any) -> None:
        """A product passed the line sensor."""

    def on_connection_change(self, is_connected: bool) -> None:
        """The stream connected or dropped."""


class IngestBus:
    """Ordered multi-subscriber dispatch of the ingest callback interface."""

    def __init__(self) -> None:
        self._listeners: list[IngestListener] = []
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: IngestListener) -> IngestListener:
        if listener not in self._listeners:
            self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: IngestListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # -- callbacks invoked by the realtime client --

    def on_reading(self, device_id: str, metric: str, value: Any, timestamp: Any = None) -> None:
        self._dispatch("on_reading", device_id, metric, value, timestamp)

    def on_unit_event(
        self,
        device_id: str,
        tag_id: str | None,
        product_name: str | None,
        timestamp: Any = None,
    ) -> None:
        self._dispatch("on_unit_event", device_id, tag_id, product_name, timestamp)

    def on_connection_change(self, is_connected: bool) -> None:
        if is_connected != self._connected:
            logger.info("Stream %s", "connected" if is_connected else "disconnected")
        self._connected = is_connected
        self._dispatch("on_connection_change", is_connected)

    def _dispatch(self, method: str, *args: Any) -> None:
        # iterate over a snapshot: listeners may unsubscribe while handling
        for listener in list(self._listeners):
            try:
                getattr(listener, method)(*args)
            except Exception:
                logger.exception("%s.%s failed", type(listener).__name__, method)
