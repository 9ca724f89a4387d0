"""REST channel - posts machine-control state updates to the backend.

Request::

    POST {base_url}/update-state-details
    {"deviceId": "...", "topic": "fmc/machineControl",
     "payload": {"status": "STOP", "timestamp": "..."}}

The backend forwards the state to the device over MQTT.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import httpx

from factory_monitor.control.base import ControlChannel
from factory_monitor.models import MachineCommand

__all__ = ["RestControlChannel"]

logger = logging.getLogger("factory_monitor.control.rest")

MACHINE_CONTROL_TOPIC = "fmc/machineControl"


class RestControlChannel(ControlChannel):
    """Deliver commands through the backend's state-update endpoint.

    Parameters:
        base_url: Backend API root, e.g. ``https://api.example.com``.
        headers: Extra HTTP headers (e.g. ``{"Authorization": "Bearer …"}``).
        timeout_s: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (tests pass a mock).
    """

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        name: str = "rest",
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json", **(headers or {})}
        self._timeout = timeout_s
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.name = name

    async def connect(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                headers=self._headers,
                transport=self._transport,
            )
            logger.info("RestControlChannel ready - target: %s", self._base_url)

    async def send(self, device_id: str, command: MachineCommand) -> bool:
        if self._client is None:
            raise RuntimeError("RestControlChannel is not connected")

        body = {
            "deviceId": device_id,
            "topic": MACHINE_CONTROL_TOPIC,
            "payload": {
                "status": command.value,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        }
        resp = await self._client.post("/update-state-details", json=body)
        resp.raise_for_status()
        logger.debug("POST update-state-details %s %s - HTTP %d", device_id, command.value, resp.status_code)
        return True

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("RestControlChannel closed")
