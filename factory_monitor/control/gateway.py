"""Two-channel control gateway.

``send`` tries the primary channel first.  If it raises or returns
``False`` the command is retried once on the fallback channel.  The call
resolves ``True`` if either channel confirmed delivery and ``False``
otherwise; it never drops a command silently.
"""

from __future__ import annotations

import logging

from factory_monitor.control.base import ControlChannel
from factory_monitor.errors import DeliveryError
from factory_monitor.models import MachineCommand

__all__ = ["ControlGateway"]

logger = logging.getLogger("factory_monitor.control")


class ControlGateway:
    """Primary + fallback delivery of machine commands."""

    def __init__(self, primary: ControlChannel, fallback: ControlChannel | None = None) -> None:
        self.primary = primary
        self.fallback = fallback
        self.last_failures: list[str] = []

    @property
    def channels(self) -> list[ControlChannel]:
        return [c for c in (self.primary, self.fallback) if c is not None]

    async def connect(self) -> None:
        for channel in self.channels:
            await channel.connect()

    async def close(self) -> None:
        for channel in self.channels:
            await channel.close()

    async def send(self, device_id: str, command: MachineCommand | str) -> bool:
        """Deliver *command* to *device_id*.  Returns ``True`` on confirmed delivery."""
        command = MachineCommand.parse(command)
        if not device_id:
            raise ValueError("Device ID is required for machine control.")

        self.last_failures = []
        for channel in self.channels:
            try:
                if await channel.send(device_id, command):
                    logger.info("Sent %s to %s via %s", command.value, device_id, channel.name)
                    return True
                reason = f"{channel.name}: not confirmed"
            except Exception as exc:
                reason = f"{channel.name}: {exc}"
            self.last_failures.append(reason)
            logger.warning("Command %s to %s failed on %s", command.value, device_id, reason)

        logger.error("Command %s to %s failed on all channels", command.value, device_id)
        return False

    async def send_or_raise(self, device_id: str, command: MachineCommand | str) -> None:
        """Like :meth:`send` but raises :class:`DeliveryError` on failure."""
        if not await self.send(device_id, command):
            raise DeliveryError(device_id, MachineCommand.parse(command).value, self.last_failures)
