"""Control channel abstraction.

A channel delivers one machine command to one device and reports whether
the far end confirmed it.  Channels may also raise; the gateway treats an
exception exactly like a ``False`` result.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from factory_monitor.models import MachineCommand

__all__ = ["ControlChannel"]


class ControlChannel(ABC):
    """Abstract base class for all control channels."""

    name: str = "channel"

    async def connect(self) -> None:
        """Open resources.  Optional."""

    @abstractmethod
    async def send(self, device_id: str, command: MachineCommand) -> bool:
        """Deliver *command*; return ``True`` once delivery is confirmed."""

    async def close(self) -> None:
        """Release resources.  Optional."""
