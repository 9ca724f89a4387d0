"""Callback channel - delegates delivery to a user-provided callable.

Typically wraps the realtime client's publish function::

    CallbackControlChannel(lambda device_id, command: client.publish(...))
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from factory_monitor.control.base import ControlChannel
from factory_monitor.models import MachineCommand

__all__ = ["CallbackControlChannel"]


class CallbackControlChannel(ControlChannel):
    """Wraps ``(device_id, command) -> bool`` (sync or async) as a channel.

    Sync callables run in the default executor so a slow publish does not
    block the event loop.
    """

    def __init__(self, callback: Callable[[str, MachineCommand], Any], *, name: str = "stream") -> None:
        self._callback = callback
        self._is_async = inspect.iscoroutinefunction(callback)
        self.name = name

    async def send(self, device_id: str, command: MachineCommand) -> bool:
        if self._is_async:
            result = await self._callback(device_id, command)
        else:
            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, self._callback, device_id, command)
        return bool(result)
