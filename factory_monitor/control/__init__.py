"""Machine-control delivery::

    from factory_monitor.control import ControlGateway, RestControlChannel
"""

from __future__ import annotations

from factory_monitor.control.base import ControlChannel
from factory_monitor.control.callback import CallbackControlChannel
from factory_monitor.control.factory import create_channel, register_channel
from factory_monitor.control.gateway import ControlGateway
from factory_monitor.control.rest import RestControlChannel

__all__ = [
    "CallbackControlChannel",
    "ControlChannel",
    "ControlGateway",
    "RestControlChannel",
    "create_channel",
    "register_channel",
]
