"""Channel factory - builds control channels from configuration dicts::

    control:
      primary:  {type: rest, base_url: https://api.example.com}
      fallback: {type: rest, base_url: https://backup.example.com}
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from factory_monitor.control.base import ControlChannel

__all__ = ["create_channel", "register_channel"]

logger = logging.getLogger("factory_monitor.control.factory")

_CHANNEL_REGISTRY: dict[str, tuple[str, str]] = {
    "rest": ("factory_monitor.control.rest", "RestControlChannel"),
    "callback": ("factory_monitor.control.callback", "CallbackControlChannel"),
}


def create_channel(config: dict[str, Any]) -> ControlChannel:
    """Create a channel from a config dict with a ``"type"`` key."""
    config = dict(config)
    channel_type = config.pop("type", None)
    if channel_type is None:
        raise ValueError("Channel config must include a 'type' key")

    channel_type = str(channel_type).lower().strip()
    if channel_type not in _CHANNEL_REGISTRY:
        raise ValueError(f"Unknown channel type '{channel_type}'.  Available: {sorted(_CHANNEL_REGISTRY)}")

    module_path, class_name = _CHANNEL_REGISTRY[channel_type]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)

    logger.debug("Creating %s with config: %s", class_name, config)
    return cls(**config)


def register_channel(name: str, module_path: str, class_name: str) -> None:
    """Register a custom channel type for config-driven instantiation."""
    _CHANNEL_REGISTRY[name.lower().strip()] = (module_path, class_name)
