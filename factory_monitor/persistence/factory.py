"""Store factory - creates stores from configuration dicts::

    persistence:
      type: file
      path: ./state/monitor.json
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from factory_monitor.persistence.base import KeyValueStore

__all__ = ["create_store", "register_store"]

logger = logging.getLogger("factory_monitor.persistence.factory")

# Registry of type names -> (module_path, class_name)
_STORE_REGISTRY: dict[str, tuple[str, str]] = {
    "memory": ("factory_monitor.persistence.memory", "MemoryStore"),
    "file": ("factory_monitor.persistence.file", "JsonFileStore"),
}


def create_store(config: dict[str, Any] | None) -> KeyValueStore:
    """Create a store from a config dict.

    The ``"type"`` key selects the store (default ``"memory"``); all
    other keys are forwarded to the store constructor.
    """
    config = dict(config or {})
    store_type = str(config.pop("type", "memory")).lower().strip()

    if store_type not in _STORE_REGISTRY:
        raise ValueError(f"Unknown store type '{store_type}'.  Available: {sorted(_STORE_REGISTRY)}")

    module_path, class_name = _STORE_REGISTRY[store_type]
    module = importlib.import_module(module_path)
    cls = getattr(module, class_name)

    logger.debug("Creating %s with config: %s", class_name, config)
    return cls(**config)


def register_store(name: str, module_path: str, class_name: str) -> None:
    """Register a custom store type for config-driven instantiation."""
    _STORE_REGISTRY[name.lower().strip()] = (module_path, class_name)
