"""Persistence backends for device-scoped monitor state::

    from factory_monitor.persistence import MemoryStore, JsonFileStore
"""

from __future__ import annotations

from factory_monitor.persistence.base import KeyValueStore, device_key
from factory_monitor.persistence.factory import create_store, register_store
from factory_monitor.persistence.file import JsonFileStore
from factory_monitor.persistence.memory import MemoryStore

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "create_store",
    "device_key",
    "register_store",
]
