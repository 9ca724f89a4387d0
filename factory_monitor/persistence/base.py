"""Key-value persistence abstraction.

Provides:
- ``KeyValueStore`` - abstract string store (``get`` / ``set`` / ``delete``)
  with JSON helpers that wrap decode/encode failures in
  :class:`PersistenceError`.
- ``device_key``   - builds device-scoped keys.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from factory_monitor.errors import PersistenceError

__all__ = ["KeyValueStore", "device_key"]

logger = logging.getLogger("factory_monitor.persistence")


def device_key(device_id: str, *parts: str) -> str:
    """Return a key scoped to *device_id*, e.g. ``device:line-1:counter``."""
    return ":".join(("device", device_id, *parts))


class KeyValueStore(ABC):
    """Abstract base class for all stores.

    Concrete stores implement ``get``, ``set`` and ``delete`` on string
    values and raise :class:`PersistenceError` when the backend fails.
    """

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under *key*, or ``None``."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store *value* under *key*."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove *key* (no error if absent)."""

    @abstractmethod
    def keys(self, prefix: str = "") -> list[str]:
        """Return stored keys starting with *prefix*, sorted."""

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    def get_json(self, key: str) -> Any:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise PersistenceError(key, f"corrupt JSON: {exc}") from exc

    def set_json(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise PersistenceError(key, f"not serialisable: {exc}") from exc
        self.set(key, raw)
