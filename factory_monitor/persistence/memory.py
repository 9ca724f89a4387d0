"""In-memory store - the default for tests and one-shot CLI runs."""

from __future__ import annotations

from factory_monitor.persistence.base import KeyValueStore

__all__ = ["MemoryStore"]


class MemoryStore(KeyValueStore):
    """Dict-backed store.  Contents are lost with the process."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))
