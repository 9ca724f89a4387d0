"""File store - keeps all keys in a single JSON document on disk.

Every ``set`` rewrites the document through a temporary file followed by
``os.replace`` so a crash mid-write leaves the previous version intact.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path

from factory_monitor.errors import PersistenceError
from factory_monitor.persistence.base import KeyValueStore

__all__ = ["JsonFileStore"]

logger = logging.getLogger("factory_monitor.persistence.file")


class JsonFileStore(KeyValueStore):
    """Persist string values to a JSON file.

    Parameters:
        path: Target file (parent directories are created on first write).
    """

    def __init__(self, *, path: str | Path = "./factory_monitor_state.json") -> None:
        self._path = Path(path)
        self._data: dict[str, str] | None = None

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = dict(self._load())
        data[key] = value
        self._write(data, key)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            data = dict(data)
            del data[key]
            self._write(data, key)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._load() if k.startswith(prefix))

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _load(self) -> dict[str, str]:
        if self._data is not None:
            return self._data
        if not self._path.exists():
            self._data = {}
            return self._data
        try:
            with self._path.open("r", encoding="utf-8") as fh:
                raw = json.load(fh)
        except (OSError, ValueError) as exc:
            raise PersistenceError(str(self._path), f"cannot read store: {exc}") from exc
        if not isinstance(raw, dict):
            raise PersistenceError(str(self._path), "store root must be an object")
        self._data = {str(k): str(v) for k, v in raw.items()}
        logger.debug("Loaded %d keys from %s", len(self._data), self._path)
        return self._data

    def _write(self, data: dict[str, str], key: str) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(data, fh)
                os.replace(tmp, self._path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp)
                raise
        except OSError as exc:
            raise PersistenceError(key, str(exc)) from exc
        # only adopt the new document once it is on disk
        self._data = data
