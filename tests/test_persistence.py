"""Tests for factory_monitor.persistence - stores and store factory."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from factory_monitor.errors import PersistenceError
from factory_monitor.persistence import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    create_store,
    device_key,
    register_store,
)


class TestDeviceKey:
    def test_format(self) -> None:
        assert device_key("line-1", "counter") == "device:line-1:counter"
        assert device_key("d", "counter", "2026-03-09") == "device:d:counter:2026-03-09"


class TestKeyValueStoreContract:
    def test_keys_is_required(self) -> None:
        class _NoKeys(KeyValueStore):
            def get(self, key: str) -> str | None:
                return None

            def set(self, key: str, value: str) -> None:
                pass

            def delete(self, key: str) -> None:
                pass

        with pytest.raises(TypeError):
            _NoKeys()


class TestMemoryStore:
    def test_get_set_delete(self) -> None:
        store = MemoryStore()
        assert store.get("a") is None
        store.set("a", "1")
        assert store.get("a") == "1"
        store.delete("a")
        store.delete("a")
        assert store.get("a") is None

    def test_json_helpers(self) -> None:
        store = MemoryStore()
        store.set_json("k", {"count": 3})
        assert store.get_json("k") == {"count": 3}
        assert store.get_json("missing") is None

    def test_corrupt_json(self) -> None:
        store = MemoryStore({"k": "{oops"})
        with pytest.raises(PersistenceError, match="corrupt"):
            store.get_json("k")

    def test_unserialisable(self) -> None:
        with pytest.raises(PersistenceError, match="not serialisable"):
            MemoryStore().set_json("k", {"x": object()})

    def test_keys_prefix(self) -> None:
        store = MemoryStore({"device:a:x": "1", "device:b:x": "2"})
        assert store.keys("device:a") == ["device:a:x"]


class TestJsonFileStore:
    def test_round_trip_between_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "state" / "monitor.json"
        JsonFileStore(path=path).set_json("device:d1:counter", {"date": "2026-03-10", "count": 2})
        assert JsonFileStore(path=path).get_json("device:d1:counter")["count"] == 2

    def test_no_temp_files_left(self, tmp_path: Path) -> None:
        path = tmp_path / "monitor.json"
        store = JsonFileStore(path=path)
        store.set("a", "1")
        store.set("b", "2")
        store.delete("a")
        assert [p.name for p in tmp_path.iterdir()] == ["monitor.json"]
        assert json.loads(path.read_text()) == {"b": "2"}

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        store = JsonFileStore(path=tmp_path / "none.json")
        assert store.get("a") is None
        assert store.keys() == []

    def test_corrupt_file(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("not json")
        with pytest.raises(PersistenceError):
            JsonFileStore(path=path).get("a")

    def test_non_object_root(self, tmp_path: Path) -> None:
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(PersistenceError, match="object"):
            JsonFileStore(path=path).get("a")


class TestCreateStore:
    def test_default_is_memory(self) -> None:
        assert isinstance(create_store(None), MemoryStore)
        assert isinstance(create_store({}), MemoryStore)

    def test_file(self, tmp_path: Path) -> None:
        store = create_store({"type": "File", "path": str(tmp_path / "s.json")})
        assert isinstance(store, JsonFileStore)
        assert store.path == tmp_path / "s.json"

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown store type"):
            create_store({"type": "redis"})

    def test_register(self) -> None:
        register_store("scratch", "factory_monitor.persistence.memory", "MemoryStore")
        assert isinstance(create_store({"type": "scratch"}), MemoryStore)

    def test_config_not_mutated(self) -> None:
        config = {"type": "memory"}
        create_store(config)
        assert config == {"type": "memory"}
