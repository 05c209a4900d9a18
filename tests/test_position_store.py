import json

import pytest

from planner_viz.core.model import Position
from planner_viz.core.store.position_store import (
    JsonFileStorage,
    LayoutModeStore,
    MemoryStorage,
    PositionStore,
    storage_key,
)


class _BrokenStorage:
    def get_item(self, key):
        raise OSError("storage unavailable")

    def set_item(self, key, value):
        raise OSError("quota exceeded")

    def remove_item(self, key):
        raise OSError("storage unavailable")


def test_storage_key():
    assert storage_key("plan-1") == "planLayout_plan-1"
    assert storage_key(None) == "planLayout_unknown"
    assert storage_key("") == "planLayout_unknown"


def test_save_and_load():
    storage = MemoryStorage()
    store = PositionStore(storage)
    assert store.save("plan-1", "C", Position(500.0, 200.0)) is True
    assert store.save("plan-1", "D", Position(1.5, -2.0)) is True
    assert store.load("plan-1") == {"C": Position(500.0, 200.0), "D": Position(1.5, -2.0)}
    assert json.loads(storage.get_item("planLayout_plan-1")) == {
        "C": {"x": 500.0, "y": 200.0},
        "D": {"x": 1.5, "y": -2.0},
    }


def test_save_overwrites_single_entry():
    store = PositionStore(MemoryStorage())
    store.save("p", "a", Position(1.0, 1.0))
    store.save("p", "b", Position(2.0, 2.0))
    store.save("p", "a", Position(9.0, 9.0))
    assert store.load("p") == {"a": Position(9.0, 9.0), "b": Position(2.0, 2.0)}


def test_plans_are_isolated():
    store = PositionStore(MemoryStorage())
    store.save("p1", "a", Position(1.0, 1.0))
    assert store.load("p2") == {}


def test_corrupt_entry_reads_empty_and_is_replaced():
    storage = MemoryStorage({"planLayout_p": "{not json"})
    store = PositionStore(storage)
    assert store.load("p") == {}
    assert store.save("p", "a", Position(3.0, 4.0)) is True
    assert store.load("p") == {"a": Position(3.0, 4.0)}


def test_malformed_positions_are_dropped():
    raw = json.dumps({"a": {"x": 1, "y": 2}, "b": {"x": "oops", "y": 0}, "c": 5, "d": {"x": True, "y": 1}})
    store = PositionStore(MemoryStorage({"planLayout_p": raw}))
    assert store.load("p") == {"a": Position(1.0, 2.0)}


def test_non_object_payload_reads_empty():
    store = PositionStore(MemoryStorage({"planLayout_p": "[1, 2]"}))
    assert store.load("p") == {}


def test_failing_storage_never_raises():
    store = PositionStore(_BrokenStorage())
    assert store.load("p") == {}
    assert store.save("p", "a", Position(1.0, 1.0)) is False
    assert store.clear("p") is False


def test_remove_and_clear():
    store = PositionStore(MemoryStorage())
    store.save("p", "a", Position(1.0, 1.0))
    store.save("p", "b", Position(2.0, 2.0))
    assert store.remove("p", "a") is True
    assert store.load("p") == {"b": Position(2.0, 2.0)}
    assert store.clear("p") is True
    assert store.load("p") == {}


def test_json_file_storage(tmp_path):
    path = tmp_path / "layout.json"
    store = PositionStore(JsonFileStorage(path))
    store.save("p", "a", Position(10.0, 20.0))
    assert json.loads(path.read_text(encoding="utf-8")) == {"planLayout_p": json.dumps({"a": {"x": 10.0, "y": 20.0}})}
    assert PositionStore(JsonFileStorage(path)).load("p") == {"a": Position(10.0, 20.0)}


def test_json_file_storage_corrupt_file(tmp_path):
    path = tmp_path / "layout.json"
    path.write_text("garbage", encoding="utf-8")
    storage = JsonFileStorage(path)
    assert storage.get_item("planLayout_p") is None
    storage.set_item("k", "v")
    assert json.loads(path.read_text(encoding="utf-8")) == {"k": "v"}


def test_layout_mode_store():
    modes = LayoutModeStore(MemoryStorage())
    assert modes.load("p") == "graph"
    assert modes.save("p", "split") is True
    assert modes.load("p") == "split"
    with pytest.raises(ValueError):
        modes.save("p", "3d")


def test_layout_mode_store_ignores_unknown_stored_value():
    modes = LayoutModeStore(MemoryStorage({"planLayout_mode_p": "weird"}))
    assert modes.load("p") == "graph"
