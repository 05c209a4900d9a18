from __future__ import annotations

import json
import logging
import math
from pathlib import Path
from typing import Any, Optional, Protocol

from planner_viz.core.model import Position

logger = logging.getLogger(__name__)


KEY_PREFIX = "planLayout_"
MODE_KEY_PREFIX = "planLayout_mode_"
UNKNOWN_PLAN = "unknown"

LAYOUT_MODES: tuple[str, ...] = ("graph", "tree", "split")
DEFAULT_LAYOUT_MODE = "graph"


class KeyValueStorage(Protocol):
    """localStorage-shaped string storage."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage:
    """All keys in one JSON object on disk.

    An unreadable file reads as empty; the next write replaces it.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("storage file %s is unreadable, treating as empty: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.error("storage file %s does not hold an object, treating as empty", self.path)
            return {}
        return {k: v for k, v in data.items() if isinstance(k, str) and isinstance(v, str)}

    def _write_all(self, items: dict[str, str]) -> None:
        if str(self.path.parent) not in (".", ""):
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(items, indent=2, sort_keys=True) + "\n", encoding="utf-8")

    def get_item(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read_all()
        items[key] = value
        self._write_all(items)

    def remove_item(self, key: str) -> None:
        items = self._read_all()
        if key in items:
            del items[key]
            self._write_all(items)


def storage_key(plan_id: Optional[str]) -> str:
    return f"{KEY_PREFIX}{plan_id or UNKNOWN_PLAN}"


def _coerce_position(v: Any) -> Optional[Position]:
    if not isinstance(v, dict):
        return None
    x, y = v.get("x"), v.get("y")
    for c in (x, y):
        if isinstance(c, bool) or not isinstance(c, (int, float)) or not math.isfinite(c):
            return None
    return Position(x=float(x), y=float(y))


class PositionStore:
    """Per-plan map of manually placed node positions.

    Reads never raise; writes log and swallow failures and report them by
    returning False.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def load(self, plan_id: Optional[str]) -> dict[str, Position]:
        key = storage_key(plan_id)
        try:
            stored = self.storage.get_item(key)
        except Exception as e:
            logger.error("failed to read stored positions %s: %s", key, e)
            return {}
        if not stored:
            return {}

        try:
            raw = json.loads(stored)
        except ValueError as e:
            logger.error("failed to parse stored positions %s: %s", key, e)
            return {}
        if not isinstance(raw, dict):
            logger.error("stored positions %s is not an object; ignoring", key)
            return {}

        out: dict[str, Position] = {}
        for node_id, value in raw.items():
            pos = _coerce_position(value)
            if pos is None:
                logger.warning("dropping malformed stored position %s[%s]: %r", key, node_id, value)
                continue
            out[str(node_id)] = pos
        return out

    def save(self, plan_id: Optional[str], node_id: str, position: Position) -> bool:
        positions = self.load(plan_id)
        positions[node_id] = position
        return self._write(plan_id, positions)

    def remove(self, plan_id: Optional[str], node_id: str) -> bool:
        positions = self.load(plan_id)
        if node_id not in positions:
            return True
        del positions[node_id]
        return self._write(plan_id, positions)

    def clear(self, plan_id: Optional[str]) -> bool:
        key = storage_key(plan_id)
        try:
            self.storage.remove_item(key)
        except Exception as e:
            logger.error("failed to clear stored positions %s: %s", key, e)
            return False
        return True

    def _write(self, plan_id: Optional[str], positions: dict[str, Position]) -> bool:
        key = storage_key(plan_id)
        payload = json.dumps({nid: p.to_dict() for nid, p in positions.items()})
        try:
            self.storage.set_item(key, payload)
        except Exception as e:
            logger.error("failed to persist positions %s: %s", key, e)
            return False
        return True


class LayoutModeStore:
    """Preferred view mode (graph|tree|split) per plan."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self.storage = storage

    def load(self, plan_id: Optional[str]) -> str:
        key = f"{MODE_KEY_PREFIX}{plan_id or UNKNOWN_PLAN}"
        try:
            value = self.storage.get_item(key)
        except Exception as e:
            logger.error("failed to read layout mode %s: %s", key, e)
            return DEFAULT_LAYOUT_MODE
        return value if value in LAYOUT_MODES else DEFAULT_LAYOUT_MODE

    def save(self, plan_id: Optional[str], mode: str) -> bool:
        if mode not in LAYOUT_MODES:
            raise ValueError(f"unknown layout mode: {mode} (choose one of: {', '.join(LAYOUT_MODES)})")
        key = f"{MODE_KEY_PREFIX}{plan_id or UNKNOWN_PLAN}"
        try:
            self.storage.set_item(key, mode)
        except Exception as e:
            logger.error("failed to persist layout mode %s: %s", key, e)
            return False
        return True
