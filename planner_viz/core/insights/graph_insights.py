from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from planner_viz.core.config import DEFAULT_CONFIG, VizConfig
from planner_viz.core.model import NODE_STATUSES, NODE_TYPES, PlanNode, Position


MIN_FIT_ZOOM = 0.3
MAX_FIT_ZOOM = 1.5
FIT_PADDING = 100.0


@dataclass(frozen=True)
class Viewport:
    x: float
    y: float
    zoom: float


def calculate_node_stats(nodes: list[PlanNode]) -> dict[str, Any]:
    by_status = {s: 0 for s in NODE_STATUSES}
    by_type = {t: 0 for t in NODE_TYPES}
    for n in nodes:
        by_status[n.status] += 1
        by_type[n.node_type] += 1

    total = len(nodes)
    progress = round(by_status["completed"] / total * 100) if total else 0
    return {
        "total": total,
        "by_status": by_status,
        "by_type": by_type,
        "progress": progress,
    }


def derive_child_progress(nodes: list[PlanNode]) -> dict[str, tuple[int, int]]:
    """node id -> (child_count, completed_child_count) over direct children."""
    ids = {n.id for n in nodes}
    out: dict[str, tuple[int, int]] = {n.id: (0, 0) for n in nodes}
    for n in nodes:
        if n.parent_id is None or n.parent_id not in ids or n.parent_id == n.id:
            continue
        total, done = out[n.parent_id]
        out[n.parent_id] = (total + 1, done + (1 if n.status == "completed" else 0))
    return out


def node_path(node_id: str, nodes: list[PlanNode]) -> list[str]:
    """Breadcrumb of titles from the top-level ancestor down to `node_id`.

    Returns [] for an unknown id. A parent cycle stops the walk.
    """
    by_id = {n.id: n for n in nodes}
    path: list[str] = []
    seen: set[str] = set()
    cur = by_id.get(node_id)
    while cur is not None and cur.id not in seen:
        seen.add(cur.id)
        path.insert(0, cur.title or cur.id)
        cur = by_id.get(cur.parent_id) if cur.parent_id else None
    return path


def fit_viewport(
    positions: Mapping[str, Position],
    viewport_width: float,
    viewport_height: float,
    *,
    node_types: Mapping[str, str] | None = None,
    config: VizConfig = DEFAULT_CONFIG,
) -> Viewport:
    """Viewport that fits every box, zoom clamped to [0.3, 1.5]."""
    if not positions:
        return Viewport(x=0.0, y=0.0, zoom=1.0)

    types = node_types or {}
    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")
    for nid, pos in positions.items():
        w, h = config.node_size(types.get(nid, "default"))
        min_x = min(min_x, pos.x)
        min_y = min(min_y, pos.y)
        max_x = max(max_x, pos.x + w)
        max_y = max(max_y, pos.y + h)

    center_x = (min_x + max_x) / 2
    center_y = (min_y + max_y) / 2
    zoom_x = viewport_width / (max_x - min_x + FIT_PADDING)
    zoom_y = viewport_height / (max_y - min_y + FIT_PADDING)
    zoom = min(max(MIN_FIT_ZOOM, min(zoom_x, zoom_y)), MAX_FIT_ZOOM)

    return Viewport(
        x=viewport_width / 2 - center_x * zoom,
        y=viewport_height / 2 - center_y * zoom,
        zoom=zoom,
    )


def summarize_stats(stats: dict[str, Any], types: Iterable[str] = NODE_TYPES) -> str:
    parts = [f"{t}={stats['by_type'].get(t, 0)}" for t in types]
    status_parts = [f"{s}={stats['by_status'].get(s, 0)}" for s in NODE_STATUSES]
    return (
        f"OK: {stats['total']} nodes ("
        + ", ".join(parts)
        + ")\nStatus: "
        + ", ".join(status_parts)
        + f"\nProgress: {stats['progress']}%"
    )
