from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Optional

from planner_viz.core.model import EdgeType, FlowEdge, PlanNode

logger = logging.getLogger(__name__)


# Edge id prefixes. The id is "<prefix>-<source>-<target>", so regenerating
# edges for the same node set always yields the same ids.
EDGE_ID_PREFIX: dict[str, str] = {
    "hierarchical": "hier",
    "dependency": "dep",
    "sequence": "seq",
    "reference": "ref",
}

DEPENDENCY_LABEL = "Depends On"
REFERENCE_LABEL = "References"

EDGE_STYLES: dict[str, dict[str, Any]] = {
    "hierarchical": {"stroke": "#9ca3af", "strokeWidth": 2, "strokeDasharray": "0"},
    "dependency": {"stroke": "#3b82f6", "strokeWidth": 2, "strokeDasharray": "5,5"},
    "reference": {"stroke": "#10b981", "strokeWidth": 1, "strokeDasharray": "2,4"},
    "sequence": {"stroke": "#f59e0b", "strokeWidth": 2, "strokeDasharray": "0"},
}


def edge_id(edge_type: EdgeType, source: str, target: str) -> str:
    return f"{EDGE_ID_PREFIX[edge_type]}-{source}-{target}"


def edge_style(edge_type: str) -> dict[str, Any]:
    return dict(EDGE_STYLES.get(edge_type, EDGE_STYLES["hierarchical"]))


def classify_edges(nodes: list[PlanNode]) -> list[FlowEdge]:
    """Derive the typed edge set for a flat node list.

    Emitted in order: hierarchical, dependency, sequence, reference.
    Only hierarchical edges come from stored data; the other three are
    presentation heuristics and are marked `heuristic=True`.
    """

    by_id: dict[str, PlanNode] = {n.id: n for n in nodes}
    edges: list[FlowEdge] = []
    seen: set[str] = set()

    def emit(edge: FlowEdge) -> None:
        if edge.id in seen:
            return
        seen.add(edge.id)
        edges.append(edge)

    # 1. Hierarchical: parent -> child, only when the parent resolves.
    for n in nodes:
        if n.parent_id is None:
            continue
        if n.parent_id == n.id or n.parent_id not in by_id:
            logger.debug("parent %s not found for node %s; treating as top-level", n.parent_id, n.id)
            continue
        emit(
            FlowEdge(
                id=edge_id("hierarchical", n.parent_id, n.id),
                source=n.parent_id,
                target=n.id,
                type="hierarchical",
                animated=n.status == "in_progress",
            )
        )

    # 2. Dependency: milestone depends on the first sibling task.
    for m in nodes:
        if m.node_type != "milestone":
            continue
        first_task = next(
            (t for t in nodes if t.node_type == "task" and t.parent_id == m.parent_id),
            None,
        )
        if first_task is None:
            continue
        emit(
            FlowEdge(
                id=edge_id("dependency", first_task.id, m.id),
                source=first_task.id,
                target=m.id,
                type="dependency",
                label=DEPENDENCY_LABEL,
                animated=True,
                heuristic=True,
            )
        )

    # 3. Sequence: adjacent tasks in order_index order that share a parent.
    # sorted() is stable, so equal order_index keeps flat order.
    tasks = sorted((n for n in nodes if n.node_type == "task"), key=lambda t: t.order_index)
    for prev, cur in zip(tasks, tasks[1:]):
        if prev.parent_id != cur.parent_id:
            continue
        emit(
            FlowEdge(
                id=edge_id("sequence", prev.id, cur.id),
                source=prev.id,
                target=cur.id,
                type="sequence",
                heuristic=True,
            )
        )

    # 4. Reference: first -> last, unless one is an ancestor of the other.
    if len(nodes) >= 2:
        first, last = nodes[0], nodes[-1]
        if first.id != last.id and not hierarchically_connected(first.id, last.id, by_id):
            emit(
                FlowEdge(
                    id=edge_id("reference", first.id, last.id),
                    source=first.id,
                    target=last.id,
                    type="reference",
                    label=REFERENCE_LABEL,
                    heuristic=True,
                )
            )

    return edges


def hierarchically_connected(a: str, b: str, by_id: dict[str, PlanNode]) -> bool:
    return _is_ancestor(a, b, by_id) or _is_ancestor(b, a, by_id)


def _is_ancestor(ancestor: str, node_id: str, by_id: dict[str, PlanNode]) -> bool:
    visited: set[str] = set()
    cur: Optional[PlanNode] = by_id.get(node_id)
    while cur is not None and cur.parent_id is not None:
        if cur.parent_id in visited:
            return False
        visited.add(cur.parent_id)
        if cur.parent_id == ancestor:
            return True
        cur = by_id.get(cur.parent_id)
    return False


def set_edge_visibility(edges: list[FlowEdge], show_dependencies: bool) -> list[FlowEdge]:
    """Hide (never drop) every non-hierarchical edge when dependencies are off."""
    return [
        replace(e, hidden=(not show_dependencies and e.type != "hierarchical"))
        for e in edges
    ]
