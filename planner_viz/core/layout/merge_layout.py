from __future__ import annotations

from typing import Mapping

from planner_viz.core.config import DEFAULT_CONFIG, VizConfig
from planner_viz.core.edges.classify_edges import set_edge_visibility
from planner_viz.core.insights.graph_insights import derive_child_progress
from planner_viz.core.layout.layered_layout import compute_layout
from planner_viz.core.model import FlowEdge, FlowGraph, FlowNode, PlanNode, Position


def merge_positions(
    computed: Mapping[str, Position],
    saved: Mapping[str, Position],
) -> dict[str, Position]:
    """Saved positions win; nodes without a saved entry keep the computed one.

    Saved entries for ids not in `computed` are ignored.
    """
    return {nid: saved.get(nid, pos) for nid, pos in computed.items()}


def to_flow_nodes(
    nodes: list[PlanNode],
    positions: Mapping[str, Position],
) -> list[FlowNode]:
    progress = derive_child_progress(nodes)
    out: list[FlowNode] = []
    for n in nodes:
        child_count, completed = progress.get(n.id, (0, 0))
        out.append(
            FlowNode(
                id=n.id,
                type=n.node_type,
                position=positions.get(n.id, Position(0.0, 0.0)),
                data={
                    "label": n.title,
                    "node": n,
                    "child_count": child_count,
                    "completed_child_count": completed,
                },
            )
        )
    return out


def build_flow_graph(
    nodes: list[PlanNode],
    edges: list[FlowEdge],
    saved: Mapping[str, Position],
    *,
    config: VizConfig = DEFAULT_CONFIG,
    show_dependencies: bool = True,
) -> FlowGraph:
    """Layout, overlay saved positions, and apply edge visibility.

    The edge set is returned whole; with dependencies off the
    non-hierarchical edges are only flagged hidden.
    """
    computed = compute_layout(nodes, edges, config)
    positions = merge_positions(computed, saved)
    return FlowGraph(
        nodes=to_flow_nodes(nodes, positions),
        edges=set_edge_visibility(edges, show_dependencies),
    )
