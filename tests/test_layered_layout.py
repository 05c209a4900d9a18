import networkx as nx

from planner_viz.core.config import VizConfig
from planner_viz.core.edges.classify_edges import classify_edges
from planner_viz.core.layout.layered_layout import (
    build_digraph,
    compute_layout,
    count_crossings,
    remove_cycles,
)
from planner_viz.core.layout.merge_layout import build_flow_graph, merge_positions
from planner_viz.core.model import FlowEdge, PlanNode, Position


def _node(nid, node_type="task", parent=None, order=0):
    return PlanNode(id=nid, plan_id="p", node_type=node_type, status="not_started", title=nid,
                    parent_id=parent, order_index=order)


def _scenario():
    return [
        _node("A", "root"),
        _node("B", "phase", parent="A"),
        _node("C", "task", parent="B", order=1),
        _node("D", "task", parent="B", order=2),
        _node("M", "milestone", parent="B"),
    ]


def _edge(src, tgt):
    return FlowEdge(id=f"hier-{src}-{tgt}", source=src, target=tgt, type="hierarchical")


def test_layout_is_deterministic():
    first = compute_layout(_scenario(), classify_edges(_scenario()))
    second = compute_layout(_scenario(), classify_edges(_scenario()))
    assert first == second
    assert set(first) == {"A", "B", "C", "D", "M"}


def test_layout_ranks_top_to_bottom():
    pos = compute_layout(_scenario(), classify_edges(_scenario()))
    assert pos["A"].y == 0
    assert pos["A"].y < pos["B"].y < pos["C"].y < pos["D"].y
    assert pos["M"].y > pos["B"].y
    assert min(p.x for p in pos.values()) == 0


def test_layout_left_to_right():
    pos = compute_layout(_scenario(), classify_edges(_scenario()), VizConfig(direction="LR"))
    assert pos["A"].x == 0
    assert pos["A"].x < pos["B"].x < pos["C"].x


def test_same_layer_nodes_do_not_overlap():
    nodes = [
        _node("r", "root"),
        _node("p1", "phase", parent="r"),
        _node("p2", "phase", parent="r"),
    ]
    pos = compute_layout(nodes, classify_edges(nodes))
    assert pos["p1"].y == pos["p2"].y
    # phase width 280 plus node spacing 80
    assert abs(pos["p1"].x - pos["p2"].x) >= 360 - 0.01


def test_layout_terminates_on_cycle():
    nodes = [_node("a"), _node("b"), _node("c")]
    edges = [_edge("a", "b"), _edge("b", "c"), _edge("c", "a")]
    pos = compute_layout(nodes, edges)
    assert set(pos) == {"a", "b", "c"}
    assert len({(p.x, p.y) for p in pos.values()}) == 3


def test_remove_cycles_gives_dag():
    nodes = [_node("a"), _node("b")]
    g = build_digraph(nodes, [_edge("a", "b"), _edge("b", "a")])
    dag, reversed_edges = remove_cycles(g, {"a": 0, "b": 1})
    assert nx.is_directed_acyclic_graph(dag)
    assert len(reversed_edges) == 1


def test_build_digraph_ignores_unknown_and_self_edges():
    g = build_digraph([_node("a"), _node("b")], [_edge("a", "a"), _edge("a", "ghost"), _edge("a", "b")])
    assert list(g.edges()) == [("a", "b")]


def test_empty_layout():
    assert compute_layout([], []) == {}


def test_count_crossings():
    g = nx.DiGraph([("a", "d"), ("b", "c")])
    assert count_crossings([["a", "b"], ["c", "d"]], g) == 1
    assert count_crossings([["a", "b"], ["d", "c"]], g) == 0


def test_merge_positions_override_is_idempotent():
    computed = compute_layout(_scenario(), classify_edges(_scenario()))
    saved = {"C": Position(500.0, 200.0), "gone": Position(1.0, 1.0)}
    once = merge_positions(computed, saved)
    twice = merge_positions(once, saved)
    assert once == twice
    assert once["C"] == Position(500.0, 200.0)
    assert "gone" not in once
    for nid in ("A", "B", "D", "M"):
        assert once[nid] == computed[nid]


def test_build_flow_graph():
    nodes = _scenario()
    graph = build_flow_graph(nodes, classify_edges(nodes), {"C": Position(500.0, 200.0)},
                             show_dependencies=False)
    by_id = {n.id: n for n in graph.nodes}
    assert by_id["C"].position == Position(500.0, 200.0)
    assert by_id["B"].type == "phase"
    assert by_id["B"].data["child_count"] == 3
    assert by_id["B"].data["node"] is nodes[1]
    assert [e.hidden for e in graph.edges] == [e.type != "hierarchical" for e in graph.edges]
