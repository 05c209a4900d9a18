from __future__ import annotations

import logging
from dataclasses import dataclass, field

import networkx as nx

from planner_viz.core.config import DEFAULT_CONFIG, VizConfig
from planner_viz.core.model import FlowEdge, PlanNode, Position

logger = logging.getLogger(__name__)


DUMMY_PREFIX = "__dummy_"
# Cross-axis size given to dummy nodes that route long edges.
DUMMY_SIZE = 1.0
COORDINATE_PASSES = 4


@dataclass
class LayeredGraph:
    """A cycle-free graph where every edge connects adjacent layers."""

    graph: nx.DiGraph
    layers: dict[str, int]
    layer_count: int
    rank: dict[str, int]  # stable tie-break key: input order, dummies last
    dummies: set[str] = field(default_factory=set)
    reversed_edges: set[tuple[str, str]] = field(default_factory=set)


def build_digraph(nodes: list[PlanNode], edges: list[FlowEdge]) -> nx.DiGraph:
    """Directed graph over the node set, in input order.

    Edges to unknown nodes and self-loops are ignored; parallel edges of
    different types collapse into one.
    """
    g: nx.DiGraph = nx.DiGraph()
    for n in nodes:
        g.add_node(n.id, node_type=n.node_type)
    for e in edges:
        if e.source == e.target:
            continue
        if e.source not in g or e.target not in g:
            logger.debug("layout ignores edge %s with unknown endpoint", e.id)
            continue
        g.add_edge(e.source, e.target)
    return g


def greedy_fas_ordering(graph: nx.DiGraph, rank: dict[str, int]) -> list[str]:
    """Node ordering that keeps most edges pointing forward (Eades-Lin-Smyth).

    Sinks go to the tail, sources to the head; when only cycles remain the
    node with the largest out-in surplus is taken. Every candidate scan walks
    nodes in `rank` order, so the result never depends on set iteration.
    """
    active: list[str] = sorted(graph.nodes, key=rank.__getitem__)
    out_deg: dict[str, int] = {n: graph.out_degree(n) for n in active}
    in_deg: dict[str, int] = {n: graph.in_degree(n) for n in active}

    head: list[str] = []
    tail: list[str] = []

    def drop(n: str) -> None:
        active.remove(n)
        for succ in graph.successors(n):
            if succ in in_deg:
                in_deg[succ] -= 1
        for pred in graph.predecessors(n):
            if pred in out_deg:
                out_deg[pred] -= 1
        del in_deg[n]
        del out_deg[n]

    while active:
        changed = True
        while changed:
            changed = False
            for n in [n for n in active if out_deg[n] == 0]:
                drop(n)
                tail.append(n)
                changed = True
            for n in [n for n in active if in_deg[n] == 0]:
                drop(n)
                head.append(n)
                changed = True

        if active:
            best = max(active, key=lambda n: out_deg[n] - in_deg[n])
            drop(best)
            head.append(best)

    tail.reverse()
    return head + tail


def remove_cycles(graph: nx.DiGraph, rank: dict[str, int]) -> tuple[nx.DiGraph, set[tuple[str, str]]]:
    """Copy of `graph` with back-edges reversed so the result is acyclic."""
    dag: nx.DiGraph = nx.DiGraph()
    dag.add_nodes_from(graph.nodes(data=True))
    if graph.number_of_nodes() == 0:
        return dag, set()

    position = {n: i for i, n in enumerate(greedy_fas_ordering(graph, rank))}
    reversed_edges: set[tuple[str, str]] = set()
    for src, tgt in graph.edges():
        if position[src] > position[tgt]:
            reversed_edges.add((src, tgt))
            dag.add_edge(tgt, src)
        else:
            dag.add_edge(src, tgt)

    if reversed_edges:
        logger.debug("layout reversed %d edge(s) to break cycles", len(reversed_edges))
    return dag, reversed_edges


def assign_layers(dag: nx.DiGraph, rank: dict[str, int]) -> dict[str, int]:
    """Longest-path layering: layer[v] = 1 + max(layer[u]) over predecessors."""
    layers: dict[str, int] = {}
    for n in nx.lexicographical_topological_sort(dag, key=rank.__getitem__):
        preds = list(dag.predecessors(n))
        layers[n] = (max(layers[p] for p in preds) + 1) if preds else 0
    return layers


def build_layered_graph(nodes: list[PlanNode], edges: list[FlowEdge]) -> LayeredGraph:
    rank: dict[str, int] = {n.id: i for i, n in enumerate(nodes)}
    graph = build_digraph(nodes, edges)
    dag, reversed_edges = remove_cycles(graph, rank)
    layers = assign_layers(dag, rank)

    # Replace every edge spanning more than one layer by a chain of dummies.
    g: nx.DiGraph = nx.DiGraph()
    g.add_nodes_from(dag.nodes(data=True))
    dummies: set[str] = set()
    counter = 0
    for src, tgt in list(dag.edges()):
        span = layers[tgt] - layers[src]
        if span <= 1:
            g.add_edge(src, tgt)
            continue
        prev = src
        for step in range(1, span):
            dummy = f"{DUMMY_PREFIX}{counter}"
            while dummy in rank:
                counter += 1
                dummy = f"{DUMMY_PREFIX}{counter}"
            counter += 1
            g.add_node(dummy)
            dummies.add(dummy)
            layers[dummy] = layers[src] + step
            rank[dummy] = len(rank)
            g.add_edge(prev, dummy)
            prev = dummy
        g.add_edge(prev, tgt)

    layer_count = (max(layers.values()) + 1) if layers else 0
    return LayeredGraph(
        graph=g,
        layers=layers,
        layer_count=layer_count,
        rank=rank,
        dummies=dummies,
        reversed_edges=reversed_edges,
    )


def count_crossings(ordering: list[list[str]], graph: nx.DiGraph) -> int:
    """Edge crossings between consecutive layers (pairwise inversion count)."""
    total = 0
    for upper, lower in zip(ordering, ordering[1:]):
        lower_pos = {n: i for i, n in enumerate(lower)}
        segments: list[tuple[int, int]] = []
        for i, n in enumerate(upper):
            for succ in graph.successors(n):
                if succ in lower_pos:
                    segments.append((i, lower_pos[succ]))
        for a in range(len(segments)):
            for b in range(a + 1, len(segments)):
                (s1, t1), (s2, t2) = segments[a], segments[b]
                if (s1 - s2) * (t1 - t2) < 0:
                    total += 1
    return total


def _barycenter(node: str, neighbors: list[str], pos: dict[str, int], fallback: float) -> float:
    placed = [pos[nb] for nb in neighbors if nb in pos]
    if not placed:
        return fallback
    return sum(placed) / len(placed)


def minimise_crossings(lg: LayeredGraph, max_passes: int) -> list[list[str]]:
    """Barycenter ordering with alternating down/up sweeps; returns the best seen."""
    ordering: list[list[str]] = [[] for _ in range(lg.layer_count)]
    for n in sorted(lg.layers, key=lg.rank.__getitem__):
        ordering[lg.layers[n]].append(n)

    best = [list(layer) for layer in ordering]
    best_crossings = count_crossings(ordering, lg.graph)

    for _ in range(max(0, max_passes)):
        if best_crossings == 0:
            break

        for li in range(1, lg.layer_count):
            prev_pos = {n: i for i, n in enumerate(ordering[li - 1])}
            cur_pos = {n: i for i, n in enumerate(ordering[li])}
            ordering[li].sort(
                key=lambda n: _barycenter(n, list(lg.graph.predecessors(n)), prev_pos, float(cur_pos[n]))
            )

        for li in range(lg.layer_count - 2, -1, -1):
            next_pos = {n: i for i, n in enumerate(ordering[li + 1])}
            cur_pos = {n: i for i, n in enumerate(ordering[li])}
            ordering[li].sort(
                key=lambda n: _barycenter(n, list(lg.graph.successors(n)), next_pos, float(cur_pos[n]))
            )

        crossings = count_crossings(ordering, lg.graph)
        if crossings >= best_crossings:
            break
        best_crossings = crossings
        best = [list(layer) for layer in ordering]

    return best


def assign_coordinates(
    ordering: list[list[str]],
    lg: LayeredGraph,
    sizes: dict[str, tuple[float, float]],
    config: VizConfig,
) -> dict[str, tuple[float, float]]:
    """Node centers as (cross, main) coordinates.

    `sizes` maps id -> (cross_size, main_size) already oriented for the
    layout direction.
    """

    spacing = config.node_spacing

    # Main axis: each layer sits below the tallest node of the previous one.
    layer_main: list[float] = []
    offset = 0.0
    for layer in ordering:
        depth = max((sizes[n][1] for n in layer), default=0.0)
        layer_main.append(offset + depth / 2)
        offset += depth + config.rank_spacing

    # Cross axis: pack each layer, then center all layers on a common axis.
    cross: dict[str, float] = {}
    widths: list[float] = []
    for layer in ordering:
        x = 0.0
        for n in layer:
            w = sizes[n][0]
            cross[n] = x + w / 2
            x += w + spacing
        widths.append(max(0.0, x - spacing))
    axis = max(widths, default=0.0) / 2
    for layer, width in zip(ordering, widths):
        shift = axis - width / 2
        for n in layer:
            cross[n] += shift

    # Pull nodes toward the mean center of their neighbours in the adjacent
    # layer, keeping layer order and minimum spacing.
    for p in range(COORDINATE_PASSES):
        downward = p % 2 == 0
        layer_indexes = range(1, len(ordering)) if downward else range(len(ordering) - 2, -1, -1)
        for li in layer_indexes:
            layer = ordering[li]
            desired: list[float] = []
            for n in layer:
                nbs = list(lg.graph.predecessors(n)) if downward else list(lg.graph.successors(n))
                if nbs:
                    desired.append(sum(cross[nb] for nb in nbs) / len(nbs))
                else:
                    desired.append(cross[n])

            placed: list[float] = []
            for i, n in enumerate(layer):
                x = desired[i]
                if i > 0:
                    prev = layer[i - 1]
                    min_x = placed[-1] + sizes[prev][0] / 2 + spacing + sizes[n][0] / 2
                    x = max(x, min_x)
                placed.append(x)

            # Shifting the whole layer keeps spacing; center the residual.
            drift = sum(d - q for d, q in zip(desired, placed)) / len(layer) if layer else 0.0
            for n, q in zip(layer, placed):
                cross[n] = q + drift

    return {n: (cross[n], layer_main[lg.layers[n]]) for layer in ordering for n in layer}


def compute_layout(
    nodes: list[PlanNode],
    edges: list[FlowEdge],
    config: VizConfig = DEFAULT_CONFIG,
) -> dict[str, Position]:
    """Automatic layered layout.

    Returns the top-left corner of every node's box, keyed by node id.
    Deterministic: identical inputs give identical positions.
    Terminates on cyclic edge sets (back-edges are reversed first).
    """

    if not nodes:
        return {}

    lg = build_layered_graph(nodes, edges)
    ordering = minimise_crossings(lg, config.max_crossing_passes)

    node_type = {n.id: n.node_type for n in nodes}
    horizontal = config.direction == "LR"
    sizes: dict[str, tuple[float, float]] = {}
    for n in lg.layers:
        if n in lg.dummies:
            sizes[n] = (DUMMY_SIZE, DUMMY_SIZE)
            continue
        w, h = config.node_size(node_type[n])
        sizes[n] = (h, w) if horizontal else (w, h)

    centers = assign_coordinates(ordering, lg, sizes, config)

    # Normalise so the top-left-most box starts at the origin.
    min_cross = min(centers[n][0] - sizes[n][0] / 2 for n in node_type)
    min_main = min(centers[n][1] - sizes[n][1] / 2 for n in node_type)

    out: dict[str, Position] = {}
    for n in nodes:
        c, m = centers[n.id]
        left = round(c - sizes[n.id][0] / 2 - min_cross, 2)
        top = round(m - sizes[n.id][1] / 2 - min_main, 2)
        out[n.id] = Position(x=top, y=left) if horizontal else Position(x=left, y=top)
    return out
