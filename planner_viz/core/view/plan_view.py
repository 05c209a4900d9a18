"""One open plan view: fetch -> flatten -> classify -> layout -> annotate.

PlanView owns the state a UI would hold for a single plan (graph, selection,
viewport, transient messages) and drives the pipeline through a NodeService,
a PositionStore and a Scheduler. Nothing in here raises on backend or
storage failures; they are logged and surfaced through `messages`.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Any, Optional

from planner_viz.core.config import DEFAULT_CONFIG, VizConfig
from planner_viz.core.edges.classify_edges import classify_edges, set_edge_visibility
from planner_viz.core.errors import PlanValidationError
from planner_viz.core.flatten.flatten_tree import normalize_collection
from planner_viz.core.insights.graph_insights import Viewport, fit_viewport
from planner_viz.core.layout.merge_layout import build_flow_graph
from planner_viz.core.model import FlowEdge, FlowGraph, LodTier, PlanNode, Position
from planner_viz.core.render.node_renderers import RenderedNode, render_node
from planner_viz.core.service.node_service import NodeService
from planner_viz.core.store.position_store import PositionStore
from planner_viz.core.validate.validate_nodes import validate_nodes
from planner_viz.core.view.scheduler import ManualScheduler, Scheduler
from planner_viz.core.viewport.lod import ViewportController

logger = logging.getLogger(__name__)


class PlanView:
    def __init__(
        self,
        plan_id: str,
        service: NodeService,
        store: PositionStore,
        *,
        config: VizConfig = DEFAULT_CONFIG,
        scheduler: Optional[Scheduler] = None,
        viewport: Optional[ViewportController] = None,
    ) -> None:
        self.plan_id = plan_id
        self.service = service
        self.store = store
        self.config = config
        self.scheduler: Scheduler = scheduler or ManualScheduler()
        self.viewport = viewport or ViewportController(config)

        self.nodes: list[PlanNode] = []
        self.edges: list[FlowEdge] = []
        self.graph = FlowGraph(nodes=[], edges=[])
        self.validation_errors: list[PlanValidationError] = []
        self.messages: list[str] = []

        self.selected_id: Optional[str] = None
        self.detail_open = False

        # Drags made in this session; they survive a failed persistence write.
        self._dragged: dict[str, Position] = {}
        self._epoch = 0
        self._closed = False

    # fetch pipeline

    def begin_fetch(self) -> int:
        self._epoch += 1
        return self._epoch

    def complete_fetch(self, epoch: int, raw: Any) -> bool:
        """Apply a fetched node collection. Returns False if it was discarded."""
        if self._closed:
            logger.debug("view for %s is closed; dropping fetch %d", self.plan_id, epoch)
            return False
        if self.config.discard_stale_fetches and epoch < self._epoch:
            logger.debug(
                "discarding stale fetch %d for %s (latest is %d)", epoch, self.plan_id, self._epoch
            )
            return False

        flat = normalize_collection(raw if isinstance(raw, list) else [])
        nodes, errors = _validate_and_log(flat, self.plan_id)
        self.nodes = nodes
        self.validation_errors = errors
        self.edges = classify_edges(nodes)
        self._rebuild()

        if self.detail_open and self.selected_node is None:
            logger.info("selected node %s is gone; closing details", self.selected_id)
            self.close_details()
        return True

    def refresh(self) -> bool:
        """Fetch the node collection and rebuild the graph.

        A failed fetch keeps the previous graph and leaves a message.
        """
        if self._closed:
            return False
        epoch = self.begin_fetch()
        try:
            raw = self.service.get_nodes(self.plan_id)
        except Exception as e:
            logger.error("failed to fetch nodes for %s: %s", self.plan_id, e)
            self.messages.append(f"Failed to load plan: {e}")
            return False
        return self.complete_fetch(epoch, raw)

    def _rebuild(self) -> None:
        saved = self.store.load(self.plan_id)
        saved.update(self._dragged)
        flow = build_flow_graph(
            self.nodes,
            self.edges,
            saved,
            config=self.config,
            show_dependencies=self.viewport.state.show_dependencies,
        )
        self.graph = FlowGraph(nodes=self.viewport.annotate(flow.nodes), edges=flow.edges)

    def _reannotate(self) -> None:
        self.graph = FlowGraph(nodes=self.viewport.annotate(self.graph.nodes), edges=self.graph.edges)

    def position_of(self, node_id: str) -> Optional[Position]:
        for n in self.graph.nodes:
            if n.id == node_id:
                return n.position
        return None

    # drag

    def drag(self, node_id: str, position: Position) -> bool:
        """Move a node and persist the override.

        Returns whether the write reached storage; the in-memory move
        happens either way.
        """
        if self.position_of(node_id) is None:
            raise ValueError(f"node not in view: {node_id}")
        self._dragged[node_id] = position
        self.graph = FlowGraph(
            nodes=[replace(n, position=position) if n.id == node_id else n for n in self.graph.nodes],
            edges=self.graph.edges,
        )
        return self.store.save(self.plan_id, node_id, position)

    def reset_layout(self) -> bool:
        self._dragged.clear()
        ok = self.store.clear(self.plan_id)
        self._rebuild()
        return ok

    # mutations

    def _schedule_refetch(self) -> None:
        self.scheduler.call_later(self.config.refetch_delay_seconds, self.refresh)

    def _mutation_failed(self, action: str, e: Exception) -> None:
        logger.error("%s failed for plan %s: %s", action, self.plan_id, e)
        self.messages.append(f"Failed to {action}: {e}")

    def create_node(self, fields: dict[str, Any]) -> Optional[str]:
        try:
            node_id = self.service.create_node(self.plan_id, fields)
        except Exception as e:
            self._mutation_failed("create node", e)
            return None
        self._schedule_refetch()
        return node_id

    def update_node(self, node_id: str, fields: dict[str, Any]) -> bool:
        try:
            self.service.update_node(self.plan_id, node_id, fields)
        except Exception as e:
            self._mutation_failed("update node", e)
            return False
        self._schedule_refetch()
        return True

    def update_status(self, node_id: str, status: str) -> bool:
        try:
            self.service.update_node_status(self.plan_id, node_id, status)
        except Exception as e:
            self._mutation_failed("update status", e)
            return False
        self._schedule_refetch()
        return True

    def delete_node(self, node_id: str) -> bool:
        try:
            self.service.delete_node(self.plan_id, node_id)
        except Exception as e:
            self._mutation_failed("delete node", e)
            return False
        if self.selected_id == node_id:
            self.close_details()
        self._dragged.pop(node_id, None)
        self._schedule_refetch()
        return True

    # selection

    @property
    def selected_node(self) -> Optional[PlanNode]:
        if self.selected_id is None:
            return None
        for n in self.nodes:
            if n.id == self.selected_id:
                return n
        return None

    def select_node(self, node_id: str) -> bool:
        if not any(n.id == node_id for n in self.nodes):
            self.close_details()
            return False
        self.selected_id = node_id
        self.detail_open = True
        return True

    def close_details(self) -> None:
        self.selected_id = None
        self.detail_open = False

    # viewport

    def set_zoom(self, zoom: float) -> LodTier:
        tier = self.viewport.set_zoom(zoom)
        self._reannotate()
        return tier

    def set_layer(self, layer: str) -> None:
        self.viewport.set_layer(layer)
        self._reannotate()

    def toggle_labels(self) -> bool:
        shown = self.viewport.toggle_labels()
        self._reannotate()
        return shown

    def toggle_progress(self) -> bool:
        shown = self.viewport.toggle_progress()
        self._reannotate()
        return shown

    def toggle_dependencies(self) -> bool:
        shown = self.viewport.toggle_dependencies()
        edges = set_edge_visibility(self.graph.edges, shown)
        self.graph = FlowGraph(nodes=self.viewport.annotate(self.graph.nodes), edges=edges)
        return shown

    def fit_to_view(self, width: float, height: float) -> Viewport:
        vp = fit_viewport(
            {n.id: n.position for n in self.graph.nodes},
            width,
            height,
            node_types={n.id: n.type for n in self.graph.nodes},
            config=self.config,
        )
        self.set_zoom(vp.zoom)
        return vp

    def render(self, today: Optional[date] = None) -> list[RenderedNode]:
        return [render_node(n, today=today, config=self.config) for n in self.graph.nodes]

    def pop_messages(self) -> list[str]:
        out, self.messages = self.messages, []
        return out

    def close(self) -> None:
        """Unmount: viewport back to defaults, later fetches ignored."""
        self._closed = True
        self.viewport.reset()
        self.close_details()


def _validate_and_log(
    flat: list[dict[str, Any]], plan_id: str
) -> tuple[list[PlanNode], list[PlanValidationError]]:
    nodes, errors = validate_nodes(flat, plan_id=plan_id)
    for e in errors:
        logger.debug("plan %s: %s", plan_id, e)
    return nodes, errors
