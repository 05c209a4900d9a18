"""Node renderer contracts.

A renderer turns a FlowNode into a RenderedNode: the set of things a
presentation layer should show for that node at the current LOD tier and
information layer. Nothing here draws; it only decides *what* is shown.

Fields the plan data does not back (assignees, risks, progress without
children) are None, never invented.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Optional

from planner_viz.core.config import DEFAULT_CONFIG, VizConfig
from planner_viz.core.model import FlowNode, LodTier, PlanNode
from planner_viz.core.viewport.lod import RenderHints, hints_from_data

logger = logging.getLogger(__name__)


STATUS_SWATCHES: dict[str, str] = {
    "completed": "#10b981",
    "in_progress": "#3b82f6",
    "blocked": "#ef4444",
    "not_started": "#9ca3af",
}

NODE_TYPE_LABELS: dict[str, str] = {
    "root": "Root",
    "phase": "Phase",
    "task": "Task",
    "milestone": "Milestone",
}

DUE_SOON_DAYS = 3


@dataclass(frozen=True)
class RenderedNode:
    id: str
    type: str
    tier: LodTier
    swatch: str
    title: Optional[str] = None
    progress: Optional[int] = None
    fields: dict[str, Any] = field(default_factory=dict)


Renderer = Callable[[FlowNode, PlanNode, RenderHints, date], RenderedNode]


def status_label(status: str) -> str:
    return " ".join(w.capitalize() for w in status.split("_"))


def node_type_label(node_type: str) -> str:
    return NODE_TYPE_LABELS.get(node_type, "Node")


def due_date_status(due_date: Optional[str], today: date) -> str:
    """overdue | due_soon | on_track | none"""
    if not due_date:
        return "none"
    try:
        due = datetime.fromisoformat(due_date.replace("Z", "+00:00")).date()
    except ValueError:
        logger.debug("unparseable due_date %r", due_date)
        return "none"
    days = (due - today).days
    if days < 0:
        return "overdue"
    if days <= DUE_SOON_DAYS:
        return "due_soon"
    return "on_track"


def child_progress(data: dict[str, Any]) -> Optional[int]:
    total = data.get("child_count") or 0
    done = data.get("completed_child_count") or 0
    if total <= 0:
        return None
    return round(done / total * 100)


def _layer_fields(node: PlanNode, data: dict[str, Any], hints: RenderHints, today: date) -> dict[str, Any]:
    layer = hints.active_layer
    if layer == "overview":
        out: dict[str, Any] = {
            "comment_count": node.comment_count or 0,
            "artifact_count": node.artifact_count or 0,
        }
        if hints.show_labels and node.description:
            out["description"] = node.description
        return out
    if layer == "progress":
        return {"status": node.status, "progress": child_progress(data)}
    if layer == "timeline":
        return {"due_date": node.due_date, "due_status": due_date_status(node.due_date, today)}
    if layer == "resources":
        assignees = node.metadata.get("assignees")
        return {"assignees": list(assignees) if isinstance(assignees, list) else None}
    # risks
    risks = node.metadata.get("risks")
    return {
        "blocked": node.status == "blocked",
        "risks": list(risks) if isinstance(risks, list) else None,
    }


def _render(
    flow_node: FlowNode,
    node: PlanNode,
    hints: RenderHints,
    today: date,
    *,
    type_fields: Callable[[PlanNode, dict[str, Any]], dict[str, Any]],
    has_progress: bool,
) -> RenderedNode:
    swatch = STATUS_SWATCHES.get(node.status, STATUS_SWATCHES["not_started"])
    base = dict(id=flow_node.id, type=flow_node.type, tier=hints.tier, swatch=swatch)

    if hints.tier == "minimal":
        return RenderedNode(**base)

    progress = child_progress(flow_node.data) if has_progress and hints.show_progress else None

    if hints.tier == "compact":
        title = node.title if hints.show_labels else None
        return RenderedNode(**base, title=title, progress=progress)

    fields = type_fields(node, flow_node.data)
    fields.update(_layer_fields(node, flow_node.data, hints, today))
    return RenderedNode(**base, title=node.title, progress=progress, fields=fields)


def _task_fields(node: PlanNode, data: dict[str, Any]) -> dict[str, Any]:
    return {"type_label": node_type_label(node.node_type), "status_label": status_label(node.status)}


def _phase_fields(node: PlanNode, data: dict[str, Any]) -> dict[str, Any]:
    return {
        "type_label": node_type_label(node.node_type),
        "child_count": data.get("child_count", 0),
        "completed_child_count": data.get("completed_child_count", 0),
    }


def _milestone_fields(node: PlanNode, data: dict[str, Any]) -> dict[str, Any]:
    return {"type_label": node_type_label(node.node_type), "due_date": node.due_date}


def _root_fields(node: PlanNode, data: dict[str, Any]) -> dict[str, Any]:
    return {"type_label": node_type_label(node.node_type), "description": node.description}


def render_task(flow_node: FlowNode, node: PlanNode, hints: RenderHints, today: date) -> RenderedNode:
    return _render(flow_node, node, hints, today, type_fields=_task_fields, has_progress=False)


def render_phase(flow_node: FlowNode, node: PlanNode, hints: RenderHints, today: date) -> RenderedNode:
    return _render(flow_node, node, hints, today, type_fields=_phase_fields, has_progress=True)


def render_milestone(flow_node: FlowNode, node: PlanNode, hints: RenderHints, today: date) -> RenderedNode:
    return _render(flow_node, node, hints, today, type_fields=_milestone_fields, has_progress=False)


def render_root(flow_node: FlowNode, node: PlanNode, hints: RenderHints, today: date) -> RenderedNode:
    return _render(flow_node, node, hints, today, type_fields=_root_fields, has_progress=True)


RENDERERS: dict[str, Renderer] = {
    "root": render_root,
    "phase": render_phase,
    "task": render_task,
    "milestone": render_milestone,
}


def render_node(
    flow_node: FlowNode,
    *,
    today: Optional[date] = None,
    config: VizConfig = DEFAULT_CONFIG,
) -> RenderedNode:
    node = flow_node.data.get("node")
    if not isinstance(node, PlanNode):
        raise ValueError(f"flow node {flow_node.id} carries no PlanNode in data['node']")
    hints = hints_from_data(flow_node.data, config)
    renderer = RENDERERS.get(flow_node.type, render_task)
    return renderer(flow_node, node, hints, today or date.today())
