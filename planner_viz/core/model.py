from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional


NodeType = Literal["root", "phase", "task", "milestone"]
NodeStatus = Literal["not_started", "in_progress", "completed", "blocked"]
EdgeType = Literal["hierarchical", "dependency", "sequence", "reference"]
LodTier = Literal["minimal", "compact", "detailed"]
InfoLayer = Literal["overview", "progress", "timeline", "resources", "risks"]

NODE_TYPES: tuple[str, ...] = ("root", "phase", "task", "milestone")
NODE_STATUSES: tuple[str, ...] = ("not_started", "in_progress", "completed", "blocked")
INFO_LAYERS: tuple[str, ...] = ("overview", "progress", "timeline", "resources", "risks")


@dataclass(frozen=True)
class PlanNode:
    id: str
    plan_id: str
    node_type: NodeType
    status: NodeStatus
    title: str

    parent_id: Optional[str] = None
    order_index: int = 0
    description: Optional[str] = None
    due_date: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    comment_count: Optional[int] = None
    log_count: Optional[int] = None
    artifact_count: Optional[int] = None


@dataclass(frozen=True)
class Position:
    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class FlowNode:
    id: str
    type: str
    position: Position
    data: dict[str, Any]


@dataclass(frozen=True)
class FlowEdge:
    id: str
    source: str
    target: str
    type: EdgeType
    label: Optional[str] = None
    animated: bool = False
    hidden: bool = False
    # True for edges inferred from sibling order / node type rather than stored data.
    heuristic: bool = False


@dataclass(frozen=True)
class FlowGraph:
    nodes: list[FlowNode]
    edges: list[FlowEdge]
