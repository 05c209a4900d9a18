from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, cast

from planner_viz.core.errors import PlanValidationError
from planner_viz.core.model import NODE_STATUSES, NODE_TYPES, NodeStatus, NodeType, PlanNode

logger = logging.getLogger(__name__)


DEFAULT_NODE_TYPE = "task"
DEFAULT_STATUS = "not_started"
UNTITLED = "Untitled Node"


def _optional_str(v: Any) -> Optional[str]:
    return v if isinstance(v, str) and v else None


def _optional_count(v: Any) -> Optional[int]:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        return None
    return v


def validate_nodes(
    raw_nodes: list[Any],
    *,
    plan_id: Optional[str] = None,
    file: Optional[str] = None,
) -> tuple[list[PlanNode], list[PlanValidationError]]:
    """Convert a flat raw node list into PlanNode records.

    Lenient: bad values fall back to defaults and are reported. Only nodes
    without a usable id (or with a repeated id) are dropped. Order is preserved. Dangling parent ids are kept; they are not
    an error here.

    Returns (nodes, errors).
    """

    errors: list[PlanValidationError] = []
    nodes: list[PlanNode] = []
    seen: set[str] = set()

    for i, raw in enumerate(raw_nodes):
        node_path = f"nodes[{i}]"
        if not isinstance(raw, dict):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="node must be an object",
                    file=file,
                    path=node_path,
                )
            )
            continue

        nid = raw.get("id")
        if not isinstance(nid, str) or not nid.strip():
            errors.append(
                PlanValidationError(
                    code="E_REQUIRED_FIELD",
                    message="id is required and must be a non-empty string",
                    file=file,
                    path=f"{node_path}.id",
                )
            )
            continue

        if nid in seen:
            errors.append(
                PlanValidationError(
                    code="E_DUPLICATE_ID",
                    message=f"duplicate node id: {nid}",
                    file=file,
                    path=f"{node_path}.id",
                )
            )
            continue
        seen.add(nid)

        ntype = raw.get("node_type")
        if ntype is None:
            ntype = DEFAULT_NODE_TYPE
        elif ntype not in NODE_TYPES:
            errors.append(
                PlanValidationError(
                    code="E_INVALID_ENUM",
                    message=f"node_type must be one of {list(NODE_TYPES)}; using {DEFAULT_NODE_TYPE}",
                    file=file,
                    path=f"{node_path}.node_type",
                )
            )
            ntype = DEFAULT_NODE_TYPE

        status = raw.get("status")
        if status is None:
            status = DEFAULT_STATUS
        elif status not in NODE_STATUSES:
            errors.append(
                PlanValidationError(
                    code="E_INVALID_ENUM",
                    message=f"status must be one of {list(NODE_STATUSES)}; using {DEFAULT_STATUS}",
                    file=file,
                    path=f"{node_path}.status",
                )
            )
            status = DEFAULT_STATUS

        order_index = raw.get("order_index", 0)
        if order_index is None:
            order_index = 0
        if isinstance(order_index, bool) or not isinstance(order_index, int):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="order_index must be an integer; using 0",
                    file=file,
                    path=f"{node_path}.order_index",
                )
            )
            order_index = 0

        parent_id = raw.get("parent_id")
        if parent_id is not None and not isinstance(parent_id, str):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="parent_id must be a string",
                    file=file,
                    path=f"{node_path}.parent_id",
                )
            )
            parent_id = None

        metadata = raw.get("metadata")
        if metadata is None:
            metadata = {}
        elif not isinstance(metadata, dict):
            errors.append(
                PlanValidationError(
                    code="E_INVALID_TYPE",
                    message="metadata must be an object",
                    file=file,
                    path=f"{node_path}.metadata",
                )
            )
            metadata = {}

        title = raw.get("title")
        if not isinstance(title, str) or not title.strip():
            title = UNTITLED

        node_plan_id = _optional_str(raw.get("plan_id")) or plan_id or ""

        nodes.append(
            PlanNode(
                id=nid,
                plan_id=node_plan_id,
                node_type=cast(NodeType, ntype),
                status=cast(NodeStatus, status),
                title=title,
                parent_id=_optional_str(parent_id),
                order_index=order_index,
                description=_optional_str(raw.get("description")),
                due_date=_optional_str(raw.get("due_date")),
                metadata=dict(metadata),
                comment_count=_optional_count(raw.get("comment_count")),
                log_count=_optional_count(raw.get("log_count")),
                artifact_count=_optional_count(raw.get("artifact_count")),
            )
        )

    for e in errors:
        logger.debug("node validation: %s", e)
    return nodes, _sorted(errors)


def _sorted(errors: Iterable[PlanValidationError]) -> list[PlanValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
