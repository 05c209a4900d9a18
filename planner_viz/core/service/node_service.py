from __future__ import annotations

import copy
from typing import Any, Protocol

from planner_viz.core.errors import NodeMutationError, PlanLoadError
from planner_viz.core.flatten.flatten_tree import normalize_collection
from planner_viz.core.io.load_plan import dump_plan, load_plan
from planner_viz.core.model import NODE_STATUSES


class NodeService(Protocol):
    """Node collection fetch and node mutation calls for one backend."""

    def get_nodes(self, plan_id: str) -> list[dict[str, Any]]: ...

    def create_node(self, plan_id: str, fields: dict[str, Any]) -> str: ...

    def update_node(self, plan_id: str, node_id: str, fields: dict[str, Any]) -> None: ...

    def update_node_status(self, plan_id: str, node_id: str, status: str) -> None: ...

    def delete_node(self, plan_id: str, node_id: str) -> None: ...


def _allocate_id(existing: set[str]) -> str:
    i = len(existing) + 1
    while f"node-{i}" in existing:
        i += 1
    return f"node-{i}"


def _check_status(status: str) -> None:
    if status not in NODE_STATUSES:
        raise NodeMutationError(
            code="E_MUTATION_INVALID_STATUS",
            message=f"unknown status: {status} (choose one of: {', '.join(NODE_STATUSES)})",
            path="status",
        )


def _descendants(nodes: list[dict[str, Any]], node_id: str) -> set[str]:
    out = {node_id}
    changed = True
    while changed:
        changed = False
        for n in nodes:
            nid = n.get("id")
            if nid not in out and n.get("parent_id") in out:
                out.add(nid)
                changed = True
    return out


class InMemoryNodeService:
    """Flat, dict-backed node store keyed by plan id."""

    def __init__(self, plans: dict[str, list[dict[str, Any]]] | None = None) -> None:
        self._plans: dict[str, list[dict[str, Any]]] = {
            pid: normalize_collection(nodes) for pid, nodes in (plans or {}).items()
        }

    def _nodes(self, plan_id: str) -> list[dict[str, Any]]:
        return self._plans.setdefault(plan_id, [])

    def _find(self, plan_id: str, node_id: str) -> dict[str, Any]:
        for n in self._nodes(plan_id):
            if n.get("id") == node_id:
                return n
        raise NodeMutationError(
            code="E_MUTATION_UNKNOWN_NODE",
            message=f"node not found: {node_id}",
            path=f"{plan_id}/{node_id}",
        )

    def get_nodes(self, plan_id: str) -> list[dict[str, Any]]:
        return copy.deepcopy(self._nodes(plan_id))

    def create_node(self, plan_id: str, fields: dict[str, Any]) -> str:
        nodes = self._nodes(plan_id)
        existing = {n.get("id") for n in nodes if isinstance(n.get("id"), str)}
        node = dict(fields)
        node_id = node.get("id")
        if not isinstance(node_id, str) or not node_id or node_id in existing:
            node_id = _allocate_id(existing)
        node["id"] = node_id
        node["plan_id"] = plan_id
        node.setdefault("status", "not_started")
        node.setdefault("node_type", "task")
        nodes.append(node)
        return node_id

    def update_node(self, plan_id: str, node_id: str, fields: dict[str, Any]) -> None:
        node = self._find(plan_id, node_id)
        if "status" in fields:
            _check_status(fields["status"])
        node.update({k: v for k, v in fields.items() if k not in ("id", "plan_id")})

    def update_node_status(self, plan_id: str, node_id: str, status: str) -> None:
        _check_status(status)
        self._find(plan_id, node_id)["status"] = status

    def delete_node(self, plan_id: str, node_id: str) -> None:
        self._find(plan_id, node_id)
        gone = _descendants(self._nodes(plan_id), node_id)
        self._plans[plan_id] = [n for n in self._nodes(plan_id) if n.get("id") not in gone]


class PlanFileNodeService:
    """NodeService over a single plan file (.yaml/.yml/.json).

    Each call reloads the file; mutations write it back flattened.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def _load(self, plan_id: str) -> tuple[dict[str, Any], InMemoryNodeService]:
        plan = load_plan(self.path)
        stored_id = plan.get("plan_id")
        if stored_id and plan_id and stored_id != plan_id:
            raise PlanLoadError(
                code="E_PLAN_ID_MISMATCH",
                message=f"file holds plan {stored_id}, not {plan_id}",
                file=self.path,
                path="plan_id",
            )
        return plan, InMemoryNodeService({plan_id: plan["nodes"]})

    def _save(self, plan: dict[str, Any], plan_id: str, svc: InMemoryNodeService) -> None:
        out: dict[str, Any] = {"nodes": svc.get_nodes(plan_id)}
        if plan.get("plan_id"):
            out = {"plan_id": plan["plan_id"], **out}
        dump_plan(out, self.path)

    def get_nodes(self, plan_id: str) -> list[dict[str, Any]]:
        return copy.deepcopy(load_plan(self.path)["nodes"])

    def create_node(self, plan_id: str, fields: dict[str, Any]) -> str:
        plan, svc = self._load(plan_id)
        node_id = svc.create_node(plan_id, fields)
        self._save(plan, plan_id, svc)
        return node_id

    def update_node(self, plan_id: str, node_id: str, fields: dict[str, Any]) -> None:
        plan, svc = self._load(plan_id)
        svc.update_node(plan_id, node_id, fields)
        self._save(plan, plan_id, svc)

    def update_node_status(self, plan_id: str, node_id: str, status: str) -> None:
        plan, svc = self._load(plan_id)
        svc.update_node_status(plan_id, node_id, status)
        self._save(plan, plan_id, svc)

    def delete_node(self, plan_id: str, node_id: str) -> None:
        plan, svc = self._load(plan_id)
        svc.delete_node(plan_id, node_id)
        self._save(plan, plan_id, svc)
