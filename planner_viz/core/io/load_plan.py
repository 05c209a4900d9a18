from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from planner_viz.core.errors import PlanLoadError


def load_plan(path: str) -> dict[str, Any]:
    """Load YAML/JSON plan file.

    Returns a dict with keys: plan_id, nodes.
    `nodes` may be flat or nested (via `children`); it is not coerced here,
    flattening and validation own shape handling.
    """

    p = Path(path)
    if not p.exists():
        raise PlanLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:  # pragma: no cover
        raise PlanLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise PlanLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml and .json",
                file=str(p),
            )
    except PlanLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise PlanLoadError(code=code, message=str(e), file=str(p)) from e

    # A bare list is accepted as the node collection of an anonymous plan.
    if isinstance(data, list):
        data = {"nodes": data}

    if not isinstance(data, dict):
        raise PlanLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object or a list of nodes",
            file=str(p),
        )

    nodes = data.get("nodes")
    if nodes is None:
        nodes = []
    if not isinstance(nodes, list):
        raise PlanLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="nodes must be an array",
            file=str(p),
        )

    plan_id = data.get("plan_id")
    normalized: dict[str, Any] = {
        "plan_id": plan_id if isinstance(plan_id, str) and plan_id else None,
        "nodes": nodes,
    }
    normalized["__file__"] = str(p)
    return normalized


def dump_plan(plan: dict[str, Any], path: str) -> None:
    """Write a plan back in the format implied by the file suffix."""
    p = Path(path)
    payload = {k: v for k, v in plan.items() if not k.startswith("__")}
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    if p.suffix.lower() == ".json":
        p.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
        return
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(payload, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
