from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import date
from typing import Any, NoReturn, Optional

import typer

from planner_viz.core.config import VizConfig, load_config
from planner_viz.core.errors import (
    ConfigError,
    NodeMutationError,
    PlanError,
    PlanLoadError,
    PlanValidationError,
)
from planner_viz.core.flatten.flatten_tree import normalize_collection
from planner_viz.core.insights.graph_insights import calculate_node_stats, node_path, summarize_stats
from planner_viz.core.io.load_plan import dump_plan, load_plan
from planner_viz.core.model import Position
from planner_viz.core.service.node_service import PlanFileNodeService
from planner_viz.core.store.position_store import (
    LAYOUT_MODES,
    UNKNOWN_PLAN,
    JsonFileStorage,
    KeyValueStorage,
    LayoutModeStore,
    MemoryStorage,
    PositionStore,
)
from planner_viz.core.view.plan_view import PlanView

app = typer.Typer(add_completion=False, no_args_is_help=True)

FORMATS = ("text", "json")


@app.callback()
def _callback() -> None:
    """Plan graph visualization CLI."""
    return


def _emit_json(
    command: str,
    ok: bool,
    *,
    exit_code: int = 0,
    errors: Optional[list[PlanError]] = None,
    **extra: Any,
) -> NoReturn:
    errs = errors or []
    payload: dict[str, Any] = {
        "tool": "planner-viz",
        "command": command,
        "ok": ok,
        "error_count": len(errs),
        "errors": [e.to_item() for e in errs],
    }
    payload.update(extra)
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))
    raise typer.Exit(code=exit_code)


def _fail(command: str, format: str, errors: list[PlanError], exit_code: int) -> NoReturn:
    if format == "json":
        _emit_json(command, False, exit_code=exit_code, errors=errors)
    _print_errors(errors)
    raise typer.Exit(code=exit_code)


def _check_format(command: str, format: str) -> None:
    if format not in FORMATS:
        err = PlanValidationError(
            code=f"E_{command.upper().replace('-', '_')}_UNKNOWN_FORMAT",
            message=f"unknown format: {format} (choose one of: {', '.join(FORMATS)})",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)


def _setup(command: str, format: str, config_path: Optional[str], debug: bool) -> VizConfig:
    _check_format(command, format)
    try:
        config = load_config(config_path)
    except ConfigError as e:
        _fail(command, format, [e], 2)
    if debug or config.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    return config


def _load(command: str, format: str, path: str) -> dict[str, Any]:
    try:
        return load_plan(path)
    except PlanLoadError as e:
        _fail(command, format, [e], 1)


def _storage(store_path: Optional[str]) -> KeyValueStorage:
    return JsonFileStorage(store_path) if store_path else MemoryStorage()


def _open_view(plan: dict[str, Any], config: VizConfig, storage: KeyValueStorage) -> PlanView:
    plan_id = plan.get("plan_id") or UNKNOWN_PLAN
    view = PlanView(
        plan_id,
        PlanFileNodeService(plan["__file__"]),
        PositionStore(storage),
        config=config,
    )
    view.complete_fetch(view.begin_fetch(), plan["nodes"])
    return view


def _strict_exit(command: str, format: str, view: PlanView, strict: bool) -> None:
    if strict and view.validation_errors:
        _fail(command, format, list(view.validation_errors), 2)


def _warn(view: PlanView) -> None:
    for e in view.validation_errors:
        typer.echo(f"warning: {e}", err=True)


PathArg = typer.Argument(..., help="Path to a plan file (.yaml/.yml/.json)")
FormatOpt = typer.Option("text", "--format", help="Output format: text|json")
ConfigOpt = typer.Option(None, "--config", help="Visualization config YAML")
DebugOpt = typer.Option(False, "--debug", help="Enable debug logging")
StoreOpt = typer.Option(None, "--store", help="JSON file holding saved node positions")
StrictOpt = typer.Option(False, "--strict", help="Exit 2 when any node fails validation")


@app.command("flatten")
def flatten(
    path: str = PathArg,
    out: Optional[str] = typer.Option(None, "--out", help="Write the flat plan here (.yaml/.json)"),
    format: str = FormatOpt,
    debug: bool = DebugOpt,
) -> None:
    """Flatten a nested plan into a pre-order node list."""
    _setup("flatten", format, None, debug)
    plan = _load("flatten", format, path)
    flat = normalize_collection(plan["nodes"])

    if out:
        dump_plan({"plan_id": plan.get("plan_id"), "nodes": flat}, out)

    if format == "json":
        _emit_json("flatten", True, nodes=flat, out=out)

    for n in flat:
        typer.echo(f"{n.get('id')}\tparent={n.get('parent_id') or '-'}\t{n.get('title', '')}")
    if out:
        typer.echo(f"Wrote: {out}")


@app.command("edges")
def edges(
    path: str = PathArg,
    hide_dependencies: bool = typer.Option(
        False, "--hide-dependencies", help="Flag non-hierarchical edges hidden"
    ),
    format: str = FormatOpt,
    config_path: Optional[str] = ConfigOpt,
    debug: bool = DebugOpt,
    strict: bool = StrictOpt,
) -> None:
    """Classify the relationships of a plan into typed edges."""
    config = _setup("edges", format, config_path, debug)
    plan = _load("edges", format, path)
    view = _open_view(plan, config, MemoryStorage())
    _strict_exit("edges", format, view, strict)
    if hide_dependencies:
        view.toggle_dependencies()

    if format == "json":
        _emit_json(
            "edges",
            True,
            errors=list(view.validation_errors),
            edges=[asdict(e) for e in view.graph.edges],
        )

    _warn(view)
    for e in view.graph.edges:
        flags = [f for f, on in (("heuristic", e.heuristic), ("animated", e.animated), ("hidden", e.hidden)) if on]
        suffix = f" ({', '.join(flags)})" if flags else ""
        typer.echo(f"{e.id}\t{e.type}\t{e.source} -> {e.target}{suffix}")


@app.command("layout")
def layout(
    path: str = PathArg,
    store: Optional[str] = StoreOpt,
    format: str = FormatOpt,
    config_path: Optional[str] = ConfigOpt,
    debug: bool = DebugOpt,
    strict: bool = StrictOpt,
) -> None:
    """Compute node positions (saved overrides win)."""
    config = _setup("layout", format, config_path, debug)
    plan = _load("layout", format, path)
    view = _open_view(plan, config, _storage(store))
    _strict_exit("layout", format, view, strict)

    if format == "json":
        _emit_json(
            "layout",
            True,
            errors=list(view.validation_errors),
            plan_id=view.plan_id,
            positions={n.id: n.position.to_dict() for n in view.graph.nodes},
        )

    _warn(view)
    for n in view.graph.nodes:
        typer.echo(f"{n.id}\tx={n.position.x:g}\ty={n.position.y:g}")


@app.command("render")
def render(
    path: str = PathArg,
    zoom: float = typer.Option(1.0, "--zoom", help="Zoom level (> 0)"),
    layer: str = typer.Option("overview", "--layer", help="overview|progress|timeline|resources|risks"),
    labels: bool = typer.Option(True, "--labels/--no-labels"),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    today: Optional[str] = typer.Option(None, "--today", help="Reference date YYYY-MM-DD"),
    store: Optional[str] = StoreOpt,
    format: str = FormatOpt,
    config_path: Optional[str] = ConfigOpt,
    debug: bool = DebugOpt,
) -> None:
    """Show what each node renders at a zoom level and information layer."""
    config = _setup("render", format, config_path, debug)

    ref_day: Optional[date] = None
    if today:
        try:
            ref_day = date.fromisoformat(today)
        except ValueError:
            err = PlanValidationError(
                code="E_RENDER_INVALID_DATE",
                message=f"invalid date: {today} (expected YYYY-MM-DD)",
                path="today",
            )
            _fail("render", format, [err], 2)

    plan = _load("render", format, path)
    view = _open_view(plan, config, _storage(store))
    try:
        view.set_zoom(zoom)
        view.set_layer(layer)
    except ValueError as e:
        err = PlanValidationError(code="E_RENDER_INVALID_VIEWPORT", message=str(e), path="viewport")
        _fail("render", format, [err], 2)
    if not labels:
        view.toggle_labels()
    if not progress:
        view.toggle_progress()

    rendered = view.render(today=ref_day)
    if format == "json":
        _emit_json(
            "render",
            True,
            errors=list(view.validation_errors),
            tier=view.viewport.tier,
            layer=layer,
            nodes=[asdict(r) for r in rendered],
        )

    _warn(view)
    for r in rendered:
        line = f"{r.id}\t[{r.tier}]\t{r.swatch}"
        if r.title is not None:
            line += f"\t{r.title}"
        if r.progress is not None:
            line += f"\t{r.progress}%"
        if r.fields:
            line += "\t" + " ".join(f"{k}={v}" for k, v in sorted(r.fields.items()))
        typer.echo(line)


@app.command("drag")
def drag(
    path: str = PathArg,
    node_id: str = typer.Argument(..., help="Node to move"),
    x: float = typer.Argument(...),
    y: float = typer.Argument(...),
    store: str = typer.Option(..., "--store", help="JSON file holding saved node positions"),
    format: str = FormatOpt,
    config_path: Optional[str] = ConfigOpt,
    debug: bool = DebugOpt,
) -> None:
    """Save a manual position for one node."""
    config = _setup("drag", format, config_path, debug)
    plan = _load("drag", format, path)
    view = _open_view(plan, config, _storage(store))
    try:
        persisted = view.drag(node_id, Position(x=x, y=y))
    except ValueError:
        err = PlanValidationError(
            code="E_DRAG_UNKNOWN_NODE",
            message=f"node not found: {node_id}",
            file=plan.get("__file__"),
            path=node_id,
        )
        _fail("drag", format, [err], 2)
    if not persisted:
        err = PlanLoadError(
            code="E_STORE_WRITE_FAILED",
            message=f"could not persist position for {node_id}",
            file=store,
        )
        _fail("drag", format, [err], 1)

    if format == "json":
        _emit_json("drag", True, node_id=node_id, position={"x": x, "y": y}, store=store)
    typer.echo(f"OK: {node_id} -> x={x:g} y={y:g}")


@app.command("reset-layout")
def reset_layout(
    path: str = PathArg,
    store: str = typer.Option(..., "--store", help="JSON file holding saved node positions"),
    format: str = FormatOpt,
    debug: bool = DebugOpt,
) -> None:
    """Forget every saved position for the plan."""
    config = _setup("reset-layout", format, None, debug)
    plan = _load("reset-layout", format, path)
    view = _open_view(plan, config, _storage(store))
    if not view.reset_layout():
        err = PlanLoadError(code="E_STORE_WRITE_FAILED", message="could not clear saved positions", file=store)
        _fail("reset-layout", format, [err], 1)

    if format == "json":
        _emit_json("reset-layout", True, plan_id=view.plan_id)
    typer.echo(f"OK: cleared saved layout for {view.plan_id}")


@app.command("mode")
def mode(
    path: str = PathArg,
    value: Optional[str] = typer.Argument(None, help="graph|tree|split; omit to show"),
    store: str = typer.Option(..., "--store", help="JSON file holding view preferences"),
    format: str = FormatOpt,
) -> None:
    """Show or set the preferred view mode of a plan."""
    _check_format("mode", format)
    plan = _load("mode", format, path)
    plan_id = plan.get("plan_id") or UNKNOWN_PLAN
    modes = LayoutModeStore(_storage(store))

    if value is not None:
        if value not in LAYOUT_MODES:
            err = PlanValidationError(
                code="E_MODE_UNKNOWN",
                message=f"unknown mode: {value} (choose one of: {', '.join(LAYOUT_MODES)})",
                path="mode",
            )
            _fail("mode", format, [err], 2)
        if not modes.save(plan_id, value):
            err = PlanLoadError(code="E_STORE_WRITE_FAILED", message="could not save view mode", file=store)
            _fail("mode", format, [err], 1)

    current = modes.load(plan_id)
    if format == "json":
        _emit_json("mode", True, plan_id=plan_id, mode=current)
    typer.echo(current)


@app.command("stats")
def stats(
    path: str = PathArg,
    format: str = FormatOpt,
    debug: bool = DebugOpt,
) -> None:
    """Count nodes by status and type."""
    config = _setup("stats", format, None, debug)
    plan = _load("stats", format, path)
    view = _open_view(plan, config, MemoryStorage())
    result = calculate_node_stats(view.nodes)

    if format == "json":
        _emit_json("stats", True, errors=list(view.validation_errors), summary=result)
    _warn(view)
    typer.echo(summarize_stats(result))


@app.command("path")
def path_cmd(
    path: str = PathArg,
    node_id: str = typer.Argument(..., help="Node to locate"),
    format: str = FormatOpt,
) -> None:
    """Print the breadcrumb from the top-level ancestor to a node."""
    config = _setup("path", format, None, False)
    plan = _load("path", format, path)
    view = _open_view(plan, config, MemoryStorage())
    crumbs = node_path(node_id, view.nodes)
    if not crumbs:
        err = PlanValidationError(
            code="E_PATH_UNKNOWN_NODE",
            message=f"node not found: {node_id}",
            file=plan.get("__file__"),
            path=node_id,
        )
        _fail("path", format, [err], 2)

    if format == "json":
        _emit_json("path", True, node_id=node_id, path=crumbs)
    typer.echo(" > ".join(crumbs))


@app.command("status")
def status(
    path: str = PathArg,
    node_id: str = typer.Argument(..., help="Node to update"),
    value: str = typer.Argument(..., help="not_started|in_progress|completed|blocked"),
    format: str = FormatOpt,
    debug: bool = DebugOpt,
) -> None:
    """Change a node's status in the plan file."""
    _setup("status", format, None, debug)
    plan = _load("status", format, path)
    plan_id = plan.get("plan_id") or UNKNOWN_PLAN
    try:
        PlanFileNodeService(path).update_node_status(plan_id, node_id, value)
    except NodeMutationError as e:
        _fail("status", format, [e], 2)
    except PlanLoadError as e:
        _fail("status", format, [e], 1)

    if format == "json":
        _emit_json("status", True, node_id=node_id, status=value)
    typer.echo(f"OK: {node_id} -> {value}")


def _print_errors(errors: list[PlanError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="planner-viz")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
