"""Visualization configuration.

All tunables live on one frozen VizConfig that callers pass into the
pipeline explicitly. Defaults can be overridden from a YAML file:

  debug: true
  zoom:
    minimal_max: 0.5
    compact_max: 0.8
  layout:
    direction: TB
    node_spacing: 80
    rank_spacing: 120
    node_sizes:
      task: [240, 80]
  refetch_delay_seconds: 0.5
  discard_stale_fetches: true
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Literal

import yaml

from planner_viz.core.errors import ConfigError


LayoutDirection = Literal["TB", "LR"]

DEFAULT_NODE_SIZES: dict[str, tuple[float, float]] = {
    "root": (320.0, 100.0),
    "phase": (280.0, 120.0),
    "task": (240.0, 80.0),
    "milestone": (200.0, 60.0),
    "default": (240.0, 80.0),
}


@dataclass(frozen=True)
class VizConfig:
    debug: bool = False

    # LOD thresholds: zoom < minimal_max -> minimal, zoom < compact_max -> compact.
    minimal_max: float = 0.5
    compact_max: float = 0.8

    direction: LayoutDirection = "TB"
    node_spacing: float = 80.0
    rank_spacing: float = 120.0
    node_sizes: dict[str, tuple[float, float]] = field(
        default_factory=lambda: dict(DEFAULT_NODE_SIZES)
    )
    max_crossing_passes: int = 24

    refetch_delay_seconds: float = 0.5
    discard_stale_fetches: bool = True

    def node_size(self, node_type: str) -> tuple[float, float]:
        return self.node_sizes.get(node_type, self.node_sizes.get("default", DEFAULT_NODE_SIZES["default"]))


DEFAULT_CONFIG = VizConfig()


def _number(v: Any, name: str, *, minimum: float = 0.0) -> float:
    if isinstance(v, bool) or not isinstance(v, (int, float)):
        raise ConfigError(code="E_CONFIG_INVALID", message=f"{name} must be a number", path=name)
    if v < minimum:
        raise ConfigError(code="E_CONFIG_INVALID", message=f"{name} must be >= {minimum}", path=name)
    return float(v)


def _bool(v: Any, name: str) -> bool:
    if not isinstance(v, bool):
        raise ConfigError(code="E_CONFIG_INVALID", message=f"{name} must be a boolean", path=name)
    return v


def config_from_dict(raw: dict[str, Any], base: VizConfig = DEFAULT_CONFIG) -> VizConfig:
    """Apply overrides from a mapping onto `base`. Unknown keys are rejected."""
    if not isinstance(raw, dict):
        raise ConfigError(code="E_CONFIG_INVALID", message="config must be a mapping")

    known = {"debug", "zoom", "layout", "refetch_delay_seconds", "discard_stale_fetches"}
    unknown = sorted(set(raw.keys()) - known)
    if unknown:
        raise ConfigError(
            code="E_CONFIG_UNKNOWN_KEY",
            message=f"unknown config keys: {', '.join(str(k) for k in unknown)}",
        )

    updates: dict[str, Any] = {}

    if "debug" in raw:
        updates["debug"] = _bool(raw["debug"], "debug")

    zoom = raw.get("zoom")
    if zoom is not None:
        if not isinstance(zoom, dict):
            raise ConfigError(code="E_CONFIG_INVALID", message="zoom must be a mapping", path="zoom")
        if "minimal_max" in zoom:
            updates["minimal_max"] = _number(zoom["minimal_max"], "zoom.minimal_max")
        if "compact_max" in zoom:
            updates["compact_max"] = _number(zoom["compact_max"], "zoom.compact_max")

    layout = raw.get("layout")
    if layout is not None:
        if not isinstance(layout, dict):
            raise ConfigError(code="E_CONFIG_INVALID", message="layout must be a mapping", path="layout")
        if "direction" in layout:
            if layout["direction"] not in ("TB", "LR"):
                raise ConfigError(
                    code="E_CONFIG_INVALID",
                    message="layout.direction must be one of: TB, LR",
                    path="layout.direction",
                )
            updates["direction"] = layout["direction"]
        if "node_spacing" in layout:
            updates["node_spacing"] = _number(layout["node_spacing"], "layout.node_spacing")
        if "rank_spacing" in layout:
            updates["rank_spacing"] = _number(layout["rank_spacing"], "layout.rank_spacing")
        sizes = layout.get("node_sizes")
        if sizes is not None:
            if not isinstance(sizes, dict):
                raise ConfigError(
                    code="E_CONFIG_INVALID",
                    message="layout.node_sizes must be a mapping of type -> [width, height]",
                    path="layout.node_sizes",
                )
            merged = dict(base.node_sizes)
            for k, v in sizes.items():
                name = f"layout.node_sizes.{k}"
                if not isinstance(v, list) or len(v) != 2:
                    raise ConfigError(code="E_CONFIG_INVALID", message=f"{name} must be [width, height]", path=name)
                merged[str(k)] = (_number(v[0], name, minimum=1.0), _number(v[1], name, minimum=1.0))
            updates["node_sizes"] = merged

    if "refetch_delay_seconds" in raw:
        updates["refetch_delay_seconds"] = _number(raw["refetch_delay_seconds"], "refetch_delay_seconds")
    if "discard_stale_fetches" in raw:
        updates["discard_stale_fetches"] = _bool(raw["discard_stale_fetches"], "discard_stale_fetches")

    cfg = replace(base, **updates)
    if cfg.minimal_max > cfg.compact_max:
        raise ConfigError(
            code="E_CONFIG_INVALID",
            message="zoom.minimal_max must not exceed zoom.compact_max",
            path="zoom",
        )
    return cfg


def load_config(path: str | None) -> VizConfig:
    if not path:
        return DEFAULT_CONFIG
    p = Path(path)
    if not p.exists():
        raise ConfigError(code="E_CONFIG_NOT_FOUND", message="config file does not exist", file=str(p))
    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(code="E_CONFIG_PARSE", message=str(e), file=str(p)) from e
    if raw is None:
        return DEFAULT_CONFIG
    try:
        return config_from_dict(raw)
    except ConfigError as e:
        raise ConfigError(code=e.code, message=e.message, file=str(p), path=e.path) from e
