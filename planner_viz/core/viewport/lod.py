from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Any, Mapping, cast

from planner_viz.core.config import DEFAULT_CONFIG, VizConfig
from planner_viz.core.model import INFO_LAYERS, FlowNode, InfoLayer, LodTier


DEFAULT_ZOOM = 1.0
DEFAULT_LAYER: InfoLayer = "overview"


@dataclass(frozen=True)
class ViewportState:
    zoom: float = DEFAULT_ZOOM
    active_layer: InfoLayer = DEFAULT_LAYER
    show_labels: bool = True
    show_progress: bool = True
    show_dependencies: bool = True


@dataclass(frozen=True)
class RenderHints:
    active_layer: InfoLayer
    current_zoom: float
    tier: LodTier
    show_labels: bool
    show_progress: bool
    show_dependencies: bool


def tier_for_zoom(zoom: float, config: VizConfig = DEFAULT_CONFIG) -> LodTier:
    if zoom < config.minimal_max:
        return "minimal"
    if zoom < config.compact_max:
        return "compact"
    return "detailed"


def hints_from_data(data: Mapping[str, Any], config: VizConfig = DEFAULT_CONFIG) -> RenderHints:
    """Read the rendering hints stamped on a node, defaulting anything absent."""
    zoom = data.get("currentZoom")
    if isinstance(zoom, bool) or not isinstance(zoom, (int, float)):
        zoom = DEFAULT_ZOOM

    layer = data.get("activeLayer")
    if layer not in INFO_LAYERS:
        layer = DEFAULT_LAYER

    tier = data.get("lodTier")
    if tier not in ("minimal", "compact", "detailed"):
        tier = tier_for_zoom(float(zoom), config)

    def flag(name: str) -> bool:
        v = data.get(name)
        return v if isinstance(v, bool) else True

    return RenderHints(
        active_layer=cast(InfoLayer, layer),
        current_zoom=float(zoom),
        tier=cast(LodTier, tier),
        show_labels=flag("showLabels"),
        show_progress=flag("showProgress"),
        show_dependencies=flag("showDependencies"),
    )


class ViewportController:
    """Current zoom/layer/toggle state for one open plan view."""

    def __init__(self, config: VizConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.state = ViewportState()

    @property
    def tier(self) -> LodTier:
        return tier_for_zoom(self.state.zoom, self.config)

    def set_zoom(self, zoom: float) -> LodTier:
        if not math.isfinite(zoom) or zoom <= 0:
            raise ValueError(f"zoom must be a positive finite number, got {zoom}")
        self.state = replace(self.state, zoom=float(zoom))
        return self.tier

    def set_layer(self, layer: str) -> None:
        if layer not in INFO_LAYERS:
            raise ValueError(f"unknown layer: {layer} (choose one of: {', '.join(INFO_LAYERS)})")
        self.state = replace(self.state, active_layer=cast(InfoLayer, layer))

    def toggle_labels(self) -> bool:
        self.state = replace(self.state, show_labels=not self.state.show_labels)
        return self.state.show_labels

    def toggle_progress(self) -> bool:
        self.state = replace(self.state, show_progress=not self.state.show_progress)
        return self.state.show_progress

    def toggle_dependencies(self) -> bool:
        self.state = replace(self.state, show_dependencies=not self.state.show_dependencies)
        return self.state.show_dependencies

    def reset(self) -> None:
        self.state = ViewportState()

    def hints(self) -> dict[str, Any]:
        s = self.state
        return {
            "activeLayer": s.active_layer,
            "currentZoom": s.zoom,
            "lodTier": self.tier,
            "showLabels": s.show_labels,
            "showProgress": s.show_progress,
            "showDependencies": s.show_dependencies,
        }

    def annotate(self, nodes: list[FlowNode]) -> list[FlowNode]:
        """Copies of `nodes` with the current hints stamped into `data`."""
        hints = self.hints()
        return [replace(n, data={**n.data, **hints}) for n in nodes]
