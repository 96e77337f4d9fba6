import logging
from dataclasses import dataclass, field, replace
from typing import List, Optional

import pandas as pd
import plotly.graph_objects as go

from .config import TopologyConfig
from .graph_builder import GraphModelBuilder
from .interaction import HitTarget, InteractionController, ViewState
from .layout_engine import LayoutConfig, LayoutEngine
from .models import FeatureFlags, RouterDescriptor, TopologySnapshot
from .priority import Frame, PriorityFilter
from .render import RenderList, RenderStyle, render_frame, to_figure

logger = logging.getLogger(__name__)


@dataclass
class RefreshInputs:
    """Latest data from each upstream source; any of them may be missing."""

    router: Optional[RouterDescriptor] = None
    devices: Optional[pd.DataFrame] = None
    mesh_peers: List[str] = field(default_factory=list)
    features: Optional[FeatureFlags] = None


class TopologyPipeline:
    """
    One refresh cycle: build -> budget -> layout -> viewport cull -> render.
    Runs synchronously; the ``ViewState`` passed in is read and updated in
    place (stale positions dropped, newly computed defaults remembered).
    """

    def __init__(
        self,
        config: TopologyConfig,
        builder: Optional[GraphModelBuilder] = None,
        style: Optional[RenderStyle] = None,
    ):
        self.config = config
        self.builder = builder or GraphModelBuilder()
        self.layout_engine = LayoutEngine(
            LayoutConfig(
                canvas_width=float(config.canvas_width),
                canvas_height=float(config.canvas_height),
            )
        )
        self.style = style or RenderStyle()

    def priority_filter(
        self,
        max_visible_nodes: Optional[int] = None,
        viewport_culling_enabled: Optional[bool] = None,
    ) -> PriorityFilter:
        """Filter for the configured budget, with optional per-session overrides."""
        return PriorityFilter(
            max_visible_nodes or self.config.max_visible_nodes,
            viewport_culling_enabled=(
                self.config.viewport_culling_enabled
                if viewport_culling_enabled is None
                else viewport_culling_enabled
            ),
        )

    def controller(self, view_state: ViewState) -> InteractionController:
        return InteractionController(
            view_state,
            bounds=self.layout_engine.bounds,
            zoom_bounds=self.config.zoom_bounds,
            hit_radius=self.style.device_radius,
        )

    def compute_frame(
        self,
        inputs: RefreshInputs,
        view_state: ViewState,
        max_visible_nodes: Optional[int] = None,
        viewport_culling_enabled: Optional[bool] = None,
    ) -> Frame:
        snapshot = self.builder.build(
            router=inputs.router,
            devices=inputs.devices,
            mesh_peers=inputs.mesh_peers,
            features=inputs.features,
            saved_positions=view_state.positions,
        )
        view_state.retain(snapshot.node_ids)

        priority_filter = self.priority_filter(
            max_visible_nodes, viewport_culling_enabled
        )
        budget = priority_filter.apply_budget(snapshot)

        positioned = self.layout_engine.apply(
            budget.snapshot.nodes, view_state.positions
        )
        for node in positioned:
            # Existing positions (dragged or remembered) are never overwritten.
            # A device that appears later takes its ring slot for the new
            # device count and may land on a frozen neighbour; Reset View
            # re-spreads everything.
            view_state.positions.setdefault(node.id, node.position)

        budget = replace(
            budget,
            snapshot=TopologySnapshot(nodes=positioned, edges=budget.snapshot.edges),
        )
        viewport = view_state.visible_rect(
            self.config.canvas_width, self.config.canvas_height
        )
        frame = priority_filter.cull_viewport(budget, viewport)
        logger.debug("Frame stats: %s", frame.stats.to_dict())
        return frame

    def hit_targets(self, frame: Frame) -> List[HitTarget]:
        """Visible nodes in draw order; hit-testing walks this list backwards."""
        return [(node.id, node.position) for node in frame.nodes if node.position]

    def render(
        self,
        frame: Frame,
        view_state: ViewState,
        style: Optional[RenderStyle] = None,
    ) -> RenderList:
        return render_frame(frame, view_state, style or self.style)

    def figure(
        self,
        frame: Frame,
        view_state: ViewState,
        style: Optional[RenderStyle] = None,
    ) -> go.Figure:
        return to_figure(
            self.render(frame, view_state, style),
            self.config.canvas_width,
            self.config.canvas_height,
        )
