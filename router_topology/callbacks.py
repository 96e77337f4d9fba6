import logging
from dataclasses import replace
from typing import Any, Dict, List, Optional, Tuple

from dash import ClientsideFunction, Input, Output, State, ctx
from dash.exceptions import PreventUpdate

from .config import PERFORMANCE_PRESETS, TopologyConfig
from .data_source import DashboardApiClient, RefreshGate, devices_frame
from .interaction import ViewState
from .layout import build_details_panel, build_stats_panel
from .models import FeatureFlags, Point, RouterDescriptor
from .pipeline import RefreshInputs, TopologyPipeline
from .render import RenderStyle

logger = logging.getLogger(__name__)


def router_to_store(router: RouterDescriptor) -> Dict[str, Any]:
    return {
        "model": router.model,
        "ipAddress": router.ip_address,
        "isOnline": router.is_online,
    }


def features_to_store(features: FeatureFlags, peers: List[str]) -> Dict[str, Any]:
    return {"meshIsActive": features.mesh_is_active, "peers": list(peers)}


def refresh_inputs_from_stores(
    router_store: Optional[Dict[str, Any]],
    devices_store: Optional[Dict[str, Any]],
    features_store: Optional[Dict[str, Any]],
) -> RefreshInputs:
    """Rebuild pipeline inputs from the JSON the fetch callbacks stored."""
    router_data = (router_store or {}).get("data")
    devices_data = (devices_store or {}).get("data")
    features_data = (features_store or {}).get("data")

    router = None
    if router_data:
        router = RouterDescriptor(
            model=router_data["model"],
            ip_address=router_data["ipAddress"],
            is_online=bool(router_data.get("isOnline", True)),
        )

    features = None
    peers: List[str] = []
    if features_data:
        features = FeatureFlags(mesh_is_active=bool(features_data["meshIsActive"]))
        peers = list(features_data.get("peers") or [])

    return RefreshInputs(
        router=router,
        devices=devices_frame(devices_data) if devices_data is not None else None,
        mesh_peers=peers,
        features=features,
    )


def _should_apply(store: Optional[Dict[str, Any]], seq: int) -> bool:
    return seq >= (store or {}).get("seq", 0)


def remembered_positions(
    memory_store: Optional[Dict[str, Any]], epoch: int
) -> Dict[str, Point]:
    """Computed default positions, unless a view reset has happened since."""
    if not memory_store or memory_store.get("epoch") != epoch:
        return {}
    return {
        node_id: Point.from_dict(point)
        for node_id, point in (memory_store.get("positions") or {}).items()
    }


class CallbackRegistrar:
    def __init__(
        self,
        app,
        pipeline: TopologyPipeline,
        client: DashboardApiClient,
        gate: Optional[RefreshGate] = None,
    ):
        self.app = app
        self.pipeline = pipeline
        self.client = client
        self.gate = gate or RefreshGate()

    # ------------------------------------------------------------------ fetch

    def fetch_router(self, n_intervals: int, store: Optional[Dict]) -> Dict:
        ticket = self.gate.begin("router")
        router = self.client.fetch_router()
        if router is None:
            # Keep the last good value; placeholders only before the first success.
            raise PreventUpdate
        if not self.gate.is_current("router", ticket) or not _should_apply(
            store, n_intervals
        ):
            logger.debug("Discarding superseded router fetch #%d", n_intervals)
            raise PreventUpdate
        return {"seq": n_intervals, "data": router_to_store(router)}

    def fetch_devices(self, n_intervals: int, store: Optional[Dict]) -> Dict:
        ticket = self.gate.begin("devices")
        devices = self.client.fetch_devices()
        if devices is None:
            raise PreventUpdate
        if not self.gate.is_current("devices", ticket) or not _should_apply(
            store, n_intervals
        ):
            logger.debug("Discarding superseded devices fetch #%d", n_intervals)
            raise PreventUpdate
        return {"seq": n_intervals, "data": devices.to_dict("records")}

    def fetch_features(self, n_intervals: int, store: Optional[Dict]) -> Dict:
        ticket = self.gate.begin("features")
        features, peers = self.client.fetch_features()
        if features is None:
            raise PreventUpdate
        if not self.gate.is_current("features", ticket) or not _should_apply(
            store, n_intervals
        ):
            logger.debug("Discarding superseded features fetch #%d", n_intervals)
            raise PreventUpdate
        return {"seq": n_intervals, "data": features_to_store(features, peers)}

    # ------------------------------------------------------------------ settings

    def mode_config(self, mode: Optional[str]) -> TopologyConfig:
        """Settings for a session's mode; the configured mode keeps env overrides."""
        config = self.pipeline.config
        if mode in PERFORMANCE_PRESETS and mode != config.performance_mode:
            return config.with_performance_mode(mode)
        return config

    def session_settings(
        self, mode: Optional[str], culling: Optional[List[str]]
    ) -> Dict[str, Any]:
        """Budget and culling for the mode picked in this browser session."""
        return {
            "max_visible_nodes": self.mode_config(mode).max_visible_nodes,
            "viewport_culling_enabled": "enabled" in (culling or []),
        }

    def performance_outputs(self, mode: Optional[str]) -> Tuple:
        """Culling default and polling intervals for a newly picked mode."""
        if mode not in PERFORMANCE_PRESETS:
            raise PreventUpdate
        config = self.mode_config(mode)
        intervals = config.source_intervals_ms
        return (
            ["enabled"] if config.viewport_culling_enabled else [],
            intervals["router"],
            intervals["devices"],
            intervals["features"],
        )

    # ------------------------------------------------------------------ view

    def _working_state(
        self, view_state: ViewState, memory_store: Optional[Dict[str, Any]]
    ) -> ViewState:
        """Copy of the view state with dragged positions over remembered defaults."""
        remembered = remembered_positions(memory_store, view_state.layout_epoch)
        return replace(view_state, positions={**remembered, **view_state.positions})

    def apply_gesture(
        self,
        triggered: Optional[str],
        inputs: RefreshInputs,
        pointer_batch: Optional[Dict[str, Any]],
        view_data: Optional[Dict[str, Any]],
        memory_store: Optional[Dict[str, Any]],
        mode: Optional[str] = None,
        culling: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Apply pointer input or a view button to the view state.

        This is the only writer of the view-state store. Pointer batches carry
        an increasing ``seq``; a batch at or below the last applied one is
        refused so a late reply never rolls a gesture back.
        """
        view_state = ViewState.from_dict(view_data)
        controller = self.pipeline.controller(view_state)
        config = self.pipeline.config

        if triggered == "pointer-events":
            if not pointer_batch or not pointer_batch.get("events"):
                raise PreventUpdate
            seq = int(pointer_batch.get("seq") or 0)
            if seq and seq <= view_state.pointer_seq:
                logger.debug(
                    "Refusing pointer batch #%d, already at #%d",
                    seq,
                    view_state.pointer_seq,
                )
                raise PreventUpdate

            # Hit-testing uses the frame as it was drawn when the events fired.
            working = self._working_state(view_state, memory_store)
            frame = self.pipeline.compute_frame(
                inputs, working, **self.session_settings(mode, culling)
            )
            view_state.retain(frame.known_ids)
            targets = self.pipeline.hit_targets(frame)

            rect = pointer_batch.get("rect") or {}
            origin = Point(float(rect.get("left", 0.0)), float(rect.get("top", 0.0)))
            for raw in pointer_batch["events"]:
                controller.handle_raw(raw, targets, origin)
            view_state.pointer_seq = max(seq, view_state.pointer_seq)
        elif triggered in ("zoom-in-button", "zoom-out-button"):
            center = Point(config.canvas_width / 2.0, config.canvas_height / 2.0)
            if triggered == "zoom-in-button":
                controller.zoom_in(center)
            else:
                controller.zoom_out(center)
        elif triggered == "reset-view-button":
            controller.reset_view()
        else:
            raise PreventUpdate

        return view_state.to_dict()

    def render_view(
        self,
        inputs: RefreshInputs,
        view_data: Optional[Dict[str, Any]],
        memory_store: Optional[Dict[str, Any]],
        mode: Optional[str] = None,
        culling: Optional[List[str]] = None,
    ):
        """
        Draw the current data under the current view state. Never writes the
        view state, so a refresh cannot undo a gesture in flight; computed
        default positions go to the layout-memory store instead.
        """
        view_state = ViewState.from_dict(view_data)
        working = self._working_state(view_state, memory_store)
        frame = self.pipeline.compute_frame(
            inputs, working, **self.session_settings(mode, culling)
        )

        memory = {
            "epoch": view_state.layout_epoch,
            "positions": {
                node_id: point.to_dict()
                for node_id, point in working.positions.items()
                if node_id not in view_state.positions
            },
        }
        selected = frame.node(working.selected_id) if working.selected_id else None
        return (
            self.pipeline.figure(frame, working, RenderStyle.for_mode(mode)),
            build_stats_panel(frame, inputs.router.model if inputs.router else None),
            build_details_panel(selected),
            memory,
        )

    # ------------------------------------------------------------------ wiring

    def register_callbacks(self):
        # One fetch callback per upstream source
        @self.app.callback(
            Output("router-store", "data"),
            Input("router-interval", "n_intervals"),
            State("router-store", "data"),
        )
        def refresh_router(n_intervals, store):
            return self.fetch_router(n_intervals or 0, store)

        @self.app.callback(
            Output("devices-store", "data"),
            Input("devices-interval", "n_intervals"),
            State("devices-store", "data"),
        )
        def refresh_devices(n_intervals, store):
            return self.fetch_devices(n_intervals or 0, store)

        @self.app.callback(
            Output("features-store", "data"),
            Input("features-interval", "n_intervals"),
            State("features-store", "data"),
        )
        def refresh_features(n_intervals, store):
            return self.fetch_features(n_intervals or 0, store)

        # Performance mode picks its culling default and polling rates
        @self.app.callback(
            Output("culling-toggle", "value"),
            Output("router-interval", "interval"),
            Output("devices-interval", "interval"),
            Output("features-interval", "interval"),
            Input("performance-mode", "value"),
            prevent_initial_call=True,
        )
        def apply_performance_mode(mode):
            return self.performance_outputs(mode)

        # Sole writer of the view state
        @self.app.callback(
            Output("view-state", "data"),
            Input("pointer-events", "data"),
            Input("zoom-in-button", "n_clicks"),
            Input("zoom-out-button", "n_clicks"),
            Input("reset-view-button", "n_clicks"),
            State("view-state", "data"),
            State("layout-memory", "data"),
            State("router-store", "data"),
            State("devices-store", "data"),
            State("features-store", "data"),
            State("performance-mode", "value"),
            State("culling-toggle", "value"),
            prevent_initial_call=True,
        )
        def update_view_state(
            pointer_batch,
            _zoom_in,
            _zoom_out,
            _reset,
            view_data,
            memory_store,
            router_store,
            devices_store,
            features_store,
            mode,
            culling,
        ):
            inputs = refresh_inputs_from_stores(
                router_store, devices_store, features_store
            )
            return self.apply_gesture(
                ctx.triggered_id,
                inputs,
                pointer_batch,
                view_data,
                memory_store,
                mode,
                culling,
            )

        # Figure and panels follow data and view state
        @self.app.callback(
            Output("topology-graph", "figure"),
            Output("network-stats", "children"),
            Output("node-details", "children"),
            Output("layout-memory", "data"),
            Input("router-store", "data"),
            Input("devices-store", "data"),
            Input("features-store", "data"),
            Input("view-state", "data"),
            Input("performance-mode", "value"),
            Input("culling-toggle", "value"),
            State("layout-memory", "data"),
        )
        def render_topology(
            router_store,
            devices_store,
            features_store,
            view_data,
            mode,
            culling,
            memory_store,
        ):
            inputs = refresh_inputs_from_stores(
                router_store, devices_store, features_store
            )
            return self.render_view(inputs, view_data, memory_store, mode, culling)

        # Releases the pointer bridge once its last batch is reflected
        self.app.clientside_callback(
            ClientsideFunction(namespace="topology", function_name="acknowledgePointer"),
            Output("pointer-ack", "data"),
            Input("view-state", "data"),
        )
