from typing import Any, Dict, List, Optional

from dash import dcc, html

from .config import PERFORMANCE_PRESETS, TopologyConfig
from .interaction import ViewState
from .models import Node, NodeKind
from .pipeline import RefreshInputs, TopologyPipeline
from .priority import Frame
from .render import format_speed


def empty_store() -> Dict[str, Any]:
    return {"seq": 0, "data": None}


def build_stats_panel(frame: Frame, router_model: Optional[str]) -> List[html.Div]:
    """Network statistics rows for the sidebar."""
    stats = frame.stats
    rows = [
        ("Devices", stats.total_devices),
        ("Online", stats.online_devices),
        ("Visible", stats.visible_devices),
        ("Wireless", stats.wireless_visible),
        ("Wired", stats.wired_visible),
        ("Network Nodes", stats.mesh_peers + 1),
        ("Router", router_model or "Unknown"),
    ]
    return [
        html.Div(
            f"Showing {stats.visible_devices} of {stats.total_devices} devices",
            className="stats-summary",
        )
    ] + [
        html.Div(
            [html.Span(f"{label}:"), html.Span(str(value), className="stats-value")],
            className="stats-row",
        )
        for label, value in rows
    ]


def build_details_panel(node: Optional[Node]) -> List[html.Div]:
    """Details of the selected node, or a hint when nothing is selected."""
    if node is None:
        return [html.Div("Click a node to see its details.", className="details-hint")]

    meta = node.metadata
    rows = [
        ("Status", "Online" if node.online else "Offline"),
        ("Connection", node.connection_medium.value.capitalize()),
    ]
    if meta.get("ipAddress"):
        rows.append(("IP Address", meta["ipAddress"]))
    if meta.get("macAddress"):
        rows.append(("MAC Address", meta["macAddress"]))
    if node.kind is NodeKind.CLIENT_DEVICE:
        rows.append(("Device Type", meta.get("deviceType") or "Unknown"))
        rows.append(("Download", format_speed(meta.get("downloadSpeed") or 0.0)))
        rows.append(("Upload", format_speed(meta.get("uploadSpeed") or 0.0)))

    return [html.Div(node.name, className="details-title")] + [
        html.Div(
            [html.Span(label), html.Span(str(value), className="details-value")],
            className="details-row",
        )
        for label, value in rows
    ]


class LayoutBuilder:
    """
    Constructs the Dash layout for the topology page: a sidebar with view
    controls and panels, the graph canvas, polling intervals and the
    session stores.
    """

    PERFORMANCE_LABELS = {
        "high": " High Performance",
        "balanced": " Balanced",
        "quality": " Quality",
    }

    def __init__(self, config: TopologyConfig, pipeline: TopologyPipeline):
        self.config = config
        self.pipeline = pipeline

    def create_layout(self, app) -> html.Div:
        """
        Create the complete Dash layout.

        Note: CSS and the pointer bridge script are loaded from the assets
        folder automatically by Dash.
        """
        return html.Div(
            children=[
                self._build_header(),
                self._build_main_area(),
                self._build_intervals(),
                self._build_state_stores(),
            ],
            style={"height": "100vh", "display": "flex", "flexDirection": "column"},
        )

    def _build_header(self) -> html.H2:
        return html.H2("📡 Interactive Network Topology", className="page-header")

    def _build_main_area(self) -> html.Div:
        return html.Div(
            children=[self._build_sidebar(), self._build_graph_area()],
            className="main-area",
        )

    def _build_sidebar(self) -> html.Div:
        return html.Div(
            id="sidebar-container",
            children=[
                self._build_performance_controls(),
                self._build_culling_toggle(),
                self._build_zoom_controls(),
                self._build_panel("Network Stats", "network-stats"),
                self._build_panel("Device Details", "node-details"),
                self._build_legend(),
            ],
            className="sidebar",
        )

    def _build_performance_controls(self) -> html.Div:
        return html.Div(
            [
                html.Label("Performance Mode:", className="sidebar-label"),
                dcc.RadioItems(
                    id="performance-mode",
                    options=[
                        {"label": self.PERFORMANCE_LABELS[mode], "value": mode}
                        for mode in PERFORMANCE_PRESETS
                    ],
                    value=self.config.performance_mode,
                    className="radio-control",
                ),
            ],
            className="control-group",
        )

    def _build_culling_toggle(self) -> html.Div:
        return html.Div(
            [
                html.Label("Virtualization:", className="sidebar-label"),
                dcc.Checklist(
                    id="culling-toggle",
                    options=[{"label": " Viewport culling", "value": "enabled"}],
                    value=["enabled"] if self.config.viewport_culling_enabled else [],
                    className="checkbox-control",
                ),
            ],
            className="control-group",
        )

    def _build_zoom_controls(self) -> html.Div:
        return html.Div(
            [
                html.Label("View:", className="sidebar-label"),
                html.Button("−", id="zoom-out-button", n_clicks=0, className="view-button"),
                html.Button("+", id="zoom-in-button", n_clicks=0, className="view-button"),
                html.Button(
                    "Reset View", id="reset-view-button", n_clicks=0, className="reset-button"
                ),
            ],
            className="control-group",
        )

    def _build_panel(self, title: str, panel_id: str) -> html.Div:
        return html.Div(
            [html.Label(title, className="sidebar-label"), html.Div(id=panel_id)],
            className="control-group panel",
        )

    def _build_legend(self) -> html.Div:
        return html.Div(
            [
                html.Label("Connection Types", className="sidebar-label"),
                html.Div([html.Span(className="legend-line wired"), "Ethernet"]),
                html.Div([html.Span(className="legend-line wireless"), "WiFi"]),
                html.Div([html.Span(className="legend-line mesh"), "AiMesh"]),
                html.Div("Drag nodes · drag background to pan", className="legend-hint"),
            ],
            className="control-group legend",
        )

    def _build_graph_area(self) -> html.Div:
        view_state = ViewState()
        frame = self.pipeline.compute_frame(RefreshInputs(), view_state)
        return html.Div(
            id="topology-canvas",
            children=[
                dcc.Graph(
                    id="topology-graph",
                    figure=self.pipeline.figure(frame, view_state),
                    config={
                        "displayModeBar": False,
                        "doubleClick": False,
                        "scrollZoom": False,
                        "staticPlot": False,
                    },
                    className="graph-container",
                )
            ],
            className="graph-area",
        )

    def _build_intervals(self) -> html.Div:
        return html.Div(
            children=[
                dcc.Interval(id=f"{source}-interval", interval=interval, n_intervals=0)
                for source, interval in self.config.source_intervals_ms.items()
            ],
            style={"display": "none"},
        )

    def _build_state_stores(self) -> html.Div:
        """Browser-memory stores: everything here resets on page reload."""
        return html.Div(
            children=[
                dcc.Store(id="router-store", data=empty_store()),
                dcc.Store(id="devices-store", data=empty_store()),
                dcc.Store(id="features-store", data=empty_store()),
                dcc.Store(id="view-state", data=ViewState().to_dict()),
                dcc.Store(id="pointer-events", data=None),
                # Default positions computed for the current layout epoch
                dcc.Store(id="layout-memory", data={"epoch": 0, "positions": {}}),
                dcc.Store(id="pointer-ack", data=0),
            ],
            style={"display": "none"},
        )
