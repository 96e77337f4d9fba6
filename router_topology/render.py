from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple

import plotly.graph_objects as go

from .interaction import ViewState
from .models import ConnectionMedium, DeviceCategory, Node, NodeKind
from .priority import Frame


class Icon(NamedTuple):
    name: str
    glyph: str


KIND_ICONS: Dict[NodeKind, Icon] = {
    NodeKind.ROOT_ROUTER: Icon("router", "📡"),
    NodeKind.MESH_PEER: Icon("wifi", "📶"),
}
DEVICE_ICONS: Dict[DeviceCategory, Icon] = {
    DeviceCategory.ROUTER: Icon("router", "📡"),
    DeviceCategory.SMARTPHONE: Icon("smartphone", "📱"),
    DeviceCategory.LAPTOP: Icon("laptop", "💻"),
    DeviceCategory.DESKTOP: Icon("monitor", "🖥"),
    DeviceCategory.TABLET: Icon("tablet", "📲"),
    DeviceCategory.TV: Icon("tv", "📺"),
    DeviceCategory.STORAGE: Icon("hard-drive", "💾"),
    DeviceCategory.PRINTER: Icon("printer", "🖨"),
    DeviceCategory.CAMERA: Icon("camera", "📷"),
    DeviceCategory.SPEAKER: Icon("speaker", "🔊"),
    DeviceCategory.GAMING: Icon("gamepad", "🎮"),
    DeviceCategory.OTHER: Icon("monitor", "🖥"),
}


def _check_icon_tables() -> None:
    missing = [k for k in NodeKind if k is not NodeKind.CLIENT_DEVICE and k not in KIND_ICONS]
    missing += [c for c in DeviceCategory if c not in DEVICE_ICONS]
    if missing:
        raise RuntimeError(f"Icon table has no entry for {missing}")


_check_icon_tables()


def icon_for(node: Node) -> Icon:
    if node.kind is NodeKind.CLIENT_DEVICE:
        return DEVICE_ICONS[node.device_category]
    return KIND_ICONS[node.kind]


def format_speed(mbps: float) -> str:
    if mbps >= 1000:
        return f"{mbps / 1000:.1f} Gbps"
    return f"{mbps:.1f} Mbps"


@dataclass
class RenderStyle:
    """Sizes are layout-space units; they scale with zoom."""

    root_radius: float = 30.0
    peer_radius: float = 26.0
    device_radius: float = 22.0
    badge_radius: float = 5.0
    ring_padding: float = 6.0
    max_label_length: int = 12
    offline_edge_opacity: float = 0.25
    show_labels: bool = True
    edge_width_scale: float = 1.0
    background: str = "#eef2ff"

    # High performance mode draws nodes at 80% size, thin edges, no labels.
    MODE_OVERRIDES = {
        "high": {
            "root_radius": 24.0,
            "peer_radius": 21.0,
            "device_radius": 17.6,
            "show_labels": False,
            "edge_width_scale": 0.5,
        },
    }

    NODE_FILLS = {
        "root": "#3b82f6",
        "mesh": "#8b5cf6",
        "offline": "#9ca3af",
        ConnectionMedium.WIRED: "#60a5fa",
        ConnectionMedium.WIRELESS: "#4ade80",
    }
    EDGE_STYLES = {
        ConnectionMedium.WIRED: ("#3b82f6", "solid", 4.0),
        ConnectionMedium.WIRELESS: ("#10b981", "dash", 3.0),
        ConnectionMedium.MESH_BACKHAUL: ("#8b5cf6", "solid", 4.0),
    }
    STATUS_COLORS = {True: "#4ade80", False: "#f87171"}
    SELECTION_COLOR = "#93c5fd"
    ACTIVITY_COLOR = "#22c55e"

    @classmethod
    def for_mode(cls, mode: Optional[str]) -> "RenderStyle":
        return cls(**cls.MODE_OVERRIDES.get(mode, {}))


@dataclass(frozen=True)
class EdgeLine:
    from_id: str
    to_id: str
    x0: float
    y0: float
    x1: float
    y1: float
    color: str
    dash: str
    width: float
    opacity: float


@dataclass(frozen=True)
class NodeGlyph:
    node_id: str
    x: float
    y: float
    radius: float
    icon: Icon
    fill: str
    label: str
    hover: str
    opacity: float


@dataclass(frozen=True)
class StatusBadge:
    node_id: str
    x: float
    y: float
    radius: float
    color: str


@dataclass(frozen=True)
class ActivityBadge:
    node_id: str
    x: float
    y: float
    radius: float
    color: str


@dataclass(frozen=True)
class SelectionRing:
    node_id: str
    x: float
    y: float
    radius: float
    color: str


@dataclass
class RenderList:
    edges: List[EdgeLine] = field(default_factory=list)
    nodes: List[NodeGlyph] = field(default_factory=list)
    status_badges: List[StatusBadge] = field(default_factory=list)
    activity_badges: List[ActivityBadge] = field(default_factory=list)
    selection: Optional[SelectionRing] = None


def _radius(node: Node, style: RenderStyle) -> float:
    if node.kind is NodeKind.ROOT_ROUTER:
        return style.root_radius
    if node.kind is NodeKind.MESH_PEER:
        return style.peer_radius
    return style.device_radius


def _fill(node: Node, style: RenderStyle) -> str:
    if node.kind is NodeKind.ROOT_ROUTER:
        return style.NODE_FILLS["root"]
    if node.kind is NodeKind.MESH_PEER:
        return style.NODE_FILLS["mesh"]
    if not node.online:
        return style.NODE_FILLS["offline"]
    return style.NODE_FILLS[node.connection_medium]


def _label(name: str, max_length: int) -> str:
    return name if len(name) <= max_length else f"{name[:max_length]}..."


def _hover_text(node: Node) -> str:
    meta = node.metadata
    lines = [f"<b>{node.name}</b>"]
    if meta.get("ipAddress"):
        lines.append(f"IP: {meta['ipAddress']}")
    if meta.get("macAddress"):
        lines.append(f"MAC: {meta['macAddress']}")
    if node.is_device:
        lines.append(
            f"Speed: ↓ {format_speed(meta.get('downloadSpeed') or 0.0)}"
            f" | ↑ {format_speed(meta.get('uploadSpeed') or 0.0)}"
        )
    lines.append(
        f"{'Online' if node.online else 'Offline'} · "
        f"{node.connection_medium.value.upper()}"
    )
    return "<br>".join(lines)


def render_frame(
    frame: Frame, view_state: ViewState, style: Optional[RenderStyle] = None
) -> RenderList:
    """Map a frame plus selection and transform to screen-space primitives."""
    style = style or RenderStyle()
    zoom = view_state.zoom
    result = RenderList()

    screen: Dict[str, Tuple[float, float]] = {}
    by_id: Dict[str, Node] = {}
    for node in frame.nodes:
        if node.position is None:
            continue
        point = view_state.layout_to_screen(node.position)
        screen[node.id] = (point.x, point.y)
        by_id[node.id] = node

    for edge in frame.edges:
        if edge.from_id not in screen or edge.to_id not in screen:
            continue
        color, dash, width = style.EDGE_STYLES[edge.medium]
        target_online = by_id[edge.to_id].online
        x0, y0 = screen[edge.from_id]
        x1, y1 = screen[edge.to_id]
        result.edges.append(
            EdgeLine(
                from_id=edge.from_id,
                to_id=edge.to_id,
                x0=x0,
                y0=y0,
                x1=x1,
                y1=y1,
                color=color,
                dash=dash,
                width=width * style.edge_width_scale * zoom,
                opacity=1.0 if target_online else style.offline_edge_opacity,
            )
        )

    for node_id, (x, y) in screen.items():
        node = by_id[node_id]
        radius = _radius(node, style) * zoom
        result.nodes.append(
            NodeGlyph(
                node_id=node_id,
                x=x,
                y=y,
                radius=radius,
                icon=icon_for(node),
                fill=_fill(node, style),
                label=(
                    _label(node.name, style.max_label_length)
                    if style.show_labels
                    else ""
                ),
                hover=_hover_text(node),
                opacity=1.0 if node.online else 0.6,
            )
        )
        offset = radius * 0.75
        result.status_badges.append(
            StatusBadge(
                node_id=node_id,
                x=x + offset,
                y=y - offset,
                radius=style.badge_radius * zoom,
                color=style.STATUS_COLORS[node.online],
            )
        )
        if node.online and (node.metadata.get("downloadSpeed") or 0) > 0:
            result.activity_badges.append(
                ActivityBadge(
                    node_id=node_id,
                    x=x - offset,
                    y=y + offset,
                    radius=style.badge_radius * zoom,
                    color=style.ACTIVITY_COLOR,
                )
            )
        if node_id == view_state.selected_id:
            result.selection = SelectionRing(
                node_id=node_id,
                x=x,
                y=y,
                radius=radius + style.ring_padding * zoom,
                color=style.SELECTION_COLOR,
            )

    return result


def _edge_traces(edges: List[EdgeLine]) -> List[go.Scatter]:
    """One line trace per distinct stroke style."""
    groups: Dict[Tuple[str, str, float, float], Tuple[list, list]] = {}
    for edge in edges:
        xs, ys = groups.setdefault(
            (edge.color, edge.dash, edge.width, edge.opacity), ([], [])
        )
        xs.extend([edge.x0, edge.x1, None])
        ys.extend([edge.y0, edge.y1, None])

    return [
        go.Scatter(
            x=xs,
            y=ys,
            mode="lines",
            line=dict(color=color, dash=dash, width=width),
            opacity=opacity,
            hoverinfo="skip",
            showlegend=False,
        )
        for (color, dash, width, opacity), (xs, ys) in groups.items()
    ]


def _badge_trace(badges, name: str) -> go.Scatter:
    return go.Scatter(
        x=[b.x for b in badges],
        y=[b.y for b in badges],
        mode="markers",
        marker=dict(
            size=[b.radius * 2 for b in badges],
            color=[b.color for b in badges],
            line=dict(color="white", width=1.5),
        ),
        hoverinfo="skip",
        name=name,
        showlegend=False,
    )


def to_figure(render_list: RenderList, width: int, height: int) -> go.Figure:
    """
    Build the Plotly figure. Axes are pinned to the canvas in pixels (y
    pointing down) so screen coordinates map 1:1 onto the plot area.
    """
    nodes = render_list.nodes
    node_trace = go.Scatter(
        x=[n.x for n in nodes],
        y=[n.y for n in nodes],
        mode="markers+text",
        text=[n.icon.glyph for n in nodes],
        textposition="middle center",
        customdata=[n.node_id for n in nodes],
        hovertext=[n.hover for n in nodes],
        hoverinfo="text",
        marker=dict(
            size=[n.radius * 2 for n in nodes],
            sizemode="diameter",
            color=[n.fill for n in nodes],
            opacity=[n.opacity for n in nodes],
            line=dict(color="white", width=2),
        ),
        showlegend=False,
    )

    shapes = []
    if render_list.selection is not None:
        ring = render_list.selection
        shapes.append(
            dict(
                type="circle",
                xref="x",
                yref="y",
                x0=ring.x - ring.radius,
                x1=ring.x + ring.radius,
                y0=ring.y - ring.radius,
                y1=ring.y + ring.radius,
                line=dict(color=ring.color, width=4),
                layer="below",
            )
        )

    annotations = [
        dict(
            x=n.x,
            y=n.y + n.radius + 10,
            text=n.label,
            showarrow=False,
            font=dict(size=11, color="#374151", family="Inter, sans-serif"),
            yanchor="top",
            opacity=n.opacity,
        )
        for n in nodes
        if n.label
    ]

    data = _edge_traces(render_list.edges) + [node_trace]
    if render_list.status_badges:
        data.append(_badge_trace(render_list.status_badges, "status"))
    if render_list.activity_badges:
        data.append(_badge_trace(render_list.activity_badges, "activity"))

    fig = go.Figure(data=data)
    fig.update_layout(
        width=width,
        height=height,
        clickmode="event",
        dragmode=False,
        uirevision="topology",
        margin=dict(l=0, r=0, t=0, b=0),
        plot_bgcolor=RenderStyle.background,
        paper_bgcolor=RenderStyle.background,
        hovermode="closest",
        xaxis=dict(
            showgrid=False,
            zeroline=False,
            showticklabels=False,
            range=[0, width],
            fixedrange=True,
        ),
        yaxis=dict(
            showgrid=False,
            zeroline=False,
            showticklabels=False,
            range=[height, 0],
            fixedrange=True,
        ),
        shapes=shapes,
        annotations=annotations,
    )
    return fig
