from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

import networkx as nx

ROOT_ID = "root"


class NodeKind(str, Enum):
    ROOT_ROUTER = "root-router"
    MESH_PEER = "mesh-peer"
    CLIENT_DEVICE = "client-device"


class ConnectionMedium(str, Enum):
    WIRED = "wired"
    WIRELESS = "wireless"
    MESH_BACKHAUL = "mesh-backhaul"


class DeviceCategory(str, Enum):
    """Icon category of a client device; routers and peers use ROUTER."""

    ROUTER = "router"
    SMARTPHONE = "smartphone"
    LAPTOP = "laptop"
    DESKTOP = "desktop"
    TABLET = "tablet"
    TV = "tv"
    STORAGE = "storage"
    PRINTER = "printer"
    CAMERA = "camera"
    SPEAKER = "speaker"
    GAMING = "gaming"
    OTHER = "other"


@dataclass(frozen=True)
class Point:
    x: float
    y: float

    def __add__(self, other: "Point") -> "Point":
        return Point(self.x + other.x, self.y + other.y)

    def __sub__(self, other: "Point") -> "Point":
        return Point(self.x - other.x, self.y - other.y)

    def scaled(self, factor: float) -> "Point":
        return Point(self.x * factor, self.y * factor)

    def distance_to(self, other: "Point") -> float:
        return ((self.x - other.x) ** 2 + (self.y - other.y) ** 2) ** 0.5

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Point":
        return cls(float(data["x"]), float(data["y"]))


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle in layout-space, bounds inclusive."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def center(self) -> Point:
        return Point((self.min_x + self.max_x) / 2, (self.min_y + self.max_y) / 2)

    def contains(self, point: Point) -> bool:
        return (
            self.min_x <= point.x <= self.max_x
            and self.min_y <= point.y <= self.max_y
        )

    def clamp(self, point: Point) -> Point:
        return Point(
            min(max(point.x, self.min_x), self.max_x),
            min(max(point.y, self.min_y), self.max_y),
        )

    def inset(self, margin: float) -> "Rect":
        return Rect(
            self.min_x + margin,
            self.min_y + margin,
            self.max_x - margin,
            self.max_y - margin,
        )


@dataclass(frozen=True)
class Node:
    """One router, mesh peer, or client device in a topology snapshot."""

    id: str
    name: str
    kind: NodeKind
    online: bool = True
    connection_medium: ConnectionMedium = ConnectionMedium.WIRED
    device_category: DeviceCategory = DeviceCategory.OTHER
    position: Optional[Point] = None
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_root(self) -> bool:
        return self.kind is NodeKind.ROOT_ROUTER

    @property
    def is_device(self) -> bool:
        return self.kind is NodeKind.CLIENT_DEVICE


@dataclass(frozen=True)
class Edge:
    from_id: str
    to_id: str
    medium: ConnectionMedium


@dataclass(frozen=True)
class RouterDescriptor:
    model: str
    ip_address: str
    is_online: bool = True


@dataclass(frozen=True)
class FeatureFlags:
    mesh_is_active: bool = False


@dataclass
class TopologySnapshot:
    """Full node/edge set rebuilt on every refresh."""

    nodes: List[Node]
    edges: List[Edge]

    def __post_init__(self):
        self._index = {node.id: node for node in self.nodes}

    def __iter__(self) -> Iterator[Node]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    @property
    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    @property
    def root(self) -> Node:
        return self._index[ROOT_ID]

    @property
    def mesh_peers(self) -> List[Node]:
        return [n for n in self.nodes if n.kind is NodeKind.MESH_PEER]

    @property
    def devices(self) -> List[Node]:
        return [n for n in self.nodes if n.kind is NodeKind.CLIENT_DEVICE]

    def node(self, node_id: str) -> Optional[Node]:
        return self._index.get(node_id)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._index

    def to_networkx(self) -> nx.DiGraph:
        """Build a DiGraph; edges whose endpoints are missing are not added."""
        G = nx.DiGraph()
        for order, node in enumerate(self.nodes):
            G.add_node(node.id, node=node, order=order)
        for edge in self.edges:
            if edge.from_id in G and edge.to_id in G:
                G.add_edge(edge.from_id, edge.to_id, medium=edge.medium)
        return G
