from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np

from .models import ConnectionMedium, Node, NodeKind, Point, Rect


@dataclass
class LayoutConfig:
    """Configuration for ring layout parameters (layout-space units)."""

    canvas_width: float = 900.0
    canvas_height: float = 700.0
    margin: float = 40.0  # Nodes never sit closer than this to the canvas edge
    mesh_ring_radius: float = 110.0
    wired_radius: float = 170.0
    wireless_radius: float = 250.0
    jitter_step: float = 15.0
    jitter_cycle: int = 3


class LayoutEngine:
    """
    Deterministic ring layout: root at the centre, mesh peers on a fixed
    inner ring, client devices on a wired or wireless band around it.
    Nodes with a remembered position keep it verbatim.
    """

    def __init__(self, config: Optional[LayoutConfig] = None):
        self.config = config or LayoutConfig()
        self.canvas = Rect(0.0, 0.0, self.config.canvas_width, self.config.canvas_height)
        self.bounds = self.canvas.inset(self.config.margin)
        self.center = self.canvas.center

    def clamp(self, point: Point) -> Point:
        """Clamp a layout-space point into the canvas bounds."""
        return self.bounds.clamp(point)

    def _ring_angles(self, count: int) -> np.ndarray:
        # index / count * 2pi
        return np.linspace(0.0, 2 * np.pi, count, endpoint=False)

    def _place_on_ring(self, angles: np.ndarray, radii: np.ndarray) -> List[Point]:
        xs = np.clip(
            self.center.x + np.cos(angles) * radii,
            self.bounds.min_x,
            self.bounds.max_x,
        )
        ys = np.clip(
            self.center.y + np.sin(angles) * radii,
            self.bounds.min_y,
            self.bounds.max_y,
        )
        return [Point(float(x), float(y)) for x, y in zip(xs, ys)]

    def _device_radius(self, medium: ConnectionMedium, index: int) -> float:
        base = (
            self.config.wireless_radius
            if medium is ConnectionMedium.WIRELESS
            else self.config.wired_radius
        )
        jitter = (index % self.config.jitter_cycle) * self.config.jitter_step
        return base + jitter

    def default_positions(self, nodes: Sequence[Node]) -> Dict[str, Point]:
        """Compute ring positions for every node, ignoring remembered ones."""
        peers = [n for n in nodes if n.kind is NodeKind.MESH_PEER]
        devices = [n for n in nodes if n.kind is NodeKind.CLIENT_DEVICE]
        positions: Dict[str, Point] = {}

        for node in nodes:
            if node.kind is NodeKind.ROOT_ROUTER:
                positions[node.id] = self.clamp(self.center)

        if peers:
            angles = self._ring_angles(len(peers))
            radii = np.full(len(peers), self.config.mesh_ring_radius)
            for node, point in zip(peers, self._place_on_ring(angles, radii)):
                positions[node.id] = point

        if devices:
            angles = self._ring_angles(len(devices))
            radii = np.array(
                [
                    self._device_radius(node.connection_medium, index)
                    for index, node in enumerate(devices)
                ]
            )
            for node, point in zip(devices, self._place_on_ring(angles, radii)):
                positions[node.id] = point

        return positions

    def assign_positions(
        self,
        nodes: Sequence[Node],
        remembered: Optional[Mapping[str, Point]] = None,
    ) -> Dict[str, Point]:
        """
        Position every node. A remembered position (or one already attached
        to the node) wins over the ring rule; ring indices still count every
        node so that dragging one node never shifts its neighbours.
        """
        remembered = remembered or {}
        defaults = self.default_positions(nodes)
        positions = {}
        for node in nodes:
            fixed = remembered.get(node.id) or node.position
            positions[node.id] = fixed if fixed is not None else defaults[node.id]
        return positions

    def apply(
        self,
        nodes: Sequence[Node],
        remembered: Optional[Mapping[str, Point]] = None,
    ) -> List[Node]:
        positions = self.assign_positions(nodes, remembered)
        return [replace(node, position=positions[node.id]) for node in nodes]
