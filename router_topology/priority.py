import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable, List, Optional, Set

import networkx as nx

from .models import ConnectionMedium, Edge, Node, NodeKind, Rect, TopologySnapshot

logger = logging.getLogger(__name__)


def priority_score(node: Node) -> float:
    """Aggregate traffic; derived on every refresh and never stored.

    Only client devices are ranked, so the kind and online status act as
    eligibility gates in ``PriorityFilter`` rather than score terms.
    """
    if node.kind is not NodeKind.CLIENT_DEVICE:
        return 0.0
    download = node.metadata.get("downloadSpeed") or 0.0
    upload = node.metadata.get("uploadSpeed") or 0.0
    return float(download) + float(upload)


@dataclass
class BudgetResult:
    snapshot: TopologySnapshot
    dropped_ids: List[str] = field(default_factory=list)
    total_devices: int = 0
    online_devices: int = 0
    under_pressure: bool = False


@dataclass
class FrameStats:
    total_devices: int = 0
    online_devices: int = 0
    visible_devices: int = 0
    hidden_devices: int = 0
    dropped_devices: int = 0
    wireless_visible: int = 0
    wired_visible: int = 0
    mesh_peers: int = 0

    def to_dict(self):
        return asdict(self)


@dataclass
class Frame:
    """Rendered node/edge set for one refresh or gesture."""

    nodes: List[Node]
    edges: List[Edge]
    hidden_ids: List[str] = field(default_factory=list)
    dropped_ids: List[str] = field(default_factory=list)
    stats: FrameStats = field(default_factory=FrameStats)

    @property
    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    @property
    def known_ids(self) -> List[str]:
        """Every node in the model: visible, hidden by the viewport or over budget."""
        return self.node_ids + self.hidden_ids + self.dropped_ids

    def node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


def _edges_within(graph: nx.DiGraph, keep: Iterable[str]) -> List[Edge]:
    """Edges of the graph whose two endpoints are both kept.

    Walks the full graph rather than a subgraph view so the order follows
    node insertion order, not set iteration order.
    """
    keep = set(keep)
    return [
        Edge(u, v, medium)
        for u, v, medium in graph.edges(data="medium")
        if u in keep and v in keep
    ]


class PriorityFilter:
    """
    Enforces the visible-node budget and, optionally, a viewport rectangle.
    The budget applies to client devices only; root and mesh peers are
    never dropped, and root is never hidden.
    """

    def __init__(
        self,
        max_visible_nodes: int,
        reserved_slots: int = 1,
        viewport_culling_enabled: bool = False,
    ):
        self.max_visible_nodes = max_visible_nodes
        self.reserved_slots = reserved_slots
        self.viewport_culling_enabled = viewport_culling_enabled

    @property
    def device_slots(self) -> int:
        return max(0, self.max_visible_nodes - self.reserved_slots)

    def rank(self, devices: List[Node]) -> List[Node]:
        """Descending score; sorted() is stable so first-seen wins ties."""
        return sorted(devices, key=lambda node: -priority_score(node))

    def apply_budget(self, snapshot: TopologySnapshot) -> BudgetResult:
        graph = snapshot.to_networkx()
        orphaned = len(snapshot.edges) - graph.number_of_edges()
        if orphaned:
            logger.warning(
                "Dropped %d edge(s) referencing nodes absent from the snapshot",
                orphaned,
            )

        devices = snapshot.devices
        online = [node for node in devices if node.online]
        under_pressure = len(devices) > self.device_slots

        ranked = self.rank(devices)
        if under_pressure:
            kept_devices = [node for node in ranked if node.online][
                : self.device_slots
            ]
        else:
            kept_devices = ranked

        kept_device_ids = {node.id for node in kept_devices}
        dropped_ids = [node.id for node in devices if node.id not in kept_device_ids]

        structural = [node for node in snapshot.nodes if not node.is_device]
        kept_nodes = structural + kept_devices
        kept_edges = _edges_within(graph, [node.id for node in kept_nodes])

        if dropped_ids:
            logger.debug(
                "Budget of %d node(s) dropped %d of %d devices",
                self.max_visible_nodes,
                len(dropped_ids),
                len(devices),
            )

        return BudgetResult(
            snapshot=TopologySnapshot(nodes=kept_nodes, edges=kept_edges),
            dropped_ids=dropped_ids,
            total_devices=len(devices),
            online_devices=len(online),
            under_pressure=under_pressure,
        )

    def _is_visible(self, node: Node, viewport: Rect) -> bool:
        if node.is_root:
            return True
        return node.position is not None and viewport.contains(node.position)

    def cull_viewport(
        self, budget: BudgetResult, viewport: Optional[Rect] = None
    ) -> Frame:
        """Hide positioned nodes outside the viewport; hidden nodes stay in the model."""
        snapshot = budget.snapshot
        if self.viewport_culling_enabled and viewport is not None:
            visible = [n for n in snapshot.nodes if self._is_visible(n, viewport)]
        else:
            visible = list(snapshot.nodes)

        visible_ids: Set[str] = {node.id for node in visible}
        hidden_ids = [n.id for n in snapshot.nodes if n.id not in visible_ids]
        edges = _edges_within(snapshot.to_networkx(), visible_ids)

        visible_devices = [node for node in visible if node.is_device]
        stats = FrameStats(
            total_devices=budget.total_devices,
            online_devices=budget.online_devices,
            visible_devices=len(visible_devices),
            hidden_devices=sum(
                1 for n in snapshot.devices if n.id not in visible_ids
            ),
            dropped_devices=len(budget.dropped_ids),
            wireless_visible=sum(
                1
                for n in visible_devices
                if n.connection_medium is ConnectionMedium.WIRELESS
            ),
            wired_visible=sum(
                1
                for n in visible_devices
                if n.connection_medium is ConnectionMedium.WIRED
            ),
            mesh_peers=len(snapshot.mesh_peers),
        )
        return Frame(
            nodes=visible,
            edges=edges,
            hidden_ids=hidden_ids,
            dropped_ids=list(budget.dropped_ids),
            stats=stats,
        )

    def apply(
        self, snapshot: TopologySnapshot, viewport: Optional[Rect] = None
    ) -> Frame:
        """Budget then cull an already positioned snapshot."""
        return self.cull_viewport(self.apply_budget(snapshot), viewport)
