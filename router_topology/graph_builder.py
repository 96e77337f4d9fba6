import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import pandas as pd

from .data_source import devices_frame
from .models import (
    ROOT_ID,
    ConnectionMedium,
    DeviceCategory,
    Edge,
    FeatureFlags,
    Node,
    NodeKind,
    Point,
    RouterDescriptor,
    TopologySnapshot,
)

logger = logging.getLogger(__name__)

DeviceRecords = Union[pd.DataFrame, Sequence[Dict[str, Any]], None]


def mesh_node_id(peer: str) -> str:
    return f"mesh:{peer}"


def device_node_id(raw_id: Any, index: int) -> str:
    """Stable id for a device record, or a positional one when it has none.

    Positional ids follow the record's place in the upstream list, so they do
    not survive a reordering of that list.
    """
    if raw_id is None or (isinstance(raw_id, float) and raw_id != raw_id):
        return f"device-idx-{index}"
    if isinstance(raw_id, float) and raw_id.is_integer():
        raw_id = int(raw_id)
    text = str(raw_id).strip()
    return f"device:{text}" if text else f"device-idx-{index}"


class GraphModelBuilder:
    """
    Converts raw router, mesh-peer and device records into typed nodes and
    edges. Missing upstream data never raises: the root falls back to a
    placeholder and the device list to empty.
    """

    PLACEHOLDER_ROUTER = RouterDescriptor(model="Router", ip_address="0.0.0.0")
    WIRED_CONNECTION_TYPES = {"wired", "ethernet", "lan"}
    CATEGORY_ALIASES = {
        "smartphone": DeviceCategory.SMARTPHONE,
        "phone": DeviceCategory.SMARTPHONE,
        "mobile": DeviceCategory.SMARTPHONE,
        "laptop": DeviceCategory.LAPTOP,
        "computer": DeviceCategory.LAPTOP,
        "desktop": DeviceCategory.DESKTOP,
        "pc": DeviceCategory.DESKTOP,
        "monitor": DeviceCategory.DESKTOP,
        "tablet": DeviceCategory.TABLET,
        "tv": DeviceCategory.TV,
        "television": DeviceCategory.TV,
        "smart_tv": DeviceCategory.TV,
        "nas": DeviceCategory.STORAGE,
        "storage": DeviceCategory.STORAGE,
        "printer": DeviceCategory.PRINTER,
        "camera": DeviceCategory.CAMERA,
        "speaker": DeviceCategory.SPEAKER,
        "gaming": DeviceCategory.GAMING,
        "console": DeviceCategory.GAMING,
        "router": DeviceCategory.ROUTER,
    }

    def connection_medium(self, connection_type: Optional[str]) -> ConnectionMedium:
        """Wired for wired/ethernet/lan or a missing type, wireless otherwise."""
        if not connection_type:
            return ConnectionMedium.WIRED
        if connection_type.strip().lower() in self.WIRED_CONNECTION_TYPES:
            return ConnectionMedium.WIRED
        return ConnectionMedium.WIRELESS

    def device_category(self, device_type: Optional[str]) -> DeviceCategory:
        if not device_type:
            return DeviceCategory.OTHER
        return self.CATEGORY_ALIASES.get(
            device_type.strip().lower(), DeviceCategory.OTHER
        )

    def _build_root(
        self, router: Optional[RouterDescriptor], positions: Mapping[str, Point]
    ) -> Node:
        descriptor = router or self.PLACEHOLDER_ROUTER
        return Node(
            id=ROOT_ID,
            name=descriptor.model or self.PLACEHOLDER_ROUTER.model,
            kind=NodeKind.ROOT_ROUTER,
            online=descriptor.is_online,
            connection_medium=ConnectionMedium.WIRED,
            device_category=DeviceCategory.ROUTER,
            position=positions.get(ROOT_ID),
            metadata={
                "ipAddress": descriptor.ip_address
                or self.PLACEHOLDER_ROUTER.ip_address,
                "placeholder": router is None,
            },
        )

    def _build_mesh_peers(
        self, peers: Sequence[str], positions: Mapping[str, Point]
    ) -> List[Node]:
        nodes = []
        seen = set()
        for peer in peers:
            if peer in seen:
                logger.warning("Duplicate mesh peer %s ignored", peer)
                continue
            seen.add(peer)
            node_id = mesh_node_id(peer)
            nodes.append(
                Node(
                    id=node_id,
                    name=f"AiMesh Node {len(nodes) + 1}",
                    kind=NodeKind.MESH_PEER,
                    online=True,
                    connection_medium=ConnectionMedium.MESH_BACKHAUL,
                    device_category=DeviceCategory.ROUTER,
                    position=positions.get(node_id),
                    metadata={"macAddress": peer},
                )
            )
        return nodes

    def _build_device(
        self, index: int, row: Dict[str, Any], positions: Mapping[str, Point]
    ) -> Node:
        node_id = device_node_id(row.get("id"), index)
        return Node(
            id=node_id,
            name=row.get("name") or row.get("hostname") or f"Device {index + 1}",
            kind=NodeKind.CLIENT_DEVICE,
            online=bool(row.get("isOnline", True)),
            connection_medium=self.connection_medium(row.get("connectionType")),
            device_category=self.device_category(row.get("deviceType")),
            position=positions.get(node_id),
            metadata={
                "ipAddress": row.get("ipAddress"),
                "macAddress": row.get("macAddress"),
                "deviceType": row.get("deviceType"),
                "connectionType": row.get("connectionType"),
                "downloadSpeed": float(row.get("downloadSpeed") or 0.0),
                "uploadSpeed": float(row.get("uploadSpeed") or 0.0),
                "aimeshNodeMac": row.get("aimeshNodeMac"),
            },
        )

    def build(
        self,
        router: Optional[RouterDescriptor] = None,
        devices: DeviceRecords = None,
        mesh_peers: Optional[Sequence[str]] = None,
        features: Optional[FeatureFlags] = None,
        saved_positions: Optional[Mapping[str, Point]] = None,
    ) -> TopologySnapshot:
        """
        Build the node/edge snapshot for one refresh.

        Args:
            router: Root router descriptor, or None when not fetched yet
            devices: Ordered client devices (frame or list of records)
            mesh_peers: Ordered mesh-peer identifiers
            features: Feature flags; mesh peers are only emitted when
                ``mesh_is_active`` is set
            saved_positions: Remembered positions keyed by node id

        Returns:
            TopologySnapshot with exactly one root node
        """
        positions = saved_positions or {}
        root = self._build_root(router, positions)
        nodes: List[Node] = [root]
        edges: List[Edge] = []

        mesh_enabled = bool(features and features.mesh_is_active)
        peer_nodes = self._build_mesh_peers(
            (mesh_peers or []) if mesh_enabled else [], positions
        )
        for peer in peer_nodes:
            nodes.append(peer)
            edges.append(Edge(ROOT_ID, peer.id, ConnectionMedium.MESH_BACKHAUL))
        peer_ids = {peer.id for peer in peer_nodes}

        if devices is None:
            df = devices_frame([])
        elif isinstance(devices, pd.DataFrame):
            df = devices
        else:
            df = devices_frame(list(devices))

        seen_ids = {node.id for node in nodes}
        for index, row in enumerate(df.to_dict("records")):
            device = self._build_device(index, row, positions)
            if device.id in seen_ids:
                logger.warning("Dropping device with duplicate id %s", device.id)
                continue
            seen_ids.add(device.id)
            nodes.append(device)

            parent_id = ROOT_ID
            attached_to = row.get("aimeshNodeMac")
            if attached_to and mesh_node_id(str(attached_to)) in peer_ids:
                parent_id = mesh_node_id(str(attached_to))
            edges.append(Edge(parent_id, device.id, device.connection_medium))

        logger.debug(
            "Built snapshot: %d mesh peers, %d devices, %d edges",
            len(peer_nodes),
            len(nodes) - 1 - len(peer_nodes),
            len(edges),
        )
        return TopologySnapshot(nodes=nodes, edges=edges)
