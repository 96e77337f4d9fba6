import math

import pandas as pd

from conftest import make_device
from router_topology.graph_builder import GraphModelBuilder, device_node_id, mesh_node_id
from router_topology.models import (
    ROOT_ID,
    ConnectionMedium,
    DeviceCategory,
    FeatureFlags,
    NodeKind,
    Point,
)


# =============================================================================
# IDS
# =============================================================================


class TestNodeIds:
    def test_device_id_prefix(self):
        assert device_node_id("abc", 0) == "device:abc"

    def test_integral_float_id_is_normalized(self):
        assert device_node_id(7.0, 3) == "device:7"

    def test_missing_id_falls_back_to_position(self):
        assert device_node_id(None, 4) == "device-idx-4"
        assert device_node_id(math.nan, 2) == "device-idx-2"
        assert device_node_id("  ", 1) == "device-idx-1"

    def test_mesh_id(self):
        assert mesh_node_id("aa:bb") == "mesh:aa:bb"


# =============================================================================
# PLACEHOLDERS
# =============================================================================


class TestPlaceholders:
    def test_nothing_fetched_yields_root_only(self, builder):
        snapshot = builder.build()
        assert snapshot.node_ids == [ROOT_ID]
        assert snapshot.edges == []
        assert snapshot.root.name == "Router"
        assert snapshot.root.metadata["ipAddress"] == "0.0.0.0"
        assert snapshot.root.metadata["placeholder"] is True

    def test_router_descriptor_names_the_root(self, builder, router):
        root = builder.build(router=router).root
        assert root.name == "RT-AX88U"
        assert root.kind is NodeKind.ROOT_ROUTER
        assert root.metadata["placeholder"] is False

    def test_missing_fields_get_defaults(self, builder):
        snapshot = builder.build(devices=[{"id": "x"}])
        device = snapshot.node("device:x")
        assert device.online is True
        assert device.connection_medium is ConnectionMedium.WIRED
        assert device.device_category is DeviceCategory.OTHER
        assert device.metadata["downloadSpeed"] == 0.0
        assert device.name == "Device 1"


# =============================================================================
# STRUCTURE
# =============================================================================


class TestStructure:
    def test_exactly_one_root(self, snapshot):
        roots = [n for n in snapshot if n.kind is NodeKind.ROOT_ROUTER]
        assert len(roots) == 1

    def test_order_is_root_peers_devices(self, snapshot):
        kinds = [n.kind for n in snapshot]
        assert kinds[0] is NodeKind.ROOT_ROUTER
        assert kinds[1] is NodeKind.MESH_PEER
        assert all(k is NodeKind.CLIENT_DEVICE for k in kinds[2:])
        assert [n.id for n in snapshot.devices] == [
            "device:1",
            "device:2",
            "device:3",
            "device:4",
            "device:5",
        ]

    def test_every_edge_endpoint_exists(self, snapshot):
        ids = set(snapshot.node_ids)
        for edge in snapshot.edges:
            assert edge.from_id in ids
            assert edge.to_id in ids

    def test_mesh_peer_hangs_off_root(self, snapshot):
        peer_edges = [e for e in snapshot.edges if e.to_id.startswith("mesh:")]
        assert len(peer_edges) == 1
        assert peer_edges[0].from_id == ROOT_ID
        assert peer_edges[0].medium is ConnectionMedium.MESH_BACKHAUL

    def test_mesh_peers_need_active_mesh(self, builder):
        snapshot = builder.build(
            mesh_peers=["aa"], features=FeatureFlags(mesh_is_active=False)
        )
        assert snapshot.mesh_peers == []
        assert builder.build(mesh_peers=["aa"]).mesh_peers == []

    def test_duplicate_mesh_peers_are_dropped(self, builder, caplog):
        snapshot = builder.build(
            mesh_peers=["aa", "aa", "bb"], features=FeatureFlags(mesh_is_active=True)
        )
        assert [n.name for n in snapshot.mesh_peers] == ["AiMesh Node 1", "AiMesh Node 2"]
        assert "Duplicate mesh peer" in caplog.text

    def test_device_attached_to_mesh_peer(self, builder):
        snapshot = builder.build(
            devices=[make_device(1, aimeshNodeMac="aa")],
            mesh_peers=["aa"],
            features=FeatureFlags(mesh_is_active=True),
        )
        edge = [e for e in snapshot.edges if e.to_id == "device:1"][0]
        assert edge.from_id == "mesh:aa"
        assert edge.medium is ConnectionMedium.WIRELESS

    def test_unknown_mesh_parent_falls_back_to_root(self, builder):
        snapshot = builder.build(devices=[make_device(1, aimeshNodeMac="zz")])
        edge = [e for e in snapshot.edges if e.to_id == "device:1"][0]
        assert edge.from_id == ROOT_ID

    def test_duplicate_device_ids_keep_first(self, builder, caplog):
        snapshot = builder.build(
            devices=[make_device(1, download=1.0), make_device(1, download=2.0)]
        )
        assert len(snapshot.devices) == 1
        assert snapshot.devices[0].metadata["downloadSpeed"] == 1.0
        assert len(snapshot.edges) == 1
        assert "duplicate id" in caplog.text

    def test_accepts_dataframe(self, builder):
        df = pd.DataFrame([{"id": 1, "name": "tv", "connectionType": "wifi"}])
        device = builder.build(devices=df).node("device:1")
        assert device.connection_medium is ConnectionMedium.WIRELESS


# =============================================================================
# CLASSIFICATION
# =============================================================================


class TestClassification:
    def test_connection_medium(self):
        builder = GraphModelBuilder()
        assert builder.connection_medium("Ethernet") is ConnectionMedium.WIRED
        assert builder.connection_medium("lan") is ConnectionMedium.WIRED
        assert builder.connection_medium(None) is ConnectionMedium.WIRED
        assert builder.connection_medium("5GHz") is ConnectionMedium.WIRELESS

    def test_device_category(self):
        builder = GraphModelBuilder()
        assert builder.device_category("Phone") is DeviceCategory.SMARTPHONE
        assert builder.device_category("nas") is DeviceCategory.STORAGE
        assert builder.device_category("toaster") is DeviceCategory.OTHER
        assert builder.device_category(None) is DeviceCategory.OTHER


# =============================================================================
# POSITIONS
# =============================================================================


class TestSavedPositions:
    def test_saved_position_is_attached(self, builder):
        snapshot = builder.build(
            devices=[make_device(1)],
            saved_positions={"device:1": Point(10.0, 20.0)},
        )
        assert snapshot.node("device:1").position == Point(10.0, 20.0)
        assert snapshot.root.position is None
