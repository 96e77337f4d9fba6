import pytest

from router_topology.config import TopologyConfig
from router_topology.data_source import devices_frame
from router_topology.graph_builder import GraphModelBuilder
from router_topology.interaction import InteractionController, ViewState
from router_topology.layout_engine import LayoutEngine
from router_topology.models import FeatureFlags, Point, Rect, RouterDescriptor
from router_topology.pipeline import RefreshInputs, TopologyPipeline


def make_device(device_id, download=0.0, upload=0.0, online=True, connection="wireless", **extra):
    record = {
        "id": device_id,
        "name": f"Device {device_id}",
        "isOnline": online,
        "connectionType": connection,
        "deviceType": "laptop",
        "ipAddress": f"192.168.1.{device_id}",
        "macAddress": f"AA:BB:CC:DD:EE:{int(device_id):02X}",
        "downloadSpeed": download,
        "uploadSpeed": upload,
    }
    record.update(extra)
    return record


@pytest.fixture
def router():
    return RouterDescriptor(model="RT-AX88U", ip_address="192.168.1.1")


@pytest.fixture
def device_records():
    return [
        make_device(1, download=10.0, connection="wired"),
        make_device(2, download=40.0),
        make_device(3, download=5.0, connection="ethernet"),
        make_device(4, download=90.0),
        make_device(5, download=20.0, online=False),
    ]


@pytest.fixture
def builder():
    return GraphModelBuilder()


@pytest.fixture
def snapshot(builder, router, device_records):
    return builder.build(
        router=router,
        devices=devices_frame(device_records),
        mesh_peers=["11:22:33:44:55:66"],
        features=FeatureFlags(mesh_is_active=True),
    )


@pytest.fixture
def layout_engine():
    return LayoutEngine()


@pytest.fixture
def config():
    return TopologyConfig(max_visible_nodes=50, viewport_culling_enabled=False)


@pytest.fixture
def pipeline(config):
    return TopologyPipeline(config)


@pytest.fixture
def refresh_inputs(router, device_records):
    return RefreshInputs(
        router=router,
        devices=devices_frame(device_records),
        mesh_peers=["11:22:33:44:55:66"],
        features=FeatureFlags(mesh_is_active=True),
    )


@pytest.fixture
def view_state():
    return ViewState()


@pytest.fixture
def controller(view_state):
    return InteractionController(
        view_state,
        bounds=Rect(40.0, 40.0, 860.0, 660.0),
        zoom_bounds=(0.3, 3.0),
        hit_radius=20.0,
    )


@pytest.fixture
def targets():
    return [("root", Point(450.0, 350.0)), ("device:1", Point(600.0, 350.0))]
