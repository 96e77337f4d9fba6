from conftest import make_device

import pytest
from dash.exceptions import PreventUpdate

from router_topology.callbacks import (
    CallbackRegistrar,
    features_to_store,
    refresh_inputs_from_stores,
    router_to_store,
)
from router_topology.data_source import RefreshGate, devices_frame
from router_topology.interaction import IDLE, Dragging, ViewState
from router_topology.models import FeatureFlags, Point, RouterDescriptor


class FakeClient:
    def __init__(self, router=None, devices=None, features=(None, []), during_fetch=None):
        self.router = router
        self.devices = devices
        self.features = features
        self.during_fetch = during_fetch or (lambda: None)

    def fetch_router(self):
        self.during_fetch()
        return self.router

    def fetch_devices(self):
        self.during_fetch()
        return self.devices

    def fetch_features(self):
        self.during_fetch()
        return self.features


@pytest.fixture
def stores(router, device_records):
    return (
        {"seq": 1, "data": router_to_store(router)},
        {"seq": 1, "data": devices_frame(device_records).to_dict("records")},
        {
            "seq": 1,
            "data": features_to_store(FeatureFlags(mesh_is_active=True), ["11:22:33:44:55:66"]),
        },
    )


@pytest.fixture
def registrar(pipeline):
    return CallbackRegistrar(None, pipeline, FakeClient())


# =============================================================================
# FETCH CALLBACKS
# =============================================================================


class TestFetchCallbacks:
    def test_router_fetch_is_stored(self, pipeline, router):
        registrar = CallbackRegistrar(None, pipeline, FakeClient(router=router))
        store = registrar.fetch_router(3, {"seq": 2, "data": None})
        assert store == {
            "seq": 3,
            "data": {"model": "RT-AX88U", "ipAddress": "192.168.1.1", "isOnline": True},
        }

    def test_failed_fetch_keeps_last_good_data(self, registrar):
        with pytest.raises(PreventUpdate):
            registrar.fetch_router(1, None)
        with pytest.raises(PreventUpdate):
            registrar.fetch_devices(1, None)
        with pytest.raises(PreventUpdate):
            registrar.fetch_features(1, None)

    def test_superseded_fetch_is_discarded(self, pipeline, router):
        gate = RefreshGate()
        client = FakeClient(router=router, during_fetch=lambda: gate.begin("router"))
        registrar = CallbackRegistrar(None, pipeline, client, gate)
        with pytest.raises(PreventUpdate):
            registrar.fetch_router(1, None)

    def test_older_sequence_is_not_applied(self, pipeline, router):
        registrar = CallbackRegistrar(None, pipeline, FakeClient(router=router))
        with pytest.raises(PreventUpdate):
            registrar.fetch_router(1, {"seq": 5, "data": None})

    def test_devices_are_stored_as_records(self, pipeline, device_records):
        client = FakeClient(devices=devices_frame(device_records))
        store = CallbackRegistrar(None, pipeline, client).fetch_devices(0, None)
        assert [r["id"] for r in store["data"]] == [1, 2, 3, 4, 5]

    def test_features_store(self, pipeline):
        client = FakeClient(features=(FeatureFlags(mesh_is_active=True), ["aa"]))
        store = CallbackRegistrar(None, pipeline, client).fetch_features(2, None)
        assert store["data"] == {"meshIsActive": True, "peers": ["aa"]}


class TestStoresToInputs:
    def test_round_trip(self, stores):
        inputs = refresh_inputs_from_stores(*stores)
        assert inputs.router == RouterDescriptor("RT-AX88U", "192.168.1.1")
        assert inputs.features == FeatureFlags(mesh_is_active=True)
        assert inputs.mesh_peers == ["11:22:33:44:55:66"]
        assert len(inputs.devices) == 5

    def test_empty_stores(self):
        inputs = refresh_inputs_from_stores(None, {"seq": 0, "data": None}, None)
        assert inputs.router is None
        assert inputs.devices is None
        assert inputs.features is None
        assert inputs.mesh_peers == []


# =============================================================================
# VIEW CALLBACKS
# =============================================================================


def pointer(kind, point, pointer_id=1):
    return {"type": kind, "pointerId": pointer_id, "button": 0,
            "clientX": point.x, "clientY": point.y}


def batch(seq, *events):
    return {"seq": seq, "rect": {"left": 0, "top": 0}, "events": list(events)}


def node_trace(figure):
    return [t for t in figure.data if t.mode == "markers+text"][0]


class TestRenderView:
    def test_first_render(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        figure, stats, details, memory = registrar.render_view(
            inputs, None, None, "balanced", []
        )
        assert figure.layout.width == 900
        assert stats[0].children == "Showing 5 of 5 devices"
        assert details[0].children == "Click a node to see its details."
        assert memory["epoch"] == 0
        assert set(memory["positions"]) >= {"root", "device:1"}

    def test_dragged_positions_are_not_remembered_twice(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        view_data = ViewState(positions={"device:1": Point(100.0, 100.0)}).to_dict()
        _, _, _, memory = registrar.render_view(inputs, view_data, None, "balanced", [])
        assert "device:1" not in memory["positions"]
        assert "device:2" in memory["positions"]

    def test_memory_from_before_a_reset_is_discarded(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        stale = {"epoch": 0, "positions": {"device:1": {"x": 100.0, "y": 100.0}}}
        view_data = ViewState(layout_epoch=1).to_dict()
        figure, _, _, memory = registrar.render_view(
            inputs, view_data, stale, "balanced", []
        )
        assert memory["epoch"] == 1
        assert memory["positions"]["device:1"] != {"x": 100.0, "y": 100.0}

    def test_high_mode_hides_labels(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        figure, _, _, _ = registrar.render_view(inputs, None, None, "high", [])
        assert not figure.layout.annotations
        labelled, _, _, _ = registrar.render_view(inputs, None, None, "balanced", [])
        assert labelled.layout.annotations

    def test_selected_node_details(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        view_data = ViewState(selected_id="device:2").to_dict()
        _, _, details, _ = registrar.render_view(inputs, view_data, None, "balanced", [])
        assert details[0].children == "Device 2"


class TestApplyGesture:
    def test_click_on_device_selects_it(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        _, _, _, memory = registrar.render_view(inputs, None, None, "balanced", [])
        target = Point.from_dict(memory["positions"]["device:2"])
        click = {
            "seq": 1,
            "rect": {"left": 20, "top": 10},
            "events": [
                pointer("pointerdown", target + Point(20, 10)),
                pointer("pointerup", target + Point(20, 10)),
            ],
        }
        view_data = registrar.apply_gesture(
            "pointer-events", inputs, click, None, memory, "balanced", []
        )
        assert view_data["selected_id"] == "device:2"
        assert view_data["pointer_seq"] == 1
        # A click moves nothing, so the node keeps its remembered position.
        assert "device:2" not in view_data["positions"]

    def test_press_on_background_starts_panning(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        view_data = registrar.apply_gesture(
            "pointer-events",
            inputs,
            batch(1, pointer("pointerdown", Point(5, 5))),
            None,
            None,
            "balanced",
            [],
        )
        assert view_data["drag_state"]["kind"] == "panning"

    def test_empty_pointer_batch(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        with pytest.raises(PreventUpdate):
            registrar.apply_gesture("pointer-events", inputs, None, None, None)
        with pytest.raises(PreventUpdate):
            registrar.apply_gesture("pointer-events", inputs, batch(1), None, None)

    def test_repeated_or_older_batch_is_refused(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        view_data = ViewState(pointer_seq=4).to_dict()
        for seq in (3, 4):
            with pytest.raises(PreventUpdate):
                registrar.apply_gesture(
                    "pointer-events",
                    inputs,
                    batch(seq, pointer("pointerdown", Point(5, 5))),
                    view_data,
                    None,
                )

    def test_unknown_trigger(self, registrar, stores):
        with pytest.raises(PreventUpdate):
            registrar.apply_gesture(
                "router-store", refresh_inputs_from_stores(*stores), None, None, None
            )

    def test_zoom_buttons(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        view_data = registrar.apply_gesture("zoom-in-button", inputs, None, None, None)
        assert view_data["zoom"] == pytest.approx(1.2)
        view_data = registrar.apply_gesture(
            "zoom-out-button", inputs, None, view_data, None
        )
        assert view_data["zoom"] == pytest.approx(1.0)

    def test_reset_view_starts_a_new_layout_epoch(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        dragged = ViewState(
            zoom=2.0, positions={"device:1": Point(100.0, 100.0)}, selected_id="device:1"
        )
        view_data = registrar.apply_gesture(
            "reset-view-button", inputs, None, dragged.to_dict(), None
        )
        assert view_data["zoom"] == 1.0
        assert view_data["pan"] == {"x": 0.0, "y": 0.0}
        assert view_data["positions"] == {}
        assert view_data["layout_epoch"] == 1
        assert view_data["selected_id"] == "device:1"


class TestDragAcrossRefresh:
    def test_refresh_while_dragging_keeps_the_drag(self, registrar, stores):
        inputs = refresh_inputs_from_stores(*stores)
        _, _, _, memory = registrar.render_view(inputs, None, None, "balanced", [])
        start = Point.from_dict(memory["positions"]["device:2"])
        root = Point.from_dict(memory["positions"]["root"])
        step = (root - start).scaled(0.2)

        view_data = registrar.apply_gesture(
            "pointer-events", inputs, batch(1, pointer("pointerdown", start)),
            None, memory, "balanced", [],
        )
        view_data = registrar.apply_gesture(
            "pointer-events", inputs, batch(2, pointer("pointermove", start + step)),
            view_data, memory, "balanced", [],
        )

        # Devices poll lands while the pointer is still down, with a new device.
        router_store, devices_store, features_store = stores
        refreshed_devices = {
            "seq": 2,
            "data": devices_store["data"] + [
                devices_frame([make_device(6, download=1.0)]).to_dict("records")[0]
            ],
        }
        refreshed = refresh_inputs_from_stores(
            router_store, refreshed_devices, features_store
        )
        figure, stats, _, memory = registrar.render_view(
            refreshed, view_data, memory, "balanced", []
        )
        assert stats[0].children == "Showing 6 of 6 devices"
        trace = node_trace(figure)
        drawn = dict(zip(trace.customdata, zip(trace.x, trace.y)))
        dragged = start + step
        assert drawn["device:2"] == pytest.approx((dragged.x, dragged.y))
        assert "device:2" not in memory["positions"]

        # The refresh never wrote the view state, so the gesture carries on.
        vs = ViewState.from_dict(view_data)
        assert isinstance(vs.drag_state, Dragging)
        assert vs.drag_state.node_id == "device:2"
        assert vs.positions["device:2"] == start + step

        view_data = registrar.apply_gesture(
            "pointer-events", refreshed,
            batch(3, pointer("pointermove", start + step.scaled(2.0))),
            view_data, memory, "balanced", [],
        )
        vs = ViewState.from_dict(view_data)
        assert isinstance(vs.drag_state, Dragging)
        assert vs.positions["device:2"] == start + step.scaled(2.0)

        view_data = registrar.apply_gesture(
            "pointer-events", refreshed,
            batch(4, pointer("pointerup", start + step.scaled(2.0))),
            view_data, memory, "balanced", [],
        )
        vs = ViewState.from_dict(view_data)
        assert vs.drag_state == IDLE
        assert vs.positions["device:2"] == start + step.scaled(2.0)
        assert vs.selected_id is None


# =============================================================================
# PERFORMANCE MODE
# =============================================================================


class TestSessionSettings:
    def test_configured_mode_keeps_configured_budget(self, registrar):
        settings = registrar.session_settings("balanced", ["enabled"])
        assert settings == {"max_visible_nodes": 50, "viewport_culling_enabled": True}

    def test_other_mode_uses_its_preset(self, registrar):
        settings = registrar.session_settings("high", [])
        assert settings == {"max_visible_nodes": 20, "viewport_culling_enabled": False}


class TestPerformanceOutputs:
    def test_high_mode_slows_polling(self, registrar):
        assert registrar.performance_outputs("high") == (["enabled"], 10000, 10000, 20000)

    def test_quality_mode_polls_faster_without_culling(self, registrar):
        assert registrar.performance_outputs("quality") == ([], 3000, 3000, 6000)

    def test_configured_mode_keeps_configured_intervals(self, registrar):
        # The fixture config turns culling off and keeps the 5s default.
        assert registrar.performance_outputs("balanced") == ([], 5000, 5000, 10000)

    def test_unknown_mode(self, registrar):
        with pytest.raises(PreventUpdate):
            registrar.performance_outputs("turbo")
