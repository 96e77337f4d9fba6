"""
Interaction Controller

One state machine for every input source. Mouse, touch and DOM pointer
payloads are normalized into ``PointerEvent`` at the boundary; the controller
only ever sees the normalized form.

    Idle --down on node--> Dragging --up/cancel--> Idle
    Idle --down on canvas--> Panning --up/cancel--> Idle

Zoom is an instantaneous operation, not a state. Coordinates relate as
``screen = zoom * (layout + pan)``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .models import Point, Rect

logger = logging.getLogger(__name__)

MOUSE_POINTER_ID = 0
TOUCH_POINTER_BASE = 1

HitTarget = Tuple[str, Point]


class PointerPhase(str, Enum):
    DOWN = "down"
    MOVE = "move"
    UP = "up"
    CANCEL = "cancel"


@dataclass(frozen=True)
class PointerEvent:
    pointer_id: int
    x: float
    y: float
    phase: PointerPhase

    @property
    def point(self) -> Point:
        return Point(self.x, self.y)


MOUSE_PHASES = {
    "mousedown": PointerPhase.DOWN,
    "mousemove": PointerPhase.MOVE,
    "mouseup": PointerPhase.UP,
    "mouseleave": PointerPhase.CANCEL,
}
TOUCH_PHASES = {
    "touchstart": PointerPhase.DOWN,
    "touchmove": PointerPhase.MOVE,
    "touchend": PointerPhase.UP,
    "touchcancel": PointerPhase.CANCEL,
}
DOM_POINTER_PHASES = {
    "pointerdown": PointerPhase.DOWN,
    "pointermove": PointerPhase.MOVE,
    "pointerup": PointerPhase.UP,
    "pointercancel": PointerPhase.CANCEL,
    "pointerleave": PointerPhase.CANCEL,
}


def _origin_of(raw: Dict[str, Any], origin: Optional[Point]) -> Point:
    if origin is not None:
        return origin
    rect = raw.get("rect") or {}
    return Point(float(rect.get("left", 0.0)), float(rect.get("top", 0.0)))


def normalize_pointer_event(
    raw: Dict[str, Any], origin: Optional[Point] = None
) -> List[PointerEvent]:
    """
    Convert a raw browser event payload into pointer events relative to the
    canvas origin. Touch payloads yield one event per changed touch; anything
    unrecognized yields nothing.
    """
    event_type = (raw or {}).get("type")
    base = _origin_of(raw or {}, origin)

    if event_type in MOUSE_PHASES:
        phase = MOUSE_PHASES[event_type]
        if phase is PointerPhase.DOWN and raw.get("button", 0) != 0:
            return []
        return [
            PointerEvent(
                MOUSE_POINTER_ID,
                float(raw["clientX"]) - base.x,
                float(raw["clientY"]) - base.y,
                phase,
            )
        ]

    if event_type in TOUCH_PHASES:
        phase = TOUCH_PHASES[event_type]
        return [
            PointerEvent(
                TOUCH_POINTER_BASE + int(touch.get("identifier", 0)),
                float(touch["clientX"]) - base.x,
                float(touch["clientY"]) - base.y,
                phase,
            )
            for touch in raw.get("changedTouches") or []
        ]

    if event_type in DOM_POINTER_PHASES:
        phase = DOM_POINTER_PHASES[event_type]
        if phase is PointerPhase.DOWN and raw.get("button", 0) != 0:
            return []
        return [
            PointerEvent(
                int(raw.get("pointerId", MOUSE_POINTER_ID)),
                float(raw["clientX"]) - base.x,
                float(raw["clientY"]) - base.y,
                phase,
            )
        ]

    logger.debug("Ignoring unrecognized pointer payload type %r", event_type)
    return []


# =============================================================================
# GESTURE STATES
# =============================================================================


@dataclass(frozen=True)
class Idle:
    kind: str = "idle"


@dataclass(frozen=True)
class Dragging:
    pointer_id: int
    node_id: str
    grab_offset: Point
    press_point: Point
    moved: bool = False
    kind: str = "dragging"


@dataclass(frozen=True)
class Panning:
    pointer_id: int
    start_point: Point
    pan_origin: Point
    moved: bool = False
    kind: str = "panning"


DragState = Union[Idle, Dragging, Panning]
IDLE = Idle()


def _drag_state_to_dict(state: DragState) -> Dict[str, Any]:
    if isinstance(state, Dragging):
        return {
            "kind": state.kind,
            "pointer_id": state.pointer_id,
            "node_id": state.node_id,
            "grab_offset": state.grab_offset.to_dict(),
            "press_point": state.press_point.to_dict(),
            "moved": state.moved,
        }
    if isinstance(state, Panning):
        return {
            "kind": state.kind,
            "pointer_id": state.pointer_id,
            "start_point": state.start_point.to_dict(),
            "pan_origin": state.pan_origin.to_dict(),
            "moved": state.moved,
        }
    return {"kind": "idle"}


def _drag_state_from_dict(data: Optional[Dict[str, Any]]) -> DragState:
    kind = (data or {}).get("kind")
    if kind == "dragging":
        return Dragging(
            pointer_id=int(data["pointer_id"]),
            node_id=data["node_id"],
            grab_offset=Point.from_dict(data["grab_offset"]),
            press_point=Point.from_dict(data["press_point"]),
            moved=bool(data.get("moved", False)),
        )
    if kind == "panning":
        return Panning(
            pointer_id=int(data["pointer_id"]),
            start_point=Point.from_dict(data["start_point"]),
            pan_origin=Point.from_dict(data["pan_origin"]),
            moved=bool(data.get("moved", False)),
        )
    return IDLE


@dataclass
class ViewState:
    """
    Session-scoped UI state, owned by the controller and passed explicitly
    into layout and render on every frame.
    """

    positions: Dict[str, Point] = field(default_factory=dict)
    zoom: float = 1.0
    pan: Point = Point(0.0, 0.0)
    selected_id: Optional[str] = None
    drag_state: DragState = IDLE
    # Last pointer batch applied; older or repeated batches are refused.
    pointer_seq: int = 0
    # Bumped by a view reset so computed default positions are discarded.
    layout_epoch: int = 0

    def screen_to_layout(self, point: Point) -> Point:
        return point.scaled(1.0 / self.zoom) - self.pan

    def layout_to_screen(self, point: Point) -> Point:
        return (point + self.pan).scaled(self.zoom)

    def visible_rect(self, width: float, height: float) -> Rect:
        """Layout-space rectangle currently shown on a width x height screen."""
        top_left = self.screen_to_layout(Point(0.0, 0.0))
        bottom_right = self.screen_to_layout(Point(width, height))
        return Rect(top_left.x, top_left.y, bottom_right.x, bottom_right.y)

    def retain(self, node_ids) -> None:
        """Forget positions and selection of nodes that left the model."""
        keep = set(node_ids)
        for node_id in [n for n in self.positions if n not in keep]:
            del self.positions[node_id]
        if self.selected_id is not None and self.selected_id not in keep:
            self.selected_id = None
        if isinstance(self.drag_state, Dragging) and self.drag_state.node_id not in keep:
            self.drag_state = IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "positions": {k: p.to_dict() for k, p in self.positions.items()},
            "zoom": self.zoom,
            "pan": self.pan.to_dict(),
            "selected_id": self.selected_id,
            "drag_state": _drag_state_to_dict(self.drag_state),
            "pointer_seq": self.pointer_seq,
            "layout_epoch": self.layout_epoch,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ViewState":
        if not data:
            return cls()
        return cls(
            positions={
                k: Point.from_dict(v) for k, v in (data.get("positions") or {}).items()
            },
            zoom=float(data.get("zoom", 1.0)),
            pan=Point.from_dict(data.get("pan") or {"x": 0.0, "y": 0.0}),
            selected_id=data.get("selected_id"),
            drag_state=_drag_state_from_dict(data.get("drag_state")),
            pointer_seq=int(data.get("pointer_seq", 0)),
            layout_epoch=int(data.get("layout_epoch", 0)),
        )


class InteractionController:
    """Drag, pan, click-to-select and zoom over a ``ViewState``."""

    def __init__(
        self,
        view_state: ViewState,
        bounds: Rect,
        zoom_bounds: Tuple[float, float] = (0.3, 3.0),
        zoom_step: float = 1.2,
        click_threshold: float = 4.0,
        hit_radius: float = 28.0,
    ):
        self.view_state = view_state
        self.bounds = bounds
        self.zoom_bounds = zoom_bounds
        self.zoom_step = zoom_step
        self.click_threshold = click_threshold
        self.hit_radius = hit_radius

    # -------------------------------------------------------------- hit test

    def hit_test(self, screen: Point, targets: Sequence[HitTarget]) -> Optional[str]:
        """Topmost (last drawn) node whose hit circle contains the point."""
        layout = self.view_state.screen_to_layout(screen)
        for node_id, position in reversed(targets):
            if layout.distance_to(position) <= self.hit_radius:
                return node_id
        return None

    # -------------------------------------------------------------- events

    def handle(self, event: PointerEvent, targets: Sequence[HitTarget] = ()) -> bool:
        """Feed one normalized event; returns True when the view changed."""
        state = self.view_state.drag_state

        if isinstance(state, Idle):
            if event.phase is PointerPhase.DOWN:
                return self._begin(event, targets)
            return False

        if event.pointer_id != state.pointer_id:
            return False

        if isinstance(state, Dragging):
            return self._continue_drag(state, event)
        return self._continue_pan(state, event)

    def handle_raw(
        self,
        raw: Dict[str, Any],
        targets: Sequence[HitTarget] = (),
        origin: Optional[Point] = None,
    ) -> bool:
        changed = False
        for event in normalize_pointer_event(raw, origin):
            changed = self.handle(event, targets) or changed
        return changed

    def _begin(self, event: PointerEvent, targets: Sequence[HitTarget]) -> bool:
        vs = self.view_state
        node_id = self.hit_test(event.point, targets)
        if node_id is None:
            vs.drag_state = Panning(
                pointer_id=event.pointer_id,
                start_point=event.point,
                pan_origin=vs.pan,
            )
            return False

        node_position = vs.positions.get(node_id) or dict(targets)[node_id]
        vs.drag_state = Dragging(
            pointer_id=event.pointer_id,
            node_id=node_id,
            grab_offset=vs.screen_to_layout(event.point) - node_position,
            press_point=event.point,
        )
        return False

    def _past_threshold(self, press: Point, event: PointerEvent) -> bool:
        return press.distance_to(event.point) > self.click_threshold

    def _continue_drag(self, state: Dragging, event: PointerEvent) -> bool:
        vs = self.view_state
        if event.phase is PointerPhase.MOVE:
            moved = state.moved or self._past_threshold(state.press_point, event)
            if not moved:
                return False
            if not state.moved:
                vs.drag_state = Dragging(
                    pointer_id=state.pointer_id,
                    node_id=state.node_id,
                    grab_offset=state.grab_offset,
                    press_point=state.press_point,
                    moved=True,
                )
            target = vs.screen_to_layout(event.point) - state.grab_offset
            vs.positions[state.node_id] = self.bounds.clamp(target)
            return True

        if event.phase is PointerPhase.UP and not state.moved:
            vs.drag_state = IDLE
            return self.toggle_selection(state.node_id)

        if event.phase in (PointerPhase.UP, PointerPhase.CANCEL):
            vs.drag_state = IDLE
        return False

    def _continue_pan(self, state: Panning, event: PointerEvent) -> bool:
        vs = self.view_state
        if event.phase is PointerPhase.MOVE:
            moved = state.moved or self._past_threshold(state.start_point, event)
            if not moved:
                return False
            if not state.moved:
                vs.drag_state = Panning(
                    pointer_id=state.pointer_id,
                    start_point=state.start_point,
                    pan_origin=state.pan_origin,
                    moved=True,
                )
            delta = (event.point - state.start_point).scaled(1.0 / vs.zoom)
            vs.pan = state.pan_origin + delta
            return True

        if event.phase is PointerPhase.UP and not state.moved:
            vs.drag_state = IDLE
            if vs.selected_id is not None:
                vs.selected_id = None
                return True
            return False

        if event.phase in (PointerPhase.UP, PointerPhase.CANCEL):
            vs.drag_state = IDLE
        return False

    # -------------------------------------------------------------- selection

    def toggle_selection(self, node_id: str) -> bool:
        vs = self.view_state
        vs.selected_id = None if vs.selected_id == node_id else node_id
        return True

    # -------------------------------------------------------------- zoom

    def _clamp_zoom(self, zoom: float) -> float:
        zoom_min, zoom_max = self.zoom_bounds
        return min(max(zoom, zoom_min), zoom_max)

    def zoom_by(self, factor: float, anchor: Optional[Point] = None) -> float:
        """
        Scale the zoom level, clamped to the bounds. With a screen-space
        anchor, the layout point under the anchor stays put.
        """
        vs = self.view_state
        new_zoom = self._clamp_zoom(vs.zoom * factor)
        if anchor is not None:
            fixed = vs.screen_to_layout(anchor)
            vs.pan = anchor.scaled(1.0 / new_zoom) - fixed
        vs.zoom = new_zoom
        return new_zoom

    def zoom_in(self, anchor: Optional[Point] = None) -> float:
        return self.zoom_by(self.zoom_step, anchor)

    def zoom_out(self, anchor: Optional[Point] = None) -> float:
        return self.zoom_by(1.0 / self.zoom_step, anchor)

    def reset_view(self) -> None:
        """Default zoom and pan; computed positions are recomputed next frame."""
        vs = self.view_state
        vs.zoom = 1.0
        vs.pan = Point(0.0, 0.0)
        vs.positions.clear()
        vs.drag_state = IDLE
        vs.layout_epoch += 1
