"""Gesture state machine and discrete edit commands for a loaded track.

A drag runs ``pointer_down`` -> ``pointer_move``* -> ``pointer_up``. Every
move repositions the dragged control point, clamps its locked coordinates to
their value at the start of the gesture and refits the neighbouring handles
immediately. ``pointer_up`` records the whole gesture as one undoable
command. Discrete commands (placing, deleting, splitting, retyping, hiding,
locking) are each recorded the same way.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, TypeVar

from rro_editor.config import EditorSettings
from rro_editor.geometry.bezier import evaluate
from rro_editor.geometry.picking import Ray, intersect_plane, pick_control_point
from rro_editor.geometry.spline_fit import Knot, derive_segments, refit_on_move, refit_spline
from rro_editor.geometry.vectors import Vec3, add, sub, unit
from rro_editor.model.edit_commands import ReplaceTrackSnapshotCommand
from rro_editor.model.edit_manager import EditManager
from rro_editor.model.elements import Axis, Segment, Spline
from rro_editor.model.errors import StaleReference, TrackModelError
from rro_editor.model.invariants import InvariantError, validate_track
from rro_editor.model.spline_types import SplineType
from rro_editor.model.track_model import Track, TrackSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")

UP: Vec3 = (0.0, 0.0, 1.0)


class GestureState(enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass(frozen=True)
class PointerEvent:
    """Input for the gesture state machine.

    Carries either a world ``position`` or a pointer ``ray``. ``point_id``
    targets a control point directly instead of hit-testing. ``extrude`` and
    ``toggle_lock`` are the modifier flags of the input layer.
    """

    position: Optional[Vec3] = None
    ray: Optional[Ray] = None
    point_id: Optional[int] = None
    extrude: bool = False
    toggle_lock: Optional[Axis] = None


@dataclass
class _Gesture:
    point_id: int
    start: Vec3
    anchor: Vec3
    pointer: Vec3
    locked: frozenset[Axis]
    plane_normal: Vec3
    before: TrackSnapshot
    extruded: list[int] = field(default_factory=list)


def _with_axis(position: Vec3, axis: Axis, value: float) -> Vec3:
    coords = list(position)
    coords[axis.value] = value
    return (coords[0], coords[1], coords[2])


def _same_state(before: TrackSnapshot, after: TrackSnapshot) -> bool:
    return before.splines == after.splines and before.points == after.points


class EditEngine:
    """The single entry point through which input mutates a :class:`Track`."""

    def __init__(
        self,
        track: Track,
        settings: Optional[EditorSettings] = None,
        manager: Optional[EditManager] = None,
        *,
        on_changed: Optional[Callable[[], None]] = None,
    ) -> None:
        self._track = track
        self._settings = settings or EditorSettings()
        self._manager = manager or EditManager(validator=validate_track)
        self._gesture: Optional[_Gesture] = None
        self._on_changed = on_changed

    @property
    def track(self) -> Track:
        return self._track

    @property
    def manager(self) -> EditManager:
        return self._manager

    @property
    def state(self) -> GestureState:
        return GestureState.IDLE if self._gesture is None else GestureState.DRAGGING

    @property
    def dragged_point_id(self) -> Optional[int]:
        return self._gesture.point_id if self._gesture is not None else None

    def _notify(self) -> None:
        if self._on_changed is not None:
            self._on_changed()

    # ------------------------------------------------------------------
    # Gesture
    # ------------------------------------------------------------------
    def _effective_locks(self, point_id: int) -> frozenset[Axis]:
        return self._track.point(point_id).locked_axes | self._settings.drag_lock_axes

    def _drag_plane(self, locked: frozenset[Axis], ray: Optional[Ray]) -> Vec3:
        if Axis.Z in locked or ray is None:
            return UP
        normal = unit(ray.direction)
        return normal if normal != (0.0, 0.0, 0.0) else UP

    def _pointer_world(self, event: PointerEvent, gesture: _Gesture) -> Optional[Vec3]:
        if event.position is not None:
            return tuple(float(v) for v in event.position)
        if event.ray is not None:
            return intersect_plane(event.ray, gesture.anchor, gesture.plane_normal)
        return None

    def pointer_down(self, event: PointerEvent) -> bool:
        """Start dragging the control point under the pointer.

        Returns ``True`` when a drag started.
        """

        if self._gesture is not None:
            logger.warning("pointer_down while dragging point %d ignored", self._gesture.point_id)
            return False
        point_id = event.point_id
        if point_id is None:
            probe = event.ray if event.ray is not None else event.position
            if probe is None:
                return False
            point_id = pick_control_point(self._track, probe, self._settings.pick_radius)
            if point_id is None:
                return False
        try:
            start = self._track.position(point_id)
            self._track.locate(point_id)
        except StaleReference as exc:
            logger.warning("Drag not started: %s", exc)
            return False
        if event.toggle_lock is not None:
            self.toggle_axis_lock(point_id, event.toggle_lock)
            return False

        locked = self._effective_locks(point_id)
        plane_normal = self._drag_plane(locked, event.ray)
        if event.position is not None:
            anchor = tuple(float(v) for v in event.position)
        elif event.ray is not None:
            anchor = intersect_plane(event.ray, start, plane_normal) or start
        else:
            anchor = start
        self._gesture = _Gesture(
            point_id=point_id,
            start=start,
            anchor=anchor,
            pointer=anchor,
            locked=locked,
            plane_normal=plane_normal,
            before=self._track.snapshot(),
        )
        logger.debug("Drag started on point %d (locked %s)", point_id, sorted(a.name for a in locked))
        return True

    def pointer_move(self, event: PointerEvent) -> bool:
        """Move the dragged point; returns ``True`` when the track changed."""

        gesture = self._gesture
        if gesture is None:
            return False
        try:
            if event.toggle_lock is not None:
                self._toggle_lock_in_gesture(gesture, event.toggle_lock)
            if event.extrude:
                self.extrude()
                gesture = self._gesture
                if gesture is None:
                    return False
            pointer = self._pointer_world(event, gesture)
            if pointer is None:
                return False
            gesture.pointer = pointer
            candidate = add(gesture.start, sub(pointer, gesture.anchor))
            for axis in gesture.locked:
                candidate = _with_axis(candidate, axis, gesture.start[axis.value])
            self._track.set_point_position(gesture.point_id, candidate)
            refit_on_move(self._track, gesture.point_id)
        except StaleReference as exc:
            self._abort_gesture(exc)
            return False
        self._notify()
        return True

    def pointer_up(self, event: Optional[PointerEvent] = None) -> bool:
        """Commit the gesture as one undoable edit; returns ``True`` if recorded."""

        if self._gesture is None:
            return False
        if event is not None and (event.position is not None or event.ray is not None):
            self.pointer_move(PointerEvent(position=event.position, ray=event.ray))
            if self._gesture is None:
                return False
        gesture = self._gesture
        self._gesture = None
        after = self._track.snapshot()
        if _same_state(gesture.before, after):
            return False
        command = ReplaceTrackSnapshotCommand(
            self._track,
            before=gesture.before,
            after=after,
            label="extrude" if gesture.extruded else "move point",
        )
        try:
            self._manager.execute(command)
        except InvariantError as exc:
            # The manager has already reverted to the pre-gesture state.
            logger.warning("Drag of point %d rejected: %s", gesture.point_id, exc)
            self._notify()
            return False
        logger.info(
            "Committed drag of point %d to %s (%d extrusion(s))",
            gesture.point_id,
            self._track.position(gesture.point_id),
            len(gesture.extruded),
        )
        self._notify()
        return True

    def cancel(self) -> bool:
        """Abandon the current gesture, restoring the state before it began."""

        gesture = self._gesture
        if gesture is None:
            return False
        self._gesture = None
        self._track.restore(gesture.before)
        logger.info("Cancelled drag of point %d", gesture.point_id)
        self._notify()
        return True

    def _abort_gesture(self, exc: Exception) -> None:
        gesture = self._gesture
        self._gesture = None
        if gesture is not None:
            self._track.restore(gesture.before)
        logger.warning("Drag aborted: %s", exc)
        self._notify()

    def _toggle_lock_in_gesture(self, gesture: _Gesture, axis: Axis) -> None:
        point = self._track.point(gesture.point_id)
        self._track.set_locked_axes(gesture.point_id, point.locked_axes ^ {axis})
        position = self._track.position(gesture.point_id)
        # Measure further clamping from where the point is now.
        gesture.start = position
        gesture.anchor = gesture.pointer
        gesture.locked = self._effective_locks(gesture.point_id)

    def extrude(self) -> bool:
        """Grow the dragged spline by one segment and continue on the new point.

        Only open ends can be extruded; an interior point is refused and the
        drag carries on unchanged.
        """

        gesture = self._gesture
        if gesture is None:
            logger.info("Extrude ignored: no drag in progress")
            return False
        try:
            spline, index = self._track.locate(gesture.point_id)
            last = len(spline.segments)
            if 0 < index < last:
                logger.info(
                    "Extrude refused: point %d is interior to spline %d",
                    gesture.point_id,
                    spline.spline_id,
                )
                return False
            original = self._track.point(gesture.point_id)
            new_point = self._track.add_point(original.position, original.locked_axes)
            if index == last:
                self._track.append_segment(
                    spline.spline_id, Segment(original.point_id, new_point.point_id)
                )
            else:
                self._track.prepend_segment(
                    spline.spline_id, Segment(new_point.point_id, original.point_id)
                )
            refit_on_move(self._track, new_point.point_id)
        except StaleReference as exc:
            self._abort_gesture(exc)
            return False
        gesture.extruded.append(new_point.point_id)
        gesture.point_id = new_point.point_id
        gesture.start = new_point.position
        gesture.anchor = gesture.pointer
        gesture.locked = self._effective_locks(new_point.point_id)
        logger.debug(
            "Extruded spline %d from point %d to new point %d",
            spline.spline_id,
            original.point_id,
            new_point.point_id,
        )
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Discrete commands
    # ------------------------------------------------------------------
    def _edit(self, label: str, mutate: Callable[[], T]) -> T:
        if self._gesture is not None:
            self.cancel()
        before = self._track.snapshot()
        try:
            result = mutate()
        except (TrackModelError, IndexError, ValueError) as exc:
            self._track.restore(before)
            logger.warning("%s failed: %s", label, exc)
            raise
        after = self._track.snapshot()
        if not _same_state(before, after):
            self._manager.execute(
                ReplaceTrackSnapshotCommand(self._track, before=before, after=after, label=label)
            )
            self._notify()
        return result

    def undo(self) -> bool:
        if self._gesture is not None:
            self.cancel()
        restored = self._manager.undo() is not None
        if restored:
            self._notify()
        return restored

    def redo(self) -> bool:
        if self._gesture is not None:
            self.cancel()
        restored = self._manager.redo() is not None
        if restored:
            self._notify()
        return restored

    def move_point(self, point_id: int, position: Vec3) -> Vec3:
        """Move a point outside a drag, keeping its own locked coordinates."""

        def mutate() -> Vec3:
            point = self._track.point(point_id)
            candidate = tuple(float(v) for v in position)
            for axis in point.locked_axes:
                candidate = _with_axis(candidate, axis, point.position[axis.value])
            self._track.set_point_position(point_id, candidate)
            refit_on_move(self._track, point_id)
            return self._track.position(point_id)

        return self._edit("move point", mutate)

    def set_axis_lock(self, point_id: int, axis: Axis, locked: bool) -> None:
        def mutate() -> None:
            point = self._track.point(point_id)
            axes = point.locked_axes | {axis} if locked else point.locked_axes - {axis}
            self._track.set_locked_axes(point_id, axes)

        self._edit("lock axis" if locked else "unlock axis", mutate)

    def toggle_axis_lock(self, point_id: int, axis: Axis) -> bool:
        locked = not self._track.point(point_id).is_locked(axis)
        self.set_axis_lock(point_id, axis, locked)
        return locked

    def place_spline(
        self,
        start: Vec3,
        end: Vec3,
        type_code: int = SplineType.TRACK_BED,
    ) -> Spline:
        """Create a new two-point spline from ``start`` to ``end``."""

        def mutate() -> Spline:
            first = self._track.add_point(start)
            second = self._track.add_point(end)
            style = self._settings.style_for(int(type_code))
            segments = derive_segments(
                [Knot(first.point_id, first.position), Knot(second.point_id, second.position)],
                style,
                self._track.handle_scale,
            )
            return self._track.add_spline(int(type_code), segments, style=style)

        spline = self._edit("place spline", mutate)
        logger.info("Placed spline %d (%s)", spline.spline_id, spline.spline_type)
        return spline

    def _rebuild(self, spline: Spline, knot_ids: list[int], visibility: list[bool]) -> list[Segment]:
        knots = [
            Knot(point_id, self._track.position(point_id), spline.tangent_hints.get(point_id))
            for point_id in knot_ids
        ]
        return derive_segments(knots, spline.style, self._track.handle_scale, visibility)

    def _split(self, spline_id: int, left: list[int], right: list[int], dropped: list[int]) -> list[int]:
        """Keep ``left`` in the spline, move ``right`` to a new one, delete the rest.

        Parts with fewer than two knots cannot form a segment; their points are
        deleted too. Returns the ids of the surviving splines.
        """

        spline = self._track.spline(spline_id)
        flags = {
            (segment.start_id, segment.end_id): segment.visible for segment in spline.segments
        }

        def part_flags(ids: list[int]) -> list[bool]:
            return [flags.get((a, b), True) for a, b in zip(ids, ids[1:])]

        parts = [part for part in (left, right) if len(part) >= 2]
        orphans = list(dropped) + [pid for part in (left, right) if len(part) < 2 for pid in part]
        survivors: list[int] = []
        if not parts:
            self._track.remove_spline(spline_id)
            return survivors
        keep, *rest = parts
        self._track.replace_spline_segments(spline_id, self._rebuild(spline, keep, part_flags(keep)))
        survivors.append(spline_id)
        for part in rest:
            new_spline = self._track.add_spline(
                spline.type_code,
                self._rebuild(spline, part, part_flags(part)),
                style=spline.style,
                visible=spline.visible,
            )
            new_spline.tangent_hints.update(
                {pid: hint for pid, hint in spline.tangent_hints.items() if pid in part}
            )
            survivors.append(new_spline.spline_id)
        for pid in orphans:
            spline.tangent_hints.pop(pid, None)
            self._track.remove_point(pid)
        for pid in list(spline.tangent_hints):
            if pid not in keep:
                spline.tangent_hints.pop(pid)
        return survivors

    def delete_point(self, point_id: int) -> list[int]:
        """Delete a control point, splitting its spline when it was interior.

        Returns the ids of the splines left over (none when the spline had
        only two points and was removed).
        """

        def mutate() -> list[int]:
            spline, index = self._track.locate(point_id)
            knots = spline.knot_ids()
            return self._split(spline.spline_id, knots[:index], knots[index + 1:], [point_id])

        survivors = self._edit("delete point", mutate)
        logger.info("Deleted point %d; remaining splines %s", point_id, survivors)
        return survivors

    def delete_segment(self, spline_id: int, index: int) -> list[int]:
        """Remove one segment, splitting the spline in two at that gap."""

        def mutate() -> list[int]:
            spline = self._track.spline(spline_id)
            if not 0 <= index < len(spline.segments):
                raise IndexError(f"Spline {spline_id} has no segment {index}")
            knots = spline.knot_ids()
            return self._split(spline_id, knots[: index + 1], knots[index + 1:], [])

        return self._edit("delete segment", mutate)

    def insert_point(self, spline_id: int, index: int, t: float = 0.5) -> int:
        """Insert a knot into segment ``index`` at curve parameter ``t``."""

        def mutate() -> int:
            spline = self._track.spline(spline_id)
            if not 0 <= index < len(spline.segments):
                raise IndexError(f"Spline {spline_id} has no segment {index}")
            segment = spline.segments[index]
            position = evaluate(segment, t, self._track.positions())
            new_point = self._track.add_point(position)
            knots = spline.knot_ids()
            knots.insert(index + 1, new_point.point_id)
            visibility = [s.visible for s in spline.segments]
            visibility.insert(index + 1, segment.visible)
            self._track.replace_spline_segments(
                spline_id, self._rebuild(spline, knots, visibility)
            )
            return new_point.point_id

        return self._edit("insert point", mutate)

    def set_spline_type(self, spline_id: int, type_code: int) -> None:
        def mutate() -> None:
            self._track.set_spline_type(
                spline_id, int(type_code), self._settings.style_for(int(type_code))
            )
            refit_spline(self._track, spline_id)

        self._edit("change spline type", mutate)

    def set_visibility(self, spline_id: int, visible: bool) -> None:
        self._edit("set visibility", lambda: self._track.set_visibility(spline_id, visible))

    def set_segment_visibility(self, spline_id: int, index: int, visible: bool) -> None:
        self._edit(
            "set segment visibility",
            lambda: self._track.set_segment_visibility(spline_id, index, visible),
        )

    def set_tangent_hint(self, point_id: int, hint: Optional[Vec3]) -> None:
        def mutate() -> None:
            spline, _index = self._track.locate(point_id)
            self._track.set_tangent_hint(spline.spline_id, point_id, hint)
            refit_on_move(self._track, point_id)

        self._edit("set tangent", mutate)
