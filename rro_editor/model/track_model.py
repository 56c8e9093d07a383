"""In-memory track graph built from a decoded save.

Control points live in an arena keyed by id; segments refer to them by id so
moving a point moves every segment end that touches it. The mutation methods
here only change state; handle maths lives in :mod:`rro_editor.geometry`.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence

import numpy as np

from rro_editor.model.elements import (
    Axis,
    ControlPoint,
    CurveStyle,
    GroundworkItem,
    Segment,
    Spline,
    Vec3,
)
from rro_editor.model.errors import StaleReference

logger = logging.getLogger(__name__)

DEFAULT_HANDLE_SCALE = 0.3


@dataclass(frozen=True)
class TrackSnapshot:
    """Complete mutable track state used for undo/redo."""

    splines: tuple[Spline, ...]
    points: tuple[ControlPoint, ...]
    next_point_id: int
    next_spline_id: int
    modified: bool


class Track:
    """Owner of all splines, control points and groundwork of one save."""

    def __init__(
        self,
        splines: Iterable[Spline] = (),
        points: Iterable[ControlPoint] = (),
        groundwork: Iterable[GroundworkItem] = (),
        *,
        handle_scale: float = DEFAULT_HANDLE_SCALE,
    ) -> None:
        self._splines: dict[int, Spline] = {}
        self._points: dict[int, ControlPoint] = {point.point_id: point for point in points}
        self._owners: dict[int, int] = {}
        self._groundwork = tuple(groundwork)
        self.handle_scale = handle_scale
        for spline in splines:
            self._splines[spline.spline_id] = spline
        self._next_point_id = max(self._points, default=-1) + 1
        self._next_spline_id = max(self._splines, default=-1) + 1
        self._modified = False
        self._reindex()

    def _reindex(self) -> None:
        self._owners = {}
        for spline in self._splines.values():
            for point_id in spline.knot_ids():
                self._owners[point_id] = spline.spline_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def modified(self) -> bool:
        return self._modified

    def mark_modified(self) -> None:
        self._modified = True

    def splines(self) -> tuple[Spline, ...]:
        return tuple(self._splines.values())

    def spline(self, spline_id: int) -> Spline:
        try:
            return self._splines[spline_id]
        except KeyError:
            raise StaleReference(spline_id, "spline") from None

    def has_spline(self, spline_id: int) -> bool:
        return spline_id in self._splines

    def find_control_point(self, point_id: int) -> Optional[ControlPoint]:
        return self._points.get(point_id)

    def point(self, point_id: int) -> ControlPoint:
        try:
            return self._points[point_id]
        except KeyError:
            raise StaleReference(point_id) from None

    def position(self, point_id: int) -> Vec3:
        return self.point(point_id).position

    def positions(self) -> dict[int, Vec3]:
        """Point id to position mapping, the form geometry helpers expect."""
        return {point_id: point.position for point_id, point in self._points.items()}

    def control_points(self) -> tuple[ControlPoint, ...]:
        return tuple(self._points.values())

    def groundwork(self) -> tuple[GroundworkItem, ...]:
        return self._groundwork

    def locate(self, point_id: int) -> tuple[Spline, int]:
        """Return the spline owning ``point_id`` and the point's knot index."""

        spline_id = self._owners.get(point_id)
        if spline_id is None or point_id not in self._points:
            raise StaleReference(point_id)
        spline = self._splines[spline_id]
        return spline, spline.knot_ids().index(point_id)

    def owner_of(self, point_id: int) -> Optional[int]:
        return self._owners.get(point_id)

    def junctions(self, tolerance: float = 1.0) -> list[tuple[int, ...]]:
        """Group control points of different splines lying within ``tolerance``.

        Connectivity is not stored in the save; two splines are joined when
        their points coincide. Each returned group holds at least two point
        ids from at least two splines.
        """

        ids = [point_id for point_id in self._points if point_id in self._owners]
        if len(ids) < 2:
            return []
        coords = np.array([self._points[point_id].position for point_id in ids], dtype=float)
        cell_size = max(float(tolerance), 1e-9)
        cells = np.floor(coords / cell_size).astype(np.int64)
        buckets: dict[tuple[int, int, int], list[int]] = {}
        for index, cell in enumerate(map(tuple, cells)):
            buckets.setdefault(cell, []).append(index)

        parent = list(range(len(ids)))

        def find(i: int) -> int:
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        limit = tolerance * tolerance
        for (cx, cy, cz), members in buckets.items():
            for dx in (-1, 0, 1):
                for dy in (-1, 0, 1):
                    for dz in (-1, 0, 1):
                        others = buckets.get((cx + dx, cy + dy, cz + dz))
                        if not others:
                            continue
                        for i in members:
                            for j in others:
                                if j <= i:
                                    continue
                                if self._owners[ids[i]] == self._owners[ids[j]]:
                                    continue
                                delta = coords[i] - coords[j]
                                if float(delta @ delta) <= limit:
                                    parent[find(i)] = find(j)

        groups: dict[int, list[int]] = {}
        for index in range(len(ids)):
            groups.setdefault(find(index), []).append(ids[index])
        result = [tuple(sorted(group)) for group in groups.values() if len(group) > 1]
        result.sort()
        return result

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------
    def set_visibility(self, spline_id: int, visible: bool) -> None:
        spline = self.spline(spline_id)
        if spline.visible == bool(visible):
            return
        spline.visible = bool(visible)
        self._modified = True

    def set_segment_visibility(self, spline_id: int, index: int, visible: bool) -> None:
        spline = self.spline(spline_id)
        if not 0 <= index < len(spline.segments):
            raise IndexError(
                f"Spline {spline_id} has no segment {index} ({len(spline.segments)} segments)"
            )
        segment = spline.segments[index]
        if segment.visible == bool(visible):
            return
        spline.segments[index] = replace(segment, visible=bool(visible))
        self._modified = True

    # ------------------------------------------------------------------
    # Low-level mutation surface for the edit engine
    # ------------------------------------------------------------------
    def add_point(self, position: Vec3, locked_axes: Iterable[Axis] = ()) -> ControlPoint:
        point = ControlPoint(self._next_point_id, _as_vec3(position), frozenset(locked_axes))
        self._points[point.point_id] = point
        self._next_point_id += 1
        self._modified = True
        return point

    def remove_point(self, point_id: int) -> None:
        if point_id in self._owners:
            raise ValueError(f"Control point {point_id} is still referenced by a spline")
        if self._points.pop(point_id, None) is None:
            raise StaleReference(point_id)
        self._modified = True

    def set_point_position(self, point_id: int, position: Vec3) -> None:
        point = self.point(point_id)
        previous = point.position
        point.position = _as_vec3(position)
        spline_id = self._owners.get(point_id)
        if spline_id is not None:
            spline = self._splines[spline_id]
            if spline.first_id == point_id:
                _follow_first_point(spline, previous, point.position)
        self._modified = True

    def set_locked_axes(self, point_id: int, axes: Iterable[Axis]) -> None:
        self.point(point_id).locked_axes = frozenset(axes)

    def append_segment(self, spline_id: int, segment: Segment) -> None:
        spline = self.spline(spline_id)
        if segment.start_id != spline.last_id:
            raise ValueError(
                f"Segment must start at the last point {spline.last_id} of spline {spline_id}"
            )
        self._require_points((segment.start_id, segment.end_id))
        spline.segments.append(segment)
        self._owners[segment.end_id] = spline_id
        self._modified = True

    def prepend_segment(self, spline_id: int, segment: Segment) -> None:
        spline = self.spline(spline_id)
        if segment.end_id != spline.first_id:
            raise ValueError(
                f"Segment must end at the first point {spline.first_id} of spline {spline_id}"
            )
        self._require_points((segment.start_id, segment.end_id))
        previous = self._points[spline.first_id].position
        spline.segments.insert(0, segment)
        _follow_first_point(spline, previous, self._points[segment.start_id].position)
        self._owners[segment.start_id] = spline_id
        self._modified = True

    def replace_spline_segments(self, spline_id: int, segments: Sequence[Segment]) -> None:
        spline = self.spline(spline_id)
        self._require_points(
            point_id for segment in segments for point_id in (segment.start_id, segment.end_id)
        )
        previous = self._points.get(spline.first_id) if spline.segments else None
        spline.segments = list(segments)
        if spline.segments and previous is not None:
            _follow_first_point(spline, previous.position, self._points[spline.first_id].position)
        self._reindex()
        self._modified = True

    def add_spline(
        self,
        type_code: int,
        segments: Sequence[Segment],
        *,
        style: CurveStyle = CurveStyle.CURVE,
        visible: bool = True,
        location: Optional[Vec3] = None,
    ) -> Spline:
        self._require_points(
            point_id for segment in segments for point_id in (segment.start_id, segment.end_id)
        )
        if location is None and segments:
            location = self._points[segments[0].start_id].position
        spline = Spline(
            spline_id=self._next_spline_id,
            type_code=int(type_code),
            location=_as_vec3(location or (0.0, 0.0, 0.0)),
            segments=list(segments),
            visible=visible,
            style=style,
        )
        self._splines[spline.spline_id] = spline
        self._next_spline_id += 1
        self._reindex()
        self._modified = True
        return spline

    def remove_spline(self, spline_id: int, *, drop_points: bool = True) -> Spline:
        spline = self.spline(spline_id)
        del self._splines[spline_id]
        self._reindex()
        if drop_points:
            for point_id in spline.knot_ids():
                if point_id not in self._owners:
                    self._points.pop(point_id, None)
        self._modified = True
        return spline

    def set_segment_handles(
        self,
        spline_id: int,
        index: int,
        *,
        start_handle: Optional[Vec3] = None,
        end_handle: Optional[Vec3] = None,
    ) -> None:
        spline = self.spline(spline_id)
        segment = spline.segments[index]
        changes = {}
        if start_handle is not None:
            changes["start_handle"] = _as_vec3(start_handle)
        if end_handle is not None:
            changes["end_handle"] = _as_vec3(end_handle)
        if changes:
            spline.segments[index] = replace(segment, **changes)

    def set_spline_type(self, spline_id: int, type_code: int, style: CurveStyle) -> None:
        spline = self.spline(spline_id)
        spline.type_code = int(type_code)
        spline.style = style
        self._modified = True

    def set_tangent_hint(self, spline_id: int, point_id: int, hint: Optional[Vec3]) -> None:
        spline = self.spline(spline_id)
        if point_id not in spline.knot_ids():
            raise StaleReference(point_id)
        if hint is None:
            spline.tangent_hints.pop(point_id, None)
        else:
            spline.tangent_hints[point_id] = _as_vec3(hint)
        self._modified = True

    def _require_points(self, point_ids: Iterable[int]) -> None:
        for point_id in point_ids:
            if point_id not in self._points:
                raise StaleReference(point_id)

    # ------------------------------------------------------------------
    # Undo support
    # ------------------------------------------------------------------
    def snapshot(self) -> TrackSnapshot:
        return TrackSnapshot(
            splines=copy.deepcopy(tuple(self._splines.values())),
            points=copy.deepcopy(tuple(self._points.values())),
            next_point_id=self._next_point_id,
            next_spline_id=self._next_spline_id,
            modified=self._modified,
        )

    def restore(self, snapshot: TrackSnapshot) -> None:
        self._splines = {spline.spline_id: spline for spline in copy.deepcopy(snapshot.splines)}
        self._points = {point.point_id: point for point in copy.deepcopy(snapshot.points)}
        self._next_point_id = snapshot.next_point_id
        self._next_spline_id = snapshot.next_spline_id
        self._modified = snapshot.modified
        self._reindex()
        logger.debug(
            "Restored track snapshot: %d splines, %d control points",
            len(self._splines),
            len(self._points),
        )


def _follow_first_point(spline: Spline, old: Vec3, new: Vec3) -> None:
    # The actor location keeps its offset from the first control point.
    spline.location = tuple(
        location + (b - a) for location, a, b in zip(spline.location, old, new)
    )


def _as_vec3(value: Sequence[float]) -> Vec3:
    x, y, z = value
    return (float(x), float(y), float(z))
