"""Invariant checks for the editable track model."""

from __future__ import annotations

from math import isfinite
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rro_editor.model.track_model import Track


class InvariantError(ValueError):
    """Raised when the track model violates a structural or geometric invariant."""


def assert_splines_have_segments(track: "Track") -> None:
    """Assert every spline owns at least one segment."""

    for spline in track.splines():
        if not spline.segments:
            raise InvariantError(f"Spline {spline.spline_id} has no segments.")


def assert_chained_segments(track: "Track") -> None:
    """Assert adjacent segments of a spline share their endpoint by id.

    This invariant guarantees positional continuity: segment ``i`` ends at the
    very control point segment ``i + 1`` starts from, and no knot repeats
    within a spline.
    """

    for spline in track.splines():
        for index in range(1, len(spline.segments)):
            previous = spline.segments[index - 1]
            current = spline.segments[index]
            if previous.end_id != current.start_id:
                raise InvariantError(
                    f"Spline {spline.spline_id} segment {index} starts at point "
                    f"{current.start_id}, but segment {index - 1} ends at {previous.end_id}."
                )
        knots = spline.knot_ids()
        if len(set(knots)) != len(knots):
            raise InvariantError(f"Spline {spline.spline_id} visits a control point twice.")


def assert_point_references(track: "Track") -> None:
    """Assert control point identities are unique and referenced consistently.

    Every referenced id must exist in the arena under its own id, and each
    control point belongs to at most one spline.
    """

    for point in track.control_points():
        if track.find_control_point(point.point_id) is not point:
            raise InvariantError(f"Control point {point.point_id} is stored under another id.")

    owners: dict[int, int] = {}
    for spline in track.splines():
        for point_id in spline.knot_ids():
            if track.find_control_point(point_id) is None:
                raise InvariantError(
                    f"Spline {spline.spline_id} references missing control point {point_id}."
                )
            owner = owners.setdefault(point_id, spline.spline_id)
            if owner != spline.spline_id:
                raise InvariantError(
                    f"Control point {point_id} is shared by splines {owner} and {spline.spline_id}."
                )


def assert_geometry_valid(track: "Track") -> None:
    """Assert positions and handles are finite numbers."""

    for point in track.control_points():
        if not all(isfinite(v) for v in point.position):
            raise InvariantError(f"Control point {point.point_id} has a non-finite position.")
    for spline in track.splines():
        for index, segment in enumerate(spline.segments):
            if not all(isfinite(v) for v in (*segment.start_handle, *segment.end_handle)):
                raise InvariantError(
                    f"Spline {spline.spline_id} segment {index} has a non-finite handle."
                )


def validate_track(track: "Track") -> None:
    """Run all core track invariants."""

    assert_splines_have_segments(track)
    assert_chained_segments(track)
    assert_point_references(track)
    assert_geometry_valid(track)
