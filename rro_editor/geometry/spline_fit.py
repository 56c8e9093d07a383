"""Derive Bezier handles for a spline's knots and keep them fitted on edits.

The save only stores knot positions, so every segment's handles are derived
from the knots around it:

* At an interior knot the tangent direction is ``unit(P[k+1] - P[k-1])``
  (or the knot's tangent hint). The incoming and outgoing handles point along
  that direction in opposite senses, each ``handle_scale`` times the length of
  the chord on its side.
* An open end aims its handle halfway at the other inner control point of
  its segment, so the curve leaves the end smoothly.
* ``CurveStyle.STRAIGHT`` splines get zero handles and render as polylines.

The same rules run for the initial derivation and for the local refit after
a move, so a refit spline always equals a fresh derivation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from rro_editor.geometry.vectors import ZERO_VEC, Vec3, add, norm, scale, sub, unit
from rro_editor.model.elements import CurveStyle, Segment, Spline
from rro_editor.model.track_model import DEFAULT_HANDLE_SCALE, Track

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Knot:
    point_id: int
    position: Vec3
    tangent_hint: Optional[Vec3] = None


def _as_knot(knot) -> Knot:
    if isinstance(knot, Knot):
        return knot
    point_id, position, *rest = knot
    hint = rest[0] if rest else None
    return Knot(point_id, tuple(position), tuple(hint) if hint is not None else None)


def _interior_handles(
    positions: Sequence[Vec3],
    hints: Sequence[Optional[Vec3]],
    k: int,
    handle_scale: float,
) -> tuple[Vec3, Vec3]:
    previous, current, following = positions[k - 1], positions[k], positions[k + 1]
    hint = hints[k]
    direction = unit(hint) if hint is not None else unit(sub(following, previous))
    incoming = scale(direction, -handle_scale * norm(sub(current, previous)))
    outgoing = scale(direction, handle_scale * norm(sub(following, current)))
    return incoming, outgoing


def _hinted_end_handle(
    positions: Sequence[Vec3],
    hint: Vec3,
    k: int,
    handle_scale: float,
) -> Vec3:
    if k == 0:
        return scale(unit(hint), handle_scale * norm(sub(positions[1], positions[0])))
    return scale(unit(hint), -handle_scale * norm(sub(positions[k], positions[k - 1])))


def _knot_handles(
    positions: Sequence[Vec3],
    hints: Sequence[Optional[Vec3]],
    k: int,
    style: CurveStyle,
    handle_scale: float,
) -> tuple[Vec3, Vec3]:
    """Return ``(incoming, outgoing)`` handle offsets of knot ``k``.

    End knots only have one meaningful handle; the other is returned as zero.
    """

    count = len(positions)
    if style is CurveStyle.STRAIGHT or count < 2:
        return ZERO_VEC, ZERO_VEC
    last = count - 1
    if 0 < k < last:
        return _interior_handles(positions, hints, k, handle_scale)
    if hints[k] is not None:
        handle = _hinted_end_handle(positions, hints[k], k, handle_scale)
        return (ZERO_VEC, handle) if k == 0 else (handle, ZERO_VEC)

    neighbour = 1 if k == 0 else last - 1
    if count == 2:
        if hints[neighbour] is None:
            return ZERO_VEC, ZERO_VEC
        neighbour_handle = _hinted_end_handle(positions, hints[neighbour], neighbour, handle_scale)
    elif k == 0:
        neighbour_handle = _interior_handles(positions, hints, neighbour, handle_scale)[0]
    else:
        neighbour_handle = _interior_handles(positions, hints, neighbour, handle_scale)[1]
    # Halfway towards the other inner control point of the end segment.
    other_inner = sub(add(positions[neighbour], neighbour_handle), positions[k])
    handle = scale(other_inner, 0.5)
    return (ZERO_VEC, handle) if k == 0 else (handle, ZERO_VEC)


def derive_segments(
    knots: Sequence,
    style: CurveStyle = CurveStyle.CURVE,
    handle_scale: float = DEFAULT_HANDLE_SCALE,
    visibility: Optional[Sequence[bool]] = None,
) -> list[Segment]:
    """Build the Bezier segments for an ordered knot list.

    ``knots`` holds :class:`Knot` values or ``(point_id, position, hint)``
    tuples. The result depends only on the arguments.
    """

    items = [_as_knot(knot) for knot in knots]
    if len(items) < 2:
        raise ValueError(f"A spline needs at least two knots, got {len(items)}")
    positions = [item.position for item in items]
    hints = [item.tangent_hint for item in items]
    handles = [
        _knot_handles(positions, hints, k, style, handle_scale) for k in range(len(items))
    ]
    segments = []
    for index in range(len(items) - 1):
        visible = True if visibility is None else bool(visibility[index])
        segments.append(
            Segment(
                start_id=items[index].point_id,
                end_id=items[index + 1].point_id,
                start_handle=handles[index][1],
                end_handle=handles[index + 1][0],
                visible=visible,
            )
        )
    return segments


def spline_knots(track: Track, spline: Spline) -> list[Knot]:
    return [
        Knot(point_id, track.position(point_id), spline.tangent_hints.get(point_id))
        for point_id in spline.knot_ids()
    ]


def _affected_knots(moved: int, count: int) -> list[int]:
    # Interior handles depend on the knot and both neighbours; an end handle
    # also depends on its neighbour's handle, so it reaches two knots in.
    last = count - 1
    affected = {k for k in (moved - 1, moved, moved + 1) if 0 < k < last}
    if moved <= 2 or count == 2:
        affected.add(0)
    if moved >= last - 2 or count == 2:
        affected.add(last)
    return sorted(affected)


def refit_on_move(track: Track, point_id: int) -> list[int]:
    """Refit the handles around a control point that has just moved.

    Returns the indices of the segments whose handles were rewritten. Raises
    :class:`~rro_editor.model.errors.StaleReference` for unknown ids.
    """

    spline, moved = track.locate(point_id)
    knots = spline_knots(track, spline)
    positions = [knot.position for knot in knots]
    hints = [knot.tangent_hint for knot in knots]
    touched: set[int] = set()
    for k in _affected_knots(moved, len(knots)):
        incoming, outgoing = _knot_handles(
            positions, hints, k, spline.style, track.handle_scale
        )
        if k > 0:
            track.set_segment_handles(spline.spline_id, k - 1, end_handle=incoming)
            touched.add(k - 1)
        if k < len(knots) - 1:
            track.set_segment_handles(spline.spline_id, k, start_handle=outgoing)
            touched.add(k)
    logger.debug(
        "Refit spline %d around point %d: segments %s", spline.spline_id, point_id, sorted(touched)
    )
    return sorted(touched)


def refit_spline(track: Track, spline_id: int) -> None:
    """Rederive every handle of a spline, keeping segment visibility."""

    spline = track.spline(spline_id)
    segments = derive_segments(
        spline_knots(track, spline),
        spline.style,
        track.handle_scale,
        [segment.visible for segment in spline.segments],
    )
    for index, segment in enumerate(segments):
        track.set_segment_handles(
            spline_id, index, start_handle=segment.start_handle, end_handle=segment.end_handle
        )
