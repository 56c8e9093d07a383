"""Tests for Bezier handle derivation and local refitting."""

from __future__ import annotations

import math

import pytest

from rro_editor.geometry.bezier import closest_parameter, evaluate, sample_polygon, sample_segment
from rro_editor.geometry.spline_fit import Knot, derive_segments, refit_on_move, refit_spline
from rro_editor.model.elements import ControlPoint, CurveStyle, Spline
from rro_editor.model.track_model import Track

ZERO = (0.0, 0.0, 0.0)

WIGGLE = [
    (0.0, 0.0, 0.0),
    (120.0, 40.0, 2.0),
    (260.0, -30.0, 5.0),
    (390.0, 60.0, 4.0),
    (500.0, 10.0, 1.0),
    (640.0, 90.0, 0.0),
    (760.0, 20.0, 3.0),
    (900.0, 0.0, 6.0),
]


def _track(positions, style=CurveStyle.CURVE):
    ids = list(range(len(positions)))
    points = [ControlPoint(point_id, position) for point_id, position in zip(ids, positions)]
    spline = Spline(0, 0, positions[0], derive_segments(list(zip(ids, positions)), style), style=style)
    return Track([spline], points)


def test_derivation_is_deterministic():
    knots = list(zip(range(len(WIGGLE)), WIGGLE))

    assert derive_segments(knots) == derive_segments(knots)


def test_interior_and_end_handles_for_collinear_knots():
    segments = derive_segments([(0, (0.0, 0.0, 0.0)), (1, (100.0, 0.0, 0.0)), (2, (200.0, 0.0, 0.0))])

    assert segments[0].start_handle == (35.0, 0.0, 0.0)
    assert segments[0].end_handle == (-30.0, 0.0, 0.0)
    assert segments[1].start_handle == (30.0, 0.0, 0.0)
    assert segments[1].end_handle == (-35.0, 0.0, 0.0)


def test_interior_handles_are_collinear_and_opposite():
    segments = derive_segments(list(zip(range(len(WIGGLE)), WIGGLE)))

    for left, right in zip(segments, segments[1:]):
        incoming = left.end_handle
        outgoing = right.start_handle
        cross = (
            incoming[1] * outgoing[2] - incoming[2] * outgoing[1],
            incoming[2] * outgoing[0] - incoming[0] * outgoing[2],
            incoming[0] * outgoing[1] - incoming[1] * outgoing[0],
        )
        assert all(abs(component) < 1e-6 for component in cross)
        assert sum(a * b for a, b in zip(incoming, outgoing)) < 0.0


def test_straight_style_has_zero_handles():
    segments = derive_segments(list(zip(range(len(WIGGLE)), WIGGLE)), CurveStyle.STRAIGHT)

    assert all(s.start_handle == ZERO and s.end_handle == ZERO for s in segments)


def test_two_knots_without_hints_form_a_straight_segment():
    (segment,) = derive_segments([(0, (0.0, 0.0, 0.0)), (1, (100.0, 50.0, 0.0))])

    assert segment.start_handle == ZERO
    assert segment.end_handle == ZERO


def test_tangent_hint_bends_a_two_knot_segment():
    (segment,) = derive_segments(
        [Knot(0, (0.0, 0.0, 0.0), (1.0, 0.0, 0.0)), Knot(1, (100.0, 0.0, 0.0))]
    )

    assert segment.start_handle == (30.0, 0.0, 0.0)
    assert segment.end_handle == (-35.0, 0.0, 0.0)


def test_fewer_than_two_knots_is_an_error():
    with pytest.raises(ValueError):
        derive_segments([(0, (0.0, 0.0, 0.0))])


def test_visibility_is_carried_onto_segments():
    segments = derive_segments(list(zip(range(4), WIGGLE)), visibility=[True, False, True])

    assert [segment.visible for segment in segments] == [True, False, True]


@pytest.mark.parametrize("moved", range(len(WIGGLE)))
def test_refit_on_move_matches_fresh_derivation(moved):
    track = _track(WIGGLE)
    x, y, z = WIGGLE[moved]
    track.set_point_position(moved, (x + 45.0, y - 80.0, z + 3.0))

    refit_on_move(track, moved)

    positions = [track.position(point_id) for point_id in range(len(WIGGLE))]
    expected = derive_segments(list(zip(range(len(WIGGLE)), positions)))
    assert track.spline(0).segments == expected


def test_refit_on_move_only_touches_local_segments():
    track = _track(WIGGLE)
    before = list(track.spline(0).segments)
    track.set_point_position(3, (400.0, 200.0, 4.0))

    touched = refit_on_move(track, 3)

    assert touched == [1, 2, 3, 4]
    after = track.spline(0).segments
    assert after[0] == before[0]
    assert after[5] == before[5]
    assert after[6] == before[6]


def test_refit_on_move_for_two_knot_spline():
    track = _track([(0.0, 0.0, 0.0), (100.0, 0.0, 0.0)])
    track.set_tangent_hint(0, 0, (0.0, 1.0, 0.0))

    touched = refit_on_move(track, 1)

    assert touched == [0]
    assert track.spline(0).segments[0].start_handle == (0.0, 30.0, 0.0)


def test_refit_spline_switches_to_straight():
    track = _track(WIGGLE)
    track.set_spline_type(0, 7, CurveStyle.STRAIGHT)

    refit_spline(track, 0)

    assert all(s.start_handle == ZERO and s.end_handle == ZERO for s in track.spline(0).segments)


def test_evaluate_hits_endpoints_and_clamps():
    track = _track(WIGGLE)
    segment = track.spline(0).segments[2]
    points = track.positions()

    assert evaluate(segment, 0.0, points) == WIGGLE[2]
    assert evaluate(segment, 1.0, points) == WIGGLE[3]
    assert evaluate(segment, 2.0, points) == WIGGLE[3]


def test_sampling_covers_segment_in_roughly_even_steps():
    polygon = ((0.0, 0.0, 0.0), (100.0, 0.0, 0.0), (200.0, 0.0, 0.0), (300.0, 0.0, 0.0))

    samples = sample_polygon(polygon, 50.0, 5.0)

    assert samples[0] == polygon[0]
    assert samples[-1] == polygon[3]
    gaps = [math.dist(a, b) for a, b in zip(samples, samples[1:])]
    assert all(gap <= 55.0 for gap in gaps)
    assert all(abs(gap - 50.0) <= 5.0 for gap in gaps[:-1])


def test_short_segment_samples_to_its_two_ends():
    track = _track([(0.0, 0.0, 0.0), (10.0, 0.0, 0.0)])
    segment = track.spline(0).segments[0]

    samples = sample_segment(segment, track.positions(), 100.0, 25.0)

    assert samples == [(0.0, 0.0, 0.0), (10.0, 0.0, 0.0)]


def test_sampling_rejects_non_positive_step():
    polygon = ((0.0, 0.0, 0.0),) * 4

    with pytest.raises(ValueError):
        sample_polygon(polygon, 0.0, 1.0)


def test_closest_parameter_finds_point_on_straight_segment():
    track = _track([(0.0, 0.0, 0.0), (100.0, 0.0, 0.0)])
    segment = track.spline(0).segments[0]

    t, gap = closest_parameter(segment, (25.0, 10.0, 0.0), track.positions())

    assert 0.0 < t < 0.5
    assert evaluate(segment, t, track.positions())[0] == pytest.approx(25.0, abs=1e-3)
    assert gap == pytest.approx(10.0, abs=1e-4)
