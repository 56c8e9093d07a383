from __future__ import annotations

import pytest

from rro_editor.geometry.picking import (
    Ray,
    distance_to_ray,
    intersect_plane,
    pick_control_point,
    pick_segment,
)
from rro_editor.geometry.spline_fit import derive_segments
from rro_editor.model.elements import ControlPoint, Spline
from rro_editor.model.track_model import Track


def _track() -> Track:
    positions = [(0.0, 0.0, 0.0), (100.0, 0.0, 0.0), (200.0, 0.0, 0.0), (100.0, 30.0, 0.0), (100.0, 300.0, 0.0)]
    points = [ControlPoint(i, p) for i, p in enumerate(positions)]
    splines = [
        Spline(0, 0, positions[0], derive_segments(list(zip([0, 1, 2], positions[:3])))),
        Spline(1, 0, positions[3], derive_segments(list(zip([3, 4], positions[3:])))),
    ]
    return Track(splines, points)


def test_pick_nearest_point_within_radius():
    track = _track()

    assert pick_control_point(track, (104.0, 12.0, 0.0), 20.0) == 1
    assert pick_control_point(track, (100.0, 24.0, 0.0), 20.0) == 3
    assert pick_control_point(track, (600.0, 0.0, 0.0), 20.0) is None


def test_pick_skips_hidden_splines_unless_asked():
    track = _track()
    track.set_visibility(0, False)

    assert pick_control_point(track, (104.0, 12.0, 0.0), 20.0) == 3
    assert pick_control_point(track, (104.0, 12.0, 0.0), 20.0, visible_only=False) == 1


def test_pick_with_ray_prefers_point_nearer_the_eye():
    track = _track()
    ray = Ray((100.0, 14.0, 1000.0), (0.0, 0.0, -1.0))

    assert pick_control_point(track, ray, 20.0) == 1
    looking_along_x = Ray((-50.0, 0.0, 0.0), (1.0, 0.0, 0.0))
    assert pick_control_point(track, looking_along_x, 5.0) == 0


def test_pick_segment_reports_parameter():
    track = _track()

    hit = pick_segment(track, (150.0, 3.0, 0.0), 10.0)

    assert hit is not None
    assert (hit.spline_id, hit.index) == (0, 1)
    assert 0.0 < hit.t < 1.0
    assert hit.distance <= 10.0
    assert pick_segment(track, (150.0, 500.0, 0.0), 10.0) is None


def test_intersect_plane_and_ray_distance():
    down = Ray((10.0, 20.0, 100.0), (0.0, 0.0, -2.0))

    assert intersect_plane(down, (0.0, 0.0, 0.0), (0.0, 0.0, 1.0)) == (10.0, 20.0, 0.0)
    assert intersect_plane(down, (0.0, 0.0, 200.0), (0.0, 0.0, 1.0)) is None
    flat = Ray((0.0, 0.0, 5.0), (1.0, 0.0, 0.0))
    assert intersect_plane(flat, (0.0, 0.0, 0.0), (0.0, 0.0, 1.0)) is None
    assert distance_to_ray(flat, (3.0, 4.0, 5.0)) == pytest.approx(4.0)
    assert distance_to_ray(flat, (-3.0, 4.0, 5.0)) == pytest.approx(5.0)
