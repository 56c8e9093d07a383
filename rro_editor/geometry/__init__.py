"""Bezier approximation of game splines."""

from rro_editor.geometry.bezier import (
    closest_parameter,
    control_polygon,
    derivative,
    evaluate,
    sample_segment,
)
from rro_editor.geometry.picking import Ray, SegmentHit, intersect_plane, pick_control_point, pick_segment
from rro_editor.geometry.spline_fit import Knot, derive_segments, refit_on_move, refit_spline

__all__ = [
    "Knot",
    "Ray",
    "SegmentHit",
    "closest_parameter",
    "control_polygon",
    "derivative",
    "derive_segments",
    "evaluate",
    "intersect_plane",
    "pick_control_point",
    "pick_segment",
    "refit_on_move",
    "refit_spline",
    "sample_segment",
]
