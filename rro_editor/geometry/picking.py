"""Hit-testing helpers turning pointer rays or world positions into track items."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from rro_editor.geometry.bezier import closest_parameter
from rro_editor.geometry.vectors import Vec3, add, cross, distance, dot, norm, scale, sub, unit

if TYPE_CHECKING:
    from rro_editor.model.track_model import Track


@dataclass(frozen=True)
class Ray:
    origin: Vec3
    direction: Vec3

    def at(self, t: float) -> Vec3:
        return add(self.origin, scale(self.direction, t))


@dataclass(frozen=True)
class SegmentHit:
    spline_id: int
    index: int
    t: float
    distance: float


Probe = Union[Ray, Vec3]


def intersect_plane(ray: Ray, plane_point: Vec3, plane_normal: Vec3) -> Optional[Vec3]:
    """Intersection of ``ray`` with a plane, or ``None`` when parallel or behind."""

    denom = dot(ray.direction, plane_normal)
    if abs(denom) <= 1e-12:
        return None
    t = dot(sub(plane_point, ray.origin), plane_normal) / denom
    if t < 0.0:
        return None
    return ray.at(t)


def distance_to_ray(ray: Ray, point: Vec3) -> float:
    direction = unit(ray.direction)
    offset = sub(point, ray.origin)
    along = dot(offset, direction)
    if along <= 0.0:
        return norm(offset)
    return norm(cross(offset, direction))


def _probe_distance(probe: Probe, point: Vec3) -> float:
    if isinstance(probe, Ray):
        return distance_to_ray(probe, point)
    return distance(probe, point)


def pick_control_point(
    track: "Track",
    probe: Probe,
    radius: float,
    *,
    visible_only: bool = True,
) -> Optional[int]:
    """Return the id of the control point nearest ``probe`` within ``radius``.

    Ties go to the point nearest the ray origin, then to the lowest id.
    """

    best: Optional[tuple[float, float, int]] = None
    for spline in track.splines():
        if visible_only and not spline.visible:
            continue
        for point_id in spline.knot_ids():
            position = track.position(point_id)
            gap = _probe_distance(probe, position)
            if gap > radius:
                continue
            depth = distance(probe.origin, position) if isinstance(probe, Ray) else 0.0
            key = (gap, depth, point_id)
            if best is None or key < best:
                best = key
    return None if best is None else best[2]


def pick_segment(
    track: "Track",
    position: Vec3,
    radius: float,
    *,
    visible_only: bool = True,
) -> Optional[SegmentHit]:
    """Return the segment passing nearest ``position`` within ``radius``."""

    points = track.positions()
    best: Optional[SegmentHit] = None
    for spline in track.splines():
        if visible_only and not spline.visible:
            continue
        for index, segment in enumerate(spline.segments):
            if visible_only and not segment.visible:
                continue
            t, gap = closest_parameter(segment, position, points)
            if gap <= radius and (best is None or gap < best.distance):
                best = SegmentHit(spline.spline_id, index, t, gap)
    return best
