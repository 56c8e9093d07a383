"""Cubic Bezier evaluation and tessellation for track segments."""

from __future__ import annotations

from typing import Mapping

from rro_editor.geometry.vectors import Vec3, add, distance, scale, sub
from rro_editor.model.elements import Segment

ControlPolygon = tuple[Vec3, Vec3, Vec3, Vec3]


def control_polygon(segment: Segment, points: Mapping[int, Vec3]) -> ControlPolygon:
    """Absolute positions of the four Bezier control points of ``segment``."""

    start = points[segment.start_id]
    end = points[segment.end_id]
    return (start, add(start, segment.start_handle), add(end, segment.end_handle), end)


def _clamp(t: float) -> float:
    return 0.0 if t < 0.0 else 1.0 if t > 1.0 else float(t)


def evaluate_polygon(polygon: ControlPolygon, t: float) -> Vec3:
    t = _clamp(t)
    u = 1.0 - t
    b0, b1, b2, b3 = u * u * u, 3.0 * u * u * t, 3.0 * u * t * t, t * t * t
    p0, p1, p2, p3 = polygon
    return (
        b0 * p0[0] + b1 * p1[0] + b2 * p2[0] + b3 * p3[0],
        b0 * p0[1] + b1 * p1[1] + b2 * p2[1] + b3 * p3[1],
        b0 * p0[2] + b1 * p1[2] + b2 * p2[2] + b3 * p3[2],
    )


def evaluate(segment: Segment, t: float, points: Mapping[int, Vec3]) -> Vec3:
    """Position on ``segment`` at parameter ``t`` (clamped to [0, 1])."""

    return evaluate_polygon(control_polygon(segment, points), t)


def derivative_polygon(polygon: ControlPolygon, t: float) -> Vec3:
    t = _clamp(t)
    u = 1.0 - t
    p0, p1, p2, p3 = polygon
    d0 = scale(sub(p1, p0), 3.0 * u * u)
    d1 = scale(sub(p2, p1), 6.0 * u * t)
    d2 = scale(sub(p3, p2), 3.0 * t * t)
    return add(add(d0, d1), d2)


def derivative(segment: Segment, t: float, points: Mapping[int, Vec3]) -> Vec3:
    return derivative_polygon(control_polygon(segment, points), t)


def sample_polygon(polygon: ControlPolygon, step: float, tolerance: float) -> list[Vec3]:
    """Walk the curve in chords of roughly ``step`` length.

    Each next parameter is found by bisection until the chord from the last
    emitted point is within ``tolerance`` of ``step``. The end point is always
    emitted, so the result has at least two points.
    """

    start = polygon[0]
    end = polygon[3]
    if step <= 0.0:
        raise ValueError(f"Sample step must be positive, got {step}")
    tolerance = max(float(tolerance), 1e-6)
    samples = [start]
    t = 0.0
    current = start
    while True:
        if distance(current, end) <= step + tolerance:
            # Guard against very curly segments whose end is near the start.
            if distance(evaluate_polygon(polygon, (t + 1.0) / 2.0), current) <= step + tolerance:
                break
        low, high = t, 1.0
        candidate_t = high
        candidate = end
        for _ in range(48):
            middle = (low + high) / 2.0
            point = evaluate_polygon(polygon, middle)
            chord = distance(current, point)
            candidate_t, candidate = middle, point
            if abs(chord - step) <= tolerance:
                break
            if chord < step:
                low = middle
            else:
                high = middle
        if candidate_t <= t:
            break
        samples.append(candidate)
        t, current = candidate_t, candidate
    if len(samples) < 2 or samples[-1] != end:
        samples.append(end)
    return samples


def sample_segment(
    segment: Segment,
    points: Mapping[int, Vec3],
    step: float,
    tolerance: float,
) -> list[Vec3]:
    return sample_polygon(control_polygon(segment, points), step, tolerance)


def closest_parameter(
    segment: Segment,
    target: Vec3,
    points: Mapping[int, Vec3],
    samples: int = 32,
) -> tuple[float, float]:
    """Return ``(t, distance)`` of the point on ``segment`` nearest ``target``."""

    polygon = control_polygon(segment, points)
    best_t = 0.0
    best = distance(polygon[0], target)
    for index in range(1, samples + 1):
        t = index / samples
        d = distance(evaluate_polygon(polygon, t), target)
        if d < best:
            best_t, best = t, d
    # Shrink a bracket around the best sample.
    width = 1.0 / samples
    for _ in range(24):
        width /= 2.0
        for candidate in (best_t - width, best_t + width):
            if 0.0 <= candidate <= 1.0:
                d = distance(evaluate_polygon(polygon, candidate), target)
                if d < best:
                    best_t, best = candidate, d
    return best_t, best

