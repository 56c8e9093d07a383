"""Value types of the editable track model."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional

from rro_editor.model.spline_types import SplineType

Vec3 = tuple[float, float, float]

ZERO: Vec3 = (0.0, 0.0, 0.0)


class Axis(enum.Enum):
    """Game-space axes; ``Z`` is height."""

    X = 0
    Y = 1
    Z = 2

    @classmethod
    def parse(cls, text: str) -> "Axis":
        try:
            return cls[text.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown axis {text!r}") from None


class CurveStyle(enum.Enum):
    """Continuity rule applied when handles are derived for a spline."""

    CURVE = "curve"
    STRAIGHT = "straight"
    # Placeholder for switch-capable splines, fitted like CURVE for now.
    JUNCTION = "junction"


@dataclass
class ControlPoint:
    point_id: int
    position: Vec3
    locked_axes: frozenset[Axis] = frozenset()

    def is_locked(self, axis: Axis) -> bool:
        return axis in self.locked_axes


@dataclass(frozen=True)
class Segment:
    """One cubic Bezier piece referencing its endpoints by id.

    Handles are offsets from their endpoint: the second Bezier control point
    is ``start + start_handle`` and the third is ``end + end_handle``.
    """

    start_id: int
    end_id: int
    start_handle: Vec3 = ZERO
    end_handle: Vec3 = ZERO
    visible: bool = True


@dataclass
class Spline:
    spline_id: int
    type_code: int
    location: Vec3
    segments: list[Segment]
    visible: bool = True
    style: CurveStyle = CurveStyle.CURVE
    tangent_hints: dict[int, Vec3] = field(default_factory=dict)

    def knot_ids(self) -> list[int]:
        """Control point ids in curve order."""

        if not self.segments:
            return []
        return [self.segments[0].start_id] + [segment.end_id for segment in self.segments]

    @property
    def first_id(self) -> int:
        return self.segments[0].start_id

    @property
    def last_id(self) -> int:
        return self.segments[-1].end_id

    @property
    def spline_type(self) -> Optional[SplineType]:
        return SplineType.from_code(self.type_code)


@dataclass(frozen=True)
class GroundworkItem:
    """Inert placeholder for a non-track object stored in the save."""

    item_id: int
    kind: str
    index: int
    location: Vec3
    rotation: Optional[Vec3] = None
    type_code: Optional[int] = None
