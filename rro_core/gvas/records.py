"""Routing table for the array properties the editor understands.

Only ``ArrayProperty`` tags whose name appears in :data:`ROUTES` are decoded
into :class:`~rro_core.gvas.document.ArrayRecord`; everything else stays an
opaque span.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from rro_core.binary import FString
from rro_core.gvas.document import ArrayRecord, StructArrayHeader

NULL_GUID = bytes(16)


@dataclass(frozen=True)
class RecordLayout:
    inner_type: str
    dtype: str
    struct_name: Optional[str] = None

    @property
    def components(self) -> int:
        return 3 if self.struct_name else 1

    @property
    def item_size(self) -> int:
        return np.dtype(self.dtype).itemsize * self.components


VECTOR = RecordLayout("StructProperty", "<f4", "Vector")
ROTATOR = RecordLayout("StructProperty", "<f4", "Rotator")
INT = RecordLayout("IntProperty", "<i4")
BOOL = RecordLayout("BoolProperty", "u1")
FLOAT = RecordLayout("FloatProperty", "<f4")

SPLINE_LOCATION = "SplineLocationArray"
SPLINE_TYPE = "SplineTypeArray"
SPLINE_CONTROL_POINTS = "SplineControlPointsArray"
SPLINE_CONTROL_POINTS_START = "SplineControlPointsIndexStartArray"
SPLINE_CONTROL_POINTS_END = "SplineControlPointsIndexEndArray"
SPLINE_SEGMENTS_VISIBILITY = "SplineSegmentsVisibilityArray"
SPLINE_VISIBILITY_START = "SplineVisibilityStartArray"
SPLINE_VISIBILITY_END = "SplineVisibilityEndArray"

# Order in which the game writes them; missing ones are inserted this way.
SPLINE_RECORDS = (
    SPLINE_LOCATION,
    SPLINE_TYPE,
    SPLINE_CONTROL_POINTS,
    SPLINE_CONTROL_POINTS_START,
    SPLINE_CONTROL_POINTS_END,
    SPLINE_SEGMENTS_VISIBILITY,
    SPLINE_VISIBILITY_START,
    SPLINE_VISIBILITY_END,
)

GROUNDWORK_KINDS = ("Industry", "Watertower", "Sandhouse")
REMOVED_VEGETATION = "RemovedVegetationAssetsArray"


def groundwork_record_names(kind: str) -> tuple[str, str, str]:
    """Location, rotation and type array names of a groundwork family."""

    return (f"{kind}LocationArray", f"{kind}RotationArray", f"{kind}TypeArray")


ROUTES: dict[str, RecordLayout] = {
    SPLINE_LOCATION: VECTOR,
    SPLINE_TYPE: INT,
    SPLINE_CONTROL_POINTS: VECTOR,
    SPLINE_CONTROL_POINTS_START: INT,
    SPLINE_CONTROL_POINTS_END: INT,
    SPLINE_SEGMENTS_VISIBILITY: BOOL,
    SPLINE_VISIBILITY_START: INT,
    SPLINE_VISIBILITY_END: INT,
    REMOVED_VEGETATION: VECTOR,
}
for _kind in GROUNDWORK_KINDS:
    _location, _rotation, _type = groundwork_record_names(_kind)
    ROUTES[_location] = VECTOR
    ROUTES[_rotation] = ROTATOR
    ROUTES[_type] = INT


def layout_for(name: str) -> RecordLayout | None:
    return ROUTES.get(name)


def make_record(name: str, values) -> ArrayRecord:
    """Build a fresh record for ``name`` with default tag fields.

    Used when a save lacks a record the editor needs to write.
    """

    layout = ROUTES[name]
    array = np.asarray(values, dtype=layout.dtype)
    struct_header = None
    if layout.struct_name:
        array = array.reshape(-1, 3)
        struct_header = StructArrayHeader(
            name=FString(name),
            type_name=FString("StructProperty"),
            struct_name=FString(layout.struct_name),
            struct_guid=NULL_GUID,
        )
    else:
        array = array.reshape(-1)
    return ArrayRecord(
        name=FString(name),
        type_name=FString("ArrayProperty"),
        inner_type=FString(layout.inner_type),
        values=array,
        struct_header=struct_header,
    )
