"""Build a :class:`Track` from a decoded save and write it back.

Each spline owns an inclusive ``[start, end]`` range of
``SplineControlPointsArray`` and an inclusive range of
``SplineSegmentsVisibilityArray`` (one flag per segment). Control point ids
are the indices into ``SplineControlPointsArray`` at load time.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from rro_core.gvas.document import ArrayRecord, Document
from rro_core.gvas.records import (
    GROUNDWORK_KINDS,
    REMOVED_VEGETATION,
    SPLINE_CONTROL_POINTS,
    SPLINE_CONTROL_POINTS_END,
    SPLINE_CONTROL_POINTS_START,
    SPLINE_LOCATION,
    SPLINE_RECORDS,
    SPLINE_SEGMENTS_VISIBILITY,
    SPLINE_TYPE,
    SPLINE_VISIBILITY_END,
    SPLINE_VISIBILITY_START,
    groundwork_record_names,
    make_record,
)
from rro_editor.config import EditorSettings
from rro_editor.geometry.spline_fit import Knot, derive_segments
from rro_editor.model.elements import ControlPoint, GroundworkItem, Spline, Vec3
from rro_editor.model.errors import DanglingReference
from rro_editor.model.invariants import InvariantError, validate_track
from rro_editor.model.track_model import Track

logger = logging.getLogger(__name__)

REMOVED_VEGETATION_KIND = "RemovedVegetation"


def _vec3(row) -> Vec3:
    return (float(row[0]), float(row[1]), float(row[2]))


def _load_groundwork(document: Document) -> list[GroundworkItem]:
    items: list[GroundworkItem] = []
    for kind in GROUNDWORK_KINDS:
        location_name, rotation_name, type_name = groundwork_record_names(kind)
        locations = document.find(location_name)
        if locations is None:
            continue
        rotations = document.find(rotation_name)
        types = document.find(type_name)
        for index, row in enumerate(locations.values):
            rotation = None
            if rotations is not None and index < len(rotations):
                rotation = _vec3(rotations.values[index])
            type_code = None
            if types is not None and index < len(types):
                type_code = int(types.values[index])
            items.append(
                GroundworkItem(len(items), kind, index, _vec3(row), rotation, type_code)
            )
    vegetation = document.find(REMOVED_VEGETATION)
    if vegetation is not None:
        for index, row in enumerate(vegetation.values):
            items.append(GroundworkItem(len(items), REMOVED_VEGETATION_KIND, index, _vec3(row)))
    return items


def _spline_records(document: Document) -> Optional[dict[str, ArrayRecord]]:
    records = {name: document.find(name) for name in SPLINE_RECORDS}
    missing = [name for name, record in records.items() if record is None]
    if len(missing) == len(SPLINE_RECORDS):
        return None
    if missing:
        raise InvariantError(f"Save is missing spline records: {', '.join(missing)}.")
    return records


def _segment_flags(
    spline_index: int,
    segment_count: int,
    first: int,
    last: int,
    flags: np.ndarray,
) -> list[bool]:
    result: list[bool] = []
    defaulted = 0
    for offset in range(segment_count):
        index = first + offset
        if first <= index <= last and 0 <= index < len(flags):
            result.append(bool(flags[index]))
        else:
            result.append(True)
            defaulted += 1
    if defaulted:
        logger.warning(
            "Spline %d: %d segment visibility flag(s) outside the stored range, assuming visible",
            spline_index,
            defaulted,
        )
    return result


def build(document: Document, settings: Optional[EditorSettings] = None) -> Track:
    """Construct the track graph for ``document``.

    Raises :class:`DanglingReference` when a spline names a control point the
    save does not hold and :class:`InvariantError` for inconsistent spline
    arrays. Nothing is returned on failure.
    """

    settings = settings or EditorSettings()
    groundwork = _load_groundwork(document)
    records = _spline_records(document)
    if records is None:
        logger.info("Save has no spline records; built an empty track")
        return Track(groundwork=groundwork, handle_scale=settings.handle_scale)

    locations = records[SPLINE_LOCATION].values
    types = records[SPLINE_TYPE].values
    coordinates = records[SPLINE_CONTROL_POINTS].values
    starts = records[SPLINE_CONTROL_POINTS_START].values
    ends = records[SPLINE_CONTROL_POINTS_END].values
    flags = records[SPLINE_SEGMENTS_VISIBILITY].values
    visibility_starts = records[SPLINE_VISIBILITY_START].values
    visibility_ends = records[SPLINE_VISIBILITY_END].values

    count = len(locations)
    lengths = {
        SPLINE_TYPE: len(types),
        SPLINE_CONTROL_POINTS_START: len(starts),
        SPLINE_CONTROL_POINTS_END: len(ends),
        SPLINE_VISIBILITY_START: len(visibility_starts),
        SPLINE_VISIBILITY_END: len(visibility_ends),
    }
    mismatched = {name: size for name, size in lengths.items() if size != count}
    if mismatched:
        details = ", ".join(f"{name}={size}" for name, size in mismatched.items())
        raise InvariantError(
            f"{SPLINE_LOCATION} has {count} entries but {details}."
        )

    point_count = len(coordinates)
    points: dict[int, ControlPoint] = {}
    splines: list[Spline] = []
    for index in range(count):
        first, last = int(starts[index]), int(ends[index])
        for point_id in (first, last):
            if not 0 <= point_id < point_count:
                raise DanglingReference(
                    point_id, f"spline {index} range [{first}, {last}] exceeds {point_count} points"
                )
        if last - first + 1 < 2:
            raise InvariantError(
                f"Spline {index} has {max(last - first + 1, 0)} control point(s); at least 2 needed."
            )
        knot_ids = list(range(first, last + 1))
        for point_id in knot_ids:
            if point_id in points:
                raise InvariantError(
                    f"Control point {point_id} is claimed by more than one spline."
                )
            points[point_id] = ControlPoint(point_id, _vec3(coordinates[point_id]))

        segment_flags = _segment_flags(
            index,
            len(knot_ids) - 1,
            int(visibility_starts[index]),
            int(visibility_ends[index]),
            flags,
        )
        visible = any(segment_flags)
        if not visible:
            # A hidden spline is stored as all-hidden segments.
            segment_flags = [True] * len(segment_flags)
        type_code = int(types[index])
        style = settings.style_for(type_code)
        segments = derive_segments(
            [Knot(point_id, points[point_id].position) for point_id in knot_ids],
            style,
            settings.handle_scale,
            segment_flags,
        )
        splines.append(
            Spline(
                spline_id=index,
                type_code=type_code,
                location=_vec3(locations[index]),
                segments=segments,
                visible=visible,
                style=style,
            )
        )

    unreferenced = point_count - len(points)
    if unreferenced:
        logger.warning(
            "%d control point(s) are not part of any spline and will be dropped on save",
            unreferenced,
        )
    track = Track(
        splines,
        sorted(points.values(), key=lambda point: point.point_id),
        groundwork,
        handle_scale=settings.handle_scale,
    )
    validate_track(track)
    logger.info(
        "Built track: %d splines, %d control points, %d groundwork items",
        len(splines),
        len(points),
        len(groundwork),
    )
    return track


def _spline_arrays(track: Track) -> dict[str, np.ndarray]:
    locations: list[Vec3] = []
    types: list[int] = []
    coordinates: list[Vec3] = []
    starts: list[int] = []
    ends: list[int] = []
    flags: list[int] = []
    visibility_starts: list[int] = []
    visibility_ends: list[int] = []
    for spline in track.splines():
        knot_ids = spline.knot_ids()
        starts.append(len(coordinates))
        coordinates.extend(track.position(point_id) for point_id in knot_ids)
        ends.append(len(coordinates) - 1)
        visibility_starts.append(len(flags))
        flags.extend(int(spline.visible and segment.visible) for segment in spline.segments)
        visibility_ends.append(len(flags) - 1)
        locations.append(spline.location)
        types.append(spline.type_code)
    return {
        SPLINE_LOCATION: np.array(locations, dtype="<f4").reshape(-1, 3),
        SPLINE_TYPE: np.array(types, dtype="<i4"),
        SPLINE_CONTROL_POINTS: np.array(coordinates, dtype="<f4").reshape(-1, 3),
        SPLINE_CONTROL_POINTS_START: np.array(starts, dtype="<i4"),
        SPLINE_CONTROL_POINTS_END: np.array(ends, dtype="<i4"),
        SPLINE_SEGMENTS_VISIBILITY: np.array(flags, dtype="u1"),
        SPLINE_VISIBILITY_START: np.array(visibility_starts, dtype="<i4"),
        SPLINE_VISIBILITY_END: np.array(visibility_ends, dtype="<i4"),
    }


def write_back(track: Track, document: Document) -> Document:
    """Return ``document`` with the spline records rebuilt from ``track``.

    An unmodified track returns ``document`` itself so the save re-encodes
    byte for byte. Otherwise only the eight spline records change; control
    points are renumbered into contiguous per-spline ranges.
    """

    if not track.modified:
        return document
    records = []
    for name, values in _spline_arrays(track).items():
        existing = document.find(name)
        records.append(existing.with_values(values) if existing is not None else make_record(name, values))
    logger.info("Wrote %d splines back into the document", len(track.splines()))
    return document.with_records(records)
