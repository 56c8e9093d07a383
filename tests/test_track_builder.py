"""Tests for building the track graph from a save and writing it back."""

from __future__ import annotations

import logging

import pytest

np = pytest.importorskip("numpy")

import save_builder as sb
from rro_core.gvas import decode, encode
from rro_editor.config import EditorSettings
from rro_editor.geometry.spline_fit import derive_segments
from rro_editor.model.elements import CurveStyle
from rro_editor.model.errors import DanglingReference
from rro_editor.model.invariants import InvariantError
from rro_editor.model.spline_types import SplineType
from rro_editor.model.track_builder import REMOVED_VEGETATION_KIND, build, write_back


def _save(*properties: bytes) -> bytes:
    return sb.header() + b"".join(properties) + sb.terminator()


def test_build_creates_splines_with_knot_ranges():
    track = build(decode(sb.sample_save()))

    first, second = track.splines()
    assert first.knot_ids() == [0, 1, 2]
    assert second.knot_ids() == [3, 4, 5, 6]
    assert first.spline_type is SplineType.TRACK
    assert second.spline_type is SplineType.TRACK_BED
    assert second.location == sb.BEND[0]
    assert track.position(5) == (900.0, 1800.0, 15.0)
    assert not track.modified


def test_build_derives_handles_from_knots():
    track = build(decode(sb.sample_save()))
    spline = track.splines()[0]

    expected = derive_segments(list(zip([0, 1, 2], sb.STRAIGHT_RUN)))

    assert spline.segments == expected
    assert spline.segments[0].start_handle == (35.0, 0.0, 0.0)
    assert spline.segments[0].end_handle == (-30.0, 0.0, 0.0)


def test_straight_spline_types_get_zero_handles():
    data = _save(sb.spline_properties([(int(SplineType.STEEL_BRIDGE), sb.BEND, None)]))

    spline = build(decode(data)).splines()[0]

    assert spline.style is CurveStyle.STRAIGHT
    assert all(
        segment.start_handle == (0.0, 0.0, 0.0) and segment.end_handle == (0.0, 0.0, 0.0)
        for segment in spline.segments
    )


def test_segment_visibility_flags_are_applied():
    track = build(decode(sb.sample_save()))
    second = track.splines()[1]

    assert second.visible
    assert [segment.visible for segment in second.segments] == [True, False, True]


def test_all_hidden_segments_mean_a_hidden_spline():
    data = _save(sb.spline_properties([(0, sb.STRAIGHT_RUN, [False, False])]))

    spline = build(decode(data)).splines()[0]

    assert not spline.visible
    assert [segment.visible for segment in spline.segments] == [True, True]


def test_visibility_outside_stored_range_defaults_to_visible(caplog):
    properties = b"".join(
        (
            sb.vector_array("SplineLocationArray", [sb.BEND[0]]),
            sb.int_array("SplineTypeArray", [0]),
            sb.vector_array("SplineControlPointsArray", sb.BEND),
            sb.int_array("SplineControlPointsIndexStartArray", [0]),
            sb.int_array("SplineControlPointsIndexEndArray", [3]),
            sb.bool_array("SplineSegmentsVisibilityArray", [False]),
            sb.int_array("SplineVisibilityStartArray", [0]),
            sb.int_array("SplineVisibilityEndArray", [0]),
        )
    )

    with caplog.at_level(logging.WARNING):
        spline = build(decode(_save(properties))).splines()[0]

    assert [segment.visible for segment in spline.segments] == [False, True, True]
    assert "outside the stored range" in caplog.text


def test_end_index_past_control_points_is_dangling():
    properties = b"".join(
        (
            sb.vector_array("SplineLocationArray", [(0.0, 0.0, 0.0)]),
            sb.int_array("SplineTypeArray", [0]),
            sb.vector_array("SplineControlPointsArray", sb.STRAIGHT_RUN),
            sb.int_array("SplineControlPointsIndexStartArray", [0]),
            sb.int_array("SplineControlPointsIndexEndArray", [5]),
            sb.bool_array("SplineSegmentsVisibilityArray", [True, True]),
            sb.int_array("SplineVisibilityStartArray", [0]),
            sb.int_array("SplineVisibilityEndArray", [1]),
        )
    )

    with pytest.raises(DanglingReference) as excinfo:
        build(decode(_save(properties)))

    assert excinfo.value.point_id == 5


def test_mismatched_spline_array_lengths_are_rejected():
    properties = b"".join(
        (
            sb.vector_array("SplineLocationArray", [(0.0, 0.0, 0.0)]),
            sb.int_array("SplineTypeArray", [0, 0]),
            sb.vector_array("SplineControlPointsArray", sb.STRAIGHT_RUN),
            sb.int_array("SplineControlPointsIndexStartArray", [0]),
            sb.int_array("SplineControlPointsIndexEndArray", [2]),
            sb.bool_array("SplineSegmentsVisibilityArray", [True, True]),
            sb.int_array("SplineVisibilityStartArray", [0]),
            sb.int_array("SplineVisibilityEndArray", [1]),
        )
    )

    with pytest.raises(InvariantError, match="SplineTypeArray"):
        build(decode(_save(properties)))


def test_single_knot_spline_is_rejected():
    data = _save(sb.spline_properties([(0, [(0.0, 0.0, 0.0)], [])]))

    with pytest.raises(InvariantError):
        build(decode(data))


def test_partial_spline_records_are_rejected():
    data = _save(sb.vector_array("SplineControlPointsArray", sb.STRAIGHT_RUN))

    with pytest.raises(InvariantError, match="missing spline records"):
        build(decode(data))


def test_save_without_splines_builds_empty_track():
    track = build(decode(_save(sb.str_property("Name", "fresh world"))))

    assert track.splines() == ()
    assert track.control_points() == ()


def test_groundwork_is_loaded_as_inert_items():
    track = build(decode(sb.sample_save()))
    items = track.groundwork()

    assert [item.kind for item in items] == ["Industry", "Industry", REMOVED_VEGETATION_KIND]
    assert items[1].rotation == (0.0, 180.0, 0.0)
    assert items[1].type_code == 7
    assert items[2].location == (5.0, 5.0, 5.0)


def test_unmodified_write_back_returns_same_document():
    data = sb.sample_save()
    document = decode(data)
    track = build(document)

    assert write_back(track, document) is document
    assert encode(write_back(track, document)) == data


def test_write_back_after_move_changes_only_spline_records():
    document = decode(sb.sample_save())
    track = build(document)
    track.set_point_position(4, (510.0, 1210.0, 12.0))

    updated = decode(encode(write_back(track, document)))

    assert updated.find("SplineControlPointsArray").values[4].tolist() == [510.0, 1210.0, 12.0]
    assert [span.raw for span in updated.opaque_spans()] == [
        span.raw for span in document.opaque_spans()
    ]
    assert (
        updated.find("IndustryLocationArray").values.tolist()
        == document.find("IndustryLocationArray").values.tolist()
    )


def test_write_back_stores_hidden_spline_as_hidden_segments():
    document = decode(sb.sample_save())
    track = build(document)
    track.set_visibility(0, False)

    updated = write_back(track, document)

    assert updated.find("SplineSegmentsVisibilityArray").values.tolist() == [0, 0, 1, 0, 1]
    rebuilt = build(decode(encode(updated)))
    assert not rebuilt.spline(0).visible
    assert rebuilt.spline(1).visible


def test_write_back_renumbers_control_points_contiguously():
    document = decode(sb.sample_save())
    track = build(document)
    track.remove_spline(0)

    updated = write_back(track, document)

    assert updated.find("SplineControlPointsIndexStartArray").values.tolist() == [0]
    assert updated.find("SplineControlPointsIndexEndArray").values.tolist() == [3]
    assert updated.find("SplineVisibilityStartArray").values.tolist() == [0]
    assert updated.find("SplineVisibilityEndArray").values.tolist() == [2]
    assert updated.find("SplineTypeArray").values.tolist() == [int(SplineType.TRACK_BED)]
    assert updated.find("SplineControlPointsArray").values.tolist() == [list(p) for p in sb.BEND]


def test_handle_scale_comes_from_settings():
    settings = EditorSettings(handle_scale=0.5)

    track = build(decode(sb.sample_save()), settings)

    assert track.handle_scale == 0.5
    assert track.splines()[0].segments[0].end_handle == (-50.0, 0.0, 0.0)
