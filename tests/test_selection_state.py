from __future__ import annotations

import pytest

pytest.importorskip("PyQt5")

from rro_editor.editing.edit_engine import EditEngine
from rro_editor.model.elements import ControlPoint, GroundworkItem, Segment, Spline
from rro_editor.model.errors import StaleReference
from rro_editor.model.selection import ActiveSelection, HoverTarget, SelectionState
from rro_editor.model.track_builder import REMOVED_VEGETATION_KIND
from rro_editor.model.track_model import Track


def _track() -> Track:
    points = [ControlPoint(i, (float(i) * 100.0, 0.0, 0.0)) for i in range(5)]
    splines = [
        Spline(0, 0, (0.0, 0.0, 0.0), [Segment(0, 1), Segment(1, 2)]),
        Spline(1, 4, (300.0, 0.0, 0.0), [Segment(3, 4)]),
    ]
    groundwork = [
        GroundworkItem(0, "Industry", 0, (0.0, 0.0, 0.0)),
        GroundworkItem(1, REMOVED_VEGETATION_KIND, 0, (1.0, 1.0, 1.0)),
    ]
    return Track(splines, points, groundwork)


def test_select_point_sets_owning_spline():
    state = SelectionState(_track())
    seen = []
    state.selectionChanged.connect(seen.append)

    state.select_point(4)

    assert state.selection == ActiveSelection(1, 4)
    assert state.active_spline_id == 1
    assert seen == [ActiveSelection(1, 4)]


def test_selecting_same_point_twice_emits_once():
    state = SelectionState(_track())
    seen = []
    state.selectionChanged.connect(seen.append)

    state.select_point(1)
    state.select_point(1)

    assert len(seen) == 1


def test_select_unknown_point_raises():
    state = SelectionState(_track())

    with pytest.raises(StaleReference):
        state.select_point(99)
    with pytest.raises(StaleReference):
        state.select_spline(7)


def test_refresh_drops_selection_of_removed_spline():
    track = _track()
    state = SelectionState(track)
    state.select_point(3)
    state.set_hovered(HoverTarget("spline", 1))

    track.remove_spline(1)
    state.refresh()

    assert state.selection is None
    assert state.hovered is None


def test_refresh_drops_selection_of_unreferenced_point():
    track = _track()
    state = SelectionState(track)
    state.select_point(2)

    track.replace_spline_segments(0, [Segment(0, 1)])
    state.refresh()

    assert state.selection is None


def test_refresh_follows_point_moved_to_another_spline():
    track = _track()
    state = SelectionState(track)
    state.select_point(2)

    track.remove_spline(1, drop_points=False)
    track.replace_spline_segments(0, [Segment(0, 1)])
    new_spline = track.add_spline(0, [Segment(2, 3)])
    state.refresh()

    assert state.selection == ActiveSelection(new_spline.spline_id, 2)


def test_spline_visibility_toggle_updates_track_and_signals():
    track = _track()
    state = SelectionState(track, EditEngine(track))
    changes = []
    state.visibilityChanged.connect(lambda spline_id, visible: changes.append((spline_id, visible)))

    assert state.toggle_spline_visible(0) is False
    state.set_spline_visible(0, False)

    assert not track.spline(0).visible
    assert changes == [(0, False)]
    assert [spline.spline_id for spline in state.visible_splines()] == [1]


def test_spline_visibility_is_recorded_for_undo():
    track = _track()
    engine = EditEngine(track)
    state = SelectionState(track, engine)
    engine.move_point(4, (400.0, 55.0, 0.0))

    state.set_spline_visible(1, False)
    engine.move_point(1, (100.0, 20.0, 0.0))
    engine.undo()

    assert not track.spline(1).visible
    assert track.position(1) == (100.0, 0.0, 0.0)

    engine.undo()

    assert track.spline(1).visible
    assert track.position(4) == (400.0, 55.0, 0.0)


def test_spline_visibility_without_engine_is_refused():
    track = _track()
    state = SelectionState(track)

    with pytest.raises(RuntimeError):
        state.set_spline_visible(0, False)
    assert track.spline(0).visible


def test_groundwork_visibility_filters_items():
    state = SelectionState(_track())
    changes = []
    state.groundworkVisibilityChanged.connect(lambda kind, visible: changes.append((kind, visible)))

    state.set_groundwork_visible("Industry", False)

    assert [item.kind for item in state.visible_groundwork()] == [REMOVED_VEGETATION_KIND]
    assert changes == [("Industry", False)]
    with pytest.raises(ValueError):
        state.set_groundwork_visible("Lighthouse", False)


def test_reset_clears_selection_and_hover():
    state = SelectionState(_track())
    state.select_spline(0)
    state.set_hovered(HoverTarget("point", 1))

    state.reset(None)

    assert state.selection is None
    assert state.hovered is None
    assert state.visible_splines() == ()
