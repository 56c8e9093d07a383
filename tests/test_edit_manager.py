"""Tests for track edit command execution, validation, and undo/redo behavior."""

from __future__ import annotations

import pytest

from rro_editor.model.edit_commands import EditCommand, ReplaceTrackSnapshotCommand
from rro_editor.model.edit_manager import EditManager
from rro_editor.model.elements import ControlPoint, Segment, Spline
from rro_editor.model.invariants import InvariantError, validate_track
from rro_editor.model.track_model import Track


def _valid_track() -> Track:
    points = [ControlPoint(i, (float(i) * 100.0, 0.0, 0.0)) for i in range(3)]
    spline = Spline(0, 0, points[0].position, [Segment(0, 1), Segment(1, 2)])
    return Track([spline], points)


class _LoopingCommand(EditCommand):
    """Rewires the spline so it visits point 0 twice."""

    label = "loop"

    def __init__(self, track: Track) -> None:
        self._track = track
        self._before = track.snapshot()

    def apply(self) -> Track:
        self._track.replace_spline_segments(0, [Segment(0, 1), Segment(1, 2), Segment(2, 0)])
        return self._track

    def revert(self) -> Track:
        self._track.restore(self._before)
        return self._track


def _moved(track: Track) -> ReplaceTrackSnapshotCommand:
    before = track.snapshot()
    track.set_point_position(2, (250.0, 40.0, 0.0))
    return ReplaceTrackSnapshotCommand(track, before=before, after=track.snapshot(), label="move")


def test_execute_command_keeps_edited_track():
    track = _valid_track()
    manager = EditManager(validator=validate_track)

    applied = manager.execute(_moved(track))

    assert applied is track
    assert track.position(2) == (250.0, 40.0, 0.0)
    assert manager.can_undo
    assert not manager.can_redo


def test_undo_restores_original_track():
    track = _valid_track()
    manager = EditManager(validator=validate_track)

    manager.execute(_moved(track))
    undone = manager.undo()

    assert undone is track
    assert track.position(2) == (200.0, 0.0, 0.0)
    assert manager.can_redo


def test_redo_reapplies_track():
    track = _valid_track()
    manager = EditManager(validator=validate_track)

    manager.execute(_moved(track))
    manager.undo()
    manager.redo()

    assert track.position(2) == (250.0, 40.0, 0.0)


def test_new_command_clears_redo_history():
    track = _valid_track()
    manager = EditManager(validator=validate_track)

    manager.execute(_moved(track))
    manager.undo()
    manager.execute(_moved(track))

    assert not manager.can_redo


def test_invalid_result_raises_invariant_error():
    manager = EditManager(validator=validate_track)

    with pytest.raises(InvariantError):
        manager.execute(_LoopingCommand(_valid_track()))


def test_failed_edit_is_rolled_back():
    track = _valid_track()
    manager = EditManager(validator=validate_track)

    with pytest.raises(InvariantError):
        manager.execute(_LoopingCommand(track))

    assert track.spline(0).knot_ids() == [0, 1, 2]
    assert manager.undo() is None


def test_manager_without_validator_accepts_any_result():
    track = _valid_track()
    manager = EditManager()

    manager.execute(_LoopingCommand(track))

    assert track.spline(0).knot_ids() == [0, 1, 2, 0]


def test_clear_drops_history():
    track = _valid_track()
    manager = EditManager()
    manager.execute(_moved(track))

    manager.clear()

    assert not manager.can_undo
    assert manager.undo() is None
