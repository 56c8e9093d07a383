"""Command objects for track edit operations."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rro_editor.model.track_model import Track, TrackSnapshot


class EditCommand(ABC):
    """Base class for reversible track edit commands."""

    label: str = "edit"

    @abstractmethod
    def apply(self) -> "Track":
        """Apply the command and return the edited track."""

    @abstractmethod
    def revert(self) -> "Track":
        """Revert the command and return the restored track."""


class ReplaceTrackSnapshotCommand(EditCommand):
    """Restore full track snapshots for undo/redo across all edit types.

    The edit engine mutates the live track while a gesture runs, so the first
    ``apply`` only reports the already-applied state; later applies (redo)
    restore the ``after`` snapshot.
    """

    def __init__(
        self,
        track: "Track",
        *,
        before: "TrackSnapshot",
        after: "TrackSnapshot",
        label: str = "edit",
    ) -> None:
        self._track = track
        self._before = before
        self._after = after
        self._executed = False
        self.label = label

    def apply(self) -> "Track":
        if self._executed:
            self._track.restore(self._after)
        self._executed = True
        return self._track

    def revert(self) -> "Track":
        self._track.restore(self._before)
        return self._track
