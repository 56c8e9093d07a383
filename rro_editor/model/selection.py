from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Optional

from PyQt5 import QtCore

from rro_core.gvas.records import GROUNDWORK_KINDS
from rro_editor.model.elements import GroundworkItem, Spline
from rro_editor.model.errors import StaleReference
from rro_editor.model.track_builder import REMOVED_VEGETATION_KIND
from rro_editor.model.track_model import Track

if TYPE_CHECKING:
    from rro_editor.editing.edit_engine import EditEngine

logger = logging.getLogger(__name__)

GROUNDWORK_DISPLAY_KINDS = (*GROUNDWORK_KINDS, REMOVED_VEGETATION_KIND)


@dataclass(frozen=True)
class ActiveSelection:
    spline_id: int
    point_id: Optional[int] = None


@dataclass(frozen=True)
class HoverTarget:
    kind: str
    item_id: int
    index: Optional[int] = None


class SelectionState(QtCore.QObject):
    """Active selection, hover and display flags consumed by the renderer."""

    selectionChanged = QtCore.pyqtSignal(object)
    hoverChanged = QtCore.pyqtSignal(object)
    visibilityChanged = QtCore.pyqtSignal(int, bool)
    groundworkVisibilityChanged = QtCore.pyqtSignal(str, bool)

    def __init__(
        self, track: Optional[Track] = None, engine: Optional["EditEngine"] = None
    ) -> None:
        super().__init__()
        self._track = track
        self._engine = engine
        self._selection: Optional[ActiveSelection] = None
        self._hovered: Optional[HoverTarget] = None
        self._groundwork_visible = {kind: True for kind in GROUNDWORK_DISPLAY_KINDS}

    @property
    def track(self) -> Optional[Track]:
        return self._track

    @property
    def selection(self) -> Optional[ActiveSelection]:
        return self._selection

    @property
    def active_point_id(self) -> Optional[int]:
        return self._selection.point_id if self._selection is not None else None

    @property
    def active_spline_id(self) -> Optional[int]:
        return self._selection.spline_id if self._selection is not None else None

    @property
    def hovered(self) -> Optional[HoverTarget]:
        return self._hovered

    def reset(self, track: Optional[Track], engine: Optional["EditEngine"] = None) -> None:
        self._track = track
        self._engine = engine
        self._selection = None
        self._hovered = None
        self.selectionChanged.emit(None)
        self.hoverChanged.emit(None)

    def _set_selection(self, selection: Optional[ActiveSelection]) -> None:
        if selection == self._selection:
            return
        self._selection = selection
        self.selectionChanged.emit(selection)

    def select_point(self, point_id: Optional[int]) -> None:
        if point_id is None:
            self._set_selection(None)
            return
        if self._track is None:
            raise StaleReference(point_id)
        spline, _index = self._track.locate(point_id)
        self._set_selection(ActiveSelection(spline.spline_id, point_id))

    def select_spline(self, spline_id: Optional[int]) -> None:
        if spline_id is None:
            self._set_selection(None)
            return
        if self._track is None:
            raise StaleReference(spline_id, "spline")
        self._track.spline(spline_id)
        self._set_selection(ActiveSelection(spline_id))

    def clear(self) -> None:
        self._set_selection(None)

    def set_hovered(self, target: Optional[HoverTarget]) -> None:
        if target == self._hovered:
            return
        self._hovered = target
        self.hoverChanged.emit(target)

    def refresh(self) -> None:
        """Drop selection or hover that no longer exists after an edit."""

        track = self._track
        selection = self._selection
        if selection is not None:
            if track is None or not track.has_spline(selection.spline_id):
                self._set_selection(None)
            elif selection.point_id is not None:
                owner = track.owner_of(selection.point_id)
                if owner is None:
                    self._set_selection(None)
                elif owner != selection.spline_id:
                    self._set_selection(ActiveSelection(owner, selection.point_id))
        hovered = self._hovered
        if hovered is not None:
            stale = track is None or (
                hovered.kind == "point" and track.owner_of(hovered.item_id) is None
            ) or (hovered.kind == "spline" and not track.has_spline(hovered.item_id))
            if stale:
                self.set_hovered(None)

    def set_spline_visible(self, spline_id: int, visible: bool) -> None:
        """Show or hide a spline as an undoable edit."""

        if self._track is None:
            raise StaleReference(spline_id, "spline")
        spline = self._track.spline(spline_id)
        if spline.visible == bool(visible):
            return
        if self._engine is None:
            raise RuntimeError("Spline visibility needs an edit engine")
        self._engine.set_visibility(spline_id, bool(visible))
        self.visibilityChanged.emit(spline_id, bool(visible))

    def toggle_spline_visible(self, spline_id: int) -> bool:
        if self._track is None:
            raise StaleReference(spline_id, "spline")
        visible = not self._track.spline(spline_id).visible
        self.set_spline_visible(spline_id, visible)
        return visible

    def is_groundwork_visible(self, kind: str) -> bool:
        return self._groundwork_visible.get(kind, True)

    def set_groundwork_visible(self, kind: str, visible: bool) -> None:
        if kind not in self._groundwork_visible:
            raise ValueError(f"Unknown groundwork kind {kind!r}")
        if self._groundwork_visible[kind] == bool(visible):
            return
        self._groundwork_visible[kind] = bool(visible)
        self.groundworkVisibilityChanged.emit(kind, bool(visible))

    def visible_splines(self) -> tuple[Spline, ...]:
        if self._track is None:
            return ()
        return tuple(spline for spline in self._track.splines() if spline.visible)

    def visible_groundwork(self) -> tuple[GroundworkItem, ...]:
        if self._track is None:
            return ()
        return tuple(
            item for item in self._track.groundwork() if self.is_groundwork_visible(item.kind)
        )
