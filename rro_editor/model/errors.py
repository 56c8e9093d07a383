"""Errors raised by the track model and the edit engine."""

from __future__ import annotations


class TrackModelError(ValueError):
    """Base class for track model failures."""


class DanglingReference(TrackModelError):
    """A spline refers to a control point the document does not contain."""

    def __init__(self, point_id: int, detail: str = "") -> None:
        message = f"Dangling reference to control point {point_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.point_id = point_id


class StaleReference(TrackModelError):
    """An operation named a control point or spline that no longer exists."""

    def __init__(self, item_id: int, kind: str = "control point") -> None:
        super().__init__(f"Stale reference to {kind} {item_id}")
        self.item_id = item_id
        self.kind = kind
