"""Read-only feed of tessellated curves for an external renderer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional

import numpy as np

from rro_editor.config import EditorSettings
from rro_editor.geometry.bezier import sample_segment
from rro_editor.model.elements import GroundworkItem
from rro_editor.model.track_model import Track

if TYPE_CHECKING:
    from rro_editor.model.selection import SelectionState


@dataclass(frozen=True)
class CurveSample:
    spline_id: int
    segment_index: int
    type_code: int
    points: np.ndarray
    selected: bool = False


def iter_visible_curves(
    track: Track,
    selection: Optional["SelectionState"] = None,
    settings: Optional[EditorSettings] = None,
    *,
    step: Optional[float] = None,
    tolerance: Optional[float] = None,
) -> Iterator[CurveSample]:
    """Yield sampled points for every visible segment, in spline order.

    ``step`` and ``tolerance`` default to the ``[geometry]`` sampling
    settings. The feed never mutates the track; each call starts a fresh walk.
    """

    settings = settings or EditorSettings()
    step = settings.sample_step if step is None else step
    tolerance = settings.sample_tolerance if tolerance is None else tolerance
    positions = track.positions()
    active = selection.active_spline_id if selection is not None else None
    for spline in track.splines():
        if not spline.visible:
            continue
        for index, segment in enumerate(spline.segments):
            if not segment.visible:
                continue
            samples = sample_segment(segment, positions, step, tolerance)
            yield CurveSample(
                spline_id=spline.spline_id,
                segment_index=index,
                type_code=spline.type_code,
                points=np.asarray(samples, dtype=float),
                selected=spline.spline_id == active,
            )


def iter_visible_groundwork(
    track: Track, selection: Optional["SelectionState"] = None
) -> Iterator[GroundworkItem]:
    for item in track.groundwork():
        if selection is None or selection.is_groundwork_visible(item.kind):
            yield item
