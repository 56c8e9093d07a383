"""Configuration helpers for editor settings persistence."""
from __future__ import annotations

from configparser import ConfigParser, Error
from dataclasses import dataclass, field
import logging
import os
from pathlib import Path
import sys
from typing import Optional

from rro_editor.model.elements import Axis, CurveStyle
from rro_editor.model.spline_types import SplineType

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "rro_editor.ini"
_GEOMETRY_SECTION = "geometry"
_EDITING_SECTION = "editing"
_LOGGING_SECTION = "logging"
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class EditorSettings:
    handle_scale: float = 0.3
    straight_types: frozenset[SplineType] = frozenset({SplineType.STEEL_BRIDGE})
    junction_types: frozenset[SplineType] = frozenset()
    sample_step: float = 100.0
    sample_tolerance: float = 25.0
    pick_radius: float = 50.0
    drag_lock_axes: frozenset[Axis] = frozenset({Axis.Z})
    junction_tolerance: float = 1.0
    log_level: str = "INFO"
    extra: dict[str, dict[str, str]] = field(default_factory=dict, compare=False)

    def style_for(self, type_code: int) -> CurveStyle:
        """Curve style used for splines of the given ``SplineTypeArray`` code."""
        member = SplineType.from_code(type_code)
        if member is not None and member in self.straight_types:
            return CurveStyle.STRAIGHT
        if member is not None and member in self.junction_types:
            return CurveStyle.JUNCTION
        return CurveStyle.CURVE


def _config_dir(main_script_path: Optional[Path]) -> Path:
    if getattr(sys, "frozen", False):
        return Path(sys.executable).parent
    if main_script_path is not None:
        return main_script_path.resolve().parent
    main_module = sys.modules.get("__main__")
    if main_module and getattr(main_module, "__file__", None):
        return Path(main_module.__file__).resolve().parent
    return Path.cwd()


def config_path(main_script_path: Optional[Path]) -> Path:
    return _config_dir(main_script_path) / CONFIG_FILENAME


def _positive_float(parser: ConfigParser, section: str, key: str, default: float) -> float:
    raw = parser.get(section, key, fallback=None)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"[{section}] {key}: expected a number, got {raw!r}") from None
    if value <= 0.0:
        raise ValueError(f"[{section}] {key}: must be positive, got {value}")
    return value


def _type_set(
    parser: ConfigParser, section: str, key: str, default: frozenset[SplineType]
) -> frozenset[SplineType]:
    raw = parser.get(section, key, fallback=None)
    if raw is None:
        return default
    members = set()
    for item in raw.replace(";", ",").split(","):
        if not item.strip():
            continue
        try:
            members.add(SplineType.parse(item))
        except ValueError as exc:
            raise ValueError(f"[{section}] {key}: {exc}") from None
    return frozenset(members)


def _axis_set(
    parser: ConfigParser, section: str, key: str, default: frozenset[Axis]
) -> frozenset[Axis]:
    raw = parser.get(section, key, fallback=None)
    if raw is None:
        return default
    axes = set()
    for item in raw.replace(";", ",").split(","):
        if not item.strip():
            continue
        try:
            axes.add(Axis.parse(item))
        except ValueError as exc:
            raise ValueError(f"[{section}] {key}: {exc}") from None
    return frozenset(axes)


def settings_from_parser(parser: ConfigParser) -> EditorSettings:
    defaults = EditorSettings()
    level = parser.get(_LOGGING_SECTION, "level", fallback=defaults.log_level).strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"[{_LOGGING_SECTION}] level: unknown log level {level!r}")
    straight = _type_set(parser, _GEOMETRY_SECTION, "straight_types", defaults.straight_types)
    junction = _type_set(parser, _GEOMETRY_SECTION, "junction_types", defaults.junction_types)
    overlap = straight & junction
    if overlap:
        names = ", ".join(sorted(member.name.lower() for member in overlap))
        raise ValueError(
            f"[{_GEOMETRY_SECTION}] junction_types: {names} already listed in straight_types"
        )
    known = {_GEOMETRY_SECTION, _EDITING_SECTION, _LOGGING_SECTION}
    extra = {
        section: dict(parser.items(section))
        for section in parser.sections()
        if section not in known
    }
    return EditorSettings(
        handle_scale=_positive_float(
            parser, _GEOMETRY_SECTION, "handle_scale", defaults.handle_scale
        ),
        straight_types=straight,
        junction_types=junction,
        sample_step=_positive_float(parser, _GEOMETRY_SECTION, "sample_step", defaults.sample_step),
        sample_tolerance=_positive_float(
            parser, _GEOMETRY_SECTION, "sample_tolerance", defaults.sample_tolerance
        ),
        pick_radius=_positive_float(parser, _EDITING_SECTION, "pick_radius", defaults.pick_radius),
        drag_lock_axes=_axis_set(
            parser, _EDITING_SECTION, "drag_lock_axes", defaults.drag_lock_axes
        ),
        junction_tolerance=_positive_float(
            parser, _EDITING_SECTION, "junction_tolerance", defaults.junction_tolerance
        ),
        log_level=level,
        extra=extra,
    )


def load_settings(
    path: Optional[Path] = None, *, main_script_path: Optional[Path] = None
) -> EditorSettings:
    """Read settings from ``path`` (default: the INI beside the entry script).

    Missing or unreadable files give the defaults; malformed values raise
    ``ValueError`` naming the offending key.
    """

    ini_path = Path(path) if path is not None else config_path(main_script_path)
    if not ini_path.exists():
        return EditorSettings()
    parser = ConfigParser()
    try:
        with ini_path.open("r", encoding="utf-8") as handle:
            parser.read_file(handle)
    except (OSError, Error) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", ini_path, exc)
        return EditorSettings()
    return settings_from_parser(parser)


def _format_types(members: frozenset[SplineType]) -> str:
    return ", ".join(member.name.lower() for member in sorted(members))


def save_settings(settings: EditorSettings, path: Path) -> None:
    config = ConfigParser()
    config[_GEOMETRY_SECTION] = {
        "handle_scale": repr(settings.handle_scale),
        "straight_types": _format_types(settings.straight_types),
        "junction_types": _format_types(settings.junction_types),
        "sample_step": repr(settings.sample_step),
        "sample_tolerance": repr(settings.sample_tolerance),
    }
    config[_EDITING_SECTION] = {
        "pick_radius": repr(settings.pick_radius),
        "drag_lock_axes": ", ".join(
            axis.name.lower() for axis in sorted(settings.drag_lock_axes, key=lambda a: a.value)
        ),
        "junction_tolerance": repr(settings.junction_tolerance),
    }
    config[_LOGGING_SECTION] = {"level": settings.log_level}
    for section, values in settings.extra.items():
        config[section] = dict(values)
    with Path(path).open("w", encoding="utf-8") as handle:
        config.write(handle)
        handle.flush()
        os.fsync(handle.fileno())
