"""Spline kinds stored in ``SplineTypeArray``."""

from __future__ import annotations

import enum
from typing import Optional


class SplineType(enum.IntEnum):
    TRACK = 0
    VARIABLE_BANK = 1
    CONSTANT_BANK = 2
    WOODEN_BRIDGE = 3
    TRACK_BED = 4
    VARIABLE_WALL = 5
    CONSTANT_WALL = 6
    STEEL_BRIDGE = 7

    @classmethod
    def from_code(cls, code: int) -> Optional["SplineType"]:
        """Return the member for ``code`` or ``None`` for codes newer than this list."""
        try:
            return cls(code)
        except ValueError:
            return None

    @classmethod
    def parse(cls, text: str) -> "SplineType":
        """Accept either a member name (any case) or its numeric code."""
        cleaned = text.strip()
        if cleaned.lstrip("-").isdigit():
            member = cls.from_code(int(cleaned))
            if member is None:
                raise ValueError(f"Unknown spline type code {cleaned}")
            return member
        try:
            return cls[cleaned.upper().replace("-", "_").replace(" ", "_")]
        except KeyError:
            raise ValueError(f"Unknown spline type {text!r}") from None

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").lower()

    @property
    def is_groundwork(self) -> bool:
        return self in (
            SplineType.VARIABLE_BANK,
            SplineType.CONSTANT_BANK,
            SplineType.VARIABLE_WALL,
            SplineType.CONSTANT_WALL,
        )


def type_label(code: int) -> str:
    member = SplineType.from_code(code)
    return member.label if member is not None else f"unknown ({code})"
