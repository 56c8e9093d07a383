"""Typed document tree produced by the GVAS codec."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Optional, Sequence, Union

import numpy as np


@dataclass(frozen=True)
class EngineVersion:
    major: int
    minor: int
    patch: int
    build: int
    branch: str

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}-{self.build}+{self.branch}"


@dataclass(frozen=True)
class CustomFormat:
    guid: bytes
    version: int


@dataclass(frozen=True)
class GvasHeader:
    """Fixed preamble of a save file, kept field for field."""

    save_game_version: int
    package_version: int
    engine_version: EngineVersion
    custom_format_version: int
    custom_formats: tuple[CustomFormat, ...]
    save_game_type: str
    package_version_ue5: Optional[int] = None


@dataclass(frozen=True)
class StructArrayHeader:
    """Inner property tag that precedes the items of a struct array."""

    name: str
    type_name: str
    struct_name: str
    struct_guid: bytes
    has_guid: int = 0
    property_guid: Optional[bytes] = None


@dataclass
class ArrayRecord:
    """An understood ``ArrayProperty`` whose items live in a numpy array.

    ``values`` has shape ``(n, 3)`` for vector/rotator arrays and ``(n,)``
    otherwise. Every tag field needed to re-emit the record is kept, only the
    sizes are recomputed from ``values`` on encode.
    """

    name: str
    type_name: str
    inner_type: str
    values: np.ndarray
    has_guid: int = 0
    property_guid: Optional[bytes] = None
    struct_header: Optional[StructArrayHeader] = None
    offset: int = -1

    def __len__(self) -> int:
        return int(self.values.shape[0])

    def with_values(self, values: np.ndarray) -> "ArrayRecord":
        """Return a copy of this record carrying ``values`` instead."""

        values = np.asarray(values, dtype=self.values.dtype)
        if self.values.ndim == 2:
            values = values.reshape(-1, self.values.shape[1])
        return ArrayRecord(
            name=self.name,
            type_name=self.type_name,
            inner_type=self.inner_type,
            values=values,
            has_guid=self.has_guid,
            property_guid=self.property_guid,
            struct_header=self.struct_header,
            offset=self.offset,
        )


@dataclass(frozen=True)
class OpaqueSpan:
    """Raw bytes of a property (or trailer) the editor does not model."""

    raw: bytes
    name: str
    type_name: str
    offset: int

    def __len__(self) -> int:
        return len(self.raw)


Entry = Union[ArrayRecord, OpaqueSpan]

TERMINATOR_NAME = "None"


@dataclass
class Document:
    """A decoded save file: header plus entries in original file order."""

    header: GvasHeader
    entries: list[Entry] = field(default_factory=list)

    def records(self) -> Iterator[ArrayRecord]:
        for entry in self.entries:
            if isinstance(entry, ArrayRecord):
                yield entry

    def opaque_spans(self) -> Iterator[OpaqueSpan]:
        for entry in self.entries:
            if isinstance(entry, OpaqueSpan):
                yield entry

    def find(self, name: str) -> ArrayRecord | None:
        for record in self.records():
            if record.name == name:
                return record
        return None

    def index_of(self, name: str) -> int | None:
        for index, entry in enumerate(self.entries):
            if isinstance(entry, ArrayRecord) and entry.name == name:
                return index
        return None

    def terminator_index(self) -> int:
        """Index of the trailing ``None`` span, or ``len(entries)`` if absent."""

        for index in range(len(self.entries) - 1, -1, -1):
            entry = self.entries[index]
            if isinstance(entry, OpaqueSpan) and entry.name == TERMINATOR_NAME:
                return index
        return len(self.entries)

    def with_records(self, records: Sequence[ArrayRecord]) -> "Document":
        """Return a new document with ``records`` replacing same-named ones.

        Records not yet present are inserted, in the given order, right before
        the terminator. Opaque spans keep their positions.
        """

        entries = list(self.entries)
        pending: list[ArrayRecord] = []
        for record in records:
            index = next(
                (
                    i
                    for i, entry in enumerate(entries)
                    if isinstance(entry, ArrayRecord) and entry.name == record.name
                ),
                None,
            )
            if index is None:
                pending.append(record)
            else:
                entries[index] = record
        if pending:
            document = Document(self.header, entries)
            insert_at = document.terminator_index()
            entries[insert_at:insert_at] = pending
        return Document(self.header, entries)
