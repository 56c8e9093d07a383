"""Decode and encode Unreal GVAS save files.

Only the array properties listed in :mod:`rro_core.gvas.records` are decoded
into typed values. Every other property is located exactly (its tag tail is
parsed according to the property type so the value span is known) and kept
as raw bytes, which makes ``encode(decode(data)) == data`` hold for files the
editor only partly understands.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from rro_core.binary import BinaryCursor, BinaryWriter
from rro_core.errors import MalformedRecord, UnexpectedEof, UnsupportedVersion
from rro_core.gvas.document import (
    TERMINATOR_NAME,
    ArrayRecord,
    CustomFormat,
    Document,
    EngineVersion,
    GvasHeader,
    OpaqueSpan,
    StructArrayHeader,
)
from rro_core.gvas.records import RecordLayout, layout_for

logger = logging.getLogger(__name__)

MAGIC = b"GVAS"
MINIMUM_SAVE_GAME_VERSION = 2
UE5_SAVE_GAME_VERSION = 3


@dataclass
class _Tag:
    name: str
    type_name: str
    size: int
    offset: int
    inner_type: str = ""
    has_guid: int = 0
    property_guid: Optional[bytes] = None


def _read_optional_guid(cursor: BinaryCursor) -> tuple[int, Optional[bytes]]:
    has_guid = cursor.read_u8()
    return has_guid, (cursor.read_guid() if has_guid else None)


def _read_struct_tail(cursor: BinaryCursor, tag: _Tag) -> None:
    tag.inner_type = cursor.read_fstring()
    cursor.read_guid()
    tag.has_guid, tag.property_guid = _read_optional_guid(cursor)


def _read_bool_tail(cursor: BinaryCursor, tag: _Tag) -> None:
    cursor.read_u8()
    tag.has_guid, tag.property_guid = _read_optional_guid(cursor)


def _read_enum_tail(cursor: BinaryCursor, tag: _Tag) -> None:
    tag.inner_type = cursor.read_fstring()
    tag.has_guid, tag.property_guid = _read_optional_guid(cursor)


def _read_map_tail(cursor: BinaryCursor, tag: _Tag) -> None:
    tag.inner_type = cursor.read_fstring()
    cursor.read_fstring()
    tag.has_guid, tag.property_guid = _read_optional_guid(cursor)


def _read_plain_tail(cursor: BinaryCursor, tag: _Tag) -> None:
    tag.has_guid, tag.property_guid = _read_optional_guid(cursor)


_TAIL_READERS: dict[str, Callable[[BinaryCursor, _Tag], None]] = {
    "StructProperty": _read_struct_tail,
    "BoolProperty": _read_bool_tail,
    "ByteProperty": _read_enum_tail,
    "EnumProperty": _read_enum_tail,
    "ArrayProperty": _read_enum_tail,
    "SetProperty": _read_enum_tail,
    "MapProperty": _read_map_tail,
}


def _read_header(cursor: BinaryCursor) -> GvasHeader:
    cursor.seek(0)
    magic = cursor.read_bytes(len(MAGIC))
    if magic != MAGIC:
        raise MalformedRecord(0, "header", f"bad magic {magic!r}")
    save_game_version = cursor.read_u32()
    if save_game_version < MINIMUM_SAVE_GAME_VERSION:
        raise UnsupportedVersion(save_game_version, MINIMUM_SAVE_GAME_VERSION)
    package_version = cursor.read_u32()
    package_version_ue5 = None
    if save_game_version >= UE5_SAVE_GAME_VERSION:
        package_version_ue5 = cursor.read_u32()
    engine_version = EngineVersion(
        major=cursor.read_u16(),
        minor=cursor.read_u16(),
        patch=cursor.read_u16(),
        build=cursor.read_u32(),
        branch=cursor.read_fstring(),
    )
    custom_format_version = cursor.read_u32()
    count = cursor.read_u32()
    custom_formats = tuple(
        CustomFormat(guid=cursor.read_guid(), version=cursor.read_i32())
        for _ in range(count)
    )
    save_game_type = cursor.read_fstring()
    return GvasHeader(
        save_game_version=save_game_version,
        package_version=package_version,
        engine_version=engine_version,
        custom_format_version=custom_format_version,
        custom_formats=custom_formats,
        save_game_type=save_game_type,
        package_version_ue5=package_version_ue5,
    )


def _read_tag(cursor: BinaryCursor, name: str, offset: int) -> _Tag:
    type_name = cursor.read_fstring()
    size = cursor.read_i64()
    tag = _Tag(name=name, type_name=type_name, size=size, offset=offset)
    if size < 0:
        raise MalformedRecord(offset, type_name or "property", f"negative size {size}")
    _TAIL_READERS.get(type_name, _read_plain_tail)(cursor, tag)
    if size > cursor.remaining:
        raise MalformedRecord(
            offset,
            type_name or "property",
            f"{name}: declared size {size} runs past end of data",
        )
    return tag


def _decode_array(tag: _Tag, layout: RecordLayout, value: BinaryCursor) -> ArrayRecord:
    if tag.inner_type != layout.inner_type:
        raise MalformedRecord(
            tag.offset,
            tag.name,
            f"expected {layout.inner_type} items, found {tag.inner_type}",
        )
    try:
        count = value.read_u32()
        struct_header = None
        if layout.struct_name:
            header_name = value.read_fstring()
            header_type = value.read_fstring()
            inner_size = value.read_i64()
            struct_name = value.read_fstring()
            struct_guid = value.read_guid()
            has_guid, property_guid = _read_optional_guid(value)
            if struct_name != layout.struct_name:
                raise MalformedRecord(
                    tag.offset,
                    tag.name,
                    f"expected {layout.struct_name} structs, found {struct_name}",
                )
            if inner_size != count * layout.item_size:
                raise MalformedRecord(
                    tag.offset,
                    tag.name,
                    f"struct data size {inner_size} does not match {count} items",
                )
            struct_header = StructArrayHeader(
                name=header_name,
                type_name=header_type,
                struct_name=struct_name,
                struct_guid=struct_guid,
                has_guid=has_guid,
                property_guid=property_guid,
            )
        values = value.read_array(layout.dtype, count * layout.components)
    except UnexpectedEof as exc:
        raise MalformedRecord(
            tag.offset, tag.name, f"item data exceeds declared size {tag.size}"
        ) from exc
    if not value.at_end():
        raise MalformedRecord(
            tag.offset, tag.name, f"{value.remaining} unexpected trailing byte(s)"
        )
    if layout.components > 1:
        values = values.reshape(count, layout.components)
    return ArrayRecord(
        name=tag.name,
        type_name=tag.type_name,
        inner_type=tag.inner_type,
        values=values,
        has_guid=tag.has_guid,
        property_guid=tag.property_guid,
        struct_header=struct_header,
        offset=tag.offset,
    )


def decode(data: bytes) -> Document:
    """Decode a complete save file into a :class:`Document`."""

    data = bytes(data)
    cursor = BinaryCursor(data)
    header = _read_header(cursor)
    entries: list[ArrayRecord | OpaqueSpan] = []
    while not cursor.at_end():
        start = cursor.offset
        name = cursor.read_fstring()
        if name == TERMINATOR_NAME:
            entries.append(OpaqueSpan(data[start:], TERMINATOR_NAME, "", start))
            break
        tag = _read_tag(cursor, name, start)
        layout = layout_for(name) if tag.type_name == "ArrayProperty" else None
        if layout is not None:
            record = _decode_array(tag, layout, cursor.slice(tag.size))
            logger.debug(
                "Decoded %s (%s, %d items) at 0x%X", name, tag.inner_type, len(record), start
            )
            entries.append(record)
        else:
            cursor.read_bytes(tag.size)
            entries.append(OpaqueSpan(data[start:cursor.offset], name, tag.type_name, start))
    return Document(header=header, entries=entries)


def _write_header(writer: BinaryWriter, header: GvasHeader) -> None:
    writer.write_bytes(MAGIC)
    writer.write_u32(header.save_game_version)
    writer.write_u32(header.package_version)
    if header.save_game_version >= UE5_SAVE_GAME_VERSION:
        writer.write_u32(header.package_version_ue5 or 0)
    engine = header.engine_version
    writer.write_u16(engine.major)
    writer.write_u16(engine.minor)
    writer.write_u16(engine.patch)
    writer.write_u32(engine.build)
    writer.write_fstring(engine.branch)
    writer.write_u32(header.custom_format_version)
    writer.write_u32(len(header.custom_formats))
    for custom in header.custom_formats:
        writer.write_guid(custom.guid)
        writer.write_i32(custom.version)
    writer.write_fstring(header.save_game_type)


def _write_optional_guid(writer: BinaryWriter, has_guid: int, guid: Optional[bytes]) -> None:
    writer.write_u8(has_guid)
    if has_guid:
        writer.write_guid(guid if guid is not None else bytes(16))


def _write_array(writer: BinaryWriter, record: ArrayRecord) -> None:
    layout = layout_for(record.name)
    dtype = layout.dtype if layout is not None else record.values.dtype.str
    payload = BinaryWriter()
    payload.write_u32(len(record))
    header = record.struct_header
    if header is not None:
        payload.write_fstring(header.name)
        payload.write_fstring(header.type_name)
        payload.write_i64(int(record.values.size) * record.values.dtype.itemsize)
        payload.write_fstring(header.struct_name)
        payload.write_guid(header.struct_guid)
        _write_optional_guid(payload, header.has_guid, header.property_guid)
    payload.write_array(record.values, dtype)

    writer.write_fstring(record.name)
    writer.write_fstring(record.type_name)
    writer.write_i64(len(payload))
    writer.write_fstring(record.inner_type)
    _write_optional_guid(writer, record.has_guid, record.property_guid)
    writer.write_bytes(payload.getvalue())


def encode(document: Document) -> bytes:
    """Serialise ``document`` back to bytes, entries in their stored order."""

    writer = BinaryWriter()
    _write_header(writer, document.header)
    for entry in document.entries:
        if isinstance(entry, ArrayRecord):
            _write_array(writer, entry)
        else:
            writer.write_bytes(entry.raw)
    return writer.getvalue()


def decode_file(path: Path | str) -> Document:
    path = Path(path)
    document = decode(path.read_bytes())
    understood = sum(1 for _ in document.records())
    logger.info(
        "Decoded %s: %d entries (%d understood)", path, len(document.entries), understood
    )
    return document


def encode_file(document: Document, path: Path | str) -> None:
    path = Path(path)
    data = encode(document)
    path.write_bytes(data)
    logger.info("Wrote %s (%d bytes)", path, len(data))
