import struct

import pytest

np = pytest.importorskip("numpy")

from rro_core.binary import (
    STORAGE_ANSI,
    STORAGE_EMPTY,
    STORAGE_UTF16,
    BinaryCursor,
    BinaryWriter,
    FString,
)
from rro_core.errors import MalformedRecord, UnexpectedEof


def test_reads_little_endian_values_and_advances_offset():
    data = struct.pack("<BHhIiQqf", 7, 513, -2, 70000, -5, 2**40, -(2**40), 1.5)
    cursor = BinaryCursor(data)

    assert cursor.read_u8() == 7
    assert cursor.read_u16() == 513
    assert cursor.read_i16() == -2
    assert cursor.offset == 5
    assert cursor.read_u32() == 70000
    assert cursor.read_i32() == -5
    assert cursor.read_u64() == 2**40
    assert cursor.read_i64() == -(2**40)
    assert cursor.read_f32() == 1.5
    assert cursor.at_end()
    assert cursor.remaining == 0


def test_read_past_end_reports_offset_and_length():
    cursor = BinaryCursor(b"\x01\x02\x03")
    cursor.read_u16()

    with pytest.raises(UnexpectedEof) as excinfo:
        cursor.read_u32()

    assert excinfo.value.offset == 2
    assert excinfo.value.requested_len == 4
    # A failed read does not consume anything.
    assert cursor.read_u8() == 3


def test_fstring_storage_is_preserved_when_rewritten():
    raw = (
        struct.pack("<i", 0)
        + struct.pack("<i", 6) + b"Hello\x00"
        + struct.pack("<i", -3) + "éa".encode("utf-16-le") + b"\x00\x00"
        + struct.pack("<i", 1) + b"\x00"
    )
    cursor = BinaryCursor(raw)

    empty = cursor.read_fstring()
    ansi = cursor.read_fstring()
    wide = cursor.read_fstring()
    terminator_only = cursor.read_fstring()

    assert (empty, empty.storage) == ("", STORAGE_EMPTY)
    assert (ansi, ansi.storage) == ("Hello", STORAGE_ANSI)
    assert (wide, wide.storage) == ("éa", STORAGE_UTF16)
    assert (terminator_only, terminator_only.storage) == ("", STORAGE_ANSI)

    writer = BinaryWriter()
    for value in (empty, ansi, wide, terminator_only):
        writer.write_fstring(value)
    assert writer.getvalue() == raw


def test_plain_strings_pick_default_storage():
    writer = BinaryWriter()
    writer.write_fstring("abc")
    writer.write_fstring("")
    writer.write_fstring("Zürich€")

    cursor = BinaryCursor(writer.getvalue())
    assert cursor.read_fstring() == "abc"
    assert cursor.read_fstring() == ""
    wide = cursor.read_fstring()
    assert wide == "Zürich€"
    assert wide.storage == STORAGE_UTF16
    assert FString("abc").storage == STORAGE_ANSI


def test_fstring_without_terminator_is_malformed():
    cursor = BinaryCursor(struct.pack("<i", 3) + b"abc")

    with pytest.raises(MalformedRecord) as excinfo:
        cursor.read_fstring()

    assert excinfo.value.offset == 0
    assert excinfo.value.kind == "FString"


def test_fstring_length_past_end_raises_eof():
    cursor = BinaryCursor(struct.pack("<i", 50) + b"short\x00")

    with pytest.raises(UnexpectedEof):
        cursor.read_fstring()


def test_slice_is_bounded_and_keeps_absolute_offsets():
    cursor = BinaryCursor(b"\xaa\xbb" + struct.pack("<I", 9) + b"\xcc")
    cursor.read_u16()
    inner = cursor.slice(4)

    assert inner.offset == 2
    assert inner.read_u32() == 9
    assert inner.at_end()
    with pytest.raises(UnexpectedEof) as excinfo:
        inner.read_u8()
    assert excinfo.value.offset == 6
    assert cursor.read_u8() == 0xCC


def test_read_array_returns_writable_copy():
    data = struct.pack("<3f", 1.0, 2.0, 3.0)
    values = BinaryCursor(data).read_array("<f4", 3)

    values[0] = 10.0

    assert values.tolist() == [10.0, 2.0, 3.0]
    writer = BinaryWriter()
    writer.write_array(np.array([1.0, 2.0, 3.0]), "<f4")
    assert writer.getvalue() == data


def test_seek_outside_buffer_raises():
    cursor = BinaryCursor(b"\x00" * 4)

    cursor.seek(4)
    assert cursor.at_end()
    with pytest.raises(UnexpectedEof):
        cursor.seek(5)


def test_write_guid_requires_sixteen_bytes():
    writer = BinaryWriter()

    with pytest.raises(ValueError):
        writer.write_guid(b"\x00" * 15)
