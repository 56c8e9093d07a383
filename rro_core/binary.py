"""Little-endian binary cursor and writer used by the save-file codec.

Reads are forward-only and advance by exactly the number of bytes consumed.
Every ``read_*`` method has a ``write_*`` twin on :class:`BinaryWriter` that
emits the same bytes back, so an untouched field always re-encodes
identically.
"""

from __future__ import annotations

import struct

import numpy as np

from rro_core.errors import MalformedRecord, UnexpectedEof

_U8 = struct.Struct("<B")
_U16 = struct.Struct("<H")
_I16 = struct.Struct("<h")
_U32 = struct.Struct("<I")
_I32 = struct.Struct("<i")
_U64 = struct.Struct("<Q")
_I64 = struct.Struct("<q")
_F32 = struct.Struct("<f")

GUID_SIZE = 16

STORAGE_EMPTY = "empty"
STORAGE_ANSI = "ansi"
STORAGE_UTF16 = "utf16"


def _default_storage(value: str) -> str:
    if not value:
        return STORAGE_EMPTY
    return STORAGE_ANSI if value.isascii() else STORAGE_UTF16


class FString(str):
    """An Unreal ``FString`` that remembers how it was stored.

    Unreal writes pure-ASCII strings as single-byte text and everything else
    as UTF-16, each with a NUL terminator, and an empty string as a bare zero
    length. Strings read from a file keep their original storage so they
    re-encode byte for byte even when the writer did something unusual (for
    example a one-byte string holding just the terminator).
    """

    def __new__(cls, value: str = "", storage: str | None = None) -> "FString":
        obj = super().__new__(cls, value)
        obj.storage = storage or _default_storage(value)
        return obj


class BinaryCursor:
    """Sequential reader over an immutable byte buffer."""

    def __init__(self, data: bytes, *, base_offset: int = 0) -> None:
        self._data = bytes(data)
        self._pos = 0
        self._base = base_offset

    @property
    def offset(self) -> int:
        """Absolute offset of the next byte to be read."""
        return self._base + self._pos

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def at_end(self) -> bool:
        return self._pos >= len(self._data)

    def seek(self, offset: int) -> None:
        """Jump to an absolute offset.

        Only used to verify fixed-offset headers; record decoding never
        backtracks.
        """

        relative = offset - self._base
        if relative < 0 or relative > len(self._data):
            raise UnexpectedEof(offset, 0)
        self._pos = relative

    def _take(self, length: int) -> bytes:
        if length < 0 or self._pos + length > len(self._data):
            raise UnexpectedEof(self.offset, length)
        chunk = self._data[self._pos:self._pos + length]
        self._pos += length
        return chunk

    def read_bytes(self, length: int) -> bytes:
        return self._take(length)

    def read_guid(self) -> bytes:
        return self._take(GUID_SIZE)

    def read_u8(self) -> int:
        return _U8.unpack(self._take(1))[0]

    def read_u16(self) -> int:
        return _U16.unpack(self._take(2))[0]

    def read_i16(self) -> int:
        return _I16.unpack(self._take(2))[0]

    def read_u32(self) -> int:
        return _U32.unpack(self._take(4))[0]

    def read_i32(self) -> int:
        return _I32.unpack(self._take(4))[0]

    def read_u64(self) -> int:
        return _U64.unpack(self._take(8))[0]

    def read_i64(self) -> int:
        return _I64.unpack(self._take(8))[0]

    def read_f32(self) -> float:
        return _F32.unpack(self._take(4))[0]

    def read_fstring(self) -> FString:
        start = self.offset
        length = self.read_i32()
        if length == 0:
            return FString("", STORAGE_EMPTY)
        if length > 0:
            raw = self._take(length)
            if raw[-1] != 0:
                raise MalformedRecord(start, "FString", "missing NUL terminator")
            return FString(raw[:-1].decode("latin-1"), STORAGE_ANSI)
        raw = self._take(-length * 2)
        if raw[-2:] != b"\x00\x00":
            raise MalformedRecord(start, "FString", "missing UTF-16 terminator")
        return FString(raw[:-2].decode("utf-16-le", errors="surrogatepass"), STORAGE_UTF16)

    def read_array(self, dtype: str, count: int) -> np.ndarray:
        """Read ``count`` items of a fixed-width numpy ``dtype`` as a copy."""

        item = np.dtype(dtype)
        raw = self._take(item.itemsize * count)
        return np.frombuffer(raw, dtype=item).copy()

    def slice(self, length: int) -> "BinaryCursor":
        """Consume ``length`` bytes and return a cursor bounded to them."""

        start = self.offset
        return BinaryCursor(self._take(length), base_offset=start)


class BinaryWriter:
    """Append-only writer mirroring :class:`BinaryCursor` field for field."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def write_bytes(self, data: bytes) -> None:
        self._buffer += data

    def write_guid(self, guid: bytes) -> None:
        if len(guid) != GUID_SIZE:
            raise ValueError(f"GUID must be {GUID_SIZE} bytes, got {len(guid)}")
        self._buffer += guid

    def write_u8(self, value: int) -> None:
        self._buffer += _U8.pack(value)

    def write_u16(self, value: int) -> None:
        self._buffer += _U16.pack(value)

    def write_i16(self, value: int) -> None:
        self._buffer += _I16.pack(value)

    def write_u32(self, value: int) -> None:
        self._buffer += _U32.pack(value)

    def write_i32(self, value: int) -> None:
        self._buffer += _I32.pack(value)

    def write_u64(self, value: int) -> None:
        self._buffer += _U64.pack(value)

    def write_i64(self, value: int) -> None:
        self._buffer += _I64.pack(value)

    def write_f32(self, value: float) -> None:
        self._buffer += _F32.pack(value)

    def write_fstring(self, value: str) -> None:
        storage = getattr(value, "storage", None) or _default_storage(value)
        if storage == STORAGE_EMPTY and not value:
            self.write_i32(0)
            return
        if storage == STORAGE_ANSI:
            try:
                encoded = value.encode("latin-1")
            except UnicodeEncodeError:
                storage = STORAGE_UTF16
            else:
                self.write_i32(len(encoded) + 1)
                self._buffer += encoded + b"\x00"
                return
        encoded = value.encode("utf-16-le", errors="surrogatepass")
        self.write_i32(-(len(encoded) // 2 + 1))
        self._buffer += encoded + b"\x00\x00"

    def write_array(self, values: np.ndarray, dtype: str) -> None:
        self._buffer += np.ascontiguousarray(values, dtype=np.dtype(dtype)).tobytes()
