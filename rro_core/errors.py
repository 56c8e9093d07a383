"""Exceptions raised while reading, decoding or encoding save files."""

from __future__ import annotations


class CodecError(ValueError):
    """Base class for every save-file codec failure."""


class UnexpectedEof(CodecError):
    """Raised when a read would run past the end of the buffer."""

    def __init__(self, offset: int, requested_len: int) -> None:
        super().__init__(
            f"Unexpected end of data at offset 0x{offset:X}: "
            f"{requested_len} byte(s) requested"
        )
        self.offset = offset
        self.requested_len = requested_len


class MalformedRecord(CodecError):
    """Raised when a record's declared size or layout is inconsistent."""

    def __init__(self, offset: int, kind: str, detail: str = "") -> None:
        message = f"Malformed {kind} record at offset 0x{offset:X}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.offset = offset
        self.kind = kind
        self.detail = detail


class UnsupportedVersion(CodecError):
    """Raised when the save-game version predates what the codec understands."""

    def __init__(self, version: int, minimum: int) -> None:
        super().__init__(
            f"Unsupported save-game version {version}; at least {minimum} is required"
        )
        self.version = version
        self.minimum = minimum
