"""GVAS save-file codec."""

from rro_core.errors import CodecError, MalformedRecord, UnexpectedEof, UnsupportedVersion
from rro_core.gvas.codec import (
    MINIMUM_SAVE_GAME_VERSION,
    decode,
    decode_file,
    encode,
    encode_file,
)
from rro_core.gvas.document import (
    ArrayRecord,
    CustomFormat,
    Document,
    EngineVersion,
    GvasHeader,
    OpaqueSpan,
    StructArrayHeader,
)

__all__ = [
    "ArrayRecord",
    "CodecError",
    "CustomFormat",
    "Document",
    "EngineVersion",
    "GvasHeader",
    "MINIMUM_SAVE_GAME_VERSION",
    "MalformedRecord",
    "OpaqueSpan",
    "StructArrayHeader",
    "UnexpectedEof",
    "UnsupportedVersion",
    "decode",
    "decode_file",
    "encode",
    "encode_file",
]
