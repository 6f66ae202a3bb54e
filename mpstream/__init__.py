"""mpstream — streaming, annotation-driven MessagePack codec.

Quick start:
    >>> from mpstream import dumps, loads
    >>> dumps({"hello": "world"}).hex()
    '81a568656c6c6fa5776f726c64'
    >>> loads(bytes.fromhex("81a568656c6c6fa5776f726c64"))
    {'hello': 'world'}

Dataclasses map to MessagePack maps keyed by field name, and decoding is
driven by the target annotation:
    >>> from dataclasses import dataclass
    >>> @dataclass
    ... class Point:
    ...     x: int
    ...     y: int
    >>> loads(dumps(Point(1, 2)), Point)
    Point(x=1, y=2)

Streams: `Encoder(stream)` writes to anything with ``write``;
`Decoder(stream)` reads from anything with ``read`` or from a bytes-like
buffer.
"""

from __future__ import annotations

from typing import Any

from . import _codes as codes
from ._custom import CustomDecoder, CustomEncoder, Marshaler, Unmarshaler
from ._decode import Decoder, decode_dynamic_map, decode_string_keyed_map
from ._dispatch import register_type
from ._encode import Encoder
from ._errors import (
    ERR_ANNOTATION,
    ERR_DUPLICATE_EXT,
    ERR_INTERN_INDEX,
    ERR_INVALID_CODE,
    ERR_MISSING_FIELD,
    ERR_NOT_SETTABLE,
    ERR_NULL_DEST,
    ERR_OVERFLOW,
    ERR_UNKNOWN_CODE,
    ERR_UNREGISTERED_EXT,
    ERR_UNSUPPORTED,
    DuplicateExtIdError,
    InternIndexError,
    InvalidCodeError,
    MissingRequiredFieldError,
    MsgpackError,
    NotSettableError,
    NullDestError,
    UnknownCodeError,
    UnregisteredExtError,
    UnresolvedAnnotationError,
    UnsupportedTypeError,
    ValueOverflowError,
)
from ._ext import ExtensionRegistry, ExtInfo, default_registry, register_ext, unregister_ext
from ._sort import sort_byte_keys
from ._typeinfo import (
    ExtType,
    Float32,
    Float64,
    Int8,
    Int16,
    Int32,
    Int64,
    Kind,
    Uint8,
    Uint16,
    Uint32,
    Uint64,
)

__version__ = "1.0.0"

__all__ = [
    # Streams
    "Encoder",
    "Decoder",
    "dumps",
    "loads",
    # Extensions
    "ExtensionRegistry",
    "ExtInfo",
    "ExtType",
    "default_registry",
    "register_ext",
    "unregister_ext",
    "register_type",
    # Protocols
    "CustomEncoder",
    "CustomDecoder",
    "Marshaler",
    "Unmarshaler",
    # Width markers
    "Int8", "Int16", "Int32", "Int64",
    "Uint8", "Uint16", "Uint32", "Uint64",
    "Float32", "Float64",
    "Kind",
    # Helpers
    "decode_dynamic_map",
    "decode_string_keyed_map",
    "sort_byte_keys",
    "codes",
    # Exceptions
    "MsgpackError",
    "InvalidCodeError",
    "UnknownCodeError",
    "ValueOverflowError",
    "NotSettableError",
    "NullDestError",
    "UnsupportedTypeError",
    "DuplicateExtIdError",
    "UnregisteredExtError",
    "InternIndexError",
    "MissingRequiredFieldError",
    "UnresolvedAnnotationError",
    # Error codes
    "ERR_INVALID_CODE",
    "ERR_UNKNOWN_CODE",
    "ERR_OVERFLOW",
    "ERR_NOT_SETTABLE",
    "ERR_NULL_DEST",
    "ERR_UNSUPPORTED",
    "ERR_DUPLICATE_EXT",
    "ERR_UNREGISTERED_EXT",
    "ERR_INTERN_INDEX",
    "ERR_MISSING_FIELD",
    "ERR_ANNOTATION",
]


# ── One-shot API ──────────────────────────────────────────────

def dumps(value: Any, **options: Any) -> bytes:
    """Encode one value to bytes.  `options` are `Encoder` options."""
    enc = Encoder(**options)
    enc.encode(value)
    return enc.getvalue()


def loads(data: bytes, target: Any = Any, **options: Any) -> Any:
    """Decode one value from `data` into `target` (default: dynamic).

    `options` are `Decoder` options.  Trailing bytes are ignored.
    """
    return Decoder(data, **options).decode(target)
