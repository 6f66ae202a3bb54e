"""Interned strings: ext id -128 back-references into a per-stream dictionary.

The first time a candidate string (UTF-8 length >= 3) is written it goes
out as an ordinary str and is appended to the encoder's dictionary; every
later occurrence is a fixext1/2/4 record holding the big-endian dictionary
index.  The decoder appends the same strings in the same order, so indices
agree on both sides as long as the two sides run with the same settings.
"""

from __future__ import annotations

import struct
from typing import Any

from . import _codes as codes
from ._errors import InternIndexError, InvalidCodeError, MsgpackError

_INDEX1 = struct.Struct(">BbB")
_INDEX2 = struct.Struct(">BbH")
_INDEX4 = struct.Struct(">BbI")


# ── Encoding ─────────────────────────────────────────────────

def encode_interned_string(e: Any, s: str, intern: bool) -> None:
    """Write `s`, as a back-reference when the dictionary already holds it.

    With `intern` set, new candidates are added to the dictionary.
    """
    raw = s.encode("utf-8", "surrogateescape")
    if len(raw) >= codes.MIN_INTERNED_STRING_LEN:
        idx = e._dict.get(s)
        if idx is not None:
            encode_interned_index(e, idx)
            return
        if intern and len(e._dict) < codes.MAX_DICT_LEN:
            e._dict[s] = len(e._dict)
    e._encode_str_raw(raw)


def encode_interned_index(e: Any, idx: int) -> None:
    ext_id = codes.INTERNED_STRING_EXT_ID
    if idx <= 0xFF:
        e._write(_INDEX1.pack(codes.FIXEXT1, ext_id, idx))
    elif idx <= 0xFFFF:
        e._write(_INDEX2.pack(codes.FIXEXT2, ext_id, idx))
    elif idx <= 0xFFFFFFFF:
        e._write(_INDEX4.pack(codes.FIXEXT4, ext_id, idx))
    else:
        raise MsgpackError("msgpack: interned string index {} too large".format(idx))


def encode_interned_str_value(e: Any, v: str) -> None:
    encode_interned_string(e, v, True)


def encode_interned_any(e: Any, v: Any) -> None:
    if isinstance(v, str):
        encode_interned_string(e, v, True)
    else:
        e.encode(v)


# ── Decoding ─────────────────────────────────────────────────

def interned_lookup(d: Any, length: int) -> str:
    """Resolve the index payload of an ext -128 record (id already read)."""
    if length == 1:
        idx = d._r.read_byte()
    elif length == 2:
        idx = struct.unpack(">H", d._r.read(2))[0]
    elif length == 4:
        idx = struct.unpack(">I", d._r.read(4))[0]
    else:
        raise InvalidCodeError(length, "interned string index length")
    if idx >= len(d._dict):
        raise InternIndexError(idx)
    return d._dict[idx]


def decode_interned_string(d: Any, c: int, intern: bool) -> str:
    """Decode a string whose framing byte `c` has already been consumed."""
    if c == codes.NIL:
        return ""
    if codes.is_ext(c):
        ext_id, length = d._ext_header_from_code(c)
        if ext_id != codes.INTERNED_STRING_EXT_ID:
            raise InvalidCodeError(c, "string (ext id {})".format(ext_id))
        return interned_lookup(d, length)
    n = d._bytes_len(c, "string")
    if n <= 0:
        return ""
    raw = d._r.read(n)
    s = raw.decode("utf-8", "surrogateescape")
    if intern and n >= codes.MIN_INTERNED_STRING_LEN \
            and len(d._dict) < codes.MAX_DICT_LEN:
        d._dict.append(s)
    return s


def decode_interned_str_value(d: Any) -> str:
    return decode_interned_string(d, d._r.read_byte(), True)


def decode_interned_any(d: Any) -> Any:
    c = d._r.peek_byte()
    if codes.is_string(c):
        return decode_interned_string(d, d._r.read_byte(), True)
    return d.decode_any()
