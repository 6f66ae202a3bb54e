"""Streaming MessagePack decoder.

`Decoder.decode(target)` reads one value shaped by `target`, which is
either an annotation (a new value is returned) or a mutable instance that
is filled in place.  The primitive readers accept every wire form that
fits the requested shape: any integer family for an integer target, str
or bin for strings and bytes, float32 or float64 for floats.  nil decodes
to the zero value of scalar targets and to None otherwise.
"""

from __future__ import annotations

import dataclasses
import math
import struct
from functools import partialmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from . import _codes as codes
from ._custom import CustomDecoder
from ._dispatch import check_map_key
from ._errors import (
    InvalidCodeError,
    NotSettableError,
    NullDestError,
    UnknownCodeError,
    UnregisteredExtError,
    ValueOverflowError,
)
from ._ext import ExtensionRegistry, default_registry
from ._fields import decode_record_into
from ._intern import decode_interned_string, interned_lookup
from ._stream import Reader
from ._typeinfo import ExtType, is_annotation

_U16 = struct.Struct(">H")
_U32 = struct.Struct(">I")
_U64 = struct.Struct(">Q")
_I8 = struct.Struct(">b")
_I16 = struct.Struct(">h")
_I32 = struct.Struct(">i")
_I64 = struct.Struct(">q")
_F32 = struct.Struct(">f")
_F64 = struct.Struct(">d")

# Payload width of fixed-size scalar codes, for skip().
_SCALAR_WIDTHS = {
    codes.UINT8: 1, codes.INT8: 1,
    codes.UINT16: 2, codes.INT16: 2,
    codes.UINT32: 4, codes.INT32: 4, codes.FLOAT: 4,
    codes.UINT64: 8, codes.INT64: 8, codes.DOUBLE: 8,
}

# (length struct, framing family) for codes carrying an explicit length.
_LEN8 = (codes.STR8, codes.BIN8, codes.EXT8)
_LEN16 = (codes.STR16, codes.BIN16, codes.EXT16, codes.ARRAY16, codes.MAP16)
_LEN32 = (codes.STR32, codes.BIN32, codes.EXT32, codes.ARRAY32, codes.MAP32)


def to_float32(x: float) -> float:
    """Round a double to the nearest float32, overflowing to +-inf."""
    try:
        return _F32.unpack(_F32.pack(x))[0]
    except OverflowError:
        return math.copysign(math.inf, x)


class Decoder:
    """Reads MessagePack values from a stream or an in-memory buffer.

    Options (keyword-only, also settable as attributes):
      strict_mode           records must carry every non-omit-empty field
      omit_empty_default    treat every record field as omit-empty
      use_interned_strings  intern every candidate string (ext -128)
      map_decoder           hook called as ``map_decoder(decoder)`` to
                            decode maps in dynamic context
      extensions            registry override; None means the default one
    """

    def __init__(self, stream: Any = b"", *,
                 strict_mode: bool = False,
                 omit_empty_default: bool = False,
                 use_interned_strings: bool = False,
                 map_decoder: Optional[Callable[["Decoder"], Any]] = None,
                 extensions: Optional[ExtensionRegistry] = None) -> None:
        self.strict_mode = strict_mode
        self.omit_empty_default = omit_empty_default
        self.use_interned_strings = use_interned_strings
        self.map_decoder = map_decoder
        self.extensions = extensions
        self._dict: List[str] = []
        self.reset(stream)

    def reset(self, stream: Any, *, seed: Optional[Iterable[str]] = None) -> None:
        """Switch to a new stream and replace the interned-string dictionary."""
        self._r = Reader(stream)
        self._dict = list(seed) if seed is not None else []

    @property
    def dispatcher(self) -> Any:
        reg = self.extensions if self.extensions is not None else default_registry
        return reg.dispatcher

    @property
    def _registry(self) -> ExtensionRegistry:
        return self.extensions if self.extensions is not None else default_registry

    # ── Top level ──

    def decode(self, target: Any = Any) -> Any:
        """Decode the next value into `target`.

        An annotation yields a new value.  A dataclass instance, dict, list,
        set, bytearray or object with ``__msgpack_decode__`` is filled in
        place and returned.
        """
        if target is None:
            raise NullDestError()
        if is_annotation(target):
            return self.decode_value(target)
        return self._decode_into(target)

    def decode_multi(self, *targets: Any) -> List[Any]:
        return [self.decode(t) for t in targets]

    def decode_value(self, tp: Any) -> Any:
        return self.dispatcher.decoder_for(tp)(self)

    def _decode_into(self, target: Any) -> Any:
        if dataclasses.is_dataclass(target):
            decode_record_into(self, target, self.dispatcher.fields_for(type(target)))
        elif isinstance(target, CustomDecoder):
            target.__msgpack_decode__(self)
        elif isinstance(target, dict):
            m = self.decode_map()
            target.clear()
            if m is not None:
                target.update(m)
        elif isinstance(target, list):
            target[:] = self.decode_list() or []
        elif isinstance(target, set):
            items = self.decode_list()
            target.clear()
            target.update(items or ())
        elif isinstance(target, bytearray):
            data = self.decode_bytes()
            target[:] = data or b""
        else:
            raise NotSettableError(target)
        return target

    def decode_raw(self) -> bytes:
        """Raw bytes of the next value, undecoded."""
        self._r.start_capture()
        try:
            self.skip()
        finally:
            raw = self._r.stop_capture()
        return raw

    def _decode_payload(self, payload: bytes, dec: Callable[["Decoder"], Any]) -> Any:
        # Runs `dec` over an ext payload, sharing options and dictionary.
        saved = self._r
        self._r = Reader(payload)
        try:
            return dec(self)
        finally:
            self._r = saved

    # ── Inspection ──

    def peek_code(self) -> int:
        """The next framing byte, without consuming it."""
        return self._r.peek_byte()

    def skip(self) -> None:
        """Consume exactly one value without building it."""
        r = self._r
        pending = 1
        while pending:
            pending -= 1
            c = r.read_byte()
            if codes.is_fixed_num(c) or c in (codes.NIL, codes.FALSE, codes.TRUE):
                continue
            if codes.is_fixed_string(c):
                r.skip(c & codes.FIXSTR_MASK)
            elif codes.is_fixed_array(c):
                pending += c & codes.FIXARRAY_MASK
            elif codes.is_fixed_map(c):
                pending += 2 * (c & codes.FIXMAP_MASK)
            elif c in _SCALAR_WIDTHS:
                r.skip(_SCALAR_WIDTHS[c])
            elif codes.is_fixed_ext(c):
                r.skip(1 + codes.FIXEXT_SIZES[c])
            elif c in _LEN8 or c in _LEN16 or c in _LEN32:
                n = self._read_len(c)
                if c == codes.ARRAY16 or c == codes.ARRAY32:
                    pending += n
                elif c == codes.MAP16 or c == codes.MAP32:
                    pending += 2 * n
                elif codes.is_ext(c):
                    r.skip(1 + n)
                else:
                    r.skip(n)
            else:
                raise UnknownCodeError(c)

    def _read_len(self, c: int) -> int:
        if c in _LEN8:
            return self._r.read_byte()
        if c in _LEN16:
            return _U16.unpack(self._r.read(2))[0]
        return _U32.unpack(self._r.read(4))[0]

    # ── Scalars ──

    def decode_nil(self) -> None:
        c = self._r.read_byte()
        if c != codes.NIL:
            raise InvalidCodeError(c, "nil")

    def decode_bool(self) -> bool:
        c = self._r.read_byte()
        if c == codes.TRUE:
            return True
        if c == codes.FALSE or c == codes.NIL:
            return False
        raise InvalidCodeError(c, "bool")

    def _int_from_code(self, c: int, type_name: str) -> int:
        if c <= codes.POS_FIXNUM_HIGH:
            return c
        if c >= codes.NEG_FIXNUM_LOW:
            return c - 0x100
        r = self._r
        if c == codes.UINT8:
            return r.read_byte()
        if c == codes.UINT16:
            return _U16.unpack(r.read(2))[0]
        if c == codes.UINT32:
            return _U32.unpack(r.read(4))[0]
        if c == codes.UINT64:
            return _U64.unpack(r.read(8))[0]
        if c == codes.INT8:
            return _I8.unpack(r.read(1))[0]
        if c == codes.INT16:
            return _I16.unpack(r.read(2))[0]
        if c == codes.INT32:
            return _I32.unpack(r.read(4))[0]
        if c == codes.INT64:
            return _I64.unpack(r.read(8))[0]
        raise InvalidCodeError(c, type_name)

    def _decode_integer(self) -> int:
        c = self._r.read_byte()
        if c == codes.NIL:
            return 0
        return self._int_from_code(c, "int")

    def decode_int(self, width: int = 64) -> int:
        name = "int{}".format(width)
        c = self._r.read_byte()
        if c == codes.NIL:
            return 0
        v = self._int_from_code(c, name)
        lo, hi = codes.int_bounds(width)
        if not lo <= v <= hi:
            raise ValueOverflowError(v, name)
        return v

    def decode_uint(self, width: int = 64) -> int:
        name = "uint{}".format(width)
        c = self._r.read_byte()
        if c == codes.NIL:
            return 0
        v = self._int_from_code(c, name)
        lo, hi = codes.int_bounds(width, signed=False)
        if not lo <= v <= hi:
            raise ValueOverflowError(v, name)
        return v

    decode_int8 = partialmethod(decode_int, 8)
    decode_int16 = partialmethod(decode_int, 16)
    decode_int32 = partialmethod(decode_int, 32)
    decode_int64 = partialmethod(decode_int, 64)
    decode_uint8 = partialmethod(decode_uint, 8)
    decode_uint16 = partialmethod(decode_uint, 16)
    decode_uint32 = partialmethod(decode_uint, 32)
    decode_uint64 = partialmethod(decode_uint, 64)

    def decode_float64(self) -> float:
        c = self._r.read_byte()
        if c == codes.DOUBLE:
            return _F64.unpack(self._r.read(8))[0]
        if c == codes.FLOAT:
            return _F32.unpack(self._r.read(4))[0]
        if c == codes.NIL:
            return 0.0
        return float(self._int_from_code(c, "float64"))

    def decode_float32(self) -> float:
        c = self._r.read_byte()
        if c == codes.FLOAT:
            return _F32.unpack(self._r.read(4))[0]
        if c == codes.DOUBLE:
            return to_float32(_F64.unpack(self._r.read(8))[0])
        if c == codes.NIL:
            return 0.0
        return to_float32(float(self._int_from_code(c, "float32")))

    # ── Strings and binary ──

    def _bytes_len(self, c: int, type_name: str) -> int:
        if codes.is_fixed_string(c):
            return c & codes.FIXSTR_MASK
        if c == codes.STR8 or c == codes.BIN8:
            return self._r.read_byte()
        if c == codes.STR16 or c == codes.BIN16:
            return _U16.unpack(self._r.read(2))[0]
        if c == codes.STR32 or c == codes.BIN32:
            return _U32.unpack(self._r.read(4))[0]
        raise InvalidCodeError(c, type_name)

    def decode_string(self) -> str:
        return decode_interned_string(self, self._r.read_byte(), self.use_interned_strings)

    def decode_bytes(self) -> Optional[bytes]:
        c = self._r.read_byte()
        if c == codes.NIL:
            return None
        return self._r.read(self._bytes_len(c, "bytes"))

    # ── Container headers ──

    def _array_len_from_code(self, c: int) -> int:
        if codes.is_fixed_array(c):
            return c & codes.FIXARRAY_MASK
        if c == codes.ARRAY16:
            return _U16.unpack(self._r.read(2))[0]
        if c == codes.ARRAY32:
            return _U32.unpack(self._r.read(4))[0]
        raise InvalidCodeError(c, "array length")

    def _map_len_from_code(self, c: int) -> int:
        if codes.is_fixed_map(c):
            return c & codes.FIXMAP_MASK
        if c == codes.MAP16:
            return _U16.unpack(self._r.read(2))[0]
        if c == codes.MAP32:
            return _U32.unpack(self._r.read(4))[0]
        raise InvalidCodeError(c, "map length")

    def decode_array_len(self) -> int:
        """Element count of the next array, or -1 for nil."""
        c = self._r.read_byte()
        if c == codes.NIL:
            return -1
        return self._array_len_from_code(c)

    def decode_map_len(self) -> int:
        """Pair count of the next map, or -1 for nil."""
        c = self._r.read_byte()
        if c == codes.NIL:
            return -1
        return self._map_len_from_code(c)

    # ── Extensions ──

    def _ext_header_from_code(self, c: int) -> Tuple[int, int]:
        size = codes.FIXEXT_SIZES.get(c)
        if size is None:
            if c == codes.EXT8:
                size = self._r.read_byte()
            elif c == codes.EXT16:
                size = _U16.unpack(self._r.read(2))[0]
            elif c == codes.EXT32:
                size = _U32.unpack(self._r.read(4))[0]
            else:
                raise InvalidCodeError(c, "ext")
        ext_id = _I8.unpack(self._r.read(1))[0]
        return ext_id, size

    def decode_ext_header(self) -> Tuple[int, int]:
        """(ext id, payload length) of the next ext record."""
        return self._ext_header_from_code(self._r.read_byte())

    def decode_ext(self) -> Optional[ExtType]:
        """The next ext record as raw id and payload, bypassing the registry."""
        c = self._r.read_byte()
        if c == codes.NIL:
            return None
        ext_id, size = self._ext_header_from_code(c)
        return ExtType(ext_id, self._r.read(size))

    def _decode_ext_value(self, c: int) -> Any:
        ext_id, size = self._ext_header_from_code(c)
        if ext_id == codes.INTERNED_STRING_EXT_ID:
            return interned_lookup(self, size)
        info = self._registry.lookup(ext_id)
        if info is None:
            raise UnregisteredExtError(ext_id)
        payload = self._r.read(size)
        if info.decode is not None:
            return info.decode(payload)
        return self._decode_payload(payload, self.dispatcher.payload_decoder_for(info.type))

    # ── Dynamic values ──

    def decode_any(self) -> Any:
        """Decode the next value into whatever Python type fits it."""
        c = self._r.peek_byte()
        if codes.is_int(c):
            return self._decode_integer()
        if codes.is_string(c):
            return self.decode_string()
        if codes.is_map(c):
            return self.decode_map()
        if codes.is_array(c):
            return self.decode_list()
        if c == codes.NIL:
            self._r.read_byte()
            return None
        if c == codes.TRUE or c == codes.FALSE:
            return self.decode_bool()
        if c == codes.DOUBLE:
            return self.decode_float64()
        if c == codes.FLOAT:
            return self.decode_float32()
        if codes.is_bin(c):
            return self.decode_bytes()
        self._r.read_byte()
        if codes.is_ext(c):
            return self._decode_ext_value(c)
        raise UnknownCodeError(c)

    def decode_list(self) -> Optional[List[Any]]:
        n = self.decode_array_len()
        if n == -1:
            return None
        items = []
        for _ in range(n):
            items.append(self.decode_any())
        return items

    def decode_map(self) -> Any:
        """Decode a map in dynamic context through the `map_decoder` hook."""
        if self.map_decoder is not None:
            return self.map_decoder(self)
        return decode_dynamic_map(self)


def decode_dynamic_map(d: Decoder) -> Optional[Dict[Any, Any]]:
    """Default map decoder: dynamic keys and values.

    Keys that cannot be dict keys (maps, arrays) raise UnsupportedTypeError.
    """
    n = d.decode_map_len()
    if n == -1:
        return None
    m = {}
    for _ in range(n):
        k = d.decode_any()
        check_map_key(k)
        m[k] = d.decode_any()
    return m


def decode_string_keyed_map(d: Decoder) -> Optional[Dict[str, Any]]:
    """Map decoder that requires str (or bin) keys."""
    n = d.decode_map_len()
    if n == -1:
        return None
    m = {}
    for _ in range(n):
        k = d.decode_string()
        m[k] = d.decode_any()
    return m
