"""Shape dispatcher: annotation -> (encoder, decoder) strategy pair.

A strategy is a plain function: ``encode(encoder, value)`` writes one value,
``decode(decoder)`` reads one and returns it.  Strategies are compiled
once per annotation and cached on a `Dispatcher`; every extension registry
owns one dispatcher, so an ext registration only affects codecs compiled
against that registry.

Selection order, first match wins:

  1. codec registered with `register_type`, or the custom-codec protocol
  2. the marshal protocol (raw MessagePack bytes)
  3. ext-registered type: the primary codec wrapped in ext framing
  4. Optional[T]: nil <-> None, else T
  5. bytes; list[str]; other sequences
  6. dict[str, str]; dict[str, Any]; other mappings
  7. the fixed per-kind tables
"""

from __future__ import annotations

import functools
import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from . import _codes as codes
from ._custom import CustomDecoder, CustomEncoder, Marshaler, Unmarshaler
from ._errors import InvalidCodeError, UnsupportedTypeError, ValueOverflowError
from ._fields import FieldTable, build_field_table, decode_record_into, encode_record
from ._sort import sorted_items
from ._typeinfo import ExtType, Kind, Shape, describe, new_record, type_name, zero_value

logger = logging.getLogger(__name__)

EncodeFunc = Callable[[Any, Any], None]
DecodeFunc = Callable[[Any], Any]


# ── Type-level codec registrations ───────────────────────────

def _encode_ext_type(e: Any, v: ExtType) -> None:
    e.encode_ext(v.code, v.data)


def _decode_ext_type(d: Any) -> ExtType:
    return d.decode_ext()


_type_codecs: Dict[type, Tuple[EncodeFunc, DecodeFunc]] = {
    ExtType: (_encode_ext_type, _decode_ext_type),
}
_generation: int = 0
_type_codecs_lock = threading.Lock()


def register_type(tp: type, encode: EncodeFunc, decode: DecodeFunc) -> None:
    """Install strategy functions for `tp` (and its subclasses).

    Must happen before the type is encoded or decoded concurrently; all
    compiled strategy caches are invalidated.
    """
    global _type_codecs, _generation
    with _type_codecs_lock:
        table = dict(_type_codecs)
        table[tp] = (encode, decode)
        _type_codecs = table
        _generation += 1
    logger.debug("registered codec for %s", type_name(tp))


def type_codecs_generation() -> int:
    return _generation


def _type_codec(cls: type) -> Optional[Tuple[EncodeFunc, DecodeFunc]]:
    table = _type_codecs
    for klass in cls.__mro__:
        codec = table.get(klass)
        if codec is not None:
            return codec
    return None


# ── Scalar strategies ────────────────────────────────────────

def _encode_bool(e: Any, v: Any) -> None:
    e.encode_bool(v)


def _encode_integer(e: Any, v: Any) -> None:
    e.encode_integer(v)


def _encode_float32(e: Any, v: Any) -> None:
    e.encode_float32(v)


def _encode_float64(e: Any, v: Any) -> None:
    e.encode_float64(v)


def _encode_str(e: Any, v: Any) -> None:
    e.encode_string(v)


def _encode_bytes(e: Any, v: Any) -> None:
    e.encode_bytes(v)


def _encode_dynamic(e: Any, v: Any) -> None:
    e.encode(v)


def _decode_bool(d: Any) -> bool:
    return d.decode_bool()


def _decode_integer(d: Any) -> int:
    return d._decode_integer()


def _decode_float32(d: Any) -> float:
    return d.decode_float32()


def _decode_float64(d: Any) -> float:
    return d.decode_float64()


def _decode_str(d: Any) -> str:
    return d.decode_string()


def _decode_bytes(d: Any) -> Optional[bytes]:
    return d.decode_bytes()


def _decode_dynamic(d: Any) -> Any:
    return d.decode_any()


_ENCODERS: Dict[Kind, EncodeFunc] = {
    Kind.BOOL: _encode_bool,
    Kind.INTEGER: _encode_integer,
    Kind.FLOAT32: _encode_float32,
    Kind.FLOAT64: _encode_float64,
    Kind.STRING: _encode_str,
    Kind.BYTES: _encode_bytes,
    Kind.DYNAMIC: _encode_dynamic,
}

_DECODERS: Dict[Kind, DecodeFunc] = {
    Kind.BOOL: _decode_bool,
    Kind.INTEGER: _decode_integer,
    Kind.FLOAT32: _decode_float32,
    Kind.FLOAT64: _decode_float64,
    Kind.STRING: _decode_str,
    Kind.BYTES: _decode_bytes,
    Kind.DYNAMIC: _decode_dynamic,
}

# Scalar kinds whose decoders return exactly this builtin.
_BUILTINS = {Kind.BOOL: bool, Kind.INTEGER: int, Kind.FLOAT64: float,
             Kind.STRING: str, Kind.BYTES: bytes}


def _sized_int_encoder(signed: bool, width: int) -> EncodeFunc:
    if signed:
        def encode_int(e: Any, v: int) -> None:
            e.encode_int(v, width)
        return encode_int

    def encode_uint(e: Any, v: int) -> None:
        e.encode_uint(v, width)
    return encode_uint


def _sized_int_decoder(signed: bool, width: int) -> DecodeFunc:
    if signed:
        def decode_int(d: Any) -> int:
            return d.decode_int(width)
        return decode_int

    def decode_uint(d: Any) -> int:
        return d.decode_uint(width)
    return decode_uint


def _converting(dec: DecodeFunc, cls: type) -> DecodeFunc:
    # Subclasses of the builtins (IntEnum, str enums, bytearray).
    def decode_as(d: Any) -> Any:
        v = dec(d)
        return v if v is None else cls(v)
    return decode_as


def _unsupported_encoder(tp: Any) -> EncodeFunc:
    def encode_unsupported(e: Any, v: Any) -> None:
        raise UnsupportedTypeError(type_name(tp), encoding=True)
    return encode_unsupported


def _unsupported_decoder(tp: Any) -> DecodeFunc:
    def decode_unsupported(d: Any) -> Any:
        raise UnsupportedTypeError(type_name(tp), encoding=False)
    return decode_unsupported


def _take_nil(d: Any) -> bool:
    if d._r.peek_byte() == codes.NIL:
        d._r.read_byte()
        return True
    return False


# ── Optional ─────────────────────────────────────────────────

def _owned_encoder(inner: EncodeFunc) -> EncodeFunc:
    def encode_owned(e: Any, v: Any) -> None:
        if v is None:
            e.encode_nil()
        else:
            inner(e, v)
    return encode_owned


def _owned_decoder(inner: DecodeFunc) -> DecodeFunc:
    def decode_owned(d: Any) -> Any:
        if _take_nil(d):
            return None
        return inner(d)
    return decode_owned


# ── Sequences ────────────────────────────────────────────────

def _sequence_encoder(elem: EncodeFunc) -> EncodeFunc:
    def encode_sequence(e: Any, v: Any) -> None:
        e.encode_array_len(len(v))
        for item in v:
            if item is None:
                e.encode_nil()
            else:
                elem(e, item)
    return encode_sequence


def _encode_string_list(e: Any, v: Any) -> None:
    e.encode_array_len(len(v))
    for s in v:
        e.encode_string(s)


def _sequence_decoder(elem: DecodeFunc, factory: Any) -> DecodeFunc:
    named = hasattr(factory, "_fields")

    def decode_sequence(d: Any) -> Any:
        n = d.decode_array_len()
        if n == -1:
            return None
        items = []
        for _ in range(n):
            items.append(elem(d))
        if factory is list:
            return items
        if named:
            return factory(*items)
        return factory(items)
    return decode_sequence


def _decode_string_list(d: Any) -> Any:
    n = d.decode_array_len()
    if n == -1:
        return None
    return [d.decode_string() for _ in range(n)]


def _array_encoder(elems: Tuple[EncodeFunc, ...]) -> EncodeFunc:
    def encode_array(e: Any, v: Any) -> None:
        if len(v) != len(elems):
            raise ValueOverflowError(v, "tuple[{}]".format(len(elems)))
        e.encode_array_len(len(elems))
        for enc, item in zip(elems, v):
            if item is None:
                e.encode_nil()
            else:
                enc(e, item)
    return encode_array


def _array_decoder(elems: Tuple[DecodeFunc, ...], args: Tuple[Any, ...]) -> DecodeFunc:
    def decode_array(d: Any) -> Any:
        n = d.decode_array_len()
        if n == -1:
            return None
        items = []
        for i in range(n):
            if i < len(elems):
                items.append(elems[i](d))
            else:
                d.skip()
        for a in args[len(items):]:
            items.append(zero_value(a))
        return tuple(items)
    return decode_array


# ── Mappings ─────────────────────────────────────────────────

def _map_items(e: Any, m: Any):
    if e.sort_map_keys:
        return sorted_items(m)
    return m.items()


def _map_encoder(key: EncodeFunc, val: EncodeFunc) -> EncodeFunc:
    def encode_map(e: Any, m: Any) -> None:
        e.encode_map_len(len(m))
        for k, v in _map_items(e, m):
            if k is None:
                e.encode_nil()
            else:
                key(e, k)
            if v is None:
                e.encode_nil()
            else:
                val(e, v)
    return encode_map


def _encode_map_str_str(e: Any, m: Any) -> None:
    e.encode_map_len(len(m))
    for k, v in _map_items(e, m):
        e.encode_string(k)
        e.encode_string(v)


def _encode_map_str_any(e: Any, m: Any) -> None:
    e.encode_map_len(len(m))
    for k, v in _map_items(e, m):
        e.encode_string(k)
        e.encode(v)


def _map_decoder(key: DecodeFunc, val: DecodeFunc, factory: Any) -> DecodeFunc:
    def decode_map(d: Any) -> Any:
        n = d.decode_map_len()
        if n == -1:
            return None
        m = {}
        for _ in range(n):
            k = key(d)
            check_map_key(k)
            m[k] = val(d)
        return m if factory is dict else factory(m)
    return decode_map


def _decode_map_str_str(d: Any) -> Any:
    n = d.decode_map_len()
    if n == -1:
        return None
    m = {}
    for _ in range(n):
        k = d.decode_string()
        m[k] = d.decode_string()
    return m


def _decode_map_str_any(d: Any) -> Any:
    n = d.decode_map_len()
    if n == -1:
        return None
    m = {}
    for _ in range(n):
        k = d.decode_string()
        m[k] = d.decode_any()
    return m


def check_map_key(k: Any) -> None:
    try:
        hash(k)
    except TypeError:
        raise UnsupportedTypeError("map key " + type(k).__name__, encoding=False) from None


# ── Custom codec and marshal bridges ─────────────────────────

def _nil_guarded(dec: DecodeFunc) -> DecodeFunc:
    def decode_guarded(d: Any) -> Any:
        if _take_nil(d):
            return None
        return dec(d)
    return decode_guarded


def _encode_custom(e: Any, v: Any) -> None:
    v.__msgpack_encode__(e)


def _decode_custom(cls: type, d: Any) -> Any:
    if _take_nil(d):
        return None
    obj = cls.__new__(cls)
    obj.__msgpack_decode__(d)
    return obj


def _encode_marshaled(e: Any, v: Any) -> None:
    e.encode_raw(v.__msgpack_marshal__())


def _decode_marshaled(cls: type, d: Any) -> Any:
    if _take_nil(d):
        return None
    raw = d.decode_raw()
    obj = cls.__new__(cls)
    obj.__msgpack_unmarshal__(raw)
    return obj


# ── Extension bridges ────────────────────────────────────────

def _ext_encoder(ext_id: int, fn: Optional[Callable[[Any], bytes]],
                 primary: EncodeFunc) -> EncodeFunc:
    if fn is not None:
        def encode_ext_payload(e: Any, v: Any) -> None:
            e.encode_ext(ext_id, fn(v))
        return encode_ext_payload

    def encode_ext_wrapped(e: Any, v: Any) -> None:
        e._encode_ext_with(ext_id, primary, v)
    return encode_ext_wrapped


def _ext_decoder(ext_id: int, fn: Optional[Callable[[bytes], Any]],
                 primary: DecodeFunc, name: str) -> DecodeFunc:
    def decode_ext_value(d: Any) -> Any:
        c = d._r.read_byte()
        if c == codes.NIL:
            return None
        if not codes.is_ext(c):
            raise InvalidCodeError(c, name)
        got, length = d._ext_header_from_code(c)
        if got != ext_id:
            raise InvalidCodeError(c, "{} (ext id {})".format(name, got))
        payload = d._r.read(length)
        if fn is not None:
            return fn(payload)
        return d._decode_payload(payload, primary)
    return decode_ext_value


# ── Records ──────────────────────────────────────────────────

def _record_encoder(disp: "Dispatcher", cls: type) -> EncodeFunc:
    def encode_dataclass(e: Any, v: Any) -> None:
        encode_record(e, v, disp.fields_for(cls))
    return encode_dataclass


def _record_decoder(disp: "Dispatcher", cls: type) -> DecodeFunc:
    def decode_dataclass(d: Any) -> Any:
        table = disp.fields_for(cls)
        if d._r.peek_byte() == codes.NIL:
            decode_record_into(d, None, table)
            return None
        obj = new_record(cls)
        decode_record_into(d, obj, table)
        return obj
    return decode_dataclass


# ── Dispatcher ───────────────────────────────────────────────

class Dispatcher:
    """Strategy cache for one extension registry.

    Lookups read the cache dicts without locking; misses build under the
    lock and check again before inserting.  Unhashable annotations are
    compiled on every call.
    """

    def __init__(self, registry: Any) -> None:
        self.registry = registry
        self.generation = _generation
        self._encoders: Dict[Any, EncodeFunc] = {}
        self._decoders: Dict[Any, DecodeFunc] = {}
        self._payloads: Dict[Any, DecodeFunc] = {}
        self._fields: Dict[Any, FieldTable] = {}
        self._lock = threading.RLock()

    def encoder_for(self, tp: Any) -> EncodeFunc:
        return self._cached(self._encoders, tp, self._build_encoder)

    def decoder_for(self, tp: Any) -> DecodeFunc:
        return self._cached(self._decoders, tp, self._build_decoder)

    def payload_decoder_for(self, tp: Any) -> DecodeFunc:
        """Decoder for the payload of an ext record holding `tp`."""
        return self._cached(self._payloads, tp,
                            lambda t: self._primary_decoder(t, describe(t)))

    def fields_for(self, tp: Any) -> FieldTable:
        table = self._fields.get(tp)
        if table is None:
            with self._lock:
                table = self._fields.get(tp)
                if table is None:
                    table = build_field_table(tp, self)
                    self._fields[tp] = table
        return table

    def _cached(self, cache: Dict[Any, Any], tp: Any, build: Callable[[Any], Any]) -> Any:
        try:
            fn = cache.get(tp)
        except TypeError:
            return build(tp)
        if fn is None:
            with self._lock:
                fn = cache.get(tp)
                if fn is None:
                    fn = build(tp)
                    cache[tp] = fn
        return fn

    def is_default_record(self, tp: Any) -> bool:
        """True if `tp` is a dataclass handled by the plain record codec."""
        if not isinstance(tp, type) or describe(tp).kind is not Kind.RECORD:
            return False
        if _type_codec(tp) is not None:
            return False
        if issubclass(tp, (CustomEncoder, CustomDecoder, Marshaler, Unmarshaler)):
            return False
        return self.registry.id_for_type(tp) is None

    def _ext_slot(self, shape: Shape):
        cls = shape.tp
        if not isinstance(cls, type):
            return None, None
        ext_id = self.registry.id_for_type(cls)
        if ext_id is None:
            return None, None
        return ext_id, self.registry.lookup(ext_id)

    # ── Encoders ──

    def _build_encoder(self, tp: Any) -> EncodeFunc:
        shape = describe(tp)
        if shape.kind is Kind.OWNED:
            return _owned_encoder(self.encoder_for(shape.args[0]))
        enc = self._primary_encoder(tp, shape)
        ext_id, info = self._ext_slot(shape)
        if info is not None:
            enc = _ext_encoder(ext_id, info.encode, enc)
        logger.debug("compiled encoder for %s (%s)", type_name(tp), shape.kind.value)
        return enc

    def _primary_encoder(self, tp: Any, shape: Shape) -> EncodeFunc:
        cls = shape.tp
        if isinstance(cls, type):
            codec = _type_codec(cls)
            if codec is not None:
                return codec[0]
            if issubclass(cls, CustomEncoder):
                return _encode_custom
            if issubclass(cls, Marshaler):
                return _encode_marshaled

        kind = shape.kind
        if kind is Kind.SEQUENCE:
            elem = shape.args[0]
            if cls is list and elem is str:
                return _encode_string_list
            return _sequence_encoder(self.encoder_for(elem))
        if kind is Kind.ARRAY:
            return _array_encoder(tuple(self.encoder_for(a) for a in shape.args))
        if kind is Kind.MAPPING:
            key, val = shape.args
            if key is str and val is str:
                return _encode_map_str_str
            if key is str and describe(val).kind is Kind.DYNAMIC:
                return _encode_map_str_any
            return _map_encoder(self.encoder_for(key), self.encoder_for(val))
        if kind is Kind.RECORD:
            return _record_encoder(self, cls)
        if kind in (Kind.INT, Kind.UINT):
            return _sized_int_encoder(kind is Kind.INT, shape.width)
        enc = _ENCODERS.get(kind)
        if enc is None:
            return _unsupported_encoder(tp)
        return enc

    # ── Decoders ──

    def _build_decoder(self, tp: Any) -> DecodeFunc:
        shape = describe(tp)
        if shape.kind is Kind.OWNED:
            return _owned_decoder(self.decoder_for(shape.args[0]))
        dec = self._primary_decoder(tp, shape)
        ext_id, info = self._ext_slot(shape)
        if info is not None:
            dec = _ext_decoder(ext_id, info.decode, dec, type_name(tp))
        logger.debug("compiled decoder for %s (%s)", type_name(tp), shape.kind.value)
        return dec

    def _primary_decoder(self, tp: Any, shape: Shape) -> DecodeFunc:
        cls = shape.tp
        if isinstance(cls, type):
            codec = _type_codec(cls)
            if codec is not None:
                return _nil_guarded(codec[1])
            if issubclass(cls, CustomDecoder):
                return functools.partial(_decode_custom, cls)
            if issubclass(cls, Unmarshaler):
                return functools.partial(_decode_marshaled, cls)

        kind = shape.kind
        if kind is Kind.SEQUENCE:
            elem = shape.args[0]
            if cls is list and elem is str:
                return _decode_string_list
            return _sequence_decoder(self.decoder_for(elem), cls)
        if kind is Kind.ARRAY:
            return _array_decoder(tuple(self.decoder_for(a) for a in shape.args), shape.args)
        if kind is Kind.MAPPING:
            key, val = shape.args
            if cls is dict and key is str and val is str:
                return _decode_map_str_str
            if cls is dict and key is str and describe(val).kind is Kind.DYNAMIC:
                return _decode_map_str_any
            return _map_decoder(self.decoder_for(key), self.decoder_for(val), cls)
        if kind is Kind.RECORD:
            return _record_decoder(self, cls)
        if kind in (Kind.INT, Kind.UINT):
            return _sized_int_decoder(kind is Kind.INT, shape.width)
        dec = _DECODERS.get(kind)
        if dec is None:
            return _unsupported_decoder(tp)
        base = _BUILTINS.get(kind)
        if base is not None and isinstance(cls, type) and cls is not base:
            dec = _converting(dec, cls)
        return dec
