"""Struct mapper: dataclass fields <-> MessagePack map entries.

Field options come from dataclass field metadata under the "msgpack" key:

    name: str = field(metadata={"msgpack": "n,omitempty"})

The tag is ``name[,option...]``.  An empty name keeps the attribute name,
``-`` drops the field.  Options are ``omitempty``, ``intern`` and
``inline``.  The record itself may carry ``__msgpack__ = ",asArray"``
(encode as a positional array) or ``",omitempty"`` (every field
omit-empty).

Inlining splices the fields of a nested dataclass into the outer record.
It applies to fields tagged ``inline`` and to private (underscore) fields
holding a dataclass, but only when that dataclass would otherwise use the
default record codec.  Outer fields shadow inlined ones of the same name.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Dict, FrozenSet, List, Tuple

from . import _codes as codes
from ._errors import InvalidCodeError, MissingRequiredFieldError
from ._intern import (
    decode_interned_any,
    decode_interned_str_value,
    encode_interned_any,
    encode_interned_str_value,
)
from ._typeinfo import Kind, describe, is_empty, new_record, resolve_hints, type_name, unwrap_optional

logger = logging.getLogger(__name__)

TAG_KEY: str = "msgpack"
RECORD_TAG_ATTR: str = "__msgpack__"

# Value of a field reached through an inlined record that is None.
ABSENT = object()


def parse_tag(tag: str) -> Tuple[str, FrozenSet[str]]:
    name, _, rest = (tag or "").partition(",")
    opts = frozenset(o.strip() for o in rest.split(",") if o.strip())
    return name.strip(), opts


@dataclasses.dataclass(frozen=True)
class Field:
    name: str
    path: Tuple[str, ...]          # attribute names from the outer record
    holders: Tuple[Any, ...]       # dataclasses along the path, one per hop
    omit_empty: bool
    intern: bool
    encoder: Callable[[Any, Any], None]
    decoder: Callable[[Any], Any]

    def value(self, obj: Any) -> Any:
        for attr in self.path:
            if obj is None:
                return ABSENT
            obj = getattr(obj, attr)
        return obj

    def decode_into(self, d: Any, obj: Any) -> None:
        target = obj
        for attr, holder in zip(self.path, self.holders):
            nxt = getattr(target, attr)
            if nxt is None:
                nxt = new_record(holder)
                object.__setattr__(target, attr, nxt)
            target = nxt
        object.__setattr__(target, self.path[-1], self.decoder(d))


class FieldTable:
    def __init__(self, record: Any, as_array: bool) -> None:
        self.record = record
        self.name = type_name(record)
        self.as_array = as_array
        self.fields: List[Field] = []
        self.index: Dict[str, Field] = {}
        self.required: List[Field] = []

    def add(self, f: Field) -> None:
        self.fields.append(f)
        self.index[f.name] = f
        if not f.omit_empty:
            self.required.append(f)


# ── Table construction ───────────────────────────────────────

def build_field_table(tp: Any, disp: Any) -> FieldTable:
    _, rec_opts = parse_tag(getattr(tp, RECORD_TAG_ATTR, ""))
    as_array = "asArray" in rec_opts or "as_array" in rec_opts
    omit_all = "omitempty" in rec_opts
    hints = resolve_hints(tp)

    plan = []
    direct = set()
    for f in dataclasses.fields(tp):
        name, opts = parse_tag(f.metadata.get(TAG_KEY, ""))
        if name == "-":
            continue
        ftp = hints.get(f.name, Any)
        private = f.name.startswith("_")
        if "inline" in opts or private:
            inner = unwrap_optional(ftp)
            if inner is not tp and disp.is_default_record(inner):
                plan.append((f.name, None, inner, opts))
                continue
            if private:
                continue
        name = name or f.name
        direct.add(name)
        plan.append((f.name, name, ftp, opts))

    table = FieldTable(tp, as_array)
    for attr, name, ftp, opts in plan:
        if name is None:
            for g in disp.fields_for(ftp).fields:
                if g.name in direct or g.name in table.index:
                    logger.debug("%s: inlined field %r shadowed by outer field",
                                 table.name, g.name)
                    continue
                table.add(dataclasses.replace(
                    g,
                    path=(attr,) + g.path,
                    holders=(ftp,) + g.holders,
                    omit_empty=g.omit_empty or omit_all,
                ))
            continue
        enc, dec = _field_strategies(disp, ftp, "intern" in opts)
        table.add(Field(
            name=name,
            path=(attr,),
            holders=(),
            omit_empty=omit_all or "omitempty" in opts,
            intern="intern" in opts,
            encoder=enc,
            decoder=dec,
        ))

    logger.debug("field table for %s: %d fields%s", table.name,
                 len(table.fields), " (as array)" if as_array else "")
    return table


def _field_strategies(disp: Any, ftp: Any, intern: bool):
    enc, dec = disp.encoder_for(ftp), disp.decoder_for(ftp)
    if not intern:
        return enc, dec
    shape = describe(ftp)
    optional = shape.kind is Kind.OWNED
    kind = describe(shape.args[0]).kind if optional else shape.kind
    if kind is Kind.STRING:
        enc, dec = encode_interned_str_value, decode_interned_str_value
        if optional:
            dec = _nil_or(dec)
    elif kind is Kind.DYNAMIC:
        enc, dec = encode_interned_any, decode_interned_any
    return enc, dec


def _nil_or(dec: Callable[[Any], Any]) -> Callable[[Any], Any]:
    def decode_optional(d: Any) -> Any:
        if d._r.peek_byte() == codes.NIL:
            d._r.read_byte()
            return None
        return dec(d)
    return decode_optional


# ── Record codec ─────────────────────────────────────────────

def encode_record(e: Any, obj: Any, table: FieldTable) -> None:
    if table.as_array:
        e.encode_array_len(len(table.fields))
        for f in table.fields:
            v = f.value(obj)
            if v is None or v is ABSENT:
                e.encode_nil()
            else:
                f.encoder(e, v)
        return

    omit_all = e.omit_empty_default
    pairs = []
    for f in table.fields:
        v = f.value(obj)
        if v is ABSENT:
            continue
        if (omit_all or f.omit_empty) and is_empty(v):
            continue
        pairs.append((f, v))

    e.encode_map_len(len(pairs))
    for f, v in pairs:
        e.encode_string(f.name)
        if v is None:
            e.encode_nil()
        else:
            f.encoder(e, v)


def decode_record_into(d: Any, obj: Any, table: FieldTable) -> None:
    """Fill `obj` from the next value, a map or a positional array."""
    strict = d.strict_mode and not d.omit_empty_default and bool(table.required)
    c = d._r.read_byte()
    if c == codes.NIL:
        if strict:
            raise MissingRequiredFieldError(table.name, table.required[0].name)
        return

    if codes.is_array(c):
        n = d._array_len_from_code(c)
        fields = table.fields
        for i in range(n):
            if i < len(fields):
                fields[i].decode_into(d, obj)
            else:
                d.skip()
        if strict:
            for f in fields[n:]:
                if not f.omit_empty:
                    raise MissingRequiredFieldError(table.name, f.name)
        return

    if not codes.is_map(c):
        raise InvalidCodeError(c, table.name)
    n = d._map_len_from_code(c)
    seen = set()
    for _ in range(n):
        name = d.decode_string()
        f = table.index.get(name)
        if f is None:
            d.skip()
            continue
        f.decode_into(d, obj)
        seen.add(name)
    if strict:
        for f in table.required:
            if f.name not in seen:
                raise MissingRequiredFieldError(table.name, f.name)
