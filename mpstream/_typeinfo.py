"""Shape descriptions of Python annotations.

`describe()` reduces an annotation (a class, a typing construct, or one of
the width markers below) to a `Shape`: the kind of value it denotes plus
the pieces the dispatcher needs (element types, integer width).  It also
knows the zero value and the "empty" predicate used by omit-empty.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import enum
import re
import sys
import types
import typing
import weakref
from typing import (Annotated, Any, Dict, NamedTuple, Optional, Tuple, Union,
                    get_args, get_origin)

from ._errors import UnresolvedAnnotationError


class Kind(enum.Enum):
    BOOL = "bool"
    INTEGER = "integer"      # unbounded Python int
    INT = "int"              # signed, fixed width
    UINT = "uint"            # unsigned, fixed width
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    BYTES = "bytes"
    ARRAY = "array"          # fixed-length heterogeneous tuple
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    RECORD = "record"
    DYNAMIC = "dynamic"
    OWNED = "owned"          # Optional[T]
    UNSUPPORTED = "unsupported"


@dataclasses.dataclass(frozen=True)
class IntWidth:
    bits: int
    signed: bool = True


@dataclasses.dataclass(frozen=True)
class FloatWidth:
    bits: int


# ── Width markers ────────────────────────────────────────────

Int8 = Annotated[int, IntWidth(8)]
Int16 = Annotated[int, IntWidth(16)]
Int32 = Annotated[int, IntWidth(32)]
Int64 = Annotated[int, IntWidth(64)]
Uint8 = Annotated[int, IntWidth(8, signed=False)]
Uint16 = Annotated[int, IntWidth(16, signed=False)]
Uint32 = Annotated[int, IntWidth(32, signed=False)]
Uint64 = Annotated[int, IntWidth(64, signed=False)]
Float32 = Annotated[float, FloatWidth(32)]
Float64 = Annotated[float, FloatWidth(64)]


class ExtType(NamedTuple):
    """An extension value kept as raw id + payload."""

    code: int
    data: bytes


@dataclasses.dataclass(frozen=True)
class Shape:
    kind: Kind
    tp: Any = None                 # concrete class, or container factory
    args: Tuple[Any, ...] = ()     # element annotations
    width: int = 0


_UNION_TYPES: Tuple[Any, ...] = (Union,)
if hasattr(types, "UnionType"):
    _UNION_TYPES += (types.UnionType,)

_SEQUENCE_ORIGINS = {
    list: list,
    collections.abc.Sequence: list,
    collections.abc.MutableSequence: list,
    collections.abc.Iterable: list,
    collections.abc.Collection: list,
    set: set,
    collections.abc.Set: set,
    collections.abc.MutableSet: set,
    frozenset: frozenset,
}

_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)

def is_annotation(obj: Any) -> bool:
    """True if `obj` is a class or typing construct rather than a value."""
    if isinstance(obj, type) or obj is Any:
        return True
    return get_origin(obj) is not None or isinstance(obj, typing.TypeVar)


def describe(tp: Any) -> Shape:
    if tp is Any or tp is object or isinstance(tp, typing.TypeVar):
        return Shape(Kind.DYNAMIC)

    origin = get_origin(tp)
    if origin is Annotated:
        base, *meta = get_args(tp)
        for m in meta:
            if isinstance(m, IntWidth):
                return Shape(Kind.INT if m.signed else Kind.UINT, int, width=m.bits)
            if isinstance(m, FloatWidth):
                return Shape(Kind.FLOAT32 if m.bits == 32 else Kind.FLOAT64, float)
        return describe(base)

    if origin in _UNION_TYPES:
        args = get_args(tp)
        rest = [a for a in args if a is not type(None)]
        if len(rest) == 1 and len(rest) < len(args):
            return Shape(Kind.OWNED, args=(rest[0],))
        return Shape(Kind.DYNAMIC)

    if origin is not None:
        args = get_args(tp)
        if origin in _SEQUENCE_ORIGINS:
            return Shape(Kind.SEQUENCE, _SEQUENCE_ORIGINS[origin], (args[0] if args else Any,))
        if origin is tuple:
            if len(args) == 2 and args[1] is Ellipsis:
                return Shape(Kind.SEQUENCE, tuple, (args[0],))
            if args == ((),):
                return Shape(Kind.ARRAY, tuple, ())
            return Shape(Kind.ARRAY, tuple, args)
        if origin in _MAPPING_ORIGINS:
            key, val = args if len(args) == 2 else (Any, Any)
            return Shape(Kind.MAPPING, dict, (key, val))
        if isinstance(origin, type):
            return describe(origin)
        return Shape(Kind.UNSUPPORTED, tp)

    if tp is None or tp is type(None):
        return Shape(Kind.DYNAMIC)
    if not isinstance(tp, type):
        return Shape(Kind.UNSUPPORTED, tp)

    # bool before int: bool is an int subclass.
    if issubclass(tp, bool):
        return Shape(Kind.BOOL, tp)
    if issubclass(tp, int):
        return Shape(Kind.INTEGER, tp)
    if issubclass(tp, float):
        return Shape(Kind.FLOAT64, tp)
    if issubclass(tp, str):
        return Shape(Kind.STRING, tp)
    if issubclass(tp, (bytes, bytearray, memoryview)):
        return Shape(Kind.BYTES, tp)
    if dataclasses.is_dataclass(tp):
        return Shape(Kind.RECORD, tp)
    if issubclass(tp, (list, tuple, set, frozenset)):
        return Shape(Kind.SEQUENCE, tp, (Any,))
    if issubclass(tp, dict):
        return Shape(Kind.MAPPING, tp, (Any, Any))
    return Shape(Kind.UNSUPPORTED, tp)


def type_name(tp: Any) -> str:
    return getattr(tp, "__name__", None) or repr(tp)


# ── Zero and empty values ────────────────────────────────────

def zero_value(tp: Any) -> Any:
    """Value a field of annotation `tp` takes when the wire omits it."""
    shape = describe(tp)
    kind = shape.kind
    if kind is Kind.BOOL:
        return False
    if kind in (Kind.INTEGER, Kind.INT, Kind.UINT):
        return 0
    if kind in (Kind.FLOAT32, Kind.FLOAT64):
        return 0.0
    if kind is Kind.STRING:
        return ""
    if kind is Kind.BYTES:
        return bytearray() if shape.tp is bytearray else b""
    if kind is Kind.SEQUENCE:
        factory = shape.tp if shape.tp in (list, tuple, set, frozenset) else list
        return factory()
    if kind is Kind.MAPPING:
        return {}
    return None


def new_record(tp: Any) -> Any:
    """Instance of dataclass `tp` holding defaults, without running __init__."""
    obj = tp.__new__(tp)
    hints = resolve_hints(tp)
    for f in dataclasses.fields(tp):
        if f.default is not dataclasses.MISSING:
            v = f.default
        elif f.default_factory is not dataclasses.MISSING:
            v = f.default_factory()
        else:
            v = zero_value(hints.get(f.name, Any))
        object.__setattr__(obj, f.name, v)
    return obj


_hints: "weakref.WeakKeyDictionary[type, Dict[str, Any]]" = weakref.WeakKeyDictionary()

_NAME_ERROR = re.compile(r"name '(\w+)' is not defined")


def resolve_hints(tp: Any) -> Dict[str, Any]:
    """Evaluated field annotations of dataclass `tp`.

    String annotations are evaluated against the defining module, then the
    class namespace, then the local scopes of the calling frames, so a
    record defined inside a function resolves while that function runs.
    A name found nowhere raises `UnresolvedAnnotationError`.
    """
    hints = _hints.get(tp)
    if hints is None:
        hints = _resolve(tp)
        _hints[tp] = hints
    return hints


def _resolve(tp: Any) -> Dict[str, Any]:
    fields = dataclasses.fields(tp)
    names = {f.name for f in fields}
    localns = {k: v for k, v in vars(tp).items() if k not in names}
    localns.setdefault(tp.__name__, tp)
    while True:
        try:
            hints = typing.get_type_hints(tp, localns=localns, include_extras=True)
        except NameError as e:
            missing = getattr(e, "name", None)
            if missing is None:
                m = _NAME_ERROR.search(str(e))
                missing = m.group(1) if m else None
            found = _frame_local(missing) if missing and missing not in localns else _NOT_FOUND
            if found is _NOT_FOUND:
                raise UnresolvedAnnotationError(
                    type_name(tp), _field_naming(fields, missing), str(e)) from None
            localns[missing] = found
            continue
        except TypeError as e:
            raise UnresolvedAnnotationError(
                type_name(tp), _field_naming(fields, None), str(e)) from None
        return {f.name: hints.get(f.name, Any) for f in fields}


_NOT_FOUND = object()


def _frame_local(name: str) -> Any:
    frame = sys._getframe(1)
    try:
        while frame is not None:
            if name in frame.f_locals:
                return frame.f_locals[name]
            frame = frame.f_back
        return _NOT_FOUND
    finally:
        del frame


def _field_naming(fields: Tuple[Any, ...], name: Optional[str]) -> str:
    # First field whose string annotation mentions `name`.
    for f in fields:
        if isinstance(f.type, str) and (name is None or re.search(r"\b%s\b" % re.escape(name), f.type)):
            return f.name
    return "?"


def is_empty(v: Any) -> bool:
    """Omit-empty predicate.

    A dataclass is empty only if it has no private fields and every field
    is itself empty.
    """
    if v is None:
        return True
    if isinstance(v, (bool, int, float)):
        return not v
    if dataclasses.is_dataclass(v) and not isinstance(v, type):
        fields = dataclasses.fields(v)
        if any(f.name.startswith("_") for f in fields):
            return False
        return all(is_empty(getattr(v, f.name)) for f in fields)
    try:
        return len(v) == 0
    except TypeError:
        return False


def unwrap_optional(tp: Any) -> Optional[Any]:
    shape = describe(tp)
    if shape.kind is Kind.OWNED:
        return shape.args[0]
    return tp
