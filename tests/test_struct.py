"""Struct mapper tests: dataclass fields as MessagePack maps and arrays."""

from __future__ import annotations

import os
import sys
import unittest
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from mpstream import (
    ERR_ANNOTATION,
    ERR_MISSING_FIELD,
    Decoder,
    Encoder,
    Int8,
    InvalidCodeError,
    MissingRequiredFieldError,
    UnresolvedAnnotationError,
    ValueOverflowError,
    dumps,
    loads,
)
from mpstream._typeinfo import is_empty


def omitempty(default: Any = "") -> Any:
    return field(default=default, metadata={"msgpack": ",omitempty"})


@dataclass
class Simple:
    Foo: str = ""


@dataclass
class OmitEmptyTest:
    Foo: str = omitempty()
    Bar: str = omitempty()


@dataclass
class InlineTest:
    inner: Optional[OmitEmptyTest] = field(default=None, metadata={"msgpack": ",inline"})


@dataclass
class AsArrayTest:
    __msgpack__ = ",asArray"
    inner: OmitEmptyTest = field(default_factory=OmitEmptyTest, metadata={"msgpack": ",inline"})


@dataclass
class Base:
    name: str = ""
    id: int = 0


@dataclass
class Derived:
    base: Base = field(default_factory=Base, metadata={"msgpack": ",inline"})
    name: str = ""


@dataclass
class WithPrivate:
    _meta: Base = field(default_factory=Base)
    _cache: int = 0
    value: int = 0


@dataclass
class Tagged:
    label: str = field(default="", metadata={"msgpack": "l"})
    secret: str = field(default="", metadata={"msgpack": "-"})
    count: int = 0


@dataclass
class Required:
    a: int = 0
    b: str = omitempty()


@dataclass
class Point:
    __msgpack__ = "as_array"
    x: int = 0
    y: int = 0


@dataclass
class Node:
    value: int = 0
    children: List[Node] = field(default_factory=list)
    parent: Optional[Node] = None


@dataclass
class Event:
    name: str
    at: datetime
    attrs: Dict[str, Any] = field(default_factory=dict)
    level: Int8 = 0


@dataclass(frozen=True)
class Frozen:
    a: int = 0
    b: str = ""


@dataclass
class AllOmit:
    __msgpack__ = ",omitempty"
    a: int = 0
    b: List[int] = field(default_factory=list)


@dataclass
class Holder:
    inner: Base = field(default_factory=Base, metadata={"msgpack": ",omitempty"})
    priv: WithPrivate = field(default_factory=WithPrivate, metadata={"msgpack": ",omitempty"})


@dataclass
class HasPair:
    pt: Tuple[int, int] = (0, 0)
    name: str = ""


# ── Encoding ──────────────────────────────────────────────────

class TestRecordEncoding(unittest.TestCase):
    def test_simple_record(self):
        self.assertEqual(dumps(Simple(Foo="bar")).hex(), "81a3466f6fa3626172")

    def test_omit_empty(self):
        self.assertEqual(dumps(OmitEmptyTest()).hex(), "80")
        self.assertEqual(dumps(OmitEmptyTest(Foo="hello")).hex(),
                         "81a3466f6fa568656c6c6f")

    def test_inline(self):
        v = InlineTest(inner=OmitEmptyTest(Bar="world"))
        self.assertEqual(dumps(v).hex(), "81a3426172a5776f726c64")

    def test_inline_none_is_omitted(self):
        self.assertEqual(dumps(InlineTest()).hex(), "80")

    def test_as_array_emits_every_field(self):
        self.assertEqual(dumps(AsArrayTest()).hex(), "92a0a0")

    def test_as_array_alias(self):
        self.assertEqual(dumps(Point(1, 2)).hex(), "920102")

    def test_rename_and_exclude(self):
        data = dumps(Tagged(label="x", secret="s", count=2))
        self.assertEqual(loads(data), {"l": "x", "count": 2})

    def test_outer_field_shadows_inlined(self):
        v = Derived(base=Base(name="inner", id=7), name="outer")
        self.assertEqual(loads(dumps(v)), {"id": 7, "name": "outer"})

    def test_private_record_is_inlined(self):
        v = WithPrivate(_meta=Base(name="n", id=1), _cache=99, value=3)
        self.assertEqual(loads(dumps(v)), {"name": "n", "id": 1, "value": 3})

    def test_omit_empty_default(self):
        e = Encoder(omit_empty_default=True)
        e.encode(Simple())
        self.assertEqual(e.getvalue(), b"\x80")

    def test_record_level_omitempty(self):
        self.assertEqual(dumps(AllOmit()), b"\x80")
        self.assertEqual(loads(dumps(AllOmit(b=[1]))), {"b": [1]})

    def test_nested_record_emptiness(self):
        # Base() is empty; WithPrivate() has private fields, never empty.
        self.assertTrue(is_empty(Base()))
        self.assertFalse(is_empty(WithPrivate()))
        self.assertEqual(list(loads(dumps(Holder()))), ["priv"])

    def test_width_marker_field(self):
        with self.assertRaises(ValueOverflowError):
            dumps(Event(name="e", at=datetime.now(timezone.utc), level=200))


# ── Decoding ──────────────────────────────────────────────────

class TestRecordDecoding(unittest.TestCase):
    def test_round_trip(self):
        v = Event(name="deploy", at=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
                  attrs={"env": "prod", "replicas": 3}, level=-5)
        self.assertEqual(loads(dumps(v), Event), v)

    def test_field_order_independent(self):
        a = dumps({"x": 1, "y": 2})
        b = dumps({"y": 2, "x": 1})
        self.assertEqual(loads(a, Point), loads(b, Point))
        self.assertEqual(loads(a, Point), Point(1, 2))

    def test_unknown_fields_skipped(self):
        data = dumps({"extra": [1, {"deep": b"x"}], "Foo": "bar", "more": None})
        self.assertEqual(loads(data, Simple), Simple(Foo="bar"))

    def test_missing_fields_keep_defaults(self):
        @dataclass
        class Defaults:
            a: int = 5
            b: List[int] = field(default_factory=lambda: [1])
        self.assertEqual(loads(b"\x80", Defaults), Defaults())

    def test_array_form_accepted_for_any_record(self):
        data = bytes.fromhex("92a178a179")
        self.assertEqual(loads(data, OmitEmptyTest), OmitEmptyTest(Foo="x", Bar="y"))

    def test_array_surplus_skipped(self):
        self.assertEqual(loads(dumps([1, 2, [3, 4]]), Point), Point(1, 2))

    def test_as_array_round_trip(self):
        self.assertEqual(loads(dumps(Point(-3, 400)), Point), Point(-3, 400))

    def test_inline_decode_creates_embedded(self):
        v = loads(bytes.fromhex("81a3426172a5776f726c64"), InlineTest)
        self.assertEqual(v, InlineTest(inner=OmitEmptyTest(Bar="world")))

    def test_private_embedded_round_trip(self):
        v = WithPrivate(_meta=Base(name="n", id=1), value=3)
        self.assertEqual(loads(dumps(v), WithPrivate), v)

    def test_recursive_record(self):
        tree = Node(1, [Node(2), Node(3, [Node(4)])])
        self.assertEqual(loads(dumps(tree), Node), tree)

    def test_nil_record(self):
        self.assertIsNone(loads(b"\xc0", Simple))

    def test_not_a_map(self):
        with self.assertRaises(InvalidCodeError):
            loads(b"\xa1x", Simple)

    def test_decode_into_instance(self):
        target = Simple(Foo="old")
        out = Decoder(dumps(Simple(Foo="new"))).decode(target)
        self.assertIs(out, target)
        self.assertEqual(target.Foo, "new")

    def test_decode_into_keeps_absent_fields(self):
        target = Base(name="keep", id=1)
        Decoder(dumps({"id": 9})).decode(target)
        self.assertEqual(target, Base(name="keep", id=9))

    def test_frozen_dataclass(self):
        self.assertEqual(loads(dumps(Frozen(1, "z")), Frozen), Frozen(1, "z"))

    def test_required_field_without_default(self):
        v = loads(dumps({"name": "x"}), Event)
        self.assertEqual(v.name, "x")
        self.assertIsNone(v.at)
        self.assertEqual(v.level, 0)


# ── Strict mode ───────────────────────────────────────────────

class TestStrictMode(unittest.TestCase):
    def test_missing_required(self):
        with self.assertRaises(MissingRequiredFieldError) as ctx:
            loads(dumps({"b": "x"}), Required, strict_mode=True)
        self.assertEqual(ctx.exception.err, ERR_MISSING_FIELD)
        self.assertEqual(ctx.exception.name, "a")
        self.assertEqual(ctx.exception.record, "Required")

    def test_optional_fields_may_be_absent(self):
        self.assertEqual(loads(dumps({"a": 1}), Required, strict_mode=True), Required(a=1))

    def test_lenient_by_default(self):
        self.assertEqual(loads(dumps({"b": "x"}), Required), Required(b="x"))

    def test_nil_with_required_fields(self):
        with self.assertRaises(MissingRequiredFieldError):
            loads(b"\xc0", Required, strict_mode=True)

    def test_short_array(self):
        with self.assertRaises(MissingRequiredFieldError) as ctx:
            loads(dumps([1]), Point, strict_mode=True)
        self.assertEqual(ctx.exception.name, "y")

    def test_omit_empty_default_relaxes(self):
        v = loads(dumps({"b": "x"}), Required, strict_mode=True, omit_empty_default=True)
        self.assertEqual(v, Required(b="x"))

    def test_inlined_fields_are_required(self):
        with self.assertRaises(MissingRequiredFieldError) as ctx:
            loads(dumps({"name": "outer"}), Derived, strict_mode=True)
        self.assertEqual(ctx.exception.name, "id")


# ── Annotation resolution ─────────────────────────────────────

class TestAnnotations(unittest.TestCase):
    def test_local_records_resolve(self):
        @dataclass
        class Inner:
            n: int = 0

        @dataclass
        class Outer:
            a: Int8 = 0
            inner: Optional[Inner] = None

        v = Outer(1, Inner(2))
        self.assertEqual(loads(dumps(v), Outer), v)
        with self.assertRaises(ValueOverflowError):
            dumps(Outer(1000, Inner(2)))

    def test_unresolvable_annotation(self):
        @dataclass
        class Broken:
            a: int = 0
            b: Missing = None  # noqa: F821

        with self.assertRaises(UnresolvedAnnotationError) as ctx:
            dumps(Broken())
        self.assertEqual(ctx.exception.err, ERR_ANNOTATION)
        self.assertEqual(ctx.exception.record, "Broken")
        self.assertEqual(ctx.exception.name, "b")
        self.assertIsInstance(ctx.exception, TypeError)
        with self.assertRaises(UnresolvedAnnotationError):
            loads(dumps({"a": 1}), Broken)

    def test_tuple_field_wrong_length(self):
        with self.assertRaises(ValueOverflowError):
            dumps(HasPair((1,), "x"))
        self.assertEqual(loads(dumps(HasPair((1, 2), "x")), HasPair), HasPair((1, 2), "x"))


if __name__ == "__main__":
    unittest.main()
