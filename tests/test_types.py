"""Shape dispatcher tests: annotations, containers, custom codecs."""

from __future__ import annotations

import enum
import os
import sys
import threading
import unittest
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from mpstream import (
    ERR_UNSUPPORTED,
    Decoder,
    Encoder,
    Float32,
    Int8,
    Int16,
    Uint8,
    UnsupportedTypeError,
    ValueOverflowError,
    default_registry,
    dumps,
    loads,
    register_type,
)


def encode_as(value, tp) -> bytes:
    e = Encoder()
    e.encode_value(value, tp)
    return e.getvalue()


def decode_as(data: bytes, tp):
    return Decoder(data).decode(tp)


class Color(enum.IntEnum):
    RED = 1
    GREEN = 2


class Mode(str, enum.Enum):
    FAST = "fast"
    SAFE = "safe"


class Celsius:
    """Custom codec: writes itself as a bare float64."""

    def __init__(self, deg: float = 0.0) -> None:
        self.deg = deg

    def __eq__(self, other):
        return isinstance(other, Celsius) and other.deg == self.deg

    def __msgpack_encode__(self, encoder) -> None:
        encoder.encode_float64(self.deg)

    def __msgpack_decode__(self, decoder) -> None:
        self.deg = decoder.decode_float64()


class Pair:
    """Marshal protocol: round-trips through a two-element array."""

    def __init__(self, a: int = 0, b: str = "") -> None:
        self.a = a
        self.b = b

    def __eq__(self, other):
        return isinstance(other, Pair) and (other.a, other.b) == (self.a, self.b)

    def __msgpack_marshal__(self) -> bytes:
        return dumps([self.a, self.b])

    def __msgpack_unmarshal__(self, data: bytes) -> None:
        self.a, self.b = loads(data)


class Money:
    def __init__(self, cents: int) -> None:
        self.cents = cents


def _encode_money(e, v: Money) -> None:
    e.encode_string("{}c".format(v.cents))


def _decode_money(d) -> Money:
    return Money(int(d.decode_string()[:-1]))


register_type(Money, _encode_money, _decode_money)


# ── Width markers ─────────────────────────────────────────────

class TestWidthMarkers(unittest.TestCase):
    def test_int16_marker(self):
        self.assertEqual(encode_as(200, Int16).hex(), "d100c8")
        self.assertEqual(encode_as(5, Int16).hex(), "05")

    def test_int8_overflow(self):
        with self.assertRaises(ValueOverflowError):
            encode_as(300, Int8)
        with self.assertRaises(ValueOverflowError):
            decode_as(bytes.fromhex("cd0100"), Int8)

    def test_uint8(self):
        self.assertEqual(encode_as(200, Uint8).hex(), "ccc8")
        with self.assertRaises(ValueOverflowError):
            encode_as(-1, Uint8)

    def test_float32_marker(self):
        data = encode_as(1.5, Float32)
        self.assertEqual(data.hex(), "ca3fc00000")
        self.assertEqual(decode_as(data, Float32), 1.5)

    def test_plain_int(self):
        self.assertEqual(encode_as(200, int).hex(), "ccc8")
        self.assertEqual(decode_as(bytes.fromhex("cf" + "ff" * 8), int), 2**64 - 1)


# ── Scalars and nil ───────────────────────────────────────────

class TestScalars(unittest.TestCase):
    def test_nil_into_scalars_is_zero(self):
        self.assertEqual(decode_as(b"\xc0", int), 0)
        self.assertEqual(decode_as(b"\xc0", float), 0.0)
        self.assertEqual(decode_as(b"\xc0", str), "")
        self.assertIs(decode_as(b"\xc0", bool), False)

    def test_nil_into_containers_is_none(self):
        self.assertIsNone(decode_as(b"\xc0", List[int]))
        self.assertIsNone(decode_as(b"\xc0", Dict[str, int]))
        self.assertIsNone(decode_as(b"\xc0", Optional[int]))
        self.assertIsNone(decode_as(b"\xc0", bytes))

    def test_optional(self):
        self.assertEqual(encode_as(None, Optional[int]), b"\xc0")
        self.assertEqual(decode_as(b"\x05", Optional[int]), 5)

    def test_int_enum(self):
        data = dumps(Color.GREEN)
        self.assertEqual(data, b"\x02")
        self.assertIs(decode_as(data, Color), Color.GREEN)

    def test_str_enum(self):
        data = dumps(Mode.SAFE)
        self.assertEqual(loads(data), "safe")
        self.assertIs(decode_as(data, Mode), Mode.SAFE)

    def test_bytearray_target(self):
        v = decode_as(dumps(b"ab"), bytearray)
        self.assertIsInstance(v, bytearray)
        self.assertEqual(v, bytearray(b"ab"))


# ── Containers ────────────────────────────────────────────────

class TestContainers(unittest.TestCase):
    def test_list_of_int(self):
        data = encode_as([1, 2, 300], List[int])
        self.assertEqual(data.hex(), "930102cd012c")
        self.assertEqual(decode_as(data, List[int]), [1, 2, 300])

    def test_string_list(self):
        data = encode_as(["a", "bc"], List[str])
        self.assertEqual(data.hex(), "92a161a26263")
        self.assertEqual(decode_as(data, List[str]), ["a", "bc"])

    def test_sequence_annotation(self):
        self.assertEqual(decode_as(dumps([1, 2]), Sequence[int]), [1, 2])

    def test_variadic_tuple(self):
        self.assertEqual(decode_as(dumps([1, 2, 3]), Tuple[int, ...]), (1, 2, 3))

    def test_fixed_tuple(self):
        data = encode_as((1, "x"), Tuple[int, str])
        self.assertEqual(data.hex(), "9201a178")
        self.assertEqual(decode_as(data, Tuple[int, str]), (1, "x"))

    def test_fixed_tuple_short_and_long(self):
        self.assertEqual(decode_as(dumps([7]), Tuple[int, str]), (7, ""))
        self.assertEqual(decode_as(dumps([7, "a", 9]), Tuple[int, str]), (7, "a"))

    def test_fixed_tuple_wrong_length(self):
        for v in ((1,), (1, "x", 2)):
            e = Encoder()
            with self.assertRaises(ValueOverflowError) as ctx:
                e.encode_value(v, Tuple[int, str])
            self.assertEqual(ctx.exception.type_name, "tuple[2]")
            self.assertEqual(e.getvalue(), b"")

    def test_sets(self):
        self.assertEqual(decode_as(dumps([3, 1, 3]), Set[int]), {1, 3})
        self.assertEqual(decode_as(dumps([1]), FrozenSet[int]), frozenset({1}))
        self.assertEqual(loads(dumps({5})), [5])

    def test_dict_str_str(self):
        data = encode_as({"a": "b"}, Dict[str, str])
        self.assertEqual(data.hex(), "81a161a162")
        self.assertEqual(decode_as(data, Dict[str, str]), {"a": "b"})

    def test_dict_str_any(self):
        v = {"a": [1, {"b": None}], "c": 1.5}
        self.assertEqual(decode_as(encode_as(v, Dict[str, Any]), Dict[str, Any]), v)

    def test_dict_int_keys(self):
        data = encode_as({1: "one", -2: "minus two"}, Dict[int, str])
        self.assertEqual(decode_as(data, Dict[int, str]), {1: "one", -2: "minus two"})

    def test_nested(self):
        v = {"rows": [[1, 2], [3]]}
        tp = Dict[str, List[List[int]]]
        self.assertEqual(decode_as(encode_as(v, tp), tp), v)

    def test_none_elements(self):
        self.assertEqual(encode_as([1, None], List[int]).hex(), "9201c0")
        self.assertEqual(decode_as(b"\x92\x01\xc0", List[Optional[int]]), [1, None])


# ── Unsupported shapes ────────────────────────────────────────

class TestUnsupported(unittest.TestCase):
    def test_encode_complex(self):
        with self.assertRaises(UnsupportedTypeError) as ctx:
            dumps(1 + 2j)
        self.assertEqual(ctx.exception.err, ERR_UNSUPPORTED)
        self.assertTrue(ctx.exception.encoding)
        self.assertIn("complex", str(ctx.exception))

    def test_decode_complex(self):
        with self.assertRaises(UnsupportedTypeError) as ctx:
            decode_as(b"\x01", complex)
        self.assertFalse(ctx.exception.encoding)

    def test_encode_function(self):
        with self.assertRaises(UnsupportedTypeError):
            dumps(len)
        with self.assertRaises(UnsupportedTypeError):
            dumps(lambda: None)

    def test_encode_bare_object(self):
        with self.assertRaises(UnsupportedTypeError):
            dumps(object())

    def test_encode_plain_class(self):
        class Opaque:
            pass
        with self.assertRaises(UnsupportedTypeError):
            dumps(Opaque())


# ── Custom codecs ─────────────────────────────────────────────

class TestCustomCodec(unittest.TestCase):
    def test_custom_encode(self):
        self.assertEqual(dumps(Celsius(1.5)).hex(), "cb3ff8000000000000")

    def test_custom_decode(self):
        self.assertEqual(loads(dumps(Celsius(21.5)), Celsius), Celsius(21.5))

    def test_custom_decode_into_instance(self):
        target = Celsius()
        out = Decoder(dumps(Celsius(3.0))).decode(target)
        self.assertIs(out, target)
        self.assertEqual(target.deg, 3.0)

    def test_custom_nil(self):
        self.assertIsNone(loads(b"\xc0", Celsius))

    def test_custom_in_container(self):
        v = {"t": [Celsius(1.0), Celsius(2.0)]}
        self.assertEqual(loads(dumps(v), Dict[str, List[Celsius]]), v)

    def test_marshal(self):
        data = dumps([Pair(1, "x")])
        self.assertEqual(data.hex(), "919201a178")
        self.assertEqual(loads(data, List[Pair]), [Pair(1, "x")])

    def test_registered_type_codec(self):
        data = dumps(Money(1250))
        self.assertEqual(data, b"\xa51250c")
        self.assertEqual(loads(data, Money).cents, 1250)
        self.assertIsNone(loads(b"\xc0", Money))


# ── Caching ───────────────────────────────────────────────────

class TestStrategyCache(unittest.TestCase):
    def test_memoized(self):
        disp = default_registry.dispatcher
        self.assertIs(disp.encoder_for(List[int]), disp.encoder_for(List[int]))
        self.assertIs(disp.decoder_for(Dict[str, int]), disp.decoder_for(Dict[str, int]))

    def test_concurrent_first_use(self):
        tp = Dict[str, List[Tuple[int, str]]]
        value = {"k": [(1, "a"), (2, "b")]}
        expected = encode_as(value, tp)
        results = []
        errors = []

        def work():
            try:
                for _ in range(50):
                    results.append(decode_as(encode_as(value, tp), tp))
            except Exception as e:  # surfaced in the main thread below
                errors.append(e)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        self.assertEqual(errors, [])
        self.assertEqual(len(results), 400)
        self.assertTrue(all(r == value for r in results))
        self.assertEqual(encode_as(value, tp), expected)


if __name__ == "__main__":
    unittest.main()
