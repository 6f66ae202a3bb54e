#!/usr/bin/env python3
# tools/invariants_runner.py
#
# Codec invariants (property tests) for mpstream.
#
# This runner:
# - generates random dynamic values (maps, arrays, strings, bytes, ints, floats, bools, nil)
# - checks encode/decode invariants against the Python package
#
# Exit code:
#   0 -> all checks passed
#   1 -> invariant violation

import os, sys, json, random
from typing import Any, Dict, List

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT)

from mpstream import Decoder, Encoder, sort_byte_keys

SEED = int(os.environ.get("MP_SEED", "1337"))
TRIALS = int(os.environ.get("MP_TRIALS", "2000"))
MAX_GEN_DEPTH = int(os.environ.get("MP_GEN_MAX_DEPTH", "5"))
MAX_KEYS = int(os.environ.get("MP_GEN_MAX_KEYS", "6"))
MAX_LIST = int(os.environ.get("MP_GEN_MAX_LIST", "6"))
MAX_STR = int(os.environ.get("MP_GEN_MAX_STR", "24"))
MAX_BYTES = int(os.environ.get("MP_GEN_MAX_BYTES", "32"))

random.seed(SEED)

# Interesting integer boundaries: every width switch in the code table.
INT_EDGES = [0, 1, 127, 128, 255, 256, 65535, 65536, 2**32 - 1, 2**32, 2**64 - 1,
             -1, -32, -33, -128, -129, -32768, -32769, -(2**31), -(2**31) - 1, -(2**63)]

def rand_utf8_string() -> str:
    # Generate scalars excluding surrogate range; include tricky chars occasionally.
    out = []
    n = random.randint(0, MAX_STR)
    for _ in range(n):
        r = random.random()
        if r < 0.70:
            out.append(chr(random.randint(0x20, 0x7E)))
        elif r < 0.85:
            out.append(chr(random.randint(0xA0, 0xFF)))
        elif r < 0.95:
            out.append(chr(random.randint(0x0100, 0xD7FF)))
        else:
            out.append(chr(random.randint(0x10000, 0x10FFFF)))
    return "".join(out)

def rand_bytes() -> bytes:
    return bytes(random.getrandbits(8) for _ in range(random.randint(0, MAX_BYTES)))

def rand_int() -> int:
    if random.random() < 0.5:
        return random.choice(INT_EDGES)
    return random.randint(-(2**63), 2**64 - 1)

def rand_float() -> float:
    # Finite only; NaN never compares equal to itself.
    return random.choice([0.0, -0.0, 1.5, 1e300, -2.5e-300, random.uniform(-1e9, 1e9)])

def gen_scalar() -> Any:
    r = random.random()
    if r < 0.35:
        return rand_utf8_string()
    if r < 0.50:
        return rand_bytes()
    if r < 0.75:
        return rand_int()
    if r < 0.88:
        return rand_float()
    if r < 0.95:
        return random.random() < 0.5
    return None

def gen_value(depth: int) -> Any:
    if depth >= MAX_GEN_DEPTH:
        return gen_scalar()
    r = random.random()
    if r < 0.35:
        n = random.randint(0, MAX_KEYS)
        d: Dict[Any, Any] = {}
        for _ in range(n):
            k = rand_utf8_string() if random.random() < 0.85 else rand_int()
            d[k] = gen_value(depth + 1)
        return d
    if r < 0.60:
        n = random.randint(0, MAX_LIST)
        return [gen_value(depth + 1) for _ in range(n)]
    return gen_scalar()

def encode(v: Any, **options: Any) -> bytes:
    e = Encoder(**options)
    e.encode(v)
    return e.getvalue()

def shuffled(v: Any) -> Any:
    # Same value, with every str-keyed map rebuilt in a random insertion order.
    # Maps holding other keys are never sorted, so their order is kept.
    if isinstance(v, dict):
        items = list(v.items())
        if all(isinstance(k, str) for k in v):
            random.shuffle(items)
        return {k: shuffled(x) for k, x in items}
    if isinstance(v, list):
        return [shuffled(x) for x in v]
    return v

def fail(label: str, context: Dict[str, Any]) -> int:
    print("INVARIANT FAIL:", label)
    print("CTX:", json.dumps(context, ensure_ascii=False, default=repr)[:2000])
    return 1

def main() -> int:
    for t in range(TRIALS):
        v = gen_value(0)
        data = encode(v)

        # (1) Round trip through the dynamic decoder
        if Decoder(data).decode() != v:
            return fail("round trip", {"trial": t, "hex": data.hex()})

        # (2) Sorted encoding is independent of map insertion order
        s1 = encode(v, sort_map_keys=True)
        s2 = encode(shuffled(v), sort_map_keys=True)
        if s1 != s2:
            return fail("sorted encoding determinism", {"trial": t})

        # (3) Skip consumes exactly one value; decode_raw returns its bytes
        d = Decoder(data + data + b"\x2a")
        d.skip()
        raw = d.decode_raw()
        if raw != data or d.decode() != 0x2a:
            return fail("skip soundness", {"trial": t, "hex": data.hex()})

        # (4) Interned streams decode back to the same value
        interned = encode(v, use_interned_strings=True)
        if Decoder(interned, use_interned_strings=True).decode() != v:
            return fail("intern symmetry", {"trial": t, "hex": interned.hex()})
        if len(interned) > len(data):
            return fail("interning grew the encoding", {"trial": t})

        # (5) Key sort agrees with Python's bytes ordering
        keys: List[bytes] = [os.urandom(random.randint(0, 4)) for _ in range(random.randint(0, 64))]
        expected = sorted(keys)
        sort_byte_keys(keys)
        if keys != expected:
            return fail("key sort order", {"trial": t})

    print(f"OK: invariants passed for TRIALS={TRIALS} seed={SEED}")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
