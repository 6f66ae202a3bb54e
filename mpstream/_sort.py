"""Deterministic map-key ordering.

Keys are compared as unsigned byte strings (memcmp order), which for UTF-8
is also code-point order.  The sort is an introsort: quicksort with a
median-of-three pivot (Tukey's ninther on large ranges), insertion sort
for short ranges, and a heapsort fallback once recursion gets too deep.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Tuple

# Ranges at or below this size are finished with insertion sort.
_SMALL: int = 12
# Ranges above this size pick the pivot with Tukey's ninther.
_NINTHER: int = 40


def sort_byte_keys(keys: List[bytes]) -> None:
    """Sort a list of byte strings in place, byte-lexicographically."""
    n = len(keys)
    _quick_sort(keys, 0, n, _max_depth(n))


def sorted_items(m: Mapping[Any, Any]) -> List[Tuple[Any, Any]]:
    """Items of `m` in key order when every key is a str.

    Maps with any non-str key keep their iteration order.  Distinct keys
    with the same encoded bytes stay adjacent, in iteration order.
    """
    by_raw: Dict[bytes, List[str]] = {}
    for k in m:
        if not isinstance(k, str):
            return list(m.items())
        by_raw.setdefault(k.encode("utf-8", "surrogateescape"), []).append(k)
    raw = list(by_raw)
    sort_byte_keys(raw)
    return [(k, m[k]) for r in raw for k in by_raw[r]]


def _max_depth(n: int) -> int:
    # 2 * ceil(lg(n+1))
    depth = 0
    i = n
    while i > 0:
        depth += 1
        i >>= 1
    return depth * 2


def _insertion_sort(a: List[bytes], lo: int, hi: int) -> None:
    for i in range(lo + 1, hi):
        j = i
        while j > lo and a[j] < a[j - 1]:
            a[j], a[j - 1] = a[j - 1], a[j]
            j -= 1


def _sift_down(a: List[bytes], lo: int, hi: int, first: int) -> None:
    root = lo
    while True:
        child = 2 * root + 1
        if child >= hi:
            return
        if child + 1 < hi and a[first + child] < a[first + child + 1]:
            child += 1
        if not a[first + root] < a[first + child]:
            return
        a[first + root], a[first + child] = a[first + child], a[first + root]
        root = child


def _heap_sort(a: List[bytes], lo: int, hi: int) -> None:
    first = lo
    lo = 0
    hi = hi - first
    for i in range((hi - 1) // 2, -1, -1):
        _sift_down(a, i, hi, first)
    for i in range(hi - 1, -1, -1):
        a[first], a[first + i] = a[first + i], a[first]
        _sift_down(a, lo, i, first)


def _median_of_three(a: List[bytes], m1: int, m0: int, m2: int) -> None:
    # Leaves the median of the three at a[m1].
    if a[m1] < a[m0]:
        a[m1], a[m0] = a[m0], a[m1]
    if a[m2] < a[m1]:
        a[m2], a[m1] = a[m1], a[m2]
        if a[m1] < a[m0]:
            a[m1], a[m0] = a[m0], a[m1]


def _swap_range(a: List[bytes], x: int, y: int, n: int) -> None:
    for i in range(n):
        a[x + i], a[y + i] = a[y + i], a[x + i]


def _do_pivot(a: List[bytes], lo: int, hi: int) -> Tuple[int, int]:
    """Partition a[lo:hi] around a pivot.

    Returns (midlo, midhi) such that a[lo:midlo] < pivot, a[midlo:midhi]
    equals the pivot and a[midhi:hi] > pivot.
    """
    m = lo + (hi - lo) // 2
    if hi - lo > _NINTHER:
        s = (hi - lo) // 8
        _median_of_three(a, lo, lo + s, lo + 2 * s)
        _median_of_three(a, m, m - s, m + s)
        _median_of_three(a, hi - 1, hi - 1 - s, hi - 1 - 2 * s)
    _median_of_three(a, lo, m, hi - 1)

    # Invariants:
    #   a[lo] = pivot
    #   a[lo+1:p] == pivot, a[p:b] < pivot, a[b:c] unexamined,
    #   a[c:d] > pivot, a[d:hi] == pivot
    pivot = lo
    p, b, c, d = lo + 1, lo + 1, hi, hi
    while True:
        while b < c:
            if a[b] < a[pivot]:
                b += 1
            elif not a[pivot] < a[b]:
                a[p], a[b] = a[b], a[p]
                p += 1
                b += 1
            else:
                break
        while b < c:
            if a[pivot] < a[c - 1]:
                c -= 1
            elif not a[c - 1] < a[pivot]:
                a[c - 1], a[d - 1] = a[d - 1], a[c - 1]
                c -= 1
                d -= 1
            else:
                break
        if b >= c:
            break
        a[b], a[c - 1] = a[c - 1], a[b]
        b += 1
        c -= 1

    n = min(b - p, p - lo)
    _swap_range(a, lo, b - n, n)
    n = min(hi - d, d - c)
    _swap_range(a, c, hi - n, n)
    return lo + b - p, hi - (d - c)


def _quick_sort(a: List[bytes], lo: int, hi: int, max_depth: int) -> None:
    while hi - lo > _SMALL:
        if max_depth == 0:
            _heap_sort(a, lo, hi)
            return
        max_depth -= 1
        mlo, mhi = _do_pivot(a, lo, hi)
        # Recurse into the smaller side, loop on the larger.
        if mlo - lo < hi - mhi:
            _quick_sort(a, lo, mlo, max_depth)
            lo = mhi
        else:
            _quick_sort(a, mhi, hi, max_depth)
            hi = mlo
    if hi - lo > 1:
        # Shell pass with gap 6, then a plain insertion sort.
        for i in range(lo + 6, hi):
            if a[i] < a[i - 6]:
                a[i], a[i - 6] = a[i - 6], a[i]
        _insertion_sort(a, lo, hi)
