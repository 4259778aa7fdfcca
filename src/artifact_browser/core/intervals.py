"""Conversion between boolean annotation channels and interval lists.

An annotation channel is a boolean vector with one entry per sample. Its
interval form is a sorted list of disjoint, non-adjacent, inclusive
``(begin, end)`` sample ranges. Both directions are total: out-of-range
bounds are clipped and empty inputs give empty outputs.
"""
from __future__ import annotations

from typing import Iterable

import numpy as np


def merge_intervals(intervals: Iterable[tuple[int, int]]) -> list[tuple[int, int]]:
    """Merge overlapping or adjacent inclusive ranges.

    Args:
        intervals: (begin, end) pairs, may be unsorted; pairs with end < begin are dropped

    Returns:
        Sorted, merged list of non-overlapping, non-adjacent ranges
    """
    cleaned = [(int(b), int(e)) for b, e in intervals if int(e) >= int(b)]
    if not cleaned:
        return []

    cleaned.sort(key=lambda s: s[0])
    merged: list[tuple[int, int]] = [cleaned[0]]

    for begin, end in cleaned[1:]:
        prev_begin, prev_end = merged[-1]
        if begin <= prev_end + 1:
            merged[-1] = (prev_begin, max(prev_end, end))
        else:
            merged.append((begin, end))

    return merged


def to_intervals(bits: np.ndarray) -> list[tuple[int, int]]:
    """Convert a boolean vector to its inclusive interval list.

    The vector is treated as padded with False on both ends, so runs touching
    either edge are closed.
    """
    bits = np.asarray(bits, dtype=bool).ravel()
    if bits.size == 0:
        return []

    edges = np.diff(np.concatenate(([False], bits, [False])).astype(np.int8))
    begins = np.flatnonzero(edges == 1)
    ends = np.flatnonzero(edges == -1) - 1
    return [(int(b), int(e)) for b, e in zip(begins, ends)]


def from_intervals(intervals: Iterable[tuple[int, int]] | np.ndarray, length: int) -> np.ndarray:
    """Build a boolean vector of ``length`` samples from inclusive intervals.

    The result only depends on the union of the intervals, clipped to
    ``[0, length)``.
    """
    length = max(int(length), 0)
    bits = np.zeros(length, dtype=bool)
    if length == 0:
        return bits

    for begin, end in np.asarray(intervals, dtype=np.int64).reshape(-1, 2):
        lo = max(int(begin), 0)
        hi = min(int(end), length - 1)
        if hi >= lo:
            bits[lo:hi + 1] = True
    return bits
