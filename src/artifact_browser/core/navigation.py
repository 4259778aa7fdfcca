"""Search for the previous/next display segment containing an annotation.

The search runs over the current display segmentation only, so its resolution
follows the zoom level: an annotation outside every display segment (e.g. in
another trial while one trial is locked) is not found.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np

from artifact_browser.core.data_models import Segment
from artifact_browser.core.intervals import to_intervals


def _overlapping(segment: Segment, intervals: np.ndarray) -> bool:
    if intervals.size == 0:
        return False
    return bool(np.any((intervals[:, 0] <= segment.end) & (intervals[:, 1] >= segment.begin)))


def find_previous(channel: np.ndarray, segments: Sequence[Segment], cursor: int) -> int | None:
    """Closest display segment before ``cursor`` that overlaps an annotation.

    Args:
        channel: Boolean annotation channel of the active type
        segments: Current display segmentation
        cursor: Index of the active display segment

    Returns:
        Segment index, or None if there is no earlier occurrence
    """
    if not segments:
        return None
    current = segments[min(max(cursor, 0), len(segments) - 1)]
    intervals = np.array(to_intervals(channel), dtype=np.int64).reshape(-1, 2)
    # intervals starting after the current segment cannot be "previous"
    intervals = intervals[intervals[:, 0] <= current.end]

    for index in range(min(cursor, len(segments)) - 1, -1, -1):
        if _overlapping(segments[index], intervals):
            return index
    return None


def find_next(channel: np.ndarray, segments: Sequence[Segment], cursor: int) -> int | None:
    """Closest display segment after ``cursor`` that overlaps an annotation.

    Returns:
        Segment index, or None if there is no later occurrence
    """
    if not segments:
        return None
    current = segments[min(max(cursor, 0), len(segments) - 1)]
    intervals = np.array(to_intervals(channel), dtype=np.int64).reshape(-1, 2)
    # intervals ending before the current segment cannot be "next"
    intervals = intervals[intervals[:, 1] >= current.begin]

    for index in range(max(cursor, -1) + 1, len(segments)):
        if _overlapping(segments[index], intervals):
            return index
    return None
