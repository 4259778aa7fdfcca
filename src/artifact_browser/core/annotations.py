"""Artifact and event annotation store.

Artifacts are kept as one boolean channel per artifact type over the whole
annotated sample range; events are kept in an ordered list. All mutations go
through this module so that the interval form handed back at the end of a
session always matches what the analyst saw.
"""
from __future__ import annotations

from typing import Iterable, Iterator, Mapping

import attrs
import numpy as np
import pandas as pd
from attrs import frozen
from loguru import logger

from artifact_browser.core.data_models import (
    ConfigurationError,
    Event,
    ExtremumMode,
    Status,
)
from artifact_browser.core.intervals import from_intervals, to_intervals


@frozen
class ToggleResult:
    """Outcome of a whole-range toggle."""

    marked_now: bool
    changed: bool = True


@frozen
class EventInsertion:
    """Where an event ended up and whether the sorted invariant held."""

    index: int
    status: Status = Status.OK

    @property
    def anomaly(self) -> bool:
        return self.status is Status.ANOMALY


class EventList:
    """Ordered event container, expected to stay sorted by sample."""

    def __init__(self, events: Iterable[Event] | None = None):
        self._events: list[Event] = list(events or [])

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def __getitem__(self, index: int) -> Event:
        return self._events[index]

    @property
    def samples(self) -> np.ndarray:
        return np.array([ev.sample for ev in self._events], dtype=np.int64)

    def is_sorted(self) -> bool:
        """Whether samples are non-decreasing (empty and single lists are sorted)."""
        samples = self.samples
        return bool(np.all(np.diff(samples) >= 0))

    def insert(self, index: int, event: Event) -> None:
        self._events.insert(index, event)

    def append(self, event: Event) -> None:
        self._events.append(event)

    def remove_where(self, keep: np.ndarray) -> int:
        """Keep events where ``keep`` is True; return how many were dropped."""
        before = len(self._events)
        self._events = [ev for ev, k in zip(self._events, keep) if k]
        return before - len(self._events)

    def in_range(self, begin: int, end: int) -> list[Event]:
        """Events whose sample lies in ``[begin, end]``."""
        return [ev for ev in self._events if begin <= ev.sample <= end]

    def types(self) -> list[str]:
        """Unique event types in order of first appearance."""
        return list(dict.fromkeys(ev.type for ev in self._events))

    def to_list(self) -> list[Event]:
        return list(self._events)


def find_extremum(samples: np.ndarray, mode: ExtremumMode) -> int:
    """Index of the maximum or minimum of a single channel.

    Args:
        samples: 1D array, or 2D array with exactly one row
        mode: ExtremumMode.MAX or ExtremumMode.MIN

    Returns:
        Index into the samples (NaN samples are ignored)

    Raises:
        ValueError: If more than one channel is given or all samples are NaN
    """
    samples = np.asarray(samples, dtype=float)
    if samples.ndim == 2:
        if samples.shape[0] != 1:
            raise ValueError(f"expected exactly one channel, got {samples.shape[0]}")
        samples = samples[0]
    if samples.ndim != 1 or samples.size == 0:
        raise ValueError(f"expected a non-empty 1D array, got shape {samples.shape}")
    if np.all(np.isnan(samples)):
        raise ValueError("all samples are NaN")

    if mode is ExtremumMode.MAX:
        return int(np.nanargmax(samples))
    if mode is ExtremumMode.MIN:
        return int(np.nanargmin(samples))
    raise ValueError(f"Unknown extremum mode: {mode}")


class AnnotationStore:
    """Boolean artifact channels plus an ordered event list.

    Each artifact type is one row of ``channels``, spanning samples
    ``0 .. length - 1``. Bounds passed to the mutating methods are inclusive
    and clipped to that range.
    """

    def __init__(
        self,
        labels: Iterable[str],
        length: int,
        events: Iterable[Event] | None = None,
    ):
        """Initialize annotation store.

        Args:
            labels: Artifact type labels (unique)
            length: Number of samples covered by every artifact channel
            events: Initial events

        Raises:
            ConfigurationError: If labels are empty or duplicated
        """
        labels = list(labels)
        if not labels:
            raise ConfigurationError("at least one artifact type is required")
        if len(set(labels)) != len(labels):
            raise ConfigurationError(f"artifact labels must be unique, got {labels}")

        self.labels: list[str] = labels
        self.length = max(int(length), 0)
        self.channels = np.zeros((len(labels), self.length), dtype=bool)
        self.events = EventList(events)

    @classmethod
    def from_definitions(
        cls,
        definitions: Mapping[str, Iterable[tuple[int, int]] | np.ndarray],
        length: int,
        events: Iterable[Event] | None = None,
    ) -> AnnotationStore:
        """Create a store from ``{label: [(begin, end), ...]}`` artifact definitions."""
        store = cls(list(definitions.keys()), length, events)
        for row, (label, intervals) in enumerate(definitions.items()):
            store.channels[row] = from_intervals(intervals, store.length)
            n = len(np.asarray(intervals).reshape(-1, 2))
            logger.info(f"Detected {n:3d} {label} artifacts")
        return store

    @property
    def n_types(self) -> int:
        return len(self.labels)

    def type_index(self, label: str) -> int:
        """Row of an artifact type.

        Raises:
            KeyError: If label is unknown
        """
        try:
            return self.labels.index(label)
        except ValueError:
            raise KeyError(f"Unknown artifact type: {label}. Available: {self.labels}") from None

    def row_of(self, artifact_type: int | str) -> int:
        if isinstance(artifact_type, str):
            return self.type_index(artifact_type)
        if not 0 <= artifact_type < self.n_types:
            raise KeyError(f"Unknown artifact type index: {artifact_type}")
        return int(artifact_type)

    def _clip(self, begin: int, end: int) -> tuple[int, int]:
        return max(int(begin), 0), min(int(end), self.length - 1)

    def mark(self, artifact_type: int | str, begin: int, end: int) -> None:
        """Set ``[begin, end]`` for an artifact type."""
        row = self.row_of(artifact_type)
        lo, hi = self._clip(begin, end)
        if hi >= lo:
            self.channels[row, lo:hi + 1] = True

    def unmark(self, artifact_type: int | str, begin: int, end: int) -> None:
        """Clear ``[begin, end]`` for an artifact type."""
        row = self.row_of(artifact_type)
        lo, hi = self._clip(begin, end)
        if hi >= lo:
            self.channels[row, lo:hi + 1] = False

    def toggle_mark_on_overlap(self, artifact_type: int | str, begin: int, end: int) -> ToggleResult:
        """Clear the whole range if any sample is marked, otherwise mark the whole range."""
        row = self.row_of(artifact_type)
        lo, hi = self._clip(begin, end)
        label = self.labels[row]

        if hi < lo:
            logger.info(f"Range [{begin}, {end}] lies outside the annotated samples, nothing marked")
            return ToggleResult(marked_now=False, changed=False)

        if self.channels[row, lo:hi + 1].any():
            self.channels[row, lo:hi + 1] = False
            logger.info(f"Overlap with the active artifact ({label}), unmarking [{lo}, {hi}]")
            return ToggleResult(marked_now=False)

        self.mark(row, lo, hi)
        logger.info(f"No overlap with the active artifact ({label}), marking [{lo}, {hi}]")
        return ToggleResult(marked_now=True)

    def fetch_annotations(self, begin: int, end: int) -> np.ndarray:
        """Boolean matrix ``(n_types, end - begin + 1)`` for a sample range.

        Samples outside the annotated range read as False.
        """
        n = max(int(end) - int(begin) + 1, 0)
        out = np.zeros((self.n_types, n), dtype=bool)
        lo, hi = self._clip(begin, end)
        if hi >= lo:
            out[:, lo - begin:hi - begin + 1] = self.channels[:, lo:hi + 1]
        return out

    def intervals(self, artifact_type: int | str) -> list[tuple[int, int]]:
        """Interval form of one artifact channel."""
        return to_intervals(self.channels[self.row_of(artifact_type)])

    def artifact_definitions(self) -> dict[str, list[tuple[int, int]]]:
        """Interval form of every artifact channel, keyed by label."""
        return {label: to_intervals(self.channels[row]) for row, label in enumerate(self.labels)}

    def insert_event_sorted(self, event: Event) -> EventInsertion:
        """Insert an event keeping the list sorted by sample.

        The event goes after every event at a sample <= its own, so repeated
        samples keep their relative order. When the list is not sorted the event is appended at the end and the
        returned insertion carries Status.ANOMALY.
        """
        if not self.events.is_sorted():
            index = len(self.events)
            self.events.append(event)
            logger.warning(
                f"Event list is not sorted by sample; appended event at sample {event.sample} to the end"
            )
            return EventInsertion(index=index, status=Status.ANOMALY)

        # after any events at the same sample
        index = int(np.searchsorted(self.events.samples, event.sample, side="right"))
        self.events.insert(index, event)
        logger.info(f"Added {event.type} event ({event.value}) at sample {event.sample}")
        return EventInsertion(index=index)

    def delete_events_in_range(self, begin: int, end: int) -> int:
        """Remove events whose sample lies in ``[begin, end]``; return how many."""
        samples = self.events.samples
        keep = ~((samples >= begin) & (samples <= end))
        removed = self.events.remove_where(keep)
        if removed:
            logger.info(f"Removed {removed} event(s) in [{begin}, {end}]")
        return removed

    def has_events_in_range(self, begin: int, end: int) -> bool:
        samples = self.events.samples
        return bool(np.any((samples >= begin) & (samples <= end)))

    def to_frame(self) -> pd.DataFrame:
        """Artifact intervals as a table with columns type, begin_sample, end_sample."""
        rows = [
            {"type": label, "begin_sample": b, "end_sample": e}
            for label, intervals in self.artifact_definitions().items()
            for b, e in intervals
        ]
        return pd.DataFrame(rows, columns=["type", "begin_sample", "end_sample"])

    def events_frame(self) -> pd.DataFrame:
        """Events as a table, one row per event in list order."""
        columns = [a.name for a in attrs.fields(Event)]
        return pd.DataFrame([attrs.asdict(ev) for ev in self.events], columns=columns)
