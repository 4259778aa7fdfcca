"""Translate a horizontal selection into annotation edits or an analysis call.

A selection arrives as two positions normalized to ``[0, 1]`` across the
visible panel. It is mapped to time using the panel's horizontal limits, then
to absolute samples of the active display segment, and finally dispatched:

- MARK_ARTIFACT toggles the active artifact type over the whole range;
- MARK_PEAK_EVENT / MARK_TROUGH_EVENT delete events in the range, or add one
  at the extremum of the single displayed channel;
- a named analysis receives the selected data and leaves the store untouched.
"""
from __future__ import annotations

from typing import Any, Callable

import numpy as np
from attrs import frozen
from loguru import logger

from artifact_browser.core.annotations import AnnotationStore, find_extremum
from artifact_browser.core.data_models import (
    AnalysisRequest,
    Event,
    ExtremumMode,
    Segment,
    SelectionOutcome,
    SelectMode,
    Status,
    round_half_away,
)

MANUAL_EVENT_TYPE = "datacursor_manual"

AnalysisLookup = Callable[[str], Callable[[AnalysisRequest], Any]]
AnalysisSource = Callable[[int, int], tuple[np.ndarray, tuple[str, ...]]]


@frozen
class Selection:
    """Two horizontal positions normalized to the visible panel."""

    start: float
    stop: float

    @classmethod
    def from_pixels(cls, x0: float, x1: float, left: float, width: float) -> Selection:
        """Normalize pixel positions against a panel starting at ``left``."""
        if width <= 0:
            raise ValueError(f"panel width must be positive, got {width}")
        return cls((x0 - left) / width, (x1 - left) / width)

    @classmethod
    def from_times(cls, t0: float, t1: float, hlim: tuple[float, float]) -> Selection:
        """Normalize times in seconds against the panel's horizontal limits."""
        span = hlim[1] - hlim[0]
        if span <= 0:
            return cls(0.0, 0.0)
        return cls((t0 - hlim[0]) / span, (t1 - hlim[0]) / span)

    def clipped(self) -> tuple[float, float]:
        """Positions ordered and clipped to ``[0, 1]``."""
        lo, hi = sorted((self.start, self.stop))
        return min(max(lo, 0.0), 1.0), min(max(hi, 0.0), 1.0)


class SelectionResolver:
    """Resolves selections against the active display segment."""

    def __init__(
        self,
        store: AnnotationStore,
        sampling_rate: float,
        analysis_lookup: AnalysisLookup | None = None,
    ):
        self.store = store
        self.sampling_rate = float(sampling_rate)
        self.analysis_lookup = analysis_lookup

    def resolve_bounds(
        self, selection: Selection, hlim: tuple[float, float], segment: Segment
    ) -> tuple[int, int]:
        """Absolute inclusive sample bounds of a selection, confined to the segment."""
        lo, hi = selection.clipped()
        t0 = lo * (hlim[1] - hlim[0]) + hlim[0]
        t1 = hi * (hlim[1] - hlim[0]) + hlim[0]

        fs = self.sampling_rate
        begin = round_half_away(t0 * fs + segment.begin - segment.offset) - 1
        end = round_half_away(t1 * fs + segment.begin - segment.offset)

        begin = min(max(begin, segment.begin), segment.end)
        end = min(max(end, segment.begin), segment.end)
        return begin, end

    def apply(
        self,
        selection: Selection,
        *,
        segment: Segment,
        hlim: tuple[float, float],
        mode: SelectMode,
        active_type: int,
        displayed: np.ndarray,
        analysis: str | None = None,
        analysis_source: AnalysisSource | None = None,
        analysis_config: dict[str, Any] | None = None,
        title: str = "",
    ) -> SelectionOutcome:
        """Resolve a selection and dispatch it.

        Args:
            selection: Normalized selection
            segment: Active display segment
            hlim: Horizontal limits of the panel in seconds
            mode: Select mode used when no analysis is requested
            active_type: Row of the active artifact type
            displayed: Displayed samples ``(channels, samples)`` starting at segment.begin
            analysis: Name of a registered analysis; takes precedence over mode
            analysis_source: Returns ``(samples, labels)`` for an absolute sample range
            analysis_config: Extra configuration forwarded to the analysis
            title: Human-readable description of the view, used in the analysis title

        Returns:
            SelectionOutcome describing what happened
        """
        begin, end = self.resolve_bounds(selection, hlim, segment)
        logger.debug(f"Selection resolved to samples [{begin}, {end}]")

        if analysis is not None:
            return self.run_analysis(
                analysis, begin, end, segment, analysis_source, analysis_config or {}, title
            )
        if mode is SelectMode.MARK_ARTIFACT:
            return self.mark_artifact(active_type, begin, end)
        if mode is SelectMode.MARK_PEAK_EVENT:
            return self.mark_event(begin, end, segment, displayed, ExtremumMode.MAX)
        if mode is SelectMode.MARK_TROUGH_EVENT:
            return self.mark_event(begin, end, segment, displayed, ExtremumMode.MIN)
        raise ValueError(f"Unknown select mode: {mode}")

    def mark_artifact(self, active_type: int, begin: int, end: int) -> SelectionOutcome:
        toggled = self.store.toggle_mark_on_overlap(active_type, begin, end)
        label = self.store.labels[active_type]
        if not toggled.changed:
            return SelectionOutcome(
                status=Status.WARNING,
                begin=begin,
                end=end,
                action="none",
                message=f"[{begin}, {end}] is outside the annotated samples",
                marked=False,
            )
        action = "mark" if toggled.marked_now else "unmark"
        return SelectionOutcome(
            status=Status.OK,
            begin=begin,
            end=end,
            action=action,
            message=f"{action}ed {label} artifact [{begin}, {end}]",
            marked=toggled.marked_now,
        )

    def mark_event(
        self,
        begin: int,
        end: int,
        segment: Segment,
        displayed: np.ndarray,
        mode: ExtremumMode,
    ) -> SelectionOutcome:
        """Delete events in the range, or add one at the displayed extremum."""
        if self.store.has_events_in_range(begin, end):
            removed = self.store.delete_events_in_range(begin, end)
            return SelectionOutcome(
                status=Status.OK,
                begin=begin,
                end=end,
                action="delete_events",
                message=f"overlap with {removed} event(s), removed",
                events_removed=removed,
            )

        displayed = np.atleast_2d(np.asarray(displayed, dtype=float))
        if displayed.shape[0] != 1:
            message = (
                f"marking {mode.value} events requires exactly one displayed channel, "
                f"got {displayed.shape[0]}"
            )
            logger.warning(message)
            return SelectionOutcome(
                status=Status.WARNING, begin=begin, end=end, action="none", message=message
            )

        window = displayed[0, begin - segment.begin:end - segment.begin + 1]
        try:
            index = find_extremum(window, mode)
        except ValueError as exc:
            logger.warning(f"No event added in [{begin}, {end}]: {exc}")
            return SelectionOutcome(
                status=Status.WARNING, begin=begin, end=end, action="none", message=str(exc)
            )

        value = "peak" if mode is ExtremumMode.MAX else "trough"
        event = Event(type=MANUAL_EVENT_TYPE, sample=begin + index, value=value, duration=1, offset=0)
        insertion = self.store.insert_event_sorted(event)
        message = f"added {value} event at sample {event.sample}"
        if insertion.anomaly:
            message += " (event list was not sorted, appended at the end)"
        return SelectionOutcome(
            status=insertion.status,
            begin=begin,
            end=end,
            action="add_event",
            message=message,
            event=event,
        )

    def run_analysis(
        self,
        name: str,
        begin: int,
        end: int,
        segment: Segment,
        source: AnalysisSource | None,
        config: dict[str, Any],
        title: str,
    ) -> SelectionOutcome:
        """Forward the selected data to a registered analysis function."""
        if self.analysis_lookup is None or source is None:
            raise ValueError("analysis requested but no analysis lookup or data source configured")
        func = self.analysis_lookup(name)

        samples, labels = source(begin, end)
        n = end - begin + 1
        time = (segment.offset + (begin - segment.begin) + np.arange(n)) / self.sampling_rate
        full_title = f"{name}: {title}, time from {time[0]:g} to {time[-1]:g} s"

        request = AnalysisRequest(
            name=name,
            samples=samples,
            labels=tuple(labels),
            time=time,
            sampling_rate=self.sampling_rate,
            sample_range=(begin, end),
            title=full_title,
            config=dict(config),
        )
        logger.info(f"Running analysis {full_title}")
        result = func(request)
        return SelectionOutcome(
            status=Status.OK,
            begin=begin,
            end=end,
            action="analysis",
            message=full_title,
            analysis_result=result,
        )
