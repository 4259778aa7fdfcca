"""Display segmentation planning under zoom and trial lock.

The planner turns the original segmentation (trials from the file header or a
caller-supplied trial definition) and a requested window duration into the
display segmentation the analyst steps through:

- continuous data is cut into consecutive windows over the whole recording;
- trial data is shown trial by trial while the window is at least as long as
  the trial being viewed;
- zooming below the trial's duration locks that trial and subdivides it.

The cursor stays on the display segment whose first sample is nearest to the
one it was on before re-planning.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np
from loguru import logger

from artifact_browser.core.data_models import (
    ConfigurationError,
    PlanResult,
    Segment,
    ViewType,
    round_half_away,
)

# Smallest window, in samples, the planner will produce
MIN_WINDOW_SAMPLES = 10

# Relative distance below which a requested window snaps to the trial duration
SNAP_TOLERANCE = 0.1


def nearest_index(values: Sequence[int] | np.ndarray, target: float) -> int:
    """Index of the value closest to target; ties resolve to the lower index."""
    values = np.asarray(values)
    if values.size == 0:
        return 0
    return int(np.argmin(np.abs(values - target)))


def _windows(begin: int, end: int, step: int) -> tuple[np.ndarray, np.ndarray]:
    """Split ``[begin, end]`` into windows of ``step`` samples, last one clipped."""
    begins = np.arange(begin, end + 1, step, dtype=np.int64)
    ends = np.minimum(begins + step - 1, end)
    return begins, ends


class SegmentPlanner:
    """Computes the display segmentation and keeps cursor and lock state.

    The planner owns the trial lock and the previous display segmentation; the
    session owns the cursor and passes it in on every call.
    """

    def __init__(
        self,
        original: Sequence[Segment],
        sampling_rate: float,
        *,
        continuous: bool,
    ):
        """Initialize planner.

        Args:
            original: Original segmentation (trials), in display order
            sampling_rate: Sampling rate in Hz
            continuous: Treat the recording as one logical trial

        Raises:
            ConfigurationError: If there are no trials or the sampling rate is not positive
        """
        if len(original) == 0:
            raise ConfigurationError("no trials to display")
        if sampling_rate <= 0:
            raise ConfigurationError(f"sampling rate must be positive, got {sampling_rate}")

        self.original: tuple[Segment, ...] = tuple(original)
        self.sampling_rate = float(sampling_rate)
        self.continuous = continuous
        self.lock: int | None = None
        self.display: tuple[Segment, ...] | None = None

    @property
    def min_window(self) -> float:
        """Smallest allowed window duration in seconds."""
        return MIN_WINDOW_SAMPLES / self.sampling_rate

    @property
    def max_end(self) -> int:
        """Last sample covered by the original segmentation."""
        return max(seg.end for seg in self.original)

    def plan(self, window_duration: float, cursor: int = 0) -> PlanResult:
        """Compute the display segmentation for a window duration.

        Args:
            window_duration: Requested window in seconds
            cursor: Index of the active segment in the current display segmentation

        Returns:
            PlanResult with segments, pad lengths, new cursor and lock state
        """
        warning = None
        if window_duration < self.min_window:
            warning = (
                f"window of {window_duration:g} s is very small given the sampling rate, "
                f"increasing it to {MIN_WINDOW_SAMPLES} samples"
            )
            logger.warning(warning)
            window_duration = self.min_window

        if self.continuous:
            result = self._plan_continuous(window_duration, cursor, warning)
        else:
            result = self._plan_trials(window_duration, cursor, warning)

        self.display = result.segments
        self.lock = result.lock
        logger.debug(
            f"Planned {len(result.segments)} {result.view_type.value}(s), "
            f"window={result.window_duration:g} s, cursor={result.cursor}, lock={result.lock}"
        )
        return result

    def reset(self) -> None:
        """Forget lock and previous display segmentation."""
        self.lock = None
        self.display = None

    def _previous_begin(self, cursor: int) -> int | None:
        if not self.display:
            return None
        cursor = min(max(cursor, 0), len(self.display) - 1)
        return self.display[cursor].begin

    def _plan_continuous(self, window: float, cursor: int, warning: str | None) -> PlanResult:
        data_begin = min(seg.begin for seg in self.original)
        data_end = self.max_end
        step = max(1, round_half_away(self.sampling_rate * window))

        begins, ends = _windows(data_begin, data_end, step)
        if len(self.original) == 1:
            offsets = begins - begins[0] + self.original[0].offset
        else:
            # multiple trials viewed as one recording: first sample is t=0
            offsets = begins - begins[0]
        pads = step - (ends - begins + 1)

        previous = self._previous_begin(cursor)
        new_cursor = 0 if previous is None else nearest_index(begins, previous)

        segments = tuple(Segment(b, e, o) for b, e, o in zip(begins, ends, offsets))
        return PlanResult(
            segments=segments,
            pad_lengths=tuple(int(p) for p in pads),
            cursor=new_cursor,
            lock=None,
            window_duration=window,
            view_type=ViewType.SEGMENT,
            warning=warning,
        )

    def _plan_trials(self, window: float, cursor: int, warning: str | None) -> PlanResult:
        if self.lock is not None:
            reference = self.lock
        else:
            reference = min(max(cursor, 0), len(self.original) - 1)
        trial = self.original[reference]
        trial_duration = trial.duration(self.sampling_rate)

        if abs(trial_duration - window) / trial_duration < SNAP_TOLERANCE:
            window = trial_duration

        step = max(1, round_half_away(self.sampling_rate * window))

        if window < trial_duration:
            if self.lock is None:
                logger.info(f"Locking trial {reference + 1}/{len(self.original)} for zooming")
            begins, ends = _windows(trial.begin, trial.end, step)
            offsets = np.arange(len(begins)) * step + trial.offset

            previous = self._previous_begin(cursor)
            new_cursor = 0 if previous is None else nearest_index(begins, previous)

            segments = tuple(Segment(b, e, o) for b, e, o in zip(begins, ends, offsets))
            return PlanResult(
                segments=segments,
                pad_lengths=(0,) * len(segments),
                cursor=new_cursor,
                lock=reference,
                window_duration=window,
                view_type=ViewType.TRIAL_SEGMENT,
                warning=warning,
            )

        if self.lock is not None:
            logger.info(f"Releasing lock on trial {self.lock + 1}/{len(self.original)}")
            new_cursor = self.lock
        else:
            previous = self._previous_begin(cursor)
            if previous is None:
                new_cursor = reference
            else:
                new_cursor = nearest_index([seg.begin for seg in self.original], previous)

        pads = tuple(max(0, step - seg.length) for seg in self.original)
        return PlanResult(
            segments=self.original,
            pad_lengths=pads,
            cursor=new_cursor,
            lock=None,
            window_duration=window,
            view_type=ViewType.TRIAL,
            warning=warning,
        )
