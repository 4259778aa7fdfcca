"""Data models for segment browsing and annotation.

Uses attrs with validators for type-safe, validated data containers.
Sample indices are 0-based and segment bounds are inclusive.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

import attrs
import numpy as np
from attrs import define, field, frozen


class ConfigurationError(ValueError):
    """Raised when a browsing session cannot be set up from its inputs."""


class Status(Enum):
    """Outcome of a non-fatal operation."""

    OK = "ok"
    WARNING = "warning"
    NOT_FOUND = "not_found"
    ANOMALY = "anomaly"


class SelectMode(Enum):
    """What a committed selection does to the annotation store."""

    MARK_ARTIFACT = "markartifact"
    MARK_PEAK_EVENT = "markpeakevent"
    MARK_TROUGH_EVENT = "marktroughevent"

    def next(self) -> SelectMode:
        """Cycle artifact -> peak -> trough -> artifact."""
        order = list(SelectMode)
        return order[(order.index(self) + 1) % len(order)]


class ViewMode(Enum):
    """Channel arrangement used by the renderer."""

    BUTTERFLY = "butterfly"
    VERTICAL = "vertical"


class YLimPolicy(Enum):
    """Automatic vertical scaling policies."""

    MAX_ABS = "maxabs"
    MAX_MIN = "maxmin"


class SelectionDataScope(Enum):
    """Which data is forwarded to analysis functions."""

    CURRENT = "current"  # displayed (preprocessed, scaled) channels
    ALL = "all"  # all header channels, raw


class ViewType(Enum):
    """How the display segmentation relates to the original one."""

    TRIAL = "trial"
    SEGMENT = "segment"
    TRIAL_SEGMENT = "trialsegment"


class ExtremumMode(Enum):
    MAX = "max"
    MIN = "min"


def _validate_non_negative(instance, attribute, value):
    """Validator: ensure value is >= 0."""
    if value < 0:
        raise ValueError(f"{attribute.name} must be >= 0, got {value}")


def _validate_positive(instance, attribute, value):
    """Validator: ensure value is positive."""
    if value <= 0:
        raise ValueError(f"{attribute.name} must be positive, got {value}")


@frozen
class Segment:
    """Contiguous inclusive sample range with its time-zero offset.

    ``offset`` follows the trial-definition convention: the first sample of the
    segment lies ``offset`` samples from time zero, so sample ``s`` is at time
    ``(s - begin + offset) / fs``.
    """

    begin: int = field(converter=int, validator=_validate_non_negative)
    end: int = field(converter=int)
    offset: int = field(default=0, converter=int)

    @end.validator
    def _check_order(self, attribute, value):
        if value < self.begin:
            raise ValueError(f"end ({value}) must be >= begin ({self.begin})")

    @property
    def length(self) -> int:
        """Number of samples in the segment."""
        return self.end - self.begin + 1

    def duration(self, sampling_rate: float) -> float:
        """Segment duration in seconds."""
        return self.length / sampling_rate

    def contains(self, sample: int) -> bool:
        return self.begin <= sample <= self.end

    def overlaps(self, begin: int, end: int) -> bool:
        """Whether ``[begin, end]`` shares at least one sample with this segment."""
        return self.begin <= end and begin <= self.end

    def time_axis(self, sampling_rate: float, n_samples: int | None = None) -> np.ndarray:
        """Time in seconds of the first ``n_samples`` samples (default: whole segment)."""
        n = self.length if n_samples is None else n_samples
        return (self.offset + np.arange(n)) / sampling_rate


@define
class Event:
    """Punctate marker at a sample."""

    type: str = field(validator=attrs.validators.instance_of(str))
    sample: int = field(converter=int)
    value: Any = field(default=None)
    duration: int = field(default=0, converter=int, validator=_validate_non_negative)
    offset: int = field(default=0, converter=int)


@define
class ProcessingStep:
    """Record of a single preprocessing operation."""

    operation: str = field(validator=attrs.validators.instance_of(str))
    parameters: dict[str, Any] = field(factory=dict, validator=attrs.validators.instance_of(dict))


@define
class Header:
    """Recording metadata needed to plan and fetch segments."""

    sampling_rate: float = field(converter=float, validator=_validate_positive)
    labels: list[str] = field(factory=list, validator=attrs.validators.instance_of(list))
    n_samples: int = field(default=0, converter=int, validator=_validate_non_negative)
    n_trials: int = field(default=1, converter=int, validator=_validate_non_negative)
    n_samples_pre: int = field(default=0, converter=int, validator=_validate_non_negative)
    # True when the data were resampled after the events were recorded
    resampled: bool = field(default=False)

    @property
    def n_channels(self) -> int:
        return len(self.labels)


@frozen
class PlanResult:
    """Display segmentation produced by the segment planner."""

    segments: tuple[Segment, ...]
    pad_lengths: tuple[int, ...]
    cursor: int
    lock: int | None
    window_duration: float
    view_type: ViewType
    warning: str | None = None

    @property
    def status(self) -> Status:
        return Status.WARNING if self.warning else Status.OK


@frozen
class AnalysisRequest:
    """Selected data forwarded to a registered analysis function."""

    name: str
    samples: np.ndarray = field(eq=False)
    labels: tuple[str, ...]
    time: np.ndarray = field(eq=False)
    sampling_rate: float
    sample_range: tuple[int, int]
    title: str = ""
    config: dict[str, Any] = field(factory=dict)


@frozen
class SelectionOutcome:
    """Result of resolving and dispatching one selection."""

    status: Status
    begin: int
    end: int
    action: str
    message: str = ""
    marked: bool | None = None
    events_removed: int = 0
    event: Event | None = None
    analysis_result: Any = None


@frozen
class CommandResult:
    """Result of one command processed by the browsing session."""

    status: Status
    message: str = ""
    payload: Any = None

    @property
    def ok(self) -> bool:
        return self.status is Status.OK


@frozen
class Snapshot:
    """Fully resolved state handed to a renderer.

    Nothing in here refers back into the session; renderers never write state.
    """

    segment: Segment
    segment_index: int
    n_segments: int
    view_type: ViewType
    samples: np.ndarray = field(eq=False)
    time: np.ndarray = field(eq=False)
    labels: tuple[str, ...]
    annotation_rows: np.ndarray = field(eq=False)
    annotation_labels: tuple[str, ...]
    active_type: int
    events_in_range: tuple[Event, ...]
    y_limits: tuple[float, float]
    x_limits: tuple[float, float]
    pad_length: int
    select_mode: SelectMode
    view_mode: ViewMode
    title: str = ""
    layout: Any = None


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(np.sign(value) * np.floor(np.abs(value) + 0.5))
