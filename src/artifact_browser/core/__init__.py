"""Core segmentation, annotation and browsing-session logic for ArtifactBrowser."""

from .annotations import AnnotationStore, EventInsertion, EventList, ToggleResult, find_extremum
from .data_models import (
    AnalysisRequest,
    CommandResult,
    ConfigurationError,
    Event,
    ExtremumMode,
    Header,
    PlanResult,
    ProcessingStep,
    Segment,
    SelectionDataScope,
    SelectionOutcome,
    SelectMode,
    Snapshot,
    Status,
    ViewMode,
    ViewType,
    YLimPolicy,
)
from .data_source import DataSource, InMemoryData, representative_block, trial_definition_from_header
from .intervals import from_intervals, merge_intervals, to_intervals
from .navigation import find_next, find_previous
from .scaling import estimate_limits, parse_ylim, quantize_max_abs
from .segmentation import SegmentPlanner
from .selection import Selection, SelectionResolver
from .session import BrowserSession

__all__ = [
    "ConfigurationError",
    "Status",
    "SelectMode",
    "ViewMode",
    "YLimPolicy",
    "SelectionDataScope",
    "ViewType",
    "ExtremumMode",
    "Segment",
    "Event",
    "Header",
    "ProcessingStep",
    "PlanResult",
    "AnalysisRequest",
    "SelectionOutcome",
    "CommandResult",
    "Snapshot",
    "to_intervals",
    "from_intervals",
    "merge_intervals",
    "SegmentPlanner",
    "AnnotationStore",
    "EventList",
    "EventInsertion",
    "ToggleResult",
    "find_extremum",
    "Selection",
    "SelectionResolver",
    "find_previous",
    "find_next",
    "estimate_limits",
    "quantize_max_abs",
    "parse_ylim",
    "DataSource",
    "InMemoryData",
    "trial_definition_from_header",
    "representative_block",
    "BrowserSession",
]
