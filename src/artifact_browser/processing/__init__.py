"""Preprocessing and selection-analysis modules for ArtifactBrowser.

Provides the operation and analysis registries, the default display filter
and the built-in analyses.
"""

from artifact_browser.processing.pipeline import (
    ProcessingPipeline,
    get_analysis,
    get_operation,
    list_analyses,
    list_operations,
    register_analysis,
    register_operation,
)
from artifact_browser.processing.filters import (
    bandpass_filter,
    build_pipeline,
    demean,
    detrend,
    highpass_filter,
    lowpass_filter,
    notch_filter,
    preprocess,
)
from artifact_browser.processing.analysis import channel_variance, simple_fft

__all__ = [
    # Registries
    "ProcessingPipeline",
    "register_operation",
    "get_operation",
    "list_operations",
    "register_analysis",
    "get_analysis",
    "list_analyses",
    # Filters
    "lowpass_filter",
    "highpass_filter",
    "bandpass_filter",
    "notch_filter",
    "demean",
    "detrend",
    "build_pipeline",
    "preprocess",
    # Analyses
    "simple_fft",
    "channel_variance",
]
