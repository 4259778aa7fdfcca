"""Built-in analyses offered for a selected stretch of data."""
from __future__ import annotations

from typing import Any

import numpy as np
from loguru import logger

from artifact_browser.core.data_models import AnalysisRequest
from artifact_browser.processing.pipeline import register_analysis


def simple_fft(request: AnalysisRequest) -> dict[str, Any]:
    """Single-sided amplitude spectrum of every selected channel.

    The mean of each channel is removed first so the DC bin does not dominate;
    NaN samples are treated as zero.

    Returns:
        Dict with 'frequencies' (n_freqs,), 'amplitude' (channels x n_freqs) and 'labels'
    """
    samples = np.nan_to_num(np.atleast_2d(np.asarray(request.samples, dtype=float)))
    n = samples.shape[-1]
    samples = samples - samples.mean(axis=-1, keepdims=True)

    amplitude = np.abs(np.fft.rfft(samples, axis=-1)) / max(n, 1)
    if n > 1:
        amplitude[..., 1:] *= 2
    frequencies = np.fft.rfftfreq(n, d=1.0 / request.sampling_rate)

    logger.debug(f"simple_fft: {samples.shape[0]} channel(s), {n} samples, {len(frequencies)} bins")
    return {"frequencies": frequencies, "amplitude": amplitude, "labels": list(request.labels)}


def channel_variance(request: AnalysisRequest) -> dict[str, float]:
    """Variance of every selected channel, keyed by label."""
    samples = np.atleast_2d(np.asarray(request.samples, dtype=float))
    variances = np.nanvar(samples, axis=-1)
    return {label: float(v) for label, v in zip(request.labels, variances)}


register_analysis("simple_fft", simple_fft)
register_analysis("channel_variance", channel_variance)
