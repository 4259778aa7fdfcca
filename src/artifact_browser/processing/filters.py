"""On-the-fly preprocessing of displayed data.

All operations follow the pipeline convention
``func(samples, sampling_rate, **params) -> samples`` on ``(channels, samples)``
arrays and filter along the last axis. ``preprocess`` is the default display
filter of a browsing session: it turns a set of preprocessing options into a
ProcessingPipeline and applies it.
"""
from __future__ import annotations

from typing import Any, Mapping, Sequence

import attrs
import numpy as np
from loguru import logger
from scipy.signal import butter, filtfilt, iirnotch, sosfiltfilt
from scipy.signal import detrend as _scipy_detrend

from artifact_browser.processing.pipeline import ProcessingPipeline, register_operation


def _zero_phase(sos: np.ndarray, samples: np.ndarray) -> np.ndarray:
    """sosfiltfilt along the last axis, shrinking the edge padding for short blocks."""
    n = samples.shape[-1]
    n_zeros = min(int((sos[:, 2] == 0).sum()), int((sos[:, 5] == 0).sum()))
    padlen = 3 * (2 * len(sos) + 1 - n_zeros)
    return sosfiltfilt(sos, samples, axis=-1, padlen=min(padlen, max(n - 1, 0)))


def lowpass_filter(
    samples: np.ndarray,
    sampling_rate: float,
    *,
    cutoff: float = 30.0,
    order: int = 4,
) -> np.ndarray:
    """Apply zero-phase Butterworth lowpass filter.

    Args:
        samples: Samples (channels x samples)
        sampling_rate: Sampling rate in Hz
        cutoff: Cutoff frequency in Hz
        order: Filter order

    Returns:
        Lowpass filtered samples
    """
    nyquist = sampling_rate / 2.0

    if cutoff <= 0:
        raise ValueError(f"cutoff must be positive, got {cutoff}")
    if cutoff >= nyquist:
        logger.warning(f"cutoff ({cutoff}) >= Nyquist ({nyquist}), clamping")
        cutoff = nyquist * 0.95

    sos = butter(order, cutoff / nyquist, btype="low", output="sos")
    filtered = _zero_phase(sos, samples)

    logger.debug(f"Lowpass filter applied: {cutoff} Hz, order {order}")
    return filtered


def highpass_filter(
    samples: np.ndarray,
    sampling_rate: float,
    *,
    cutoff: float = 0.5,
    order: int = 4,
) -> np.ndarray:
    """Apply zero-phase Butterworth highpass filter to remove slow drift."""
    nyquist = sampling_rate / 2.0

    if cutoff <= 0:
        raise ValueError(f"cutoff must be positive, got {cutoff}")
    if cutoff >= nyquist:
        raise ValueError(f"cutoff ({cutoff}) must be < Nyquist ({nyquist})")

    sos = butter(order, cutoff / nyquist, btype="high", output="sos")
    filtered = _zero_phase(sos, samples)

    logger.debug(f"Highpass filter applied: {cutoff} Hz, order {order}")
    return filtered


def bandpass_filter(
    samples: np.ndarray,
    sampling_rate: float,
    *,
    lowcut: float = 0.5,
    highcut: float = 30.0,
    order: int = 4,
) -> np.ndarray:
    """Apply zero-phase Butterworth bandpass filter.

    Args:
        samples: Samples (channels x samples)
        sampling_rate: Sampling rate in Hz
        lowcut: Lower cutoff frequency in Hz
        highcut: Upper cutoff frequency in Hz
        order: Filter order

    Returns:
        Bandpass filtered samples
    """
    nyquist = sampling_rate / 2.0

    if lowcut <= 0:
        raise ValueError(f"lowcut must be positive, got {lowcut}")
    if highcut >= nyquist:
        logger.warning(
            f"highcut ({highcut} Hz) >= Nyquist ({nyquist} Hz), "
            f"clamping to {nyquist * 0.95:.1f} Hz"
        )
        highcut = nyquist * 0.95
    if lowcut >= highcut:
        raise ValueError(f"lowcut ({lowcut}) must be < highcut ({highcut})")

    sos = butter(order, [lowcut / nyquist, highcut / nyquist], btype="band", output="sos")
    filtered = _zero_phase(sos, samples)

    logger.debug(f"Bandpass filter applied: {lowcut}-{highcut} Hz, order {order}")
    return filtered


def notch_filter(
    samples: np.ndarray,
    sampling_rate: float,
    *,
    freq: float = 50.0,
    quality_factor: float = 30.0,
) -> np.ndarray:
    """Apply notch filter to remove powerline interference."""
    nyquist = sampling_rate / 2.0

    if freq >= nyquist:
        logger.warning(f"Notch frequency ({freq} Hz) >= Nyquist ({nyquist} Hz), skipping")
        return samples.copy()

    b, a = iirnotch(freq, quality_factor, sampling_rate)
    padlen = min(3 * max(len(a), len(b)), max(samples.shape[-1] - 1, 0))
    filtered = filtfilt(b, a, samples, axis=-1, padlen=padlen)

    logger.debug(f"Notch filter applied: {freq} Hz, Q={quality_factor}")
    return filtered


def demean(
    samples: np.ndarray,
    sampling_rate: float,
    *,
    baseline: Sequence[int] | None = None,
) -> np.ndarray:
    """Subtract each channel's mean, over ``baseline`` sample indices if given.

    Args:
        samples: Samples (channels x samples)
        sampling_rate: Sampling rate in Hz (unused, kept for pipeline compat)
        baseline: Inclusive (first, last) column indices of the baseline window
    """
    if baseline is None:
        window = samples
    else:
        first, last = int(baseline[0]), int(baseline[1])
        window = samples[..., first:last + 1]
    if window.shape[-1] == 0:
        logger.warning("Empty baseline window, skipping baseline correction")
        return samples.copy()
    return samples - np.nanmean(window, axis=-1, keepdims=True)


def detrend(samples: np.ndarray, sampling_rate: float) -> np.ndarray:
    """Remove the linear trend of each channel."""
    if samples.shape[-1] < 2:
        return samples.copy()
    return _scipy_detrend(samples, axis=-1, type="linear")


register_operation("lowpass", lowpass_filter)
register_operation("highpass", highpass_filter)
register_operation("bandpass", bandpass_filter)
register_operation("notch", notch_filter)
register_operation("demean", demean)
register_operation("detrend", detrend)


def _baseline_indices(time: np.ndarray, window: Sequence[float]) -> tuple[int, int]:
    selected = np.flatnonzero((time >= window[0]) & (time <= window[1]))
    if selected.size == 0:
        return 0, -1
    return int(selected[0]), int(selected[-1])


def build_pipeline(options: Mapping[str, Any], time: np.ndarray) -> ProcessingPipeline:
    """Translate preprocessing options into a pipeline for one block of data."""
    pipeline = ProcessingPipeline()
    order = int(options.get("filter_order", 4))

    if options.get("detrend"):
        pipeline.add_step("detrend")
    if options.get("demean"):
        window = options.get("baseline_window")
        params = {} if window is None else {"baseline": _baseline_indices(time, window)}
        pipeline.add_step("demean", params)
    if options.get("notch"):
        pipeline.add_step("notch", {"freq": float(options.get("notch_freq", 50.0))})
    if options.get("hpfilter"):
        pipeline.add_step("highpass", {"cutoff": float(options.get("hpfreq", 0.5)), "order": order})
    if options.get("lpfilter"):
        pipeline.add_step("lowpass", {"cutoff": float(options.get("lpfreq", 30.0)), "order": order})
    if options.get("bpfilter"):
        low, high = options.get("bpfreq", (0.5, 30.0))
        pipeline.add_step("bandpass", {"lowcut": float(low), "highcut": float(high), "order": order})
    return pipeline


def preprocess(
    samples: np.ndarray,
    labels: Sequence[str],
    time: np.ndarray,
    options: Mapping[str, Any] | Any | None = None,
) -> tuple[np.ndarray, list[str], np.ndarray]:
    """Default display filter.

    Args:
        samples: Samples (channels x samples)
        labels: Channel labels
        time: Time axis in seconds
        options: Mapping or attrs instance of preprocessing options; None or
            all-off options return the input unchanged

    Returns:
        Tuple of (samples, labels, time)
    """
    if options is None:
        return samples, list(labels), time
    if attrs.has(type(options)):
        options = attrs.asdict(options)

    pipeline = build_pipeline(options, time)
    if pipeline.is_empty:
        return samples, list(labels), time

    sampling_rate = options.get("sampling_rate")
    if sampling_rate is None:
        if len(time) < 2:
            logger.warning("Cannot infer the sampling rate from fewer than 2 samples, skipping preprocessing")
            return samples, list(labels), time
        sampling_rate = 1.0 / float(np.median(np.diff(time)))

    processed = pipeline.apply(samples, float(sampling_rate))
    logger.debug(f"Preprocessed {samples.shape[0]} channel(s) with {pipeline}")
    return processed, list(labels), time
