"""Vertical display limits from a representative block of data."""
from __future__ import annotations

import math
from typing import Any, Sequence

import numpy as np
from loguru import logger

from artifact_browser.core.data_models import ConfigurationError, YLimPolicy

# Divisor applied to automatic limits in the vertical view mode
VERTICAL_ZOOM = 10.0


def quantize_max_abs(m: float) -> float:
    """Round ``m`` to two decimals at its own decade (4.731 -> 4.73, 0.04731 -> 0.0473)."""
    if m == 0 or not np.isfinite(m):
        scale = 1.0
    else:
        scale = 10.0 ** math.floor(math.log10(m))
    return (round(m / scale * 100) / 100) * scale


def estimate_limits(data: np.ndarray, policy: YLimPolicy) -> tuple[float, float]:
    """Compute ``(ymin, ymax)`` for a block of samples.

    NaN samples are ignored; an all-NaN or empty block is treated as all zeros.

    Args:
        data: Samples of any shape
        policy: YLimPolicy.MAX_ABS for symmetric limits, YLimPolicy.MAX_MIN for data range

    Returns:
        Tuple (ymin, ymax) with ymin < ymax
    """
    data = np.asarray(data, dtype=float)
    finite = data[np.isfinite(data)]
    if finite.size == 0:
        logger.warning("No finite samples for vertical scaling, assuming zeros")
        finite = np.zeros(1)
    minval = float(finite.min())
    maxval = float(finite.max())

    if policy is YLimPolicy.MAX_ABS:
        m = quantize_max_abs(max(abs(minval), abs(maxval)))
        if m == 0:
            # all zeros
            m = float(np.finfo(float).eps)
        limits = (-m, m)
    elif policy is YLimPolicy.MAX_MIN:
        if minval == maxval:
            # constant data, e.g. all zero or clipping
            minval -= float(np.finfo(float).eps)
            maxval += float(np.finfo(float).eps)
        limits = (minval, maxval)
    else:
        raise ValueError(f"Unknown vertical scaling policy: {policy}")

    logger.debug(f"Vertical limits ({policy.value}): [{limits[0]:g}, {limits[1]:g}]")
    return limits


def parse_ylim(spec: Any) -> YLimPolicy | tuple[float, float]:
    """Interpret a vertical limit specification.

    Accepts ``"maxabs"``, ``"maxmin"``, a YLimPolicy, or a two-element numeric
    sequence ``[ymin, ymax]``.

    Raises:
        ConfigurationError: If the specification is malformed
    """
    if isinstance(spec, YLimPolicy):
        return spec
    if isinstance(spec, str):
        try:
            return YLimPolicy(spec.strip().lower())
        except ValueError:
            raise ConfigurationError(
                f"unsupported vertical limit '{spec}', use 'maxabs', 'maxmin' or [ymin, ymax]"
            ) from None
    if isinstance(spec, Sequence) or isinstance(spec, np.ndarray):
        values = np.asarray(spec, dtype=float).ravel() if _is_numeric(spec) else None
        if values is not None and values.size == 2 and np.all(np.isfinite(values)) and values[0] < values[1]:
            return float(values[0]), float(values[1])
    raise ConfigurationError(
        f"vertical limits need to be [ymin, ymax] with ymin < ymax, got {spec!r}"
    )


def _is_numeric(spec: Any) -> bool:
    try:
        np.asarray(spec, dtype=float)
    except (TypeError, ValueError):
        return False
    return True
