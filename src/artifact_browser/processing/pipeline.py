"""Registries for preprocessing operations and selection analyses.

Preprocessing operations have the signature
``(samples, sampling_rate, **params) -> samples`` and act on the last axis of
a ``(channels, samples)`` array. A ProcessingPipeline replays an ordered list
of them.

Analyses receive an AnalysisRequest built from a selection and return any
result object; the browsing session hands that result back to its caller.
"""
from __future__ import annotations

from typing import Any, Callable

import numpy as np
from loguru import logger

from artifact_browser.core.data_models import AnalysisRequest, ProcessingStep


# Registry of preprocessing operations (name -> callable)
_OPERATIONS: dict[str, Callable] = {}

# Registry of selection analyses (name -> callable)
_ANALYSES: dict[str, Callable[[AnalysisRequest], Any]] = {}


def register_operation(name: str, func: Callable):
    """Register a preprocessing operation by name.

    Args:
        name: Operation name (must be unique)
        func: Callable with signature (samples, sampling_rate, **params) -> samples
    """
    if name in _OPERATIONS:
        logger.warning(f"Overwriting registered operation: {name}")
    _OPERATIONS[name] = func
    logger.debug(f"Registered preprocessing operation: {name}")


def get_operation(name: str) -> Callable:
    """Get a registered operation by name.

    Raises:
        KeyError: If operation not found
    """
    if name not in _OPERATIONS:
        raise KeyError(f"Unknown operation: {name}. Available: {list(_OPERATIONS.keys())}")
    return _OPERATIONS[name]


def list_operations() -> list[str]:
    """List all registered operation names."""
    return list(_OPERATIONS.keys())


def register_analysis(name: str, func: Callable[[AnalysisRequest], Any]):
    """Register an analysis that can be run on a selection.

    Args:
        name: Analysis name as offered to the user
        func: Callable taking an AnalysisRequest
    """
    if name in _ANALYSES:
        logger.warning(f"Overwriting registered analysis: {name}")
    _ANALYSES[name] = func
    logger.debug(f"Registered analysis: {name}")


def get_analysis(name: str) -> Callable[[AnalysisRequest], Any]:
    """Get a registered analysis by name.

    Raises:
        KeyError: If analysis not found
    """
    if name not in _ANALYSES:
        raise KeyError(f"Unknown analysis: {name}. Available: {list(_ANALYSES.keys())}")
    return _ANALYSES[name]


def list_analyses() -> list[str]:
    """List all registered analysis names."""
    return list(_ANALYSES.keys())


class ProcessingPipeline:
    """Ordered preprocessing operations replayed on every fetched block."""

    def __init__(self, steps: list[ProcessingStep] | None = None):
        self.steps: list[ProcessingStep] = list(steps or [])

    def add_step(self, operation: str, parameters: dict[str, Any] | None = None):
        """Append a processing step to the pipeline.

        Raises:
            KeyError: If operation is not registered
        """
        get_operation(operation)
        self.steps.append(ProcessingStep(operation=operation, parameters=parameters or {}))
        logger.debug(f"Added pipeline step: {operation} (params: {parameters})")

    def apply(self, samples: np.ndarray, sampling_rate: float) -> np.ndarray:
        """Apply all steps in order to a ``(channels, samples)`` array.

        Returns:
            Processed samples; the input itself when the pipeline is empty
        """
        if not self.steps:
            return samples

        result = np.array(samples, dtype=float, copy=True)
        for i, step in enumerate(self.steps):
            func = get_operation(step.operation)
            try:
                result = func(result, sampling_rate, **step.parameters)
            except Exception as e:
                logger.error(
                    f"Pipeline step {i + 1}/{len(self.steps)} failed: {step.operation} "
                    f"(params: {step.parameters}): {e}"
                )
                raise
            logger.debug(f"Pipeline step {i + 1}/{len(self.steps)}: {step.operation} applied")
        return result

    def serialize(self) -> dict[str, Any]:
        """Serialize pipeline to a JSON-compatible dict."""
        return {
            "steps": [
                {"operation": step.operation, "parameters": step.parameters}
                for step in self.steps
            ]
        }

    @classmethod
    def deserialize(cls, data: dict[str, Any]) -> ProcessingPipeline:
        """Rebuild a pipeline from ``serialize`` output.

        Raises:
            KeyError: If a step names an unregistered operation
        """
        pipeline = cls()
        for step in data.get("steps", []):
            pipeline.add_step(step["operation"], step.get("parameters", {}))
        return pipeline

    @property
    def num_steps(self) -> int:
        return len(self.steps)

    @property
    def is_empty(self) -> bool:
        return len(self.steps) == 0

    def __repr__(self) -> str:
        steps_str = ", ".join(s.operation for s in self.steps)
        return f"ProcessingPipeline([{steps_str}])"
