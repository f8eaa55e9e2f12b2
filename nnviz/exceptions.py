"""
NNViz Exceptions
=================
Error taxonomy shared by every NNViz component.

    NNVizError
      ├── ValidationError     malformed layer specification
      ├── ConfigError         malformed training / evaluation configuration
      ├── ShapeError          dataset or input arity does not match the model
      ├── TrainingError       numeric failure in the middle of a training run
      └── ModelReleasedError  a released model or dataset was used again

A user pressing "stop" is NOT an error: a stopped run simply returns fewer
metrics than the number of epochs requested.

The validation-style errors also derive from ValueError (and the runtime
ones from RuntimeError) so callers that already catch the builtin types
keep working.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class NNVizError(Exception):
    """Base exception for all NNViz errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ValidationError(NNVizError, ValueError):
    """
    Raised when a model specification is malformed.

    Parameters
    ----------
    reason : str
        What is wrong with the layer.
    layer_index : int or None
        Position of the offending layer, or None when the problem concerns
        the specification as a whole (e.g. it is empty).
    """

    def __init__(self, reason: str, layer_index: Optional[int] = None):
        if layer_index is None:
            message = f"Invalid model spec: {reason}"
        else:
            message = f"Invalid model spec at layer {layer_index}: {reason}"
        super().__init__(message, context={"layer_index": layer_index})
        self.reason = reason
        self.layer_index = layer_index


class ConfigError(NNVizError, ValueError):
    """Raised when a configuration value is out of range or unknown."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, context={"field": field})
        self.field = field


class ShapeError(NNVizError, ValueError):
    """Raised when data arity does not match the model arity."""

    def __init__(self, message: str, expected: Any = None, actual: Any = None):
        super().__init__(message, context={"expected": expected, "actual": actual})
        self.expected = expected
        self.actual = actual


class TrainingError(NNVizError, RuntimeError):
    """
    Raised when a training run aborts because of a numeric failure.

    The metrics of every epoch that completed before the failure are kept
    on the exception so the caller can still chart partial progress.
    """

    def __init__(
        self,
        message: str,
        metrics: Optional[Sequence[Any]] = None,
        epoch: Optional[int] = None,
    ):
        super().__init__(message, context={"epoch": epoch})
        self.metrics = list(metrics or [])
        self.epoch = epoch


class ModelReleasedError(NNVizError, RuntimeError):
    """Raised when a model or dataset is used after release()."""
    pass
