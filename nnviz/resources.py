"""
NNViz Resource Scoping
=======================
Helpers that tie the lifetime of numeric resources (models, datasets,
intermediate tensors) to the call that created them.

Every resource is acquired, used, and released inside one scope, on the
success path AND on the failure path. Release failures are logged and
swallowed: there is nothing useful a caller could do with them.

Usage:
    >>> with scoped(select_dataset("xor")) as data:
    ...     report = evaluator.evaluate(model, data, threshold=0.5)
    # data.release() has run here, even if evaluate() raised

    >>> with TensorScope("forward") as scope:
    ...     x = scope.track(torch.zeros(1, 2))
    ...     y = scope.track(layer(x))
    ...     scope.drop(x)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, TypeVar

import torch

logger = logging.getLogger(__name__)

T = TypeVar("T")


def release(obj: Any) -> None:
    """
    Release ``obj`` if it knows how to release itself.

    Objects without a ``release()`` method and ``None`` are ignored.
    Exceptions raised by ``release()`` are logged, never propagated.
    """
    if obj is None:
        return
    release_fn = getattr(obj, "release", None)
    if not callable(release_fn):
        return
    try:
        release_fn()
    except Exception as e:
        logger.warning(f"Failed to release {type(obj).__name__}: {e}")


@contextmanager
def scoped(obj: T) -> Iterator[T]:
    """Yield ``obj`` and release it when the block exits, however it exits."""
    try:
        yield obj
    finally:
        release(obj)


class TensorScope:
    """
    Tracks intermediate tensors for the duration of a ``with`` block.

    Tensors are only referenced from the scope; dropping them from the
    scope (explicitly with ``drop`` or implicitly on exit) removes the last
    reference the scope owner holds, so the numeric library can reclaim
    the memory immediately instead of whenever the caller's frame dies.

    Parameters
    ----------
    label : str
        Human-readable label used in log messages.
    """

    def __init__(self, label: str = "scope"):
        self.label = label
        self._tensors: list[torch.Tensor] = []

    def track(self, tensor: torch.Tensor) -> torch.Tensor:
        """Register ``tensor`` with this scope and return it unchanged."""
        self._tensors.append(tensor)
        return tensor

    def drop(self, tensor: torch.Tensor) -> None:
        """Release a single tracked tensor before the scope ends."""
        for idx, tracked in enumerate(self._tensors):
            if tracked is tensor:
                del self._tensors[idx]
                return

    @property
    def live(self) -> int:
        """Number of tensors still held by the scope."""
        return len(self._tensors)

    def close(self) -> None:
        n_live = len(self._tensors)
        self._tensors.clear()
        if n_live:
            logger.debug(f"[{self.label}] Released {n_live} tensor(s) on exit")

    def __enter__(self) -> TensorScope:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"TensorScope({self.label}: live={self.live})"
