"""
NNViz Training Run Handles
===========================
Cooperative cancellation and the future-like handle for a background
training run.

A CancellationToken is a flag the trainer polls exactly once per epoch,
right after that epoch's metric has been emitted. Setting it never
interrupts an epoch in progress.

A TrainingRun wraps the asyncio task driving Trainer.train() so the
caller can poll the live metric list, request a stop, and await the
final TrainResult:

    >>> run = trainer.start(model, data, config)
    >>> ...
    >>> run.stop()
    >>> result = await run
    >>> len(result.metrics) <= config.epochs
    True
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Callable, Generator

if TYPE_CHECKING:
    from nnviz.training.trainer import TrainMetric, TrainResult


class CancellationToken:
    """One-shot stop flag shared between a caller and a running loop."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


class TrainingRun:
    """
    Handle for a training run executing as an asyncio task.

    Parameters
    ----------
    task : asyncio.Task
        Task resolving to a TrainResult.
    token : CancellationToken
        The token the run polls at every epoch boundary.
    metrics : list[TrainMetric]
        The trainer's live metric list for this run (read-only view).
    """

    def __init__(
        self,
        task: asyncio.Task,
        token: CancellationToken,
        metrics: list[TrainMetric],
    ):
        self._task = task
        self._token = token
        self._metrics = metrics

    @property
    def metrics(self) -> list[TrainMetric]:
        """Metrics emitted so far, oldest first."""
        return list(self._metrics)

    def stop(self) -> None:
        """Request a stop at the next epoch boundary."""
        self._token.cancel()

    @property
    def stop_requested(self) -> bool:
        return self._token.cancelled

    def done(self) -> bool:
        return self._task.done()

    def add_done_callback(self, fn: Callable[[TrainingRun], Any]) -> None:
        """Call ``fn(run)`` once the run has finished, however it finished."""
        self._task.add_done_callback(lambda _task: fn(self))

    def result(self) -> TrainResult:
        """
        Return the finished run's result.

        Raises
        ------
        asyncio.InvalidStateError
            If the run has not finished yet.
        TrainingError
            If the run aborted on a numeric failure.
        """
        return self._task.result()

    async def wait(self) -> TrainResult:
        return await self._task

    def __await__(self) -> Generator[Any, None, TrainResult]:
        return self._task.__await__()

    def __repr__(self) -> str:
        state = "done" if self.done() else "running"
        return f"TrainingRun({state}, epochs_emitted={len(self._metrics)})"
