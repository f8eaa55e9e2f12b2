"""
NNViz Trainer
==============
Drives a cancellable training loop over a FeedForwardClassifier while
streaming one TrainMetric per completed epoch.

What This Handles:
    - Config and shape checks before the first epoch
    - Mini-batch updates with torch autograd and a torch.optim optimizer
    - Epoch-level loss and accuracy (weighted by batch size)
    - One cooperative yield point per epoch, which is also the only place
      a stop request is observed
    - Aborting on a non-finite loss with the partial metrics attached

Analogy:
    The trainer is a metronome player: it plays a whole bar (an epoch),
    announces the bar number (the metric), and only then glances at the
    conductor (the cancellation token). It never stops mid-bar.

Usage:
    >>> trainer = Trainer()
    >>> async for metric in trainer.stream(model, data, TrainingConfig(epochs=50)):
    ...     print(metric.epoch, metric.loss)

    >>> result = await trainer.train(model, data)
    >>> result.stopped
    False

    >>> run = trainer.start(model, data)   # inside a running event loop
    >>> run.stop()
    >>> result = await run
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from contextlib import aclosing
from dataclasses import asdict, dataclass, field
from typing import AsyncIterator, Optional

import torch

from nnviz.config import TrainingConfig
from nnviz.data.datasets import Dataset
from nnviz.exceptions import TrainingError
from nnviz.model.classifier import FeedForwardClassifier
from nnviz.objectives import LossFn, build_optimizer, canonical_loss_name, resolve_loss
from nnviz.training.cancellation import CancellationToken, TrainingRun

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrainMetric:
    """Loss (and accuracy) of one completed epoch. ``epoch`` is 1-based."""
    epoch: int
    loss: float
    accuracy: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class TrainResult:
    """
    Outcome of a finished training run.

    Attributes
    ----------
    metrics : list[TrainMetric]
        One entry per completed epoch, oldest first.
    epochs_requested : int
        The ``epochs`` value the run was started with.
    stopped : bool
        True if a stop request ended the run before the last epoch.
    """
    metrics: list[TrainMetric] = field(default_factory=list)
    epochs_requested: int = 0
    stopped: bool = False

    @property
    def epochs_completed(self) -> int:
        return len(self.metrics)

    @property
    def final_loss(self) -> Optional[float]:
        return self.metrics[-1].loss if self.metrics else None


class Trainer:
    """
    Cooperative, cancellable training loop.

    One run at a time per trainer. Starting a new run while one is active
    is a caller error; the trainer logs a warning but does not refuse.

    Parameters
    ----------
    name : str
        Human-readable name for this trainer (for logging).
    """

    def __init__(self, name: str = "trainer"):
        self.name = name
        self.metrics: list[TrainMetric] = []
        self._token = CancellationToken()
        self._active = False

    @property
    def is_active(self) -> bool:
        return self._active

    def stop(self) -> None:
        """Request the in-flight run to stop after its current epoch."""
        if self._active:
            logger.info(f"[{self.name}] Stop requested")
        self._token.cancel()

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def stream(
        self,
        model: FeedForwardClassifier,
        dataset: Dataset,
        config: Optional[TrainingConfig] = None,
    ) -> AsyncIterator[TrainMetric]:
        """
        Train and yield each epoch's metric as soon as it is computed.

        Raises
        ------
        ConfigError
            If ``config`` is invalid (before any epoch runs).
        ShapeError
            If the dataset does not fit the model (before any epoch runs).
        TrainingError
            If an epoch produces a non-finite loss or torch fails mid-run.

        Notes
        -----
        A consumer that stops iterating early should close the stream
        (``async with contextlib.aclosing(trainer.stream(...))``) so the
        trainer goes idle at once instead of when the loop finalizes it.
        """
        config = self._prepare(model, dataset, config)
        token = self._begin()
        # Leaving the stream early closes the epoch loop with it, so the
        # trainer is idle again as soon as the stream itself is closed
        async with aclosing(self._run_epochs(model, dataset, config, token)) as epochs:
            async for metric in epochs:
                yield metric

    async def train(
        self,
        model: FeedForwardClassifier,
        dataset: Dataset,
        config: Optional[TrainingConfig] = None,
    ) -> TrainResult:
        """Run training to completion (or until stopped) and return the result."""
        config = self._prepare(model, dataset, config)
        token = self._begin()
        return await self._collect(model, dataset, config, token)

    def start(
        self,
        model: FeedForwardClassifier,
        dataset: Dataset,
        config: Optional[TrainingConfig] = None,
    ) -> TrainingRun:
        """
        Schedule training as a task on the running event loop.

        Config and shape errors are raised here, synchronously, so a bad
        request never produces a task.

        Raises
        ------
        RuntimeError
            If called without a running event loop.
        """
        config = self._prepare(model, dataset, config)
        loop = asyncio.get_running_loop()
        token = self._begin()
        task = loop.create_task(self._collect(model, dataset, config, token))
        return TrainingRun(task, token, self.metrics)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _prepare(
        self,
        model: FeedForwardClassifier,
        dataset: Dataset,
        config: Optional[TrainingConfig],
    ) -> TrainingConfig:
        config = config or TrainingConfig()
        config.validate()
        model.ensure_live()
        dataset.ensure_live()
        model.check_data(dataset.train_inputs, dataset.train_labels, split="train")
        if self._active:
            logger.warning(f"[{self.name}] A training run is already active on this trainer")
        return config

    def _begin(self) -> CancellationToken:
        # Fresh token and metric list per run; earlier runs keep their own
        self._token = CancellationToken()
        self.metrics = []
        return self._token

    async def _collect(
        self,
        model: FeedForwardClassifier,
        dataset: Dataset,
        config: TrainingConfig,
        token: CancellationToken,
    ) -> TrainResult:
        metrics = []
        async for metric in self._run_epochs(model, dataset, config, token):
            metrics.append(metric)
        return TrainResult(
            metrics=metrics,
            epochs_requested=config.epochs,
            stopped=len(metrics) < config.epochs,
        )

    async def _run_epochs(
        self,
        model: FeedForwardClassifier,
        dataset: Dataset,
        config: TrainingConfig,
        token: CancellationToken,
    ) -> AsyncIterator[TrainMetric]:
        loss_name = canonical_loss_name(config.loss)
        loss_fn = resolve_loss(loss_name)
        model.compile(loss=loss_name, metrics=("accuracy",))
        optimizer = build_optimizer(config.optimizer, model.parameters(), config.learning_rate)

        generator = None
        if config.shuffle:
            generator = torch.Generator()
            if config.seed is not None:
                generator.manual_seed(config.seed)
            else:
                generator.seed()

        inputs = model.flatten_inputs(dataset.train_inputs)
        labels = dataset.train_labels
        metrics = self.metrics

        logger.info(
            f"[{self.name}] Starting training: {config.epochs} epochs, "
            f"batch_size={config.batch_size}, {config.optimizer}@{config.learning_rate}, "
            f"loss={loss_name}, {inputs.shape[0]} examples"
        )

        self._active = True
        start_time = time.time()
        try:
            for epoch in range(1, config.epochs + 1):
                loss, accuracy = self._train_epoch(
                    model, optimizer, loss_fn, inputs, labels, config, generator, epoch
                )
                metric = TrainMetric(epoch=epoch, loss=loss, accuracy=accuracy)
                metrics.append(metric)
                logger.info(
                    f"[{self.name}] Epoch {epoch}/{config.epochs} — "
                    f"loss={loss:.4f}, accuracy={accuracy:.3f}"
                )
                yield metric

                # Epoch boundary: hand control back to the loop, then poll
                await asyncio.sleep(0)
                if token.cancelled:
                    logger.info(
                        f"[{self.name}] Stopped after epoch {epoch}/{config.epochs}"
                    )
                    return

            logger.info(
                f"[{self.name}] Training complete in {time.time() - start_time:.1f}s — "
                f"final_loss={metrics[-1].loss:.4f}"
            )
        finally:
            self._active = False
            model.eval()

    def _train_epoch(
        self,
        model: FeedForwardClassifier,
        optimizer: torch.optim.Optimizer,
        loss_fn: LossFn,
        inputs: torch.Tensor,
        labels: torch.Tensor,
        config: TrainingConfig,
        generator: Optional[torch.Generator],
        epoch: int,
    ) -> tuple[float, float]:
        """
        One pass over the training set.

        Returns
        -------
        tuple[float, float]
            Mean loss and accuracy over all examples, each batch weighted
            by its size. Both are computed on the outputs seen before that
            batch's update.
        """
        model.train()
        n_examples = inputs.shape[0]
        if generator is not None:
            order = torch.randperm(n_examples, generator=generator)
            inputs, labels = inputs[order], labels[order]

        total_loss = 0.0
        total_correct = 0
        try:
            for start in range(0, n_examples, config.batch_size):
                x = inputs[start:start + config.batch_size]
                y = labels[start:start + config.batch_size]

                optimizer.zero_grad()
                outputs = model(x)
                loss = loss_fn(outputs, y)

                loss_value = loss.item()
                if not math.isfinite(loss_value):
                    raise TrainingError(
                        f"Non-finite loss ({loss_value}) at epoch {epoch}, "
                        f"batch starting at example {start}",
                        metrics=self.metrics,
                        epoch=epoch,
                    )

                loss.backward()
                optimizer.step()

                total_loss += loss_value * x.shape[0]
                total_correct += int(
                    (outputs.detach().argmax(dim=-1) == y.argmax(dim=-1)).sum().item()
                )
        except TrainingError:
            raise
        except RuntimeError as e:
            raise TrainingError(
                f"Training failed at epoch {epoch}: {e}",
                metrics=self.metrics,
                epoch=epoch,
            ) from e

        return total_loss / n_examples, total_correct / n_examples
