"""
NNViz Session
==============
Explicit owner of the "current model". Every operation reads or replaces
the model through the session instead of through shared global state.

Ownership rules:
    - build() creates the new model first, then releases the old one,
      then installs the new one. A failed build leaves the old model in
      place.
    - build() and close() are refused or stop the run while a training
      run is active.
    - Datasets the session selects itself are released when the call that
      selected them ends. Datasets passed in by the caller stay the
      caller's to release.

Usage:
    >>> with Session(NNVizConfig()) as session:
    ...     session.build()
    ...     result = asyncio.run(session.train())
    ...     report = session.evaluate(threshold=0.5)
    ...     layers = session.forward([0.0, 1.0])
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from typing import Any, ContextManager, Optional, Sequence

from nnviz.config import NNVizConfig, TrainingConfig
from nnviz.data.datasets import Dataset, dataset_scope, select_dataset
from nnviz.evaluation.activations import Activations, ForwardActivationRunner, ForwardResult
from nnviz.evaluation.evaluator import EvalReport, Evaluator
from nnviz.model.builder import build_model
from nnviz.model.classifier import FeedForwardClassifier
from nnviz.resources import release
from nnviz.training.cancellation import TrainingRun
from nnviz.training.trainer import TrainMetric, TrainResult, Trainer

logger = logging.getLogger(__name__)


class Session:
    """
    Holds one model and the components that train, inspect and evaluate it.

    Parameters
    ----------
    config : NNVizConfig or None
        Default spec, training hyperparameters, dataset and threshold.
    """

    def __init__(self, config: Optional[NNVizConfig] = None):
        self.config = config or NNVizConfig()
        self.model: Optional[FeedForwardClassifier] = None
        self.trainer = Trainer()
        self.runner = ForwardActivationRunner()
        self.evaluator = Evaluator(self.config.evaluation)
        self._run: Optional[TrainingRun] = None

    # ------------------------------------------------------------------
    # Model lifecycle
    # ------------------------------------------------------------------

    @property
    def is_training(self) -> bool:
        if self.trainer.is_active:
            return True
        return self._run is not None and not self._run.done()

    def build(
        self,
        spec: Optional[Sequence[Any]] = None,
        seed: Optional[int] = None,
    ) -> FeedForwardClassifier:
        """
        Build a model and make it the current one.

        Parameters
        ----------
        spec : sequence of LayerSpec or layer mappings, optional
            Defaults to ``config.model.layers``.
        seed : int or None
            Initialization seed; defaults to ``config.training.seed``.

        Raises
        ------
        ValidationError
            If the spec is malformed. The current model is kept.
        RuntimeError
            If a training run is active.
        """
        if self.is_training:
            raise RuntimeError("Cannot rebuild the model while a training run is active")

        spec = self.config.model.layers if spec is None else spec
        seed = self.config.training.seed if seed is None else seed
        new_model = build_model(spec, seed=seed)

        old_model, self.model = self.model, new_model
        if old_model is not None:
            release(old_model)
            logger.info("Replaced current model; previous model released")
        return new_model

    def describe(self) -> list[dict]:
        return self.model.describe() if self.model is not None else []

    def close(self) -> None:
        """Stop any active run and release the current model."""
        if self.is_training:
            self.trainer.stop()
        release(self.model)
        self.model = None

    def __enter__(self) -> Session:
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    async def train(
        self,
        dataset: Optional[Dataset] = None,
        config: Optional[TrainingConfig] = None,
        fresh: bool = False,
    ) -> TrainResult:
        """
        Train the current model (building one first if there is none, or
        if ``fresh`` is set) and return the result.
        """
        if fresh or self.model is None:
            self.build()
        with self._dataset_scope(dataset) as data:
            return await self.trainer.train(self.model, data, config or self.config.training)

    def start_training(
        self,
        dataset: Optional[Dataset] = None,
        config: Optional[TrainingConfig] = None,
        fresh: bool = False,
    ) -> TrainingRun:
        """Start training in the background; must be called inside an event loop."""
        if fresh or self.model is None:
            self.build()

        owned = dataset is None
        data = self._select_dataset() if owned else dataset
        try:
            run = self.trainer.start(self.model, data, config or self.config.training)
        except Exception:
            if owned:
                release(data)
            raise

        if owned:
            run.add_done_callback(lambda _run: release(data))
        self._run = run
        return run

    def stop(self) -> None:
        self.trainer.stop()

    @property
    def metrics(self) -> list[TrainMetric]:
        """Metrics of the latest run, oldest first."""
        return list(self.trainer.metrics)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def forward(self, inputs: Sequence[float]) -> Optional[Activations]:
        """Per-layer activations for one input, or None without a model."""
        if self.model is None:
            logger.warning("forward() called before a model was built")
            return None
        return self.runner.run(self.model, inputs)

    def forward_all(
        self,
        inputs: Optional[Sequence[Sequence[float]]] = None,
    ) -> Optional[list[ForwardResult]]:
        """Forward every input; defaults to the four XOR inputs."""
        if self.model is None:
            logger.warning("forward_all() called before a model was built")
            return None
        if inputs is not None:
            return self.runner.run_all(self.model, inputs)
        with dataset_scope("xor") as data:
            return self.runner.run_all(self.model, data.train_inputs)

    def evaluate(
        self,
        dataset: Optional[Dataset] = None,
        threshold: Optional[float] = None,
    ) -> Optional[EvalReport]:
        """Evaluate the current model, or return None without a model."""
        if self.model is None:
            logger.warning("evaluate() called before a model was built")
            return None
        with self._dataset_scope(dataset) as data:
            return self.evaluator.evaluate(self.model, data, threshold=threshold)

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    def _select_dataset(self) -> Dataset:
        data_cfg = self.config.data
        return select_dataset(data_cfg.dataset, n_points=data_cfg.spiral_points, seed=data_cfg.seed)

    def _dataset_scope(self, dataset: Optional[Dataset]) -> ContextManager[Dataset]:
        if dataset is not None:
            return nullcontext(dataset)
        data_cfg = self.config.data
        return dataset_scope(data_cfg.dataset, n_points=data_cfg.spiral_points, seed=data_cfg.seed)

    def __repr__(self) -> str:
        state = "training" if self.is_training else "idle"
        return f"Session({self.model!r}, {state})"
