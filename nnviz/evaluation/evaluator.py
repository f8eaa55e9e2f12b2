"""
NNViz Evaluator
================
Scores a model on a dataset's test split and classifies each prediction
as confident or not against a probability threshold.

What Gets Measured:
    1. Loss over the whole test split (the model's compiled loss, or
       categorical cross-entropy if it was never compiled)
    2. Accuracy, only when the model was compiled with "accuracy"
    3. One EvalRow per test example: probabilities, predicted class,
       true class and the confidence flag

Tie-breaking:
    predicted and true classes both use numpy.argmax, which returns the
    first index attaining the maximum.

Threshold boundaries:
    threshold = 0    → every row is confident
    threshold > 1    → no row is confident

Usage:
    >>> evaluator = Evaluator(EvalConfig(threshold=0.7))
    >>> with dataset_scope("xor") as data:
    ...     report = evaluator.evaluate(model, data)
    >>> print(format_report(report))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import torch

from nnviz.config import EvalConfig
from nnviz.data.datasets import Dataset
from nnviz.model.classifier import FeedForwardClassifier
from nnviz.objectives import resolve_loss

logger = logging.getLogger(__name__)

DEFAULT_EVAL_LOSS = "categorical_crossentropy"


@dataclass
class EvalRow:
    """Evaluation result for one test example."""
    index: int
    input: list[float]
    class_probabilities: list[float]
    predicted_class: int
    true_class: int
    confident: bool

    @property
    def correct(self) -> bool:
        return self.predicted_class == self.true_class

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "input": self.input,
            "classProbabilities": self.class_probabilities,
            "predictedClass": self.predicted_class,
            "trueClass": self.true_class,
            "confident": self.confident,
        }


@dataclass
class EvalReport:
    """
    Aggregate loss/accuracy plus the per-example rows, in dataset order.

    ``accuracy`` is None when the model was not compiled with an accuracy
    metric.
    """
    loss: float
    accuracy: Optional[float]
    threshold: float
    rows: list[EvalRow] = field(default_factory=list)

    @property
    def n_correct(self) -> int:
        return sum(row.correct for row in self.rows)

    @property
    def n_confident(self) -> int:
        return sum(row.confident for row in self.rows)

    def to_dict(self) -> dict:
        result = {
            "loss": self.loss,
            "threshold": self.threshold,
            "rows": [row.to_dict() for row in self.rows],
        }
        if self.accuracy is not None:
            result["accuracy"] = self.accuracy
        return result


class Evaluator:
    """
    Parameters
    ----------
    config : EvalConfig or None
        Default threshold and inference batch size.
    """

    def __init__(self, config: Optional[EvalConfig] = None):
        self.config = config or EvalConfig()

    def evaluate(
        self,
        model: FeedForwardClassifier,
        dataset: Dataset,
        threshold: Optional[float] = None,
    ) -> EvalReport:
        """
        Evaluate ``model`` on ``dataset``'s test split.

        The dataset is NOT released here; the caller owns it (see
        ``dataset_scope``).

        Parameters
        ----------
        model : FeedForwardClassifier
            Model to read from. Never modified.
        dataset : Dataset
            Provides ``test_inputs`` and one-hot ``test_labels``.
        threshold : float or None
            Confidence threshold; defaults to ``config.threshold``.

        Raises
        ------
        ShapeError
            If the test split does not fit the model (before inference).
        ModelReleasedError
            If the model or dataset was released.
        """
        threshold = self.config.threshold if threshold is None else float(threshold)
        dataset.ensure_live()
        model.check_data(dataset.test_inputs, dataset.test_labels, split="test")

        inputs = dataset.test_inputs
        labels = dataset.test_labels
        batch_size = self.config.batch_size

        # Aggregate loss / accuracy
        loss_fn = resolve_loss(model.loss_name or DEFAULT_EVAL_LOSS)
        outputs = model.predict(inputs, batch_size=batch_size)
        loss = float(loss_fn(outputs, labels).item())
        accuracy = None
        if "accuracy" in model.metric_names:
            accuracy = float(
                (outputs.argmax(dim=-1) == labels.argmax(dim=-1)).float().mean().item()
            )
        del outputs

        # Per-row predictions
        probs = model.predict(inputs, batch_size=batch_size).numpy()
        truth = labels.numpy()
        predicted = np.argmax(probs, axis=1)
        actual = np.argmax(truth, axis=1)
        flat_inputs = model.flatten_inputs(inputs).numpy()

        rows = []
        for idx in range(probs.shape[0]):
            pred = int(predicted[idx])
            rows.append(
                EvalRow(
                    index=idx,
                    input=flat_inputs[idx].tolist(),
                    class_probabilities=probs[idx].tolist(),
                    predicted_class=pred,
                    true_class=int(actual[idx]),
                    confident=bool(probs[idx, pred] >= threshold),
                )
            )

        report = EvalReport(loss=loss, accuracy=accuracy, threshold=threshold, rows=rows)
        acc_str = f"{accuracy:.3f}" if accuracy is not None else "n/a"
        logger.info(
            f"[evaluator] {dataset.name}: loss={loss:.4f}, accuracy={acc_str}, "
            f"correct={report.n_correct}/{len(rows)}, "
            f"confident={report.n_confident}/{len(rows)} @ threshold={threshold}"
        )
        return report


def format_report(report: EvalReport) -> str:
    """Render an EvalReport as a plain-text table."""
    lines = [
        "=" * 60,
        "NNViz Evaluation Report",
        "=" * 60,
        f"Loss:      {report.loss:.4f}",
    ]
    if report.accuracy is not None:
        lines.append(f"Accuracy:  {report.accuracy:.3f}")
    lines.append(f"Threshold: {report.threshold}")
    lines.append(
        f"Correct:   {report.n_correct}/{len(report.rows)}    "
        f"Confident: {report.n_confident}/{len(report.rows)}"
    )
    lines.append("-" * 60)
    lines.append(f"{'#':>4}  {'input':<18} {'probabilities':<22} pred true conf")
    for row in report.rows:
        inp = ", ".join(f"{v:.2f}" for v in row.input)
        prob = ", ".join(f"{p:.3f}" for p in row.class_probabilities)
        lines.append(
            f"{row.index:>4}  {inp:<18} {prob:<22} {row.predicted_class:>4} "
            f"{row.true_class:>4} {'yes' if row.confident else 'no':>4}"
        )
    lines.append("=" * 60)
    return "\n".join(lines)
