"""
NNViz Forward Activation Runner
================================
Runs one input through the model layer by layer and records what every
layer outputs, for the activation heat-map.

Algorithm:
    x0 = input as a (1, in_features) batch
    for layer i in order:
        x_{i+1} = layer_i(x_i)
        record x_{i+1}[0]
        drop x_i
    return [x_1[0], x_2[0], ..., x_N[0]]

Each intermediate tensor lives in a TensorScope and is dropped as soon as
the next layer has consumed it. The scope is closed on both the success
and failure paths, so a failed pass never leaves intermediates behind.

Failure policy:
    - no model, or a released model → None (nothing to show)
    - wrong input length            → ShapeError, before any layer runs
    - anything else inside a layer  → None, logged with the layer index
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import torch

from nnviz.exceptions import ShapeError
from nnviz.model.classifier import FeedForwardClassifier
from nnviz.resources import TensorScope

logger = logging.getLogger(__name__)

Activations = list[list[float]]


@dataclass
class ForwardResult:
    """Activations of one input plus the output row read as probabilities."""
    input: list[float]
    activations: Activations
    probabilities: list[float]

    @property
    def predicted_class(self) -> int:
        # list.index returns the first maximum
        return self.probabilities.index(max(self.probabilities))

    def to_dict(self) -> dict:
        return {
            "input": self.input,
            "activations": self.activations,
            "probabilities": self.probabilities,
            "predictedClass": self.predicted_class,
        }


class ForwardActivationRunner:
    """
    Read-only single-example forward pass that records per-layer outputs.

    Attributes
    ----------
    live_tensors : int
        Number of intermediate tensors still held after the last run.
        Always 0 once run() returns.
    """

    def __init__(self):
        self.live_tensors = 0

    def run(
        self,
        model: Optional[FeedForwardClassifier],
        inputs: Sequence[float] | torch.Tensor,
    ) -> Optional[Activations]:
        """
        Parameters
        ----------
        model : FeedForwardClassifier or None
            The model to read from.
        inputs : sequence of float or torch.Tensor
            One example; any shape whose element count equals the model's
            input arity.

        Returns
        -------
        list[list[float]] or None
            One activation vector per layer, in layer order. The last one
            has ``model.output_arity`` entries. None if there is no usable
            model or a layer failed.

        Raises
        ------
        ShapeError
            If the input length differs from the model input arity.
        """
        if model is None or model.is_released:
            logger.debug("No model available for forward activations")
            return None

        x = torch.as_tensor(inputs, dtype=torch.float32).reshape(1, -1)
        if x.shape[1] != model.in_features:
            raise ShapeError(
                f"Input has {x.shape[1]} values but the model expects {model.in_features} "
                f"(inputArity={list(model.input_arity)})",
                expected=model.in_features,
                actual=int(x.shape[1]),
            )

        activations: Activations = []
        layer_idx = -1
        scope = TensorScope("forward")
        try:
            with torch.no_grad():
                # The scope and `current` hold the only references to each
                # intermediate; dropping both frees it before the next layer
                current = scope.track(x)
                del x
                for layer_idx, layer in enumerate(model.layers):
                    out = scope.track(layer(current))
                    activations.append(out[0].tolist())
                    scope.drop(current)
                    current, out = out, None
            return activations
        except Exception:
            logger.exception(
                f"Forward activation pass failed at layer {layer_idx} "
                f"(inputArity={list(model.input_arity)})"
            )
            return None
        finally:
            scope.close()
            self.live_tensors = scope.live

    def run_all(
        self,
        model: Optional[FeedForwardClassifier],
        inputs: Sequence[Sequence[float]] | torch.Tensor,
    ) -> Optional[list[ForwardResult]]:
        """
        Run every input in turn (the "run all samples" view).

        Returns None if there is no usable model or any pass failed.
        """
        if model is None or model.is_released:
            return None

        results = []
        for row in inputs:
            row = torch.as_tensor(row, dtype=torch.float32)
            activations = self.run(model, row)
            if activations is None:
                return None
            results.append(
                ForwardResult(
                    input=row.reshape(-1).tolist(),
                    activations=activations,
                    probabilities=activations[-1],
                )
            )
        return results


def run_forward_activations(
    model: Optional[FeedForwardClassifier],
    inputs: Sequence[float] | torch.Tensor,
) -> Optional[Activations]:
    """Convenience wrapper around ``ForwardActivationRunner().run``."""
    return ForwardActivationRunner().run(model, inputs)
