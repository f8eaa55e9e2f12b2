"""
NNViz Feed-Forward Classifier
===============================
The runnable model produced by the Model Builder.

Architecture:
    Input (batch, *input_arity)
      → flatten to (batch, prod(input_arity))
      → DenseLayer 0 → DenseLayer 1 → ... → DenseLayer N-1
    Output (batch, output_arity)

Ownership:
    Exactly one classifier is "current" per Session. The Trainer is the
    only component that mutates its parameters; the Forward Activation
    Runner and the Evaluator only read them. When the session builds a
    replacement the old classifier is released: its parameters are
    dropped and any further use raises ModelReleasedError.

Usage:
    >>> model = build_model(DEFAULT_XOR_SPEC)
    >>> model.n_layers, model.output_arity
    (2, 2)
    >>> probs = model.predict(torch.tensor([[0.0, 1.0]]))
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

import torch
import torch.nn as nn

from nnviz.exceptions import ModelReleasedError, ShapeError
from nnviz.model.dense import DenseLayer
from nnviz.model.spec import LayerSpec

logger = logging.getLogger(__name__)


class FeedForwardClassifier(nn.Module):
    """
    Ordered stack of layers built from a model spec.

    Parameters
    ----------
    layers : sequence of DenseLayer
        Layers in forward order.
    input_arity : sequence of int
        Shape of one input example, as declared by the first layer spec.
    spec : sequence of LayerSpec
        The spec the model was built from (kept for describe()).
    """

    def __init__(
        self,
        layers: Sequence[DenseLayer],
        input_arity: Sequence[int],
        spec: Sequence[LayerSpec],
    ):
        super().__init__()
        self.layers = nn.ModuleList(layers)
        self.input_arity = tuple(input_arity)
        self.in_features = math.prod(self.input_arity)
        self.spec = list(spec)

        # Set by compile(); read by the Evaluator
        self.loss_name: Optional[str] = None
        self.metric_names: tuple[str, ...] = ()

        self._released = False

    # ------------------------------------------------------------------
    # Forward
    # ------------------------------------------------------------------

    def flatten_inputs(self, x: torch.Tensor) -> torch.Tensor:
        """Reshape (batch, *input_arity) to (batch, in_features)."""
        if x.dim() == 1:
            x = x.unsqueeze(0)
        return x.reshape(x.shape[0], -1)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        self.ensure_live()
        h = self.flatten_inputs(x)
        for layer in self.layers:
            h = layer(h)
        return h

    @torch.no_grad()
    def predict(self, inputs: torch.Tensor, batch_size: Optional[int] = None) -> torch.Tensor:
        """
        Batched inference without gradient tracking.

        Parameters
        ----------
        inputs : torch.Tensor
            Shape (n_examples, *input_arity) or (n_examples, in_features).
        batch_size : int or None
            Examples per forward call. None runs everything in one call.

        Returns
        -------
        torch.Tensor
            Shape (n_examples, output_arity).
        """
        self.ensure_live()
        self.eval()
        if batch_size is None or inputs.shape[0] <= batch_size:
            return self(inputs)
        chunks = [
            self(inputs[start:start + batch_size])
            for start in range(0, inputs.shape[0], batch_size)
        ]
        return torch.cat(chunks, dim=0)

    # ------------------------------------------------------------------
    # Training objective
    # ------------------------------------------------------------------

    def compile(self, loss: str, metrics: Sequence[str] = ("accuracy",)) -> None:
        """Record the loss and metrics the model is trained with."""
        self.loss_name = loss
        self.metric_names = tuple(metrics)

    @property
    def is_compiled(self) -> bool:
        return self.loss_name is not None

    def check_data(self, inputs: torch.Tensor, labels: torch.Tensor, split: str = "train") -> None:
        """
        Check that an (inputs, labels) pair fits this model.

        Raises
        ------
        ShapeError
            If the feature count differs from the input arity, the label
            width differs from the output arity, or the row counts differ.
        """
        self.ensure_live()
        if inputs.dim() < 2:
            raise ShapeError(
                f"{split} inputs must be 2-D (examples, features), got shape {tuple(inputs.shape)}",
                expected=self.in_features,
                actual=tuple(inputs.shape),
            )
        n_features = math.prod(inputs.shape[1:])
        if n_features != self.in_features:
            raise ShapeError(
                f"{split} inputs have {n_features} features but the model expects "
                f"{self.in_features} (inputArity={list(self.input_arity)})",
                expected=self.in_features,
                actual=n_features,
            )
        if labels.dim() != 2 or labels.shape[1] != self.output_arity:
            raise ShapeError(
                f"{split} labels have shape {tuple(labels.shape)} but the model "
                f"outputs {self.output_arity} classes",
                expected=self.output_arity,
                actual=tuple(labels.shape),
            )
        if labels.shape[0] != inputs.shape[0]:
            raise ShapeError(
                f"{split} inputs have {inputs.shape[0]} rows but labels have {labels.shape[0]}",
                expected=int(inputs.shape[0]),
                actual=int(labels.shape[0]),
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_released(self) -> bool:
        return self._released

    def ensure_live(self) -> None:
        if self._released:
            raise ModelReleasedError("Model has been released; build a new one.")

    def release(self) -> None:
        """
        Drop all parameters. Safe to call more than once.
        """
        if self._released:
            return
        n_params = self.n_params
        self.layers = nn.ModuleList()
        self._released = True
        logger.debug(f"Released model ({n_params} params)")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def n_layers(self) -> int:
        return len(self.layers)

    @property
    def output_arity(self) -> int:
        self.ensure_live()
        return self.layers[-1].units

    @property
    def n_params(self) -> int:
        return sum(p.numel() for p in self.parameters())

    def describe(self) -> list[dict]:
        """
        Per-layer summary for the network canvas.

        Returns
        -------
        list[dict]
            One entry per layer with ``index``, ``kind``, ``in_features``,
            ``units``, ``activation`` and ``n_params``.
        """
        self.ensure_live()
        return [
            {
                "index": idx,
                "kind": self.spec[idx].kind.value,
                "in_features": layer.in_features,
                "units": layer.units,
                "activation": layer.activation_kind.value,
                "n_params": layer.n_params,
            }
            for idx, layer in enumerate(self.layers)
        ]

    def __repr__(self) -> str:
        if self._released:
            return "FeedForwardClassifier(released)"
        widths = "→".join(str(w) for w in [self.in_features] + [l.units for l in self.layers])
        return (
            f"FeedForwardClassifier("
            f"{widths}, layers={self.n_layers}, params={self.n_params})"
        )
