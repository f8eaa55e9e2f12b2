"""
NNViz Dense Layer
==================
A fully-connected layer: weight matrix, bias vector, and activation.

Architecture:
    Input (in_features)
      → Linear (in_features → units)    weights + bias
      → Activation                       relu / tanh / sigmoid / softmax / linear
    Output (units)

This is the unit the activation panel shows one column of circles for:
the vector a DenseLayer returns for one example is that layer's
"activation vector".

Usage:
    >>> layer = DenseLayer(in_features=2, units=4, activation=Activation.TANH)
    >>> x = torch.randn(3, 2)   # (batch, in_features)
    >>> out = layer(x)           # (3, 4)
"""

from __future__ import annotations

import logging

import torch
import torch.nn as nn

from nnviz.model.spec import Activation

logger = logging.getLogger(__name__)


def make_activation(activation: Activation) -> nn.Module:
    """Map an Activation enum member to the torch module implementing it."""
    if activation is Activation.RELU:
        return nn.ReLU()
    if activation is Activation.TANH:
        return nn.Tanh()
    if activation is Activation.SIGMOID:
        return nn.Sigmoid()
    if activation is Activation.SOFTMAX:
        return nn.Softmax(dim=-1)
    return nn.Identity()


class DenseLayer(nn.Module):
    """
    Fully-connected layer with an activation.

    Parameters
    ----------
    in_features : int
        Size of each input vector.
    units : int
        Size of each output vector.
    activation : Activation
        Activation applied after the affine map.
    layer_idx : int
        Position of this layer in the model (for logging and describe()).
    """

    def __init__(
        self,
        in_features: int,
        units: int,
        activation: Activation = Activation.LINEAR,
        layer_idx: int = 0,
    ):
        super().__init__()

        if in_features <= 0:
            raise ValueError(f"in_features must be positive, got {in_features}")
        if units <= 0:
            raise ValueError(f"units must be positive, got {units}")

        self.in_features = in_features
        self.units = units
        self.activation_kind = activation
        self.layer_idx = layer_idx

        self.linear = nn.Linear(in_features, units)
        self.activation = make_activation(activation)

        self._init_weights()

    def _init_weights(self) -> None:
        """
        Glorot-uniform weights and zero biases, the usual defaults for a
        dense layer feeding tanh / sigmoid / softmax units.
        """
        nn.init.xavier_uniform_(self.linear.weight)
        nn.init.zeros_(self.linear.bias)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Parameters
        ----------
        x : torch.Tensor
            Input of shape (batch, in_features).

        Returns
        -------
        torch.Tensor
            Output of shape (batch, units).
        """
        return self.activation(self.linear(x))

    @property
    def weight(self) -> torch.Tensor:
        """Weight matrix, shape (units, in_features)."""
        return self.linear.weight

    @property
    def bias(self) -> torch.Tensor:
        return self.linear.bias

    @property
    def n_params(self) -> int:
        return sum(p.numel() for p in self.parameters())

    def __repr__(self) -> str:
        return (
            f"DenseLayer("
            f"{self.in_features}→{self.units}, "
            f"activation={self.activation_kind.value}, "
            f"layer={self.layer_idx})"
        )
