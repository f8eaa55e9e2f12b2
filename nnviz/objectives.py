"""
NNViz Objectives
=================
Loss functions and optimizer factory used by the Trainer and Evaluator.

All losses take the model OUTPUT (probabilities for a softmax head, raw
values for a linear head) and one-hot targets, and return the mean loss
over the batch as a scalar tensor that autograd can differentiate.

Names follow the snake_case convention; the camelCase names used by the
layer-editing front end are accepted as aliases.
"""

from __future__ import annotations

from typing import Callable, Dict, Iterable

import torch
import torch.nn as nn

LossFn = Callable[[torch.Tensor, torch.Tensor], torch.Tensor]

# Clip range for probabilities before taking the log
EPSILON = 1e-7


def categorical_crossentropy(outputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
    """
    Cross-entropy between predicted class probabilities and one-hot targets.

    The outputs are re-normalised to sum to 1 per row and clipped away
    from 0 and 1, so a non-softmax head still yields a finite loss.
    """
    probs = outputs / outputs.sum(dim=-1, keepdim=True)
    probs = probs.clamp(EPSILON, 1.0 - EPSILON)
    return -(targets * torch.log(probs)).sum(dim=-1).mean()


def binary_crossentropy(outputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
    probs = outputs.clamp(EPSILON, 1.0 - EPSILON)
    per_entry = targets * torch.log(probs) + (1.0 - targets) * torch.log(1.0 - probs)
    return -per_entry.mean(dim=-1).mean()


def mean_squared_error(outputs: torch.Tensor, targets: torch.Tensor) -> torch.Tensor:
    return ((outputs - targets) ** 2).mean(dim=-1).mean()


LOSSES: Dict[str, LossFn] = {
    "categorical_crossentropy": categorical_crossentropy,
    "binary_crossentropy": binary_crossentropy,
    "mean_squared_error": mean_squared_error,
}

LOSS_ALIASES: Dict[str, str] = {
    "categoricalCrossentropy": "categorical_crossentropy",
    "binaryCrossentropy": "binary_crossentropy",
    "meanSquaredError": "mean_squared_error",
    "mse": "mean_squared_error",
}

OPTIMIZERS: Dict[str, type] = {
    "adam": torch.optim.Adam,
    "sgd": torch.optim.SGD,
    "rmsprop": torch.optim.RMSprop,
    "adagrad": torch.optim.Adagrad,
}


def canonical_loss_name(name: str) -> str:
    """
    Map a loss name or alias to its registry key.

    Raises
    ------
    KeyError
        If the name is not a known loss.
    """
    key = LOSS_ALIASES.get(name, name)
    if key not in LOSSES:
        available = ", ".join(sorted(LOSSES))
        raise KeyError(f"Unknown loss {name!r}. Available losses: {available}")
    return key


def resolve_loss(name: str) -> LossFn:
    """Return the loss function registered under ``name`` (or its alias)."""
    return LOSSES[canonical_loss_name(name)]


def build_optimizer(
    name: str,
    parameters: Iterable[nn.Parameter],
    learning_rate: float,
) -> torch.optim.Optimizer:
    """
    Create a ``torch.optim`` optimizer over ``parameters``.

    Parameters
    ----------
    name : str
        One of ``adam``, ``sgd``, ``rmsprop``, ``adagrad`` (case-insensitive).
    parameters : iterable of nn.Parameter
        Trainable parameters of the model.
    learning_rate : float
        Step size.
    """
    key = name.lower()
    if key not in OPTIMIZERS:
        available = ", ".join(sorted(OPTIMIZERS))
        raise KeyError(f"Unknown optimizer {name!r}. Available optimizers: {available}")
    return OPTIMIZERS[key](parameters, lr=learning_rate)
