"""
NNViz Model Builder
====================
Turns a declarative model spec into a runnable FeedForwardClassifier.

Steps:
    1. Parse raw layer mappings into LayerSpec objects
    2. Validate the structural rules (ValidationError on failure)
    3. Allocate one layer per spec entry, chaining arities:
         in_features(layer 0) = prod(inputArity)
         in_features(layer i) = units(layer i-1)

The builder never releases a previously built model. Replacing the
current model is the owner's job (see Session.build).

Usage:
    >>> model = build_model([
    ...     {"kind": "dense", "units": 4, "activation": "tanh", "inputArity": [2]},
    ...     {"kind": "dense", "units": 2, "activation": "softmax"},
    ... ])
"""

from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, Optional, Sequence

import torch
import torch.nn as nn

from nnviz.model.classifier import FeedForwardClassifier
from nnviz.model.dense import DenseLayer
from nnviz.model.spec import LayerKind, LayerSpec, parse_model_spec, validate_model_spec

logger = logging.getLogger(__name__)

LayerFactory = Callable[[LayerSpec, int, int], nn.Module]


def _build_dense(layer: LayerSpec, in_features: int, idx: int) -> DenseLayer:
    return DenseLayer(
        in_features=in_features,
        units=layer.units,
        activation=layer.activation,
        layer_idx=idx,
    )


# One factory per LayerKind member
LAYER_FACTORIES: Dict[LayerKind, LayerFactory] = {
    LayerKind.DENSE: _build_dense,
}


def build_model(
    spec: Sequence[Any],
    seed: Optional[int] = None,
) -> FeedForwardClassifier:
    """
    Validate ``spec`` and build a model from it.

    Parameters
    ----------
    spec : sequence of LayerSpec or layer mappings
        Layers in forward order.
    seed : int or None
        Seed for parameter initialization. None leaves the global torch
        RNG untouched (parameters differ between builds).

    Returns
    -------
    FeedForwardClassifier
        Model with ``len(spec)`` layers and output arity equal to the last
        layer's units.

    Raises
    ------
    ValidationError
        If the spec is empty, a layer has non-positive units, the first
        layer lacks a non-empty input arity, a later layer declares one,
        or a layer kind is unrecognized.
    """
    layers_spec = parse_model_spec(spec)
    validate_model_spec(layers_spec)

    if seed is not None:
        torch.manual_seed(seed)

    input_arity = layers_spec[0].input_arity
    in_features = math.prod(input_arity)

    layers = []
    for idx, layer_spec in enumerate(layers_spec):
        factory = LAYER_FACTORIES[layer_spec.kind]
        layers.append(factory(layer_spec, in_features, idx))
        in_features = layer_spec.units

    model = FeedForwardClassifier(layers, input_arity=input_arity, spec=layers_spec)
    logger.info(
        f"Built model: {model.n_layers} layers, input_arity={list(input_arity)}, "
        f"output_arity={model.output_arity}, {model.n_params} params"
    )
    return model
