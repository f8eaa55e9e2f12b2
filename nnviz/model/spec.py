"""
NNViz Layer Specification
===========================
Declarative description of a feed-forward classifier, as produced by the
layer-editing front end.

A model spec is an ordered list of layers; order is the forward
computation order. Only the first layer carries an input arity:

    [
        {"kind": "dense", "units": 4, "activation": "tanh", "inputArity": [2]},
        {"kind": "dense", "units": 2, "activation": "softmax"},
    ]

Layer kinds and activations are closed enums. Adding a new layer kind
means adding a LayerKind member AND a factory for it in builder.py; an
unknown kind string never reaches the builder because parsing rejects it.

Usage:
    >>> spec = parse_model_spec(raw_layers)
    >>> validate_model_spec(spec)   # raises ValidationError
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from nnviz.exceptions import ValidationError


class LayerKind(str, Enum):
    """Recognized layer variants."""
    DENSE = "dense"


class Activation(str, Enum):
    """Element-wise (or row-wise, for softmax) activation functions."""
    RELU = "relu"
    TANH = "tanh"
    SIGMOID = "sigmoid"
    SOFTMAX = "softmax"
    LINEAR = "linear"


@dataclass(frozen=True)
class LayerSpec:
    """
    One layer of a model specification.

    Parameters
    ----------
    kind : LayerKind
        Layer variant. Only dense layers exist today.
    units : int
        Number of output units. Must be positive.
    activation : Activation
        Activation applied to the layer output. Defaults to linear.
    input_arity : tuple[int, ...] or None
        Shape of one input example. Required on the first layer only.
    """
    kind: LayerKind = LayerKind.DENSE
    units: int = 1
    activation: Activation = Activation.LINEAR
    input_arity: Optional[tuple[int, ...]] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], index: int = 0) -> LayerSpec:
        """
        Parse one layer mapping.

        Accepts both the snake_case keys used in YAML configs and the
        camelCase keys used by the front end (``inputArity``, ``inputShape``).
        The legacy ``type`` key is accepted as a synonym for ``kind``.

        Raises
        ------
        ValidationError
            If the kind or activation is unknown, or a field has the wrong type.
        """
        if not isinstance(raw, Mapping):
            raise ValidationError(
                f"layer must be a mapping, got {type(raw).__name__}", index
            )

        kind_raw = raw.get("kind", raw.get("type", LayerKind.DENSE.value))
        try:
            kind = LayerKind(kind_raw)
        except ValueError:
            raise ValidationError(f"unsupported layer kind {kind_raw!r}", index) from None

        activation_raw = raw.get("activation") or Activation.LINEAR.value
        try:
            activation = Activation(activation_raw)
        except ValueError:
            choices = ", ".join(a.value for a in Activation)
            raise ValidationError(
                f"unknown activation {activation_raw!r} (choose from: {choices})",
                index,
            ) from None

        units = raw.get("units")
        if isinstance(units, bool) or not isinstance(units, int):
            raise ValidationError(f"units must be an integer, got {units!r}", index)

        arity_raw = None
        for key in ("inputArity", "input_arity", "inputShape"):
            if raw.get(key) is not None:
                arity_raw = raw[key]
                break
        input_arity = None
        if arity_raw is not None:
            if isinstance(arity_raw, (str, bytes)) or not isinstance(arity_raw, Sequence):
                raise ValidationError(
                    f"inputArity must be a sequence of integers, got {arity_raw!r}",
                    index,
                )
            input_arity = tuple(arity_raw)

        return cls(kind=kind, units=units, activation=activation, input_arity=input_arity)

    def to_dict(self) -> dict:
        """Serialize to the camelCase mapping used by the front end."""
        out: dict = {
            "kind": self.kind.value,
            "units": self.units,
            "activation": self.activation.value,
        }
        if self.input_arity is not None:
            out["inputArity"] = list(self.input_arity)
        return out


ModelSpec = list[LayerSpec]


def parse_model_spec(raw: Sequence[Any]) -> ModelSpec:
    """
    Turn a list of layer mappings (or LayerSpec objects) into a ModelSpec.

    Parsing checks field types; structural rules are enforced by
    :func:`validate_model_spec`.
    """
    if raw is None or isinstance(raw, (str, bytes, Mapping)):
        raise ValidationError("model spec must be a list of layers")
    layers: ModelSpec = []
    for idx, layer in enumerate(raw):
        if isinstance(layer, LayerSpec):
            layers.append(layer)
        else:
            layers.append(LayerSpec.from_dict(layer, idx))
    return layers


def validate_model_spec(spec: Sequence[LayerSpec]) -> None:
    """
    Check the structural rules of a model spec.

    Rules:
        - the spec has at least one layer
        - every layer has ``units > 0``
        - the first layer has a non-empty ``input_arity`` of positive ints
        - no other layer has an ``input_arity``

    Raises
    ------
    ValidationError
        Naming the offending layer index and the reason.
    """
    if not spec:
        raise ValidationError("spec must contain at least one layer")

    for idx, layer in enumerate(spec):
        if not isinstance(layer.kind, LayerKind):
            raise ValidationError(f"unsupported layer kind {layer.kind!r}", idx)
        if layer.units <= 0:
            raise ValidationError(f"units must be positive, got {layer.units}", idx)

        if idx == 0:
            if layer.input_arity is None:
                raise ValidationError("first layer must declare inputArity", idx)
            if len(layer.input_arity) == 0:
                raise ValidationError("inputArity must not be empty", idx)
            for dim in layer.input_arity:
                if isinstance(dim, bool) or not isinstance(dim, int) or dim <= 0:
                    raise ValidationError(
                        f"inputArity entries must be positive integers, got {dim!r}",
                        idx,
                    )
        elif layer.input_arity is not None:
            raise ValidationError("only the first layer may declare inputArity", idx)


DEFAULT_XOR_SPEC: list[dict] = [
    {"kind": "dense", "units": 4, "activation": "tanh", "inputArity": [2]},
    {"kind": "dense", "units": 2, "activation": "softmax"},
]
