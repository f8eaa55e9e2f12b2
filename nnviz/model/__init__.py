"""
nnviz.model — Model Architecture
=================================
This subpackage turns a declarative layer spec into a trainable model.

    ModelSpec (list of LayerSpec)
        → validate_model_spec   (ValidationError on bad input)
        → build_model           (allocates one DenseLayer per spec entry)
        → FeedForwardClassifier (the "current model" a Session owns)

Components:
    - spec.py       — LayerKind / Activation enums, LayerSpec, parsing, validation
    - dense.py      — DenseLayer (weights + bias + activation)
    - classifier.py — FeedForwardClassifier (ordered layer stack, lifecycle)
    - builder.py    — build_model (spec → classifier)
"""

from nnviz.model.spec import (
    DEFAULT_XOR_SPEC,
    Activation,
    LayerKind,
    LayerSpec,
    ModelSpec,
    parse_model_spec,
    validate_model_spec,
)
from nnviz.model.dense import DenseLayer
from nnviz.model.classifier import FeedForwardClassifier
from nnviz.model.builder import build_model
