"""
nnviz.evaluation — Introspection & Evaluation
==============================================
Read-only views of a trained model.

    1. Forward activations — what every layer outputs for one input,
       used to colour the network canvas.

    2. Evaluation — loss, accuracy and one row per test example with a
       confidence flag against a probability threshold.

Components:
    - activations.py — ForwardActivationRunner, run_forward_activations, ForwardResult
    - evaluator.py   — Evaluator, EvalRow, EvalReport, format_report

Neither component changes model parameters.
"""

from nnviz.evaluation.activations import (
    ForwardActivationRunner,
    ForwardResult,
    run_forward_activations,
)
from nnviz.evaluation.evaluator import EvalReport, EvalRow, Evaluator, format_report
