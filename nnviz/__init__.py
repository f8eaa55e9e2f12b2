"""
NNViz
=====
A small engine behind an interactive neural-network playground: define a
feed-forward classifier layer by layer, train it on a toy dataset while
watching the loss fall, look inside it one input at a time, and check how
confident its predictions are.

This package provides:
    1. A model builder that turns a declarative layer spec into a model
    2. A cancellable async trainer that streams one metric per epoch
    3. A forward activation runner for per-layer introspection
    4. An evaluator producing per-example rows with a confidence flag
    5. Three toy datasets: xor, moons and spiral

Quick Start:
    >>> import asyncio
    >>> from nnviz.session import Session
    >>> with Session() as session:
    ...     result = asyncio.run(session.train())
    ...     print(session.evaluate(threshold=0.5).n_correct)

Subpackages:
    - nnviz.model      — Layer specs, dense layers, classifier, builder
    - nnviz.training   — Trainer, metrics, cancellation
    - nnviz.evaluation — Forward activations and evaluation reports
    - nnviz.data       — Toy datasets
"""

__version__ = "0.1.0"
__author__ = "Aditya"
