"""
nnviz.data — Dataset Provider
==============================
Fixed and generated toy datasets, selected by name:

    select_dataset("xor")     → 4 fixed Boolean points
    select_dataset("moons")   → 4 fixed two-cluster points
    select_dataset("spiral")  → 200 freshly generated points per call
    select_dataset("other")   → falls back to "xor"

Datasets hold tensors; release them when done, or use dataset_scope()
which does it on every exit path.
"""

from nnviz.data.datasets import (
    DATASETS,
    Dataset,
    available_datasets,
    dataset_scope,
    moons_dataset,
    select_dataset,
    spiral_dataset,
    xor_dataset,
)
