"""
NNViz Toy Datasets
===================
Small two-class datasets selectable by name from the control panel.

    "xor"    — the 4 Boolean points, label = x0 XOR x1
    "moons"  — 4 points in two clusters (lower-left vs upper-right)
    "spiral" — 200 generated points with random labels

Every dataset is a Dataset of float32 tensors:

    train_inputs  (n_train, 2)     train_labels  (n_train, 2)  one-hot
    test_inputs   (n_test, 2)      test_labels   (n_test, 2)   one-hot

For all three toy sets the test split IS the training split.

Reproducibility:
    "xor" and "moons" are fixed. "spiral" draws coordinates and labels from
    an unseeded generator, so its content changes on every call while the
    point count stays the same. Pass ``seed=`` to spiral_dataset() when
    evaluation must be repeatable.

Usage:
    >>> with dataset_scope("xor") as data:
    ...     trainer_result = await trainer.train(model, data)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, Optional

import numpy as np
import torch

from nnviz.exceptions import ModelReleasedError
from nnviz.resources import scoped

logger = logging.getLogger(__name__)

DEFAULT_DATASET = "xor"


@dataclass
class Dataset:
    """
    Train and test example matrices with one-hot labels.

    Attributes
    ----------
    name : str
        Registry key this dataset was selected with.
    train_inputs, train_labels, test_inputs, test_labels : torch.Tensor
        Rows are examples; columns are feature / class arity.
    """
    name: str
    train_inputs: torch.Tensor
    train_labels: torch.Tensor
    test_inputs: torch.Tensor
    test_labels: torch.Tensor
    _released: bool = field(default=False, init=False, repr=False)

    @property
    def input_arity(self) -> int:
        return int(self.train_inputs.shape[1])

    @property
    def n_classes(self) -> int:
        return int(self.train_labels.shape[1])

    @property
    def n_train(self) -> int:
        return int(self.train_inputs.shape[0])

    @property
    def n_test(self) -> int:
        return int(self.test_inputs.shape[0])

    @property
    def is_released(self) -> bool:
        return self._released

    def ensure_live(self) -> None:
        if self._released:
            raise ModelReleasedError(f"Dataset '{self.name}' has been released.")

    def release(self) -> None:
        """Drop the example tensors. Safe to call more than once."""
        if self._released:
            return
        empty = torch.empty(0, 0)
        self.train_inputs = empty
        self.train_labels = empty
        self.test_inputs = empty
        self.test_labels = empty
        self._released = True

    def __repr__(self) -> str:
        if self._released:
            return f"Dataset({self.name}, released)"
        return (
            f"Dataset({self.name}: train={self.n_train}, test={self.n_test}, "
            f"features={self.input_arity}, classes={self.n_classes})"
        )


def _one_hot(indices: np.ndarray, n_classes: int) -> np.ndarray:
    return np.eye(n_classes, dtype=np.float32)[indices]


def _same_split(name: str, inputs: np.ndarray, labels: np.ndarray) -> Dataset:
    x = torch.as_tensor(inputs, dtype=torch.float32)
    y = torch.as_tensor(labels, dtype=torch.float32)
    return Dataset(name=name, train_inputs=x, train_labels=y, test_inputs=x, test_labels=y)


def xor_dataset() -> Dataset:
    """The four Boolean input pairs labelled with their XOR."""
    inputs = np.array([[0, 0], [0, 1], [1, 0], [1, 1]], dtype=np.float32)
    labels = _one_hot(np.array([0, 1, 1, 0]), 2)
    return _same_split("xor", inputs, labels)


def moons_dataset() -> Dataset:
    """Two tiny clusters: class 0 near the origin, class 1 near (0.85, 0.7)."""
    inputs = np.array(
        [[0.1, 0.3], [0.2, 0.4], [0.9, 0.7], [0.8, 0.65]],
        dtype=np.float32,
    )
    labels = _one_hot(np.array([0, 0, 1, 1]), 2)
    return _same_split("moons", inputs, labels)


def spiral_dataset(n_points: int = 200, seed: Optional[int] = None) -> Dataset:
    """
    Generated two-class point cloud.

    Coordinates are uniform in [0, 1)^2 and labels are uniform over the two
    classes, both drawn from ``numpy.random.default_rng(seed)``.

    Parameters
    ----------
    n_points : int
        Number of points (train and test share them).
    seed : int or None
        None (the default) gives different points on every call.
    """
    if n_points < 1:
        raise ValueError(f"n_points must be >= 1, got {n_points}")
    rng = np.random.default_rng(seed)
    inputs = rng.random((n_points, 2), dtype=np.float32)
    labels = _one_hot(rng.integers(0, 2, size=n_points), 2)
    return _same_split("spiral", inputs, labels)


DATASETS: Dict[str, Callable[[], Dataset]] = {
    "xor": xor_dataset,
    "moons": moons_dataset,
    "spiral": spiral_dataset,
}


def available_datasets() -> list[str]:
    """Return the sorted list of dataset keys."""
    return sorted(DATASETS)


def select_dataset(name: Optional[str], **options) -> Dataset:
    """
    Look up (or generate) the dataset registered under ``name``.

    Unrecognized names fall back to "xor". Extra keyword options are passed
    to the spiral generator (``n_points``, ``seed``) and ignored by the
    fixed datasets.
    """
    key = name if name in DATASETS else DEFAULT_DATASET
    if key != name:
        logger.info(f"Unknown dataset {name!r}, falling back to '{DEFAULT_DATASET}'")
    if key == "spiral":
        return spiral_dataset(**options)
    return DATASETS[key]()


@contextmanager
def dataset_scope(name: Optional[str], **options) -> Iterator[Dataset]:
    """Select a dataset and release it when the block exits."""
    with scoped(select_dataset(name, **options)) as data:
        yield data
