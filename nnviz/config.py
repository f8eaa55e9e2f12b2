"""
NNViz Configuration System
============================
Centralized configuration for all NNViz components using Python
dataclasses. The layer spec, training hyperparameters, dataset choice,
and confidence threshold all live here.

Usage:
    # Load from YAML file:
    >>> config = NNVizConfig.from_yaml("configs/default.yaml")

    # Create programmatically:
    >>> config = NNVizConfig(
    ...     training=TrainingConfig(epochs=50, batch_size=16),
    ...     evaluation=EvalConfig(threshold=0.7),
    ... )

    # Save to YAML:
    >>> config.to_yaml("configs/my_experiment.yaml")

    # Access nested values:
    >>> config.training.learning_rate  # 0.03
    >>> config.data.dataset            # "xor"
"""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from nnviz.exceptions import ConfigError
from nnviz.model.spec import DEFAULT_XOR_SPEC, ModelSpec, parse_model_spec, validate_model_spec
from nnviz.objectives import OPTIMIZERS, canonical_loss_name

logger = logging.getLogger(__name__)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_positive_int(value, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ConfigError(f"{name} must be an integer >= 1, got {value!r}", name)


# =============================================================================
# Model Configuration
# =============================================================================

@dataclass
class ModelConfig:
    """
    The layer spec the session builds its model from.

    Parameters
    ----------
    layers : list[dict]
        Layer mappings in forward order, e.g.
        ``{"kind": "dense", "units": 4, "activation": "tanh", "inputArity": [2]}``.
        Defaults to the 2-layer XOR network (4 tanh hidden units, 2 softmax
        outputs).
    """
    layers: list[dict] = field(default_factory=lambda: copy.deepcopy(DEFAULT_XOR_SPEC))

    def validate(self) -> None:
        """
        Raises
        ------
        ValidationError
            If the layer spec is malformed.
        """
        validate_model_spec(self.to_spec())

    def to_spec(self) -> ModelSpec:
        return parse_model_spec(self.layers)


# =============================================================================
# Training Configuration
# =============================================================================

@dataclass
class TrainingConfig:
    """
    Hyperparameters for one training run.

    Parameters
    ----------
    epochs : int
        Number of full passes over the training examples.

    batch_size : int
        Examples per optimizer update. The last batch of an epoch may be
        smaller.

    optimizer : str
        Optimizer algorithm: adam, sgd, rmsprop or adagrad.

    learning_rate : float
        Optimizer step size.

    loss : str
        Loss function name (categorical_crossentropy, binary_crossentropy,
        mean_squared_error, or their camelCase aliases).

    shuffle : bool
        Shuffle the training examples at the start of every epoch.
        Off by default: batches are contiguous slices in dataset order.

    seed : int or None
        Seed for the shuffle order. None draws a fresh order every run.
    """
    epochs: int = 20
    batch_size: int = 4
    optimizer: str = "adam"
    learning_rate: float = 0.03
    loss: str = "categorical_crossentropy"
    shuffle: bool = False
    seed: Optional[int] = None

    def validate(self) -> None:
        """
        Raises
        ------
        ConfigError
            If any value is out of range or names an unknown algorithm.
        """
        _check_positive_int(self.epochs, "epochs")
        _check_positive_int(self.batch_size, "batch_size")
        # YAML reads 3e-2 as a string; only 3.0e-2 or 0.03 load as floats
        lr = self.learning_rate
        if not _is_number(lr) or not lr > 0 or not math.isfinite(lr):
            raise ConfigError(
                f"learning_rate must be a positive number, got {self.learning_rate!r}",
                "learning_rate",
            )
        if not isinstance(self.optimizer, str) or self.optimizer.lower() not in OPTIMIZERS:
            raise ConfigError(
                f"Unknown optimizer: '{self.optimizer}'. "
                f"Choose from: {', '.join(sorted(OPTIMIZERS))}",
                "optimizer",
            )
        if not isinstance(self.loss, str):
            raise ConfigError(f"loss must be a loss name, got {self.loss!r}", "loss")
        try:
            canonical_loss_name(self.loss)
        except KeyError as e:
            raise ConfigError(str(e.args[0]), "loss") from None


# =============================================================================
# Data Configuration
# =============================================================================

@dataclass
class DataConfig:
    """
    Parameters
    ----------
    dataset : str
        Dataset key: "xor", "moons" or "spiral". Unknown keys fall back to
        "xor" when the dataset is selected.
    spiral_points : int
        Number of generated points for the spiral dataset.
    seed : int or None
        Seed for the spiral generator. None keeps it unseeded, so every
        selection returns different points.
    """
    dataset: str = "xor"
    spiral_points: int = 200
    seed: Optional[int] = None

    def validate(self) -> None:
        _check_positive_int(self.spiral_points, "spiral_points")
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int)):
            raise ConfigError(f"seed must be an integer or null, got {self.seed!r}", "seed")


# =============================================================================
# Evaluation Configuration
# =============================================================================

@dataclass
class EvalConfig:
    """
    Parameters
    ----------
    threshold : float
        Minimum predicted-class probability for a row to count as
        "confident". 0 marks every row confident; anything above 1 marks
        none.
    batch_size : int
        Examples per inference call during evaluation.
    """
    threshold: float = 0.5
    batch_size: int = 32

    def validate(self) -> None:
        if not _is_number(self.threshold) or not math.isfinite(self.threshold):
            raise ConfigError(
                f"threshold must be a finite number, got {self.threshold!r}", "threshold"
            )
        _check_positive_int(self.batch_size, "batch_size")


# =============================================================================
# Master Configuration
# =============================================================================

@dataclass
class NNVizConfig:
    """
    Master configuration combining all sub-configurations.

    Usage:
        >>> config = NNVizConfig.from_yaml("configs/default.yaml")
        >>> config = NNVizConfig()
        >>> config.validate()
        >>> config.to_yaml("configs/my_experiment.yaml")
    """
    model: ModelConfig = field(default_factory=ModelConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    data: DataConfig = field(default_factory=DataConfig)
    evaluation: EvalConfig = field(default_factory=EvalConfig)

    def validate(self) -> None:
        """
        Validate all sub-configurations.

        Raises
        ------
        ValidationError
            If the layer spec is malformed.
        ConfigError
            If any other value is invalid.
        """
        self.model.validate()
        self.training.validate()
        self.data.validate()
        self.evaluation.validate()

        logger.info(
            f"Config validated: {len(self.model.layers)} layers, "
            f"dataset={self.data.dataset}, epochs={self.training.epochs}, "
            f"{self.training.optimizer}@{self.training.learning_rate}"
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> NNVizConfig:
        """
        Load configuration from a YAML file.

        Raises
        ------
        FileNotFoundError
            If the YAML file does not exist.
        ConfigError
            If the file is empty or has unknown keys.
        yaml.YAMLError
            If the YAML file is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(
                f"Config file not found: {path}. "
                f"Create one from configs/default.yaml as a template."
            )

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if raw is None:
            raise ConfigError(f"Config file is empty: {path}")

        try:
            config = cls(
                model=ModelConfig(**raw.get("model", {})),
                training=TrainingConfig(**raw.get("training", {})),
                data=DataConfig(**raw.get("data", {})),
                evaluation=EvalConfig(**raw.get("evaluation", {})),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

        config.validate()
        return config

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                self.to_dict(),
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

        logger.info(f"Config saved to {path}")

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)

    @classmethod
    def for_smoke_test(cls) -> NNVizConfig:
        """
        Minimal configuration for quick tests: XOR, a few epochs, fixed seed.
        """
        return cls(
            model=ModelConfig(),
            training=TrainingConfig(
                epochs=5,
                batch_size=4,
                optimizer="adam",
                learning_rate=0.03,
                loss="categorical_crossentropy",
                shuffle=False,
                seed=0,
            ),
            data=DataConfig(dataset="xor", spiral_points=200, seed=0),
            evaluation=EvalConfig(threshold=0.5, batch_size=32),
        )

    def __repr__(self) -> str:
        widths = [str(layer.get("units", "?")) for layer in self.model.layers]
        lines = [
            "NNVizConfig(",
            f"  Model:    {len(self.model.layers)} layers (units: {', '.join(widths)})",
            f"  Training: {self.training.optimizer}@{self.training.learning_rate}, "
            f"epochs={self.training.epochs}, batch_size={self.training.batch_size}, "
            f"loss={self.training.loss}",
            f"  Data:     {self.data.dataset}",
            f"  Eval:     threshold={self.evaluation.threshold}",
            ")",
        ]
        return "\n".join(lines)
