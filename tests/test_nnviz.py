#!/usr/bin/env python3
"""
Tests for NNViz configuration, model building, datasets, training,
forward activations, evaluation and the session.

Run all tests:
    python -m pytest tests/ -v --tb=short

Run one group:
    python -m pytest tests/test_nnviz.py -v -k TestTrainer
"""

import asyncio
import math
import sys
from pathlib import Path

import pytest
import torch

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))


def _xor_model(seed=0):
    from nnviz.model.builder import build_model
    from nnviz.model.spec import DEFAULT_XOR_SPEC
    return build_model(DEFAULT_XOR_SPEC, seed=seed)


# =============================================================================
# Config Tests
# =============================================================================

class TestConfig:
    """Tests for the configuration system."""

    def test_default_config_loads(self):
        """Default config should validate and match the documented defaults."""
        from nnviz.config import NNVizConfig
        config = NNVizConfig()
        config.validate()
        assert config.training.epochs == 20
        assert config.training.batch_size == 4
        assert config.training.optimizer == "adam"
        assert config.training.learning_rate == pytest.approx(0.03)
        assert config.data.dataset == "xor"

    def test_smoke_test_config(self):
        from nnviz.config import NNVizConfig
        config = NNVizConfig.for_smoke_test()
        config.validate()
        assert config.training.epochs == 5
        assert config.training.seed == 0

    def test_yaml_round_trip(self, tmp_path):
        """Config should save to YAML and load back identically."""
        from nnviz.config import NNVizConfig
        config = NNVizConfig.for_smoke_test()
        config.evaluation.threshold = 0.7

        yaml_path = tmp_path / "test_config.yaml"
        config.to_yaml(yaml_path)

        loaded = NNVizConfig.from_yaml(yaml_path)
        assert loaded.to_dict() == config.to_dict()

    def test_shipped_default_yaml(self):
        from nnviz.config import NNVizConfig
        path = Path(__file__).resolve().parent.parent / "configs" / "default.yaml"
        config = NNVizConfig.from_yaml(path)
        assert config.training.epochs == 50
        assert config.training.batch_size == 16
        assert len(config.model.layers) == 2

    def test_missing_file(self, tmp_path):
        from nnviz.config import NNVizConfig
        with pytest.raises(FileNotFoundError):
            NNVizConfig.from_yaml(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        from nnviz.config import NNVizConfig
        from nnviz.exceptions import ConfigError
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ConfigError):
            NNVizConfig.from_yaml(path)

    def test_unknown_key(self, tmp_path):
        from nnviz.config import NNVizConfig
        from nnviz.exceptions import ConfigError
        path = tmp_path / "bad.yaml"
        path.write_text("training:\n  epoch_count: 3\n")
        with pytest.raises(ConfigError):
            NNVizConfig.from_yaml(path)

    @pytest.mark.parametrize("field,value", [
        ("epochs", 0),
        ("epochs", -3),
        ("batch_size", 0),
        ("learning_rate", 0.0),
        ("optimizer", "lbfgs"),
        ("loss", "hinge"),
        ("learning_rate", "3e-2"),
        ("learning_rate", None),
        ("epochs", "20"),
        ("optimizer", None),
        ("loss", None),
    ])
    def test_invalid_training_values(self, field, value):
        from nnviz.config import TrainingConfig
        from nnviz.exceptions import ConfigError
        config = TrainingConfig(**{field: value})
        with pytest.raises(ConfigError) as exc_info:
            config.validate()
        assert exc_info.value.field == field

    def test_yaml_exponent_without_dot(self, tmp_path):
        """PyYAML loads 3e-2 as a string; loading reports it as a config error."""
        from nnviz.config import NNVizConfig
        from nnviz.exceptions import ConfigError
        path = tmp_path / "lr.yaml"
        path.write_text("training:\n  learning_rate: 3e-2\n")
        with pytest.raises(ConfigError) as exc_info:
            NNVizConfig.from_yaml(path)
        assert exc_info.value.field == "learning_rate"

        path.write_text("training:\n  learning_rate: 3.0e-2\n")
        assert NNVizConfig.from_yaml(path).training.learning_rate == pytest.approx(0.03)

    def test_bad_data_and_eval_types(self):
        from nnviz.config import DataConfig, EvalConfig
        from nnviz.exceptions import ConfigError
        with pytest.raises(ConfigError):
            DataConfig(spiral_points="200").validate()
        with pytest.raises(ConfigError):
            EvalConfig(threshold="0.5").validate()
        with pytest.raises(ConfigError):
            EvalConfig(batch_size=None).validate()

    def test_loss_alias_accepted(self):
        from nnviz.config import TrainingConfig
        TrainingConfig(loss="categoricalCrossentropy", optimizer="SGD").validate()

    def test_threshold_must_be_finite(self):
        from nnviz.config import EvalConfig
        from nnviz.exceptions import ConfigError
        EvalConfig(threshold=1.01).validate()
        with pytest.raises(ConfigError):
            EvalConfig(threshold=float("nan")).validate()

    def test_bad_model_layers(self):
        from nnviz.config import ModelConfig
        from nnviz.exceptions import ValidationError
        config = ModelConfig(layers=[{"kind": "dense", "units": 2}])
        with pytest.raises(ValidationError):
            config.validate()


# =============================================================================
# Objective Tests
# =============================================================================

class TestObjectives:
    """Tests for the loss registry and optimizer factory."""

    def test_cce_perfect_prediction(self):
        from nnviz.objectives import categorical_crossentropy
        targets = torch.tensor([[1.0, 0.0], [0.0, 1.0]])
        loss = categorical_crossentropy(targets.clone(), targets)
        assert loss.item() < 1e-5

    def test_cce_is_clipped(self):
        """A zero probability on the true class yields a finite loss."""
        from nnviz.objectives import EPSILON, categorical_crossentropy
        outputs = torch.tensor([[0.0, 1.0]])
        targets = torch.tensor([[1.0, 0.0]])
        loss = categorical_crossentropy(outputs, targets)
        assert math.isfinite(loss.item())
        assert loss.item() == pytest.approx(-math.log(EPSILON), rel=1e-3)

    def test_cce_uniform(self):
        from nnviz.objectives import categorical_crossentropy
        outputs = torch.full((3, 2), 0.5)
        targets = torch.tensor([[1.0, 0.0], [0.0, 1.0], [1.0, 0.0]])
        assert categorical_crossentropy(outputs, targets).item() == pytest.approx(math.log(2), rel=1e-5)

    def test_aliases(self):
        from nnviz.objectives import canonical_loss_name, resolve_loss, mean_squared_error
        assert canonical_loss_name("categoricalCrossentropy") == "categorical_crossentropy"
        assert resolve_loss("mse") is mean_squared_error

    def test_unknown_loss(self):
        from nnviz.objectives import resolve_loss
        with pytest.raises(KeyError):
            resolve_loss("hinge")

    def test_optimizer_factory(self):
        from nnviz.objectives import build_optimizer
        params = [torch.nn.Parameter(torch.zeros(2))]
        opt = build_optimizer("Adam", params, 0.03)
        assert isinstance(opt, torch.optim.Adam)
        assert opt.param_groups[0]["lr"] == pytest.approx(0.03)
        with pytest.raises(KeyError):
            build_optimizer("lbfgs", params, 0.03)


# =============================================================================
# Resource Tests
# =============================================================================

class TestResources:
    """Tests for scoped release helpers."""

    def test_release_swallows_errors(self):
        from nnviz.resources import release

        class Broken:
            def release(self):
                raise RuntimeError("boom")

        release(Broken())
        release(None)
        release(object())

    def test_scoped_releases_on_error(self):
        from nnviz.resources import scoped

        class Holder:
            released = False

            def release(self):
                self.released = True

        holder = Holder()
        with pytest.raises(ValueError):
            with scoped(holder):
                raise ValueError("inside")
        assert holder.released

    def test_tensor_scope(self):
        from nnviz.resources import TensorScope
        with TensorScope("test") as scope:
            a = scope.track(torch.zeros(2))
            scope.track(torch.ones(2))
            assert scope.live == 2
            scope.drop(a)
            assert scope.live == 1
        assert scope.live == 0


# =============================================================================
# Model Builder Tests
# =============================================================================

class TestModelBuilder:
    """Tests for spec validation and model construction."""

    def test_build_xor(self):
        model = _xor_model()
        assert model.n_layers == 2
        assert model.input_arity == (2,)
        assert model.output_arity == 2
        assert model.layers[0].weight.shape == (4, 2)
        assert model.layers[1].weight.shape == (2, 4)
        assert torch.all(model.layers[0].bias == 0)
        assert model.n_params == 4 * 2 + 4 + 2 * 4 + 2

    def test_describe(self):
        info = _xor_model().describe()
        assert [layer["units"] for layer in info] == [4, 2]
        assert info[0]["activation"] == "tanh"
        assert info[1]["in_features"] == 4

    def test_activation_defaults_to_linear(self):
        from nnviz.model.builder import build_model
        from nnviz.model.spec import Activation
        model = build_model([{"kind": "dense", "units": 3, "inputArity": [2]}])
        assert model.layers[0].activation_kind == Activation.LINEAR

    def test_same_seed_same_weights(self):
        a, b = _xor_model(seed=7), _xor_model(seed=7)
        for pa, pb in zip(a.parameters(), b.parameters()):
            assert torch.equal(pa, pb)

    def test_softmax_output_sums_to_one(self):
        model = _xor_model()
        probs = model.predict(torch.tensor([[0.0, 0.0], [1.0, 1.0], [0.3, 0.9]]))
        assert probs.shape == (3, 2)
        assert torch.allclose(probs.sum(dim=-1), torch.ones(3), atol=1e-5)

    def test_multi_dim_input_arity_flattened(self):
        from nnviz.model.builder import build_model
        model = build_model([
            {"kind": "dense", "units": 3, "activation": "relu", "inputArity": [2, 2]},
            {"kind": "dense", "units": 2, "activation": "softmax"},
        ])
        assert model.in_features == 4
        assert model.predict(torch.zeros(5, 2, 2)).shape == (5, 2)

    @pytest.mark.parametrize("spec,layer_index", [
        ([], None),
        ([{"kind": "dense", "units": 4}], 0),
        ([{"kind": "dense", "units": 4, "inputArity": []}], 0),
        ([{"kind": "dense", "units": 4, "inputArity": [0]}], 0),
        ([{"kind": "dense", "units": 0, "inputArity": [2]}], 0),
        ([
            {"kind": "dense", "units": 4, "inputArity": [2]},
            {"kind": "dense", "units": -1},
        ], 1),
        ([
            {"kind": "dense", "units": 4, "inputArity": [2]},
            {"kind": "dense", "units": 2, "inputArity": [4]},
        ], 1),
        ([
            {"kind": "dense", "units": 4, "inputArity": [2]},
            {"kind": "conv2d", "units": 2},
        ], 1),
        ([{"kind": "dense", "units": 4, "activation": "gelu", "inputArity": [2]}], 0),
    ])
    def test_invalid_specs(self, spec, layer_index):
        from nnviz.exceptions import ValidationError
        from nnviz.model.builder import build_model
        with pytest.raises(ValidationError) as exc_info:
            build_model(spec)
        assert exc_info.value.layer_index == layer_index
        assert exc_info.value.reason

    def test_layer_spec_round_trip(self):
        from nnviz.model.spec import LayerSpec
        raw = {"kind": "dense", "units": 4, "activation": "tanh", "inputArity": [2]}
        assert LayerSpec.from_dict(raw).to_dict() == raw

    def test_released_model_refuses_use(self):
        from nnviz.exceptions import ModelReleasedError
        model = _xor_model()
        model.release()
        model.release()
        assert model.is_released
        assert model.n_params == 0
        with pytest.raises(ModelReleasedError):
            model.predict(torch.zeros(1, 2))


# =============================================================================
# Dataset Tests
# =============================================================================

class TestDatasets:
    """Tests for the toy dataset provider."""

    def test_xor(self):
        from nnviz.data.datasets import select_dataset
        data = select_dataset("xor")
        assert data.train_inputs.tolist() == [[0, 0], [0, 1], [1, 0], [1, 1]]
        assert data.train_labels.argmax(dim=1).tolist() == [0, 1, 1, 0]
        assert torch.equal(data.test_inputs, data.train_inputs)
        assert data.train_inputs.dtype == torch.float32

    def test_fixed_sets_identical_across_calls(self):
        from nnviz.data.datasets import select_dataset
        for name in ("xor", "moons"):
            a, b = select_dataset(name), select_dataset(name)
            assert torch.equal(a.train_inputs, b.train_inputs)
            assert torch.equal(a.train_labels, b.train_labels)
            assert torch.equal(a.test_inputs, b.test_inputs)
            assert torch.equal(a.test_labels, b.test_labels)

    def test_spiral_unseeded_varies(self):
        """Two unseeded draws keep the point count but not the content."""
        from nnviz.data.datasets import select_dataset
        a, b = select_dataset("spiral"), select_dataset("spiral")
        assert a.n_train == b.n_train == 200
        assert a.n_test == b.n_test == 200
        assert not torch.equal(a.train_inputs, b.train_inputs)

    def test_moons(self):
        from nnviz.data.datasets import select_dataset
        data = select_dataset("moons")
        assert data.n_train == 4
        assert data.train_labels.argmax(dim=1).tolist() == [0, 0, 1, 1]

    def test_spiral_count_and_range(self):
        from nnviz.data.datasets import select_dataset
        data = select_dataset("spiral")
        assert data.n_train == 200
        assert data.n_test == 200
        assert float(data.train_inputs.min()) >= 0.0
        assert float(data.train_inputs.max()) < 1.0
        assert torch.all(data.train_labels.sum(dim=1) == 1)

    def test_spiral_seeded(self):
        from nnviz.data.datasets import spiral_dataset
        a, b = spiral_dataset(seed=3), spiral_dataset(seed=3)
        assert torch.equal(a.train_inputs, b.train_inputs)
        assert spiral_dataset(n_points=10, seed=1).n_train == 10

    def test_unknown_falls_back_to_xor(self):
        from nnviz.data.datasets import select_dataset
        for name in ("circles", "", None):
            assert select_dataset(name).name == "xor"

    def test_available(self):
        from nnviz.data.datasets import available_datasets
        assert available_datasets() == ["moons", "spiral", "xor"]

    def test_dataset_scope_releases_on_error(self):
        from nnviz.data.datasets import dataset_scope
        from nnviz.exceptions import ModelReleasedError
        with pytest.raises(RuntimeError, match="inside"):
            with dataset_scope("xor") as data:
                raise RuntimeError("inside")
        assert data.is_released
        with pytest.raises(ModelReleasedError):
            data.ensure_live()


# =============================================================================
# Trainer Tests
# =============================================================================

class TestTrainer:
    """Tests for the cancellable training loop."""

    def test_metrics_per_epoch(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.training.trainer import Trainer

        trainer = Trainer()
        result = asyncio.run(trainer.train(_xor_model(), xor_dataset(), TrainingConfig(epochs=5)))
        assert [m.epoch for m in result.metrics] == [1, 2, 3, 4, 5]
        assert not result.stopped
        assert result.epochs_requested == 5
        for m in result.metrics:
            assert math.isfinite(m.loss)
            assert 0.0 <= m.accuracy <= 1.0

    def test_stream_yields_in_order(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.training.trainer import Trainer

        async def collect():
            trainer = Trainer()
            return [m async for m in trainer.stream(_xor_model(), xor_dataset(), TrainingConfig(epochs=4))]

        metrics = asyncio.run(collect())
        assert [m.epoch for m in metrics] == [1, 2, 3, 4]

    def test_stop_after_epoch_three(self):
        """A stop requested during epoch 3's emission ends the run after epoch 3."""
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.training.trainer import Trainer

        trainer = Trainer()

        async def run():
            seen = []
            async for metric in trainer.stream(_xor_model(), xor_dataset(), TrainingConfig(epochs=100)):
                seen.append(metric)
                if metric.epoch == 3:
                    trainer.stop()
            return seen

        seen = asyncio.run(run())
        assert len(seen) == 3
        assert [m.epoch for m in trainer.metrics] == [1, 2, 3]
        assert not trainer.is_active

    def test_background_run_stop(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.training.trainer import Trainer

        async def run():
            trainer = Trainer()
            handle = trainer.start(_xor_model(), xor_dataset(), TrainingConfig(epochs=1000))
            while len(handle.metrics) < 2:
                await asyncio.sleep(0)
            handle.stop()
            return await handle

        result = asyncio.run(run())
        assert result.stopped
        assert 2 <= len(result.metrics) < 1000
        assert [m.epoch for m in result.metrics] == list(range(1, len(result.metrics) + 1))

    def test_each_run_resets_metrics(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.training.trainer import Trainer

        trainer = Trainer()
        model, data = _xor_model(), xor_dataset()
        asyncio.run(trainer.train(model, data, TrainingConfig(epochs=4)))
        result = asyncio.run(trainer.train(model, data, TrainingConfig(epochs=2)))
        assert len(result.metrics) == 2
        assert [m.epoch for m in trainer.metrics] == [1, 2]

    def test_config_error_before_any_epoch(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.exceptions import ConfigError
        from nnviz.training.trainer import Trainer

        trainer = Trainer()
        with pytest.raises(ConfigError):
            asyncio.run(trainer.train(_xor_model(), xor_dataset(), TrainingConfig(batch_size=0)))
        assert trainer.metrics == []

    def test_shape_error_before_any_epoch(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.exceptions import ShapeError
        from nnviz.model.builder import build_model
        from nnviz.training.trainer import Trainer

        model = build_model([
            {"kind": "dense", "units": 3, "activation": "softmax", "inputArity": [2]},
        ])
        with pytest.raises(ShapeError):
            asyncio.run(Trainer().train(model, xor_dataset()))

    def test_non_finite_loss_raises_training_error(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import Dataset
        from nnviz.exceptions import TrainingError
        from nnviz.training.trainer import Trainer

        x = torch.full((4, 2), float("nan"))
        y = torch.tensor([[1.0, 0.0], [0.0, 1.0], [0.0, 1.0], [1.0, 0.0]])
        data = Dataset(name="nan", train_inputs=x, train_labels=y, test_inputs=x, test_labels=y)

        trainer = Trainer()
        with pytest.raises(TrainingError) as exc_info:
            asyncio.run(trainer.train(_xor_model(), data, TrainingConfig(epochs=3)))
        assert exc_info.value.epoch == 1
        assert exc_info.value.metrics == []
        assert not trainer.is_active

    def test_training_compiles_model(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.training.trainer import Trainer

        model = _xor_model()
        asyncio.run(Trainer().train(model, xor_dataset(), TrainingConfig(epochs=1, loss="mse")))
        assert model.loss_name == "mean_squared_error"
        assert "accuracy" in model.metric_names

    def test_shuffle_seeded_is_reproducible(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import moons_dataset
        from nnviz.training.trainer import Trainer

        config = TrainingConfig(epochs=3, batch_size=1, shuffle=True, seed=5)
        a = asyncio.run(Trainer().train(_xor_model(seed=1), moons_dataset(), config))
        b = asyncio.run(Trainer().train(_xor_model(seed=1), moons_dataset(), config))
        assert [m.loss for m in a.metrics] == pytest.approx([m.loss for m in b.metrics])

    def test_loss_trends_downward(self):
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import xor_dataset
        from nnviz.training.trainer import Trainer

        result = asyncio.run(
            Trainer().train(_xor_model(seed=0), xor_dataset(), TrainingConfig(epochs=100, batch_size=16))
        )
        assert result.metrics[-1].loss < result.metrics[0].loss


# =============================================================================
# Forward Activation Tests
# =============================================================================

class TestForwardActivations:
    """Tests for per-layer activation capture."""

    def test_one_vector_per_layer(self):
        from nnviz.evaluation.activations import ForwardActivationRunner
        model = _xor_model()
        runner = ForwardActivationRunner()
        acts = runner.run(model, [0.0, 1.0])
        assert len(acts) == model.n_layers
        assert len(acts[0]) == 4
        assert len(acts[-1]) == model.output_arity
        assert sum(acts[-1]) == pytest.approx(1.0, abs=1e-5)
        assert runner.live_tensors == 0

    def test_matches_predict(self):
        from nnviz.evaluation.activations import run_forward_activations
        model = _xor_model()
        acts = run_forward_activations(model, torch.tensor([1.0, 0.0]))
        expected = model.predict(torch.tensor([[1.0, 0.0]]))[0].tolist()
        assert acts[-1] == pytest.approx(expected, abs=1e-6)

    def test_no_model(self):
        from nnviz.evaluation.activations import run_forward_activations
        assert run_forward_activations(None, [0.0, 1.0]) is None

    def test_released_model(self):
        from nnviz.evaluation.activations import run_forward_activations
        model = _xor_model()
        model.release()
        assert run_forward_activations(model, [0.0, 1.0]) is None

    def test_wrong_input_length(self):
        from nnviz.evaluation.activations import run_forward_activations
        from nnviz.exceptions import ShapeError
        with pytest.raises(ShapeError):
            run_forward_activations(_xor_model(), [0.0, 1.0, 1.0])

    def test_layer_failure_returns_none(self):
        from nnviz.evaluation.activations import ForwardActivationRunner
        model = _xor_model()

        def boom(x):
            raise RuntimeError("layer exploded")

        model.layers[1].forward = boom
        runner = ForwardActivationRunner()
        assert runner.run(model, [0.0, 1.0]) is None
        assert runner.live_tensors == 0

    def test_intermediates_freed_between_layers(self):
        """A layer's input is gone by the time the following layer runs."""
        import weakref
        from nnviz.evaluation.activations import ForwardActivationRunner
        from nnviz.model.builder import build_model

        model = build_model([
            {"kind": "dense", "units": 4, "activation": "tanh", "inputArity": [2]},
            {"kind": "dense", "units": 3, "activation": "relu"},
            {"kind": "dense", "units": 2, "activation": "softmax"},
        ], seed=0)

        seen = []
        freed = []
        for layer in model.layers:
            def recording(x, _forward=layer.forward):
                if len(seen) >= 2:
                    freed.append(seen[-1]() is None)
                seen.append(weakref.ref(x))
                return _forward(x)
            layer.forward = recording

        acts = ForwardActivationRunner().run(model, [0.0, 1.0])
        assert len(acts) == 3
        assert freed == [True]

    def test_run_all(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.evaluation.activations import ForwardActivationRunner
        results = ForwardActivationRunner().run_all(_xor_model(), xor_dataset().train_inputs)
        assert len(results) == 4
        assert results[1].input == [0.0, 1.0]
        assert results[1].probabilities == results[1].activations[-1]
        assert results[1].predicted_class in (0, 1)


# =============================================================================
# Evaluator Tests
# =============================================================================

class TestEvaluator:
    """Tests for evaluation rows and confidence classification."""

    def test_rows_in_order(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.evaluation.evaluator import Evaluator
        report = Evaluator().evaluate(_xor_model(), xor_dataset(), threshold=0.5)
        assert [row.index for row in report.rows] == [0, 1, 2, 3]
        assert [row.true_class for row in report.rows] == [0, 1, 1, 0]
        assert report.rows[2].input == [1.0, 0.0]
        for row in report.rows:
            assert sum(row.class_probabilities) == pytest.approx(1.0, abs=1e-5)
            assert row.predicted_class == row.class_probabilities.index(max(row.class_probabilities))

    def test_threshold_zero_all_confident(self):
        from nnviz.data.datasets import spiral_dataset
        from nnviz.evaluation.evaluator import Evaluator
        report = Evaluator().evaluate(_xor_model(), spiral_dataset(seed=0), threshold=0.0)
        assert report.n_confident == 200

    def test_threshold_above_one_none_confident(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.evaluation.evaluator import Evaluator
        report = Evaluator().evaluate(_xor_model(), xor_dataset(), threshold=1.01)
        assert report.n_confident == 0
        assert not any(row.confident for row in report.rows)

    def test_ties_pick_lowest_index(self):
        from nnviz.data.datasets import Dataset
        from nnviz.evaluation.evaluator import Evaluator
        model = _xor_model()
        with torch.no_grad():
            for p in model.parameters():
                p.zero_()
        x = torch.tensor([[0.2, 0.8]])
        y = torch.tensor([[0.5, 0.5]])
        data = Dataset(name="tie", train_inputs=x, train_labels=y, test_inputs=x, test_labels=y)
        row = Evaluator().evaluate(model, data, threshold=0.5).rows[0]
        assert row.class_probabilities == pytest.approx([0.5, 0.5])
        assert row.predicted_class == 0
        assert row.true_class == 0
        assert row.confident

    def test_accuracy_only_when_compiled(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.evaluation.evaluator import Evaluator
        model = _xor_model()
        report = Evaluator().evaluate(model, xor_dataset())
        assert report.accuracy is None
        assert "accuracy" not in report.to_dict()

        model.compile("categorical_crossentropy", metrics=["accuracy"])
        report = Evaluator().evaluate(model, xor_dataset())
        assert report.accuracy == pytest.approx(report.n_correct / 4)

    def test_shape_mismatch(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.evaluation.evaluator import Evaluator
        from nnviz.exceptions import ShapeError
        from nnviz.model.builder import build_model
        model = build_model([{"kind": "dense", "units": 2, "activation": "softmax", "inputArity": [3]}])
        with pytest.raises(ShapeError):
            Evaluator().evaluate(model, xor_dataset())

    def test_dataset_not_released(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.evaluation.evaluator import Evaluator
        data = xor_dataset()
        Evaluator().evaluate(_xor_model(), data)
        assert not data.is_released

    def test_format_report(self):
        from nnviz.data.datasets import xor_dataset
        from nnviz.evaluation.evaluator import Evaluator, format_report
        text = format_report(Evaluator().evaluate(_xor_model(), xor_dataset()))
        assert "Loss:" in text
        assert "Accuracy:" not in text
        assert len(text.splitlines()) > 4


# =============================================================================
# Session Tests
# =============================================================================

class TestSession:
    """Tests for model ownership and the session entry points."""

    def test_build_replaces_and_releases(self):
        from nnviz.session import Session
        session = Session()
        first = session.build()
        second = session.build()
        assert first.is_released
        assert session.model is second
        assert not second.is_released

    def test_failed_build_keeps_model(self):
        from nnviz.exceptions import ValidationError
        from nnviz.session import Session
        session = Session()
        model = session.build()
        with pytest.raises(ValidationError):
            session.build([])
        assert session.model is model
        assert not model.is_released

    def test_no_model(self):
        from nnviz.session import Session
        session = Session()
        assert session.forward([0.0, 1.0]) is None
        assert session.forward_all() is None
        assert session.evaluate() is None
        assert session.describe() == []

    def test_rebuild_refused_while_training(self):
        from nnviz.config import TrainingConfig
        from nnviz.session import Session

        async def run():
            session = Session()
            session.build(seed=0)
            handle = session.start_training(config=TrainingConfig(epochs=500))
            assert session.is_training
            with pytest.raises(RuntimeError):
                session.build()
            session.stop()
            result = await handle
            assert not session.is_training
            session.build()
            return result

        result = asyncio.run(run())
        assert result.stopped

    def test_forward_all_defaults_to_xor(self):
        from nnviz.session import Session
        session = Session()
        session.build()
        results = session.forward_all()
        assert [r.input for r in results] == [[0.0, 0.0], [0.0, 1.0], [1.0, 0.0], [1.0, 1.0]]

    def test_rebuild_after_leaving_stream_early(self):
        from contextlib import aclosing
        from nnviz.config import TrainingConfig
        from nnviz.data.datasets import dataset_scope
        from nnviz.session import Session

        async def run():
            session = Session()
            session.build(seed=0)
            with dataset_scope("xor") as data:
                stream = session.trainer.stream(session.model, data, TrainingConfig(epochs=50))
                async with aclosing(stream):
                    async for _ in stream:
                        break
                assert not session.is_training
                session.build(seed=1)

                # Plain break: the loop finalizes the abandoned stream
                async for _ in session.trainer.stream(session.model, data, TrainingConfig(epochs=50)):
                    break
                for _ in range(20):
                    await asyncio.sleep(0)
                assert not session.is_training
                return session.build(seed=2)

        model = asyncio.run(run())
        assert not model.is_released

    def test_close_releases_model(self):
        from nnviz.session import Session
        with Session() as session:
            model = session.build()
        assert model.is_released
        assert session.model is None


# =============================================================================
# End-to-End Tests
# =============================================================================

class TestEndToEnd:
    """Build, train and evaluate the default XOR network."""

    def test_xor_learns(self):
        from nnviz.config import NNVizConfig, TrainingConfig
        from nnviz.session import Session

        config = NNVizConfig()
        config.training = TrainingConfig(epochs=50, seed=0)
        with Session(config) as session:
            session.build()
            before = session.evaluate(threshold=0.5).loss
            result = asyncio.run(session.train())
            report = session.evaluate(threshold=0.5)

        assert len(result.metrics) == 50
        assert report.loss < before
        assert report.n_correct >= 3
        assert report.accuracy is not None
