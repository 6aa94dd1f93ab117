"""Tests for eta estimators, losses, metrics and the OnlineTrainer."""

import math

import numpy as np
import pytest

from sparseffm.config import EtaConfig, ExperimentConfig, ModelConfig
from sparseffm.data.libffm import Example
from sparseffm.errors import NumericDivergence
from sparseffm.features import Feature
from sparseffm.models.prediction import FFMPredictionModel
from sparseffm.models.sparse import SparseFFMModel
from sparseffm.training.eta import (
    FixedEtaEstimator,
    InvscalingEtaEstimator,
    SimpleEtaEstimator,
    build_eta_estimator,
)
from sparseffm.training.losses import LogisticLoss, SquaredLoss, build_loss, sigmoid
from sparseffm.training.metrics import MetricCalculator
from sparseffm.training.trainer import OnlineTrainer


# ---------- Eta estimators ----------


class TestEtaEstimators:
    def test_fixed(self):
        eta = FixedEtaEstimator(0.2)
        assert eta.eta(1) == eta.eta(1000) == 0.2

    def test_simple(self):
        eta = SimpleEtaEstimator(0.2, total_steps=100)
        assert eta.eta(100) == pytest.approx(0.1)

    def test_invscaling(self):
        eta = InvscalingEtaEstimator(0.2, power_t=0.5)
        assert eta.eta(4) == pytest.approx(0.1)
        assert eta.eta(0) == pytest.approx(0.2)

    def test_build(self):
        assert isinstance(build_eta_estimator(EtaConfig(name="fixed")), FixedEtaEstimator)
        assert isinstance(build_eta_estimator(EtaConfig(name="simple")), SimpleEtaEstimator)
        assert isinstance(
            build_eta_estimator(EtaConfig(name="invscaling")), InvscalingEtaEstimator
        )

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown eta estimator"):
            build_eta_estimator(EtaConfig(name="adam"))

    def test_invalid_eta0(self):
        with pytest.raises(ValueError, match="eta0"):
            FixedEtaEstimator(0.0)


# ---------- Losses ----------


class TestLosses:
    def test_sigmoid_extremes(self):
        assert sigmoid(0.0) == 0.5
        assert sigmoid(1000.0) == 1.0
        assert sigmoid(-1000.0) == 0.0

    def test_logistic(self):
        loss = LogisticLoss()
        assert loss.loss(0.0, 1.0) == pytest.approx(math.log(2))
        assert loss.dloss(0.0, 1.0) == pytest.approx(-0.5)
        assert loss.dloss(0.0, 0.0) == pytest.approx(0.5)
        assert loss.loss(-800.0, 1.0) == pytest.approx(800.0)

    def test_squared_clipping(self):
        loss = SquaredLoss(min_target=0.0, max_target=5.0)
        assert loss.dloss(7.0, 4.0) == 1.0
        assert loss.loss(3.0, 1.0) == 2.0
        assert loss.transform(-2.0) == 0.0

    def test_build_loss(self):
        assert isinstance(build_loss(True, 0, 1), LogisticLoss)
        assert isinstance(build_loss(False, 0, 1), SquaredLoss)


# ---------- MetricCalculator ----------


class TestMetricCalculator:
    def test_perfect_predictions(self):
        mc = MetricCalculator()
        mc.update(np.array([0.9, 0.1]), np.array([1.0, 0.0]))
        metrics = mc.compute()
        assert metrics["auc"] == 1.0
        assert metrics["logloss"] < 0.5

    def test_single_class_skips_auc(self):
        mc = MetricCalculator()
        mc.update(np.array([0.9, 0.8]), np.array([1.0, 1.0]))
        metrics = mc.compute()
        assert "auc" not in metrics
        assert "logloss" in metrics

    def test_regression(self):
        mc = MetricCalculator(classification=False)
        mc.update(np.array([1.0, 3.0]), np.array([2.0, 3.0]))
        metrics = mc.compute()
        assert metrics["rmse"] == pytest.approx(math.sqrt(0.5))
        assert metrics["mae"] == pytest.approx(0.5)

    def test_reset(self):
        mc = MetricCalculator()
        mc.update(np.array([0.5]), np.array([1.0]))
        mc.reset()
        assert mc.compute() == {}


# ---------- OnlineTrainer ----------


def _synthetic(n: int, seed: int) -> list[Example]:
    """Label is 1 when user and item parity agree: only learnable via interactions."""
    rng = np.random.default_rng(seed)
    examples = []
    for _ in range(n):
        user = int(rng.integers(0, 10))
        item = int(rng.integers(10, 20))
        features = [Feature(user, 0, 1.0), Feature(item, 1, 1.0)]
        examples.append(Example(label=float((user + item) % 2 == 0), features=features))
    return examples


def _make_config(**model_overrides) -> ExperimentConfig:
    params = dict(factors=4, num_features=20, num_fields=2, initial_capacity=16, seed=5)
    params.update(model_overrides)
    config = ExperimentConfig(seed=1)
    config.model = ModelConfig(**params)
    config.eta = EtaConfig(name="fixed", eta0=0.1)
    config.training.epochs = 3
    return config


class TestOnlineTrainer:
    def test_fit_and_finish(self):
        config = _make_config()
        model = SparseFFMModel(config.model)
        trainer = OnlineTrainer(model, config)

        metrics = trainer.fit(_synthetic(200, 0), _synthetic(50, 1))
        assert math.isfinite(metrics["loss"])
        assert "val_logloss" in metrics
        assert "val_auc" in metrics
        assert trainer.t == 600
        assert model.size() > 0

        pm = trainer.finish()
        assert isinstance(pm, FFMPredictionModel)
        assert model.consumed
        assert pm.size() > 0

    def test_evaluate_does_not_grow_store(self):
        config = _make_config()
        model = SparseFFMModel(config.model)
        trainer = OnlineTrainer(model, config)
        trainer.fit(_synthetic(20, 0))
        size = model.size()

        unseen = [Example(1.0, [Feature(0, 0), Feature(19, 1)]) for _ in range(3)]
        unseen.append(Example(0.0, [Feature(1, 0), Feature(19, 1)]))
        trainer.evaluate(unseen)
        assert model.size() == size

    def test_evaluate_prediction_model_matches(self):
        config = _make_config()
        trainer = OnlineTrainer(SparseFFMModel(config.model), config)
        train, val = _synthetic(100, 0), _synthetic(30, 2)
        trainer.fit(train)
        before = trainer.evaluate(val)
        after = trainer.evaluate(val, model=trainer.finish())
        assert after["logloss"] == pytest.approx(before["logloss"])

    def test_shuffle_is_seeded(self):
        results = []
        for _ in range(2):
            config = _make_config()
            trainer = OnlineTrainer(SparseFFMModel(config.model), config)
            results.append(trainer.fit(_synthetic(50, 0))["loss"])
        assert results[0] == results[1]

    def test_regression(self):
        config = _make_config(classification=False)
        trainer = OnlineTrainer(SparseFFMModel(config.model), config)
        examples = [Example(float(i % 3), [Feature(i % 10, 0), Feature(10 + i % 7, 1)]) for i in range(60)]
        metrics = trainer.fit(examples, examples[:10])
        assert "val_rmse" in metrics
        assert "val_mae" in metrics

    def test_divergence_propagates(self):
        config = _make_config(classification=False)
        config.eta = EtaConfig(name="fixed", eta0=1e30)
        model = SparseFFMModel(config.model)
        trainer = OnlineTrainer(model, config)
        examples = [Example(1e30, [Feature(1, 0), Feature(11, 1)])]
        with pytest.raises(NumericDivergence):
            trainer.fit(examples)
        assert math.isfinite(model.w0)
