from __future__ import annotations

import logging
import random
import time
from typing import Dict, List, Optional, Sequence

import numpy as np

from sparseffm.config import ExperimentConfig
from sparseffm.data.libffm import Example
from sparseffm.errors import NumericDivergence
from sparseffm.models.base import FieldAwareParameterModel
from sparseffm.models.prediction import FFMPredictionModel
from sparseffm.training.eta import EtaEstimator, build_eta_estimator
from sparseffm.training.losses import build_loss
from sparseffm.training.metrics import MetricCalculator

logger = logging.getLogger(__name__)


class OnlineTrainer:
    """Per-example SGD driver for a field-aware training model.

    Each example runs a forward pass (creating unseen parameters), takes the
    loss derivative and applies ``train_theta`` with the current learning
    rate. The trainer is the model's only writer.
    """

    def __init__(
        self,
        model: FieldAwareParameterModel,
        config: ExperimentConfig,
        loss=None,
        eta_estimator: Optional[EtaEstimator] = None,
    ):
        self.model = model
        self.config = config
        self.tcfg = config.training
        self.classification = config.model.classification
        self.loss = loss or build_loss(
            config.model.classification, config.model.min_target, config.model.max_target
        )
        self.eta_estimator = eta_estimator or build_eta_estimator(config.eta)

        self.t = 0
        self._rng = random.Random(config.seed)

    def _target(self, label: float) -> float:
        if self.classification:
            return 1.0 if label > 0 else 0.0
        return label

    def fit(
        self,
        train_examples: Sequence[Example],
        val_examples: Optional[Sequence[Example]] = None,
    ) -> Dict[str, float]:
        """Main training loop."""
        order = list(range(len(train_examples)))
        metrics: Dict[str, float] = {}
        for epoch in range(1, self.tcfg.epochs + 1):
            t0 = time.time()

            if self.tcfg.shuffle:
                self._rng.shuffle(order)

            train_metrics = self._train_epoch(train_examples, order)
            val_metrics = self.evaluate(val_examples) if val_examples else {}

            elapsed = time.time() - t0
            eta = self.eta_estimator.eta(max(self.t, 1))
            val_msg = " ".join(f"val_{k}={v:.4f}" for k, v in val_metrics.items())
            logger.info(
                f"Epoch {epoch}/{self.tcfg.epochs} [{elapsed:.1f}s] "
                f"train_loss={train_metrics['loss']:.4f} {val_msg} "
                f"eta={eta:.2e} entries={self.model.size():,}"
            )
            metrics = {**train_metrics, **{f"val_{k}": v for k, v in val_metrics.items()}}

        return metrics

    def _train_epoch(self, examples: Sequence[Example], order: List[int]) -> Dict[str, float]:
        total_loss = 0.0
        for n, idx in enumerate(order, start=1):
            example = examples[idx]
            self.t += 1
            y = self._target(example.label)

            p = self.model.predict(example.features)
            total_loss += self.loss.loss(p, y)
            dloss = self.loss.dloss(p, y)
            eta = self.eta_estimator.eta(self.t)
            try:
                self.model.train_theta(example.features, dloss, eta)
            except NumericDivergence as e:
                logger.error(f"Training diverged at step {self.t}: {e}")
                raise

            if self.tcfg.log_every and n % self.tcfg.log_every == 0:
                logger.info(f"step {self.t}: avg_loss={total_loss / n:.4f}")

        return {"loss": total_loss / max(len(order), 1)}

    def evaluate(
        self,
        examples: Sequence[Example],
        model: Optional[FFMPredictionModel] = None,
    ) -> Dict[str, float]:
        """Score ``examples`` without creating parameters.

        Uses the training model unless a prediction model is given.
        """
        if model is None:
            raw = [self.model.predict(ex.features, init_missing=False) for ex in examples]
        else:
            raw = [model.predict(ex.features) for ex in examples]

        metric_calc = MetricCalculator(classification=self.classification)
        metric_calc.update(
            np.array([self.loss.transform(p) for p in raw]),
            np.array([self._target(ex.label) for ex in examples]),
        )
        return metric_calc.compute()

    def finish(self) -> FFMPredictionModel:
        """End training and hand the parameters to a prediction model."""
        return self.model.snapshot()
