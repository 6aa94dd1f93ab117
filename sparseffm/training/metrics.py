"""Evaluation metrics for classification and regression FFMs."""

from __future__ import annotations

import numpy as np
from sklearn.metrics import (
    log_loss,
    mean_absolute_error,
    mean_squared_error,
    roc_auc_score,
)


def compute_auc(labels: np.ndarray, scores: np.ndarray) -> float:
    """Compute Area Under ROC Curve."""
    return float(roc_auc_score(labels, scores))


def compute_logloss(labels: np.ndarray, scores: np.ndarray) -> float:
    """Compute binary cross-entropy (log loss)."""
    # Clip to avoid log(0)
    scores = np.clip(scores, 1e-7, 1 - 1e-7)
    return float(log_loss(labels, scores, labels=[0, 1]))


def compute_rmse(labels: np.ndarray, scores: np.ndarray) -> float:
    return float(np.sqrt(mean_squared_error(labels, scores)))


def compute_mae(labels: np.ndarray, scores: np.ndarray) -> float:
    return float(mean_absolute_error(labels, scores))


class MetricCalculator:
    """Accumulates predictions and labels, then computes metrics in one pass.

    Classification scores are probabilities; AUC is skipped when the labels
    contain a single class.
    """

    def __init__(self, classification: bool = True) -> None:
        self.classification = classification
        self.predictions: list[np.ndarray] = []
        self.labels: list[np.ndarray] = []

    def reset(self) -> None:
        self.predictions = []
        self.labels = []

    def update(self, predictions: np.ndarray, labels: np.ndarray) -> None:
        self.predictions.append(np.asarray(predictions, dtype=np.float64))
        self.labels.append(np.asarray(labels, dtype=np.float64))

    def compute(self) -> dict[str, float]:
        if not self.predictions:
            return {}
        scores = np.concatenate(self.predictions)
        labels = np.concatenate(self.labels)

        if not self.classification:
            return {
                "rmse": compute_rmse(labels, scores),
                "mae": compute_mae(labels, scores),
            }

        metrics = {"logloss": compute_logloss(labels, scores)}
        if len(np.unique(labels)) > 1:
            metrics["auc"] = compute_auc(labels, scores)
        return metrics
