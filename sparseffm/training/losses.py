from __future__ import annotations

import math


def sigmoid(x: float) -> float:
    # Numerically stable sigmoid
    if x >= 0:
        z = math.exp(-x)
        return 1.0 / (1.0 + z)
    z = math.exp(x)
    return z / (1.0 + z)


class LogisticLoss:
    """Log loss on the raw output for labels in {0, 1}."""

    def loss(self, p: float, y: float) -> float:
        # log(1 + exp(-s * p)) with s = +1/-1, written to avoid overflow
        z = p if y > 0 else -p
        if z > 0:
            return math.log1p(math.exp(-z))
        return -z + math.log1p(math.exp(z))

    def dloss(self, p: float, y: float) -> float:
        return sigmoid(p) - y

    def transform(self, p: float) -> float:
        return sigmoid(p)


class SquaredLoss:
    """Half squared error; predictions are clipped to the target range."""

    def __init__(self, min_target: float = float("-inf"), max_target: float = float("inf")):
        self.min_target = min_target
        self.max_target = max_target

    def _clip(self, p: float) -> float:
        return min(max(p, self.min_target), self.max_target)

    def loss(self, p: float, y: float) -> float:
        d = self._clip(p) - y
        return 0.5 * d * d

    def dloss(self, p: float, y: float) -> float:
        return self._clip(p) - y

    def transform(self, p: float) -> float:
        return self._clip(p)


def build_loss(classification: bool, min_target: float, max_target: float):
    if classification:
        return LogisticLoss()
    return SquaredLoss(min_target, max_target)
