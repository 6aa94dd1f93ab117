"""Learning-rate schedules consumed by the update rules as a plain scalar."""

from __future__ import annotations

from abc import ABC, abstractmethod

from sparseffm.config import EtaConfig


class EtaEstimator(ABC):
    def __init__(self, eta0: float):
        if eta0 <= 0:
            raise ValueError(f"eta0 must be positive, got {eta0}")
        self.eta0 = eta0

    @abstractmethod
    def eta(self, t: int) -> float:
        """Learning rate for the ``t``-th example (1-based)."""


class FixedEtaEstimator(EtaEstimator):
    def eta(self, t: int) -> float:
        return self.eta0


class SimpleEtaEstimator(EtaEstimator):
    """eta0 / (1 + t / total_steps)"""

    def __init__(self, eta0: float, total_steps: int):
        super().__init__(eta0)
        if total_steps < 1:
            raise ValueError(f"total_steps must be >= 1, got {total_steps}")
        self.total_steps = total_steps

    def eta(self, t: int) -> float:
        return self.eta0 / (1.0 + t / self.total_steps)


class InvscalingEtaEstimator(EtaEstimator):
    """eta0 / t^power_t"""

    def __init__(self, eta0: float, power_t: float):
        super().__init__(eta0)
        self.power_t = power_t

    def eta(self, t: int) -> float:
        return self.eta0 / max(t, 1) ** self.power_t


def build_eta_estimator(config: EtaConfig) -> EtaEstimator:
    if config.name == "fixed":
        return FixedEtaEstimator(config.eta0)
    elif config.name == "simple":
        return SimpleEtaEstimator(config.eta0, config.total_steps)
    elif config.name == "invscaling":
        return InvscalingEtaEstimator(config.eta0, config.power_t)
    raise ValueError(
        f"Unknown eta estimator: {config.name}. Available: ['fixed', 'simple', 'invscaling']"
    )
