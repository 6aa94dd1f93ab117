from __future__ import annotations

from enum import Enum

import numpy as np


class VInitScheme(Enum):
    GAUSSIAN = "gaussian"
    UNIFORM = "uniform"


def init_v(
    key: int,
    factors: int,
    seed: int,
    sigma: float,
    scaling: float,
    scheme: VInitScheme = VInitScheme.GAUSSIAN,
) -> np.ndarray:
    """Sample the initial latent vector of ``key``.

    The generator is derived from ``(seed, key)`` alone, so a key gets the
    same vector no matter how many other keys were initialized before it.
    """
    rng = np.random.default_rng([seed & 0xFFFFFFFF, key & 0xFFFFFFFF])
    if scheme is VInitScheme.GAUSSIAN:
        v = rng.normal(0.0, sigma, size=factors)
    else:
        v = rng.uniform(-sigma, sigma, size=factors)
    return (v * scaling).astype(np.float32)
