"""Reproducibility utilities."""

import random

import numpy as np


def seed_everything(seed: int) -> None:
    """Seed the global ``random`` and numpy generators.

    Latent initialization does not depend on these; it derives its own
    generator from the model seed and the key.
    """
    random.seed(seed)
    np.random.seed(seed)
