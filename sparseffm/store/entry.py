from __future__ import annotations

from typing import Optional

import numpy as np


class Entry:
    """Parameters bound to one key: a scalar weight and a latent vector.

    ``W`` is read through the linear key of a feature and ``Vf`` through its
    interaction key, so one entry may serve both kinds when the keys coincide.
    ``grad_sums`` holds the AdaGrad accumulators of ``Vf``; it is allocated on
    the first adaptive update and never serialized.
    """

    __slots__ = ("W", "Vf", "grad_sums")

    def __init__(
        self,
        W: float,
        Vf: np.ndarray,
        grad_sums: Optional[np.ndarray] = None,
    ):
        if Vf is None:
            raise ValueError("Entry requires a latent vector")
        self.W = np.float32(W)
        self.Vf = np.asarray(Vf, dtype=np.float32)
        self.grad_sums = grad_sums

    @property
    def factors(self) -> int:
        return int(self.Vf.shape[0])

    def sum_of_squared_gradients(self, factors: int) -> np.ndarray:
        if self.grad_sums is None:
            self.grad_sums = np.zeros(factors, dtype=np.float64)
        return self.grad_sums

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return self.W == other.W and np.array_equal(self.Vf, other.Vf)

    def __repr__(self) -> str:
        return f"Entry(W={float(self.W)!r}, Vf={self.Vf.tolist()!r})"
