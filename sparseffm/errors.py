"""Exception types raised by the parameter store and the FFM models."""

from __future__ import annotations

from typing import Any


class FFMError(RuntimeError):
    """Base class for sparseffm failures."""


class NumericDivergence(FFMError):
    """An update produced a non-finite weight or latent value.

    Raised before the value is stored, so the model keeps its last finite
    state. The attributes carry the quantities that produced the value.
    """

    def __init__(
        self,
        target: str,
        value: float,
        *,
        feature: Any = None,
        x_value: float | None = None,
        gradient: float | None = None,
        previous: float | None = None,
        dloss: float | None = None,
        eta: float | None = None,
    ):
        self.target = target
        self.value = value
        self.feature = feature
        self.x_value = x_value
        self.gradient = gradient
        self.previous = previous
        self.dloss = dloss
        self.eta = eta
        super().__init__(
            f"Got {value} for next {target} (feature={feature})\n"
            f"x_value={x_value}, gradient={gradient}, previous={previous}, "
            f"dloss={dloss}, eta={eta}"
        )


class MalformedLayout(FFMError):
    """Parallel slot arrays or a serialized model are inconsistent or truncated."""
