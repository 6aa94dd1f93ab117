"""Feature representation and the key functions over the int32 key space."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from sklearn.utils import murmurhash3_32

from sparseffm.store.table import INT32_MAX

KeyFn = Callable[[int, int, int], int]


@dataclass(frozen=True)
class Feature:
    """One active feature of an example.

    Attributes:
        index: Linear index of the feature, also its linear key.
        field: Field the feature belongs to, in ``[0, num_fields)``.
        value: Raw feature value ``x``.
        name: Original token, kept for diagnostics only.
    """

    index: int
    field: int
    value: float = 1.0
    name: Optional[str] = None

    def __str__(self) -> str:
        label = self.name if self.name is not None else self.index
        return f"{self.field}:{label}:{self.value}"


def interaction_key(index: int, field: int, num_fields: int) -> int:
    """Map (feature index, target field) onto the int32 key space.

    Injective for ``0 <= field < num_fields``. Previously serialized models
    are only readable with the key function they were trained with.
    """
    if not 0 <= field < num_fields:
        raise ValueError(f"Field {field} is outside [0, {num_fields})")
    if index < 0:
        raise ValueError(f"Feature index must be non-negative, got {index}")
    key = index * num_fields + field
    if key > INT32_MAX:
        raise ValueError(
            f"Interaction key for feature {index}, field {field} "
            f"exceeds the 32-bit key space"
        )
    return key


def hash_feature(name: str, num_features: int, seed: int = 0) -> int:
    """Hash a string feature token into ``[0, num_features)``."""
    if num_features < 1:
        raise ValueError(f"num_features must be positive, got {num_features}")
    return murmurhash3_32(name, seed=seed, positive=True) % num_features
