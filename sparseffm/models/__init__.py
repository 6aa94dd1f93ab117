from __future__ import annotations

from typing import TYPE_CHECKING

from sparseffm.features import KeyFn, interaction_key

if TYPE_CHECKING:
    from sparseffm.config import ModelConfig
    from sparseffm.models.base import FieldAwareParameterModel


MODEL_REGISTRY = {}


def _register_models():
    """Lazy import to avoid circular dependencies."""
    global MODEL_REGISTRY
    if MODEL_REGISTRY:
        return

    from sparseffm.models.dense import DenseFFMModel
    from sparseffm.models.sparse import SparseFFMModel

    MODEL_REGISTRY.update(
        {
            "sparse": SparseFFMModel,
            "dense": DenseFFMModel,
        }
    )


def build_model(
    config: ModelConfig, key_fn: KeyFn = interaction_key
) -> FieldAwareParameterModel:
    """Factory function for training model construction."""
    _register_models()
    if config.backend not in MODEL_REGISTRY:
        raise ValueError(
            f"Unknown backend: {config.backend}. Available: {list(MODEL_REGISTRY.keys())}"
        )
    return MODEL_REGISTRY[config.backend](config, key_fn=key_fn)
