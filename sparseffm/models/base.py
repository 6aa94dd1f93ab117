from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

import numpy as np

from sparseffm.config import ModelConfig
from sparseffm.errors import NumericDivergence
from sparseffm.features import Feature, KeyFn, interaction_key
from sparseffm.models.init import VInitScheme, init_v
from sparseffm.models.prediction import FFMPredictionModel
from sparseffm.store.entry import Entry
from sparseffm.store.table import IntOpenHashTable

logger = logging.getLogger(__name__)


def _to_float32(value: float) -> np.float32:
    with np.errstate(over="ignore", invalid="ignore"):
        return np.float32(value)


class FieldAwareParameterModel(ABC):
    """Training-time field-aware factorization machine.

    Holds the bias, the hyperparameters and the SGD / AdaGrad update rules.
    Subclasses provide the parameter storage through ``_lookup``, ``_insert``,
    ``_size`` and ``_release_store``. Entries are created on first reference
    with ``W = 0`` and a latent vector sampled from ``(seed, key)``.

    A model has a single writer. After :meth:`snapshot` the store belongs to
    the returned prediction model: reads see no entries and any call that
    would create or update one raises ``RuntimeError``.
    """

    def __init__(self, config: ModelConfig, key_fn: KeyFn = interaction_key):
        self.config = config
        self.factors = config.factors
        self.num_features = config.num_features
        self.num_fields = config.num_fields
        self.key_fn = key_fn

        self._w0 = np.float32(0.0)
        self._lambda_w0 = config.lambda_w0
        self._lambda = config.lambda0
        self._init_scheme = VInitScheme(config.init_scheme)
        self._consumed = False

    @abstractmethod
    def _lookup(self, key: int) -> Optional[Entry]:
        """Return the entry of ``key`` without creating it."""

    @abstractmethod
    def _insert(self, key: int, entry: Entry) -> None:
        """Store a new entry under ``key``."""

    @abstractmethod
    def _size(self) -> int:
        """Number of live entries."""

    @abstractmethod
    def _release_store(self) -> IntOpenHashTable:
        """Hand the entries over as a table and drop every local reference."""

    @property
    def consumed(self) -> bool:
        return self._consumed

    @property
    def w0(self) -> float:
        return float(self._w0)

    def size(self) -> int:
        if self._consumed:
            return 0
        return self._size()

    def _check_live(self) -> None:
        if self._consumed:
            raise RuntimeError(
                f"{type(self).__name__} was snapshotted; its parameters now "
                f"belong to the prediction model"
            )

    def _entry(self, key: int) -> Entry:
        self._check_live()
        entry = self._lookup(key)
        if entry is None:
            entry = self._new_entry(key)
            self._insert(key, entry)
        return entry

    def _new_entry(self, key: int) -> Entry:
        Vf = init_v(
            key,
            self.factors,
            seed=self.config.seed,
            sigma=self.config.sigma,
            scaling=self.config.scaling,
            scheme=self._init_scheme,
        )
        return Entry(0.0, Vf)

    def linear_entry(self, x: Feature) -> Entry:
        return self._entry(x.index)

    def interaction_entry(self, x: Feature, y_field: int) -> Entry:
        return self._entry(self.key_fn(x.index, y_field, self.num_fields))

    def weight(self, x: Feature) -> float:
        """Linear weight of ``x``; 0 when the feature was never updated."""
        if self._consumed:
            return 0.0
        entry = self._lookup(x.index)
        if entry is None:
            return 0.0
        return float(entry.W)

    def latent(self, x: Feature, y_field: int) -> np.ndarray:
        """Latent vector of ``x`` towards ``y_field``, created on first use."""
        return self.interaction_entry(x, y_field).Vf

    # --- forward pass ---

    def _sum_vfx(self, features: Sequence[Feature]) -> List[Dict[int, np.ndarray]]:
        """For each feature i and each partner field, sum_j V[j, field(i)] * x_j."""
        sums: List[Dict[int, np.ndarray]] = [{} for _ in features]
        for i, xi in enumerate(features):
            for j, xj in enumerate(features):
                if i == j:
                    continue
                vj = self.latent(xj, xi.field)
                acc = sums[i].get(xj.field)
                if acc is None:
                    acc = sums[i][xj.field] = np.zeros(self.factors, dtype=np.float64)
                acc += vj * xj.value
        return sums

    def _peek_latent(self, x: Feature, y_field: int) -> Optional[np.ndarray]:
        if self._consumed:
            return None
        entry = self._lookup(self.key_fn(x.index, y_field, self.num_fields))
        return None if entry is None else entry.Vf

    def predict(self, features: Sequence[Feature], init_missing: bool = True) -> float:
        """Raw model output for one example.

        w0 + sum_i W_i x_i + sum_{i<j} <V[i, field(j)], V[j, field(i)]> x_i x_j

        With ``init_missing=False`` unseen pairings contribute 0 and the store
        is left untouched, which is what evaluation wants.
        """
        latent = self.latent if init_missing else self._peek_latent
        ret = float(self._w0)
        n = len(features)
        for i in range(n):
            xi = features[i]
            ret += self.weight(xi) * xi.value
            for j in range(i + 1, n):
                xj = features[j]
                vi = latent(xi, xj.field)
                vj = latent(xj, xi.field)
                if vi is None or vj is None:
                    continue
                ret += float(np.dot(vi.astype(np.float64), vj)) * xi.value * xj.value
        return ret

    # --- updates ---

    def update_w0(self, dloss: float, eta: float) -> None:
        self._check_live()
        prev = float(self._w0)
        grad = float(dloss)
        next_w0 = _to_float32(prev - eta * (grad + 2.0 * self._lambda_w0 * prev))
        if not math.isfinite(next_w0):
            raise NumericDivergence(
                "W0", float(next_w0), gradient=grad, previous=prev, dloss=dloss, eta=eta
            )
        self._w0 = next_w0

    def update_w(self, x: Feature, dloss: float, eta: float) -> None:
        """W <- W - eta * (dloss * x + 2 * lambda * W)"""
        theta = self.linear_entry(x)
        x_value = float(x.value)
        grad = float(dloss) * x_value
        prev = float(theta.W)
        next_w = _to_float32(prev - eta * (grad + 2.0 * self._lambda * prev))
        if not math.isfinite(next_w):
            raise NumericDivergence(
                f"W[{x}]",
                float(next_w),
                feature=x,
                x_value=x_value,
                gradient=grad,
                previous=prev,
                dloss=dloss,
                eta=eta,
            )
        theta.W = next_w

    def update_v(
        self,
        x: Feature,
        y_field: int,
        f: int,
        dloss: float,
        sum_vx: float,
        eta: float,
    ) -> None:
        """Step dimension ``f`` of V[x, y_field].

        ``sum_vx`` is the sum of the partner vectors' ``f``-th value times
        their feature values, so the loss gradient is ``dloss * x * sum_vx``.
        """
        theta = self.interaction_entry(x, y_field)
        x_value = float(x.value)
        grad = float(dloss) * x_value * float(sum_vx)
        prev = float(theta.Vf[f])

        grad_sums = None
        accumulated = 0.0
        if self.config.use_adagrad:
            grad_sums = theta.sum_of_squared_gradients(self.factors)
            accumulated = float(grad_sums[f]) + grad * grad
            eta_v = self.config.eta0_v / math.sqrt(accumulated + self.config.eps)
        else:
            eta_v = eta

        next_v = _to_float32(prev - eta_v * (grad + 2.0 * self._lambda * prev))
        if not (math.isfinite(next_v) and math.isfinite(accumulated)):
            raise NumericDivergence(
                f"V[{x}][{y_field}][{f}]",
                float(next_v),
                feature=x,
                x_value=x_value,
                gradient=grad,
                previous=prev,
                dloss=dloss,
                eta=eta_v,
            )
        if grad_sums is not None:
            grad_sums[f] = accumulated
        theta.Vf[f] = next_v

    def train_theta(self, features: Sequence[Feature], dloss: float, eta: float) -> None:
        """Apply one SGD step for an example whose loss derivative is ``dloss``.

        Latent gradients are computed from the vectors as they were before
        this step.
        """
        sums = self._sum_vfx(features)
        self.update_w0(dloss, eta)
        for x in features:
            self.update_w(x, dloss, eta)
        for x, partner_sums in zip(features, sums):
            for y_field, sum_vx in partner_sums.items():
                for f in range(self.factors):
                    self.update_v(x, y_field, f, dloss, sum_vx[f], eta)

    # --- handover ---

    def snapshot(self) -> FFMPredictionModel:
        """Move the parameters into an immutable prediction model."""
        self._check_live()
        table = self._release_store()
        self._consumed = True
        logger.info(
            f"Snapshotted {type(self).__name__}: {table.size()} entries, "
            f"{table.capacity} slots"
        )
        return FFMPredictionModel(
            table,
            w0=float(self._w0),
            factors=self.factors,
            num_features=self.num_features,
            num_fields=self.num_fields,
            key_fn=self.key_fn,
        )
