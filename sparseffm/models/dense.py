"""FFM parameters kept in a flat, directly indexed array of entries."""

from __future__ import annotations

import logging
from typing import List, Optional

from sparseffm.config import ModelConfig
from sparseffm.features import KeyFn, interaction_key
from sparseffm.models.base import FieldAwareParameterModel
from sparseffm.store.entry import Entry
from sparseffm.store.table import LOAD_FACTOR, IntOpenHashTable

logger = logging.getLogger(__name__)

MAX_DENSE_SLOTS = 2**24


class DenseFFMModel(FieldAwareParameterModel):
    """Dense backing for small feature spaces.

    Every key in ``[0, num_features * num_fields)`` has a preallocated slot,
    so lookups skip hashing entirely. Entries are still created lazily. On
    snapshot the live entries are packed into an ``IntOpenHashTable`` so the
    prediction model and its byte layout are the same for both backings.
    """

    def __init__(self, config: ModelConfig, key_fn: KeyFn = interaction_key):
        super().__init__(config, key_fn)
        num_slots = config.num_features * config.num_fields
        if num_slots > MAX_DENSE_SLOTS:
            raise ValueError(
                f"Dense backing needs {num_slots:,} slots (limit {MAX_DENSE_SLOTS:,}); "
                f"use the sparse backend for this feature space"
            )
        self._slots: Optional[List[Optional[Entry]]] = [None] * num_slots
        self._used = 0

    def _lookup(self, key: int) -> Optional[Entry]:
        if self._slots is None or not 0 <= key < len(self._slots):
            return None
        return self._slots[key]

    def _insert(self, key: int, entry: Entry) -> None:
        if not 0 <= key < len(self._slots):
            raise ValueError(
                f"Key {key} is outside the dense key range [0, {len(self._slots)})"
            )
        if self._slots[key] is None:
            self._used += 1
        self._slots[key] = entry

    def _size(self) -> int:
        return self._used

    def _release_store(self) -> IntOpenHashTable:
        slots, self._slots = self._slots, None
        table = IntOpenHashTable(int(self._used / LOAD_FACTOR) + 1)
        for key, entry in enumerate(slots):
            if entry is not None:
                table.put(key, entry)
        logger.debug(f"Packed {self._used} dense entries into {table.capacity} slots")
        self._used = 0
        return table
