"""FFM parameters kept in an open-addressing hash table."""

from __future__ import annotations

from typing import Optional

from sparseffm.config import ModelConfig
from sparseffm.features import KeyFn, interaction_key
from sparseffm.models.base import FieldAwareParameterModel
from sparseffm.store.entry import Entry
from sparseffm.store.table import IntOpenHashTable


class SparseFFMModel(FieldAwareParameterModel):
    """Sparse backing: only keys that were referenced take up memory.

    Suited to hashed feature spaces with millions of possible keys of which
    few are ever active.
    """

    def __init__(self, config: ModelConfig, key_fn: KeyFn = interaction_key):
        super().__init__(config, key_fn)
        self._map: Optional[IntOpenHashTable] = IntOpenHashTable(config.initial_capacity)

    def _lookup(self, key: int) -> Optional[Entry]:
        if self._map is None:
            return None
        return self._map.get(key)

    def _insert(self, key: int, entry: Entry) -> None:
        self._map.put(key, entry)

    def _size(self) -> int:
        return self._map.size()

    def _release_store(self) -> IntOpenHashTable:
        table, self._map = self._map, None
        return table
