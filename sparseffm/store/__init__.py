from sparseffm.store.entry import Entry
from sparseffm.store.table import FREE, FULL, REMOVED, IntOpenHashTable

__all__ = [
    "Entry",
    "IntOpenHashTable",
    "FREE",
    "FULL",
    "REMOVED",
]
