"""Open-addressing hash table from 32-bit integer keys to :class:`Entry`.

The table is three parallel arrays of the same length: ``keys`` (int32),
``values`` (``Entry`` or ``None``) and ``states`` (int8). Slot ``i`` holds a
live mapping only when ``states[i] == FULL``. Collisions are resolved with
double hashing over a prime-sized table, and removals leave a ``REMOVED``
tombstone so probe sequences stay intact.
"""

from __future__ import annotations

import logging
import operator
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from sparseffm.errors import MalformedLayout
from sparseffm.store.entry import Entry

logger = logging.getLogger(__name__)

FREE = 0
FULL = 1
REMOVED = 2

DEFAULT_SIZE = 65536
LOAD_FACTOR = 0.7
GROW_FACTOR = 2.0

INT32_MIN = -(2**31)
INT32_MAX = 2**31 - 1


def is_prime(n: int) -> bool:
    if n < 2:
        return False
    if n % 2 == 0:
        return n == 2
    i = 3
    while i * i <= n:
        if n % i == 0:
            return False
        i += 2
    return True


def next_prime(n: int) -> int:
    """Smallest prime >= max(n, 3)."""
    n = max(n, 3)
    while not is_prime(n):
        n += 1
    return n


def _hash(key: int) -> int:
    # Fibonacci mixing so that runs of consecutive keys spread over the table.
    return (((key & 0xFFFFFFFF) * 0x9E3779B1) & 0xFFFFFFFF) >> 1


def _find_slot(keys: np.ndarray, states: np.ndarray, key: int) -> int:
    n = len(keys)
    h = _hash(key)
    idx = h % n
    decr = 1 + h % (n - 2)
    for _ in range(n):
        state = states[idx]
        if state == FREE:
            return -1
        if state == FULL and keys[idx] == key:
            return idx
        idx -= decr
        if idx < 0:
            idx += n
    return -1


def _find_insert_slot(states: np.ndarray, key: int) -> int:
    """First FREE or REMOVED slot on the probe sequence of an absent key."""
    n = len(states)
    h = _hash(key)
    idx = h % n
    decr = 1 + h % (n - 2)
    for _ in range(n):
        if states[idx] != FULL:
            return idx
        idx -= decr
        if idx < 0:
            idx += n
    raise RuntimeError(f"No free slot for key {key} in a table of {n} slots")


def _check_key(key: int) -> int:
    key = operator.index(key)
    if not INT32_MIN <= key <= INT32_MAX:
        raise ValueError(f"Key {key} is outside the 32-bit integer range")
    return key


class IntOpenHashTable:
    """Mutable int32 -> Entry mapping with a positional bulk view.

    Only one thread may mutate a table. Reads never modify it, so a table
    that is no longer written to can be shared between readers.
    """

    def __init__(self, size: int = DEFAULT_SIZE):
        capacity = next_prime(size)
        self._keys = np.zeros(capacity, dtype=np.int32)
        self._values: list[Optional[Entry]] = [None] * capacity
        self._states = np.zeros(capacity, dtype=np.int8)
        self._used = 0
        self._removed = 0
        self._threshold = int(capacity * LOAD_FACTOR)

    @classmethod
    def rebuild(
        cls,
        keys: Sequence[int] | np.ndarray,
        values: Sequence[Optional[Entry]],
        states: Sequence[int] | np.ndarray,
        used: int,
    ) -> IntOpenHashTable:
        """Adopt previously captured slot arrays without re-hashing keys.

        The new table takes ownership of the entries in ``values``; the source
        they came from must not be used afterwards. Each FULL key must be
        unique and reachable along its own probe sequence.
        """
        if not len(keys) == len(values) == len(states):
            raise MalformedLayout(
                f"Slot arrays disagree in length: keys={len(keys)}, "
                f"values={len(values)}, states={len(states)}"
            )
        capacity = len(keys)
        if not is_prime(capacity) or capacity < 3:
            raise MalformedLayout(f"Slot count {capacity} is not a usable table size")

        keys_arr = np.asarray(keys, dtype=np.int32).copy()
        states_arr = np.asarray(states, dtype=np.int8).copy()
        valid = (states_arr == FREE) | (states_arr == FULL) | (states_arr == REMOVED)
        if not valid.all():
            bad = int(np.flatnonzero(~valid)[0])
            raise MalformedLayout(f"Unknown slot state {int(states_arr[bad])} at slot {bad}")

        full = states_arr == FULL
        num_full = int(np.count_nonzero(full))
        if num_full != used:
            raise MalformedLayout(f"Expected {used} FULL slots but found {num_full}")

        values_list: list[Optional[Entry]] = [None] * capacity
        seen: set[int] = set()
        for i in np.flatnonzero(full):
            entry = values[i]
            if not isinstance(entry, Entry):
                raise MalformedLayout(f"FULL slot {int(i)} holds no entry")
            if id(entry) in seen:
                raise MalformedLayout(f"FULL slot {int(i)} shares its entry with another slot")
            seen.add(id(entry))
            values_list[i] = entry

        if np.unique(keys_arr[full]).size != num_full:
            raise MalformedLayout(f"Duplicate key among {num_full} FULL slots")
        for i in np.flatnonzero(full):
            if _find_slot(keys_arr, states_arr, int(keys_arr[i])) != i:
                raise MalformedLayout(
                    f"Key {int(keys_arr[i])} in slot {int(i)} is off its probe sequence"
                )

        table = cls.__new__(cls)
        table._keys = keys_arr
        table._values = values_list
        table._states = states_arr
        table._used = num_full
        table._removed = int(np.count_nonzero(states_arr == REMOVED))
        table._threshold = int(capacity * LOAD_FACTOR)
        return table

    @property
    def capacity(self) -> int:
        return len(self._keys)

    def size(self) -> int:
        return self._used

    def __len__(self) -> int:
        return self._used

    def __contains__(self, key: int) -> bool:
        return _find_slot(self._keys, self._states, _check_key(key)) >= 0

    def get(self, key: int) -> Optional[Entry]:
        idx = _find_slot(self._keys, self._states, _check_key(key))
        if idx < 0:
            return None
        return self._values[idx]

    def put(self, key: int, entry: Entry) -> None:
        if not isinstance(entry, Entry):
            raise TypeError(f"Expected an Entry, got {type(entry).__name__}")
        key = _check_key(key)
        idx = _find_slot(self._keys, self._states, key)
        if idx >= 0:
            self._values[idx] = entry
            return

        if self._used + self._removed + 1 > self._threshold:
            self._ensure_capacity()

        idx = _find_insert_slot(self._states, key)
        if self._states[idx] == REMOVED:
            self._removed -= 1
        self._keys[idx] = key
        self._values[idx] = entry
        self._states[idx] = FULL
        self._used += 1

    def remove(self, key: int) -> Optional[Entry]:
        idx = _find_slot(self._keys, self._states, _check_key(key))
        if idx < 0:
            return None
        entry = self._values[idx]
        self._values[idx] = None
        self._states[idx] = REMOVED
        self._used -= 1
        self._removed += 1
        return entry

    def items(self) -> Iterator[Tuple[int, Entry]]:
        for idx in np.flatnonzero(self._states == FULL):
            yield int(self._keys[idx]), self._values[idx]

    def bulk_view(self) -> Tuple[np.ndarray, Tuple[Optional[Entry], ...], np.ndarray]:
        """Return ``(keys, values, states)`` aligned slot by slot.

        Slot order is an internal detail and changes whenever the table grows.
        """
        keys = self._keys.view()
        keys.flags.writeable = False
        states = self._states.view()
        states.flags.writeable = False
        return keys, tuple(self._values), states

    def _ensure_capacity(self) -> None:
        if self._removed > self._used:
            new_capacity = self.capacity
        else:
            new_capacity = next_prime(round(self.capacity * GROW_FACTOR))
        self._rehash(new_capacity)

    def _rehash(self, new_capacity: int) -> None:
        keys = np.zeros(new_capacity, dtype=np.int32)
        values: list[Optional[Entry]] = [None] * new_capacity
        states = np.zeros(new_capacity, dtype=np.int8)
        for idx in np.flatnonzero(self._states == FULL):
            key = int(self._keys[idx])
            slot = _find_insert_slot(states, key)
            keys[slot] = key
            values[slot] = self._values[idx]
            states[slot] = FULL

        logger.debug(
            f"Rehashed table: {self.capacity} -> {new_capacity} slots "
            f"({self._used} used, {self._removed} tombstones dropped)"
        )
        # Swap in the fully built arrays together.
        self._keys, self._values, self._states = keys, values, states
        self._removed = 0
        self._threshold = int(new_capacity * LOAD_FACTOR)

    def __repr__(self) -> str:
        return f"IntOpenHashTable(size={self._used}, capacity={self.capacity})"
