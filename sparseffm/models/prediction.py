"""Immutable FFM parameters for inference and their byte layout.

Layout (big-endian)::

    magic      4s     b"FFMP"
    version    uint16
    w0         float64
    factors    int32
    features   int32
    fields     int32
    used       int32   number of FULL slots
    slots      int32   total number of slots

followed by one record per slot in table order: ``status:int8`` and
``key:int32``, and for FULL slots only ``W:float32`` and ``factors`` float32
latent values.
"""

from __future__ import annotations

import struct
from typing import Optional, Sequence

import numpy as np

from sparseffm.errors import MalformedLayout
from sparseffm.features import Feature, KeyFn, interaction_key
from sparseffm.store.entry import Entry
from sparseffm.store.table import FULL, IntOpenHashTable

MAGIC = b"FFMP"
FORMAT_VERSION = 1

_PREAMBLE = struct.Struct(">4sH")
_HEADER = struct.Struct(">diiiii")
_SLOT = struct.Struct(">bi")


class FFMPredictionModel:
    """Read-only snapshot of a trained FFM.

    Built once from a training model (which hands over its table) or from
    serialized bytes. Nothing writes to it afterwards, so it may be shared by
    concurrent readers.
    """

    def __init__(
        self,
        table: IntOpenHashTable,
        w0: float,
        factors: int,
        num_features: int,
        num_fields: int,
        key_fn: KeyFn = interaction_key,
    ):
        self._map = table
        self._w0 = float(w0)
        self._factors = factors
        self._num_features = num_features
        self._num_fields = num_fields
        self._key_fn = key_fn

    def bias(self) -> float:
        return self._w0

    def factor_dim(self) -> int:
        return self._factors

    def num_features(self) -> int:
        return self._num_features

    def num_fields(self) -> int:
        return self._num_fields

    def size(self) -> int:
        return self._map.size()

    def weight(self, x: Feature) -> float:
        entry = self._map.get(x.index)
        if entry is None:
            return 0.0
        return float(entry.W)

    def vector(self, x: Feature, y_field: int) -> Optional[np.ndarray]:
        """Latent vector of ``x`` towards ``y_field``, or None if never learned."""
        entry = self._map.get(self._key_fn(x.index, y_field, self._num_fields))
        if entry is None:
            return None
        v = entry.Vf.view()
        v.flags.writeable = False
        return v

    def predict(self, features: Sequence[Feature]) -> float:
        ret = self._w0
        n = len(features)
        for i in range(n):
            xi = features[i]
            ret += self.weight(xi) * xi.value
            for j in range(i + 1, n):
                xj = features[j]
                vi = self.vector(xi, xj.field)
                if vi is None:
                    continue
                vj = self.vector(xj, xi.field)
                if vj is None:
                    continue
                ret += float(np.dot(vi.astype(np.float64), vj)) * xi.value * xj.value
        return ret

    # --- serialization ---

    def serialize(self) -> bytes:
        keys, values, states = self._map.bulk_view()
        k = self._factors
        num_slots = len(keys)
        full = states == FULL
        num_full = int(np.count_nonzero(full))

        # Each slot takes 5 bytes, plus 4 * (1 + k) for FULL ones.
        record_sizes = np.where(full, 5 + 4 * (1 + k), 5)
        offsets = np.zeros(num_slots, dtype=np.int64)
        np.cumsum(record_sizes[:-1], out=offsets[1:])
        body = np.zeros(int(record_sizes.sum()), dtype=np.uint8)

        body[offsets] = states.view(np.uint8)
        key_bytes = keys.astype(">i4").view(np.uint8).reshape(num_slots, 4)
        body[offsets[:, None] + np.arange(1, 5)] = key_bytes

        if num_full:
            payload = np.empty((num_full, 1 + k), dtype=">f4")
            for row, idx in enumerate(np.flatnonzero(full)):
                entry = values[idx]
                if entry.factors != k:
                    raise MalformedLayout(
                        f"Entry for key {int(keys[idx])} has {entry.factors} factors, "
                        f"expected {k}"
                    )
                payload[row, 0] = entry.W
                payload[row, 1:] = entry.Vf
            width = 4 * (1 + k)
            positions = offsets[full][:, None] + 5 + np.arange(width)
            body[positions] = payload.view(np.uint8).reshape(num_full, width)

        header = _PREAMBLE.pack(MAGIC, FORMAT_VERSION) + _HEADER.pack(
            self._w0, k, self._num_features, self._num_fields, num_full, num_slots
        )
        return header + body.tobytes()

    @classmethod
    def deserialize(
        cls, data: bytes, key_fn: KeyFn = interaction_key
    ) -> FFMPredictionModel:
        view = memoryview(data)
        try:
            magic, version = _PREAMBLE.unpack_from(view, 0)
            w0, factors, num_features, num_fields, used, num_slots = _HEADER.unpack_from(
                view, _PREAMBLE.size
            )
        except struct.error as e:
            raise MalformedLayout(f"Truncated model header ({len(data)} bytes)") from e
        if magic != MAGIC:
            raise MalformedLayout(f"Bad magic {magic!r}, expected {MAGIC!r}")
        if version != FORMAT_VERSION:
            raise MalformedLayout(f"Unsupported format version {version}")
        if factors < 1 or num_fields < 1 or used < 0 or num_slots < used:
            raise MalformedLayout(
                f"Inconsistent header: factors={factors}, fields={num_fields}, "
                f"used={used}, slots={num_slots}"
            )

        offset = _PREAMBLE.size + _HEADER.size
        expected = offset + 5 * num_slots + 4 * (1 + factors) * used
        if len(data) != expected:
            raise MalformedLayout(
                f"Expected {expected} bytes for {num_slots} slots ({used} used), "
                f"got {len(data)}"
            )

        keys = np.zeros(num_slots, dtype=np.int32)
        states = np.zeros(num_slots, dtype=np.int8)
        values: list[Optional[Entry]] = [None] * num_slots
        width = 1 + factors
        try:
            for i in range(num_slots):
                state, key = _SLOT.unpack_from(view, offset)
                offset += _SLOT.size
                states[i] = state
                keys[i] = key
                if state != FULL:
                    continue
                record = np.frombuffer(view, dtype=">f4", count=width, offset=offset)
                offset += 4 * width
                values[i] = Entry(record[0], record[1:].astype(np.float32))
        except (struct.error, ValueError) as e:
            raise MalformedLayout(f"Truncated slot records at byte {offset}") from e
        if offset != len(data):
            raise MalformedLayout(f"{len(data) - offset} unexpected trailing bytes")

        table = IntOpenHashTable.rebuild(keys, values, states, used)
        return cls(table, w0, factors, num_features, num_fields, key_fn=key_fn)

    def __repr__(self) -> str:
        return (
            f"FFMPredictionModel(size={self.size()}, factors={self._factors}, "
            f"num_features={self._num_features}, num_fields={self._num_fields})"
        )
