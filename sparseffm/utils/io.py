import json
import logging
import os
import zlib
from typing import Optional

from sparseffm.errors import MalformedLayout
from sparseffm.features import KeyFn, interaction_key
from sparseffm.models.prediction import FFMPredictionModel

logger = logging.getLogger(__name__)

# Deflate stream header bytes: CMF 0x78 with any FLG.
_ZLIB_CMF = 0x78
MODEL_FILENAME = "model.ffm"


def to_compressed_bytes(data: bytes, level: int = 6) -> bytes:
    return zlib.compress(data, level)


def from_compressed_bytes(data: bytes) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error as e:
        raise MalformedLayout(f"Corrupt compressed model: {e}") from e


def is_compressed(data: bytes) -> bool:
    return len(data) >= 2 and data[0] == _ZLIB_CMF and (data[0] * 256 + data[1]) % 31 == 0


def _model_path(path_or_dir: str) -> str:
    if os.path.isdir(path_or_dir):
        return os.path.join(path_or_dir, MODEL_FILENAME)
    return path_or_dir


def metadata_path(model_path: str) -> str:
    """Sidecar JSON next to a model file: ``model.ffm`` -> ``model.json``."""
    return os.path.splitext(model_path)[0] + ".json"


def save_model(
    model: FFMPredictionModel,
    path_or_dir: str,
    compress: bool = True,
    metadata: Optional[dict] = None,
) -> str:
    """Write ``model`` to a file, or to ``model.ffm`` inside a directory.

    ``metadata`` (e.g. the task the model was trained for) goes to a JSON
    sidecar, since the binary layout only carries parameters.
    """
    path = _model_path(path_or_dir)
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    data = model.serialize()
    raw_size = len(data)
    if compress:
        data = to_compressed_bytes(data)
    with open(path, "wb") as f:
        f.write(data)
    logger.info(
        f"Saved model to {path} ({model.size()} entries, {raw_size:,} bytes"
        f"{f' -> {len(data):,} compressed' if compress else ''})"
    )
    if metadata is not None:
        with open(metadata_path(path), "w") as f:
            json.dump(metadata, f, indent=2)
    return path


def load_metadata(path_or_dir: str) -> dict:
    """Metadata saved alongside a model, or ``{}`` when there is none."""
    meta = metadata_path(_model_path(path_or_dir))
    if not os.path.exists(meta):
        return {}
    with open(meta) as f:
        return json.load(f)


def load_model(path_or_dir: str, key_fn: KeyFn = interaction_key) -> FFMPredictionModel:
    """Read a model written by :func:`save_model`, compressed or not."""
    path = _model_path(path_or_dir)
    with open(path, "rb") as f:
        data = f.read()
    if is_compressed(data):
        data = from_compressed_bytes(data)
    model = FFMPredictionModel.deserialize(data, key_fn=key_fn)
    logger.info(f"Loaded model from {path} ({model.size()} entries)")
    return model
