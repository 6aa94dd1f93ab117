from sparseffm.utils.io import (
    from_compressed_bytes,
    load_metadata,
    load_model,
    save_model,
    to_compressed_bytes,
)
from sparseffm.utils.logging import get_logger
from sparseffm.utils.seeding import seed_everything

__all__ = [
    "seed_everything",
    "get_logger",
    "save_model",
    "load_model",
    "load_metadata",
    "to_compressed_bytes",
    "from_compressed_bytes",
]
