"""Logging configuration."""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(
    name: str = "sparseffm", log_file: str | None = None, level: int | str = logging.INFO
) -> logging.Logger:
    """Configure and return the logger ``name``.

    Library modules log through ``logging.getLogger(__name__)`` and never add
    handlers; the entry point calls this once for the package logger so that
    every ``sparseffm.*`` record reaches stdout (and ``log_file`` if given).
    Calling it again for an already configured logger only adjusts the level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # A dotted child of a configured logger propagates to its handlers.
    parent = name.rsplit(".", 1)[0] if "." in name else None
    if not (parent and logging.getLogger(parent).handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if log_file is not None:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
