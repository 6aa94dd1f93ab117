"""Reader for the libffm text format.

Each line is ``label field:feature:value ...``. ``feature`` is either a
non-negative integer index or an arbitrary token, which is hashed into
``[0, num_features)``. ``:value`` may be omitted and defaults to 1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from sparseffm.features import Feature, hash_feature

logger = logging.getLogger(__name__)


@dataclass
class Example:
    label: float
    features: List[Feature]


def parse_line(
    line: str, num_features: int, num_fields: int, lineno: int = 0
) -> Optional[Example]:
    """Parse one line; returns None for blank and comment lines."""
    line = line.strip()
    if not line or line.startswith("#"):
        return None

    tokens = line.split()
    try:
        label = float(tokens[0])
    except ValueError:
        raise ValueError(f"line {lineno}: invalid label {tokens[0]!r}") from None

    features = []
    for token in tokens[1:]:
        parts = token.split(":")
        if len(parts) not in (2, 3):
            raise ValueError(f"line {lineno}: expected field:feature[:value], got {token!r}")
        try:
            field = int(parts[0])
            value = float(parts[2]) if len(parts) == 3 else 1.0
        except ValueError:
            raise ValueError(f"line {lineno}: malformed feature {token!r}") from None
        if not 0 <= field < num_fields:
            raise ValueError(f"line {lineno}: field {field} is outside [0, {num_fields})")

        name = parts[1]
        if name.isdigit():
            index = int(name)
            if index >= num_features:
                raise ValueError(
                    f"line {lineno}: feature index {index} is outside [0, {num_features})"
                )
        else:
            index = hash_feature(name, num_features)
        features.append(Feature(index=index, field=field, value=value, name=name))

    return Example(label=label, features=features)


def iter_examples(
    lines: Iterable[str], num_features: int, num_fields: int
) -> Iterator[Example]:
    for lineno, line in enumerate(lines, start=1):
        example = parse_line(line, num_features, num_fields, lineno)
        if example is not None:
            yield example


def read_libffm(path: str | Path, num_features: int, num_fields: int) -> List[Example]:
    with open(path) as f:
        examples = list(iter_examples(f, num_features, num_fields))
    logger.info(f"Read {len(examples)} examples from {path}")
    return examples
