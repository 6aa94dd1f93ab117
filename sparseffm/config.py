"""Dataclass-based configuration with YAML loading via dacite."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from dacite import Config, from_dict


@dataclass
class ModelConfig:
    backend: str = "sparse"
    factors: int = 4
    num_features: int = 2**20
    num_fields: int = 16
    lambda0: float = 0.0001
    lambda_w0: Optional[float] = None
    init_scheme: str = "gaussian"
    sigma: float = 0.1
    scaling: float = 0.5
    seed: int = 43
    use_adagrad: bool = True
    eta0_v: float = 1.0
    eps: float = 1.0
    initial_capacity: int = 65536
    classification: bool = True
    min_target: float = float("-inf")
    max_target: float = float("inf")

    def __post_init__(self):
        if self.factors < 1:
            raise ValueError(f"factors must be >= 1, got {self.factors}")
        if self.num_fields < 1:
            raise ValueError(f"num_fields must be >= 1, got {self.num_fields}")
        if self.num_features < 1:
            raise ValueError(f"num_features must be >= 1, got {self.num_features}")
        if self.init_scheme not in ("gaussian", "uniform"):
            raise ValueError(
                f"Unknown init_scheme: {self.init_scheme}. Available: ['gaussian', 'uniform']"
            )
        if self.eps <= 0:
            raise ValueError(f"eps must be positive, got {self.eps}")
        if self.lambda_w0 is None:
            self.lambda_w0 = self.lambda0


@dataclass
class EtaConfig:
    name: str = "invscaling"
    eta0: float = 0.1
    total_steps: int = 10000
    power_t: float = 0.1


@dataclass
class TrainingConfig:
    epochs: int = 5
    shuffle: bool = True
    log_every: int = 0


@dataclass
class DataConfig:
    train_path: str = "data/train.ffm"
    val_path: Optional[str] = None


@dataclass
class ExperimentConfig:
    seed: int = 42
    output_dir: str = "outputs"
    compress: bool = True
    model: ModelConfig = field(default_factory=ModelConfig)
    eta: EtaConfig = field(default_factory=EtaConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    data: DataConfig = field(default_factory=DataConfig)


def load_config(
    yaml_path: str | Path, overrides: list[str] | None = None
) -> ExperimentConfig:
    """Load config from YAML file with optional dot-notation overrides.

    Args:
        yaml_path: Path to YAML config file.
        overrides: List of "key.subkey=value" strings, e.g. ["model.factors=8"].
    """
    with open(yaml_path) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    if overrides:
        for override in overrides:
            key, value = override.split("=", 1)
            parts = key.strip().split(".")
            target = raw
            for part in parts[:-1]:
                target = target.setdefault(part, {})
            target[parts[-1]] = _parse_value(value.strip())

    # YAML integers are accepted wherever a float is expected.
    return from_dict(
        data_class=ExperimentConfig, data=raw, config=Config(type_hooks={float: float})
    )


def _parse_value(value: str) -> Any:
    """Parse a string value into the appropriate Python type."""
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    if value.lower() in ("none", "null"):
        return None
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    return value
