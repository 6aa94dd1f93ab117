"""CLI entry point for training, inspecting and applying FFM models."""

from __future__ import annotations

import argparse
import os

from sparseffm.config import ExperimentConfig, load_config
from sparseffm.data.libffm import iter_examples, read_libffm
from sparseffm.models import build_model
from sparseffm.training.losses import build_loss
from sparseffm.training.trainer import OnlineTrainer
from sparseffm.utils import (
    get_logger,
    load_metadata,
    load_model,
    save_model,
    seed_everything,
)


def train_command(config: ExperimentConfig) -> None:
    """Execute the training pipeline."""
    logger = get_logger("sparseffm", log_file=f"{config.output_dir}/train.log")

    seed_everything(config.seed)
    mcfg = config.model

    logger.info("Loading data...")
    train_examples = read_libffm(config.data.train_path, mcfg.num_features, mcfg.num_fields)
    val_examples = None
    if config.data.val_path:
        val_examples = read_libffm(config.data.val_path, mcfg.num_features, mcfg.num_fields)

    model = build_model(mcfg)
    logger.info(
        f"Model: {mcfg.backend} backend, factors={mcfg.factors}, "
        f"features={mcfg.num_features:,}, fields={mcfg.num_fields}, "
        f"adagrad={mcfg.use_adagrad}"
    )

    trainer = OnlineTrainer(model=model, config=config)
    metrics = trainer.fit(train_examples, val_examples)
    logger.info(f"Final metrics: {metrics}")

    prediction_model = trainer.finish()
    os.makedirs(config.output_dir, exist_ok=True)
    save_model(
        prediction_model,
        config.output_dir,
        compress=config.compress,
        metadata={
            "classification": mcfg.classification,
            "min_target": mcfg.min_target,
            "max_target": mcfg.max_target,
        },
    )


def inspect_command(args) -> None:
    """Print the metadata of a saved model."""
    model = load_model(args.model)
    print(f"bias:        {model.bias():.6f}")
    print(f"factors:     {model.factor_dim()}")
    print(f"features:    {model.num_features():,}")
    print(f"fields:      {model.num_fields()}")
    print(f"entries:     {model.size():,}")
    meta = load_metadata(args.model)
    if "classification" in meta:
        print(f"task:        {'classification' if meta['classification'] else 'regression'}")


def predict_command(args) -> None:
    """Print one score per example of a libffm file.

    The task comes from the metadata saved with the model; ``--task``
    overrides it and is required for models saved without metadata.
    """
    model = load_model(args.model)
    meta = load_metadata(args.model)
    if args.task is not None:
        classification = args.task == "classification"
    elif "classification" in meta:
        classification = bool(meta["classification"])
    else:
        raise ValueError(
            f"{args.model} records no task; pass --task classification or --task regression"
        )
    loss = build_loss(
        classification,
        meta.get("min_target", float("-inf")),
        meta.get("max_target", float("inf")),
    )
    with open(args.input) as f:
        for example in iter_examples(f, model.num_features(), model.num_fields()):
            print(f"{loss.transform(model.predict(example.features)):.6f}")


def main() -> None:
    """Parse arguments and dispatch to train/inspect/predict."""
    parser = argparse.ArgumentParser(
        prog="sparseffm",
        description="Field-aware factorization machines over a sparse parameter store",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Train subcommand
    train_parser = subparsers.add_parser("train", help="Train a model")
    train_parser.add_argument("--config", required=True, help="Path to YAML config")
    train_parser.add_argument(
        "--override",
        nargs="*",
        default=[],
        help="Override config values, e.g. model.factors=8",
    )

    # Inspect subcommand
    inspect_parser = subparsers.add_parser("inspect", help="Show model metadata")
    inspect_parser.add_argument("--model", required=True, help="Model file or directory")

    # Predict subcommand
    predict_parser = subparsers.add_parser("predict", help="Score a libffm file")
    predict_parser.add_argument("--model", required=True, help="Model file or directory")
    predict_parser.add_argument("--input", required=True, help="libffm input file")
    predict_parser.add_argument(
        "--task",
        choices=["classification", "regression"],
        default=None,
        help="classification prints probabilities, regression raw scores "
        "(default: the task saved with the model)",
    )

    args = parser.parse_args()

    if args.command == "inspect":
        inspect_command(args)
        return
    if args.command == "predict":
        predict_command(args)
        return

    config = load_config(args.config, args.override or None)
    train_command(config)


if __name__ == "__main__":
    main()
