#!/usr/bin/env python
# =============================================================================
# Model Training CLI
# =============================================================================
"""
Train a sequential model on tabular data from a CSV file.

Loads the CSV with pandas, builds a Dataset, holds out a test split,
compiles the model definition, trains it and prints a summary with the
final, best-epoch and test metrics.

Usage:
    python main.py --data iris.csv --inputs a b c d --outputs x y z
    python main.py --data iris.csv --inputs a b c d --outputs x y z --preset classification --num-classes 3
    python main.py --data houses.csv --inputs rooms area --outputs price --config run.yaml
"""

import argparse
import logging
import sys

import pandas as pd

from core.settings import configure_logging, load_settings
from data_pipeline.dataset import Dataset
from data_pipeline.transforms import split_data
from models.definition import create_model_definition
from training.callbacks import create_metrics_logging_callback
from training.config import get_recommended_config, load_training_config
from training.results import TrainingResult
from training.trainer import ModelTrainer, train_model


logger = logging.getLogger(__name__)


def format_summary(result: TrainingResult, test_metrics) -> str:
    lines = [
        f"Epochs run:      {result.epochs}",
        f"Stopped reason:  {result.stopped_reason.value}",
        f"Duration:        {result.duration_ms / 1000:.2f}s",
    ]
    if result.best_epoch is not None:
        lines.append(f"Best epoch:      {result.best_epoch + 1}")

    lines.append("")
    lines.append("Final metrics:")
    for name, value in result.final_metrics.items():
        lines.append(f"  {name:<16} {value:.4f}")

    if test_metrics:
        lines.append("")
        lines.append("Test metrics:")
        for name, value in test_metrics.items():
            lines.append(f"  {name:<16} {value:.4f}")

    if result.overfitting is not None and result.overfitting.is_overfitting:
        lines.append("")
        lines.append(f"WARNING: possible overfitting (gap {result.overfitting.gap:.4f})")

    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Train a sequential model on CSV data')
    parser.add_argument('--data', required=True, help='CSV file with one sample per row')
    parser.add_argument('--inputs', nargs='+', required=True, help='Input feature columns')
    parser.add_argument('--outputs', nargs='+', required=True, help='Label columns')
    parser.add_argument(
        '--config',
        help='YAML run file with optional preset/model/training sections'
    )
    parser.add_argument(
        '--preset',
        help='Training preset when no run file is given (default from config.yaml)'
    )
    parser.add_argument('--num-classes', type=int, help='Class count for the classification preset')
    parser.add_argument('--epochs', type=int, help='Override training epochs')
    parser.add_argument(
        '--test-split',
        type=float,
        default=0.2,
        help='Fraction of rows held out for evaluation (default: 0.2)'
    )
    parser.add_argument('--settings', help='Path to config.yaml')

    args = parser.parse_args(argv)

    settings = load_settings(args.settings)
    configure_logging(settings)
    training_settings = settings['training']

    definition = None
    if args.config:
        definition, config = load_training_config(args.config)
    else:
        preset = args.preset or training_settings['default_preset']
        options = {}
        if args.num_classes is not None:
            options['num_classes'] = args.num_classes
        config = get_recommended_config(preset, **options)

    if args.epochs is not None:
        config = config.replace(epochs=args.epochs)

    logger.info(f"Training configuration: {config.to_dict()}")

    df = pd.read_csv(args.data)
    logger.info(f"Loaded {len(df)} rows from {args.data}")

    dataset = Dataset.from_dataframe(df, args.inputs, args.outputs)
    split = None

    try:
        split = split_data(dataset, train_ratio=1.0 - args.test_split)
        train_set = Dataset(
            split.train_inputs,
            split.train_labels,
            input_columns=args.inputs,
            output_columns=args.outputs
        )

        if definition is None:
            definition = create_model_definition(
                input_shape=(len(args.inputs),),
                output_width=len(args.outputs)
            )

        trainer = ModelTrainer(
            overfitting_threshold=training_settings['overfitting_threshold'],
            monitor=training_settings['early_stopping']['monitor'],
            min_delta=training_settings['early_stopping']['min_delta']
        )

        with train_set:
            graph, result = train_model(
                definition,
                train_set,
                config,
                callbacks=create_metrics_logging_callback(training_settings['metrics_log_interval']),
                trainer=trainer
            )

        test_metrics = {}
        if split.test_inputs.shape[0] > 0:
            test_metrics = trainer.evaluate(graph, split.test_inputs, split.test_labels)

        print("\n" + "=" * 60)
        print(format_summary(result, test_metrics))
        print("=" * 60 + "\n")

        return 0

    except KeyboardInterrupt:
        logger.warning("Training interrupted by user")
        return 1
    except Exception as e:
        logger.error(f"Training failed: {e}", exc_info=True)
        return 1
    finally:
        if split is not None:
            split.dispose()
        dataset.dispose()


if __name__ == "__main__":
    sys.exit(main())
