#!/usr/bin/env python3
"""
NNViz — Training Script
========================
Builds the model from the config, trains it on the configured dataset
with a per-epoch progress bar, then evaluates it and prints the report.

Usage:
    python scripts/train.py --config configs/default.yaml
    python scripts/train.py --smoke-test
    python scripts/train.py --dataset moons --epochs 100 --threshold 0.8
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from nnviz.config import NNVizConfig
from nnviz.data.datasets import available_datasets, dataset_scope
from nnviz.evaluation.evaluator import format_report
from nnviz.session import Session

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


async def train_with_progress(session: Session, config: NNVizConfig) -> list:
    """Stream the run's metrics into a tqdm bar and return them."""
    data_cfg = config.data
    metrics = []
    with dataset_scope(data_cfg.dataset, n_points=data_cfg.spiral_points, seed=data_cfg.seed) as data:
        with tqdm(total=config.training.epochs, desc="Training", unit="epoch") as bar:
            async for metric in session.trainer.stream(session.model, data, config.training):
                metrics.append(metric)
                bar.set_postfix(loss=f"{metric.loss:.4f}", acc=f"{metric.accuracy:.2f}")
                bar.update(1)
    return metrics


def main():
    parser = argparse.ArgumentParser(
        description="NNViz Training",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Train with the default config:
    python scripts/train.py --config configs/default.yaml

    # Quick smoke test:
    python scripts/train.py --smoke-test

    # Save metrics and the evaluation report:
    python scripts/train.py --output-dir outputs/xor
        """,
    )
    parser.add_argument("--config", type=str, default="configs/default.yaml")
    parser.add_argument("--smoke-test", action="store_true")
    parser.add_argument("--dataset", type=str, default=None, choices=available_datasets())
    parser.add_argument("--epochs", type=int, default=None)
    parser.add_argument("--threshold", type=float, default=None)
    parser.add_argument(
        "--output-dir", type=str, default=None,
        help="Write metrics.json and eval.json here",
    )
    args = parser.parse_args()

    # Load config
    if args.smoke_test:
        config = NNVizConfig.for_smoke_test()
    else:
        config = NNVizConfig.from_yaml(args.config)

    if args.dataset is not None:
        config.data.dataset = args.dataset
    if args.epochs is not None:
        config.training.epochs = args.epochs
    if args.threshold is not None:
        config.evaluation.threshold = args.threshold
    config.validate()
    print(config)

    with Session(config) as session:
        session.build()
        for layer in session.describe():
            logger.info(
                f"  Layer {layer['index']}: {layer['kind']} "
                f"{layer['in_features']}→{layer['units']} ({layer['activation']}), "
                f"{layer['n_params']} params"
            )

        metrics = asyncio.run(train_with_progress(session, config))
        logger.info(
            f"Trained {len(metrics)}/{config.training.epochs} epochs, "
            f"final loss={metrics[-1].loss:.4f}"
        )

        report = session.evaluate()
        print(format_report(report))

        if args.output_dir:
            output_dir = Path(args.output_dir)
            output_dir.mkdir(parents=True, exist_ok=True)
            with open(output_dir / "metrics.json", "w") as f:
                json.dump([m.to_dict() for m in metrics], f, indent=2)
            with open(output_dir / "eval.json", "w") as f:
                json.dump(report.to_dict(), f, indent=2)
            logger.info(f"Results saved to {output_dir}")


if __name__ == "__main__":
    main()
