#!/usr/bin/env python3
"""
NNViz — Activation Inspector
=============================
Trains a model, then prints what every layer outputs for one input, or
for all four XOR inputs.

Usage:
    python scripts/inspect_activations.py --smoke-test --input 0 1
    python scripts/inspect_activations.py --config configs/default.yaml --all
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from nnviz.config import NNVizConfig
from nnviz.session import Session

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def _fmt(values) -> str:
    return "[" + ", ".join(f"{v:+.3f}" for v in values) + "]"


def main():
    parser = argparse.ArgumentParser(description="NNViz Activation Inspector")
    parser.add_argument("--config", type=str, default="configs/default.yaml")
    parser.add_argument("--smoke-test", action="store_true")
    parser.add_argument("--input", type=float, nargs="+", default=None,
                        help="One input example, e.g. --input 0 1")
    parser.add_argument("--all", action="store_true",
                        help="Run all four XOR inputs")
    parser.add_argument("--no-train", action="store_true",
                        help="Inspect the freshly initialized model")
    args = parser.parse_args()

    if args.smoke_test:
        config = NNVizConfig.for_smoke_test()
    else:
        config = NNVizConfig.from_yaml(args.config)

    with Session(config) as session:
        session.build()
        if not args.no_train:
            result = asyncio.run(session.train())
            logger.info(f"Trained {result.epochs_completed} epochs, loss={result.final_loss:.4f}")

        if args.all or args.input is None:
            results = session.forward_all()
            if results is None:
                logger.error("Forward pass failed")
                sys.exit(1)
            for res in results:
                print(f"\nInput {_fmt(res.input)} → class {res.predicted_class}")
                for idx, act in enumerate(res.activations):
                    print(f"  layer {idx}: {_fmt(act)}")
        else:
            activations = session.forward(args.input)
            if activations is None:
                logger.error("Forward pass failed")
                sys.exit(1)
            print(f"\nInput {_fmt(args.input)}")
            for idx, act in enumerate(activations):
                print(f"  layer {idx}: {_fmt(act)}")


if __name__ == "__main__":
    main()
