"""
nnviz.training — Training Engine
=================================
This subpackage runs the cancellable training loop.

A run is a sequence of epochs. Each epoch:
    1. Splits the training set into batches of batch_size
    2. Applies one optimizer update per batch
    3. Emits one TrainMetric (epoch, loss, accuracy)
    4. Yields to the event loop, then checks for a stop request

Stopping is cooperative: a stop request takes effect at the next epoch
boundary, and a stopped run is a normal result with fewer metrics than
epochs requested.

Components:
    - trainer.py      — Trainer, TrainMetric, TrainResult
    - cancellation.py — CancellationToken, TrainingRun (background run handle)

Information Flow:
    Model + Dataset + TrainingConfig → Trainer.stream() → TrainMetric, TrainMetric, ...
                                     → Trainer.train()  → TrainResult
                                     → Trainer.start()  → TrainingRun
"""

from nnviz.training.cancellation import CancellationToken, TrainingRun
from nnviz.training.trainer import TrainMetric, TrainResult, Trainer
