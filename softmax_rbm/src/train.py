"""Softmax RBM training with CD-k, momentum mini-batches and an RMSE stopping rule."""
import enum
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

import mlflow as mlf
import numpy as np
import torch

from ..constants import BATCH_SIZE, MAX_EPOCHS, MIN_EPOCHS, INITIAL_RMSE, INITIAL_LAST_RMSE, WEIGHT_COST
from .accumulators import GradientAccumulator, apply_batch_update
from .data_loader import UserPartition
from .evaluate import ErrorAccumulator, record_residuals
from .exceptions import ConfigurationMismatch
from .model import SoftmaxRBM
from .sampling import UserTensors, gibbs_chain, positive_phase
from .schedule import (
    LearningRates, decay_schedule_for, momentum_for, sampling_steps, should_continue,
)
from .statistics import collect_statistics

logger = logging.getLogger(__name__)


class TrainingState(enum.Enum):
    INITIALIZING = "initializing"
    RUNNING_EPOCH = "running_epoch"
    CONVERGED = "converged"
    HARD_CAP_REACHED = "hard_cap_reached"
    FINALIZING = "finalizing"


@dataclass
class EpochReport:
    epoch: int
    train_rmse: float
    probe_rmse: float
    seconds: float
    steps: int = 1
    momentum: float = 0.0


@dataclass
class TrainingResult:
    rbm: SoftmaxRBM
    history: List[EpochReport] = field(default_factory=list)
    residuals: Optional[np.ndarray] = None
    state: TrainingState = TrainingState.INITIALIZING
    stop_reason: Optional[TrainingState] = None
    transitions: List[TrainingState] = field(default_factory=lambda: [TrainingState.INITIALIZING])

    @property
    def epochs(self) -> int:
        return len(self.history)

    def enter(self, state: TrainingState):
        if state is not self.state:
            self.transitions.append(state)
        self.state = state
        if state in (TrainingState.CONVERGED, TrainingState.HARD_CAP_REACHED):
            self.stop_reason = state


def make_generator(seed: int, device='cpu') -> torch.Generator:
    generator = torch.Generator(device=device)
    generator.manual_seed(seed)
    return generator


def process_user(rbm, user: UserTensors, acc: GradientAccumulator, errors: ErrorAccumulator,
                 steps: int, generator=None):
    """Positive phase, T-step chain, error bookkeeping and gradient accumulation for one user."""
    positive = positive_phase(rbm, user, generator)
    chain = gibbs_chain(rbm, user, positive, steps=steps, generator=generator)
    errors.add_user(user, chain.expectation)
    acc.add_user(user, positive, chain)
    return positive, chain


@torch.no_grad()
def train_epoch(rbm: SoftmaxRBM, users: Sequence[UserTensors], acc: GradientAccumulator,
                rates: LearningRates, momentum: float, steps: int, generator=None,
                batch_size: int = BATCH_SIZE, weight_cost: float = WEIGHT_COST):
    """One pass over all users; parameters move after every ``batch_size`` users and at the last."""
    errors = ErrorAccumulator()
    n_users = len(users)
    for u, user in enumerate(users):
        process_user(rbm, user, acc, errors, steps, generator)
        if (u + 1) % batch_size == 0 or (u + 1) == n_users:
            apply_batch_update(rbm, acc, rates, momentum, weight_cost=weight_cost)
    return errors.rmse()


def log_epoch(report: EpochReport, use_mlflow=True):
    """Default reporter: one log line per epoch, mirrored to MLflow when a run is active."""
    logger.info(f"Epoch {report.epoch:02d} | Train RMSE: {report.train_rmse:.6f} | "
                f"Probe RMSE: {report.probe_rmse:.6f} | T={report.steps} | "
                f"momentum={report.momentum:.2f} | {report.seconds:.2f}s")
    if use_mlflow and mlf.active_run():
        mlf.log_metrics({
            "train_rmse": report.train_rmse,
            "probe_rmse": report.probe_rmse,
            "epoch_seconds": report.seconds,
            "gibbs_steps": report.steps,
        }, step=report.epoch)


def train_rbm(rbm: SoftmaxRBM, partitions: Sequence[UserPartition], seed: int = 0,
              batch_size: int = BATCH_SIZE, max_epochs: int = MAX_EPOCHS,
              min_epochs: int = MIN_EPOCHS, reporter: Callable[[EpochReport], None] = None,
              device='cpu', use_mlflow=True) -> TrainingResult:
    """Train from scratch until training RMSE stops improving or the epoch cap is hit.

    Probe RMSE is reported each epoch but does not take part in the stopping
    decision. After the loop, residuals for every record are computed from the
    expectation reconstruction.
    """
    if not 1 <= max_epochs <= MAX_EPOCHS:
        raise ConfigurationMismatch(f"max_epochs must be between 1 and {MAX_EPOCHS}, got {max_epochs}")
    result = TrainingResult(rbm)
    schedule = decay_schedule_for(rbm.n_hidden)
    generator = make_generator(seed, device=device)
    rbm.to(device)

    statistics = collect_statistics(partitions, rbm.n_items, rbm.n_categories)
    rbm.initialize(statistics, generator)
    users = [UserTensors.from_partition(p, device=device) for p in partitions]
    acc = GradientAccumulator.for_model(rbm)
    if reporter is None:
        def reporter(report):
            log_epoch(report, use_mlflow=use_mlflow)

    if use_mlflow and mlf.active_run():
        mlf.log_params({
            "n_items": rbm.n_items,
            "n_hidden": rbm.n_hidden,
            "n_users": len(users),
            "batch_size": batch_size,
            "max_epochs": max_epochs,
            "seed": seed,
            "weight_cost": WEIGHT_COST,
        })

    rates = LearningRates()
    rmse, last_rmse = INITIAL_RMSE, INITIAL_LAST_RMSE
    epochs_done = 0
    while should_continue(rmse, last_rmse, epochs_done, min_epochs=min_epochs, max_epochs=max_epochs):
        result.enter(TrainingState.RUNNING_EPOCH)
        steps = sampling_steps(epochs_done)
        epoch_number = epochs_done + 1
        momentum = momentum_for(epoch_number)
        last_rmse = rmse

        t0 = time.perf_counter()
        rmse, probe_rmse = train_epoch(rbm, users, acc, rates, momentum, steps,
                                       generator=generator, batch_size=batch_size)
        epochs_done = epoch_number

        report = EpochReport(epoch_number, rmse, probe_rmse, time.perf_counter() - t0, steps, momentum)
        result.history.append(report)
        reporter(report)
        rates = rates.decayed(schedule.factor(epoch_number))

    if epochs_done >= max_epochs:
        result.enter(TrainingState.HARD_CAP_REACHED)
        logger.info(f"Stopped at the {max_epochs}-epoch cap")
    else:
        result.enter(TrainingState.CONVERGED)
        logger.info(f"Training RMSE converged after {epochs_done} epochs")
    result.enter(TrainingState.FINALIZING)

    if schedule.target_probe_rmse is not None and result.history:
        logger.info(f"Final probe RMSE {result.history[-1].probe_rmse:.6f} "
                    f"(reference for {rbm.n_hidden} hidden units: {schedule.target_probe_rmse})")

    result.residuals = record_residuals(rbm, partitions, device=device)

    if use_mlflow and mlf.active_run():
        mlf.log_metrics({
            "final_train_rmse": result.history[-1].train_rmse if result.history else 0.0,
            "final_probe_rmse": result.history[-1].probe_rmse if result.history else 0.0,
            "total_epochs_trained": epochs_done,
        })
    return result
