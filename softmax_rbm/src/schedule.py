"""Epoch schedules: sampling depth, momentum, learning-rate decay and the stopping rule."""
from dataclasses import dataclass, replace
from typing import Tuple

from ..constants import (
    EPSILON_W, EPSILON_VB, EPSILON_HB, MOMENTUM, FINAL_MOMENTUM, MOMENTUM_SWITCH_EPOCH,
    SAMPLING_WARMUP_EPOCHS, SAMPLING_BASE_STEPS, SAMPLING_STEP_INTERVAL,
    DECAY_SCHEDULES, TARGET_PROBE_RMSE, RMSE_EPSILON, MIN_EPOCHS, MAX_EPOCHS,
)
from .exceptions import ConfigurationMismatch


@dataclass(frozen=True)
class LearningRates:
    epsilon_w: float = EPSILON_W
    epsilon_vb: float = EPSILON_VB
    epsilon_hb: float = EPSILON_HB

    def decayed(self, factor: float) -> "LearningRates":
        if factor == 1.0:
            return self
        return replace(
            self,
            epsilon_w=self.epsilon_w * factor,
            epsilon_vb=self.epsilon_vb * factor,
            epsilon_hb=self.epsilon_hb * factor,
        )


@dataclass(frozen=True)
class DecaySchedule:
    """Piecewise multiplicative decay applied after each completed epoch.

    ``steps`` holds (first_epoch, factor) pairs; the factor of the latest
    step whose first_epoch is <= the completed epoch number applies.
    """

    n_hidden: int
    steps: Tuple[Tuple[int, float], ...]
    target_probe_rmse: float = None

    def factor(self, epoch_number: int) -> float:
        for first_epoch, factor in sorted(self.steps, reverse=True):
            if epoch_number >= first_epoch:
                return factor
        return 1.0


def decay_schedule_for(n_hidden: int) -> DecaySchedule:
    if n_hidden not in DECAY_SCHEDULES:
        raise ConfigurationMismatch(
            f"No learning-rate decay preset for n_hidden={n_hidden}; "
            f"supported: {sorted(DECAY_SCHEDULES)}"
        )
    return DecaySchedule(n_hidden, DECAY_SCHEDULES[n_hidden], TARGET_PROBE_RMSE.get(n_hidden))


def sampling_steps(epoch_index: int) -> int:
    """Gibbs depth T for a 0-based epoch index."""
    if epoch_index < SAMPLING_WARMUP_EPOCHS:
        return 1
    return SAMPLING_BASE_STEPS + (epoch_index - SAMPLING_WARMUP_EPOCHS) // SAMPLING_STEP_INTERVAL


def momentum_for(epoch_number: int) -> float:
    """Momentum for a 1-based epoch number."""
    return MOMENTUM if epoch_number <= MOMENTUM_SWITCH_EPOCH else FINAL_MOMENTUM


def should_continue(rmse: float, last_rmse: float, epochs_done: int,
                    min_epochs: int = MIN_EPOCHS, max_epochs: int = MAX_EPOCHS,
                    epsilon: float = RMSE_EPSILON) -> bool:
    """Keep training while training RMSE still improves (or during warm-up), never past the cap.

    Probe RMSE is deliberately not consulted.
    """
    if epochs_done >= max_epochs:
        return False
    return rmse < last_rmse - epsilon or epochs_done < min_epochs
