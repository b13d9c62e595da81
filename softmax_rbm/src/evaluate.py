"""Expectation-based rating error: per-epoch RMSE and final residuals."""
import logging
import math
from typing import Sequence, Tuple

import numpy as np
import torch

from .data_loader import UserPartition
from .model import SoftmaxRBM
from .sampling import UserTensors, expectation_reconstruction

logger = logging.getLogger(__name__)


def expected_rating(p_v: torch.Tensor) -> torch.Tensor:
    """Sum over categories of category index times probability, per row."""
    levels = torch.arange(p_v.shape[-1], dtype=p_v.dtype, device=p_v.device)
    return torch.matmul(p_v, levels)


class ErrorAccumulator:
    """Squared residual sums for training and probe records over one epoch."""

    def __init__(self):
        self.train_sse = 0.0
        self.train_count = 0
        self.probe_sse = 0.0
        self.probe_count = 0

    def add_user(self, user: UserTensors, expectation: torch.Tensor):
        residuals = user.categories.to(expectation.dtype) - expected_rating(expectation)
        squared = residuals ** 2
        self.train_sse += squared[:user.n_train].sum().item()
        self.train_count += user.n_train
        self.probe_sse += squared[user.n_train:].sum().item()
        self.probe_count += int(user.items.shape[0]) - user.n_train

    @staticmethod
    def _rmse(sse, count, segment):
        if count == 0:
            logger.warning(f"No {segment} records seen this epoch; reporting RMSE 0")
            return 0.0
        return math.sqrt(sse / count)

    def rmse(self) -> Tuple[float, float]:
        return (self._rmse(self.train_sse, self.train_count, "training"),
                self._rmse(self.probe_sse, self.probe_count, "probe"))


@torch.no_grad()
def record_residuals(rbm: SoftmaxRBM, partitions: Sequence[UserPartition], device='cpu') -> np.ndarray:
    """Observed minus expected rating for every record of every user, in record order.

    Runs the positive phase on hidden probabilities only; no parameters are
    changed and no random numbers are drawn.
    """
    residuals = []
    for partition in partitions:
        records = partition.records
        if not records:
            continue
        train_items, train_cats = partition.training_arrays()
        weighted_sum = rbm.weighted_sum(
            torch.as_tensor(train_items, dtype=torch.long, device=device),
            torch.as_tensor(train_cats, dtype=torch.long, device=device),
        )
        p_h = rbm.hidden_probs(weighted_sum)
        items = torch.as_tensor([r.item_id for r in records], dtype=torch.long, device=device)
        observed = torch.as_tensor([r.category for r in records], dtype=rbm.W.dtype, device=device)
        p_v = expectation_reconstruction(rbm, items, p_h)
        residuals.append((observed - expected_rating(p_v)).cpu().numpy())
    if not residuals:
        return np.zeros(0, dtype=np.float64)
    return np.concatenate(residuals)
