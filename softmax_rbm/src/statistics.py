"""Empirical per-item rating-category counts used to initialise visible biases."""
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np
import torch

from ..constants import N_CATEGORIES
from .data_loader import UserPartition
from .exceptions import DataDegenerate


@dataclass
class EmpiricalStatistics:
    category_counts: np.ndarray
    reachable: np.ndarray

    @property
    def totals(self) -> np.ndarray:
        return self.category_counts.sum(axis=1)

    def check(self) -> None:
        """Raise DataDegenerate for the first reachable item whose log-marginal is undefined."""
        for item_id in np.flatnonzero(self.reachable):
            counts = self.category_counts[item_id]
            if counts.sum() == 0:
                raise DataDegenerate(int(item_id))
            zero = np.flatnonzero(counts == 0)
            if zero.size:
                raise DataDegenerate(int(item_id), int(zero[0]), counts.tolist())

    def visible_bias_init(self) -> torch.Tensor:
        """log(count / total) for every reachable item; unreachable items get 0."""
        self.check()
        bias = np.zeros(self.category_counts.shape, dtype=np.float64)
        rows = self.reachable
        counts = self.category_counts[rows].astype(np.float64)
        bias[rows] = np.log(counts / counts.sum(axis=1, keepdims=True))
        return torch.from_numpy(bias)


def collect_statistics(partitions: Iterable[UserPartition], n_items: int,
                       n_categories: int = N_CATEGORIES) -> EmpiricalStatistics:
    counts = np.zeros((n_items, n_categories), dtype=np.int64)
    reachable = np.zeros(n_items, dtype=bool)
    for partition in partitions:
        items, categories = partition.training_arrays()
        np.add.at(counts, (items, categories), 1)
        touched, _ = partition.touched_arrays()
        reachable[touched] = True
    return EmpiricalStatistics(counts, reachable)


def statistics_from_counts(counts, reachable: Optional[np.ndarray] = None) -> EmpiricalStatistics:
    """Wrap precomputed counts; every item with any count is treated as reachable by default."""
    counts = np.asarray(counts, dtype=np.int64)
    if counts.ndim == 1:
        counts = counts[np.newaxis, :]
    if reachable is None:
        reachable = counts.sum(axis=1) > 0
    return EmpiricalStatistics(counts, np.asarray(reachable, dtype=bool))
