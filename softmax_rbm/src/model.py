"""Restricted Boltzmann Machine with softmax visible units for rating prediction."""
import torch
import torch.nn as nn
from typing import Tuple

from ..constants import N_CATEGORIES, WEIGHT_INIT_SCALE, LOGIT_CLAMP
from .exceptions import NumericInstability
from .statistics import EmpiricalStatistics


def logistic(x: torch.Tensor) -> torch.Tensor:
    return torch.sigmoid(torch.clamp(x, -LOGIT_CLAMP, LOGIT_CLAMP))


def normalize_categories(probs: torch.Tensor) -> torch.Tensor:
    """Scale each row to sum to 1; rows summing to exactly zero stay zero."""
    totals = probs.sum(dim=-1, keepdim=True)
    safe = torch.where(totals != 0, totals, torch.ones_like(totals))
    return torch.where(totals != 0, probs / safe, probs)


class SoftmaxRBM(nn.Module):
    """RBM whose visible units are 5-way softmax groups, one per item.

    W has shape (n_items, n_categories, n_hidden). Parameters are updated by
    hand from contrastive-divergence statistics, so autograd is disabled and
    the momentum increments are kept as non-persistent buffers.
    """

    def __init__(self, n_items, n_hidden, n_categories=N_CATEGORIES):
        super().__init__()
        self.n_items = n_items
        self.n_hidden = n_hidden
        self.n_categories = n_categories
        shape = (n_items, n_categories, n_hidden)
        self.W = nn.Parameter(torch.zeros(shape, dtype=torch.float64), requires_grad=False)
        self.v_bias = nn.Parameter(torch.zeros(n_items, n_categories, dtype=torch.float64), requires_grad=False)
        self.h_bias = nn.Parameter(torch.zeros(n_hidden, dtype=torch.float64), requires_grad=False)
        self.register_buffer("W_inc", torch.zeros(shape, dtype=torch.float64), persistent=False)
        self.register_buffer("v_bias_inc", torch.zeros(n_items, n_categories, dtype=torch.float64), persistent=False)
        self.register_buffer("h_bias_inc", torch.zeros(n_hidden, dtype=torch.float64), persistent=False)

    @torch.no_grad()
    def initialize(self, statistics: EmpiricalStatistics, generator: torch.Generator = None):
        """Small uniform weights, zero hidden biases, visible biases from log-marginals."""
        v_bias = statistics.visible_bias_init()
        if tuple(v_bias.shape) != tuple(self.v_bias.shape):
            raise ValueError(f"Statistics shape {tuple(v_bias.shape)} does not match "
                             f"visible biases {tuple(self.v_bias.shape)}")
        noise = torch.rand(self.W.shape, generator=generator, dtype=torch.float64)
        self.W.copy_(WEIGHT_INIT_SCALE * (2.0 * noise - 1.0))
        self.h_bias.zero_()
        self.v_bias.copy_(v_bias)
        self.W_inc.zero_()
        self.v_bias_inc.zero_()
        self.h_bias_inc.zero_()
        return self

    def weighted_sum(self, items: torch.Tensor, categories: torch.Tensor) -> torch.Tensor:
        """Sum of W[item][category][:] over the given (item, category) pairs."""
        if items.numel() == 0:
            return torch.zeros(self.n_hidden, dtype=self.W.dtype, device=self.W.device)
        return self.W[items, categories].sum(dim=0)

    def hidden_probs(self, weighted_sum: torch.Tensor) -> torch.Tensor:
        return logistic(weighted_sum + self.h_bias)

    def sample_h(self, weighted_sum: torch.Tensor,
                 generator: torch.Generator = None) -> Tuple[torch.Tensor, torch.Tensor]:
        """Hidden probabilities and one Bernoulli draw per unit, ascending order."""
        p_h = self.hidden_probs(weighted_sum)
        draws = torch.rand(self.n_hidden, generator=generator, dtype=p_h.dtype, device=p_h.device)
        return p_h, (p_h > draws).to(p_h.dtype)

    def visible_probs(self, items: torch.Tensor, hidden: torch.Tensor) -> torch.Tensor:
        """Normalized category probabilities for each item given hidden states or probabilities."""
        activation = torch.matmul(self.W[items], hidden) + self.v_bias[items]
        return normalize_categories(logistic(activation))

    def sample_v(self, p_v: torch.Tensor, generator: torch.Generator = None) -> torch.Tensor:
        """One category per row: the first whose cumulative probability reaches the draw."""
        draws = torch.rand(p_v.shape[0], generator=generator, dtype=p_v.dtype, device=p_v.device)
        cumulative = torch.cumsum(p_v, dim=1)
        below = (cumulative < draws.unsqueeze(1)).sum(dim=1)
        return torch.clamp(below, max=self.n_categories - 1)

    def check_finite(self):
        for name, tensor in (("W", self.W), ("v_bias", self.v_bias), ("h_bias", self.h_bias)):
            if not torch.isfinite(tensor).all():
                raise NumericInstability(f"Non-finite values in {name} after update")
