"""Positive phase and CD-k Gibbs chain for a single user."""
from dataclasses import dataclass

import torch

from .data_loader import UserPartition
from .model import SoftmaxRBM


@dataclass
class UserTensors:
    """A user's touched items (training first, then probe) as tensors."""

    items: torch.Tensor
    categories: torch.Tensor
    n_train: int

    @property
    def train_items(self) -> torch.Tensor:
        return self.items[:self.n_train]

    @property
    def train_categories(self) -> torch.Tensor:
        return self.categories[:self.n_train]

    @classmethod
    def from_partition(cls, partition: UserPartition, device='cpu'):
        items, categories = partition.touched_arrays()
        return cls(
            items=torch.as_tensor(items, dtype=torch.long, device=device),
            categories=torch.as_tensor(categories, dtype=torch.long, device=device),
            n_train=len(partition.training),
        )


@dataclass
class PositivePhase:
    weighted_sum: torch.Tensor
    probs: torch.Tensor
    states: torch.Tensor


@dataclass
class ChainResult:
    """Outcome of T Gibbs steps.

    ``sampled`` holds the final-step category for every touched item,
    ``hidden_states`` the final negative hidden sample, and ``expectation``
    the step-0 reconstruction driven by hidden probabilities, which is only
    used to measure error.
    """

    sampled: torch.Tensor
    visible_probs: torch.Tensor
    hidden_probs: torch.Tensor
    hidden_states: torch.Tensor
    expectation: torch.Tensor
    steps: int


def positive_phase(rbm: SoftmaxRBM, user: UserTensors, generator=None) -> PositivePhase:
    weighted_sum = rbm.weighted_sum(user.train_items, user.train_categories)
    p_h, h_states = rbm.sample_h(weighted_sum, generator)
    return PositivePhase(weighted_sum, p_h, h_states)


def expectation_reconstruction(rbm: SoftmaxRBM, items: torch.Tensor, hidden_probs: torch.Tensor) -> torch.Tensor:
    return rbm.visible_probs(items, hidden_probs)


def gibbs_chain(rbm: SoftmaxRBM, user: UserTensors, positive: PositivePhase,
                steps: int = 1, generator=None) -> ChainResult:
    """Run ``steps`` alternations of visible reconstruction and hidden resampling.

    Probe items are reconstructed and sampled alongside training items but
    only training items drive the hidden units.
    """
    if steps < 1:
        raise ValueError(f"Gibbs chain needs at least one step, got {steps}")
    current = positive.states
    expectation = None
    for step in range(steps):
        p_v = rbm.visible_probs(user.items, current)
        if step == 0:
            expectation = expectation_reconstruction(rbm, user.items, positive.probs)
        sampled = rbm.sample_v(p_v, generator)
        neg_sum = rbm.weighted_sum(user.train_items, sampled[:user.n_train])
        neg_probs, neg_states = rbm.sample_h(neg_sum, generator)
        current = neg_states
    return ChainResult(
        sampled=sampled,
        visible_probs=p_v,
        hidden_probs=neg_probs,
        hidden_states=neg_states,
        expectation=expectation,
        steps=steps,
    )
