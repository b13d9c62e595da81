"""Mini-batch contrastive-divergence statistics and the momentum parameter update."""
import torch

from ..constants import N_CATEGORIES, WEIGHT_COST
from .model import SoftmaxRBM
from .sampling import ChainResult, PositivePhase, UserTensors
from .schedule import LearningRates


class GradientAccumulator:
    """CDpos/CDneg co-occurrence counts and activation sums for one mini-batch window."""

    def __init__(self, n_items, n_hidden, n_categories=N_CATEGORIES,
                 dtype=torch.float64, device='cpu'):
        shape = (n_items, n_categories, n_hidden)
        self.cd_pos = torch.zeros(shape, dtype=dtype, device=device)
        self.cd_neg = torch.zeros(shape, dtype=dtype, device=device)
        self.pos_hid_act = torch.zeros(n_hidden, dtype=dtype, device=device)
        self.neg_hid_act = torch.zeros(n_hidden, dtype=dtype, device=device)
        self.pos_vis_act = torch.zeros(n_items, n_categories, dtype=dtype, device=device)
        self.neg_vis_act = torch.zeros(n_items, n_categories, dtype=dtype, device=device)
        self.item_counts = torch.zeros(n_items, dtype=dtype, device=device)
        self.n_cases = 0

    @classmethod
    def for_model(cls, rbm: SoftmaxRBM):
        return cls(rbm.n_items, rbm.n_hidden, rbm.n_categories,
                   dtype=rbm.W.dtype, device=rbm.W.device)

    def _tensors(self):
        return (self.cd_pos, self.cd_neg, self.pos_hid_act, self.neg_hid_act,
                self.pos_vis_act, self.neg_vis_act, self.item_counts)

    def reset(self):
        for tensor in self._tensors():
            tensor.zero_()
        self.n_cases = 0

    def is_zero(self) -> bool:
        return self.n_cases == 0 and all(not tensor.any() for tensor in self._tensors())

    def add_user(self, user: UserTensors, positive: PositivePhase, chain: ChainResult):
        """Fold one user's positive and final negative statistics into the window."""
        items = user.train_items
        categories = user.train_categories
        sampled = chain.sampled[:user.n_train]
        n_train = items.shape[0]
        ones = torch.ones(n_train, dtype=self.item_counts.dtype, device=self.item_counts.device)

        self.item_counts.index_add_(0, items, ones)
        self.pos_vis_act.index_put_((items, categories), ones, accumulate=True)
        self.neg_vis_act.index_put_((items, sampled), ones, accumulate=True)
        self.pos_hid_act += positive.states
        self.neg_hid_act += chain.hidden_states
        self.cd_pos.index_put_((items, categories),
                               positive.states.unsqueeze(0).expand(n_train, -1), accumulate=True)
        self.cd_neg.index_put_((items, sampled),
                               chain.hidden_states.unsqueeze(0).expand(n_train, -1), accumulate=True)
        self.n_cases += 1


def _momentum_step(param, increment, gradient, active, momentum):
    updated = momentum * increment + gradient
    increment.copy_(torch.where(active, updated, increment))
    param.add_(torch.where(active, increment, torch.zeros_like(increment)))


@torch.no_grad()
def apply_batch_update(rbm: SoftmaxRBM, acc: GradientAccumulator, rates: LearningRates,
                       momentum: float, weight_cost: float = WEIGHT_COST):
    """Apply one momentum step from the window's statistics, then clear the window.

    Only items seen in the window are touched, and within them only entries
    with a non-zero positive or negative statistic. Weight decay applies to
    the weights but not to either bias.
    """
    observed = acc.item_counts > 0
    counts = torch.where(observed, acc.item_counts, torch.ones_like(acc.item_counts))

    cd_pos = acc.cd_pos / counts.view(-1, 1, 1)
    cd_neg = acc.cd_neg / counts.view(-1, 1, 1)
    active_w = observed.view(-1, 1, 1) & ((acc.cd_pos != 0) | (acc.cd_neg != 0))
    grad_w = rates.epsilon_w * ((cd_pos - cd_neg) - weight_cost * rbm.W)
    _momentum_step(rbm.W, rbm.W_inc, grad_w, active_w, momentum)

    pos_vis = acc.pos_vis_act / counts.view(-1, 1)
    neg_vis = acc.neg_vis_act / counts.view(-1, 1)
    active_vb = observed.view(-1, 1) & ((acc.pos_vis_act != 0) | (acc.neg_vis_act != 0))
    grad_vb = rates.epsilon_vb * (pos_vis - neg_vis)
    _momentum_step(rbm.v_bias, rbm.v_bias_inc, grad_vb, active_vb, momentum)

    n_cases = max(acc.n_cases, 1)
    pos_hid = acc.pos_hid_act / n_cases
    neg_hid = acc.neg_hid_act / n_cases
    active_hb = (acc.pos_hid_act != 0) | (acc.neg_hid_act != 0)
    grad_hb = rates.epsilon_hb * (pos_hid - neg_hid)
    _momentum_step(rbm.h_bias, rbm.h_bias_inc, grad_hb, active_hb, momentum)

    rbm.check_finite()
    acc.reset()
