"""Shared fixtures for the softmax RBM tests."""
import pytest
import torch

from softmax_rbm.src.model import SoftmaxRBM
from softmax_rbm.tests.synthetic import N_ITEMS, make_partitions


@pytest.fixture
def partitions():
    return make_partitions()


@pytest.fixture
def n_items():
    return N_ITEMS


@pytest.fixture
def generator():
    g = torch.Generator()
    g.manual_seed(7)
    return g


@pytest.fixture
def small_rbm(generator):
    """3-hidden-unit RBM over the synthetic items with random weights."""
    rbm = SoftmaxRBM(n_items=N_ITEMS, n_hidden=3)
    with torch.no_grad():
        rbm.W.copy_(torch.randn(rbm.W.shape, generator=generator, dtype=torch.float64) * 0.1)
        rbm.v_bias.copy_(torch.randn(rbm.v_bias.shape, generator=generator, dtype=torch.float64) * 0.1)
    return rbm
