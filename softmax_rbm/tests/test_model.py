"""Tests for the softmax RBM parameter store and its conditional distributions."""
import math

import pytest
import torch

from softmax_rbm.constants import WEIGHT_INIT_SCALE
from softmax_rbm.src.exceptions import NumericInstability
from softmax_rbm.src.model import SoftmaxRBM, normalize_categories
from softmax_rbm.src.statistics import collect_statistics


class TestInitialization:
    """Tests for parameter shapes and initial values."""

    def test_shapes(self):
        """Parameters and momentum buffers have the configured shapes."""
        rbm = SoftmaxRBM(n_items=7, n_hidden=4)
        assert rbm.W.shape == (7, 5, 4)
        assert rbm.v_bias.shape == (7, 5)
        assert rbm.h_bias.shape == (4,)
        assert rbm.W_inc.shape == rbm.W.shape
        assert not rbm.W.requires_grad

    def test_state_dict_holds_parameters_only(self):
        """Momentum buffers are not persisted."""
        rbm = SoftmaxRBM(n_items=2, n_hidden=3)
        assert set(rbm.state_dict()) == {"W", "v_bias", "h_bias"}

    def test_initialize(self, partitions, n_items, generator):
        """Weights are small noise, hidden biases zero, visible biases log-marginals."""
        rbm = SoftmaxRBM(n_items=n_items, n_hidden=6)
        stats = collect_statistics(partitions, n_items)
        rbm.initialize(stats, generator)
        assert rbm.W.abs().max() <= WEIGHT_INIT_SCALE
        assert rbm.W.abs().max() > 0
        assert (rbm.h_bias == 0).all()
        assert torch.allclose(rbm.v_bias.exp().sum(dim=1), torch.ones(n_items, dtype=torch.float64))

    def test_initialize_reproducible(self, partitions, n_items):
        """Same seed gives identical weights."""
        stats = collect_statistics(partitions, n_items)
        a = SoftmaxRBM(n_items, 6).initialize(stats, torch.Generator().manual_seed(3))
        b = SoftmaxRBM(n_items, 6).initialize(stats, torch.Generator().manual_seed(3))
        assert torch.equal(a.W, b.W)


class TestHiddenUnits:
    """Tests for positive-phase weighted sums and hidden probabilities."""

    def test_weighted_sum_uses_only_observed_pairs(self, generator):
        """Two items, three hidden units: sum is exactly W[0][2] + W[1][0]."""
        rbm = SoftmaxRBM(n_items=2, n_hidden=3)
        with torch.no_grad():
            rbm.W.copy_(torch.randn(rbm.W.shape, generator=generator, dtype=torch.float64))
        items = torch.tensor([0, 1])
        categories = torch.tensor([2, 0])
        assert torch.equal(rbm.weighted_sum(items, categories), rbm.W[0, 2] + rbm.W[1, 0])

    def test_weighted_sum_empty(self):
        """A user with no training records drives no hidden unit."""
        rbm = SoftmaxRBM(n_items=2, n_hidden=3)
        empty = torch.zeros(0, dtype=torch.long)
        assert torch.equal(rbm.weighted_sum(empty, empty), torch.zeros(3, dtype=torch.float64))

    def test_hidden_probability_range(self, small_rbm, generator):
        """Hidden probabilities stay in [0, 1] even for extreme inputs."""
        extreme = torch.tensor([-1e6, 0.0, 1e6], dtype=torch.float64)
        p_h, states = small_rbm.sample_h(extreme, generator)
        assert ((p_h >= 0) & (p_h <= 1)).all()
        assert torch.isfinite(p_h).all()
        assert set(states.tolist()).issubset({0.0, 1.0})

    def test_sample_h_draws_one_value_per_unit(self, small_rbm):
        """The generator advances by exactly n_hidden draws."""
        g1 = torch.Generator().manual_seed(11)
        g2 = torch.Generator().manual_seed(11)
        small_rbm.sample_h(torch.zeros(3, dtype=torch.float64), g1)
        torch.rand(3, generator=g2, dtype=torch.float64)
        assert torch.equal(torch.rand(4, generator=g1), torch.rand(4, generator=g2))


class TestVisibleUnits:
    """Tests for softmax reconstruction and category sampling."""

    def test_categories_sum_to_one(self, small_rbm):
        """Each touched item's category probabilities sum to 1."""
        items = torch.tensor([0, 1, 2, 3])
        p_v = small_rbm.visible_probs(items, torch.tensor([1.0, 0.0, 1.0], dtype=torch.float64))
        assert p_v.shape == (4, 5)
        assert torch.allclose(p_v.sum(dim=1), torch.ones(4, dtype=torch.float64), atol=1e-9)

    @staticmethod
    def _reconstruct_by_hand(rbm, items, hidden):
        rows = []
        for i in items:
            activations = []
            for c in range(rbm.n_categories):
                total = float(rbm.v_bias[i, c])
                for h in range(rbm.n_hidden):
                    total += float(rbm.W[i, c, h]) * float(hidden[h])
                activations.append(1.0 / (1.0 + math.exp(-total)))
            norm = sum(activations)
            rows.append([a / norm for a in activations])
        return torch.tensor(rows, dtype=torch.float64)

    def test_reconstruction_from_binary_states(self, small_rbm):
        """Per-category logistic of the active hidden units' weights plus bias, then normalized."""
        items = [0, 2, 3]
        hidden = torch.tensor([1.0, 0.0, 1.0], dtype=torch.float64)
        p_v = small_rbm.visible_probs(torch.tensor(items), hidden)
        for row, i in enumerate(items):
            logits = small_rbm.W[i, :, 0] + small_rbm.W[i, :, 2] + small_rbm.v_bias[i]
            manual = torch.sigmoid(logits)
            assert torch.allclose(p_v[row], manual / manual.sum(), atol=1e-12)
        assert torch.allclose(p_v, self._reconstruct_by_hand(small_rbm, items, hidden), atol=1e-12)

    def test_reconstruction_from_probabilities(self, small_rbm):
        """Hidden probabilities weight each unit's contribution."""
        items = [1, 3]
        hidden = torch.tensor([0.2, 0.7, 0.45], dtype=torch.float64)
        p_v = small_rbm.visible_probs(torch.tensor(items), hidden)
        assert torch.allclose(p_v, self._reconstruct_by_hand(small_rbm, items, hidden), atol=1e-12)

    def test_reconstruction_is_not_a_plain_softmax(self):
        """Normalized logistics differ from a softmax over the same activations."""
        rbm = SoftmaxRBM(n_items=1, n_hidden=1)
        with torch.no_grad():
            rbm.v_bias.copy_(torch.tensor([[0.0, 1.0, 2.0, 3.0, 4.0]], dtype=torch.float64))
        p_v = rbm.visible_probs(torch.tensor([0]), torch.zeros(1, dtype=torch.float64))
        manual = torch.sigmoid(rbm.v_bias[0])
        assert torch.allclose(p_v[0], manual / manual.sum(), atol=1e-12)
        assert not torch.allclose(p_v[0], torch.softmax(rbm.v_bias[0], dim=0), atol=1e-3)

    def test_zero_sum_left_unnormalized(self):
        """Rows summing to exactly zero are left as zeros."""
        probs = torch.tensor([[0.0] * 5, [1.0, 1.0, 0.0, 0.0, 2.0]], dtype=torch.float64)
        normalized = normalize_categories(probs)
        assert (normalized[0] == 0).all()
        assert torch.allclose(normalized[1], torch.tensor([0.25, 0.25, 0.0, 0.0, 0.5], dtype=torch.float64))

    def test_sample_v_picks_certain_category(self, small_rbm, generator):
        """A one-hot distribution always samples its category."""
        p_v = torch.zeros(3, 5, dtype=torch.float64)
        p_v[0, 0] = 1.0
        p_v[1, 3] = 1.0
        p_v[2, 4] = 1.0
        assert small_rbm.sample_v(p_v, generator).tolist() == [0, 3, 4]

    def test_sample_v_cumulative_walk(self, small_rbm):
        """The sampled category is the first whose cumulative probability reaches the draw."""
        probs = [0.1, 0.3, 0.2, 0.25, 0.15]
        p_v = torch.tensor([probs], dtype=torch.float64)
        draw = torch.rand(1, generator=torch.Generator().manual_seed(5), dtype=torch.float64).item()
        cumulative, expected = 0.0, 4
        for category, p in enumerate(probs):
            cumulative += p
            if cumulative >= draw:
                expected = category
                break
        assert small_rbm.sample_v(p_v, torch.Generator().manual_seed(5)).item() == expected


class TestCheckFinite:
    """Tests for non-finite parameter detection."""

    def test_raises_on_nan(self):
        rbm = SoftmaxRBM(n_items=1, n_hidden=2)
        with torch.no_grad():
            rbm.h_bias[0] = float("nan")
        with pytest.raises(NumericInstability):
            rbm.check_finite()
