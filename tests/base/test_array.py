"""Tests for array interface base functions."""

# pylint: disable=redefined-outer-name, no-self-use, protected-access
import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal
from scipy.special import logsumexp

from psisloo.base.array import BaseArray, process_ary_axes, process_chain_none


@pytest.fixture
def array_stats():
    return BaseArray()


@pytest.fixture(scope="module")
def log_lik():
    rng = np.random.default_rng(12)
    return rng.normal(-1, 0.3, size=(4, 200, 7)).transpose(2, 0, 1)


class TestHelperFunctions:
    def test_process_chain_none_with_none(self):
        ary = np.empty((100, 50))
        ary_out, chain_axis, draw_axis = process_chain_none(ary, None, -1)
        assert ary_out.shape == (1, 100, 50)
        assert chain_axis == 0
        assert draw_axis == -1

    def test_process_chain_none_without_none(self):
        ary = np.empty((4, 100, 50))
        ary_out, chain_axis, draw_axis = process_chain_none(ary, 0, 1)
        assert ary_out.shape == ary.shape
        assert chain_axis == 0
        assert draw_axis == 1

    def test_process_chain_none_positive_draw_axis(self):
        ary = np.empty((100, 50))
        ary_out, chain_axis, draw_axis = process_chain_none(ary, None, 1)
        assert ary_out.shape == (1, 100, 50)
        assert chain_axis == 0
        assert draw_axis == 2

    @pytest.mark.parametrize("axis", [0, 1, -1, -2])
    def test_process_ary_axes_single_axis(self, axis):
        ary = np.empty((10, 20, 30))
        ary_out, axes = process_ary_axes(ary, axis)
        assert ary_out.ndim == ary.ndim
        assert len(axes) == 1
        assert axes[-1] == -1
        assert ary.shape[axis] == ary_out.shape[-1]

    def test_process_ary_axes_multiple_axes(self):
        ary = np.empty((10, 20, 30))
        ary_out, axes = process_ary_axes(ary, [0, 2])
        assert ary_out.shape == (20, 10, 30)
        assert_array_equal(axes, [-2, -1])

    def test_process_ary_axes_none(self):
        ary = np.empty((10, 20, 30))
        ary_out, axes = process_ary_axes(ary, None)
        assert ary_out.shape == ary.shape
        assert_array_equal(axes, [-3, -2, -1])


class TestEfficiency:
    def test_ess_shape(self, array_stats, log_lik):
        ess = array_stats.ess(log_lik)
        assert ess.shape == (7,)
        assert np.all(ess > 0)

    def test_ess_relative(self, array_stats, log_lik):
        assert_allclose(array_stats.ess(log_lik, relative=True) * 800, array_stats.ess(log_lik))

    def test_relative_eff_chain_draw_axis(self, array_stats, log_lik):
        moved = np.moveaxis(log_lik, 0, -1)
        assert_allclose(
            array_stats.relative_eff(moved, chain_axis=0, draw_axis=1),
            array_stats.relative_eff(log_lik),
        )


class TestPSIS:
    def test_psislw_basic(self, array_stats, log_lik):
        log_weights, khat = array_stats.psislw(log_lik, axis=(-2, -1))
        assert log_weights.shape == log_lik.shape
        assert khat.shape == (7,)
        assert_allclose(logsumexp(log_weights, axis=(-2, -1)), 0, atol=1e-10)

    @pytest.mark.parametrize("axis", [0, -1])
    def test_psislw_axis_integer(self, array_stats, axis):
        ary = np.random.default_rng(3).normal(size=(300, 300))
        log_weights, khat = array_stats.psislw(ary, axis=axis)
        assert log_weights.shape == (300, 300)
        assert khat.shape == (300,)

    def test_psislw_scalar_and_array_r_eff(self, array_stats, log_lik):
        _, khat_scalar = array_stats.psislw(log_lik, r_eff=0.5, axis=(-2, -1))
        _, khat_array = array_stats.psislw(log_lik, r_eff=np.full(7, 0.5), axis=(-2, -1))
        assert_allclose(khat_scalar, khat_array)

    def test_psislw_draw_order_invariance(self, array_stats, log_lik):
        flat = log_lik.reshape(7, -1)
        perm = np.random.default_rng(4).permutation(flat.shape[-1])
        _, khat = array_stats.psislw(flat)
        _, khat_perm = array_stats.psislw(flat[:, perm])
        assert_allclose(khat, khat_perm)


class TestLoo:
    def test_loo_shapes(self, array_stats, log_lik):
        elpd_i, pareto_k, p_loo_i = array_stats.loo(log_lik)
        assert elpd_i.shape == pareto_k.shape == p_loo_i.shape == (7,)

    def test_loo_matches_definition(self, array_stats, log_lik):
        elpd_i, _, p_loo_i = array_stats.loo(log_lik, reff=1.0)
        log_weights, _ = array_stats.psislw(log_lik, axis=(-2, -1))
        expected = logsumexp(log_weights + log_lik, axis=(-2, -1))
        assert_allclose(elpd_i, expected)
        lppd_i = logsumexp(log_lik, axis=(-2, -1), b=1 / 800)
        assert_allclose(p_loo_i, lppd_i - expected)

    def test_loo_with_weights(self, array_stats, log_lik):
        log_weights, khat = array_stats.psislw(log_lik, axis=(-2, -1))
        elpd_i, pareto_k, _ = array_stats.loo(log_lik, log_weights=log_weights, pareto_k=khat)
        elpd_i_ref, _, _ = array_stats.loo(log_lik)
        assert_allclose(pareto_k, khat)
        assert_allclose(elpd_i, elpd_i_ref)

    def test_loo_single_chain(self, array_stats, log_lik):
        flat = log_lik.reshape(7, -1)
        elpd_i, _, _ = array_stats.loo(flat, chain_axis=None, draw_axis=-1)
        assert elpd_i.shape == (7,)

    def test_loo_constant(self, array_stats):
        elpd_i, pareto_k, p_loo_i = array_stats.loo(np.full((3, 2, 4), -1.0))
        assert_allclose(elpd_i, -1)
        assert_array_equal(pareto_k, 0)
        assert_allclose(p_loo_i, 0, atol=1e-12)

    def test_loo_weights_without_k(self, array_stats, log_lik):
        with pytest.raises(ValueError, match="together"):
            array_stats.loo(log_lik, log_weights=np.zeros_like(log_lik))
