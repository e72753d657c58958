# pylint: disable=redefined-outer-name
"""Tests for the pointwise log likelihood accessors."""

import numpy as np
import pytest
import xarray as xr
from numpy.testing import assert_allclose, assert_array_equal

from psisloo import (
    DimensionMismatch,
    DrawStore,
    log_likelihood_matrix,
    pointwise_log_likelihood,
    relative_eff,
)


def test_pointwise_single_obs_dim(models):
    log_lik = pointwise_log_likelihood(models.model_2)
    assert log_lik.dims == ("chain", "draw", "obs_id")
    assert log_lik.shape == (4, 250, 20)


def test_pointwise_stacks_obs_dims(multidim_model):
    log_lik = pointwise_log_likelihood(multidim_model)
    assert log_lik.dims == ("chain", "draw", "__obs__")
    assert log_lik.sizes["__obs__"] == 12


def test_pointwise_scalar_obs():
    da = xr.DataArray(np.zeros((2, 10)), dims=["chain", "draw"])
    log_lik = pointwise_log_likelihood(da)
    assert log_lik.dims == ("chain", "draw", "__obs__")


def test_pointwise_missing_sample_dim():
    da = xr.DataArray(np.zeros((10, 3)), dims=["draw", "obs_id"])
    with pytest.raises(DimensionMismatch, match="chain"):
        pointwise_log_likelihood(da)
    assert pointwise_log_likelihood(da, sample_dims=["draw"]).dims == ("draw", "obs_id")


def test_pointwise_posterior_mismatch(normal_model):
    dt = normal_model.copy()
    dt["log_likelihood"] = dt.log_likelihood.to_dataset().isel(draw=slice(0, 100))
    with pytest.raises(DimensionMismatch, match="posterior"):
        pointwise_log_likelihood(dt)


def test_pointwise_observed_mismatch(normal_model):
    dt = normal_model.copy()
    dt["observed_data"] = dt.observed_data.to_dataset().isel(obs_id=slice(0, 10))
    with pytest.raises(DimensionMismatch, match="observed data"):
        pointwise_log_likelihood(dt)


def test_pointwise_unknown_var_name(normal_model):
    with pytest.raises(TypeError):
        pointwise_log_likelihood(normal_model, var_name="z")


def test_log_likelihood_matrix(normal_model):
    matrix = log_likelihood_matrix(normal_model)
    assert matrix.shape == (1000, 20)
    log_lik = normal_model.log_likelihood["y"].values
    assert_array_equal(matrix[:250], log_lik[0])
    assert_array_equal(matrix[250:500], log_lik[1])


def test_log_likelihood_matrix_draw_store():
    log_lik = np.random.default_rng(4).normal(size=(3, 8, 5))
    matrix = log_likelihood_matrix(DrawStore.from_arrays(log_lik=log_lik))
    assert_array_equal(matrix, log_lik.reshape(24, 5))


def test_relative_eff(normal_model):
    r_eff = relative_eff(normal_model)
    assert r_eff.dims == ("obs_id",)
    assert np.all((r_eff > 0.5) & (r_eff < 1.5))


def test_relative_eff_few_draws():
    store = DrawStore.from_arrays(log_lik=np.random.default_rng(5).normal(size=(4, 3, 2)))
    assert_allclose(relative_eff(store), 1)


def test_relative_eff_constant():
    store = DrawStore.from_arrays(log_lik=np.full((2, 50, 3), -1.0))
    assert_allclose(relative_eff(store), 1)
