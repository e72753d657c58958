# pylint: disable=redefined-outer-name
"""Tests for prior and posterior predictive simulation."""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from psisloo import (
    DimensionMismatch,
    DrawStore,
    ModelSpec,
    SamplingMode,
    SamplingWrapper,
    posterior_predictive,
    predictive_check,
    predictive_summary,
    prior_predictive,
)

from .helpers import normal_log_lik


class NormalMeanWrapper(SamplingWrapper):
    """Fake sampler for ``y ~ normal(mu, 1)`` with ``mu ~ normal(0, mu_sd)``.

    It draws ``mu`` from the prior when the likelihood switch is off and from the
    conjugate posterior otherwise. Outputs are always labelled as posterior.
    """

    def __init__(self, model=None, as_store=True, **kwargs):
        super().__init__(model, **kwargs)
        self.as_store = as_store
        self.calls = []

    def sample(self, modified_observed_data):
        self.calls.append(modified_observed_data)
        rng = np.random.default_rng(self.sample_kwargs.get("seed", 0))
        y = np.asarray(modified_observed_data["y"])
        mu_sd = modified_observed_data["mu_sd"]
        if modified_observed_data["fit"]:
            precision = 1 / mu_sd**2 + y.size
            mu = rng.normal(y.sum() / precision, 1 / np.sqrt(precision), size=(2, 100))
        else:
            mu = rng.normal(0, mu_sd, size=(2, 100))
        y_rep = rng.normal(mu[..., None], 1, size=(2, 100, y.size))
        return {"mu": mu, "y_rep": y_rep, "y": y}

    def get_inference_data(self, fitted_model):
        store = DrawStore.from_arrays(
            posterior={"mu": fitted_model["mu"]},
            y_rep=fitted_model["y_rep"],
            log_lik=normal_log_lik(fitted_model["y"], fitted_model["mu"], 1.0),
        )
        if self.as_store:
            return store
        return store.to_datatree(observed=fitted_model["y"])


@pytest.fixture
def data():
    return {"y": np.random.default_rng(1).normal(3, 1, size=8)}


@pytest.fixture
def spec():
    return ModelSpec("normal_mean", hyperparameters={"mu_sd": 10})


class TestPriorPredictive:
    @pytest.mark.parametrize("as_store", [True, False])
    def test_groups(self, spec, data, as_store):
        dt = prior_predictive(NormalMeanWrapper(as_store=as_store), spec, data)
        assert "prior" in dt.children
        assert "prior_predictive" in dt.children
        assert "posterior" not in dt.children
        assert "log_likelihood" not in dt.children
        assert dt.prior_predictive["y"].shape == (2, 100, 8)

    def test_likelihood_switched_off(self, spec, data):
        wrapper = NormalMeanWrapper()
        prior_predictive(wrapper, spec, data)
        assert wrapper.calls[0]["fit"] == 0
        assert spec.mode is SamplingMode.POSTERIOR

    def test_hyperparameters(self, spec, data):
        wrapper = NormalMeanWrapper()
        wide = prior_predictive(wrapper, spec, data)
        narrow = prior_predictive(wrapper, spec, data, mu_sd=0.1)
        assert wrapper.calls[1]["mu_sd"] == 0.1
        assert narrow.prior["mu"].std() < wide.prior["mu"].std()

    def test_not_a_wrapper(self, spec, data):
        with pytest.raises(TypeError, match="SamplingWrapper"):
            prior_predictive(object(), spec, data)

    def test_missing_methods(self, spec, data):
        with pytest.raises(TypeError, match="get_inference_data"):
            prior_predictive(SamplingWrapper(None), spec, data)


class TestPosteriorPredictive:
    def test_groups(self, spec, data):
        wrapper = NormalMeanWrapper()
        dt = posterior_predictive(wrapper, spec, data)
        assert wrapper.calls[0]["fit"] == 1
        assert {"posterior", "posterior_predictive", "log_likelihood"} <= set(dt.children)
        assert_allclose(dt.posterior["mu"].mean(), data["y"].mean(), atol=0.5)

    def test_requires_data(self, spec):
        with pytest.raises(ValueError, match="data"):
            posterior_predictive(NormalMeanWrapper(), spec, None)


class TestSummary:
    def test_columns(self, spec, data):
        dt = prior_predictive(NormalMeanWrapper(), spec, data)
        summary = predictive_summary(dt, prob=0.9)
        assert list(summary.columns) == ["mean", "sd", "eti90_lb", "eti90_ub"]
        assert len(summary) == 8
        assert np.all(summary["eti90_lb"] < summary["eti90_ub"])

    def test_transform(self, spec, data):
        dt = posterior_predictive(NormalMeanWrapper(), spec, data)
        summary = predictive_summary(dt, group="posterior_predictive", prob=0.5)
        summary_lin = predictive_summary(
            dt, group="posterior_predictive", prob=0.5, transform=lambda x: 2 * x + 1
        )
        assert_allclose(summary_lin["eti50_lb"], 2 * summary["eti50_lb"] + 1)
        assert_allclose(summary_lin["sd"], 2 * summary["sd"])
        summary_exp = predictive_summary(dt, group="posterior_predictive", transform=np.exp)
        assert np.all(summary_exp["mean"] > 0)

    def test_missing_group(self, spec, data):
        dt = prior_predictive(NormalMeanWrapper(), spec, data)
        with pytest.raises(ValueError, match="posterior_predictive"):
            predictive_summary(dt, group="posterior_predictive")


class TestCheck:
    def test_observed_from_data(self, normal_model):
        p_tail = predictive_check(normal_model)
        assert p_tail.name == "p_tail"
        assert p_tail.dims == ("obs_id",)
        assert np.all((p_tail >= 0) & (p_tail <= 1))

    def test_observed_array(self, normal_model):
        observed = normal_model.observed_data["y"].values
        assert_allclose(
            predictive_check(normal_model, observed=observed), predictive_check(normal_model)
        )

    def test_extreme_observation(self, normal_model):
        observed = normal_model.observed_data["y"].values.copy()
        observed[0] = 100
        assert predictive_check(normal_model, observed=observed).values[0] == 0

    def test_observed_size_mismatch(self, normal_model):
        with pytest.raises(DimensionMismatch):
            predictive_check(normal_model, observed=np.zeros(3))

    def test_no_observed(self, spec, data):
        dt = prior_predictive(NormalMeanWrapper(), spec, data)
        with pytest.raises(ValueError, match="observed"):
            predictive_check(dt, group="prior_predictive")
