# pylint: disable=redefined-outer-name
"""Test related helper functions."""

import os
import sys
import warnings
from typing import Any

import numpy as np
import pytest


def importorskip(modname: str, reason: str | None = None) -> Any:
    """Import and return the requested module ``modname``.

    Doesn't allow skips when ``PSISLOO_REQUIRE_ALL_DEPS`` env var is defined.
    Borrowed and modified from ``pytest.importorskip``.

    Parameters
    ----------
    modname : str
        the name of the module to import
    reason : str, optional
        this reason is shown as skip message when the module cannot be imported.
    """
    __tracebackhide__ = True  # pylint: disable=unused-variable
    compile(modname, "", "eval")  # to catch syntaxerrors

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            __import__(modname)
        except ImportError as exc:
            if "PSISLOO_REQUIRE_ALL_DEPS" in os.environ:
                raise exc
            if reason is None:
                reason = f"could not import {modname!r}: {exc}"
            pytest.skip(reason, allow_module_level=True)

    mod = sys.modules[modname]
    return mod


def normal_log_lik(y, mu, sigma):
    """Pointwise normal log density with draws on the leading axes of `mu`."""
    return -0.5 * np.log(2 * np.pi * sigma**2) - 0.5 * ((y - mu[..., None]) / sigma) ** 2


def create_model(seed=10, n_obs=20, nchains=4, ndraws=250, shift=0.0, transpose=False):
    """Create a fitted normal mean model with fake posterior draws.

    The posterior of ``mu`` is the exact conjugate posterior with a flat prior,
    `shift` moves it away from the sample mean to make a worse model.
    """
    from arviz_base import from_dict

    rng = np.random.default_rng(seed)
    y = np.random.default_rng(0).normal(1.0, 1.0, size=n_obs)
    mu = rng.normal(y.mean() + shift, 1 / np.sqrt(n_obs), size=(nchains, ndraws))
    log_lik = normal_log_lik(y, mu, 1.0)
    y_rep = rng.normal(mu[..., None], 1.0, size=(nchains, ndraws, n_obs))
    model = from_dict(
        {
            "posterior": {"mu": mu},
            "posterior_predictive": {"y": y_rep},
            "log_likelihood": {"y": log_lik},
            "observed_data": {"y": y},
        },
        dims={"y": ["obs_id"]},
        coords={"obs_id": np.arange(n_obs)},
    )
    if transpose:
        for group, group_dataset in model.children.items():
            if all(dim in group_dataset.dims for dim in ("draw", "chain")):
                model[group] = group_dataset.to_dataset().transpose("draw", "chain", ...)
    return model


def create_multidimensional_model(seed=10, nchains=4, ndraws=250, ndim1=3, ndim2=4):
    """Create a model whose observations are indexed by two dimensions."""
    from arviz_base import from_dict

    rng = np.random.default_rng(seed)
    y = rng.normal(size=(ndim1, ndim2))
    mu = rng.normal(y.mean(), 1 / np.sqrt(y.size), size=(nchains, ndraws))
    log_lik = normal_log_lik(y.ravel(), mu, 1.0).reshape(nchains, ndraws, ndim1, ndim2)
    return from_dict(
        {
            "posterior": {"mu": mu},
            "log_likelihood": {"y": log_lik},
            "observed_data": {"y": y},
        },
        dims={"y": ["dim1", "dim2"]},
        coords={"dim1": range(ndim1), "dim2": range(ndim2)},
    )


def create_outlier_model(seed=10, nchains=4, ndraws=250):
    """Model with one observation whose likelihood is dominated by a single draw."""
    from arviz_base import from_dict

    rng = np.random.default_rng(seed)
    log_lik = rng.normal(-1.0, 0.1, size=(nchains, ndraws, 5))
    log_lik[..., 0] = 0.0
    log_lik[0, 0, 0] = -50.0
    return from_dict(
        {
            "posterior": {"mu": rng.normal(size=(nchains, ndraws))},
            "log_likelihood": {"y": log_lik},
        },
        dims={"y": ["obs_id"]},
    )
