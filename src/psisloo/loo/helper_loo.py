"""Helper functions for PSIS-LOO-CV."""

import logging
import warnings
from collections import namedtuple

import numpy as np
import xarray as xr
from arviz_base import rcParams
from xarray_einstats.stats import logsumexp

from psisloo.base import dataarray_stats
from psisloo.errors import DimensionMismatch, UnreliableEstimate
from psisloo.log_likelihood import _as_datatree, _check_against_posterior
from psisloo.utils import ELPDData, get_log_likelihood
from psisloo.validate import validate_dims_chain_draw_axis, validate_k_thresholds, validate_r_eff

_log = logging.getLogger(__name__)

__all__ = [
    "_compute_loo_results",
    "_get_log_likelihood_i",
    "_get_r_eff",
    "_prepare_loo_inputs",
    "_warn_pareto_k",
    "_warn_pointwise_loo",
]

LooInputs = namedtuple(
    "LooInputs",
    ["log_likelihood", "var_name", "sample_dims", "obs_dims", "n_samples", "n_data_points"],
)


def _prepare_loo_inputs(data, var_name, sample_dims=None):
    """Prepare inputs for PSIS-LOO-CV."""
    data = _as_datatree(data)

    log_likelihood = get_log_likelihood(data, var_name=var_name)
    if var_name is None and log_likelihood.name is not None:
        var_name = log_likelihood.name

    sample_dims, _, _ = validate_dims_chain_draw_axis(sample_dims)
    missing = [dim for dim in sample_dims if dim not in log_likelihood.dims]
    if missing:
        raise DimensionMismatch(f"Log likelihood is missing sample dimensions {missing}")
    _check_against_posterior(log_likelihood, data, sample_dims)

    obs_dims = [dim for dim in log_likelihood.dims if dim not in sample_dims]
    n_samples = int(np.prod([log_likelihood.sizes[dim] for dim in sample_dims]))
    if n_samples == 0:
        raise DimensionMismatch("Log likelihood doesn't contain any draw")
    n_data_points = int(np.prod([log_likelihood.sizes[dim] for dim in obs_dims]))
    return LooInputs(
        log_likelihood,
        var_name,
        sample_dims,
        obs_dims,
        n_samples,
        n_data_points,
    )


def _get_r_eff(log_likelihood, sample_dims):
    """Relative efficiency of each observation, 1 when there is a single draw per chain."""
    r_eff = dataarray_stats.relative_eff(log_likelihood, sample_dims=sample_dims)
    # NaN log likelihood values propagate to r_eff, PSIS handles them on its own
    return r_eff.fillna(1.0)


def _get_log_likelihood_i(log_likelihood, i, obs_dims):
    """Extract the log likelihood of a single observation, by flat index."""
    if not obs_dims:
        raise ValueError("Log likelihood has no observation dimensions")
    if len(obs_dims) == 1:
        return log_likelihood.isel({obs_dims[0]: i})
    obs_shape = [log_likelihood.sizes[dim] for dim in obs_dims]
    idx = np.unravel_index(i, obs_shape)
    return log_likelihood.isel(dict(zip(obs_dims, idx)))


def _warn_pareto_k(pareto_k_values, k_thresholds=None, suppress=False):
    """Check Pareto k values and issue warnings if necessary.

    Returns
    -------
    warn_mg : bool
        Whether any value is above the upper threshold.
    good_k : float
        Upper threshold.
    """
    _, good_k = validate_k_thresholds(k_thresholds)
    pareto_k_values = np.asarray(pareto_k_values)
    n_bad = int(np.sum(pareto_k_values > good_k))
    n_undefined = int(np.sum(np.isnan(pareto_k_values)))
    if n_undefined:
        _log.debug("Pareto k is undefined for %d observations, tail too short", n_undefined)

    warn_mg = False
    if n_bad:
        if not suppress:
            warnings.warn(
                f"Estimated shape parameter of Pareto distribution is greater than {good_k:.2f} "
                f"for {n_bad} of {pareto_k_values.size} observations. The LOO estimate of these "
                "observations is unreliable, importance sampling is less likely to work well if "
                "the marginal posterior and LOO posterior are very different.",
                UnreliableEstimate,
                stacklevel=3,
            )
        warn_mg = True
    return warn_mg, good_k


def _warn_pointwise_loo(elpd, elpd_i_values):
    """Check if pointwise LOO values sum to the same as total LOO."""
    if (
        np.size(elpd_i_values) > 1
        and np.equal(elpd, elpd_i_values).all()
        and not np.allclose(elpd_i_values, 0)
    ):
        warnings.warn(
            "The point-wise LOO is the same with the sum LOO, please double check "
            "the Observed RV in your model to make sure it returns element-wise logp."
        )


def _check_weights_and_k(log_weights, pareto_k, log_likelihood, sample_dims, obs_dims):
    if (log_weights is None) != (pareto_k is None):
        raise ValueError(
            "Both log_weights and pareto_k must be provided together or both must be None. "
            "Only one was provided."
        )
    if log_weights is None:
        return
    for dim in sample_dims:
        if dim not in log_weights.dims:
            raise DimensionMismatch(f"log_weights must have sample dimension '{dim}'")
    if set(pareto_k.dims) != set(obs_dims):
        raise DimensionMismatch(
            f"pareto_k dimensions {list(pareto_k.dims)} must match "
            f"observation dimensions {obs_dims}"
        )
    for dim in log_weights.dims:
        if log_weights.sizes[dim] != log_likelihood.sizes.get(dim):
            raise DimensionMismatch(
                f"log_weights size for dimension '{dim}' ({log_weights.sizes[dim]}) "
                f"must match log_likelihood size ({log_likelihood.sizes.get(dim)})"
            )
    for dim in pareto_k.dims:
        if pareto_k.sizes[dim] != log_likelihood.sizes[dim]:
            raise DimensionMismatch(
                f"pareto_k size for dimension '{dim}' ({pareto_k.sizes[dim]}) "
                f"must match log_likelihood size ({log_likelihood.sizes[dim]})"
            )


def _compute_loo_results(
    log_likelihood,
    var_name,
    sample_dims,
    n_samples,
    n_data_points,
    pointwise=None,
    log_weights=None,
    pareto_k=None,
    reff=None,
    k_thresholds=None,
    name=None,
):
    """Compute PSIS-LOO-CV results."""
    k_thresholds = validate_k_thresholds(k_thresholds)
    obs_dims = [dim for dim in log_likelihood.dims if dim not in sample_dims]
    _check_weights_and_k(log_weights, pareto_k, log_likelihood, sample_dims, obs_dims)

    if log_weights is None:
        if reff is None:
            reff = _get_r_eff(log_likelihood, sample_dims)
        elif not isinstance(reff, xr.DataArray):
            validate_r_eff(reff, n_data_points)
            if np.ndim(reff) > 0:
                reff = xr.DataArray(
                    np.reshape(reff, [log_likelihood.sizes[dim] for dim in obs_dims]),
                    dims=obs_dims,
                )
        log_weights, pareto_k = dataarray_stats.psislw(log_likelihood, r_eff=reff, dim=sample_dims)

    warn_mg, good_k = _warn_pareto_k(pareto_k.values, k_thresholds)

    elpd_i = logsumexp(log_weights + log_likelihood, dims=sample_dims).rename("elpd_i")
    elpd = elpd_i.sum(skipna=False).item()

    lppd_i = logsumexp(log_likelihood, b=1 / n_samples, dims=sample_dims)
    p_loo_i = (lppd_i - elpd_i).rename("p_loo_i")
    p_loo = lppd_i.sum(skipna=False).item() - elpd

    elpd_se = (n_data_points * np.var(elpd_i.values)) ** 0.5

    pointwise = rcParams["stats.ic_pointwise"] if pointwise is None else pointwise
    if pointwise:
        _warn_pointwise_loo(elpd, elpd_i.values)

    return ELPDData(
        "loo",
        elpd,
        elpd_se,
        p_loo,
        n_samples,
        n_data_points,
        "log",
        warn_mg,
        good_k,
        elpd_i if pointwise else None,
        pareto_k.rename("pareto_k") if pointwise else None,
        p_loo_i if pointwise else None,
        log_weights=log_weights,
        k_thresholds=k_thresholds,
        name=name,
    )
