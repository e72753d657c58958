"""Pointwise log likelihood extraction and relative efficiency."""

import logging

import numpy as np
import xarray as xr
from arviz_base import convert_to_datatree

from psisloo.base import dataarray_stats
from psisloo.draws import DrawStore
from psisloo.errors import DimensionMismatch
from psisloo.utils import get_log_likelihood
from psisloo.validate import validate_dims

_log = logging.getLogger(__name__)

__all__ = ["pointwise_log_likelihood", "log_likelihood_matrix", "relative_eff"]


def _as_datatree(data):
    if isinstance(data, DrawStore):
        return data.to_datatree()
    return convert_to_datatree(data)


def _check_against_posterior(log_likelihood, data, sample_dims):
    """Check draw counts against the posterior and observation counts against the data."""
    if hasattr(data, "posterior"):
        posterior = data.posterior
        for dim in sample_dims:
            if dim in posterior.dims and posterior.sizes[dim] != log_likelihood.sizes[dim]:
                raise DimensionMismatch(
                    f"Dimension '{dim}' has size {log_likelihood.sizes[dim]} in the "
                    f"log likelihood but {posterior.sizes[dim]} in the posterior"
                )
    name = log_likelihood.name
    if hasattr(data, "observed_data") and name in data.observed_data.data_vars:
        n_obs = data.observed_data[name].size
        n_samples = np.prod([log_likelihood.sizes[dim] for dim in sample_dims])
        n_points = log_likelihood.size // n_samples
        if n_obs != n_points:
            raise DimensionMismatch(
                f"Log likelihood covers {n_points} observations, observed data has {n_obs}"
            )


def pointwise_log_likelihood(data, var_name=None, sample_dims=None):
    """Get the pointwise log likelihood as a DataArray.

    Parameters
    ----------
    data : DrawStore, DataTree, InferenceData or DataArray
        Sampler output with a ``log_likelihood`` group. A DataArray is taken to be
        the log likelihood itself.
    var_name : str, optional
        Variable of the ``log_likelihood`` group to use, required if there are several.
    sample_dims : list of str, optional
        Defaults to ``rcParams["data.sample_dims"]``.

    Returns
    -------
    DataArray
        Sample dimensions first, followed by a single observation dimension. Several
        observation dimensions are stacked into ``__obs__``.

    Raises
    ------
    DimensionMismatch
        If the sample dimensions are missing or disagree with the posterior.
    """
    sample_dims = validate_dims(sample_dims)
    if isinstance(data, xr.DataArray):
        log_likelihood = data
        data = None
    else:
        data = _as_datatree(data)
        log_likelihood = get_log_likelihood(data, var_name=var_name)

    missing = [dim for dim in sample_dims if dim not in log_likelihood.dims]
    if missing:
        raise DimensionMismatch(f"Log likelihood is missing sample dimensions {missing}")
    empty = [dim for dim in sample_dims if log_likelihood.sizes[dim] == 0]
    if empty:
        raise DimensionMismatch(f"Log likelihood has no values along {empty}")
    if data is not None:
        _check_against_posterior(log_likelihood, data, sample_dims)
    obs_dims = [dim for dim in log_likelihood.dims if dim not in sample_dims]
    if not obs_dims:
        log_likelihood = log_likelihood.expand_dims("__obs__", axis=-1)
    elif len(obs_dims) > 1:
        log_likelihood = log_likelihood.stack(__obs__=obs_dims)
    else:
        return log_likelihood.transpose(*sample_dims, *obs_dims)
    return log_likelihood.transpose(*sample_dims, "__obs__")


def log_likelihood_matrix(data, var_name=None, sample_dims=None):
    """Get the pointwise log likelihood as a draws × observations matrix.

    Chains are concatenated in the order they are stored, observation dimensions
    are flattened in C order.

    Returns
    -------
    numpy.ndarray
        2D array with shape ``(n_samples, n_data_points)``.
    """
    sample_dims = validate_dims(sample_dims)
    log_likelihood = pointwise_log_likelihood(data, var_name=var_name, sample_dims=sample_dims)
    n_samples = int(np.prod([log_likelihood.sizes[dim] for dim in sample_dims]))
    return log_likelihood.values.reshape(n_samples, -1)


def relative_eff(data, var_name=None, sample_dims=None):
    """Compute the relative efficiency of the draws for each observation.

    The relative efficiency is the ratio between the effective sample size of the
    likelihood values of an observation, estimated taking into account within chain
    autocorrelation and between chain variance, and the total number of draws.

    Parameters
    ----------
    data : DrawStore, DataTree, InferenceData or DataArray
    var_name : str, optional
    sample_dims : list of str, optional
        ``[chain, draw]`` or ``[draw]`` for a single chain.

    Returns
    -------
    DataArray
        ``r_eff`` for each observation.

    Raises
    ------
    DimensionMismatch
        If chains have different lengths.
    """
    sample_dims = validate_dims(sample_dims)
    log_likelihood = pointwise_log_likelihood(data, var_name=var_name, sample_dims=sample_dims)
    r_eff = dataarray_stats.relative_eff(log_likelihood, sample_dims=sample_dims)
    _log.debug("Relative efficiency range: [%s, %s]", r_eff.min().item(), r_eff.max().item())
    return r_eff
