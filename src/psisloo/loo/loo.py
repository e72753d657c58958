"""Pareto-smoothed importance sampling LOO (PSIS-LOO-CV)."""

import numpy as np
import xarray as xr
from xarray_einstats.stats import logsumexp

from psisloo.base import dataarray_stats
from psisloo.loo.helper_loo import (
    _compute_loo_results,
    _get_log_likelihood_i,
    _get_r_eff,
    _prepare_loo_inputs,
    _warn_pareto_k,
)
from psisloo.utils import ELPDData
from psisloo.validate import validate_dims, validate_k_thresholds

__all__ = ["loo", "loo_i", "psislw"]


def loo(
    data,
    pointwise=None,
    var_name=None,
    reff=None,
    log_weights=None,
    pareto_k=None,
    k_thresholds=None,
    name=None,
):
    r"""Compute Pareto-smoothed importance sampling leave-one-out cross-validation (PSIS-LOO-CV).

    Estimates the expected log pointwise predictive density (elpd) using Pareto-smoothed
    importance sampling leave-one-out cross-validation (PSIS-LOO-CV). Also calculates LOO's
    standard error and the effective number of parameters. The method is described in [1]_
    and [2]_.

    Parameters
    ----------
    data : DataTree, InferenceData or DrawStore
        Input data. It should contain the posterior and the log_likelihood groups.
    pointwise : bool, optional
        If True the pointwise predictive accuracy will be returned. Defaults to
        ``rcParams["stats.ic_pointwise"]``.
    var_name : str, optional
        The name of the variable in log_likelihood groups storing the pointwise log
        likelihood data to use for loo computation.
    reff : float, array-like or DataArray, optional
        Relative MCMC efficiency, ``ess / n`` i.e. number of effective samples divided by the
        number of actual samples. Scalar or one value per observation. Computed per
        observation from the likelihood values by default.
        Results are invariant to the order of the draws only for a fixed `reff`: the
        computed default depends on the autocorrelation within each chain.
    log_weights : DataArray, optional
        Smoothed log weights. It must have the same shape as the log likelihood data.
        Defaults to None. If not provided, it will be computed using the PSIS-LOO method.
        Must be provided together with pareto_k or both must be None.
    pareto_k : DataArray, optional
        Pareto shape values, with the observation dimensions of the log likelihood data.
        Must be provided together with log_weights or both must be None.
    k_thresholds : tuple of (float, float), optional
        Pareto k values separating good from ok and ok from bad estimates.
        Defaults to ``(0.5, 0.7)``.
    name : str, optional
        Identifier of the model, used when reporting and comparing.

    Returns
    -------
    ELPDData
        Object with the following attributes:

        - **kind**: "loo"
        - **elpd**: expected log pointwise predictive density
        - **se**: standard error of the elpd
        - **p**: effective number of parameters
        - **n_samples**: number of samples
        - **n_data_points**: number of data points
        - **scale**: "log"
        - **warning**: True if the estimated shape parameter of Pareto distribution is greater
          than ``good_k``.
        - **good_k**: upper Pareto k threshold
        - **elpd_i**: :class:`~xarray.DataArray` with the pointwise predictive accuracy, only if
          ``pointwise=True``
        - **pareto_k**: :class:`~xarray.DataArray` with Pareto shape values,
          only if ``pointwise=True``
        - **p_loo_i**: :class:`~xarray.DataArray` with the pointwise effective number of
          parameters, only if ``pointwise=True``
        - **log_weights**: Smoothed log weights.

    Warns
    -----
    UnreliableEstimate
        If one or more Pareto k values are above the upper threshold. No observation is
        dropped, the estimate of these observations is just less trustworthy.

    Examples
    --------
    .. code-block:: python

        from psisloo import DrawStore, loo

        store = DrawStore.from_arrays(log_lik=log_lik)  # (chain, draw, n_obs)
        loo_data = loo(store, pointwise=True)
        print(loo_data)

    See Also
    --------
    :func:`elpd_diff` : Paired comparison of two models.
    :func:`compare` : Compare several models based on their ELPD.

    References
    ----------

    .. [1] Vehtari et al. *Practical Bayesian model evaluation using leave-one-out cross-validation
       and WAIC*. Statistics and Computing. 27(5) (2017) https://doi.org/10.1007/s11222-016-9696-4
       arXiv preprint https://arxiv.org/abs/1507.04544.

    .. [2] Vehtari et al. *Pareto Smoothed Importance Sampling*.
       Journal of Machine Learning Research, 25(72) (2024) https://jmlr.org/papers/v25/19-556.html
       arXiv preprint https://arxiv.org/abs/1507.02646
    """
    loo_inputs = _prepare_loo_inputs(data, var_name)
    return _compute_loo_results(
        log_likelihood=loo_inputs.log_likelihood,
        var_name=loo_inputs.var_name,
        sample_dims=loo_inputs.sample_dims,
        n_samples=loo_inputs.n_samples,
        n_data_points=loo_inputs.n_data_points,
        pointwise=pointwise,
        log_weights=log_weights,
        pareto_k=pareto_k,
        reff=reff,
        k_thresholds=k_thresholds,
        name=name,
    )


def _select_i(ary, i, obs_dims):
    if isinstance(ary, xr.DataArray) and isinstance(i, dict):
        return ary.sel(i)
    return _get_log_likelihood_i(ary, i, obs_dims)


def loo_i(
    i,
    data,
    var_name=None,
    reff=None,
    log_weights=None,
    pareto_k=None,
    k_thresholds=None,
):
    """Compute PSIS-LOO-CV for a single observation.

    Parameters
    ----------
    i : int or dict
        Positional index in flattened observation order, or a label based mapping
        ``{obs_dim: coord_value}`` covering all observation dimensions.
    data : DataTree, InferenceData or DrawStore
    var_name : str, optional
    reff : float, optional
        Relative MCMC efficiency of this observation. Computed by default.
    log_weights, pareto_k : DataArray, optional
        Results of a previous PSIS run over all observations, must be provided together.
    k_thresholds : tuple of (float, float), optional

    Returns
    -------
    ELPDData
        With ``n_data_points=1``, ``se=0`` and scalar ``elpd_i`` and ``pareto_k``.
    """
    loo_inputs = _prepare_loo_inputs(data, var_name)
    sample_dims = loo_inputs.sample_dims
    obs_dims = loo_inputs.obs_dims
    n_samples = loo_inputs.n_samples
    k_thresholds = validate_k_thresholds(k_thresholds)

    if (log_weights is None) != (pareto_k is None):
        raise ValueError(
            "Both log_weights and pareto_k must be provided together or both must be None. "
            "Only one was provided."
        )

    log_lik_i = _select_i(loo_inputs.log_likelihood, i, obs_dims)
    if log_lik_i.ndim != len(sample_dims):
        raise ValueError(f"Selection {i} doesn't identify a single observation")

    if log_weights is None:
        if reff is None:
            reff = dataarray_stats.relative_eff(log_lik_i, sample_dims=sample_dims).item()
            reff = 1.0 if np.isnan(reff) else reff
        log_weights_i, pareto_k_i = dataarray_stats.psislw(log_lik_i, r_eff=reff, dim=sample_dims)
    else:
        log_weights_i = _select_i(log_weights, i, obs_dims)
        pareto_k_i = _select_i(pareto_k, i, obs_dims)

    elpd_i = logsumexp(log_weights_i + log_lik_i, dims=sample_dims).item()
    lppd_i = logsumexp(log_lik_i, b=1 / n_samples, dims=sample_dims).item()
    pareto_k_i = float(pareto_k_i)

    warn_mg, good_k = _warn_pareto_k(pareto_k_i, k_thresholds)

    return ELPDData(
        kind="loo",
        elpd=elpd_i,
        se=0.0,
        p=lppd_i - elpd_i,
        n_samples=n_samples,
        n_data_points=1,
        scale="log",
        warning=warn_mg,
        good_k=good_k,
        elpd_i=elpd_i,
        pareto_k=pareto_k_i,
        p_loo_i=lppd_i - elpd_i,
        log_weights=log_weights_i,
        k_thresholds=k_thresholds,
    )


def psislw(data, r_eff=None, var_name=None, sample_dims=None):
    """Pareto smoothed importance sampling log weights for leave-one-out.

    Parameters
    ----------
    data : DataArray, DataTree, InferenceData or DrawStore
        Pointwise log likelihood, or data with a ``log_likelihood`` group.
    r_eff : float or DataArray, optional
        Relative efficiency, computed per observation by default.
    var_name : str, optional
    sample_dims : list of str, optional

    Returns
    -------
    log_weights : DataArray
        Normalized so that the weights of each observation sum to 1.
    pareto_k : DataArray
        Estimated shape of the tail of the importance ratios.
    """
    if isinstance(data, xr.DataArray):
        sample_dims = validate_dims(sample_dims)
        log_likelihood = data
    else:
        loo_inputs = _prepare_loo_inputs(data, var_name, sample_dims)
        log_likelihood = loo_inputs.log_likelihood
        sample_dims = loo_inputs.sample_dims
    if r_eff is None:
        r_eff = _get_r_eff(log_likelihood, sample_dims)
    return dataarray_stats.psislw(log_likelihood, r_eff=r_eff, dim=sample_dims)
