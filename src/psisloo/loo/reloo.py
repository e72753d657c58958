"""Compute exact Leave-One-Out cross validation refitting for problematic observations."""

import logging
from copy import deepcopy

import numpy as np
from arviz_base import rcParams
from xarray_einstats.stats import logsumexp

from psisloo.loo.helper_loo import _prepare_loo_inputs
from psisloo.loo.loo import loo
from psisloo.utils import ELPDData
from psisloo.wrapper import SamplingWrapper

_log = logging.getLogger(__name__)

__all__ = ["reloo"]


def reloo(
    wrapper,
    loo_orig=None,
    k_threshold=None,
    pointwise=None,
):
    r"""Recalculate exact Leave-One-Out cross validation refitting where the approximation fails.

    :func:`psisloo.loo` approximates LOO-CV with Pareto Smoothed Importance Sampling. The
    approximation is good when the posterior and the posterior without observation
    :math:`i` are similar. Highly influential observations break it, which is flagged by a
    large Pareto shape. For these few observations the model is refit without them and the
    held out log predictive density is computed exactly, all other observations keep their
    PSIS estimate.

    Parameters
    ----------
    wrapper : SamplingWrapper
        An instance of a SamplingWrapper subclass implementing ``sel_observations``,
        ``sample``, ``get_inference_data`` and ``log_likelihood__i``.
    loo_orig : ELPDData, optional
        Existing LOO results with pointwise data. If None, PSIS-LOO-CV is computed first
        on ``wrapper.data``.
    k_threshold : float, optional
        Observations with Pareto k above this value are refit. Defaults to the upper
        threshold stored in `loo_orig`, 0.7 unless configured otherwise.
    pointwise : bool, optional
        If True, return pointwise LOO data. Defaults to ``rcParams["stats.ic_pointwise"]``.

    Returns
    -------
    ELPDData
        Updated LOO results where high Pareto k observations have been replaced with
        exact LOO-CV values. Their Pareto k is set to 0.

    Warnings
    --------
    Each refit runs the sampler again. Check the number of high Pareto k values before
    using ``reloo`` to ensure the computation time is acceptable.
    """
    if not isinstance(wrapper, SamplingWrapper):
        raise TypeError(
            "wrapper must be an instance of SamplingWrapper or a subclass. "
            "See the SamplingWrapper documentation for implementation details."
        )

    required_methods = ["sel_observations", "sample", "get_inference_data", "log_likelihood__i"]
    not_implemented = wrapper.check_implemented_methods(required_methods)

    if not_implemented:
        raise TypeError(
            "Passed wrapper instance does not implement all methods required for reloo "
            f"to work. Check the documentation of SamplingWrapper. {not_implemented} must be "
            "implemented and were not found."
        )

    pointwise = rcParams["stats.ic_pointwise"] if pointwise is None else pointwise

    if loo_orig is None:
        loo_orig = loo(wrapper.data, var_name=wrapper.log_lik_var_name, pointwise=True)

    if not isinstance(loo_orig, ELPDData):
        raise TypeError("loo_orig must be an ELPDData object.")

    if loo_orig.pareto_k is None or loo_orig.elpd_i is None:
        raise ValueError(
            "reloo requires pointwise LOO results with Pareto k values. "
            "Please compute the initial LOO with pointwise=True."
        )

    loo_refitted = deepcopy(loo_orig)

    loo_inputs = _prepare_loo_inputs(wrapper.data, wrapper.log_lik_var_name)
    sample_dims = loo_inputs.sample_dims
    obs_dims = loo_inputs.obs_dims
    n_data_points = loo_inputs.n_data_points
    n_samples = loo_inputs.n_samples
    log_likelihood = loo_inputs.log_likelihood

    if k_threshold is None:
        k_threshold = loo_orig.good_k

    # NaN k values are not refit, their tail was too short to judge
    bad_obs_flat_indices = np.where(np.ravel(loo_orig.pareto_k.values) > k_threshold)[0]

    if len(bad_obs_flat_indices) == 0:
        _log.debug("No Pareto k value above %s, nothing to refit", k_threshold)
        if not pointwise:
            loo_refitted.elpd_i = None
            loo_refitted.pareto_k = None
            loo_refitted.p_loo_i = None
        return loo_refitted

    if loo_refitted.p_loo_i is None:
        lpd_i = logsumexp(log_likelihood, b=1 / n_samples, dims=sample_dims)
        loo_refitted.p_loo_i = (lpd_i - loo_refitted.elpd_i).rename("p_loo_i")

    obs_shape = [loo_orig.pareto_k.sizes[dim] for dim in obs_dims]
    for flat_idx in bad_obs_flat_indices:
        if len(obs_dims) == 1:
            obs_idx_dict = {obs_dims[0]: loo_orig.pareto_k.coords[obs_dims[0]].values[flat_idx]}
            sel_idx = flat_idx
        else:
            obs_idx = np.unravel_index(flat_idx, obs_shape)
            obs_idx_dict = {
                dim: loo_orig.pareto_k.coords[dim].values[obs_idx[j]]
                for j, dim in enumerate(obs_dims)
            }
            sel_idx = obs_idx_dict

        _log.debug("Refitting without observation %s", obs_idx_dict)
        log_lik_i = log_likelihood.sel(obs_idx_dict)
        hat_lpd_i = logsumexp(log_lik_i, dims=sample_dims, b=1 / n_samples).item()

        new_obs, excluded_obs = wrapper.sel_observations(sel_idx)
        fit = wrapper.sample(new_obs)
        idata_idx = wrapper.get_inference_data(fit)
        log_lik_idx = wrapper.log_likelihood__i(excluded_obs, idata_idx)
        elpd_loo_i = logsumexp(log_lik_idx, dims=sample_dims, b=1 / log_lik_idx.size).item()

        loo_refitted.elpd_i.loc[obs_idx_dict] = elpd_loo_i
        loo_refitted.pareto_k.loc[obs_idx_dict] = 0.0
        loo_refitted.p_loo_i.loc[obs_idx_dict] = hat_lpd_i - elpd_loo_i

    loo_refitted.elpd = np.sum(loo_refitted.elpd_i.values)
    loo_refitted.se = np.sqrt(n_data_points * np.var(loo_refitted.elpd_i.values))
    loo_refitted.p = np.sum(loo_refitted.p_loo_i.values)

    loo_refitted.warning = bool(np.any(loo_refitted.pareto_k.values > loo_refitted.good_k))

    if not pointwise:
        loo_refitted.elpd_i = None
        loo_refitted.pareto_k = None
        loo_refitted.p_loo_i = None

    return loo_refitted
