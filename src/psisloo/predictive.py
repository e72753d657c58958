"""Prior and posterior predictive simulation through a sampling wrapper."""

import logging

import numpy as np
import pandas as pd
import xarray as xr
from arviz_base import convert_to_datatree

from psisloo.draws import DrawStore
from psisloo.errors import DimensionMismatch
from psisloo.validate import validate_ci_prob, validate_dims
from psisloo.wrapper import SamplingMode, SamplingWrapper

_log = logging.getLogger(__name__)

__all__ = ["prior_predictive", "posterior_predictive", "predictive_summary", "predictive_check"]

_PRIOR_GROUPS = {"posterior": "prior", "posterior_predictive": "prior_predictive"}


def _check_wrapper(wrapper):
    if not isinstance(wrapper, SamplingWrapper):
        raise TypeError(
            "wrapper must be an instance of SamplingWrapper or a subclass. "
            "See the SamplingWrapper documentation for implementation details."
        )
    not_implemented = wrapper.check_implemented_methods(["sample", "get_inference_data"])
    if not_implemented:
        raise TypeError(
            "Passed wrapper instance does not implement all methods required for predictive "
            f"simulation. {not_implemented} must be implemented and were not found."
        )


def _as_prior_groups(dt):
    """Rename posterior groups of a likelihood-free run to their prior names.

    Samplers don't know the likelihood was switched off and label their output as
    posterior. The log likelihood of such a run is meaningless and is dropped.
    """
    children = dict(dt.children)
    renamed = {}
    for name, node in children.items():
        if name == "log_likelihood":
            _log.debug("Dropping log_likelihood group of a prior only run")
            continue
        new_name = _PRIOR_GROUPS.get(name, name)
        if new_name != name and new_name in children:
            raise ValueError(f"Sampler output contains both '{name}' and '{new_name}' groups")
        renamed[new_name] = node.to_dataset()
    return xr.DataTree.from_dict(renamed)


def _run(wrapper, spec, data):
    _check_wrapper(wrapper)
    sampler_data = spec.to_sampler_data(data)
    _log.debug(
        "Sampling model '%s' in %s mode with hyperparameters %s",
        spec.name,
        spec.mode.value,
        dict(spec.hyperparameters),
    )
    fitted = wrapper.sample(sampler_data)
    result = wrapper.get_inference_data(fitted)
    if isinstance(result, DrawStore):
        result = result.to_datatree()
    else:
        result = convert_to_datatree(result)
    if spec.mode is SamplingMode.PRIOR_ONLY:
        result = _as_prior_groups(result)
    return result


def prior_predictive(wrapper, spec, data=None, **hyperparameters):
    """Simulate outcomes from the prior predictive distribution.

    The model is run with the likelihood switched off, so the draws of the
    parameters come from the prior and the ``y_rep`` generated quantity from the
    prior predictive distribution. Calling it again with different hyperparameters
    is the prior predictive check loop.

    Parameters
    ----------
    wrapper : SamplingWrapper
        Must implement ``sample`` and ``get_inference_data``.
    spec : ModelSpec
    data : mapping, optional
        Observation dataset. Predictors are needed to simulate outcomes, the observed
        outcomes themselves are ignored by the sampler in this mode.
    **hyperparameters
        Replace the hyperparameters of `spec` for this run.

    Returns
    -------
    DataTree
        With ``prior`` and ``prior_predictive`` groups.

    Examples
    --------
    .. code-block:: python

        spec = ModelSpec("pooled", hyperparameters={"alpha_sd": 10, "beta_sd": 10})
        dt = prior_predictive(wrapper, spec, data, alpha_sd=1, beta_sd=1)
        predictive_summary(dt, transform=np.exp)
    """
    spec = spec.with_mode(SamplingMode.PRIOR_ONLY)
    if hyperparameters:
        spec = spec.with_hyperparameters(**hyperparameters)
    return _run(wrapper, spec, data)


def posterior_predictive(wrapper, spec, data):
    """Fit the model to `data` and simulate from the posterior predictive distribution.

    Returns
    -------
    DataTree
        As returned by the wrapper, usually with ``posterior``, ``posterior_predictive``
        and ``log_likelihood`` groups.
    """
    if data is None:
        raise ValueError("data is required to sample from the posterior")
    spec = spec.with_mode(SamplingMode.POSTERIOR)
    dt = _run(wrapper, spec, data)
    if "log_likelihood" not in dt.children:
        _log.warning("Posterior of model '%s' has no log_likelihood group", spec.name)
    return dt


def _get_predictive(data, group, var_name):
    if isinstance(data, DrawStore):
        data = data.to_datatree()
    else:
        data = convert_to_datatree(data)
    if group not in data.children:
        raise ValueError(f"Group '{group}' not found, available groups: {list(data.children)}")
    dataset = data[group].to_dataset()
    if var_name is None:
        var_names = list(dataset.data_vars)
        if len(var_names) != 1:
            raise ValueError(f"Found several variables {var_names} in '{group}', specify var_name")
        var_name = var_names[0]
    return data, dataset[var_name]


def predictive_summary(
    data, group="prior_predictive", var_name=None, prob=None, transform=None, sample_dims=None
):
    """Summarize simulated outcomes per observation.

    Parameters
    ----------
    data : DataTree, InferenceData or DrawStore
    group : str, default "prior_predictive"
    var_name : str, optional
        Needed only if `group` has several variables.
    prob : float, optional
        Probability of the equal tailed interval. Defaults to ``rcParams["stats.ci_prob"]``.
    transform : callable, optional
        Applied to the draws before summarizing, e.g. :func:`numpy.exp` to report
        outcomes simulated on the log scale on their natural scale.
    sample_dims : list of str, optional

    Returns
    -------
    pandas.DataFrame
        One row per observation with columns ``mean``, ``sd``, ``eti{prob}_lb`` and
        ``eti{prob}_ub``.
    """
    prob = validate_ci_prob(prob)
    sample_dims = validate_dims(sample_dims)
    _, y_rep = _get_predictive(data, group, var_name)
    if transform is not None:
        y_rep = xr.apply_ufunc(transform, y_rep)
    ci_perc = int(prob * 100)
    quantiles = y_rep.quantile([(1 - prob) / 2, (1 + prob) / 2], dim=sample_dims)
    summary = xr.Dataset(
        {
            "mean": y_rep.mean(dim=sample_dims),
            "sd": y_rep.std(dim=sample_dims, ddof=1),
            f"eti{ci_perc}_lb": quantiles.isel(quantile=0, drop=True),
            f"eti{ci_perc}_ub": quantiles.isel(quantile=1, drop=True),
        }
    )
    if not summary.dims:
        return pd.DataFrame({name: [da.item()] for name, da in summary.items()})
    return summary.to_dataframe()


def predictive_check(
    data, observed=None, group="posterior_predictive", var_name=None, sample_dims=None
):
    """Compute the tail probability ``P(y_rep >= y_obs)`` per observation.

    Values close to 0 or 1 point at observations the model doesn't reproduce.

    Parameters
    ----------
    data : DataTree, InferenceData or DrawStore
    observed : array-like, optional
        Observed outcomes. Defaults to the variable with the same name in
        the ``observed_data`` group.
    group : str, default "posterior_predictive"
    var_name : str, optional
    sample_dims : list of str, optional

    Returns
    -------
    DataArray
    """
    sample_dims = validate_dims(sample_dims)
    data, y_rep = _get_predictive(data, group, var_name)
    obs_dims = [dim for dim in y_rep.dims if dim not in sample_dims]
    if observed is None:
        if "observed_data" not in data.children or y_rep.name not in data.observed_data:
            raise ValueError(f"No observed values for '{y_rep.name}' found, pass observed")
        observed = data.observed_data[y_rep.name]
    if not isinstance(observed, xr.DataArray):
        observed = np.asarray(observed)
        expected = tuple(y_rep.sizes[dim] for dim in obs_dims)
        if observed.size != int(np.prod(expected)):
            raise DimensionMismatch(
                f"observed has {observed.size} values, {group} covers shape {expected}"
            )
        observed = xr.DataArray(
            observed.reshape(expected), dims=obs_dims, coords={d: y_rep[d] for d in obs_dims}
        )
    elif set(observed.dims) != set(obs_dims):
        raise DimensionMismatch(f"observed has dimensions {list(observed.dims)}, expected {obs_dims}")
    return (y_rep >= observed).mean(dim=sample_dims).rename("p_tail")
