"""Compare PSIS-LOO-CV results."""

import itertools

import numpy as np
import pandas as pd
import xarray as xr
from arviz_base import rcParams
from scipy.optimize import minimize
from scipy.stats import dirichlet

from psisloo.errors import IncompatibleModels
from psisloo.loo.loo import loo
from psisloo.utils import ELPDData, ELPDDiff

__all__ = ["compare", "elpd_diff"]


def _as_elpd_data(data, name, var_name=None):
    if isinstance(data, ELPDData):
        if data.elpd_i is None:
            raise IncompatibleModels(
                f"Model '{name}' is missing pointwise ELPD values. Recalculate with pointwise=True."
            )
        return data
    try:
        return loo(data, pointwise=True, var_name=var_name, name=name)
    except (ValueError, TypeError) as err:
        raise err.__class__(f"Encountered error trying to compute ELPD from model {name}.") from err


def _check_obs_counts(elpd_dict):
    obs_counts = {name: np.size(elpd_data.elpd_i) for name, elpd_data in elpd_dict.items()}
    if len(set(obs_counts.values())) > 1:
        sorted_counts = sorted(obs_counts.items(), key=lambda item: (item[1], item[0]))
        mismatch_details = ", ".join([f"'{name}' ({count})" for name, count in sorted_counts])
        raise IncompatibleModels(
            "All models must have the same number of observations, but models have inconsistent "
            f"observation counts: {mismatch_details}"
        )


def elpd_diff(loo_a, loo_b, names=None, var_name=None):
    r"""Paired difference in ELPD between two models.

    The pointwise differences :math:`d_i = \text{elpd}_i(B) - \text{elpd}_i(A)` share the
    same observation, so their variance is usually much smaller than the sum of the
    variances of both estimates.

    Parameters
    ----------
    loo_a, loo_b : ELPDData, DataTree or DrawStore
        LOO results computed with ``pointwise=True``, or data from which to compute them.
    names : tuple of (str, str), optional
        Model names. Defaults to the ``name`` attribute of the results, or ``"A"`` and ``"B"``.
    var_name : str, optional
        Log likelihood variable, used only when LOO has to be computed.

    Returns
    -------
    ELPDDiff
        ``elpd_diff`` is positive when model B is expected to predict new data better.

    Raises
    ------
    IncompatibleModels
        If the models were evaluated on a different number of observations.
    """
    if names is None:
        names = tuple(
            getattr(data, "name", None) or default for data, default in ((loo_a, "A"), (loo_b, "B"))
        )
    name_a, name_b = names
    if name_a == name_b:
        raise ValueError(f"Models must have different names, got '{name_a}' twice")
    elpd_a = _as_elpd_data(loo_a, name_a, var_name)
    elpd_b = _as_elpd_data(loo_b, name_b, var_name)
    _check_obs_counts({name_a: elpd_a, name_b: elpd_b})

    diff_i = np.ravel(elpd_b.elpd_i) - np.ravel(elpd_a.elpd_i)
    n_data_points = diff_i.size
    diff_i_da = None
    if isinstance(elpd_b.elpd_i, xr.DataArray):
        diff_i_da = elpd_b.elpd_i.copy(data=diff_i.reshape(elpd_b.elpd_i.shape)).rename("diff_i")
    return ELPDDiff(
        model_a=name_a,
        model_b=name_b,
        elpd_diff=float(np.sum(diff_i)),
        se_diff=float(np.sqrt(n_data_points * np.var(diff_i))),
        n_data_points=n_data_points,
        diff_i=diff_i_da,
    )


def compare(
    compare_dict,
    method="stacking",
    var_name=None,
):
    r"""Compare models based on their expected log pointwise predictive density (ELPD).

    The ELPD is estimated by Pareto smoothed importance sampling leave-one-out
    cross-validation, the same method used by :func:`psisloo.loo`.
    By default, the weights are estimated using ``"stacking"`` as described in [1]_.

    Parameters
    ----------
    compare_dict: dict of {str: DataTree, DrawStore or ELPDData}
        A dictionary of model names and data or precomputed pointwise LOO results.
    method: str, optional
        Method used to estimate the weights for each model. Available options are:

        - 'stacking' : stacking of predictive distributions.
        - 'BB-pseudo-BMA' : pseudo-Bayesian Model averaging using Akaike-type
          weighting. The weights are stabilized using the Bayesian bootstrap.
        - 'pseudo-BMA': pseudo-Bayesian Model averaging using Akaike-type
          weighting, without Bootstrap stabilization (not recommended).

        Defaults to ``rcParams["stats.ic_compare_method"]`` when None.
    var_name: str, optional
        Log likelihood variable to use when LOO has to be computed.

    Returns
    -------
    DataFrame
        Ordered from best to worst model, indexed by model name, with columns:

        - **rank**: 0 is the best.
        - **elpd**: ELPD estimated using PSIS-LOO-CV.
        - **p**: Estimated effective number of parameters.
        - **elpd_diff**: Difference with the top-ranked model, always positive or 0.
        - **weight**: Relative weight for each model.
        - **se**: Standard error of the ELPD estimate.
        - **dse**: Standard error of the paired difference with the top-ranked model.
        - **warning**: True when one or more Pareto k values is above the threshold.

    Raises
    ------
    IncompatibleModels
        If the models were evaluated on a different number of observations.

    References
    ----------

    .. [1] Yao et al. *Using stacking to average Bayesian predictive distributions*
        Bayesian Analysis, 13, 3 (2018). https://doi.org/10.1214/17-BA1091
        arXiv preprint https://arxiv.org/abs/1704.02030.
    """
    method = rcParams["stats.ic_compare_method"] if method is None else method
    available_methods = ["stacking", "bb-pseudo-bma", "pseudo-bma"]
    if method.lower() not in available_methods:
        raise ValueError(
            f"Invalid method '{method}'. Available methods: {', '.join(available_methods)}."
        )
    if len(compare_dict) < 2:
        raise ValueError("At least two models are needed for a comparison")

    ics_dict = {
        name: _as_elpd_data(data, name, var_name=var_name) for name, data in compare_dict.items()
    }
    _check_obs_counts(ics_dict)

    ics = pd.DataFrame(
        {
            "elpd": {name: ic.elpd for name, ic in ics_dict.items()},
            "p": {name: ic.p for name, ic in ics_dict.items()},
            "se": {name: ic.se for name, ic in ics_dict.items()},
            "warning": {name: bool(ic.warning) for name, ic in ics_dict.items()},
        }
    )
    ics.sort_values(by="elpd", inplace=True, ascending=False)
    ic_i_val = np.column_stack([np.ravel(ics_dict[name].elpd_i) for name in ics.index])
    ses = ics["se"]

    if method.lower() == "stacking":
        weights = _stacking_weights(ic_i_val)
    elif method.lower() == "bb-pseudo-bma":
        weights, z_std = _bb_pseudo_bma_weights(ic_i_val)
        ses = pd.Series(z_std, index=ics.index)
    else:
        z_rv = np.exp(ics["elpd"] - ics["elpd"].iloc[0])
        weights = (z_rv / np.sum(z_rv)).to_numpy()

    best_i = ic_i_val[:, 0]
    rows = []
    for idx, name in enumerate(ics.index):
        diff = best_i - ic_i_val[:, idx]
        rows.append(
            {
                "rank": idx,
                "elpd": ics.loc[name, "elpd"],
                "p": ics.loc[name, "p"],
                "elpd_diff": float(np.sum(diff)),
                "weight": weights[idx],
                "se": ses.loc[name],
                "dse": float(np.sqrt(diff.size * np.var(diff))),
                "warning": ics.loc[name, "warning"],
            }
        )
    df_comp = pd.DataFrame(rows, index=ics.index)
    df_comp["rank"] = df_comp["rank"].astype(int)
    df_comp["warning"] = df_comp["warning"].astype(bool)
    return df_comp


def _stacking_weights(ic_i_val):
    """Weights maximizing the LOO log score of the mixture of predictive distributions."""
    rows, cols = ic_i_val.shape
    exp_ic_i = np.exp(ic_i_val - np.max(ic_i_val, axis=1, keepdims=True))
    km1 = cols - 1

    def w_fuller(weights):
        return np.concatenate((weights, [max(1.0 - np.sum(weights), 0.0)]))

    def log_score(weights):
        w_full = w_fuller(weights)
        score = 0.0
        for i in range(rows):
            score += np.log(np.dot(exp_ic_i[i], w_full))
        return -score

    def gradient(weights):
        w_full = w_fuller(weights)
        grad = np.zeros(km1)
        for k, i in itertools.product(range(km1), range(rows)):
            grad[k] += (exp_ic_i[i, k] - exp_ic_i[i, km1]) / np.dot(exp_ic_i[i], w_full)
        return -grad

    theta = np.full(km1, 1.0 / cols)
    bounds = [(0.0, 1.0) for _ in range(km1)]
    constraints = [
        {"type": "ineq", "fun": lambda x: -np.sum(x) + 1.0},
        {"type": "ineq", "fun": np.sum},
    ]

    minimize_result = minimize(
        fun=log_score, x0=theta, jac=gradient, bounds=bounds, constraints=constraints
    )
    return w_fuller(minimize_result["x"])


def _bb_pseudo_bma_weights(ic_i_val, b_samples=1000):
    """Pseudo-BMA weights stabilized with the Bayesian bootstrap."""
    rows, cols = ic_i_val.shape
    ic_i_val = ic_i_val * rows

    b_weighting = dirichlet.rvs(alpha=[1] * rows, size=b_samples, random_state=124)
    weights = np.zeros((b_samples, cols))
    z_bs = np.zeros_like(weights)
    for i in range(b_samples):
        z_b = np.dot(b_weighting[i], ic_i_val)
        u_weights = np.exp(z_b - np.max(z_b))
        z_bs[i] = z_b
        weights[i] = u_weights / np.sum(u_weights)

    return weights.mean(axis=0), z_bs.std(axis=0)
