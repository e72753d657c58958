"""Result containers, reporting helpers and data access utilities."""

from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from xarray import DataArray

from psisloo.validate import PARETO_K_THRESHOLDS

__all__ = ["ELPDData", "ELPDDiff", "get_log_likelihood", "pareto_k_table", "k_reliability"]


def get_log_likelihood(idata, var_name=None):
    """Retrieve the log likelihood dataarray of a given variable."""
    if not hasattr(idata, "log_likelihood"):
        raise TypeError("log likelihood not found in inference data object")
    if var_name is None:
        var_names = list(idata.log_likelihood.data_vars)
        if len(var_names) > 1:
            raise TypeError(
                f"Found several log likelihood arrays {var_names}, var_name cannot be None"
            )
        return idata.log_likelihood[var_names[0]]
    try:
        log_likelihood = idata.log_likelihood[var_name]
    except KeyError as err:
        raise TypeError(f"No log likelihood data named {var_name} found") from err
    return log_likelihood


def k_reliability(pareto_k, k_thresholds=None):
    """Classify Pareto k values into reliability buckets.

    Parameters
    ----------
    pareto_k : array-like
    k_thresholds : tuple of (float, float), optional
        Defaults to ``(0.5, 0.7)``.

    Returns
    -------
    numpy.ndarray of str
        ``"good"`` below the first threshold, ``"ok"`` between both thresholds
        (inclusive), ``"bad"`` above the second one and ``"undefined"`` for NaN.
    """
    ok_k, bad_k = PARETO_K_THRESHOLDS if k_thresholds is None else k_thresholds
    pareto_k = np.asarray(pareto_k, dtype=float)
    return np.select(
        [np.isnan(pareto_k), pareto_k < ok_k, pareto_k <= bad_k],
        ["undefined", "good", "ok"],
        default="bad",
    )


BASE_FMT = """Computed from {{n_samples}} posterior samples and \
{{n_points}} observations log-likelihood matrix.

{{0:{0}}} Estimate       SE
{{scale}}_{{kind}} {{ic_value:8.2f}}  {{ic_se:7.2f}}
p_{{kind:{1}}} {{p_value:8.2f}}        -"""
POINTWISE_LOO_FMT = """------

Pareto k diagnostic values:
                          {{0:>{0}}} {{1:>6}}
(-Inf, {{10:.2f}})   (good)      {{2:{0}d}} {{6:6.1f}}%
 [{{10:.2f}}, {{11:.2f}}]   (ok)        {{3:{0}d}} {{7:6.1f}}%
  ({{11:.2f}}, Inf)   (bad)       {{4:{0}d}} {{8:6.1f}}%
           NaN   (undefined) {{5:{0}d}} {{9:6.1f}}%
"""
SCALE_DICT = {"deviance": "deviance", "log": "elpd", "negative_log": "-elpd"}


@dataclass
class ELPDData:  # pylint: disable=too-many-instance-attributes
    """Class to contain the data from PSIS-LOO-CV.

    Attributes
    ----------
    kind : str
        Always ``"loo"``.
    elpd : float
        ``elpd_loo``, sum of the pointwise values.
    se : float
        Standard error computed from the pointwise variance.
    p : float
        Effective number of parameters ``p_loo``.
    n_samples, n_data_points : int
    scale : str
    warning : bool
        True when one or more Pareto k values is above the unreliable threshold.
    good_k : float
        Pareto k value above which the estimate is considered unreliable.
    elpd_i, pareto_k, p_loo_i : DataArray, optional
        Pointwise values, stored when computed with ``pointwise=True``.
    log_weights : DataArray, optional
        Pareto smoothed log weights.
    k_thresholds : tuple of (float, float)
    name : str, optional
        Identifier of the model these results belong to.
    """

    kind: str
    elpd: float
    se: float
    p: float
    n_samples: int
    n_data_points: int
    scale: str
    warning: bool
    good_k: float
    elpd_i: DataArray = None
    pareto_k: DataArray = None
    p_loo_i: DataArray = None
    log_weights: DataArray = None
    k_thresholds: tuple = field(default=PARETO_K_THRESHOLDS)
    name: str = None

    def __str__(self):
        """Print elpd data in a user friendly way."""
        kind = self.kind
        scale_str = SCALE_DICT[self["scale"]]
        padding = len(scale_str) + len(kind) + 1

        base = BASE_FMT.format(padding, padding - 2)
        base = base.format(
            "",
            kind=kind,
            scale=scale_str,
            n_samples=self.n_samples,
            n_points=self.n_data_points,
            ic_value=self.elpd,
            ic_se=self.se,
            p_value=self.p,
        )
        if self.name is not None:
            base = f"Model: {self.name}\n" + base

        if self.warning:
            base += "\n\nThere has been a warning during the calculation. Please check the results."

        if self.pareto_k is not None:
            buckets = k_reliability(self.pareto_k, self.k_thresholds).ravel()
            counts = np.array(
                [np.sum(buckets == bucket) for bucket in ("good", "ok", "bad", "undefined")]
            )
            extended = POINTWISE_LOO_FMT.format(max(4, len(str(np.max(counts)))))
            extended = extended.format(
                "Count",
                "Pct.",
                *[*counts, *(counts / np.sum(counts) * 100)],
                *self.k_thresholds,
            )
            base = "\n".join([base, extended])

        return base

    def __repr__(self):
        """Alias to ``__str__``."""
        return self.__str__()

    def __getitem__(self, key):
        """Define getitem magic method."""
        return getattr(self, key)

    def __setitem__(self, key, item):
        """Define setitem magic method."""
        setattr(self, key, item)


COMPARISON_FMT = "elpd_diff ({model_b} - {model_a}): {diff:.2f} ± {se:.2f}  -> {verdict}"


@dataclass(frozen=True)
class ELPDDiff:
    """Paired comparison between the ELPD of two models.

    A positive ``elpd_diff`` means ``model_b`` is expected to generalize better.
    """

    model_a: str
    model_b: str
    elpd_diff: float
    se_diff: float
    n_data_points: int
    diff_i: DataArray = None

    @property
    def winner(self):
        """Name of the model with the highest elpd, None on an exact tie."""
        if self.elpd_diff > 0:
            return self.model_b
        if self.elpd_diff < 0:
            return self.model_a
        return None

    def __str__(self):
        """Single line summary of the comparison."""
        winner = self.winner
        verdict = "no difference" if winner is None else f"{winner} preferred"
        if winner is not None and abs(self.elpd_diff) < 2 * self.se_diff:
            verdict += " (difference within 2 SE)"
        return COMPARISON_FMT.format(
            model_a=self.model_a,
            model_b=self.model_b,
            diff=self.elpd_diff,
            se=self.se_diff,
            verdict=verdict,
        )

    def __repr__(self):
        """Alias to ``__str__``."""
        return self.__str__()


def pareto_k_table(elpd_data):
    """Per observation Pareto k diagnostic table.

    Parameters
    ----------
    elpd_data : ELPDData
        Computed with ``pointwise=True``.

    Returns
    -------
    pandas.DataFrame
        Indexed by observation, with columns ``elpd_i``, ``pareto_k`` and ``reliability``.
    """
    if elpd_data.pareto_k is None or elpd_data.elpd_i is None:
        raise ValueError(
            "Pointwise values are missing, recompute the LOO results with pointwise=True."
        )
    pareto_k = elpd_data.pareto_k
    elpd_i = elpd_data.elpd_i
    obs_dims = list(pareto_k.dims)
    if len(obs_dims) > 1:
        pareto_k = pareto_k.stack(__obs__=obs_dims)
        elpd_i = elpd_i.stack(__obs__=obs_dims)
    if pareto_k.ndim == 1:
        index = pareto_k.get_index(pareto_k.dims[0])
    else:
        index = pd.RangeIndex(1)
    return pd.DataFrame(
        {
            "elpd_i": np.ravel(elpd_i.values),
            "pareto_k": np.ravel(pareto_k.values),
            "reliability": k_reliability(np.ravel(pareto_k.values), elpd_data.k_thresholds),
        },
        index=index,
    )
