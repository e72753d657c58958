"""Validator functions for common arguments."""

import numpy as np
from arviz_base import rcParams

from psisloo.errors import DimensionMismatch

__all__ = ["PARETO_K_THRESHOLDS", "TAIL_FRACTION", "TAIL_SCALE", "MIN_TAIL_DRAWS"]

# Pareto k buckets: below the first value the estimate is good, up to the second
# it is usable but flagged and above it the estimate is unreliable.
PARETO_K_THRESHOLDS = (0.5, 0.7)
TAIL_FRACTION = 0.2
TAIL_SCALE = 3.0
MIN_TAIL_DRAWS = 5


def validate_dims(dims):
    """Validate `dims` argument.

    Uses the default in rcParams and ensures the returned object is a list.

    Parameters
    ----------
    dims : str, sequence of hashable, or None

    Returns
    -------
    list
    """
    if dims is None:
        dims = rcParams["data.sample_dims"]
    if isinstance(dims, str):
        dims = [dims]
    return list(dims)


def validate_dims_chain_draw_axis(dims):
    """Validate `dims` argument for functions that use chain_axis and draw_axis.

    In such cases, dims can have length 1 or 2 depending on there being a chain dimension.

    Returns
    -------
    list
        List of dimensions
    int or None
        Positional index for chain dimension
    int
        Positional index for draw dimension
    """
    dims = validate_dims(dims)
    draw_axis = -1
    if len(dims) == 1:
        chain_axis = None
    elif len(dims) == 2:
        chain_axis = -2
    else:
        raise ValueError("dims can only have 1 or 2 elements")
    return dims, chain_axis, draw_axis


def validate_ci_prob(prob):
    """Validate `prob`/`ci_prob` argument.

    Returns
    -------
    float
    """
    if prob is None:
        prob = rcParams["stats.ci_prob"]
    return validate_prob(prob)


def validate_prob(prob, allow_0=False):
    """Validate required `prob` argument."""
    if allow_0 and not 1 >= prob >= 0:
        raise ValueError(f"The value of prob should be in the interval [0, 1] but got {prob}")
    if not allow_0 and not 1 >= prob > 0:
        raise ValueError(f"The value of prob should be in the interval (0, 1] but got {prob}")
    return prob


def validate_k_thresholds(k_thresholds):
    """Validate the pair of Pareto k thresholds.

    Parameters
    ----------
    k_thresholds : tuple of (float, float) or None
        ``(ok_k, bad_k)``. Defaults to :data:`PARETO_K_THRESHOLDS`.

    Returns
    -------
    tuple of (float, float)
    """
    if k_thresholds is None:
        return PARETO_K_THRESHOLDS
    k_thresholds = tuple(float(k) for k in k_thresholds)
    if len(k_thresholds) != 2:
        raise ValueError(f"k_thresholds must have exactly 2 elements, got {len(k_thresholds)}")
    if not k_thresholds[0] <= k_thresholds[1]:
        raise ValueError(
            f"k_thresholds must be in increasing order, got {k_thresholds[0]} > {k_thresholds[1]}"
        )
    return k_thresholds


def validate_r_eff(r_eff, n_obs=None):
    """Validate relative efficiency values.

    Parameters
    ----------
    r_eff : float or array-like
    n_obs : int, optional
        When given, array-like `r_eff` must have this many elements.
    """
    r_eff_ary = np.asarray(r_eff, dtype=float)
    if np.any(~np.isfinite(r_eff_ary)) or np.any(r_eff_ary <= 0):
        raise ValueError("r_eff values must be finite and strictly positive")
    if n_obs is not None and r_eff_ary.ndim > 0 and r_eff_ary.size != n_obs:
        raise DimensionMismatch(
            f"r_eff has {r_eff_ary.size} elements but there are {n_obs} observations"
        )
    return r_eff
