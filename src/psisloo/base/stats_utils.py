"""Stats-utility functions for psisloo."""

import logging
from collections.abc import Sequence

import numpy as np

__all__ = ["make_ufunc", "logsumexp"]

_log = logging.getLogger(__name__)


def make_ufunc(func, n_dims=2, n_output=1, n_input=1, ravel=True):
    """Make ufunc from a function taking 1D array input.

    Parameters
    ----------
    func : callable
    n_dims : int, optional
        Number of core dimensions not broadcasted. Dimensions are skipped from the end.
        At minimum n_dims > 0.
    n_output : int, optional
        Select number of results returned by `func`.
        If n_output > 1, ufunc returns a tuple of objects else returns an object.
    n_input : int, optional
        Number of **array** inputs to func, i.e. ``n_input=2`` means that func is called
        with ``func(ary1, ary2, *args, **kwargs)``. Extra arrays either share the shape of
        the first one (and are sliced the same way) or are broadcasted against its batch shape.
    ravel : bool, optional
        If true, ravel the core dimensions of the first array before calling `func`.

    Returns
    -------
    callable
        ufunc wrapper for `func`.
    """
    if n_dims < 1:
        raise TypeError("n_dims must be one or higher.")

    def _prepare(arys):
        element_shape = arys[0].shape[:-n_dims]
        extra = [
            ary if ary.shape == arys[0].shape else np.broadcast_to(ary, element_shape)
            for ary in arys[1:]
        ]
        return element_shape, extra

    def _ufunc(*args, out_shape=None, **kwargs):
        """General ufunc for single-output function."""
        arys = [np.asarray(ary) for ary in args[:n_input]]
        element_shape, extra = _prepare(arys)
        out = np.empty((*element_shape, *(out_shape or ())))
        for idx in np.ndindex(element_shape):
            core = arys[0][idx].ravel() if ravel else arys[0][idx]
            res = func(core, *[ary[idx] for ary in extra], *args[n_input:], **kwargs)
            out[idx] = np.asarray(res)
        return out

    def _multi_ufunc(*args, out_shape=None, **kwargs):
        """General ufunc for multi-output function."""
        arys = [np.asarray(ary) for ary in args[:n_input]]
        element_shape, extra = _prepare(arys)
        if out_shape is None:
            out_shape = [() for _ in range(n_output)]
        out = tuple(np.empty((*element_shape, *out_shape[i])) for i in range(n_output))
        for idx in np.ndindex(element_shape):
            core = arys[0][idx].ravel() if ravel else arys[0][idx]
            results = func(core, *[ary[idx] for ary in extra], *args[n_input:], **kwargs)
            for i, res in enumerate(results):
                out[i][idx] = np.asarray(res)
        return out

    ufunc = _multi_ufunc if n_output > 1 else _ufunc
    ufunc.__doc__ = f"ufunc wrapper of {getattr(func, '__name__', 'function')}."
    return ufunc


def logsumexp(ary, *, b=None, b_inv=None, axis=None, keepdims=False, out=None, copy=True):
    """Stable logsumexp when b >= 0 and b is scalar.

    b_inv overwrites b unless b_inv is None.
    """
    # check dimensions for result arrays
    ary = np.asarray(ary)
    if ary.dtype.kind == "i":
        ary = ary.astype(np.float64)
    dtype = ary.dtype.type
    shape = ary.shape
    shape_len = len(shape)
    if isinstance(axis, Sequence):
        axis = tuple(axis_i if axis_i >= 0 else shape_len + axis_i for axis_i in axis)
        agroup = axis
    else:
        axis = axis if (axis is None) or (axis >= 0) else shape_len + axis
        agroup = (axis,)
    shape_max = (
        tuple(1 for _ in shape)
        if axis is None
        else tuple(1 if i in agroup else d for i, d in enumerate(shape))
    )
    # create result arrays
    if out is None:
        if not keepdims:
            out_shape = (
                tuple()
                if axis is None
                else tuple(d for i, d in enumerate(shape) if i not in agroup)
            )
        else:
            out_shape = shape_max
        out = np.empty(out_shape, dtype=dtype)
    if b_inv == 0:
        return np.full_like(out, np.inf, dtype=dtype) if out.shape else np.inf
    if b_inv is None and b == 0:
        return np.full_like(out, -np.inf) if out.shape else -np.inf
    ary_max = np.empty(shape_max, dtype=dtype)
    # calculations
    ary.max(axis=axis, keepdims=True, out=ary_max)
    if copy:
        ary = ary.copy()
    ary -= ary_max
    np.exp(ary, out=ary)
    ary.sum(axis=axis, keepdims=keepdims, out=out)
    np.log(out, out=out)
    if b_inv is not None:
        ary_max -= np.log(b_inv)
    elif b:
        ary_max += np.log(b)
    out += ary_max if keepdims else ary_max.squeeze()
    # transform to scalar if possible
    return out if out.shape else dtype(out)


def not_valid(ary, check_nan=True, min_chains=1, min_draws=4):
    """Validate a (chain, draw) array.

    Parameters
    ----------
    ary : numpy.ndarray
        Array with dimensions in order (chain, draw).
    check_nan : bool
        Check if any value contains NaN.
    min_chains : int
    min_draws : int

    Returns
    -------
    bool
        True if the array can't be used for autocorrelation based computations.
    """
    ary = np.asarray(ary)

    isnan = np.isnan(ary)
    if isnan.all():
        return True

    nan_error = False
    if check_nan and isnan.any():
        _log.warning("Array contains NaN-value.")
        nan_error = True

    shape = ary.shape
    chain_error = len(shape) < 2 or shape[0] < min_chains
    draw_error = len(shape) < 2 or shape[1] < min_draws
    if chain_error or draw_error:
        _log.debug(
            "Shape validation failed: input_shape: %s, minimum_shape: (chains=%s, draws=%s)",
            shape,
            min_chains,
            min_draws,
        )

    return nan_error or chain_error or draw_error
