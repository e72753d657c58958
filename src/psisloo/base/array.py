"""Class with array functions.

"array" functions work on any dimension array,
batching as necessary.
"""

import numpy as np

from psisloo.base.diagnostics import _DiagnosticsBase
from psisloo.base.stats_utils import make_ufunc


def process_chain_none(ary, chain_axis, draw_axis):
    """Process array with chain and draw axis to cover the case ``chain_axis=None``."""
    if chain_axis is None:
        ary = np.expand_dims(ary, axis=0)
        chain_axis = 0
        draw_axis = draw_axis + 1 if draw_axis > 0 else draw_axis
    return ary, chain_axis, draw_axis


def process_ary_axes(ary, axes):
    """Process input array and axes to ensure input core dims are the last ones.

    Parameters
    ----------
    ary : array_like
    axes : int or sequence of int
    """
    ary = np.asarray(ary)
    if axes is None:
        axes = list(range(ary.ndim))
    if isinstance(axes, int | np.integer):
        axes = [axes]
    axes = [ax if ax >= 0 else ary.ndim + ax for ax in axes]
    reordered_axes = [i for i in range(ary.ndim) if i not in axes] + list(axes)
    ary = np.transpose(ary, axes=reordered_axes)
    return ary, np.arange(-len(axes), 0, dtype=int)


class BaseArray(_DiagnosticsBase):
    """Class with numpy+scipy only functions that take array inputs.

    Notes
    -----
    If a new dimension is created by the function it must be added at the end of the array.
    Otherwise the functions won't be compatible with :func:`xarray.apply_ufunc`.
    """

    def ess(self, ary, chain_axis=-2, draw_axis=-1, relative=False):
        """Compute the effective sample size of the mean.

        Parameters
        ----------
        ary : array-like
        chain_axis : int, optional
        draw_axis : int, default -1
        relative : bool, default False
        """
        ary, chain_axis, draw_axis = process_chain_none(ary, chain_axis, draw_axis)
        ary, _ = process_ary_axes(ary, [chain_axis, draw_axis])
        ess_ufunc = make_ufunc(self._ess_mean, n_output=1, n_input=1, n_dims=2, ravel=False)
        return ess_ufunc(ary, relative=relative)

    def relative_eff(self, ary, chain_axis=-2, draw_axis=-1):
        """Compute the relative efficiency of the likelihood values.

        Parameters
        ----------
        ary : array-like
            Log likelihood values.
        chain_axis : int, optional
        draw_axis : int, default -1

        Returns
        -------
        array-like
            Shape of `ary` minus the chain and draw dimensions.
        """
        ary, chain_axis, draw_axis = process_chain_none(ary, chain_axis, draw_axis)
        ary, _ = process_ary_axes(ary, [chain_axis, draw_axis])
        r_eff_ufunc = make_ufunc(self._relative_eff, n_output=1, n_input=1, n_dims=2, ravel=False)
        return r_eff_ufunc(ary)

    def psislw(self, ary, r_eff=1, axis=-1):
        """Compute log weights for Pareto-smoothed importance sampling (PSIS) method.

        Parameters
        ----------
        ary : array-like
            Log likelihood values. The raw importance ratios are their negation.
        r_eff : float or array-like, default 1
            Relative efficiency, broadcastable to the shape of `ary` minus `axis` dimensions.
        axis : int, sequence of int or None, default -1

        Returns
        -------
        log_weights : array-like
            Same shape as `ary` but `axis` dimensions moved to the end
        khat : array-like
            Shape of `ary` minus dimensions indicated in `axis`
        """
        ary, axes = process_ary_axes(ary, axis)
        psl_ufunc = make_ufunc(
            self._psislw,
            n_output=2,
            n_input=2,
            n_dims=len(axes),
            ravel=False,
        )
        core_shape = tuple(ary.shape[i] for i in axes)
        return psl_ufunc(ary, r_eff, out_shape=[core_shape, ()])

    def loo(
        self,
        ary,
        chain_axis=-2,
        draw_axis=-1,
        reff=1.0,
        log_weights=None,
        pareto_k=None,
    ):
        """Compute Pareto-smoothed importance sampling leave-one-out cross-validation (PSIS-LOO-CV).

        Parameters
        ----------
        ary : array-like
        chain_axis : int, default -2
        draw_axis : int, default -1
        reff : float or array-like, default 1.0
        log_weights : array-like, optional
            Same shape as `ary`, must be provided together with `pareto_k`.
        pareto_k : array-like, optional

        Returns
        -------
        elpd_i : array-like
        pareto_k : array-like
        p_loo_i : array-like
        """
        if (log_weights is None) != (pareto_k is None):
            raise ValueError("log_weights and pareto_k must be provided together")
        ary, chain_axis, draw_axis = process_chain_none(ary, chain_axis, draw_axis)
        ary, axes = process_ary_axes(ary, [chain_axis, draw_axis])

        if log_weights is None:
            loo_ufunc = make_ufunc(self._loo, n_output=3, n_input=2, n_dims=len(axes))
            return loo_ufunc(ary, reff)

        log_weights = np.reshape(log_weights, ary.shape)

        def _loo_with_weights(ary_i, log_weights_i, pareto_k_i):
            return self._loo(ary_i, log_weights=log_weights_i, pareto_k=pareto_k_i)

        loo_ufunc = make_ufunc(_loo_with_weights, n_output=3, n_input=3, n_dims=len(axes))
        return loo_ufunc(ary, log_weights, pareto_k)


array_stats = BaseArray()
