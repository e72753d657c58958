"""Class with dataarray functions.

"dataarray" functions take :class:`xarray.DataArray` as inputs.
"""

import numpy as np
from xarray import DataArray, apply_ufunc

from psisloo.base.array import array_stats
from psisloo.validate import validate_dims, validate_dims_chain_draw_axis


class BaseDataArray:
    """Class with numpy+scipy only functions that take DataArray inputs."""

    def __init__(self, array_class=None):
        self.array_class = array_stats if array_class is None else array_class

    def ess(self, da, sample_dims=None, relative=False):
        """Compute ess of the mean on DataArray input."""
        dims, chain_axis, draw_axis = validate_dims_chain_draw_axis(sample_dims)
        return apply_ufunc(
            self.array_class.ess,
            da,
            input_core_dims=[dims],
            output_core_dims=[[]],
            kwargs={"relative": relative, "chain_axis": chain_axis, "draw_axis": draw_axis},
        )

    def relative_eff(self, da, sample_dims=None):
        """Compute per observation relative efficiency of the likelihood on DataArray input."""
        dims, chain_axis, draw_axis = validate_dims_chain_draw_axis(sample_dims)
        return apply_ufunc(
            self.array_class.relative_eff,
            da,
            input_core_dims=[dims],
            output_core_dims=[[]],
            kwargs={"chain_axis": chain_axis, "draw_axis": draw_axis},
            dask="parallelized",
            output_dtypes=[float],
        ).rename("r_eff")

    def psislw(self, da, r_eff=1, dim=None):
        """Compute log weights for Pareto-smoothed importance sampling (PSIS) method.

        `r_eff` can be a scalar or a DataArray with the non sample dimensions of `da`.
        """
        dims = validate_dims(dim)
        log_weights, pareto_k = apply_ufunc(
            self.array_class.psislw,
            da,
            r_eff,
            input_core_dims=[dims, []],
            output_core_dims=[dims, []],
            kwargs={"axis": np.arange(-len(dims), 0, 1)},
            dask="parallelized",
            output_dtypes=[float, float],
        )
        return log_weights.rename("log_weights"), pareto_k.rename("pareto_k")

    def loo(self, da, sample_dims=None, reff=1.0, log_weights=None, pareto_k=None):
        """Compute PSIS-LOO-CV.

        Parameters
        ----------
        da : DataArray
            Log-likelihood values with shape (chain, draw, *obs_dims)
        sample_dims : list of str, optional
            Sample dimensions. Defaults to ``rcParams["data.sample_dims"]``
        reff : float or DataArray, default 1.0
            Relative effective sample size, scalar or per observation.
        log_weights : DataArray, optional
            Pre-computed PSIS log weights (same shape as da)
        pareto_k : DataArray, optional
            Pre-computed Pareto k values (shape: obs_dims only)

        Returns
        -------
        tuple of (elpd_i, pareto_k, p_loo_i) : DataArrays
            Pointwise LOO values for each observation
        """
        dims, chain_axis, draw_axis = validate_dims_chain_draw_axis(sample_dims)
        kwargs = {"chain_axis": chain_axis, "draw_axis": draw_axis}

        if log_weights is None and isinstance(reff, DataArray):

            def func(ary, reff_ary, **kw):
                return self.array_class.loo(ary, reff=reff_ary, **kw)

            inputs = [da, reff]
            input_dims = [dims, []]
        elif log_weights is None:
            func = self.array_class.loo
            kwargs["reff"] = reff
            inputs = [da]
            input_dims = [dims]
        else:

            def func(ary, lw, pk, **kw):
                return self.array_class.loo(ary, log_weights=lw, pareto_k=pk, **kw)

            inputs = [da, log_weights, pareto_k]
            input_dims = [dims, dims, []]

        elpd_i, pareto_k_out, p_loo_i = apply_ufunc(
            func,
            *inputs,
            input_core_dims=input_dims,
            output_core_dims=[[], [], []],
            kwargs=kwargs,
        )
        return elpd_i.rename("elpd_i"), pareto_k_out.rename("pareto_k"), p_loo_i.rename("p_loo_i")


dataarray_stats = BaseDataArray()
