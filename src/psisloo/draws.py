"""Typed container for the draws produced by an external sampler."""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

import numpy as np
from arviz_base import from_dict

from psisloo.errors import DimensionMismatch
from psisloo.wrapper import SamplingMode

_log = logging.getLogger(__name__)

__all__ = ["Draw", "DrawStore"]


def _readonly(ary):
    if ary is None:
        return None
    ary = np.array(ary, dtype=float)
    ary.flags.writeable = False
    return ary


@dataclass(frozen=True)
class Draw:
    """One sampler output.

    Parameters
    ----------
    chain : int
        Index of the chain that produced the draw.
    params : mapping of {str : array-like}
        Parameter values.
    y_rep : array-like, optional
        Simulated outcomes, one per observation.
    log_lik : array-like, optional
        Pointwise log likelihood, one per observation.
    """

    chain: int
    params: Mapping = field(default_factory=dict)
    y_rep: np.ndarray = None
    log_lik: np.ndarray = None

    def __post_init__(self):
        object.__setattr__(self, "chain", int(self.chain))
        object.__setattr__(
            self,
            "params",
            MappingProxyType({key: _readonly(value) for key, value in dict(self.params).items()}),
        )
        object.__setattr__(self, "y_rep", _readonly(self.y_rep))
        object.__setattr__(self, "log_lik", _readonly(self.log_lik))
        for name in ("y_rep", "log_lik"):
            value = getattr(self, name)
            if value is not None and value.ndim != 1:
                raise DimensionMismatch(f"{name} must be 1D, got shape {value.shape}")

    @property
    def n_obs(self):
        """Number of observations covered by the draw, None if it has no pointwise values."""
        for value in (self.log_lik, self.y_rep):
            if value is not None:
                return value.size
        return None


class DrawStore:
    """Draws grouped by chain.

    Insertion order within a chain is kept, it is the order used by the autocorrelation
    based efficiency estimates. Chain order is irrelevant.

    Parameters
    ----------
    draws : iterable of Draw, optional
    var_name : str, default "y"
        Name of the observed variable, used for ``y_rep`` and ``log_lik`` in the DataTree.
    obs_dim : str, default "obs_id"
        Name of the observation dimension.
    mode : SamplingMode, default SamplingMode.POSTERIOR
        Controls the names of the groups in :meth:`to_datatree`.
    param_dims : mapping of {str : list of str}, optional
        Dimension names of the non scalar parameters.
    coords : mapping, optional
        Coordinate values for the dimensions.

    Examples
    --------
    .. code-block:: python

        store = DrawStore(var_name="log_radon")
        for chain, draw in sampler_output:
            store.add(Draw(chain, params=draw.params, y_rep=draw.y_rep, log_lik=draw.log_lik))
        dt = store.to_datatree(observed=y)
    """

    def __init__(
        self,
        draws=None,
        var_name="y",
        obs_dim="obs_id",
        mode=SamplingMode.POSTERIOR,
        param_dims=None,
        coords=None,
    ):
        self.var_name = var_name
        self.obs_dim = obs_dim
        self.mode = SamplingMode(mode)
        self.param_dims = {} if param_dims is None else dict(param_dims)
        self.coords = {} if coords is None else dict(coords)
        self._chains = {}
        self._n_obs = None
        if draws is not None:
            self.extend(draws)

    def add(self, draw):
        """Append `draw` to its chain."""
        if not isinstance(draw, Draw):
            raise TypeError(f"Expected a Draw instance, got {type(draw).__name__}")
        n_obs = draw.n_obs
        if n_obs is not None:
            if self._n_obs is None:
                self._n_obs = n_obs
            elif n_obs != self._n_obs:
                raise DimensionMismatch(
                    f"Draw from chain {draw.chain} covers {n_obs} observations, "
                    f"previous draws cover {self._n_obs}"
                )
        if draw.y_rep is not None and draw.log_lik is not None and draw.y_rep.size != n_obs:
            raise DimensionMismatch(
                f"y_rep has {draw.y_rep.size} values but log_lik has {draw.log_lik.size}"
            )
        self._chains.setdefault(draw.chain, []).append(draw)

    def extend(self, draws):
        for draw in draws:
            self.add(draw)

    @classmethod
    def from_arrays(cls, posterior=None, y_rep=None, log_lik=None, **kwargs):
        """Build a store from arrays with leading (chain, draw) dimensions.

        Parameters
        ----------
        posterior : mapping of {str : array-like}, optional
            Parameter arrays with shape (chain, draw, ...).
        y_rep, log_lik : array-like, optional
            Arrays with shape (chain, draw, n_obs).
        **kwargs
            Passed to :class:`DrawStore`.
        """
        posterior = {} if posterior is None else {k: np.asarray(v) for k, v in posterior.items()}
        arrays = [np.asarray(ary) for ary in (y_rep, log_lik) if ary is not None]
        arrays.extend(posterior.values())
        if not arrays:
            raise ValueError("At least one of posterior, y_rep or log_lik must be provided")
        n_chains, n_draws = arrays[0].shape[:2]
        for ary in arrays:
            if ary.shape[:2] != (n_chains, n_draws):
                raise DimensionMismatch(
                    f"All arrays must share the leading (chain, draw) shape {(n_chains, n_draws)}, "
                    f"got {ary.shape[:2]}"
                )
        store = cls(**kwargs)
        for chain in range(n_chains):
            for draw_idx in range(n_draws):
                store.add(
                    Draw(
                        chain,
                        params={k: v[chain, draw_idx] for k, v in posterior.items()},
                        y_rep=None if y_rep is None else np.asarray(y_rep)[chain, draw_idx],
                        log_lik=None if log_lik is None else np.asarray(log_lik)[chain, draw_idx],
                    )
                )
        return store

    @property
    def chains(self):
        """Sorted chain identifiers."""
        return sorted(self._chains)

    @property
    def n_chains(self):
        return len(self._chains)

    @property
    def n_draws(self):
        """Number of draws per chain.

        Raises
        ------
        DimensionMismatch
            If chains have different lengths.
        """
        return self._check_chain_lengths()

    @property
    def n_samples(self):
        return self.n_chains * self.n_draws

    @property
    def n_obs(self):
        return self._n_obs

    def __len__(self):
        return sum(len(draws) for draws in self._chains.values())

    def _stack(self, getter):
        return np.stack(
            [np.stack([getter(draw) for draw in self._chains[chain]]) for chain in self.chains]
        )

    def log_likelihood_array(self):
        """Pointwise log likelihood with shape (chain, draw, n_obs)."""
        self._check_complete("log_lik")
        return self._stack(lambda draw: draw.log_lik)

    def y_rep_array(self):
        """Simulated outcomes with shape (chain, draw, n_obs)."""
        self._check_complete("y_rep")
        return self._stack(lambda draw: draw.y_rep)

    def _check_complete(self, attr):
        if not self._chains:
            raise ValueError("The store doesn't contain any draw")
        missing = [
            chain
            for chain, draws in self._chains.items()
            if any(getattr(draw, attr) is None for draw in draws)
        ]
        if missing:
            raise ValueError(f"Draws from chains {sorted(missing)} don't have {attr} values")
        self._check_chain_lengths()

    def _check_chain_lengths(self):
        lengths = {chain: len(draws) for chain, draws in self._chains.items()}
        if len(set(lengths.values())) > 1:
            raise DimensionMismatch(
                f"All chains must have the same number of draws, got lengths {lengths}"
            )
        return next(iter(lengths.values()), 0)

    def _param_names(self):
        names = {tuple(draw.params) for draws in self._chains.values() for draw in draws}
        if len(names) > 1:
            raise DimensionMismatch("All draws must contain the same parameters")
        return next(iter(names), ())

    def to_datatree(self, observed=None):
        """Convert the draws to a :class:`xarray.DataTree`.

        Parameters
        ----------
        observed : array-like, optional
            Observed outcomes stored in the ``observed_data`` group.

        Returns
        -------
        DataTree
            Groups ``posterior``/``posterior_predictive`` (``prior``/``prior_predictive``
            in PRIOR_ONLY mode), ``log_likelihood`` when the draws carry it and
            ``observed_data`` when `observed` is given.
        """
        if not self._chains:
            raise ValueError("The store doesn't contain any draw")
        n_draws = self.n_draws
        prior = self.mode is SamplingMode.PRIOR_ONLY
        param_group = "prior" if prior else "posterior"
        pred_group = "prior_predictive" if prior else "posterior_predictive"

        groups = {}
        params = {}
        for name in self._param_names():
            try:
                params[name] = self._stack(lambda draw, name=name: draw.params[name])
            except ValueError as err:
                raise DimensionMismatch(f"Parameter '{name}' changes shape across draws") from err
        if params:
            groups[param_group] = params

        has_y_rep = all(d.y_rep is not None for draws in self._chains.values() for d in draws)
        has_log_lik = all(d.log_lik is not None for draws in self._chains.values() for d in draws)
        if has_y_rep:
            groups[pred_group] = {self.var_name: self.y_rep_array()}
        if has_log_lik and not prior:
            groups["log_likelihood"] = {self.var_name: self.log_likelihood_array()}
        if observed is not None:
            observed = np.asarray(observed)
            if self._n_obs is not None and observed.size != self._n_obs:
                raise DimensionMismatch(
                    f"observed has {observed.size} values, draws cover {self._n_obs} observations"
                )
            groups["observed_data"] = {self.var_name: observed}

        dims = {self.var_name: [self.obs_dim], **self.param_dims}
        coords = dict(self.coords)
        if self._n_obs is not None:
            coords.setdefault(self.obs_dim, np.arange(self._n_obs))
        _log.debug(
            "Converting %d chains of %d draws to DataTree with groups %s",
            self.n_chains,
            n_draws,
            list(groups),
        )
        return from_dict(groups, dims=dims, coords=coords)
