"""Boundary with the external sampler.

The LOO engine never calls a sampler directly. Everything it needs from one goes
through a :class:`SamplingWrapper` subclass written for the modeling framework in use,
configured with a :class:`ModelSpec`.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType

_log = logging.getLogger(__name__)

__all__ = ["SamplingMode", "ModelSpec", "SamplingWrapper"]


class SamplingMode(Enum):
    """Whether the observation likelihood contributes to the target density."""

    PRIOR_ONLY = "prior_only"
    POSTERIOR = "posterior"


def _freeze(mapping):
    return MappingProxyType({key: float(value) for key, value in dict(mapping).items()})


@dataclass(frozen=True)
class ModelSpec:
    """Model specification handed to the external sampler.

    A single schema covers the pooled and the group level (unpooled/hierarchical)
    variants of a regression: ``group_key=None`` means a scalar intercept,
    otherwise the intercept is indexed by the column named by ``group_key``.

    Parameters
    ----------
    name : str
        Identifier of the model, used in reports and comparisons.
    hyperparameters : mapping of {str : float}, optional
        Prior hyperparameters passed to the sampler as named scalars.
    mode : SamplingMode, default SamplingMode.POSTERIOR
    group_key : str, optional
        Name of the grouping index in the observation dataset.
    fit_flag_name : str, default "fit"
        Name under which the binary likelihood switch is passed to the sampler.
    """

    name: str
    hyperparameters: Mapping = field(default_factory=dict)
    mode: SamplingMode = SamplingMode.POSTERIOR
    group_key: str = None
    fit_flag_name: str = "fit"

    def __post_init__(self):
        object.__setattr__(self, "hyperparameters", _freeze(self.hyperparameters))
        if not isinstance(self.mode, SamplingMode):
            object.__setattr__(self, "mode", SamplingMode(self.mode))

    @property
    def fit_flag(self):
        """Binary switch: 1 when the likelihood is included, 0 otherwise."""
        return int(self.mode is SamplingMode.POSTERIOR)

    @property
    def pooled(self):
        return self.group_key is None

    def with_mode(self, mode):
        """Return a copy of the specification with a different sampling mode."""
        return replace(self, mode=SamplingMode(mode))

    def with_hyperparameters(self, **hyperparameters):
        """Return a copy with some hyperparameters replaced or added."""
        unknown = set(hyperparameters) - set(self.hyperparameters)
        if unknown and self.hyperparameters:
            _log.debug("Adding new hyperparameters %s to model %s", sorted(unknown), self.name)
        return replace(self, hyperparameters={**self.hyperparameters, **hyperparameters})

    def to_sampler_data(self, data=None):
        """Merge observations, likelihood switch and hyperparameters into one mapping.

        Parameters
        ----------
        data : mapping, optional
            Observation dataset. Keys clashing with hyperparameters or the switch raise.

        Returns
        -------
        dict
        """
        data = {} if data is None else dict(data)
        reserved = {self.fit_flag_name, *self.hyperparameters}
        clashes = reserved.intersection(data)
        if clashes:
            raise ValueError(
                f"Observation data keys {sorted(clashes)} clash with the hyperparameters "
                f"or the likelihood switch of model '{self.name}'"
            )
        if self.group_key is not None and self.group_key not in data and data:
            raise KeyError(f"Grouping key '{self.group_key}' not found in the observation data")
        return {**data, **self.hyperparameters, self.fit_flag_name: self.fit_flag}


class SamplingWrapper:
    """Base class for wrappers around an external sampler.

    Subclasses implement the methods needed by the functions that use them:

    - :func:`~psisloo.prior_predictive` and :func:`~psisloo.posterior_predictive`
      need ``sample`` and ``get_inference_data``.
    - :func:`~psisloo.reloo` needs ``sel_observations``, ``sample``,
      ``get_inference_data`` and ``log_likelihood__i``.

    Parameters
    ----------
    model
        Model object understood by the subclass, e.g. a compiled Stan model.
    data : DataTree, optional
        Results of the fit on the full dataset, with ``log_likelihood`` group.
    log_lik_var_name : str, optional
        Name of the variable in the ``log_likelihood`` group.
    sample_kwargs : dict, optional
        Keyword arguments forwarded by ``sample`` to the sampler.
    """

    def __init__(self, model, data=None, log_lik_var_name=None, sample_kwargs=None):
        self.model = model
        self.data = data
        self.log_lik_var_name = log_lik_var_name
        self.sample_kwargs = {} if sample_kwargs is None else dict(sample_kwargs)

    def sample(self, modified_observed_data):
        """Run the sampler on `modified_observed_data` and return the fitted object."""
        raise NotImplementedError("sample method must be implemented in a subclass")

    def get_inference_data(self, fitted_model):
        """Convert the fitted object to a DataTree or a :class:`~psisloo.DrawStore`."""
        raise NotImplementedError("get_inference_data method must be implemented in a subclass")

    def sel_observations(self, idx):
        """Split the observed data into the data to fit and the excluded observation.

        Returns
        -------
        modified_observed_data
            Data passed to ``sample``.
        excluded_observed_data
            Data passed to ``log_likelihood__i``.
        """
        raise NotImplementedError("sel_observations method must be implemented in a subclass")

    def log_likelihood__i(self, excluded_obs, idata__i):
        """Pointwise log likelihood of the excluded observation under the refitted posterior.

        Returns
        -------
        DataArray
            With dimensions ``("chain", "draw")``.
        """
        raise NotImplementedError("log_likelihood__i method must be implemented in a subclass")

    def check_implemented_methods(self, methods):
        """Return the subset of `methods` that the subclass does not override."""
        return [
            method
            for method in methods
            if getattr(type(self), method, None) is getattr(SamplingWrapper, method, None)
        ]
