"""Exceptions and warning categories raised by psisloo."""

__all__ = ["DimensionMismatch", "IncompatibleModels", "DegenerateTail", "UnreliableEstimate"]


class DimensionMismatch(ValueError):
    """Inputs with incompatible shapes.

    Fatal: the caller has to fix the inputs before retrying.
    """


class IncompatibleModels(ValueError):
    """Models can't be compared because they were fit to different observation sets."""


class DegenerateTail(ValueError):
    """Not enough tail draws to fit a generalized Pareto distribution.

    Always recovered inside the PSIS routine by falling back to the raw
    normalized weights. The affected observation gets ``pareto_k = nan``.
    """


class UnreliableEstimate(UserWarning):
    """Pareto k above the reliability threshold for one or more observations."""
