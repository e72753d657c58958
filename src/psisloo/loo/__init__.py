"""Pareto-smoothed importance sampling LOO (PSIS-LOO-CV) and model comparison."""

from psisloo.loo.loo import loo, loo_i, psislw
from psisloo.loo.compare import compare, elpd_diff
from psisloo.loo.reloo import reloo

__all__ = ["loo", "loo_i", "psislw", "compare", "elpd_diff", "reloo"]
