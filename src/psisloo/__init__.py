# pylint: disable=wildcard-import
"""Approximate leave-one-out cross-validation with Pareto smoothed importance sampling."""

from psisloo.errors import *
from psisloo.utils import *
from psisloo.wrapper import *
from psisloo.draws import *
from psisloo.log_likelihood import *
from psisloo.predictive import *
from psisloo.loo import compare, elpd_diff, loo, loo_i, psislw, reloo

__version__ = "0.1.0"
