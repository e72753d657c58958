"""Diagnostic functions for psisloo: effective sample size and Pareto smoothing."""

import logging

import numpy as np

from psisloo.base.core import _CoreBase
from psisloo.base.stats_utils import logsumexp
from psisloo.base.stats_utils import not_valid as _not_valid
from psisloo.errors import DegenerateTail
from psisloo.validate import MIN_TAIL_DRAWS, TAIL_FRACTION, TAIL_SCALE

_log = logging.getLogger(__name__)


class _DiagnosticsBase(_CoreBase):
    """Class with numpy.scipy only diagnostic related functions."""

    def _ess(self, ary, relative=False):
        """Compute the effective sample size for a 2D array."""
        ary = np.asarray(ary, dtype=float)
        if (np.max(ary) - np.min(ary)) < np.finfo(float).resolution:  # pylint: disable=no-member
            return 1.0 if relative else ary.size
        n_chain, n_draw = ary.shape
        acov = self.autocov(ary, axis=1)
        chain_mean = ary.mean(axis=1)
        mean_var = np.mean(acov[:, 0]) * n_draw / (n_draw - 1.0)
        var_plus = mean_var * (n_draw - 1.0) / n_draw
        if n_chain > 1:
            var_plus += np.var(chain_mean, axis=None, ddof=1)

        rho_hat_t = np.zeros(n_draw)
        rho_hat_even = 1.0
        rho_hat_t[0] = rho_hat_even
        rho_hat_odd = 1.0 - (mean_var - np.mean(acov[:, 1])) / var_plus
        rho_hat_t[1] = rho_hat_odd

        # Geyer's initial positive sequence
        t = 1
        while t < (n_draw - 3) and (rho_hat_even + rho_hat_odd) > 0.0:
            rho_hat_even = 1.0 - (mean_var - np.mean(acov[:, t + 1])) / var_plus
            rho_hat_odd = 1.0 - (mean_var - np.mean(acov[:, t + 2])) / var_plus
            if (rho_hat_even + rho_hat_odd) >= 0:
                rho_hat_t[t + 1] = rho_hat_even
                rho_hat_t[t + 2] = rho_hat_odd
            t += 2

        max_t = t - 2
        if rho_hat_even > 0:
            rho_hat_t[max_t + 1] = rho_hat_even
        # Geyer's initial monotone sequence
        t = 1
        while t <= max_t - 2:
            if (rho_hat_t[t + 1] + rho_hat_t[t + 2]) > (rho_hat_t[t - 1] + rho_hat_t[t]):
                rho_hat_t[t + 1] = (rho_hat_t[t - 1] + rho_hat_t[t]) / 2.0
                rho_hat_t[t + 2] = rho_hat_t[t + 1]
            t += 2

        ess = n_chain * n_draw
        tau_hat = (
            -1.0 + 2.0 * np.sum(rho_hat_t[: max_t + 1]) + np.sum(rho_hat_t[max_t + 1 : max_t + 2])
        )
        tau_hat = max(tau_hat, 1 / np.log10(ess))
        ess = (1 if relative else ess) / tau_hat
        if np.isnan(rho_hat_t).any():
            ess = np.nan
        return ess

    def _ess_mean(self, ary, relative=False):
        """Compute the effective sample size for the mean of a (chain, draw) array."""
        ary = np.asarray(ary)
        if _not_valid(ary, min_chains=1, min_draws=4):
            return np.nan
        return self._ess(ary, relative=relative)

    def _relative_eff(self, ary):
        """Relative efficiency of the likelihood values of one observation.

        Parameters
        ----------
        ary : array-like
            Log likelihood values with shape (chain, draw).

        Returns
        -------
        float
            ``ess / n_samples`` of ``exp(ary)``. 1 when there are too few draws per
            chain to estimate the autocorrelation.
        """
        ary = np.asarray(ary, dtype=float)
        if ary.ndim == 1:
            ary = ary[None, :]
        if np.isnan(ary).any():
            return np.nan
        if ary.shape[1] < 4:
            _log.debug("Less than 4 draws per chain, using r_eff=1")
            return 1.0
        likelihood = np.exp(ary - np.max(ary))
        return self._ess_mean(likelihood, relative=True)

    @staticmethod
    def _get_ps_tails(n_draws, r_eff):
        """Number of draws in the right tail used for the Pareto fit.

        Returns ``min(ceil(TAIL_FRACTION * S), ceil(TAIL_SCALE * sqrt(S / r_eff)))``.
        """
        by_fraction = np.ceil(TAIL_FRACTION * n_draws)
        by_ess = np.ceil(TAIL_SCALE * np.sqrt(n_draws / r_eff))
        n_draws_tail = int(min(by_fraction, by_ess))
        # one draw has to stay below the tail to act as the cutoff
        return min(n_draws_tail, n_draws - 1)

    def _ps_tail(self, ary, n_draws, n_draws_tail, smooth_draws=False, log_weights=False):
        """
        Estimate the right tail of a distribution using the Generalized Pareto Distribution.

        Parameters
        ----------
        ary : array
            1D array.
        n_draws : int
            Number of draws.
        n_draws_tail : int
            Number of draws in the tail.
        smooth_draws : bool, optional
            Whether to smooth the tail.
        log_weights : bool, optional
            Whether `ary` represents log-weights.

        Returns
        -------
        ary : array
            Array with smoothed tail values.
        k : float
            Estimated shape parameter.

        Raises
        ------
        DegenerateTail
            If the tail has less than ``MIN_TAIL_DRAWS`` draws.
        """
        if n_draws_tail < MIN_TAIL_DRAWS:
            raise DegenerateTail(
                f"n_draws_tail must be at least {MIN_TAIL_DRAWS}, got {n_draws_tail}"
            )

        ary = np.array(ary, dtype=float)
        if log_weights:
            ary = ary - np.max(ary)

        tail_ids = np.arange(n_draws - n_draws_tail, n_draws, dtype=int)

        ordered = np.argsort(ary, kind="stable")
        draws_tail = ary[ordered[tail_ids]]

        cutoff = ary[ordered[tail_ids[0] - 1]]  # largest value smaller than tail values

        max_tail = np.max(draws_tail)
        min_tail = np.min(draws_tail)

        if abs(max_tail - min_tail) < np.finfo(float).tiny:
            # flat tail, weights are already bounded
            return ary, 0.0

        if log_weights:
            draws_tail = np.exp(draws_tail)
            cutoff = np.exp(cutoff)

        khat, sigma = self._gpdfit(draws_tail - cutoff)

        if np.isfinite(khat) and smooth_draws:
            p = (np.arange(0.5, n_draws_tail)) / n_draws_tail
            smoothed = self._gpinv(p, khat, sigma, cutoff)

            if log_weights:
                with np.errstate(divide="ignore", invalid="ignore"):
                    smoothed = np.log(smoothed)

            if np.all(np.isfinite(smoothed)):
                smoothed[smoothed > max_tail] = max_tail
                ary[ordered[tail_ids]] = smoothed

        return ary, khat

    @staticmethod
    def _gpdfit(ary):
        """Estimate the parameters for the Generalized Pareto Distribution (GPD).

        Empirical Bayes estimate for the parameters (kappa, sigma) of the generalized Pareto
        distribution given the data, evaluating the profile likelihood over a bounded grid
        of candidate values.

        The fit uses a prior for kappa to stabilize estimates for very small (effective)
        sample sizes. The weakly informative prior is a Gaussian centered at 0.5.
        See details in Vehtari et al., 2024 (https://doi.org/10.48550/arXiv.1507.02646)

        Parameters
        ----------
        ary: array
            sorted 1D data array of exceedances over the cutoff

        Returns
        -------
        kappa: float
            estimated shape parameter. ``inf`` when the lower quartile of `ary` is zero
            (the tail is dominated by ties at the cutoff) and no fit is possible.
        sigma: float
            estimated scale parameter
        """
        prior_bs = 3
        prior_k = 10
        n = len(ary)
        m_est = 30 + int(n**0.5)

        quartile = ary[int(n / 4 + 0.5) - 1]
        if quartile <= 0 or ary[-1] <= 0:
            return np.inf, np.nan

        b_ary = 1 - np.sqrt(m_est / (np.arange(1, m_est + 1, dtype=float) - 0.5))
        b_ary /= prior_bs * quartile
        b_ary += 1 / ary[-1]

        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            k_ary = np.log1p(-b_ary[:, None] * ary).mean(axis=1)  # pylint: disable=no-member
            len_scale = n * (np.log(-(b_ary / k_ary)) - k_ary - 1)
            weights = 1 / np.exp(len_scale - len_scale[:, None]).sum(axis=1)

        # remove negligible weights
        real_idxs = weights >= 10 * np.finfo(float).eps
        if not np.all(real_idxs):
            weights = weights[real_idxs]
            b_ary = b_ary[real_idxs]
        if weights.size == 0:
            return np.inf, np.nan
        # normalise weights
        weights /= weights.sum()

        # posterior mean for b
        b_post = np.sum(b_ary * weights)
        # estimate for k
        kappa = np.log1p(-b_post * ary).mean()  # pylint: disable=invalid-unary-operand-type,no-member
        # add prior for kappa
        sigma = -kappa / b_post
        kappa = (n * kappa + prior_k * 0.5) / (n + prior_k)

        return kappa, sigma

    @staticmethod
    def _gpinv(probs, kappa, sigma, mu):
        """Quantile function for generalized pareto distribution."""
        if not sigma > 0:
            return np.full_like(probs, np.nan)

        if kappa == 0:
            q = mu - sigma * np.log1p(-probs)
        else:
            q = mu + sigma * np.expm1(-kappa * np.log1p(-probs)) / kappa

        return q

    def _psislw(self, ary, r_eff=1):
        """Pareto smoothed log weights of a single observation.

        Parameters
        ----------
        ary : array
            Log likelihood values of one observation for all draws.
        r_eff : float
            Relative efficiency of the draws.

        Returns
        -------
        log_weights : array
            Smoothed log weights, normalized to ``logsumexp(log_weights) == 0``.
        khat : float
            Pareto shape estimate. NaN when the tail is too short to be fitted.
        """
        ary = np.asarray(ary, dtype=float)
        shape = ary.shape
        log_ratios = -ary.ravel()
        n_draws = log_ratios.size

        if np.isnan(log_ratios).any():
            _log.warning("Log likelihood contains NaN-value, returning NaN weights.")
            return np.full(shape, np.nan), np.nan

        if abs(np.max(log_ratios) - np.min(log_ratios)) < np.finfo(float).tiny:
            return np.full(shape, -np.log(n_draws)), 0.0

        n_draws_tail = self._get_ps_tails(n_draws, r_eff)
        try:
            log_weights, khat = self._ps_tail(
                log_ratios, n_draws, n_draws_tail, smooth_draws=True, log_weights=True
            )
        except DegenerateTail as err:
            _log.debug("Skipping Pareto smoothing: %s", err)
            log_weights, khat = log_ratios - np.max(log_ratios), np.nan

        log_weights -= logsumexp(log_weights)
        return log_weights.reshape(shape), khat

    def _loo(self, ary, r_eff=1, log_weights=None, pareto_k=None):
        """Pointwise PSIS-LOO-CV for a single observation.

        Returns
        -------
        elpd_i : float
        pareto_k : float
        p_loo_i : float
        """
        ary = np.asarray(ary, dtype=float).ravel()
        n_draws = ary.size
        if log_weights is None:
            log_weights, pareto_k = self._psislw(ary, r_eff)
        else:
            log_weights = np.asarray(log_weights, dtype=float).ravel()
        elpd_i = logsumexp(log_weights + ary)
        lppd_i = logsumexp(ary, b_inv=n_draws)
        return elpd_i, pareto_k, lppd_i - elpd_i
