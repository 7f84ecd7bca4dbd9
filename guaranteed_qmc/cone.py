"""
Cone Certification and Error Estimation
=======================================

For a sample of n = 2^m points with coefficients c and rank map kappa, the
tail sum

    S(m) = sum_{p = 2^{m-r-1}}^{2^{m-r} - 1} |c_{kappa(p)}|,    r = lag,

measures the size of a block of wavenumbers well below the sampling
resolution. If the integrand lies in the cone of functions whose
coefficients decay as the fudge function g permits, the cubature error is
at most

    bound(m) = g(m) * S(m).

Two necessary conditions check the cone assumption: the block summed at
step m was also summed, at coarser sample sizes, by the previous ``lag``
steps (stored as their finer tail sums). For each offset i = 1, ..., r

    S(m) * (1 + g(r)) (1 + 2 g(r - i)) / (1 + g(r - i))   >= S_{m-i}
    S_{m-i} * (1 + g(r - i)) (1 + 2 g(r)) / (1 + g(r))    >= S(m)

must hold, where S_{m-i} is that block's sum computed at step m - i.
Only the previous steps are consulted; the current step's finer sums are
first used by the next step.

References
----------
[1] Jimenez Rugama, L.A. and Hickernell, F.J. (2016). Adaptive
    multidimensional integration based on rank-1 lattices.
[2] Hickernell, F.J. and Jimenez Rugama, L.A. (2016). Reliable adaptive
    cubature using digital sequences.
"""

import numpy as np
from typing import Callable, List, Sequence, Tuple

from .rank_map import CoefficientRankMap
from .utils import tolerance_function


class ConeCertifier:
    """
    Error bound and cone checks for one integration call.

    Parameters
    ----------
    fudge : callable
        Positive inflation factor g(m).
    lag : int, optional
        Distance r between the summed block and the sample resolution
        (default: 4).

    Attributes
    ----------
    lower_factors : np.ndarray
        Factors (1 + g(r)) (1 + 2 g(r - i)) / (1 + g(r - i)), i = 1..r.
    upper_factors : np.ndarray
        Factors (1 + g(r - i)) (1 + 2 g(r)) / (1 + g(r)), i = 1..r.
    """

    def __init__(self, fudge: Callable[[int], float], lag: int = 4):
        if lag < 1:
            raise ValueError(f"lag must be a positive integer, got {lag}")
        self.fudge = fudge
        self.lag = lag

        g_lag = float(fudge(lag))
        g_fine = np.array([float(fudge(lag - i)) for i in range(1, lag + 1)])
        self.lower_factors = (1.0 + g_lag) * (1.0 + 2.0 * g_fine) / (1.0 + g_fine)
        self.upper_factors = (1.0 + g_fine) * (1.0 + 2.0 * g_lag) / (1.0 + g_lag)

    def tail_sums(
        self,
        coefficients: np.ndarray,
        rank_map: CoefficientRankMap,
        m: int
    ) -> Tuple[float, List[float]]:
        """
        Tail sum at step m and the finer sums kept for later checks.

        Returns
        -------
        tail_sum : float
            Sum over rank positions [2^{m-r-1}, 2^{m-r}).
        finer_tail_sums : list of float
            For i = 1, ..., r, the sum over [2^{m-r-1+i}, 2^{m-r+i}).
        """
        start = 2 ** (m - self.lag - 1)
        tail_sum = rank_map.block_sum(coefficients, start)
        finer_tail_sums = []
        for _ in range(self.lag):
            start *= 2
            finer_tail_sums.append(rank_map.block_sum(coefficients, start))
        return tail_sum, finer_tail_sums

    def error_bound(self, m: int, tail_sum: float) -> float:
        """bound(m) = g(m) * S(m)."""
        return float(self.fudge(m)) * tail_sum

    def necessary_conditions_hold(
        self,
        tail_sum: float,
        earlier_sums: Sequence[float]
    ) -> bool:
        """
        Check both necessary inequalities.

        Parameters
        ----------
        tail_sum : float
            S(m) at the current step.
        earlier_sums : sequence of float
            earlier_sums[i - 1] is the same block's sum computed at step
            m - i. At most ``lag`` entries are used; an empty sequence
            trivially passes.
        """
        k = min(len(earlier_sums), self.lag)
        if k == 0:
            return True
        earlier = np.asarray(earlier_sums[:k], dtype=np.float64)
        lower_ok = np.all(tail_sum * self.lower_factors[:k] >= earlier)
        upper_ok = np.all(earlier * self.upper_factors[:k] >= tail_sum)
        return bool(lower_ok and upper_ok)

    @staticmethod
    def tolerance_corrections(
        estimate: float,
        bound: float,
        abstol: float,
        reltol: float,
        theta: float,
        toltype: str
    ) -> Tuple[float, float]:
        """
        Symmetrized tolerance at estimate -/+ bound.

        Returns
        -------
        delta_plus : float
            Mean of the tolerance at |q - bound| and |q + bound|; the
            sufficient condition is bound <= delta_plus.
        delta_minus : float
            Half their difference; added to q on termination.
        """
        tol_low = tolerance_function(abstol, reltol, theta, abs(estimate - bound), toltype)
        tol_high = tolerance_function(abstol, reltol, theta, abs(estimate + bound), toltype)
        delta_plus = 0.5 * float(tol_low + tol_high)
        delta_minus = 0.5 * float(tol_low - tol_high)
        return delta_plus, delta_minus
