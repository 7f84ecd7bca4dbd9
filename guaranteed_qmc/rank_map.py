"""
Coefficient Rank Map
====================

The cone condition is stated on sums of the largest coefficient magnitudes
within dyadic wavenumber blocks, not on coefficients in index order. The
rank map kappa is a permutation of coefficient indices such that, after
settling, the coefficient at rank position p in [1, 2^l) dominates the one
at position p + 2^l of the same level. It is built without a full sort:
one vectorized compare-and-swap sweep per level.

When the sample doubles, the new indices are appended in order and only
the top ``lag + 1`` levels are settled again; the lower ranks keep the
arrangement found at earlier sample sizes.
"""

import numpy as np

from .utils import log2_int


class CoefficientRankMap:
    """
    Explicit, resizable rank-to-index map.

    Parameters
    ----------
    size : int
        Initial number of coefficients, a power of two. The map starts as
        the identity.

    Attributes
    ----------
    kappa : np.ndarray
        Integer array; kappa[p] is the coefficient index at rank position p.

    Examples
    --------
    >>> rank_map = CoefficientRankMap.build(np.arange(8.0))
    >>> rank_map.kappa.tolist()
    [0, 7, 6, 5, 4, 1, 2, 3]
    """

    def __init__(self, size: int):
        log2_int(size)
        self.kappa = np.arange(size, dtype=np.int64)

    @classmethod
    def build(cls, coefficients: np.ndarray) -> "CoefficientRankMap":
        """Settle every level of a fresh map for the given coefficients."""
        rank_map = cls(len(coefficients))
        rank_map.settle(coefficients, rank_map.exponent - 1, 1)
        return rank_map

    @property
    def size(self) -> int:
        return len(self.kappa)

    @property
    def exponent(self) -> int:
        return log2_int(self.size)

    def settle(self, coefficients: np.ndarray, top_level: int, bottom_level: int = 1) -> None:
        """
        Run the compare-and-swap sweep from top_level down to bottom_level.

        At level l, positions [1, 2^l) are paired with [2^l + 1, 2^{l+1});
        a pair is swapped when the later position holds the larger
        magnitude. Position 0 (the mean) never moves.
        """
        if len(coefficients) != self.size:
            raise ValueError(
                f"Rank map covers {self.size} coefficients, got {len(coefficients)}"
            )
        magnitudes = np.abs(coefficients)
        for level in range(top_level, max(bottom_level, 1) - 1, -1):
            nl = 2 ** level
            earlier = magnitudes[self.kappa[1:nl]]
            later = magnitudes[self.kappa[nl + 1:2 * nl]]
            flip = np.flatnonzero(later > earlier)
            swapped = self.kappa[nl + 1 + flip]
            self.kappa[nl + 1 + flip] = self.kappa[1 + flip]
            self.kappa[1 + flip] = swapped

    def extend(self, coefficients: np.ndarray, lag: int) -> None:
        """
        Grow the map to the doubled coefficient vector.

        Parameters
        ----------
        coefficients : np.ndarray
            The full coefficient vector after doubling, twice the map size.
        lag : int
            Number of levels below the top one to settle again.
        """
        old_size = self.size
        if len(coefficients) != 2 * old_size:
            raise ValueError(
                f"Extending a rank map of size {old_size} needs "
                f"{2 * old_size} coefficients, got {len(coefficients)}"
            )
        self.kappa = np.concatenate(
            [self.kappa, np.arange(old_size, 2 * old_size, dtype=np.int64)]
        )
        m = self.exponent
        self.settle(coefficients, m - 1, m - lag - 1)

    def block_sum(self, coefficients: np.ndarray, start: int) -> float:
        """
        Sum of |coefficients| over rank positions [start, 2 * start).
        """
        return float(np.sum(np.abs(coefficients[self.kappa[start:2 * start]])))

    def __repr__(self) -> str:
        return f"CoefficientRankMap(size={self.size})"
