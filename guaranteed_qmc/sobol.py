"""
Scrambled Sobol' Point Source
=============================

Adapter around ``scipy.stats.qmc.Sobol`` exposing the block interface the
cubature engine needs: points k, ..., k + n - 1 of one fixed scrambled
Sobol' sequence. The scramble (linear matrix scrambling plus digital
shift) is drawn once when the source is built, so repeated requests for
the same block return the same points.

scipy emits the points in Gray-code order, so within each block of 2^m
points the order differs from the natural digital-net order and a raw
Walsh coefficient index is not the natural wavenumber. Every block of 2^m
points is still the same point set, and the rank map orders coefficients
by magnitude within each dyadic block, which absorbs the reindexing.
"""

import numpy as np
from scipy.stats import qmc
from typing import Optional

# Largest dimension and base-2 exponent the Sobol' rule accepts
MAX_DIMENSION = 1111
MAX_EXPONENT = 30


class ScrambledSobolSequence:
    """
    Deterministic access to blocks of a scrambled Sobol' sequence.

    Parameters
    ----------
    d : int
        Dimension.
    scramble : bool, optional
        Apply randomized scrambling (default: True).
    rng : np.random.Generator or int, optional
        Source of the scramble.

    Examples
    --------
    >>> source = ScrambledSobolSequence(d=2, rng=7)
    >>> head = source.generate(0, 4)
    >>> tail = source.generate(4, 4)
    >>> bool(np.allclose(np.vstack([head, tail]), source.generate(0, 8)))
    True
    """

    def __init__(
        self,
        d: int,
        scramble: bool = True,
        rng: Optional[np.random.Generator] = None
    ):
        if not 1 <= d <= MAX_DIMENSION:
            raise ValueError(f"Dimension must be in [1, {MAX_DIMENSION}], got d={d}")
        self.d = d
        self.scramble = scramble
        self._engine = qmc.Sobol(d, scramble=scramble, rng=rng)
        self.N = 2 ** MAX_EXPONENT

    def generate(self, start_index: int, count: int) -> np.ndarray:
        """
        Generate points start_index, ..., start_index + count - 1.

        Parameters
        ----------
        start_index : int
            Index of the first point, starting at 0.
        count : int
            Number of points, a power of two for balanced blocks.

        Returns
        -------
        np.ndarray
            Point set of shape (count, d) in [0, 1)^d.
        """
        if start_index < 0 or count < 0 or start_index + count > self.N:
            raise ValueError(
                f"Points {start_index}..{start_index + count - 1} are outside "
                f"the sequence range 0..{self.N - 1}"
            )
        self._engine.reset()
        if start_index > 0:
            self._engine.fast_forward(start_index)
        return self._engine.random(count)

    def info(self) -> dict:
        """Return a dictionary with sequence information."""
        return {
            "type": "ScrambledSobol",
            "dimension": self.d,
            "scramble": self.scramble,
            "max_points": self.N,
        }

    def __repr__(self) -> str:
        return f"ScrambledSobolSequence(d={self.d}, scramble={self.scramble})"
