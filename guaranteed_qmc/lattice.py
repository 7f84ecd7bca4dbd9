"""
Extensible Korobov Rank-1 Lattice Point Source
==============================================

This module implements an extensible (embedded) rank-1 lattice of Korobov
type, used as the point source of the lattice cubature rule.

The generating vector for generator a is:
    z = (1, a, a^2, ..., a^{d-1}) mod 2^M

and the k-th point of the sequence is:
    x_k = { phi_2(k) * z + Delta }

where phi_2 is the base-2 radical inverse (van der Corput sequence), Delta
is a random shift in [0, 1)^d and {x} denotes the fractional part.

Because phi_2 maps {0, ..., 2^m - 1} onto {j / 2^m : j = 0, ..., 2^m - 1},
the first 2^m points are exactly the shifted rank-1 lattice
    P_{2^m} = { {j * z / 2^m + Delta} : j = 0, 1, ..., 2^m - 1 },
so doubling the sample size keeps every earlier point. Points are produced
with exact integer arithmetic before the shift is added.

References
----------
[1] Korobov, N.M. (1959). The approximate computation of multiple integrals.
[2] Hickernell, F.J., Hong, H.S., L'Ecuyer, P. and Lemieux, C. (2000).
    Extensible lattice sequences for quasi-Monte Carlo quadrature.
"""

import numpy as np
from typing import Optional, Union

from .utils import radical_inverse_base2

# Largest dimension and base-2 exponent the lattice rule accepts
MAX_DIMENSION = 250
MAX_EXPONENT = 26

DEFAULT_GENERATOR = 17797


class ExtensibleKorobovLattice:
    """
    Extensible Korobov lattice in radical-inverse order.

    Parameters
    ----------
    d : int
        Dimension of the lattice.
    generator : int, optional
        Odd Korobov generator a (default: 17797).
    max_exponent : int, optional
        The sequence is extensible up to 2^max_exponent points
        (default: 26).
    verbose : bool, optional
        If True, print construction information (default: False).

    Attributes
    ----------
    d : int
        Dimension.
    generator : int
        Korobov generator a.
    N : int
        Maximum number of points, 2^max_exponent.
    generating_vector : np.ndarray
        The generating vector (1, a, a^2, ..., a^{d-1}) mod N.

    Examples
    --------
    >>> lattice = ExtensibleKorobovLattice(d=3)
    >>> first = lattice.generate(0, 8)
    >>> second = lattice.generate(8, 8)
    >>> both = lattice.generate(0, 16)
    >>> bool(np.allclose(np.vstack([first, second]), both))
    True
    """

    def __init__(
        self,
        d: int,
        generator: int = DEFAULT_GENERATOR,
        max_exponent: int = MAX_EXPONENT,
        verbose: bool = False
    ):
        if d < 1:
            raise ValueError(f"Dimension must be positive, got d={d}")
        if generator < 1 or generator % 2 == 0:
            raise ValueError(
                f"Invalid generator {generator}. "
                f"An extensible base-2 lattice needs an odd positive generator"
            )
        if not 1 <= max_exponent <= 31:
            raise ValueError(f"max_exponent must be in [1, 31], got {max_exponent}")

        self.d = d
        self.generator = generator
        self.max_exponent = max_exponent
        self.N = 2 ** max_exponent
        self.verbose = verbose

        self.generating_vector = self._compute_generating_vector(generator)

        if self.verbose:
            print(f"Korobov generator a = {generator}, N = 2^{max_exponent}")
            print(f"  z[:5] = {self.generating_vector[:5].tolist()}")

    def _compute_generating_vector(self, a: int) -> np.ndarray:
        """
        Compute the generating vector (1, a, a^2, ..., a^{d-1}) mod N.

        Every component is odd, hence coprime to N = 2^M, so each
        coordinate of every embedded lattice is a full 1-d grid.

        Parameters
        ----------
        a : int
            The generator.

        Returns
        -------
        np.ndarray
            Generating vector of shape (d,).
        """
        z = np.zeros(self.d, dtype=np.int64)
        power = 1
        for j in range(self.d):
            z[j] = power % self.N
            power = (power * a) % self.N
        return z

    def generate(
        self,
        start_index: int,
        count: int,
        shift: Optional[Union[float, np.ndarray]] = None
    ) -> np.ndarray:
        """
        Generate points start_index, ..., start_index + count - 1.

        Parameters
        ----------
        start_index : int
            Index of the first point, starting at 0.
        count : int
            Number of points.
        shift : float or np.ndarray, optional
            Shift added modulo 1, a scalar or a vector of shape (d,).

        Returns
        -------
        np.ndarray
            Point set of shape (count, d) in [0, 1)^d.
        """
        if start_index < 0 or count < 0 or start_index + count > self.N:
            raise ValueError(
                f"Points {start_index}..{start_index + count - 1} are outside "
                f"the extensible range 0..{self.N - 1}"
            )

        k = np.arange(start_index, start_index + count, dtype=np.int64)
        numerators = radical_inverse_base2(k, self.max_exponent)

        # (phi_2(k) * N) * z mod N is exact in int64 for max_exponent <= 31
        products = (numerators[:, np.newaxis] * self.generating_vector[np.newaxis, :]) % self.N
        points = products / self.N

        if shift is not None:
            points = (points + np.asarray(shift, dtype=np.float64)) % 1.0
        return points

    def info(self) -> dict:
        """Return a dictionary with lattice information."""
        return {
            "type": "ExtensibleKorobov",
            "dimension": self.d,
            "generator": self.generator,
            "max_points": self.N,
            "generating_vector": self.generating_vector.tolist(),
        }

    def __repr__(self) -> str:
        return (f"ExtensibleKorobovLattice(d={self.d}, generator={self.generator}, "
                f"N=2^{self.max_exponent})")
