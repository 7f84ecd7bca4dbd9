"""
Utility functions for guaranteed quasi-Monte Carlo cubature.
"""

import numpy as np
from typing import Union

ArrayLike = Union[float, np.ndarray]


def tolerance_function(
    abstol: float,
    reltol: float,
    theta: float,
    mu: ArrayLike,
    toltype: str = "max"
) -> ArrayLike:
    """
    Generalized error tolerance combining absolute and relative tolerances.

    Two combinations are supported:
        "max":  max(abstol, reltol * |mu|)
        "comb": theta * abstol + (1 - theta) * reltol * |mu|

    Parameters
    ----------
    abstol : float
        Absolute error tolerance, abstol >= 0.
    reltol : float
        Relative error tolerance in [0, 1].
    theta : float
        Weight of the absolute tolerance for toltype "comb", in [0, 1].
    mu : float or np.ndarray
        Value (or values) of the integral the tolerance is relative to.
    toltype : str, optional
        Either "max" (default) or "comb".

    Returns
    -------
    float or np.ndarray
        Tolerance evaluated at mu.

    Examples
    --------
    >>> float(tolerance_function(1e-3, 0.1, 1.0, 2.0))
    0.2
    >>> float(tolerance_function(1e-3, 0.1, 0.5, 2.0, toltype="comb"))
    0.1005
    """
    if toltype == "max":
        return np.maximum(abstol, reltol * np.abs(mu))
    elif toltype == "comb":
        return theta * abstol + (1.0 - theta) * reltol * np.abs(mu)
    else:
        raise ValueError(f"Unknown toltype: {toltype}")


def radical_inverse_base2(indices: np.ndarray, bits: int) -> np.ndarray:
    """
    Bit-reverse integer indices over a fixed number of bits.

    The base-2 radical inverse (van der Corput sequence) of k is
    phi_2(k) = reverse_bits(k) / 2^bits. The integer numerator is
    returned so callers can keep lattice arithmetic exact.

    Parameters
    ----------
    indices : np.ndarray
        Non-negative integer indices, each < 2^bits.
    bits : int
        Number of bits to reverse over.

    Returns
    -------
    np.ndarray
        Integer array with the bit-reversed indices.

    Examples
    --------
    >>> radical_inverse_base2(np.arange(4), 2)
    array([0, 2, 1, 3])
    """
    k = np.asarray(indices, dtype=np.int64).copy()
    reversed_k = np.zeros_like(k)
    for _ in range(bits):
        reversed_k = (reversed_k << 1) | (k & 1)
        k >>= 1
    return reversed_k


def default_fudge(m: ArrayLike) -> ArrayLike:
    """
    Default inflation factor g(m) = 5 * 2^{-m} applied to the tail sum.
    """
    return 5.0 * 2.0 ** (-np.asarray(m, dtype=np.float64))


def is_power_of_two(n: int) -> bool:
    """Return True if n is a positive power of two."""
    return n > 0 and (n & (n - 1)) == 0


def log2_int(n: int) -> int:
    """
    Exponent m of n = 2^m.

    Raises
    ------
    ValueError
        If n is not a positive power of two.
    """
    if not is_power_of_two(n):
        raise ValueError(f"Length must be a positive power of two, got {n}")
    return n.bit_length() - 1
