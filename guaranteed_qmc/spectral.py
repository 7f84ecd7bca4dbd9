"""
Incremental Fourier and Walsh Transforms
========================================

Function values are kept in point-generation order. A transform of 2^m
values is m butterfly passes; at pass l the vector is split into groups of
2^{l+1}, each group into an "even" first half and an "odd" second half,
and every pair (e_k, o_k), k = 0, ..., 2^l - 1, becomes

    ((e_k + w_k o_k) / 2, (e_k - w_k o_k) / 2)

with w_k = exp(-i pi k / 2^l) for the Fourier basis (lattice points in
radical-inverse order) and w_k = 1 for the Walsh basis (digital nets, in
the order the point source emits them).

Passes below l only mix values inside groups of 2^l, so when the sample
doubles from N to 2N the new half is transformed on its own with passes
0, ..., log2(N) - 1 and a single pass at level log2(N) joins the two
halves. The result equals a from-scratch transform of all 2N values
exactly, at O(N) extra cost for the joining pass.
"""

import numpy as np
from typing import Callable

from .utils import log2_int

TransformPass = Callable[[np.ndarray, int], np.ndarray]


def _butterfly(y: np.ndarray, level: int, twiddle) -> np.ndarray:
    nl = 2 ** level
    groups = y.reshape(-1, 2, nl)
    even = groups[:, 0, :]
    odd = groups[:, 1, :] if twiddle is None else groups[:, 1, :] * twiddle
    out = np.empty_like(groups)
    out[:, 0, :] = (even + odd) / 2
    out[:, 1, :] = (even - odd) / 2
    return out.reshape(-1)


def fourier_pass(y: np.ndarray, level: int) -> np.ndarray:
    """
    One Fourier butterfly pass at the given level.

    Parameters
    ----------
    y : np.ndarray
        Values or partial coefficients; length a multiple of 2^{level+1}.
    level : int
        Pass index l, pairs are 2^l apart.

    Returns
    -------
    np.ndarray
        Complex array of the same length.
    """
    y = np.asarray(y, dtype=np.complex128)
    nl = 2 ** level
    twiddle = np.exp(-1j * np.pi * np.arange(nl) / nl)
    return _butterfly(y, level, twiddle)


def walsh_pass(y: np.ndarray, level: int) -> np.ndarray:
    """One Walsh butterfly pass at the given level (real arithmetic)."""
    return _butterfly(np.asarray(y, dtype=np.float64), level, None)


def fast_transform(values: np.ndarray, transform_pass: TransformPass) -> np.ndarray:
    """
    Transform 2^m values from scratch.

    Parameters
    ----------
    values : np.ndarray
        Function values in point order, length 2^m.
    transform_pass : callable
        ``fourier_pass`` or ``walsh_pass``.

    Returns
    -------
    np.ndarray
        Coefficients, same length. Entry 0 is the sample mean.

    Examples
    --------
    >>> fast_transform(np.array([1.0, 3.0]), walsh_pass)
    array([ 2., -1.])
    """
    m = log2_int(len(values))
    y = np.asarray(values)
    for level in range(m):
        y = transform_pass(y, level)
    return y


def extend_transform(
    coefficients: np.ndarray,
    new_values: np.ndarray,
    transform_pass: TransformPass
) -> np.ndarray:
    """
    Extend a transform of N values by N newly sampled values.

    Parameters
    ----------
    coefficients : np.ndarray
        Transform of the first N values, as returned by ``fast_transform``
        or a previous call.
    new_values : np.ndarray
        The next N function values in point order.
    transform_pass : callable
        The pass used to build ``coefficients``.

    Returns
    -------
    np.ndarray
        Transform of all 2N values. ``coefficients`` is left untouched.
    """
    n = len(coefficients)
    if len(new_values) != n:
        raise ValueError(
            f"Doubling needs {n} new values, got {len(new_values)}"
        )
    m = log2_int(n)
    new_coefficients = fast_transform(new_values, transform_pass)
    combined = np.concatenate([coefficients, new_coefficients])
    return transform_pass(combined, m)
