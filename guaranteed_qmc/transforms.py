"""
Measure and Periodizing Transforms
==================================

The cubature rules integrate over [0, 1)^d. This module rewrites an
integrand given on a hyperbox, under a uniform or standard normal measure,
into one on the unit cube with the same integral:

    uniform:  g(x) = C * f(a + (b - a) x),   C = prod_i (b_i - a_i)
    normal:   g(x) = f(Phi^{-1}(x))

Lattice rules work best on periodic integrands, so one of the following
substitutions psi, applied coordinate-wise with its Jacobian, can be
composed on top:

    "id"     psi(x) = x
    "Baker"  psi(x) = 1 - |2x - 1|                      (tent map)
    "C0"     psi(x) = 3x^2 - 2x^3,          psi' = 6x(1 - x)
    "C1"     psi(x) = x^3 (10 - 15x + 6x^2), psi' = 30x^2 (1 - x)^2
    "C1sin"  psi(x) = x - sin(2 pi x) / (2 pi), psi' = 1 - cos(2 pi x)

All wrappers are pure and evaluate a whole batch of points at once.
"""

import numpy as np
from scipy.stats import norm
from typing import Callable, Dict, Optional, Tuple

Integrand = Callable[[np.ndarray], np.ndarray]

PERIODIZING_TRANSFORMS = ("id", "Baker", "C0", "C1", "C1sin")
MEASURES = ("uniform", "normal")

_OPEN_LOWER = np.finfo(np.float64).tiny
_OPEN_UPPER = np.nextafter(1.0, 0.0)


def as_values(y, n: int) -> np.ndarray:
    """
    Flatten an integrand output to a vector of n real values.

    Accepts outputs of shape (n,) or (n, 1).

    Raises
    ------
    ValueError
        If the output does not hold exactly n values.
    """
    values = np.asarray(y, dtype=np.float64)
    if values.size != n:
        raise ValueError(
            f"Integrand returned {values.size} values for {n} points"
        )
    return values.reshape(n)


def _baker(x: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    return 1.0 - np.abs(2.0 * x - 1.0), None


def _c0(x: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    return 3.0 * x**2 - 2.0 * x**3, 6.0 * x * (1.0 - x)


def _c1(x: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    return x**3 * (10.0 - 15.0 * x + 6.0 * x**2), 30.0 * x**2 * (1.0 - x)**2


def _c1sin(x: np.ndarray) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    two_pi_x = 2.0 * np.pi * x
    return x - np.sin(two_pi_x) / (2.0 * np.pi), 1.0 - np.cos(two_pi_x)


_SUBSTITUTIONS: Dict[str, Callable[[np.ndarray], Tuple[np.ndarray, Optional[np.ndarray]]]] = {
    "Baker": _baker,
    "C0": _c0,
    "C1": _c1,
    "C1sin": _c1sin,
}


def periodize(f: Integrand, transform: str) -> Integrand:
    """
    Compose f with a coordinate-wise periodizing substitution.

    Parameters
    ----------
    f : callable
        Integrand on [0, 1)^d, mapping an (n, d) array to n values.
    transform : str
        One of "id", "Baker", "C0", "C1", "C1sin".

    Returns
    -------
    callable
        g(x) = f(psi(x)) * prod_i psi'(x_i), same integral over [0, 1)^d.
    """
    if transform == "id":
        return f
    if transform not in _SUBSTITUTIONS:
        raise ValueError(
            f"Invalid transform '{transform}'. "
            f"Must be one of {PERIODIZING_TRANSFORMS}"
        )
    substitution = _SUBSTITUTIONS[transform]

    def periodized(x: np.ndarray) -> np.ndarray:
        u, jacobian = substitution(x)
        values = as_values(f(u), x.shape[0])
        if jacobian is None:
            return values
        return values * np.prod(jacobian, axis=1)

    return periodized


def to_unit_cube(f: Integrand, measure: str, hyperbox: np.ndarray) -> Integrand:
    """
    Rewrite an integrand over a hyperbox as one over [0, 1)^d.

    Parameters
    ----------
    f : callable
        Integrand mapping an (n, d) array to n values.
    measure : str
        "uniform" (Lebesgue measure on the hyperbox) or "normal"
        (standard normal measure on R^d).
    hyperbox : np.ndarray
        Array of shape (2, d): lower limits in row 0, upper in row 1.
        Ignored for the normal measure.

    Returns
    -------
    callable
        Integrand on the unit cube with the same integral.
    """
    if measure == "normal":
        def gaussian(x: np.ndarray) -> np.ndarray:
            # Phi^{-1} is infinite on the boundary of the cube
            u = np.clip(x, _OPEN_LOWER, _OPEN_UPPER)
            return as_values(f(norm.ppf(u)), x.shape[0])
        return gaussian

    if measure != "uniform":
        raise ValueError(f"Invalid measure '{measure}'. Must be one of {MEASURES}")

    lower = np.asarray(hyperbox[0], dtype=np.float64)
    width = np.asarray(hyperbox[1], dtype=np.float64) - lower
    volume = float(np.prod(width))

    def rescaled(x: np.ndarray) -> np.ndarray:
        return volume * as_values(f(lower + width * x), x.shape[0])

    return rescaled


def wrap_integrand(
    f: Integrand,
    measure: str,
    hyperbox: np.ndarray,
    transform: str = "id"
) -> Integrand:
    """
    Full wrapping used by the cubature engine: measure first, then the
    periodizing substitution (pass transform="id" to skip it).
    """
    return periodize(to_unit_cube(f, measure, hyperbox), transform)
