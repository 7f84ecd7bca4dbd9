"""
Integration Parameters
======================

``IntegrationSpec`` is the immutable parameter set of one cubature call.
It is built with ``IntegrationSpec.create``, which checks every value and,
instead of failing, replaces an invalid one by its documented default and
emits a ``ConfigurationWarning``. The messages are also kept on the resulting
so they can be reported with the result.

Defaults
--------
rule        "lattice"
measure     "uniform"
abstol      1e-4
reltol      1e-1
toltype     "max"
theta       1
mmin        10
mmax        24
fudge       g(m) = 5 * 2^{-m}
transform   "Baker" (lattice rule only)
lag         4
generator   17797 (lattice rule only)
"""

import numbers
import warnings
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from . import lattice, sobol
from .transforms import MEASURES, PERIODIZING_TRANSFORMS
from .utils import default_fudge

RULES = ("lattice", "sobol")
TOLTYPES = ("max", "comb")

DEFAULT_RULE = "lattice"
DEFAULT_MEASURE = "uniform"
DEFAULT_ABSTOL = 1e-4
DEFAULT_RELTOL = 1e-1
DEFAULT_TOLTYPE = "max"
DEFAULT_THETA = 1.0
DEFAULT_MMIN = 10
DEFAULT_MMAX = 24
DEFAULT_TRANSFORM = "Baker"
DEFAULT_LAG = 4

MAX_DIMENSION = {"lattice": lattice.MAX_DIMENSION, "sobol": sobol.MAX_DIMENSION}
MAX_EXPONENT = {"lattice": lattice.MAX_EXPONENT, "sobol": sobol.MAX_EXPONENT}


class ConfigurationWarning(UserWarning):
    """An integration parameter was invalid and replaced by its default."""


def _is_int(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, numbers.Integral):
        return True
    return isinstance(value, numbers.Real) and float(value).is_integer()


def _in_unit_interval(value: Any) -> bool:
    return isinstance(value, numbers.Real) and 0.0 <= value <= 1.0


def _unit_hyperbox(d: int) -> np.ndarray:
    return np.vstack([np.zeros(d), np.ones(d)])


def _full_space(d: int) -> np.ndarray:
    return np.vstack([np.full(d, -np.inf), np.full(d, np.inf)])


def _frozen(array: np.ndarray) -> np.ndarray:
    array = np.array(array, dtype=np.float64)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class IntegrationSpec:
    """
    Validated parameters of one integration call.

    Use ``IntegrationSpec.create``; the constructor stores values as given.

    Attributes
    ----------
    dimension : int
        Dimension d of the integration domain.
    hyperbox : np.ndarray
        Read-only array of shape (2, d), lower limits in row 0.
    rule : str
        "lattice" (shifted rank-1 lattice, Fourier basis) or "sobol"
        (scrambled Sobol' sequence, Walsh basis).
    measure : str
        "uniform" or "normal".
    abstol, reltol : float
        Absolute and relative error tolerances.
    toltype : str
        "max" or "comb".
    theta : float
        Weight of abstol for toltype "comb".
    mmin, mmax : int
        The sample starts at 2^mmin points and never exceeds 2^mmax.
    fudge : callable
        Inflation factor g(m) of the tail sum.
    transform : str
        Periodizing transform, used by the lattice rule only.
    shift : np.ndarray or None
        Lattice shift of shape (d,); drawn per call when None.
    seed : object
        Seed of the per-call random generator (shift or scramble).
    lag : int
        Distance between the summed coefficient block and the resolution.
    generator : int
        Korobov generator of the lattice rule.
    diagnostics : tuple of str
        Messages of the configuration warnings raised by ``create``.
    fallback_problem : bool
        True when the domain was unusable and the default problem,
        f(x) = x^2 on [0, 1], replaces the caller's.
    """

    dimension: int
    hyperbox: np.ndarray
    rule: str = DEFAULT_RULE
    measure: str = DEFAULT_MEASURE
    abstol: float = DEFAULT_ABSTOL
    reltol: float = DEFAULT_RELTOL
    toltype: str = DEFAULT_TOLTYPE
    theta: float = DEFAULT_THETA
    mmin: int = DEFAULT_MMIN
    mmax: int = DEFAULT_MMAX
    fudge: Callable[[int], float] = default_fudge
    transform: str = DEFAULT_TRANSFORM
    shift: Optional[np.ndarray] = None
    seed: Any = None
    lag: int = DEFAULT_LAG
    generator: int = lattice.DEFAULT_GENERATOR
    diagnostics: Tuple[str, ...] = field(default_factory=tuple)
    fallback_problem: bool = False

    @property
    def needs_periodizing(self) -> bool:
        return self.rule == "lattice"

    @classmethod
    def create(
        cls,
        hyperbox: Optional[Any] = None,
        dimension: Optional[int] = None,
        rule: str = DEFAULT_RULE,
        measure: str = DEFAULT_MEASURE,
        abstol: float = DEFAULT_ABSTOL,
        reltol: float = DEFAULT_RELTOL,
        toltype: str = DEFAULT_TOLTYPE,
        theta: float = DEFAULT_THETA,
        mmin: int = DEFAULT_MMIN,
        mmax: int = DEFAULT_MMAX,
        fudge: Optional[Callable[[int], float]] = None,
        transform: str = DEFAULT_TRANSFORM,
        shift: Optional[Any] = None,
        seed: Any = None,
        lag: int = DEFAULT_LAG,
        generator: int = lattice.DEFAULT_GENERATOR,
    ) -> "IntegrationSpec":
        """
        Validate parameters, substituting defaults for invalid ones.

        Parameters
        ----------
        hyperbox : array_like, optional
            Integration limits of shape (2, d). For the normal measure the
            only valid hyperbox is (-inf, inf)^d.
        dimension : int, optional
            Dimension when no hyperbox is given; the domain is then
            [0, 1]^d (uniform) or R^d (normal).
        rule, measure, abstol, reltol, toltype, theta, mmin, mmax,
        fudge, transform, shift, seed, lag, generator
            See the class attributes.

        Returns
        -------
        IntegrationSpec
            A spec in which every field is valid.

        Warns
        -----
        ConfigurationWarning
            Once per substituted value.
        """
        messages: List[str] = []

        def substitute(message: str) -> None:
            warnings.warn(message, ConfigurationWarning, stacklevel=3)
            messages.append(message)

        if rule not in RULES:
            substitute(f"The rule can only be one of {RULES}. Using default rule {DEFAULT_RULE}")
            rule = DEFAULT_RULE
        max_dimension = MAX_DIMENSION[rule]
        max_exponent = MAX_EXPONENT[rule]

        # Domain
        fallback_problem = False
        if hyperbox is None:
            if dimension is not None and _is_int(dimension) and 1 <= dimension <= max_dimension:
                d = int(dimension)
                box = _full_space(d) if measure == "normal" else _unit_hyperbox(d)
            else:
                substitute(
                    f"The dimension must be a positive integer not greater than "
                    f"{max_dimension}. Using the default problem f(x) = x^2 on [0, 1]"
                )
                d, box, fallback_problem = 1, _unit_hyperbox(1), True
        else:
            try:
                box = np.array(hyperbox, dtype=np.float64)
            except (TypeError, ValueError):
                box = None
            if (box is None or box.ndim != 2 or box.shape[0] != 2
                    or not 1 <= box.shape[1] <= max_dimension or np.any(np.isnan(box))):
                substitute(
                    f"The hyperbox must be a real array of size 2 x d where d can not "
                    f"be greater than {max_dimension}. Using the default problem "
                    f"f(x) = x^2 on [0, 1]"
                )
                d, box, fallback_problem = 1, _unit_hyperbox(1), True
            else:
                d = box.shape[1]

        # Tolerances and measure
        if not isinstance(abstol, numbers.Real) or not np.isfinite(abstol) or abstol < 0:
            substitute(f"Absolute tolerance should be finite and non-negative. Using default abstol {DEFAULT_ABSTOL}")
            abstol = DEFAULT_ABSTOL

        if not _in_unit_interval(reltol):
            substitute(f"Relative tolerance should be chosen in [0, 1]. Using default reltol {DEFAULT_RELTOL}")
            reltol = DEFAULT_RELTOL

        if measure not in MEASURES:
            substitute(f"The measure can only be uniform or normal. Using default measure {DEFAULT_MEASURE}")
            measure = DEFAULT_MEASURE

        if measure == "normal" and np.any(np.isfinite(box)):
            substitute("For the normal measure the hyperbox must be (-inf, inf)^d. Using the full space")
            box = _full_space(d)
        elif measure == "uniform" and not np.all(np.isfinite(box)):
            substitute("For the uniform measure the hyperbox must be finite. Using the unit hyperbox [0, 1]^d")
            box = _unit_hyperbox(d)

        # Budget
        if not _is_int(lag) or not 1 <= lag < max_exponent:
            substitute(f"The lag should be a positive integer below {max_exponent}. Using default lag {DEFAULT_LAG}")
            lag = DEFAULT_LAG
        lag = int(lag)

        if (not _is_int(mmin) or not lag + 1 <= mmin <= max_exponent
                or (_is_int(mmax) and mmin > mmax)):
            substitute(
                f"The minimum starting exponent should be an integer in [{lag + 1}, {max_exponent}] "
                f"and not greater than the maximum. Using default mmin {DEFAULT_MMIN}"
            )
            mmin = max(DEFAULT_MMIN, lag + 1)
        mmin = int(mmin)

        if not _is_int(mmax) or not mmin <= mmax <= max_exponent:
            substitute(
                f"The maximum exponent for the budget should be an integer in "
                f"[mmin, {max_exponent}]. Using default mmax {DEFAULT_MMAX}"
            )
            mmax = max(DEFAULT_MMAX, mmin)
        mmax = int(mmax)

        if fudge is None:
            fudge = default_fudge
        elif not callable(fudge) or not _positive_at_one(fudge):
            substitute("The fudge factor should be a positive function. Using default fudge 5 * 2^-m")
            fudge = default_fudge

        if transform not in PERIODIZING_TRANSFORMS:
            substitute(
                f"The periodizing transform can only be one of {PERIODIZING_TRANSFORMS}. "
                f"Using default transform {DEFAULT_TRANSFORM}"
            )
            transform = DEFAULT_TRANSFORM

        if toltype not in TOLTYPES:
            substitute(f"The error type can only be max or comb. Using default toltype {DEFAULT_TOLTYPE}")
            toltype = DEFAULT_TOLTYPE

        if not _in_unit_interval(theta):
            substitute(f"Theta should be chosen in [0, 1]. Using default theta {DEFAULT_THETA}")
            theta = DEFAULT_THETA

        if toltype == "max":
            vanishes = abstol == 0 and reltol == 0
        else:
            vanishes = (theta == 1 and abstol == 0) or (theta == 0 and reltol == 0) \
                or (abstol == 0 and reltol == 0)
        if vanishes:
            substitute(f"The error tolerance can not be zero. Using default abstol {DEFAULT_ABSTOL}")
            abstol = DEFAULT_ABSTOL

        # Randomization
        if shift is not None:
            try:
                shift_array = np.asarray(shift, dtype=np.float64)
            except (TypeError, ValueError):
                shift_array = np.full(1, np.nan)
            if shift_array.ndim == 0:
                shift_array = np.full(d, float(shift_array))
            if (shift_array.shape != (d,) or np.any(np.isnan(shift_array))
                    or np.any(shift_array < 0) or np.any(shift_array >= 1)):
                substitute("The shift must be a scalar or a length-d vector in [0, 1). Using a random shift")
                shift = None
            else:
                shift = _frozen(shift_array)

        if not _is_int(generator) or generator < 1 or generator % 2 == 0:
            substitute(
                f"The lattice generator must be an odd positive integer. "
                f"Using default generator {lattice.DEFAULT_GENERATOR}"
            )
            generator = lattice.DEFAULT_GENERATOR

        return cls(
            dimension=d,
            hyperbox=_frozen(box),
            rule=rule,
            measure=measure,
            abstol=float(abstol),
            reltol=float(reltol),
            toltype=toltype,
            theta=float(theta),
            mmin=mmin,
            mmax=mmax,
            fudge=fudge,
            transform=transform,
            shift=shift,
            seed=seed,
            lag=lag,
            generator=int(generator),
            diagnostics=tuple(messages),
            fallback_problem=fallback_problem,
        )

    def info(self) -> dict:
        """Return a dictionary with the parameter values."""
        return {
            "rule": self.rule,
            "dimension": self.dimension,
            "hyperbox": self.hyperbox.tolist(),
            "measure": self.measure,
            "abstol": self.abstol,
            "reltol": self.reltol,
            "toltype": self.toltype,
            "theta": self.theta,
            "mmin": self.mmin,
            "mmax": self.mmax,
            "transform": self.transform if self.needs_periodizing else None,
            "lag": self.lag,
        }

    def __repr__(self) -> str:
        return (f"IntegrationSpec(rule='{self.rule}', d={self.dimension}, "
                f"measure='{self.measure}', abstol={self.abstol:g}, reltol={self.reltol:g}, "
                f"mmin={self.mmin}, mmax={self.mmax})")


def _positive_at_one(fudge: Callable[[int], float]) -> bool:
    try:
        return bool(float(fudge(1)) > 0)
    except (TypeError, ValueError, ArithmeticError):
        return False
