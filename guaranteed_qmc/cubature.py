"""
Adaptive Guaranteed Cubature
============================

One doubling controller serves both cubature rules. A rule supplies three
capabilities: blocks of points, the butterfly pass of its harmonic basis
and whether the integrand must be periodized first.

    LatticeRule   shifted extensible rank-1 lattice, Fourier basis,
                  periodizing transform applied
    SobolRule     scrambled Sobol' sequence, Walsh basis, no periodizing

Each call runs the state machine

    INIT -> ITERATING -> DONE | OVERBUDGET

INIT samples 2^mmin points. Every ITERATING step samples the next
2^{m-1} points so the total doubles to 2^m, extends the coefficient
vector and the rank map in place of recomputing them, and certifies the
error bound. The call ends in DONE as soon as the bound meets the
tolerance, or in OVERBUDGET when 2^mmax points did not suffice; the
estimate is returned in both cases, with the flags telling whether it is
guaranteed.

Examples
--------
>>> import numpy as np
>>> result = cub_lattice(lambda x: np.prod(x, axis=1), [[0, 0], [1, 1]],
...                      abstol=1e-5, reltol=0.1, seed=1)
>>> abs(result.estimate - 0.25) < 0.025
True
"""

import time
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from .config import ConfigurationWarning, IntegrationSpec
from .cone import ConeCertifier
from .lattice import ExtensibleKorobovLattice
from .rank_map import CoefficientRankMap
from .sobol import ScrambledSobolSequence
from .spectral import extend_transform, fast_transform, fourier_pass, walsh_pass
from .transforms import wrap_integrand

Integrand = Callable[[np.ndarray], np.ndarray]


class IntegrandError(ValueError):
    """The integrand returned the wrong number of values or non-finite values."""


class CubatureState(Enum):
    INIT = "init"
    ITERATING = "iterating"
    DONE = "done"
    OVERBUDGET = "overbudget"


# ---------------------------------------------------------------------------
# Cubature rules
# ---------------------------------------------------------------------------


class CubatureRule(ABC):
    """Point source and harmonic basis of a cubature rule."""

    name: str = ""
    needs_periodizing: bool = False

    @abstractmethod
    def generate_points(self, start_index: int, count: int) -> np.ndarray:
        """Points start_index, ..., start_index + count - 1 in [0, 1)^d."""
        ...

    @abstractmethod
    def transform_pass(self, values: np.ndarray, level: int) -> np.ndarray:
        """One butterfly pass of the rule's basis."""
        ...


class LatticeRule(CubatureRule):
    """
    Shifted extensible rank-1 lattice with the Fourier basis.

    Parameters
    ----------
    d : int
        Dimension.
    shift : np.ndarray
        Shift of shape (d,) in [0, 1).
    generator : int, optional
        Korobov generator of the lattice.
    verbose : bool, optional
        If True, the lattice prints its generating vector.
    """

    name = "lattice"
    needs_periodizing = True

    def __init__(
        self,
        d: int,
        shift: np.ndarray,
        generator: Optional[int] = None,
        verbose: bool = False
    ):
        kwargs = {} if generator is None else {"generator": generator}
        self.lattice = ExtensibleKorobovLattice(d, verbose=verbose, **kwargs)
        self.shift = np.asarray(shift, dtype=np.float64)

    def generate_points(self, start_index: int, count: int) -> np.ndarray:
        return self.lattice.generate(start_index, count, self.shift)

    def transform_pass(self, values: np.ndarray, level: int) -> np.ndarray:
        return fourier_pass(values, level)


class SobolRule(CubatureRule):
    """
    Scrambled Sobol' sequence with the Walsh basis.

    Parameters
    ----------
    d : int
        Dimension.
    rng : np.random.Generator, optional
        Source of the scramble.
    """

    name = "sobol"
    needs_periodizing = False

    def __init__(self, d: int, rng: Optional[np.random.Generator] = None):
        self.sequence = ScrambledSobolSequence(d, rng=rng)

    def generate_points(self, start_index: int, count: int) -> np.ndarray:
        return self.sequence.generate(start_index, count)

    def transform_pass(self, values: np.ndarray, level: int) -> np.ndarray:
        return walsh_pass(values, level)


def make_rule(spec: IntegrationSpec, rng: np.random.Generator, verbose: bool = False) -> CubatureRule:
    """Build the rule named by ``spec``, drawing its shift or scramble from rng."""
    if spec.rule == "lattice":
        shift = spec.shift if spec.shift is not None else rng.random(spec.dimension)
        return LatticeRule(spec.dimension, shift, spec.generator, verbose=verbose)
    elif spec.rule == "sobol":
        return SobolRule(spec.dimension, rng)
    else:
        raise ValueError(f"Unknown rule: {spec.rule}")


# ---------------------------------------------------------------------------
# State and records
# ---------------------------------------------------------------------------


class SampleState:
    """
    Values, coefficients and rank map of one call, grown by doubling.

    Parameters
    ----------
    values : np.ndarray
        First 2^mmin function values in point order.
    transform_pass : callable
        Butterfly pass of the rule's basis.
    """

    def __init__(self, values: np.ndarray, transform_pass: Callable[[np.ndarray, int], np.ndarray]):
        self.transform_pass = transform_pass
        self.values = values
        self.coefficients = fast_transform(values, transform_pass)
        self.rank_map = CoefficientRankMap.build(self.coefficients)

    @property
    def n(self) -> int:
        return len(self.values)

    def double(self, new_values: np.ndarray, lag: int) -> None:
        """Append the next n values and extend the transform and rank map."""
        self.coefficients = extend_transform(self.coefficients, new_values, self.transform_pass)
        self.values = np.concatenate([self.values, new_values])
        self.rank_map.extend(self.coefficients, lag)

    def mean(self) -> float:
        return float(np.mean(self.values))


@dataclass(frozen=True)
class IterationRecord:
    """Summary of one doubling step."""

    m: int
    sample_count: int
    tail_sum: float
    finer_tail_sums: Tuple[float, ...]
    estimate: float
    error_bound: float
    cone_ok: bool


@dataclass
class CubatureResult:
    """
    Outcome of one integration call.

    Attributes
    ----------
    estimate : float
        Approximation of the integral.
    sample_count : int
        Number of points used, 2^m.
    error_bound : float
        Error bound at the final step; guaranteed only if no flag is set.
    elapsed_time : float
        Wall-clock seconds spent in the call.
    overbudget : bool
        The budget 2^mmax was reached without meeting the tolerance.
    cone_violated : bool
        A necessary cone condition failed at some step.
    state : CubatureState
        DONE or OVERBUDGET.
    history : list of IterationRecord
        One record per step, starting at m = mmin.
    diagnostics : tuple of str
        Configuration warnings raised while building ``spec``.
    spec : IntegrationSpec
        The parameters used.
    """

    estimate: float
    sample_count: int
    error_bound: float
    elapsed_time: float
    overbudget: bool
    cone_violated: bool
    state: CubatureState
    history: List[IterationRecord] = field(default_factory=list)
    diagnostics: Tuple[str, ...] = ()
    spec: Optional[IntegrationSpec] = None

    @property
    def flags(self) -> Dict[str, bool]:
        return {"overbudget": self.overbudget, "cone_violated": self.cone_violated}

    @property
    def guaranteed(self) -> bool:
        return not (self.overbudget or self.cone_violated)

    @property
    def exitflag(self) -> str:
        """Raised flags as "1" (overbudget) and "2" (cone violated), "0" if none."""
        raised = [str(i + 1) for i, flag in enumerate((self.overbudget, self.cone_violated)) if flag]
        return " ".join(raised) if raised else "0"

    def info(self) -> dict:
        """Return a dictionary with the result."""
        return {
            "estimate": self.estimate,
            "sample_count": self.sample_count,
            "error_bound": self.error_bound,
            "elapsed_time": self.elapsed_time,
            "exitflag": self.exitflag,
            "state": self.state.value,
            "iterations": len(self.history),
            "diagnostics": list(self.diagnostics),
        }

    def __repr__(self) -> str:
        return (f"CubatureResult(estimate={self.estimate:.10g}, n={self.sample_count}, "
                f"error_bound={self.error_bound:.3e}, exitflag='{self.exitflag}')")


# ---------------------------------------------------------------------------
# Doubling controller
# ---------------------------------------------------------------------------


def default_integrand(x: np.ndarray) -> np.ndarray:
    """f(x) = sum_i x_i^2, the problem used when the caller's is unusable."""
    return np.sum(x**2, axis=1)


class AdaptiveCubature:
    """
    Doubling controller for one integration call.

    Parameters
    ----------
    spec : IntegrationSpec
        Validated parameters.
    rule : CubatureRule, optional
        Overrides the rule named by ``spec`` (its shift or scramble is
        then the caller's).
    verbose : bool, optional
        If True, print one line per doubling step (default: False).

    Attributes
    ----------
    state : CubatureState
        Current state of the controller.
    history : list of IterationRecord
        Records of the steps taken so far.
    """

    def __init__(
        self,
        spec: IntegrationSpec,
        rule: Optional[CubatureRule] = None,
        verbose: bool = False
    ):
        self.spec = spec
        self.verbose = verbose
        self.rng = np.random.default_rng(spec.seed)
        self.rule = rule if rule is not None else make_rule(spec, self.rng, verbose)
        self.certifier = ConeCertifier(spec.fudge, spec.lag)
        self.state = CubatureState.INIT
        self.history: List[IterationRecord] = []
        self.cone_violated = False

    def _evaluate(self, g: Integrand, start_index: int, count: int) -> np.ndarray:
        points = self.rule.generate_points(start_index, count)
        try:
            values = np.asarray(g(points), dtype=np.float64)
        except ValueError as exc:
            raise IntegrandError(str(exc)) from exc
        if values.size != count:
            raise IntegrandError(f"Integrand returned {values.size} values for {count} points")
        values = values.reshape(count)
        if not np.all(np.isfinite(values)):
            bad = int(np.count_nonzero(~np.isfinite(values)))
            raise IntegrandError(
                f"Integrand returned {bad} non-finite values at points "
                f"{start_index}..{start_index + count - 1}"
            )
        return values

    def _certify(self, sample: SampleState, m: int) -> Tuple[IterationRecord, bool, float]:
        spec = self.spec
        tail_sum, finer = self.certifier.tail_sums(sample.coefficients, sample.rank_map, m)

        # The block summed now was summed at step m - i as finer sum number i
        earlier = []
        for i in range(1, min(m - spec.mmin, spec.lag) + 1):
            earlier.append(self.history[m - i - spec.mmin].finer_tail_sums[i - 1])
        cone_ok = self.certifier.necessary_conditions_hold(tail_sum, earlier)
        if not cone_ok:
            self.cone_violated = True

        bound = self.certifier.error_bound(m, tail_sum)
        q = sample.mean()
        delta_plus, delta_minus = self.certifier.tolerance_corrections(
            q, bound, spec.abstol, spec.reltol, spec.theta, spec.toltype
        )
        done = bound <= delta_plus
        estimate = q + delta_minus if done else q

        record = IterationRecord(
            m=m,
            sample_count=sample.n,
            tail_sum=tail_sum,
            finer_tail_sums=tuple(finer),
            estimate=estimate,
            error_bound=bound,
            cone_ok=cone_ok,
        )
        self.history.append(record)

        if self.verbose:
            print(f"  m = {m}, n = {sample.n}, estimate = {estimate:.10g}, "
                  f"bound = {bound:.3e}, tolerance = {delta_plus:.3e}"
                  + ("" if cone_ok else "  [cone condition failed]"))
        return record, done, estimate

    def run(self, integrand: Integrand) -> CubatureResult:
        """
        Integrate until the error bound meets the tolerance or the budget ends.

        Parameters
        ----------
        integrand : callable
            Maps an (n, d) array of points to n values.

        Returns
        -------
        CubatureResult

        Raises
        ------
        IntegrandError
            If the integrand output has the wrong size or is not finite.
        """
        if self.state is not CubatureState.INIT:
            raise RuntimeError("An AdaptiveCubature instance integrates only once")
        start_time = time.perf_counter()
        spec = self.spec

        transform = spec.transform if self.rule.needs_periodizing else "id"
        g = wrap_integrand(integrand, spec.measure, spec.hyperbox, transform)

        if self.verbose:
            print(f"Integrating with the {self.rule.name} rule, d = {spec.dimension}, "
                  f"n = 2^{spec.mmin} ... 2^{spec.mmax}")

        m = spec.mmin
        sample = SampleState(self._evaluate(g, 0, 2 ** m), self.rule.transform_pass)
        self.state = CubatureState.ITERATING

        while True:
            record, done, estimate = self._certify(sample, m)
            if done:
                self.state = CubatureState.DONE
                break
            if m == spec.mmax:
                self.state = CubatureState.OVERBUDGET
                break
            m += 1
            n_next = 2 ** (m - 1)
            sample.double(self._evaluate(g, n_next, n_next), spec.lag)

        if self.verbose:
            print(f"Finished in state {self.state.value} with n = {sample.n}")

        return CubatureResult(
            estimate=estimate,
            sample_count=sample.n,
            error_bound=record.error_bound,
            elapsed_time=time.perf_counter() - start_time,
            overbudget=self.state is CubatureState.OVERBUDGET,
            cone_violated=self.cone_violated,
            state=self.state,
            history=list(self.history),
            diagnostics=spec.diagnostics,
            spec=spec,
        )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _resolve_integrand(integrand: Any, spec: IntegrationSpec) -> Tuple[Integrand, Tuple[str, ...]]:
    if spec.fallback_problem:
        return default_integrand, ()
    if hasattr(integrand, "evaluate") and callable(integrand.evaluate):
        return integrand.evaluate, ()
    if callable(integrand):
        return integrand, ()
    message = "The given integrand was not a function. Using the default f(x) = x^2"
    warnings.warn(message, ConfigurationWarning, stacklevel=3)
    return default_integrand, (message,)


def integrate(integrand: Any, spec: IntegrationSpec, verbose: bool = False) -> CubatureResult:
    """
    Estimate the integral of integrand to the tolerance of spec.

    Parameters
    ----------
    integrand : callable or object with an ``evaluate`` method
        Maps an (n, d) array of points to n values.
    spec : IntegrationSpec
        Parameters, see ``IntegrationSpec.create``.
    verbose : bool, optional
        If True, print progress (default: False).

    Returns
    -------
    CubatureResult
    """
    f, messages = _resolve_integrand(integrand, spec)
    result = AdaptiveCubature(spec, verbose=verbose).run(f)
    if messages:
        result.diagnostics = result.diagnostics + messages
    return result


def cub_lattice(
    f: Any,
    hyperbox: Any,
    verbose: bool = False,
    **params: Any
) -> CubatureResult:
    """
    Guaranteed cubature with a shifted rank-1 lattice.

    Parameters
    ----------
    f : callable
        Integrand, maps an (n, d) array to n values.
    hyperbox : array_like
        Limits of shape (2, d), d <= 250.
    verbose : bool, optional
        If True, print progress.
    **params
        Any other ``IntegrationSpec.create`` argument (measure, abstol,
        reltol, toltype, theta, mmin, mmax, fudge, transform, shift, seed,
        lag, generator).

    Returns
    -------
    CubatureResult

    Examples
    --------
    >>> result = cub_lattice(lambda x: x[:, 0]**2, [[0], [1]], abstol=1e-5, reltol=0, seed=3)
    >>> abs(result.estimate - 1 / 3) < 1e-5
    True
    """
    spec = IntegrationSpec.create(hyperbox=hyperbox, rule="lattice", **params)
    return integrate(f, spec, verbose=verbose)


def cub_sobol(
    f: Any,
    d: Optional[int] = None,
    hyperbox: Any = None,
    verbose: bool = False,
    **params: Any
) -> CubatureResult:
    """
    Guaranteed cubature with a scrambled Sobol' sequence.

    Parameters
    ----------
    f : callable
        Integrand, maps an (n, d) array to n values.
    d : int, optional
        Dimension, d <= 1111; the domain is [0, 1]^d (uniform) or R^d
        (normal). Ignored when a hyperbox is given.
    hyperbox : array_like, optional
        Limits of shape (2, d).
    verbose : bool, optional
        If True, print progress.
    **params
        Any other ``IntegrationSpec.create`` argument except transform,
        which the Sobol' rule does not use.

    Returns
    -------
    CubatureResult
    """
    spec = IntegrationSpec.create(hyperbox=hyperbox, dimension=d, rule="sobol", **params)
    return integrate(f, spec, verbose=verbose)
