"""
Guaranteed Adaptive Quasi-Monte Carlo Cubature
==============================================

This package estimates integrals over a hyperbox, under the uniform or the
standard normal measure, to a prescribed error tolerance. The sample grows
by doubling along a shifted rank-1 lattice or a scrambled Sobol' sequence;
the Fourier or Walsh coefficients of the integrand are updated
incrementally and the error is bounded by a sum of coefficients, valid
for integrands in a cone of functions whose coefficients decay steadily.

Main entry points:
- cub_lattice: rank-1 lattice rule with a periodizing transform
- cub_sobol: scrambled Sobol' rule
- integrate: either rule from an IntegrationSpec

Reference:
    Jimenez Rugama, L.A. and Hickernell, F.J. Adaptive multidimensional
    integration based on rank-1 lattices.
    Hickernell, F.J. and Jimenez Rugama, L.A. Reliable adaptive cubature
    using digital sequences.

License: MIT
"""

from .config import ConfigurationWarning, IntegrationSpec
from .cubature import (
    AdaptiveCubature,
    CubatureResult,
    CubatureState,
    IntegrandError,
    IterationRecord,
    cub_lattice,
    cub_sobol,
    integrate,
)
from .lattice import ExtensibleKorobovLattice
from .sobol import ScrambledSobolSequence
from .utils import tolerance_function

__version__ = "1.0.0"
__all__ = [
    "AdaptiveCubature",
    "ConfigurationWarning",
    "CubatureResult",
    "CubatureState",
    "ExtensibleKorobovLattice",
    "IntegrandError",
    "IntegrationSpec",
    "IterationRecord",
    "ScrambledSobolSequence",
    "cub_lattice",
    "cub_sobol",
    "integrate",
    "tolerance_function",
]
