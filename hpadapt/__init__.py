"""
hpadapt: automatic hp-adaptivity for finite-element solvers

A Python framework that drives the adaptive solution loop of hp finite-element
methods: solve on a globally refined reference space, project onto the working
space, estimate the relative error and refine the elements with the largest
errors using projection-based candidate selection. Transient problems run one
adaptivity loop per time step with periodic derefinement in between.

Key Features:
    - Discretization, solver and projection services plugged in through protocols
    - p, h and hp refinement candidates scored by error decrease per added DOF
    - Three derefinement policies for time-dependent problems
    - Convergence history exportable as a pandas DataFrame
    - Reference one-dimensional hp-FEM backend in ``hpadapt.fem``

Quick Start:
    >>> import numpy as np
    >>> import hpadapt
    >>> from hpadapt.fem import HpBackend1D, NewtonSolveProvider
    >>> from hpadapt.fem import create_h1_discretization, nonlinear_diffusion_form
    >>> working, base = create_h1_discretization(np.linspace(0.0, 1.0, 5), degree=2)
    >>> form = nonlinear_diffusion_form(
    ...     conductivity=lambda u: 1.0 + u**2,
    ...     conductivity_derivative=lambda u: 2.0 * u,
    ...     source=lambda x: np.ones_like(x),
    ... )
    >>> result = hpadapt.solve_adaptive(working, HpBackend1D(), NewtonSolveProvider(form))
    >>> result.outcome
    <AdaptivityOutcome.CONVERGED: 'converged'>

Logging:
    import logging
    logging.getLogger('hpadapt').setLevel(logging.INFO)  # Adaptivity steps
    logging.getLogger('hpadapt').setLevel(logging.DEBUG)  # Selection and Newton details
"""

from __future__ import annotations

import logging

# Import exceptions first - foundational error handling
from hpadapt.exceptions import (
    ConfigurationError,
    DataIntegrityError,
    DofMapDesyncError,
    HpAdaptBaseError,
    SolverConvergenceError,
)

# Parameters, results and enumerations
from hpadapt.adaptive.hp.data_structures import (
    AdaptiveParameters,
    AdaptiveSolution,
    AdaptivityOutcome,
    CandidateList,
    ErrorNormalization,
    SolveStatus,
    TransientParameters,
    TransientSolution,
)
from hpadapt.convergence import ConvergenceHistory
from hpadapt.hp_types import DerefinementPolicy, ErrorNorm

# Solver functions - primary user interface
from hpadapt.solver import solve_adaptive, solve_transient_adaptive


# Version and metadata
__version__ = "0.1.0"
__description__ = "Automatic hp-adaptivity for finite-element solvers"

# Public API - Only these should be used by external code
__all__ = [
    "AdaptiveParameters",
    "AdaptiveSolution",
    "AdaptivityOutcome",
    "CandidateList",
    "ConfigurationError",
    "ConvergenceHistory",
    "DataIntegrityError",
    "DerefinementPolicy",
    "DofMapDesyncError",
    "ErrorNorm",
    "ErrorNormalization",
    # Exception Hierarchy
    "HpAdaptBaseError",
    "SolveStatus",
    "SolverConvergenceError",
    "TransientParameters",
    "TransientSolution",
    # Solver Functions
    "solve_adaptive",
    "solve_transient_adaptive",
]

# Configure logging - no handlers, let user control output
logging.getLogger(__name__).addHandler(logging.NullHandler())
