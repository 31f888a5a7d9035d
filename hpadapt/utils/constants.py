from typing import TypeAlias


_Tolerance: TypeAlias = float
_Percent: TypeAlias = float
_Duration: TypeAlias = float

ZERO_TOLERANCE: _Tolerance = 1e-18
"""Tolerance for considering floating point values as zero."""

MESH_TOLERANCE: _Tolerance = 1e-12
"""Minimum element length accepted by the 1D mesh."""

TIME_TOLERANCE: _Duration = 1e-12
"""Slack used when counting time steps to the final time."""

# Discretization defaults
DEFAULT_INITIAL_DEGREE: int = 2
"""Initial polynomial degree of all mesh elements."""

DEFAULT_INITIAL_REFINEMENTS: int = 1
"""Number of initial uniform mesh refinements."""

DEFAULT_MIN_POLYNOMIAL_DEGREE: int = 1
"""Lowest degree a refinement candidate may assign to an element."""

DEFAULT_MAX_POLYNOMIAL_DEGREE: int = 10
"""Highest degree a refinement candidate may assign to an element."""

DEFAULT_REFERENCE_DEGREE_INCREASE: int = 1
"""Degree increase applied when building the reference space."""

MAX_REFINEMENT_LEVEL: int = 30
"""Deepest geometric refinement level an element may reach."""

# Adaptivity defaults - SINGLE SOURCE OF TRUTH
DEFAULT_THRESHOLD: float = 0.3
"""Elements with error above THRESHOLD * max element error are refined."""

DEFAULT_ERROR_TOLERANCE: _Percent = 1.0
"""Stopping criterion: relative error estimate in percent."""

DEFAULT_DOF_CEILING: int = 100000
"""Adaptivity stops once the working space reaches this many DOFs."""

DEFAULT_CONV_EXP: float = 1.0
"""Exponent applied to the added DOF count when scoring candidates."""

# Transient defaults
DEFAULT_TIME_STEP: _Duration = 0.05
"""Default time step size."""

DEFAULT_FINAL_TIME: _Duration = 2.0
"""Default length of the time interval."""

DEFAULT_DEREFINEMENT_FREQUENCY: int = 1
"""The working discretization is derefined every this many time steps."""

DEFAULT_DEREFINEMENT_POLICY: int = 3
"""Derefinement policy number (see DerefinementPolicy)."""

# Newton defaults
DEFAULT_NEWTON_TOLERANCE: _Tolerance = 1e-5
"""Stopping criterion for Newton on the reference space."""

DEFAULT_NEWTON_MAX_ITERATIONS: int = 20
"""Maximum allowed number of Newton iterations."""

DEFAULT_THETA: float = 1.0
"""Theta-method weight for transient forms; 1.0 is backward Euler."""

# Quadrature
QUADRATURE_EXTRA_POINTS: int = 2
"""Gauss points used per segment in addition to the polynomial degree."""

ANALYTIC_FIELD_QUADRATURE_POINTS: int = 12
"""Gauss points per segment when integrating a field without a known degree."""
