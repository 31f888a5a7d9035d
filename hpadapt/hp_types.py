# hpadapt/hp_types.py
"""
Core type definitions for the hpadapt adaptive finite-element loop.

The adaptivity core never touches meshes, shape functions or linear algebra
directly. Everything it needs from a discretization library is described by
the protocols below; ``hpadapt.fem`` provides one implementation.
"""

from __future__ import annotations

import enum
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, TypeAlias

import numpy as np
from numpy.typing import NDArray


# --- NUMERICAL TYPES ---
FloatArray: TypeAlias = NDArray[np.float64]
NumericArrayLike: TypeAlias = NDArray[np.floating[Any]] | Sequence[float] | list[float]

ElementID: TypeAlias = int
"""Identifier of one element of a discretization."""

Discretization: TypeAlias = Any
"""Opaque mesh + space object owned by a DiscretizationProvider."""

Field: TypeAlias = Any
"""Opaque solution field produced by a DiscretizationProvider or Projector."""

ExactSolutionCallable: TypeAlias = Callable[[FloatArray], tuple[FloatArray, FloatArray]]
"""
Exact solution ``x -> (values, derivatives)`` used for verification problems.
"""


# --- SHARED ENUMERATIONS ---
class ErrorNorm(enum.Enum):
    """Norm in which errors are measured."""

    H1 = "h1"
    L2 = "l2"


class DerefinementPolicy(enum.IntEnum):
    """Global derefinement applied between time steps."""

    FULL_RESET = 1
    """Reset to the base mesh and the uniform base degree."""

    UNREFINE_RESET_DEGREE = 2
    """Shave off one refinement layer, reset degrees to the base degree."""

    UNREFINE_DECREMENT_DEGREE = 3
    """Shave off one refinement layer, decrease degrees by one (not below base)."""


class RefinementType(enum.Enum):
    """Kind of change a refinement candidate applies to one element."""

    NONE = "none"
    P_INCREASE = "p"
    H_SPLIT = "h"
    HP_SPLIT = "hp"
    HP_SPLIT_MIXED = "hp_mixed"


@dataclass(frozen=True)
class RefinementCandidate:
    """
    A proposed change to one element.

    ``son_degrees`` holds one degree for an unsplit element, or one degree per
    son for a geometric split.
    """

    refinement: RefinementType
    son_degrees: tuple[int, ...]

    @property
    def is_split(self) -> bool:
        return self.refinement in (
            RefinementType.H_SPLIT,
            RefinementType.HP_SPLIT,
            RefinementType.HP_SPLIT_MIXED,
        )


# --- EXTERNAL INTERFACE PROTOCOLS ---
class DiscretizationProvider(Protocol):
    """Mesh + space services consumed by the adaptivity core."""

    def create_reference(self, discretization: Discretization) -> Discretization:
        """Return a uniformly refined copy; the input is not modified."""
        ...

    def get_num_dofs(self, discretization: Discretization) -> int:
        """Number of degrees of freedom; raises DofMapDesyncError if stale."""
        ...

    def element_ids(self, discretization: Discretization) -> list[ElementID]:
        """Active element ids in a stable order."""
        ...

    def element_degree(self, discretization: Discretization, element_id: ElementID) -> int:
        """Polynomial degree of one active element."""
        ...

    def can_split(self, discretization: Discretization, element_id: ElementID) -> bool:
        """Whether the element may still be split geometrically."""
        ...

    def son_count(self, discretization: Discretization, element_id: ElementID) -> int:
        """Number of sons a geometric split of the element produces."""
        ...

    def apply_refinement(
        self,
        discretization: Discretization,
        element_id: ElementID,
        candidate: RefinementCandidate,
    ) -> None:
        """Commit a candidate to the discretization in place."""
        ...

    def assign_dofs(self, discretization: Discretization) -> None:
        """Re-synchronize the DOF map with the current mesh and degrees."""
        ...

    def derefine(
        self, discretization: Discretization, policy: DerefinementPolicy, base_degree: int
    ) -> None:
        """Coarsen in place according to ``policy``; does not reassign DOFs."""
        ...

    def create_field(self, discretization: Discretization, coefficients: FloatArray) -> Field:
        """Wrap a coefficient vector into a field over ``discretization``."""
        ...


class SolveProvider(Protocol):
    """Nonlinear solve or one time-integration step on a given space."""

    def solve(
        self,
        discretization: Discretization,
        previous: Field | None = None,
        time: float | None = None,
        time_step: float | None = None,
    ) -> FloatArray:
        """Return a coefficient vector; raise SolverConvergenceError on failure."""
        ...


class Projector(Protocol):
    """Best-approximation projection between compatible spaces."""

    def project(self, reference_field: Field, target: Discretization) -> Field: ...


class ErrorNormProvider(Protocol):
    """Element-wise squared errors and squared norms over a working discretization."""

    def element_error_contributions(
        self,
        coarse_field: Field,
        reference_field: Field,
        discretization: Discretization,
        norm: ErrorNorm,
    ) -> tuple[FloatArray, FloatArray]:
        """Return ``(error_squared, reference_norm_squared)`` per element."""
        ...

    def element_exact_error_contributions(
        self,
        coarse_field: Field,
        exact_solution: ExactSolutionCallable,
        discretization: Discretization,
        norm: ErrorNorm,
    ) -> tuple[FloatArray, FloatArray]:
        """Return ``(error_squared, exact_norm_squared)`` per element."""
        ...


class CandidateEvaluator(Protocol):
    """Local projection services used to score refinement candidates."""

    def candidate_projection_error(
        self,
        reference_field: Field,
        discretization: Discretization,
        element_id: ElementID,
        candidate: RefinementCandidate,
        norm: ErrorNorm,
    ) -> float:
        """Error of the reference field projected onto the candidate's local space."""
        ...

    def candidate_dof_count(self, candidate: RefinementCandidate) -> int:
        """Local number of degrees of freedom of the candidate's space."""
        ...
