"""
All discretization-side services of the adaptivity loop for 1D H1 spaces.

HpBackend1D implements DiscretizationProvider, Projector, ErrorNormProvider
and CandidateEvaluator, so one instance can be passed for all of them.
"""

import logging

from ..exceptions import ConfigurationError, DataIntegrityError
from ..hp_types import (
    DerefinementPolicy,
    ElementID,
    ErrorNorm,
    ExactSolutionCallable,
    Field,
    FloatArray,
    RefinementCandidate,
    RefinementType,
)
from ..input_validation import validate_polynomial_degree, validate_positive_integer
from ..utils.constants import DEFAULT_REFERENCE_DEGREE_INCREASE
from . import norms
from .projection import local_projection_error, project_h1
from .solution import Solution1D
from .space import H1Space1D


__all__ = ["HpBackend1D"]

logger = logging.getLogger(__name__)


class HpBackend1D:
    """
    Args:
        base: Discretization restored by derefinement policy 1 (FULL_RESET)
        reference_degree_increase: Degree added on top of the global split
            when building the reference space (default: 1)
        projection_norm: Norm of the global projection onto the working space
            (default: H1)
    """

    def __init__(
        self,
        base: H1Space1D | None = None,
        reference_degree_increase: int = DEFAULT_REFERENCE_DEGREE_INCREASE,
        projection_norm: ErrorNorm = ErrorNorm.H1,
    ) -> None:
        validate_positive_integer(reference_degree_increase, "reference_degree_increase", 0)
        self.base = base.copy() if base is not None else None
        self.reference_degree_increase = reference_degree_increase
        self.projection_norm = projection_norm

    # ---- DiscretizationProvider ----

    def create_reference(self, discretization: H1Space1D) -> H1Space1D:
        reference = discretization.copy()
        reference.refine_all_elements(self.reference_degree_increase)
        reference.assign_dofs()
        return reference

    def get_num_dofs(self, discretization: H1Space1D) -> int:
        return discretization.get_num_dofs()

    def element_ids(self, discretization: H1Space1D) -> list[ElementID]:
        return discretization.mesh.active_element_ids()

    def element_degree(self, discretization: H1Space1D, element_id: ElementID) -> int:
        return discretization.element_degree(element_id)

    def can_split(self, discretization: H1Space1D, element_id: ElementID) -> bool:
        return discretization.mesh.can_refine(element_id)

    def son_count(self, discretization: H1Space1D, element_id: ElementID) -> int:
        return 2

    def apply_refinement(
        self, discretization: H1Space1D, element_id: ElementID, candidate: RefinementCandidate
    ) -> None:
        if candidate.is_split:
            discretization.refine_element(element_id, candidate.son_degrees)
        elif candidate.refinement is RefinementType.P_INCREASE:
            discretization.set_element_degree(element_id, candidate.son_degrees[0])
        elif candidate.refinement is not RefinementType.NONE:
            raise DataIntegrityError(f"Unsupported refinement {candidate.refinement!r}")

    def assign_dofs(self, discretization: H1Space1D) -> None:
        discretization.assign_dofs()

    def derefine(
        self, discretization: H1Space1D, policy: DerefinementPolicy, base_degree: int
    ) -> None:
        validate_polynomial_degree(base_degree, "base_degree")
        policy = DerefinementPolicy(policy)

        if policy is DerefinementPolicy.FULL_RESET:
            if self.base is None:
                raise ConfigurationError(
                    "Derefinement policy 1 needs the base discretization",
                    "pass base= to HpBackend1D",
                )
            discretization.reset_to(self.base)
            discretization.set_uniform_degree(base_degree)
        elif policy is DerefinementPolicy.UNREFINE_RESET_DEGREE:
            discretization.unrefine_all_elements()
            discretization.set_uniform_degree(base_degree)
        else:
            discretization.unrefine_all_elements()
            discretization.adjust_element_degree(-1, min_degree=base_degree)

    def create_field(self, discretization: H1Space1D, coefficients: FloatArray) -> Solution1D:
        return Solution1D(discretization, coefficients)

    # ---- Projector ----

    def project(self, reference_field: Field, target: H1Space1D) -> Solution1D:
        return project_h1(reference_field, target, self.projection_norm)

    # ---- ErrorNormProvider ----

    def element_error_contributions(
        self,
        coarse_field: Field,
        reference_field: Field,
        discretization: H1Space1D,
        norm: ErrorNorm,
    ) -> tuple[FloatArray, FloatArray]:
        return norms.element_error_contributions(coarse_field, reference_field, discretization, norm)

    def element_exact_error_contributions(
        self,
        coarse_field: Field,
        exact_solution: ExactSolutionCallable,
        discretization: H1Space1D,
        norm: ErrorNorm,
    ) -> tuple[FloatArray, FloatArray]:
        return norms.element_exact_error_contributions(
            coarse_field, exact_solution, discretization, norm
        )

    # ---- CandidateEvaluator ----

    def candidate_projection_error(
        self,
        reference_field: Field,
        discretization: H1Space1D,
        element_id: ElementID,
        candidate: RefinementCandidate,
        norm: ErrorNorm,
    ) -> float:
        element = discretization.mesh.element(element_id)
        if candidate.is_split:
            mid = element.midpoint
            left_degree, right_degree = candidate.son_degrees
            intervals = [
                (element.x_left, mid, left_degree),
                (mid, element.x_right, right_degree),
            ]
        else:
            intervals = [(element.x_left, element.x_right, candidate.son_degrees[0])]
        return local_projection_error(reference_field, intervals, norm)

    def candidate_dof_count(self, candidate: RefinementCandidate) -> int:
        # one vertex more than sons, degree - 1 bubbles per son
        return sum(candidate.son_degrees) + 1
