import enum
import logging
from dataclasses import dataclass, field

import numpy as np

from hpadapt.hp_types import (
    DerefinementPolicy,
    ElementID,
    ErrorNorm,
    Field,
    FloatArray,
    RefinementCandidate,
)
from hpadapt.utils.constants import (
    DEFAULT_CONV_EXP,
    DEFAULT_DEREFINEMENT_FREQUENCY,
    DEFAULT_DEREFINEMENT_POLICY,
    DEFAULT_DOF_CEILING,
    DEFAULT_ERROR_TOLERANCE,
    DEFAULT_FINAL_TIME,
    DEFAULT_INITIAL_DEGREE,
    DEFAULT_MAX_POLYNOMIAL_DEGREE,
    DEFAULT_MIN_POLYNOMIAL_DEGREE,
    DEFAULT_THRESHOLD,
    DEFAULT_TIME_STEP,
)


__all__ = [
    "AdaptiveParameters",
    "AdaptiveSolution",
    "AdaptiveStepRecord",
    "AdaptivityOutcome",
    "CandidateList",
    "ErrorKind",
    "ErrorNormalization",
    "ErrorRecord",
    "ScoredCandidate",
    "SelectionResult",
    "SolveOutcome",
    "SolveStatus",
    "TransientParameters",
    "TransientSolution",
]

logger = logging.getLogger(__name__)


class CandidateList(enum.Enum):
    """Predefined lists of element refinement candidates."""

    P_ISO = "p_iso"
    P_ANISO = "p_aniso"
    H_ISO = "h_iso"
    H_ANISO = "h_aniso"
    HP_ISO = "hp_iso"
    HP_ANISO_H = "hp_aniso_h"
    HP_ANISO_P = "hp_aniso_p"
    HP_ANISO = "hp_aniso"


class ErrorNormalization(enum.Enum):
    """How per-element errors are scaled for candidate ranking."""

    RELATIVE_TO_GLOBAL_NORM = "global"
    RELATIVE_TO_ELEMENT_NORM = "element"


class ErrorKind(enum.Enum):
    ESTIMATE = "estimate"
    EXACT = "exact"


class AdaptivityOutcome(enum.Enum):
    """Why an adaptivity run stopped."""

    CONVERGED = "converged"
    DOF_CEILING = "dof_ceiling"
    STAGNATED = "stagnated"
    MAX_STEPS = "max_steps"


class SolveStatus(enum.Enum):
    SUCCESS = "success"
    DEGRADED = "degraded"
    FATAL = "fatal"


@dataclass
class AdaptiveParameters:
    """Parameters controlling one adaptivity run (one static solve or one time step)."""

    error_tolerance: float = DEFAULT_ERROR_TOLERANCE
    threshold: float = DEFAULT_THRESHOLD
    dof_ceiling: int = DEFAULT_DOF_CEILING
    candidate_list: CandidateList = CandidateList.HP_ANISO
    error_norm: ErrorNorm = ErrorNorm.H1
    error_normalization: ErrorNormalization = ErrorNormalization.RELATIVE_TO_GLOBAL_NORM
    min_polynomial_degree: int = DEFAULT_MIN_POLYNOMIAL_DEGREE
    max_polynomial_degree: int = DEFAULT_MAX_POLYNOMIAL_DEGREE
    conv_exp: float = DEFAULT_CONV_EXP
    max_adaptivity_steps: int | None = None


@dataclass
class TransientParameters:
    """Parameters of the outer time-stepping loop."""

    time_step: float = DEFAULT_TIME_STEP
    final_time: float = DEFAULT_FINAL_TIME
    derefinement_frequency: int = DEFAULT_DEREFINEMENT_FREQUENCY
    derefinement_policy: DerefinementPolicy = DerefinementPolicy(DEFAULT_DEREFINEMENT_POLICY)
    base_degree: int = DEFAULT_INITIAL_DEGREE
    initial_time: float = 0.0


@dataclass
class SolveOutcome:
    """Result of invoking the solve provider on the reference space."""

    status: SolveStatus
    coefficients: FloatArray
    message: str = ""
    error: Exception | None = None


@dataclass(frozen=True)
class ErrorRecord:
    """Global relative error plus its per-element breakdown."""

    relative_error_percent: float
    element_ids: tuple[ElementID, ...]
    element_errors: FloatArray
    element_error_squared: FloatArray
    element_norm_squared: FloatArray
    norm: ErrorNorm
    kind: ErrorKind
    normalization: ErrorNormalization

    def element_error(self, element_id: ElementID) -> float:
        """Normalized error of one element."""
        return float(self.element_errors[self.element_ids.index(element_id)])

    @property
    def max_element_error(self) -> float:
        return float(np.max(self.element_errors)) if self.element_errors.size > 0 else 0.0


@dataclass(frozen=True)
class ScoredCandidate:
    """Refinement candidate with its projection error, cost and score."""

    candidate: RefinementCandidate
    error: float
    dofs: int
    score: float = 0.0


@dataclass
class SelectionResult:
    """Refinements committed in one adaptivity step."""

    refined_elements: dict[ElementID, ScoredCandidate] = field(default_factory=dict)
    qualifying_elements: list[ElementID] = field(default_factory=list)

    @property
    def no_refinement(self) -> bool:
        return not self.refined_elements


@dataclass
class AdaptiveStepRecord:
    """Diagnostics of one completed adaptivity step."""

    step: int
    num_dofs: int
    num_reference_dofs: int
    error_estimate: float
    error_exact: float
    cpu_time: float
    solve_status: SolveStatus
    num_refined_elements: int = 0
    outcome: AdaptivityOutcome | None = None


@dataclass
class AdaptiveSolution:
    """
    Result of one adaptivity run.

    ``coarse_solution`` and the error records belong to the last estimated
    step. ``num_dofs`` is counted on the working discretization at return;
    after a ``DOF_CEILING`` or ``MAX_STEPS`` decision taken once a refinement
    was committed, that is the refined space, not the one ``coarse_solution``
    lives on.
    """

    outcome: AdaptivityOutcome
    reference_solution: Field
    coarse_solution: Field
    error_estimate: ErrorRecord
    error_exact: ErrorRecord | None
    steps: list[AdaptiveStepRecord]
    num_dofs: int
    message: str = ""

    @property
    def success(self) -> bool:
        return self.outcome is AdaptivityOutcome.CONVERGED

    @property
    def num_steps(self) -> int:
        return len(self.steps)

    @property
    def degraded_steps(self) -> list[int]:
        return [rec.step for rec in self.steps if rec.solve_status is SolveStatus.DEGRADED]


@dataclass
class TransientSolution:
    """Result of the time-stepping driver."""

    time_steps: list[AdaptiveSolution]
    times: list[float]
    final_solution: Field
    message: str = ""

    @property
    def num_time_steps(self) -> int:
        return len(self.time_steps)

    @property
    def outcomes(self) -> list[AdaptivityOutcome]:
        return [sol.outcome for sol in self.time_steps]
