import logging
from typing import cast

from hpadapt.adaptive.hp.algorithm import solve_hp_adaptive_internal
from hpadapt.adaptive.hp.data_structures import (
    AdaptiveParameters,
    AdaptiveSolution,
    CandidateList,
    ErrorNormalization,
    TransientParameters,
    TransientSolution,
)
from hpadapt.adaptive.hp.time_stepping import solve_transient_hp_adaptive_internal
from hpadapt.convergence import ConvergenceHistory
from hpadapt.input_validation import (
    validate_adaptive_parameters,
    validate_not_none,
    validate_transient_parameters,
)
from hpadapt.hp_types import (
    CandidateEvaluator,
    DerefinementPolicy,
    Discretization,
    DiscretizationProvider,
    ErrorNorm,
    ErrorNormProvider,
    ExactSolutionCallable,
    Field,
    Projector,
    SolveProvider,
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


logger = logging.getLogger(__name__)


def _resolve_collaborators(
    provider: DiscretizationProvider,
    projector: Projector | None,
    norm_provider: ErrorNormProvider | None,
    evaluator: CandidateEvaluator | None,
) -> tuple[Projector, ErrorNormProvider, CandidateEvaluator]:
    """Fall back to the discretization provider for every capability not given."""
    if projector is None:
        projector = cast(Projector, provider)
    if norm_provider is None:
        norm_provider = cast(ErrorNormProvider, provider)
    if evaluator is None:
        evaluator = cast(CandidateEvaluator, provider)

    for capability, name in (
        (projector, "project"),
        (norm_provider, "element_error_contributions"),
        (evaluator, "candidate_projection_error"),
    ):
        validate_not_none(getattr(capability, name, None), name, "solver collaborators")

    return projector, norm_provider, evaluator


def solve_adaptive(
    working: Discretization,
    provider: DiscretizationProvider,
    solver: SolveProvider,
    error_tolerance: float = DEFAULT_ERROR_TOLERANCE,
    threshold: float = DEFAULT_THRESHOLD,
    dof_ceiling: int = DEFAULT_DOF_CEILING,
    candidate_list: CandidateList = CandidateList.HP_ANISO,
    error_norm: ErrorNorm = ErrorNorm.H1,
    error_normalization: ErrorNormalization = ErrorNormalization.RELATIVE_TO_GLOBAL_NORM,
    min_polynomial_degree: int = DEFAULT_MIN_POLYNOMIAL_DEGREE,
    max_polynomial_degree: int = DEFAULT_MAX_POLYNOMIAL_DEGREE,
    conv_exp: float = DEFAULT_CONV_EXP,
    max_adaptivity_steps: int | None = None,
    projector: Projector | None = None,
    norm_provider: ErrorNormProvider | None = None,
    evaluator: CandidateEvaluator | None = None,
    exact_solution: ExactSolutionCallable | None = None,
    history: ConvergenceHistory | None = None,
    previous: Field | None = None,
) -> AdaptiveSolution:
    """
    Solve a stationary problem with automatic hp-adaptivity.

    Each adaptivity step builds a uniformly refined reference space, solves
    on it, projects the reference solution onto the working discretization and
    estimates the relative error between the two. The loop stops once the
    estimate drops below ``error_tolerance``; otherwise the elements with the
    largest errors are refined with the candidate that reduces the projection
    error most per added degree of freedom.

    The working discretization is refined in place.

    Args:
        working: Working (coarse) discretization, modified in place
        provider: Mesh and space services; also used as projector, norm provider
            and candidate evaluator when those are not given
        solver: Solve provider called once per adaptivity step on the reference space
        error_tolerance: Stop when the relative error estimate (in %) is below this (default: 1.0)
        threshold: Refine elements whose error exceeds threshold * max error (default: 0.3)
        dof_ceiling: Stop once the working space reaches this many DOFs (default: 100000)
        candidate_list: Allowed refinement candidates (default: HP_ANISO)
        error_norm: Norm in which errors are measured (default: H1)
        error_normalization: Scaling of element errors for ranking (default: global norm)
        min_polynomial_degree: Lower bound for candidate degrees (default: 1)
        max_polynomial_degree: Upper bound for candidate degrees (default: 10)
        conv_exp: Exponent on the DOF increase in the candidate score (default: 1.0)
        max_adaptivity_steps: Optional hard limit on adaptivity steps (default: None)
        projector: Optional projector (default: provider)
        norm_provider: Optional error-norm provider (default: provider)
        evaluator: Optional candidate evaluator (default: provider)
        exact_solution: Optional exact solution for diagnostic exact errors
        history: Optional convergence history to append to
        previous: Optional previous field passed through to the solve provider

    Returns:
        AdaptiveSolution with the outcome, the final reference and coarse
        solutions, the last error records and the per-step diagnostics.

    Raises:
        hpadapt.ConfigurationError: If parameters are invalid
        hpadapt.DataIntegrityError: If a collaborator returns inconsistent data
        hpadapt.HpAdaptBaseError: If the solve provider fails fatally

    Examples:
        >>> import numpy as np
        >>> from hpadapt.fem import HpBackend1D, NewtonSolveProvider, create_h1_discretization
        >>> from hpadapt.fem import nonlinear_diffusion_form
        >>>
        >>> working, base = create_h1_discretization(
        ...     np.linspace(0.0, 1.0, 5), degree=2, initial_refinements=1
        ... )
        >>> form = nonlinear_diffusion_form(
        ...     conductivity=lambda u: 1.0 + u**2,
        ...     conductivity_derivative=lambda u: 2.0 * u,
        ...     source=lambda x: np.ones_like(x),
        ... )
        >>> backend = HpBackend1D()
        >>> result = solve_adaptive(working, backend, NewtonSolveProvider(form))
        >>> result.success
        True
    """
    params = AdaptiveParameters(
        error_tolerance=error_tolerance,
        threshold=threshold,
        dof_ceiling=dof_ceiling,
        candidate_list=candidate_list,
        error_norm=error_norm,
        error_normalization=error_normalization,
        min_polynomial_degree=min_polynomial_degree,
        max_polynomial_degree=max_polynomial_degree,
        conv_exp=conv_exp,
        max_adaptivity_steps=max_adaptivity_steps,
    )
    validate_adaptive_parameters(params)
    validate_not_none(working, "working", "solve_adaptive")
    projector, norm_provider, evaluator = _resolve_collaborators(
        provider, projector, norm_provider, evaluator
    )

    logger.info(
        "Starting hp-adaptive solve: tol=%g%%, threshold=%g, ceiling=%d, candidates=%s",
        error_tolerance,
        threshold,
        dof_ceiling,
        candidate_list.value,
    )

    result = solve_hp_adaptive_internal(
        working,
        provider,
        solver,
        projector,
        norm_provider,
        evaluator,
        params,
        previous=previous,
        exact_solution=exact_solution,
        history=history,
    )

    if result.success:
        logger.info(
            "hp-adaptive solve completed: %d steps, %d DOFs", result.num_steps, result.num_dofs
        )
    else:
        logger.warning("hp-adaptive solve did not converge: %s", result.message)

    return result


def solve_transient_adaptive(
    working: Discretization,
    provider: DiscretizationProvider,
    solver: SolveProvider,
    initial_condition: Field,
    time_step: float = DEFAULT_TIME_STEP,
    final_time: float = DEFAULT_FINAL_TIME,
    initial_time: float = 0.0,
    derefinement_frequency: int = DEFAULT_DEREFINEMENT_FREQUENCY,
    derefinement_policy: DerefinementPolicy | int = DEFAULT_DEREFINEMENT_POLICY,
    base_degree: int = DEFAULT_INITIAL_DEGREE,
    error_tolerance: float = DEFAULT_ERROR_TOLERANCE,
    threshold: float = DEFAULT_THRESHOLD,
    dof_ceiling: int = DEFAULT_DOF_CEILING,
    candidate_list: CandidateList = CandidateList.HP_ANISO,
    error_norm: ErrorNorm = ErrorNorm.H1,
    error_normalization: ErrorNormalization = ErrorNormalization.RELATIVE_TO_GLOBAL_NORM,
    min_polynomial_degree: int = DEFAULT_MIN_POLYNOMIAL_DEGREE,
    max_polynomial_degree: int = DEFAULT_MAX_POLYNOMIAL_DEGREE,
    conv_exp: float = DEFAULT_CONV_EXP,
    max_adaptivity_steps: int | None = None,
    projector: Projector | None = None,
    norm_provider: ErrorNormProvider | None = None,
    evaluator: CandidateEvaluator | None = None,
    history: ConvergenceHistory | None = None,
) -> TransientSolution:
    """
    Solve a time-dependent problem with hp-adaptivity in every time step.

    Every time step runs a complete adaptivity loop on the working
    discretization; the converged reference solution of one step is the
    previous field of the next. Before selected steps the working mesh is
    globally coarsened according to ``derefinement_policy``:

    - 1: reset to the base mesh with the uniform base degree
    - 2: remove one refinement layer and reset degrees to ``base_degree``
    - 3: remove one refinement layer and lower degrees by one, not below ``base_degree``

    Args:
        working: Working discretization, modified in place
        provider: Mesh and space services (also the default projector,
            norm provider and candidate evaluator)
        solver: Solve provider performing one time step on a given space
        initial_condition: Field used as previous solution of the first step
        time_step: Time step size (default: 0.05)
        final_time: End of the simulated interval (default: 2.0)
        initial_time: Start of the simulated interval (default: 0.0)
        derefinement_frequency: Derefine before every n-th step (default: 1)
        derefinement_policy: Derefinement policy 1, 2 or 3 (default: 3)
        base_degree: Degree used by policies 1 and 2 and as floor of policy 3 (default: 2)
        error_tolerance: Per-step relative error tolerance in % (default: 1.0)
        threshold: Element selection threshold (default: 0.3)
        dof_ceiling: Per-step DOF ceiling (default: 100000)
        candidate_list: Allowed refinement candidates (default: HP_ANISO)
        error_norm: Norm in which errors are measured (default: H1)
        error_normalization: Scaling of element errors for ranking (default: global norm)
        min_polynomial_degree: Lower bound for candidate degrees (default: 1)
        max_polynomial_degree: Upper bound for candidate degrees (default: 10)
        conv_exp: Exponent on the DOF increase in the candidate score (default: 1.0)
        max_adaptivity_steps: Optional hard limit on adaptivity steps per time step
        projector: Optional projector (default: provider)
        norm_provider: Optional error-norm provider (default: provider)
        evaluator: Optional candidate evaluator (default: provider)
        history: Optional convergence history shared by all time steps

    Returns:
        TransientSolution with one AdaptiveSolution per time step, the time
        levels reached and the final reference solution.

    Raises:
        hpadapt.ConfigurationError: If parameters are invalid
        hpadapt.DofMapDesyncError: If the DOF map cannot be re-synchronized after derefinement

    Examples:
        >>> import numpy as np
        >>> from hpadapt.fem import AnalyticField, HpBackend1D, NewtonSolveProvider
        >>> from hpadapt.fem import create_h1_discretization, heat_form
        >>>
        >>> working, base = create_h1_discretization(np.linspace(0.0, 1.0, 5), degree=2)
        >>> backend = HpBackend1D(base=base)
        >>> initial = AnalyticField(lambda x: (np.sin(np.pi * x), np.pi * np.cos(np.pi * x)))
        >>> result = solve_transient_adaptive(
        ...     working, backend, NewtonSolveProvider(heat_form()), initial,
        ...     time_step=0.05, final_time=2.0, derefinement_policy=3,
        ... )
        >>> result.num_time_steps
        40
    """
    params = AdaptiveParameters(
        error_tolerance=error_tolerance,
        threshold=threshold,
        dof_ceiling=dof_ceiling,
        candidate_list=candidate_list,
        error_norm=error_norm,
        error_normalization=error_normalization,
        min_polynomial_degree=min_polynomial_degree,
        max_polynomial_degree=max_polynomial_degree,
        conv_exp=conv_exp,
        max_adaptivity_steps=max_adaptivity_steps,
    )
    transient = TransientParameters(
        time_step=time_step,
        final_time=final_time,
        derefinement_frequency=derefinement_frequency,
        derefinement_policy=derefinement_policy,
        base_degree=base_degree,
        initial_time=initial_time,
    )
    validate_adaptive_parameters(params)
    validate_transient_parameters(transient)
    validate_not_none(working, "working", "solve_transient_adaptive")
    validate_not_none(initial_condition, "initial_condition", "solve_transient_adaptive")
    projector, norm_provider, evaluator = _resolve_collaborators(
        provider, projector, norm_provider, evaluator
    )

    return solve_transient_hp_adaptive_internal(
        working,
        provider,
        solver,
        projector,
        norm_provider,
        evaluator,
        params,
        transient,
        initial_condition,
        history=history,
    )
