import logging
import time

import numpy as np

from hpadapt.adaptive.hp.data_structures import (
    AdaptiveParameters,
    AdaptiveSolution,
    AdaptiveStepRecord,
    AdaptivityOutcome,
    ErrorRecord,
    SelectionResult,
    SolveOutcome,
    SolveStatus,
)
from hpadapt.adaptive.hp.error_estimation import (
    calculate_error_record,
    calculate_exact_error_record,
)
from hpadapt.adaptive.hp.selection import select_refinements
from hpadapt.convergence import ConvergenceEntry, ConvergenceHistory
from hpadapt.exceptions import DataIntegrityError, HpAdaptBaseError, SolverConvergenceError
from hpadapt.hp_types import (
    CandidateEvaluator,
    Discretization,
    DiscretizationProvider,
    ErrorNormProvider,
    ExactSolutionCallable,
    Field,
    Projector,
    SolveProvider,
)


__all__ = ["solve_hp_adaptive_internal"]

logger = logging.getLogger(__name__)


def _solve_on_reference(
    solver: SolveProvider,
    reference: Discretization,
    num_reference_dofs: int,
    previous: Field | None,
    current_time: float | None,
    time_step: float | None,
    step: int,
) -> SolveOutcome:
    """Run the solve provider and turn its failure modes into a SolveOutcome."""
    try:
        coefficients = solver.solve(
            reference, previous=previous, time=current_time, time_step=time_step
        )
    except SolverConvergenceError as e:
        logger.warning("Solve on reference space failed in adaptivity step %d: %s", step, e)
        if e.last_iterate is not None:
            last_iterate = np.asarray(e.last_iterate)
        else:
            last_iterate = np.zeros(num_reference_dofs, dtype=np.float64)
        return SolveOutcome(SolveStatus.DEGRADED, last_iterate, e.message, e)
    except HpAdaptBaseError as e:
        return SolveOutcome(SolveStatus.FATAL, np.empty(0, dtype=np.float64), e.message, e)

    return SolveOutcome(SolveStatus.SUCCESS, np.asarray(coefficients))


def _validate_reference_coefficients(outcome: SolveOutcome, num_reference_dofs: int) -> None:
    """Validate the coefficient vector against the reference space."""
    if outcome.coefficients.shape != (num_reference_dofs,):
        raise DataIntegrityError(
            f"Solver returned {outcome.coefficients.shape[0]} coefficients for a reference "
            f"space with {num_reference_dofs} DOFs",
            f"solve status {outcome.status.value}",
        )


def _decide_and_refine(
    estimate: ErrorRecord,
    num_dofs: int,
    step: int,
    reference_solution: Field,
    working: Discretization,
    provider: DiscretizationProvider,
    evaluator: CandidateEvaluator,
    params: AdaptiveParameters,
) -> tuple[AdaptivityOutcome | None, SelectionResult | None]:
    """Stop-or-refine decision. Returns the terminal outcome, or None to continue."""
    if estimate.relative_error_percent < params.error_tolerance:
        return AdaptivityOutcome.CONVERGED, None

    if num_dofs >= params.dof_ceiling:
        return AdaptivityOutcome.DOF_CEILING, None

    logger.info("Adapting the coarse mesh")
    selection = select_refinements(
        estimate, reference_solution, working, provider, evaluator, params
    )

    if selection.no_refinement:
        return AdaptivityOutcome.STAGNATED, selection
    if provider.get_num_dofs(working) >= params.dof_ceiling:
        return AdaptivityOutcome.DOF_CEILING, selection
    if params.max_adaptivity_steps is not None and step >= params.max_adaptivity_steps:
        return AdaptivityOutcome.MAX_STEPS, selection

    return None, selection


def _create_outcome_message(
    outcome: AdaptivityOutcome, estimate: ErrorRecord, params: AdaptiveParameters, step: int
) -> str:
    err = estimate.relative_error_percent
    if outcome is AdaptivityOutcome.CONVERGED:
        return (
            f"Adaptivity converged to tolerance {params.error_tolerance:g}% "
            f"in {step} steps (err_est_rel={err:g}%)"
        )
    if outcome is AdaptivityOutcome.DOF_CEILING:
        return (
            f"Adaptivity stopped at DOF ceiling {params.dof_ceiling} after {step} steps "
            f"with err_est_rel={err:g}% above tolerance {params.error_tolerance:g}%"
        )
    if outcome is AdaptivityOutcome.STAGNATED:
        return (
            f"Adaptivity stagnated after {step} steps: no element could be refined "
            f"(err_est_rel={err:g}%)"
        )
    return (
        f"Reached maximum adaptivity steps ({step}) without convergence "
        f"to tolerance {params.error_tolerance:g}% (err_est_rel={err:g}%)"
    )


def _log_termination(outcome: AdaptivityOutcome, message: str) -> None:
    if outcome is AdaptivityOutcome.CONVERGED:
        logger.info(message)
    else:
        logger.warning(message)


def solve_hp_adaptive_internal(
    working: Discretization,
    provider: DiscretizationProvider,
    solver: SolveProvider,
    projector: Projector,
    norm_provider: ErrorNormProvider,
    evaluator: CandidateEvaluator,
    params: AdaptiveParameters,
    previous: Field | None = None,
    current_time: float | None = None,
    time_step: float | None = None,
    exact_solution: ExactSolutionCallable | None = None,
    history: ConvergenceHistory | None = None,
    time_step_index: int = 1,
) -> AdaptiveSolution:
    """hp-adaptivity loop: reference build, solve, project, estimate, decide."""
    if history is None:
        history = ConvergenceHistory()

    start = time.perf_counter()
    steps: list[AdaptiveStepRecord] = []
    step = 0

    while True:
        step += 1
        logger.info("Time step %d, adaptivity step %d", time_step_index, step)

        # Globally refined reference space
        reference = provider.create_reference(working)
        num_reference_dofs = provider.get_num_dofs(reference)

        outcome = _solve_on_reference(
            solver, reference, num_reference_dofs, previous, current_time, time_step, step
        )
        if outcome.status is SolveStatus.FATAL:
            assert outcome.error is not None
            raise outcome.error
        _validate_reference_coefficients(outcome, num_reference_dofs)
        reference_solution = provider.create_field(reference, outcome.coefficients)

        logger.debug("Projecting reference solution on coarse mesh")
        coarse_solution = projector.project(reference_solution, working)

        estimate = calculate_error_record(
            coarse_solution,
            reference_solution,
            working,
            provider,
            norm_provider,
            params.error_norm,
            params.error_normalization,
        )
        exact = None
        if exact_solution is not None:
            exact = calculate_exact_error_record(
                coarse_solution,
                exact_solution,
                working,
                provider,
                norm_provider,
                params.error_norm,
                params.error_normalization,
            )

        num_dofs = provider.get_num_dofs(working)
        logger.info(
            "ndof_coarse: %d, ndof_ref: %d, err_est_rel: %g%%",
            num_dofs,
            num_reference_dofs,
            estimate.relative_error_percent,
        )
        if exact is not None:
            logger.info("err_exact_rel: %g%%", exact.relative_error_percent)

        terminal, selection = _decide_and_refine(
            estimate,
            num_dofs,
            step,
            reference_solution,
            working,
            provider,
            evaluator,
            params,
        )

        error_exact = exact.relative_error_percent if exact is not None else float("nan")
        cpu_time = time.perf_counter() - start
        record = AdaptiveStepRecord(
            step=step,
            num_dofs=num_dofs,
            num_reference_dofs=num_reference_dofs,
            error_estimate=estimate.relative_error_percent,
            error_exact=error_exact,
            cpu_time=cpu_time,
            solve_status=outcome.status,
            num_refined_elements=len(selection.refined_elements) if selection else 0,
            outcome=terminal,
        )
        steps.append(record)
        history.append(
            ConvergenceEntry(
                time_step=time_step_index,
                adaptivity_step=step,
                num_dofs=num_dofs,
                num_reference_dofs=num_reference_dofs,
                error_estimate=estimate.relative_error_percent,
                error_exact=error_exact,
                cpu_time=cpu_time,
                solve_status=outcome.status,
                outcome=terminal,
            )
        )

        if terminal is not None:
            message = _create_outcome_message(terminal, estimate, params, step)
            _log_termination(terminal, message)
            return AdaptiveSolution(
                outcome=terminal,
                reference_solution=reference_solution,
                coarse_solution=coarse_solution,
                error_estimate=estimate,
                error_exact=exact,
                steps=steps,
                num_dofs=provider.get_num_dofs(working),
                message=message,
            )
