import logging
import math

from hpadapt.adaptive.hp.algorithm import solve_hp_adaptive_internal
from hpadapt.adaptive.hp.data_structures import (
    AdaptiveParameters,
    AdaptiveSolution,
    TransientParameters,
    TransientSolution,
)
from hpadapt.convergence import ConvergenceHistory
from hpadapt.hp_types import (
    CandidateEvaluator,
    DerefinementPolicy,
    Discretization,
    DiscretizationProvider,
    ErrorNormProvider,
    Field,
    Projector,
    SolveProvider,
)
from hpadapt.utils.constants import TIME_TOLERANCE


__all__ = ["compute_num_time_steps", "derefine_working", "solve_transient_hp_adaptive_internal"]

logger = logging.getLogger(__name__)


def compute_num_time_steps(params: TransientParameters) -> int:
    """Number of steps of size ``time_step`` needed to reach ``final_time``."""
    interval = params.final_time - params.initial_time
    return max(1, math.ceil(interval / params.time_step - TIME_TOLERANCE))


def _is_derefinement_step(time_step_index: int, frequency: int) -> bool:
    return time_step_index > 1 and time_step_index % frequency == 0


def derefine_working(
    working: Discretization,
    provider: DiscretizationProvider,
    policy: DerefinementPolicy,
    base_degree: int,
) -> int:
    """
    Coarsen the working discretization and re-synchronize its DOF map.

    Returns the new DOF count. A DOF map that is still out of sync after
    reassignment surfaces as DofMapDesyncError from ``get_num_dofs``.
    """
    logger.info("Global mesh derefinement (policy %d)", int(policy))
    provider.derefine(working, policy, base_degree)
    provider.assign_dofs(working)
    num_dofs = provider.get_num_dofs(working)
    logger.debug("DOFs after derefinement: %d", num_dofs)
    return num_dofs


def solve_transient_hp_adaptive_internal(
    working: Discretization,
    provider: DiscretizationProvider,
    solver: SolveProvider,
    projector: Projector,
    norm_provider: ErrorNormProvider,
    evaluator: CandidateEvaluator,
    params: AdaptiveParameters,
    transient: TransientParameters,
    initial_condition: Field,
    history: ConvergenceHistory | None = None,
) -> TransientSolution:
    """One adaptivity run per time step with periodic derefinement in between."""
    if history is None:
        history = ConvergenceHistory()

    num_time_steps = compute_num_time_steps(transient)
    policy = DerefinementPolicy(transient.derefinement_policy)
    logger.info(
        "Starting transient adaptive solve: %d time steps of %g, derefinement every %d (policy %d)",
        num_time_steps,
        transient.time_step,
        transient.derefinement_frequency,
        int(policy),
    )

    previous = initial_condition
    results: list[AdaptiveSolution] = []
    times: list[float] = []

    for ts in range(1, num_time_steps + 1):
        if _is_derefinement_step(ts, transient.derefinement_frequency):
            derefine_working(working, provider, policy, transient.base_degree)

        # previous must not change during the spatial adaptivity of this step
        current_time = transient.initial_time + (ts - 1) * transient.time_step
        result = solve_hp_adaptive_internal(
            working,
            provider,
            solver,
            projector,
            norm_provider,
            evaluator,
            params,
            previous=previous,
            current_time=current_time,
            time_step=transient.time_step,
            history=history,
            time_step_index=ts,
        )
        results.append(result)

        previous = result.reference_solution
        times.append(transient.initial_time + ts * transient.time_step)

    degraded = sum(1 for result in results if result.degraded_steps)
    message = f"Completed {num_time_steps} time steps to t={times[-1]:g}"
    if degraded:
        message += f" ({degraded} with degraded solves)"
    logger.info(message)

    return TransientSolution(
        time_steps=results, times=times, final_solution=previous, message=message
    )
