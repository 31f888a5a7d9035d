import logging
import warnings

import numpy as np
from scipy.sparse.linalg import MatrixRankWarning, spsolve

from ..exceptions import ConfigurationError, SolverConvergenceError
from ..hp_types import Field, FloatArray
from ..input_validation import validate_positive_integer, validate_positive_number
from ..utils.constants import DEFAULT_NEWTON_MAX_ITERATIONS, DEFAULT_NEWTON_TOLERANCE
from .assembly import assemble_system
from .projection import project_h1
from .space import H1Space1D
from .weak_form import WeakForm


__all__ = ["NewtonSolveProvider", "NewtonSolver"]

logger = logging.getLogger(__name__)


class NewtonSolver:
    """
    Newton's method on the free DOFs of an H1 space.

    Converged once at least one update has been applied and the Euclidean
    norm of the residual drops below ``tolerance``.
    """

    def __init__(
        self,
        form: WeakForm,
        tolerance: float = DEFAULT_NEWTON_TOLERANCE,
        max_iterations: int = DEFAULT_NEWTON_MAX_ITERATIONS,
    ) -> None:
        validate_positive_number(tolerance, "newton tolerance")
        validate_positive_integer(max_iterations, "newton max_iterations")
        self.form = form
        self.tolerance = tolerance
        self.max_iterations = max_iterations

    def solve(
        self,
        space: H1Space1D,
        initial: FloatArray | None = None,
        previous: Field | None = None,
        time: float | None = None,
        time_step: float | None = None,
    ) -> FloatArray:
        num_dofs = space.get_num_dofs()
        if initial is None:
            coefficients = np.zeros(num_dofs, dtype=np.float64)
        else:
            coefficients = np.array(initial, dtype=np.float64)
        if num_dofs == 0:
            return coefficients

        for iteration in range(self.max_iterations + 1):
            jacobian, residual = assemble_system(
                space, coefficients, self.form, previous, time, time_step
            )
            residual_norm = float(np.linalg.norm(residual))
            logger.debug("Newton iteration %d: residual norm %.3e", iteration, residual_norm)

            if not np.isfinite(residual_norm):
                raise SolverConvergenceError(
                    "Newton residual is not finite",
                    last_iterate=coefficients,
                    iterations=iteration,
                    context=f"{num_dofs} DOFs",
                )
            if iteration > 0 and residual_norm < self.tolerance:
                logger.debug("Newton converged in %d iterations", iteration)
                return coefficients
            if iteration == self.max_iterations:
                break

            with warnings.catch_warnings():
                warnings.simplefilter("error", MatrixRankWarning)
                try:
                    update = np.atleast_1d(spsolve(jacobian.tocsc(), -residual))
                except MatrixRankWarning as e:
                    raise SolverConvergenceError(
                        "Singular Jacobian in Newton iteration",
                        last_iterate=coefficients,
                        iterations=iteration,
                    ) from e

            if not np.all(np.isfinite(update)):
                raise SolverConvergenceError(
                    "Newton update is not finite", last_iterate=coefficients, iterations=iteration
                )
            coefficients = coefficients + update

        raise SolverConvergenceError(
            f"Newton did not converge in {self.max_iterations} iterations "
            f"(residual norm {residual_norm:.3e}, tolerance {self.tolerance:g})",
            last_iterate=coefficients,
            iterations=self.max_iterations,
        )


class NewtonSolveProvider:
    """
    Solve provider built on NewtonSolver.

    Stationary forms start Newton from zero; transient forms start from the
    projection of the previous field onto the space being solved on.
    """

    def __init__(
        self,
        form: WeakForm,
        tolerance: float = DEFAULT_NEWTON_TOLERANCE,
        max_iterations: int = DEFAULT_NEWTON_MAX_ITERATIONS,
    ) -> None:
        self.newton = NewtonSolver(form, tolerance, max_iterations)

    @property
    def form(self) -> WeakForm:
        return self.newton.form

    def solve(
        self,
        discretization: H1Space1D,
        previous: Field | None = None,
        time: float | None = None,
        time_step: float | None = None,
    ) -> FloatArray:
        if not self.form.transient:
            return self.newton.solve(discretization)

        if previous is None or time_step is None:
            raise ConfigurationError(
                "Transient form requires a previous field and a time step",
                "NewtonSolveProvider.solve",
            )
        initial = project_h1(previous, discretization).coefficients
        return self.newton.solve(
            discretization, initial, previous=previous, time=time, time_step=time_step
        )
