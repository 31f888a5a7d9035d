import logging

import numpy as np


# Library logger - no configuration, user controls output
logger = logging.getLogger(__name__)


class HpAdaptBaseError(Exception):
    """
    Base class for all hpadapt-specific errors.

    All hpadapt exceptions inherit from this class, allowing users to catch
    any hpadapt-specific error with a single except clause.

    Args:
        message: The error message describing what went wrong
        context: Optional additional context about where the error occurred
    """

    def __init__(self, message: str, context: str | None = None) -> None:
        self.message = message
        self.context = context

        # Library logs at DEBUG level - user can promote if needed
        logger.debug("hpadapt exception: %s", self._format_message())
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with optional context."""
        if self.context:
            return f"{self.message} (Context: {self.context})"
        return self.message


class ConfigurationError(HpAdaptBaseError):
    """
    Raised when there is an invalid or incomplete hpadapt configuration.

    This exception indicates that the user has provided invalid parameters
    that prevent the adaptive run from starting. It is never retried.

    Examples:
        - Negative or NaN error tolerance
        - Zero or negative time step
        - Candidate threshold outside [0, 1)
        - Minimum polynomial degree above the maximum
    """

    pass


class DataIntegrityError(HpAdaptBaseError):
    """
    Raised when internal data corruption or inconsistency is detected.

    Examples:
        - NaN or infinite values in element error contributions
        - Mismatched array dimensions between a field and its space
        - Element ids that do not belong to the working discretization
    """

    pass


class DofMapDesyncError(DataIntegrityError):
    """
    Raised when a space's degree-of-freedom map no longer matches its mesh.

    The mesh or the element degrees were changed (refinement, derefinement,
    degree adjustment) without reassigning degrees of freedom afterwards.
    This is a usage/ordering bug and is always propagated to the caller.
    """

    pass


class SolverConvergenceError(HpAdaptBaseError):
    """
    Raised by a solve provider when its iteration does not converge.

    The adaptivity controller absorbs this error: the step continues with
    ``last_iterate`` as the reference solution and is flagged as degraded.

    Args:
        message: The error message describing what went wrong
        last_iterate: The last coefficient vector the solver produced, if any
        iterations: Number of iterations performed before giving up
        context: Optional additional context about where the error occurred
    """

    def __init__(
        self,
        message: str,
        last_iterate: np.ndarray | None = None,
        iterations: int = 0,
        context: str | None = None,
    ) -> None:
        self.last_iterate = last_iterate
        self.iterations = iterations
        super().__init__(message, context)
