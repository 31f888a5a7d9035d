import logging

import numpy as np

from hpadapt.adaptive.hp.data_structures import ErrorKind, ErrorNormalization, ErrorRecord
from hpadapt.exceptions import DataIntegrityError
from hpadapt.hp_types import (
    Discretization,
    DiscretizationProvider,
    ErrorNorm,
    ErrorNormProvider,
    ExactSolutionCallable,
    Field,
    FloatArray,
)
from hpadapt.utils.constants import ZERO_TOLERANCE


__all__ = [
    "calculate_error_record",
    "calculate_exact_error_record",
    "calculate_relative_error_percent",
    "normalize_element_errors",
]

logger = logging.getLogger(__name__)


def _validate_contributions(
    error_squared: FloatArray, norm_squared: FloatArray, num_elements: int
) -> None:
    """Validate element contribution arrays."""
    if error_squared.shape != (num_elements,) or norm_squared.shape != (num_elements,):
        raise DataIntegrityError(
            f"Element contributions have shapes {error_squared.shape} and {norm_squared.shape}, "
            f"expected ({num_elements},)",
            "error estimation",
        )
    if np.any(np.isnan(error_squared)) or np.any(np.isnan(norm_squared)):
        raise DataIntegrityError("Element contributions contain NaN values", "error estimation")
    if np.any(error_squared < 0) or np.any(norm_squared < 0):
        raise DataIntegrityError("Element contributions must be non-negative", "error estimation")


def _safe_ratio(numerator: FloatArray, denominator: FloatArray) -> FloatArray:
    """Elementwise ratio with 0/0 -> 0 and x/0 -> inf."""
    result = np.zeros_like(numerator, dtype=np.float64)
    nonzero = denominator > ZERO_TOLERANCE
    result[nonzero] = numerator[nonzero] / denominator[nonzero]
    result[~nonzero & (numerator > ZERO_TOLERANCE)] = np.inf
    return result


def calculate_relative_error_percent(error_squared: FloatArray, norm_squared: FloatArray) -> float:
    """Global relative error in percent from element contributions."""
    total_error = float(np.sqrt(np.sum(error_squared)))
    total_norm = float(np.sqrt(np.sum(norm_squared)))

    if total_norm <= ZERO_TOLERANCE:
        return 0.0 if total_error <= ZERO_TOLERANCE else float(np.inf)
    return total_error / total_norm * 100.0


def normalize_element_errors(
    error_squared: FloatArray,
    norm_squared: FloatArray,
    normalization: ErrorNormalization,
) -> FloatArray:
    """Scale element errors for candidate ranking."""
    element_errors = np.sqrt(error_squared)

    if normalization is ErrorNormalization.RELATIVE_TO_ELEMENT_NORM:
        return _safe_ratio(element_errors, np.sqrt(norm_squared))

    total_norm = np.full_like(element_errors, np.sqrt(np.sum(norm_squared)))
    return _safe_ratio(element_errors, total_norm)


def _build_record(
    discretization: Discretization,
    provider: DiscretizationProvider,
    error_squared: FloatArray,
    norm_squared: FloatArray,
    norm: ErrorNorm,
    kind: ErrorKind,
    normalization: ErrorNormalization,
) -> ErrorRecord:
    element_ids = tuple(provider.element_ids(discretization))
    error_squared = np.asarray(error_squared, dtype=np.float64)
    norm_squared = np.asarray(norm_squared, dtype=np.float64)
    _validate_contributions(error_squared, norm_squared, len(element_ids))

    return ErrorRecord(
        relative_error_percent=calculate_relative_error_percent(error_squared, norm_squared),
        element_ids=element_ids,
        element_errors=normalize_element_errors(error_squared, norm_squared, normalization),
        element_error_squared=error_squared,
        element_norm_squared=norm_squared,
        norm=norm,
        kind=kind,
        normalization=normalization,
    )


def calculate_error_record(
    coarse_solution: Field,
    reference_solution: Field,
    discretization: Discretization,
    provider: DiscretizationProvider,
    norm_provider: ErrorNormProvider,
    norm: ErrorNorm = ErrorNorm.H1,
    normalization: ErrorNormalization = ErrorNormalization.RELATIVE_TO_GLOBAL_NORM,
) -> ErrorRecord:
    """
    Estimate the error of the coarse solution against the reference solution.

    The global value is ``100 * ||u_ref - u_coarse|| / ||u_ref||`` and does not
    depend on ``normalization``; the per-element values are scaled either by
    the global reference norm or by each element's own reference norm.
    """
    error_squared, norm_squared = norm_provider.element_error_contributions(
        coarse_solution, reference_solution, discretization, norm
    )
    return _build_record(
        discretization,
        provider,
        error_squared,
        norm_squared,
        norm,
        ErrorKind.ESTIMATE,
        normalization,
    )


def calculate_exact_error_record(
    coarse_solution: Field,
    exact_solution: ExactSolutionCallable,
    discretization: Discretization,
    provider: DiscretizationProvider,
    norm_provider: ErrorNormProvider,
    norm: ErrorNorm = ErrorNorm.H1,
    normalization: ErrorNormalization = ErrorNormalization.RELATIVE_TO_GLOBAL_NORM,
) -> ErrorRecord:
    """Exact error of the coarse solution; diagnostics only."""
    error_squared, norm_squared = norm_provider.element_exact_error_contributions(
        coarse_solution, exact_solution, discretization, norm
    )
    return _build_record(
        discretization,
        provider,
        error_squared,
        norm_squared,
        norm,
        ErrorKind.EXACT,
        normalization,
    )
