import logging
import math
from typing import Any

import numpy as np

from .adaptive.hp.data_structures import (
    AdaptiveParameters,
    CandidateList,
    ErrorNormalization,
    TransientParameters,
)
from .exceptions import ConfigurationError, DataIntegrityError
from .hp_types import DerefinementPolicy, ErrorNorm, FloatArray
from .utils.constants import MESH_TOLERANCE


logger = logging.getLogger(__name__)


# ============================================================================
# CORE VALIDATION PRIMITIVES - Used everywhere, defined once
# ============================================================================


def validate_not_none(value: Any, name: str, context: str = "validation") -> None:
    """Single source for None validation."""
    if value is None:
        raise DataIntegrityError(f"{name} cannot be None", context)


def validate_positive_integer(value: Any, name: str, min_value: int = 1) -> None:
    """Single source for positive integer validation."""
    if isinstance(value, bool) or not isinstance(value, int | np.integer):
        raise ConfigurationError(f"{name} must be integer, got {type(value)}")
    if value < min_value:
        raise ConfigurationError(f"{name} must be >= {min_value}, got {value}")


def validate_finite_number(value: Any, name: str) -> None:
    """Single source for numeric, finite validation."""
    if isinstance(value, bool) or not isinstance(value, int | float | np.floating):
        raise ConfigurationError(f"{name} must be numeric, got {type(value)}")
    if math.isnan(value) or math.isinf(value):
        raise ConfigurationError(f"{name} cannot be NaN or infinite, got {value}")


def validate_positive_number(value: Any, name: str) -> None:
    """Single source for positive number validation."""
    validate_finite_number(value, name)
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")


def validate_array_numerical_integrity(
    array: FloatArray, name: str, context: str = "validation"
) -> None:
    """Single source for NaN validation. Infinite values are allowed."""
    if np.any(np.isnan(array)):
        raise DataIntegrityError(f"{name} contains NaN values", f"Numerical corruption in {context}")


def validate_array_length(
    array: FloatArray, expected_length: int, name: str, context: str = "validation"
) -> None:
    """Single source for length validation."""
    if len(array) != expected_length:
        raise DataIntegrityError(
            f"{name} has length {len(array)}, expected {expected_length}",
            f"Shape mismatch in {context}",
        )


# ============================================================================
# DISCRETIZATION VALIDATION
# ============================================================================


def validate_polynomial_degree(degree: int, context: str = "polynomial degree") -> None:
    """SINGLE SOURCE for polynomial degree validation."""
    validate_positive_integer(degree, context, min_value=1)


def validate_mesh_vertices(vertices: FloatArray) -> None:
    """SINGLE SOURCE for 1D mesh vertex validation."""
    if vertices.ndim != 1 or len(vertices) < 2:
        raise ConfigurationError(f"Mesh needs at least two vertices, got shape {vertices.shape}")

    validate_array_numerical_integrity(vertices, "mesh vertices", "mesh construction")
    if np.any(np.isinf(vertices)):
        raise ConfigurationError("Mesh vertices must be finite")

    if not np.all(np.diff(vertices) > MESH_TOLERANCE):
        raise ConfigurationError(
            f"Mesh vertices must be strictly increasing with min spacing {MESH_TOLERANCE}"
        )


# ============================================================================
# ADAPTIVITY VALIDATION
# ============================================================================


def validate_adaptive_parameters(params: AdaptiveParameters) -> None:
    """SINGLE SOURCE for adaptivity parameter validation."""
    validate_finite_number(params.error_tolerance, "error_tolerance")
    if params.error_tolerance < 0:
        raise ConfigurationError(
            f"error_tolerance must be non-negative, got {params.error_tolerance}"
        )

    validate_finite_number(params.threshold, "threshold")
    if not 0.0 <= params.threshold < 1.0:
        raise ConfigurationError(f"threshold must lie in [0, 1), got {params.threshold}")

    validate_positive_integer(params.dof_ceiling, "dof_ceiling")
    validate_polynomial_degree(params.min_polynomial_degree, "min_polynomial_degree")
    validate_polynomial_degree(params.max_polynomial_degree, "max_polynomial_degree")
    if params.min_polynomial_degree > params.max_polynomial_degree:
        raise ConfigurationError(
            f"min_polynomial_degree ({params.min_polynomial_degree}) > "
            f"max_polynomial_degree ({params.max_polynomial_degree})"
        )

    validate_positive_number(params.conv_exp, "conv_exp")

    if params.max_adaptivity_steps is not None:
        validate_positive_integer(params.max_adaptivity_steps, "max_adaptivity_steps")

    if not isinstance(params.candidate_list, CandidateList):
        raise ConfigurationError(f"Unknown candidate list: {params.candidate_list!r}")
    if not isinstance(params.error_norm, ErrorNorm):
        raise ConfigurationError(f"Unknown error norm: {params.error_norm!r}")
    if not isinstance(params.error_normalization, ErrorNormalization):
        raise ConfigurationError(f"Unknown error normalization: {params.error_normalization!r}")


def validate_transient_parameters(params: TransientParameters) -> None:
    """SINGLE SOURCE for time-stepping parameter validation."""
    validate_positive_number(params.time_step, "time_step")
    validate_finite_number(params.initial_time, "initial_time")
    validate_finite_number(params.final_time, "final_time")
    if params.final_time <= params.initial_time:
        raise ConfigurationError(
            f"final_time ({params.final_time}) must exceed initial_time ({params.initial_time})"
        )

    validate_positive_integer(params.derefinement_frequency, "derefinement_frequency")
    validate_polynomial_degree(params.base_degree, "base_degree")

    try:
        DerefinementPolicy(params.derefinement_policy)
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown derefinement policy: {params.derefinement_policy!r}"
        ) from e
