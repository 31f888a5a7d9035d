import numpy as np

from ..hp_types import ErrorNorm, ExactSolutionCallable, Field, FloatArray
from .projection import quadrature_points_for
from .quadrature import composite_rule
from .solution import AnalyticField
from .space import H1Space1D


__all__ = [
    "element_error_contributions",
    "element_exact_error_contributions",
    "global_norm",
]


def _merged_breakpoints(*fields: Field) -> FloatArray | None:
    arrays = [bp for f in fields if (bp := getattr(f, "breakpoints", None)) is not None]
    if not arrays:
        return None
    return np.unique(np.concatenate(arrays))


def _squared_norm_density(
    values: FloatArray, derivatives: FloatArray, norm: ErrorNorm
) -> FloatArray:
    if norm is ErrorNorm.H1:
        return values**2 + derivatives**2
    return values**2


def element_error_contributions(
    coarse: Field, reference: Field, space: H1Space1D, norm: ErrorNorm = ErrorNorm.H1
) -> tuple[FloatArray, FloatArray]:
    """
    Squared element errors ``||reference - coarse||^2`` and squared element
    norms ``||reference||^2`` over the active elements of ``space``.

    Integration is split at the breakpoints of both fields so that kinks of
    a finer reference solution inside a coarse element are integrated exactly.
    """
    breakpoints = _merged_breakpoints(coarse, reference)
    num_points = quadrature_points_for(
        getattr(coarse, "max_degree", None), getattr(reference, "max_degree", None)
    )

    element_ids = space.mesh.active_element_ids()
    error_squared = np.zeros(len(element_ids), dtype=np.float64)
    norm_squared = np.zeros(len(element_ids), dtype=np.float64)

    for i, element_id in enumerate(element_ids):
        element = space.mesh.element(element_id)
        x, weights = composite_rule(element.x_left, element.x_right, num_points, breakpoints)
        u, du = coarse.evaluate(x)
        v, dv = reference.evaluate(x)
        error_squared[i] = np.sum(weights * _squared_norm_density(v - u, dv - du, norm))
        norm_squared[i] = np.sum(weights * _squared_norm_density(v, dv, norm))

    return error_squared, norm_squared


def element_exact_error_contributions(
    coarse: Field,
    exact_solution: ExactSolutionCallable,
    space: H1Space1D,
    norm: ErrorNorm = ErrorNorm.H1,
) -> tuple[FloatArray, FloatArray]:
    return element_error_contributions(coarse, AnalyticField(exact_solution), space, norm)


def global_norm(field: Field, space: H1Space1D, norm: ErrorNorm = ErrorNorm.H1) -> float:
    """Norm of ``field`` integrated over the elements of ``space``."""
    zero = AnalyticField(lambda x: (np.zeros_like(x), np.zeros_like(x)))
    _, norm_squared = element_error_contributions(zero, field, space, norm)
    return float(np.sqrt(np.sum(norm_squared)))
