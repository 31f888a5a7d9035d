import logging

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import spsolve

from ..exceptions import DataIntegrityError
from ..hp_types import ErrorNorm, Field, FloatArray
from ..utils.constants import ANALYTIC_FIELD_QUADRATURE_POINTS, QUADRATURE_EXTRA_POINTS
from .basis import evaluate_lobatto
from .quadrature import composite_rule
from .solution import Solution1D
from .space import H1Space1D


__all__ = ["local_projection_error", "project_h1", "quadrature_points_for"]

logger = logging.getLogger(__name__)


def quadrature_points_for(*degrees: int | None) -> int:
    """Gauss points per segment able to integrate products of the given fields."""
    return max(
        ANALYTIC_FIELD_QUADRATURE_POINTS if d is None else d + 1 + QUADRATURE_EXTRA_POINTS
        for d in degrees
    )


def _derivative_weight(norm: ErrorNorm) -> float:
    return 1.0 if norm is ErrorNorm.H1 else 0.0


def project_h1(field: Field, space: H1Space1D, norm: ErrorNorm = ErrorNorm.H1) -> Solution1D:
    """
    Global best approximation of ``field`` in ``space``.

    Minimizes ``||u_h - field||`` in the H1 (or L2) norm over functions that
    take the space's Dirichlet values; returns the projected Solution1D.
    """
    num_dofs = space.get_num_dofs()
    zero = np.zeros(num_dofs, dtype=np.float64)
    if num_dofs == 0:
        return Solution1D(space, zero)

    derivative_weight = _derivative_weight(norm)

    rows: list[np.ndarray] = []
    cols: list[np.ndarray] = []
    vals: list[np.ndarray] = []
    rhs = np.zeros(num_dofs, dtype=np.float64)

    for element_id in space.mesh.active_element_ids():
        element = space.mesh.element(element_id)
        degree = space.element_degree(element_id)
        half = 0.5 * element.length
        num_points = quadrature_points_for(degree, getattr(field, "max_degree", None))
        x, weights = composite_rule(
            element.x_left, element.x_right, num_points, getattr(field, "breakpoints", None)
        )
        phi, dphi = evaluate_lobatto(degree, (x - element.midpoint) / half)
        dphi = dphi / half

        gram = (phi * weights) @ phi.T + derivative_weight * ((dphi * weights) @ dphi.T)
        f, df = field.evaluate(x)
        load = phi @ (f * weights) + derivative_weight * (dphi @ (df * weights))

        dofs = space.element_dofs(element_id)
        free = dofs >= 0
        lift = space.local_coefficients(element_id, zero)
        load = load - gram @ lift

        np.add.at(rhs, dofs[free], load[free])
        row_idx, col_idx = np.meshgrid(dofs[free], dofs[free], indexing="ij")
        rows.append(row_idx.ravel())
        cols.append(col_idx.ravel())
        vals.append(gram[np.ix_(free, free)].ravel())

    matrix = sparse.coo_matrix(
        (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
        shape=(num_dofs, num_dofs),
    ).tocsc()
    coefficients = np.atleast_1d(spsolve(matrix, rhs))
    if not np.all(np.isfinite(coefficients)):
        raise DataIntegrityError("Projection produced non-finite coefficients", "project_h1")

    return Solution1D(space, coefficients)


def local_projection_error(
    field: Field,
    intervals: list[tuple[float, float, int]],
    norm: ErrorNorm = ErrorNorm.H1,
) -> float:
    """
    Error of projecting ``field`` onto discontinuous polynomials on ``intervals``.

    Each ``(left, right, degree)`` interval is projected independently with no
    continuity or boundary constraint; the squared errors are summed.
    """
    derivative_weight = _derivative_weight(norm)
    breakpoints = getattr(field, "breakpoints", None)
    field_degree = getattr(field, "max_degree", None)

    error_squared = 0.0
    for left, right, degree in intervals:
        half = 0.5 * (right - left)
        mid = 0.5 * (right + left)
        x, weights = composite_rule(
            left, right, quadrature_points_for(degree, field_degree), breakpoints
        )
        phi, dphi = evaluate_lobatto(degree, (x - mid) / half)
        dphi = dphi / half
        f, df = field.evaluate(x)

        gram = (phi * weights) @ phi.T + derivative_weight * ((dphi * weights) @ dphi.T)
        load = phi @ (f * weights) + derivative_weight * (dphi @ (df * weights))
        local = _solve_local(gram, load)

        diff = f - local @ phi
        ddiff = df - local @ dphi
        error_squared += float(np.sum(weights * (diff**2 + derivative_weight * ddiff**2)))

    return float(np.sqrt(error_squared))


def _solve_local(gram: FloatArray, load: FloatArray) -> FloatArray:
    try:
        return np.linalg.solve(gram, load)
    except np.linalg.LinAlgError as e:
        raise DataIntegrityError("Singular local projection matrix", "local projection") from e
