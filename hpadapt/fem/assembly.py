import logging

import numpy as np
from scipy import sparse

from ..hp_types import ElementID, Field, FloatArray
from ..input_validation import validate_array_length
from ..utils.constants import QUADRATURE_EXTRA_POINTS
from .basis import compute_lobatto_components, evaluate_lobatto
from .quadrature import composite_rule
from .space import H1Space1D
from .weak_form import ContributionKind, ElementContext, WeakForm


__all__ = ["assemble_system"]

logger = logging.getLogger(__name__)


def _element_context(
    space: H1Space1D,
    element_id: ElementID,
    coefficients: FloatArray,
    previous: Field | None,
    time: float | None,
    time_step: float | None,
) -> ElementContext:
    element = space.mesh.element(element_id)
    degree = space.element_degree(element_id)
    num_points = degree + 1 + QUADRATURE_EXTRA_POINTS
    half = 0.5 * element.length

    prev_breakpoints = getattr(previous, "breakpoints", None)
    if previous is not None and prev_breakpoints is not None:
        # previous field may have kinks inside this element
        x, weights = composite_rule(element.x_left, element.x_right, num_points, prev_breakpoints)
        phi, dphi_ref = evaluate_lobatto(degree, (x - element.midpoint) / half)
    else:
        components = compute_lobatto_components(degree, num_points)
        x = element.midpoint + half * components.points
        weights = half * components.weights
        phi, dphi_ref = components.values, components.derivatives

    dphi = dphi_ref / half
    local = space.local_coefficients(element_id, coefficients)

    u_prev = du_prev = None
    if previous is not None:
        u_prev, du_prev = previous.evaluate(x)

    return ElementContext(
        x=x,
        weights=weights,
        phi=phi,
        dphi=dphi,
        u=local @ phi,
        du=local @ dphi,
        u_prev=u_prev,
        du_prev=du_prev,
        time=time,
        time_step=time_step,
    )


def assemble_system(
    space: H1Space1D,
    coefficients: FloatArray,
    form: WeakForm,
    previous: Field | None = None,
    time: float | None = None,
    time_step: float | None = None,
) -> tuple[sparse.csr_matrix, FloatArray]:
    """
    Assemble the Jacobian and residual of ``form`` at ``coefficients``.

    Rows and columns belonging to Dirichlet vertices are dropped; their
    prescribed values enter through the local coefficient vectors.
    """
    num_dofs = space.get_num_dofs()
    coefficients = np.asarray(coefficients, dtype=np.float64)
    validate_array_length(coefficients, num_dofs, "coefficients", "assembly")

    jacobian_terms = form.contributions(ContributionKind.JACOBIAN)
    residual_terms = form.contributions(ContributionKind.RESIDUAL)

    rows: list[np.ndarray] = []
    cols: list[np.ndarray] = []
    vals: list[np.ndarray] = []
    residual = np.zeros(num_dofs, dtype=np.float64)

    for element_id in space.mesh.active_element_ids():
        ctx = _element_context(space, element_id, coefficients, previous, time, time_step)
        dofs = space.element_dofs(element_id)
        free = dofs >= 0
        size = len(dofs)

        local_residual = np.zeros(size, dtype=np.float64)
        for term in residual_terms:
            local_residual += term.integrand(ctx)
        np.add.at(residual, dofs[free], local_residual[free])

        local_jacobian = np.zeros((size, size), dtype=np.float64)
        for term in jacobian_terms:
            local_jacobian += term.integrand(ctx)
        row_idx, col_idx = np.meshgrid(dofs[free], dofs[free], indexing="ij")
        rows.append(row_idx.ravel())
        cols.append(col_idx.ravel())
        vals.append(local_jacobian[np.ix_(free, free)].ravel())

    if rows:
        jacobian = sparse.coo_matrix(
            (np.concatenate(vals), (np.concatenate(rows), np.concatenate(cols))),
            shape=(num_dofs, num_dofs),
        ).tocsr()
    else:
        jacobian = sparse.csr_matrix((num_dofs, num_dofs), dtype=np.float64)

    return jacobian, residual
