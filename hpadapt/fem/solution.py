import logging
from collections.abc import Callable

import numpy as np

from ..exceptions import DataIntegrityError
from ..hp_types import ElementID, FloatArray
from ..input_validation import validate_array_length, validate_array_numerical_integrity
from ..utils.constants import MESH_TOLERANCE
from .basis import evaluate_lobatto
from .space import H1Space1D


__all__ = ["AnalyticField", "Solution1D"]

logger = logging.getLogger(__name__)


class Solution1D:
    """
    Finite-element function: a coefficient vector over a frozen copy of its space.

    The space is copied on construction so later refinement of the space the
    coefficients were computed on does not invalidate the field.
    """

    def __init__(self, space: H1Space1D, coefficients: FloatArray) -> None:
        coefficients = np.asarray(coefficients, dtype=np.float64)
        validate_array_length(coefficients, space.get_num_dofs(), "coefficients", "Solution1D")
        validate_array_numerical_integrity(coefficients, "coefficients", "Solution1D")

        self.space = space.copy()
        self.coefficients = coefficients.copy()
        self._element_ids = self.space.mesh.active_element_ids()
        self._lefts = np.array(
            [self.space.mesh.element(eid).x_left for eid in self._element_ids], dtype=np.float64
        )

    @property
    def num_dofs(self) -> int:
        return len(self.coefficients)

    @property
    def max_degree(self) -> int:
        return self.space.max_degree

    @property
    def breakpoints(self) -> FloatArray:
        return self.space.mesh.breakpoints()

    def element_coefficients(self, element_id: ElementID) -> FloatArray:
        """Local coefficients of the element's shape functions, Dirichlet values included."""
        return self.space.local_coefficients(element_id, self.coefficients)

    def evaluate_on_element(
        self, element_id: ElementID, x: FloatArray
    ) -> tuple[FloatArray, FloatArray]:
        element = self.space.mesh.element(element_id)
        half = 0.5 * element.length
        xi = (np.asarray(x, dtype=np.float64) - element.midpoint) / half
        values, derivatives = evaluate_lobatto(self.space.element_degree(element_id), xi)
        local = self.element_coefficients(element_id)
        return local @ values, (local @ derivatives) / half

    def evaluate(self, x: FloatArray) -> tuple[FloatArray, FloatArray]:
        """Values and first derivatives at ``x``; points on a vertex use the right element."""
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        left, right = self.space.mesh.domain
        if np.any(x < left - MESH_TOLERANCE) or np.any(x > right + MESH_TOLERANCE):
            raise DataIntegrityError(
                f"Evaluation points outside the domain [{left}, {right}]", "Solution1D.evaluate"
            )

        indices = np.clip(np.searchsorted(self._lefts, x, side="right") - 1, 0, None)
        values = np.empty_like(x)
        derivatives = np.empty_like(x)
        for index in np.unique(indices):
            mask = indices == index
            values[mask], derivatives[mask] = self.evaluate_on_element(
                self._element_ids[index], x[mask]
            )
        return values, derivatives


class AnalyticField:
    """Field given by a callable ``x -> (values, derivatives)``, e.g. an exact solution."""

    breakpoints: FloatArray | None = None
    max_degree: int | None = None

    def __init__(self, function: Callable[[FloatArray], tuple[FloatArray, FloatArray]]) -> None:
        self.function = function

    def evaluate(self, x: FloatArray) -> tuple[FloatArray, FloatArray]:
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        values, derivatives = self.function(x)
        return (
            np.broadcast_to(np.asarray(values, dtype=np.float64), x.shape),
            np.broadcast_to(np.asarray(derivatives, dtype=np.float64), x.shape),
        )
