"""
H1 space of continuous piecewise polynomials over a Mesh1D.

Every active element carries its own polynomial degree. Global degrees of
freedom are the interior vertex values followed by the bubble coefficients of
each element; vertices on a Dirichlet boundary carry the prescribed value
instead of a degree of freedom (numbered -1).

Any change to the mesh or to element degrees invalidates the DOF map until
``assign_dofs`` is called again.
"""

import copy
import logging

import numpy as np

from ..exceptions import DataIntegrityError, DofMapDesyncError
from ..hp_types import ElementID, FloatArray, NumericArrayLike
from ..input_validation import validate_polynomial_degree, validate_positive_integer
from ..utils.constants import DEFAULT_INITIAL_DEGREE, DEFAULT_INITIAL_REFINEMENTS
from .mesh import Mesh1D


__all__ = ["H1Space1D", "create_h1_discretization"]

logger = logging.getLogger(__name__)

DirichletValues = tuple[float | None, float | None]


class H1Space1D:
    def __init__(
        self,
        mesh: Mesh1D,
        degree: int = DEFAULT_INITIAL_DEGREE,
        dirichlet: DirichletValues = (0.0, 0.0),
    ) -> None:
        validate_polynomial_degree(degree, "element degree")
        self.mesh = mesh
        self.dirichlet = dirichlet
        self._degrees: dict[ElementID, int] = {eid: degree for eid in mesh.active_element_ids()}
        self._degree_version = 0

        self._dof_state: tuple[int, int] | None = None
        self._num_dofs = 0
        self._element_dofs: dict[ElementID, np.ndarray] = {}

    # ---- degrees ----

    def element_degree(self, element_id: ElementID) -> int:
        try:
            return self._degrees[element_id]
        except KeyError as e:
            raise DataIntegrityError(
                f"Element {element_id} is not an active element of this space", "element_degree"
            ) from e

    def set_element_degree(self, element_id: ElementID, degree: int) -> None:
        validate_polynomial_degree(degree, "element degree")
        self.element_degree(element_id)
        self._degrees[element_id] = int(degree)
        self._degree_version += 1

    def set_uniform_degree(self, degree: int) -> None:
        validate_polynomial_degree(degree, "element degree")
        self._degrees = {eid: int(degree) for eid in self.mesh.active_element_ids()}
        self._degree_version += 1

    def adjust_element_degree(self, delta: int, min_degree: int = 1) -> None:
        """Shift every element degree by ``delta`` without going below ``min_degree``."""
        validate_polynomial_degree(min_degree, "minimum degree")
        self._degrees = {eid: max(min_degree, p + delta) for eid, p in self._degrees.items()}
        self._degree_version += 1

    @property
    def max_degree(self) -> int:
        return max(self._degrees.values())

    # ---- mesh changes ----

    def refine_element(self, element_id: ElementID, son_degrees: tuple[int, ...]) -> None:
        """Split one element and give its sons the listed degrees."""
        if len(son_degrees) != 2:
            raise DataIntegrityError(
                f"Splitting an interval produces 2 sons, got {len(son_degrees)} degrees",
                "refine_element",
            )
        for degree in son_degrees:
            validate_polynomial_degree(degree, "son degree")

        self.element_degree(element_id)
        sons = self.mesh.refine_element(element_id)
        del self._degrees[element_id]
        for son, degree in zip(sons, son_degrees, strict=True):
            self._degrees[son] = int(degree)

    def refine_all_elements(self, degree_increase: int = 0) -> None:
        """Split every element that can be split and raise all degrees."""
        for element_id in self.mesh.active_element_ids():
            degree = self._degrees[element_id] + degree_increase
            if self.mesh.can_refine(element_id):
                self.refine_element(element_id, (degree, degree))
            elif degree_increase:
                self.set_element_degree(element_id, degree)

    def unrefine_all_elements(self) -> None:
        """Merge active siblings; the merged element takes the largest son degree."""
        merged = self.mesh.unrefine_all_elements()
        for parent_id, son_ids in merged.items():
            self._degrees[parent_id] = max(self._degrees.pop(sid) for sid in son_ids)

    def reset_to(self, other: "H1Space1D") -> None:
        """Replace mesh and degrees by copies of another space's."""
        self.mesh = other.mesh.copy()
        self._degrees = dict(other._degrees)
        self._degree_version += 1

    # ---- DOF map ----

    def _state(self) -> tuple[int, int]:
        return self.mesh.version, self._degree_version

    @property
    def is_synchronized(self) -> bool:
        return self._dof_state == self._state() and set(self._element_dofs) == set(self._degrees)

    def _check_synchronized(self) -> None:
        if not self.is_synchronized:
            raise DofMapDesyncError(
                "DOF map is out of sync with the mesh or element degrees",
                "call assign_dofs() after refinement, derefinement or degree changes",
            )

    def assign_dofs(self) -> int:
        """Number vertex and bubble DOFs; returns the number of DOFs."""
        element_ids = self.mesh.active_element_ids()
        if set(element_ids) != set(self._degrees):
            raise DofMapDesyncError(
                "Element degrees do not match the active mesh elements", "assign_dofs"
            )

        num_vertices = len(element_ids) + 1
        vertex_dofs = np.empty(num_vertices, dtype=np.int64)
        next_dof = 0
        for i in range(num_vertices):
            if (i == 0 and self.dirichlet[0] is not None) or (
                i == num_vertices - 1 and self.dirichlet[1] is not None
            ):
                vertex_dofs[i] = -1
            else:
                vertex_dofs[i] = next_dof
                next_dof += 1

        self._element_dofs = {}
        for i, element_id in enumerate(element_ids):
            num_bubbles = self._degrees[element_id] - 1
            bubbles = np.arange(next_dof, next_dof + num_bubbles, dtype=np.int64)
            next_dof += num_bubbles
            self._element_dofs[element_id] = np.concatenate(
                ([vertex_dofs[i], vertex_dofs[i + 1]], bubbles)
            )

        self._num_dofs = next_dof
        self._dof_state = self._state()
        logger.debug("Assigned %d DOFs on %d elements", next_dof, len(element_ids))
        return next_dof

    def get_num_dofs(self) -> int:
        self._check_synchronized()
        return self._num_dofs

    def element_dofs(self, element_id: ElementID) -> np.ndarray:
        """Global DOF numbers of the element's local shape functions (-1 = Dirichlet)."""
        self._check_synchronized()
        try:
            return self._element_dofs[element_id]
        except KeyError as e:
            raise DataIntegrityError(
                f"Element {element_id} is not an active element of this space", "element_dofs"
            ) from e

    def element_boundary_values(self, element_id: ElementID) -> FloatArray:
        """Local coefficient vector holding only the prescribed Dirichlet values."""
        dofs = self.element_dofs(element_id)
        values = np.zeros(len(dofs), dtype=np.float64)
        if dofs[0] < 0:
            values[0] = self._boundary_value(self.mesh.element(element_id).x_left)
        if dofs[1] < 0:
            values[1] = self._boundary_value(self.mesh.element(element_id).x_right)
        return values

    def local_coefficients(self, element_id: ElementID, coefficients: FloatArray) -> FloatArray:
        """Gather an element's local coefficients, Dirichlet values included."""
        dofs = self.element_dofs(element_id)
        local = self.element_boundary_values(element_id)
        free = dofs >= 0
        local[free] = coefficients[dofs[free]]
        return local

    def _boundary_value(self, x: float) -> float:
        left, right = self.mesh.domain
        value = self.dirichlet[0] if abs(x - left) <= abs(x - right) else self.dirichlet[1]
        return 0.0 if value is None else float(value)

    def copy(self) -> "H1Space1D":
        return copy.deepcopy(self)


def create_h1_discretization(
    vertices: NumericArrayLike,
    degree: int = DEFAULT_INITIAL_DEGREE,
    initial_refinements: int = DEFAULT_INITIAL_REFINEMENTS,
    dirichlet: DirichletValues = (0.0, 0.0),
) -> tuple[H1Space1D, H1Space1D]:
    """
    Build the working discretization and a pristine copy of it.

    The mesh is refined ``initial_refinements`` times; these refinements are
    permanent and never undone by derefinement. The returned copy is what
    derefinement policy 1 resets to.
    """
    validate_positive_integer(initial_refinements, "initial_refinements", min_value=0)
    mesh = Mesh1D(vertices)
    for _ in range(initial_refinements):
        mesh.refine_all_elements(mark_as_initial=True)

    working = H1Space1D(mesh, degree, dirichlet)
    working.assign_dofs()
    logger.info(
        "Created H1 space: %d elements, degree %d, %d DOFs",
        mesh.num_active_elements,
        degree,
        working.get_num_dofs(),
    )
    return working, working.copy()
