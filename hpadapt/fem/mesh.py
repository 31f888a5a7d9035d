"""
One-dimensional interval mesh with a binary refinement tree.

Elements are never deleted while they have active descendants; splitting an
element deactivates it and creates two sons, unrefining reverses the split.
Sons created by an initial refinement are flagged so that global unrefinement
never coarsens the mesh below its initial state.
"""

import copy
import logging
from dataclasses import dataclass, field

import numpy as np

from ..exceptions import ConfigurationError, DataIntegrityError
from ..hp_types import ElementID, FloatArray, NumericArrayLike
from ..input_validation import validate_mesh_vertices
from ..utils.constants import MAX_REFINEMENT_LEVEL


__all__ = ["Element1D", "Mesh1D"]

logger = logging.getLogger(__name__)


@dataclass
class Element1D:
    id: ElementID
    x_left: float
    x_right: float
    level: int = 0
    parent: ElementID | None = None
    sons: list[ElementID] = field(default_factory=list)
    initial: bool = False

    @property
    def active(self) -> bool:
        return not self.sons

    @property
    def length(self) -> float:
        return self.x_right - self.x_left

    @property
    def midpoint(self) -> float:
        return 0.5 * (self.x_left + self.x_right)


class Mesh1D:
    """Interval mesh; ``version`` changes with every topological modification."""

    def __init__(self, vertices: NumericArrayLike) -> None:
        vertices_array = np.asarray(vertices, dtype=np.float64)
        validate_mesh_vertices(vertices_array)

        self._elements: dict[ElementID, Element1D] = {}
        self._next_id = 0
        self.version = 0
        for left, right in zip(vertices_array[:-1], vertices_array[1:], strict=True):
            self._new_element(float(left), float(right))

    def _new_element(
        self,
        x_left: float,
        x_right: float,
        level: int = 0,
        parent: ElementID | None = None,
        initial: bool = False,
    ) -> Element1D:
        element = Element1D(self._next_id, x_left, x_right, level, parent, initial=initial)
        self._elements[element.id] = element
        self._next_id += 1
        return element

    @property
    def domain(self) -> tuple[float, float]:
        roots = [e for e in self._elements.values() if e.parent is None]
        return min(e.x_left for e in roots), max(e.x_right for e in roots)

    @property
    def num_active_elements(self) -> int:
        return sum(1 for e in self._elements.values() if e.active)

    def element(self, element_id: ElementID) -> Element1D:
        try:
            return self._elements[element_id]
        except KeyError as e:
            raise DataIntegrityError(
                f"Element {element_id} does not exist", "mesh lookup"
            ) from e

    def active_element_ids(self) -> list[ElementID]:
        """Active elements ordered from left to right."""
        active = [e for e in self._elements.values() if e.active]
        active.sort(key=lambda e: e.x_left)
        return [e.id for e in active]

    def active_elements(self) -> list[Element1D]:
        return [self._elements[eid] for eid in self.active_element_ids()]

    def breakpoints(self) -> FloatArray:
        """All vertices of the active elements."""
        active = self.active_elements()
        return np.array([e.x_left for e in active] + [active[-1].x_right], dtype=np.float64)

    def can_refine(self, element_id: ElementID) -> bool:
        element = self.element(element_id)
        return element.active and element.level < MAX_REFINEMENT_LEVEL

    def refine_element(
        self, element_id: ElementID, mark_as_initial: bool = False
    ) -> tuple[ElementID, ElementID]:
        """Split an active element at its midpoint and return the two son ids."""
        element = self.element(element_id)
        if not element.active:
            raise DataIntegrityError(f"Element {element_id} is not active", "refine_element")
        if element.level >= MAX_REFINEMENT_LEVEL:
            raise ConfigurationError(
                f"Element {element_id} already reached the maximum refinement level "
                f"{MAX_REFINEMENT_LEVEL}"
            )

        mid = element.midpoint
        left = self._new_element(
            element.x_left, mid, element.level + 1, element.id, mark_as_initial
        )
        right = self._new_element(
            mid, element.x_right, element.level + 1, element.id, mark_as_initial
        )
        element.sons = [left.id, right.id]
        self.version += 1
        return left.id, right.id

    def refine_all_elements(self, mark_as_initial: bool = False) -> None:
        for element_id in self.active_element_ids():
            self.refine_element(element_id, mark_as_initial)

    def unrefine_all_elements(self) -> dict[ElementID, list[ElementID]]:
        """
        Merge every pair of active sibling elements back into their parent.

        Siblings created by an initial refinement are kept. Returns the merged
        parents mapped to the son ids that were removed.
        """
        merged: dict[ElementID, list[ElementID]] = {}
        parents = {e.parent for e in self._elements.values() if e.active and e.parent is not None}

        for parent_id in sorted(parents):
            parent = self._elements[parent_id]
            sons = [self._elements[sid] for sid in parent.sons]
            if not all(son.active for son in sons) or any(son.initial for son in sons):
                continue
            merged[parent_id] = list(parent.sons)
            for son in sons:
                del self._elements[son.id]
            parent.sons = []

        if merged:
            self.version += 1
        logger.debug("Unrefined %d elements", len(merged))
        return merged

    def copy(self) -> "Mesh1D":
        return copy.deepcopy(self)
