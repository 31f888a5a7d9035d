"""
Reference one-dimensional hp-FEM backend.

Interval meshes with a refinement tree, H1 spaces with hierarchic Lobatto
shape functions, weak forms as tagged contribution lists, sparse assembly,
Newton solves and the projection and norm services the adaptivity loop needs.
"""

from .mesh import Element1D, Mesh1D
from .provider import HpBackend1D
from .solution import AnalyticField, Solution1D
from .solvers import NewtonSolveProvider, NewtonSolver
from .space import H1Space1D, create_h1_discretization
from .weak_form import (
    ContributionKind,
    ElementContext,
    FormContribution,
    WeakForm,
    heat_form,
    nonlinear_diffusion_form,
)


__all__ = [
    "AnalyticField",
    "ContributionKind",
    "Element1D",
    "ElementContext",
    "FormContribution",
    "H1Space1D",
    "HpBackend1D",
    "Mesh1D",
    "NewtonSolveProvider",
    "NewtonSolver",
    "Solution1D",
    "WeakForm",
    "create_h1_discretization",
    "heat_form",
    "nonlinear_diffusion_form",
]
