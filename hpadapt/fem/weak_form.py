"""
Weak formulations as lists of tagged integration contributions.

A contribution is a callable evaluated on one element at quadrature points; it
returns either the local Jacobian block (``JACOBIAN``) or the local residual
vector (``RESIDUAL``). The assembler sums all contributions of a form, so
terms can be added, replaced or removed by tag.
"""

import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from ..exceptions import ConfigurationError
from ..hp_types import FloatArray
from ..utils.constants import DEFAULT_THETA


__all__ = [
    "ContributionKind",
    "ElementContext",
    "FormContribution",
    "WeakForm",
    "heat_form",
    "nonlinear_diffusion_form",
]

logger = logging.getLogger(__name__)

ScalarFunction = Callable[[FloatArray], FloatArray]
SourceFunction = Callable[[FloatArray, float], FloatArray]


class ContributionKind(enum.Enum):
    JACOBIAN = "jacobian"
    RESIDUAL = "residual"


@dataclass
class ElementContext:
    """Everything a contribution may use on one element."""

    x: FloatArray
    weights: FloatArray
    phi: FloatArray
    dphi: FloatArray
    u: FloatArray
    du: FloatArray
    u_prev: FloatArray | None = None
    du_prev: FloatArray | None = None
    time: float | None = None
    time_step: float | None = None

    def require_previous(self, tag: str) -> tuple[FloatArray, FloatArray, float]:
        if self.u_prev is None or self.du_prev is None or self.time_step is None:
            raise ConfigurationError(
                f"Contribution '{tag}' needs a previous field and a time step",
                "transient weak form used without time stepping",
            )
        return self.u_prev, self.du_prev, self.time_step


@dataclass(frozen=True)
class FormContribution:
    tag: str
    kind: ContributionKind
    integrand: Callable[[ElementContext], FloatArray]


class WeakForm:
    """Ordered registry of contributions, unique per (tag, kind)."""

    def __init__(
        self, contributions: list[FormContribution] | None = None, transient: bool = False
    ) -> None:
        self._contributions: list[FormContribution] = []
        self.transient = transient
        for contribution in contributions or []:
            self.add(contribution)

    def add(self, contribution: FormContribution) -> None:
        key = (contribution.tag, contribution.kind)
        if any((c.tag, c.kind) == key for c in self._contributions):
            raise ConfigurationError(
                f"Contribution '{contribution.tag}' ({contribution.kind.value}) already registered"
            )
        self._contributions.append(contribution)

    def remove(self, tag: str) -> None:
        remaining = [c for c in self._contributions if c.tag != tag]
        if len(remaining) == len(self._contributions):
            raise ConfigurationError(f"No contribution tagged '{tag}'")
        self._contributions = remaining

    def contributions(self, kind: ContributionKind) -> list[FormContribution]:
        return [c for c in self._contributions if c.kind is kind]

    @property
    def tags(self) -> list[str]:
        return list(dict.fromkeys(c.tag for c in self._contributions))


def _diffusion_jacobian(conductivity: ScalarFunction, derivative: ScalarFunction, scale: float):
    def integrand(ctx: ElementContext) -> FloatArray:
        k = conductivity(ctx.u) * ctx.weights
        dk = derivative(ctx.u) * ctx.du * ctx.weights
        return scale * (
            np.einsum("iq,jq,q->ij", ctx.dphi, ctx.dphi, k)
            + np.einsum("iq,jq,q->ij", ctx.dphi, ctx.phi, dk)
        )

    return integrand


def _diffusion_residual(conductivity: ScalarFunction, scale: float):
    def integrand(ctx: ElementContext) -> FloatArray:
        return scale * (ctx.dphi @ (conductivity(ctx.u) * ctx.du * ctx.weights))

    return integrand


def nonlinear_diffusion_form(
    conductivity: ScalarFunction,
    conductivity_derivative: ScalarFunction,
    source: ScalarFunction | None = None,
) -> WeakForm:
    """
    Stationary ``-(k(u) u')' = f``.

    Residual ``int k(u) u' v' - f v``; the Jacobian includes the
    ``k'(u) u' w v'`` term from differentiating the conductivity.
    """
    form = WeakForm(
        [
            FormContribution(
                "diffusion",
                ContributionKind.JACOBIAN,
                _diffusion_jacobian(conductivity, conductivity_derivative, 1.0),
            ),
            FormContribution(
                "diffusion", ContributionKind.RESIDUAL, _diffusion_residual(conductivity, 1.0)
            ),
        ]
    )
    if source is not None:
        form.add(
            FormContribution(
                "source",
                ContributionKind.RESIDUAL,
                lambda ctx: -(ctx.phi @ (source(ctx.x) * ctx.weights)),
            )
        )
    return form


def heat_form(
    conductivity: ScalarFunction | None = None,
    conductivity_derivative: ScalarFunction | None = None,
    source: SourceFunction | None = None,
    theta: float = DEFAULT_THETA,
    heat_capacity: float = 1.0,
) -> WeakForm:
    """
    One theta-method step of ``c u_t - (k(u) u')' = f(x, t)``.

    theta = 1 is backward Euler, theta = 0.5 Crank-Nicolson. Defaults to the
    linear heat equation with unit conductivity and no source.
    """
    if not 0.0 <= theta <= 1.0:
        raise ConfigurationError(f"theta must lie in [0, 1], got {theta}")
    if conductivity is None:
        conductivity = np.ones_like
    if conductivity_derivative is None:
        conductivity_derivative = np.zeros_like

    def mass_jacobian(ctx: ElementContext) -> FloatArray:
        _, _, dt = ctx.require_previous("time_derivative")
        return np.einsum("iq,jq,q->ij", ctx.phi, ctx.phi, ctx.weights) * (heat_capacity / dt)

    def mass_residual(ctx: ElementContext) -> FloatArray:
        u_prev, _, dt = ctx.require_previous("time_derivative")
        return ctx.phi @ ((ctx.u - u_prev) * ctx.weights) * (heat_capacity / dt)

    contributions = [
        FormContribution("time_derivative", ContributionKind.JACOBIAN, mass_jacobian),
        FormContribution("time_derivative", ContributionKind.RESIDUAL, mass_residual),
        FormContribution(
            "diffusion",
            ContributionKind.JACOBIAN,
            _diffusion_jacobian(conductivity, conductivity_derivative, theta),
        ),
        FormContribution(
            "diffusion", ContributionKind.RESIDUAL, _diffusion_residual(conductivity, theta)
        ),
    ]

    if theta < 1.0:

        def explicit_diffusion(ctx: ElementContext) -> FloatArray:
            u_prev, du_prev, _ = ctx.require_previous("explicit_diffusion")
            flux = conductivity(u_prev) * du_prev * ctx.weights
            return (1.0 - theta) * (ctx.dphi @ flux)

        contributions.append(
            FormContribution("explicit_diffusion", ContributionKind.RESIDUAL, explicit_diffusion)
        )

    if source is not None:

        def source_residual(ctx: ElementContext) -> FloatArray:
            _, _, dt = ctx.require_previous("source")
            t_old = ctx.time if ctx.time is not None else 0.0
            f = theta * source(ctx.x, t_old + dt) + (1.0 - theta) * source(ctx.x, t_old)
            return -(ctx.phi @ (f * ctx.weights))

        contributions.append(
            FormContribution("source", ContributionKind.RESIDUAL, source_residual)
        )

    return WeakForm(contributions, transient=True)
