import functools

import numpy as np
from scipy.special import roots_legendre

from ..hp_types import FloatArray
from ..input_validation import validate_positive_integer
from ..utils.constants import MESH_TOLERANCE


__all__ = ["composite_rule", "gauss_legendre", "map_to_interval", "segment_breakpoints"]


@functools.lru_cache(maxsize=64)
def _cached_gauss_legendre(num_points: int) -> tuple[FloatArray, FloatArray]:
    points, weights = roots_legendre(num_points)
    points = np.asarray(points, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)
    points.flags.writeable = False
    weights.flags.writeable = False
    return points, weights


def gauss_legendre(num_points: int) -> tuple[FloatArray, FloatArray]:
    """Gauss-Legendre points and weights on [-1, 1], exact for degree 2n-1."""
    validate_positive_integer(num_points, "number of quadrature points")
    return _cached_gauss_legendre(int(num_points))


def map_to_interval(
    points: FloatArray, weights: FloatArray, left: float, right: float
) -> tuple[FloatArray, FloatArray]:
    """Affine map of a reference rule from [-1, 1] onto [left, right]."""
    half = 0.5 * (right - left)
    mid = 0.5 * (right + left)
    return mid + half * points, half * weights


def segment_breakpoints(left: float, right: float, breakpoints: FloatArray | None) -> FloatArray:
    """Endpoints plus the breakpoints that lie strictly inside (left, right)."""
    if breakpoints is None or len(breakpoints) == 0:
        return np.array([left, right], dtype=np.float64)

    inner = breakpoints[
        (breakpoints > left + MESH_TOLERANCE) & (breakpoints < right - MESH_TOLERANCE)
    ]
    return np.concatenate(([left], np.unique(inner), [right])).astype(np.float64)


def composite_rule(
    left: float, right: float, num_points: int, breakpoints: FloatArray | None = None
) -> tuple[FloatArray, FloatArray]:
    """
    Gauss rule on every segment of [left, right] cut at ``breakpoints``.

    Used wherever a piecewise polynomial with kinks inside an element is
    integrated, e.g. a reference solution over a coarse element.
    """
    ref_points, ref_weights = gauss_legendre(num_points)
    edges = segment_breakpoints(left, right, breakpoints)

    points = []
    weights = []
    for a, b in zip(edges[:-1], edges[1:], strict=True):
        x, w = map_to_interval(ref_points, ref_weights, a, b)
        points.append(x)
        weights.append(w)
    return np.concatenate(points), np.concatenate(weights)
