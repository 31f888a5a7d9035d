import threading
from dataclasses import dataclass
from typing import ClassVar

import numpy as np
from scipy.special import eval_legendre

from ..hp_types import FloatArray
from ..input_validation import validate_polynomial_degree
from .quadrature import gauss_legendre


__all__ = [
    "LobattoBasisCache",
    "LobattoBasisComponents",
    "compute_lobatto_components",
    "evaluate_lobatto",
]


@dataclass(frozen=True)
class LobattoBasisComponents:
    """Lobatto shape functions of one degree tabulated at Gauss points."""

    degree: int
    points: FloatArray
    weights: FloatArray
    values: FloatArray
    derivatives: FloatArray


def evaluate_lobatto(degree: int, xi: FloatArray) -> tuple[FloatArray, FloatArray]:
    """
    Hierarchic Lobatto shape functions on [-1, 1] and their derivatives.

    Row 0 and 1 are the vertex functions (1 - xi)/2 and (1 + xi)/2; rows
    2..degree are the bubbles (P_k - P_{k-2}) / sqrt(2(2k - 1)), which vanish
    at both endpoints and whose derivatives are orthonormal in L2(-1, 1).
    """
    validate_polynomial_degree(degree)
    xi = np.atleast_1d(np.asarray(xi, dtype=np.float64))

    values = np.empty((degree + 1, xi.size), dtype=np.float64)
    derivatives = np.empty((degree + 1, xi.size), dtype=np.float64)

    values[0] = 0.5 * (1.0 - xi)
    values[1] = 0.5 * (1.0 + xi)
    derivatives[0] = -0.5
    derivatives[1] = 0.5

    for k in range(2, degree + 1):
        scale = 1.0 / np.sqrt(2.0 * (2 * k - 1))
        values[k] = scale * (eval_legendre(k, xi) - eval_legendre(k - 2, xi))
        derivatives[k] = np.sqrt((2 * k - 1) / 2.0) * eval_legendre(k - 1, xi)

    return values, derivatives


class LobattoBasisCache:
    """Thread-safe global cache for Lobatto shape functions at Gauss points."""

    _instance: ClassVar["LobattoBasisCache | None"] = None
    _cache: ClassVar[dict[tuple[int, int], LobattoBasisComponents]] = {}
    _lock: ClassVar[threading.Lock] = threading.Lock()

    def __new__(cls) -> "LobattoBasisCache":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def get_components(self, degree: int, num_points: int) -> LobattoBasisComponents:
        key = (degree, num_points)
        with self._lock:
            if key not in self._cache:
                self._cache[key] = self._compute_components(degree, num_points)
            return self._cache[key]

    def _compute_components(self, degree: int, num_points: int) -> LobattoBasisComponents:
        points, weights = gauss_legendre(num_points)
        values, derivatives = evaluate_lobatto(degree, points)
        values.flags.writeable = False
        derivatives.flags.writeable = False
        return LobattoBasisComponents(degree, points, weights, values, derivatives)


_lobatto_cache = LobattoBasisCache()


def compute_lobatto_components(degree: int, num_points: int) -> LobattoBasisComponents:
    """Get Lobatto shape functions at ``num_points`` Gauss points from the global cache."""
    validate_polynomial_degree(degree)
    return _lobatto_cache.get_components(int(degree), int(num_points))
