"""
Provides the hp-adaptivity loop (reference solve, projection, error estimate,
candidate selection) and the transient driver with periodic derefinement.
"""

from hpadapt.adaptive.hp.algorithm import solve_hp_adaptive_internal
from hpadapt.adaptive.hp.data_structures import AdaptiveParameters, TransientParameters
from hpadapt.adaptive.hp.time_stepping import solve_transient_hp_adaptive_internal


__all__ = [
    "AdaptiveParameters",
    "TransientParameters",
    "solve_hp_adaptive_internal",
    "solve_transient_hp_adaptive_internal",
]
