"""
Adaptive refinement algorithms for finite-element discretizations.
"""

__all__ = []
