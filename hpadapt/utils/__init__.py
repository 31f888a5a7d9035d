# hpadapt/utils/__init__.py
"""
Shared constants for hpadapt.
"""

from . import constants


__all__ = ["constants"]
