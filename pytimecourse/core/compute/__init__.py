"""
Shared compute infrastructure for pytimecourse.

Domain-agnostic numeric helpers used by more than one subpackage.

Submodules:
    timing: Execution timing utilities
    integrate: Trapezoidal integration of sampled curves
"""

from pytimecourse.core.compute.timing import Timer
from pytimecourse.core.compute.integrate import trapz

__all__ = [
    "Timer",
    "trapz",
]
