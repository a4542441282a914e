"""
Smoothing-spline ANOVA curve fitting.

Public API:
    ssanova()       — fit an SS-ANOVA model to a two-group longitudinal design
    SSANOVAModel    — fitted model; predict() any subset of terms with SEs
    SSANOVAFitter   — CurveFitter returning the group contrast curve
    FitResult       — contrast curve, standard error and time grid

Usage:
    from pytimecourse.smoothing import SSANOVAFitter

    fit = SSANOVAFitter().fit(design)
    fit.difference, fit.lower, fit.upper
"""

from pytimecourse.smoothing._common import FitResult, SSANOVAParams
from pytimecourse.smoothing._formula import DEFAULT_FORMULA, parse_formula
from pytimecourse.smoothing.solvers import (
    ssanova,
    SSANOVAModel,
    SSANOVAFitter,
    DEFAULT_INCLUDE,
)

__all__ = [
    "ssanova",
    "SSANOVAModel",
    "SSANOVAFitter",
    "FitResult",
    "SSANOVAParams",
    "DEFAULT_FORMULA",
    "DEFAULT_INCLUDE",
    "parse_formula",
]
