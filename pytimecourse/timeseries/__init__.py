"""
Differential time-interval analysis for two-group longitudinal data.

Public API:
    fit_time_series()     — intervals of differential abundance with
                            subject-level permutation p-values
    class_curves()        — per-group fitted curves
    interval_candidates() — candidate intervals from a fit and its SE
    detect_intervals()    — same, from a FitResult
    permute_labels()      — subject-level relabelings
    perm_analysis()       — permutation areas for candidate intervals
    TimeSeriesSolution    — result wrapper

Usage:
    from pytimecourse.timeseries import fit_time_series

    res = fit_time_series(value, group, time, subject, B=1000, seed=42)
    print(res.summary())
"""

from pytimecourse.timeseries._common import (
    CandidateInterval,
    GroupCurve,
    TimeSeriesParams,
    NO_INTERVALS_MESSAGE,
)
from pytimecourse.timeseries._intervals import interval_candidates, detect_intervals
from pytimecourse.timeseries._permutation import permute_labels
from pytimecourse.timeseries._null import perm_analysis, empirical_p_value
from pytimecourse.timeseries.solvers import fit_time_series, class_curves
from pytimecourse.timeseries.solution import TimeSeriesSolution

__all__ = [
    "fit_time_series",
    "class_curves",
    "interval_candidates",
    "detect_intervals",
    "permute_labels",
    "perm_analysis",
    "empirical_p_value",
    "CandidateInterval",
    "GroupCurve",
    "TimeSeriesParams",
    "TimeSeriesSolution",
    "NO_INTERVALS_MESSAGE",
]
