"""
pytimecourse: differential time-interval analysis for longitudinal data.

Finds the time windows in which a measured quantity differs between two
groups followed over time, using smoothing-spline ANOVA fits and
subject-level permutation tests.

Submodules:
    smoothing: Smoothing-spline ANOVA curve fitting
    timeseries: Interval detection, permutation null, p-values
"""

__version__ = "0.1.0"

from pytimecourse import smoothing
from pytimecourse import timeseries
from pytimecourse.core.datasource import TimeSeriesDesign
from pytimecourse.timeseries import fit_time_series

__all__ = [
    "__version__",
    "smoothing",
    "timeseries",
    "TimeSeriesDesign",
    "fit_time_series",
]
