"""
Core infrastructure for pytimecourse.

Shared abstractions and utilities used by the smoothing and timeseries
subpackages.

Key components:
    protocols: CurveFitter, ProgressCallback, CancelToken
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    datasource: TimeSeriesDesign, the validated longitudinal dataset
    compute: Timing and trapezoidal integration
"""

from pytimecourse.core.protocols import CurveFitter, ProgressCallback, CancelToken
from pytimecourse.core.result import Result
from pytimecourse.core.datasource import TimeSeriesDesign
from pytimecourse.core.exceptions import (
    TimeCourseError,
    ValidationError,
    DimensionError,
    NumericalError,
    ModelFitError,
    PermutationCancelled,
)

__all__ = [
    # Protocols
    "CurveFitter",
    "ProgressCallback",
    "CancelToken",
    # Result
    "Result",
    # Data
    "TimeSeriesDesign",
    # Exceptions
    "TimeCourseError",
    "ValidationError",
    "DimensionError",
    "NumericalError",
    "ModelFitError",
    "PermutationCancelled",
]
