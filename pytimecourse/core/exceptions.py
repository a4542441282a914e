"""
Exception hierarchy for pytimecourse.

All exceptions inherit from TimeCourseError so callers can catch any
library-specific failure with a single clause.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""


class TimeCourseError(Exception):
    """Base exception for all pytimecourse errors."""
    pass


class ValidationError(TimeCourseError):
    """
    Input validation failed.

    Raised immediately (never retried) when caller-supplied inputs are
    unusable: empty datasets, a group factor without exactly two levels,
    unknown formula terms, out-of-range tuning arguments.
    """
    pass


class DimensionError(ValidationError):
    """
    Array lengths are inconsistent.

    Raised when paired sequences (value/time/group/subject, or the x/y
    arguments of an integral) do not have matching lengths.
    """
    pass


class NumericalError(TimeCourseError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class ModelFitError(NumericalError):
    """
    The smoothing-spline regression could not be fitted.

    Fatal when it concerns the fit on the observed labels. For a fit under
    a permuted labeling the permutation is recorded as missing instead.

    Attributes:
        stage: 'real' for the observed-label fit, 'permutation' otherwise,
            or None when the fitter is used on its own
        permutation: Index of the permutation whose fit failed, if any
        smoothing_parameter: log10(n * lambda) at the point of failure,
            if the failure happened inside the smoothing-parameter search
    """

    def __init__(
        self,
        message: str,
        stage: str | None = None,
        permutation: int | None = None,
        smoothing_parameter: float | None = None,
    ):
        super().__init__(message)
        self.stage = stage
        self.permutation = permutation
        self.smoothing_parameter = smoothing_parameter


class PermutationCancelled(TimeCourseError):
    """
    The permutation loop was cancelled cooperatively by the caller.

    Attributes:
        completed: Number of permutations finished before cancellation
        total: Number of permutations requested
    """

    def __init__(self, message: str, completed: int, total: int):
        super().__init__(message)
        self.completed = completed
        self.total = total
