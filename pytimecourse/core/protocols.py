"""
Core protocols for pytimecourse.

Structural interfaces for the pluggable collaborators of the interval
pipeline. Protocol (structural typing) rather than ABC so that any object
with the right shape can be injected: an alternative curve fitter, a
progress reporter, a cancellation flag.
"""

from __future__ import annotations

from typing import Protocol, Sequence, TYPE_CHECKING, runtime_checkable

from numpy.typing import ArrayLike

if TYPE_CHECKING:
    from pytimecourse.core.datasource import TimeSeriesDesign
    from pytimecourse.smoothing._common import FitResult


@runtime_checkable
class CurveFitter(Protocol):
    """
    Nonparametric regression of value on time, group and their interaction.

    Given a two-group longitudinal design, a fitter returns the fitted
    single-level contrast curve (group level 2 relative to the symmetric
    baseline) and its standard error on a time grid. The between-group
    difference is twice that contrast.

    Fitters must be stateless with respect to `fit` calls: the permutation
    loop calls one fitter instance concurrently from worker threads.
    """

    @property
    def name(self) -> str:
        """
        Fitter identifier.

        Convention: '{device}_{algorithm}', e.g. 'cpu_ssanova'.
        """
        ...

    def fit(
        self,
        design: 'TimeSeriesDesign',
        time_points: ArrayLike | None = None,
        include: Sequence[str] = ("group", "time:group"),
    ) -> 'FitResult':
        """
        Fit the model and predict the contrast curve.

        Args:
            design: Validated two-group design
            time_points: Prediction grid. None means the unit-spaced grid
                from min(time) to max(time).
            include: Model terms included in the prediction

        Returns:
            FitResult with fit, se and time_points

        Raises:
            ModelFitError: If the regression cannot be fitted
            ValidationError: If the design or include terms are invalid
        """
        ...


class ProgressCallback(Protocol):
    """Observer notified as permutations complete."""

    def __call__(self, completed: int, total: int) -> None:
        ...


class CancelToken(Protocol):
    """Cooperative cancellation flag; threading.Event satisfies it."""

    def is_set(self) -> bool:
        ...
