"""
Common data structures for smoothing-spline ANOVA.

SSANOVAParams is the payload of a fitted model (wrapped by Result[P] and
exposed through SSANOVAModel). FitResult is what a CurveFitter hands to
the interval pipeline: the predicted contrast curve on a time grid.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

# Two-sided 95% normal quantile used for the confidence band.
Z_95 = 1.96


@dataclass(frozen=True)
class SSANOVAParams:
    """
    Parameter payload of a fitted SS-ANOVA model.

    The fitted function is S(x) d + sum_j theta_j R_j(x, knots) c.
    """
    d: NDArray[np.floating[Any]]                # null-space coefficients, (m,)
    c: NDArray[np.floating[Any]]                # kernel coefficients, (q,)
    null_terms: tuple[str, ...]                 # term owning each column of S
    rk_pieces: tuple[tuple[str, str, str], ...]  # (term, kernel kind, variable)
    theta: NDArray[np.floating[Any]]            # piece weights, (len(rk_pieces),)
    knots: dict[str, NDArray]                   # variable -> knot coordinates, (q,)
    covariance: NDArray[np.floating[Any]]       # sigma^2 M^-1, (m+q, m+q)
    log10_n_lambda: float
    residual_variance: float
    effective_df: float                         # trace of the hat matrix
    gcv: float
    fitted_values: NDArray[np.floating[Any]]
    residuals: NDArray[np.floating[Any]]


@dataclass(frozen=True)
class FitResult:
    """
    Contrast curve predicted on a time grid.

    `fit` and `se` describe the level-2 contrast (the group-related terms
    evaluated at the second group level). Under the sum-to-zero coding the
    between-group difference, level 2 minus level 1, is exactly twice that.

    Attributes:
        fit: Predicted contrast, shape (T,)
        se: Standard error of the prediction, shape (T,)
        time_points: Unit-spaced ascending grid, shape (T,)
        include: Model terms included in the prediction
        smoothing_parameter: log10(n * lambda) selected by GCV
        residual_variance: Estimated sigma^2
        effective_df: Trace of the hat matrix
    """
    fit: NDArray[np.floating[Any]]
    se: NDArray[np.floating[Any]]
    time_points: NDArray[np.floating[Any]]
    include: tuple[str, ...] = ("group", "time:group")
    smoothing_parameter: float | None = None
    residual_variance: float | None = None
    effective_df: float | None = None

    @property
    def difference(self) -> NDArray[np.floating[Any]]:
        """Between-group difference curve, 2 * fit."""
        return 2.0 * self.fit

    @property
    def difference_se(self) -> NDArray[np.floating[Any]]:
        """Standard error of the difference curve, 2 * se."""
        return 2.0 * self.se

    @property
    def lower(self) -> NDArray[np.floating[Any]]:
        """Lower 95% band of the difference curve."""
        return self.difference - Z_95 * self.difference_se

    @property
    def upper(self) -> NDArray[np.floating[Any]]:
        """Upper 95% band of the difference curve."""
        return self.difference + Z_95 * self.difference_se
