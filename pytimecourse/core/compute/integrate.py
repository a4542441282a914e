"""
Trapezoidal integration of a sampled curve.

Matches pracma::trapz. The area is computed as the signed area of the closed
polygon that runs along the x axis and back along the curve, so the
result is well defined for unsorted x and flips sign when the sweep
direction is reversed.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pytimecourse.core.validation import (
    check_array, check_1d, check_consistent_length,
)


def trapz(x: ArrayLike, y: ArrayLike | None = None) -> float:
    """
    Area under the polyline through (x[i], y[i]).

    Args:
        x: Abscissae. Need not be sorted.
        y: Ordinates, same length as x. If None, x is integrated against
            the positions 1..m.

    Returns:
        Signed area. Equal to the ordinary trapezoidal rule when x is
        increasing; the negative of it when x is decreasing. 0.0 for
        empty input.

    Raises:
        DimensionError: If x and y have different lengths
        ValidationError: If x or y is not numeric

    Examples:
        >>> trapz([0.0, 1.0, 2.0], [1.0, 1.0, 1.0])
        2.0
    """
    x_arr = check_array(x, "x").ravel()
    if y is None:
        if x_arr.shape[0] == 0:
            return 0.0
        y_arr = x_arr
        x_arr = np.arange(1, x_arr.shape[0] + 1, dtype=np.float64)
    else:
        y_arr = check_array(y, "y").ravel()

    check_1d(x_arr, "x")
    check_consistent_length(x_arr, y_arr, names=("x", "y"))

    m = x_arr.shape[0]
    if m == 0:
        return 0.0

    xp, yp = _closed_sweep(x_arr, y_arr)
    p1 = np.sum(xp[:-1] * yp[1:]) + xp[-1] * yp[0]
    p2 = np.sum(xp[1:] * yp[:-1]) + xp[0] * yp[-1]
    return float(0.5 * (p1 - p2))


def _closed_sweep(
    x: NDArray[np.floating[Any]],
    y: NDArray[np.floating[Any]],
) -> tuple[NDArray[np.floating[Any]], NDArray[np.floating[Any]]]:
    """Polygon vertices: out along y=0, back along the curve."""
    m = x.shape[0]
    xp = np.concatenate([x, x[::-1]])
    yp = np.concatenate([np.zeros(m, dtype=np.float64), y[::-1]])
    return xp, yp
