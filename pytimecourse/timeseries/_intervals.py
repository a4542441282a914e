"""
Candidate interval detection from the confidence band of a difference curve.

A candidate interval is a maximal run of consecutive grid points where the
95% band of the between-group difference lies entirely on one side of
zero and at least C away from it.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pytimecourse.core.validation import (
    check_array, check_1d, check_consistent_length, check_finite,
)
from pytimecourse.core.exceptions import ValidationError
from pytimecourse.smoothing._common import FitResult, Z_95
from pytimecourse.timeseries._common import CandidateInterval, POSITIVE, NEGATIVE


def interval_candidates(
    fit: ArrayLike,
    standard_error: ArrayLike,
    time_points: ArrayLike,
    positive: bool = True,
    C: float = 0.0,
) -> tuple[CandidateInterval, ...]:
    """
    Time intervals where the difference curve is significantly non-zero.

    Args:
        fit: Level-2 contrast fit (half the group difference).
        standard_error: Its standard error.
        time_points: Grid the fit was predicted on.
        positive: Look for intervals where the difference is positive
            (lower band >= 0) or negative (upper band <= 0).
        C: Minimum absolute value the band must reach.

    Returns:
        Intervals in grid order. Runs of a single grid point (start == end)
        are dropped. Empty when no point qualifies.
    """
    fit_arr = check_array(fit, "fit")
    se_arr = check_array(standard_error, "standard_error")
    grid = check_array(time_points, "time_points")
    check_1d(fit_arr, "fit")
    check_consistent_length(
        fit_arr, se_arr, grid, names=("fit", "standard_error", "time_points")
    )
    C = float(C)
    if not np.isfinite(C):
        raise ValidationError(f"C must be finite, got {C}")

    lower = 2.0 * fit_arr - Z_95 * 2.0 * se_arr
    upper = 2.0 * fit_arr + Z_95 * 2.0 * se_arr
    if positive:
        hits = np.flatnonzero((lower >= 0) & (np.abs(lower) >= C))
        direction = POSITIVE
    else:
        hits = np.flatnonzero((upper <= 0) & (np.abs(upper) >= C))
        direction = NEGATIVE

    intervals = []
    for run in _consecutive_runs(hits):
        i0, i1 = int(run[0]), int(run[-1])
        start, end = float(grid[i0]), float(grid[i1])
        if start == end:
            continue
        intervals.append(CandidateInterval(
            start=start, end=end, start_index=i0, end_index=i1,
            direction=direction,
        ))
    return tuple(intervals)


def detect_intervals(
    fit: FitResult,
    C: float = 0.0,
    positive: bool = True,
) -> tuple[CandidateInterval, ...]:
    """interval_candidates() on a FitResult."""
    check_finite(fit.fit, "fit")
    return interval_candidates(fit.fit, fit.se, fit.time_points, positive=positive, C=C)


def _consecutive_runs(indices: NDArray[np.intp]) -> list[NDArray[np.intp]]:
    """Split sorted integer indices wherever neighbours differ by more than 1."""
    if indices.size == 0:
        return []
    breaks = np.flatnonzero(np.diff(indices) != 1) + 1
    return np.split(indices, breaks)
