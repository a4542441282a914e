"""
Common data structures for differential time-interval analysis.

CandidateInterval describes one detected window; TimeSeriesParams is the
payload wrapped by Result[P] and exposed through TimeSeriesSolution.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
from numpy.typing import NDArray

from pytimecourse.smoothing._common import FitResult

POSITIVE = "positive"
NEGATIVE = "negative"

NO_INTERVALS_MESSAGE = "No statistically significant time intervals detected"


@dataclass(frozen=True)
class CandidateInterval:
    """
    Maximal run of grid points where the confidence band excludes C.

    - start, end: grid times of the first and last point of the run
    - start_index, end_index: their positions in the time grid
    - direction: 'positive' (band above C) or 'negative' (band below -C)
    - area: integral of the difference curve over [start, end], once computed
    - p_value: empirical permutation p-value, once computed
    """
    start: float
    end: float
    start_index: int
    end_index: int
    direction: str
    area: float | None = None
    p_value: float | None = None

    @property
    def is_degenerate(self) -> bool:
        return self.start == self.end


@dataclass(frozen=True)
class GroupCurve:
    """Fitted curve of one group on the unit time grid."""
    level: Any
    fit: NDArray[np.floating[Any]]
    se: NDArray[np.floating[Any]]
    time_points: NDArray[np.floating[Any]]


@dataclass(frozen=True)
class TimeSeriesParams:
    """
    Parameter payload for a differential time-interval analysis.

    - intervals: surviving candidate intervals with area and p-value
    - fit: observed-label contrast fit (difference = 2 * fit.fit)
    - perm: null areas, shape (B, len(intervals)); None without intervals
    - failed_permutations: indices of permutations whose fit failed
    """
    intervals: tuple[CandidateInterval, ...]
    fit: FitResult
    perm: NDArray[np.floating[Any]] | None
    B: int
    C: float
    formula: str
    include: tuple[str, ...]
    failed_permutations: tuple[int, ...] = ()
