"""
Solution wrapper for differential time-interval analysis.

TimeSeriesSolution wraps Result[TimeSeriesParams] and provides accessors,
an R-style summary and the plain-dict shape consumed by plotting and
reporting code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pytimecourse.core.result import Result
from pytimecourse.smoothing._common import FitResult
from pytimecourse.timeseries._common import (
    CandidateInterval, TimeSeriesParams, NO_INTERVALS_MESSAGE,
)

if TYPE_CHECKING:
    from pytimecourse.core.datasource import TimeSeriesDesign


def _format_pvalue(p: float) -> str:
    if np.isnan(p):
        return 'NA'
    if p < 0.001:
        return f'{p:.2e}'
    return f'{p:.4f}'


@dataclass
class TimeSeriesSolution:
    """
    User-facing result of fit_time_series().

    Holds the interval table, the fitted difference curve, the permutation
    areas and the analysed data.
    """
    _result: Result[TimeSeriesParams]
    _design: 'TimeSeriesDesign'

    # --- Intervals ---

    @property
    def time_intervals(self) -> tuple[CandidateInterval, ...]:
        """Candidate intervals with observed area and p-value."""
        return self._result.params.intervals

    @property
    def has_intervals(self) -> bool:
        """False when no candidate interval survived detection."""
        return len(self._result.params.intervals) > 0

    @property
    def interval_table(self) -> NDArray[np.floating[Any]]:
        """Columns: interval start, interval end, area, p-value. Shape (K, 4)."""
        rows = [
            (iv.start, iv.end, iv.area, iv.p_value)
            for iv in self.time_intervals
        ]
        return np.array(rows, dtype=np.float64).reshape(len(rows), 4)

    def significant(self, alpha: float = 0.05) -> tuple[CandidateInterval, ...]:
        """Intervals with p-value below alpha."""
        return tuple(
            iv for iv in self.time_intervals
            if iv.p_value is not None and iv.p_value < alpha
        )

    # --- Fit and null distribution ---

    @property
    def fit(self) -> FitResult:
        """Observed-label contrast fit on the unit time grid."""
        return self._result.params.fit

    @property
    def difference(self) -> NDArray[np.floating[Any]]:
        """Fitted difference curve (second group minus first)."""
        return self.fit.difference

    @property
    def difference_se(self) -> NDArray[np.floating[Any]]:
        return self.fit.difference_se

    @property
    def time_points(self) -> NDArray[np.floating[Any]]:
        return self.fit.time_points

    @property
    def perm(self) -> NDArray[np.floating[Any]] | None:
        """Permutation areas, shape (B, K); None without intervals."""
        return self._result.params.perm

    @property
    def n_permutations(self) -> int:
        return self._result.params.B

    @property
    def failed_permutations(self) -> tuple[int, ...]:
        return self._result.params.failed_permutations

    @property
    def n_failed_permutations(self) -> int:
        return len(self._result.params.failed_permutations)

    @property
    def C(self) -> float:
        return self._result.params.C

    @property
    def data(self) -> 'TimeSeriesDesign':
        """The analysed design."""
        return self._design

    # --- Metadata ---

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # --- Export ---

    def to_dict(self) -> dict[str, Any]:
        """
        Result in the shape plotting/reporting code consumes.

        {'intervals': [...], 'fit': {'value', 'se', 'time'},
         'permutation_areas': ndarray or None, 'data': {...}}
        """
        d = self._design
        return {
            'intervals': [
                {
                    'start': iv.start,
                    'end': iv.end,
                    'direction': iv.direction,
                    'area': iv.area,
                    'p_value': iv.p_value,
                }
                for iv in self.time_intervals
            ],
            'fit': {
                'value': self.fit.difference,
                'se': self.fit.difference_se,
                'time': self.fit.time_points,
            },
            'permutation_areas': self.perm,
            'data': {
                'value': d.value,
                'group': d.group,
                'time': d.time,
                'subject': d.subject,
                **d.covariates,
            },
        }

    # --- Display ---

    def summary(self) -> str:
        """
        R-style summary.

        Produces:
            SMOOTHING SPLINE DIFFERENTIAL TIME INTERVALS

            Formula: value ~ time * group
            Groups: B - A
            Permutations: 1000

              Interval start  Interval end        Area    p.value
                         4.0           7.0     9.87654     0.0010
        """
        p = self._result.params
        levels = self.info.get('levels', self._design.levels)
        lines = [
            "\nSMOOTHING SPLINE DIFFERENTIAL TIME INTERVALS",
            "",
            f"Formula: {p.formula}",
            f"Groups: {levels[1]} - {levels[0]}",
            f"C: {p.C:g}",
        ]

        if not self.has_intervals:
            lines.append("")
            lines.append(NO_INTERVALS_MESSAGE)
            lines.append("")
            return "\n".join(lines)

        n_failed = len(p.failed_permutations)
        perm_line = f"Permutations: {p.B}"
        if n_failed:
            perm_line += f" ({n_failed} failed)"
        lines.append(perm_line)
        lines.append("")
        lines.append(
            f"{'Interval start':>16s} {'Interval end':>13s} {'Area':>11s} {'p.value':>10s}"
        )
        for iv in self.time_intervals:
            lines.append(
                f"{iv.start:16g} {iv.end:13g} {iv.area:11.5f} "
                f"{_format_pvalue(iv.p_value):>10s}"
            )
        lines.append("")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"TimeSeriesSolution(intervals={len(self.time_intervals)}, "
            f"B={self.n_permutations}, backend={self.backend_name!r})"
        )
