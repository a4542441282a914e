"""
Tests for candidate interval detection.
"""

import numpy as np
import pytest

from pytimecourse.core.exceptions import DimensionError, ValidationError
from pytimecourse.smoothing import FitResult
from pytimecourse.timeseries import detect_intervals, interval_candidates
from pytimecourse.timeseries._common import NEGATIVE, POSITIVE

LOWER = np.array([-1.0, 1.0, 1.0, 1.0, -1.0, 2.0, 2.0])
GRID = np.arange(7.0)


# ═══════════════════════════════════════════════════════════════════════
# Run detection
# ═══════════════════════════════════════════════════════════════════════


class TestPositive:

    def test_two_runs(self):
        intervals = interval_candidates(LOWER / 2.0, np.zeros(7), GRID)
        assert [(iv.start, iv.end) for iv in intervals] == [(1.0, 3.0), (5.0, 6.0)]
        assert [(iv.start_index, iv.end_index) for iv in intervals] == [(1, 3), (5, 6)]
        assert all(iv.direction == POSITIVE for iv in intervals)
        assert all(iv.area is None and iv.p_value is None for iv in intervals)

    def test_band_uses_standard_error(self):
        fit = np.array([0.0, 1.0, 1.0, 1.0, 0.0])
        # lower band = 2 - 1.96 * 2 * se
        se = np.array([0.1, 0.1, 0.6, 0.1, 0.1])
        intervals = interval_candidates(fit, se, np.arange(5.0))
        # point 2 fails, leaving two single points that are dropped
        assert intervals == ()

    def test_all_below(self):
        assert interval_candidates(-np.ones(5), np.zeros(5), np.arange(5.0)) == ()

    def test_whole_grid(self):
        intervals = interval_candidates(np.ones(4), np.zeros(4), np.arange(4.0))
        assert [(iv.start, iv.end) for iv in intervals] == [(0.0, 3.0)]

    def test_zero_boundary_included(self):
        intervals = interval_candidates(np.zeros(3), np.zeros(3), np.arange(3.0))
        assert [(iv.start, iv.end) for iv in intervals] == [(0.0, 2.0)]


class TestNegative:

    def test_mirror(self):
        intervals = interval_candidates(
            -LOWER / 2.0, np.zeros(7), GRID, positive=False
        )
        assert [(iv.start, iv.end) for iv in intervals] == [(1.0, 3.0), (5.0, 6.0)]
        assert all(iv.direction == NEGATIVE for iv in intervals)

    def test_positive_curve_has_no_negative_runs(self):
        assert interval_candidates(
            LOWER / 2.0 + 5.0, np.zeros(7), GRID, positive=False
        ) == ()


class TestThreshold:

    def test_c_excludes_small_band(self):
        intervals = interval_candidates(LOWER / 2.0, np.zeros(7), GRID, C=1.5)
        assert [(iv.start, iv.end) for iv in intervals] == [(5.0, 6.0)]

    def test_c_negative_direction(self):
        intervals = interval_candidates(
            -LOWER / 2.0, np.zeros(7), GRID, positive=False, C=1.5
        )
        assert [(iv.start, iv.end) for iv in intervals] == [(5.0, 6.0)]

    def test_non_finite_c(self):
        with pytest.raises(ValidationError, match="C"):
            interval_candidates(LOWER, np.zeros(7), GRID, C=np.inf)


class TestGridMapping:

    def test_times_from_grid(self):
        grid = np.arange(7.0) + 10.5
        intervals = interval_candidates(LOWER / 2.0, np.zeros(7), grid)
        assert [(iv.start, iv.end) for iv in intervals] == [(11.5, 13.5), (15.5, 16.5)]

    def test_length_mismatch(self):
        with pytest.raises(DimensionError):
            interval_candidates(LOWER, np.zeros(6), GRID)


class TestDetectIntervals:

    def test_from_fit_result(self):
        fit = FitResult(fit=LOWER / 2.0, se=np.zeros(7), time_points=GRID)
        intervals = detect_intervals(fit)
        assert [(iv.start, iv.end) for iv in intervals] == [(1.0, 3.0), (5.0, 6.0)]

    def test_non_finite_fit(self):
        fit = FitResult(
            fit=np.array([np.nan, 1.0, 1.0]), se=np.zeros(3),
            time_points=np.arange(3.0),
        )
        with pytest.raises(ValidationError, match="non-finite"):
            detect_intervals(fit)
