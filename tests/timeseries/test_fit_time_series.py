"""
End-to-end tests for fit_time_series().

Validates:
    - Recovery of a simulated step difference with a small p-value
    - The no-interval path (perm is None)
    - Reproducibility for a fixed seed, independent of n_jobs
    - Failed permutation fits, progress and cancellation
    - Argument validation and the solution accessors
"""

import threading

import numpy as np
import pytest
from scipy import stats

import pytimecourse
from pytimecourse.core.datasource import TimeSeriesDesign
from pytimecourse.core.exceptions import (
    ModelFitError,
    PermutationCancelled,
    ValidationError,
)
from pytimecourse.timeseries import (
    NO_INTERVALS_MESSAGE,
    TimeSeriesSolution,
    fit_time_series,
)
from pytimecourse.timeseries._common import NEGATIVE, POSITIVE


@pytest.fixture(scope="module")
def step_result(longitudinal):
    rng = np.random.default_rng(42)
    value, group, time, subject = longitudinal(
        rng, effect=lambda t: 3.0 if 4 <= t <= 7 else 0.0
    )
    return fit_time_series(value, group, time, subject, B=200, seed=1)


# ═══════════════════════════════════════════════════════════════════════
# Step difference on [4, 7]
# ═══════════════════════════════════════════════════════════════════════


class TestStepDifference:

    def test_returns_solution(self, step_result):
        assert isinstance(step_result, TimeSeriesSolution)
        assert step_result.has_intervals
        assert step_result.backend_name == "cpu_ssanova"

    def test_interval_covers_step(self, step_result):
        hits = [
            iv for iv in step_result.time_intervals
            if iv.start <= 5.0 and iv.end >= 6.0
        ]
        assert len(hits) == 1
        iv = hits[0]
        assert 2.0 <= iv.start <= 5.0
        assert 6.0 <= iv.end <= 9.0
        assert iv.direction == POSITIVE
        assert iv.area > 0

    def test_step_interval_significant(self, step_result):
        significant = step_result.significant(0.05)
        assert any(iv.start <= 5.0 and iv.end >= 6.0 for iv in significant)

    def test_area_matches_difference_curve(self, step_result):
        iv = max(step_result.time_intervals, key=lambda iv: iv.end - iv.start)
        sl = slice(iv.start_index, iv.end_index + 1)
        t = step_result.time_points[sl]
        y = step_result.difference[sl]
        expected = np.sum(np.diff(t) * (y[1:] + y[:-1]) / 2.0)
        assert iv.area == pytest.approx(expected)

    def test_perm_matrix(self, step_result):
        K = len(step_result.time_intervals)
        assert step_result.perm.shape == (200, K)
        assert step_result.n_permutations == 200
        assert step_result.failed_permutations == ()
        assert np.all(np.isfinite(step_result.perm))

    def test_interval_table(self, step_result):
        table = step_result.interval_table
        assert table.shape == (len(step_result.time_intervals), 4)
        assert np.all((table[:, 3] >= 0) & (table[:, 3] <= 1))

    def test_difference_curve(self, step_result):
        np.testing.assert_array_equal(step_result.time_points, np.arange(10.0))
        np.testing.assert_allclose(step_result.difference, 2.0 * step_result.fit.fit)
        assert np.all(step_result.difference_se > 0)

    def test_info_and_timing(self, step_result):
        call = step_result.info["call"]
        assert call["B"] == 200
        assert call["seed"] == 1
        assert call["formula"] == "value ~ time * group"
        assert step_result.info["levels"] == ("A", "B")
        for section in ("fit", "intervals", "null_fits", "p_values"):
            assert section in step_result.timing

    def test_summary(self, step_result):
        text = step_result.summary()
        assert "SMOOTHING SPLINE DIFFERENTIAL TIME INTERVALS" in text
        assert "Interval start" in text
        assert "Groups: B - A" in text
        assert "Permutations: 200" in text

    def test_to_dict(self, step_result):
        d = step_result.to_dict()
        assert len(d["intervals"]) == len(step_result.time_intervals)
        assert d["permutation_areas"] is step_result.perm
        assert set(d["data"]) == {"value", "group", "time", "subject"}
        np.testing.assert_array_equal(d["fit"]["time"], np.arange(10.0))

    def test_data_is_design(self, step_result):
        assert isinstance(step_result.data, TimeSeriesDesign)
        assert step_result.data.n == 80

    def test_repr(self, step_result):
        assert "TimeSeriesSolution" in repr(step_result)


# ═══════════════════════════════════════════════════════════════════════
# No intervals
# ═══════════════════════════════════════════════════════════════════════


class TestNoIntervals:

    def test_identical_groups(self, mirrored_design):
        calls = []
        res = fit_time_series(
            mirrored_design, B=50, seed=0,
            progress=lambda done, total: calls.append(done),
        )
        assert not res.has_intervals
        assert res.time_intervals == ()
        assert res.perm is None
        assert res.interval_table.shape == (0, 4)
        assert res.significant() == ()
        assert calls == []
        assert NO_INTERVALS_MESSAGE in res.summary()
        assert res.to_dict()["permutation_areas"] is None

    def test_large_c(self, step_design):
        res = fit_time_series(step_design, C=100.0, B=10, seed=0)
        assert not res.has_intervals
        assert res.C == 100.0


# ═══════════════════════════════════════════════════════════════════════
# Reproducibility and workers
# ═══════════════════════════════════════════════════════════════════════


class TestReproducibility:

    def test_same_seed_same_result(self, step_design):
        a = fit_time_series(step_design, B=30, seed=7)
        b = fit_time_series(step_design, B=30, seed=7)
        np.testing.assert_array_equal(a.perm, b.perm)
        np.testing.assert_array_equal(a.interval_table, b.interval_table)

    def test_threads_same_result(self, step_design):
        a = fit_time_series(step_design, B=30, seed=7, n_jobs=1)
        b = fit_time_series(step_design, B=30, seed=7, n_jobs=2)
        np.testing.assert_array_equal(a.perm, b.perm)
        np.testing.assert_array_equal(a.interval_table, b.interval_table)


# ═══════════════════════════════════════════════════════════════════════
# Renaming the groups
# ═══════════════════════════════════════════════════════════════════════


class TestGroupRelabeling:
    """Renaming "A" to "Z" swaps the level order and mirrors the curve."""

    @staticmethod
    def _renamed(step_data):
        value, group, time, subject = step_data
        return value, np.where(group == "A", "Z", group), time, subject

    def test_flat_fitter_same_p_values(self, step_data, mean_fitter):
        a = fit_time_series(*step_data, fitter=mean_fitter, B=60, seed=4)
        z = fit_time_series(*self._renamed(step_data), fitter=mean_fitter, B=60, seed=4)
        assert z.info["levels"] == ("B", "Z")
        np.testing.assert_array_equal(z.perm, -a.perm)
        assert [iv.direction for iv in z.time_intervals] == [NEGATIVE]
        assert z.time_intervals[0].area == -a.time_intervals[0].area
        assert z.time_intervals[0].p_value == a.time_intervals[0].p_value

    def test_ssanova_same_p_values(self, step_data):
        a = fit_time_series(*step_data, B=40, seed=4)
        z = fit_time_series(*self._renamed(step_data), B=40, seed=4)
        a_rows = a.interval_table[np.argsort(a.interval_table[:, 0])]
        z_rows = z.interval_table[np.argsort(z.interval_table[:, 0])]
        assert a_rows.shape == z_rows.shape
        np.testing.assert_array_equal(z_rows[:, :2], a_rows[:, :2])
        np.testing.assert_allclose(z_rows[:, 2], -a_rows[:, 2], rtol=1e-6)
        np.testing.assert_array_equal(z_rows[:, 3], a_rows[:, 3])


# ═══════════════════════════════════════════════════════════════════════
# Pluggable fitters, failures, progress, cancellation
# ═══════════════════════════════════════════════════════════════════════


class TestCustomFitter:

    def test_flat_fitter(self, step_design, mean_fitter):
        res = fit_time_series(step_design, fitter=mean_fitter, B=50, seed=2)
        codes = step_design.group_codes
        diff = step_design.value[codes == 1].mean() - step_design.value[codes == 0].mean()
        assert res.backend_name == "test_mean_difference"
        assert len(res.time_intervals) == 1
        iv = res.time_intervals[0]
        assert (iv.start, iv.end) == (0.0, 9.0)
        assert iv.area == pytest.approx(9.0 * diff)
        assert res.info["fitter"] == "test_mean_difference"

    def test_failed_permutations(self, step_design, failing_fitter):
        with pytest.warns(RuntimeWarning, match="curve fit failed"):
            res = fit_time_series(step_design, fitter=failing_fitter, B=40, seed=2)
        assert res.n_failed_permutations == len(res.failed_permutations) > 0
        assert np.all(np.isnan(res.perm[list(res.failed_permutations)]))
        assert res.has_intervals
        p = res.time_intervals[0].p_value
        assert 0.0 <= p <= 1.0
        assert any("permutation fits failed" in w for w in res.warnings)
        assert "failed" in res.summary()

    def test_real_fit_failure_propagates(self, step_design):
        class Broken:
            name = "broken"

            def fit(self, design, time_points=None, include=()):
                raise ModelFitError("singular")

        with pytest.raises(ModelFitError) as exc_info:
            fit_time_series(step_design, fitter=Broken(), B=5)
        assert exc_info.value.stage == "real"

    def test_progress(self, step_design, mean_fitter):
        calls = []
        fit_time_series(
            step_design, fitter=mean_fitter, B=25, seed=0,
            progress=lambda done, total: calls.append((done, total)),
            progress_every=10,
        )
        assert calls == [(10, 25), (20, 25), (25, 25)]

    def test_cancel(self, step_design, mean_fitter):
        event = threading.Event()
        event.set()
        with pytest.raises(PermutationCancelled):
            fit_time_series(
                step_design, fitter=mean_fitter, B=25, seed=0, cancel=event
            )


# ═══════════════════════════════════════════════════════════════════════
# Argument validation
# ═══════════════════════════════════════════════════════════════════════


class TestArguments:

    def test_arrays_and_design_agree(self, step_data, step_design, mean_fitter):
        a = fit_time_series(*step_data, fitter=mean_fitter, B=10, seed=3)
        b = fit_time_series(step_design, fitter=mean_fitter, B=10, seed=3)
        np.testing.assert_array_equal(a.perm, b.perm)

    def test_top_level_export(self):
        assert pytimecourse.fit_time_series is fit_time_series

    @pytest.mark.parametrize("kwargs, match", [
        ({"C": -1.0}, "C must be"),
        ({"C": float("nan")}, "C must be"),
        ({"B": 0}, "B"),
        ({"method": "loess"}, "method"),
        ({"progress_every": 0}, "progress_every"),
    ])
    def test_invalid(self, step_design, kwargs, match):
        with pytest.raises(ValidationError, match=match):
            fit_time_series(step_design, **kwargs)

    def test_formula_and_fitter(self, step_design, mean_fitter):
        with pytest.raises(ValidationError, match="either formula or fitter"):
            fit_time_series(
                step_design, formula="value ~ time * group", fitter=mean_fitter
            )

    def test_design_with_columns(self, step_design, step_data):
        with pytest.raises(ValidationError, match="must be omitted"):
            fit_time_series(step_design, step_data[1])

    def test_missing_columns(self, step_data):
        value, group, time, _ = step_data
        with pytest.raises(ValidationError, match="required"):
            fit_time_series(value, group, time)


# ═══════════════════════════════════════════════════════════════════════
# Calibration under no effect
# ═══════════════════════════════════════════════════════════════════════


@pytest.mark.slow
class TestNullCalibration:
    """
    Share of no-effect datasets with at least one interval at p < 0.05.

    Intervals are selected from the confidence band of the same fit they
    are then tested on, so the rate sits above the nominal 5%. Measured
    rates: about 0.12 with independent noise and about 0.25 when subjects
    carry random intercepts. Each bound is the 99.9% binomial quantile
    around the measured rate.
    """

    @staticmethod
    def _false_positive_count(longitudinal, rng, n_datasets, **kwargs):
        hits = 0
        for _ in range(n_datasets):
            data = longitudinal(rng, n_per_group=5, noise=0.5, **kwargs)
            res = fit_time_series(*data, B=99, seed=int(rng.integers(1 << 31)))
            hits += len(res.significant(0.05)) > 0
        return hits

    def test_independent_noise(self, longitudinal):
        n_datasets = 40
        hits = self._false_positive_count(
            longitudinal, np.random.default_rng(2024), n_datasets
        )
        assert hits <= stats.binom.ppf(0.999, n_datasets, 0.12)

    def test_subject_random_intercepts(self, longitudinal):
        n_datasets = 40
        hits = self._false_positive_count(
            longitudinal, np.random.default_rng(2025), n_datasets, subject_sd=0.5
        )
        assert hits <= stats.binom.ppf(0.999, n_datasets, 0.25)
