"""
Null distribution of interval areas under subject-level permutations.

For every labeling the curve is re-fitted and the area under the permuted
difference curve is integrated over each candidate interval. Fits are
independent of one another, so they run on a joblib thread pool; results
are placed by permutation index, which keeps the matrix identical for any
number of workers.

A permutation whose fit fails is not retried: its row is recorded as NaN
and the p-values use the remaining permutations.
"""

from __future__ import annotations

import warnings
from typing import Any, Sequence

import numpy as np
from numpy.typing import NDArray
from joblib import Parallel, delayed

from pytimecourse.core.compute.integrate import trapz
from pytimecourse.core.datasource import TimeSeriesDesign
from pytimecourse.core.exceptions import ModelFitError, PermutationCancelled, ValidationError
from pytimecourse.core.protocols import CurveFitter, ProgressCallback, CancelToken
from pytimecourse.core.validation import check_positive_int
from pytimecourse.timeseries._common import CandidateInterval


class _Cancelled:
    __slots__ = ()

    def __repr__(self):
        return "<CANCELLED>"


_CANCELLED = _Cancelled()


def interval_areas(
    difference: NDArray[np.floating[Any]],
    time_points: NDArray[np.floating[Any]],
    intervals: Sequence[CandidateInterval],
) -> NDArray[np.floating[Any]]:
    """Area under `difference` over each interval's slice of the grid."""
    areas = np.empty(len(intervals), dtype=np.float64)
    for k, iv in enumerate(intervals):
        sl = slice(iv.start_index, iv.end_index + 1)
        areas[k] = trapz(time_points[sl], difference[sl])
    return areas


def perm_analysis(
    design: TimeSeriesDesign,
    labelings: NDArray[np.intp],
    intervals: Sequence[CandidateInterval],
    time_points: NDArray[np.floating[Any]],
    *,
    fitter: CurveFitter,
    include: Sequence[str],
    n_jobs: int = 1,
    progress: ProgressCallback | None = None,
    progress_every: int = 100,
    cancel: CancelToken | None = None,
) -> tuple[NDArray[np.floating[Any]], tuple[int, ...]]:
    """
    Permutation areas for every candidate interval.

    Args:
        design: Design with the observed labels (read only).
        labelings: (B, n) group codes from permute_labels().
        intervals: Candidate intervals, indexed on `time_points`.
        time_points: Grid the observed fit was predicted on.
        fitter: CurveFitter used for every re-fit.
        include: Terms included in the prediction.
        n_jobs: Worker threads (joblib semantics; -1 = all cores).
        progress: Called as progress(done, B) every `progress_every`
            permutations and once at the end.
        progress_every: Reporting period, in permutations.
        cancel: Checked before each permutation's fit. Once set, no new fit
            starts and PermutationCancelled is raised.

    Returns:
        (areas, failed): areas has shape (B, K) with NaN rows for failed
        fits and is read-only; failed lists the failed permutation indices.

    Raises:
        PermutationCancelled: If `cancel` was set before all permutations ran.
    """
    labelings = np.asarray(labelings)
    if labelings.ndim != 2 or labelings.shape[1] != design.n:
        raise ValidationError(
            f"labelings: expected shape (B, {design.n}), got {labelings.shape}"
        )
    progress_every = check_positive_int(progress_every, "progress_every")
    if n_jobs == 0:
        raise ValidationError("n_jobs must be non-zero")

    B = labelings.shape[0]
    grid = np.asarray(time_points, dtype=np.float64)
    areas = np.full((B, len(intervals)), np.nan, dtype=np.float64)

    def _one_perm(b: int):
        if cancel is not None and cancel.is_set():
            return _CANCELLED
        permuted = design.with_group_codes(labelings[b])
        try:
            fit = fitter.fit(permuted, time_points=grid, include=include)
        except ModelFitError as e:
            e.stage = 'permutation'
            e.permutation = b
            return e
        return interval_areas(fit.difference, grid, intervals)

    failed: list[int] = []
    done = 0
    tasks = Parallel(n_jobs=n_jobs, prefer="threads", return_as="generator")(
        delayed(_one_perm)(b) for b in range(B)
    )
    for b, out in enumerate(tasks):
        if out is _CANCELLED or (cancel is not None and cancel.is_set()):
            _abandon(tasks)
            raise PermutationCancelled(
                f"permutation analysis cancelled after {done} of {B} permutations",
                completed=done,
                total=B,
            )
        if isinstance(out, ModelFitError):
            failed.append(b)
            warnings.warn(
                f"Permutation {b}: curve fit failed ({out}); area recorded as NaN",
                RuntimeWarning,
                stacklevel=2,
            )
        else:
            areas[b] = out
        done += 1
        if progress is not None and (done % progress_every == 0 or done == B):
            progress(done, B)

    areas.flags.writeable = False
    return areas, tuple(failed)


def _abandon(tasks) -> None:
    """Stop a joblib output generator, dropping results nobody will read."""
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=UserWarning, module=r"joblib\.parallel")
        tasks.close()


def empirical_p_value(observed: float, null_areas: NDArray[np.floating[Any]]) -> float:
    """
    One-sided permutation p-value in the direction of the observed area.

    - observed > 0: 1 - #(null < observed) / B
    - observed < 0: #(null <= observed) / B
    - observed == 0: 1.0

    A null area equal to the observed one counts as at least as extreme in
    either direction, so swapping the group labels only mirrors the areas
    and leaves the p-value unchanged.

    Only finite null areas count; B is their number. NaN if there are none.
    """
    null = np.asarray(null_areas, dtype=np.float64)
    null = null[np.isfinite(null)]
    B = null.shape[0]
    if B == 0:
        return float("nan")
    if observed > 0:
        return 1.0 - np.count_nonzero(null < observed) / B
    if observed < 0:
        return np.count_nonzero(null <= observed) / B
    return 1.0
