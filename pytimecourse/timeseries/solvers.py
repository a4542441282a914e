"""
Solver dispatch for differential time-interval analysis.

Public API:
    fit_time_series() — detect time intervals where two groups differ,
                        with subject-level permutation p-values
    class_curves()    — fitted curve of each group on the unit time grid

Use of the method for analyses should cite:
    Talukder H, Paulson JN, Bravo HC. "Finding regions of interest in high
    throughput genomics data using smoothing splines."
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.random import SeedSequence
from numpy.typing import ArrayLike

from pytimecourse.core.compute.timing import Timer
from pytimecourse.core.datasource import TimeSeriesDesign
from pytimecourse.core.exceptions import ModelFitError, ValidationError
from pytimecourse.core.protocols import CurveFitter, ProgressCallback, CancelToken
from pytimecourse.core.result import Result
from pytimecourse.core.validation import check_choice, check_positive_int
from pytimecourse.smoothing._formula import DEFAULT_FORMULA
from pytimecourse.smoothing.solvers import SSANOVAFitter, DEFAULT_INCLUDE, ssanova
from pytimecourse.timeseries._common import GroupCurve, TimeSeriesParams
from pytimecourse.timeseries._intervals import detect_intervals
from pytimecourse.timeseries._permutation import permute_labels
from pytimecourse.timeseries._null import (
    perm_analysis, interval_areas, empirical_p_value,
)
from pytimecourse.timeseries.solution import TimeSeriesSolution

METHODS = ("ssanova",)


def _get_fitter(method: str, formula: str | None, fitter: CurveFitter | None) -> CurveFitter:
    """Select the curve fitter. Only SS-ANOVA is implemented."""
    if fitter is not None:
        if formula is not None:
            raise ValidationError(
                "pass either formula or fitter, not both; configure the "
                "formula on the fitter instead"
            )
        return fitter
    check_choice(method, METHODS, "method")
    return SSANOVAFitter(formula)


def fit_time_series(
    value: ArrayLike | TimeSeriesDesign,
    group: ArrayLike | None = None,
    time: ArrayLike | None = None,
    subject: ArrayLike | None = None,
    *,
    covariates: Mapping[str, ArrayLike] | None = None,
    formula: str | None = None,
    include: Sequence[str] = DEFAULT_INCLUDE,
    C: float = 0.0,
    B: int = 1000,
    seed: int | None = None,
    method: str = "ssanova",
    fitter: CurveFitter | None = None,
    n_jobs: int = 1,
    progress: ProgressCallback | None = None,
    progress_every: int = 100,
    cancel: CancelToken | None = None,
) -> TimeSeriesSolution:
    """
    Discover time intervals of differential abundance between two groups.

    Fits a smooth function of the group difference over time, flags the
    maximal time windows where its 95% confidence band excludes C, and
    scores every window by the area under the difference curve against
    the areas obtained after permuting group labels between subjects.

    Parameters
    ----------
    value : array-like or TimeSeriesDesign
        Response per observation (e.g. log-normalized abundance of one
        feature), or a ready design, in which case group/time/subject and
        covariates must be omitted.
    group : array-like
        Group membership per observation; exactly two levels. The
        difference curve is second level minus first level (sorted order).
    time : array-like
        Observation time, numeric.
    subject : array-like
        Subject id per observation. Labels are permuted between subjects,
        never between observations of one subject.
    covariates : dict, optional
        Extra numeric per-sample columns usable in `formula`.
    formula : str, optional
        Model formula. Default "value ~ time * group".
    include : sequence of str
        Model terms entering the difference curve.
        Default ("group", "time:group").
    C : float
        Minimum absolute value the confidence band must reach. Default 0.
    B : int
        Number of permutations. Default 1000.
    seed : int, optional
        Seed for the permutations. Fixing it makes p-values reproducible,
        independently of n_jobs.
    method : str
        Curve-fitting method. Only "ssanova" is implemented.
    fitter : CurveFitter, optional
        Custom curve fitter, replacing method/formula.
    n_jobs : int
        Worker threads for the permutation fits. Default 1.
    progress : callable, optional
        progress(done, total), called every `progress_every` permutations.
    progress_every : int
        Reporting period. Default 100.
    cancel : object with is_set(), optional
        Cooperative cancellation (e.g. threading.Event), checked before
        each permutation's fit.

    Returns
    -------
    TimeSeriesSolution
        Interval table (start, end, area, p-value), the fitted difference
        curve with standard errors, the permutation areas and the data.
        Without candidate intervals, has_intervals is False and perm is None.

    Raises
    ------
    ValidationError
        Invalid data or arguments.
    ModelFitError
        The curve could not be fitted to the observed labels.
    PermutationCancelled
        `cancel` was set during the permutation loop.

    Examples
    --------
    >>> res = fit_time_series(abundance, status, relative_time, mouse_id,
    ...                       B=1000, seed=1)
    >>> print(res.summary())
    """
    timer = Timer()
    timer.start()

    design = _as_design(value, group, time, subject, covariates)
    B = check_positive_int(B, "B")
    C = float(C)
    if not np.isfinite(C) or C < 0:
        raise ValidationError(f"C must be a finite value >= 0, got {C}")
    check_positive_int(progress_every, "progress_every")
    curve_fitter = _get_fitter(method, formula, fitter)
    include = tuple(include) if not isinstance(include, str) else (include,)

    with timer.section('fit'):
        try:
            fit = curve_fitter.fit(design, time_points=design.time_grid(), include=include)
        except ModelFitError as e:
            e.stage = 'real'
            raise

    with timer.section('intervals'):
        candidates = (
            detect_intervals(fit, C=C, positive=True)
            + detect_intervals(fit, C=C, positive=False)
        )
        intervals = tuple(iv for iv in candidates if not iv.is_degenerate)

    formula_text = getattr(curve_fitter, 'formula', None) or DEFAULT_FORMULA
    call = {
        'formula': formula_text,
        'include': fit.include,
        'C': C,
        'B': B,
        'seed': seed,
        'method': method,
        'n_jobs': n_jobs,
    }
    info = {
        'method': method,
        'fitter': curve_fitter.name,
        'call': call,
        'levels': design.levels,
        'n_observations': design.n,
        'n_subjects': design.n_subjects,
        'smoothing_parameter': fit.smoothing_parameter,
    }

    if not intervals:
        timer.stop()
        params = TimeSeriesParams(
            intervals=(),
            fit=fit,
            perm=None,
            B=B,
            C=C,
            formula=call['formula'],
            include=fit.include,
        )
        result = Result(
            params=params,
            info=info,
            timing=timer.result(),
            backend_name=curve_fitter.name,
        )
        return TimeSeriesSolution(_result=result, _design=design)

    with timer.section('observed_areas'):
        observed = interval_areas(fit.difference, fit.time_points, intervals)

    with timer.section('permutations'):
        labelings = permute_labels(design, B, SeedSequence(seed))

    with timer.section('null_fits'):
        perm, failed = perm_analysis(
            design,
            labelings,
            intervals,
            fit.time_points,
            fitter=curve_fitter,
            include=fit.include,
            n_jobs=n_jobs,
            progress=progress,
            progress_every=progress_every,
            cancel=cancel,
        )

    with timer.section('p_values'):
        scored = tuple(
            replace(
                iv,
                area=float(observed[k]),
                p_value=float(empirical_p_value(observed[k], perm[:, k])),
            )
            for k, iv in enumerate(intervals)
        )

    timer.stop()

    warn_list = []
    if failed:
        warn_list.append(
            f"{len(failed)} of {B} permutation fits failed and were excluded "
            f"from the null distribution"
        )

    params = TimeSeriesParams(
        intervals=scored,
        fit=fit,
        perm=perm,
        B=B,
        C=C,
        formula=call['formula'],
        include=fit.include,
        failed_permutations=failed,
    )
    result = Result(
        params=params,
        info=info,
        timing=timer.result(),
        backend_name=curve_fitter.name,
        warnings=tuple(warn_list),
    )
    return TimeSeriesSolution(_result=result, _design=design)


def class_curves(
    value: ArrayLike | TimeSeriesDesign,
    group: ArrayLike | None = None,
    time: ArrayLike | None = None,
    subject: ArrayLike | None = None,
    *,
    covariates: Mapping[str, ArrayLike] | None = None,
    formula: str | None = None,
    include: Sequence[str] | None = None,
) -> dict[Any, GroupCurve]:
    """
    Fitted curve of each group with standard errors.

    Fits the same model as fit_time_series() and predicts it separately
    for both group levels on the unit time grid.

    Args:
        value, group, time, subject, covariates: As in fit_time_series().
        formula: Model formula. Default "value ~ time * group".
        include: Terms to include. Default: all terms plus the intercept.

    Returns:
        Dict mapping each group level to its GroupCurve.
    """
    design = _as_design(value, group, time, subject, covariates)
    model = ssanova(design, formula)
    grid = design.time_grid()
    curves = {}
    for level in design.levels:
        fit, se = model.predict(grid, level, include)
        curves[level] = GroupCurve(level=level, fit=fit, se=se, time_points=grid)
    return curves


def _as_design(
    value: ArrayLike | TimeSeriesDesign,
    group: ArrayLike | None,
    time: ArrayLike | None,
    subject: ArrayLike | None,
    covariates: Mapping[str, ArrayLike] | None,
) -> TimeSeriesDesign:
    if isinstance(value, TimeSeriesDesign):
        if any(v is not None for v in (group, time, subject, covariates)):
            raise ValidationError(
                "group, time, subject and covariates must be omitted when "
                "passing a TimeSeriesDesign"
            )
        return value
    if group is None or time is None or subject is None:
        raise ValidationError("group, time and subject are required")
    return TimeSeriesDesign.validate(value, group, time, subject, covariates)
