"""
Smoothing-spline ANOVA fits for two-group longitudinal data.

Public API:
    ssanova()      — fit an SS-ANOVA model to a TimeSeriesDesign
    SSANOVAModel   — fitted model with predict() and summary()
    SSANOVAFitter  — CurveFitter producing the group contrast curve

The model follows the gss::ssanova construction: numeric variables are
rescaled to [0, 1] and modelled with the cubic-spline kernel, the group
factor with the nominal kernel, and the fitted function is

    eta(x) = S(x) d + sum_j theta_j R_j(x, knots) c

minimizing (1/n) ||y - eta||^2 + lambda c' Q c. The smoothing parameter
is selected by generalized cross-validation; theta_j are fixed by trace
equalization of the kernel pieces on the knots.
"""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy import linalg
from scipy.optimize import minimize_scalar

from pytimecourse.core.datasource import TimeSeriesDesign
from pytimecourse.core.exceptions import ModelFitError, ValidationError
from pytimecourse.core.result import Result
from pytimecourse.core.compute.timing import Timer
from pytimecourse.core.validation import check_array, check_1d, check_finite, check_min_samples
from pytimecourse.smoothing._common import SSANOVAParams, FitResult
from pytimecourse.smoothing._formula import (
    ModelFormula, parse_formula, canonical_term, FACTOR, INTERCEPT,
)
from pytimecourse.smoothing._kernels import (
    k1, cubic_rk, linear_rk, nominal_rk,
)

DEFAULT_INCLUDE = ("group", "time:group")
DEFAULT_LOG_LAMBDA_BOUNDS = (-10.0, 3.0)

# Relative ridge added to the kernel block so that directions the
# penalty does not see (rank-deficient Q) stay identifiable.
_KERNEL_JITTER = 1e-10


class SSANOVAModel:
    """Fitted smoothing-spline ANOVA model.

    Holds the coefficient estimates and their Bayesian covariance, and
    predicts any subset of model terms with standard errors.
    """

    def __init__(
        self,
        _result: Result[SSANOVAParams],
        _design: TimeSeriesDesign,
        _formula: ModelFormula,
        _scaling: dict[str, tuple[float, float]],
    ):
        self._result = _result
        self._design = _design
        self._formula = _formula
        self._scaling = _scaling

    @property
    def params(self) -> SSANOVAParams:
        return self._result.params

    @property
    def formula(self) -> str:
        return self._formula.text

    @property
    def terms(self) -> tuple[str, ...]:
        """Canonical model terms (the intercept '1' is implicit)."""
        return self._formula.terms

    @property
    def levels(self) -> tuple[Any, Any]:
        return self._design.levels

    @property
    def smoothing_parameter(self) -> float:
        """log10(n * lambda) selected by GCV."""
        return self.params.log10_n_lambda

    @property
    def residual_variance(self) -> float:
        return self.params.residual_variance

    @property
    def effective_df(self) -> float:
        return self.params.effective_df

    @property
    def gcv(self) -> float:
        return self.params.gcv

    @property
    def fitted_values(self) -> NDArray:
        return self.params.fitted_values

    @property
    def residuals(self) -> NDArray:
        return self.params.residuals

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

    def predict(
        self,
        time: ArrayLike,
        group_level: Any = None,
        include: Sequence[str] | None = None,
        *,
        se: bool = True,
        covariates: dict[str, float] | None = None,
    ) -> tuple[NDArray, NDArray] | NDArray:
        """
        Predict selected model terms at the given times for one group level.

        Args:
            time: Prediction times, within the observed time range.
            group_level: Group level to predict for. Default: the second
                level (the contrast level).
            include: Terms to include, e.g. ('group', 'time:group') for
                the group contrast or ('1', 'time', 'group', 'time:group')
                for the full curve. Default: all terms plus intercept.
            se: Also return Bayesian standard errors.
            covariates: Values of numeric covariates at which covariate
                terms are evaluated. Default: their sample means.

        Returns:
            (fit, se) if se is True, else fit.

        Raises:
            ValidationError: Unknown include term or group level.
        """
        params = self.params
        t = check_array(time, "time").ravel()
        check_finite(t, "time")

        if group_level is None:
            code = 1
        elif group_level in self.levels:
            code = self.levels.index(group_level)
        else:
            raise ValidationError(
                f"group_level: expected one of {self.levels}, got {group_level!r}"
            )

        if include is None:
            include_set = {INTERCEPT, *self.terms}
        else:
            include_set = set(_check_include(include, self.terms))

        unit = {'time': self._to_unit('time', t)}
        for name in self._formula.numeric_variables:
            if name == 'time':
                continue
            if covariates is not None and name in covariates:
                raw = np.full(t.shape[0], float(covariates[name]))
            else:
                raw = np.full(t.shape[0], float(np.mean(self._design.covariates[name])))
            unit[name] = self._to_unit(name, raw)
        unit[FACTOR] = np.full(t.shape[0], code, dtype=np.intp)

        S0 = _null_space(params.null_terms, unit, t.shape[0])
        for j, term in enumerate(params.null_terms):
            if term not in include_set:
                S0[:, j] = 0.0

        R0 = np.zeros((t.shape[0], params.c.shape[0]), dtype=np.float64)
        for theta_j, piece in zip(params.theta, params.rk_pieces):
            if piece[0] in include_set:
                R0 += theta_j * _piece_matrix(piece, unit, params.knots)

        x0 = np.hstack([S0, R0])
        fit = x0 @ np.concatenate([params.d, params.c])
        if not se:
            return fit

        var = np.einsum('ij,jk,ik->i', x0, params.covariance, x0)
        return fit, np.sqrt(np.maximum(var, 0.0))

    def _to_unit(self, name: str, raw: NDArray) -> NDArray:
        lo, hi = self._scaling[name]
        return (raw - lo) / (hi - lo)

    def summary(self) -> str:
        """Short model description, in the spirit of print.ssanova."""
        p = self.params
        lines = [
            "\nSMOOTHING SPLINE ANOVA",
            "",
            f"Formula: {self.formula}",
            f"Terms: {', '.join(self.terms)}",
            f"Observations: {self._design.n}   Knots: {p.c.shape[0]}",
            f"log10(n*lambda): {p.log10_n_lambda:.4f}   GCV: {p.gcv:.6g}",
            f"Equivalent degrees of freedom: {p.effective_df:.3f}",
            f"Estimated residual variance: {p.residual_variance:.6g}",
            "",
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"SSANOVAModel(formula={self.formula!r}, n={self._design.n}, "
            f"log10_n_lambda={self.smoothing_parameter:.3g})"
        )


def ssanova(
    design: TimeSeriesDesign,
    formula: str | None = None,
    *,
    max_knots: int | None = None,
    log_lambda_bounds: tuple[float, float] = DEFAULT_LOG_LAMBDA_BOUNDS,
) -> SSANOVAModel:
    """Fit a smoothing-spline ANOVA model.

    Args:
        design: Validated two-group design.
        formula: Model formula; default "value ~ time * group".
        max_knots: Maximum number of knots. Default
            max(30, ceil(10 * n^(2/9))), as gss.
        log_lambda_bounds: Search interval for log10(n * lambda).

    Returns:
        SSANOVAModel.

    Raises:
        ValidationError: Bad formula, zero-range numeric variable, too few
            observations.
        ModelFitError: The penalized system is singular or GCV has no
            finite value on the search interval.

    Examples:
        >>> model = ssanova(design)
        >>> fit, se = model.predict(design.time_grid(), include=('group', 'time:group'))
    """
    timer = Timer()
    timer.start()

    n = design.n
    check_min_samples(design.value, 3, "value")
    lo_b, hi_b = log_lambda_bounds
    if not lo_b < hi_b:
        raise ValidationError(
            f"log_lambda_bounds must be increasing, got {log_lambda_bounds}"
        )

    model = parse_formula(formula, ("time",) + tuple(design.covariates))

    with timer.section('setup'):
        scaling: dict[str, tuple[float, float]] = {}
        unit: dict[str, NDArray] = {}
        for name in ("time",) + model.numeric_variables:
            if name in scaling:
                continue
            raw = design.time if name == "time" else design.covariates[name]
            lo, hi = float(raw.min()), float(raw.max())
            if hi - lo <= 0.0:
                raise ValidationError(
                    f"{name}: all values equal ({lo}); cannot fit a smooth term"
                )
            scaling[name] = (lo, hi)
            unit[name] = (raw - lo) / (hi - lo)
        unit[FACTOR] = design.group_codes

        variables = model.numeric_variables + ((FACTOR,) if model.uses_group else ())
        if max_knots is None:
            max_knots = max(30, int(np.ceil(10.0 * n ** (2.0 / 9.0))))
        knots = _select_knots(unit, variables, max_knots)

        null_terms = _null_terms(model.terms)
        S = _null_space(null_terms, unit, n)
        pieces = _rk_pieces(model.terms)

        R = np.zeros((n, _n_knots(knots)), dtype=np.float64)
        Q = np.zeros((_n_knots(knots), _n_knots(knots)), dtype=np.float64)
        theta = np.empty(len(pieces), dtype=np.float64)
        for j, piece in enumerate(pieces):
            Q_j = _piece_matrix(piece, knots, knots)
            tr = float(np.trace(Q_j))
            theta[j] = 1.0 / tr if tr > 1e-12 else 1.0
            Q += theta[j] * Q_j
            R += theta[j] * _piece_matrix(piece, unit, knots)

        X = np.hstack([S, R])
        y = design.value
        XtX = X.T @ X
        Xty = X.T @ y
        m = S.shape[1]
        P = np.zeros_like(XtX)
        P[m:, m:] = Q
        jitter = np.zeros(XtX.shape[0])
        jitter[m:] = _KERNEL_JITTER * max(1.0, float(np.trace(XtX)) / XtX.shape[0])

    def _solve(log10_nlam: float):
        M = XtX + (10.0 ** log10_nlam) * P + np.diag(jitter)
        cho = linalg.cho_factor(M, lower=True, check_finite=True)
        b = linalg.cho_solve(cho, Xty)
        trace_a = float(np.trace(linalg.cho_solve(cho, XtX)))
        resid = y - X @ b
        rss = float(resid @ resid)
        return cho, b, trace_a, resid, rss

    def _gcv(log10_nlam: float) -> float:
        try:
            _, _, trace_a, _, rss = _solve(log10_nlam)
        except (linalg.LinAlgError, ValueError):
            return np.inf
        denom = n - trace_a
        if denom <= 0.0:
            return np.inf
        return n * rss / (denom * denom)

    with timer.section('gcv_search'):
        opt = minimize_scalar(
            _gcv, bounds=(lo_b, hi_b), method='bounded',
            options={'xatol': 1e-3},
        )
        if not np.isfinite(opt.fun):
            raise ModelFitError(
                "GCV has no finite value on the smoothing-parameter interval "
                f"{log_lambda_bounds}",
                smoothing_parameter=float(opt.x),
            )

    with timer.section('final_solve'):
        log10_nlam = float(opt.x)
        try:
            cho, b, trace_a, resid, rss = _solve(log10_nlam)
        except (linalg.LinAlgError, ValueError) as e:
            raise ModelFitError(
                f"penalized system is singular at log10(n*lambda)={log10_nlam:.3f}: {e}",
                smoothing_parameter=log10_nlam,
            ) from e
        sigma_sq = rss / (n - trace_a)
        covariance = sigma_sq * linalg.cho_solve(cho, np.eye(XtX.shape[0]))
        if not (np.all(np.isfinite(b)) and np.all(np.isfinite(covariance))):
            raise ModelFitError(
                "non-finite coefficients in SS-ANOVA fit",
                smoothing_parameter=log10_nlam,
            )

    timer.stop()

    warn_list = []
    if np.isclose(log10_nlam, lo_b, atol=1e-2) or np.isclose(log10_nlam, hi_b, atol=1e-2):
        warn_list.append(
            f"Smoothing parameter at the boundary of the search interval "
            f"(log10(n*lambda)={log10_nlam:.3f})"
        )

    params = SSANOVAParams(
        d=b[:m],
        c=b[m:],
        null_terms=null_terms,
        rk_pieces=pieces,
        theta=theta,
        knots=knots,
        covariance=covariance,
        log10_n_lambda=log10_nlam,
        residual_variance=float(sigma_sq),
        effective_df=trace_a,
        gcv=float(opt.fun),
        fitted_values=y - resid,
        residuals=resid,
    )

    result = Result(
        params=params,
        info={
            'method': 'ssanova',
            'formula': model.text,
            'terms': model.terms,
            'n': n,
            'n_knots': _n_knots(knots),
            'gcv_evaluations': int(getattr(opt, 'nfev', 0)),
        },
        timing=timer.result(),
        backend_name='cpu_ssanova',
        warnings=tuple(warn_list),
    )
    return SSANOVAModel(result, design, model, scaling)


class SSANOVAFitter:
    """
    CurveFitter backed by ssanova().

    Fits the model and predicts the group contrast on the unit time grid.
    Holds configuration only, so one instance can serve concurrent fits.
    """

    def __init__(
        self,
        formula: str | None = None,
        *,
        max_knots: int | None = None,
        log_lambda_bounds: tuple[float, float] = DEFAULT_LOG_LAMBDA_BOUNDS,
    ):
        if formula is not None and not isinstance(formula, str):
            raise ValidationError(
                f"formula must be a string, got {type(formula).__name__}"
            )
        if max_knots is not None and max_knots < 2:
            raise ValidationError(f"max_knots must be >= 2, got {max_knots}")
        self.formula = formula
        self.max_knots = max_knots
        self.log_lambda_bounds = log_lambda_bounds

    @property
    def name(self) -> str:
        return 'cpu_ssanova'

    def fit(
        self,
        design: TimeSeriesDesign,
        time_points: ArrayLike | None = None,
        include: Sequence[str] = DEFAULT_INCLUDE,
    ) -> FitResult:
        """Fit the model and predict the included terms at group level 2."""
        model = ssanova(
            design,
            self.formula,
            max_knots=self.max_knots,
            log_lambda_bounds=self.log_lambda_bounds,
        )
        if time_points is None:
            grid = design.time_grid()
        else:
            grid = check_array(time_points, "time_points")
            check_1d(grid, "time_points")
        include = _check_include(include, model.terms)
        fit, se = model.predict(grid, design.levels[1], include)
        return FitResult(
            fit=fit,
            se=se,
            time_points=grid,
            include=include,
            smoothing_parameter=model.smoothing_parameter,
            residual_variance=model.residual_variance,
            effective_df=model.effective_df,
        )

    def __repr__(self) -> str:
        formula = self.formula or "value ~ time * group"
        return f"SSANOVAFitter(formula={formula!r})"


# ---------------------------------------------------------------------------
# Model matrix helpers
# ---------------------------------------------------------------------------

def _check_include(include: Sequence[str], terms: Sequence[str]) -> tuple[str, ...]:
    if isinstance(include, str):
        include = (include,)
    allowed = (INTERCEPT,) + tuple(terms)
    out = []
    for term in include:
        canon = canonical_term(term)
        if canon not in allowed:
            raise ValidationError(
                f"include term {term!r} is not in the model. Available: {allowed}"
            )
        if canon not in out:
            out.append(canon)
    return tuple(out)


def _null_terms(terms: Sequence[str]) -> tuple[str, ...]:
    """Owner of each null-space column: intercept, then one k1 per numeric main effect."""
    return (INTERCEPT,) + tuple(t for t in terms if ":" not in t and t != FACTOR)


def _null_space(null_terms: Sequence[str], unit: dict[str, NDArray], n: int) -> NDArray:
    S = np.empty((n, len(null_terms)), dtype=np.float64)
    for j, term in enumerate(null_terms):
        S[:, j] = 1.0 if term == INTERCEPT else k1(unit[term])
    return S


def _rk_pieces(terms: Sequence[str]) -> tuple[tuple[str, str, str], ...]:
    """Kernel pieces (term, kind, variable) contributed by each model term."""
    pieces = []
    for term in terms:
        if term == FACTOR:
            pieces.append((term, 'nominal', FACTOR))
        elif ":" in term:
            var = term.split(":")[0]
            pieces.append((term, 'linear*nominal', var))
            pieces.append((term, 'cubic*nominal', var))
        else:
            pieces.append((term, 'cubic', term))
    return tuple(pieces)


def _piece_matrix(
    piece: tuple[str, str, str],
    a: dict[str, NDArray],
    b: dict[str, NDArray],
) -> NDArray:
    _, kind, var = piece
    if kind == 'nominal':
        return nominal_rk(a[FACTOR], b[FACTOR])
    if kind == 'cubic':
        return cubic_rk(a[var], b[var])
    if kind == 'linear*nominal':
        return linear_rk(a[var], b[var]) * nominal_rk(a[FACTOR], b[FACTOR])
    if kind == 'cubic*nominal':
        return cubic_rk(a[var], b[var]) * nominal_rk(a[FACTOR], b[FACTOR])
    raise ValueError(f"Unknown kernel kind: {kind!r}")


def _select_knots(
    unit: dict[str, NDArray],
    variables: Sequence[str],
    max_knots: int,
) -> dict[str, NDArray]:
    """Unique covariate rows, thinned evenly when there are more than max_knots."""
    Z = np.column_stack([unit[v].astype(np.float64) for v in variables])
    rows = np.unique(Z, axis=0)
    if rows.shape[0] > max_knots:
        keep = np.unique(np.round(np.linspace(0, rows.shape[0] - 1, max_knots)).astype(int))
        rows = rows[keep]
    knots = {}
    for j, v in enumerate(variables):
        knots[v] = rows[:, j].astype(np.intp) if v == FACTOR else rows[:, j]
    return knots


def _n_knots(knots: dict[str, NDArray]) -> int:
    return int(next(iter(knots.values())).shape[0])
