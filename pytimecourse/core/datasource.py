"""
Longitudinal two-group dataset.

TimeSeriesDesign is the validated, immutable table every stage of the
interval pipeline reads: one row per observation with its value, group
label, time and subject id, plus optional numeric per-sample covariates.

The subject structure is resolved once at construction. Each row carries
the index of its subject, so relabeling a design by subject never depends
on the row order of the input table.

Usage:
    design = TimeSeriesDesign.validate(value, group, time, subject)
    design = TimeSeriesDesign.from_table(
        df, value='abundance', group='status', time='relativeTime',
        subject='mouseID',
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pytimecourse.core.exceptions import ValidationError
from pytimecourse.core.validation import (
    check_array,
    check_labels,
    check_1d,
    check_finite,
    check_consistent_length,
)

RESERVED_COLUMNS = ("value", "group", "time", "subject")


@dataclass(frozen=True)
class TimeSeriesDesign:
    """
    Validated two-group longitudinal design.

    Construct via validate() or from_table(), not directly.

    Attributes:
        value: Response, shape (n,)
        group: Raw group labels, shape (n,)
        time: Observation times, shape (n,)
        subject: Raw subject ids, shape (n,)
        covariates: Extra numeric columns by name, each shape (n,)
        levels: The two group levels, sorted. levels[1] is the contrast level.
        group_codes: 0/1 code of each row's group (index into levels)
        subjects: Unique subject ids in order of first appearance
        subject_index: Row -> position in subjects
        subject_codes: Subject -> group code, shape (n_subjects,)
        subject_first_row: Subject -> first row it appears in
    """
    value: NDArray[np.floating[Any]]
    group: NDArray
    time: NDArray[np.floating[Any]]
    subject: NDArray
    covariates: dict[str, NDArray[np.floating[Any]]]
    levels: tuple[Any, Any]
    group_codes: NDArray[np.intp]
    subjects: tuple[Any, ...]
    subject_index: NDArray[np.intp]
    subject_codes: NDArray[np.intp]
    subject_first_row: NDArray[np.intp]
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def validate(
        cls,
        value: ArrayLike,
        group: ArrayLike,
        time: ArrayLike,
        subject: ArrayLike,
        covariates: Mapping[str, ArrayLike] | None = None,
    ) -> TimeSeriesDesign:
        """
        Validate the columns of a longitudinal dataset.

        Args:
            value: Numeric response (e.g. log-normalized abundance).
            group: Group membership, exactly two distinct labels.
            time: Numeric observation times.
            subject: Subject / individual id. All rows of a subject must
                carry the same group label.
            covariates: Optional numeric per-sample columns, usable as
                additive terms in a model formula.

        Returns:
            Validated TimeSeriesDesign.

        Raises:
            ValidationError: Empty input, non-finite values, not exactly
                two group levels, a subject with more than one group label,
                or a covariate named like a reserved column.
            DimensionError: Columns of different lengths.
        """
        value_arr = check_array(value, "value").copy()
        time_arr = check_array(time, "time").copy()
        group_arr = check_labels(group, "group").copy()
        subject_arr = check_labels(subject, "subject").copy()
        check_1d(value_arr, "value")
        check_1d(time_arr, "time")
        check_consistent_length(
            value_arr, group_arr, time_arr, subject_arr,
            names=("value", "group", "time", "subject"),
        )

        n = value_arr.shape[0]
        if n == 0:
            raise ValidationError("dataset is empty (0 observations)")

        check_finite(value_arr, "value")
        check_finite(time_arr, "time")

        levels, group_codes = np.unique(group_arr, return_inverse=True)
        if len(levels) != 2:
            raise ValidationError(
                f"group: expected exactly 2 levels, got {len(levels)}: "
                f"{levels.tolist()}"
            )
        group_codes = group_codes.reshape(-1).astype(np.intp)

        subjects, subject_index, first_row = _subject_structure(subject_arr)
        subject_codes = group_codes[first_row]
        mixed = np.flatnonzero(group_codes != subject_codes[subject_index])
        if mixed.size > 0:
            offenders = sorted({subjects[i] for i in subject_index[mixed]}, key=str)
            raise ValidationError(
                f"subject: group label must be constant within a subject; "
                f"{len(offenders)} subject(s) carry both levels: "
                f"{offenders[:5]}"
            )

        cov_arrays: dict[str, NDArray[np.floating[Any]]] = {}
        for name, column in (covariates or {}).items():
            if name in RESERVED_COLUMNS:
                raise ValidationError(
                    f"covariate name {name!r} clashes with a reserved column "
                    f"{RESERVED_COLUMNS}"
                )
            arr = check_array(column, f"covariates[{name!r}]").copy()
            check_1d(arr, f"covariates[{name!r}]")
            check_consistent_length(
                value_arr, arr, names=("value", f"covariates[{name!r}]")
            )
            check_finite(arr, f"covariates[{name!r}]")
            cov_arrays[name] = arr

        return cls(
            value=value_arr,
            group=group_arr,
            time=time_arr,
            subject=subject_arr,
            covariates=cov_arrays,
            levels=(_scalar(levels[0]), _scalar(levels[1])),
            group_codes=group_codes,
            subjects=tuple(subjects),
            subject_index=subject_index,
            subject_codes=subject_codes,
            subject_first_row=first_row,
            metadata={
                'n_observations': n,
                'n_subjects': len(subjects),
                'time_range': (float(time_arr.min()), float(time_arr.max())),
            },
        )

    @classmethod
    def from_table(
        cls,
        table: Mapping[str, ArrayLike],
        *,
        value: str,
        group: str,
        time: str,
        subject: str,
        covariates: Sequence[str] = (),
    ) -> TimeSeriesDesign:
        """
        Build a design from named columns of a table.

        Any mapping of column name -> array works, including a pandas
        DataFrame.

        Raises:
            KeyError: If a named column is missing, listing what is available
        """
        def column(name: str) -> ArrayLike:
            try:
                return np.asarray(table[name])
            except KeyError:
                available = list(table.keys())
                raise KeyError(
                    f"table has no column {name!r}. Available: {available}"
                ) from None

        return cls.validate(
            column(value),
            column(group),
            column(time),
            column(subject),
            covariates={name: column(name) for name in covariates},
        )

    # === Properties ===

    @property
    def n(self) -> int:
        """Number of observations (rows)."""
        return int(self.value.shape[0])

    @property
    def n_observations(self) -> int:
        return self.n

    @property
    def n_subjects(self) -> int:
        return len(self.subjects)

    @property
    def time_range(self) -> tuple[float, float]:
        return float(self.time.min()), float(self.time.max())

    def time_grid(self) -> NDArray[np.floating[Any]]:
        """
        Unit-spaced grid from min(time), stepping by 1 while <= max(time).
        """
        lo, hi = self.time_range
        n_points = int(np.floor(hi - lo + 1e-9)) + 1
        return lo + np.arange(n_points, dtype=np.float64)

    # === Relabeling ===

    def with_group_codes(self, codes: ArrayLike) -> TimeSeriesDesign:
        """
        Private copy with the group column replaced by `codes` (0/1 per row).

        The caller is responsible for passing a labeling that is constant
        within each subject; permute_labels() produces such labelings.
        """
        codes_arr = np.asarray(codes, dtype=np.intp)
        if codes_arr.shape != self.group_codes.shape:
            raise ValidationError(
                f"codes: expected shape {self.group_codes.shape}, "
                f"got {codes_arr.shape}"
            )
        return replace(
            self,
            group=np.asarray(self.levels, dtype=self.group.dtype)[codes_arr],
            group_codes=codes_arr,
            subject_codes=codes_arr[self.subject_first_row],
        )


def _subject_structure(
    subject: NDArray,
) -> tuple[list[Any], NDArray[np.intp], NDArray[np.intp]]:
    """Unique subjects in first-appearance order, row->subject map, first rows."""
    uniq, first_idx, inverse = np.unique(
        subject, return_index=True, return_inverse=True
    )
    inverse = inverse.reshape(-1)
    order = np.argsort(first_idx, kind="stable")
    rank = np.empty_like(order)
    rank[order] = np.arange(order.shape[0])
    subjects = [_scalar(s) for s in uniq[order]]
    return subjects, rank[inverse].astype(np.intp), first_idx[order].astype(np.intp)


def _scalar(x: Any) -> Any:
    """numpy scalar -> Python scalar, anything else unchanged."""
    return x.item() if isinstance(x, np.generic) else x
