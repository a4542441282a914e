"""
Fitters used to exercise the permutation machinery without SS-ANOVA.
"""

import numpy as np
import pytest

from pytimecourse.core.exceptions import ModelFitError
from pytimecourse.smoothing import FitResult


class MeanDifferenceFitter:
    """Flat contrast curve: half the difference of the group means."""

    name = "test_mean_difference"

    def fit(self, design, time_points=None, include=("group", "time:group")):
        grid = design.time_grid() if time_points is None else np.asarray(time_points)
        codes = design.group_codes
        diff = design.value[codes == 1].mean() - design.value[codes == 0].mean()
        return FitResult(
            fit=np.full(grid.shape[0], diff / 2.0),
            se=np.zeros(grid.shape[0]),
            time_points=grid,
            include=tuple(include),
        )


class FirstSubjectFailsFitter(MeanDifferenceFitter):
    """Fails whenever the first subject is labeled with the second level."""

    name = "test_failing"

    def fit(self, design, time_points=None, include=("group", "time:group")):
        if design.subject_codes[0] == 1:
            raise ModelFitError("singular system")
        return super().fit(design, time_points, include)


@pytest.fixture
def mean_fitter():
    return MeanDifferenceFitter()


@pytest.fixture
def failing_fitter():
    return FirstSubjectFailsFitter()
