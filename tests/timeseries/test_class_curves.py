"""
Tests for per-group fitted curves.
"""

import numpy as np
import pytest

from pytimecourse.core.exceptions import ValidationError
from pytimecourse.smoothing import SSANOVAFitter
from pytimecourse.timeseries import GroupCurve, class_curves


class TestClassCurves:

    def test_one_curve_per_level(self, step_design):
        curves = class_curves(step_design)
        assert set(curves) == {"A", "B"}
        for level, curve in curves.items():
            assert isinstance(curve, GroupCurve)
            assert curve.level == level
            np.testing.assert_array_equal(curve.time_points, np.arange(10.0))
            assert curve.fit.shape == curve.se.shape == (10,)
            assert np.all(curve.se > 0)

    def test_curves_differ_by_twice_the_contrast(self, step_design):
        curves = class_curves(step_design)
        contrast = SSANOVAFitter().fit(step_design)
        np.testing.assert_allclose(
            curves["B"].fit - curves["A"].fit, contrast.difference, atol=1e-8
        )

    def test_from_arrays(self, step_data):
        curves = class_curves(*step_data)
        assert set(curves) == {"A", "B"}

    def test_include_subset(self, step_design):
        curves = class_curves(step_design, include=("group", "time:group"))
        np.testing.assert_allclose(curves["A"].fit, -curves["B"].fit, atol=1e-10)

    def test_unknown_include(self, step_design):
        with pytest.raises(ValidationError):
            class_curves(step_design, include=("nope",))
