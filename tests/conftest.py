"""
pytest configuration and shared fixtures.
"""

import numpy as np
import pytest

from pytimecourse.core.datasource import TimeSeriesDesign


def make_longitudinal(
    rng,
    n_per_group=4,
    times=tuple(range(10)),
    effect=None,
    noise=0.25,
    levels=("A", "B"),
    subject_sd=0.0,
):
    """
    Two groups of subjects, every subject observed at every time.

    effect(t) is added to the second group. With subject_sd > 0 every
    subject also carries its own random intercept. Rows are ordered
    subject by subject.
    """
    value, group, time, subject = [], [], [], []
    for g, level in enumerate(levels):
        for s in range(n_per_group):
            sid = f"{level}{s}"
            offset = subject_sd * rng.standard_normal() if subject_sd > 0 else 0.0
            for t in times:
                base = np.sin(t / 3.0)
                shift = effect(t) if (effect is not None and g == 1) else 0.0
                value.append(base + offset + shift + noise * rng.standard_normal())
                group.append(level)
                time.append(float(t))
                subject.append(sid)
    return (
        np.array(value), np.array(group), np.array(time), np.array(subject)
    )


def step_effect(t):
    """3-unit difference for 4 <= t <= 7, none elsewhere."""
    return 3.0 if 4 <= t <= 7 else 0.0


@pytest.fixture
def rng():
    """Seeded random number generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def step_data(rng):
    """Two groups x 4 subjects x 10 times, step difference on [4, 7]."""
    return make_longitudinal(rng, effect=step_effect)


@pytest.fixture
def step_design(step_data):
    return TimeSeriesDesign.validate(*step_data)


@pytest.fixture
def mirrored_design(rng):
    """Both groups carry exactly the same values: no group effect at all."""
    value, group, time, subject = make_longitudinal(rng, n_per_group=3)
    n_half = value.shape[0] // 2
    value[n_half:] = value[:n_half]
    return TimeSeriesDesign.validate(value, group, time, subject)


@pytest.fixture(scope="session")
def longitudinal():
    """The make_longitudinal() factory, for module-scoped fixtures."""
    return make_longitudinal
