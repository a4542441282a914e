"""
Reproducing kernels for smoothing-spline ANOVA.

Cubic spline on [0, 1] (Gu, 2013, Sec. 2.3) and the nominal kernel for a
factor with sum-to-zero side condition. These are the same building blocks
gss::ssanova assembles for `y ~ x * f` with x numeric and f a factor.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray


def k1(x: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """Scaled Bernoulli polynomial k1(x) = x - 1/2."""
    return x - 0.5


def k2(x: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """k2(x) = (k1(x)^2 - 1/12) / 2."""
    k = k1(x)
    return (k * k - 1.0 / 12.0) / 2.0


def k4(x: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """k4(x) = (k1(x)^4 - k1(x)^2 / 2 + 7/240) / 24."""
    k = k1(x)
    k_sq = k * k
    return (k_sq * k_sq - k_sq / 2.0 + 7.0 / 240.0) / 24.0


def cubic_rk(
    s: NDArray[np.floating[Any]],
    t: NDArray[np.floating[Any]],
) -> NDArray[np.floating[Any]]:
    """
    Cubic-spline reproducing kernel on [0, 1].

    R(s, t) = k2(s) k2(t) - k4(|s - t|), evaluated for all pairs.

    Returns:
        Matrix of shape (len(s), len(t))
    """
    return np.outer(k2(s), k2(t)) - k4(np.abs(s[:, None] - t[None, :]))


def linear_rk(
    s: NDArray[np.floating[Any]],
    t: NDArray[np.floating[Any]],
) -> NDArray[np.floating[Any]]:
    """Kernel of the null-space function k1: k1(s) k1(t)."""
    return np.outer(k1(s), k1(t))


def nominal_rk(a: NDArray[np.intp], b: NDArray[np.intp]) -> NDArray[np.floating[Any]]:
    """
    Nominal-factor kernel for two levels: 1{a == b} - 1/2.

    Functions in this space sum to zero over the levels, so the level-2
    effect is the negative of the level-1 effect.
    """
    return (a[:, None] == b[None, :]).astype(np.float64) - 0.5
