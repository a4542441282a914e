"""
Subject-level label permutations.

Under the null hypothesis the group labels are exchangeable between
subjects, not between observations: all observations of a subject are
repeated measures of the same individual. Each labeling therefore permutes
the subject-level labels and maps them back onto rows through the
subject index of every row, whatever the row order of the dataset.
"""

from __future__ import annotations

import numpy as np
from numpy.random import SeedSequence, default_rng
from numpy.typing import NDArray

from pytimecourse.core.datasource import TimeSeriesDesign
from pytimecourse.core.validation import check_positive_int


def permute_labels(
    design: TimeSeriesDesign,
    B: int,
    seed: int | SeedSequence | None = None,
) -> NDArray[np.intp]:
    """
    Draw B subject-level relabelings of the design.

    Args:
        design: Validated design.
        B: Number of labelings.
        seed: Base seed. Labeling b is drawn from the b-th child of
            SeedSequence(seed), so the batch is reproducible and each
            labeling is independent of how many others are drawn.

    Returns:
        Array of shape (B, n) of 0/1 group codes. Row b gives every
        observation the label its subject received in permutation b.
    """
    B = check_positive_int(B, "B")
    root = seed if isinstance(seed, SeedSequence) else SeedSequence(seed)
    subject_codes = design.subject_codes
    labelings = np.empty((B, design.n), dtype=np.intp)
    for b, child in enumerate(root.spawn(B)):
        shuffled = default_rng(child).permutation(subject_codes)
        labelings[b] = shuffled[design.subject_index]
    return labelings


def subject_labels(design: TimeSeriesDesign, labeling: NDArray[np.intp]) -> NDArray[np.intp]:
    """Collapse a row labeling back to one code per subject."""
    return np.asarray(labeling)[design.subject_first_row]
