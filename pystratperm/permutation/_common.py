"""
Common data structures for stratified permutation testing.

NullDistribution and StratifiedTestParams are the parameter payloads
wrapped by Result[P] and exposed through Solution classes. PValueResult
is one row of the final table.

Array axes used throughout:
    R: replicates
    S: strata (one stratum, key (), when unstratified)
    2: groups, in declared order
    L: outcome levels, in declared order
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import numpy as np
from numpy.typing import NDArray


GREATER_EQUAL = ">="
LESS_EQUAL = "<="
VALID_DIRECTIONS = (GREATER_EQUAL, LESS_EQUAL)

StratumKey = tuple[str, ...]


@dataclass(frozen=True, eq=False)
class NullDistribution:
    """
    Parameter payload for build_null_distribution().

    - observed_*: computed once on the full, un-resampled dataset
    - replicate_*: each replicate's rows with their true outcomes
    - shuffled_*: the same rows with the outcome column permuted
    - *_diff: proportion(groups[0]) - proportion(groups[1]) per level
    - empty_group: True where a group has no rows in a (replicate, stratum);
      proportions there are NaN
    """
    groups: tuple[str, str]
    levels: tuple[str, ...]
    stratify_by: tuple[str, ...]
    strata: tuple[StratumKey, ...]
    group_counts: NDArray[np.int64]                     # shape (S, 2)
    observed_proportions: NDArray[np.floating[Any]]     # shape (S, 2, L)
    observed_diff: NDArray[np.floating[Any]]            # shape (S, L)
    replicate_proportions: NDArray[np.floating[Any]]    # shape (R, S, 2, L)
    shuffled_proportions: NDArray[np.floating[Any]]     # shape (R, S, 2, L)
    replicate_diff: NDArray[np.floating[Any]]           # shape (R, S, L)
    shuffled_diff: NDArray[np.floating[Any]]            # shape (R, S, L)
    empty_group: NDArray[np.bool_]                      # shape (R, S)
    R: int
    sample_size: int | None
    permute_within_strata: bool


@dataclass(frozen=True)
class PValueResult:
    """
    One-sided Monte-Carlo p-value for a (stratum, outcome level).

    - p_value: count / R, or (count + 1) / (R + 1) with correction
    - conf_int: Clopper-Pearson interval for the Monte-Carlo estimate
    - p_adjusted: multiplicity-adjusted p-value, None when not adjusted
    - small_sample: fewer than min_stratum_size observations in a group
    """
    stratum: StratumKey
    level: str
    direction: str
    observed_diff: float
    p_value: float
    count: int
    R: int
    n_per_group: tuple[int, int]
    small_sample: bool
    alpha: float
    conf_int: tuple[float, float]
    p_adjusted: float | None = None

    @property
    def reject(self) -> bool:
        """Reject the null at alpha (using the adjusted p-value if present)."""
        p = self.p_value if self.p_adjusted is None else self.p_adjusted
        return p < self.alpha


@dataclass(frozen=True, eq=False)
class StratifiedTestParams:
    """
    Parameter payload for stratified_permutation_test().

    errors maps a stratum key, or (stratum key, level) for direction
    problems, to the exception that prevented evaluation.
    """
    results: tuple[PValueResult, ...]
    errors: dict[Any, Exception] = field(default_factory=dict)
    alpha: float = 0.05
    min_stratum_size: int = 30
    p_adjust: str | None = None
    correction: bool = False
