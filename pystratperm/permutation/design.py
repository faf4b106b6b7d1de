"""
Design class for stratified permutation testing.

StratifiedPermutationDesign encapsulates the dataset, the declared
enumerations (groups, outcome levels), the stratification and all run
options. Labels are encoded to integer codes once here so backends only
ever see integer arrays. Immutable, validated at construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import numpy as np
from numpy.typing import NDArray

from pystratperm.core.dataset import Dataset
from pystratperm.core.exceptions import (
    ValidationError,
    InvalidDirectionError,
    DegenerateGroupingError,
)
from pystratperm.core.validation import (
    check_distinct_labels,
    check_known_labels,
    check_positive_int,
    check_open_unit_interval,
)
from pystratperm.permutation._common import VALID_DIRECTIONS, StratumKey
from pystratperm.permutation._adjust import VALID_METHODS


def _encode(column: NDArray[np.str_], labels: tuple[str, ...]) -> NDArray[np.intp]:
    """Map each value to its position in labels (all values must be known)."""
    lookup = {label: i for i, label in enumerate(labels)}
    return np.fromiter((lookup[v] for v in column), dtype=np.intp, count=len(column))


def _encode_strata(
    dataset: Dataset,
    stratify_by: tuple[str, ...],
) -> tuple[NDArray[np.intp], tuple[StratumKey, ...]]:
    """
    Cross the stratifying covariates.

    Returns:
        (codes, keys): per-row stratum code and the sorted tuple of
        stratum keys actually present in the data.
    """
    n = dataset.n_observations
    if not stratify_by:
        return np.zeros(n, dtype=np.intp), ((),)

    uniques = []
    inverses = []
    for name in stratify_by:
        u, inv = np.unique(dataset.column(name), return_inverse=True)
        uniques.append(u)
        inverses.append(inv.ravel())

    shape = tuple(len(u) for u in uniques)
    combined = np.ravel_multi_index(tuple(inverses), shape)
    present, codes = np.unique(combined, return_inverse=True)

    per_covariate = np.unravel_index(present, shape)
    keys = tuple(
        tuple(str(uniques[j][per_covariate[j][s]]) for j in range(len(stratify_by)))
        for s in range(len(present))
    )
    return codes.ravel().astype(np.intp), keys


@dataclass(frozen=True, eq=False)
class StratifiedPermutationDesign:
    """
    Frozen design for a stratified permutation test.

    Attributes:
        dataset: Source observations.
        groups: The two group labels; the difference is groups[0] - groups[1].
        levels: Ordered outcome levels.
        directions: Declared test direction per level (">=" or "<=").
            Levels without a direction can still be resampled but yield
            InvalidDirectionError when tested.
        stratify_by: Covariate names crossed to form strata (may be empty).
        strata: Stratum keys present in the data, sorted.
        group_codes, outcome_codes, stratum_codes: Integer-coded columns.
        R: Number of replicates.
        sample_size: Rows drawn with replacement per replicate, or None to
            permute the original rows without resampling.
        alpha: Significance level for the reject decision.
        min_stratum_size: Per-group size below which a result is flagged.
        permute_within_strata: Shuffle outcomes only within each stratum.
        correction: Use (count + 1) / (R + 1) instead of count / R.
        p_adjust: Multiplicity adjustment method, or None.
        seed: Seed (or SeedSequence) for the replicate streams.
    """
    dataset: Dataset
    groups: tuple[str, str]
    levels: tuple[str, ...]
    directions: dict[str, str]
    stratify_by: tuple[str, ...]
    strata: tuple[StratumKey, ...]
    group_codes: NDArray[np.intp]
    outcome_codes: NDArray[np.intp]
    stratum_codes: NDArray[np.intp]
    R: int
    sample_size: int | None
    alpha: float
    min_stratum_size: int
    permute_within_strata: bool
    correction: bool
    p_adjust: str | None
    seed: int | np.random.SeedSequence | None

    @property
    def n_observations(self) -> int:
        return self.dataset.n_observations

    @property
    def n_strata(self) -> int:
        return len(self.strata)

    @property
    def n_levels(self) -> int:
        return len(self.levels)

    @classmethod
    def for_stratified_test(
        cls,
        dataset: Dataset,
        *,
        groups: Sequence[Any],
        levels: Sequence[Any],
        directions: Mapping[Any, str] | None = None,
        R: int = 1000,
        sample_size: int | None = None,
        stratify_by: Sequence[str] = (),
        alpha: float = 0.05,
        min_stratum_size: int = 30,
        permute_within_strata: bool = False,
        correction: bool = False,
        p_adjust: str | None = None,
        seed: int | np.random.SeedSequence | None = None,
    ) -> StratifiedPermutationDesign:
        """
        Create a stratified permutation design with validation.

        Args:
            dataset: Observations to test.
            groups: Exactly two group labels, in the order that fixes the
                sign of the difference.
            levels: Every outcome level, in report order.
            directions: {level: ">=" | "<="}.
            R: Number of replicates. Must be >= 1.
            sample_size: None, or rows per bootstrap resample (>= 1).
            stratify_by: Covariate names to cross; empty for no strata.
            alpha: Significance level in (0, 1).
            min_stratum_size: Small-sample threshold per group (>= 1).
            permute_within_strata: Restrict the shuffle to each stratum.
            correction: Phipson-Smyth p-value estimator.
            p_adjust: None, "none", "bonferroni", "holm" or "BH".
            seed: Random seed.

        Returns:
            Validated StratifiedPermutationDesign.

        Raises:
            ValidationError: If configuration or labels are invalid.
            InvalidDirectionError: If a declared direction is not ">=" / "<=".
            DegenerateGroupingError: If the dataset does not contain
                exactly the two declared groups.
        """
        if not isinstance(dataset, Dataset):
            raise ValidationError(
                f"dataset must be a Dataset, got {type(dataset).__name__}"
            )

        group_labels = check_distinct_labels(groups, "groups", exact=2)
        level_labels = check_distinct_labels(levels, "levels")

        R = check_positive_int(R, "R")
        if sample_size is not None:
            sample_size = check_positive_int(sample_size, "sample_size")
        alpha = check_open_unit_interval(alpha, "alpha")
        min_stratum_size = check_positive_int(min_stratum_size, "min_stratum_size")

        if p_adjust is not None and p_adjust not in VALID_METHODS:
            raise ValidationError(
                f"p_adjust must be one of {VALID_METHODS} or None, got {p_adjust!r}"
            )

        direction_map: dict[str, str] = {}
        for level, direction in (directions or {}).items():
            level = str(level)
            if level not in level_labels:
                raise ValidationError(
                    f"directions: level {level!r} is not among the declared "
                    f"levels {list(level_labels)}"
                )
            if direction not in VALID_DIRECTIONS:
                raise InvalidDirectionError(
                    f"directions: level {level!r} has direction {direction!r}, "
                    f"expected one of {VALID_DIRECTIONS}",
                    level=level,
                    direction=direction,
                )
            direction_map[level] = direction

        if isinstance(stratify_by, str):
            stratify_by = (stratify_by,)
        stratify_by = tuple(stratify_by)
        if len(set(stratify_by)) != len(stratify_by):
            raise ValidationError(f"stratify_by: duplicate names in {list(stratify_by)}")
        for name in stratify_by:
            if name in ('group', 'outcome') or name not in dataset.covariate_names:
                raise ValidationError(
                    f"stratify_by: {name!r} is not a covariate of the dataset. "
                    f"Available: {list(dataset.covariate_names)}"
                )

        present = tuple(sorted(set(np.unique(dataset.group).tolist())))
        if set(present) != set(group_labels):
            raise DegenerateGroupingError(
                f"group: dataset must contain exactly the two declared groups "
                f"{list(group_labels)}, found {list(present)}",
                stratum=None,
                groups_present=present,
            )
        check_known_labels(dataset.outcome, level_labels, "outcome")

        stratum_codes, strata = _encode_strata(dataset, stratify_by)

        return cls(
            dataset=dataset,
            groups=group_labels,
            levels=level_labels,
            directions=direction_map,
            stratify_by=stratify_by,
            strata=strata,
            group_codes=_encode(dataset.group, group_labels),
            outcome_codes=_encode(dataset.outcome, level_labels),
            stratum_codes=stratum_codes,
            R=R,
            sample_size=sample_size,
            alpha=alpha,
            min_stratum_size=min_stratum_size,
            permute_within_strata=bool(permute_within_strata),
            correction=bool(correction),
            p_adjust=p_adjust,
            seed=seed,
        )
