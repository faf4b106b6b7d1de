"""
One-sided Monte-Carlo p-values from a stratified null distribution.

check_stratum() and tail_p_value() are the two halves of
compute_p_value(): the first decides whether a stratum can be evaluated
at all, the second compares the observed difference against the
shuffled replicates for one level.
"""

from __future__ import annotations

import numpy as np
from scipy import stats

from pystratperm.core.exceptions import (
    InsufficientDataError,
    InvalidDirectionError,
    DegenerateGroupingError,
)
from pystratperm.permutation._common import (
    GREATER_EQUAL,
    VALID_DIRECTIONS,
    NullDistribution,
    PValueResult,
)

# Relative tolerance; also the absolute floor for differences near zero
TIE_TOLERANCE = 1e-12


def tail_count(shuffled: np.ndarray, observed: float, direction: str) -> int:
    """
    Number of shuffled differences at least as extreme as observed.

    Differences of equal rationals can disagree in the last ulp, so values
    within TIE_TOLERANCE of observed count as ties.
    """
    ties = np.isclose(shuffled, observed, rtol=TIE_TOLERANCE, atol=TIE_TOLERANCE)
    if direction == GREATER_EQUAL:
        beyond = shuffled >= observed
    else:
        beyond = shuffled <= observed
    return int(np.sum(beyond | ties))


def check_stratum(null: NullDistribution, s: int) -> None:
    """
    Verify stratum s can be tested.

    Raises:
        DegenerateGroupingError: A group is absent from the stratum slice
            of the original data.
        InsufficientDataError: A group is absent from the stratum in at
            least one bootstrap replicate.
    """
    key = null.strata[s]
    counts = tuple(int(c) for c in null.group_counts[s])

    if min(counts) == 0:
        present = tuple(g for g, c in zip(null.groups, counts) if c > 0)
        raise DegenerateGroupingError(
            f"stratum {key}: needs both groups {list(null.groups)}, "
            f"found only {list(present)} (counts {counts})",
            stratum=key,
            groups_present=present,
        )

    n_empty = int(null.empty_group[:, s].sum())
    if n_empty:
        raise InsufficientDataError(
            f"stratum {key}: a group has zero observations in {n_empty} of "
            f"{null.R} replicates; the difference is undefined. Increase "
            f"sample_size or coarsen the stratification.",
            stratum=key,
            counts=counts,
        )


def check_direction(level: str, direction: object) -> str:
    """Verify a declared direction, returning it."""
    if direction is None:
        raise InvalidDirectionError(
            f"level {level!r}: no test direction declared, expected one of "
            f"{VALID_DIRECTIONS}",
            level=level,
            direction=None,
        )
    if direction not in VALID_DIRECTIONS:
        raise InvalidDirectionError(
            f"level {level!r}: direction {direction!r} is not one of "
            f"{VALID_DIRECTIONS}",
            level=level,
            direction=direction,
        )
    return direction  # type: ignore[return-value]


def tail_p_value(
    null: NullDistribution,
    s: int,
    j: int,
    direction: str,
    *,
    min_stratum_size: int,
    alpha: float,
    correction: bool = False,
    conf_level: float = 0.95,
) -> PValueResult:
    """
    Fraction of replicates whose shuffled difference is at least as
    extreme as the observed difference, in the declared direction.

    The caller is responsible for check_stratum() and check_direction().
    """
    observed = float(null.observed_diff[s, j])
    shuffled = null.shuffled_diff[:, s, j]

    count = tail_count(shuffled, observed, direction)

    R = null.R
    if correction:
        p_value = float(count + 1) / float(R + 1)
    else:
        p_value = float(count) / float(R)

    ci = stats.binomtest(count, R).proportion_ci(
        confidence_level=conf_level, method='exact'
    )

    counts = tuple(int(c) for c in null.group_counts[s])

    return PValueResult(
        stratum=null.strata[s],
        level=null.levels[j],
        direction=direction,
        observed_diff=observed,
        p_value=p_value,
        count=count,
        R=R,
        n_per_group=counts,  # type: ignore[arg-type]
        small_sample=min(counts) < min_stratum_size,
        alpha=alpha,
        conf_int=(float(ci.low), float(ci.high)),
    )
