"""
Replicate kernel shared by all backends.

Each replicate b draws from its own generator, spawned from a single
SeedSequence, so the result does not depend on how replicates are
distributed over workers.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray

from pystratperm.core.result import Result
from pystratperm.core.timing import Timer
from pystratperm.permutation._common import NullDistribution
from pystratperm.permutation._proportions import tabulate, proportions, difference
from pystratperm.permutation.design import StratifiedPermutationDesign


def replicate_seeds(design: StratifiedPermutationDesign) -> list[np.random.SeedSequence]:
    """
    One independent child SeedSequence per replicate.

    A SeedSequence seed is copied first: spawn() advances its counter,
    and a design must give the same replicates every time it is solved.
    """
    seed = design.seed
    if isinstance(seed, np.random.SeedSequence):
        root = np.random.SeedSequence(
            seed.entropy, spawn_key=seed.spawn_key, pool_size=seed.pool_size,
        )
    else:
        root = np.random.SeedSequence(seed)
    return root.spawn(design.R)


def shuffle_outcomes(
    outcome: NDArray[np.intp],
    strata: NDArray[np.intp],
    rng: np.random.Generator,
    within_strata: bool,
) -> NDArray[np.intp]:
    """
    Uniform random permutation of the outcome column.

    With within_strata, each stratum's outcomes are permuted among that
    stratum's rows only.
    """
    if not within_strata:
        return rng.permutation(outcome)

    # Rows grouped by stratum, random order inside each block
    positions = np.argsort(strata, kind='stable')
    donors = np.lexsort((rng.random(len(outcome)), strata))
    shuffled = np.empty_like(outcome)
    shuffled[positions] = outcome[donors]
    return shuffled


def draw_replicate(
    design: StratifiedPermutationDesign,
    seed: np.random.SeedSequence,
) -> tuple[NDArray[np.int64], NDArray[np.int64]]:
    """
    Build one replicate.

    Returns:
        (true_counts, shuffled_counts), each of shape (S, 2, L)
    """
    rng = np.random.default_rng(seed)

    if design.sample_size is None:
        group = design.group_codes
        outcome = design.outcome_codes
        strata = design.stratum_codes
    else:
        rows = rng.integers(0, design.n_observations, size=design.sample_size)
        group = design.group_codes[rows]
        outcome = design.outcome_codes[rows]
        strata = design.stratum_codes[rows]

    shuffled = shuffle_outcomes(outcome, strata, rng, design.permute_within_strata)

    S, L = design.n_strata, design.n_levels
    return (
        tabulate(strata, group, outcome, S, L),
        tabulate(strata, group, shuffled, S, L),
    )


def fill_replicates(
    design: StratifiedPermutationDesign,
    seeds: list[np.random.SeedSequence],
    indices: NDArray[np.intp],
    true_counts: NDArray[np.int64],
    shuffled_counts: NDArray[np.int64],
) -> int:
    """
    Draw the replicates listed in indices into the preallocated arrays.

    Each call writes only its own rows, so disjoint index sets can be
    filled concurrently.

    Returns:
        Number of replicates drawn
    """
    for b in indices:
        true_counts[b], shuffled_counts[b] = draw_replicate(design, seeds[b])
    return len(indices)


def allocate_counts(design: StratifiedPermutationDesign) -> tuple[NDArray, NDArray]:
    shape = (design.R, design.n_strata, 2, design.n_levels)
    return np.zeros(shape, dtype=np.int64), np.zeros(shape, dtype=np.int64)


def observed_counts(design: StratifiedPermutationDesign) -> NDArray[np.int64]:
    """Counts on the full, un-resampled, un-shuffled dataset."""
    return tabulate(
        design.stratum_codes,
        design.group_codes,
        design.outcome_codes,
        design.n_strata,
        design.n_levels,
    )


def assemble(
    design: StratifiedPermutationDesign,
    observed: NDArray[np.int64],
    true_counts: NDArray[np.int64],
    shuffled_counts: NDArray[np.int64],
    timer: Timer,
    backend_name: str,
    extra_info: dict[str, Any] | None = None,
) -> Result[NullDistribution]:
    """Turn raw counts into proportions and differences; wrap in Result."""
    with timer.section('proportions'):
        observed_props, _ = proportions(observed)
        replicate_props, empty_true = proportions(true_counts)
        shuffled_props, empty_shuffled = proportions(shuffled_counts)
        empty = empty_true | empty_shuffled

        observed_diff = difference(observed_props)
        replicate_diff = difference(replicate_props)
        shuffled_diff = difference(shuffled_props)

    group_counts = observed.sum(axis=-1)

    warnings_list: list[str] = []
    for s, key in enumerate(design.strata):
        n_empty = int(empty[:, s].sum())
        if n_empty:
            warnings_list.append(
                f"stratum {key}: a group is empty in {n_empty} of "
                f"{design.R} replicates"
            )

    timer.stop()

    params = NullDistribution(
        groups=design.groups,
        levels=design.levels,
        stratify_by=design.stratify_by,
        strata=design.strata,
        group_counts=group_counts,
        observed_proportions=observed_props,
        observed_diff=observed_diff,
        replicate_proportions=replicate_props,
        shuffled_proportions=shuffled_props,
        replicate_diff=replicate_diff,
        shuffled_diff=shuffled_diff,
        empty_group=empty,
        R=design.R,
        sample_size=design.sample_size,
        permute_within_strata=design.permute_within_strata,
    )

    info = {
        'n_observations': design.n_observations,
        'n_strata': design.n_strata,
        'n_levels': design.n_levels,
        'R': design.R,
        'sample_size': design.sample_size,
        'resampling': 'none' if design.sample_size is None else 'bootstrap',
        'shuffle': 'within_strata' if design.permute_within_strata else 'global',
    }
    if extra_info:
        info.update(extra_info)

    return Result(
        params=params,
        info=info,
        timing=timer.result(),
        backend_name=backend_name,
        warnings=tuple(warnings_list),
    )
