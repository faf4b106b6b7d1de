"""
Solver dispatch for stratified permutation testing.

Public functions:
    build_null_distribution()     replicates -> NullDistributionSolution
    compute_p_value()             one (stratum, level) -> PValueResult
    stratified_permutation_test() every (stratum, level), per-stratum
                                  error isolation -> StratifiedPermutationSolution
    run_stratifications()         several stratification schemes at once
"""

from __future__ import annotations

import warnings
from dataclasses import replace
from typing import Any, Mapping, Sequence

import numpy as np

from pystratperm.core.dataset import Dataset
from pystratperm.core.exceptions import (
    InvalidDirectionError,
    StratumError,
    ValidationError,
)
from pystratperm.core.result import Result
from pystratperm.core.timing import Timer
from pystratperm.permutation._adjust import adjust_p_values
from pystratperm.permutation._common import PValueResult, StratifiedTestParams
from pystratperm.permutation._pvalue import check_direction, check_stratum, tail_p_value
from pystratperm.permutation.backends.cpu import CPUPermutationBackend
from pystratperm.permutation.design import StratifiedPermutationDesign
from pystratperm.permutation.solution import (
    NullDistributionSolution,
    StratifiedPermutationSolution,
)


def _get_backend(backend: str = 'cpu', n_jobs: int | None = None):
    """
    Select backend.

    'cpu' draws replicates serially; 'threaded' fans them out to a
    thread pool. Both give identical results for the same seed.
    """
    if backend in ('cpu', 'auto'):
        return CPUPermutationBackend()
    if backend == 'threaded':
        from pystratperm.permutation.backends.threaded import ThreadedPermutationBackend
        return ThreadedPermutationBackend(n_jobs=n_jobs)
    raise ValidationError(
        f"Unknown backend: {backend!r}. Use 'cpu' or 'threaded'."
    )


def build_null_distribution(
    data: Dataset | StratifiedPermutationDesign,
    *,
    groups: Sequence[Any] | None = None,
    levels: Sequence[Any] | None = None,
    R: int = 1000,
    sample_size: int | None = None,
    stratify_by: Sequence[str] = (),
    permute_within_strata: bool = False,
    seed: int | np.random.SeedSequence | None = None,
    backend: str = 'cpu',
    n_jobs: int | None = None,
) -> NullDistributionSolution:
    """
    Generate the label-shuffled null distribution.

    Parameters
    ----------
    data : Dataset or StratifiedPermutationDesign
        Observations, or a pre-built design (other arguments but backend
        and n_jobs are then ignored).
    groups : sequence of 2 labels
        Declared groups; the difference is groups[0] - groups[1].
    levels : sequence of labels
        Declared outcome levels, in report order.
    R : int
        Number of replicates. Default 1000.
    sample_size : int or None
        None (default) shuffles outcomes over the original rows. An
        integer first draws that many rows with replacement.
    stratify_by : sequence of str
        Covariates to cross into strata. Empty for no stratification.
    permute_within_strata : bool
        Shuffle outcomes within each stratum instead of across all rows.
    seed : int or None
        Random seed for reproducibility.
    backend : str
        'cpu' (default) or 'threaded'.
    n_jobs : int or None
        Worker threads for the 'threaded' backend.

    Returns
    -------
    NullDistributionSolution
    """
    if isinstance(data, StratifiedPermutationDesign):
        design = data
    else:
        if groups is None or levels is None:
            raise ValidationError("groups and levels must be declared")
        design = StratifiedPermutationDesign.for_stratified_test(
            data,
            groups=groups,
            levels=levels,
            R=R,
            sample_size=sample_size,
            stratify_by=stratify_by,
            permute_within_strata=permute_within_strata,
            seed=seed,
        )

    be = _get_backend(backend, n_jobs)
    result = be.solve(design)
    for message in result.warnings:
        warnings.warn(message, RuntimeWarning, stacklevel=2)
    return NullDistributionSolution(_result=result, _design=design)


def compute_p_value(
    null: NullDistributionSolution,
    stratum: Any,
    level: Any,
    direction: str | None = None,
    *,
    directions: Mapping[Any, str] | None = None,
    min_stratum_size: int | None = None,
    alpha: float | None = None,
    correction: bool | None = None,
) -> PValueResult:
    """
    One-sided permutation p-value for a stratum and outcome level.

    Parameters
    ----------
    null : NullDistributionSolution
        Output of build_null_distribution().
    stratum : tuple, str or None
        Stratum key; () or None when unstratified.
    level : str
        Outcome level.
    direction : {">=", "<="} or None
        Test direction. If None, looked up in directions, then in the
        directions declared on the design.
    directions : mapping or None
        {level: direction}.
    min_stratum_size : int or None
        Groups smaller than this set the small_sample flag. None uses the
        design value.
    alpha : float or None
        Significance level recorded for the reject decision. None uses
        the design value.
    correction : bool or None
        Use (count + 1) / (R + 1). None uses the design value.

    Returns
    -------
    PValueResult

    Raises
    ------
    InsufficientDataError
        The stratum has no observations, or a group vanished from it in a
        bootstrap replicate.
    DegenerateGroupingError
        The stratum does not contain both groups.
    InvalidDirectionError
        No valid direction for the level.
    """
    s = null.stratum_index(stratum)
    j = null.level_index(level)
    level_label = null.levels[j]

    if direction is None:
        lookup = directions if directions is not None else null.design.directions
        direction = {str(k): v for k, v in lookup.items()}.get(level_label)

    design = null.design
    if min_stratum_size is None:
        min_stratum_size = design.min_stratum_size
    if alpha is None:
        alpha = design.alpha
    if correction is None:
        correction = design.correction

    check_stratum(null.params, s)
    check_direction(level_label, direction)
    return tail_p_value(
        null.params, s, j, direction,
        min_stratum_size=min_stratum_size,
        alpha=alpha,
        correction=correction,
    )


def stratified_permutation_test(
    data: Dataset | StratifiedPermutationDesign,
    *,
    groups: Sequence[Any] | None = None,
    levels: Sequence[Any] | None = None,
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
    backend: str = 'cpu',
    n_jobs: int | None = None,
) -> StratifiedPermutationSolution:
    """
    Permutation test of outcome proportions between two groups, per stratum.

    Builds the null distribution once, then evaluates every
    (stratum, level). A stratum that cannot be evaluated is skipped and
    reported in ``errors`` (with a RuntimeWarning); the run continues.

    Parameters
    ----------
    data : Dataset or StratifiedPermutationDesign
    groups, levels, R, sample_size, stratify_by, permute_within_strata, seed
        See build_null_distribution().
    directions : mapping
        {level: ">=" | "<="}. Levels without a direction are reported as
        InvalidDirectionError in ``errors``.
    alpha : float
        Significance level. Default 0.05.
    min_stratum_size : int
        Small-sample threshold per group. Default 30.
    correction : bool
        Phipson-Smyth (count + 1) / (R + 1) estimator.
    p_adjust : str or None
        "bonferroni", "holm", "BH" or "none" across all evaluated pairs.
    backend : str
        'cpu' (default) or 'threaded'.
    n_jobs : int or None
        Worker threads for the 'threaded' backend.

    Returns
    -------
    StratifiedPermutationSolution
    """
    if isinstance(data, StratifiedPermutationDesign):
        design = data
    else:
        if groups is None or levels is None:
            raise ValidationError("groups and levels must be declared")
        design = StratifiedPermutationDesign.for_stratified_test(
            data,
            groups=groups,
            levels=levels,
            directions=directions,
            R=R,
            sample_size=sample_size,
            stratify_by=stratify_by,
            alpha=alpha,
            min_stratum_size=min_stratum_size,
            permute_within_strata=permute_within_strata,
            correction=correction,
            p_adjust=p_adjust,
            seed=seed,
        )

    timer = Timer()
    timer.start()

    be = _get_backend(backend, n_jobs)
    with timer.section('null_distribution'):
        null_result = be.solve(design)
    null = NullDistributionSolution(_result=null_result, _design=design)
    params = null_result.params

    results: list[PValueResult] = []
    errors: dict[Any, Exception] = {}
    warnings_list: list[str] = []
    small: list[tuple[str, ...]] = []

    with timer.section('p_values'):
        for s, key in enumerate(params.strata):
            try:
                check_stratum(params, s)
            except StratumError as e:
                errors[key] = e
                warnings_list.append(f"skipped {e}")
                continue

            for j, level in enumerate(params.levels):
                try:
                    direction = check_direction(level, design.directions.get(level))
                except InvalidDirectionError as e:
                    errors[(key, level)] = e
                    continue
                results.append(tail_p_value(
                    params, s, j, direction,
                    min_stratum_size=design.min_stratum_size,
                    alpha=design.alpha,
                    correction=design.correction,
                ))

            if min(params.group_counts[s]) < design.min_stratum_size:
                small.append(key)

    missing = [lvl for lvl in params.levels if lvl not in design.directions]
    if missing:
        warnings_list.append(f"no test direction declared for levels {missing}")
    if small:
        warnings_list.append(
            f"{len(small)} strata have fewer than {design.min_stratum_size} "
            f"observations in a group: {small}"
        )

    if design.p_adjust is not None and results:
        adjusted = adjust_p_values([r.p_value for r in results], design.p_adjust)
        results = [
            replace(r, p_adjusted=float(p)) for r, p in zip(results, adjusted)
        ]

    timer.stop()

    for message in warnings_list:
        warnings.warn(message, RuntimeWarning, stacklevel=2)

    test_params = StratifiedTestParams(
        results=tuple(results),
        errors=errors,
        alpha=design.alpha,
        min_stratum_size=design.min_stratum_size,
        p_adjust=design.p_adjust,
        correction=design.correction,
    )

    return StratifiedPermutationSolution(
        _result=Result(
            params=test_params,
            info={
                **null_result.info,
                'n_results': len(results),
                'n_errors': len(errors),
                'n_small_strata': len(small),
            },
            timing=timer.result(),
            backend_name=null_result.backend_name,
            warnings=null_result.warnings + tuple(warnings_list),
        ),
        _null=null,
    )


def run_stratifications(
    dataset: Dataset,
    stratifications: Sequence[Sequence[str]],
    *,
    seed: int | None = None,
    **kwargs: Any,
) -> dict[tuple[str, ...], StratifiedPermutationSolution]:
    """
    Run stratified_permutation_test() once per stratification scheme.

    Typical use compares an unstratified test with tests controlling for
    each covariate and for their cross:

        run_stratifications(ds, [(), ("age",), ("education",),
                                 ("age", "education")], groups=..., ...)

    Each scheme draws from its own child of seed.

    Returns
    -------
    dict
        Scheme (tuple of covariate names) -> StratifiedPermutationSolution
    """
    if 'stratify_by' in kwargs:
        raise ValidationError("pass schemes via stratifications, not stratify_by")

    schemes = [
        (s,) if isinstance(s, str) else tuple(s) for s in stratifications
    ]
    if len(set(schemes)) != len(schemes):
        raise ValidationError(f"stratifications: duplicate schemes in {schemes}")

    children = np.random.SeedSequence(seed).spawn(len(schemes))
    return {
        scheme: stratified_permutation_test(
            dataset, stratify_by=scheme, seed=child, **kwargs
        )
        for scheme, child in zip(schemes, children)
    }
