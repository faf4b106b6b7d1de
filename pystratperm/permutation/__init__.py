"""
PyStratPerm stratified permutation testing.

Compares the distribution of a categorical outcome between two groups,
optionally within strata of one or more covariates, using a
label-shuffling null distribution and one-sided Monte-Carlo p-values.

Usage:
    from pystratperm.permutation import stratified_permutation_test

    result = stratified_permutation_test(
        ds,
        groups=("A", "B"),
        levels=("<25k", "25-50k", "50-75k", "75-100k", ">100k"),
        directions={"<25k": "<=", ">100k": ">="},
        stratify_by=("age",),
        R=1000,
        seed=42,
    )
    result.p_values[(("18-34",), ">100k")]   # (p_value, small_sample)

    # Lower level: build once, test selectively
    null = build_null_distribution(ds, groups=..., levels=..., R=1000)
    compute_p_value(null, ("18-34",), ">100k", ">=")
"""

from pystratperm.permutation._adjust import adjust_p_values
from pystratperm.permutation._common import (
    GREATER_EQUAL,
    LESS_EQUAL,
    PValueResult,
)
from pystratperm.permutation.design import StratifiedPermutationDesign
from pystratperm.permutation.solution import (
    NullDistributionSolution,
    StratifiedPermutationSolution,
)
from pystratperm.permutation.solvers import (
    build_null_distribution,
    compute_p_value,
    run_stratifications,
    stratified_permutation_test,
)

__all__ = [
    "build_null_distribution",
    "compute_p_value",
    "stratified_permutation_test",
    "run_stratifications",
    "adjust_p_values",
    "StratifiedPermutationDesign",
    "NullDistributionSolution",
    "StratifiedPermutationSolution",
    "PValueResult",
    "GREATER_EQUAL",
    "LESS_EQUAL",
]
