"""
PyStratPerm: stratified permutation tests for categorical outcomes.

Tests whether the distribution of an ordered categorical outcome
(e.g. income bracket) differs between two groups, overall and within
strata of covariates (e.g. age range x education level).

Submodules:
    core: Dataset, Result envelope, exceptions, validation
    permutation: Null distribution, p-values, stratified runs
"""

__version__ = "0.1.0"

from pystratperm import core
from pystratperm import permutation
from pystratperm.core import Dataset

__all__ = [
    "__version__",
    "core",
    "permutation",
    "Dataset",
]
