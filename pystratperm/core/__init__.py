"""
Core infrastructure for PyStratPerm.

Shared abstractions used by the permutation testing module.

Key components:
    dataset: Immutable categorical observation table
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    timing: Section timer for backends
"""

from pystratperm.core.dataset import Dataset
from pystratperm.core.result import Result
from pystratperm.core.exceptions import (
    PyStratPermError,
    ValidationError,
    DimensionError,
    InvalidDirectionError,
    StratumError,
    InsufficientDataError,
    DegenerateGroupingError,
)

__all__ = [
    # Data
    "Dataset",
    # Result
    "Result",
    # Exceptions
    "PyStratPermError",
    "ValidationError",
    "DimensionError",
    "InvalidDirectionError",
    "StratumError",
    "InsufficientDataError",
    "DegenerateGroupingError",
]
