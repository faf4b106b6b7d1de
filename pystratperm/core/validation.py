"""
Input validation utilities for PyStratPerm.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - Labels are compared as strings; no other coercion
    - Missing values are rejected, never imputed
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

from __future__ import annotations

import math
from typing import Any, Iterable

import numpy as np
import pandas as pd
from numpy.typing import ArrayLike, NDArray

from pystratperm.core.exceptions import ValidationError, DimensionError


def is_missing(value: Any) -> bool:
    """True for None and float NaN (pandas NA/NaT compare as missing too)."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NA or value is pd.NaT


def check_labels(values: ArrayLike, name: str) -> NDArray[np.str_]:
    """
    Validate a categorical column and convert it to a 1D string array.

    Args:
        values: Array-like of labels
        name: Column name for error messages

    Returns:
        1D numpy array of str labels

    Raises:
        DimensionError: If the column is not 1D
        ValidationError: If the column contains missing values
    """
    raw = np.asarray(values, dtype=object)
    if raw.ndim != 1:
        raise DimensionError(
            f"{name}: expected 1D column, got {raw.ndim}D with shape {raw.shape}"
        )

    missing = [i for i, v in enumerate(raw) if is_missing(v)]
    if missing:
        raise ValidationError(
            f"{name}: {len(missing)} missing value(s), first at row {missing[0]}. "
            f"Drop incomplete rows before building the dataset."
        )

    return np.array([str(v) for v in raw], dtype=str)


def check_consistent_length(
    *arrays: NDArray,
    names: tuple[str, ...],
) -> None:
    """
    Verify all columns have the same length.

    Raises:
        ValueError: If number of names doesn't match number of arrays
        DimensionError: If columns have inconsistent lengths
    """
    if len(arrays) != len(names):
        raise ValueError(
            f"Number of arrays ({len(arrays)}) must match number of names ({len(names)})"
        )

    lengths = [arr.shape[0] for arr in arrays]
    if len(set(lengths)) > 1:
        details = ", ".join(f"{name}={length}" for name, length in zip(names, lengths))
        raise DimensionError(f"Inconsistent lengths: {details}")


def check_positive_int(value: Any, name: str) -> int:
    """
    Verify value is an integer >= 1.

    Booleans are rejected even though they are ints.
    """
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise ValidationError(
            f"{name} must be an integer, got {type(value).__name__} {value!r}"
        )
    if value < 1:
        raise ValidationError(f"{name} must be >= 1, got {value}")
    return int(value)


def check_open_unit_interval(value: Any, name: str) -> float:
    """Verify value is a float strictly between 0 and 1."""
    try:
        x = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a number, got {value!r}") from e
    if not 0.0 < x < 1.0:
        raise ValidationError(f"{name} must be in (0, 1), got {x}")
    return x


def check_distinct_labels(
    values: Iterable[Any],
    name: str,
    *,
    exact: int | None = None,
) -> tuple[str, ...]:
    """
    Validate a declared enumeration of labels.

    Args:
        values: Declared labels, in the order that defines their meaning
        name: Parameter name for error messages
        exact: If given, the number of labels required

    Returns:
        Tuple of labels as strings, in declared order

    Raises:
        ValidationError: On duplicates, missing entries, or wrong count
    """
    if isinstance(values, (str, bytes)):
        raise ValidationError(
            f"{name}: expected a sequence of labels, got the string {values!r}"
        )
    items = list(values)
    labels = tuple(str(v) for v in items if not is_missing(v))
    if len(labels) != len(items):
        raise ValidationError(f"{name}: contains missing entries")
    if len(set(labels)) != len(labels):
        dupes = sorted({v for v in labels if labels.count(v) > 1})
        raise ValidationError(f"{name}: duplicate labels {dupes}")
    if not labels:
        raise ValidationError(f"{name}: at least one label is required")
    if exact is not None and len(labels) != exact:
        raise ValidationError(
            f"{name}: expected exactly {exact} labels, got {len(labels)} {labels}"
        )
    return labels


def check_known_labels(
    column: NDArray[np.str_],
    allowed: tuple[str, ...],
    name: str,
) -> None:
    """
    Verify every value in a column belongs to the declared enumeration.

    Raises:
        ValidationError: Listing the undeclared values found
    """
    unknown = sorted(set(np.unique(column).tolist()) - set(allowed))
    if unknown:
        raise ValidationError(
            f"{name}: values {unknown} are not among the declared labels {list(allowed)}"
        )
