"""
Exception hierarchy for PyStratPerm.

All exceptions inherit from PyStratPermError so callers can catch any
library-specific error in one place.

Two branches:
    - ValidationError: the inputs or configuration are wrong. Raised at
      design construction, before any replicate is drawn.
    - StratumError: one stratum cannot be evaluated. A full run isolates
      these per stratum and keeps going; direct calls raise them.

Exceptions carry diagnostic information as attributes, and messages
include the actual offending values.
"""

from __future__ import annotations

from typing import Any


class PyStratPermError(Exception):
    """Base exception for all PyStratPerm errors."""
    pass


class ValidationError(PyStratPermError):
    """
    Input validation failed.

    Raised when user-provided data or configuration fails validation.
    """
    pass


class DimensionError(ValidationError):
    """
    Columns have inconsistent lengths or the wrong number of dimensions.
    """
    pass


class InvalidDirectionError(ValidationError):
    """
    No usable test direction for an outcome level.

    Raised when a level has no declared direction, or the declared value
    is not one of ">=" / "<=".

    Attributes:
        level: Outcome level concerned
        direction: The offending value (None when missing)
    """

    def __init__(
        self,
        message: str,
        level: str | None = None,
        direction: Any = None,
    ):
        super().__init__(message)
        self.level = level
        self.direction = direction


class StratumError(PyStratPermError):
    """
    A single stratum cannot be evaluated.

    Attributes:
        stratum: Stratum key (tuple of covariate values, () when unstratified)
    """

    def __init__(self, message: str, stratum: tuple[str, ...] | None = None):
        super().__init__(message)
        self.stratum = stratum


class InsufficientDataError(StratumError):
    """
    A group has zero observations in the stratum, so the proportion
    difference is undefined.

    Attributes:
        stratum: Stratum key
        counts: Observations per group, in declared group order
    """

    def __init__(
        self,
        message: str,
        stratum: tuple[str, ...] | None = None,
        counts: tuple[int, ...] | None = None,
    ):
        super().__init__(message, stratum=stratum)
        self.counts = counts


class DegenerateGroupingError(StratumError):
    """
    The group column does not take exactly two distinct values in the
    dataset or in a stratum slice of it.

    Attributes:
        stratum: Stratum key (None when the whole dataset is degenerate)
        groups_present: Group values actually observed
    """

    def __init__(
        self,
        message: str,
        stratum: tuple[str, ...] | None = None,
        groups_present: tuple[str, ...] = (),
    ):
        super().__init__(message, stratum=stratum)
        self.groups_present = groups_present
