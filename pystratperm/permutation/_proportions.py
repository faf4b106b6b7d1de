"""
Proportion and difference kernels.

All functions operate on integer-coded columns:
    stratum_codes in [0, S), group_codes in {0, 1}, outcome_codes in [0, L)

and are vectorized over any leading replicate axis.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from numpy.typing import NDArray


def tabulate(
    stratum_codes: NDArray[np.intp],
    group_codes: NDArray[np.intp],
    outcome_codes: NDArray[np.intp],
    n_strata: int,
    n_levels: int,
) -> NDArray[np.int64]:
    """
    Count observations per (stratum, group, level).

    Returns:
        Integer array of shape (S, 2, L)
    """
    flat = (stratum_codes * 2 + group_codes) * n_levels + outcome_codes
    counts = np.bincount(flat, minlength=n_strata * 2 * n_levels)
    return counts.reshape(n_strata, 2, n_levels)


def proportions(
    counts: NDArray[np.integer[Any]],
) -> tuple[NDArray[np.floating[Any]], NDArray[np.bool_]]:
    """
    Convert counts to within-(stratum, group) proportions.

    Args:
        counts: Shape (..., S, 2, L)

    Returns:
        (props, empty): props has the shape of counts, rows summing to 1;
        rows of an empty (stratum, group) are NaN. empty has shape
        (..., S) and is True where either group has no observations.
    """
    totals = counts.sum(axis=-1, keepdims=True)
    with np.errstate(invalid='ignore', divide='ignore'):
        props = counts / totals
    empty = (totals[..., 0] == 0).any(axis=-1)
    return props, empty


def difference(props: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """
    Signed difference proportion(groups[0]) - proportion(groups[1]).

    Args:
        props: Shape (..., 2, L)

    Returns:
        Shape (..., L)
    """
    return props[..., 0, :] - props[..., 1, :]
