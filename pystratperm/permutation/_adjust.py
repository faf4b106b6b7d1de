"""
Multiple testing adjustment for a family of permutation p-values.

A stratified run produces one p-value per (stratum, level); these
helpers adjust the whole family. Method names follow R's p.adjust().
"""

from __future__ import annotations

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pystratperm.core.exceptions import ValidationError

VALID_METHODS = ("none", "bonferroni", "holm", "BH")


def adjust_p_values(p: ArrayLike, method: str = "holm") -> NDArray[np.floating]:
    """
    Adjust p-values for multiple comparisons.

    Parameters
    ----------
    p : array-like
        Raw p-values.
    method : str
        "holm" (default), "bonferroni", "BH" (Benjamini-Hochberg) or "none".

    Returns
    -------
    ndarray
        Adjusted p-values in input order, clipped to [0, 1].
    """
    if method not in VALID_METHODS:
        raise ValidationError(
            f"method must be one of {VALID_METHODS}, got {method!r}"
        )

    pv = np.asarray(p, dtype=np.float64).ravel()
    m = len(pv)
    if m == 0 or method == "none":
        return pv.copy()

    if method == "bonferroni":
        return np.minimum(pv * m, 1.0)

    if method == "holm":
        order = np.argsort(pv, kind="stable")
        stepped = (m - np.arange(m)) * pv[order]
        adjusted_sorted = np.minimum(np.maximum.accumulate(stepped), 1.0)
    else:
        # BH: walk from the largest p-value down
        order = np.argsort(pv, kind="stable")[::-1]
        stepped = m / np.arange(m, 0, -1) * pv[order]
        adjusted_sorted = np.minimum(np.minimum.accumulate(stepped), 1.0)

    adjusted = np.empty(m, dtype=np.float64)
    adjusted[order] = adjusted_sorted
    return adjusted
