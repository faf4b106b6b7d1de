"""
Tests for adjust_p_values().

Reference values from R p.adjust(c(0.01, 0.04, 0.03, 0.2), method=...).
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from pystratperm.core.exceptions import ValidationError
from pystratperm.permutation import adjust_p_values


P = [0.01, 0.04, 0.03, 0.2]


class TestAdjust:

    def test_bonferroni(self):
        assert_allclose(adjust_p_values(P, "bonferroni"), [0.04, 0.16, 0.12, 0.8])

    def test_holm(self):
        assert_allclose(adjust_p_values(P, "holm"), [0.04, 0.09, 0.09, 0.2])

    def test_bh(self):
        assert_allclose(
            adjust_p_values(P, "BH"),
            [0.04, 0.05333333333333334, 0.05333333333333334, 0.2],
        )

    def test_none(self):
        assert_allclose(adjust_p_values(P, "none"), P)

    def test_clipped(self):
        out = adjust_p_values([0.5, 0.9], "bonferroni")
        assert out.max() == 1.0

    def test_empty(self):
        assert adjust_p_values([], "holm").shape == (0,)

    def test_monotone_in_input_order(self):
        rng = np.random.default_rng(0)
        p = rng.uniform(size=20)
        for method in ("holm", "BH"):
            adj = adjust_p_values(p, method)
            order = np.argsort(p)
            assert np.all(np.diff(adj[order]) >= -1e-15)
            assert np.all(adj >= p)

    def test_unknown_method(self):
        with pytest.raises(ValidationError, match="method"):
            adjust_p_values(P, "hommel")
