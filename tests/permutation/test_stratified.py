"""
Tests for stratified_permutation_test() and run_stratifications().

Validates:
    - End-to-end two-group scenario
    - Per-stratum error isolation (run continues past bad strata)
    - Missing directions reported per (stratum, level)
    - Small-sample flag and warnings
    - p-value adjustment and reject decisions
    - Null calibration: p-values roughly uniform when outcome is
      independent of group
    - DataFrame / summary output
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from pystratperm import Dataset
from pystratperm.core.exceptions import (
    DegenerateGroupingError,
    InsufficientDataError,
    InvalidDirectionError,
)
from pystratperm.permutation import (
    StratifiedPermutationDesign,
    run_stratifications,
    stratified_permutation_test,
)


LEVELS = ("<25k", "25-50k", "50-75k", "75-100k", ">100k")
DIRECTIONS = {
    "<25k": ">=",
    "25-50k": ">=",
    "50-75k": "<=",
    "75-100k": "<=",
    ">100k": "<=",
}


class TestEndToEnd:

    def test_separated_groups(self, separated_dataset):
        with pytest.warns(RuntimeWarning, match="fewer than 30"):
            result = stratified_permutation_test(
                separated_dataset,
                groups=("A", "B"),
                levels=("X", "Y"),
                directions={"X": ">=", "Y": "<="},
                R=1000,
                seed=42,
            )
        x = result.get((), "X")
        assert x.observed_diff == pytest.approx(1.0)
        assert x.p_value <= 1.0 / 1000
        assert x.reject
        assert x.small_sample
        assert result.p_values[((), "X")] == (x.p_value, True)
        assert not result.errors

    def test_survey_effect_detected(self, survey_dataset):
        result = stratified_permutation_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=500, seed=7,
        )
        # group A is over-represented at the bottom, under at the top
        assert result.get(None, "<25k").reject
        assert result.get(None, ">100k").reject
        assert len(result.results) == 5

    def test_stratified_results_cover_all_pairs(self, survey_dataset):
        result = stratified_permutation_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=200, stratify_by=("age", "education"),
            min_stratum_size=1, seed=7,
        )
        assert len(result.results) == 6 * 5
        keys = {(r.stratum, r.level) for r in result.results}
        assert keys == set(result.p_values)
        assert all(0.0 <= p <= 1.0 for p, _ in result.p_values.values())

    def test_prebuilt_design(self, survey_dataset):
        design = StratifiedPermutationDesign.for_stratified_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=100, seed=3, min_stratum_size=1,
        )
        r1 = stratified_permutation_test(design)
        r2 = stratified_permutation_test(design)
        assert r1.p_values == r2.p_values


class TestErrorIsolation:

    def _partly_separated(self):
        # site S1 only has group A; site S2 has both
        group = ["A"] * 6 + ["A", "B"] * 20
        outcome = ["X"] * 6 + ["X", "Y", "Y", "X"] * 10
        site = ["S1"] * 6 + ["S2"] * 40
        return Dataset.from_columns(group=group, outcome=outcome, site=site)

    def test_degenerate_stratum_skipped(self):
        ds = self._partly_separated()
        with pytest.warns(RuntimeWarning, match="skipped"):
            result = stratified_permutation_test(
                ds, groups=("A", "B"), levels=("X", "Y"),
                directions={"X": ">=", "Y": "<="}, R=100,
                stratify_by=("site",), min_stratum_size=1, seed=0,
            )
        assert isinstance(result.errors[("S1",)], DegenerateGroupingError)
        assert {r.stratum for r in result.results} == {("S2",)}
        assert result.info["n_errors"] == 1
        assert result.null.R == 100

    def test_perfectly_separating_covariate(self):
        ds = Dataset.from_columns(
            group=["A"] * 8 + ["B"] * 8,
            outcome=["X", "Y"] * 8,
            site=["S1"] * 8 + ["S2"] * 8,
        )
        with pytest.warns(RuntimeWarning):
            result = stratified_permutation_test(
                ds, groups=("A", "B"), levels=("X", "Y"),
                directions={"X": ">=", "Y": ">="}, R=50,
                stratify_by=("site",), seed=0,
            )
        assert result.results == ()
        assert set(result.errors) == {("S1",), ("S2",)}
        assert all(isinstance(e, DegenerateGroupingError) for e in result.errors.values())

    def test_insufficient_stratum_skipped(self):
        group = ["A"] * 50 + ["B"] * 48 + ["A", "B"]
        ds = Dataset.from_columns(
            group=group,
            outcome=["X", "Y"] * 50,
            site=["common"] * 98 + ["rare"] * 2,
        )
        with pytest.warns(RuntimeWarning):
            result = stratified_permutation_test(
                ds, groups=("A", "B"), levels=("X", "Y"),
                directions={"X": ">=", "Y": "<="}, R=50, sample_size=100,
                stratify_by=("site",), min_stratum_size=1, seed=3,
            )
        assert isinstance(result.errors[("rare",)], InsufficientDataError)
        assert {r.stratum for r in result.results} == {("common",)}

    def test_missing_direction_reported_per_level(self, survey_dataset):
        partial = {"<25k": ">=", ">100k": "<="}
        with pytest.warns(RuntimeWarning, match="no test direction"):
            result = stratified_permutation_test(
                survey_dataset, groups=("A", "B"), levels=LEVELS,
                directions=partial, R=50, stratify_by=("education",),
                min_stratum_size=1, seed=1,
            )
        assert {r.level for r in result.results} == {"<25k", ">100k"}
        assert len(result.results) == 2 * 2
        err = result.errors[(("college",), "50-75k")]
        assert isinstance(err, InvalidDirectionError)
        assert len(result.errors) == 2 * 3


class TestSmallSample:

    def test_flags_and_warning(self, survey_dataset):
        with pytest.warns(RuntimeWarning, match="fewer than 1000"):
            result = stratified_permutation_test(
                survey_dataset, groups=("A", "B"), levels=LEVELS,
                directions=DIRECTIONS, R=20, stratify_by=("age",),
                min_stratum_size=1000, seed=1,
            )
        assert all(r.small_sample for r in result.results)
        assert result.info["n_small_strata"] == 3
        assert any("fewer than 1000" in w for w in result.warnings)


class TestAdjustment:

    def test_bonferroni(self, survey_dataset):
        result = stratified_permutation_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=200, p_adjust="bonferroni",
            min_stratum_size=1, seed=11,
        )
        m = len(result.results)
        for r in result.results:
            assert r.p_adjusted == pytest.approx(min(1.0, r.p_value * m))
            assert r.reject == (r.p_adjusted < r.alpha)

    def test_no_adjustment_by_default(self, survey_dataset):
        result = stratified_permutation_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=50, min_stratum_size=1, seed=11,
        )
        assert all(r.p_adjusted is None for r in result.results)

    def test_significant_subset(self, survey_dataset):
        result = stratified_permutation_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=200, min_stratum_size=1, seed=11,
        )
        sig = result.significant()
        assert all(r.p_value < 0.05 for r in sig)
        assert set(sig) <= set(result.results)


class TestNullCalibration:

    def test_p_values_roughly_uniform(self):
        rng = np.random.default_rng(123)
        p_values = []
        for i in range(150):
            ds = Dataset.from_columns(
                group=rng.choice(["A", "B"], size=2000),
                outcome=rng.choice(["X", "Y"], size=2000),
            )
            result = stratified_permutation_test(
                ds, groups=("A", "B"), levels=("X", "Y"),
                directions={"X": ">=", "Y": "<="}, R=199,
                min_stratum_size=1, seed=i,
            )
            p_values.append(result.get((), "X").p_value)

        p_values = np.asarray(p_values)
        assert 0.4 < p_values.mean() < 0.6
        assert stats.kstest(p_values, "uniform").pvalue > 1e-3


class TestBackends:

    def test_threaded_matches_serial(self, survey_dataset):
        kwargs = dict(
            groups=("A", "B"), levels=LEVELS, directions=DIRECTIONS, R=120,
            stratify_by=("age",), sample_size=500, min_stratum_size=1, seed=99,
        )
        serial = stratified_permutation_test(survey_dataset, **kwargs)
        threaded = stratified_permutation_test(
            survey_dataset, backend="threaded", n_jobs=4, **kwargs,
        )
        assert serial.p_values == threaded.p_values
        np.testing.assert_array_equal(
            serial.null.shuffled_diff, threaded.null.shuffled_diff,
        )
        assert threaded.backend_name == "cpu_threaded_permutation"
        assert threaded.null.info["n_workers"] == 4

    def test_threaded_more_workers_than_replicates(self, separated_dataset):
        with pytest.warns(RuntimeWarning):
            result = stratified_permutation_test(
                separated_dataset, groups=("A", "B"), levels=("X", "Y"),
                directions={"X": ">="}, R=3, backend="threaded", n_jobs=8, seed=0,
            )
        assert result.null.info["n_workers"] == 3

    def test_threaded_invalid_n_jobs(self, separated_dataset):
        from pystratperm.core.exceptions import ValidationError
        with pytest.raises(ValidationError, match="n_jobs"):
            stratified_permutation_test(
                separated_dataset, groups=("A", "B"), levels=("X", "Y"),
                directions={"X": ">="}, R=3, backend="threaded", n_jobs=0,
            )


class TestOutput:

    def test_to_frame(self, survey_dataset):
        result = stratified_permutation_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=50, stratify_by=("age", "education"),
            min_stratum_size=1, seed=1,
        )
        df = result.to_frame()
        assert isinstance(df, pd.DataFrame)
        assert len(df) == 30
        assert list(df.columns[:3]) == ["age", "education", "level"]
        assert {"p_value", "small_sample", "n_A", "n_B", "reject"} <= set(df.columns)

    def test_summary_and_repr(self, survey_dataset):
        result = stratified_permutation_test(
            survey_dataset, groups=("A", "B"), levels=LEVELS,
            directions=DIRECTIONS, R=50, stratify_by=("education",),
            min_stratum_size=1, p_adjust="holm", seed=1,
        )
        s = result.summary()
        assert "STRATIFIED PERMUTATION TEST" in s
        assert "holm" in s
        assert "college" in s
        assert "StratifiedPermutationSolution(R=50" in repr(result)

    def test_get_unknown_pair(self, separated_dataset):
        with pytest.warns(RuntimeWarning):
            result = stratified_permutation_test(
                separated_dataset, groups=("A", "B"), levels=("X", "Y"),
                directions={"X": ">="}, R=10, seed=0,
            )
        with pytest.raises(KeyError, match="no result"):
            result.get((), "Y")


class TestRunStratifications:

    def test_schemes(self, survey_dataset):
        results = run_stratifications(
            survey_dataset,
            [(), ("age",), "education", ("age", "education")],
            groups=("A", "B"), levels=LEVELS, directions=DIRECTIONS,
            R=50, min_stratum_size=1, seed=5,
        )
        assert list(results) == [(), ("age",), ("education",), ("age", "education")]
        assert len(results[()].results) == 5
        assert len(results[("age",)].results) == 15
        assert len(results[("age", "education")].results) == 30

    def test_reproducible(self, survey_dataset):
        kwargs = dict(groups=("A", "B"), levels=LEVELS, directions=DIRECTIONS,
                      R=50, min_stratum_size=1, seed=5)
        a = run_stratifications(survey_dataset, [(), ("age",)], **kwargs)
        b = run_stratifications(survey_dataset, [(), ("age",)], **kwargs)
        assert a[("age",)].p_values == b[("age",)].p_values

    def test_duplicate_schemes(self, survey_dataset):
        from pystratperm.core.exceptions import ValidationError
        with pytest.raises(ValidationError, match="duplicate"):
            run_stratifications(survey_dataset, [("age",), "age"],
                                groups=("A", "B"), levels=LEVELS)
