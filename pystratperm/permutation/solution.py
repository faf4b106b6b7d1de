"""
Solution wrappers for stratified permutation results.

NullDistributionSolution wraps Result[NullDistribution];
StratifiedPermutationSolution wraps Result[StratifiedTestParams] and
keeps a reference to the null distribution it was computed from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from pystratperm.core.exceptions import InsufficientDataError, ValidationError
from pystratperm.core.result import Result
from pystratperm.permutation._common import (
    NullDistribution,
    PValueResult,
    StratifiedTestParams,
    StratumKey,
)

if TYPE_CHECKING:
    import pandas as pd
    from pystratperm.permutation.design import StratifiedPermutationDesign


def normalize_stratum(stratum: Any) -> StratumKey:
    """Accept (), None, a single label, or a tuple of labels."""
    if stratum is None:
        return ()
    if isinstance(stratum, (str, bytes)):
        return (str(stratum),)
    return tuple(str(v) for v in stratum)


def _format_stratum(key: StratumKey) -> str:
    return " x ".join(key) if key else "(all)"


@dataclass
class NullDistributionSolution:
    """
    User-facing null distribution.

    Arrays follow the axis convention (R, S, 2, L): replicate, stratum,
    group (declared order), outcome level (declared order).
    """
    _result: Result[NullDistribution]
    _design: 'StratifiedPermutationDesign'

    # --- Core fields ---

    @property
    def params(self) -> NullDistribution:
        return self._result.params

    @property
    def groups(self) -> tuple[str, str]:
        return self._result.params.groups

    @property
    def levels(self) -> tuple[str, ...]:
        return self._result.params.levels

    @property
    def strata(self) -> tuple[StratumKey, ...]:
        """Stratum keys present in the data; ((),) when unstratified."""
        return self._result.params.strata

    @property
    def stratify_by(self) -> tuple[str, ...]:
        return self._result.params.stratify_by

    @property
    def R(self) -> int:
        """Number of replicates."""
        return self._result.params.R

    @property
    def sample_size(self) -> int | None:
        """Rows per bootstrap resample, or None when rows are not resampled."""
        return self._result.params.sample_size

    @property
    def group_counts(self) -> NDArray[np.int64]:
        """Observations per (stratum, group) in the original data, shape (S, 2)."""
        return self._result.params.group_counts

    @property
    def observed_proportions(self) -> NDArray[np.floating[Any]]:
        """Proportions on the original data, shape (S, 2, L)."""
        return self._result.params.observed_proportions

    @property
    def observed_diff(self) -> NDArray[np.floating[Any]]:
        """Observed differences groups[0] - groups[1], shape (S, L)."""
        return self._result.params.observed_diff

    @property
    def replicate_proportions(self) -> NDArray[np.floating[Any]]:
        """True-outcome proportions per replicate, shape (R, S, 2, L)."""
        return self._result.params.replicate_proportions

    @property
    def shuffled_proportions(self) -> NDArray[np.floating[Any]]:
        """Shuffled-outcome proportions per replicate, shape (R, S, 2, L)."""
        return self._result.params.shuffled_proportions

    @property
    def replicate_diff(self) -> NDArray[np.floating[Any]]:
        """True-outcome differences per replicate, shape (R, S, L)."""
        return self._result.params.replicate_diff

    @property
    def shuffled_diff(self) -> NDArray[np.floating[Any]]:
        """Shuffled-outcome differences per replicate, shape (R, S, L)."""
        return self._result.params.shuffled_diff

    def stratum_index(self, stratum: Any) -> int:
        """
        Position of a stratum key in strata.

        Raises:
            InsufficientDataError: The stratum has no observations.
        """
        key = normalize_stratum(stratum)
        try:
            return self.strata.index(key)
        except ValueError:
            raise InsufficientDataError(
                f"stratum {key}: no observations (known strata: "
                f"{list(self.strata)})",
                stratum=key,
                counts=(0, 0),
            ) from None

    def level_index(self, level: Any) -> int:
        """Position of an outcome level in levels."""
        try:
            return self.levels.index(str(level))
        except ValueError:
            raise ValidationError(
                f"level {level!r} is not among the declared levels {list(self.levels)}"
            ) from None

    # --- Metadata ---

    @property
    def design(self) -> 'StratifiedPermutationDesign':
        return self._design

    @property
    def seed(self) -> Any:
        """Random seed used."""
        return self._design.seed

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # --- Display ---

    def summary(self) -> str:
        """Observed proportion differences per stratum."""
        lines = [
            "\nSTRATIFIED PERMUTATION NULL DISTRIBUTION",
            "",
            f"Groups: {self.groups[0]} - {self.groups[1]}",
            f"Replicates: {self.R}   resampling: {self.info['resampling']}"
            f"   shuffle: {self.info['shuffle']}",
            "",
            "Observed differences in proportion:",
        ]
        width = max(len(level) for level in self.levels)
        for s, key in enumerate(self.strata):
            n0, n1 = (int(c) for c in self.group_counts[s])
            lines.append(f"  {_format_stratum(key)}  (n = {n0}, {n1})")
            for j, level in enumerate(self.levels):
                lines.append(f"    {level:>{width}s} {self.observed_diff[s, j]: .5f}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"NullDistributionSolution(R={self.R}, strata={len(self.strata)}, "
            f"levels={len(self.levels)}, backend={self.backend_name!r})"
        )


@dataclass
class StratifiedPermutationSolution:
    """
    User-facing stratified permutation test results.

    One PValueResult per evaluable (stratum, level); strata that could
    not be evaluated are listed in errors instead.
    """
    _result: Result[StratifiedTestParams]
    _null: NullDistributionSolution

    # --- Core fields ---

    @property
    def results(self) -> tuple[PValueResult, ...]:
        return self._result.params.results

    @property
    def errors(self) -> dict[Any, Exception]:
        """Stratum key (or (stratum key, level)) -> error that skipped it."""
        return self._result.params.errors

    @property
    def p_values(self) -> dict[tuple[StratumKey, str], tuple[float, bool]]:
        """(stratum, level) -> (p_value, small_sample_flag)."""
        return {
            (r.stratum, r.level): (r.p_value, r.small_sample)
            for r in self.results
        }

    @property
    def alpha(self) -> float:
        return self._result.params.alpha

    @property
    def p_adjust(self) -> str | None:
        return self._result.params.p_adjust

    @property
    def null(self) -> NullDistributionSolution:
        """The null distribution the p-values were computed from."""
        return self._null

    @property
    def R(self) -> int:
        return self._null.R

    def get(self, stratum: Any, level: Any) -> PValueResult:
        """
        Look up the result for one (stratum, level).

        Raises:
            KeyError: If that pair was not evaluated (see errors)
        """
        key = normalize_stratum(stratum)
        for r in self.results:
            if r.stratum == key and r.level == str(level):
                return r
        raise KeyError(
            f"no result for stratum {key}, level {level!r}; "
            f"skipped pairs are listed in .errors"
        )

    def significant(self) -> tuple[PValueResult, ...]:
        """Results that reject the null at alpha."""
        return tuple(r for r in self.results if r.reject)

    def to_frame(self) -> 'pd.DataFrame':
        """Results as a pandas DataFrame, one row per (stratum, level)."""
        import pandas as pd

        names = list(self._null.stratify_by)
        rows = []
        for r in self.results:
            row: dict[str, Any] = dict(zip(names, r.stratum))
            row.update({
                'level': r.level,
                'direction': r.direction,
                'observed_diff': r.observed_diff,
                'p_value': r.p_value,
                'p_adjusted': r.p_adjusted,
                'ci_low': r.conf_int[0],
                'ci_high': r.conf_int[1],
                f'n_{self._null.groups[0]}': r.n_per_group[0],
                f'n_{self._null.groups[1]}': r.n_per_group[1],
                'small_sample': r.small_sample,
                'reject': r.reject,
            })
            rows.append(row)
        columns = names + [
            'level', 'direction', 'observed_diff', 'p_value', 'p_adjusted',
            'ci_low', 'ci_high',
            f'n_{self._null.groups[0]}', f'n_{self._null.groups[1]}',
            'small_sample', 'reject',
        ]
        return pd.DataFrame(rows, columns=columns)

    # --- Metadata ---

    @property
    def info(self) -> dict[str, Any]:
        return self._result.info

    @property
    def timing(self) -> dict[str, float] | None:
        return self._result.timing

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # --- Display ---

    def summary(self) -> str:
        """
        Table of p-values per stratum and level.

        Flags: '*' rejects at alpha, '!' small stratum.
        """
        g0, g1 = self._null.groups
        lines = [
            "\nSTRATIFIED PERMUTATION TEST",
            "",
            f"Difference: {g0} - {g1}   replicates: {self.R}   alpha: {self.alpha}",
        ]
        if self.p_adjust:
            lines.append(f"p-value adjustment: {self.p_adjust}")
        lines.append("")

        current: StratumKey | None = None
        for r in self.results:
            if r.stratum != current:
                current = r.stratum
                n0, n1 = r.n_per_group
                lines.append(f"{_format_stratum(current)}  (n = {n0}, {n1})")
            p_shown = r.p_value if r.p_adjusted is None else r.p_adjusted
            flags = ("*" if r.reject else " ") + ("!" if r.small_sample else " ")
            lines.append(
                f"  {r.level:<20s} {r.direction}  diff {r.observed_diff: .4f}  "
                f"p {p_shown:.4g} {flags}"
            )

        if self.errors:
            lines.append("")
            lines.append("Skipped:")
            for key, err in self.errors.items():
                lines.append(f"  {key}: {type(err).__name__}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"StratifiedPermutationSolution(R={self.R}, "
            f"results={len(self.results)}, "
            f"significant={len(self.significant())}, "
            f"errors={len(self.errors)})"
        )
