"""
Categorical observation table for PyStratPerm.

Dataset is the "I have labeled observations" abstraction: one group
column, one outcome column, and any number of named covariate columns
that can later be used for stratification. It knows nothing about
permutation testing.

Usage:
    from pystratperm import Dataset

    ds = Dataset.from_columns(group=g, outcome=o, age=age)
    ds = Dataset.from_dataframe(df, group="race", outcome="income",
                                covariates=["age", "education"])
    ds = Dataset.from_file("survey.csv", group="race", outcome="income")

    ds.n_observations
    ds.column("age")
    two_groups = ds.subset(np.isin(ds.group, ["A", "B"]))

Tabular factories drop incomplete rows (missing group, outcome or
covariate) and warn with the count. from_columns is strict.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable, Mapping, Sequence, TYPE_CHECKING

import numpy as np
from numpy.typing import ArrayLike, NDArray

from pystratperm.core.exceptions import ValidationError
from pystratperm.core.validation import check_labels, check_consistent_length

if TYPE_CHECKING:
    import pandas as pd


_RESERVED = ('group', 'outcome')


def _freeze(arr: NDArray) -> NDArray:
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Dataset:
    """
    Immutable table of categorical observations.

    Construct via factory classmethods, not directly. Every column is a
    read-only 1D array of string labels of the same length.
    """
    _group: NDArray[np.str_]
    _outcome: NDArray[np.str_]
    _covariates: dict[str, NDArray[np.str_]]
    _metadata: dict[str, Any] = field(default_factory=dict)

    # === Column Access ===

    @property
    def group(self) -> NDArray[np.str_]:
        """Group label per observation."""
        return self._group

    @property
    def outcome(self) -> NDArray[np.str_]:
        """Outcome level per observation."""
        return self._outcome

    @property
    def covariate_names(self) -> tuple[str, ...]:
        """Names of covariates available for stratification."""
        return tuple(self._covariates)

    def column(self, name: str) -> NDArray[np.str_]:
        """
        Access a column by name ('group', 'outcome' or a covariate).

        Raises:
            KeyError: If the column does not exist, listing what does
        """
        if name == 'group':
            return self._group
        if name == 'outcome':
            return self._outcome
        if name not in self._covariates:
            available = ('group', 'outcome') + self.covariate_names
            raise KeyError(
                f"Dataset has no column '{name}'. Available: {available}"
            )
        return self._covariates[name]

    def __contains__(self, name: str) -> bool:
        return name in _RESERVED or name in self._covariates

    def __len__(self) -> int:
        return self.n_observations

    # === Properties ===

    @property
    def n_observations(self) -> int:
        """Number of observations (rows)."""
        return int(self._group.shape[0])

    @property
    def metadata(self) -> dict[str, Any]:
        """Source information (source, columns, n_dropped, source_path)."""
        return self._metadata.copy()

    # === Derivation ===

    def subset(self, mask: ArrayLike) -> Dataset:
        """
        Derive a filtered dataset.

        Args:
            mask: Boolean array of length n_observations

        Returns:
            New Dataset containing the selected rows
        """
        mask_arr = np.asarray(mask)
        if mask_arr.dtype != bool or mask_arr.shape != self._group.shape:
            raise ValidationError(
                f"mask: expected boolean array of shape {self._group.shape}, "
                f"got {mask_arr.dtype} array of shape {mask_arr.shape}"
            )
        if not mask_arr.any():
            raise ValidationError("mask: selects no observations")

        metadata = self._metadata.copy()
        metadata['parent_n_observations'] = self.n_observations
        return Dataset(
            _group=_freeze(self._group[mask_arr]),
            _outcome=_freeze(self._outcome[mask_arr]),
            _covariates={k: _freeze(v[mask_arr]) for k, v in self._covariates.items()},
            _metadata=metadata,
        )

    # === Factory Methods ===

    @classmethod
    def from_columns(
        cls,
        *,
        group: ArrayLike,
        outcome: ArrayLike,
        **covariates: ArrayLike,
    ) -> Dataset:
        """
        Construct from column arrays. Missing values raise.

        Args:
            group: Group label per observation
            outcome: Outcome level per observation
            **covariates: Named stratifying covariates

        Raises:
            ValidationError: On missing values or an empty table
            DimensionError: On inconsistent column lengths
        """
        return cls._build(group, outcome, covariates, {'source': 'columns'})

    @classmethod
    def from_dataframe(
        cls,
        df: 'pd.DataFrame',
        *,
        group: str,
        outcome: str,
        covariates: Sequence[str] = (),
        source_path: str | None = None,
    ) -> Dataset:
        """
        Construct from a pandas DataFrame.

        Rows with a missing value in any used column are dropped with a
        UserWarning.

        Args:
            df: Source table
            group: Name of the group column
            outcome: Name of the outcome column
            covariates: Names of covariate columns to keep
        """
        used = [group, outcome, *covariates]
        missing_cols = [c for c in used if c not in df.columns]
        if missing_cols:
            raise ValidationError(
                f"DataFrame has no column(s) {missing_cols}. "
                f"Available: {list(df.columns)}"
            )
        if len(set(used)) != len(used):
            raise ValidationError(f"columns must be distinct, got {used}")
        bad = [c for c in covariates if c in _RESERVED]
        if bad:
            raise ValidationError(
                f"covariate names {bad} clash with reserved names {_RESERVED}"
            )

        table = df[used]
        complete = table.notna().all(axis=1).to_numpy()
        n_dropped = int((~complete).sum())
        if n_dropped:
            warnings.warn(
                f"Dropped {n_dropped} of {len(table)} rows with missing values "
                f"in {used}",
                UserWarning,
                stacklevel=2,
            )
        table = table[complete]

        metadata: dict[str, Any] = {
            'source': 'dataframe',
            'columns': {'group': group, 'outcome': outcome},
            'n_dropped': n_dropped,
        }
        if source_path:
            metadata['source_path'] = source_path

        return cls._build(
            table[group].to_numpy(dtype=object),
            table[outcome].to_numpy(dtype=object),
            {c: table[c].to_numpy(dtype=object) for c in covariates},
            metadata,
        )

    @classmethod
    def from_records(
        cls,
        records: Iterable[Mapping[str, Any]],
        *,
        group: str,
        outcome: str,
        covariates: Sequence[str] = (),
    ) -> Dataset:
        """Construct from an iterable of mappings (one per observation)."""
        import pandas as pd

        df = pd.DataFrame.from_records(
            list(records), columns=[group, outcome, *covariates]
        )
        ds = cls.from_dataframe(df, group=group, outcome=outcome, covariates=covariates)
        return replace(ds, _metadata={**ds.metadata, 'source': 'records'})

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        *,
        group: str,
        outcome: str,
        covariates: Sequence[str] = (),
    ) -> Dataset:
        """Construct from a delimited text file (CSV or TSV)."""
        import pandas as pd

        path = Path(path)
        suffix = path.suffix.lower()
        if suffix == '.csv':
            sep = ','
        elif suffix == '.tsv':
            sep = '\t'
        else:
            raise ValidationError(f"Unknown file format: {suffix}")

        df = pd.read_csv(
            path,
            sep=sep,
            usecols=[group, outcome, *covariates],
            dtype=str,
        )
        return cls.from_dataframe(
            df,
            group=group,
            outcome=outcome,
            covariates=covariates,
            source_path=str(path),
        )

    @classmethod
    def _build(
        cls,
        group: ArrayLike,
        outcome: ArrayLike,
        covariates: Mapping[str, ArrayLike],
        metadata: dict[str, Any],
    ) -> Dataset:
        group_arr = check_labels(group, 'group')
        outcome_arr = check_labels(outcome, 'outcome')
        cov_arrs = {name: check_labels(col, name) for name, col in covariates.items()}

        names = ('group', 'outcome') + tuple(cov_arrs)
        check_consistent_length(group_arr, outcome_arr, *cov_arrs.values(), names=names)

        if group_arr.shape[0] == 0:
            raise ValidationError("dataset: requires at least 1 observation, got 0")

        return cls(
            _group=_freeze(group_arr),
            _outcome=_freeze(outcome_arr),
            _covariates={k: _freeze(v) for k, v in cov_arrs.items()},
            _metadata=metadata,
        )
