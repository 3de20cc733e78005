# -----------------------------------------------------------------------------
# Copyright 2025 The grass-risk Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# -----------------------------------------------------------------------------

"""
Data preparation
----------------
Joins site occurrence counts to per-species risk assessments and derives
the covariates used by the models.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd

from .config import TOTAL_SITES
from .errors import DataValidationError, MissingComponentError, TypeMismatchError
from .stats_utils import center, to_float64_array

__all__ = [
    "JoinResult",
    "join_tables",
    "derive_subset_score",
    "component_matrix",
    "components_from_selection",
    "center",
]

logger = logging.getLogger(__name__)

pd.options.mode.copy_on_write = True

_KEY = "_match_key"


@dataclass(frozen=True)
class JoinResult:
    """Joined analysis table and the occurrence species that had no risk row."""

    table: pd.DataFrame
    dropped: Tuple[str, ...]

    @property
    def n_dropped(self) -> int:
        return len(self.dropped)


def _require_columns(df: pd.DataFrame, columns: Iterable[str], label: str):
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise DataValidationError(f"{label} table is missing column(s): {missing}")


def _match_key(names: pd.Series, genus_overrides: Sequence[str]) -> pd.Series:
    key = names.astype(str).str.strip()
    for genus in genus_overrides:
        key = key.mask(key.str.contains(genus, regex=False), genus)
    return key


def _validate_counts(nsites: pd.Series, total_sites: int) -> np.ndarray:
    if not pd.api.types.is_numeric_dtype(nsites) or pd.api.types.is_bool_dtype(nsites):
        raise TypeMismatchError(f"nsites must be numeric, got dtype {nsites.dtype}.")
    values = to_float64_array(nsites)
    if np.isnan(values).any():
        raise DataValidationError("nsites contains missing values.")
    if not np.all(values == np.round(values)):
        raise DataValidationError("nsites must hold whole counts.")
    bad = (values < 0) | (values > total_sites)
    if bad.any():
        raise DataValidationError(
            f"Found {int(bad.sum())} count(s) outside [0, {total_sites}]. "
            f"Example: {nsites[bad].iloc[0]}"
        )
    return values.astype(np.int64)


def join_tables(
    occurrence: pd.DataFrame,
    risk: pd.DataFrame,
    genus_overrides: Sequence[str] = ("Sporobolus",),
    total_sites: int = TOTAL_SITES,
) -> JoinResult:
    """
    Left-join occurrence rows onto risk rows and drop species without a risk row.

    Species whose name contains one of `genus_overrides` are matched on the
    genus token alone, on both sides, so that every such occurrence row
    resolves to a single risk assessment (the first risk row of that genus).

    Parameters
    ----------
    occurrence : pd.DataFrame
        Columns `species_name`, `nsites` and optionally `common_name`.
    risk : pd.DataFrame
        Column `species_name` plus numeric risk component columns.
    genus_overrides : Sequence[str]
        Genus tokens matched by genus rather than full species name.
    total_sites : int
        Number of survey sites; bounds `nsites`.

    Returns
    -------
    JoinResult
        The joined table (with `psites = nsites / total_sites` and the
        matched `risk_species_name`) and the names of dropped species.
    """
    _require_columns(occurrence, ["species_name", "nsites"], "occurrence")
    _require_columns(risk, ["species_name"], "risk")

    occ = occurrence.copy()
    occ["nsites"] = _validate_counts(occ["nsites"], total_sites)
    occ[_KEY] = _match_key(occ["species_name"], genus_overrides)

    rsk = risk.rename(columns={"species_name": "risk_species_name"})
    rsk[_KEY] = _match_key(rsk["risk_species_name"], genus_overrides)
    duplicated = rsk[_KEY].duplicated(keep="first")
    if duplicated.any():
        logger.info(
            "Collapsing %d risk row(s) onto an earlier row with the same match key: %s",
            int(duplicated.sum()),
            sorted(rsk.loc[duplicated, "risk_species_name"].tolist()),
        )
        rsk = rsk.loc[~duplicated]

    merged = occ.merge(
        rsk, on=_KEY, how="left", suffixes=("", "_risk"), indicator=True
    )
    unmatched = merged["_merge"] == "left_only"
    dropped = tuple(merged.loc[unmatched, "species_name"].astype(str))
    if dropped:
        logger.info(
            "Dropped %d of %d species with no risk assessment: %s",
            len(dropped),
            len(merged),
            list(dropped),
        )

    table = (
        merged.loc[~unmatched]
        .drop(columns=[_KEY, "_merge"])
        .reset_index(drop=True)
    )
    table["psites"] = table["nsites"] / float(total_sites)

    return JoinResult(table=table, dropped=dropped)


def _numeric_column(table: pd.DataFrame, column: str) -> np.ndarray:
    if column not in table.columns:
        raise MissingComponentError(column)
    series = table[column]
    if not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series):
        raise TypeMismatchError(
            f"risk component {column!r} must be numeric, got dtype {series.dtype}."
        )
    return to_float64_array(series)


def derive_subset_score(
    table: pd.DataFrame,
    components: Sequence[Tuple[str, int]],
    column: str = "summed_risk_subset",
) -> pd.DataFrame:
    """
    Add a reduced risk score: the signed sum of selected component columns.

    Parameters
    ----------
    table : pd.DataFrame
        Joined analysis table.
    components : Sequence[tuple[str, int]]
        Ordered `(column, sign)` pairs; sign is +1 or -1.
    column : str
        Name of the new column.

    Returns
    -------
    pd.DataFrame
        A copy of `table` with the new column.
    """
    if not components:
        raise ValueError("at least one component is required for a subset score.")

    score = np.zeros(len(table), dtype=np.float64)
    for name, sign in components:
        if sign not in (1, -1):
            raise ValueError(f"sign for {name!r} must be +1 or -1, got {sign}.")
        values = _numeric_column(table, name)
        if np.isnan(values).any():
            raise DataValidationError(f"risk component {name!r} has missing values.")
        score += sign * values

    return table.assign(**{column: score})


def component_matrix(table: pd.DataFrame, components: Sequence[str]) -> np.ndarray:
    """
    Raw (uncentred) component scores as an (n_species, n_components) matrix.
    """
    if not components:
        raise ValueError("at least one component is required.")
    columns = [_numeric_column(table, name) for name in components]
    X = np.column_stack(columns).astype(np.float64)
    if np.isnan(X).any():
        rows, cols = np.nonzero(np.isnan(X))
        raise DataValidationError(
            f"risk component {components[cols[0]]!r} has missing values "
            f"(e.g. row {rows[0]})."
        )
    return X


def components_from_selection(
    selection: pd.DataFrame, threshold: float = 0.5
) -> List[Tuple[str, int]]:
    """
    Choose subset-score components from a variable-selection summary.

    Parameters
    ----------
    selection : pd.DataFrame
        Indexed by component name with columns `inclusion_rate` and
        `effect_median` (see `analysis.selection_summary`).
    threshold : float
        Minimum inclusion rate for a component to be kept.

    Returns
    -------
    list[tuple[str, int]]
        `(column, sign)` pairs in the summary's order; the sign follows the
        median coefficient conditional on inclusion.
    """
    _require_columns(selection, ["inclusion_rate", "effect_median"], "selection")
    chosen = selection.loc[selection["inclusion_rate"] >= threshold]
    return [
        (str(name), -1 if effect < 0 else 1)
        for name, effect in chosen["effect_median"].items()
    ]
