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
Analysis-wide constants.

Prior scales live with each model family (`ModelConfig`) and sampler
settings with the driver (`SamplerSettings`); this module carries the
survey and table layout shared by the whole analysis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

# Number of survey sites; identical for every species.
TOTAL_SITES = 139

# Risk components entered into the variable-selection model, in order.
RISK_COMPONENTS: Tuple[str, ...] = (
    "trade_off_species",
    "long_term_seed_viability",
    "allelopathy",
    "resource_competition",
    "changes_to_ecosystem",
    "future_distribution",
    "dispersal_ability",
    "reproductive_output",
    "environmental_tolerance",
    "invasion_history",
)


@dataclass(frozen=True)
class AnalysisConfig:
    """
    Survey constants and table layout.

    Notes
    -----
    - `risk_column` is the precomputed total over all assessment sub-items;
      it is read as-is and never rebuilt from `components`.
    - `genus_overrides` lists genus tokens whose species are matched on the
      genus alone (several occurrence species share one risk assessment).
    - `contrast_references` maps exemplar names to raw risk values. When
      None, the 10th/50th/90th percentiles of the observed score are used
      as "low"/"mid"/"high".
    """

    total_sites: int = TOTAL_SITES
    genus_overrides: Tuple[str, ...] = ("Sporobolus",)
    components: Tuple[str, ...] = RISK_COMPONENTS
    risk_column: str = "summed_risk"
    subset_column: str = "summed_risk_subset"

    # Components with inclusion rate >= threshold enter the subset score.
    selection_threshold: float = 0.5

    # Refuse to summarise runs whose diagnostics were flagged.
    require_convergence: bool = False

    grid_points: int = 100
    contrast_references: Tuple[Tuple[str, float], ...] | None = None
    contrast_pairs: Tuple[Tuple[str, str], ...] = (
        ("mid", "low"),
        ("high", "mid"),
        ("high", "low"),
    )

    def __post_init__(self):
        if self.total_sites < 1:
            raise ValueError(f"total_sites must be >= 1, got {self.total_sites}.")
        if not 0.0 <= self.selection_threshold <= 1.0:
            raise ValueError(
                f"selection_threshold must lie in [0, 1], got {self.selection_threshold}."
            )
        if self.grid_points < 2:
            raise ValueError(f"grid_points must be >= 2, got {self.grid_points}.")
