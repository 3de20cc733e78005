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
Analysis pipeline
-----------------
The linear batch behind the paper's results:

1. join occurrence counts to risk assessments;
2. fit the variable-selection model and pick a signed subset of components;
3. fit the Beta-Binomial regression (and its null) on the full risk score
   and on the subset score;
4. summarise each fit (coefficients, slope direction, deviance explained,
   predicted curve, contrasts between low/mid/high risk).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from . import analysis, data_prep
from .config import AnalysisConfig
from .data_prep import JoinResult
from .engine import SamplingBackend
from .models import beta_binomial, variable_selection
from .sampler import FitResult, SamplerSettings, fit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskModelResult:
    """Fits and summaries of the Beta-Binomial regression on one risk score."""

    risk_column: str
    risk_mean: float
    fit: FitResult
    null_fit: FitResult
    parameters: pd.DataFrame
    slope_probability: float
    deviance: analysis.DevianceSummary
    curve: pd.DataFrame
    references: Dict[str, float]
    contrasts: pd.DataFrame


@dataclass(frozen=True)
class SelectionResult:
    """Variable-selection fit and the subset-score components it implies."""

    fit: FitResult
    summary: pd.DataFrame
    components: List[Tuple[str, int]]


@dataclass(frozen=True)
class AnalysisReport:
    join: JoinResult
    selection: SelectionResult
    full: RiskModelResult
    subset: RiskModelResult | None


def reference_values(risk: np.ndarray, config: AnalysisConfig) -> Dict[str, float]:
    """Named exemplar risk values for contrasts."""
    if config.contrast_references is not None:
        return {name: float(value) for name, value in config.contrast_references}
    low, mid, high = np.percentile(risk, [10, 50, 90])
    return {"low": float(low), "mid": float(mid), "high": float(high)}


def fit_risk_model(
    table: pd.DataFrame,
    risk_column: str,
    config: AnalysisConfig | None = None,
    settings: SamplerSettings | None = None,
    model_config: beta_binomial.ModelConfig | None = None,
    backend: SamplingBackend | None = None,
) -> RiskModelResult:
    """
    Fit and summarise the Beta-Binomial regression of occupancy on a risk score.

    Raises
    ------
    SamplerError
        If either fit failed, or was flagged while
        `config.require_convergence` is set.
    DegenerateAnalysisError
        If deviance explained is undefined.
    """
    cfg = config or AnalysisConfig()
    spec = beta_binomial.ModelSpecification.from_table(
        table, risk_column, total_sites=cfg.total_sites
    )
    prep = beta_binomial.prepare_data(spec)
    logger.info(
        "Fitting occupancy on %s for %d species (centred at %.3f)",
        risk_column,
        len(spec.nsites),
        prep.risk_mean,
    )

    allow = not cfg.require_convergence
    fitted = fit(
        beta_binomial.describe_model(model_config),
        prep.bindings,
        settings=settings,
        backend=backend,
    )
    null = fit(
        beta_binomial.describe_model(model_config, null=True),
        prep.bindings,
        settings=settings,
        backend=backend,
    )
    samples = fitted.require_samples(allow_unconverged=allow)
    null_samples = null.require_samples(allow_unconverged=allow)

    grid = np.linspace(spec.risk.min(), spec.risk.max(), cfg.grid_points)
    references = reference_values(spec.risk, cfg)

    return RiskModelResult(
        risk_column=risk_column,
        risk_mean=prep.risk_mean,
        fit=fitted,
        null_fit=null,
        parameters=analysis.parameter_summary(samples),
        slope_probability=analysis.directional_probability(samples, "b1"),
        deviance=analysis.deviance_decomposition(
            samples, null_samples, spec.nsites, spec.total_sites, prep.risk_centered
        ),
        curve=analysis.predicted_curve(samples, grid, center=prep.risk_mean),
        references=references,
        contrasts=analysis.pairwise_contrasts(
            samples, references, cfg.contrast_pairs, center=prep.risk_mean
        ),
    )


def fit_selection_model(
    table: pd.DataFrame,
    config: AnalysisConfig | None = None,
    settings: SamplerSettings | None = None,
    model_config: variable_selection.ModelConfig | None = None,
    backend: SamplingBackend | None = None,
) -> SelectionResult:
    """Fit the variable-selection model and derive signed subset components."""
    cfg = config or AnalysisConfig()
    spec = variable_selection.ModelSpecification.from_table(
        table, cfg.components, total_sites=cfg.total_sites
    )
    logger.info(
        "Fitting variable selection over %d components", len(spec.components)
    )
    result = fit(
        variable_selection.describe_model(model_config),
        variable_selection.prepare_data(spec),
        settings=settings,
        backend=backend,
    )
    samples = result.require_samples(allow_unconverged=not cfg.require_convergence)
    summary = analysis.selection_summary(samples, names=list(spec.components))
    components = data_prep.components_from_selection(summary, cfg.selection_threshold)
    logger.info("Selected components: %s", components)
    return SelectionResult(fit=result, summary=summary, components=components)


def run_analysis(
    occurrence: pd.DataFrame,
    risk: pd.DataFrame,
    config: AnalysisConfig | None = None,
    settings: SamplerSettings | None = None,
    backend: SamplingBackend | None = None,
) -> AnalysisReport:
    """
    Run the full batch: join, select, and fit the full and subset scores.

    The subset model is skipped (None) when no component reaches the
    selection threshold.
    """
    cfg = config or AnalysisConfig()
    joined = data_prep.join_tables(
        occurrence, risk, cfg.genus_overrides, total_sites=cfg.total_sites
    )
    table = joined.table

    selection = fit_selection_model(table, cfg, settings, backend=backend)
    full = fit_risk_model(table, cfg.risk_column, cfg, settings, backend=backend)

    subset = None
    if selection.components:
        table = data_prep.derive_subset_score(
            table, selection.components, column=cfg.subset_column
        )
        subset = fit_risk_model(table, cfg.subset_column, cfg, settings, backend=backend)
    else:
        logger.warning(
            "No component reached inclusion rate %.2f; subset model skipped",
            cfg.selection_threshold,
        )

    return AnalysisReport(join=joined, selection=selection, full=full, subset=subset)
