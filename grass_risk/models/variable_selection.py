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

# -----------------------------------------------------------------------------
# Indicator variable selection over risk components
#
#   psi   : per-component inclusion switch (0/1)
#   p_ind : prior inclusion probability of each switch
#   b1    : component coefficients, shared scale sd_b (partial pooling)
#   b0    : intercept with its own scale sd0
#
# All coefficients live on the logit scale. X is the raw, uncentred
# component matrix.
# -----------------------------------------------------------------------------

"""
Variable-selection model
========================

Per species i and component j:
    nsites_i ~ Binomial(total_sites, p_occ_i)
    logit(p_occ_i) = b0 + sum_j b1_j * psi_j * X_ij

    psi_j   ~ Bernoulli(p_ind_j)
    p_ind_j ~ Beta(0.5, 0.5)
    b0      ~ Normal(0, sd0)
    b1_j    ~ Normal(0, sd_b)
    sd0     ~ Exponential(1)
    sd_b    ~ Exponential(1)

The Beta(0.5, 0.5) prior is U-shaped: it pushes each p_ind towards 0 or 1
so chains commit to including or excluding a component.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import pandas as pd
import pymc as pm

from .. import stats_utils
from ..config import RISK_COMPONENTS, TOTAL_SITES
from ..data_prep import component_matrix
from ..engine import PyMCBackend
from .description import DataBindings, ModelDescription, Prior, Term

pd.options.mode.copy_on_write = True


@dataclass(frozen=True)
class ModelConfig:
    """
    Hyperparameters of the selection model.

    - `inclusion_alpha`/`inclusion_beta` shape the Beta prior on p_ind.
    - `sd0_rate`/`sd_b_rate` are exponential rates of the coefficient scales.
    """

    inclusion_alpha: float = 0.5
    inclusion_beta: float = 0.5
    sd0_rate: float = 1.0
    sd_b_rate: float = 1.0


# ---------------------------------------------------------------------
# (1) Data specification (validation) and preparation
# ---------------------------------------------------------------------


class ModelSpecification:
    """
    Specifies the inputs required to build the model.

    Attributes
    ----------
    nsites : (N,) int
        Sites occupied per species.
    X : (N, J) float
        Raw component scores.
    components : (J,) str
        Component names, in column order of X.
    total_sites : int
        Number of survey sites.
    """

    def __init__(
        self,
        nsites: list | pd.Series | np.ndarray,
        X: np.ndarray,
        components: Sequence[str],
        total_sites: int = TOTAL_SITES,
        species: list | pd.Series | np.ndarray | None = None,
    ):
        nsites = stats_utils.to_float64_array(nsites)
        X = np.asarray(X, dtype=np.float64)
        N = nsites.shape[0]

        if N == 0:
            raise ValueError("at least one species is required.")
        if X.ndim != 2 or X.shape[0] != N:
            raise ValueError(f"X: expected shape ({N}, J), got {X.shape}.")
        if X.shape[1] != len(components):
            raise ValueError(
                f"X has {X.shape[1]} column(s) but {len(components)} component name(s)."
            )
        if len(set(components)) != len(components):
            raise ValueError("component names must be unique.")
        if np.isnan(nsites).any() or np.isnan(X).any():
            raise ValueError("nsites and X must be fully observed (no NaNs).")
        if np.any(nsites != np.round(nsites)):
            raise ValueError("nsites must hold whole counts.")
        if np.any(nsites < 0) or np.any(nsites > total_sites):
            raise ValueError(f"Found count(s) outside [0, {total_sites}].")

        if species is None:
            species = [str(i) for i in range(N)]

        self.nsites = nsites.astype(np.int64)
        self.X = np.ascontiguousarray(X)
        self.components = np.asarray(components, dtype=str)
        self.total_sites = int(total_sites)
        self.species = np.asarray(species, dtype=str)

    @classmethod
    def from_table(
        cls,
        table: pd.DataFrame,
        components: Sequence[str] = RISK_COMPONENTS,
        total_sites: int = TOTAL_SITES,
    ) -> "ModelSpecification":
        """Read `nsites` and the component columns of a joined table."""
        return cls(
            nsites=table["nsites"],
            X=component_matrix(table, components),
            components=list(components),
            total_sites=total_sites,
            species=table["species_name"] if "species_name" in table else None,
        )


def prepare_data(spec: ModelSpecification) -> DataBindings:
    """Bind counts and the raw component matrix; X is deliberately not centred."""
    return DataBindings(
        counts=spec.nsites,
        trials=spec.total_sites,
        covariates={"X": spec.X},
        coords={
            "species": stats_utils.unique_labels(spec.species),
            "component": spec.components,
        },
    )


# ---------------------------------------------------------------------
# (2) Model description and construction
# ---------------------------------------------------------------------


def describe_model(config: ModelConfig | None = None) -> ModelDescription:
    """
    Declarative description of the selection model.

    Returns
    -------
    ModelDescription
    """
    cfg = config or ModelConfig()
    priors = (
        Prior(
            "p_ind",
            "beta",
            {"alpha": cfg.inclusion_alpha, "beta": cfg.inclusion_beta},
            dims="component",
        ),
        Prior("psi", "bernoulli", {"p": "p_ind"}, dims="component"),
        Prior("sd0", "exponential", {"lam": cfg.sd0_rate}),
        Prior("sd_b", "exponential", {"lam": cfg.sd_b_rate}),
        Prior("b0", "normal", {"mu": 0.0, "sigma": "sd0"}),
        Prior("b1", "normal", {"mu": 0.0, "sigma": "sd_b"}, dims="component"),
    )
    return ModelDescription(
        name="variable_selection",
        priors=priors,
        intercept="b0",
        terms=(Term(coefficient="b1", covariate="X", indicator="psi"),),
        link="logit",
        likelihood="binomial",
        monitor=("b0", "b1", "psi", "p_ind", "sd0", "sd_b"),
    )


def build_model(spec: ModelSpecification, config: ModelConfig | None = None) -> pm.Model:
    """
    Build the PyMC model for indicator variable selection.

    Parameters
    ----------
    spec : ModelSpecification
        Validated counts and component scores.
    config : ModelConfig, optional
        Hyperparameters.

    Returns
    -------
    model : pm.Model
    """
    return PyMCBackend().compile(describe_model(config), prepare_data(spec))
