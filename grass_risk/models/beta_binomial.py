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
Beta-Binomial occupancy regression
==================================

Per species i:
    nsites_i ~ BetaBinomial(total_sites,
                            a = pmean_i * phi,
                            b = (1 - pmean_i) * phi)
    logit(pmean_i) = b0 + b1 * risk_i

which is the Binomial model with a Beta-distributed per-species occupancy
probability p_i ~ Beta(a, b) integrated out.

Priors:
    b0  ~ Normal(0, 10)
    b1  ~ Normal(0, 10)
    phi ~ Exponential(rate = 1/10)

phi is the over-dispersion scale: larger phi concentrates p_i near pmean_i
and shrinks the extra-binomial variance.

The risk score is centred before fitting; the mean is kept so that new risk
values can be placed on the same scale. The null variant drops the risk
term (logit(pmean) = b0) and serves as the deviance baseline.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
import pymc as pm

from .. import stats_utils
from ..config import TOTAL_SITES
from ..engine import PyMCBackend
from .description import DataBindings, ModelDescription, Prior, Term

pd.options.mode.copy_on_write = True


@dataclass(frozen=True)
class ModelConfig:
    """
    Prior scales for the regression.

    `phi_rate` is the exponential rate of the concentration prior
    (mean 1 / phi_rate).
    """

    sd_prior_b0: float = 10.0
    sd_prior_b1: float = 10.0
    phi_rate: float = 0.1


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
    risk : (N,) float
        Risk score per species (raw, uncentred).
    total_sites : int
        Number of survey sites.
    species : (N,) str
        Species labels used as coordinates.
    """

    def __init__(
        self,
        nsites: list | pd.Series | np.ndarray,
        risk: list | pd.Series | np.ndarray,
        total_sites: int = TOTAL_SITES,
        species: list | pd.Series | np.ndarray | None = None,
    ):
        nsites = stats_utils.to_float64_array(nsites)
        risk = stats_utils.to_float64_array(risk)
        N = nsites.shape[0]

        if N == 0:
            raise ValueError("at least one species is required.")
        if risk.shape[0] != N:
            raise ValueError(
                f"All inputs must share the same N; risk has N={risk.shape[0]}, expected {N}."
            )
        if np.isnan(nsites).any() or np.isnan(risk).any():
            raise ValueError("nsites and risk must be fully observed (no NaNs).")
        if np.any(nsites != np.round(nsites)):
            raise ValueError("nsites must hold whole counts.")
        if np.any(nsites < 0) or np.any(nsites > total_sites):
            raise ValueError(f"Found count(s) outside [0, {total_sites}].")

        if species is None:
            species = [str(i) for i in range(N)]
        species = np.asarray(species, dtype=str)
        if species.shape[0] != N:
            raise ValueError(
                f"All inputs must share the same N; species has N={species.shape[0]}, expected {N}."
            )

        self.nsites = nsites.astype(np.int64)
        self.risk = np.ascontiguousarray(risk)
        self.total_sites = int(total_sites)
        self.species = species

    @classmethod
    def from_table(
        cls,
        table: pd.DataFrame,
        risk_column: str,
        total_sites: int = TOTAL_SITES,
    ) -> "ModelSpecification":
        """Read `nsites`, `species_name` and the risk column of a joined table."""
        return cls(
            nsites=table["nsites"],
            risk=table[risk_column],
            total_sites=total_sites,
            species=table["species_name"] if "species_name" in table else None,
        )


@dataclass
class PreparedData:
    """Bindings consumed by the sampler plus the centring constant."""

    bindings: DataBindings
    risk_centered: np.ndarray  # (N,)
    risk_mean: float


def prepare_data(spec: ModelSpecification) -> PreparedData:
    """
    Centre the risk score and bind the data.

    Notes
    -----
    - Centring keeps b0 and b1 weakly correlated, which the sampler needs.
    - The mean is returned so predictions use ``risk_new - risk_mean``.
    """
    risk_centered, risk_mean = stats_utils.center(spec.risk)
    bindings = DataBindings(
        counts=spec.nsites,
        trials=spec.total_sites,
        covariates={"risk": risk_centered},
        coords={"species": stats_utils.unique_labels(spec.species)},
    )
    return PreparedData(
        bindings=bindings, risk_centered=risk_centered, risk_mean=risk_mean
    )


# ---------------------------------------------------------------------
# (2) Model description and construction
# ---------------------------------------------------------------------


def describe_model(config: ModelConfig | None = None, null: bool = False) -> ModelDescription:
    """
    Declarative description of the regression (or its null variant).

    Parameters
    ----------
    config : ModelConfig, optional
        Prior scales.
    null : bool
        Drop the risk term, leaving a shared mean for all species.

    Returns
    -------
    ModelDescription
    """
    cfg = config or ModelConfig()

    priors = [Prior("b0", "normal", {"mu": 0.0, "sigma": cfg.sd_prior_b0})]
    terms = ()
    if not null:
        priors.append(Prior("b1", "normal", {"mu": 0.0, "sigma": cfg.sd_prior_b1}))
        terms = (Term(coefficient="b1", covariate="risk"),)
    priors.append(Prior("phi", "exponential", {"lam": cfg.phi_rate}))

    return ModelDescription(
        name="beta_binomial_null" if null else "beta_binomial",
        priors=tuple(priors),
        intercept="b0",
        terms=terms,
        link="logit",
        likelihood="beta_binomial",
        dispersion="phi",
        monitor=("b0", "phi") if null else ("b0", "b1", "phi"),
    )


def build_model(
    spec: ModelSpecification, config: ModelConfig | None = None, null: bool = False
) -> pm.Model:
    """
    Build the PyMC model for the Beta-Binomial regression.

    Parameters
    ----------
    spec : ModelSpecification
        Validated counts and risk scores.
    config : ModelConfig, optional
        Prior scales.
    null : bool
        Build the intercept-only variant.

    Returns
    -------
    model : pm.Model
    """
    prep = prepare_data(spec)
    return PyMCBackend().compile(describe_model(config, null=null), prep.bindings)
