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
Sampling backends
-----------------
A backend turns a `ModelDescription` plus `DataBindings` into raw posterior
draws. It runs `burnin` tuning steps per chain, then `sample * thin` kept
steps; thinning, pooling and diagnostics are done by the sampler driver.

`PyMCBackend` compiles descriptions to a `pm.Model` and samples with NUTS
(continuous parameters) and binary Gibbs updates (inclusion indicators),
running chains in a process pool.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Protocol

import arviz as az
import numpy as np
import pymc as pm
import pytensor.tensor as pt

from .models.description import DataBindings, ModelDescription
from .stats_utils import PROB_EPS

if TYPE_CHECKING:
    from .sampler import SamplerSettings

logger = logging.getLogger(__name__)

_PYMC_DISTRIBUTIONS = {
    "normal": pm.Normal,
    "exponential": pm.Exponential,
    "beta": pm.Beta,
    "bernoulli": pm.Bernoulli,
}


class SamplingBackend(Protocol):
    """Narrow interface every sampling engine implements."""

    name: str

    def sample(
        self,
        description: ModelDescription,
        bindings: DataBindings,
        settings: "SamplerSettings",
    ) -> az.InferenceData:
        """Return post-burnin draws of shape (chains, sample * thin, ...)."""
        ...


class PyMCBackend:
    """Compile descriptions to PyMC and sample them."""

    name = "pymc"

    def compile(self, description: ModelDescription, bindings: DataBindings) -> pm.Model:
        """
        Build the PyMC model for a description.

        Parameters
        ----------
        description : ModelDescription
            Model structure.
        bindings : DataBindings
            Observed counts, trials and covariates.

        Returns
        -------
        model : pm.Model
        """
        bindings.check(description)

        n = bindings.counts.shape[0]
        coords = {k: np.asarray(v) for k, v in bindings.coords.items()}
        coords.setdefault("species", np.arange(n))

        with pm.Model(coords=coords) as model:
            # -----------------------------------------------------------------
            # Priors, in declaration order so hyperpriors exist before use
            # -----------------------------------------------------------------
            rvs: Dict[str, pt.TensorVariable] = {}
            for prior in description.priors:
                params = {
                    key: rvs[value] if isinstance(value, str) else value
                    for key, value in prior.params.items()
                }
                dist = _PYMC_DISTRIBUTIONS[prior.distribution]
                rvs[prior.name] = dist(prior.name, **params, dims=prior.dims)

            # -----------------------------------------------------------------
            # Linear predictor
            # -----------------------------------------------------------------
            eta = rvs[description.intercept]
            for term in description.terms:
                values = bindings.covariates[term.covariate]
                coef = rvs[term.coefficient]
                if term.indicator is not None:
                    coef = coef * rvs[term.indicator]

                if values.ndim == 1:
                    x = pm.Data(term.covariate, values, dims=("species",))
                    eta = eta + coef * x
                else:
                    dim = description.prior(term.coefficient).dims
                    if dim is None:
                        raise ValueError(
                            f"{description.name}: matrix covariate {term.covariate!r} "
                            f"needs a vector coefficient; {term.coefficient!r} has no dims."
                        )
                    x = pm.Data(term.covariate, values, dims=("species", dim))
                    eta = eta + pm.math.dot(x, coef)

            # -----------------------------------------------------------------
            # Observation model
            # -----------------------------------------------------------------
            if description.likelihood == "binomial":
                pm.Binomial(
                    "nsites",
                    n=bindings.trials,
                    logit_p=eta,
                    observed=bindings.counts,
                    dims="species",
                )
            else:
                pmean = pt.clip(pm.math.sigmoid(eta), PROB_EPS, 1.0 - PROB_EPS)
                phi = rvs[description.dispersion]
                pm.BetaBinomial(
                    "nsites",
                    n=bindings.trials,
                    alpha=pmean * phi,
                    beta=(1.0 - pmean) * phi,
                    observed=bindings.counts,
                    dims="species",
                )

        return model

    def sample(
        self,
        description: ModelDescription,
        bindings: DataBindings,
        settings: "SamplerSettings",
    ) -> az.InferenceData:
        model = self.compile(description, bindings)
        logger.info(
            "Sampling %s: %d chain(s) on %d core(s), burnin=%d, draws=%d, thin=%d",
            description.name,
            settings.chains,
            settings.pool_size,
            settings.burnin,
            settings.sample,
            settings.thin,
        )
        with model:
            return pm.sample(
                draws=settings.sample * settings.thin,
                tune=settings.burnin,
                chains=settings.chains,
                cores=settings.pool_size,
                random_seed=settings.chain_seeds(),
                target_accept=settings.target_accept,
                progressbar=False,
                compute_convergence_checks=False,
            )
