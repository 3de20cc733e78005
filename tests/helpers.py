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
"""Test doubles shared across the suites."""

import arviz as az
import numpy as np
import pandas as pd

from grass_risk.posterior import PosteriorSamples


def make_samples(chains: int = 1, **columns) -> PosteriorSamples:
    """Posterior table from literal draws, e.g. make_samples(b0=[...], b1=[...])."""
    return PosteriorSamples(
        pd.DataFrame({k: np.asarray(v, dtype=float) for k, v in columns.items()}),
        chains=chains,
    )


class FakeBackend:
    """
    Draws independent values per prior instead of running MCMC.

    `means` sets the location of normal priors; `inclusion` is the chance a
    bernoulli indicator is on; `diverging` marks every draw as divergent.
    """

    name = "fake"

    def __init__(self, means=None, inclusion: float = 0.5, diverging: bool = False):
        self.means = means or {}
        self.inclusion = inclusion
        self.diverging = diverging
        self.calls = []

    def sample(self, description, bindings, settings):
        self.calls.append(description.name)
        rng = np.random.default_rng(settings.seed)
        n_draw = settings.sample * settings.thin
        posterior = {}
        for prior in description.priors:
            shape = (settings.chains, n_draw)
            if prior.dims is not None:
                shape += (len(bindings.coords[prior.dims]),)
            if prior.distribution == "bernoulli":
                values = (rng.random(shape) < self.inclusion).astype(np.int64)
            elif prior.distribution == "exponential":
                values = rng.exponential(1.0, shape) + 0.5
            elif prior.distribution == "beta":
                values = rng.uniform(0.05, 0.95, shape)
            else:
                values = rng.normal(self.means.get(prior.name, 0.0), 0.1, shape)
            posterior[prior.name] = values
        diverging = np.full((settings.chains, n_draw), self.diverging, dtype=bool)
        return az.from_dict(posterior=posterior, sample_stats={"diverging": diverging})


class FailingBackend:
    name = "failing"

    def sample(self, description, bindings, settings):
        raise FloatingPointError("initial evaluation of model at starting point failed")
