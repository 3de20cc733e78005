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
Declarative model descriptions
------------------------------
A model is described as data: named priors, a linear predictor built from
terms, a link and a likelihood over observed counts. Sampling backends
compile a description together with `DataBindings`; the description itself
does not depend on any engine.

Prior parameters are numbers or the name of an earlier prior, which is how
hyperpriors are expressed, e.g. ``Prior("b0", "normal", {"mu": 0.0,
"sigma": "sd0"})``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Mapping, Tuple

import numpy as np

DISTRIBUTIONS = ("normal", "exponential", "beta", "bernoulli")
LIKELIHOODS = ("beta_binomial", "binomial")
LINKS = ("logit",)


@dataclass(frozen=True)
class Prior:
    """
    A named random parameter.

    Attributes
    ----------
    name : str
        Parameter name, used for monitoring and posterior lookup.
    distribution : str
        One of `DISTRIBUTIONS`.
    params : Mapping[str, float | str]
        Distribution parameters, e.g. ``{"mu": 0, "sigma": 10}`` for a
        normal, ``{"lam": 0.1}`` for an exponential (rate), ``{"alpha": 0.5,
        "beta": 0.5}`` for a beta and ``{"p": "p_ind"}`` for a bernoulli.
        String values refer to previously declared priors.
    dims : str | None
        Name of the coordinate the parameter is vectorised over, if any.
    """

    name: str
    distribution: str
    params: Mapping[str, float | str] = field(default_factory=dict)
    dims: str | None = None

    def __post_init__(self):
        if self.distribution not in DISTRIBUTIONS:
            raise ValueError(
                f"{self.name}: unknown distribution {self.distribution!r}; "
                f"expected one of {DISTRIBUTIONS}."
            )

    @property
    def references(self) -> Tuple[str, ...]:
        return tuple(v for v in self.params.values() if isinstance(v, str))


@dataclass(frozen=True)
class Term:
    """
    One additive term of the linear predictor.

    The term contributes ``coefficient * covariate`` for a vector covariate
    and ``covariate @ (coefficient * indicator)`` for a matrix covariate,
    where the optional indicator switches coefficients on and off.
    """

    coefficient: str
    covariate: str
    indicator: str | None = None


@dataclass(frozen=True)
class ModelDescription:
    """
    Structure of a regression on site counts.

    Attributes
    ----------
    name : str
        Label used in logs and results.
    priors : tuple[Prior, ...]
        Random parameters in declaration order.
    intercept : str
        Prior name of the intercept.
    terms : tuple[Term, ...]
        Covariate terms; empty for an intercept-only model.
    link : str
        Link from the linear predictor to the mean occupancy probability.
    likelihood : str
        ``"beta_binomial"`` (requires `dispersion`) or ``"binomial"``.
    dispersion : str | None
        Prior name of the Beta-Binomial concentration.
    monitor : tuple[str, ...]
        Parameters retained in the posterior sample table.
    """

    name: str
    priors: Tuple[Prior, ...]
    intercept: str
    terms: Tuple[Term, ...] = ()
    link: str = "logit"
    likelihood: str = "beta_binomial"
    dispersion: str | None = None
    monitor: Tuple[str, ...] = ()

    def __post_init__(self):
        declared = []
        for prior in self.priors:
            if prior.name in declared:
                raise ValueError(f"{self.name}: duplicate prior {prior.name!r}.")
            for ref in prior.references:
                if ref not in declared:
                    raise ValueError(
                        f"{self.name}: prior {prior.name!r} refers to {ref!r}, "
                        "which is not declared before it."
                    )
            declared.append(prior.name)

        if self.link not in LINKS:
            raise ValueError(f"{self.name}: unsupported link {self.link!r}.")
        if self.likelihood not in LIKELIHOODS:
            raise ValueError(f"{self.name}: unsupported likelihood {self.likelihood!r}.")
        if self.likelihood == "beta_binomial" and self.dispersion is None:
            raise ValueError(f"{self.name}: beta_binomial likelihood needs a dispersion.")

        used = [self.intercept]
        for term in self.terms:
            used.append(term.coefficient)
            if term.indicator is not None:
                used.append(term.indicator)
        if self.dispersion is not None:
            used.append(self.dispersion)
        used.extend(self.monitor)
        unknown = [name for name in used if name not in declared]
        if unknown:
            raise ValueError(f"{self.name}: undeclared parameter(s) {unknown}.")

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return tuple(p.name for p in self.priors)

    @property
    def covariates(self) -> Tuple[str, ...]:
        return tuple(t.covariate for t in self.terms)

    def prior(self, name: str) -> Prior:
        for p in self.priors:
            if p.name == name:
                return p
        raise KeyError(name)


@dataclass(frozen=True)
class DataBindings:
    """
    Observed data for a description.

    Attributes
    ----------
    counts : np.ndarray
        (n,) int, sites occupied per species.
    trials : int
        Number of survey sites.
    covariates : Dict[str, np.ndarray]
        Covariates by name: (n,) vectors or (n, k) matrices.
    coords : Dict[str, np.ndarray]
        Coordinate labels; ``"species"`` indexes the observations.
    """

    counts: np.ndarray
    trials: int
    covariates: Dict[str, np.ndarray] = field(default_factory=dict)
    coords: Dict[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        n = self.counts.shape[0]
        if self.counts.ndim != 1:
            raise ValueError(f"counts: expected shape (n,), got {self.counts.shape}.")
        if np.any(self.counts < 0) or np.any(self.counts > self.trials):
            raise ValueError(f"counts must lie in [0, {self.trials}].")
        for name, arr in self.covariates.items():
            if arr.ndim not in (1, 2):
                raise ValueError(f"{name}: expected shape (n,) or (n, k), got {arr.shape}.")
            if arr.shape[0] != n:
                raise ValueError(
                    f"All inputs must share the same n; {name} has n={arr.shape[0]}, expected {n}."
                )
            if not np.all(np.isfinite(arr)):
                raise ValueError(f"{name} must be fully observed.")

    def check(self, description: ModelDescription):
        """Raise if the bindings lack a covariate the description uses."""
        missing = [c for c in description.covariates if c not in self.covariates]
        if missing:
            raise ValueError(f"{description.name}: no data bound for {missing}.")
