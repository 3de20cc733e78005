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
Sampler driver
--------------
Runs independent chains for a model description, thins and pools the
retained draws, and reports convergence diagnostics.

Failures and non-convergence are reported on the returned `FitResult`;
nothing is retried or corrected automatically.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

import arviz as az
import numpy as np
import pandas as pd

from .engine import PyMCBackend, SamplingBackend
from .errors import ConvergenceWarning, SamplerError
from .models.description import DataBindings, ModelDescription
from .posterior import PosteriorSamples, flatten_dataset

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplerSettings:
    """
    Chain layout and convergence thresholds.

    Notes
    -----
    - Each chain runs `burnin` discarded steps, then keeps every `thin`-th of
      the next `sample * thin` steps, yielding `sample` draws per chain.
    - Chain `i` is seeded with `seed + i`, so results do not depend on how
      the chains are scheduled across processes.
    - `cores` caps the process pool; None means one process per chain.
    """

    chains: int = 4
    burnin: int = 1000
    sample: int = 1000
    thin: int = 1
    seed: int = 20240601
    cores: int | None = None
    target_accept: float = 0.9

    rhat_threshold: float = 1.05
    min_ess: float = 400.0
    max_divergences: int = 0

    def __post_init__(self):
        for name, value, low in [
            ("chains", self.chains, 1),
            ("burnin", self.burnin, 0),
            ("sample", self.sample, 1),
            ("thin", self.thin, 1),
        ]:
            if int(value) != value or value < low:
                raise ValueError(f"{name} must be an integer >= {low}, got {value}.")
        if self.cores is not None and self.cores < 1:
            raise ValueError(f"cores must be >= 1, got {self.cores}.")
        if not 0.0 < self.target_accept < 1.0:
            raise ValueError(f"target_accept must lie in (0, 1), got {self.target_accept}.")
        if int(self.max_divergences) != self.max_divergences or self.max_divergences < 0:
            raise ValueError(
                f"max_divergences must be an integer >= 0, got {self.max_divergences}."
            )

    @property
    def pool_size(self) -> int:
        return min(self.cores or self.chains, self.chains)

    def chain_seeds(self) -> List[int]:
        return [self.seed + i for i in range(self.chains)]


@dataclass(frozen=True)
class Diagnostics:
    """
    Per-element convergence diagnostics.

    Attributes
    ----------
    table : pd.DataFrame
        Indexed by parameter element, columns ``ess``, ``r_hat`` and
        ``flagged`` (R-hat above threshold or ESS below minimum).
    divergences : int
        Divergent transitions among the retained draws.
    rhat_threshold, min_ess : float
        Thresholds the flags were computed with.
    max_divergences : int
        Divergent transitions tolerated before the run counts as unconverged.
    """

    table: pd.DataFrame
    divergences: int
    rhat_threshold: float
    min_ess: float
    max_divergences: int = 0

    @property
    def flagged(self) -> List[str]:
        return list(self.table.index[self.table["flagged"]])

    @property
    def converged(self) -> bool:
        return not self.flagged and not self.too_many_divergences

    @property
    def too_many_divergences(self) -> bool:
        return self.divergences > self.max_divergences

    @property
    def max_rhat(self) -> float:
        return float(self.table["r_hat"].max())

    @property
    def min_ess_observed(self) -> float:
        return float(self.table["ess"].min())


@dataclass(frozen=True)
class FitResult:
    """
    Outcome of one sampling run: samples and diagnostics, or a failure reason.
    """

    model: str
    settings: SamplerSettings
    samples: PosteriorSamples | None = None
    diagnostics: Diagnostics | None = None
    error: str | None = None
    monitor: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.error is None and self.samples is not None

    @property
    def converged(self) -> bool:
        return self.ok and self.diagnostics is not None and self.diagnostics.converged

    def require_samples(self, allow_unconverged: bool = True) -> PosteriorSamples:
        """
        Return the samples, raising `SamplerError` if the run failed.

        Parameters
        ----------
        allow_unconverged : bool
            If False, also raise when any diagnostic was flagged.
        """
        if not self.ok:
            raise SamplerError(f"{self.model}: sampling failed: {self.error}")
        if not allow_unconverged and not self.converged:
            raise SamplerError(
                f"{self.model}: chains did not converge "
                f"(flagged: {self.diagnostics.flagged}, "
                f"divergences: {self.diagnostics.divergences})"
            )
        return self.samples


def thin_draws(idata: az.InferenceData, thin: int) -> az.InferenceData:
    """Keep every `thin`-th draw (the thin-th, 2*thin-th, ...) of each chain."""
    if thin == 1:
        return idata
    return idata.isel(draw=slice(thin - 1, None, thin))


def compute_diagnostics(
    idata: az.InferenceData,
    monitor: Sequence[str],
    rhat_threshold: float,
    min_ess: float,
    max_divergences: int = 0,
) -> Diagnostics:
    """
    Bulk effective sample size and rank-normalised R-hat per element.

    Elements whose draws never vary (e.g. an indicator that is always on)
    have undefined statistics; they are reported as NaN and not flagged.
    """
    ess = flatten_dataset(az.ess(idata, var_names=list(monitor)), monitor)
    rhat = flatten_dataset(az.rhat(idata, var_names=list(monitor)), monitor)

    table = pd.DataFrame({"ess": pd.Series(ess), "r_hat": pd.Series(rhat)})
    table["flagged"] = (table["r_hat"] > rhat_threshold) | (table["ess"] < min_ess)

    divergences = 0
    if hasattr(idata, "sample_stats") and "diverging" in idata.sample_stats:
        divergences = int(np.asarray(idata.sample_stats["diverging"]).sum())

    return Diagnostics(
        table=table,
        divergences=divergences,
        rhat_threshold=rhat_threshold,
        min_ess=min_ess,
        max_divergences=max_divergences,
    )


def fit(
    description: ModelDescription,
    bindings: DataBindings,
    monitor: Sequence[str] | None = None,
    settings: SamplerSettings | None = None,
    backend: SamplingBackend | None = None,
) -> FitResult:
    """
    Sample a model and summarise convergence.

    Parameters
    ----------
    description : ModelDescription
        Model structure.
    bindings : DataBindings
        Observed data.
    monitor : Sequence[str], optional
        Parameters to keep; defaults to `description.monitor`, or every
        declared parameter when that is empty.
    settings : SamplerSettings, optional
        Chain layout; defaults to `SamplerSettings()`.
    backend : SamplingBackend, optional
        Sampling engine; defaults to `PyMCBackend()`.

    Returns
    -------
    FitResult
        Samples and diagnostics, or the error that stopped sampling.
    """
    cfg = settings or SamplerSettings()
    engine = backend or PyMCBackend()
    names = tuple(monitor or description.monitor or description.parameter_names)

    unknown = [n for n in names if n not in description.parameter_names]
    if unknown:
        raise ValueError(f"{description.name}: cannot monitor undeclared {unknown}.")

    try:
        raw = engine.sample(description, bindings, cfg)
    except Exception as exc:  # engine failures are reported, not raised
        logger.warning("Sampling %s failed: %s", description.name, exc, exc_info=True)
        return FitResult(
            model=description.name,
            settings=cfg,
            error=f"{type(exc).__name__}: {exc}",
            monitor=names,
        )

    idata = thin_draws(raw, cfg.thin)
    samples = PosteriorSamples.from_inference_data(idata, names)
    diagnostics = compute_diagnostics(
        idata, names, cfg.rhat_threshold, cfg.min_ess, cfg.max_divergences
    )

    if diagnostics.converged:
        logger.info(
            "%s: %d draws, max R-hat %.3f, min ESS %.0f",
            description.name,
            samples.n_draws,
            diagnostics.max_rhat,
            diagnostics.min_ess_observed,
        )
    else:
        problems = []
        if diagnostics.flagged:
            problems.append(
                f"R-hat > {cfg.rhat_threshold} or ESS < {cfg.min_ess} for "
                f"{diagnostics.flagged}"
            )
        if diagnostics.too_many_divergences:
            problems.append(
                f"{diagnostics.divergences} divergent transition(s) "
                f"(max {cfg.max_divergences})"
            )
        message = (
            f"{description.name}: {'; '.join(problems)}; "
            "consider longer chains or more burn-in."
        )
        logger.warning(message)
        warnings.warn(message, ConvergenceWarning, stacklevel=2)
    if diagnostics.divergences and not diagnostics.too_many_divergences:
        logger.info(
            "%s: %d divergent transition(s) tolerated",
            description.name,
            diagnostics.divergences,
        )

    return FitResult(
        model=description.name,
        settings=cfg,
        samples=samples,
        diagnostics=diagnostics,
        monitor=names,
    )
