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
Posterior analysis
------------------
Read-only summaries of pooled posterior draws: inclusion rates, effects
conditional on inclusion, predicted occupancy curves, deviance explained,
the probability of a positive slope and contrasts between risk levels.

All functions take a `PosteriorSamples` and address parameters by name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from . import stats_utils
from .errors import DegenerateAnalysisError, UnknownParameterError
from .posterior import PosteriorSamples

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------
# (1) Variable selection
# ---------------------------------------------------------------------


def _indicator_draws(samples: PosteriorSamples, indicator: str) -> np.ndarray:
    psi = samples.vector(indicator)
    if not np.isin(psi, (0.0, 1.0)).all():
        raise ValueError(f"{indicator} draws must be 0/1 indicators.")
    return psi


def _labels(name: str, names: Sequence[str] | None, k: int):
    if names is None:
        return [f"{name}[{j}]" for j in range(k)]
    if len(names) != k:
        raise ValueError(f"expected {k} name(s) for {name}, got {len(names)}.")
    return list(names)


def inclusion_rates(
    samples: PosteriorSamples,
    indicator: str = "psi",
    names: Sequence[str] | None = None,
) -> pd.Series:
    """
    Fraction of draws in which each component was switched on.

    This is the reported importance score of a component; it is a posterior
    probability, not a p-value.

    Parameters
    ----------
    samples : PosteriorSamples
        Draws including the indicator vector.
    indicator : str
        Name of the 0/1 inclusion parameter.
    names : Sequence[str], optional
        Component labels for the result index.

    Returns
    -------
    pd.Series
        Inclusion rate per component, each in [0, 1].
    """
    psi = _indicator_draws(samples, indicator)
    labels = _labels(indicator, names, psi.shape[1])
    return pd.Series(psi.mean(axis=0), index=labels, name="inclusion_rate")


def marginal_effects(
    samples: PosteriorSamples,
    component: int,
    coefficient: str = "b1",
    indicator: str = "psi",
) -> np.ndarray:
    """
    Draws of `coefficient[component]` from iterations where it was included.

    Returns
    -------
    np.ndarray
        Possibly empty if the component was never switched on.
    """
    beta = samples[f"{coefficient}[{component}]"]
    psi = samples[f"{indicator}[{component}]"]
    return beta[psi == 1.0]


def selection_summary(
    samples: PosteriorSamples,
    names: Sequence[str] | None = None,
    coefficient: str = "b1",
    indicator: str = "psi",
    prob: float = 0.95,
) -> pd.DataFrame:
    """
    Inclusion rate and conditional effect per component.

    Returns
    -------
    pd.DataFrame
        Indexed by component with columns ``inclusion_rate``,
        ``n_included``, ``effect_median``, ``effect_lower`` and
        ``effect_upper`` (central `prob` interval of the coefficient given
        inclusion; NaN for components never included).
    """
    rates = inclusion_rates(samples, indicator=indicator, names=names)
    rows = []
    for j, label in enumerate(rates.index):
        effects = marginal_effects(samples, j, coefficient, indicator)
        if effects.size:
            lower, upper = stats_utils.interval(effects, prob)
            median = float(np.median(effects))
        else:
            lower = upper = median = np.nan
        rows.append(
            {
                "component": label,
                "inclusion_rate": float(rates.iloc[j]),
                "n_included": int(effects.size),
                "effect_median": median,
                "effect_lower": float(lower),
                "effect_upper": float(upper),
            }
        )
    return pd.DataFrame(rows).set_index("component")


# ---------------------------------------------------------------------
# (2) Regression summaries
# ---------------------------------------------------------------------


def parameter_summary(
    samples: PosteriorSamples,
    names: Sequence[str] | None = None,
    prob: float = 0.95,
) -> pd.DataFrame:
    """Posterior mean, sd and central interval per parameter element."""
    names = list(names) if names is not None else samples.names
    rows = []
    for name in names:
        draws = samples[name]
        lower, upper = stats_utils.interval(draws, prob)
        rows.append(
            {
                "parameter": name,
                "mean": float(draws.mean()),
                "sd": float(draws.std(ddof=1)) if draws.size > 1 else np.nan,
                "lower": float(lower),
                "upper": float(upper),
            }
        )
    return pd.DataFrame(rows).set_index("parameter")


def directional_probability(samples: PosteriorSamples, name: str = "b1") -> float:
    """Posterior probability that a parameter is positive, ``mean(draws > 0)``."""
    return float(np.mean(samples[name] > 0.0))


def predicted_probabilities(
    samples: PosteriorSamples,
    values: Sequence[float] | np.ndarray,
    center: float = 0.0,
    intercept: str = "b0",
    slope: str = "b1",
) -> np.ndarray:
    """
    Mean occupancy probability per draw at raw covariate values.

    Parameters
    ----------
    values : array-like
        Raw (uncentred) risk values.
    center : float
        Centring constant used when fitting.

    Returns
    -------
    np.ndarray
        (n_draws, n_values) probabilities.
    """
    x = np.asarray(values, dtype=np.float64) - center
    b0 = samples[intercept][:, None]
    b1 = samples[slope][:, None]
    return stats_utils.inv_logit(b0 + b1 * x[None, :])


def predicted_curve(
    samples: PosteriorSamples,
    grid: Sequence[float] | np.ndarray,
    center: float = 0.0,
    intercept: str = "b0",
    slope: str = "b1",
    prob: float = 0.95,
) -> pd.DataFrame:
    """
    Pointwise credible band of the predicted occupancy probability.

    Returns
    -------
    pd.DataFrame
        Columns ``x``, ``lower``, ``median``, ``mean``, ``upper``; the band is
        pointwise, not simultaneous.
    """
    grid = np.asarray(grid, dtype=np.float64)
    p = predicted_probabilities(samples, grid, center, intercept, slope)
    lower, upper = stats_utils.interval(p, prob, axis=0)
    return pd.DataFrame(
        {
            "x": grid,
            "lower": lower,
            "median": np.median(p, axis=0),
            "mean": p.mean(axis=0),
            "upper": upper,
        }
    )


# ---------------------------------------------------------------------
# (3) Deviance explained
# ---------------------------------------------------------------------


@dataclass(frozen=True)
class DevianceSummary:
    ll_saturated: float
    ll_null: float
    ll_fitted: float
    residual_deviance: float
    null_deviance: float
    percent_explained: float


def saturated_loglik(nsites: np.ndarray, total_sites: int) -> float:
    """
    Binomial log-likelihood of the perfect-fit model, p_i = nsites_i / total.

    Species with nsites of 0 or `total_sites` contribute exactly 0.
    """
    k = np.asarray(nsites, dtype=np.float64)
    return float(np.sum(stats.binom.logpmf(k, total_sites, k / total_sites)))


def beta_binomial_loglik(
    nsites: np.ndarray, total_sites: int, pmean: np.ndarray | float, phi: float
) -> float:
    """
    Summed Beta-Binomial log-pmf with mean `pmean` and concentration `phi`.

    `pmean` is clipped as in the compiled model, so extreme logits stay
    finite. Raises `DegenerateAnalysisError` if the sum is still not finite.
    """
    if phi <= 0:
        raise ValueError(f"phi must be positive, got {phi}.")
    k = np.asarray(nsites, dtype=np.float64)
    pmean = np.broadcast_to(stats_utils.clip_probability(pmean), k.shape)
    ll = float(
        np.sum(stats.betabinom.logpmf(k, total_sites, pmean * phi, (1.0 - pmean) * phi))
    )
    if not np.isfinite(ll):
        raise DegenerateAnalysisError(
            f"Beta-Binomial log-likelihood is not finite ({ll}) for phi={phi}."
        )
    return ll


def plug_in_loglik(
    samples: PosteriorSamples,
    nsites: np.ndarray,
    total_sites: int,
    covariate: np.ndarray | None = None,
    intercept: str = "b0",
    slope: str = "b1",
    dispersion: str = "phi",
) -> float:
    """
    Beta-Binomial log-likelihood at the posterior-mean parameters.

    Pass the centred covariate for the regression, or None for the null
    model. This is a point-estimate plug-in, not a posterior average of the
    log-likelihood.
    """
    eta = samples.mean(intercept)
    if covariate is not None:
        eta = eta + samples.mean(slope) * np.asarray(covariate, dtype=np.float64)
    pmean = stats_utils.inv_logit(eta)
    return beta_binomial_loglik(nsites, total_sites, pmean, samples.mean(dispersion))


def deviance_explained(
    ll_saturated: float, ll_null: float, ll_fitted: float
) -> DevianceSummary:
    """
    Share of the null-to-saturated deviance gap closed by the fitted model.

    Raises
    ------
    DegenerateAnalysisError
        If the null deviance is zero, i.e. the null model already fits
        perfectly and the percentage is undefined.
    """
    residual = -2.0 * (ll_fitted - ll_saturated)
    null = -2.0 * (ll_null - ll_saturated)
    if null == 0.0 or not np.isfinite(null) or not np.isfinite(residual):
        raise DegenerateAnalysisError(
            f"deviance explained is undefined (null deviance={null}, "
            f"residual deviance={residual})."
        )
    return DevianceSummary(
        ll_saturated=float(ll_saturated),
        ll_null=float(ll_null),
        ll_fitted=float(ll_fitted),
        residual_deviance=float(residual),
        null_deviance=float(null),
        percent_explained=float(100.0 * (1.0 - residual / null)),
    )


def deviance_decomposition(
    fitted: PosteriorSamples,
    null: PosteriorSamples,
    nsites: np.ndarray,
    total_sites: int,
    covariate: np.ndarray,
) -> DevianceSummary:
    """Saturated / null / fitted log-likelihoods and the deviance explained."""
    summary = deviance_explained(
        saturated_loglik(nsites, total_sites),
        plug_in_loglik(null, nsites, total_sites),
        plug_in_loglik(fitted, nsites, total_sites, covariate=covariate),
    )
    logger.info(
        "Deviance: null %.2f, residual %.2f, explained %.1f%%",
        summary.null_deviance,
        summary.residual_deviance,
        summary.percent_explained,
    )
    return summary


# ---------------------------------------------------------------------
# (4) Contrasts between reference risk values
# ---------------------------------------------------------------------


def contrast_draws(
    samples: PosteriorSamples,
    references: Mapping[str, float],
    pairs: Sequence[Tuple[str, str]],
    center: float = 0.0,
    intercept: str = "b0",
    slope: str = "b1",
) -> pd.DataFrame:
    """
    Per-draw differences in predicted probability between named risk values.

    Parameters
    ----------
    references : Mapping[str, float]
        Exemplar name to raw risk value, e.g. ``{"low": 8, "high": 30}``.
    pairs : Sequence[tuple[str, str]]
        Ordered pairs ``(a, b)``; each column holds ``p(a) - p(b)``.

    Returns
    -------
    pd.DataFrame
        One row per draw, one ``"a-b"`` column per pair (probability scale).
    """
    unknown = sorted({n for pair in pairs for n in pair} - set(references))
    if unknown:
        raise UnknownParameterError(f"no reference value for {unknown}.")
    names = list(references)
    p = predicted_probabilities(
        samples, [references[n] for n in names], center, intercept, slope
    )
    col = {name: i for i, name in enumerate(names)}
    return pd.DataFrame(
        {f"{a}-{b}": p[:, col[a]] - p[:, col[b]] for a, b in pairs}
    )


def pairwise_contrasts(
    samples: PosteriorSamples,
    references: Mapping[str, float],
    pairs: Sequence[Tuple[str, str]],
    center: float = 0.0,
    intercept: str = "b0",
    slope: str = "b1",
) -> pd.DataFrame:
    """
    Median and 50% / 95% intervals of each contrast, in percentage points.

    Returns
    -------
    pd.DataFrame
        Indexed by ``"a-b"`` with columns ``median``, ``lower_50``,
        ``upper_50``, ``lower_95``, ``upper_95``.
    """
    draws = contrast_draws(samples, references, pairs, center, intercept, slope) * 100.0
    rows = []
    for label, values in draws.items():
        values = values.to_numpy()
        lo50, hi50 = stats_utils.interval(values, 0.5)
        lo95, hi95 = stats_utils.interval(values, 0.95)
        rows.append(
            {
                "contrast": label,
                "median": float(np.median(values)),
                "lower_50": float(lo50),
                "upper_50": float(hi50),
                "lower_95": float(lo95),
                "upper_95": float(hi95),
            }
        )
    return pd.DataFrame(rows).set_index("contrast")
