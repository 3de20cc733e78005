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
import numpy as np
import pytest
from scipy import stats
from scipy.special import expit

from grass_risk import analysis, stats_utils
from grass_risk.errors import DegenerateAnalysisError, UnknownParameterError

from helpers import make_samples


# ---------------------------------------------------------------------
# Variable selection
# ---------------------------------------------------------------------


def test_inclusion_rate_is_empirical_mean():
    psi0 = np.r_[np.ones(1280), np.zeros(320)]
    psi1 = np.zeros(1600)
    samples = make_samples(**{"psi[0]": psi0, "psi[1]": psi1})

    rates = analysis.inclusion_rates(samples, names=["allelopathy", "future_distribution"])

    assert rates["allelopathy"] == pytest.approx(0.80)
    assert rates["future_distribution"] == 0.0
    assert ((rates >= 0) & (rates <= 1)).all()


def test_inclusion_rates_reject_non_binary_draws():
    samples = make_samples(**{"psi[0]": [0.0, 0.5, 1.0]})

    with pytest.raises(ValueError, match="0/1"):
        analysis.inclusion_rates(samples)


def test_marginal_effects_only_when_included():
    samples = make_samples(
        **{
            "b1[0]": [0.1, 0.2, 0.3, 0.4],
            "psi[0]": [1, 0, 1, 0],
            "b1[1]": [5.0, 6.0, 7.0, 8.0],
            "psi[1]": [0, 0, 0, 0],
        }
    )

    np.testing.assert_array_equal(analysis.marginal_effects(samples, 0), [0.1, 0.3])
    assert analysis.marginal_effects(samples, 1).size == 0


def test_selection_summary():
    rng = np.random.default_rng(1)
    samples = make_samples(
        **{
            "b1[0]": rng.normal(-0.5, 0.05, 400),
            "psi[0]": np.ones(400),
            "b1[1]": rng.normal(0.0, 1.0, 400),
            "psi[1]": np.zeros(400),
        }
    )

    summary = analysis.selection_summary(samples, names=["a", "b"])

    assert summary.loc["a", "inclusion_rate"] == 1.0
    assert summary.loc["a", "n_included"] == 400
    assert summary.loc["a", "effect_median"] < 0
    assert summary.loc["a", "effect_lower"] < summary.loc["a", "effect_upper"]
    assert np.isnan(summary.loc["b", "effect_median"])


# ---------------------------------------------------------------------
# Regression summaries
# ---------------------------------------------------------------------


def test_directional_probability_bounds():
    assert analysis.directional_probability(make_samples(b1=[0.1, 2.0, 3.0])) == 1.0
    assert analysis.directional_probability(make_samples(b1=[0.0, -2.0, -3.0])) == 0.0
    assert analysis.directional_probability(make_samples(b1=[-1.0, 1.0, 2.0, -3.0])) == 0.5


def test_predicted_curve_uses_centring_constant():
    samples = make_samples(b0=[0.0, 0.0], b1=[1.0, 1.0])

    curve = analysis.predicted_curve(samples, [40.0, 42.0], center=40.0)

    np.testing.assert_allclose(curve["mean"], [0.5, expit(2.0)])
    np.testing.assert_allclose(curve["median"], curve["mean"])
    assert list(curve.columns) == ["x", "lower", "median", "mean", "upper"]


def test_predicted_curve_band_contains_median():
    rng = np.random.default_rng(3)
    samples = make_samples(b0=rng.normal(-1, 0.3, 800), b1=rng.normal(0.1, 0.02, 800))

    curve = analysis.predicted_curve(samples, np.linspace(20, 60, 9), center=40.0)

    assert (curve["lower"] <= curve["median"]).all()
    assert (curve["median"] <= curve["upper"]).all()
    assert ((curve["lower"] > 0) & (curve["upper"] < 1)).all()


def test_parameter_summary():
    samples = make_samples(b0=[1.0, 2.0, 3.0], phi=[4.0, 5.0, 6.0])

    summary = analysis.parameter_summary(samples)

    assert list(summary.index) == ["b0", "phi"]
    assert summary.loc["b0", "mean"] == 2.0
    assert summary.loc["phi", "sd"] == pytest.approx(1.0)


# ---------------------------------------------------------------------
# Deviance
# ---------------------------------------------------------------------


@pytest.mark.parametrize("nsites", [139, 0])
def test_saturated_loglik_is_zero_at_boundaries(nsites):
    assert analysis.saturated_loglik(np.array([nsites]), 139) == 0.0


def test_saturated_loglik_matches_binomial():
    nsites = np.array([12, 87, 40])
    expected = stats.binom.logpmf(nsites, 139, nsites / 139).sum()

    assert analysis.saturated_loglik(nsites, 139) == pytest.approx(expected)


def test_deviance_explained_boundaries():
    ll_sat, ll_null = -10.0, -50.0

    assert analysis.deviance_explained(ll_sat, ll_null, ll_null).percent_explained == 0.0
    assert analysis.deviance_explained(ll_sat, ll_null, ll_sat).percent_explained == 100.0

    summary = analysis.deviance_explained(ll_sat, ll_null, -30.0)
    assert summary.null_deviance == pytest.approx(80.0)
    assert summary.residual_deviance == pytest.approx(40.0)
    assert summary.percent_explained == pytest.approx(50.0)


def test_deviance_explained_zero_null_deviance():
    with pytest.raises(DegenerateAnalysisError, match="undefined"):
        analysis.deviance_explained(-10.0, -10.0, -12.0)


def test_plug_in_loglik_uses_posterior_means():
    nsites = np.array([10, 50, 100])
    covariate = np.array([-1.0, 0.0, 1.0])
    samples = make_samples(b0=[-0.5, 0.5], b1=[0.5, 1.5], phi=[8.0, 12.0])

    ll = analysis.plug_in_loglik(samples, nsites, 139, covariate=covariate)

    pmean = expit(0.0 + 1.0 * covariate)
    expected = stats.betabinom.logpmf(nsites, 139, pmean * 10.0, (1 - pmean) * 10.0).sum()
    assert ll == pytest.approx(expected)


def test_plug_in_loglik_stays_finite_at_extreme_intercept():
    nsites = np.array([139, 139, 138])
    samples = make_samples(b0=[40.0, 40.0], phi=[5.0, 5.0])

    ll = analysis.plug_in_loglik(samples, nsites, 139)

    pmean = 1.0 - stats_utils.PROB_EPS
    expected = stats.betabinom.logpmf(nsites, 139, pmean * 5.0, (1 - pmean) * 5.0).sum()
    assert np.isfinite(ll)
    assert ll == pytest.approx(expected)


def test_beta_binomial_loglik_rejects_non_finite_sum():
    with pytest.raises(DegenerateAnalysisError, match="not finite"):
        analysis.beta_binomial_loglik(np.array([10, 150]), 139, 0.5, 5.0)


def test_deviance_decomposition_null_fit_gives_zero():
    nsites = np.array([10, 50, 100, 30])
    covariate = np.array([-1.0, 0.5, 1.5, -1.0])
    null = make_samples(b0=[-0.2, 0.2], phi=[3.0, 5.0])
    # a zero slope reproduces the null predictions
    fitted = make_samples(b0=[-0.2, 0.2], b1=[0.0, 0.0], phi=[3.0, 5.0])

    summary = analysis.deviance_decomposition(fitted, null, nsites, 139, covariate)

    assert summary.percent_explained == pytest.approx(0.0, abs=1e-9)
    assert summary.null_deviance > 0


# ---------------------------------------------------------------------
# Contrasts
# ---------------------------------------------------------------------


REFERENCES = {"low": 30.0, "mid": 40.0, "high": 50.0}


def test_contrast_sign_symmetry():
    rng = np.random.default_rng(11)
    samples = make_samples(b0=rng.normal(0, 0.5, 300), b1=rng.normal(0.05, 0.02, 300))

    draws = analysis.contrast_draws(
        samples, REFERENCES, [("high", "low"), ("low", "high")], center=40.0
    )

    np.testing.assert_array_equal(draws["high-low"], -draws["low-high"])


def test_pairwise_contrasts_in_percentage_points():
    samples = make_samples(b0=[0.0] * 4, b1=[0.1] * 4)

    table = analysis.pairwise_contrasts(
        samples, REFERENCES, [("mid", "low"), ("high", "mid"), ("high", "low")], center=40.0
    )

    expected = 100 * (expit(1.0) - expit(-1.0))
    assert list(table.index) == ["mid-low", "high-mid", "high-low"]
    assert table.loc["high-low", "median"] == pytest.approx(expected)
    assert table.loc["high-low", "lower_95"] == pytest.approx(expected)
    assert table.loc["mid-low", "median"] == pytest.approx(100 * (0.5 - expit(-1.0)))


def test_pairwise_contrasts_intervals_nest():
    rng = np.random.default_rng(5)
    samples = make_samples(b0=rng.normal(0, 0.3, 500), b1=rng.normal(0.05, 0.03, 500))

    table = analysis.pairwise_contrasts(samples, REFERENCES, [("high", "low")], center=40.0)
    row = table.loc["high-low"]

    assert row["lower_95"] <= row["lower_50"] <= row["median"] <= row["upper_50"] <= row["upper_95"]


def test_contrast_unknown_reference():
    samples = make_samples(b0=[0.0], b1=[0.1])

    with pytest.raises(UnknownParameterError, match="extreme"):
        analysis.contrast_draws(samples, REFERENCES, [("extreme", "low")])
