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
import arviz as az
import numpy as np
import pandas as pd
import pytest

from grass_risk import stats_utils
from grass_risk.errors import UnknownParameterError
from grass_risk.posterior import PosteriorSamples, element_names


def _idata():
    # value encodes chain * 100 + draw (+ 10 * component)
    chains, draws = 2, 3
    base = np.arange(chains)[:, None] * 100 + np.arange(draws)[None, :]
    b1 = base[:, :, None] + 10 * np.arange(4)[None, None, :]
    return az.from_dict(posterior={"b0": base.astype(float), "b1": b1.astype(float)})


def test_element_names():
    assert element_names("b0", ()) == ["b0"]
    assert element_names("b1", (3,)) == ["b1[0]", "b1[1]", "b1[2]"]
    assert element_names("m", (2, 2)) == ["m[0,0]", "m[0,1]", "m[1,0]", "m[1,1]"]


def test_from_inference_data_pools_chain_major():
    samples = PosteriorSamples.from_inference_data(_idata(), ["b0", "b1"])

    assert samples.chains == 2
    assert samples.n_draws == 6
    np.testing.assert_array_equal(samples["b0"], [0, 1, 2, 100, 101, 102])
    np.testing.assert_array_equal(samples["b1[3]"], [30, 31, 32, 130, 131, 132])
    np.testing.assert_array_equal(samples.by_chain("b0"), [[0, 1, 2], [100, 101, 102]])


def test_vector_lookup_by_name():
    samples = PosteriorSamples.from_inference_data(_idata(), ["b0", "b1"])

    b1 = samples.vector("b1")
    assert b1.shape == (6, 4)
    np.testing.assert_array_equal(b1[0], [0, 10, 20, 30])
    assert samples.vector("b0").shape == (6, 1)


def test_unknown_parameter():
    samples = PosteriorSamples.from_inference_data(_idata(), ["b0"])

    assert "b1[0]" not in samples
    with pytest.raises(UnknownParameterError, match="b1"):
        samples["b1[0]"]
    with pytest.raises(UnknownParameterError):
        samples.vector("psi")
    with pytest.raises(UnknownParameterError):
        PosteriorSamples.from_inference_data(_idata(), ["phi"])


def test_draws_are_read_only():
    samples = PosteriorSamples(pd.DataFrame({"b0": [1.0, 2.0]}))

    with pytest.raises(ValueError):
        samples["b0"][0] = 5.0
    table = samples.table
    table.loc[0, "b0"] = 5.0
    assert samples["b0"][0] == 1.0


def test_uneven_chains_rejected():
    with pytest.raises(ValueError, match="evenly"):
        PosteriorSamples(pd.DataFrame({"b0": [1.0, 2.0, 3.0]}), chains=2)


def test_interval_and_center_helpers():
    lower, upper = stats_utils.interval(np.arange(101, dtype=float), 0.9)
    assert (lower, upper) == pytest.approx((5.0, 95.0))

    centered, mean = stats_utils.center(pd.Series([1, 2, 3, 6]))
    assert mean == 3.0
    assert centered.sum() == pytest.approx(0.0)

    with pytest.raises(ValueError):
        stats_utils.center([1.0, None])


def test_unique_labels():
    np.testing.assert_array_equal(stats_utils.unique_labels(["a", "b"]), ["a", "b"])
    np.testing.assert_array_equal(stats_utils.unique_labels(["a", "a"]), [0, 1])
