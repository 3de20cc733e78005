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
import pandas as pd
import pytest

from grass_risk.config import RISK_COMPONENTS


@pytest.fixture
def occurrence():
    return pd.DataFrame(
        {
            "species_name": [
                "Andropogon gayanus",
                "Cenchrus ciliaris",
                "Eragrostis curvula",
                "Megathyrsus maximus",
                "Sporobolus africanus",
                "Sporobolus natalensis",
                "Urochloa mutica",
                "Hyparrhenia rufa",
                "Chloris gayana",
            ],
            "common_name": [
                "gamba grass",
                "buffel grass",
                "African lovegrass",
                "guinea grass",
                "Parramatta grass",
                "giant rat's tail grass",
                "para grass",
                "thatch grass",
                "Rhodes grass",
            ],
            "nsites": [12, 87, 40, 55, 30, 21, 0, 139, 64],
        }
    )


@pytest.fixture
def risk():
    rng = np.random.default_rng(7)
    names = [
        "Andropogon gayanus",
        "Cenchrus ciliaris",
        "Eragrostis curvula",
        "Megathyrsus maximus",
        "Sporobolus pyramidalis",
        "Sporobolus fertilis",
        "Urochloa mutica",
        "Hyparrhenia rufa",
    ]
    table = pd.DataFrame({"species_name": names})
    for column in RISK_COMPONENTS:
        table[column] = rng.integers(0, 5, size=len(names))
    # precomputed over all assessment sub-items, not just the modelled ones
    table["summed_risk"] = [41, 55, 38, 47, 36, 35, 29, 44]
    return table


@pytest.fixture
def joined(occurrence, risk):
    from grass_risk.data_prep import join_tables

    return join_tables(occurrence, risk).table
