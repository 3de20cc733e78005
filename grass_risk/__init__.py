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
Bayesian models relating invasive grass occupancy to expert risk scores.
"""

from .config import AnalysisConfig, RISK_COMPONENTS, TOTAL_SITES
from .errors import (
    ConvergenceWarning,
    DataValidationError,
    DegenerateAnalysisError,
    GrassRiskError,
    MissingComponentError,
    SamplerError,
    TypeMismatchError,
    UnknownParameterError,
)

__version__ = "0.1.0"
