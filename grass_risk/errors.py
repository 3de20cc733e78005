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
Exceptions and warnings raised by the analysis.

Data preparation and posterior analysis fail fast with the errors below.
The sampler driver reports failures on its result object and only raises
`SamplerError` when samples of a failed run are requested.
"""


class GrassRiskError(Exception):
    """Base class for all errors raised by this package."""


class DataValidationError(GrassRiskError, ValueError):
    """Input tables are malformed (bad counts, missing required columns)."""


class MissingComponentError(DataValidationError, KeyError):
    """A named risk component column is absent from the table."""

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"risk component column {column!r} not found")

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return self.args[0]


class TypeMismatchError(DataValidationError, TypeError):
    """A risk component column holds non-numeric values."""


class UnknownParameterError(GrassRiskError, KeyError):
    """A posterior lookup named a parameter that was not monitored."""

    def __str__(self) -> str:
        return self.args[0] if self.args else ""


class SamplerError(GrassRiskError, RuntimeError):
    """Sampling failed, or samples of a failed/unconverged run were requested."""


class DegenerateAnalysisError(GrassRiskError, ArithmeticError):
    """A posterior summary is undefined for the given inputs."""


class ConvergenceWarning(UserWarning):
    """Convergence diagnostics fall outside the configured thresholds."""
