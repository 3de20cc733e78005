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
Pooled posterior draws addressed by parameter name.

Scalar parameters are stored under their own name (``"b0"``); elements of
vector parameters under ``name[i]`` (``"b1[3]"``). Rows are draws, chain by
chain, in sampling order.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

import arviz as az
import numpy as np
import pandas as pd

from .errors import UnknownParameterError


def element_names(name: str, shape: Sequence[int]) -> List[str]:
    """Column names for the elements of a parameter of the given shape."""
    if len(shape) == 0:
        return [name]
    return [
        f"{name}[{','.join(str(i) for i in index)}]" for index in np.ndindex(*shape)
    ]


def flatten_dataset(dataset, var_names: Iterable[str]) -> Dict[str, float]:
    """
    Flatten per-parameter statistics (e.g. from `az.ess`) to element names.
    """
    out: Dict[str, float] = {}
    for name in var_names:
        values = np.asarray(dataset[name].values, dtype=np.float64)
        for column, value in zip(element_names(name, values.shape), values.ravel()):
            out[column] = float(value)
    return out


class PosteriorSamples:
    """
    Immutable table of retained posterior draws.

    Parameters
    ----------
    table : pd.DataFrame
        One row per draw, one column per parameter element.
    chains : int
        Number of chains pooled into `table` (rows are chain-major).
    """

    def __init__(self, table: pd.DataFrame, chains: int = 1):
        if chains < 1 or len(table) % chains:
            raise ValueError(
                f"{len(table)} draws cannot be split evenly over {chains} chain(s)."
            )
        self._table = table.reset_index(drop=True).astype(np.float64)
        self._chains = chains

    @classmethod
    def from_inference_data(
        cls, idata: az.InferenceData, var_names: Sequence[str]
    ) -> "PosteriorSamples":
        """
        Pool the posterior group of `idata` across chains.

        Parameters
        ----------
        idata : az.InferenceData
            Sampler output with a ``posterior`` group of dims (chain, draw, ...).
        var_names : Sequence[str]
            Parameters to keep.
        """
        posterior = idata.posterior
        chains = posterior.sizes["chain"]
        draws = posterior.sizes["draw"]
        columns: Dict[str, np.ndarray] = {}
        for name in var_names:
            if name not in posterior:
                raise UnknownParameterError(f"{name!r} is not in the posterior.")
            values = posterior[name].transpose("chain", "draw", ...).values
            shape = values.shape[2:]
            flat = values.reshape(chains * draws, -1)
            for i, column in enumerate(element_names(name, shape)):
                columns[column] = flat[:, i]
        return cls(pd.DataFrame(columns), chains=chains)

    @property
    def names(self) -> List[str]:
        return list(self._table.columns)

    @property
    def n_draws(self) -> int:
        return len(self._table)

    @property
    def chains(self) -> int:
        return self._chains

    @property
    def table(self) -> pd.DataFrame:
        """A copy of the underlying draws table."""
        return self._table.copy()

    def __contains__(self, name: str) -> bool:
        return name in self._table.columns

    def __len__(self) -> int:
        return self.n_draws

    def __getitem__(self, name: str) -> np.ndarray:
        """Draws of one parameter element, e.g. ``samples["b1[3]"]``."""
        if name not in self._table.columns:
            raise UnknownParameterError(
                f"{name!r} was not monitored; available: {self.names}"
            )
        values = self._table[name].to_numpy(copy=True)
        values.flags.writeable = False
        return values

    def vector(self, name: str) -> np.ndarray:
        """
        Draws of a vector parameter as an (n_draws, k) matrix.

        A scalar parameter is returned as a single column.
        """
        if name in self._table.columns:
            return self[name].reshape(-1, 1)
        prefix = f"{name}["
        columns = [c for c in self._table.columns if c.startswith(prefix)]
        if not columns:
            raise UnknownParameterError(
                f"{name!r} was not monitored; available: {self.names}"
            )
        values = self._table[columns].to_numpy(copy=True)
        values.flags.writeable = False
        return values

    def by_chain(self, name: str) -> np.ndarray:
        """Draws of one element reshaped to (chains, draws per chain)."""
        return self[name].reshape(self._chains, -1)

    def mean(self, name: str) -> float:
        return float(np.mean(self[name]))

    def equals(self, other: "PosteriorSamples") -> bool:
        return self._chains == other._chains and self._table.equals(other._table)

    def __repr__(self) -> str:
        return (
            f"PosteriorSamples(draws={self.n_draws}, chains={self._chains}, "
            f"columns={self.names})"
        )
