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
from scipy.special import expit


def to_float64_array(x: list | pd.Series | np.ndarray | None) -> np.ndarray:
    """
    Convert input to a NumPy array of float64, with None as np.nan.

    Parameters
    ----------
    x : list | pd.Series | np.ndarray | None
        Input data to be converted.

    Returns
    -------
    np.ndarray
        Converted array of type float64, with None values as np.nan.
    """
    return (
        pd.Series(x, dtype="float64")
        .convert_dtypes()
        .to_numpy(dtype="float64", na_value=np.nan, copy=True)
    )


def to_int64_array(x: list | pd.Series | np.ndarray | None) -> np.ndarray:
    """
    Convert input to a NumPy array of int64.

    Parameters
    ----------
    x : list | pd.Series | np.ndarray | None
        Input data to be converted. Must not contain missing values.

    Returns
    -------
    np.ndarray
        Converted array of type int64.
    """
    return pd.Series(x, dtype="int64").to_numpy(dtype="int64", copy=True)


def center(x: list | pd.Series | np.ndarray) -> tuple[np.ndarray, float]:
    """
    Subtract the sample mean from the input.

    The mean is returned alongside the centred values so that new values
    (e.g. a prediction grid) can be mapped onto the same scale.

    Parameters
    ----------
    x : list | pd.Series | np.ndarray
        Input data, fully observed.

    Returns
    -------
    tuple[np.ndarray, float]
        Centred values and the mean that was subtracted.
    """
    values = to_float64_array(x)
    if values.size == 0:
        raise ValueError("cannot centre an empty column.")
    if np.isnan(values).any():
        raise ValueError("cannot centre a column with missing values.")
    mean = float(values.mean())
    return values - mean, mean


def unique_labels(labels: list | pd.Series | np.ndarray) -> np.ndarray:
    """
    Labels usable as a model coordinate: the labels themselves when unique,
    otherwise their positions.
    """
    labels = np.asarray(labels, dtype=str)
    if pd.Index(labels).is_unique:
        return labels
    return np.arange(labels.shape[0])


def inv_logit(x: float | np.ndarray) -> np.ndarray:
    """Inverse-logit (logistic) transform."""
    return expit(np.asarray(x, dtype=np.float64))


# Keeps Beta-Binomial alpha/beta away from zero at extreme logits.
PROB_EPS = 1e-6


def clip_probability(p: float | np.ndarray) -> np.ndarray:
    """Clip probabilities to [PROB_EPS, 1 - PROB_EPS]."""
    return np.clip(np.asarray(p, dtype=np.float64), PROB_EPS, 1.0 - PROB_EPS)


def interval(
    draws: np.ndarray, prob: float = 0.95, axis: int = 0
) -> tuple[np.ndarray, np.ndarray]:
    """
    Central (equal-tailed) credible interval of posterior draws.

    Parameters
    ----------
    draws : np.ndarray
        Posterior draws; reduced along `axis`.
    prob : float
        Interval mass, e.g. 0.95 for the 2.5% to 97.5% quantiles.
    axis : int
        Axis holding the draws.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        Lower and upper bounds.
    """
    if not 0.0 < prob < 1.0:
        raise ValueError(f"prob must lie in (0, 1), got {prob}.")
    tail = (1.0 - prob) / 2.0
    lower, upper = np.quantile(draws, [tail, 1.0 - tail], axis=axis)
    return lower, upper
