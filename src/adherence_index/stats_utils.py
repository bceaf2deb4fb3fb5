"""
Statistics primitives shared by the three index stages.

Classification uses Tukey's five-number summary (median-of-halves hinges,
as in R's fivenum), not interpolated quartiles. For [10, 20, 30, 40] the
hinges are 15 and 35, where numpy's default percentile gives 17.5 and 32.5.
"""

import numpy as np
import pandas as pd
from scipy import stats

FIVENUM_LABELS = ("min", "lower_hinge", "median", "upper_hinge", "max")


def fivenum(values) -> np.ndarray:
    """
    Tukey five-number summary: min, lower hinge, median, upper hinge, max.

    Missing and non-numeric values are dropped. An empty input returns
    five NaNs.

    Args:
        values: Any 1-d array-like of numbers.

    Returns:
        Array of length 5.
    """
    x = pd.to_numeric(pd.Series(values), errors="coerce").astype("float64").dropna()
    x = np.sort(x.to_numpy(dtype=float))
    n = len(x)
    if n == 0:
        return np.full(5, np.nan)

    n4 = np.floor((n + 3) / 2) / 2
    # 1-based positions; half positions average the two neighbours
    d = np.array([1, n4, (n + 1) / 2, n + 1 - n4, n]) - 1
    return 0.5 * (x[np.floor(d).astype(int)] + x[np.ceil(d).astype(int)])


def classify_ternary(values, lower, upper) -> pd.Series:
    """
    Classify values against a pair of hinges.

    +1 strictly above upper, -1 strictly below lower, 0 otherwise
    (values equal to a hinge are 0). Missing values stay missing.

    Args:
        values: Series (or array-like) of numbers.
        lower: Lower hinge, scalar or Series aligned with values.
        upper: Upper hinge, scalar or Series aligned with values.

    Returns:
        Nullable Int64 Series indexed like values.
    """
    values = pd.to_numeric(pd.Series(values), errors="coerce").astype("float64")

    signs = pd.Series(0, index=values.index, dtype="Int64")
    signs[values > upper] = 1
    signs[values < lower] = -1
    signs[values.isna()] = pd.NA
    return signs


DEGENERATE_RTOL = 1e-9
DEGENERATE_ATOL = 1e-12


def is_degenerate(values) -> bool:
    """
    True when fewer than two values exist or all values are equal.

    Equality is judged with np.isclose so that sums of z-scores which agree
    up to floating-point rounding count as identical.
    """
    x = pd.Series(values).astype("float64").dropna().to_numpy()
    if len(x) < 2:
        return True
    return bool(np.isclose(x, x[0], rtol=DEGENERATE_RTOL, atol=DEGENERATE_ATOL).all())


def sample_zscore(values) -> pd.Series:
    """
    Standardize with the sample standard deviation (ddof=1).

    A degenerate distribution has no defined z-score: the result is then
    an all-missing Float64 Series, never zeros and never inf.

    Args:
        values: Series of numbers without missing values.

    Returns:
        Nullable Float64 Series indexed like values.
    """
    values = pd.Series(values).astype("float64")

    if is_degenerate(values):
        return pd.Series(pd.NA, index=values.index, dtype="Float64")

    z = stats.zscore(values.to_numpy(), ddof=1)
    return pd.Series(z, index=values.index).astype("Float64")
