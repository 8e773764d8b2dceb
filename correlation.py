"""
Pearson correlation between unit-value returns and benchmark returns,
whole-series and on trailing windows.
"""

import numpy as np
import pandas as pd

from config import ROLLING_WINDOWS
from financial_math import paired_returns

# Rolling variances below this are treated as a flat window
_ZERO_VARIANCE = 1e-18


def pearson(x, y) -> float:
    """
    Pearson correlation cov(X, Y) / sqrt(var(X) * var(Y)).

    Inputs are truncated to the shorter length. Returns 0.0 when either side
    has zero variance (or fewer than two points); the result is clipped to
    [-1, 1] against floating-point overshoot.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = min(x.size, y.size)
    if n < 2:
        return 0.0
    x = x[:n]
    y = y[:n]

    dx = x - x.mean()
    dy = y - y.mean()
    sxx = float(np.dot(dx, dx))
    syy = float(np.dot(dy, dy))
    denom = np.sqrt(sxx * syy)
    if denom == 0:
        return 0.0
    return float(np.clip(np.dot(dx, dy) / denom, -1.0, 1.0))


def returns_correlation(x_values: pd.Series, y_values: pd.Series) -> float:
    """Correlation of the daily returns of two value series on shared dates."""
    pairs = paired_returns(x_values, y_values)
    return pearson(pairs["x"], pairs["y"])


def benchmark_correlations(frame: pd.DataFrame, benchmarks: pd.DataFrame) -> dict[str, float]:
    """Whole-series return correlation of the unit value against each benchmark."""
    return {
        key: returns_correlation(frame["unit_value"], benchmarks[key])
        for key in benchmarks.columns
    }


def rolling_correlation(x_returns: pd.Series, y_returns: pd.Series, window: int) -> pd.Series:
    """
    Correlation over the trailing `window` return pairs ending at each date.

    Only past and current observations enter each window. NaN until a full
    window is available, 0.0 for windows where either side is flat.
    """
    pairs = pd.concat([x_returns.rename("x"), y_returns.rename("y")], axis=1, join="inner").dropna()
    if len(pairs) < window or window < 2:
        return pd.Series(np.nan, index=pairs.index, dtype=float)

    xs = pairs["x"]
    ys = pairs["y"]
    corr = xs.rolling(window).corr(ys)
    x_var = xs.rolling(window).var()
    y_var = ys.rolling(window).var()

    full = x_var.notna() & y_var.notna()
    flat = full & ((x_var.abs() < _ZERO_VARIANCE) | (y_var.abs() < _ZERO_VARIANCE))
    corr = corr.mask(flat, 0.0)
    corr = corr.replace([np.inf, -np.inf], np.nan)
    return corr.clip(-1.0, 1.0)


def rolling_correlations(
    frame: pd.DataFrame,
    benchmarks: pd.DataFrame,
    windows=ROLLING_WINDOWS,
) -> pd.DataFrame:
    """
    Trailing correlations of fund returns against every benchmark for each
    window, as columns ``correlation_<w>d_<key>`` on the frame's dates.
    """
    out = pd.DataFrame(index=frame.index)
    for key in benchmarks.columns:
        pairs = paired_returns(frame["unit_value"], benchmarks[key])
        for w in windows:
            series = rolling_correlation(pairs["x"], pairs["y"], w)
            out[f"correlation_{w}d_{key}"] = series.reindex(frame.index)
    return out
