import numpy as np
import pandas as pd

from config import DAYS_PER_YEAR, TRADING_DAYS_PER_YEAR

# ============================================================
# CONFIG / CONSTANTS
# ============================================================
PERCENT = 100.0

# ------------------------------------------------------------
# Elapsed time
# ------------------------------------------------------------

def years_between(start, end) -> float:
    """
    Calendar years between two dates, measured as elapsed days / 365.25.
    """
    start = pd.Timestamp(start)
    end = pd.Timestamp(end)
    return (end - start).days / DAYS_PER_YEAR


def series_years(values: pd.Series) -> float:
    """Calendar years spanned by a date-indexed series (0.0 when shorter than 2)."""
    if len(values) < 2:
        return 0.0
    return years_between(values.index[0], values.index[-1])


# ------------------------------------------------------------
# Point-to-point returns
# ------------------------------------------------------------

def point_return(a: float, b: float) -> float:
    """
    Simple return from a to b, in percent.

    Undefined (NaN) when the starting value is not positive.
    """
    if not np.isfinite(a) or not np.isfinite(b) or a <= 0:
        return np.nan
    return (b - a) / a * PERCENT


def annualized_return(start: float, end: float, years: float) -> float:
    """
    Compound annual growth rate from start to end over `years`, in percent.

    Returns 0.0 when `years` is not positive and NaN when either value is not
    positive (no meaningful geometric growth).
    """
    if years is None or not np.isfinite(years) or years <= 0:
        return 0.0
    if not np.isfinite(start) or not np.isfinite(end) or start <= 0 or end <= 0:
        return np.nan
    return ((end / start) ** (1.0 / years) - 1.0) * PERCENT


def series_annualized_return(values: pd.Series) -> float:
    """
    CAGR of a date-indexed value series using first/last valid (positive)
    observations and the calendar time between them.
    """
    valid = values[values > 0].dropna()
    if len(valid) < 2:
        return np.nan
    return annualized_return(
        float(valid.iloc[0]),
        float(valid.iloc[-1]),
        years_between(valid.index[0], valid.index[-1]),
    )


# ------------------------------------------------------------
# Daily returns
# ------------------------------------------------------------

def daily_returns(values: pd.Series) -> pd.Series:
    """
    Daily simple returns r_i = (v_i - v_{i-1}) / v_{i-1} (fractions).

    Steps where either side is non-positive or missing are dropped, as are any
    non-finite results, so benchmark gaps never leak inf/NaN downstream. The
    result is indexed by the date of v_i.
    """
    values = pd.Series(values, dtype=float)
    prev = values.shift(1)
    rets = (values - prev) / prev
    mask = (prev > 0) & (values > 0) & np.isfinite(rets)
    return rets[mask]


def paired_returns(x_values: pd.Series, y_values: pd.Series) -> pd.DataFrame:
    """
    Daily returns of two value series on their common dates, keeping only
    the days where both returns are finite.
    """
    x_rets = daily_returns(x_values)
    y_rets = daily_returns(y_values)
    pairs = pd.concat([x_rets.rename("x"), y_rets.rename("y")], axis=1, join="inner")
    return pairs.dropna()


# ------------------------------------------------------------
# Sample statistics
# ------------------------------------------------------------

def sample_std(values) -> float:
    """Sample standard deviation (n - 1 denominator); NaN below two points."""
    arr = np.asarray(values, dtype=float)
    if arr.size < 2:
        return np.nan
    return float(arr.std(ddof=1))


def annualize_volatility(daily_std: float, periods_per_year: int = TRADING_DAYS_PER_YEAR) -> float:
    return daily_std * np.sqrt(periods_per_year)


def percentile(values, pct: float) -> float:
    """
    Percentile with linear interpolation between order statistics
    (index = pct/100 * (n - 1)).
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return np.nan
    return float(np.percentile(arr, pct))


def summary_stats(values) -> dict | None:
    """
    Box-plot summary: min, q1, median, q3, max, mean, count.
    None when there are no values.
    """
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        return None
    return {
        "min": float(arr.min()),
        "q1": percentile(arr, 25),
        "median": percentile(arr, 50),
        "q3": percentile(arr, 75),
        "max": float(arr.max()),
        "mean": float(arr.mean()),
        "count": int(arr.size),
    }


# ------------------------------------------------------------
# Valid-level helpers
# ------------------------------------------------------------

def first_valid(values: pd.Series):
    """(date, value) of the first positive observation, or (None, nan)."""
    valid = values[values > 0].dropna()
    if valid.empty:
        return None, np.nan
    return valid.index[0], float(valid.iloc[0])


def last_valid(values: pd.Series):
    """(date, value) of the last positive observation, or (None, nan)."""
    valid = values[values > 0].dropna()
    if valid.empty:
        return None, np.nan
    return valid.index[-1], float(valid.iloc[-1])
