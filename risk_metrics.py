"""
Risk & ratio engine.

Ratio functions work on daily simple returns (fractions) and annualize with
the 252-trading-day convention: mean * 252 for returns, std * sqrt(252) for
volatility. Ratios computed from fewer than ``min_observations`` returns come
back as NaN (insufficient data); zero denominators resolve to 0.0, except
Calmar which is +inf when there was no drawdown.

The ``risk_metrics`` record reports volatility, max drawdown and alpha in
percent.
"""

import numpy as np
import pandas as pd

from config import (
    BENCHMARK_LABELS,
    DRAWDOWN_PERIOD_THRESHOLD,
    EXCESS_RETURN_WINDOW,
    MIN_OBSERVATIONS,
    RISK_FREE_RATE,
    ROLLING_WINDOWS,
    TRADING_DAYS_PER_YEAR,
)
from correlation import rolling_correlations
from financial_math import (
    annualize_volatility,
    daily_returns,
    paired_returns,
    sample_std,
    series_annualized_return,
)
from returns import rolling_return

_EPS = 1e-15


def _truncate(x, y):
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    n = min(x.size, y.size)
    return x[:n], y[:n]


# ------------------------------------------------------------
# Volatility / Sharpe / Sortino
# ------------------------------------------------------------

def volatility(returns, annualized: bool = True) -> float:
    """Sample standard deviation of daily returns, optionally * sqrt(252)."""
    std = sample_std(returns)
    if np.isnan(std):
        return np.nan
    if abs(std) < _EPS:
        std = 0.0
    return annualize_volatility(std) if annualized else std


def sharpe_ratio(
    returns,
    risk_free_rate: float = RISK_FREE_RATE,
    min_observations: int = MIN_OBSERVATIONS,
) -> float:
    """
    (mean * 252 - rf) / (std * sqrt(252)).

    0.0 when volatility is zero, NaN below `min_observations`.
    """
    arr = np.asarray(returns, dtype=float)
    if arr.size < max(2, min_observations):
        return np.nan
    ann_vol = volatility(arr)
    if ann_vol == 0:
        return 0.0
    ann_ret = float(arr.mean()) * TRADING_DAYS_PER_YEAR
    return (ann_ret - risk_free_rate) / ann_vol


def sortino_ratio(
    returns,
    risk_free_rate: float = RISK_FREE_RATE,
    min_observations: int = MIN_OBSERVATIONS,
) -> float:
    """
    Like Sharpe, but the denominator is the annualized downside deviation of
    the returns falling below the daily risk-free threshold (rf / 252).

    0.0 when there are no downside observations or the downside deviation is
    zero; NaN below `min_observations`.
    """
    arr = np.asarray(returns, dtype=float)
    if arr.size < max(2, min_observations):
        return np.nan

    daily_rf = risk_free_rate / TRADING_DAYS_PER_YEAR
    shortfall = arr[arr < daily_rf] - daily_rf
    if shortfall.size == 0:
        return 0.0

    downside_dev = np.sqrt(np.mean(shortfall ** 2)) * np.sqrt(TRADING_DAYS_PER_YEAR)
    if downside_dev < _EPS:
        return 0.0

    ann_ret = float(arr.mean()) * TRADING_DAYS_PER_YEAR
    return (ann_ret - risk_free_rate) / downside_dev


# ------------------------------------------------------------
# Drawdowns
# ------------------------------------------------------------

def drawdown_series(values: pd.Series) -> pd.Series:
    """Drawdown from the running peak at every point, in percent (<= 0)."""
    values = pd.Series(values, dtype=float)
    valid = values[values > 0].dropna()
    if valid.empty:
        return pd.Series(dtype=float)
    hwm = valid.cummax()
    return (valid - hwm) / hwm * 100.0


def _drawdown_episodes(values: pd.Series) -> list[dict]:
    """
    Every peak -> trough -> recovery episode, deepest point per episode.

    An episode starts on the first value strictly below the running peak and
    ends on the first value back at or above that peak. Depth is a positive
    percentage.
    """
    values = pd.Series(values, dtype=float)
    valid = values[values > 0].dropna()
    if valid.empty:
        return []

    episodes = []
    peak_date, peak_val = valid.index[0], float(valid.iloc[0])
    current = None

    for d, v in valid.iloc[1:].items():
        v = float(v)
        if v >= peak_val:
            if current is not None:
                current["recovery_date"] = d
                current["recovery_days"] = (d - current["trough_date"]).days
                current["duration_days"] = (d - current["peak_date"]).days
                episodes.append(current)
                current = None
            peak_date, peak_val = d, v
            continue

        if current is None:
            current = {
                "peak_date": peak_date,
                "peak_value": peak_val,
                "trough_date": d,
                "trough_value": v,
                "recovery_date": None,
                "recovery_days": None,
                "duration_days": None,
            }
        elif v < current["trough_value"]:
            current["trough_date"] = d
            current["trough_value"] = v

    if current is not None:
        episodes.append(current)

    for ep in episodes:
        ep["depth"] = (ep["peak_value"] - ep["trough_value"]) / ep["peak_value"] * 100.0
    return episodes


def _episode_record(ep: dict) -> dict:
    def iso(d):
        return d.date().isoformat() if d is not None else None

    return {
        "peak_date": iso(ep["peak_date"]),
        "peak_value": ep["peak_value"],
        "trough_date": iso(ep["trough_date"]),
        "trough_value": ep["trough_value"],
        "depth": ep["depth"],
        "recovery_date": iso(ep["recovery_date"]),
        "recovery_days": ep["recovery_days"],
        "duration_days": ep["duration_days"],
    }


def drawdown_periods(values: pd.Series, threshold: float = DRAWDOWN_PERIOD_THRESHOLD) -> list[dict]:
    """
    Drawdown episodes deeper than `threshold` percent, oldest first.

    Each record has peak/trough dates and values, depth (%), and the
    recovery date with recovery_days (trough -> recovery) and duration_days
    (peak -> recovery). Episodes still underwater have recovery fields None.
    """
    return [_episode_record(ep) for ep in _drawdown_episodes(values) if ep["depth"] > threshold]


def max_drawdown(values: pd.Series) -> float:
    """Largest peak-to-trough decline as a positive percentage; 0.0 if none."""
    dd = drawdown_series(values)
    if dd.empty:
        return 0.0
    return float(-dd.min())


def max_drawdown_details(values: pd.Series) -> dict:
    """
    The deepest drawdown with its peak, trough and (if any) recovery.
    Dates are None when the series never declined.
    """
    episodes = _drawdown_episodes(values)
    if not episodes:
        return {
            "max_drawdown": 0.0,
            "peak_date": None,
            "trough_date": None,
            "recovery_date": None,
            "recovery_days": None,
        }
    worst = max(episodes, key=lambda ep: ep["depth"])
    record = _episode_record(worst)
    return {
        "max_drawdown": worst["depth"],
        "peak_date": record["peak_date"],
        "trough_date": record["trough_date"],
        "recovery_date": record["recovery_date"],
        "recovery_days": record["recovery_days"],
    }


# ------------------------------------------------------------
# Benchmark-relative ratios
# ------------------------------------------------------------

def beta(
    portfolio_returns,
    benchmark_returns,
    min_observations: int = MIN_OBSERVATIONS,
) -> float:
    """cov(P, B) / var(B) over the common length; 0.0 when var(B) is zero."""
    p, b = _truncate(portfolio_returns, benchmark_returns)
    if p.size < max(2, min_observations):
        return np.nan
    dp = p - p.mean()
    db = b - b.mean()
    var_b = float(np.dot(db, db))
    if var_b < _EPS ** 2:
        return 0.0
    return float(np.dot(dp, db)) / var_b


def alpha(
    portfolio_returns,
    benchmark_returns,
    risk_free_rate: float = RISK_FREE_RATE,
    min_observations: int = MIN_OBSERVATIONS,
) -> float:
    """
    CAPM alpha (annual, fraction):
    ann_P - (rf + beta * (ann_B - rf)), with ann_X = mean daily return * 252.
    """
    p, b = _truncate(portfolio_returns, benchmark_returns)
    b_coef = beta(p, b, min_observations=min_observations)
    if np.isnan(b_coef):
        return np.nan
    ann_p = float(p.mean()) * TRADING_DAYS_PER_YEAR
    ann_b = float(b.mean()) * TRADING_DAYS_PER_YEAR
    return ann_p - (risk_free_rate + b_coef * (ann_b - risk_free_rate))


def calmar_ratio(
    annualized_return_pct: float,
    max_drawdown_pct: float,
    observations: int | None = None,
    min_observations: int = MIN_OBSERVATIONS,
) -> float:
    """
    Annualized return / max drawdown (both %); +inf when there was no drawdown.

    When `observations` (daily returns behind both inputs) is given, NaN
    below `min_observations`.
    """
    if observations is not None and observations < max(2, min_observations):
        return np.nan
    if annualized_return_pct is None or np.isnan(annualized_return_pct):
        return np.nan
    if max_drawdown_pct == 0:
        return np.inf
    return annualized_return_pct / max_drawdown_pct


def information_ratio(
    portfolio_returns,
    benchmark_returns,
    min_observations: int = MIN_OBSERVATIONS,
) -> float:
    """
    (mean(excess) * 252) / (std(excess) * sqrt(252)) with
    excess = portfolio - benchmark daily returns. 0.0 for zero tracking error.
    """
    p, b = _truncate(portfolio_returns, benchmark_returns)
    if p.size < max(2, min_observations):
        return np.nan
    excess = p - b
    te = volatility(excess, annualized=False)
    if te == 0:
        return 0.0
    return (float(excess.mean()) * TRADING_DAYS_PER_YEAR) / annualize_volatility(te)


def tracking_error(portfolio_returns, benchmark_returns) -> float:
    """Annualized standard deviation of excess returns, in percent."""
    p, b = _truncate(portfolio_returns, benchmark_returns)
    te = volatility(p - b)
    return te * 100.0 if np.isfinite(te) else np.nan


# ------------------------------------------------------------
# RiskMetrics record
# ------------------------------------------------------------

def _average_benchmark_returns(frame: pd.DataFrame, benchmarks: pd.DataFrame) -> pd.Series:
    per_key = {key: daily_returns(benchmarks[key]) for key in benchmarks.columns}
    per_key = {k: r for k, r in per_key.items() if not r.empty}
    if not per_key:
        return pd.Series(dtype=float)
    return pd.DataFrame(per_key).reindex(frame.index).mean(axis=1, skipna=True).dropna()


def risk_metrics(
    frame: pd.DataFrame,
    benchmarks: pd.DataFrame | None = None,
    risk_free_rate: float = RISK_FREE_RATE,
    min_observations: int = MIN_OBSERVATIONS,
) -> dict:
    """
    RiskMetrics for the unit-value series:

      volatility (% annual), sharpe_ratio, sortino_ratio, max_drawdown (%),
      beta, alpha (% annual) and tracking error (% annual) per benchmark
      key, calmar_ratio, information_ratio (against the equal-weighted
      average of the benchmarks' daily returns) and the number of daily
      observations.
    """
    unit_value = frame["unit_value"]
    port_rets = daily_returns(unit_value)

    vol = volatility(port_rets)
    mdd = max_drawdown(unit_value)
    ann_ret = series_annualized_return(unit_value)

    betas = {}
    alphas = {}
    tracking_errors = {}
    info_ratio = np.nan
    if benchmarks is not None:
        for key in benchmarks.columns:
            pairs = paired_returns(unit_value, benchmarks[key])
            betas[key] = beta(pairs["x"], pairs["y"], min_observations=min_observations)
            a = alpha(pairs["x"], pairs["y"], risk_free_rate=risk_free_rate, min_observations=min_observations)
            alphas[key] = a * 100.0 if np.isfinite(a) else np.nan
            tracking_errors[key] = tracking_error(pairs["x"], pairs["y"])

        avg_bench = _average_benchmark_returns(frame, benchmarks)
        if not avg_bench.empty:
            pairs = pd.concat([port_rets.rename("x"), avg_bench.rename("y")], axis=1, join="inner").dropna()
            info_ratio = information_ratio(pairs["x"], pairs["y"], min_observations=min_observations)

    return {
        "volatility": vol * 100.0 if np.isfinite(vol) else np.nan,
        "sharpe_ratio": sharpe_ratio(port_rets, risk_free_rate, min_observations),
        "sortino_ratio": sortino_ratio(port_rets, risk_free_rate, min_observations),
        "max_drawdown": mdd,
        "beta": betas,
        "alpha": alphas,
        "tracking_error": tracking_errors,
        "calmar_ratio": calmar_ratio(ann_ret, mdd, len(port_rets), min_observations),
        "information_ratio": info_ratio,
        "observations": int(len(port_rets)),
    }


# ------------------------------------------------------------
# Rolling metrics
# ------------------------------------------------------------

def rolling_metrics(
    frame: pd.DataFrame,
    benchmarks: pd.DataFrame | None = None,
    windows=ROLLING_WINDOWS,
    risk_free_rate: float = RISK_FREE_RATE,
) -> pd.DataFrame:
    """
    RollingMetrics table indexed by date, starting at the smallest window.

    For each window w (in observations): return_<w>d (%), volatility_<w>d
    (% annual), sharpe_<w>d and correlation_<w>d_<key>. Every statistic uses
    only the trailing w returns ending at that date; NaN until a full window
    exists.
    """
    unit_value = frame["unit_value"]
    rets = daily_returns(unit_value).reindex(frame.index)

    out = pd.DataFrame(index=frame.index)
    for w in windows:
        out[f"return_{w}d"] = rolling_return(unit_value, w).reindex(frame.index)

        roll_std = rets.rolling(w).std()
        roll_mean = rets.rolling(w).mean()
        roll_std = roll_std.mask(roll_std.abs() < _EPS, 0.0)
        ann_vol = annualize_volatility(roll_std)

        out[f"volatility_{w}d"] = ann_vol * 100.0
        sharpe = (roll_mean * TRADING_DAYS_PER_YEAR - risk_free_rate) / ann_vol
        out[f"sharpe_{w}d"] = sharpe.mask(ann_vol == 0, 0.0)

    if benchmarks is not None and len(benchmarks.columns):
        out = out.join(rolling_correlations(frame, benchmarks, windows))

    start = min(windows) if len(windows) else 0
    return out.iloc[start:]


# ------------------------------------------------------------
# Health score
# ------------------------------------------------------------

def health_score(risk: dict) -> dict:
    """
    0-100 composite of Sharpe (30 pts), volatility (20), max drawdown (20),
    Calmar (15) and information ratio (15), plus a coarse risk level and a
    diversification score from the average absolute beta.
    """
    sharpe = risk.get("sharpe_ratio", np.nan)
    vol = risk.get("volatility", np.nan)
    mdd = risk.get("max_drawdown", np.nan)
    calmar = risk.get("calmar_ratio", np.nan)
    info = risk.get("information_ratio", np.nan)

    score = 0
    if sharpe > 1.5:
        score += 30
    elif sharpe > 1.0:
        score += 25
    elif sharpe > 0.5:
        score += 15
    elif sharpe > 0:
        score += 5

    if vol < 10:
        score += 20
    elif vol < 15:
        score += 15
    elif vol < 25:
        score += 10
    elif vol < 35:
        score += 5

    if mdd < 5:
        score += 20
    elif mdd < 10:
        score += 15
    elif mdd < 20:
        score += 10
    elif mdd < 30:
        score += 5

    if calmar > 2:
        score += 15
    elif calmar > 1:
        score += 10
    elif calmar > 0.5:
        score += 5

    if info > 1:
        score += 15
    elif info > 0.5:
        score += 10
    elif info > 0:
        score += 5

    total = score

    if total >= 80:
        level = "Excellent"
    elif total >= 60:
        level = "Good"
    elif total >= 40:
        level = "Fair"
    else:
        level = "Poor"

    if vol < 15 and mdd < 10:
        risk_level = "Low Risk"
    elif vol < 25 and mdd < 20:
        risk_level = "Moderate Risk"
    else:
        risk_level = "High Risk"

    betas = [abs(b) for b in risk.get("beta", {}).values() if np.isfinite(b)]
    if not betas:
        diversification = None
    else:
        avg_beta = sum(betas) / len(betas)
        if avg_beta < 0.5:
            diversification = 90
        elif avg_beta < 0.8:
            diversification = 70
        elif avg_beta < 1.2:
            diversification = 50
        else:
            diversification = 30

    return {
        "score": total,
        "level": level,
        "risk_level": risk_level,
        "diversification_score": diversification,
    }


# ------------------------------------------------------------
# Recovery / cross-series comparison
# ------------------------------------------------------------

def recovery_summary(periods: list[dict]) -> dict:
    """Counts of drawdown periods and the average trough -> recovery time of the recovered ones."""
    days = [p["recovery_days"] for p in periods if p.get("recovery_days") is not None]
    return {
        "periods": len(periods),
        "recovered": len(days),
        "avg_recovery_days": float(np.mean(days)) if days else np.nan,
        "longest_recovery_days": max(days) if days else None,
    }


def risk_adjusted_comparison(
    frame: pd.DataFrame,
    benchmarks: pd.DataFrame | None = None,
    risk_free_rate: float = RISK_FREE_RATE,
    min_observations: int = MIN_OBSERVATIONS,
    labels=BENCHMARK_LABELS,
) -> list[dict]:
    """
    Annualized return (%), volatility (%), Sharpe and Sortino for the fund and
    each benchmark over the portfolio's dates, ranked by Sharpe (1 = best).

    Series with fewer than `min_observations` daily returns are left out.
    """
    series = {"fund": frame["unit_value"]}
    if benchmarks is not None:
        for key in benchmarks.columns:
            series[key] = benchmarks[key]

    rows = []
    for key, levels in series.items():
        rets = daily_returns(levels)
        if len(rets) < max(2, min_observations):
            continue
        vol = volatility(rets)
        rows.append({
            "key": key,
            "label": "Fund" if key == "fund" else labels.get(key, key),
            "annualized_return": series_annualized_return(levels),
            "volatility": vol * 100.0,
            "sharpe_ratio": sharpe_ratio(rets, risk_free_rate, min_observations),
            "sortino_ratio": sortino_ratio(rets, risk_free_rate, min_observations),
        })

    ranked = sorted(rows, key=lambda r: r["sharpe_ratio"], reverse=True)
    for rank, row in enumerate(ranked, start=1):
        row["rank"] = rank
    return rows


# ------------------------------------------------------------
# Attribution
# ------------------------------------------------------------

def performance_attribution(
    annualized_return_pct: float,
    benchmark_return_pct: float,
    beta_coef: float,
    alpha_pct: float,
    risk_free_rate: float = RISK_FREE_RATE,
) -> dict:
    """
    Splits the fund's annualized return (%) into a risk-free part, a market
    part beta * (benchmark - rf), the CAPM alpha and whatever is left over.
    """
    rf_pct = risk_free_rate * 100.0
    market = beta_coef * (benchmark_return_pct - rf_pct)
    return {
        "total_return": annualized_return_pct,
        "risk_free": rf_pct,
        "market": market,
        "alpha": alpha_pct,
        "residual": annualized_return_pct - market - alpha_pct - rf_pct,
    }


def rolling_excess_returns(
    frame: pd.DataFrame,
    benchmark_levels: pd.Series,
    window: int = EXCESS_RETURN_WINDOW,
) -> pd.DataFrame:
    """Trailing `window`-step returns (%) of the fund and the benchmark, and their difference."""
    fund = rolling_return(frame["unit_value"], window)
    bench = rolling_return(pd.Series(benchmark_levels, dtype=float).reindex(frame.index), window)
    table = pd.DataFrame({"portfolio": fund, "benchmark": bench}).dropna()
    table["excess"] = table["portfolio"] - table["benchmark"]
    return table


def excess_return_summary(table: pd.DataFrame) -> dict:
    """Average and latest excess return plus the share of windows ahead of the benchmark."""
    excess = table["excess"] if "excess" in table else pd.Series(dtype=float)
    if excess.empty:
        return {"avg_excess": np.nan, "latest_excess": np.nan, "win_rate": np.nan, "windows": 0}
    return {
        "avg_excess": float(excess.mean()),
        "latest_excess": float(excess.iloc[-1]),
        "win_rate": float((excess > 0).sum() / len(excess) * 100.0),
        "windows": int(len(excess)),
    }
