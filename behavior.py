"""
Behavioural and distributional analysis.

Cash-flow timing against the market (contrarian vs trend-following), the
distribution of long-horizon rolling returns, and a handful of market-history
studies run on a single benchmark series: missing the best days, buying at
each year's peak, bull/bear cycles, and a monthly DCA simulation.
"""

import logging

import numpy as np
import pandas as pd

from benchmarks import to_level_series
from config import (
    BENCHMARK_LABELS,
    CONTRARIAN_THRESHOLD,
    DISTRIBUTION_HORIZONS_YEARS,
    DISTRIBUTION_STRIDE,
    DOWNTURN_THRESHOLD,
    MARKET_CYCLE_THRESHOLD,
    MISSING_DAYS_CAPITAL,
    MISSING_DAYS_SCENARIOS,
    TRADING_DAYS_PER_YEAR,
    TREND_LOOKBACK_DAYS,
)
from financial_math import (
    annualized_return,
    daily_returns,
    first_valid,
    last_valid,
    point_return,
    series_years,
    summary_stats,
    years_between,
)
from risk_metrics import max_drawdown

logger = logging.getLogger(__name__)


def _valid(levels: pd.Series) -> pd.Series:
    levels = pd.Series(levels, dtype=float)
    return levels[levels > 0].dropna()


def _iso(d) -> str:
    return pd.Timestamp(d).date().isoformat()


# ============================================================
# CASH-FLOW TIMING
# ============================================================

def investor_type(contrarian_ratio: float) -> str | None:
    """Label for a contrarian ratio given in percent."""
    if contrarian_ratio is None or np.isnan(contrarian_ratio):
        return None
    if contrarian_ratio >= 60:
        return "Strong Contrarian"
    if contrarian_ratio >= 40:
        return "Moderate Contrarian"
    return "Trend Follower"


def classify_cash_flows(
    frame: pd.DataFrame,
    benchmark: pd.Series,
    threshold: float = CONTRARIAN_THRESHOLD,
    lookback: int = TREND_LOOKBACK_DAYS,
) -> dict:
    """
    Classify every material principal change against the benchmark trend.

    `benchmark` must be aligned to the frame's dates. For each event whose
    principal moved by more than `threshold`, the market trend is the
    benchmark's return (%) over the trailing `lookback` observations. Adding
    money into a falling market, or withdrawing from a rising one, is
    contrarian; anything else (including a flat market) is trend-following.
    Events where the benchmark has no valid level at either end are skipped.

    Returns the actions plus contrarian_actions, total_actions,
    contrarian_ratio (% of actions, NaN when there are none) and
    investor_type.
    """
    principal = frame["principal"].to_numpy(dtype=float)
    levels = benchmark.reindex(frame.index).to_numpy(dtype=float)
    dates = frame.index

    actions = []
    for i in range(1, len(frame)):
        change = principal[i] - principal[i - 1]
        if abs(change) <= threshold:
            continue

        start = max(0, i - lookback)
        trend = point_return(levels[start], levels[i])
        if np.isnan(trend):
            logger.debug("No benchmark trend for cash flow on %s; skipped.", dates[i].date())
            continue

        is_contrarian = (change > 0 and trend < 0) or (change < 0 and trend > 0)
        actions.append({
            "date": dates[i].date().isoformat(),
            "principal_change": change,
            "market_trend": trend,
            "is_contrarian": is_contrarian,
            "classification": "contrarian" if is_contrarian else "trend-following",
        })

    total = len(actions)
    contrarian = sum(1 for a in actions if a["is_contrarian"])
    ratio = contrarian / total * 100.0 if total else np.nan

    logger.info("Classified %d cash flows: %d contrarian", total, contrarian)
    return {
        "actions": actions,
        "contrarian_actions": contrarian,
        "total_actions": total,
        "contrarian_ratio": ratio,
        "investor_type": investor_type(ratio),
    }


def market_downturns(
    frame: pd.DataFrame,
    benchmark: pd.Series,
    threshold: float = CONTRARIAN_THRESHOLD,
    lookback: int = TREND_LOOKBACK_DAYS,
    drop: float = DOWNTURN_THRESHOLD,
) -> list[dict]:
    """
    Trailing `lookback`-observation windows in which the benchmark fell by
    more than `drop` percent and the principal moved by more than
    `threshold` over the same window. Investing during a downturn counts as
    contrarian.
    """
    principal = frame["principal"].to_numpy(dtype=float)
    levels = benchmark.reindex(frame.index).to_numpy(dtype=float)
    dates = frame.index

    out = []
    for i in range(lookback, len(frame)):
        start = i - lookback
        market_change = point_return(levels[start], levels[i])
        if not market_change < drop:
            continue

        change = principal[i] - principal[start]
        if abs(change) <= threshold:
            continue

        out.append({
            "start_date": dates[start].date().isoformat(),
            "end_date": dates[i].date().isoformat(),
            "market_drop": market_change,
            "investor_action": "Invested" if change > 0 else "Withdrew",
            "action_amount": abs(change),
            "was_contrarian": change > 0,
        })
    return out


# ============================================================
# RETURN DISTRIBUTION
# ============================================================

def rolling_return_distribution(
    values: pd.Series,
    horizons=DISTRIBUTION_HORIZONS_YEARS,
    stride: int = DISTRIBUTION_STRIDE,
) -> list[dict]:
    """
    Box-plot statistics of annualized rolling returns for each horizon.

    A horizon of Y years spans Y * 252 observations; windows are sampled every
    `stride` observations and both ends must be positive. ``stats`` is the
    summary (min, q1, median, q3, max, mean, count) or None when the series is
    shorter than the horizon; ``positive_pct`` is the share of windows with a
    positive return.
    """
    values = pd.Series(values, dtype=float).to_numpy()
    n = len(values)

    out = []
    for years in horizons:
        days = int(years * TRADING_DAYS_PER_YEAR)
        rets = []
        for i in range(days, n, max(1, stride)):
            start, end = values[i - days], values[i]
            if start > 0 and end > 0:
                rets.append(annualized_return(start, end, years))

        stats = summary_stats(rets)
        positive = sum(1 for r in rets if r > 0) / len(rets) * 100.0 if rets else np.nan
        out.append({
            "years": years,
            "label": f"{years}Y",
            "stats": stats,
            "positive_pct": positive,
        })
    return out


# ============================================================
# MARKET HISTORY STUDIES
# ============================================================

def missing_best_days(
    levels: pd.Series,
    capital: float = MISSING_DAYS_CAPITAL,
    scenarios=MISSING_DAYS_SCENARIOS,
) -> list[dict]:
    """
    Terminal value of `capital` held through the whole series versus the
    same holding with the N best daily returns removed, for each N in
    `scenarios`. Scenarios needing more days than exist are left out.
    """
    valid = _valid(levels)
    if len(valid) < 2:
        return []

    rets = daily_returns(valid)
    years = series_years(valid)

    full_final = capital * float(valid.iloc[-1]) / float(valid.iloc[0])
    out = [{
        "scenario": "Fully Invested",
        "missed_days": 0,
        "final_value": full_final,
        "annualized_return": annualized_return(capital, full_final, years),
    }]

    for n in scenarios:
        if n > len(rets):
            continue
        best = rets.nlargest(n).index
        kept = rets.drop(best)
        final = capital * float((1.0 + kept).prod())
        out.append({
            "scenario": f"Missing Best {n} Days",
            "missed_days": n,
            "final_value": final,
            "annualized_return": annualized_return(capital, final, years),
        })
    return out


def worst_entry_points(levels: pd.Series, include_current_year: bool = False) -> list[dict]:
    """
    Buying at each calendar year's peak: the first later date the level gets
    back to that peak (None if never), the days that took, and the return
    from the peak to the latest level.

    The final year is usually incomplete and is left out unless
    `include_current_year` is set.
    """
    valid = _valid(levels)
    if len(valid) < 2:
        return []

    last_date, last_value = valid.index[-1], float(valid.iloc[-1])
    out = []
    for year, bucket in valid.groupby(valid.index.year):
        if year == last_date.year and not include_current_year:
            continue

        peak_date = bucket.idxmax()
        peak_value = float(bucket.max())

        after = valid[valid.index > peak_date]
        recovered = after[after >= peak_value]
        if recovered.empty:
            recovery_date = None
            recovery_days = None
        else:
            recovery_date = recovered.index[0]
            recovery_days = (recovery_date - peak_date).days

        out.append({
            "year": int(year),
            "peak_date": _iso(peak_date),
            "peak_value": peak_value,
            "recovery_date": _iso(recovery_date) if recovery_date is not None else None,
            "recovery_days": recovery_days,
            "current_value": last_value,
            "current_return": point_return(peak_value, last_value),
        })
    return out


def _cycle(kind: str, valid: pd.Series, start: int, end: int) -> dict:
    start_date, end_date = valid.index[start], valid.index[end]
    start_value, end_value = float(valid.iloc[start]), float(valid.iloc[end])
    return {
        "type": kind,
        "start_date": _iso(start_date),
        "end_date": _iso(end_date),
        "start_value": start_value,
        "end_value": end_value,
        "change": point_return(start_value, end_value),
        "duration_days": (end_date - start_date).days,
    }


def market_cycles(levels: pd.Series, threshold: float = MARKET_CYCLE_THRESHOLD) -> list[dict]:
    """
    Completed bull and bear phases.

    A bear phase starts once the level is `threshold` percent below the
    running peak, a bull phase once it is `threshold` percent above the
    running trough. Each phase runs from the previous turning point to the
    extreme reached before the trend flipped; the phase still in progress at
    the end of the series is not reported.
    """
    valid = _valid(levels)
    if len(valid) < 2:
        return []

    values = valid.to_numpy()
    cycles = []
    cycle_start = 0
    peak_idx = trough_idx = 0
    trend = None

    for i in range(1, len(values)):
        v = values[i]
        if v > values[peak_idx]:
            peak_idx = i
        if v < values[trough_idx]:
            trough_idx = i

        from_peak = (v - values[peak_idx]) / values[peak_idx] * 100.0
        from_trough = (v - values[trough_idx]) / values[trough_idx] * 100.0

        if trend != "down" and from_peak <= -threshold:
            if trend == "up":
                cycles.append(_cycle("bull", valid, cycle_start, peak_idx))
            trend = "down"
            cycle_start = peak_idx
            trough_idx = i
        elif trend != "up" and from_trough >= threshold:
            if trend == "down":
                cycles.append(_cycle("bear", valid, cycle_start, trough_idx))
            trend = "up"
            cycle_start = trough_idx
            peak_idx = i

    return cycles


def simulate_dca(levels: pd.Series, monthly_amount: float = 1000.0) -> dict:
    """
    Invest `monthly_amount` at the first valid level of every calendar month
    and hold.

    Returns total_invested, final_value, total_return (%),
    annualized_return (% on invested capital over the simulated span) and a
    ``history`` frame of invested / value / index_value per date.
    """
    valid = _valid(levels)
    history = pd.DataFrame(columns=["invested", "value", "index_value"], dtype=float)
    if valid.empty:
        return {
            "total_invested": 0.0,
            "final_value": 0.0,
            "total_return": 0.0,
            "annualized_return": 0.0,
            "history": history,
        }

    month = valid.index.to_period("M")
    buy_day = ~month.duplicated()

    shares = (monthly_amount / valid).where(buy_day, 0.0).cumsum()
    invested = pd.Series(np.where(buy_day, monthly_amount, 0.0), index=valid.index).cumsum()

    history = pd.DataFrame({
        "invested": invested,
        "value": shares * valid,
        "index_value": valid,
    })

    total_invested = float(invested.iloc[-1])
    final_value = float(history["value"].iloc[-1])
    years = years_between(valid.index[0], valid.index[-1])

    return {
        "total_invested": total_invested,
        "final_value": final_value,
        "total_return": point_return(total_invested, final_value),
        "annualized_return": annualized_return(total_invested, final_value, years),
        "history": history,
    }


def market_summary(benchmarks, labels=BENCHMARK_LABELS) -> dict:
    """
    Per-index overview of the benchmark history: first and last valid
    level, total and annualized return over the whole data span, and max
    drawdown (positive %).
    """
    table = pd.DataFrame({key: to_level_series(points) for key, points in benchmarks.items()})
    if table.empty:
        return {"start_date": None, "end_date": None, "total_years": 0.0, "indices": []}

    total_years = series_years(table)
    indices = []
    for key in table.columns:
        _, start = first_valid(table[key])
        _, end = last_valid(table[key])
        if np.isnan(start):
            logger.warning("Benchmark '%s' has no valid levels; left out of the summary.", key)
            continue
        indices.append({
            "key": key,
            "name": labels.get(key, key),
            "start_value": start,
            "end_value": end,
            "total_return": point_return(start, end),
            "annualized_return": annualized_return(start, end, total_years),
            "max_drawdown": max_drawdown(table[key]),
        })

    return {
        "start_date": _iso(table.index[0]),
        "end_date": _iso(table.index[-1]),
        "total_years": total_years,
        "indices": indices,
    }
