"""
Return calculator: point-to-point, annualized, rolling and calendar-bucketed
returns for the unit-value series and for each benchmark.

All returns are in percent. Functions take the normalized frame from
``normalizer.normalize`` and/or benchmark levels already aligned to it with
``benchmarks.align_benchmarks`` (one column per index key).
"""

import numpy as np
import pandas as pd

from config import DEPOSIT_RATE, GROWTH_AMOUNT, ROLLING_RETURN_STRIDE, TRADING_DAYS_PER_YEAR
from financial_math import (
    annualized_return,
    first_valid,
    last_valid,
    point_return,
    series_years,
    years_between,
)

# ============================================================
# CONFIG / CONSTANTS
# ============================================================
MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
QUARTERS = ["Q1", "Q2", "Q3", "Q4"]

FREQ_PERIOD = {"M": "M", "Q": "Q", "Y": "Y"}


# ------------------------------------------------------------
# Rolling returns
# ------------------------------------------------------------

def rolling_return(values: pd.Series, window: int, stride: int = 1) -> pd.Series:
    """
    Trailing `window`-step return at each index i >= window:
    (v[i] - v[i-window]) / v[i-window] * 100.

    `stride` samples every stride-th index starting at `window`; it only
    saves work, stride=1 computes every point.
    """
    values = pd.Series(values, dtype=float)
    if window <= 0 or len(values) <= window:
        return pd.Series(dtype=float)

    base = values.shift(window)
    full = (values - base) / base * 100.0
    full = full.where(base > 0)

    positions = list(range(window, len(values), max(1, stride)))
    return full.iloc[positions]


def _rolling_annualized(values: pd.Series, days: int, positions: list[int]) -> list[float]:
    years = days / TRADING_DAYS_PER_YEAR
    out = []
    for i in positions:
        out.append(annualized_return(float(values.iloc[i - days]), float(values.iloc[i]), years))
    return out


def rolling_annualized_returns(
    frame: pd.DataFrame,
    benchmarks: pd.DataFrame | None = None,
    years: int = 3,
    stride: int = ROLLING_RETURN_STRIDE,
) -> pd.DataFrame:
    """
    Annualized rolling returns over a `years`-long window (years * 252
    observations) for the fund and each benchmark.

    Sampled every `stride` observations; the last observation is always
    included so the table ends on the latest date. Empty when the series is
    shorter than the window. Benchmark windows without two positive levels
    are NaN.
    """
    days = int(years * TRADING_DAYS_PER_YEAR)
    n = len(frame)
    if n <= days:
        return pd.DataFrame(columns=["fund"] + list(benchmarks.columns if benchmarks is not None else []))

    positions = list(range(days, n, max(1, stride)))
    if positions[-1] != n - 1:
        positions.append(n - 1)

    data = {"fund": _rolling_annualized(frame["unit_value"], days, positions)}
    if benchmarks is not None:
        for key in benchmarks.columns:
            data[key] = _rolling_annualized(benchmarks[key], days, positions)

    return pd.DataFrame(data, index=frame.index[positions])


# ------------------------------------------------------------
# Calendar buckets (monthly / quarterly / yearly)
# ------------------------------------------------------------

def _bucket_label(period: pd.Period, freq: str) -> str:
    if freq == "M":
        return f"{MONTHS[period.month - 1]} {period.year}"
    if freq == "Q":
        return f"{period.year}-Q{period.quarter}"
    return str(period.year)


def period_returns(values: pd.Series, freq: str = "M") -> pd.DataFrame:
    """
    Return per calendar bucket using the first and last valid observation in
    the bucket.

    freq: "M" (year, month), "Q" (year, quarter) or "Y" (year).
    Buckets with fewer than two valid observations get a NaN return.

    Columns: year, period (month 1-12 / quarter 1-4 / year), label,
    start_date, end_date, return.
    """
    if freq not in FREQ_PERIOD:
        raise ValueError(f"Unsupported bucket frequency: {freq}")

    values = pd.Series(values, dtype=float)
    cols = ["year", "period", "label", "start_date", "end_date", "return"]
    if values.empty:
        return pd.DataFrame(columns=cols)

    rows = []
    for period, bucket in values.groupby(values.index.to_period(FREQ_PERIOD[freq])):
        valid = bucket[bucket > 0].dropna()
        if freq == "M":
            sub = period.month
        elif freq == "Q":
            sub = period.quarter
        else:
            sub = period.year

        if len(valid) < 2:
            ret = np.nan
            start_date = valid.index[0] if len(valid) else bucket.index[0]
            end_date = valid.index[-1] if len(valid) else bucket.index[-1]
        else:
            ret = point_return(float(valid.iloc[0]), float(valid.iloc[-1]))
            start_date = valid.index[0]
            end_date = valid.index[-1]

        rows.append({
            "year": period.year,
            "period": sub,
            "label": _bucket_label(period, freq),
            "start_date": start_date,
            "end_date": end_date,
            "return": ret,
        })

    return pd.DataFrame(rows, columns=cols)


def monthly_returns(values: pd.Series) -> pd.DataFrame:
    return period_returns(values, "M")


def quarterly_returns(values: pd.Series) -> pd.DataFrame:
    return period_returns(values, "Q")


def heatmap(values: pd.Series, freq: str = "M") -> pd.DataFrame:
    """
    Year x month (or quarter) grid of bucket returns; missing buckets are NaN.
    """
    buckets = period_returns(values, freq)
    columns = list(range(1, 13)) if freq == "M" else list(range(1, 5))
    if buckets.empty:
        return pd.DataFrame(columns=columns, dtype=float)
    grid = buckets.pivot(index="year", columns="period", values="return")
    return grid.reindex(columns=columns).astype(float)


def period_stats(values: pd.Series, freq: str = "M") -> pd.DataFrame:
    """
    Per calendar month (or quarter) across all years: average return, win
    rate (% of buckets with a positive return) and bucket count.
    """
    buckets = period_returns(values, freq).dropna(subset=["return"])
    names = MONTHS if freq == "M" else QUARTERS
    rows = []
    for i, name in enumerate(names, start=1):
        rets = buckets.loc[buckets["period"] == i, "return"]
        count = len(rets)
        rows.append({
            "period": name,
            "avg": float(rets.mean()) if count else np.nan,
            "win_rate": float((rets > 0).sum() / count * 100.0) if count else np.nan,
            "count": count,
        })
    return pd.DataFrame(rows)


def best_worst_periods(values: pd.Series, top_n: int = 5, min_points: int = 20) -> dict:
    """
    Top-N best and worst monthly and quarterly returns.

    Empty lists when the series has fewer than `min_points` observations.
    """
    empty = {"best_months": [], "worst_months": [], "best_quarters": [], "worst_quarters": []}
    if len(values) < min_points:
        return empty

    def ranked(freq: str, ascending: bool) -> list[dict]:
        buckets = period_returns(values, freq).dropna(subset=["return"])
        buckets = buckets.sort_values("return", ascending=ascending).head(top_n)
        return [
            {
                "label": r["label"],
                "start_date": r["start_date"].date().isoformat(),
                "end_date": r["end_date"].date().isoformat(),
                "return": float(r["return"]),
            }
            for r in buckets.to_dict("records")
        ]

    return {
        "best_months": ranked("M", ascending=False),
        "worst_months": ranked("M", ascending=True),
        "best_quarters": ranked("Q", ascending=False),
        "worst_quarters": ranked("Q", ascending=True),
    }


# ------------------------------------------------------------
# Annual tables
# ------------------------------------------------------------

def annual_returns(frame: pd.DataFrame, benchmarks: pd.DataFrame | None = None) -> list[dict]:
    """
    AnnualReturn rows: ``{"year", "fund_return", "<key>_return", ...}``.

    Each year uses its own first and last valid observation; years with fewer
    than two valid observations are NaN for that column.
    """
    fund = period_returns(frame["unit_value"], "Y").set_index("year")["return"]
    table = pd.DataFrame({"fund_return": fund})

    if benchmarks is not None:
        for key in benchmarks.columns:
            bench = period_returns(benchmarks[key], "Y").set_index("year")["return"]
            table[f"{key}_return"] = bench.reindex(table.index)

    table = table.sort_index()
    return [
        {"year": int(year), **{col: float(val) for col, val in row.items()}}
        for year, row in table.iterrows()
    ]


def yearly_returns(levels: pd.Series) -> pd.Series:
    """
    Year-end to year-end returns of a level series, indexed by year.

    A year's return runs from the last valid level of the closest earlier year
    that has one (walking back over years with no data) to the last valid
    level of the year itself. The first year has no anchor and is omitted;
    a year with no valid level of its own is NaN.
    """
    levels = pd.Series(levels, dtype=float)
    valid = levels[levels > 0].dropna()
    if levels.empty:
        return pd.Series(dtype=float)

    year_end = valid.groupby(valid.index.year).last()
    all_years = sorted(set(levels.index.year))
    first_year = all_years[0]

    out = {}
    for year in all_years[1:]:
        end = year_end.get(year)
        start = None
        y = year - 1
        while y >= first_year:
            if y in year_end.index:
                start = year_end[y]
                break
            y -= 1
        if end is None or start is None:
            out[year] = np.nan
        else:
            out[year] = point_return(float(start), float(end))

    return pd.Series(out, dtype=float)


def yearly_returns_table(benchmarks) -> pd.DataFrame:
    """Year-end anchored returns for every benchmark (one column per key)."""
    return pd.DataFrame({key: yearly_returns(levels) for key, levels in benchmarks.items()})


# ------------------------------------------------------------
# Whole-period summary
# ------------------------------------------------------------

def overall_metrics(frame: pd.DataFrame, benchmarks: pd.DataFrame | None = None) -> dict | None:
    """
    Whole-period summary of the fund against its benchmarks.

    Benchmark returns use the first and last valid level; the averages only
    include benchmarks with valid data. None for an empty frame.
    """
    if frame.empty:
        return None

    first = frame.iloc[0]
    last = frame.iloc[-1]
    years = series_years(frame["unit_value"])

    total_return = point_return(float(first["unit_value"]), float(last["unit_value"]))
    ann_return = annualized_return(float(first["unit_value"]), float(last["unit_value"]), years)

    result = {
        "total_return": total_return,
        "annualized_return": ann_return,
        "years": years,
        "current_unit_value": float(last["unit_value"]),
        "total_units": float(last["units"]),
        "total_market_value": float(last["market_value"]),
        "total_principal": float(last["principal"]),
        "benchmarks": {},
    }

    totals = []
    annuals = []
    if benchmarks is not None:
        for key in benchmarks.columns:
            levels = benchmarks[key]
            _, start = first_valid(levels)
            _, end = last_valid(levels)
            bench_total = point_return(start, end)
            bench_ann = annualized_return(start, end, years)
            result["benchmarks"][key] = {"total_return": bench_total, "annualized_return": bench_ann}
            if np.isfinite(bench_total):
                totals.append(bench_total)
            if np.isfinite(bench_ann):
                annuals.append(bench_ann)

    avg_total = float(np.mean(totals)) if totals else np.nan
    avg_ann = float(np.mean(annuals)) if annuals else np.nan
    result["avg_benchmark_return"] = avg_total
    result["avg_benchmark_annualized"] = avg_ann
    result["outperformance"] = total_return - avg_total
    result["annualized_outperformance"] = ann_return - avg_ann
    return result


# ------------------------------------------------------------
# Win / loss years
# ------------------------------------------------------------

def win_loss_summary(annual_rows: list[dict], column: str = "fund_return") -> dict:
    """
    Winning and losing years from ``annual_returns`` rows.

    A flat year is neither a win nor a loss: it counts towards the total but
    does not break a running streak. The current streak runs back from the
    latest year while the sign holds. Years without a return are skipped.
    """
    rets = [row[column] for row in annual_rows if np.isfinite(row.get(column, np.nan))]

    wins = sum(1 for r in rets if r > 0)
    losses = sum(1 for r in rets if r < 0)

    max_win = max_loss = streak = 0
    winning = True
    for r in rets:
        if r > 0:
            streak = streak + 1 if winning else 1
            winning = True
            max_win = max(max_win, streak)
        elif r < 0:
            streak = streak + 1 if not winning else 1
            winning = False
            max_loss = max(max_loss, streak)

    current_win = current_loss = 0
    if rets and rets[-1] != 0:
        sign = rets[-1] > 0
        for r in reversed(rets):
            if r == 0 or (r > 0) != sign:
                break
            if sign:
                current_win += 1
            else:
                current_loss += 1

    return {
        "wins": wins,
        "losses": losses,
        "total": len(rets),
        "win_rate": wins / len(rets) * 100.0 if rets else np.nan,
        "max_win_streak": max_win,
        "max_loss_streak": max_loss,
        "current_win_streak": current_win,
        "current_loss_streak": current_loss,
    }


# ------------------------------------------------------------
# Growth of an investment
# ------------------------------------------------------------

def _growth(amount: float, factor: float, years: float) -> dict:
    end_value = amount * factor
    return {
        "end_value": end_value,
        "profit": end_value - amount,
        "total_return": (factor - 1.0) * 100.0,
        "annualized_return": annualized_return(1.0, factor, years),
    }


def investment_growth(
    frame: pd.DataFrame,
    benchmarks: pd.DataFrame | None = None,
    amount: float = GROWTH_AMOUNT,
    start_date=None,
    deposit_rate: float = DEPOSIT_RATE,
) -> dict | None:
    """
    What `amount` invested on `start_date` would be worth on the last date,
    in the fund, in each benchmark, and in a deposit compounding at
    `deposit_rate`.

    The start snaps forward to the first observation on or after
    `start_date` (default: the first observation). A benchmark without a
    positive level on both ends of the period is None. Returns None when
    `amount` is not positive or no full period remains.
    """
    if amount <= 0 or frame.empty:
        return None

    index = frame.index
    pos = 0 if start_date is None else int(index.searchsorted(pd.Timestamp(start_date)))
    if pos >= len(index) - 1:
        return None

    start, end = index[pos], index[-1]
    years = years_between(start, end)
    unit_value = frame["unit_value"]

    fund = _growth(amount, float(unit_value.iloc[-1]) / float(unit_value.iloc[pos]), years)
    deposit = _growth(amount, (1.0 + deposit_rate) ** years, years)

    per_key = {}
    if benchmarks is not None:
        for key in benchmarks.columns:
            window = benchmarks[key].iloc[pos:]
            first_date, first = first_valid(window)
            last_date, last = last_valid(window)
            if first_date is not None and last_date > first_date:
                per_key[key] = _growth(amount, last / first, years)
            else:
                per_key[key] = None

    outperformance = {"deposit": fund["end_value"] - deposit["end_value"]}
    for key, rec in per_key.items():
        if rec is not None:
            outperformance[key] = fund["end_value"] - rec["end_value"]

    return {
        "amount": amount,
        "start_date": start.date().isoformat(),
        "end_date": end.date().isoformat(),
        "years": years,
        "fund": fund,
        "benchmarks": per_key,
        "deposit": deposit,
        "outperformance": outperformance,
    }
