import logging

import pandas as pd

from behavior import (
    classify_cash_flows,
    market_cycles,
    market_downturns,
    market_summary,
    missing_best_days,
    rolling_return_distribution,
    simulate_dca,
    worst_entry_points,
)
from benchmarks import align_benchmarks, to_level_series, valid_keys
from config import (
    CONTRARIAN_THRESHOLD,
    DEFAULT_BENCHMARK,
    DISTRIBUTION_HORIZONS_YEARS,
    DRAWDOWN_PERIOD_THRESHOLD,
    GROWTH_AMOUNT,
    MIN_OBSERVATIONS,
    RISK_FREE_RATE,
    ROLLING_WINDOWS,
)
from correlation import benchmark_correlations
from normalizer import normalize
from returns import (
    annual_returns,
    best_worst_periods,
    monthly_returns,
    overall_metrics,
    period_stats,
    quarterly_returns,
    rolling_annualized_returns,
    investment_growth,
    win_loss_summary,
    yearly_returns_table,
)
from risk_metrics import (
    drawdown_periods,
    drawdown_series,
    excess_return_summary,
    health_score,
    max_drawdown_details,
    performance_attribution,
    recovery_summary,
    risk_adjusted_comparison,
    risk_metrics,
    rolling_excess_returns,
    rolling_metrics,
)

logger = logging.getLogger(__name__)


def _primary_benchmark(aligned: pd.DataFrame, preferred: str | None) -> str | None:
    keys = valid_keys(aligned)
    if preferred in keys:
        return preferred
    if keys:
        if preferred is not None:
            logger.warning("Benchmark '%s' unavailable; using '%s' for behaviour analysis.", preferred, keys[0])
        return keys[0]
    return None


def run_engine(
    events,
    benchmarks=None,
    end_date=None,
    risk_free_rate: float = RISK_FREE_RATE,
    windows=ROLLING_WINDOWS,
    horizons=DISTRIBUTION_HORIZONS_YEARS,
    primary_benchmark: str | None = DEFAULT_BENCHMARK,
    contrarian_threshold: float = CONTRARIAN_THRESHOLD,
    drawdown_threshold: float = DRAWDOWN_PERIOD_THRESHOLD,
    min_observations: int = MIN_OBSERVATIONS,
    growth_amount: float = GROWTH_AMOUNT,
    growth_start=None,
) -> dict:
    """
    Runs the full analysis for one portfolio and returns every derived record.

    `events` is anything ``normalizer.normalize`` accepts; `benchmarks` maps
    index keys to level series (or is None). Nothing is read from disk and
    no state is kept between calls. Raises ``normalizer.ValidationError`` when
    the events cannot be normalized.
    """
    frame = normalize(events)

    # =============================================================
    # TIME MACHINE LOGIC
    # =============================================================
    if end_date is not None:
        end_date = pd.Timestamp(end_date)
        frame = frame[frame.index <= end_date]
        if frame.empty:
            raise ValueError(f"No contribution events on or before {end_date.date()}.")

    aligned = align_benchmarks(benchmarks if benchmarks is not None else {}, frame.index)
    primary = _primary_benchmark(aligned, primary_benchmark)

    logger.info(
        "Running analysis: %d observations, %d benchmarks (primary: %s)",
        len(frame),
        len(aligned.columns),
        primary,
    )

    unit_value = frame["unit_value"]

    # ------ Returns ------
    overall = overall_metrics(frame, aligned)
    rolling_returns = rolling_annualized_returns(frame, aligned)

    # ------ Risk ------
    risk = risk_metrics(frame, aligned, risk_free_rate=risk_free_rate, min_observations=min_observations)
    health = health_score(risk)

    # ------ Behaviour / attribution vs the primary benchmark ------
    if primary is not None:
        cash_flows = classify_cash_flows(frame, aligned[primary], threshold=contrarian_threshold)
        downturns = market_downturns(frame, aligned[primary], threshold=contrarian_threshold)
        attribution = performance_attribution(
            overall["annualized_return"],
            overall["benchmarks"][primary]["annualized_return"],
            risk["beta"][primary],
            risk["alpha"][primary],
            risk_free_rate=risk_free_rate,
        )
        rolling_excess = rolling_excess_returns(frame, aligned[primary])
        excess_summary = excess_return_summary(rolling_excess)
    else:
        logger.warning("No benchmark with valid levels; cash-flow timing and attribution not analysed.")
        cash_flows = None
        downturns = []
        attribution = None
        rolling_excess = pd.DataFrame(columns=["portfolio", "benchmark", "excess"])
        excess_summary = None

    annual = annual_returns(frame, aligned)
    periods = drawdown_periods(unit_value, threshold=drawdown_threshold)

    result = {
        "unit_values": frame,
        "benchmarks": aligned,
        "primary_benchmark": primary,
        "overall": overall,
        "annual_returns": annual,
        "win_loss": win_loss_summary(annual),
        "monthly_returns": monthly_returns(unit_value),
        "quarterly_returns": quarterly_returns(unit_value),
        "monthly_stats": period_stats(unit_value, "M"),
        "best_worst_periods": best_worst_periods(unit_value),
        "rolling_returns": rolling_returns,
        "risk": risk,
        "max_drawdown": max_drawdown_details(unit_value),
        "drawdown": drawdown_series(unit_value),
        "drawdown_periods": periods,
        "recovery": recovery_summary(periods),
        "rolling_metrics": rolling_metrics(frame, aligned, windows=windows, risk_free_rate=risk_free_rate),
        "correlations": benchmark_correlations(frame, aligned),
        "risk_adjusted": risk_adjusted_comparison(frame, aligned, risk_free_rate, min_observations),
        "health": health,
        "attribution": attribution,
        "rolling_excess": rolling_excess,
        "excess_summary": excess_summary,
        "growth": investment_growth(frame, aligned, amount=growth_amount, start_date=growth_start),
        "cash_flows": cash_flows,
        "downturns": downturns,
        "distribution": rolling_return_distribution(unit_value, horizons=horizons),
    }

    logger.info(
        "Analysis complete: total return %.2f%%, max drawdown %.2f%%",
        overall["total_return"],
        risk["max_drawdown"],
    )
    return result


def run_market_insights(benchmarks, key: str = DEFAULT_BENCHMARK, horizons=DISTRIBUTION_HORIZONS_YEARS) -> dict:
    """
    Market-history studies on one benchmark's full level history: rolling
    return distribution, missing-best-days, worst entry points, bull/bear
    cycles and a monthly DCA, plus the cross-index summary and year-end
    returns of every index.
    """
    if key not in benchmarks:
        raise KeyError(f"Unknown benchmark '{key}'. Available: {sorted(benchmarks)}")

    levels = to_level_series(benchmarks[key], name=key)
    levels = levels[levels > 0].dropna()
    if levels.empty:
        logger.warning("Benchmark '%s' has no valid levels.", key)

    logger.info("Running market insights for '%s' (%d levels)", key, len(levels))
    return {
        "key": key,
        "summary": market_summary(benchmarks),
        "yearly_returns": yearly_returns_table({k: to_level_series(v) for k, v in benchmarks.items()}),
        "distribution": rolling_return_distribution(levels, horizons=horizons),
        "missing_best_days": missing_best_days(levels),
        "worst_entry_points": worst_entry_points(levels),
        "cycles": market_cycles(levels),
        "dca": simulate_dca(levels),
    }
