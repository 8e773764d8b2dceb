import numpy as np
import pandas as pd
import pytest

from benchmarks import align_benchmarks
from config import GROWTH_AMOUNT
from normalizer import normalize
from returns import (
    annual_returns,
    best_worst_periods,
    heatmap,
    investment_growth,
    monthly_returns,
    overall_metrics,
    period_returns,
    period_stats,
    rolling_annualized_returns,
    rolling_return,
    win_loss_summary,
    yearly_returns,
)
from tests.conftest import make_events


@pytest.fixture()
def two_month_series() -> pd.Series:
    idx = pd.to_datetime(["2020-01-02", "2020-01-31", "2020-02-03", "2020-02-28", "2020-03-02"])
    return pd.Series([100.0, 110.0, 110.0, 121.0, 125.0], index=idx)


def test_rolling_return_over_index_steps() -> None:
    values = pd.Series([100.0, 110.0, 121.0, 133.1], index=pd.bdate_range("2020-01-01", periods=4))

    one_step = rolling_return(values, 1)
    assert one_step.tolist() == pytest.approx([10.0, 10.0, 10.0])

    two_step = rolling_return(values, 2)
    assert list(two_step.index) == list(values.index[2:])
    assert two_step.tolist() == pytest.approx([21.0, 21.0])

    assert rolling_return(values, 4).empty


def test_rolling_return_stride_only_samples() -> None:
    values = pd.Series(np.linspace(100, 200, 50), index=pd.bdate_range("2020-01-01", periods=50))
    full = rolling_return(values, 5)
    sampled = rolling_return(values, 5, stride=10)

    assert list(sampled.index) == list(values.index[5::10])
    assert sampled.tolist() == pytest.approx(full.loc[sampled.index].tolist())


def test_monthly_buckets_use_first_and_last_observation(two_month_series: pd.Series) -> None:
    buckets = monthly_returns(two_month_series)

    assert buckets["label"].tolist() == ["Jan 2020", "Feb 2020", "Mar 2020"]
    assert buckets["return"].iloc[0] == pytest.approx(10.0)
    assert buckets["return"].iloc[1] == pytest.approx(10.0)
    # a single observation is no data, not a zero return
    assert np.isnan(buckets["return"].iloc[2])


def test_quarterly_and_yearly_buckets(two_month_series: pd.Series) -> None:
    quarters = period_returns(two_month_series, "Q")
    assert quarters["label"].tolist() == ["2020-Q1"]
    assert quarters["return"].iloc[0] == pytest.approx(25.0)

    years = period_returns(two_month_series, "Y")
    assert years["period"].tolist() == [2020]


def test_unknown_bucket_frequency() -> None:
    with pytest.raises(ValueError):
        period_returns(pd.Series(dtype=float), "W")


def test_heatmap_grid(two_month_series: pd.Series) -> None:
    grid = heatmap(two_month_series)
    assert list(grid.columns) == list(range(1, 13))
    assert grid.loc[2020, 2] == pytest.approx(10.0)
    assert np.isnan(grid.loc[2020, 7])


def test_period_stats_win_rate(two_month_series: pd.Series) -> None:
    stats = period_stats(two_month_series, "M").set_index("period")
    assert stats.loc["Jan", "avg"] == pytest.approx(10.0)
    assert stats.loc["Jan", "win_rate"] == 100.0
    assert stats.loc["Mar", "count"] == 0
    assert len(stats) == 12


def test_best_worst_periods_needs_enough_history(two_month_series: pd.Series) -> None:
    assert best_worst_periods(two_month_series)["best_months"] == []

    values = pd.Series(np.linspace(100, 150, 90), index=pd.bdate_range("2020-01-01", periods=90))
    ranked = best_worst_periods(values, top_n=2)
    assert len(ranked["best_months"]) == 2
    assert ranked["best_months"][0]["return"] >= ranked["best_months"][1]["return"]
    assert ranked["worst_months"][0]["return"] <= ranked["worst_months"][1]["return"]


def test_yearly_returns_walk_back_over_empty_years() -> None:
    levels = pd.Series(
        [100.0, np.nan, 121.0],
        index=pd.to_datetime(["2019-12-31", "2020-06-30", "2021-12-31"]),
    )
    result = yearly_returns(levels)

    assert list(result.index) == [2020, 2021]
    assert np.isnan(result[2020])
    assert result[2021] == pytest.approx(21.0)


def test_annual_returns_against_benchmarks() -> None:
    frame = normalize([
        ("2020-01-02", 1000, 1000),
        ("2020-12-31", 1000, 1100),
        ("2021-01-04", 1000, 1100),
        ("2021-12-31", 1000, 1210),
    ])
    aligned = align_benchmarks(
        {"csi300": {"2020-01-02": 4000.0, "2020-12-31": 5000.0, "2021-01-04": 5000.0, "2021-12-31": 4500.0}},
        frame.index,
    )

    rows = annual_returns(frame, aligned)
    assert [r["year"] for r in rows] == [2020, 2021]
    assert rows[0]["fund_return"] == pytest.approx(10.0)
    assert rows[0]["csi300_return"] == pytest.approx(25.0)
    assert rows[1]["csi300_return"] == pytest.approx(-10.0)


def test_overall_metrics_averages_valid_benchmarks_only() -> None:
    frame = normalize([("2020-01-01", 1000, 1000), ("2021-01-01", 1000, 1210)])
    aligned = align_benchmarks(
        {"sp500": {"2020-01-01": 100.0, "2021-01-01": 110.0}, "sha": {}},
        frame.index,
    )

    overall = overall_metrics(frame, aligned)

    assert overall["total_return"] == pytest.approx(21.0)
    assert overall["current_unit_value"] == pytest.approx(1.21)
    assert overall["benchmarks"]["sp500"]["total_return"] == pytest.approx(10.0)
    assert np.isnan(overall["benchmarks"]["sha"]["total_return"])
    assert overall["avg_benchmark_return"] == pytest.approx(10.0)
    assert overall["outperformance"] == pytest.approx(11.0)


def test_rolling_annualized_returns_end_on_latest_date() -> None:
    values = 1000.0 * (1.0005 ** np.arange(300))
    frame = normalize(make_events(values))
    aligned = align_benchmarks({"csi300": frame["unit_value"] * 3000.0}, frame.index)

    table = rolling_annualized_returns(frame, aligned, years=1, stride=30)

    assert list(table.index) == [frame.index[252], frame.index[282], frame.index[-1]]
    expected = ((1.0005 ** 252) - 1.0) * 100.0
    assert table["fund"].tolist() == pytest.approx([expected] * 3)
    assert table["csi300"].tolist() == pytest.approx([expected] * 3)


def test_rolling_annualized_returns_short_history() -> None:
    frame = normalize(make_events([1000.0, 1010.0, 1020.0]))
    assert rolling_annualized_returns(frame, years=1).empty


def test_win_loss_summary_counts_streaks() -> None:
    rows = [{"year": 2015 + i, "fund_return": r} for i, r in enumerate([5.0, -2.0, -3.0, 0.0, 4.0, 6.0, np.nan])]
    summary = win_loss_summary(rows)

    assert summary["wins"] == 3
    assert summary["losses"] == 2
    assert summary["total"] == 6
    assert summary["win_rate"] == pytest.approx(50.0)
    assert summary["max_win_streak"] == 2
    assert summary["max_loss_streak"] == 2
    assert summary["current_win_streak"] == 2
    assert summary["current_loss_streak"] == 0


def test_win_loss_summary_current_losing_run() -> None:
    rows = [{"fund_return": r} for r in [3.0, -1.0, -4.0]]
    summary = win_loss_summary(rows)

    assert summary["current_loss_streak"] == 2
    assert summary["current_win_streak"] == 0
    assert np.isnan(win_loss_summary([])["win_rate"])


def test_investment_growth_from_chosen_start() -> None:
    frame = normalize([("2020-01-01", 1000, 1000), ("2021-01-01", 1000, 1100), ("2022-01-01", 1000, 1210)])
    bench = pd.DataFrame({"a": [100.0, 100.0, 150.0], "b": [np.nan, np.nan, 200.0]}, index=frame.index)

    growth = investment_growth(frame, bench, amount=10000.0, start_date="2020-06-01", deposit_rate=0.03)

    assert growth["start_date"] == "2021-01-01"
    assert growth["end_date"] == "2022-01-01"
    assert growth["fund"]["end_value"] == pytest.approx(11000.0)
    assert growth["fund"]["total_return"] == pytest.approx(10.0)
    assert growth["benchmarks"]["a"]["end_value"] == pytest.approx(15000.0)
    assert growth["benchmarks"]["b"] is None
    assert growth["deposit"]["end_value"] == pytest.approx(10000.0 * 1.03 ** (365 / 365.25))
    assert growth["outperformance"]["a"] == pytest.approx(-4000.0)
    assert "b" not in growth["outperformance"]


def test_investment_growth_needs_a_period_and_an_amount() -> None:
    frame = normalize([("2020-01-01", 1000, 1000), ("2021-01-01", 1000, 1100)])

    assert investment_growth(frame, amount=0.0) is None
    assert investment_growth(frame, start_date="2021-01-01") is None
    assert investment_growth(frame)["fund"]["profit"] == pytest.approx(GROWTH_AMOUNT * 0.1)
