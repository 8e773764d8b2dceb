import numpy as np
import pandas as pd
import pytest

from behavior import (
    classify_cash_flows,
    investor_type,
    market_cycles,
    market_downturns,
    market_summary,
    missing_best_days,
    rolling_return_distribution,
    simulate_dca,
    worst_entry_points,
)
from normalizer import normalize
from tests.conftest import make_events


@pytest.fixture()
def falling_market_frame():
    """40 days of a steadily falling index; +10 on day 20, +500 on day 35, -200 on day 38."""
    principals = []
    principal = 1000.0
    for i in range(40):
        if i == 20:
            principal += 10.0
        elif i == 35:
            principal += 500.0
        elif i == 38:
            principal -= 200.0
        principals.append(principal)

    frame = normalize(make_events(principals, principals))
    benchmark = pd.Series([100.0 - i for i in range(40)], index=frame.index)
    return frame, benchmark


def test_classify_cash_flows(falling_market_frame) -> None:
    frame, benchmark = falling_market_frame
    result = classify_cash_flows(frame, benchmark)

    assert result["total_actions"] == 2
    assert result["contrarian_actions"] == 1

    bought, sold = result["actions"]
    assert bought["principal_change"] == pytest.approx(500.0)
    assert bought["market_trend"] == pytest.approx((65.0 - 95.0) / 95.0 * 100.0)
    assert bought["classification"] == "contrarian"
    assert sold["classification"] == "trend-following"

    assert result["contrarian_ratio"] == pytest.approx(50.0)
    assert result["investor_type"] == "Moderate Contrarian"


def test_classify_with_no_material_flows(falling_market_frame) -> None:
    frame, benchmark = falling_market_frame
    result = classify_cash_flows(frame, benchmark, threshold=1000.0)

    assert result["actions"] == []
    assert np.isnan(result["contrarian_ratio"])
    assert result["investor_type"] is None


def test_classify_skips_dates_without_benchmark(falling_market_frame) -> None:
    frame, benchmark = falling_market_frame
    empty = pd.Series(0.0, index=frame.index)
    assert classify_cash_flows(frame, empty)["total_actions"] == 0


@pytest.mark.parametrize("ratio, label", [(75.0, "Strong Contrarian"), (60.0, "Strong Contrarian"), (40.0, "Moderate Contrarian"), (10.0, "Trend Follower")])
def test_investor_type(ratio: float, label: str) -> None:
    assert investor_type(ratio) == label


def test_market_downturns(falling_market_frame) -> None:
    frame, benchmark = falling_market_frame
    downturns = market_downturns(frame, benchmark)

    assert len(downturns) == 5
    assert all(d["investor_action"] == "Invested" for d in downturns)
    assert all(d["was_contrarian"] for d in downturns)
    assert downturns[0]["end_date"] == frame.index[35].date().isoformat()
    # the +10 on day 20 is inside every window
    assert downturns[0]["action_amount"] == pytest.approx(510.0)
    assert downturns[-1]["action_amount"] == pytest.approx(310.0)


def test_rolling_return_distribution() -> None:
    values = pd.Series(100.0 * 1.0004 ** np.arange(600), index=pd.bdate_range("2015-01-01", periods=600))
    one, three = rolling_return_distribution(values, horizons=(1, 3), stride=20)

    assert one["stats"]["count"] == len(range(252, 600, 20))
    assert one["stats"]["median"] == pytest.approx((1.0004 ** 252 - 1) * 100)
    assert one["positive_pct"] == 100.0

    assert three["stats"] is None
    assert np.isnan(three["positive_pct"])


def test_missing_best_days() -> None:
    rets = [0.10, -0.10, 0.05, 0.02, -0.01, 0.03, 0.04]
    levels = pd.Series(100.0 * np.cumprod([1.0] + [1.0 + r for r in rets]), index=pd.bdate_range("2020-01-01", periods=8))

    scenarios = missing_best_days(levels, capital=10000.0, scenarios=(1, 2, 10))

    assert [s["missed_days"] for s in scenarios] == [0, 1, 2]
    assert scenarios[0]["final_value"] == pytest.approx(10000.0 * np.prod([1.0 + r for r in rets]))
    without_best = [r for r in rets if r != 0.10]
    assert scenarios[1]["final_value"] == pytest.approx(10000.0 * np.prod([1.0 + r for r in without_best]))
    assert scenarios[2]["final_value"] < scenarios[1]["final_value"] < scenarios[0]["final_value"]


def test_worst_entry_points() -> None:
    levels = pd.Series(
        [100.0, 120.0, 90.0, 125.0, 115.0, 110.0],
        index=pd.to_datetime(["2020-01-02", "2020-06-01", "2020-12-31", "2021-03-01", "2021-12-31", "2022-01-03"]),
    )

    entries = worst_entry_points(levels)

    assert [e["year"] for e in entries] == [2020, 2021]
    assert entries[0]["peak_date"] == "2020-06-01"
    assert entries[0]["recovery_date"] == "2021-03-01"
    assert entries[0]["recovery_days"] == (pd.Timestamp("2021-03-01") - pd.Timestamp("2020-06-01")).days
    assert entries[0]["current_return"] == pytest.approx((110.0 - 120.0) / 120.0 * 100.0)
    assert entries[1]["recovery_date"] is None

    assert [e["year"] for e in worst_entry_points(levels, include_current_year=True)] == [2020, 2021, 2022]


def test_market_cycles() -> None:
    levels = pd.Series([100.0, 130.0, 100.0, 80.0, 110.0, 60.0], index=pd.bdate_range("2020-01-01", periods=6))

    cycles = market_cycles(levels)

    assert [c["type"] for c in cycles] == ["bull", "bear", "bull"]
    assert cycles[0]["change"] == pytest.approx(30.0)
    assert cycles[1]["start_value"] == 130.0
    assert cycles[1]["end_value"] == 80.0
    assert cycles[2]["end_value"] == 110.0


def test_simulate_dca_buys_first_day_of_month() -> None:
    levels = pd.Series(
        [100.0, 200.0, 50.0, 100.0],
        index=pd.to_datetime(["2020-01-02", "2020-01-15", "2020-02-03", "2020-02-20"]),
    )

    result = simulate_dca(levels, monthly_amount=1000.0)

    assert result["total_invested"] == 2000.0
    assert result["final_value"] == pytest.approx(3000.0)
    assert result["total_return"] == pytest.approx(50.0)
    assert result["history"]["value"].tolist() == pytest.approx([1000.0, 2000.0, 1500.0, 3000.0])


def test_simulate_dca_without_data() -> None:
    result = simulate_dca(pd.Series(dtype=float))
    assert result["total_invested"] == 0.0
    assert result["history"].empty


def test_market_summary() -> None:
    dates = pd.bdate_range("2020-01-01", periods=4)
    summary = market_summary({
        "csi300": pd.Series([100.0, 80.0, 90.0, 120.0], index=dates),
        "sha": pd.Series([np.nan] * 4, index=dates),
    })

    assert summary["start_date"] == "2020-01-01"
    assert [i["key"] for i in summary["indices"]] == ["csi300"]

    csi = summary["indices"][0]
    assert csi["name"] == "CSI 300"
    assert csi["total_return"] == pytest.approx(20.0)
    assert csi["max_drawdown"] == pytest.approx(20.0)
