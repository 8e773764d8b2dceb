from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from data_loader import load_benchmark_levels, load_contribution_events, load_portfolio_file, parse_date


@pytest.mark.parametrize("text", ["2020-03-05", "05/03/2020", "05-03-2020", " 2020-03-05 "])
def test_parse_date_formats(text: str) -> None:
    assert parse_date(text) == pd.Timestamp("2020-03-05")


def test_parse_date_rejects_other_formats() -> None:
    with pytest.raises(ValueError, match="Unrecognised date"):
        parse_date("March 5th 2020")


def test_load_contribution_events(tmp_path: Path) -> None:
    target = tmp_path / "contributions.csv"
    target.write_text(
        "Date,Principle,Market Value\n"
        '05/01/2020,1000,"1,050.50"\n'
        "2020-01-02,1000,1000\n",
        encoding="utf-8",
    )

    events = load_contribution_events(str(target))

    assert list(events.columns) == ["date", "principal", "market_value"]
    assert events["date"].tolist() == [pd.Timestamp("2020-01-02"), pd.Timestamp("2020-01-05")]
    assert events["market_value"].tolist() == [1000.0, 1050.5]


def test_load_contribution_events_requires_columns(tmp_path: Path) -> None:
    target = tmp_path / "contributions.csv"
    target.write_text("date,amount\n2020-01-02,1000\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must contain columns"):
        load_contribution_events(str(target))


def test_load_benchmark_levels_marks_gaps(tmp_path: Path) -> None:
    target = tmp_path / "benchmarks.csv"
    target.write_text(
        "date,CSI300,sp500\n"
        "2020-01-02,4000,3200\n"
        "2020-01-03,,0\n"
        "2020-01-06,4100,3250\n",
        encoding="utf-8",
    )

    levels = load_benchmark_levels(str(target))

    assert sorted(levels) == ["csi300", "sp500"]
    assert np.isnan(levels["csi300"].iloc[1])
    assert np.isnan(levels["sp500"].iloc[1])
    assert levels["sp500"].iloc[-1] == 3250.0
    assert levels["csi300"].index[0] == pd.Timestamp("2020-01-02")


def test_load_portfolio_file_splits_events_and_benchmarks(tmp_path: Path) -> None:
    target = tmp_path / "portfolio.csv"
    target.write_text(
        "Date,SHA,CSI300,Shares,Principle,MarketValue\n"
        "02/01/2020,3000,4000,1000,1000,1000\n"
        "03/01/2020,3030,4040,1000,1000,1010\n",
        encoding="utf-8",
    )

    events, benchmarks = load_portfolio_file(str(target))

    assert len(events) == 2
    assert events["market_value"].iloc[-1] == 1010.0
    assert sorted(benchmarks) == ["csi300", "sha"]
    assert benchmarks["sha"].tolist() == [3000.0, 3030.0]
