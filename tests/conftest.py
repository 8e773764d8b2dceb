import pathlib
import sys

import numpy as np
import pandas as pd
import pytest

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def make_events(market_values, principals=None, start: str = "2020-01-01") -> list[dict]:
    """Contribution events on consecutive business days."""
    dates = pd.bdate_range(start, periods=len(market_values))
    if principals is None:
        principals = [1000.0] * len(market_values)
    return [
        {"date": d.date(), "principal": float(p), "market_value": float(mv)}
        for d, p, mv in zip(dates, principals, market_values)
    ]


@pytest.fixture()
def rng() -> np.random.Generator:
    return np.random.default_rng(42)


@pytest.fixture()
def market_path(rng: np.random.Generator) -> pd.Series:
    """300 business days of a noisy, gently rising index."""
    dates = pd.bdate_range("2020-01-01", periods=300)
    rets = rng.normal(0.0004, 0.01, size=len(dates))
    rets[0] = 0.0
    return pd.Series(3000.0 * np.cumprod(1.0 + rets), index=dates, name="csi300")


@pytest.fixture()
def portfolio_events(market_path: pd.Series, rng: np.random.Generator) -> list[dict]:
    """A portfolio loosely tracking the index, topped up every 60 days."""
    fund_rets = market_path.pct_change().fillna(0.0).to_numpy() * 0.8 + rng.normal(0.0, 0.003, len(market_path))
    growth = np.cumprod(1.0 + fund_rets)

    principals = []
    values = []
    principal = 10000.0
    units = principal
    for i, g in enumerate(growth):
        if i > 0 and i % 60 == 0:
            principal += 1000.0
            units += 1000.0 / growth[i - 1]
        principals.append(principal)
        values.append(units * g)
    return make_events(values, principals)
