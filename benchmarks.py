"""
Benchmark index series: typing, forward-fill and alignment to portfolio dates.

A benchmark is identified by its key (``"sha"``, ``"csi300"``, ``"sp500"``...)
and carried as a ``pd.Series`` of index levels on a ``DatetimeIndex``. A
collection of benchmarks is a plain ``Mapping[str, pd.Series]``.
"""

import logging
from itertools import accumulate
from typing import Iterable, Mapping

import pandas as pd

logger = logging.getLogger(__name__)

BenchmarkLevels = Mapping[str, pd.Series]


def to_level_series(points, name: str | None = None) -> pd.Series:
    """
    Coerce benchmark input into a sorted float Series indexed by date.

    Accepts a Series already indexed by date, a mapping of date -> level, or an
    iterable of ``(date, level)`` pairs / ``{"date", "level"}`` records.
    Duplicate dates keep the last value.
    """
    if isinstance(points, pd.Series):
        series = points.astype(float)
    elif isinstance(points, Mapping):
        series = pd.Series(points, dtype=float)
    else:
        rows = []
        for p in points:
            if isinstance(p, Mapping):
                rows.append((p["date"], p["level"]))
            else:
                rows.append((p[0], p[1]))
        if rows:
            dates, levels = zip(*rows)
        else:
            dates, levels = (), ()
        series = pd.Series(list(levels), index=list(dates), dtype=float)

    series.index = pd.to_datetime(series.index)
    series = series.sort_index(kind="mergesort")
    series = series[~series.index.duplicated(keep="last")]
    if name is not None:
        series.name = name
    return series


def _carry_forward(last: float, value: float) -> float:
    if pd.notna(value) and value > 0:
        return float(value)
    return last


def forward_fill(levels: pd.Series) -> pd.Series:
    """
    Replace missing or non-positive levels with the last positive level seen.

    Implemented as a scan whose accumulator is the last known-good value;
    positions before the first positive level are 0.0. Returns a new Series,
    the input is left untouched.
    """
    filled = list(accumulate(levels.to_numpy(dtype=float), _carry_forward, initial=0.0))[1:]
    return pd.Series(filled, index=levels.index, name=levels.name, dtype=float)


def align_benchmarks(benchmarks: BenchmarkLevels, dates: Iterable) -> pd.DataFrame:
    """
    Forward-filled benchmark levels sampled on the portfolio's dates.

    Levels observed on dates the portfolio does not have (e.g. a weekend
    valuation) still feed the fill, so each portfolio date carries the last
    level known on or before it. One column per benchmark key; 0.0 where the
    benchmark has no valid level yet.
    """
    index = pd.DatetimeIndex(pd.to_datetime(list(dates)))
    frame = pd.DataFrame(index=index)

    for key, points in benchmarks.items():
        levels = to_level_series(points, name=key)
        if levels.empty or not (levels > 0).any():
            logger.warning("Benchmark '%s' has no valid levels; it will be excluded from ratios.", key)
        union = levels.index.union(index)
        filled = forward_fill(levels.reindex(union))
        frame[key] = filled.reindex(index).to_numpy()

    return frame


def valid_keys(aligned: pd.DataFrame) -> list[str]:
    """Benchmark keys with at least one positive level."""
    return [k for k in aligned.columns if bool((aligned[k] > 0).any())]
