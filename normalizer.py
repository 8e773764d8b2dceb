"""
Time-series normalizer: raw (date, principal, market value) valuations into a
cash-flow-adjusted unit-value series.

Contributions and withdrawals are modelled as buying or selling notional units
at the previous unit value, so the unit value only moves with market
performance. This is the same idea as chaining daily TWR factors with flows
applied at the start of the day, expressed as a NAV-per-unit.
"""

import logging
from dataclasses import dataclass
from datetime import date as Date
from typing import Iterable, Mapping

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

DISPLAY_DECIMALS = 4


class ValidationError(ValueError):
    """An event sequence that cannot be normalized.

    ``date`` is the offending date (None when the problem is not tied to one)
    and ``value`` is the quantity that broke the invariant.
    """

    def __init__(self, message: str, date=None, value: float | None = None):
        super().__init__(message)
        self.date = date
        self.value = value


@dataclass(frozen=True)
class ContributionEvent:
    date: Date
    principal: float
    market_value: float


def _event_rows(events) -> pd.DataFrame:
    if isinstance(events, pd.DataFrame):
        df = events.copy()
        df.columns = [str(c).lower() for c in df.columns]
        if "date" not in df.columns:
            df = df.reset_index().rename(columns={"index": "date"})
        df = df.rename(columns={"marketvalue": "market_value", "principle": "principal"})
        return df[["date", "principal", "market_value"]]

    rows = []
    for e in events:
        if isinstance(e, ContributionEvent):
            rows.append((e.date, e.principal, e.market_value))
        elif isinstance(e, Mapping):
            mv = e["market_value"] if "market_value" in e else e["marketValue"]
            rows.append((e["date"], e["principal"], mv))
        else:
            rows.append(tuple(e))
    return pd.DataFrame(rows, columns=["date", "principal", "market_value"])


def normalize(events: Iterable) -> pd.DataFrame:
    """
    Build the unit-value series from contribution events.

    Input: ContributionEvent objects, dicts with ``date``/``principal``/
    ``market_value`` (``marketValue`` accepted), 3-tuples, or a DataFrame with
    those columns. Events are sorted by date before processing.

    Output: DataFrame indexed by date with columns
    ``units, unit_value, principal, market_value`` at full precision.

    Raises ValidationError when:
      - there are no events or two events share a date
      - the first principal or any market value is not positive
      - a later principal is not a finite number
      - a withdrawal drives the unit count to zero or below
    """
    df = _event_rows(events)
    if df.empty:
        raise ValidationError("At least one contribution event is required.")

    df["date"] = pd.to_datetime(df["date"])
    df["principal"] = df["principal"].astype(float)
    df["market_value"] = df["market_value"].astype(float)
    df = df.sort_values("date", kind="mergesort").reset_index(drop=True)

    dupes = df["date"][df["date"].duplicated()]
    if not dupes.empty:
        d = dupes.iloc[0]
        raise ValidationError(f"Duplicate event date {d.date()}.", date=d.date())

    first = df.iloc[0]
    if not np.isfinite(first["principal"]) or first["principal"] <= 0:
        raise ValidationError(
            f"First event principal must be positive on {first['date'].date()} "
            f"(got {first['principal']}).",
            date=first["date"].date(),
            value=float(first["principal"]),
        )

    units = float(first["principal"])
    prev_principal = units
    prev_unit_value = None

    out_units = []
    out_values = []

    for row in df.itertuples(index=False):
        mv = float(row.market_value)
        if not np.isfinite(mv) or mv <= 0:
            raise ValidationError(
                f"Market value must be positive on {row.date.date()} (got {mv}).",
                date=row.date.date(),
                value=mv,
            )

        principal = float(row.principal)
        if not np.isfinite(principal):
            raise ValidationError(
                f"Principal must be a finite number on {row.date.date()} (got {principal}).",
                date=row.date.date(),
                value=principal,
            )
        if prev_unit_value is not None and principal != prev_principal:
            # Cash flow: buy/sell units at yesterday's unit value
            units += (principal - prev_principal) / prev_unit_value
            if units <= 0:
                raise ValidationError(
                    f"Withdrawal on {row.date.date()} leaves {units:.6f} units; "
                    "units must stay positive.",
                    date=row.date.date(),
                    value=units,
                )

        unit_value = mv / units
        out_units.append(units)
        out_values.append(unit_value)

        prev_principal = principal
        prev_unit_value = unit_value

    result = pd.DataFrame(
        {
            "units": out_units,
            "unit_value": out_values,
            "principal": df["principal"].to_numpy(),
            "market_value": df["market_value"].to_numpy(),
        },
        index=pd.DatetimeIndex(df["date"], name="date"),
    )

    logger.info(
        "Normalized %d events (%s -> %s), final unit value %.4f",
        len(result),
        result.index[0].date(),
        result.index[-1].date(),
        result["unit_value"].iloc[-1],
    )
    return result


def round_for_display(frame: pd.DataFrame, decimals: int = DISPLAY_DECIMALS) -> pd.DataFrame:
    """Copy of a unit-value frame with units and unit value rounded for display."""
    shown = frame.copy()
    shown["units"] = shown["units"].round(decimals)
    shown["unit_value"] = shown["unit_value"].round(decimals)
    return shown


def to_records(frame: pd.DataFrame, decimals: int = DISPLAY_DECIMALS) -> list[dict]:
    """Plain ``{date, units, unit_value, principal, market_value}`` records."""
    shown = round_for_display(frame, decimals)
    return [
        {
            "date": idx.date().isoformat(),
            "units": row.units,
            "unit_value": row.unit_value,
            "principal": row.principal,
            "market_value": row.market_value,
        }
        for idx, row in zip(shown.index, shown.itertuples(index=False))
    ]
