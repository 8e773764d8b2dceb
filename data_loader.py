import logging
from datetime import date, datetime

import numpy as np
import pandas as pd

from config import BENCHMARK_LABELS

logger = logging.getLogger(__name__)

# ============================================================
# CONFIG
# ============================================================
CONTRIBUTIONS_FILE = "contributions.csv"
BENCHMARKS_FILE = "benchmarks.csv"

DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y")

# Spreadsheet exports spell it both ways
COLUMN_ALIASES = {
    "principle": "principal",
    "marketvalue": "market_value",
    "market value": "market_value",
}

# ------------------------------------------------------------
# Dates
# ------------------------------------------------------------

def parse_date(value) -> pd.Timestamp:
    """
    Parse YYYY-MM-DD, DD/MM/YYYY or DD-MM-YYYY into a Timestamp.
    Date/datetime objects pass through unchanged.
    """
    if isinstance(value, (pd.Timestamp, datetime, date)):
        return pd.Timestamp(value)

    text = str(value).strip()
    for fmt in DATE_FORMATS:
        try:
            return pd.Timestamp(datetime.strptime(text, fmt))
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date '{value}'. Expected one of: YYYY-MM-DD, DD/MM/YYYY, DD-MM-YYYY")


def _read(path: str) -> pd.DataFrame:
    df = pd.read_csv(path)
    df.columns = [str(c).strip().lower() for c in df.columns]
    df = df.rename(columns=COLUMN_ALIASES)
    df = df.dropna(how="all")

    if "date" not in df.columns:
        raise ValueError(f"{path} must have a 'date' column")

    df["date"] = pd.to_datetime(df["date"].map(parse_date))
    return df


def _numeric(col: pd.Series) -> pd.Series:
    """Numbers may carry thousands separators or accounting-style (negatives)."""
    if pd.api.types.is_numeric_dtype(col):
        return col.astype(float)
    text = col.astype(str).str.strip().str.replace(",", "", regex=False)
    negative = text.str.startswith("(") & text.str.endswith(")")
    text = text.str.strip("()")
    values = pd.to_numeric(text, errors="coerce")
    return values.where(~negative, -values)


# ------------------------------------------------------------
# Contribution events
# ------------------------------------------------------------

def load_contribution_events(path: str = CONTRIBUTIONS_FILE) -> pd.DataFrame:
    """
    Read dated valuations: columns date, principal, market_value
    (case-insensitive; ``principle`` is accepted for principal).

    Returns a frame sorted by date, ready for ``normalizer.normalize``.
    Values are not validated here.
    """
    df = _read(path)

    required = {"date", "principal", "market_value"}
    if not required.issubset(df.columns):
        raise ValueError(f"Contribution file must contain columns: {sorted(required)}")

    df["principal"] = _numeric(df["principal"])
    df["market_value"] = _numeric(df["market_value"])

    df = df[["date", "principal", "market_value"]].sort_values("date").reset_index(drop=True)
    logger.info("Loaded %d contribution events from %s", len(df), path)
    return df


# ------------------------------------------------------------
# Benchmark levels
# ------------------------------------------------------------

def _level_columns(df: pd.DataFrame, keys) -> dict[str, pd.Series]:
    indexed = df.set_index("date").sort_index()
    out = {}
    for key in keys:
        levels = _numeric(indexed[key])
        # Blank cells and zeros are gaps, filled later
        out[key] = levels.where(levels > 0, np.nan).rename(key)
    return out


def load_benchmark_levels(path: str = BENCHMARKS_FILE) -> dict[str, pd.Series]:
    """
    Read benchmark index levels: a date column plus one column per index
    key (``sha``, ``csi300``, ``sp500``...). Returns ``{key: Series}``
    indexed by date, with gaps as NaN.
    """
    df = _read(path)

    keys = [c for c in df.columns if c != "date"]
    if not keys:
        raise ValueError("Benchmark file must contain at least one index column besides 'date'")

    unknown = [k for k in keys if k not in BENCHMARK_LABELS]
    if unknown:
        logger.debug("Benchmark columns without a label: %s", unknown)

    levels = _level_columns(df, keys)
    logger.info("Loaded %d benchmarks (%s) from %s", len(levels), ", ".join(keys), path)
    return levels


def load_portfolio_file(path: str):
    """
    Read the single-sheet export that carries valuations and benchmark levels
    side by side. Columns named after a known index key are treated as
    benchmarks; everything else besides date/principal/market_value is ignored.

    Returns (events, benchmarks).
    """
    df = _read(path)

    required = {"principal", "market_value"}
    if not required.issubset(df.columns):
        raise ValueError(f"Portfolio file must contain columns: {sorted(required | {'date'})}")

    events = df[["date", "principal", "market_value"]].copy()
    events["principal"] = _numeric(events["principal"])
    events["market_value"] = _numeric(events["market_value"])
    events = events.sort_values("date").reset_index(drop=True)

    keys = [c for c in df.columns if c in BENCHMARK_LABELS]
    benchmarks = _level_columns(df, keys)

    logger.info("Loaded %d rows and %d benchmarks from %s", len(events), len(benchmarks), path)
    return events, benchmarks
