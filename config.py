import logging
import os
import sys

from dotenv import load_dotenv

# ============================================================
# ENVIRONMENT (SECURE LOAD)
# ============================================================

# Load the .env file immediately so overrides below see it
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


# ============================================================
# RISK PARAMETERS
# ============================================================
RISK_FREE_RATE = _env_float("RISK_FREE_RATE", 0.03)  # 3% annual, used by Sharpe/Sortino/alpha

TRADING_DAYS_PER_YEAR = 252
DAYS_PER_YEAR = 365.25

# Ratios computed on fewer daily returns than this come back as NaN
MIN_OBSERVATIONS = _env_int("MIN_OBSERVATIONS", 30)

# Drawdown episodes shallower than this (in %) are not reported as periods
DRAWDOWN_PERIOD_THRESHOLD = 5.0

# ============================================================
# WINDOWS / HORIZONS
# ============================================================
ROLLING_WINDOWS = (30, 60, 90)

DISTRIBUTION_HORIZONS_YEARS = (1, 3, 5, 8)
DISTRIBUTION_STRIDE = _env_int("DISTRIBUTION_STRIDE", 20)
ROLLING_RETURN_STRIDE = _env_int("ROLLING_RETURN_STRIDE", 30)

# ============================================================
# BEHAVIOUR ANALYSIS
# ============================================================
TREND_LOOKBACK_DAYS = 30
CONTRARIAN_THRESHOLD = _env_float("CONTRARIAN_THRESHOLD", 50.0)
DOWNTURN_THRESHOLD = -10.0  # % benchmark move over the lookback window
MISSING_DAYS_SCENARIOS = (5, 10, 20, 30, 40)
MISSING_DAYS_CAPITAL = 10000.0
MARKET_CYCLE_THRESHOLD = 20.0

DEFAULT_BENCHMARK = os.environ.get("DEFAULT_BENCHMARK", "csi300")

# ============================================================
# ATTRIBUTION / WHAT-IF
# ============================================================
EXCESS_RETURN_WINDOW = 90
GROWTH_AMOUNT = _env_float("GROWTH_AMOUNT", 10000.0)
DEPOSIT_RATE = _env_float("DEPOSIT_RATE", 0.03)  # bank deposit alternative, annual

# ============================================================
# BENCHMARK LABELS
# ============================================================
BENCHMARK_LABELS = {
    "sha": "Shanghai Composite (SHA)",
    "she": "Shenzhen Composite (SHE)",
    "csi300": "CSI 300",
    "sp500": "S&P 500",
    "nasdaq": "NASDAQ",
    "ftse100": "FTSE 100",
    "hangseng": "Hang Seng",
    "nikkei225": "Nikkei 225",
    "tsx": "S&P/TSX",
    "klse": "FTSE Bursa Malaysia KLCI",
    "cac40": "CAC 40",
    "dax": "DAX",
    "sti": "Straits Times Index",
    "asx200": "S&P/ASX 200",
}

# ============================================================
# LOGGING
# ============================================================
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Configure logging to output to stdout with proper formatting."""
    root_logger = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
