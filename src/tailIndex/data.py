"""
Data helpers for building a tail-index sample from return series.

Responsibilities:
- Load a wide CSV of daily log returns (one column per ticker)
- Estimate a Hill tail index per column from absolute returns
"""

import logging
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from mhd.errors import DomainError
from .hill import estimate_tail_index


def load_returns(
    csv_path: str = "data/Russell_3000_log_adj_return_040101_231231.csv",
    tickers: Optional[Iterable[str]] = None,
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """
    Load per-ticker log returns.

    Args:
        csv_path: CSV with one numeric column per ticker
        tickers: Optional subset of tickers to keep
        logger: Optional logger

    Returns:
        DataFrame of returns (rows: days, columns: tickers)
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"Returns file not found: {csv_path}")

    df = pd.read_csv(path)
    if tickers is not None:
        wanted = [t for t in tickers if t in df.columns]
        missing = sorted(set(tickers) - set(wanted))
        if missing:
            logger.warning("Tickers not found in %s: %s", csv_path, missing)
        df = df[wanted]

    df = df.apply(pd.to_numeric, errors="coerce")
    logger.info("Loaded returns for %d tickers x %d days from %s", df.shape[1], df.shape[0], csv_path)
    return df


def estimate_tail_indices(
    returns: pd.DataFrame,
    alphan: float = 0.05,
    logger: Optional[logging.Logger] = None,
) -> pd.Series:
    """
    Hill tail index per ticker, computed on absolute returns.

    Columns whose estimate fails (too short, too many zero returns in the
    tail) are skipped with a warning.

    Returns:
        Series indexed by ticker, named 'tail_index'
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    estimates = {}
    for ticker in returns.columns:
        values = returns[ticker].to_numpy(dtype=np.float64)
        values = np.abs(values[np.isfinite(values)])
        try:
            estimates[ticker] = estimate_tail_index(values, alphan)
        except DomainError as exc:
            logger.warning("Skipping %s: %s", ticker, exc)

    result = pd.Series(estimates, name="tail_index", dtype=np.float64)
    result.index.name = "ticker"

    dropped = returns.shape[1] - len(result)
    logger.info(
        "Estimated tail indices for %d tickers (%d skipped), alphan=%.3f",
        len(result), dropped, alphan,
    )
    return result
