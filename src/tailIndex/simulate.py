"""
Synthetic data for tail-index clustering experiments.

Functions:
- frechet_sample: i.i.d. Frechet(shape) draws
- moving_maximum: X_t = max_{0<=l<L} a_l Z_{t-l} with Frechet innovations Z
- simulate_tail_index_sample: groups of moving-maximum series -> Hill estimates with labels
- simulate_hill_clusters: direct Gaussian-cluster sample of Hill estimates with labels
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from mhd.errors import DomainError
from .hill import estimate_tail_index


def frechet_sample(n: int, shape: float, rng: np.random.Generator) -> np.ndarray:
    """Frechet draws by inversion: (-log U)^(-1/shape). Tail index is 1/shape."""
    if shape <= 0:
        raise DomainError(f"Frechet shape must be positive, got {shape}")
    u = rng.uniform(size=n)
    return (-np.log(u)) ** (-1.0 / shape)


def moving_maximum(
    n: int,
    shape: float,
    coefficients: Sequence[float] = (1.0, 0.5, 0.25),
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """
    Moving-maximum process of length n.

    Innovations are Frechet(shape), so the marginal tail index is 1/shape
    while consecutive values share extremes across len(coefficients) lags.
    """
    if rng is None:
        rng = np.random.default_rng()

    a = np.asarray(coefficients, dtype=np.float64)
    if a.size == 0 or np.any(a < 0) or not np.any(a > 0):
        raise DomainError(f"Moving-maximum coefficients must be non-negative and not all zero, got {a.tolist()}")

    lag = a.size
    z = frechet_sample(n + lag - 1, shape, rng)
    # window t holds Z_{t}, ..., Z_{t+L-1}; the newest innovation gets a_0
    windows = sliding_window_view(z, lag)
    return (windows * a[::-1]).max(axis=1)


def simulate_tail_index_sample(
    shapes: Sequence[float],
    n_series: Sequence[int],
    series_length: int = 2000,
    alphan: float = 0.05,
    coefficients: Sequence[float] = (1.0, 0.5, 0.25),
    seed: Optional[int] = None,
    logger: Optional[logging.Logger] = None,
) -> pd.DataFrame:
    """
    Simulate per-entity moving-maximum series and estimate each one's tail index.

    Args:
        shapes: Frechet shape per group (true tail index 1/shape)
        n_series: Number of series per group
        series_length: Observations per series
        alphan: Tail fraction for the Hill estimator
        coefficients: Moving-maximum weights
        seed: Random seed
        logger: Optional logger

    Returns:
        DataFrame with columns: series, group (1-based), true_tail_index, tail_index
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if len(shapes) != len(n_series):
        raise DomainError(f"shapes and n_series differ in length: {len(shapes)} vs {len(n_series)}")

    rng = np.random.default_rng(seed)
    rows = []
    for group, (shape, count) in enumerate(zip(shapes, n_series), start=1):
        for _ in range(int(count)):
            series = moving_maximum(series_length, shape, coefficients, rng)
            rows.append({
                "series": len(rows),
                "group": group,
                "true_tail_index": 1.0 / shape,
                "tail_index": estimate_tail_index(series, alphan),
            })

    df = pd.DataFrame(rows)
    logger.info(
        "Simulated %d moving-maximum series in %d groups (length=%d, alphan=%.3f)",
        len(df), len(shapes), series_length, alphan,
    )
    return df


def simulate_hill_clusters(
    means: Sequence[float],
    sd: float,
    weights: Sequence[float],
    n: int,
    seed: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Draw n Hill estimates from a Gaussian mixture with common spread.

    Returns:
        (values, labels) with labels 1..len(means)
    """
    w = np.asarray(weights, dtype=np.float64)
    mu = np.asarray(means, dtype=np.float64)
    if w.size != mu.size:
        raise DomainError(f"means and weights differ in length: {mu.size} vs {w.size}")
    if sd <= 0 or np.any(w < 0) or w.sum() <= 0:
        raise DomainError("Cluster spread must be positive and weights non-negative")

    rng = np.random.default_rng(seed)
    labels = rng.choice(np.arange(1, mu.size + 1), size=n, p=w / w.sum())
    values = rng.normal(mu[labels - 1], sd)
    return values, labels
