"""
Kernel density helpers for the MHD fitter.

Functions:
- epanechnikov: the kernel K(u) = 0.75 (1 - u^2) on [-1, 1]
- make_grid: fixed-step quadrature grid spanning the sample
- standard_density: KDE with the 2.283 n^-0.287 sd bandwidth rule
- adaptive_density: KDE whose bumps are split across mixture components
- find_local_maxima: strict windowed maxima used to seed component means
"""

import logging
from typing import Optional, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .errors import DomainError
from .mixture import Mixture, adaptive_weights

GRID_STEP = 0.01
GRID_PAD = 0.5
BANDWIDTH_SCALE = 2.283
BANDWIDTH_EXPONENT = -0.287


def epanechnikov(u: np.ndarray) -> np.ndarray:
    u = np.asarray(u, dtype=np.float64)
    return np.where(np.abs(u) <= 1.0, 0.75 * (1.0 - u * u), 0.0)


def validate_sample(data, min_size: int = 2) -> np.ndarray:
    """Return data as a 1-D float array, raising DomainError if it cannot be fitted."""
    x = np.asarray(data, dtype=np.float64).ravel()
    if x.size < min_size:
        raise DomainError(f"Sample needs at least {min_size} observations, got {x.size}")
    if not np.all(np.isfinite(x)):
        raise DomainError("Sample contains NaN or infinite values")
    if np.ptp(x) == 0:
        raise DomainError("Sample has zero variance")
    return x


def make_grid(data: np.ndarray, step: float = GRID_STEP, pad: float = GRID_PAD) -> np.ndarray:
    lo = float(np.min(data)) - pad
    hi = float(np.max(data)) + pad
    n_points = int(np.floor((hi - lo) / step + 1e-9)) + 1
    return lo + step * np.arange(n_points)


def bandwidth(n: int, scale: float) -> float:
    return BANDWIDTH_SCALE * n ** BANDWIDTH_EXPONENT * scale


def _kernel_sum(grid: np.ndarray, data: np.ndarray, cn: float, weights: np.ndarray) -> np.ndarray:
    # sum_j w_j K((x - X_j) / cn) / cn for every grid point x
    u = (grid[:, None] - data[None, :]) / cn
    return epanechnikov(u) @ weights / cn


def standard_density(grid: np.ndarray, data: np.ndarray) -> np.ndarray:
    """Plain KDE of data on grid."""
    data = np.asarray(data, dtype=np.float64)
    grid = np.asarray(grid, dtype=np.float64)
    n = data.size
    cn = bandwidth(n, float(np.std(data, ddof=1)))
    return _kernel_sum(grid, data, cn, np.full(n, 1.0 / n))


def adaptive_density(
    grid: np.ndarray,
    data: np.ndarray,
    mixture: Mixture,
) -> np.ndarray:
    """
    Responsibility-weighted KDE keyed on a mixture.

    Each observation X_j contributes one kernel bump per component i, scaled
    by a_i(X_j) and with bandwidth 2.283 n^-0.287 sigma_i. The weights are
    evaluated at the data points, not at the query points.
    """
    data = np.asarray(data, dtype=np.float64)
    grid = np.asarray(grid, dtype=np.float64)
    n = data.size
    resp = adaptive_weights(data, mixture)

    density = np.zeros_like(grid)
    for comp, a_i in zip(mixture.components, resp):
        density = density + _kernel_sum(grid, data, bandwidth(n, comp.sd), a_i / n)
    return density


def find_local_maxima(
    x: np.ndarray,
    y: np.ndarray,
    delta: float = 0.2,
    logger: Optional[logging.Logger] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Locate strict local maxima of y over a sliding window of width delta.

    A point qualifies when it is the maximum of y[i-w .. i+w] and every other
    point of that window is strictly lower. The first and last w points are
    never considered.

    Args:
        x: Evenly spaced grid
        y: Values on the grid (same length as x)
        delta: Window width in x units
        logger: Optional logger

    Returns:
        (x_max, y_max) sorted by y descending
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    x = np.asarray(x, dtype=np.float64)
    y = np.asarray(y, dtype=np.float64)
    if x.shape != y.shape:
        raise DomainError(f"x and y must have the same length, got {x.size} and {y.size}")
    if x.size < 3:
        return np.empty(0), np.empty(0)

    step = x[1] - x[0]
    w = max(1, int(np.floor(round(delta / step, 8) / 2)))
    if x.size < 2 * w + 1:
        return np.empty(0), np.empty(0)

    windows = sliding_window_view(y, 2 * w + 1)
    centre = y[w:-w]
    is_max = (centre >= windows.max(axis=1)) & ((windows == centre[:, None]).sum(axis=1) == 1)

    idx = np.flatnonzero(is_max) + w
    order = np.argsort(-y[idx], kind="stable")
    idx = idx[order]

    logger.debug("Found %d local maxima (half-window=%d)", idx.size, w)
    return x[idx], y[idx]
