"""
Hill's estimator of the tail index.

H = (1/k) * sum_{j=1..k} [log X_(j) - log X_(k+1)], with X sorted descending
and k = floor(n * alphan).
"""

import math
from typing import Sequence

import numpy as np

from mhd.errors import DomainError


def estimate_tail_index(sample: Sequence[float], alphan: float = 0.05) -> float:
    """
    Estimate the tail index of a positive sample.

    Args:
        sample: Observations (callers pass magnitudes, e.g. absolute returns)
        alphan: Fraction of the sample treated as the tail, in (0, 1)

    Returns:
        Hill estimate (larger means heavier tail)

    Examples:
        >>> round(estimate_tail_index([1.0, 2.0, 4.0, 8.0], alphan=0.5), 4)
        1.0397
    """
    if not (0 < alphan < 1):
        raise DomainError(f"alphan must be in (0, 1), got {alphan}")

    x = np.asarray(sample, dtype=np.float64).ravel()
    n = x.size
    k = int(math.floor(n * alphan))
    if k < 1:
        raise DomainError(f"Tail size floor(n * alphan) = floor({n} * {alphan}) is below 1")
    if k + 1 > n:
        raise DomainError(f"Tail size k={k} leaves no threshold order statistic (n={n})")

    top = np.sort(x)[::-1][: k + 1]
    if not np.all(np.isfinite(top)) or np.any(top <= 0):
        raise DomainError("Hill estimator needs the k+1 largest observations to be finite and positive")

    logs = np.log(top)
    return float(np.mean(logs[:k] - logs[k]))
