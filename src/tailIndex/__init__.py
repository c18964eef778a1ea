"""
Tail-index estimation and simulation.

Modules:
- hill: Hill's estimator
- data: loading return series and estimating one tail index per ticker
- simulate: moving-maximum processes and synthetic tail-index clusters
"""

from .hill import estimate_tail_index
from .data import load_returns, estimate_tail_indices
from .simulate import (
    frechet_sample,
    moving_maximum,
    simulate_hill_clusters,
    simulate_tail_index_sample,
)

__all__ = [
    "estimate_tail_index",
    "load_returns",
    "estimate_tail_indices",
    "frechet_sample",
    "moving_maximum",
    "simulate_hill_clusters",
    "simulate_tail_index_sample",
]
