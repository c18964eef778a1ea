"""
Evaluation and visualization utilities for MHD cluster assignments.

Key functions:
- get_table: square contingency table over the union of label categories
- match_labels: best one-to-one relabeling of the truth partition
- rand_index: pairwise-agreement (Rand-type) index between two partitions
- evaluate_clustering: index and misclassification loss after relabeling
- make_plots: fitted density and order-search diagnostics
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib import pyplot as plt
from scipy.optimize import linear_sum_assignment

from .density import make_grid
from .errors import DomainError
from .mixture import Mixture


def _ensure_dir(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def _as_labels(a: Sequence, b: Sequence) -> Tuple[np.ndarray, np.ndarray]:
    a = np.asarray(a).ravel()
    b = np.asarray(b).ravel()
    if a.size != b.size:
        raise DomainError(f"Label sequences differ in length: {a.size} vs {b.size}")
    return a, b


def get_table(a: Sequence, b: Sequence) -> pd.DataFrame:
    """
    Contingency table of two partitions.

    Rows are categories of a, columns categories of b; both axes run over the
    sorted union of categories so the table is square, with zero rows or
    columns for categories that only one partition uses.
    """
    a, b = _as_labels(a, b)
    categories = np.union1d(a, b)
    table = pd.crosstab(pd.Series(a, name="truth"), pd.Series(b, name="predicted"))
    return table.reindex(index=categories, columns=categories, fill_value=0).astype(np.int64)


def match_labels(a: Sequence, b: Sequence) -> Tuple[Dict, np.ndarray]:
    """
    Relabel a so that its categories line up with those of b.

    Solves the linear assignment problem on cost = (max(table) + 1) - table,
    which maximizes the total count on the matched diagonal.

    Returns:
        (mapping from a-category to b-category, relabeled a)
    """
    a, b = _as_labels(a, b)
    table = get_table(a, b)
    counts = table.to_numpy()
    cost = (counts.max() + 1) - counts
    rows, cols = linear_sum_assignment(cost)

    mapping = {table.index[r]: table.columns[c] for r, c in zip(rows, cols)}
    relabeled = np.array([mapping[v] for v in a])
    return mapping, relabeled


def rand_index(a: Sequence, b: Sequence) -> float:
    """
    1 + (sum n_ij^2 - (sum n_i.^2 + sum n_.j^2) / 2) / C(n, 2)
    """
    a, b = _as_labels(a, b)
    n = a.size
    if n < 2:
        raise DomainError(f"Rand-type index needs at least 2 observations, got {n}")

    counts = get_table(a, b).to_numpy().astype(np.float64)
    sum_cells = float((counts ** 2).sum())
    sum_rows = float((counts.sum(axis=1) ** 2).sum())
    sum_cols = float((counts.sum(axis=0) ** 2).sum())
    pairs = n * (n - 1) / 2.0
    return 1.0 + (sum_cells - 0.5 * (sum_rows + sum_cols)) / pairs


def evaluate_clustering(
    truth: Sequence,
    predicted: Sequence,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, float]:
    """
    Compare predicted cluster labels to ground truth.

    Args:
        truth: True labels (any hashable, sortable categories)
        predicted: Predicted labels, same length
        logger: Optional logger

    Returns:
        {"index": Rand-type index, "loss": misclassification rate after relabeling}
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    truth, predicted = _as_labels(truth, predicted)
    if truth.size < 2:
        raise DomainError(f"Clustering evaluation needs at least 2 observations, got {truth.size}")

    mapping, relabeled = match_labels(truth, predicted)
    index = rand_index(relabeled, predicted)
    loss = float(np.mean(relabeled != predicted))

    logger.info("Cluster evaluation: index=%.4f loss=%.4f mapping=%s", index, loss, mapping)
    return {"index": float(index), "loss": loss}


def make_plots(
    data: Sequence[float],
    mixture: Mixture,
    history: Optional[List[Dict]] = None,
    reports_dir: str = "reports/mhd",
    logger: Optional[logging.Logger] = None,
) -> Dict[str, str]:
    """
    Generate report figures.

    Args:
        data: Fitted sample
        mixture: Selected mixture
        history: Order-search history from select_mixture_order
        reports_dir: Where to write images
        logger: Optional logger

    Returns:
        dict of written figure paths
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    out = Path(reports_dir)
    _ensure_dir(out)
    written = {}
    x = np.asarray(data, dtype=np.float64).ravel()

    # 1) Sample histogram with fitted mixture and its components
    try:
        grid = make_grid(x)
        plt.figure(figsize=(10, 6))
        sns.histplot(x, stat="density", bins=50, color="#bbbbbb", alpha=0.6, label="sample")
        for i, dens in enumerate(mixture.component_densities(grid), start=1):
            plt.plot(grid, dens, linestyle="--", linewidth=1, label=f"component {i}")
        plt.plot(grid, mixture.pdf(grid), color="#f58518", linewidth=2, label="mixture")
        plt.xlabel("tail index")
        plt.ylabel("density")
        plt.title(f"MHD mixture fit (m={mixture.order})")
        plt.legend()
        path = out / "mixture_fit.png"
        plt.tight_layout(); plt.savefig(path, dpi=150); plt.close()
        written["mixture_fit"] = str(path)
    except Exception as exc:
        logger.warning("Failed to plot mixture fit: %s", exc)

    # 2) Hellinger deviations across the order search
    try:
        steps = pd.DataFrame([h for h in (history or []) if "d_m0" in h])
        if not steps.empty:
            plt.figure(figsize=(10, 6))
            plt.plot(steps["m"], steps["d_m0"], marker="o", label="D(m)")
            plt.plot(steps["m"] + 1, steps["d_m1"], marker="s", label="D(m+1)")
            plt.axhline(steps["alpha_n"].iloc[0], color="grey", linestyle=":", label="alpha_n")
            plt.xlabel("order")
            plt.ylabel("squared Hellinger deviation")
            plt.title("MHD order search")
            plt.legend()
            path = out / "order_search.png"
            plt.tight_layout(); plt.savefig(path, dpi=150); plt.close()
            written["order_search"] = str(path)
    except Exception as exc:
        logger.warning("Failed to plot order search: %s", exc)

    return written
