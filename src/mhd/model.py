"""
Model utilities for minimum-Hellinger-distance (MHD) mixture fitting.

Functions:
- hellinger_affinity: discretized affinity between one component and a reference density
- initialize_mixture: KDE-mode heuristic for starting weights/means/sds
- fit_mixture: self-consistent fit (reference recomputed from the evolving mixture)
- fit_mixture_fixed: fit against a frozen reference density
- select_mixture_order / fit_mixture_order: sequential m vs m+1 order test
- assign_clusters: arg-max component label per observation
- save_artifacts: persist mixture, summary and assignments for reuse
"""

import json
import logging
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import dump
from scipy.optimize import minimize

from .density import (
    GRID_STEP,
    adaptive_density,
    find_local_maxima,
    make_grid,
    standard_density,
    validate_sample,
)
from .errors import ConfigurationError, DomainError, NumericalWarning
from .mixture import Mixture, adaptive_weights, normal_pdf

DEFAULT_TOL = 1e-5
DEFAULT_MAX_ITER = 50
DEFAULT_MAX_ORDER = 20
DEFAULT_OPTIMIZER_OPTIONS = {"maxiter": 100}
SD_LOWER_FACTOR = 1e-3


@dataclass
class FitResult:
    mixture: Mixture
    hdis: float
    n_iter: int
    converged: bool


@dataclass
class OrderSelection:
    mixture: Mixture
    history: List[Dict] = field(default_factory=list)

    @property
    def order(self) -> int:
        return self.mixture.order


def hellinger_affinity(
    mean: float,
    sd: float,
    resp: np.ndarray,
    reference: np.ndarray,
    grid: np.ndarray,
    dx: float = GRID_STEP,
) -> float:
    """
    H_i(theta, sigma) = sum_x sqrt(a_i(x) N(x; theta, sigma) g(x)) dx

    Args:
        mean, sd: Candidate component parameters
        resp: Responsibility a_i of the component on the grid
        reference: Reference density g on the grid
        grid: Quadrature grid
        dx: Grid step

    Returns:
        Affinity value (larger means closer)
    """
    product = resp * normal_pdf(grid, mean, sd) * reference
    return float(np.sqrt(np.clip(product, 0.0, None)).sum() * dx)


def hellinger_deviation(reference: np.ndarray, density: np.ndarray, dx: float = GRID_STEP) -> float:
    """Squared Hellinger deviation sum (sqrt(g) - sqrt(f))^2 dx on a shared grid."""
    root_g = np.sqrt(np.clip(reference, 0.0, None))
    root_f = np.sqrt(np.clip(density, 0.0, None))
    return float(((root_g - root_f) ** 2).sum() * dx)


def _check_fit_args(n_components: int, tol: float, max_iter: int) -> None:
    if int(n_components) < 1:
        raise ConfigurationError(f"Number of components must be >= 1, got {n_components}")
    if not tol > 0:
        raise ConfigurationError(f"tol must be positive, got {tol}")
    if int(max_iter) < 1:
        raise ConfigurationError(f"max_iter must be >= 1, got {max_iter}")


def _parameter_bounds(data: np.ndarray, mean_pad: float) -> List[Tuple[float, float]]:
    lo = float(np.min(data))
    hi = float(np.max(data))
    var = float(np.var(data, ddof=1))
    # variance scale: sd^2 in [1e-3 var(data), range^2]
    return [(lo - mean_pad, hi + mean_pad), (float(np.sqrt(SD_LOWER_FACTOR * var)), hi - lo)]


def initialize_mixture(
    data: np.ndarray,
    n_components: int,
    grid: Optional[np.ndarray] = None,
    warm_start: Optional[Mixture] = None,
    delta: float = 0.2,
    logger: Optional[logging.Logger] = None,
) -> Mixture:
    """
    Starting mixture for the fitters.

    Means and weights come from the tallest local maxima of the standard KDE.
    When there are fewer maxima than components, the rest are placed at the
    j/(k+1) sample quantiles and weighted by the KDE height there. Every
    component starts with sd(data) / n_components. A warm-start mixture of
    the requested order is returned unchanged.
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if warm_start is not None and warm_start.order == n_components:
        return warm_start

    x = np.asarray(data, dtype=np.float64)
    if grid is None:
        grid = make_grid(x)

    kde = standard_density(grid, x)
    peak_x, peak_y = find_local_maxima(grid, kde, delta=delta, logger=logger)
    peak_x = peak_x[:n_components]
    peak_y = peak_y[:n_components]

    n_fill = n_components - peak_x.size
    if n_fill > 0:
        probs = np.arange(1, n_fill + 1) / (n_fill + 1)
        fill_x = np.quantile(x, probs)
        fill_y = standard_density(fill_x, x)
        peak_x = np.concatenate([peak_x, fill_x])
        peak_y = np.concatenate([peak_y, fill_y])

    logger.debug(
        "Initial mixture (m=%d): %d modes, %d quantile fills, means=%s",
        n_components, n_components - n_fill, max(n_fill, 0), np.round(peak_x, 4).tolist(),
    )

    sd0 = float(np.std(x, ddof=1)) / n_components
    return Mixture.from_arrays(peak_y, peak_x, np.full(n_components, sd0), normalize=True)


def _optimize_component(
    index: int,
    mean: float,
    sd: float,
    resp: np.ndarray,
    reference: np.ndarray,
    grid: np.ndarray,
    bounds: Sequence[Tuple[float, float]],
    options: Dict,
    logger: logging.Logger,
) -> Tuple[float, float, float]:
    lower = np.array([b[0] for b in bounds])
    upper = np.array([b[1] for b in bounds])
    x0 = np.clip(np.array([mean, sd]), lower, upper)

    def objective(params: np.ndarray) -> float:
        return -hellinger_affinity(params[0], params[1], resp, reference, grid)

    res = minimize(objective, x0, method="L-BFGS-B", bounds=list(bounds), options=options)

    best = res.x
    best_aff = -float(res.fun)
    start_aff = -objective(x0)
    if start_aff > best_aff:
        best, best_aff = x0, start_aff

    if not res.success:
        warnings.warn(
            f"Optimizer for component {index + 1} stopped early ({res.message}); keeping best candidate",
            NumericalWarning,
            stacklevel=3,
        )
        logger.debug("Component %d optimizer: %s", index + 1, res.message)

    return float(best[0]), float(best[1]), best_aff


def _fit_step(
    mixture: Mixture,
    reference: np.ndarray,
    grid: np.ndarray,
    bounds: Sequence[Tuple[float, float]],
    options: Dict,
    logger: logging.Logger,
) -> Tuple[Mixture, float]:
    """
    One outer iteration. Every component is optimized from the same snapshot,
    so component updates do not see each other within the iteration. The
    returned hdis is computed from the snapshot, i.e. before the update.
    """
    resp = adaptive_weights(grid, mixture)

    old_aff = np.array([
        hellinger_affinity(c.mean, c.sd, resp[i], reference, grid)
        for i, c in enumerate(mixture.components)
    ])
    hdis = float(np.sqrt(np.dot(mixture.weights, old_aff)))

    updates = [
        _optimize_component(i, c.mean, c.sd, resp[i], reference, grid, bounds, options, logger)
        for i, c in enumerate(mixture.components)
    ]
    means = np.array([u[0] for u in updates])
    sds = np.array([u[1] for u in updates])
    new_aff = np.array([u[2] for u in updates])

    total = float(np.sum(new_aff ** 2))
    if not np.isfinite(total) or total <= 0:
        raise DomainError("All component affinities vanished; reference density does not overlap the mixture")

    weights = new_aff ** 2 / total
    if np.any(weights <= 0):
        dead = (np.flatnonzero(weights <= 0) + 1).tolist()
        raise DomainError(f"Weight of component(s) {dead} underflowed to zero; the component lost all support")

    return Mixture.from_arrays(weights, means, sds), hdis


def _iterate(
    mixture: Mixture,
    reference_fn: Callable[[Mixture], np.ndarray],
    grid: np.ndarray,
    bounds: Sequence[Tuple[float, float]],
    tol: float,
    max_iter: int,
    options: Dict,
    logger: logging.Logger,
) -> FitResult:
    prev_hdis = None
    hdis = float("nan")
    converged = False
    n_iter = 0

    for n_iter in range(1, max_iter + 1):
        reference = reference_fn(mixture)
        mixture, hdis = _fit_step(mixture, reference, grid, bounds, options, logger)
        logger.debug("iter %d: hdis=%.8f means=%s", n_iter, hdis, np.round(mixture.means, 4).tolist())

        if prev_hdis is not None and abs(hdis - prev_hdis) <= tol:
            converged = True
            break
        prev_hdis = hdis

    if not converged:
        logger.debug("Stopped after max_iter=%d without meeting tol=%g", max_iter, tol)

    return FitResult(mixture=mixture, hdis=hdis, n_iter=n_iter, converged=converged)


def fit_mixture(
    data: Sequence[float],
    n_components: int,
    init: Optional[Mixture] = None,
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    optimizer_options: Optional[Dict] = None,
    logger: Optional[logging.Logger] = None,
) -> FitResult:
    """
    Self-consistent MHD fit of a fixed-order mixture.

    The reference density is the adaptive KDE keyed on the current iterate,
    so it is recomputed at every outer iteration.

    Args:
        data: Sample (n >= 2)
        n_components: Mixture order m
        init: Optional warm start of order m
        tol: Convergence tolerance on successive hdis values
        max_iter: Cap on outer iterations
        optimizer_options: Options passed to scipy's L-BFGS-B
        logger: Optional logger

    Returns:
        FitResult with the last iterate and its (lagged) hdis
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    _check_fit_args(n_components, tol, max_iter)

    x = validate_sample(data)
    grid = make_grid(x)
    start = initialize_mixture(x, n_components, grid=grid, warm_start=init, logger=logger)
    bounds = _parameter_bounds(x, mean_pad=1.0)
    options = dict(DEFAULT_OPTIMIZER_OPTIONS, **(optimizer_options or {}))

    result = _iterate(
        start,
        lambda mix: adaptive_density(grid, x, mix),
        grid, bounds, tol, max_iter, options, logger,
    )
    logger.debug(
        "Self-consistent fit m=%d: %d iterations, converged=%s, hdis=%.6f",
        n_components, result.n_iter, result.converged, result.hdis,
    )
    return result


def fit_mixture_fixed(
    data: Sequence[float],
    n_components: int,
    reference: np.ndarray,
    init: Optional[Mixture] = None,
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    optimizer_options: Optional[Dict] = None,
    logger: Optional[logging.Logger] = None,
) -> FitResult:
    """
    MHD fit against a frozen reference density evaluated on make_grid(data).

    Mean bounds are tightened to [min - 0.5, max + 0.5]. Used by the order
    search so candidates of different orders share one baseline.
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    _check_fit_args(n_components, tol, max_iter)

    x = validate_sample(data)
    grid = make_grid(x)
    reference = np.asarray(reference, dtype=np.float64)
    if reference.shape != grid.shape:
        raise DomainError(
            f"Reference density has {reference.size} points but the grid has {grid.size}"
        )

    start = initialize_mixture(x, n_components, grid=grid, warm_start=init, logger=logger)
    bounds = _parameter_bounds(x, mean_pad=0.5)
    options = dict(DEFAULT_OPTIMIZER_OPTIONS, **(optimizer_options or {}))

    result = _iterate(start, lambda mix: reference, grid, bounds, tol, max_iter, options, logger)
    logger.debug(
        "Reference-fixed fit m=%d: %d iterations, converged=%s, hdis=%.6f",
        n_components, result.n_iter, result.converged, result.hdis,
    )
    return result


def select_mixture_order(
    data: Sequence[float],
    max_order: int = DEFAULT_MAX_ORDER,
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    optimizer_options: Optional[Dict] = None,
    logger: Optional[logging.Logger] = None,
) -> OrderSelection:
    """
    Sequential m vs m+1 test for the number of mixture components.

    Starting from a self-consistent one-component fit, each round builds the
    adaptive KDE keyed on the current best mixture, fits orders m and m+1
    against it and compares their squared Hellinger deviations D0, D1 with
    alpha_n = 3 / n:

    - D0 <= D1 + alpha_n: stop with the order-m fit
    - otherwise adopt the order-(m+1) fit; stop as well if D1 <= alpha_n

    Args:
        data: Sample (n >= 2)
        max_order: Largest order considered
        tol: Convergence tolerance for each fit
        max_iter: Outer iteration cap for each fit
        optimizer_options: Options passed to scipy's L-BFGS-B
        logger: Optional logger

    Returns:
        OrderSelection with the chosen mixture and a per-round history
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    if int(max_order) < 1:
        raise ConfigurationError(f"max_order must be >= 1, got {max_order}")
    _check_fit_args(1, tol, max_iter)

    x = validate_sample(data)
    n = x.size
    grid = make_grid(x)
    alpha_n = 3.0 / n
    fit_kwargs = dict(tol=tol, max_iter=max_iter, optimizer_options=optimizer_options, logger=logger)

    logger.info(
        "Selecting mixture order: n=%d, grid=%d points, max_order=%d, alpha_n=%.5f",
        n, grid.size, max_order, alpha_n,
    )

    current = fit_mixture(x, 1, **fit_kwargs).mixture
    history: List[Dict] = []

    for m in range(1, int(max_order)):
        reference = adaptive_density(grid, x, current)
        try:
            fit_m0 = fit_mixture_fixed(x, m, reference, init=current, **fit_kwargs)
            fit_m1 = fit_mixture_fixed(x, m + 1, reference, **fit_kwargs)
        except DomainError as exc:
            logger.warning("Fitting orders %d/%d failed (%s); keeping order %d", m, m + 1, exc, m)
            history.append({"m": m, "decision": "fit_failed", "error": str(exc)})
            return OrderSelection(current, history)

        d_m0 = hellinger_deviation(reference, fit_m0.mixture.pdf(grid))
        d_m1 = hellinger_deviation(reference, fit_m1.mixture.pdf(grid))
        step = {"m": m, "d_m0": d_m0, "d_m1": d_m1, "alpha_n": alpha_n}

        logger.info("m=%d: D(m)=%.6f D(m+1)=%.6f", m, d_m0, d_m1)

        if d_m0 <= d_m1 + alpha_n:
            step["decision"] = "stop"
            history.append(step)
            logger.info("Selected order %d", m)
            return OrderSelection(fit_m0.mixture, history)

        current = fit_m1.mixture
        if d_m1 <= alpha_n:
            step["decision"] = "adopt_and_stop"
            history.append(step)
            logger.info("Selected order %d (D(m+1) within alpha_n)", m + 1)
            return OrderSelection(current, history)

        step["decision"] = "grow"
        history.append(step)

    logger.info("Reached max_order=%d; returning order %d", max_order, current.order)
    return OrderSelection(current, history)


def fit_mixture_order(
    data: Sequence[float],
    max_order: int = DEFAULT_MAX_ORDER,
    tol: float = DEFAULT_TOL,
    max_iter: int = DEFAULT_MAX_ITER,
    logger: Optional[logging.Logger] = None,
) -> Mixture:
    """Select the mixture order and return the fitted mixture (see select_mixture_order)."""
    return select_mixture_order(data, max_order=max_order, tol=tol, max_iter=max_iter, logger=logger).mixture


def assign_clusters(data: Sequence[float], mixture: Mixture) -> np.ndarray:
    """Label each observation 1..m by its arg-max weighted component density."""
    x = np.asarray(data, dtype=np.float64).ravel()
    return np.argmax(mixture.component_densities(x), axis=0) + 1


def save_artifacts(
    mixture: Mixture,
    data: Sequence[float],
    summary: Dict,
    outdir: str = "models",
    ids: Optional[Sequence] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, str]:
    """
    Save the fitted mixture, a JSON summary and per-observation assignments.

    Files:
      - models/mhd_mixture.joblib
      - models/mhd_summary.json
      - models/mhd_assignments.csv
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    out = Path(outdir)
    out.mkdir(parents=True, exist_ok=True)

    mixture_path = out / "mhd_mixture.joblib"
    summary_path = out / "mhd_summary.json"
    assign_path = out / "mhd_assignments.csv"

    dump(mixture, mixture_path)

    payload = dict(summary)
    payload["mixture"] = mixture.to_dict()
    with open(summary_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, default=str)

    x = np.asarray(data, dtype=np.float64).ravel()
    assignments = pd.DataFrame({
        "id": list(ids) if ids is not None else np.arange(x.size),
        "value": x,
        "cluster": assign_clusters(x, mixture),
    })
    assignments.to_csv(assign_path, index=False)

    logger.info(
        "Saved mixture to %s, summary to %s, assignments to %s",
        mixture_path, summary_path, assign_path,
    )

    return {
        "mixture_path": str(mixture_path),
        "summary_path": str(summary_path),
        "assignments_path": str(assign_path),
    }
