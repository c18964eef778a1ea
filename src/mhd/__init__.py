"""
Minimum-Hellinger-distance (MHD) mixture-order selection for tail-index samples.

Modules:
- mixture: immutable Gaussian mixture record and responsibility weights
- density: Epanechnikov kernel, standard and adaptive KDEs, local maxima
- model: Hellinger affinity, mixture fitters, order selection, artifacts
- evaluate: contingency table, label matching, Rand-type index, plots
"""

from .errors import ConfigurationError, DomainError, NumericalWarning
from .mixture import Component, Mixture, adaptive_weights
from .density import adaptive_density, epanechnikov, find_local_maxima, make_grid, standard_density
from .model import (
    FitResult,
    OrderSelection,
    assign_clusters,
    fit_mixture,
    fit_mixture_fixed,
    fit_mixture_order,
    hellinger_affinity,
    hellinger_deviation,
    initialize_mixture,
    save_artifacts,
    select_mixture_order,
)
from .evaluate import evaluate_clustering, get_table, make_plots, match_labels, rand_index

__all__ = [
    "ConfigurationError",
    "DomainError",
    "NumericalWarning",
    "Component",
    "Mixture",
    "adaptive_weights",
    "adaptive_density",
    "epanechnikov",
    "find_local_maxima",
    "make_grid",
    "standard_density",
    "FitResult",
    "OrderSelection",
    "assign_clusters",
    "fit_mixture",
    "fit_mixture_fixed",
    "fit_mixture_order",
    "hellinger_affinity",
    "hellinger_deviation",
    "initialize_mixture",
    "save_artifacts",
    "select_mixture_order",
    "evaluate_clustering",
    "get_table",
    "make_plots",
    "match_labels",
    "rand_index",
]
