"""
Immutable Gaussian mixture record and the responsibility (adaptive weight) field.

Key objects:
- Component: one (weight, mean, sd) triple
- Mixture: ordered tuple of components, validated on construction
- adaptive_weights: a_i(x) = pi_i N(x; theta_i, sigma_i) / (sum_s pi_s N(x; theta_s, sigma_s) + eps)
"""

from dataclasses import dataclass
from typing import Iterable, NamedTuple, Tuple

import numpy as np
import pandas as pd
from scipy.stats import norm

from .errors import DomainError

WEIGHT_EPS = 1e-12


class Component(NamedTuple):
    weight: float
    mean: float
    sd: float


def normal_pdf(x: np.ndarray, mean: float, sd: float) -> np.ndarray:
    return norm.pdf(x, loc=mean, scale=sd)


@dataclass(frozen=True)
class Mixture:
    """
    Finite univariate Gaussian mixture.

    Weights must be positive and sum to 1, and every sd must be positive; a Mixture that
    violates either is never constructed.
    """

    components: Tuple[Component, ...]

    def __post_init__(self) -> None:
        comps = tuple(Component(float(w), float(m), float(s)) for w, m, s in self.components)
        object.__setattr__(self, "components", comps)

        if len(comps) == 0:
            raise DomainError("Mixture needs at least one component")

        weights = np.array([c.weight for c in comps])
        sds = np.array([c.sd for c in comps])
        means = np.array([c.mean for c in comps])

        if not (np.all(np.isfinite(weights)) and np.all(np.isfinite(means)) and np.all(np.isfinite(sds))):
            raise DomainError(f"Mixture parameters must be finite: {comps}")
        if np.any(sds <= 0):
            raise DomainError(f"Component standard deviations must be positive, got {sds.tolist()}")
        if np.any(weights <= 0) or abs(weights.sum() - 1.0) > 1e-8:
            raise DomainError(f"Component weights must be positive and sum to 1, got {weights.tolist()}")

    @classmethod
    def from_arrays(
        cls,
        weights: Iterable[float],
        means: Iterable[float],
        sds: Iterable[float],
        normalize: bool = False,
    ) -> "Mixture":
        w = np.asarray(list(weights), dtype=np.float64)
        m = np.asarray(list(means), dtype=np.float64)
        s = np.asarray(list(sds), dtype=np.float64)
        if not (len(w) == len(m) == len(s)):
            raise DomainError(
                f"Parameter arrays differ in length: weights={len(w)}, means={len(m)}, sds={len(s)}"
            )
        if normalize:
            total = w.sum()
            if not np.isfinite(total) or total <= 0:
                raise DomainError(f"Cannot normalize weights {w.tolist()}")
            w = w / total
        return cls(tuple(Component(*p) for p in zip(w, m, s)))

    @property
    def order(self) -> int:
        return len(self.components)

    @property
    def weights(self) -> np.ndarray:
        return np.array([c.weight for c in self.components])

    @property
    def means(self) -> np.ndarray:
        return np.array([c.mean for c in self.components])

    @property
    def sds(self) -> np.ndarray:
        return np.array([c.sd for c in self.components])

    def component_densities(self, x: np.ndarray) -> np.ndarray:
        """Weighted component densities pi_i N(x; theta_i, sigma_i), shape (order, len(x))."""
        x = np.atleast_1d(np.asarray(x, dtype=np.float64))
        return np.stack([c.weight * normal_pdf(x, c.mean, c.sd) for c in self.components])

    def pdf(self, x: np.ndarray) -> np.ndarray:
        return self.component_densities(x).sum(axis=0)

    def responsibilities(self, x: np.ndarray) -> np.ndarray:
        return adaptive_weights(x, self)

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(list(self.components), columns=["weight", "mean", "sd"])
        df.index = pd.RangeIndex(1, self.order + 1, name="component")
        return df

    def to_dict(self) -> dict:
        return {
            "order": self.order,
            "weights": self.weights.tolist(),
            "means": self.means.tolist(),
            "sds": self.sds.tolist(),
        }


def adaptive_weights(x: np.ndarray, mixture: Mixture) -> np.ndarray:
    """
    Posterior-like component weights a_i(x), shape (order, len(x)).

    The denominator carries a 1e-12 floor so points far in the tail, where
    every component density underflows, get weights near zero instead of NaN.
    """
    dens = mixture.component_densities(x)
    return dens / (dens.sum(axis=0) + WEIGHT_EPS)
