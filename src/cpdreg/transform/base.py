"""Shared interfaces for transform models (the M-step)."""

from __future__ import annotations

import abc
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from cpdreg.comparer.base import NORMALIZER_FLOOR, Probabilities
from cpdreg.normalization import Normalization


@dataclass(slots=True, frozen=True)
class Result:
    """Outcome of a registration run."""

    points: np.ndarray  # shape (M, D), aligned moving points
    sigma2: float
    iterations: int = 0
    runtime: float = 0.0  # seconds
    correspondence: Optional[np.ndarray] = None  # shape (M,), index into fixed


def weighted_variance(fixed: np.ndarray, points: np.ndarray, probabilities: Probabilities) -> float:
    """Posterior-weighted mean squared residual between fixed and ``points``."""
    dimensions = fixed.shape[1]
    mass = max(probabilities.p1.sum(), NORMALIZER_FLOOR)
    residual = (
        np.sum(probabilities.pt1 @ fixed**2)
        + np.sum(probabilities.p1 @ points**2)
        - 2.0 * np.sum(probabilities.px * points)
    )
    return float(abs(residual / (mass * dimensions)))


def weighted_centers(fixed: np.ndarray, moving: np.ndarray, probabilities: Probabilities):
    """Return (mass, fixed center, moving center, centered fixed, centered moving)."""
    mass = max(probabilities.p1.sum(), NORMALIZER_FLOOR)
    mu_x = fixed.T @ probabilities.pt1 / mass
    mu_y = moving.T @ probabilities.p1 / mass
    return mass, mu_x, mu_y, fixed - mu_x, moving - mu_y


class Transform(abc.ABC):
    """Base class for transform models driven by the EM runner.

    A transform may keep per-run state; ``init`` resets it at the start of
    every run.
    """

    def init(self, fixed: np.ndarray, moving: np.ndarray) -> None:
        """Prepare per-run state from the (possibly normalized) clouds."""

    def identity(self, moving: np.ndarray, sigma2: float) -> Result:
        """Result describing the untouched moving cloud."""
        return Result(points=moving, sigma2=sigma2)

    def modify_probabilities(self, probabilities: Probabilities) -> Probabilities:
        """Adjust the likelihood proxy before the convergence test."""
        return probabilities

    @abc.abstractmethod
    def compute(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        probabilities: Probabilities,
        sigma2: float,
    ) -> Result:
        """Fit the transform to ``probabilities`` and apply it to ``moving``."""

    def denormalize(self, normalization: Normalization, result: Result) -> Result:
        """Express ``result`` in the frame of the original clouds."""
        return replace(
            result,
            points=normalization.denormalize(result.points),
            sigma2=result.sigma2 * normalization.scale**2,
        )
