"""Nonrigid transform model: a Gaussian-kernel displacement field."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
from scipy import linalg
from scipy.spatial.distance import cdist

from cpdreg.comparer.base import Probabilities
from cpdreg.normalization import Normalization

from .base import Result, Transform, weighted_variance


@dataclass(slots=True, frozen=True)
class NonrigidResult(Result):
    displacement: Optional[np.ndarray] = None  # shape (M, D), G @ W


def affinity(x: np.ndarray, y: np.ndarray, beta: float) -> np.ndarray:
    """Gaussian kernel matrix between the rows of ``x`` and ``y``."""
    return np.exp(-cdist(x, y, "sqeuclidean") / (2.0 * beta**2))


class Nonrigid(Transform):
    """Coherent motion of the moving points regularized by a smoothness prior.

    Args:
        beta: Width of the Gaussian kernel relating moving points to each other.
        lambda_: Weight of the smoothness penalty on the displacement weights.
    """

    def __init__(self, beta: float = 3.0, lambda_: float = 3.0) -> None:
        if beta <= 0 or lambda_ <= 0:
            raise ValueError("beta and lambda must be positive")
        self._beta = beta
        self._lambda = lambda_
        self._g: Optional[np.ndarray] = None
        self._w: Optional[np.ndarray] = None

    @property
    def kernel(self) -> Optional[np.ndarray]:
        return self._g

    @property
    def weights(self) -> Optional[np.ndarray]:
        return self._w

    def init(self, fixed: np.ndarray, moving: np.ndarray) -> None:
        self._g = affinity(moving, moving, self._beta)
        self._w = np.zeros_like(moving, dtype=float)

    def identity(self, moving: np.ndarray, sigma2: float) -> NonrigidResult:
        return NonrigidResult(points=moving, sigma2=sigma2, displacement=np.zeros_like(moving, dtype=float))

    def modify_probabilities(self, probabilities: Probabilities) -> Probabilities:
        if self._w is None:
            return probabilities
        penalty = self._lambda / 2.0 * np.trace(self._w.T @ self._g @ self._w)
        return replace(probabilities, l=probabilities.l + float(penalty))

    def compute(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        probabilities: Probabilities,
        sigma2: float,
    ) -> NonrigidResult:
        if self._g is None:
            self.init(fixed, moving)
        p1 = probabilities.p1[:, None]
        system = p1 * self._g + self._lambda * sigma2 * np.eye(moving.shape[0])
        rhs = probabilities.px - p1 * moving
        # pivoted QR tolerates a near-singular system late in the run
        self._w = linalg.lstsq(system, rhs, lapack_driver="gelsy")[0]
        displacement = self._g @ self._w
        points = moving + displacement
        return NonrigidResult(
            points=points,
            sigma2=weighted_variance(fixed, points, probabilities),
            displacement=displacement,
        )

    def denormalize(self, normalization: Normalization, result: NonrigidResult) -> NonrigidResult:
        result = super().denormalize(normalization, result)
        return replace(result, displacement=result.displacement * normalization.scale)
