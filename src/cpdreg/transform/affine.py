"""Affine (general linear map plus translation) transform model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np
from scipy import linalg

from cpdreg.comparer.base import Probabilities
from cpdreg.normalization import Normalization

from .base import Result, Transform, weighted_centers, weighted_variance


@dataclass(slots=True, frozen=True)
class AffineResult(Result):
    transform: Optional[np.ndarray] = None  # shape (D, D)
    translation: Optional[np.ndarray] = None  # shape (D,)

    def matrix(self) -> np.ndarray:
        """Return the homogeneous (D+1)x(D+1) transform mapping moving onto fixed."""
        dimensions = self.transform.shape[0]
        homogeneous = np.eye(dimensions + 1)
        homogeneous[:dimensions, :dimensions] = self.transform
        homogeneous[:dimensions, dimensions] = self.translation
        return homogeneous


class Affine(Transform):
    """Weighted least-squares solve for an unconstrained linear map."""

    def identity(self, moving: np.ndarray, sigma2: float) -> AffineResult:
        dimensions = moving.shape[1]
        return AffineResult(
            points=moving,
            sigma2=sigma2,
            transform=np.eye(dimensions),
            translation=np.zeros(dimensions),
        )

    def compute(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        probabilities: Probabilities,
        sigma2: float,
    ) -> AffineResult:
        _, mu_x, mu_y, _, moving_hat = weighted_centers(fixed, moving, probabilities)
        cross = (probabilities.px - np.outer(probabilities.p1, mu_x)).T @ moving_hat
        spread = (moving_hat * probabilities.p1[:, None]).T @ moving_hat
        # spread is symmetric, so B = cross @ inv(spread) solves spread @ B.T = cross.T
        transform = linalg.lstsq(spread, cross.T)[0].T
        translation = mu_x - transform @ mu_y
        points = moving @ transform.T + translation
        return AffineResult(
            points=points,
            sigma2=weighted_variance(fixed, points, probabilities),
            transform=transform,
            translation=translation,
        )

    def denormalize(self, normalization: Normalization, result: AffineResult) -> AffineResult:
        result = super().denormalize(normalization, result)
        mean = normalization.fixed_mean
        translation = normalization.scale * result.translation + mean - result.transform @ mean
        return replace(result, translation=translation)
