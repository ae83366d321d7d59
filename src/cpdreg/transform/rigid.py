"""Rigid (rotation, isotropic scale, translation) transform model."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from cpdreg.comparer.base import Probabilities
from cpdreg.normalization import Normalization

from .base import Result, Transform, weighted_centers, weighted_variance


@dataclass(slots=True, frozen=True)
class RigidResult(Result):
    rotation: Optional[np.ndarray] = None  # shape (D, D)
    translation: Optional[np.ndarray] = None  # shape (D,)
    scale: float = 1.0

    def matrix(self) -> np.ndarray:
        """Return the homogeneous (D+1)x(D+1) transform mapping moving onto fixed."""
        dimensions = self.rotation.shape[0]
        transform = np.eye(dimensions + 1)
        transform[:dimensions, :dimensions] = self.scale * self.rotation
        transform[:dimensions, dimensions] = self.translation
        return transform


class Rigid(Transform):
    """Weighted Procrustes solve for rotation, scale and translation."""

    def __init__(self, scale: bool = False, reflections: bool = False) -> None:
        self._scale = scale
        self._reflections = reflections

    def identity(self, moving: np.ndarray, sigma2: float) -> RigidResult:
        dimensions = moving.shape[1]
        return RigidResult(
            points=moving,
            sigma2=sigma2,
            rotation=np.eye(dimensions),
            translation=np.zeros(dimensions),
        )

    def compute(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        probabilities: Probabilities,
        sigma2: float,
    ) -> RigidResult:
        _, mu_x, mu_y, _, moving_hat = weighted_centers(fixed, moving, probabilities)
        cross = (probabilities.px - np.outer(probabilities.p1, mu_x)).T @ moving_hat
        u, singular, vt = np.linalg.svd(cross)

        correction = np.ones(singular.shape[0])
        if not self._reflections:
            correction[-1] = np.sign(np.linalg.det(u @ vt)) or 1.0
        rotation = u @ np.diag(correction) @ vt

        scale = 1.0
        if self._scale:
            spread = np.sum(probabilities.p1 @ moving_hat**2)
            if spread > 0.0:
                scale = float(np.sum(singular * correction) / spread)

        translation = mu_x - scale * rotation @ mu_y
        points = scale * moving @ rotation.T + translation
        return RigidResult(
            points=points,
            sigma2=weighted_variance(fixed, points, probabilities),
            rotation=rotation,
            translation=translation,
            scale=scale,
        )

    def denormalize(self, normalization: Normalization, result: RigidResult) -> RigidResult:
        result = super().denormalize(normalization, result)
        mean = normalization.fixed_mean
        translation = (
            normalization.scale * result.translation + mean - result.scale * result.rotation @ mean
        )
        return replace(result, translation=translation)
