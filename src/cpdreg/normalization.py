"""Centering and isotropic scaling of point cloud pairs."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from loguru import logger

SCALE_FLOOR = 1e-12


@dataclass(slots=True, frozen=True)
class Normalization:
    """Normalized copies of a fixed/moving pair and the parameters to undo it."""

    fixed_mean: np.ndarray  # shape (D,)
    scale: float
    fixed: np.ndarray  # shape (N, D)
    moving: np.ndarray  # shape (M, D)

    def denormalize(self, points: np.ndarray) -> np.ndarray:
        """Map points from normalized space back to the original frame."""
        return points * self.scale + self.fixed_mean


def normalize(fixed: np.ndarray, moving: np.ndarray) -> Normalization:
    """Center both clouds on the fixed centroid and divide by a shared scale.

    The scale is the root mean squared norm of the centered points, pooled over
    both clouds. Coincident inputs would give a zero scale; in that case the
    clouds are only centered and the scale is reported as 1.0.

    Args:
        fixed: Array of shape (N, D).
        moving: Array of shape (M, D).

    Returns:
        Normalization holding the fixed mean, the scale and both normalized clouds.
    """
    fixed_mean = fixed.mean(axis=0)
    fixed_centered = fixed - fixed_mean
    moving_centered = moving - fixed_mean
    total = np.sum(fixed_centered**2) + np.sum(moving_centered**2)
    scale = float(np.sqrt(total / (fixed.shape[0] + moving.shape[0])))
    if not scale > SCALE_FLOOR:
        logger.warning(f"Normalization scale {scale:.3e} below floor, using 1.0")
        scale = 1.0
    return Normalization(
        fixed_mean=fixed_mean,
        scale=scale,
        fixed=fixed_centered / scale,
        moving=moving_centered / scale,
    )
