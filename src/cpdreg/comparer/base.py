"""Shared interfaces for probability engines (the E-step)."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional

import numpy as np

SIGMA2_FLOOR = np.finfo(float).tiny
NORMALIZER_FLOOR = np.finfo(float).tiny
LOG_NORMALIZER_FLOOR = np.log(NORMALIZER_FLOOR)


@dataclass(slots=True)
class Probabilities:
    """Soft correspondence statistics produced by one E-step."""

    p1: np.ndarray  # shape (M,), mass assigned to each moving point
    pt1: np.ndarray  # shape (N,), mass assigned to each fixed point
    px: np.ndarray  # shape (M, D), posterior-weighted sum of fixed points
    l: float  # negative log-likelihood proxy
    correspondence: Optional[np.ndarray] = None  # shape (M,), index into fixed


def outlier_constant(
    sigma2: float,
    outlier_weight: float,
    dimensions: int,
    fixed_count: int,
    moving_count: int,
) -> float:
    """Uniform background term added to every fixed-point normalizer."""
    if outlier_weight <= 0.0:
        return 0.0
    return (
        outlier_weight
        / (1.0 - outlier_weight)
        * (moving_count / fixed_count)
        * (2.0 * np.pi * sigma2) ** (dimensions / 2.0)
    )


class Comparer(abc.ABC):
    """Base class for all probability engines.

    Implementations must agree on the output contract of ``compute``; the
    approximate ones only trade a bounded relative error for speed.
    """

    name: str = ""

    @abc.abstractmethod
    def compute(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        sigma2: float,
        outlier_weight: float,
    ) -> Probabilities:
        """Compute correspondence probabilities between two clouds."""

    @staticmethod
    def _floor_sigma2(sigma2: float) -> float:
        return max(float(sigma2), SIGMA2_FLOOR)

    @staticmethod
    def _likelihood(log_normalizers: np.ndarray, sigma2: float, dimensions: int) -> float:
        count = log_normalizers.shape[0]
        return float(-np.sum(log_normalizers) + dimensions * count * np.log(sigma2) / 2.0)
