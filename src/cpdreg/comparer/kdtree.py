"""Truncated probability engine backed by KD-trees."""

from __future__ import annotations

import numpy as np
from scipy.spatial import KDTree
from scipy.spatial.distance import cdist
from scipy.special import logsumexp

from .base import LOG_NORMALIZER_FLOOR, NORMALIZER_FLOOR, Comparer, Probabilities, outlier_constant


class KDTreeComparer(Comparer):
    """Only evaluates pairs closer than ``truncation`` standard deviations.

    Every dropped affinity is below ``exp(-truncation**2 / 2)``, which bounds the
    error of the marginals relative to the exact engine. Fixed rows with no
    moving point inside the radius are evaluated against every moving point,
    so far points keep their mass when there is no outlier term.
    """

    name = "kdtree"

    def __init__(self, truncation: float = 7.0) -> None:
        if truncation <= 0:
            raise ValueError("truncation must be positive")
        self._truncation = truncation

    def compute(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        sigma2: float,
        outlier_weight: float,
    ) -> Probabilities:
        fixed_count, dimensions = fixed.shape
        moving_count = moving.shape[0]
        sigma2 = self._floor_sigma2(sigma2)
        constant = outlier_constant(sigma2, outlier_weight, dimensions, fixed_count, moving_count)
        log_constant = np.log(constant) if constant > 0.0 else -np.inf
        radius = self._truncation * np.sqrt(sigma2)

        pairs = KDTree(fixed).sparse_distance_matrix(KDTree(moving), radius, output_type="ndarray")
        rows = pairs["i"].astype(np.intp)
        cols = pairs["j"].astype(np.intp)
        affinity = np.exp(-pairs["v"] ** 2 / (2.0 * sigma2))

        counts = np.bincount(rows, minlength=fixed_count)
        normalizers = np.bincount(rows, weights=affinity, minlength=fixed_count) + constant
        normalizers = np.maximum(normalizers, NORMALIZER_FLOOR)
        log_normalizers = np.log(normalizers)
        posterior = affinity / normalizers[rows]

        p1 = np.bincount(cols, weights=posterior, minlength=moving_count)
        pt1 = np.bincount(rows, weights=posterior, minlength=fixed_count)
        px = np.empty((moving_count, dimensions))
        for dim in range(dimensions):
            px[:, dim] = np.bincount(cols, weights=posterior * fixed[rows, dim], minlength=moving_count)

        isolated = np.flatnonzero(counts == 0)
        if isolated.size:
            block = fixed[isolated]
            log_affinity = -cdist(block, moving, "sqeuclidean") / (2.0 * sigma2)
            log_normalizer = np.logaddexp(logsumexp(log_affinity, axis=1), log_constant)
            log_normalizer = np.maximum(log_normalizer, LOG_NORMALIZER_FLOOR)
            far = np.exp(log_affinity - log_normalizer[:, None])

            log_normalizers[isolated] = log_normalizer
            pt1[isolated] = far.sum(axis=1)
            p1 += far.sum(axis=0)
            px += far.T @ block

        return Probabilities(
            p1=p1,
            pt1=pt1,
            px=px,
            l=self._likelihood(log_normalizers, sigma2, dimensions),
        )
