"""Exact pairwise probability engine."""

from __future__ import annotations

import numpy as np
from scipy.spatial.distance import cdist
from scipy.special import logsumexp

from .base import LOG_NORMALIZER_FLOOR, Comparer, Probabilities, outlier_constant


class DirectComparer(Comparer):
    """Evaluates every fixed/moving pair, a block of fixed rows at a time.

    Row normalizers are accumulated in log space, so they stay finite even
    when every Gaussian affinity of a row underflows.
    """

    name = "direct"

    def __init__(self, chunk_size: int = 1024) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self._chunk_size = chunk_size

    def compute(
        self,
        fixed: np.ndarray,
        moving: np.ndarray,
        sigma2: float,
        outlier_weight: float,
        correspondence: bool = False,
    ) -> Probabilities:
        fixed_count, dimensions = fixed.shape
        moving_count = moving.shape[0]
        sigma2 = self._floor_sigma2(sigma2)
        constant = outlier_constant(sigma2, outlier_weight, dimensions, fixed_count, moving_count)
        log_constant = np.log(constant) if constant > 0.0 else -np.inf

        p1 = np.zeros(moving_count)
        pt1 = np.zeros(fixed_count)
        px = np.zeros((moving_count, dimensions))
        log_normalizers = np.empty(fixed_count)
        best = np.full(moving_count, -np.inf)
        indices = np.zeros(moving_count, dtype=np.intp)

        for start in range(0, fixed_count, self._chunk_size):
            stop = min(start + self._chunk_size, fixed_count)
            block = fixed[start:stop]
            log_affinity = -cdist(block, moving, "sqeuclidean") / (2.0 * sigma2)
            log_normalizer = np.logaddexp(logsumexp(log_affinity, axis=1), log_constant)
            log_normalizer = np.maximum(log_normalizer, LOG_NORMALIZER_FLOOR)
            log_posterior = log_affinity - log_normalizer[:, None]
            posterior = np.exp(log_posterior)

            log_normalizers[start:stop] = log_normalizer
            pt1[start:stop] = posterior.sum(axis=1)
            p1 += posterior.sum(axis=0)
            px += posterior.T @ block

            if correspondence:
                block_best = log_posterior.max(axis=0)
                improved = block_best > best
                best[improved] = block_best[improved]
                indices[improved] = log_posterior.argmax(axis=0)[improved] + start

        return Probabilities(
            p1=p1,
            pt1=pt1,
            px=px,
            l=self._likelihood(log_normalizers, sigma2, dimensions),
            correspondence=indices if correspondence else None,
        )
