"""EM orchestration for coherent point drift registration."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Callable, Iterable, List, Optional

import numpy as np
from loguru import logger

from cpdreg.comparer import Comparer, DirectComparer, build_comparer
from cpdreg.config import RegistrationConfig
from cpdreg.normalization import normalize
from cpdreg.transform import (
    Affine,
    AffineResult,
    Nonrigid,
    NonrigidResult,
    Result,
    Rigid,
    RigidResult,
    Transform,
    build_transform,
)

EPSILON = np.finfo(float).eps


@dataclass(slots=True, frozen=True)
class IterationInfo:
    """Progress record handed to iteration callbacks."""

    iteration: int
    tolerance_change: float
    sigma2: float
    likelihood: float


IterationCallback = Callable[[IterationInfo], None]


def default_sigma2(fixed: np.ndarray, moving: np.ndarray) -> float:
    """Mean squared distance over all fixed/moving pairs, divided by D.

    Expands ``sum ||x - y||^2`` so the N x M distance matrix is never built.
    """
    fixed_count, dimensions = fixed.shape
    moving_count = moving.shape[0]
    total = (
        moving_count * np.sum(fixed**2)
        + fixed_count * np.sum(moving**2)
        - 2.0 * np.dot(fixed.sum(axis=0), moving.sum(axis=0))
    )
    return float(total / (dimensions * fixed_count * moving_count))


def relative_change(current: float, previous: float) -> float:
    return abs(current - previous) / max(abs(current), EPSILON)


class Runner:
    """Runs one transform model against pairs of point clouds.

    A runner may be reused sequentially; every call to ``run`` rebuilds its
    per-run state. It must not be shared between threads.
    """

    def __init__(
        self,
        transform: Optional[Transform] = None,
        config: Optional[RegistrationConfig] = None,
        comparer: Optional[Comparer] = None,
        clock: Callable[[], float] = time.perf_counter,
        callbacks: Iterable[IterationCallback] = (),
    ) -> None:
        self._config = config or RegistrationConfig()
        self._transform = transform or build_transform(self._config.transform)
        self._comparer = comparer or build_comparer(self._config.comparer.name, self._config.comparer)
        self._clock = clock
        self._callbacks: List[IterationCallback] = list(callbacks)

    @classmethod
    def from_config(cls, config: RegistrationConfig, **kwargs) -> "Runner":
        return cls(config=config, **kwargs)

    @property
    def config(self) -> RegistrationConfig:
        return self._config

    @property
    def transform(self) -> Transform:
        return self._transform

    @property
    def comparer(self) -> Comparer:
        return self._comparer

    def add_callback(self, callback: IterationCallback) -> None:
        self._callbacks.append(callback)

    def run(self, fixed: np.ndarray, moving: np.ndarray) -> Result:
        """
        Register ``moving`` onto ``fixed``.

        Args:
            fixed: Array of shape (N, D), the target cloud.
            moving: Array of shape (M, D), the cloud being aligned.

        Returns:
            Result of the transform model, expressed in the original frame.
        """
        fixed, moving = self._validate(fixed, moving)
        config = self._config
        logger.info(f"Number of points in fixed matrix: {fixed.shape[0]}")
        logger.info(f"Number of points in moving matrix: {moving.shape[0]}")
        logger.info(f"Probability engine: {self._comparer.name}")

        start_time = self._clock()
        normalization = None
        fixed_work, moving_work = fixed, moving
        if config.normalize:
            normalization = normalize(fixed, moving)
            fixed_work, moving_work = normalization.fixed, normalization.moving

        self._transform.init(fixed_work, moving_work)

        if config.sigma2 == 0.0:
            sigma2 = default_sigma2(fixed_work, moving_work)
            logger.info(f"Initializing sigma2 to {sigma2}")
        else:
            sigma2 = config.sigma2
            logger.info(f"sigma2 previously set to {sigma2}")

        result = self._transform.identity(moving_work, sigma2)
        iteration = 0
        ntol = config.tolerance + 10.0
        likelihood = 0.0

        while (
            iteration < config.max_iterations
            and ntol > config.tolerance
            and result.sigma2 > 10 * EPSILON
        ):
            probabilities = self._comparer.compute(
                fixed_work, result.points, result.sigma2, config.outlier_weight
            )
            probabilities = self._transform.modify_probabilities(probabilities)
            ntol = relative_change(probabilities.l, likelihood)
            logger.debug(f"iter={iteration}, dL={ntol:.8f}, sigma2={result.sigma2:.8f}")
            info = IterationInfo(
                iteration=iteration,
                tolerance_change=ntol,
                sigma2=result.sigma2,
                likelihood=probabilities.l,
            )
            for callback in self._callbacks:
                callback(info)
            likelihood = probabilities.l
            result = self._transform.compute(fixed_work, moving_work, probabilities, result.sigma2)
            iteration += 1

        if normalization is not None:
            result = self._transform.denormalize(normalization, result)

        correspondence = None
        if config.correspondence:
            probabilities = DirectComparer().compute(
                fixed, result.points, result.sigma2, config.outlier_weight, correspondence=True
            )
            correspondence = probabilities.correspondence

        runtime = self._clock() - start_time
        if iteration >= config.max_iterations:
            logger.info(f"Stopped at the iteration cap ({iteration}) after {runtime:.3f}s")
        else:
            logger.info(f"Converged after {iteration} iteration(s) in {runtime:.3f}s")
        return replace(result, iterations=iteration, runtime=runtime, correspondence=correspondence)

    @staticmethod
    def _validate(fixed: np.ndarray, moving: np.ndarray):
        fixed = np.asarray(fixed, dtype=float)
        moving = np.asarray(moving, dtype=float)
        if fixed.ndim != 2 or moving.ndim != 2:
            raise ValueError("fixed and moving must be 2D arrays of shape (N, D)")
        if fixed.shape[0] == 0 or moving.shape[0] == 0 or fixed.shape[1] == 0:
            raise ValueError("fixed and moving must both contain at least one point")
        if fixed.shape[1] != moving.shape[1]:
            raise ValueError(
                f"Dimension mismatch: fixed has {fixed.shape[1]} columns, moving has {moving.shape[1]}"
            )
        if not (np.isfinite(fixed).all() and np.isfinite(moving).all()):
            raise ValueError("fixed and moving must only contain finite values")
        return fixed, moving


def run(
    fixed: np.ndarray,
    moving: np.ndarray,
    transform: Optional[Transform] = None,
    config: Optional[RegistrationConfig] = None,
) -> Result:
    """Register ``moving`` onto ``fixed`` with a one-off runner."""
    return Runner(transform=transform, config=config).run(fixed, moving)


def rigid(
    fixed: np.ndarray,
    moving: np.ndarray,
    scale: bool = False,
    reflections: bool = False,
    config: Optional[RegistrationConfig] = None,
) -> RigidResult:
    return run(fixed, moving, Rigid(scale=scale, reflections=reflections), config)


def affine(fixed: np.ndarray, moving: np.ndarray, config: Optional[RegistrationConfig] = None) -> AffineResult:
    return run(fixed, moving, Affine(), config)


def nonrigid(
    fixed: np.ndarray,
    moving: np.ndarray,
    beta: float = 3.0,
    lambda_: float = 3.0,
    config: Optional[RegistrationConfig] = None,
) -> NonrigidResult:
    return run(fixed, moving, Nonrigid(beta=beta, lambda_=lambda_), config)
