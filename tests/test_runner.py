"""Tests for the EM runner."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import numpy as np
import pytest
from loguru import logger
from pydantic import ValidationError

from cpdreg.comparer import DirectComparer, KDTreeComparer
from cpdreg.config import LoggingConfig, RegistrationConfig, TransformConfig
from cpdreg.runner import IterationInfo, Runner, default_sigma2
from cpdreg.transform import Affine, Nonrigid, Rigid, RigidResult
from cpdreg.utils.log import configure_logging


def test_default_sigma2_matches_pairwise_mean(rng: np.random.Generator) -> None:
    fixed = rng.normal(size=(12, 3))
    moving = rng.normal(size=(7, 3))
    pairwise = np.sum((fixed[:, None, :] - moving[None, :, :]) ** 2)

    assert default_sigma2(fixed, moving) == pytest.approx(pairwise / (3 * 12 * 7))


def test_identical_clouds_converge_quickly(cloud: np.ndarray) -> None:
    result = Runner(Rigid()).run(cloud, cloud.copy())

    assert result.iterations < 150
    np.testing.assert_allclose(result.points, cloud, atol=1e-6)
    assert result.sigma2 < 1e-6


def test_zero_iterations_returns_moving(cloud: np.ndarray) -> None:
    fixed = cloud + 1.0
    result = Runner(Rigid(), RegistrationConfig(max_iterations=0)).run(fixed, cloud)

    assert isinstance(result, RigidResult)
    assert result.iterations == 0
    np.testing.assert_allclose(result.points, cloud, atol=1e-12)
    np.testing.assert_allclose(result.rotation, np.eye(3))
    np.testing.assert_allclose(result.translation, 0.0, atol=1e-12)


def test_zero_outlier_weight(cloud: np.ndarray) -> None:
    translation = np.array([0.2, 0.1, -0.1])
    config = RegistrationConfig(outlier_weight=0.0)

    result = Runner(Rigid(), config).run(cloud + translation, cloud)

    np.testing.assert_allclose(result.translation, translation, atol=1e-3)


def test_likelihood_is_non_increasing(cloud: np.ndarray, rng: np.random.Generator, make_rotation) -> None:
    fixed = cloud @ make_rotation(15.0).T + rng.normal(scale=0.02, size=cloud.shape)
    records: List[IterationInfo] = []

    result = Runner(Rigid(), callbacks=[records.append]).run(fixed, cloud)

    assert len(records) == result.iterations
    assert [info.iteration for info in records] == list(range(result.iterations))
    likelihoods = np.array([info.likelihood for info in records])
    slack = 1e-8 * np.abs(likelihoods[1:]) + 1e-9
    assert np.all(np.diff(likelihoods) <= slack)


def test_engines_converge_to_same_alignment(cloud: np.ndarray, make_rotation) -> None:
    fixed = cloud @ make_rotation(10.0).T + np.array([0.1, 0.0, 0.05])

    exact = Runner(Rigid(), comparer=DirectComparer()).run(fixed, cloud)
    approx = Runner(Rigid(), comparer=KDTreeComparer()).run(fixed, cloud)

    np.testing.assert_allclose(approx.points, exact.points, atol=1e-3)
    np.testing.assert_allclose(approx.rotation, exact.rotation, atol=1e-3)


def test_engines_agree_on_distant_point_without_outliers(cloud: np.ndarray) -> None:
    fixed = np.vstack([cloud + np.array([0.05, 0.05, 0.05]), [[5.0, 5.0, 5.0]]])
    config = RegistrationConfig(outlier_weight=0.0)

    exact = Runner(Rigid(), config, comparer=DirectComparer()).run(fixed, cloud)
    approx = Runner(Rigid(), config, comparer=KDTreeComparer()).run(fixed, cloud)

    np.testing.assert_allclose(approx.translation, exact.translation, atol=1e-3)
    np.testing.assert_allclose(approx.points, exact.points, atol=1e-3)


def test_correspondence_vector(cloud: np.ndarray, rng: np.random.Generator) -> None:
    permutation = rng.permutation(len(cloud))
    moving = cloud[permutation] - np.array([0.05, 0.02, 0.0])
    config = RegistrationConfig(correspondence=True)

    result = Runner(Rigid(), config).run(cloud, moving)

    np.testing.assert_array_equal(result.correspondence, permutation)


def test_correspondence_is_off_by_default(cloud: np.ndarray) -> None:
    result = Runner(Rigid()).run(cloud, cloud + 0.01)

    assert result.correspondence is None


def test_runtime_comes_from_injected_clock(cloud: np.ndarray) -> None:
    ticks = iter([10.0, 12.5])

    result = Runner(Rigid(), clock=lambda: next(ticks)).run(cloud, cloud + 0.01)

    assert result.runtime == pytest.approx(2.5)


def test_without_normalization(cloud: np.ndarray) -> None:
    translation = np.array([0.05, -0.05, 0.02])
    config = RegistrationConfig(normalize=False)

    result = Runner(Rigid(), config).run(cloud + translation, cloud)

    np.testing.assert_allclose(result.translation, translation, atol=1e-3)


def test_explicit_initial_sigma2(cloud: np.ndarray) -> None:
    records: List[IterationInfo] = []
    config = RegistrationConfig(sigma2=0.5)

    Runner(Rigid(), config, callbacks=[records.append]).run(cloud + 0.1, cloud)

    assert records[0].sigma2 == pytest.approx(0.5)


@pytest.mark.parametrize(
    "fixed, moving",
    [
        (np.zeros((5, 3)), np.zeros((5, 2))),
        (np.zeros((0, 3)), np.zeros((5, 3))),
        (np.zeros((5, 3)), np.zeros((0, 3))),
        (np.zeros(5), np.zeros(5)),
        (np.full((5, 3), np.nan), np.zeros((5, 3))),
    ],
)
def test_invalid_inputs_are_rejected(fixed: np.ndarray, moving: np.ndarray) -> None:
    with pytest.raises(ValueError):
        Runner(Rigid()).run(fixed, moving)


def test_runner_can_be_reused(cloud: np.ndarray, grid: np.ndarray) -> None:
    runner = Runner(Nonrigid(beta=2.0, lambda_=2.0))

    first = runner.run(cloud + 0.05, cloud)
    second = runner.run(cloud + 0.05, cloud)
    other = runner.run(grid + 0.1, grid[:40])

    np.testing.assert_allclose(first.points, second.points)
    assert first.iterations == second.iterations
    assert other.points.shape == (40, 2)


def test_from_config_builds_strategies() -> None:
    config = RegistrationConfig(
        comparer={"name": "kdtree"},
        transform=TransformConfig(kind="affine"),
    )

    runner = Runner.from_config(config)

    assert isinstance(runner.comparer, KDTreeComparer)
    assert isinstance(runner.transform, Affine)
    assert runner.config is config


def test_progress_is_logged(cloud: np.ndarray, tmp_path: Path) -> None:
    log_path = tmp_path / "run.log"
    sink = configure_logging(LoggingConfig(level="debug", output=str(log_path)))
    try:
        Runner(Rigid()).run(cloud + 0.1, cloud)
    finally:
        logger.remove(sink)
        logger.add(sys.stderr)

    text = log_path.read_text(encoding="utf-8")
    assert "Number of points in fixed matrix: 80" in text
    assert "Probability engine: direct" in text
    assert "Initializing sigma2" in text
    assert "iter=0" in text


def test_add_callback_receives_every_iteration(cloud: np.ndarray) -> None:
    runner = Runner(Rigid())
    records: List[IterationInfo] = []
    runner.add_callback(records.append)

    result = runner.run(cloud + 0.05, cloud)

    assert len(records) == result.iterations
    assert records[0].iteration == 0


def test_config_changes_are_validated_before_run() -> None:
    runner = Runner(Rigid())

    with pytest.raises(ValidationError):
        runner.config.tolerance = 0.0
    assert runner.config.tolerance == pytest.approx(1e-5)
