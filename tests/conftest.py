"""pytest configuration and fixtures for the cpdreg test suite."""

from __future__ import annotations

import numpy as np
import pytest


def rotation_matrix(z_degrees: float, x_degrees: float = 0.0) -> np.ndarray:
    """Rotation about z followed by a rotation about x."""
    z = np.radians(z_degrees)
    x = np.radians(x_degrees)
    rz = np.array([[np.cos(z), -np.sin(z), 0.0], [np.sin(z), np.cos(z), 0.0], [0.0, 0.0, 1.0]])
    rx = np.array([[1.0, 0.0, 0.0], [0.0, np.cos(x), -np.sin(x)], [0.0, np.sin(x), np.cos(x)]])
    return rx @ rz


@pytest.fixture
def rng() -> np.random.Generator:
    return np.random.default_rng(1234)


@pytest.fixture
def cloud(rng: np.random.Generator) -> np.ndarray:
    """Anisotropic 3D cloud so that rotations are well determined."""
    return rng.uniform(-1.0, 1.0, size=(80, 3)) * np.array([1.0, 0.6, 0.3])


@pytest.fixture
def grid() -> np.ndarray:
    """Regular 8x8 grid on the unit square."""
    xs, ys = np.meshgrid(np.linspace(0.0, 1.0, 8), np.linspace(0.0, 1.0, 8))
    return np.column_stack([xs.ravel(), ys.ravel()])


@pytest.fixture
def make_rotation():
    return rotation_matrix
