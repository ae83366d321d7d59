"""Point matrix IO helper routines."""

from __future__ import annotations

from pathlib import Path

import numpy as np
from loguru import logger


def matrix_from_path(path: str | Path) -> np.ndarray:
    """Read a whitespace-delimited text file into an (N, D) float array."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Point file not found: {path}")
    points = np.loadtxt(path, dtype=float, ndmin=2)
    if points.size == 0:
        raise ValueError(f"No points found in {path}")
    logger.debug(f"Loaded {points.shape[0]} points of dimension {points.shape[1]} from {path}")
    return points


def save_matrix(path: str | Path, points: np.ndarray) -> Path:
    """Persist an (N, D) array as whitespace-delimited text."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    np.savetxt(path, np.atleast_2d(points))
    logger.debug(f"Saved {len(points)} points to {path}")
    return path
