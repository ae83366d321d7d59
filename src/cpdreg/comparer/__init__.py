"""Probability engines computing soft correspondences between point clouds."""

from __future__ import annotations

from typing import Optional

from cpdreg.config import ComparerConfig

from .base import Comparer, Probabilities  # noqa: F401
from .direct import DirectComparer  # noqa: F401
from .kdtree import KDTreeComparer  # noqa: F401


def build_comparer(name: str = "direct", config: Optional[ComparerConfig] = None) -> Comparer:
    """Instantiate a probability engine by name."""
    config = config or ComparerConfig()
    backend = name.lower()
    if backend == "direct":
        return DirectComparer(chunk_size=config.chunk_size)
    if backend == "kdtree":
        return KDTreeComparer(truncation=config.truncation)
    raise ValueError(f"Unsupported comparer: {name}")
