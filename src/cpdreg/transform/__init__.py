"""Transform models fitted in the M-step."""

from __future__ import annotations

from typing import Optional

from cpdreg.config import TransformConfig

from .affine import Affine, AffineResult  # noqa: F401
from .base import Result, Transform  # noqa: F401
from .nonrigid import Nonrigid, NonrigidResult  # noqa: F401
from .rigid import Rigid, RigidResult  # noqa: F401


def build_transform(config: Optional[TransformConfig] = None) -> Transform:
    """Instantiate the transform model described by ``config``."""
    config = config or TransformConfig()
    kind = config.kind.lower()
    if kind == "rigid":
        return Rigid(scale=config.rigid.scale, reflections=config.rigid.reflections)
    if kind == "affine":
        return Affine()
    if kind == "nonrigid":
        return Nonrigid(beta=config.nonrigid.beta, lambda_=config.nonrigid.lambda_)
    raise ValueError(f"Unsupported transform: {config.kind}")
