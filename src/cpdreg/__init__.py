"""Coherent point drift registration of point clouds."""

from .config import AppConfig, RegistrationConfig, load_config  # noqa: F401
from .normalization import Normalization, normalize  # noqa: F401
from .runner import IterationInfo, Runner, affine, nonrigid, rigid, run  # noqa: F401
from .transform import Affine, Nonrigid, Result, Rigid, Transform  # noqa: F401
