"""Configuration schema and loader for point set registration runs."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

COMPARER_NAMES = ("direct", "kdtree")
TRANSFORM_KINDS = ("rigid", "affine", "nonrigid")


class ComparerConfig(BaseModel):
    name: str = Field("direct")
    chunk_size: int = Field(1024, ge=1)
    truncation: float = Field(7.0, gt=0.0)

    @field_validator("name", mode="before")
    @classmethod
    def ensure_known_comparer(cls, value: str) -> str:
        name = str(value).lower()
        if name not in COMPARER_NAMES:
            raise ValueError(f"Unknown comparer '{value}', expected one of {COMPARER_NAMES}")
        return name


class RigidConfig(BaseModel):
    scale: bool = False
    reflections: bool = False


class NonrigidConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    beta: float = Field(3.0, gt=0.0)
    lambda_: float = Field(3.0, gt=0.0, alias="lambda")


class TransformConfig(BaseModel):
    kind: str = Field("rigid")
    rigid: RigidConfig = Field(default_factory=RigidConfig)
    nonrigid: NonrigidConfig = Field(default_factory=NonrigidConfig)

    @field_validator("kind", mode="before")
    @classmethod
    def ensure_known_kind(cls, value: str) -> str:
        kind = str(value).lower()
        if kind not in TRANSFORM_KINDS:
            raise ValueError(f"Unknown transform '{value}', expected one of {TRANSFORM_KINDS}")
        return kind


class RegistrationConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    max_iterations: int = Field(150, ge=0)
    normalize: bool = True
    outlier_weight: float = Field(0.1, ge=0.0, lt=1.0)
    tolerance: float = Field(1e-5, gt=0.0)
    sigma2: float = Field(0.0, ge=0.0, validation_alias=AliasChoices("sigma2", "initial_sigma2"))
    correspondence: bool = Field(
        False, validation_alias=AliasChoices("correspondence", "compute_correspondence")
    )
    comparer: ComparerConfig = Field(default_factory=ComparerConfig)
    transform: TransformConfig = Field(default_factory=TransformConfig)

    @model_validator(mode="before")
    @classmethod
    def accept_probability_engine(cls, data):
        """``probability_engine: kdtree`` is shorthand for ``comparer.name``."""
        if isinstance(data, dict) and "probability_engine" in data:
            data = dict(data)
            engine = data.pop("probability_engine")
            comparer = data.get("comparer") or {}
            if isinstance(comparer, BaseModel):
                comparer = comparer.model_dump()
            data["comparer"] = {**comparer, "name": engine}
        return data


class LoggingConfig(BaseModel):
    level: str = Field("INFO")
    output: str = Field("stdout")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, value: str) -> str:
        return str(value).upper()


class AppConfig(BaseModel):
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)


def load_config(path: str | Path) -> AppConfig:
    """Load configuration from YAML file."""
    with open(path, "r", encoding="utf-8") as handle:
        raw: Dict[str, object] = yaml.safe_load(handle) or {}
    return AppConfig.model_validate(raw)
