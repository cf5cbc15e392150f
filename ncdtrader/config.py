from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.combine import CombineStrategy
from .core.encoding import EncodingType
from .core.model import DistanceModel, ModelType, new_model
from .core.predict import PredictionStrategy
from .core.splicer import NormalisationType, SpliceOptions
from .errors import InvalidConfiguration


def _coerce(enum_cls, v):  # type: ignore[no-untyped-def]
    if isinstance(v, enum_cls):
        return v
    return enum_cls.parse(str(v))


class SpliceConfig(BaseModel):
    period: int = Field(24 * 7, ge=1, description="Window length in records")
    result_n: int = Field(24, ge=0, description="Label horizon past the window")
    skip_n: int = Field(3, ge=0, description="Records skipped between window starts")
    normalisation: NormalisationType = NormalisationType.Z_SCORE

    @field_validator("normalisation", mode="before")
    @classmethod
    def _parse_normalisation(cls, v):  # type: ignore[no-untyped-def]
        return _coerce(NormalisationType, v)

    def to_options(self) -> SpliceOptions:
        return SpliceOptions(
            period=self.period,
            result_n=self.result_n,
            skip_n=self.skip_n,
            normalisation=self.normalisation,
        )


class ModelConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model_type: ModelType = ModelType.COMPRESSION
    encoding: EncodingType = EncodingType.ROMAN
    combine: CombineStrategy = CombineStrategy.INTERLEAVE
    splice: SpliceConfig = Field(default_factory=SpliceConfig)

    @field_validator("model_type", mode="before")
    @classmethod
    def _parse_model_type(cls, v):  # type: ignore[no-untyped-def]
        return _coerce(ModelType, v)

    @field_validator("encoding", mode="before")
    @classmethod
    def _parse_encoding(cls, v):  # type: ignore[no-untyped-def]
        return _coerce(EncodingType, v)

    @field_validator("combine", mode="before")
    @classmethod
    def _parse_combine(cls, v):  # type: ignore[no-untyped-def]
        return _coerce(CombineStrategy, v)


class PredictionConfig(BaseModel):
    strategy: PredictionStrategy = PredictionStrategy.WNN
    nearest_n: int = Field(9, ge=1, description="Neighbours that vote")

    @field_validator("strategy", mode="before")
    @classmethod
    def _parse_strategy(cls, v):  # type: ignore[no-untyped-def]
        return _coerce(PredictionStrategy, v)


class EngineConfig(BaseModel):
    max_workers: Optional[int] = Field(
        None, ge=1, description="Distance matrix worker threads (None = CPU count)"
    )
    compression_level: int = Field(9, ge=0, le=9)


class EvalConfig(BaseModel):
    bucket_size: float = Field(0.01, gt=0, description="Distance bucket width for dstvar")
    downsample: int = Field(8, ge=1, description="Heatmap block size")


class RuntimeConfig(BaseModel):
    model: ModelConfig = Field(default_factory=ModelConfig)
    prediction: PredictionConfig = Field(default_factory=PredictionConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    evaluation: EvalConfig = Field(default_factory=EvalConfig)
    network_timeout_sec: int = 30
    max_retries: int = 5
    backoff_base_sec: float = 0.5
    backoff_cap_sec: float = 10.0

    def new_model(self) -> DistanceModel:
        """Empty model built from the configured options."""
        return new_model(
            self.model.model_type,
            self.model.splice.to_options(),
            encoding=self.model.encoding,
            combine=self.model.combine,
            compression_level=self.engine.compression_level,
            max_workers=self.engine.max_workers,
        )


class EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    LOG_LEVEL: str = "INFO"

    # Polygon
    POLYGON_API_KEY: Optional[str] = None
    POLYGON_BASE_URL: str = "https://api.polygon.io"


class AppConfig(BaseModel):
    env: EnvSettings
    runtime: RuntimeConfig

    @field_validator("env", mode="before")
    @classmethod
    def _coerce_env(cls, v):  # type: ignore[no-untyped-def]
        if isinstance(v, dict):
            return EnvSettings(**v)
        return v

    @staticmethod
    def load(config_path: Optional[Path] = None) -> "AppConfig":
        env = EnvSettings()  # loads from environment and .env

        runtime = RuntimeConfig()
        if config_path is None:
            default_path = Path("config.yaml")
            config_path = default_path if default_path.exists() else None

        if config_path and Path(config_path).exists():
            try:
                with open(config_path, "r", encoding="utf-8") as fh:
                    raw = yaml.safe_load(fh) or {}
            except yaml.YAMLError as ye:
                raise InvalidConfiguration(f"Invalid {config_path}: {ye}") from ye
            if not isinstance(raw, dict):
                raise InvalidConfiguration(
                    f"Invalid {config_path}: top level must be a mapping, got {type(raw).__name__}"
                )
            try:
                runtime = RuntimeConfig(**raw)
            except ValidationError as ve:
                raise InvalidConfiguration(f"Invalid {config_path}: {ve}") from ve
        elif config_path:
            raise InvalidConfiguration(f"config file not found: {config_path}")

        return AppConfig(env=env, runtime=runtime)


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load merged configuration from environment and optional YAML."""

    return AppConfig.load(config_path)
