"""Controller configuration settings and run-file loading."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.errors import ConfigurationError
from common.models.run import RunConfig
from common.utils import deep_merge, load_yaml


class Settings(BaseSettings):
    """Settings loaded from environment variables."""
    model_config = SettingsConfigDict(
        env_prefix="LOADRAMP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Scheduling
    tick_interval: float = Field(default=1.0, gt=0, description="Seconds between scheduler ticks")
    graceful_stop: float = Field(default=30.0, ge=0, description="Seconds retired VUs get to finish")

    # Progress
    progress_interval: float = Field(default=10.0, ge=0, description="0 disables progress logging")

    # Target
    target_url: Optional[str] = None  # overrides target.base_url from the run file
    http_timeout: float = Field(default=10.0, gt=0)

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Global settings instance
_settings: Optional[Settings] = None


def _load_settings(**kwargs) -> Settings:
    try:
        return Settings(**kwargs)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings: {e}") from e


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = _load_settings()
    return _settings


def init_settings(**kwargs) -> Settings:
    """Initialize settings with custom values."""
    global _settings
    _settings = _load_settings(**kwargs)
    return _settings


def build_run_config(data: dict, target_url: Optional[str] = None) -> RunConfig:
    """Validate raw run-file data. Raises ConfigurationError."""
    if not isinstance(data, dict):
        raise ConfigurationError("Run configuration must be a mapping")
    if target_url:
        data = deep_merge(data, {"target": {"base_url": target_url}})
    try:
        return RunConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid run configuration: {e}") from e


def load_run_config(path: str | Path, target_url: Optional[str] = None) -> RunConfig:
    """Load a YAML run file.

    The base URL is taken from the file, then ``LOADRAMP_TARGET_URL``, then
    the explicit ``target_url`` argument, each overriding the previous one.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Run file not found: {path}")
    try:
        data = load_yaml(path)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e

    return build_run_config(data, target_url or get_settings().target_url)
