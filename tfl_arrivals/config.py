"""
Configuration loading for tfl-arrivals.

Stop id, TfL credentials and the listen address come from environment
variables (a local .env file is honoured). Optional non-secret tuning comes
from a YAML file named by CONFIG_PATH.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field, ValidationError, model_validator

# env var -> config field
ENV_FIELDS = {
    "TFL_STOP_ID": "stop_id",
    "TFL_APP_ID": "app_id",
    "TFL_APP_KEY": "app_key",
    "API_KEY": "api_key",
    "HOST": "host",
    "PORT": "port",
}

SECRET_FIELDS = ("app_id", "app_key", "api_key")


class ConfigError(Exception):
    """Required configuration is missing or invalid."""


class AppConfig(BaseModel):
    """Application configuration. Secrets come from env vars, tuning from YAML."""

    # Upstream identity (from environment only)
    stop_id: str = Field(min_length=1)
    app_id: str = Field(min_length=1)
    app_key: str = Field(min_length=1)

    # Optional inbound API key
    api_key: Optional[str] = None

    # Listen address
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=0, le=65535)

    # TfL settings
    tfl_base_url: str = "https://api.tfl.gov.uk"
    request_timeout: float = Field(default=5.0, gt=0)

    # Cache / retry settings
    freshness_window: float = Field(default=30.0, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_base_delay: float = Field(default=0.5, ge=0)
    retry_max_delay: float = Field(default=4.0, ge=0)
    rate_limit_backoff: float = Field(default=30.0, ge=0)

    @model_validator(mode="after")
    def validate_retry_delays(self) -> "AppConfig":
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        return self


def _read_yaml(config_path: str) -> dict:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file {config_path} is not valid YAML: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")
    bad_keys = [k for k in raw if not isinstance(k, str)]
    if bad_keys:
        raise ConfigError(f"Config file {config_path} has non-string keys: {bad_keys!r}")
    return raw


def load_config(config_path: str | None = None) -> AppConfig:
    """
    Load configuration from environment variables + optional YAML file.

    Args:
        config_path: Path to a YAML tuning file. If None, reads CONFIG_PATH
                     env var; when that is unset too, no file is read.

    Returns:
        Validated AppConfig instance.

    Raises:
        FileNotFoundError: config_path names a file that does not exist.
        ConfigError: required values are missing or invalid.
    """
    load_dotenv(find_dotenv(usecwd=True), override=False)

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH") or None

    raw = _read_yaml(config_path) if config_path else {}

    # Secrets are never taken from YAML
    raw = {k: v for k, v in raw.items() if k not in SECRET_FIELDS}

    # Environment wins over YAML; empty values count as unset
    env_values = {
        field: os.environ[name]
        for name, field in ENV_FIELDS.items()
        if os.environ.get(name)
    }

    try:
        return AppConfig(**{**raw, **env_values})
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
