"""Configuration loading for dockershocker.

Values come from, in increasing priority: built-in defaults, the YAML config
file, ``DOCKERSHOCKER_*`` environment variables and explicit overrides (CLI
flags).
"""

import datetime
import os
from typing import Any, Dict, Optional

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

logger = structlog.get_logger()

CONFIG_PATH = os.getenv("DOCKERSHOCKER_CONFIG_PATH", "/etc/dockershocker/config.yml")

ENV_PREFIX = "DOCKERSHOCKER_"

LOG_LEVELS = {"debug", "info", "warn", "warning", "error"}


class Settings(BaseModel):
    """Runtime settings."""

    docker_host: str = "tcp://dockerproxy:2375"
    port: int = Field(default=8080, gt=0, lt=65536)
    log_level: str = "info"
    idle_timeout_minutes: int = Field(default=15, gt=0)
    sweep_interval_seconds: float = Field(default=60.0, gt=0)
    sweep_backoff_seconds: float = Field(default=2.0, gt=0)
    rate_limit: float = Field(default=5.0, gt=0)
    burst_limit: int = Field(default=10, ge=1)
    enabled_label: str = "dockershocker.enabled"
    timeout_label: str = "dockershocker.timeout_minutes"

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}")
        return value

    @property
    def default_idle_timeout(self) -> datetime.timedelta:
        return datetime.timedelta(minutes=self.idle_timeout_minutes)


def _read_config_file(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except FileNotFoundError:
        logger.warning("config_not_found", path=path)
        return {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning("config_read_failed", path=path, error=str(e))
        return {}

    if not isinstance(raw, dict):
        logger.warning("config_not_a_mapping", path=path)
        return {}
    return raw


def _read_env() -> Dict[str, str]:
    values = {}
    for field in Settings.model_fields:
        env_value = os.getenv(ENV_PREFIX + field.upper())
        if env_value is not None:
            values[field] = env_value
    return values


def load_settings(path: Optional[str] = None, **overrides: Any) -> Settings:
    """Build settings from config file, environment and overrides.

    Args:
        path: YAML config file; defaults to ``DOCKERSHOCKER_CONFIG_PATH``
        **overrides: Explicit values; ``None`` values are ignored

    Raises:
        pydantic.ValidationError: a value is invalid
    """
    path = path or CONFIG_PATH
    values: Dict[str, Any] = {}

    file_values = _read_config_file(path)
    unknown = set(file_values) - set(Settings.model_fields)
    if unknown:
        logger.warning("config_unknown_keys", path=path, keys=sorted(unknown))
    values.update({k: v for k, v in file_values.items() if k in Settings.model_fields})

    values.update(_read_env())
    values.update({k: v for k, v in overrides.items() if v is not None})

    settings = Settings(**values)
    logger.info(
        "config_loaded",
        docker_host=settings.docker_host,
        idle_timeout_minutes=settings.idle_timeout_minutes,
        sweep_interval_seconds=settings.sweep_interval_seconds,
        rate_limit=settings.rate_limit,
        burst_limit=settings.burst_limit,
    )
    return settings
