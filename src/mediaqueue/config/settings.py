"""mediaqueue configuration settings using pydantic-settings."""

import os
from functools import cached_property
from pathlib import Path
from typing import Any

import yaml
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mediaqueue.logging import config_logger, log_config_change
from mediaqueue.sync.backoff import RetryConfig

DEFAULT_CONFIG_FILE = Path("~/.config/mediaqueue/config.yaml")


class Settings(BaseSettings):
    """Configuration settings for the upload queue.

    Settings are loaded from environment variables with the MEDIAQUEUE_ prefix.
    For example, MEDIAQUEUE_SERVER_URL=http://nas.local:3001 sets server_url.
    """

    model_config = SettingsConfigDict(
        env_prefix="MEDIAQUEUE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server settings
    server_url: str = "http://localhost:3001"
    upload_path: str = "/api/media/upload"
    health_path: str = "/health"
    request_timeout: float = 30.0  # seconds per upload request

    # Retries within one drain pass (milliseconds)
    max_retries: int = 3
    initial_delay_ms: float = 1000.0
    max_delay_ms: float = 10000.0
    backoff_factor: float = 2.0

    # Queue behaviour
    heartbeat_interval: float = 15.0  # seconds between health checks
    sweep_interval: float = 60.0  # seconds between periodic drains
    auto_requeue: bool = True

    # File paths
    data_dir: Path = Path("~/.local/share/mediaqueue")

    # Logging
    log_level: str = "INFO"
    log_file: Path | None = None
    device_id: str | None = None

    @field_validator("max_retries")
    @classmethod
    def validate_max_retries(cls, v: int) -> int:
        """Ensure retry count is not negative."""
        if v < 0:
            raise ValueError("max_retries must be 0 or greater")
        return v

    @field_validator(
        "initial_delay_ms", "max_delay_ms", "request_timeout", "heartbeat_interval", "sweep_interval"
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Ensure delays and intervals are positive."""
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v

    @field_validator("backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, v: float) -> float:
        """Ensure backoff never shrinks."""
        if v < 1:
            raise ValueError("backoff_factor must be at least 1")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensure log level is valid."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @cached_property
    def data_path(self) -> Path:
        """Return expanded data directory path."""
        return self.data_dir.expanduser()

    @cached_property
    def queue_db_path(self) -> Path:
        """Return path of the SQLite queue database."""
        return self.data_path / "upload_queue.db"

    def retry_config(self) -> RetryConfig:
        """Build the retry settings used for each drain attempt."""
        return RetryConfig(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay_ms,
            max_delay=self.max_delay_ms,
            factor=self.backoff_factor,
        )


def _read_overrides(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (yaml.YAMLError, OSError) as e:
        config_logger().warning("Failed to load config from %s: %s", path, e)
        return {}

    if not isinstance(data, dict):
        config_logger().warning("Ignoring config file %s: expected a mapping", path)
        return {}
    return data


def load_settings(config_file: Path | None = None) -> Settings:
    """Load settings from the environment plus an optional YAML file.

    Environment variables win over values in the YAML file, which win over
    the defaults.

    Args:
        config_file: YAML file path. Defaults to MEDIAQUEUE_CONFIG_FILE or
            ~/.config/mediaqueue/config.yaml

    Returns:
        Settings instance
    """
    if config_file is None:
        config_file = Path(os.environ.get("MEDIAQUEUE_CONFIG_FILE", DEFAULT_CONFIG_FILE))
    config_file = Path(config_file).expanduser()

    base = Settings()
    overrides = {
        key: value
        for key, value in _read_overrides(config_file).items()
        if key in Settings.model_fields and key not in base.model_fields_set
    }
    if not overrides:
        return base

    settings = Settings(**overrides)
    log = config_logger()
    for key in overrides:
        log_config_change(
            log,
            key,
            str(getattr(base, key)),
            str(getattr(settings, key)),
        )
    return settings
