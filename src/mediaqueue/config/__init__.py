"""mediaqueue configuration module.

Provides centralized configuration management using pydantic-settings.

Usage:
    from mediaqueue.config import get_settings

    settings = get_settings()
    print(settings.server_url)
    print(settings.retry_config())
"""

from functools import lru_cache

from mediaqueue.config.settings import Settings, load_settings

__all__ = ["Settings", "get_settings", "load_settings"]


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Loaded from MEDIAQUEUE_* environment variables, the .env file and, when
    present, the YAML file at MEDIAQUEUE_CONFIG_FILE or the default config path.

    To reload settings, call get_settings.cache_clear() first.
    """
    return load_settings()
