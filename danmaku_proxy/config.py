"""Configuration module for the danmaku-proxy service."""

import logging
from typing import Optional
from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic for validation and environment variable loading.
    Settings are loaded from environment variables or .env file and are
    frozen once constructed, so the same instance can be handed to every
    component at startup.
    """

    # Upstream conversion service
    PROXY_SERVICE: str = "https://fc.lyz05.cn"
    FETCH_TIMEOUT_SECONDS: int = 10
    BYPASS_HOST_MARKER: str = "bilibili"

    # Cleanup endpoint secret; unset means the endpoint always refuses
    CLEAN_SECRET: Optional[str] = None

    # Cache settings
    XML_DIR: str = "/tmp/xml"
    KEEP_HOURS: int = 24
    MAX_FILE_COUNT: int = 100
    MAINTENANCE_INTERVAL_SECONDS: int = 60

    # Where clients are sent when anything goes wrong
    ERROR_REDIRECT_URL: str = "https://http.cat/500"

    # Logging settings
    LOG_LEVEL: str = "INFO"

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
        "frozen": True,
    }

    @property
    def ttl_seconds(self) -> int:
        """Cache entry time-to-live in seconds."""
        return self.KEEP_HOURS * 3600


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings singleton.

    Returns:
        Settings: Application settings instance
    """
    return Settings()


def get_log_level(settings: Optional[Settings] = None) -> int:
    """
    Get log level as integer value.

    Args:
        settings (Optional[Settings]): Settings to read from (default: the singleton)

    Returns:
        int: Logging level (e.g., logging.INFO)
    """
    settings = settings or get_settings()
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(settings.LOG_LEVEL.upper(), logging.INFO)
