"""Tests for the configuration module."""

import logging

import pytest
from pydantic import ValidationError

from danmaku_proxy.config import Settings, get_log_level


def test_defaults(monkeypatch):
    """Test the fixed defaults apply when nothing is configured."""
    for name in ("PROXY_SERVICE", "CLEAN_SECRET", "XML_DIR", "KEEP_HOURS", "MAX_FILE_COUNT",
                 "FETCH_TIMEOUT_SECONDS", "ERROR_REDIRECT_URL"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)

    assert settings.PROXY_SERVICE == "https://fc.lyz05.cn"
    assert settings.CLEAN_SECRET is None
    assert settings.XML_DIR == "/tmp/xml"
    assert settings.ttl_seconds == 24 * 3600
    assert settings.MAX_FILE_COUNT == 100
    assert settings.FETCH_TIMEOUT_SECONDS == 10
    assert settings.ERROR_REDIRECT_URL == "https://http.cat/500"


def test_environment_overrides(monkeypatch):
    """Test values are read from the environment."""
    monkeypatch.setenv("PROXY_SERVICE", "https://converter.example")
    monkeypatch.setenv("CLEAN_SECRET", "hunter2")
    monkeypatch.setenv("KEEP_HOURS", "2")

    settings = Settings(_env_file=None)

    assert settings.PROXY_SERVICE == "https://converter.example"
    assert settings.CLEAN_SECRET == "hunter2"
    assert settings.ttl_seconds == 7200


def test_settings_are_frozen():
    """Test settings cannot be mutated after startup."""
    settings = Settings(_env_file=None)
    with pytest.raises(ValidationError):
        settings.CLEAN_SECRET = "changed"


@pytest.mark.parametrize("name, expected", [
    ("debug", logging.DEBUG),
    ("WARNING", logging.WARNING),
    ("nonsense", logging.INFO),
])
def test_get_log_level(name, expected):
    """Test log level names map to logging constants."""
    assert get_log_level(Settings(_env_file=None, LOG_LEVEL=name)) == expected
