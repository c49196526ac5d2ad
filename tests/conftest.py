import pytest
from unittest.mock import MagicMock

from danmaku_proxy.cache import XmlCacheStore
from danmaku_proxy.config import Settings

START_TIME = 1_700_000_000.0
DAY = 24 * 3600


class FakeClock:
    """Manually advanced stand-in for time.time."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    """Fixture providing a fake clock starting at a fixed epoch time."""
    return FakeClock()


@pytest.fixture
def xml_dir(tmp_path):
    """Fixture providing a cache directory path that does not exist yet."""
    return tmp_path / "xml"


@pytest.fixture
def settings(xml_dir):
    """
    Fixture providing settings isolated from the environment and any .env file.
    """
    return Settings(
        _env_file=None,
        XML_DIR=str(xml_dir),
        CLEAN_SECRET="s3cret",
        PROXY_SERVICE="https://converter.test",
        MAINTENANCE_INTERVAL_SECONDS=0,
    )


@pytest.fixture
def store(xml_dir, clock):
    """Fixture providing a filesystem cache store driven by the fake clock."""
    return XmlCacheStore(root=str(xml_dir), ttl=DAY, max_entries=100, clock=clock)


@pytest.fixture
def upstream_response():
    """Fixture providing a successful mocked upstream response."""
    response = MagicMock()
    response.status_code = 200
    response.content = b"<?xml version=\"1.0\"?><i><d p=\"0\">hello</d></i>"
    return response
