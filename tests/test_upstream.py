"""Tests for the upstream conversion service client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from danmaku_proxy.exceptions import UpstreamFetchError
from danmaku_proxy.upstream import UpstreamClient

SOURCE_URL = "https://example.com/video/12345.mp4"
ENCODED = "https%3A%2F%2Fexample.com%2Fvideo%2F12345.mp4"


@pytest.fixture
def client():
    """Fixture providing a client with a trailing slash on its base URL."""
    return UpstreamClient("https://converter.test/", timeout=10)


def test_urls(client):
    """Test browse and download URLs embed the encoded source URL."""
    assert client.browse_url(SOURCE_URL) == f"https://converter.test/?url={ENCODED}"
    assert client.download_url(SOURCE_URL) == f"https://converter.test/?url={ENCODED}&download=on"


@patch("danmaku_proxy.upstream.requests.get")
def test_fetch_success(mock_get, client, upstream_response):
    """Test a successful fetch returns the body and its size."""
    mock_get.return_value = upstream_response

    result = client.fetch(SOURCE_URL)

    assert result.content == upstream_response.content
    assert result.size == len(upstream_response.content)
    assert result.source_url == SOURCE_URL
    mock_get.assert_called_once_with(f"https://converter.test/?url={ENCODED}&download=on", timeout=10)


@patch("danmaku_proxy.upstream.requests.get")
def test_fetch_timeout(mock_get, client):
    """Test a timeout becomes an UpstreamFetchError."""
    mock_get.side_effect = requests.Timeout("read timed out")

    with pytest.raises(UpstreamFetchError, match="timed out"):
        client.fetch(SOURCE_URL)
    assert mock_get.call_count == 1


@patch("danmaku_proxy.upstream.requests.get")
def test_fetch_connection_error(mock_get, client):
    """Test a network failure becomes an UpstreamFetchError."""
    mock_get.side_effect = requests.ConnectionError("refused")

    with pytest.raises(UpstreamFetchError):
        client.fetch(SOURCE_URL)


@patch("danmaku_proxy.upstream.requests.get")
def test_fetch_bad_status(mock_get, client):
    """Test a non-success status becomes an UpstreamFetchError."""
    response = MagicMock()
    response.status_code = 502
    response.raise_for_status.side_effect = requests.HTTPError("502 Server Error")
    mock_get.return_value = response

    with pytest.raises(UpstreamFetchError):
        client.fetch(SOURCE_URL)


def test_from_settings(settings):
    """Test the client takes its base URL and timeout from settings."""
    client = UpstreamClient.from_settings(settings)
    assert client.base_url == "https://converter.test"
    assert client.timeout == settings.FETCH_TIMEOUT_SECONDS
