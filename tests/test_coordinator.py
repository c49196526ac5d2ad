"""Tests for key derivation and the fetch-or-serve coordinator."""

from unittest.mock import MagicMock

import pytest

from danmaku_proxy.coordinator import ProxyCoordinator, derive_key, is_bypass_host
from danmaku_proxy.exceptions import StorageError, UpstreamFetchError
from danmaku_proxy.metrics_manager import MetricsManager
from danmaku_proxy.models import CacheLookup, FetchResult
from danmaku_proxy.upstream import UpstreamClient

DAY = 24 * 3600
SOURCE_URL = "https://example.com/video/12345.mp4"


@pytest.fixture
def upstream():
    """Fixture providing a mocked upstream client with real URL building."""
    client = MagicMock(spec=UpstreamClient)
    real = UpstreamClient("https://converter.test")
    client.browse_url.side_effect = real.browse_url
    client.fetch.return_value = FetchResult(source_url=SOURCE_URL, content=b"<i/>")
    return client


@pytest.fixture
def coordinator(store, upstream, clock):
    """Fixture providing a coordinator over the on-disk store."""
    return ProxyCoordinator(store=store, upstream=upstream, metrics_manager=MetricsManager(), clock=clock)


def test_derive_key_basic():
    """Test the key is the last path segment without its extension."""
    assert derive_key(SOURCE_URL) == "12345"
    assert derive_key("https://v.example.org/play/abc") == "abc"
    assert derive_key("https://example.com/a/b/ep01.part1.flv?x=1#t") == "ep01"


def test_derive_key_deterministic():
    """Test the same URL always yields the same key."""
    assert derive_key(SOURCE_URL) == derive_key(SOURCE_URL)


def test_derive_key_collision_is_accepted():
    """Test different URLs sharing a final segment map to one key."""
    assert derive_key("https://a.com/x/42.mp4") == derive_key("https://b.com/y/42.mkv")


@pytest.mark.parametrize("url", [
    "not a url",
    "/relative/path/42.mp4",
    "https://example.com:notaport/v/1.mp4",
    "http://[::1/v/1.mp4",
    "https://example.com/",
])
def test_derive_key_falls_back_to_timestamp(url, clock):
    """Test unusable URLs get a millisecond timestamp key instead of failing."""
    assert derive_key(url, clock) == str(int(clock() * 1000))


def test_is_bypass_host():
    """Test the bypass marker is matched against the hostname only."""
    assert is_bypass_host("https://www.bilibili.com/video/BV1xx411c7mD", "bilibili")
    assert not is_bypass_host("https://example.com/bilibili/1.mp4", "bilibili")
    assert not is_bypass_host("not a url", "bilibili")
    assert not is_bypass_host("https://www.bilibili.com/video/1", "")


def test_handle_miss_fetches_and_writes(coordinator, upstream, store, xml_dir):
    """Test a cold request fetches upstream and caches the document."""
    location = coordinator.handle(SOURCE_URL)

    assert location == "/xml/12345.xml"
    upstream.fetch.assert_called_once_with(SOURCE_URL)
    assert (xml_dir / "12345.xml").read_bytes() == b"<i/>"
    assert coordinator.metrics_manager.get("cache_misses") == 1
    assert coordinator.metrics_manager.get("entries_written") == 1


def test_handle_hit_skips_upstream(coordinator, upstream, clock):
    """Test a repeat request within the TTL is served without fetching."""
    coordinator.handle(SOURCE_URL)
    upstream.fetch.reset_mock()
    clock.advance(DAY - 60)

    assert coordinator.handle(SOURCE_URL) == "/xml/12345.xml"
    upstream.fetch.assert_not_called()
    assert coordinator.metrics_manager.get("cache_hits") == 1


def test_handle_stale_refetches(coordinator, upstream, clock, xml_dir):
    """Test a request after the TTL fetches again and overwrites the entry."""
    coordinator.handle(SOURCE_URL)
    clock.advance(DAY + 1)
    upstream.fetch.return_value = FetchResult(source_url=SOURCE_URL, content=b"<i>new</i>")

    assert coordinator.handle(SOURCE_URL) == "/xml/12345.xml"
    assert upstream.fetch.call_count == 2
    assert (xml_dir / "12345.xml").read_bytes() == b"<i>new</i>"


def test_handle_bypass_host_never_touches_cache(upstream):
    """Test bypass-host URLs redirect to the converter without any cache access."""
    store = MagicMock()
    coordinator = ProxyCoordinator(store=store, upstream=upstream)
    url = "https://www.bilibili.com/video/BV1xx411c7mD"

    location = coordinator.handle(url)

    assert location == "https://converter.test/?url=https%3A%2F%2Fwww.bilibili.com%2Fvideo%2FBV1xx411c7mD"
    assert store.method_calls == []
    upstream.fetch.assert_not_called()


def test_handle_upstream_failure_writes_nothing(coordinator, upstream, xml_dir):
    """Test a failed fetch propagates and leaves no entry behind."""
    upstream.fetch.side_effect = UpstreamFetchError("timeout")

    with pytest.raises(UpstreamFetchError):
        coordinator.handle(SOURCE_URL)

    assert not (xml_dir / "12345.xml").exists()
    assert coordinator.metrics_manager.get("upstream_errors") == 1


def test_handle_lookup_error_propagates(upstream):
    """Test storage errors during lookup are not mistaken for a miss."""
    store = MagicMock()
    store.lookup.side_effect = StorageError("denied")
    coordinator = ProxyCoordinator(store=store, upstream=upstream)

    with pytest.raises(StorageError):
        coordinator.handle(SOURCE_URL)
    upstream.fetch.assert_not_called()


def test_handle_malformed_url_uses_fallback_key(upstream, clock):
    """Test a malformed URL still goes through the fetch path with a fallback key."""
    store = MagicMock()
    store.lookup.return_value = CacheLookup(key="k", location="/xml/k.xml")
    store.write.return_value = CacheLookup(key="k", found=True, valid=True, location="/xml/k.xml")
    coordinator = ProxyCoordinator(store=store, upstream=upstream, clock=clock)

    coordinator.handle("not a url")

    store.lookup.assert_called_once_with(str(int(clock() * 1000)))
    upstream.fetch.assert_called_once_with("not a url")


@pytest.mark.parametrize("url, key", [
    ("file:///videos/1.mp4", "1"),
    ("scheme:path/1.mp4", "1"),
])
def test_derive_key_hostless_url_is_deterministic(url, key, clock):
    """Test URLs without a host still parse and give a stable key."""
    first = derive_key(url, clock)
    clock.advance(1)
    assert first == key
    assert derive_key(url, clock) == key
