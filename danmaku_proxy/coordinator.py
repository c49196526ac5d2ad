"""Fetch-or-serve coordination: decide between a cached document and a fresh upstream fetch."""

import time
from typing import Callable, Optional
from urllib.parse import urlparse

from danmaku_proxy.cache import CacheStore
from danmaku_proxy.exceptions import UpstreamFetchError
from danmaku_proxy.logging_manager import get_logger
from danmaku_proxy.metrics_manager import MetricsManager
from danmaku_proxy.upstream import UpstreamClient


def fallback_key(clock: Callable[[], float] = time.time) -> str:
    """Key used when a URL cannot be parsed: the current time in milliseconds."""
    return str(int(clock() * 1000))


def derive_key(url: str, clock: Callable[[], float] = time.time) -> str:
    """
    Derive a cache key from a source URL.

    Takes the last path segment and keeps the part before its first dot, so
    ``https://example.com/video/12345.mp4`` becomes ``12345``. URLs sharing a
    final segment collide; that is accepted.

    Hostless URLs such as ``file:///videos/1.mp4`` parse normally.
    Never fails: an unparseable URL, or one whose last segment is empty,
    gets a timestamp key instead (not reproducible across retries).

    Args:
        url (str): Source video URL
        clock (Callable[[], float]): Time source for the fallback key

    Returns:
        str: Non-empty cache key
    """
    try:
        parsed = urlparse(url)
        if not parsed.scheme:
            raise ValueError(f"Not an absolute URL: {url!r}")
        _ = parsed.port  # raises ValueError on a malformed port
    except (ValueError, TypeError, AttributeError):
        return fallback_key(clock)

    key = parsed.path.split("/")[-1].split(".")[0]
    if not key or "\\" in key or "\x00" in key:
        return fallback_key(clock)
    return key


def is_bypass_host(url: str, marker: str) -> bool:
    """Whether ``url`` belongs to the provider the conversion service serves directly."""
    try:
        hostname = urlparse(url).hostname or ""
    except ValueError:
        return False
    return bool(marker) and marker in hostname


class ProxyCoordinator:
    """
    Turns a source URL into a redirect location.

    Bypass-host URLs go straight to the conversion service. Everything else
    is served from the cache when fresh and fetched and written otherwise.
    Exceptions from the cache store or the upstream client propagate; the
    HTTP layer maps every failure to the same error redirect.
    """

    def __init__(self, store: CacheStore, upstream: UpstreamClient,
                 bypass_marker: str = "bilibili",
                 metrics_manager: Optional[MetricsManager] = None,
                 clock: Callable[[], float] = time.time) -> None:
        """
        Initialize the ProxyCoordinator.

        Args:
            store (CacheStore): Where documents are cached
            upstream (UpstreamClient): Conversion service client
            bypass_marker (str): Hostname fragment that skips the cache (default: "bilibili")
            metrics_manager (Optional[MetricsManager]): Counter sink; a private one is created if omitted
            clock (Callable[[], float]): Time source for fallback keys
        """
        self.store = store
        self.upstream = upstream
        self.bypass_marker = bypass_marker
        self.metrics_manager = metrics_manager or MetricsManager()
        self.clock = clock
        self.logging_manager = get_logger(__name__)

    def handle(self, url: str) -> str:
        """
        Resolve a source URL to the location the client should be redirected to.

        Args:
            url (str): Decoded source video URL

        Returns:
            str: Either the conversion service's browse URL (bypass hosts) or
            the public path of the cached document

        Raises:
            UpstreamFetchError: If the document could not be fetched
            StorageError: If the cache could not be read or written
        """
        if is_bypass_host(url, self.bypass_marker):
            self.metrics_manager.increment("bypass_redirects")
            self.logging_manager.debug(f"Bypassing cache for {url}", ":arrow_right:")
            return self.upstream.browse_url(url)

        key = derive_key(url, self.clock)
        cached = self.store.lookup(key)
        if cached.valid:
            self.metrics_manager.increment("cache_hits")
            self.logging_manager.info(f"Cache hit for {url} -> {key}", ":rocket:")
            return cached.location

        self.metrics_manager.increment("cache_misses")
        reason = f"stale ({cached.age_seconds:.0f}s old)" if cached.found else "missing"
        self.logging_manager.info(f"Cache {reason} for {url} -> {key}, fetching...", ":hourglass:")

        self.metrics_manager.increment("upstream_fetches")
        try:
            result = self.upstream.fetch(url)
        except UpstreamFetchError:
            self.metrics_manager.increment("upstream_errors")
            raise

        written = self.store.write(key, result.content)
        self.metrics_manager.increment("entries_written")
        self.logging_manager.info(f"Cached {result.size} bytes for {key}", ":floppy_disk:")
        return written.location
