"""Client for the upstream conversion service that turns a video URL into a comment XML document."""

from urllib.parse import quote

import requests

from danmaku_proxy.config import Settings
from danmaku_proxy.exceptions import UpstreamFetchError
from danmaku_proxy.logging_manager import get_logger
from danmaku_proxy.models import FetchResult


class UpstreamClient:
    """
    Thin wrapper over the conversion service's single query endpoint.

    The service answers ``GET <base>/?url=<source>``; adding ``download=on``
    asks for the document as a download instead of a browse page. Fetches are
    never retried here: a timeout or bad status is a failed request.
    """

    def __init__(self, base_url: str, timeout: int = 10) -> None:
        """
        Initialize the UpstreamClient.

        Args:
            base_url (str): Base URL of the conversion service
            timeout (int): Request timeout in seconds (default: 10)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.logging_manager = get_logger(__name__)

    @classmethod
    def from_settings(cls, settings: Settings) -> "UpstreamClient":
        return cls(base_url=settings.PROXY_SERVICE, timeout=settings.FETCH_TIMEOUT_SECONDS)

    def browse_url(self, source_url: str) -> str:
        """URL of the service's own page for ``source_url``."""
        return f"{self.base_url}/?url={quote(source_url, safe='')}"

    def download_url(self, source_url: str) -> str:
        """URL that makes the service return the document as a download."""
        return f"{self.browse_url(source_url)}&download=on"

    def fetch(self, source_url: str) -> FetchResult:
        """
        Fetch the converted document for a source video URL.

        Args:
            source_url (str): The original video page URL

        Returns:
            FetchResult: The document bytes and their size

        Raises:
            UpstreamFetchError: On network failure, timeout or a non-success status
        """
        self.logging_manager.info(f"Fetching document for {source_url}", ":hourglass:")
        try:
            response = requests.get(self.download_url(source_url), timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as e:
            raise UpstreamFetchError(
                f"Upstream timed out after {self.timeout}s for {source_url}"
            ) from e
        except requests.RequestException as e:
            raise UpstreamFetchError(f"Failed to fetch document for {source_url}: {str(e)}") from e

        content = response.content
        return FetchResult(source_url=source_url, content=content, size=len(content))
