"""HTTP helpers for metadata fetches.

This module provides:
- PageCache: a per-process cache of small metadata pages keyed by address
- PageFetcher: an httpx-backed fetcher that consults the cache
- create_client(): the shared httpx client factory
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Mapping

import httpx

from quickget.config import Settings
from quickget.errors import HTTP_ERROR, NETWORK_ERROR, TIMEOUT, SourceError

logger = logging.getLogger(__name__)

# Pages larger than this are returned but never stored
DEFAULT_MAX_ENTRY_BYTES = 10 * 1024 * 1024  # 10 MiB


def create_client(settings: Settings) -> httpx.Client:
    """Create the HTTP client used for metadata and downloads.

    Args:
        settings: Application settings.

    Returns:
        httpx.Client following redirects with the configured User-Agent.
    """
    return httpx.Client(
        follow_redirects=True,
        timeout=settings.request_timeout,
        headers={"User-Agent": settings.user_agent},
    )


class PageCache:
    """Thread-safe cache of page bodies keyed by exact request address.

    The lock only guards dictionary access; callers must not hold it while
    performing network I/O, so two threads may race to fetch the same page.
    """

    def __init__(self, max_entry_bytes: int = DEFAULT_MAX_ENTRY_BYTES) -> None:
        """Initialize PageCache.

        Args:
            max_entry_bytes: Bodies larger than this are not stored.
        """
        self.max_entry_bytes = max_entry_bytes
        self._pages: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, url: str) -> str | None:
        """Return the cached body for ``url``, if any."""
        with self._lock:
            return self._pages.get(url)

    def put(self, url: str, body: str) -> bool:
        """Store ``body`` unless it exceeds the size threshold.

        Returns:
            True if the body was stored.
        """
        if len(body.encode("utf-8")) > self.max_entry_bytes:
            logger.debug("Not caching %s: body exceeds %d bytes", url, self.max_entry_bytes)
            return False
        with self._lock:
            self._pages[url] = body
        return True

    def clear(self) -> None:
        """Drop every cached page."""
        with self._lock:
            self._pages.clear()

    def __contains__(self, url: object) -> bool:
        with self._lock:
            return url in self._pages

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)


class PageFetcher:
    """Fetch text pages, reusing identical GETs within one run."""

    def __init__(
        self,
        client: httpx.Client,
        cache: PageCache | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize PageFetcher.

        Args:
            client: HTTPX client instance.
            cache: Page cache; a private one is created if not provided.
            timeout: Per-request timeout (client default if None).
        """
        self.client = client
        self.cache = cache if cache is not None else PageCache()
        self.timeout = timeout

    def get_text(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
        use_cache: bool = True,
    ) -> str:
        """GET ``url`` and return its body as text.

        Args:
            url: Page address (also the cache key).
            headers: Extra request headers.
            use_cache: Whether to consult and populate the cache.

        Returns:
            Response body.

        Raises:
            SourceError: On HTTP, timeout or network failures.
        """
        if use_cache:
            cached = self.cache.get(url)
            if cached is not None:
                logger.debug("Page cache hit for %s", url)
                return cached

        logger.debug("Fetching %s", url)
        response = self._request("GET", url, headers=headers)
        body = response.text

        if use_cache:
            self.cache.put(url, body)
        return body

    def post_text(
        self,
        url: str,
        content: str | bytes = b"",
        headers: Mapping[str, str] | None = None,
    ) -> str:
        """POST to ``url`` and return the response body; never cached."""
        return self._request("POST", url, headers=headers, content=content).text

    def request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        content: str | bytes | None = None,
    ) -> httpx.Response:
        """Issue an uncached request and return the raw response."""
        return self._request(method, url, headers=headers, content=content)

    def _request(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str] | None = None,
        content: str | bytes | None = None,
    ) -> httpx.Response:
        kwargs: dict[str, object] = {}
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        try:
            response = self.client.request(
                method,
                url,
                headers=dict(headers) if headers else None,
                content=content,
                **kwargs,  # type: ignore[arg-type]
            )
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            raise SourceError(
                f"HTTP error fetching {url}: {e.response.status_code} {e.response.reason_phrase}",
                code=HTTP_ERROR,
            ) from e
        except httpx.TimeoutException as e:
            raise SourceError(f"Timeout fetching {url}", code=TIMEOUT) from e
        except httpx.RequestError as e:
            raise SourceError(
                f"Network error fetching {url}: {e}", code=NETWORK_ERROR
            ) from e


__all__ = [
    "DEFAULT_MAX_ENTRY_BYTES",
    "PageCache",
    "PageFetcher",
    "create_client",
]
