"""
Plugin source fetcher.

Retrieves raw plugin source text from a local file or a remote URL. There is
no retry here; batch callers decide what a failure means.
"""

import asyncio
import threading
import time
from pathlib import Path
from urllib.parse import unquote, urlsplit

import httpx

from musicplug.plugin.errors import FetchError

_token_lock = threading.Lock()
_last_token = 0


def _next_token() -> int:
    # millisecond timestamp, bumped so two calls never share a token
    global _last_token
    with _token_lock:
        _last_token = max(time.time_ns() // 1_000_000, _last_token + 1)
        return _last_token


def add_cache_buster(url: str) -> str:
    """Append `#<timestamp>` to a URL that has no fragment yet."""
    if "#" in url:
        return url
    return f"{url}#{_next_token()}"


def strip_fragment(locator: str) -> str:
    return locator.split("#", 1)[0]


def is_remote(locator: str) -> bool:
    return urlsplit(locator).scheme in ("http", "https")


def local_path(locator: str) -> Path:
    """Filesystem path for a plain path or a file:// URI."""
    parts = urlsplit(locator)
    if parts.scheme == "file":
        return Path(unquote(parts.path))
    return Path(locator)


class SourceFetcher:
    """
    Fetches plugin source text.

    Args:
        timeout: Request timeout in seconds
        client: Optional pre-built client (tests pass one with a MockTransport)
    """

    def __init__(self, timeout: float = 30.0, client: httpx.AsyncClient | None = None):
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def fetch(self, locator: str) -> str:
        """
        Return the text behind `locator`.

        Raises:
            FetchError: If the source is unreachable, not 2xx, or empty
        """
        if is_remote(locator):
            text = await self._fetch_remote(locator)
        else:
            text = await self._fetch_local(locator)

        if not text.strip():
            raise FetchError(f"Plugin source is empty: {strip_fragment(locator)}", locator)
        return text

    async def _fetch_remote(self, url: str) -> str:
        try:
            response = await self._get_client().get(url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"Failed to fetch {strip_fragment(url)}: HTTP {e.response.status_code}", url
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(f"Failed to fetch {strip_fragment(url)}: {e}", url) from e
        return response.text

    async def _fetch_local(self, locator: str) -> str:
        path = local_path(locator)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise FetchError(f"Plugin file not found: {path}", locator) from e
        except (OSError, UnicodeDecodeError) as e:
            raise FetchError(f"Failed to read plugin file {path}: {e}", locator) from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
