"""Polite HTTP page fetching with per-domain pacing and retries."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import urlparse

import httpx

from article_scout.core.extraction.models import normalize_hostname
from article_scout.shared.config import Settings
from article_scout.shared.exceptions import FetchError

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


class PageFetcher:
    """Fetch HTML pages over HTTP.

    Consecutive requests to the same host are spaced by ``HTTP_DOMAIN_DELAY``.
    Rate-limited responses (429) back off exponentially, server errors back
    off linearly, and any other 4xx fails immediately.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._last_request: Dict[str, float] = {}
        self._domain_lock = asyncio.Lock()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=self.settings.HTTP_TIMEOUT,
                headers={"User-Agent": self.settings.HTTP_USER_AGENT, **DEFAULT_HEADERS},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _respect_domain_delay(self, url: str) -> None:
        host = normalize_hostname(urlparse(url).hostname or "")
        async with self._domain_lock:
            last = self._last_request.get(host)
            if last is not None:
                wait = self.settings.HTTP_DOMAIN_DELAY - (time.monotonic() - last)
                if wait > 0:
                    await self._sleep(wait)
            self._last_request[host] = time.monotonic()

    def _backoff(self, attempt: int, status_code: Optional[int]) -> float:
        base = self.settings.HTTP_RETRY_BASE_DELAY
        if status_code == 429:
            return base * (2 ** (attempt - 1))
        return base * attempt

    async def fetch(self, url: str) -> str:
        """Return the decoded body of ``url``.

        Raises:
            FetchError: On a non-retryable status or once retries are exhausted
        """
        max_attempts = self.settings.HTTP_MAX_RETRIES
        last_error: Optional[FetchError] = None

        for attempt in range(1, max_attempts + 1):
            await self._respect_domain_delay(url)
            try:
                return await self._fetch_once(url)
            except FetchError as e:
                last_error = e
                if not e.retryable or attempt == max_attempts:
                    break
                delay = self._backoff(attempt, e.status_code)
                self.logger.warning(
                    f"Fetch failed, retrying in {delay}s",
                    extra={
                        "url": url,
                        "attempt": attempt,
                        "max_attempts": max_attempts,
                        "status_code": e.status_code,
                        "delay": delay,
                    },
                )
                await self._sleep(delay)

        raise last_error

    async def _fetch_once(self, url: str) -> str:
        try:
            async with self.client.stream("GET", url) as response:
                if response.status_code >= 400:
                    raise FetchError(url, status_code=response.status_code)
                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) >= self.settings.HTTP_MAX_CONTENT_BYTES:
                        break
                encoding = response.encoding or "utf-8"
        except httpx.HTTPError as e:
            raise FetchError(url, reason=str(e) or e.__class__.__name__)
        except httpx.InvalidURL as e:
            raise FetchError(url, status_code=400, reason=str(e))

        return bytes(body).decode(encoding, errors="replace")
