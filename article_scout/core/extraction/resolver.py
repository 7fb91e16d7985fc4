"""Canonical URL resolution for unstable links.

Links returned by the search-grounded agent sometimes point at redirect
hops or shortened forms. ``CanonicalUrlResolver`` follows redirects with a
bounded GET and returns the final address. Resolution never fails: any
error yields the input URL unchanged.
"""

import logging
from collections import OrderedDict
from typing import Optional

import httpx

from article_scout.shared.config import Settings


class CanonicalUrlResolver:
    """Follow redirects to the final URL of an article link."""

    cache_size = 1024

    def __init__(
        self,
        settings: Settings,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self._client = client
        self.logger = logger or logging.getLogger(__name__)
        self._cache: "OrderedDict[str, str]" = OrderedDict()

    def _new_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            follow_redirects=True,
            max_redirects=self.settings.RESOLVER_MAX_REDIRECTS,
            timeout=self.settings.RESOLVER_TIMEOUT,
            headers={"User-Agent": self.settings.HTTP_USER_AGENT},
        )

    async def resolve(self, url: str) -> str:
        """Return the canonical form of ``url`` or ``url`` itself on any failure."""
        if not url:
            return url
        if url in self._cache:
            return self._cache[url]

        try:
            if self._client is not None:
                final_url = await self._follow(self._client, url)
            else:
                async with self._new_client() as client:
                    final_url = await self._follow(client, url)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            self.logger.debug(
                "Canonical resolution failed, keeping original URL",
                extra={"url": url, "error": str(e)},
            )
            return url

        if final_url and final_url != url and final_url.startswith("http"):
            self.logger.debug(
                "Resolved canonical URL",
                extra={"url": url, "canonical_url": final_url},
            )
            self._remember(url, final_url)
            self._remember(final_url, final_url)
            return final_url
        self._remember(url, url)
        return url

    def _remember(self, url: str, canonical: str) -> None:
        self._cache[url] = canonical
        self._cache.move_to_end(url)
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)

    async def _follow(self, client: httpx.AsyncClient, url: str) -> Optional[str]:
        # Only the final address matters, so stop reading after a small prefix
        async with client.stream("GET", url, follow_redirects=True) as response:
            if not 200 <= response.status_code < 400:
                return None
            received = 0
            async for chunk in response.aiter_bytes():
                received += len(chunk)
                if received >= self.settings.RESOLVER_MAX_BYTES:
                    break
            return str(response.url)
