"""Headless Chromium lifecycle shared by rendered extraction and enrichment.

A ``BrowserManager`` launches Chromium lazily on first use and hands out
pages through an async context manager that always closes the page and
its context, on every exit path. The process-wide manager returned by
``get_browser_manager`` is reused across extractor runs to amortise the
launch cost. It is not safe for overlapping orchestrator runs; callers
serialize access.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from article_scout.shared.config import Settings
from article_scout.shared.exceptions import BrowserUnavailableError

BLOCKED_RESOURCE_TYPES = frozenset({"image", "media", "font", "stylesheet"})

# Chromium flags that keep a single-page browser inside a small memory footprint
LOW_MEMORY_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--single-process",
    "--no-zygote",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-sync",
    "--disable-translate",
    "--metrics-recording-only",
    "--mute-audio",
    "--no-first-run",
    "--js-flags=--max-old-space-size=128",
]

DEFAULT_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]


async def _block_heavy_resources(route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserManager:
    """Owns one Playwright driver and one Chromium instance."""

    def __init__(
        self,
        settings: Settings,
        launch_args: Optional[List[str]] = None,
        strategy: str = "rendered",
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.launch_args = list(launch_args if launch_args is not None else DEFAULT_ARGS)
        self.strategy = strategy
        self.logger = logger or logging.getLogger(__name__)
        self._playwright = None
        self._browser = None
        self._launch_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def _ensure_browser(self):
        if self._browser is not None:
            return self._browser

        async with self._launch_lock:
            if self._browser is not None:
                return self._browser

            try:
                self._playwright = await async_playwright().start()
                self._browser = await self._playwright.chromium.launch(
                    headless=self.settings.PLAYWRIGHT_HEADLESS,
                    args=self.launch_args,
                )
            except PlaywrightError as e:
                await self._stop_driver()
                raise BrowserUnavailableError(
                    f"Chromium could not be launched: {e}",
                    strategy=self.strategy,
                    details={"error": str(e)},
                )

            self.logger.info(
                "Headless browser launched",
                extra={"strategy": self.strategy, "args": len(self.launch_args)},
            )
            return self._browser

    @asynccontextmanager
    async def page(self, block_resources: Optional[bool] = None) -> AsyncIterator:
        """Yield a fresh page in its own context, closing both afterwards.

        Raises:
            BrowserUnavailableError: If Chromium cannot be started
        """
        browser = await self._ensure_browser()
        if block_resources is None:
            block_resources = self.settings.PLAYWRIGHT_BLOCK_RESOURCES

        context = await browser.new_context(user_agent=self.settings.HTTP_USER_AGENT)
        page = None
        try:
            page = await context.new_page()
            if block_resources:
                await page.route("**/*", _block_heavy_resources)
            yield page
        finally:
            if page is not None:
                try:
                    await page.close()
                except PlaywrightError as e:
                    self.logger.warning(f"Failed to close page: {e}")
            try:
                await context.close()
            except PlaywrightError as e:
                self.logger.warning(f"Failed to close browser context: {e}")

    async def close(self) -> None:
        """Close Chromium and stop the driver. Safe to call repeatedly."""
        browser, self._browser = self._browser, None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                self.logger.warning(f"Failed to close browser: {e}")
        await self._stop_driver()

    async def _stop_driver(self) -> None:
        driver, self._playwright = self._playwright, None
        if driver is not None:
            try:
                await driver.stop()
            except PlaywrightError as e:
                self.logger.warning(f"Failed to stop playwright driver: {e}")

    async def __aenter__(self) -> "BrowserManager":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


_shared_manager: Optional[BrowserManager] = None


def get_browser_manager(settings: Settings) -> BrowserManager:
    """Process-wide browser manager, created on first request."""
    global _shared_manager
    if _shared_manager is None:
        _shared_manager = BrowserManager(settings)
    return _shared_manager


async def shutdown_browser_manager() -> None:
    global _shared_manager
    manager, _shared_manager = _shared_manager, None
    if manager is not None:
        await manager.close()
