"""Background enrichment of stored articles missing a date or description.

Two batch entry points share one single-flight flag:

- ``run_enrichment_batch`` fetches each article page over plain HTTP.
- ``run_playwright_enrichment_batch`` renders each page in headless Chromium.
  It is gated on process memory before every article and after each
  render, and it stops the batch early when the ceiling stays exceeded.

Articles are processed strictly one at a time with a fixed delay between
them. Only fields that are missing are written back.
"""

import asyncio
import logging
from contextlib import suppress
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from bs4 import BeautifulSoup
from newspaper import Article as NewspaperArticle
from newspaper import Config as NewspaperConfig
from playwright.async_api import Error as PlaywrightError

from article_scout.core.enrichment.page_parser import (
    RENDERED_TEXT_SCAN_LIMIT,
    STATIC_TEXT_SCAN_LIMIT,
    as_soup,
    is_sane_date,
    parse_description,
    parse_page_date,
)
from article_scout.core.extraction.browser import LOW_MEMORY_ARGS, BrowserManager
from article_scout.core.extraction.fetcher import PageFetcher
from article_scout.shared.config import Settings
from article_scout.shared.exceptions import BrowserUnavailableError, FetchError
from article_scout.shared.memory import MemoryMonitor

SKIP_MEMORY_LIMIT = "memory_limit"
SKIP_BROWSER_UNAVAILABLE = "browser_unavailable"


def _empty_stats() -> Dict[str, Any]:
    return {
        "articles_processed": 0,
        "dates_enriched": 0,
        "descriptions_enriched": 0,
        "errors": 0,
        "last_run_time": None,
    }


class EnrichmentWorker:
    """Fills in ``pub_date`` and description fields of stored articles."""

    def __init__(
        self,
        settings: Settings,
        article_repo: Any,
        fetcher: Optional[PageFetcher] = None,
        browser_factory: Optional[Callable[[], BrowserManager]] = None,
        memory: Optional[MemoryMonitor] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.settings = settings
        self.article_repo = article_repo
        self.logger = logger or logging.getLogger(__name__)
        self.fetcher = fetcher or PageFetcher(settings, logger=self.logger)
        self._browser_factory = browser_factory or self._default_browser
        self.memory = memory or MemoryMonitor()
        self._sleep = sleep

        self.is_running = False
        self.stats = _empty_stats()
        self._periodic_task: Optional[asyncio.Task] = None

    def _default_browser(self) -> BrowserManager:
        return BrowserManager(
            self.settings,
            launch_args=LOW_MEMORY_ARGS,
            strategy="enrichment",
            logger=self.logger,
        )

    def _newspaper_config(self) -> NewspaperConfig:
        config = NewspaperConfig()
        config.memoize_articles = False
        config.fetch_images = False
        config.request_timeout = self.settings.HTTP_TIMEOUT
        config.browser_user_agent = self.settings.HTTP_USER_AGENT
        return config

    # Field selection

    def _is_short(self, value: Optional[str]) -> bool:
        return not value or len(value.strip()) < self.settings.ENRICHMENT_MIN_DESCRIPTION_LENGTH

    def needs_date(self, article: Any) -> bool:
        return article.pub_date is None

    def needs_description(self, article: Any) -> bool:
        return self._is_short(article.content) and self._is_short(article.preview)

    def _newspaper_date(self, html: str, url: str) -> Optional[datetime]:
        """Let newspaper4k look for a date the heuristics missed."""
        try:
            parsed = NewspaperArticle(url, config=self._newspaper_config())
            parsed.download(input_html=html)
            parsed.parse()
        except Exception as e:
            self.logger.debug(f"newspaper4k could not parse {url}: {e}")
            return None

        publish_date = parsed.publish_date
        if not isinstance(publish_date, datetime):
            return None
        if publish_date.tzinfo is None:
            publish_date = publish_date.replace(tzinfo=timezone.utc)
        return publish_date if is_sane_date(publish_date) else None

    def collect_updates(self, article: Any, html: str, text_limit: int) -> Dict[str, Any]:
        """Work out which missing fields the page can fill."""
        soup: BeautifulSoup = as_soup(html)
        updates: Dict[str, Any] = {}

        if self.needs_date(article):
            pub_date = parse_page_date(soup, text_limit=text_limit) or self._newspaper_date(html, article.link)
            if pub_date:
                updates["pub_date"] = pub_date

        if self.needs_description(article):
            description = parse_description(
                soup,
                min_length=self.settings.ENRICHMENT_MIN_DESCRIPTION_LENGTH,
                max_length=self.settings.ENRICHMENT_DESCRIPTION_MAX,
            )
            if description:
                if self._is_short(article.content):
                    updates["content"] = description
                if self._is_short(article.preview):
                    updates["preview"] = description[: self.settings.ENRICHMENT_PREVIEW_MAX]
                if not article.publisher_description:
                    updates["publisher_description"] = description

        return updates

    async def _apply(self, article: Any, updates: Dict[str, Any], method: str) -> bool:
        if not updates:
            self.logger.debug(
                "Nothing found to enrich",
                extra={"article_id": str(article.id), "url": article.link, "method": method},
            )
            return False

        await self.article_repo.enrich_article(article.id, **updates)
        if "pub_date" in updates:
            self.stats["dates_enriched"] += 1
        if "content" in updates or "preview" in updates or "publisher_description" in updates:
            self.stats["descriptions_enriched"] += 1

        self.logger.info(
            "Article enriched",
            extra={
                "article_id": str(article.id),
                "url": article.link,
                "method": method,
                "fields": sorted(updates),
            },
        )
        return True

    # Static path

    async def enrich_with_static_fetch(self, article: Any) -> bool:
        if not self.needs_date(article) and not self.needs_description(article):
            return False
        try:
            html = await self.fetcher.fetch(article.link)
        except FetchError as e:
            self.logger.warning(
                f"Could not fetch article for enrichment: {e.message}",
                extra={"article_id": str(article.id), "url": article.link, "status_code": e.status_code},
            )
            return False
        updates = self.collect_updates(article, html, STATIC_TEXT_SCAN_LIMIT)
        return await self._apply(article, updates, "static")

    async def run_enrichment_batch(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Enrich up to ``limit`` articles over plain HTTP.

        Returns immediately with zero counts if a batch is already running.
        """
        if self.is_running:
            self.logger.info("Enrichment batch already running, skipping")
            return {"processed": 0, "enriched": 0}

        limit = limit or self.settings.ENRICHMENT_BATCH_SIZE
        processed = enriched = 0
        self.is_running = True
        try:
            articles = await self.article_repo.get_articles_needing_enrichment(limit)
            self.logger.info(f"Starting enrichment batch for {len(articles)} articles")

            for index, article in enumerate(articles):
                try:
                    if await self.enrich_with_static_fetch(article):
                        enriched += 1
                except Exception as e:
                    self.stats["errors"] += 1
                    self.logger.error(
                        f"Error enriching article: {e}",
                        extra={"article_id": str(article.id), "url": article.link},
                        exc_info=True,
                    )
                processed += 1
                self.stats["articles_processed"] += 1

                if index < len(articles) - 1:
                    await self._sleep(self.settings.ENRICHMENT_ARTICLE_DELAY)
        finally:
            self.is_running = False
            self.stats["last_run_time"] = datetime.now(timezone.utc)

        self.logger.info(
            "Enrichment batch complete",
            extra={"processed": processed, "enriched": enriched},
        )
        return {"processed": processed, "enriched": enriched}

    # Browser path

    async def enrich_with_browser(self, browser: BrowserManager, article: Any) -> bool:
        if not self.needs_date(article) and not self.needs_description(article):
            return False
        try:
            async with browser.page(block_resources=True) as page:
                await page.goto(
                    article.link,
                    timeout=self.settings.ENRICHMENT_BROWSER_TIMEOUT * 1000,
                    wait_until="domcontentloaded",
                )
                await self._sleep(self.settings.PLAYWRIGHT_WAIT_TIME)
                html = await page.content()
        except BrowserUnavailableError:
            raise
        except PlaywrightError as e:
            self.logger.warning(
                f"Browser navigation failed during enrichment: {e}",
                extra={"article_id": str(article.id), "url": article.link},
            )
            return False

        updates = self.collect_updates(article, html, RENDERED_TEXT_SCAN_LIMIT)
        return await self._apply(article, updates, "browser")

    def _memory_exceeded(self) -> bool:
        return self.memory.exceeds(self.settings.ENRICHMENT_MEMORY_LIMIT_MB)

    async def run_playwright_enrichment_batch(self, limit: Optional[int] = None) -> Dict[str, Any]:
        """Enrich up to ``limit`` articles by rendering them in headless Chromium.

        Articles met while memory is over ``ENRICHMENT_MEMORY_LIMIT_MB`` are
        skipped with reason ``memory_limit``. If memory is still over the
        ceiling after garbage collection, the rest of the batch is skipped.
        """
        if self.is_running:
            self.logger.info("Enrichment batch already running, skipping browser batch")
            return {"processed": 0, "enriched": 0, "skipped": []}

        limit = limit or self.settings.ENRICHMENT_BROWSER_BATCH_SIZE
        processed = enriched = 0
        skipped: List[Dict[str, str]] = []
        browser: Optional[BrowserManager] = None
        self.is_running = True

        def skip(remaining, reason: str) -> None:
            for item in remaining:
                skipped.append({"article_id": str(item.id), "reason": reason})

        try:
            articles = await self.article_repo.get_articles_needing_enrichment(limit)
            self.logger.info(
                f"Starting browser enrichment batch for {len(articles)} articles",
                extra={"memory": self.memory.details()},
            )

            for index, article in enumerate(articles):
                if self._memory_exceeded():
                    self.logger.warning(
                        "Memory ceiling exceeded, skipping article",
                        extra={
                            "article_id": str(article.id),
                            "rss_mb": self.memory.current_rss_mb(),
                            "limit_mb": self.settings.ENRICHMENT_MEMORY_LIMIT_MB,
                        },
                    )
                    skip([article], SKIP_MEMORY_LIMIT)
                    continue

                if browser is None:
                    browser = self._browser_factory()

                try:
                    if await self.enrich_with_browser(browser, article):
                        enriched += 1
                except BrowserUnavailableError as e:
                    self.logger.error(f"Browser unavailable, aborting browser enrichment: {e.message}")
                    skip(articles[index:], SKIP_BROWSER_UNAVAILABLE)
                    break
                except Exception as e:
                    self.stats["errors"] += 1
                    self.logger.error(
                        f"Error enriching article with browser: {e}",
                        extra={"article_id": str(article.id), "url": article.link},
                        exc_info=True,
                    )
                processed += 1
                self.stats["articles_processed"] += 1

                self.memory.collect_garbage()
                if self._memory_exceeded():
                    self.logger.warning(
                        "Memory still over ceiling after collection, stopping batch early",
                        extra={"rss_mb": self.memory.current_rss_mb(), "remaining": len(articles) - index - 1},
                    )
                    skip(articles[index + 1:], SKIP_MEMORY_LIMIT)
                    break

                if index < len(articles) - 1:
                    await self._sleep(self.settings.ENRICHMENT_BROWSER_ARTICLE_DELAY)
        finally:
            if browser is not None:
                await browser.close()
            self.is_running = False
            self.stats["last_run_time"] = datetime.now(timezone.utc)

        self.logger.info(
            "Browser enrichment batch complete",
            extra={"processed": processed, "enriched": enriched, "skipped": len(skipped)},
        )
        return {"processed": processed, "enriched": enriched, "skipped": skipped}

    # Scheduling and stats

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, "is_running": self.is_running}

    def reset_stats(self) -> None:
        self.stats = _empty_stats()

    def start_periodic_enrichment(self, interval_minutes: Optional[int] = None) -> asyncio.Task:
        """Run ``run_enrichment_batch`` now and then every ``interval_minutes``."""
        if self._periodic_task is not None and not self._periodic_task.done():
            return self._periodic_task

        interval = interval_minutes or self.settings.ENRICHMENT_INTERVAL_MINUTES
        self._periodic_task = asyncio.create_task(self._periodic_loop(interval))
        self.logger.info(f"Periodic enrichment started, every {interval} minutes")
        return self._periodic_task

    async def _periodic_loop(self, interval_minutes: int) -> None:
        while True:
            try:
                await self.run_enrichment_batch()
            except Exception as e:
                self.logger.error(f"Periodic enrichment batch failed: {e}", exc_info=True)
            await asyncio.sleep(interval_minutes * 60)

    async def stop_periodic_enrichment(self) -> None:
        task, self._periodic_task = self._periodic_task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        self.logger.info("Periodic enrichment stopped")

    async def close(self) -> None:
        await self.stop_periodic_enrichment()
        await self.fetcher.close()
