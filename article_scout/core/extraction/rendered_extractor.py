"""Rendered-DOM extraction for sites that build their listings with JavaScript."""

import asyncio
import logging
import re
from typing import List, Optional
from uuid import uuid4

from bs4 import BeautifulSoup, Tag
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from article_scout.core.enrichment.page_parser import parse_date, parse_date_value
from article_scout.core.extraction.base import ExtractionStrategy
from article_scout.core.extraction.browser import BrowserManager, get_browser_manager
from article_scout.core.extraction.models import ArticleCandidate, SourceInfo
from article_scout.core.extraction.validator import clean_title, is_generic_title, join_url
from article_scout.shared.config import Settings
from article_scout.shared.exceptions import BrowserUnavailableError

ARTICLE_CONTAINER_SELECTOR = ", ".join([
    "article",
    '[class*="post-item"]',
    '[class*="post-card"]',
    '[class*="article-card"]',
    '[class*="blog-card"]',
    '[class*="blog-item"]',
])

BLOG_CONTAINER_SELECTOR = ", ".join([
    '[class*="blog"]',
    '[class*="posts"]',
    '[class*="articles"]',
    '[id*="blog"]',
    '[id*="posts"]',
    "main",
])

HEADING_TAGS = ["h1", "h2", "h3", "h4"]

ARTICLE_HREF_HINTS = ("blog", "post", "article")
ARTICLE_HREF_PATTERN = re.compile(r"/(blog|post|posts|article|articles)/", re.IGNORECASE)

MIN_HEADING_LENGTH = 30
MAX_HEADING_LENGTH = 200
MIN_LINK_TEXT_LENGTH = 10


def _href(anchor: Optional[Tag]) -> Optional[str]:
    if anchor is None:
        return None
    href = (anchor.get("href") or "").strip()
    if not href or href.startswith(("#", "mailto:", "javascript:")):
        return None
    return href


def _title(raw: str) -> Optional[str]:
    title = clean_title(raw)
    if not title or is_generic_title(title):
        return None
    return title


def _container_date(container: Tag):
    for element in container.select('time, [class*="date"], [datetime]'):
        parsed = parse_date_value(element.get("datetime")) or parse_date(element.get_text(" ", strip=True))
        if parsed:
            return parsed
    return None


def candidates_from_article_containers(soup: BeautifulSoup, page_url: str) -> List[ArticleCandidate]:
    """Article-like containers holding an anchor, a heading and optionally a date."""
    candidates = []
    for container in soup.select(ARTICLE_CONTAINER_SELECTOR):
        heading = container.find(HEADING_TAGS) or container.select_one('[class*="title"]')
        if heading is None:
            continue
        anchor = heading.find("a", href=True) or heading.find_parent("a", href=True) or container.find("a", href=True)
        href = _href(anchor)
        title = _title(heading.get_text(" ", strip=True))
        url = join_url(page_url, href) if href else None
        if not url or not title:
            continue
        summary = container.find("p")
        candidates.append(ArticleCandidate(
            title=title,
            url=url,
            description=summary.get_text(" ", strip=True)[:500] if summary else "",
            published_at=_container_date(container),
        ))
    return candidates


def _nearby_article_link(heading: Tag) -> Optional[str]:
    anchors = [heading.find("a", href=True), heading.find_parent("a", href=True)]
    if heading.parent is not None:
        anchors.extend(heading.parent.find_all("a", href=True, limit=3))
    for anchor in anchors:
        href = _href(anchor)
        if href and any(hint in href.lower() for hint in ARTICLE_HREF_HINTS):
            return href
    return None


def candidates_from_headings(soup: BeautifulSoup, page_url: str) -> List[ArticleCandidate]:
    """Headline-sized headings paired with a nearby blog/post/article link."""
    candidates = []
    for heading in soup.find_all(HEADING_TAGS):
        text = heading.get_text(" ", strip=True)
        if not MIN_HEADING_LENGTH <= len(text) <= MAX_HEADING_LENGTH:
            continue
        href = _nearby_article_link(heading)
        title = _title(text)
        url = join_url(page_url, href) if href else None
        if url and title:
            candidates.append(ArticleCandidate(title=title, url=url))
    return candidates


def candidates_from_blog_links(soup: BeautifulSoup, page_url: str) -> List[ArticleCandidate]:
    """Article-shaped links inside blog-like containers."""
    candidates = []
    for container in soup.select(BLOG_CONTAINER_SELECTOR):
        for anchor in container.find_all("a", href=True):
            href = _href(anchor)
            if not href or not ARTICLE_HREF_PATTERN.search(href):
                continue
            text = anchor.get_text(" ", strip=True)
            if len(text) <= MIN_LINK_TEXT_LENGTH:
                continue
            title = _title(text)
            url = join_url(page_url, href)
            if title and url:
                candidates.append(ArticleCandidate(title=title, url=url))
    return candidates


def extract_rendered_candidates(html: str, page_url: str) -> List[ArticleCandidate]:
    """Run the three DOM heuristics over a rendered snapshot, deduplicated by URL."""
    soup = BeautifulSoup(html, "lxml")
    seen = set()
    unique = []
    for heuristic in (candidates_from_article_containers, candidates_from_headings, candidates_from_blog_links):
        for candidate in heuristic(soup, page_url):
            if candidate.url not in seen:
                seen.add(candidate.url)
                unique.append(candidate)
    return unique


class RenderedExtractor(ExtractionStrategy):
    """Loads the source in headless Chromium and scans the rendered DOM."""

    name = "rendered"

    def __init__(
        self,
        settings: Settings,
        browser: Optional[BrowserManager] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.browser = browser or get_browser_manager(settings)
        self.logger = logger or logging.getLogger(__name__)
        self._unavailable_reason: Optional[str] = None

    async def extract(self, source: SourceInfo) -> List[ArticleCandidate]:
        if not self.settings.ENABLE_JAVASCRIPT_RENDERING:
            return []
        if self._unavailable_reason:
            return []

        correlation_id = str(uuid4())
        self.logger.info(
            "Starting rendered extraction",
            extra={"correlation_id": correlation_id, "source_url": source.url},
        )

        try:
            html = await self._render(source.url, correlation_id)
        except BrowserUnavailableError as e:
            self._unavailable_reason = e.message
            self.logger.warning(
                f"Headless browser unavailable, rendered extraction disabled: {e.message}",
                extra={"correlation_id": correlation_id, "source_url": source.url},
            )
            return []
        except PlaywrightError as e:
            self.logger.warning(
                f"Rendered navigation failed: {e}",
                extra={"correlation_id": correlation_id, "source_url": source.url},
            )
            return []

        candidates = extract_rendered_candidates(html, source.url)
        self.logger.info(
            "Rendered extraction finished",
            extra={
                "correlation_id": correlation_id,
                "source_url": source.url,
                "count": len(candidates),
            },
        )
        return candidates

    async def _render(self, url: str, correlation_id: str) -> str:
        async with self.browser.page() as page:
            await page.goto(
                url,
                timeout=self.settings.PLAYWRIGHT_TIMEOUT * 1000,
                wait_until="domcontentloaded",
            )
            try:
                await page.wait_for_load_state(
                    "networkidle",
                    timeout=self.settings.PLAYWRIGHT_NETWORK_IDLE_TIMEOUT * 1000,
                )
            except PlaywrightTimeoutError:
                self.logger.debug(
                    "Network did not go idle, continuing with current DOM",
                    extra={"correlation_id": correlation_id, "url": url},
                )
            await asyncio.sleep(self.settings.PLAYWRIGHT_WAIT_TIME)
            return await page.content()
