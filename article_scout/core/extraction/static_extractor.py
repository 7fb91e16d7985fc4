"""Static HTML extraction: JSON-LD metadata and blog-section heuristics."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse
from uuid import uuid4

from bs4 import BeautifulSoup, Tag

from article_scout.core.enrichment.page_parser import (
    iter_json_ld_objects,
    load_json_ld,
    parse_date,
    parse_date_value,
)
from article_scout.core.extraction.base import ExtractionStrategy
from article_scout.core.extraction.fetcher import PageFetcher
from article_scout.core.extraction.models import ArticleCandidate, SourceInfo
from article_scout.core.extraction.validator import clean_title, is_generic_title, join_url
from article_scout.shared.config import Settings
from article_scout.shared.exceptions import FetchError

BLOG_SECTION_PATHS = [
    "/blog",
    "/posts",
    "/articles",
    "/news",
    "/press",
    "/press-releases",
    "/updates",
    "/announcements",
]

ARTICLE_TYPES = {"BlogPosting", "Article", "NewsArticle", "TechArticle", "Report"}

CONTAINER_SELECTOR = ", ".join([
    "article",
    '[class*="article"]',
    '[class*="post"]',
    '[class*="blog-post"]',
    '[class*="card"]',
    '[id*="article"]',
    '[id*="post"]',
    ".entry",
    ".news-item",
])

ARTICLE_LINK_SELECTOR = 'a[href*="/post"], a[href*="/blog"], a[href*="/article"], a[href*="/news/"]'

HEADING_TAGS = ["h1", "h2", "h3", "h4"]

SKIPPED_TITLE_MARKERS = ("featured", "other posts")

MIN_TITLE_LENGTH = 10


def _types_of(obj: Dict[str, Any]) -> List[str]:
    value = obj.get("@type")
    if isinstance(value, list):
        return [str(v) for v in value]
    return [str(value)] if value else []


def _text_of(value: Any) -> str:
    """Plain text of a JSON-LD value: a string, a ``@value``/``@id`` object or a list of either."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return _text_of(value.get("@value") or value.get("@id") or value.get("url") or value.get("name"))
    if isinstance(value, list):
        for item in value:
            text = _text_of(item)
            if text:
                return text
    return ""


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, list):
        return value
    if isinstance(value, dict):
        return [value]
    return []


def _url_of(obj: Dict[str, Any]) -> str:
    return _text_of(obj.get("url")) or _text_of(obj.get("mainEntityOfPage")) or _text_of(obj.get("@id"))


def _is_usable_href(href: Optional[str]) -> bool:
    if not href:
        return False
    href = href.strip()
    return not href.startswith(("#", "mailto:", "tel:", "javascript:"))


class StaticExtractor(ExtractionStrategy):
    """Finds article candidates in fetched HTML without executing scripts.

    Two passes run over the listing page and their results are merged:
    JSON-LD blocks describing articles, and container elements whose
    class or id hints at a blog post.
    """

    name = "static"

    def __init__(
        self,
        settings: Settings,
        fetcher: Optional[PageFetcher] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.fetcher = fetcher or PageFetcher(settings, logger=self.logger)

    async def close(self) -> None:
        await self.fetcher.close()

    async def extract(self, source: SourceInfo) -> List[ArticleCandidate]:
        correlation_id = str(uuid4())
        self.logger.info(
            "Starting static extraction",
            extra={"correlation_id": correlation_id, "source_url": source.url},
        )

        # The blog section usually lists more posts than the landing page
        section = await self._find_blog_section(source.url)
        if section is not None:
            candidates = self._parse_listing(*section, correlation_id=correlation_id)
            if candidates:
                return candidates

        try:
            html = await self.fetcher.fetch(source.url)
        except FetchError as e:
            self.logger.warning(
                f"Failed to fetch source page: {e.message}",
                extra={
                    "correlation_id": correlation_id,
                    "source_url": source.url,
                    "status_code": e.status_code,
                },
            )
            return []

        candidates = self._parse_listing(source.url, html, correlation_id=correlation_id)
        if not candidates:
            self.logger.info(
                "Static extraction found nothing",
                extra={"correlation_id": correlation_id, "source_url": source.url},
            )
        return candidates

    def _parse_listing(self, page_url: str, html: str, correlation_id: str) -> List[ArticleCandidate]:
        try:
            candidates = self.extract_from_html(html, page_url)
        except Exception as e:
            self.logger.error(
                f"Failed to parse listing page: {e}",
                extra={"correlation_id": correlation_id, "page_url": page_url},
                exc_info=True,
            )
            return []

        if candidates:
            self.logger.info(
                "Static extraction found candidates",
                extra={
                    "correlation_id": correlation_id,
                    "page_url": page_url,
                    "count": len(candidates),
                },
            )
        return candidates

    async def _find_blog_section(self, source_url: str) -> Optional[Tuple[str, str]]:
        """Return ``(url, html)`` of the first conventional blog path that answers."""
        path = urlparse(source_url).path.lower()
        if any(section.strip("/") in path for section in BLOG_SECTION_PATHS):
            return None

        base = source_url.rstrip("/")
        for section in BLOG_SECTION_PATHS:
            candidate = base + section
            try:
                return candidate, await self.fetcher.fetch(candidate)
            except FetchError:
                continue
        return None

    def extract_from_html(self, html: str, page_url: str) -> List[ArticleCandidate]:
        soup = BeautifulSoup(html, "lxml")
        candidates = self._from_json_ld(soup, page_url)
        candidates.extend(self._from_blog_sections(soup, page_url))
        return self._dedupe(candidates)[: self.settings.STATIC_CANDIDATE_LIMIT]

    def _from_json_ld(self, soup: BeautifulSoup, page_url: str) -> List[ArticleCandidate]:
        entries = []
        for block in load_json_ld(soup):
            for obj in iter_json_ld_objects(block):
                types = _types_of(obj)
                if ARTICLE_TYPES.intersection(types):
                    entries.append(obj)
                if "Blog" in types:
                    entries.extend(post for post in _as_list(obj.get("blogPost")) if isinstance(post, dict))
                if "ItemList" in types:
                    for element in _as_list(obj.get("itemListElement")):
                        if isinstance(element, dict):
                            item = element.get("item")
                            entries.append(item if isinstance(item, dict) else element)

        candidates = []
        for entry in entries:
            try:
                candidate = self._candidate_from_json_ld(entry, page_url)
            except (AttributeError, TypeError, ValueError) as e:
                self.logger.debug(f"Skipping unusable JSON-LD entry: {e}", extra={"page_url": page_url})
                continue
            if candidate is not None and not is_generic_title(candidate.title):
                candidates.append(candidate)
        return candidates

    def _candidate_from_json_ld(self, obj: Dict[str, Any], page_url: str) -> Optional[ArticleCandidate]:
        raw_url = _url_of(obj)
        url = join_url(page_url, raw_url) if raw_url else None
        if not url:
            return None
        return ArticleCandidate(
            title=clean_title(_text_of(obj.get("headline")) or _text_of(obj.get("name"))),
            url=url,
            description=_text_of(obj.get("description"))[:500],
            published_at=parse_date_value(obj.get("datePublished") or obj.get("dateCreated")),
        )

    def _from_blog_sections(self, soup: BeautifulSoup, page_url: str) -> List[ArticleCandidate]:
        candidates = []
        for container in soup.select(CONTAINER_SELECTOR):
            candidate = self._candidate_from_container(container, page_url)
            if candidate:
                candidates.append(candidate)

        for anchor in soup.select(ARTICLE_LINK_SELECTOR):
            candidate = self._candidate_from_anchor(anchor, page_url)
            if candidate:
                candidates.append(candidate)
        return candidates

    def _candidate_from_container(self, container: Tag, page_url: str) -> Optional[ArticleCandidate]:
        heading = container.find(HEADING_TAGS)
        if heading is None:
            return None

        anchor = heading.find("a", href=True) or container.find("a", href=True)
        if anchor is None or not _is_usable_href(anchor.get("href")):
            return None

        title = self._usable_title(heading.get_text(" ", strip=True))
        url = join_url(page_url, anchor["href"].strip())
        if not title or not url:
            return None

        summary = container.find(["p"])
        return ArticleCandidate(
            title=title,
            url=url,
            description=summary.get_text(" ", strip=True)[:500] if summary else "",
            published_at=self._container_date(container),
        )

    def _candidate_from_anchor(self, anchor: Tag, page_url: str) -> Optional[ArticleCandidate]:
        if not _is_usable_href(anchor.get("href")):
            return None

        heading = anchor.find(HEADING_TAGS) or anchor.find_parent(HEADING_TAGS)
        text = heading.get_text(" ", strip=True) if heading else anchor.get_text(" ", strip=True)

        title = self._usable_title(text)
        url = join_url(page_url, anchor["href"].strip())
        if not title or not url:
            return None

        return ArticleCandidate(title=title, url=url)

    def _usable_title(self, raw: str) -> Optional[str]:
        title = clean_title(raw)
        if len(title) <= MIN_TITLE_LENGTH:
            return None
        lowered = title.lower()
        if any(marker in lowered for marker in SKIPPED_TITLE_MARKERS):
            return None
        if is_generic_title(title):
            return None
        return title

    def _container_date(self, container: Tag):
        time_tag = container.find("time")
        if time_tag is not None:
            parsed = parse_date_value(time_tag.get("datetime")) or parse_date(time_tag.get_text(" ", strip=True))
            if parsed:
                return parsed
        for element in container.select('[class*="date"], [datetime]'):
            parsed = parse_date_value(element.get("datetime")) or parse_date(element.get_text(" ", strip=True))
            if parsed:
                return parsed
        return None

    @staticmethod
    def _dedupe(candidates: Iterable[ArticleCandidate]) -> List[ArticleCandidate]:
        seen = set()
        unique = []
        for candidate in candidates:
            if candidate.url in seen:
                continue
            seen.add(candidate.url)
            unique.append(candidate)
        return unique
