"""Unit tests for rendered-DOM heuristics and RenderedExtractor with a fake browser."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from article_scout.core.extraction.models import SourceInfo
from article_scout.core.extraction.rendered_extractor import RenderedExtractor, extract_rendered_candidates
from article_scout.shared.exceptions import BrowserUnavailableError

RENDERED_HTML = """
<html><body><main>
  <div class="post-card">
    <h3>Designing resilient queues for bursty traffic</h3>
    <a href="/blog/resilient-queues">Read</a>
    <span class="date">March 3, 2025</span>
  </div>
  <section>
    <h2>An in-depth guide to observability for small teams</h2>
    <a href="/posts/observability-guide">Continue</a>
  </section>
  <a href="/articles/cost-controls-2025">Practical cost controls for cloud workloads</a>
  <a href="/pricing">Pricing plans for every team</a>
</main></body></html>
"""


class FakePage:
    def __init__(self, html, goto_error=None, idle=True):
        self.html = html
        self.goto_error = goto_error
        self.idle = idle
        self.visited = []

    async def goto(self, url, timeout=None, wait_until=None):
        self.visited.append((url, timeout, wait_until))
        if self.goto_error is not None:
            raise self.goto_error

    async def wait_for_load_state(self, state, timeout=None):
        if not self.idle:
            raise PlaywrightTimeoutError("network never went idle")

    async def content(self):
        return self.html


class FakeBrowser:
    def __init__(self, page=None, error=None):
        self._page = page
        self.error = error
        self.opened = 0

    @asynccontextmanager
    async def page(self, block_resources=None):
        self.opened += 1
        if self.error is not None:
            raise self.error
        yield self._page


class TestHeuristics:
    def test_combines_and_deduplicates_heuristics(self):
        candidates = extract_rendered_candidates(RENDERED_HTML, "https://example.com")

        assert [c.url for c in candidates] == [
            "https://example.com/blog/resilient-queues",
            "https://example.com/posts/observability-guide",
            "https://example.com/articles/cost-controls-2025",
        ]
        assert candidates[0].title == "Designing resilient queues for bursty traffic"
        assert candidates[0].published_at == datetime(2025, 3, 3, tzinfo=timezone.utc)
        assert candidates[1].title == "An in-depth guide to observability for small teams"

    def test_unparseable_links_are_skipped(self):
        html = """
        <html><body><main>
          <div class="post-card"><h3><a href="http://[broken">A card whose link cannot be parsed</a></h3></div>
          <section><h2>A heading next to a malformed protocol-relative link</h2><a href="//[oops/blog/x">More</a></section>
          <div class="post-card"><h3><a href="/blog/healthy-article-slug">A healthy article next to broken ones</a></h3></div>
        </main></body></html>
        """

        candidates = extract_rendered_candidates(html, "https://example.com")

        assert [c.url for c in candidates] == ["https://example.com/blog/healthy-article-slug"]

    def test_short_headings_without_article_links_are_ignored(self):
        html = "<html><body><h2>Short heading</h2><a href='/blog/x'>x</a></body></html>"
        assert extract_rendered_candidates(html, "https://example.com") == []


class TestRenderedExtractor:
    @pytest.fixture
    def source(self):
        return SourceInfo(url="https://example.com")

    async def test_renders_and_extracts(self, test_settings, mock_logger, source):
        page = FakePage(RENDERED_HTML, idle=False)
        extractor = RenderedExtractor(test_settings, browser=FakeBrowser(page), logger=mock_logger)

        candidates = await extractor.extract(source)

        assert len(candidates) == 3
        assert page.visited == [("https://example.com", test_settings.PLAYWRIGHT_TIMEOUT * 1000, "domcontentloaded")]

    async def test_disabled_rendering_returns_nothing(self, test_settings, mock_logger, source):
        settings = test_settings.model_copy(update={"ENABLE_JAVASCRIPT_RENDERING": False})
        browser = FakeBrowser(FakePage(RENDERED_HTML))
        extractor = RenderedExtractor(settings, browser=browser, logger=mock_logger)

        assert await extractor.extract(source) == []
        assert browser.opened == 0

    async def test_unavailable_browser_is_not_retried(self, test_settings, mock_logger, source):
        browser = FakeBrowser(error=BrowserUnavailableError("chromium missing"))
        extractor = RenderedExtractor(test_settings, browser=browser, logger=mock_logger)

        assert await extractor.extract(source) == []
        assert await extractor.extract(source) == []
        assert browser.opened == 1
        mock_logger.warning.assert_called_once()

    async def test_navigation_failure_returns_nothing(self, test_settings, mock_logger, source):
        page = FakePage(RENDERED_HTML, goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        browser = FakeBrowser(page)
        extractor = RenderedExtractor(test_settings, browser=browser, logger=mock_logger)

        assert await extractor.extract(source) == []
        # A navigation error does not disable the strategy
        assert await extractor.extract(source) == []
        assert browser.opened == 2
