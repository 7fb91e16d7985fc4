"""Unit tests for PageFetcher and CanonicalUrlResolver using httpx.MockTransport."""

import httpx
import pytest

from article_scout.core.extraction.fetcher import PageFetcher
from article_scout.core.extraction.resolver import CanonicalUrlResolver
from article_scout.shared.exceptions import FetchError


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def scripted(responses):
    """Handler answering with the given status codes in order, recording requests."""
    calls = []

    def handler(request):
        calls.append(str(request.url))
        status = responses[min(len(calls), len(responses)) - 1]
        return httpx.Response(status, text=f"<html>status {status}</html>")

    return handler, calls


class TestPageFetcher:
    @pytest.fixture
    def sleep(self):
        return SleepRecorder()

    async def test_returns_body(self, test_settings, sleep):
        handler, calls = scripted([200])
        fetcher = PageFetcher(test_settings, client=client_for(handler), sleep=sleep)

        html = await fetcher.fetch("https://example.com/blog")

        assert html == "<html>status 200</html>"
        assert calls == ["https://example.com/blog"]

    async def test_client_error_is_not_retried(self, test_settings, sleep):
        handler, calls = scripted([404])
        fetcher = PageFetcher(test_settings, client=client_for(handler), sleep=sleep)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://example.com/missing")

        assert exc_info.value.status_code == 404
        assert exc_info.value.retryable is False
        assert len(calls) == 1
        assert sleep.delays == []

    async def test_server_error_backs_off_linearly(self, test_settings, sleep):
        handler, calls = scripted([503, 502, 200])
        fetcher = PageFetcher(test_settings, client=client_for(handler), sleep=sleep)

        html = await fetcher.fetch("https://example.com/blog")

        assert "200" in html
        assert len(calls) == 3
        base = test_settings.HTTP_RETRY_BASE_DELAY
        assert sleep.delays == [pytest.approx(base * 1), pytest.approx(base * 2)]

    async def test_rate_limit_backs_off_exponentially(self, test_settings, sleep):
        settings = test_settings.model_copy(update={"HTTP_MAX_RETRIES": 4})
        handler, calls = scripted([429, 429, 429, 200])
        fetcher = PageFetcher(settings, client=client_for(handler), sleep=sleep)

        await fetcher.fetch("https://example.com/blog")

        base = settings.HTTP_RETRY_BASE_DELAY
        assert sleep.delays == [pytest.approx(base), pytest.approx(base * 2), pytest.approx(base * 4)]

    async def test_gives_up_after_max_attempts(self, test_settings, sleep):
        handler, calls = scripted([500])
        fetcher = PageFetcher(test_settings, client=client_for(handler), sleep=sleep)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://example.com/blog")

        assert exc_info.value.status_code == 500
        assert len(calls) == test_settings.HTTP_MAX_RETRIES

    async def test_transport_error_becomes_fetch_error(self, test_settings, sleep):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        settings = test_settings.model_copy(update={"HTTP_MAX_RETRIES": 2})
        fetcher = PageFetcher(settings, client=client_for(handler), sleep=sleep)

        with pytest.raises(FetchError) as exc_info:
            await fetcher.fetch("https://example.com/blog")

        assert exc_info.value.status_code is None
        assert "connection refused" in exc_info.value.message
        assert len(sleep.delays) == 1

    async def test_same_host_requests_are_spaced(self, test_settings, sleep):
        settings = test_settings.model_copy(update={"HTTP_DOMAIN_DELAY": 5.0})
        handler, _ = scripted([200])
        fetcher = PageFetcher(settings, client=client_for(handler), sleep=sleep)

        await fetcher.fetch("https://example.com/a")
        await fetcher.fetch("https://other.org/a")
        assert sleep.delays == []

        await fetcher.fetch("https://www.example.com/b")
        assert len(sleep.delays) == 1
        assert 4.0 < sleep.delays[0] <= 5.0


class TestCanonicalUrlResolver:
    async def test_follows_redirects_to_final_url(self, test_settings):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            if request.url.path == "/r/abc":
                return httpx.Response(301, headers={"Location": "https://example.com/blog/final-post-slug"})
            return httpx.Response(200, text="<html>final</html>")

        resolver = CanonicalUrlResolver(test_settings, client=client_for(handler))

        resolved = await resolver.resolve("https://example.com/r/abc")

        assert resolved == "https://example.com/blog/final-post-slug"
        assert calls == ["https://example.com/r/abc", "https://example.com/blog/final-post-slug"]

    async def test_results_are_memoized(self, test_settings):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            if request.url.path == "/r/abc":
                return httpx.Response(302, headers={"Location": "/blog/final-post-slug"})
            return httpx.Response(200)

        resolver = CanonicalUrlResolver(test_settings, client=client_for(handler))

        first = await resolver.resolve("https://example.com/r/abc")
        calls.clear()
        again = await resolver.resolve("https://example.com/r/abc")
        final = await resolver.resolve(first)

        assert again == first == final == "https://example.com/blog/final-post-slug"
        assert calls == []

    async def test_network_error_returns_input(self, test_settings):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        resolver = CanonicalUrlResolver(test_settings, client=client_for(handler))

        assert await resolver.resolve("https://example.com/blog/some-post") == "https://example.com/blog/some-post"

    async def test_error_status_returns_input(self, test_settings):
        resolver = CanonicalUrlResolver(
            test_settings,
            client=client_for(lambda request: httpx.Response(404)),
        )

        assert await resolver.resolve("https://example.com/blog/gone-post") == "https://example.com/blog/gone-post"

    async def test_empty_url(self, test_settings):
        resolver = CanonicalUrlResolver(test_settings, client=client_for(lambda request: httpx.Response(200)))
        assert await resolver.resolve("") == ""
