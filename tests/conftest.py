import pytest
from datetime import datetime, timezone
from typing import AsyncGenerator, List
from unittest.mock import Mock

from article_scout.core.extraction.base import ExtractionStrategy
from article_scout.core.extraction.models import ArticleCandidate, SourceInfo
from article_scout.database.connection import DatabaseConnection
from article_scout.shared.config import Settings


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with in-memory SQLite database and no pacing delays."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        DATABASE_ECHO=False,
        ENVIRONMENT="testing",
        LOG_LEVEL="DEBUG",
        GOOGLE_API_KEY=None,
        HTTP_MAX_RETRIES=3,
        HTTP_RETRY_BASE_DELAY=0.01,
        HTTP_DOMAIN_DELAY=0.0,
        PLAYWRIGHT_WAIT_TIME=0.01,
        ENRICHMENT_ARTICLE_DELAY=0.0,
        ENRICHMENT_BROWSER_ARTICLE_DELAY=0.0,
    )


@pytest.fixture
async def test_db(test_settings: Settings) -> AsyncGenerator[DatabaseConnection, None]:
    """In-memory database with all tables created."""
    db = DatabaseConnection(test_settings)
    db.setup()
    await db.create_tables()
    yield db
    await db.close()


@pytest.fixture
def mock_logger():
    return Mock()


@pytest.fixture
def source() -> SourceInfo:
    return SourceInfo(url="https://example.com/blog", name="Example", category="Tech", id="source-1")


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


class StubStrategy(ExtractionStrategy):
    """Strategy returning canned candidates or raising a canned error."""

    def __init__(self, name: str, candidates: List[ArticleCandidate] = None, error: Exception = None,
                 unstable_urls: bool = False):
        self.name = name
        self.unstable_urls = unstable_urls
        self.candidates = candidates or []
        self.error = error
        self.calls = 0
        self.closed = False

    async def extract(self, source: SourceInfo) -> List[ArticleCandidate]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return [ArticleCandidate(**vars(c)) for c in self.candidates]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def stub_strategy():
    return StubStrategy
