"""Article repository: persistence of discovered articles and enrichment updates.

Enrichment relies on two guarantees from this module:

- ``get_articles_needing_enrichment`` only returns articles that still lack
  a publication date or a description of useful length.
- ``enrich_article`` is a partial update that only writes fields that are
  supplied, so callers never clear existing values.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, or_, and_, select

from article_scout.core.extraction.models import ValidatedArticle
from article_scout.database.connection import DatabaseConnection
from article_scout.database.models.article import Article
from article_scout.database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class ArticleRepository(BaseRepository[Article]):

    model_class = Article

    def __init__(self, db: Optional[DatabaseConnection] = None, min_description_length: int = 50):
        super().__init__(db)
        self.min_description_length = min_description_length

    async def get_by_link(self, link: str) -> Optional[Article]:
        async with self.db.get_session() as session:
            result = await session.execute(select(Article).where(Article.link == link))
            return result.scalar_one_or_none()

    def _short(self, column):
        return or_(column.is_(None), func.length(column) < self.min_description_length)

    def _needs_enrichment(self):
        return or_(
            Article.pub_date.is_(None),
            and_(self._short(Article.content), self._short(Article.preview)),
        )

    async def get_articles_needing_enrichment(self, limit: int = 20) -> List[Article]:
        """Articles missing a date, or whose content and preview are both too short.

        Newest rows come first so freshly discovered articles are enriched
        before the backlog.
        """
        async with self.db.get_session() as session:
            query = (
                select(Article)
                .where(self._needs_enrichment())
                .order_by(Article.created_at.desc())
                .limit(limit)
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    async def count_articles_needing_enrichment(self) -> int:
        async with self.db.get_session() as session:
            query = select(func.count()).select_from(Article).where(self._needs_enrichment())
            result = await session.execute(query)
            return result.scalar() or 0

    async def enrich_article(
        self,
        article_id: UUID,
        pub_date: Optional[datetime] = None,
        content: Optional[str] = None,
        preview: Optional[str] = None,
        publisher_description: Optional[str] = None,
    ) -> bool:
        """Write only the supplied fields. Returns False when nothing was supplied or the row is gone."""
        values: Dict[str, Any] = {
            key: value
            for key, value in (
                ("pub_date", pub_date),
                ("content", content),
                ("preview", preview),
                ("publisher_description", publisher_description),
            )
            if value is not None
        }
        if not values:
            return False

        updated = await self.update_by_id(article_id, values)
        logger.debug(
            "Article enriched",
            extra={"article_id": str(article_id), "fields": sorted(values)},
        )
        return updated

    async def save_validated_articles(self, articles: Sequence[ValidatedArticle]) -> List[Article]:
        """Insert articles whose link is not stored yet. Returns the new rows."""
        if not articles:
            return []

        links = [article.url for article in articles]
        created: List[Article] = []
        async with self.db.get_session() as session:
            async with session.begin():
                existing = await session.execute(select(Article.link).where(Article.link.in_(links)))
                seen = set(existing.scalars().all())

                for article in articles:
                    if article.url in seen:
                        continue
                    seen.add(article.url)
                    row = Article(
                        title=article.title,
                        link=article.url,
                        content=article.description or None,
                        preview=article.description[:200] if article.description else None,
                        pub_date=article.published_at,
                        source_id=article.source_id if isinstance(article.source_id, UUID) else None,
                        source_name=article.source_name,
                        category=article.category,
                    )
                    session.add(row)
                    created.append(row)

        logger.info(
            f"Saved {len(created)} new articles",
            extra={"submitted": len(articles), "created": len(created)},
        )
        return created
