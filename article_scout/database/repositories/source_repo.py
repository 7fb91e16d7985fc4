import logging
from datetime import datetime, timezone
from typing import List
from uuid import UUID

from sqlalchemy import select

from article_scout.core.extraction.models import ScrapeHealthRecord
from article_scout.database.models.source import Source
from article_scout.database.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class SourceRepository(BaseRepository[Source]):
    """Storage access for monitored sources."""

    model_class = Source

    async def get_active_sources(self) -> List[Source]:
        """Unpaused sources handled by scraping, least recently checked first."""
        async with self.db.get_session() as session:
            query = (
                select(Source)
                .where(Source.is_paused.is_(False))
                .where(Source.monitoring_type == "scrape")
                .order_by(Source.last_checked.asc().nulls_first())
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    async def update_scraping_result(self, source_id: UUID, record: ScrapeHealthRecord) -> bool:
        """Overwrite the stored health record of a source."""
        updated = await self.update_by_id(source_id, {"last_scrape_result": record.to_dict()})
        if not updated:
            logger.warning(f"Cannot store scrape result, source {source_id} not found")
        return updated

    async def mark_checked(self, source_id: UUID) -> bool:
        return await self.update_by_id(source_id, {"last_checked": datetime.now(timezone.utc)})
