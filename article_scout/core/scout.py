"""Discovery runs against stored sources.

``SourceScout`` glues storage to the extraction pipeline: it loads a
source, runs the orchestrator, persists new articles and stamps the
source as checked. Sources are processed one after another.
"""

import logging
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from article_scout.core.extraction.models import SourceInfo
from article_scout.core.extraction.orchestrator import ExtractionOrchestrator
from article_scout.shared.config import Settings
from article_scout.shared.exceptions import (
    BaseAppException,
    InvalidInputError,
    SourceNotFoundError,
    StrategiesExhaustedError,
)


class SourceScout:
    """Runs article discovery for stored sources and saves the results."""

    def __init__(
        self,
        settings: Settings,
        source_repo: Any,
        article_repo: Any,
        orchestrator: Optional[ExtractionOrchestrator] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.source_repo = source_repo
        self.article_repo = article_repo
        self.logger = logger or logging.getLogger(__name__)
        self.orchestrator = orchestrator or ExtractionOrchestrator(
            settings,
            source_repo=source_repo,
            logger=self.logger,
        )

    async def scout_source(self, source_id: UUID) -> Dict[str, Any]:
        """Discover and store the newest articles of one source.

        Args:
            source_id: Id of a stored source

        Returns:
            Summary with the number of articles found and saved

        Raises:
            SourceNotFoundError: If the source does not exist
            InvalidInputError: If the source URL is malformed
            StrategiesExhaustedError: If every strategy failed
        """
        correlation_id = str(uuid4())
        record = await self.source_repo.get_by_id(source_id)
        if record is None:
            raise SourceNotFoundError(source_id)

        source = SourceInfo.from_record(record)
        if source.is_paused:
            self.logger.info(
                f"Source {source.name} is paused, skipping",
                extra={"correlation_id": correlation_id, "source_id": str(source_id)},
            )
            return {"source_id": str(source_id), "skipped": True, "found": 0, "saved": 0}

        try:
            articles = await self.orchestrator.run(source)
        finally:
            await self.source_repo.mark_checked(source_id)

        saved = await self.article_repo.save_validated_articles(articles)
        self.logger.info(
            f"Scouted {source.name}",
            extra={
                "correlation_id": correlation_id,
                "source_id": str(source_id),
                "found": len(articles),
                "saved": len(saved),
            },
        )
        return {"source_id": str(source_id), "skipped": False, "found": len(articles), "saved": len(saved)}

    async def scout_active_sources(self) -> Dict[str, Any]:
        """Scout every unpaused scrape source, least recently checked first.

        A source whose run fails is recorded in ``failed`` and the loop
        moves on to the next one.
        """
        sources = await self.source_repo.get_active_sources()
        results: List[Dict[str, Any]] = []
        failed: Dict[str, str] = {}

        for source in sources:
            try:
                results.append(await self.scout_source(source.id))
            except (InvalidInputError, StrategiesExhaustedError) as e:
                failed[str(source.id)] = e.message
                self.logger.warning(
                    f"Scouting failed for {source.url}: {e.message}",
                    extra={"source_id": str(source.id), "error": e.to_dict()},
                )
            except BaseAppException as e:
                failed[str(source.id)] = e.message
                self.logger.error(
                    f"Unexpected error scouting {source.url}: {e.message}",
                    extra={"source_id": str(source.id), "error": e.to_dict()},
                )

        return {
            "sources": len(sources),
            "saved": sum(result["saved"] for result in results),
            "failed": failed,
        }

    async def close(self) -> None:
        await self.orchestrator.close()
