"""Extraction orchestrator: ordered strategy fallback for one source.

Strategies run strictly one after another. The first one whose output
survives validation wins. Its candidates are then resolved to canonical
URLs (for strategies with unstable URLs), deduplicated, ordered newest
first and trimmed. A health record describing the run is written on
every exit path, and failures to write it are only logged.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse, urlunparse
from uuid import uuid4

from article_scout.core.extraction.agentic_extractor import AgenticExtractor
from article_scout.core.extraction.base import ExtractionStrategy
from article_scout.core.extraction.models import (
    ArticleCandidate,
    ScrapeHealthRecord,
    SourceInfo,
    ValidatedArticle,
    newest_first_key,
    normalize_hostname,
)
from article_scout.core.extraction.rendered_extractor import RenderedExtractor
from article_scout.core.extraction.resolver import CanonicalUrlResolver
from article_scout.core.extraction.static_extractor import StaticExtractor
from article_scout.core.extraction.validator import validate, validate_source_url
from article_scout.shared.config import Settings
from article_scout.shared.exceptions import (
    ExtractionFailedError,
    InvalidInputError,
    StrategiesExhaustedError,
)

AGENTIC = "agentic"


def dedup_key(url: str) -> str:
    """Key under which two article URLs count as the same article."""
    parsed = urlparse(url)
    host = normalize_hostname(parsed.hostname or "")
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((parsed.scheme.lower(), host, path, "", parsed.query, ""))


def build_strategies(
    settings: Settings,
    resolver: Optional[CanonicalUrlResolver] = None,
    logger: Optional[logging.Logger] = None,
) -> List[ExtractionStrategy]:
    """Instantiate the configured strategies in ``STRATEGY_ORDER``."""
    logger = logger or logging.getLogger(__name__)
    strategies: List[ExtractionStrategy] = []
    for name in settings.STRATEGY_ORDER:
        if name == "static":
            strategies.append(StaticExtractor(settings))
        elif name == "rendered":
            if not settings.ENABLE_JAVASCRIPT_RENDERING:
                logger.info("JavaScript rendering disabled, skipping rendered extraction")
                continue
            strategies.append(RenderedExtractor(settings))
        elif name == AGENTIC:
            if not settings.agentic_enabled:
                logger.warning(
                    "GOOGLE_API_KEY not set, agentic extraction is disabled. "
                    "Set GOOGLE_API_KEY or GEMINI_API_KEY to enable it."
                )
                continue
            strategies.append(AgenticExtractor(settings, resolver=resolver))
    return strategies


class ExtractionOrchestrator:
    """Public entry point of the discovery pipeline."""

    def __init__(
        self,
        settings: Settings,
        strategies: Optional[List[ExtractionStrategy]] = None,
        resolver: Optional[CanonicalUrlResolver] = None,
        source_repo: Any = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.resolver = resolver or CanonicalUrlResolver(settings, logger=self.logger)
        self.strategies = (
            strategies if strategies is not None
            else build_strategies(settings, self.resolver, self.logger)
        )
        self.source_repo = source_repo
        self.disabled: Dict[str, str] = {}

    def ordered_strategies(self) -> List[ExtractionStrategy]:
        active = [s for s in self.strategies if s.name not in self.disabled]
        if self.settings.AGENTIC_PRIMARY:
            primary = [s for s in active if s.name == AGENTIC]
            return primary + [s for s in active if s.name != AGENTIC]
        return active

    async def run(self, source: SourceInfo) -> List[ValidatedArticle]:
        """Discover up to ``MAX_ARTICLES_PER_SOURCE`` validated articles for ``source``.

        Raises:
            InvalidInputError: If the source URL is malformed
            StrategiesExhaustedError: If no strategy produced a valid article
                and at least one of them failed outright
        """
        correlation_id = str(uuid4())

        try:
            domain = validate_source_url(source.url)
        except InvalidInputError as e:
            self.logger.error(
                f"Invalid source URL: {source.url}",
                extra={"correlation_id": correlation_id, "source_id": source.id},
            )
            await self._record_health(source, ScrapeHealthRecord(
                articles_found=0,
                articles_after_filter=0,
                success=False,
                method="none",
                domain="",
                error=e.message,
            ), correlation_id)
            raise

        self.logger.info(
            "Starting extraction run",
            extra={
                "correlation_id": correlation_id,
                "source_url": source.url,
                "strategies": [s.name for s in self.ordered_strategies()],
            },
        )

        failures: Dict[str, str] = {}
        attempted: List[str] = []
        found_total = 0

        for strategy in self.ordered_strategies():
            attempted.append(strategy.name)
            try:
                candidates = await strategy.extract(source)
            except ExtractionFailedError as e:
                failures[strategy.name] = e.message
                if e.disable_for_process:
                    self.disabled[strategy.name] = e.message
                self.logger.warning(
                    f"Strategy {strategy.name} failed: {e.message}",
                    extra={
                        "correlation_id": correlation_id,
                        "source_url": source.url,
                        "strategy": strategy.name,
                        "error_code": e.code.value,
                        "disabled": e.disable_for_process,
                    },
                )
                continue
            except Exception as e:
                failures[strategy.name] = f"Unexpected error: {e}"
                self.logger.error(
                    f"Strategy {strategy.name} raised an unexpected error: {e}",
                    extra={
                        "correlation_id": correlation_id,
                        "source_url": source.url,
                        "strategy": strategy.name,
                    },
                    exc_info=True,
                )
                continue

            found_total += len(candidates)
            if not candidates:
                self.logger.info(
                    f"Strategy {strategy.name} found nothing, falling back",
                    extra={"correlation_id": correlation_id, "strategy": strategy.name},
                )
                continue

            articles = await self._finalize(strategy, candidates, source, correlation_id)
            if articles:
                await self._record_health(source, ScrapeHealthRecord(
                    articles_found=len(candidates),
                    articles_after_filter=len(articles),
                    success=True,
                    method=strategy.name,
                    domain=domain,
                ), correlation_id)
                self.logger.info(
                    "Extraction run succeeded",
                    extra={
                        "correlation_id": correlation_id,
                        "source_url": source.url,
                        "strategy": strategy.name,
                        "found": len(candidates),
                        "kept": len(articles),
                    },
                )
                return articles

        await self._record_health(source, ScrapeHealthRecord(
            articles_found=found_total,
            articles_after_filter=0,
            success=False,
            method="+".join(attempted) or "none",
            domain=domain,
            error="; ".join(f"{name}: {message}" for name, message in failures.items()) or None,
        ), correlation_id)

        if failures:
            raise StrategiesExhaustedError(source.url, failures)

        self.logger.info(
            "No articles found for source",
            extra={"correlation_id": correlation_id, "source_url": source.url, "attempted": attempted},
        )
        return []

    async def _finalize(
        self,
        strategy: ExtractionStrategy,
        candidates: List[ArticleCandidate],
        source: SourceInfo,
        correlation_id: str,
    ) -> List[ValidatedArticle]:
        accepted = self._validated(candidates, source, strategy.name, correlation_id)

        if strategy.unstable_urls and accepted:
            for candidate in accepted:
                candidate.url = await self.resolver.resolve(candidate.url)
            # A redirect may have left the source domain
            accepted = self._validated(accepted, source, strategy.name, correlation_id)

        unique: Dict[str, ArticleCandidate] = {}
        for candidate in accepted:
            key = dedup_key(candidate.url)
            existing = unique.get(key)
            if existing is None:
                unique[key] = candidate
                continue
            if existing.published_at is None and candidate.published_at is not None:
                existing.published_at = candidate.published_at
            if not existing.description and candidate.description:
                existing.description = candidate.description

        ordered = sorted(unique.values(), key=lambda c: newest_first_key(c.published_at))
        limited = ordered[: self.settings.MAX_ARTICLES_PER_SOURCE]
        return [ValidatedArticle.from_candidate(c, source) for c in limited]

    def _validated(
        self,
        candidates: List[ArticleCandidate],
        source: SourceInfo,
        strategy_name: str,
        correlation_id: str,
    ) -> List[ArticleCandidate]:
        accepted = []
        rejected: Counter = Counter()
        for candidate in candidates:
            result = validate(candidate, source.url)
            if result:
                accepted.append(candidate)
            else:
                rejected[result.reason.value] += 1

        if rejected:
            self.logger.debug(
                "Candidates rejected by validation",
                extra={
                    "correlation_id": correlation_id,
                    "strategy": strategy_name,
                    "rejected": dict(rejected),
                },
            )
        return accepted

    async def _record_health(self, source: SourceInfo, record: ScrapeHealthRecord, correlation_id: str) -> None:
        if self.source_repo is None or source.id is None:
            return
        try:
            await self.source_repo.update_scraping_result(source.id, record)
        except Exception as e:
            self.logger.warning(
                f"Failed to store scrape health record: {e}",
                extra={"correlation_id": correlation_id, "source_id": str(source.id)},
            )

    async def close(self) -> None:
        for strategy in self.strategies:
            await strategy.close()
