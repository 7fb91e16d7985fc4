"""Agentic search extraction: ask a search-grounded LLM for recent articles."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse
from uuid import uuid4

from article_scout.core.enrichment.page_parser import parse_date_value
from article_scout.core.extraction.agent import (
    AgentRateLimiter,
    SearchAgent,
    build_query,
    get_rate_limiter,
    get_search_agent,
    parse_agent_reply,
)
from article_scout.core.extraction.base import ExtractionStrategy
from article_scout.core.extraction.models import ArticleCandidate, SourceInfo, newest_first_key
from article_scout.core.extraction.resolver import CanonicalUrlResolver
from article_scout.core.extraction.validator import join_url, validate
from article_scout.shared.config import Settings


def absolutize(url: str, source_url: str) -> Optional[str]:
    """Make an agent-supplied URL absolute relative to the source.

    A leading "/" resolves against the source origin; any other relative
    path resolves against the directory of the source URL. Returns ``None``
    when the URL cannot be parsed.
    """
    url = url.strip()
    if url.startswith(("http://", "https://")):
        return url
    return join_url(source_url, url)


def candidate_from_reply_item(item: Dict[str, Any], source_url: str) -> ArticleCandidate:
    raw_url = item.get("url") or item.get("link") or ""
    url = absolutize(raw_url, source_url) if isinstance(raw_url, str) and raw_url and raw_url != "null" else None
    title = item.get("title")
    description = item.get("description")
    return ArticleCandidate(
        title=title.strip() if isinstance(title, str) else "",
        url=url or "",
        description=description.strip() if isinstance(description, str) else "",
        published_at=parse_date_value(item.get("datePublished") or item.get("date")),
    )


class AgenticExtractor(ExtractionStrategy):
    """Delegates discovery to ``SearchAgent`` and post-processes its reply.

    Results are validated, resolved to canonical URLs, ordered newest first
    with undated items last, and trimmed to ``AGENT_RESULT_LIMIT``.
    """

    name = "agentic"
    unstable_urls = True

    def __init__(
        self,
        settings: Settings,
        agent: Optional[SearchAgent] = None,
        rate_limiter: Optional[AgentRateLimiter] = None,
        resolver: Optional[CanonicalUrlResolver] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.agent = agent or get_search_agent(settings)
        self.rate_limiter = rate_limiter or get_rate_limiter(settings)
        self.resolver = resolver or CanonicalUrlResolver(settings, logger=self.logger)

    async def extract(self, source: SourceInfo) -> List[ArticleCandidate]:
        """Query the agent for ``source``.

        Raises:
            ExtractionFailedError: When the agent is unavailable, out of quota,
                lacks the search tool or fails outright
        """
        correlation_id = str(uuid4())
        limit = self.settings.AGENT_RESULT_LIMIT

        await self.rate_limiter.wait()

        self.logger.info(
            "Starting agentic extraction",
            extra={"correlation_id": correlation_id, "source_url": source.url},
        )

        domain = source.hostname or urlparse(source.url).netloc
        reply = await self.agent.ask(build_query(source.url, domain, limit))
        items = parse_agent_reply(reply)

        candidates = [candidate_from_reply_item(item, source.url) for item in items]
        accepted = []
        for candidate in candidates:
            result = validate(candidate, source.url)
            if result:
                accepted.append(candidate)
            else:
                self.logger.debug(
                    "Agent candidate rejected",
                    extra={
                        "correlation_id": correlation_id,
                        "url": candidate.url,
                        "reason": result.reason.value,
                    },
                )

        for candidate in accepted:
            candidate.url = await self.resolver.resolve(candidate.url)

        accepted.sort(key=lambda c: newest_first_key(c.published_at))
        results = accepted[:limit]

        self.logger.info(
            "Agentic extraction finished",
            extra={
                "correlation_id": correlation_id,
                "source_url": source.url,
                "model": self.agent.model,
                "returned": len(items),
                "accepted": len(accepted),
                "kept": len(results),
            },
        )
        return results
