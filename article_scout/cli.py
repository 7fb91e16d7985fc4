"""Command line entry point for discovery and enrichment runs."""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Callable, Dict, Optional, Sequence
from uuid import UUID

from article_scout.core.enrichment.worker import EnrichmentWorker
from article_scout.core.extraction.browser import shutdown_browser_manager
from article_scout.core.extraction.models import SourceInfo
from article_scout.core.extraction.orchestrator import ExtractionOrchestrator
from article_scout.core.scout import SourceScout
from article_scout.database.connection import close_database_connection, get_database_connection
from article_scout.database.repositories.article_repo import ArticleRepository
from article_scout.database.repositories.source_repo import SourceRepository
from article_scout.shared.config import Settings, get_settings
from article_scout.shared.exceptions import BaseAppException
from article_scout.shared.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="article-scout",
        description="Discover recent articles on monitored websites and enrich stored articles",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (e.g. INFO, DEBUG)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create missing database tables")

    add_source = subparsers.add_parser("add-source", help="Register a website to monitor")
    add_source.add_argument("url", help="Website or blog URL")
    add_source.add_argument("--name", required=True, help="Display name of the source")
    add_source.add_argument("--category", default="General", help="Category label")

    discover = subparsers.add_parser("discover", help="Run discovery for a URL without storing anything")
    discover.add_argument("url", help="Website or blog URL")

    scout = subparsers.add_parser("scout", help="Discover and store articles for stored sources")
    scout.add_argument("--source-id", type=UUID, default=None, help="Only scout this source")

    enrich = subparsers.add_parser("enrich", help="Run one static enrichment batch")
    enrich.add_argument("--limit", type=int, default=None, help="Maximum articles in the batch")

    enrich_browser = subparsers.add_parser("enrich-browser", help="Run one browser enrichment batch")
    enrich_browser.add_argument("--limit", type=int, default=None, help="Maximum articles in the batch")

    subparsers.add_parser("stats", help="Show stored article and enrichment backlog counts")

    watch = subparsers.add_parser("watch-enrichment", help="Run static enrichment periodically")
    watch.add_argument("--interval", type=int, default=None, help="Minutes between batches")

    return parser


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def _init_db(settings: Settings, args: argparse.Namespace) -> int:
    db = get_database_connection(settings)
    await db.create_tables()
    logger.info("Database tables ready")
    return 0


async def _add_source(settings: Settings, args: argparse.Namespace) -> int:
    repo = SourceRepository(get_database_connection(settings))
    source = await repo.create({"name": args.name, "url": args.url, "category": args.category})
    _print({"id": str(source.id), "name": source.name, "url": source.url})
    return 0


async def _discover(settings: Settings, args: argparse.Namespace) -> int:
    orchestrator = ExtractionOrchestrator(settings)
    try:
        articles = await orchestrator.run(SourceInfo(url=args.url))
    finally:
        await orchestrator.close()
    _print([
        {
            "title": article.title,
            "url": article.url,
            "description": article.description,
            "published_at": article.published_at,
        }
        for article in articles
    ])
    return 0


async def _scout(settings: Settings, args: argparse.Namespace) -> int:
    db = get_database_connection(settings)
    scout = SourceScout(
        settings,
        source_repo=SourceRepository(db),
        article_repo=ArticleRepository(db, settings.ENRICHMENT_MIN_DESCRIPTION_LENGTH),
    )
    try:
        if args.source_id is not None:
            result = await scout.scout_source(args.source_id)
        else:
            result = await scout.scout_active_sources()
    finally:
        await scout.close()
    _print(result)
    return 0


def _worker(settings: Settings) -> EnrichmentWorker:
    db = get_database_connection(settings)
    return EnrichmentWorker(
        settings,
        ArticleRepository(db, settings.ENRICHMENT_MIN_DESCRIPTION_LENGTH),
    )


async def _enrich(settings: Settings, args: argparse.Namespace) -> int:
    worker = _worker(settings)
    try:
        result = await worker.run_enrichment_batch(args.limit)
    finally:
        await worker.close()
    _print({**result, "stats": worker.get_stats()})
    return 0


async def _enrich_browser(settings: Settings, args: argparse.Namespace) -> int:
    worker = _worker(settings)
    try:
        result = await worker.run_playwright_enrichment_batch(args.limit)
    finally:
        await worker.close()
    _print({**result, "stats": worker.get_stats()})
    return 0


async def _stats(settings: Settings, args: argparse.Namespace) -> int:
    db = get_database_connection(settings)
    articles = ArticleRepository(db, settings.ENRICHMENT_MIN_DESCRIPTION_LENGTH)
    _print({
        "sources": await SourceRepository(db).count(),
        "articles": await articles.count(),
        "needing_enrichment": await articles.count_articles_needing_enrichment(),
    })
    return 0


async def _watch_enrichment(settings: Settings, args: argparse.Namespace) -> int:
    worker = _worker(settings)
    try:
        await worker.start_periodic_enrichment(args.interval)
    finally:
        await worker.close()
    return 0


COMMANDS: Dict[str, Callable[[Settings, argparse.Namespace], Any]] = {
    "init-db": _init_db,
    "add-source": _add_source,
    "discover": _discover,
    "scout": _scout,
    "enrich": _enrich,
    "enrich-browser": _enrich_browser,
    "stats": _stats,
    "watch-enrichment": _watch_enrichment,
}


async def _run(settings: Settings, args: argparse.Namespace) -> int:
    try:
        return await COMMANDS[args.command](settings, args)
    finally:
        await shutdown_browser_manager()
        await close_database_connection()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    settings = get_settings()
    if args.log_level:
        settings = settings.model_copy(update={"LOG_LEVEL": args.log_level.upper()})
    configure_logging(settings)

    try:
        return asyncio.run(_run(settings, args))
    except BaseAppException as e:
        logger.error(e.message, extra={"error": e.to_dict()})
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
