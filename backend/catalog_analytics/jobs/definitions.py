"""
The recurring analytics jobs.

Every handler opens its own database session for the length of one run and
closes it afterwards, whatever the outcome.
"""
import logging
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from catalog_analytics.core.config import Settings, settings as default_settings
from catalog_analytics.jobs.registry import JobDefinition
from catalog_analytics.services.ai_cache import cleanup_expired_ai_cache
from catalog_analytics.services.item_stats import StatsRunSummary, aggregate_item_stats
from catalog_analytics.services.popular_highlights import refresh_popular_highlights
from catalog_analytics.services.related_items import RelatedItemsRunSummary, compute_related_items
from catalog_analytics.services.stores import (
    SqlActivitySource,
    SqlCatalogSource,
    SqlHighlightSource,
    SqlPopularHighlightSink,
    SqlRelationshipSink,
    SqlReviewSource,
    SqlSessionSource,
    SqlStatsSink,
)

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

HOUR = timedelta(hours=1)
DAY = timedelta(days=1)
WEEK = timedelta(weeks=1)

AGGREGATE_BOOK_STATS = "aggregate_book_stats"
REFRESH_POPULAR_HIGHLIGHTS = "refresh_popular_highlights"
CLEANUP_EXPIRED_AI_CACHE = "cleanup_expired_ai_cache"
COMPUTE_RELATED_BOOKS = "compute_related_books"


def run_aggregate_book_stats(session_factory: SessionFactory) -> StatsRunSummary:
    db = session_factory()
    try:
        return aggregate_item_stats(
            catalog=SqlCatalogSource(db),
            activity=SqlActivitySource(db),
            reviews=SqlReviewSource(db),
            sessions=SqlSessionSource(db),
            highlights=SqlHighlightSource(db),
            sink=SqlStatsSink(db),
        )
    finally:
        db.close()


def run_compute_related_books(session_factory: SessionFactory, config: Settings) -> RelatedItemsRunSummary:
    db = session_factory()
    try:
        return compute_related_items(
            catalog=SqlCatalogSource(db),
            activity=SqlActivitySource(db),
            sink=SqlRelationshipSink(db),
            limit=config.RELATED_ITEMS_PER_SOURCE,
            warn_collection_size=config.CO_OCCURRENCE_WARN_COLLECTION_SIZE,
        )
    finally:
        db.close()


def run_refresh_popular_highlights(session_factory: SessionFactory, config: Settings) -> int:
    db = session_factory()
    try:
        return refresh_popular_highlights(
            highlights=SqlHighlightSource(db),
            sink=SqlPopularHighlightSink(db),
            min_users=config.POPULAR_HIGHLIGHT_MIN_USERS,
            per_item=config.POPULAR_HIGHLIGHTS_PER_ITEM,
        )
    finally:
        db.close()


def run_cleanup_expired_ai_cache(session_factory: SessionFactory) -> int:
    db = session_factory()
    try:
        return cleanup_expired_ai_cache(db)
    finally:
        db.close()


def build_job_definitions(
    session_factory: Optional[SessionFactory] = None,
    config: Optional[Settings] = None,
) -> List[JobDefinition]:
    if session_factory is None:
        from catalog_analytics.database import SessionLocal
        session_factory = SessionLocal
    config = config or default_settings

    return [
        # Hourly
        JobDefinition(
            name=REFRESH_POPULAR_HIGHLIGHTS,
            interval=HOUR,
            run_immediately=True,
            handler=lambda: run_refresh_popular_highlights(session_factory, config),
            description="Refresh popular highlights",
        ),
        JobDefinition(
            name=AGGREGATE_BOOK_STATS,
            interval=HOUR,
            run_immediately=True,
            handler=lambda: run_aggregate_book_stats(session_factory),
            description="Aggregate per-item usage stats",
        ),
        # Daily
        JobDefinition(
            name=CLEANUP_EXPIRED_AI_CACHE,
            interval=DAY,
            handler=lambda: run_cleanup_expired_ai_cache(session_factory),
            description="Delete expired AI summaries",
        ),
        # Weekly
        JobDefinition(
            name=COMPUTE_RELATED_BOOKS,
            interval=WEEK,
            handler=lambda: run_compute_related_books(session_factory, config),
            description="Recompute related items",
        ),
    ]
