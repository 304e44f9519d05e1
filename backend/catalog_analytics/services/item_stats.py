"""
Per-item usage statistics.

For every ebook and magazine:
- distinct readers (bookshelf rows)
- review count and average rating
- total reading time
- highlight count (ebook or magazine underlines, by kind)

Items with nothing to report are not written, which keeps book_stats free of
all-zero rows. Each item is computed and stored on its own; one failing item
is logged and skipped without stopping the batch.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Dict, Iterable, Optional, Set

from catalog_analytics.services.records import ActivityRecord, CatalogItem, ItemKey, ItemStats
from catalog_analytics.services.sources import (
    ActivitySource,
    CatalogSource,
    HighlightSource,
    ReviewSource,
    SessionSource,
    StatsSink,
    load_catalog,
)

logger = logging.getLogger(__name__)


@dataclass
class StatsRunSummary:
    items_processed: int = 0
    items_written: int = 0
    items_skipped: int = 0
    items_failed: int = 0


def round_rating(value: float) -> float:
    """Round half-up to 2 decimals (4.335 -> 4.34)."""
    return float(Decimal(str(value or 0)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def count_distinct_readers(records: Iterable[ActivityRecord]) -> Dict[ItemKey, int]:
    readers: Dict[ItemKey, Set[int]] = defaultdict(set)
    for record in records:
        readers[record.item_key].add(record.user_id)
    return {key: len(users) for key, users in readers.items()}


def compute_item_stats(
    item: CatalogItem,
    reader_counts: Dict[ItemKey, int],
    reviews: ReviewSource,
    sessions: SessionSource,
    highlights: HighlightSource,
    now: datetime,
) -> Optional[ItemStats]:
    """Stats for one item, or None when every metric is zero."""
    total_readers = reader_counts.get(item.key, 0)
    review_summary = reviews.aggregate_for(item.kind, item.id)
    reading_seconds = int(sessions.total_duration_for(item.kind, item.id) or 0)
    highlight_count = int(highlights.count_for(item.kind, item.id) or 0)

    if total_readers == 0 and review_summary.count == 0 and reading_seconds == 0 and highlight_count == 0:
        return None

    return ItemStats(
        kind=item.kind,
        item_id=item.id,
        total_readers=total_readers,
        average_rating=round_rating(review_summary.avg_rating),
        total_reviews=review_summary.count,
        total_reading_seconds=reading_seconds,
        total_highlights=highlight_count,
        updated_at=now,
    )


def aggregate_item_stats(
    catalog: CatalogSource,
    activity: ActivitySource,
    reviews: ReviewSource,
    sessions: SessionSource,
    highlights: HighlightSource,
    sink: StatsSink,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> StatsRunSummary:
    summary = StatsRunSummary()

    items = load_catalog(catalog)
    reader_counts = count_distinct_readers(activity.list_user_item_pairs())
    logger.debug(f"Processing stats for {len(items)} items")

    for item in items:
        summary.items_processed += 1
        try:
            stats = compute_item_stats(item, reader_counts, reviews, sessions, highlights, clock())
            if stats is None:
                summary.items_skipped += 1
                continue
            sink.upsert(stats)
            summary.items_written += 1
        except Exception:
            summary.items_failed += 1
            logger.exception(f"Failed to aggregate stats for {item.kind.value}:{item.id}")

    logger.info(
        f"Aggregated stats for {summary.items_written} items "
        f"({summary.items_skipped} without activity, {summary.items_failed} failed)"
    )
    return summary
