"""
Related items pipeline: index -> mine -> aggregate -> write.

Reads the whole catalog and every bookshelf row, computes all edges in
memory, then replaces the persisted edge set in one write.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from catalog_analytics.services.candidate_aggregator import MAX_RELATED_PER_ITEM, related_edges_for
from catalog_analytics.services.co_occurrence import mine_co_occurrence
from catalog_analytics.services.records import RelatedItemEdge
from catalog_analytics.services.relationship_writer import write_related_edges
from catalog_analytics.services.signal_index import build_signal_index
from catalog_analytics.services.sources import ActivitySource, CatalogSource, RelationshipSink, load_catalog
from catalog_analytics.utils.timing import now_ms, log_elapsed

logger = logging.getLogger(__name__)


@dataclass
class RelatedItemsRunSummary:
    items_processed: int = 0
    items_failed: int = 0
    edges_written: int = 0


def compute_related_items(
    catalog: CatalogSource,
    activity: ActivitySource,
    sink: RelationshipSink,
    limit: int = MAX_RELATED_PER_ITEM,
    warn_collection_size: Optional[int] = None,
) -> RelatedItemsRunSummary:
    """
    Recompute and persist related items for every catalog item.

    Index construction and activity loading failures abort the run (the
    previous edge set stays in place). A failure while ranking a single item
    only skips that item.
    """
    summary = RelatedItemsRunSummary()
    t = now_ms()

    items = load_catalog(catalog)
    index = build_signal_index(items)
    co_occurrence = mine_co_occurrence(
        activity.list_user_item_pairs(),
        warn_collection_size=warn_collection_size,
    )
    t = log_elapsed(t, f"related_items index+mine items={len(items)}", logger.info)

    edges: List[RelatedItemEdge] = []
    for item in items:
        try:
            edges.extend(related_edges_for(item, index, co_occurrence, limit=limit))
            summary.items_processed += 1
        except Exception:
            summary.items_failed += 1
            logger.exception(f"Failed to compute related items for {item.kind.value}:{item.id}")

    t = log_elapsed(t, f"related_items rank edges={len(edges)}", logger.info)

    summary.edges_written = write_related_edges(sink, edges, limit=limit)
    log_elapsed(t, "related_items write", logger.info)

    logger.info(
        f"Computed {summary.edges_written} related item relationships "
        f"({summary.items_processed} items, {summary.items_failed} failed)"
    )
    return summary
