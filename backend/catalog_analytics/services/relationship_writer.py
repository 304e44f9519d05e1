"""
Persisting a run's related-item edges.

Each run replaces the whole edge set. The sink deletes and inserts in one
transaction: readers see either the previous set or the new one, and a
failed write rolls back to the previous set. Unrelated tables are never
touched.
"""
import logging
from collections import defaultdict
from typing import Dict, Iterable, List

from catalog_analytics.services.candidate_aggregator import MAX_RELATED_PER_ITEM
from catalog_analytics.services.records import ItemKey, RelatedItemEdge
from catalog_analytics.services.sources import RelationshipSink

logger = logging.getLogger(__name__)


def cap_edges_per_source(edges: Iterable[RelatedItemEdge], limit: int = MAX_RELATED_PER_ITEM) -> List[RelatedItemEdge]:
    """Keep at most `limit` edges per source, in the order given."""
    kept: List[RelatedItemEdge] = []
    per_source: Dict[ItemKey, int] = defaultdict(int)
    dropped = 0

    for edge in edges:
        if per_source[edge.source_key] >= limit:
            dropped += 1
            continue
        per_source[edge.source_key] += 1
        kept.append(edge)

    if dropped:
        logger.warning(f"Dropped {dropped} related edges above the per-item cap of {limit}")
    return kept


def write_related_edges(
    sink: RelationshipSink,
    edges: Iterable[RelatedItemEdge],
    limit: int = MAX_RELATED_PER_ITEM,
) -> int:
    """Replace all persisted edges with `edges`. Returns the number written."""
    capped = cap_edges_per_source(edges, limit=limit)
    written = sink.replace_all(capped)
    logger.info(f"Persisted {written} related edges for {len({e.source_key for e in capped})} items")
    return written
