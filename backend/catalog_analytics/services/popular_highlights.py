"""
Popular highlights: passages that several readers underlined in the same item.
Powers the "popular highlights" block on item detail pages.
"""
import logging
from collections import defaultdict
from typing import Dict, List

from catalog_analytics.services.records import ItemKey, PopularPassage
from catalog_analytics.services.sources import HighlightSource, PopularHighlightSink

logger = logging.getLogger(__name__)


def top_passages_per_item(passages: List[PopularPassage], per_item: int) -> List[PopularPassage]:
    """Most highlighted passages first, at most `per_item` per item."""
    grouped: Dict[ItemKey, List[PopularPassage]] = defaultdict(list)
    for passage in passages:
        grouped[(passage.kind, passage.item_id)].append(passage)

    kept: List[PopularPassage] = []
    for key in sorted(grouped, key=lambda k: (k[0].value, k[1])):
        ranked = sorted(grouped[key], key=lambda p: (-p.highlight_count, p.text))
        kept.extend(ranked[:per_item])
    return kept


def refresh_popular_highlights(
    highlights: HighlightSource,
    sink: PopularHighlightSink,
    min_users: int = 2,
    per_item: int = 10,
) -> int:
    passages = highlights.popular_passages(min_users)
    kept = top_passages_per_item(passages, per_item)
    written = sink.replace_all(kept)
    logger.info(
        f"Updated popular highlights for {len({(p.kind, p.item_id) for p in kept})} items "
        f"({written} passages)"
    )
    return written
