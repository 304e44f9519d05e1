"""
Signal indexes over a catalog snapshot.

Three multi-maps are built in a single pass:
- author -> items (exact, case-sensitive author string)
- normalized publisher name -> items of either kind
- category id -> items

Ebooks store the publisher as free text while magazines reference a
publisher row, so the two kinds share no publisher identifier. They are
joined on the normalized name instead. That join is only as good as the
names: two spellings of one publisher stay unrelated, and two different
publishers with the same name get related.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from catalog_analytics.services.records import CatalogItem, ItemKey

logger = logging.getLogger(__name__)


def normalize_publisher_name(name: Optional[str]) -> Optional[str]:
    """Collapse whitespace and case-fold. Blank names normalize to None."""
    if name is None:
        return None
    normalized = " ".join(name.split()).casefold()
    return normalized or None


@dataclass
class SignalIndex:
    by_author: Dict[str, List[ItemKey]] = field(default_factory=dict)
    by_publisher: Dict[str, List[ItemKey]] = field(default_factory=dict)
    by_category: Dict[int, List[ItemKey]] = field(default_factory=dict)

    def items_by_author(self, author: str) -> List[ItemKey]:
        return list(self.by_author.get(author, []))

    def items_by_publisher(self, publisher_name: Optional[str]) -> List[ItemKey]:
        normalized = normalize_publisher_name(publisher_name)
        if normalized is None:
            return []
        return list(self.by_publisher.get(normalized, []))

    def items_by_category(self, category_id: int) -> List[ItemKey]:
        return list(self.by_category.get(category_id, []))


def build_signal_index(items: Iterable[CatalogItem]) -> SignalIndex:
    """Build all three signal indexes in O(N). Missing fields are simply not indexed."""
    by_author: Dict[str, List[ItemKey]] = defaultdict(list)
    by_publisher: Dict[str, List[ItemKey]] = defaultdict(list)
    by_category: Dict[int, List[ItemKey]] = defaultdict(list)

    count = 0
    for item in items:
        count += 1
        if item.author:
            by_author[item.author].append(item.key)

        publisher = normalize_publisher_name(item.publisher_name)
        if publisher is not None:
            by_publisher[publisher].append(item.key)

        if item.category_id is not None:
            by_category[item.category_id].append(item.key)

    logger.debug(
        f"Indexed {count} items: {len(by_author)} authors, "
        f"{len(by_publisher)} publishers, {len(by_category)} categories"
    )
    return SignalIndex(
        by_author=dict(by_author),
        by_publisher=dict(by_publisher),
        by_category=dict(by_category),
    )
