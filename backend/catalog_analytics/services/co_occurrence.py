"""
Co-occurrence mining over user collections.

Two items co-occur once for every distinct user holding both. The pair count
is stored in both directions so that either item can look up all of its
partners.

Cost is O(U * m^2) for U users holding m items each. That is fine for
collections of a few hundred items; a user with thousands of items dominates
the run. Counts are unweighted; oversized collections are
only reported.
"""
import logging
from collections import Counter, defaultdict
from itertools import combinations
from typing import Dict, Iterable, Optional, Set

from catalog_analytics.services.records import ActivityRecord, ItemKey, item_sort_key

logger = logging.getLogger(__name__)


class CoOccurrenceIndex:
    """Symmetric pair counts between items held by the same users."""

    def __init__(self):
        self._partners: Dict[ItemKey, Counter] = defaultdict(Counter)
        self.users_seen = 0
        self.users_counted = 0

    def add_collection(self, items: Set[ItemKey]) -> None:
        # Sorted so that pair iteration does not depend on set ordering
        ordered = sorted(items, key=item_sort_key)
        for first, second in combinations(ordered, 2):
            self._partners[first][second] += 1
            self._partners[second][first] += 1

    def partners(self, key: ItemKey) -> Dict[ItemKey, int]:
        """All items co-occurring with `key`, with their counts."""
        found = self._partners.get(key)
        return dict(found) if found else {}

    def count(self, first: ItemKey, second: ItemKey) -> int:
        found = self._partners.get(first)
        if not found:
            return 0
        return found.get(second, 0)

    def __len__(self) -> int:
        return len(self._partners)


def group_by_user(records: Iterable[ActivityRecord]) -> Dict[int, Set[ItemKey]]:
    """Distinct items per user; duplicate shelf rows collapse."""
    holdings: Dict[int, Set[ItemKey]] = defaultdict(set)
    for record in records:
        holdings[record.user_id].add(record.item_key)
    return holdings


def mine_co_occurrence(
    records: Iterable[ActivityRecord],
    warn_collection_size: Optional[int] = None,
) -> CoOccurrenceIndex:
    index = CoOccurrenceIndex()

    for user_id, items in group_by_user(records).items():
        index.users_seen += 1
        if len(items) < 2:
            continue

        if warn_collection_size and len(items) > warn_collection_size:
            logger.warning(
                "User %s holds %d items; co-occurrence pairs grow quadratically (%d pairs)",
                user_id,
                len(items),
                len(items) * (len(items) - 1) // 2,
            )

        index.add_collection(items)
        index.users_counted += 1

    logger.debug(
        f"Co-occurrence: {index.users_counted}/{index.users_seen} users contributed pairs, "
        f"{len(index)} items have partners"
    )
    return index
