"""
Boundaries between the analytics jobs and the stores they read and write.

The jobs depend only on these protocols. `catalog_analytics.services.stores`
implements them on top of SQLAlchemy; tests pass plain in-memory fakes.
"""
from typing import Iterable, List, Protocol

from catalog_analytics.models import CatalogKind
from catalog_analytics.services.records import (
    ActivityRecord,
    CatalogItem,
    ItemStats,
    PopularPassage,
    RelatedItemEdge,
    ReviewSummary,
)


class CatalogSource(Protocol):
    def list_items(self, kind: CatalogKind) -> List[CatalogItem]: ...


class ActivitySource(Protocol):
    def list_user_item_pairs(self) -> List[ActivityRecord]: ...


class ReviewSource(Protocol):
    def aggregate_for(self, kind: CatalogKind, item_id: int) -> ReviewSummary: ...


class SessionSource(Protocol):
    def total_duration_for(self, kind: CatalogKind, item_id: int) -> int: ...


class HighlightSource(Protocol):
    def count_for(self, kind: CatalogKind, item_id: int) -> int: ...

    def popular_passages(self, min_users: int) -> List[PopularPassage]: ...


class RelationshipSink(Protocol):
    def replace_all(self, edges: Iterable[RelatedItemEdge]) -> int: ...


class StatsSink(Protocol):
    def upsert(self, stats: ItemStats) -> None: ...


class PopularHighlightSink(Protocol):
    def replace_all(self, passages: Iterable[PopularPassage]) -> int: ...


def load_catalog(catalog: CatalogSource) -> List[CatalogItem]:
    """Every item of every kind, ebooks first."""
    items: List[CatalogItem] = []
    for kind in CatalogKind:
        items.extend(catalog.list_items(kind))
    return items
