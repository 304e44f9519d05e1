"""
In-memory records passed between the stores and the analytics services.

None of these are ORM objects: stores convert rows into records on the way
in and records into rows on the way out, so the algorithms never touch a
database session.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from catalog_analytics.models import CatalogKind, RelationType

# (kind, id) identifies an item across both catalogs
ItemKey = Tuple[CatalogKind, int]


def item_sort_key(key: ItemKey) -> Tuple[int, str]:
    """Ascending item id, then kind: the deterministic order used for ties."""
    kind, item_id = key
    return item_id, kind.value


@dataclass(frozen=True)
class CatalogItem:
    kind: CatalogKind
    id: int
    author: Optional[str] = None
    publisher_name: Optional[str] = None
    category_id: Optional[int] = None

    @property
    def key(self) -> ItemKey:
        return (self.kind, self.id)


@dataclass(frozen=True)
class ActivityRecord:
    """A single item held in a user's personal collection."""
    user_id: int
    kind: CatalogKind
    item_id: int

    @property
    def item_key(self) -> ItemKey:
        return (self.kind, self.item_id)


@dataclass
class RelationCandidate:
    kind: CatalogKind
    item_id: int
    relation_type: RelationType
    score: float

    @property
    def key(self) -> ItemKey:
        return (self.kind, self.item_id)


@dataclass(frozen=True)
class RelatedItemEdge:
    source_kind: CatalogKind
    source_id: int
    related_kind: CatalogKind
    related_id: int
    relation_type: RelationType
    similarity_score: float

    @property
    def source_key(self) -> ItemKey:
        return (self.source_kind, self.source_id)


@dataclass(frozen=True)
class ReviewSummary:
    count: int = 0
    avg_rating: float = 0.0


@dataclass
class ItemStats:
    kind: CatalogKind
    item_id: int
    total_readers: int = 0
    average_rating: float = 0.0
    total_reviews: int = 0
    total_reading_seconds: int = 0
    total_highlights: int = 0
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass(frozen=True)
class PopularPassage:
    kind: CatalogKind
    item_id: int
    text: str
    highlight_count: int
