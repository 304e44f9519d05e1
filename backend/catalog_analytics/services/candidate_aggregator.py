"""
Related-item candidates for a single source item.

Every signal proposes candidates with a base weight. Candidates for the same
(kind, id) are merged by summing their scores, so an item related through
several signals always outranks one related through any single one of them.
"""
import logging
from typing import Dict, Iterable, List

from catalog_analytics.models import RelationType
from catalog_analytics.services.co_occurrence import CoOccurrenceIndex
from catalog_analytics.services.records import (
    CatalogItem,
    ItemKey,
    RelatedItemEdge,
    RelationCandidate,
    item_sort_key,
)
from catalog_analytics.services.signal_index import SignalIndex

logger = logging.getLogger(__name__)

# Base weight per signal. Co-occurrence is multiplied by the pair count.
RELATION_WEIGHTS = {
    RelationType.SAME_AUTHOR: 100,
    RelationType.SAME_PUBLISHER: 50,
    RelationType.SAME_CATEGORY: 30,
    RelationType.CO_OCCURRENCE: 20,
}

# Maximum related items stored per source item
MAX_RELATED_PER_ITEM = 20

# Aggregate score that maps to a similarity of 1.0
SCORE_SCALE = 100.0


def _same_kind_candidates(
    source: CatalogItem,
    keys: Iterable[ItemKey],
    relation_type: RelationType,
) -> List[RelationCandidate]:
    weight = RELATION_WEIGHTS[relation_type]
    return [
        RelationCandidate(kind=kind, item_id=item_id, relation_type=relation_type, score=weight)
        for kind, item_id in keys
        if kind == source.kind and item_id != source.id
    ]


def generate_candidates(
    source: CatalogItem,
    index: SignalIndex,
    co_occurrence: CoOccurrenceIndex,
) -> List[RelationCandidate]:
    """
    Candidates from every signal, source excluded.

    Author and category matches stay within the source's kind; category ids
    are only meaningful inside one catalog. Publisher and co-occurrence
    matches cross kinds.
    """
    candidates: List[RelationCandidate] = []

    if source.author:
        candidates.extend(
            _same_kind_candidates(source, index.items_by_author(source.author), RelationType.SAME_AUTHOR)
        )

    for kind, item_id in index.items_by_publisher(source.publisher_name):
        if (kind, item_id) == source.key:
            continue
        candidates.append(RelationCandidate(
            kind=kind,
            item_id=item_id,
            relation_type=RelationType.SAME_PUBLISHER,
            score=RELATION_WEIGHTS[RelationType.SAME_PUBLISHER],
        ))

    if source.category_id is not None:
        candidates.extend(
            _same_kind_candidates(source, index.items_by_category(source.category_id), RelationType.SAME_CATEGORY)
        )

    for (kind, item_id), count in co_occurrence.partners(source.key).items():
        if (kind, item_id) == source.key:
            continue
        candidates.append(RelationCandidate(
            kind=kind,
            item_id=item_id,
            relation_type=RelationType.CO_OCCURRENCE,
            score=RELATION_WEIGHTS[RelationType.CO_OCCURRENCE] * count,
        ))

    return candidates


def merge_candidates(candidates: Iterable[RelationCandidate]) -> List[RelationCandidate]:
    """
    Combine candidates for the same item.

    Scores are summed. The relation type kept is the contributing signal with
    the highest base weight, not the one that contributed the most score.
    """
    merged: Dict[ItemKey, RelationCandidate] = {}

    for candidate in candidates:
        existing = merged.get(candidate.key)
        if existing is None:
            merged[candidate.key] = RelationCandidate(
                kind=candidate.kind,
                item_id=candidate.item_id,
                relation_type=candidate.relation_type,
                score=candidate.score,
            )
            continue

        existing.score += candidate.score
        if RELATION_WEIGHTS[candidate.relation_type] > RELATION_WEIGHTS[existing.relation_type]:
            existing.relation_type = candidate.relation_type

    return list(merged.values())


def rank_candidates(candidates: Iterable[RelationCandidate], limit: int = MAX_RELATED_PER_ITEM) -> List[RelationCandidate]:
    """Highest score first; equal scores by ascending item id, then kind."""
    ordered = sorted(candidates, key=lambda c: (-c.score, *item_sort_key(c.key)))
    return ordered[:limit]


def similarity_from_score(score: float) -> float:
    # Stacked signals can exceed 1.0
    return round(score / SCORE_SCALE, 4)


def related_edges_for(
    source: CatalogItem,
    index: SignalIndex,
    co_occurrence: CoOccurrenceIndex,
    limit: int = MAX_RELATED_PER_ITEM,
) -> List[RelatedItemEdge]:
    """Top `limit` related items for `source` as persistable edges."""
    ranked = rank_candidates(
        merge_candidates(generate_candidates(source, index, co_occurrence)),
        limit=limit,
    )
    return [
        RelatedItemEdge(
            source_kind=source.kind,
            source_id=source.id,
            related_kind=candidate.kind,
            related_id=candidate.item_id,
            relation_type=candidate.relation_type,
            similarity_score=similarity_from_score(candidate.score),
        )
        for candidate in ranked
    ]
