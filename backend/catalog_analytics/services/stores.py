"""
SQLAlchemy implementations of the analytics sources and sinks.

Every store wraps one Session; the job that creates the session owns it and
closes it. Sources and sinks alike roll back before re-raising, so a failed
statement never leaves the shared session in an aborted transaction for the
next item of a batch.
"""
import logging
from contextlib import contextmanager
from typing import Iterable, List, Optional

from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catalog_analytics.models import (
    BookReview,
    BookStats,
    CatalogKind,
    Ebook,
    EbookUnderline,
    Magazine,
    MagazineUnderline,
    PopularHighlight,
    Publisher,
    ReadingSession,
    RelatedBook,
    UserBookshelf,
)
from catalog_analytics.services.records import (
    ActivityRecord,
    CatalogItem,
    ItemStats,
    PopularPassage,
    RelatedItemEdge,
    ReviewSummary,
)

logger = logging.getLogger(__name__)

INSERT_BATCH_SIZE = 1000


def _parse_kind(raw: str) -> Optional[CatalogKind]:
    try:
        return CatalogKind(raw)
    except ValueError:
        return None


@contextmanager
def _rollback_on_error(db: Session):
    # Postgres rejects every statement after an error until the transaction is rolled back
    try:
        yield
    except Exception:
        db.rollback()
        raise


class SqlCatalogSource:
    def __init__(self, db: Session):
        self.db = db

    def list_items(self, kind: CatalogKind) -> List[CatalogItem]:
        with _rollback_on_error(self.db):
            if kind == CatalogKind.EBOOK:
                rows = (
                    self.db.query(Ebook.id, Ebook.author, Ebook.publisher, Ebook.category_id)
                    .order_by(Ebook.id)
                    .all()
                )
                return [
                    CatalogItem(
                        kind=CatalogKind.EBOOK,
                        id=row.id,
                        author=row.author,
                        publisher_name=row.publisher,
                        category_id=row.category_id,
                    )
                    for row in rows
                ]

            rows = (
                self.db.query(Magazine.id, Publisher.name)
                .outerjoin(Publisher, Magazine.publisher_id == Publisher.id)
                .order_by(Magazine.id)
                .all()
            )
        return [
            CatalogItem(kind=CatalogKind.MAGAZINE, id=row[0], publisher_name=row[1])
            for row in rows
        ]


class SqlActivitySource:
    def __init__(self, db: Session):
        self.db = db

    def list_user_item_pairs(self) -> List[ActivityRecord]:
        with _rollback_on_error(self.db):
            rows = (
                self.db.query(UserBookshelf.user_id, UserBookshelf.book_type, UserBookshelf.book_id)
                .order_by(UserBookshelf.user_id)
                .all()
            )

        records = []
        unknown = 0
        for user_id, book_type, book_id in rows:
            kind = _parse_kind(book_type)
            if kind is None:
                unknown += 1
                continue
            records.append(ActivityRecord(user_id=user_id, kind=kind, item_id=book_id))

        if unknown:
            logger.debug(f"Ignored {unknown} bookshelf rows with non-catalog book types")
        return records


class SqlReviewSource:
    def __init__(self, db: Session):
        self.db = db

    def aggregate_for(self, kind: CatalogKind, item_id: int) -> ReviewSummary:
        with _rollback_on_error(self.db):
            count, avg_rating = (
                self.db.query(func.count(BookReview.id), func.coalesce(func.avg(BookReview.rating), 0))
                .filter(and_(BookReview.book_type == kind.value, BookReview.book_id == item_id))
                .one()
            )
        return ReviewSummary(count=int(count or 0), avg_rating=float(avg_rating or 0))


class SqlSessionSource:
    def __init__(self, db: Session):
        self.db = db

    def total_duration_for(self, kind: CatalogKind, item_id: int) -> int:
        with _rollback_on_error(self.db):
            total = (
                self.db.query(func.coalesce(func.sum(ReadingSession.duration_seconds), 0))
                .filter(and_(ReadingSession.book_type == kind.value, ReadingSession.book_id == item_id))
                .scalar()
            )
        return int(total or 0)


class SqlHighlightSource:
    """Ebook and magazine highlights live in separate tables."""

    def __init__(self, db: Session):
        self.db = db

    def count_for(self, kind: CatalogKind, item_id: int) -> int:
        if kind == CatalogKind.EBOOK:
            query = self.db.query(func.count(EbookUnderline.id)).filter(EbookUnderline.ebook_id == item_id)
        else:
            query = self.db.query(func.count(MagazineUnderline.id)).filter(MagazineUnderline.magazine_id == item_id)
        with _rollback_on_error(self.db):
            return int(query.scalar() or 0)

    def popular_passages(self, min_users: int) -> List[PopularPassage]:
        passages: List[PopularPassage] = []
        for kind, model, item_column in (
            (CatalogKind.EBOOK, EbookUnderline, EbookUnderline.ebook_id),
            (CatalogKind.MAGAZINE, MagazineUnderline, MagazineUnderline.magazine_id),
        ):
            readers = func.count(func.distinct(model.user_id))
            with _rollback_on_error(self.db):
                rows = (
                    self.db.query(item_column, model.text, readers)
                    .filter(model.text.isnot(None))
                    .group_by(item_column, model.text)
                    .having(readers >= min_users)
                    .order_by(readers.desc())
                    .all()
                )
            logger.debug(f"Found {len(rows)} popular {kind.value} highlights")
            passages.extend(
                PopularPassage(kind=kind, item_id=item_id, text=text, highlight_count=int(count))
                for item_id, text, count in rows
            )
        return passages


def _insert_in_batches(db: Session, model, rows: List[dict]) -> None:
    for start in range(0, len(rows), INSERT_BATCH_SIZE):
        db.bulk_insert_mappings(model, rows[start:start + INSERT_BATCH_SIZE])


class SqlRelationshipSink:
    """Full replace of related_books: delete every row, insert the new set, commit once."""

    def __init__(self, db: Session):
        self.db = db

    def replace_all(self, edges: Iterable[RelatedItemEdge]) -> int:
        rows = [
            {
                "source_book_type": edge.source_kind.value,
                "source_book_id": edge.source_id,
                "related_book_type": edge.related_kind.value,
                "related_book_id": edge.related_id,
                "relation_type": edge.relation_type.value,
                "similarity_score": edge.similarity_score,
            }
            for edge in edges
        ]

        try:
            removed = self.db.query(RelatedBook).delete(synchronize_session=False)
            _insert_in_batches(self.db, RelatedBook, rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.debug(f"Replaced {removed} related edges with {len(rows)}")
        return len(rows)


class SqlStatsSink:
    def __init__(self, db: Session):
        self.db = db

    def _find(self, stats: ItemStats) -> Optional[BookStats]:
        return self.db.query(BookStats).filter(
            and_(
                BookStats.book_type == stats.kind.value,
                BookStats.book_id == stats.item_id,
            )
        ).first()

    @staticmethod
    def _apply(row: BookStats, stats: ItemStats) -> None:
        row.total_readers = stats.total_readers
        row.average_rating = stats.average_rating
        row.total_reviews = stats.total_reviews
        row.total_reading_seconds = stats.total_reading_seconds
        row.total_highlights = stats.total_highlights
        row.updated_at = stats.updated_at

    def upsert(self, stats: ItemStats) -> None:
        try:
            existing = self._find(stats)
            if existing:
                self._apply(existing, stats)
            else:
                row = BookStats(book_type=stats.kind.value, book_id=stats.item_id)
                self._apply(row, stats)
                self.db.add(row)
            self.db.commit()
        except IntegrityError:
            # Another writer inserted the same (book_type, book_id) first
            self.db.rollback()
            logger.debug(f"Stats row appeared concurrently for {stats.kind.value}:{stats.item_id}, updating")
            self._update_existing(stats)
        except Exception:
            self.db.rollback()
            raise

    def _update_existing(self, stats: ItemStats) -> None:
        try:
            existing = self._find(stats)
            if existing is None:
                raise RuntimeError(f"book_stats row for {stats.kind.value}:{stats.item_id} vanished during upsert")
            self._apply(existing, stats)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class SqlPopularHighlightSink:
    def __init__(self, db: Session):
        self.db = db

    def replace_all(self, passages: Iterable[PopularPassage]) -> int:
        rows = [
            {
                "book_type": passage.kind.value,
                "book_id": passage.item_id,
                "text": passage.text,
                "highlight_count": passage.highlight_count,
            }
            for passage in passages
        ]

        try:
            self.db.query(PopularHighlight).delete(synchronize_session=False)
            _insert_in_batches(self.db, PopularHighlight, rows)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return len(rows)
