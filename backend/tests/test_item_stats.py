"""Tests for per-item stats aggregation."""
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from catalog_analytics.models import (
    BookReview,
    BookStats,
    CatalogKind,
    Ebook,
    EbookUnderline,
    Magazine,
    MagazineUnderline,
    ReadingSession,
    UserBookshelf,
)
from catalog_analytics.services.item_stats import (
    aggregate_item_stats,
    count_distinct_readers,
    round_rating,
)
from catalog_analytics.services.records import ActivityRecord, CatalogItem, ReviewSummary
from catalog_analytics.services.sources import load_catalog
from catalog_analytics.services.stores import (
    SqlActivitySource,
    SqlCatalogSource,
    SqlHighlightSource,
    SqlReviewSource,
    SqlSessionSource,
    SqlStatsSink,
)

EBOOK = CatalogKind.EBOOK
MAGAZINE = CatalogKind.MAGAZINE
FIXED_NOW = datetime(2024, 3, 1, 12, 0, 0)


class FakeCatalog:
    def __init__(self, items):
        self.items = items

    def list_items(self, kind):
        return [item for item in self.items if item.kind == kind]


class FakeActivity:
    def __init__(self, records=()):
        self.records = list(records)

    def list_user_item_pairs(self):
        return list(self.records)


class FakeReviews:
    def __init__(self, summaries=None, failing=()):
        self.summaries = summaries or {}
        self.failing = set(failing)

    def aggregate_for(self, kind, item_id):
        if (kind, item_id) in self.failing:
            raise RuntimeError("review store unavailable")
        return self.summaries.get((kind, item_id), ReviewSummary())


class FakeSessions:
    def __init__(self, totals=None):
        self.totals = totals or {}

    def total_duration_for(self, kind, item_id):
        return self.totals.get((kind, item_id), 0)


class FakeHighlights:
    def __init__(self, counts=None):
        self.counts = counts or {}

    def count_for(self, kind, item_id):
        return self.counts.get((kind, item_id), 0)


class RecordingStatsSink:
    def __init__(self):
        self.rows = {}

    def upsert(self, stats):
        self.rows[(stats.kind, stats.item_id)] = stats


def _run(items, activity=(), reviews=None, sessions=None, highlights=None, sink=None):
    sink = sink or RecordingStatsSink()
    summary = aggregate_item_stats(
        FakeCatalog(items),
        FakeActivity(activity),
        reviews or FakeReviews(),
        sessions or FakeSessions(),
        highlights or FakeHighlights(),
        sink,
        clock=lambda: FIXED_NOW,
    )
    return summary, sink


def test_round_rating_half_up():
    assert round_rating(4.335) == 4.34
    assert round_rating(4.334) == 4.33
    assert round_rating(3.0) == 3.0
    assert round_rating(0) == 0.0


def test_count_distinct_readers_ignores_repeat_rows():
    records = [
        ActivityRecord(user_id=1, kind=EBOOK, item_id=1),
        ActivityRecord(user_id=1, kind=EBOOK, item_id=1),
        ActivityRecord(user_id=2, kind=EBOOK, item_id=1),
        ActivityRecord(user_id=2, kind=MAGAZINE, item_id=1),
    ]

    assert count_distinct_readers(records) == {(EBOOK, 1): 2, (MAGAZINE, 1): 1}


def test_items_without_activity_are_not_written():
    items = [CatalogItem(kind=EBOOK, id=1), CatalogItem(kind=EBOOK, id=2)]

    summary, sink = _run(items, activity=[ActivityRecord(user_id=5, kind=EBOOK, item_id=2)])

    assert (EBOOK, 1) not in sink.rows
    assert sink.rows[(EBOOK, 2)].total_readers == 1
    assert summary.items_processed == 2
    assert summary.items_written == 1
    assert summary.items_skipped == 1


def test_any_single_nonzero_metric_is_enough_to_write():
    items = [CatalogItem(kind=EBOOK, id=i) for i in range(1, 4)]

    summary, sink = _run(
        items,
        reviews=FakeReviews({(EBOOK, 1): ReviewSummary(count=2, avg_rating=4.335)}),
        sessions=FakeSessions({(EBOOK, 2): 600}),
        highlights=FakeHighlights({(EBOOK, 3): 4}),
    )

    assert summary.items_written == 3
    assert sink.rows[(EBOOK, 1)].average_rating == 4.34
    assert sink.rows[(EBOOK, 1)].total_reviews == 2
    assert sink.rows[(EBOOK, 2)].total_reading_seconds == 600
    assert sink.rows[(EBOOK, 3)].total_highlights == 4
    assert all(row.updated_at == FIXED_NOW for row in sink.rows.values())


def test_one_failing_item_is_skipped_and_the_rest_are_written():
    items = [CatalogItem(kind=EBOOK, id=1), CatalogItem(kind=MAGAZINE, id=1)]
    activity = [
        ActivityRecord(user_id=1, kind=EBOOK, item_id=1),
        ActivityRecord(user_id=1, kind=MAGAZINE, item_id=1),
    ]

    summary, sink = _run(items, activity=activity, reviews=FakeReviews(failing=[(EBOOK, 1)]))

    assert summary.items_failed == 1
    assert summary.items_written == 1
    assert list(sink.rows) == [(MAGAZINE, 1)]


# ----------------------------
# Database-backed runs
# ----------------------------

@pytest.fixture
def seeded_activity(db: Session):
    db.add_all([
        Ebook(id=1, title="Busy"),
        Ebook(id=2, title="Quiet"),
        Magazine(id=1, title="Weekly"),
    ])
    db.flush()
    db.add_all([
        UserBookshelf(user_id=1, book_type="ebook", book_id=1),
        UserBookshelf(user_id=2, book_type="ebook", book_id=1),
        UserBookshelf(user_id=2, book_type="ebook", book_id=1),
        BookReview(user_id=1, book_type="ebook", book_id=1, rating=5),
        BookReview(user_id=2, book_type="ebook", book_id=1, rating=4),
        BookReview(user_id=3, book_type="ebook", book_id=1, rating=4),
        ReadingSession(user_id=1, book_type="ebook", book_id=1, duration_seconds=300),
        ReadingSession(user_id=2, book_type="ebook", book_id=1, duration_seconds=120),
        # Highlights are counted per kind: these belong to magazine 1, not ebook 1
        MagazineUnderline(magazine_id=1, user_id=1, text="a"),
        MagazineUnderline(magazine_id=1, user_id=2, text="b"),
        EbookUnderline(ebook_id=1, user_id=1, text="c"),
    ])
    db.commit()
    return db


def _run_against(db: Session, clock=lambda: FIXED_NOW):
    return aggregate_item_stats(
        SqlCatalogSource(db),
        SqlActivitySource(db),
        SqlReviewSource(db),
        SqlSessionSource(db),
        SqlHighlightSource(db),
        SqlStatsSink(db),
        clock=clock,
    )


def test_stats_are_persisted_per_item(seeded_activity):
    db = seeded_activity

    summary = _run_against(db)

    assert summary.items_written == 2
    assert summary.items_skipped == 1

    ebook = db.query(BookStats).filter_by(book_type="ebook", book_id=1).one()
    assert ebook.total_readers == 2
    assert ebook.total_reviews == 3
    assert ebook.average_rating == pytest.approx(4.33)
    assert ebook.total_reading_seconds == 420
    assert ebook.total_highlights == 1

    magazine = db.query(BookStats).filter_by(book_type="magazine", book_id=1).one()
    assert magazine.total_readers == 0
    assert magazine.total_highlights == 2

    assert db.query(BookStats).filter_by(book_type="ebook", book_id=2).first() is None


def test_rerunning_updates_in_place(seeded_activity):
    db = seeded_activity
    _run_against(db, clock=lambda: datetime(2024, 3, 1))

    db.add(BookReview(user_id=4, book_type="ebook", book_id=1, rating=1))
    db.commit()
    _run_against(db, clock=lambda: datetime(2024, 3, 2))

    rows = db.query(BookStats).filter_by(book_type="ebook", book_id=1).all()
    assert len(rows) == 1
    assert rows[0].total_reviews == 4
    assert rows[0].average_rating == pytest.approx(3.5)
    assert rows[0].updated_at == datetime(2024, 3, 2)
    assert db.query(BookStats).count() == 2


def test_failed_read_rolls_back_so_later_items_still_run(seeded_activity, monkeypatch):
    db = seeded_activity
    real_query = db.query
    real_rollback = db.rollback
    state = {"failed": False, "rollbacks": 0}

    def query_failing_once_on_reviews(*entities, **kwargs):
        if not state["failed"] and any("book_reviews" in str(entity) for entity in entities):
            state["failed"] = True
            raise OperationalError("SELECT count(book_reviews.id) ...", {}, Exception("server closed the connection"))
        return real_query(*entities, **kwargs)

    def counting_rollback():
        state["rollbacks"] += 1
        real_rollback()

    monkeypatch.setattr(db, "query", query_failing_once_on_reviews)
    monkeypatch.setattr(db, "rollback", counting_rollback)

    summary = _run_against(db)

    # Ebook 1 fails; the session is rolled back before ebook 2 and magazine 1 are read
    assert summary.items_failed == 1
    assert state["rollbacks"] == 1
    assert summary.items_written == 1
    assert summary.items_skipped == 1
    magazine = db.query(BookStats).filter_by(book_type="magazine", book_id=1).one()
    assert magazine.total_highlights == 2
    assert db.query(BookStats).filter_by(book_type="ebook", book_id=1).first() is None


def test_load_catalog_lists_every_kind():
    items = [CatalogItem(kind=MAGAZINE, id=3), CatalogItem(kind=EBOOK, id=7)]

    assert [item.key for item in load_catalog(FakeCatalog(items))] == [(EBOOK, 7), (MAGAZINE, 3)]
