from sqlalchemy import Column, String, Integer, Text, DateTime, ForeignKey, Float, Numeric, UniqueConstraint
from datetime import datetime
import enum
import sqlalchemy as sa
from catalog_analytics.database import Base


class CatalogKind(str, enum.Enum):
    EBOOK = "ebook"
    MAGAZINE = "magazine"


class RelationType(str, enum.Enum):
    SAME_AUTHOR = "same_author"
    SAME_PUBLISHER = "same_publisher"
    SAME_CATEGORY = "same_category"
    CO_OCCURRENCE = "co_occurrence"


# ============================================
# Catalog (read-only inputs, owned by the catalog service)
# ============================================

class EbookCategory(Base):
    __tablename__ = "ebook_categories"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Ebook(Base):
    __tablename__ = "ebooks"

    id = Column(Integer, primary_key=True)
    category_id = Column(Integer, ForeignKey("ebook_categories.id"), nullable=True, index=True)
    title = Column(String, nullable=False)
    author = Column(String, nullable=True, index=True)
    publisher = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Publisher(Base):
    __tablename__ = "publishers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Magazine(Base):
    __tablename__ = "magazines"

    id = Column(Integer, primary_key=True)
    publisher_id = Column(Integer, ForeignKey("publishers.id"), nullable=True, index=True)
    title = Column(String, nullable=False)
    year = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================
# User activity (read-only inputs)
# ============================================

class UserBookshelf(Base):
    """One row per item a user keeps on their bookshelf."""
    __tablename__ = "user_bookshelves"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    book_type = Column(String, nullable=False)  # ebook | magazine
    book_id = Column(Integer, nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        sa.Index("idx_user_bookshelves_book", "book_type", "book_id"),
    )


class BookReview(Base):
    __tablename__ = "book_reviews"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    book_type = Column(String, nullable=False)
    book_id = Column(Integer, nullable=False)
    rating = Column(Integer, nullable=True)  # 1..5
    content = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        sa.Index("idx_book_reviews_book", "book_type", "book_id"),
    )


class ReadingSession(Base):
    __tablename__ = "reading_sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    book_type = Column(String, nullable=False)
    book_id = Column(Integer, nullable=False)
    start_time = Column(DateTime, nullable=False, default=datetime.utcnow)
    end_time = Column(DateTime, nullable=True)
    duration_seconds = Column(Integer, default=0)

    __table_args__ = (
        sa.Index("idx_reading_sessions_book", "book_id", "book_type"),
    )


class EbookUnderline(Base):
    __tablename__ = "ebook_underlines"

    id = Column(Integer, primary_key=True)
    ebook_id = Column(Integer, ForeignKey("ebooks.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    text = Column(Text, nullable=True)
    chapter_index = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class MagazineUnderline(Base):
    __tablename__ = "magazine_underlines"

    id = Column(Integer, primary_key=True)
    magazine_id = Column(Integer, ForeignKey("magazines.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    text = Column(Text, nullable=True)
    page_number = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# ============================================
# Analytics outputs (owned by this service)
# ============================================

class RelatedBook(Base):
    """
    Directed, scored relationship from a source item to a related item.
    The whole table is replaced on every related-books run.
    """
    __tablename__ = "related_books"

    id = Column(Integer, primary_key=True)
    source_book_type = Column(String, nullable=False)
    source_book_id = Column(Integer, nullable=False)
    related_book_type = Column(String, nullable=False)
    related_book_id = Column(Integer, nullable=False)
    relation_type = Column(String, nullable=False)
    similarity_score = Column(Numeric(8, 4, asdecimal=False), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        sa.Index("idx_related_books_source", "source_book_type", "source_book_id"),
    )


class BookStats(Base):
    __tablename__ = "book_stats"

    id = Column(Integer, primary_key=True)
    book_type = Column(String, nullable=False)
    book_id = Column(Integer, nullable=False)
    total_readers = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=False, default=0.0)
    total_reviews = Column(Integer, nullable=False, default=0)
    total_reading_seconds = Column(Integer, nullable=False, default=0)
    total_highlights = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("book_type", "book_id", name="uq_book_stats_book"),
    )


class PopularHighlight(Base):
    """Passages highlighted by several readers, shown on item detail pages."""
    __tablename__ = "popular_highlights"

    id = Column(Integer, primary_key=True)
    book_type = Column(String, nullable=False)
    book_id = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)
    highlight_count = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        sa.Index("idx_popular_highlights_book", "book_type", "book_id"),
    )


class AiBookSummary(Base):
    """AI-generated summary cache. Written by the AI feature, expired rows are purged here."""
    __tablename__ = "ai_book_summaries"

    id = Column(Integer, primary_key=True)
    book_type = Column(String, nullable=False)
    book_id = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
