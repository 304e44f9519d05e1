from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from catalog_analytics.core.config import settings
import logging
import time

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 200.0


def _engine_kwargs(url: str) -> dict:
    """Connection options per backend; SQLite is shared across job threads."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared connection, otherwise every checkout sees an empty database
            kwargs["poolclass"] = StaticPool
        return kwargs
    return {"pool_pre_ping": True}


def attach_slow_query_logging(target_engine) -> None:
    """Log statements slower than SLOW_QUERY_THRESHOLD_MS."""

    @event.listens_for(target_engine, "before_cursor_execute")
    def receive_before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        context._query_start_time = time.perf_counter()

    @event.listens_for(target_engine, "after_cursor_execute")
    def receive_after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        if hasattr(context, "_query_start_time"):
            elapsed_ms = (time.perf_counter() - context._query_start_time) * 1000
            if elapsed_ms >= SLOW_QUERY_THRESHOLD_MS:
                statement_first_line = statement.split("\n")[0].strip()[:100]
                logger.warning(
                    f"SLOW_QUERY: {elapsed_ms:.2f}ms - {statement_first_line}"
                )


logger.info("Catalog analytics database: %s", settings.get_masked_database_url())

engine = create_engine(
    settings.DATABASE_URL,
    echo=False,
    **_engine_kwargs(settings.DATABASE_URL),
)

# Slow query logging (DEBUG mode only)
if settings.DEBUG:
    attach_slow_query_logging(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None) -> None:
    """
    Ensure all tables exist.

    create_all() only creates missing tables; it never alters existing ones.
    This imports all models so that Base.metadata includes all table definitions.
    """
    from catalog_analytics import models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)
