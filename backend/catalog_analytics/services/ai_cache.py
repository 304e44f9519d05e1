"""
AI summary cache cleanup.

AI summaries carry an expiry; once it passes they are deleted here and get
regenerated the next time someone asks for them.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from catalog_analytics.models import AiBookSummary

logger = logging.getLogger(__name__)


def cleanup_expired_ai_cache(db: Session, now: Optional[datetime] = None) -> int:
    """Delete expired AI summaries. Returns the number of rows removed."""
    now = now or datetime.utcnow()

    try:
        deleted = (
            db.query(AiBookSummary)
            .filter(AiBookSummary.expires_at < now)
            .delete(synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    if deleted > 0:
        logger.info(f"Cleaned up {deleted} expired AI summaries")
    else:
        logger.debug("No expired AI summaries to clean up")

    total_count, total_size = db.query(
        func.count(AiBookSummary.id),
        func.coalesce(func.sum(func.length(AiBookSummary.content)), 0),
    ).one()
    logger.debug(f"AI cache stats: {total_count} summaries, {round((total_size or 0) / 1024)}KB total")

    return deleted
