"""
Admin access for the job endpoints: a shared key in the X-Admin-Key header.
"""
import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from catalog_analytics.core.config import settings

logger = logging.getLogger(__name__)


def require_admin_key(x_admin_key: Optional[str] = Header(None)) -> None:
    """FastAPI dependency guarding admin routes."""
    if not settings.ADMIN_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="ADMIN_API_KEY is not configured. Admin endpoints are disabled.",
        )

    if not x_admin_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Admin-Key header",
        )

    if not secrets.compare_digest(x_admin_key, settings.ADMIN_API_KEY):
        logger.warning("Rejected admin request with invalid key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid admin key",
        )
