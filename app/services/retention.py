"""Data retention: delete one-time codes that are expired or already consumed."""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models import OneTimeCode

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)


def run_retention(session: Session, settings: "Settings", now: datetime | None = None) -> int:
    """
    Delete codes past expires_at or with consumed_at set. Returns the number deleted.

    Only reclaims space: verification never relies on this having run.
    Idempotent: safe to run repeatedly.
    """
    if not settings.OTP_PURGE_ENABLED:
        logger.info("Code purge is disabled (OTP_PURGE_ENABLED=false); skipping.")
        return 0

    cutoff = now or datetime.now(timezone.utc)
    deleted_count = (
        session.query(OneTimeCode)
        .filter(
            or_(
                OneTimeCode.expires_at <= cutoff,
                OneTimeCode.consumed_at.is_not(None),
            )
        )
        .delete(synchronize_session=False)
    )
    session.commit()

    if deleted_count > 0:
        logger.info(
            "Retention run: cutoff=%s, codes_deleted=%s",
            cutoff.isoformat(),
            deleted_count,
        )
    return deleted_count
