"""Password reset with short-lived numeric one-time codes.

Codes expire OTP_TTL_SECONDS after issue. Expiry is checked explicitly on every
verification; the retention job only reclaims space. Each wrong guess counts
against the newest live code, which stops verifying after OTP_MAX_ATTEMPTS misses.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.core.exceptions import InvalidArgument, NotFound, StorageFailure
from app.core.security import codes_match, generate_numeric_code, hash_password
from app.models import OneTimeCode, User
from app.services.accounts import find_user_by_contact, validate_password
from app.services.otp_delivery import CodeDeliveryChannel

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

INVALID_CODE = "Invalid or expired code."
DEFAULT_MAX_ATTEMPTS = 5


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _resolve_user(db: Session, email_or_username: str) -> User:
    user = find_user_by_contact(db, email_or_username)
    if user is None:
        raise NotFound("No account matches that email or username.")
    return user


def _store_new_code(
    db: Session,
    email_or_username: str,
    settings: "Settings",
    issued_at: datetime,
) -> tuple[User, OneTimeCode]:
    """Replace the account's unconsumed codes with a new one (flushed, not committed)."""
    user = _resolve_user(db, email_or_username)
    db.query(OneTimeCode).filter(
        OneTimeCode.contact == user.email,
        OneTimeCode.consumed_at.is_(None),
    ).delete(synchronize_session=False)
    otp = OneTimeCode(
        contact=user.email,
        code=generate_numeric_code(settings.OTP_LENGTH),
        created_at=issued_at,
        expires_at=issued_at + timedelta(seconds=settings.OTP_TTL_SECONDS),
        failed_attempts=0,
    )
    db.add(otp)
    try:
        db.flush()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error while issuing reset code")
        raise StorageFailure("Could not issue a reset code.") from e
    return user, otp


async def issue_reset_code(
    db: Session,
    email_or_username: str,
    channel: CodeDeliveryChannel,
    settings: "Settings",
    now: datetime | None = None,
) -> OneTimeCode:
    """
    Create a new code for the account and deliver it to the account email.

    Earlier unconsumed codes for the same account are discarded. If delivery
    fails the new code is rolled back and DeliveryFailure propagates. Database
    work runs in the threadpool so the event loop is free while it blocks.
    """
    issued_at = now or datetime.now(UTC)
    user, otp = await run_in_threadpool(_store_new_code, db, email_or_username, settings, issued_at)
    user_id, email, code = user.id, user.email, otp.code

    try:
        await channel.send(email, code)
    except Exception:
        await run_in_threadpool(db.rollback)
        raise
    await run_in_threadpool(db.commit)
    logger.info("Reset code issued for user_id=%s", user_id)
    return otp


def _record_miss(db: Session, otp: OneTimeCode, max_attempts: int) -> None:
    otp.failed_attempts = (otp.failed_attempts or 0) + 1
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error while recording a failed code attempt")
        raise StorageFailure("Could not verify the code.") from e
    if otp.failed_attempts >= max_attempts:
        logger.warning("Reset code id=%s locked after %s failed attempts", otp.id, otp.failed_attempts)


def find_valid_code(
    db: Session,
    email_or_username: str,
    code: str,
    now: datetime | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> tuple[User, OneTimeCode]:
    """
    Return (user, code row) for a live, unconsumed, matching code or raise InvalidArgument.

    A miss is recorded against the newest live code before raising.
    """
    user = find_user_by_contact(db, email_or_username)
    if user is None:
        raise InvalidArgument(INVALID_CODE)
    at = now or datetime.now(UTC)
    candidates = (
        db.query(OneTimeCode)
        .filter(
            OneTimeCode.contact == user.email,
            OneTimeCode.consumed_at.is_(None),
        )
        .order_by(OneTimeCode.id.desc())
        .all()
    )
    live = [
        otp
        for otp in candidates
        if _as_utc(otp.expires_at) > at and (otp.failed_attempts or 0) < max_attempts
    ]
    supplied = code.strip()
    for otp in live:
        if codes_match(otp.code, supplied):
            return user, otp
    if live:
        _record_miss(db, live[0], max_attempts)
    raise InvalidArgument(INVALID_CODE)


def reset_password(
    db: Session,
    email_or_username: str,
    code: str,
    new_password: str,
    now: datetime | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> User:
    """Consume a valid code and replace the account password."""
    validate_password(new_password)
    at = now or datetime.now(UTC)
    user, otp = find_valid_code(db, email_or_username, code, now=at, max_attempts=max_attempts)
    user.password_hash = hash_password(new_password)
    otp.consumed_at = at
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error while resetting password for user_id=%s", user.id)
        raise StorageFailure("Could not reset the password.") from e
    logger.info("Password reset for user_id=%s", user.id)
    return user
