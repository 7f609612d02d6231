"""ORM model for password-reset one-time codes."""

from sqlalchemy import Column, DateTime, Integer, String, func

from app.models.base import Base


class OneTimeCode(Base):
    """
    Numeric code issued to a contact (the account email) for password reset.

    expires_at is checked on every verification; rows past it are only deleted
    later by the retention job. A code stops verifying once failed_attempts
    reaches the configured limit.
    """

    __tablename__ = "one_time_codes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact = Column(String(320), nullable=False, index=True)
    code = Column(String(16), nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    failed_attempts = Column(Integer, nullable=False, default=0, server_default="0")
