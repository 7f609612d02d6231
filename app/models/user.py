"""ORM model for marketplace accounts (auth and RBAC)."""

from sqlalchemy import Column, DateTime, Integer, String, func

from app.models.base import Base

DEFAULT_PROFILE_PIC = "https://example.com/default-profile.png"


class User(Base):
    """
    Marketplace account for JWT authentication and role-based access control.

    email is stored trimmed and lowercased so the unique index is case-insensitive.
    role: 'admin' or 'user'
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, index=True)
    mobile = Column(String(10), nullable=False)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="user")
    profile_pic = Column(String(2048), nullable=False, default=DEFAULT_PROFILE_PIC)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
