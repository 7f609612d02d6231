"""SQLAlchemy ORM models."""

from app.models.base import Base
from app.models.listing import LISTING_STATUSES, Listing
from app.models.one_time_code import OneTimeCode
from app.models.user import User

__all__ = ["Base", "LISTING_STATUSES", "Listing", "OneTimeCode", "User"]
