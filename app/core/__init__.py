"""Core app configuration, database session and domain errors."""

from app.core.config import get_settings, settings
from app.core.database import get_db
from app.core.exceptions import MarketplaceError

__all__ = ["MarketplaceError", "get_settings", "settings", "get_db"]
