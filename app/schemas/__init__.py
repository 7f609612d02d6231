"""Pydantic request/response schemas."""

from app.schemas.auth import (
    CurrentUser,
    LoginRequest,
    SignupRequest,
    TokenResponse,
    UserPublic,
)
from app.schemas.events import ListingEvent
from app.schemas.health import HealthResponse
from app.schemas.listing import (
    ListingDraft,
    ListingRead,
    ListingUpdate,
    OwnerSummary,
)

__all__ = [
    "CurrentUser",
    "HealthResponse",
    "ListingDraft",
    "ListingEvent",
    "ListingRead",
    "ListingUpdate",
    "LoginRequest",
    "OwnerSummary",
    "SignupRequest",
    "TokenResponse",
    "UserPublic",
]
