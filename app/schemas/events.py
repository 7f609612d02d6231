"""Schemas for events pushed to real-time subscribers."""

from typing import Any, Literal

from pydantic import BaseModel

ListingEventType = Literal["listing.created", "listing.updated", "listing.deleted"]


class ListingEvent(BaseModel):
    """Envelope sent over the event stream: {"type": ..., "data": ...}."""

    type: ListingEventType
    data: dict[str, Any]
