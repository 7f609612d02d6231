"""Request/response schemas for listing endpoints and listing events."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

ListingStatus = Literal["available", "sold"]


class OwnerSummary(BaseModel):
    """Owner fields embedded in listing responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str


class ListingDraft(BaseModel):
    """
    Validated text fields of an upload, with defaults applied.

    Built by the upload validator from multipart form fields; owner is never part
    of the draft, it always comes from the authenticated session.
    """

    title: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., gt=0, allow_inf_nan=False)
    description: str = Field(default="No description available.")
    dimensions: str = Field(default="Not specified", max_length=255)
    material: str = Field(default="Not specified", max_length=255)


class ListingUpdate(BaseModel):
    """Partial update of a listing; only fields that are set are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    status: ListingStatus | None = None
    dimensions: str | None = Field(default=None, max_length=255)
    material: str | None = Field(default=None, max_length=255)

    @field_validator("title", "description", "dimensions", "material")
    @classmethod
    def strip_text(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str | None) -> str | None:
        if v is not None and not v:
            raise ValueError("title must not be blank")
        return v


class ListingRead(BaseModel):
    """Listing as returned to clients and carried by listing events."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    image_url: str
    price: float
    status: ListingStatus
    dimensions: str
    material: str
    owner_id: int
    owner: OwnerSummary | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ListingDeleteResponse(BaseModel):
    message: str = "Listing deleted successfully"
    id: int
