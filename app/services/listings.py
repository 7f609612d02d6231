"""Listing upload pipeline and listing lifecycle operations.

Upload runs validator -> duplicate guard -> persistence writer -> notifier, each
stage stopping the pipeline by raising. The unique index on listings.title is the
authoritative duplicate check; ensure_title_available only fails earlier.
"""

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import (
    AlreadyExists,
    DeliveryFailure,
    Forbidden,
    InvalidArgument,
    MarketplaceError,
    MissingField,
    NotFound,
    PayloadTooLarge,
    StorageFailure,
    UnsupportedMediaType,
)
from app.models import Listing
from app.schemas.auth import CurrentUser
from app.schemas.events import ListingEvent
from app.schemas.listing import ListingDraft, ListingRead, ListingUpdate
from app.services.blob_store import LocalBlobStore
from app.services.event_bus import EventBus

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/jpg"})
DEFAULT_DESCRIPTION = "No description available."
NOT_SPECIFIED = "Not specified"
TITLE_TAKEN = "Artwork with this title already exists"

LISTING_CREATED = "listing.created"
LISTING_UPDATED = "listing.updated"
LISTING_DELETED = "listing.deleted"


@dataclass(frozen=True)
class UploadedImage:
    """Image part of an upload request. data holds at most max_bytes + 1 bytes."""

    filename: str | None
    content_type: str
    data: bytes


def _normalize_content_type(value: str | None) -> str:
    return (value or "").split(";")[0].strip().lower()


def validate_image(parts: list[UploadedImage], max_bytes: int) -> UploadedImage:
    """Require exactly one image part of an allowed type and at most max_bytes."""
    if not parts:
        raise MissingField("image")
    if len(parts) > 1:
        raise InvalidArgument("Exactly one image file must be uploaded.")
    image = parts[0]
    if _normalize_content_type(image.content_type) not in ALLOWED_IMAGE_TYPES:
        raise UnsupportedMediaType("Only JPG, PNG, and JPEG files are allowed.")
    if len(image.data) > max_bytes:
        raise PayloadTooLarge(f"Image must not exceed {max_bytes} bytes.")
    if not image.data:
        raise InvalidArgument("Uploaded image is empty.")
    return image


def _text(fields: Mapping[str, str], name: str) -> str:
    value = fields.get(name)
    return value.strip() if isinstance(value, str) else ""


def parse_price(raw: str) -> float:
    """Parse a positive, finite price. Raises InvalidArgument otherwise."""
    try:
        price = float(raw)
    except (TypeError, ValueError):
        raise InvalidArgument("price must be a positive number.") from None
    if not math.isfinite(price) or price <= 0:
        raise InvalidArgument("price must be a positive number.")
    return price


def validate_listing_fields(fields: Mapping[str, str]) -> ListingDraft:
    """Build a ListingDraft from raw form fields, applying defaults for optional ones."""
    title = _text(fields, "title")
    if not title:
        raise MissingField("title")
    raw_price = _text(fields, "price")
    if not raw_price:
        raise MissingField("price")
    price = parse_price(raw_price)
    try:
        return ListingDraft(
            title=title,
            price=price,
            description=_text(fields, "description") or DEFAULT_DESCRIPTION,
            dimensions=_text(fields, "dimensions") or NOT_SPECIFIED,
            material=_text(fields, "material") or NOT_SPECIFIED,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first.get("loc", ())) or "input"
        raise InvalidArgument(f"Invalid {field}: {first.get('msg')}") from e


def ensure_title_available(db: Session, title: str, exclude_id: int | None = None) -> None:
    """Raise AlreadyExists if another listing already has exactly this title."""
    query = db.query(Listing.id).filter(Listing.title == title)
    if exclude_id is not None:
        query = query.filter(Listing.id != exclude_id)
    if query.first() is not None:
        raise AlreadyExists(TITLE_TAKEN)


def _commit(db: Session, title: str, exclude_id: int | None = None) -> None:
    """Commit, mapping a title unique-index violation to AlreadyExists."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        try:
            ensure_title_available(db, title, exclude_id=exclude_id)
        except AlreadyExists:
            logger.info("Title conflict detected at write time: %r", title)
            raise AlreadyExists(TITLE_TAKEN) from e
        logger.exception("Integrity error while saving listing %r", title)
        raise StorageFailure("Could not save the listing.") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error while saving listing %r", title)
        raise StorageFailure("Could not save the listing.") from e


def create_listing(db: Session, draft: ListingDraft, image_url: str, owner_id: int) -> Listing:
    """Insert one listing (status available) and return it with id and timestamps."""
    listing = Listing(
        title=draft.title,
        description=draft.description,
        image_url=image_url,
        owner_id=owner_id,
        price=draft.price,
        status="available",
        dimensions=draft.dimensions,
        material=draft.material,
    )
    db.add(listing)
    _commit(db, draft.title)
    db.refresh(listing)
    return listing


def listing_payload(listing: Listing) -> dict:
    return ListingRead.model_validate(listing).model_dump(mode="json")


def notify_listing_event(bus: EventBus, event_type: str, payload: dict) -> int:
    """Publish to current subscribers; a delivery failure is logged, never raised."""
    event = ListingEvent(type=event_type, data=payload)
    try:
        delivered = bus.publish(event.type, event.data)
    except DeliveryFailure as e:
        logger.warning("Listing event %s not delivered: %s", event_type, e.message)
        return 0
    logger.debug("Listing event %s handed to %s subscriber(s)", event_type, delivered)
    return delivered


def upload_listing(
    db: Session,
    *,
    owner: CurrentUser,
    draft: ListingDraft,
    image: UploadedImage,
    blob_store: LocalBlobStore,
    bus: EventBus,
) -> Listing:
    """
    Run duplicate guard, image storage, insert and notification for a validated upload.

    The owner is always the authenticated caller. If the insert fails the stored
    image is removed again. Once the insert has committed the upload succeeds
    regardless of notification outcome.
    """
    ensure_title_available(db, draft.title)
    image_url = blob_store.save(image.data, _normalize_content_type(image.content_type), image.filename)
    try:
        listing = create_listing(db, draft, image_url, owner.id)
    except MarketplaceError:
        blob_store.delete(image_url)
        raise
    logger.info(
        "Listing created: id=%s title=%r owner_id=%s", listing.id, listing.title, owner.id
    )
    notify_listing_event(bus, LISTING_CREATED, listing_payload(listing))
    return listing


def list_listings(
    db: Session,
    status: str | None = None,
    owner_id: int | None = None,
) -> list[Listing]:
    """All listings, newest first, optionally filtered by status or owner."""
    query = db.query(Listing)
    if status is not None:
        query = query.filter(Listing.status == status)
    if owner_id is not None:
        query = query.filter(Listing.owner_id == owner_id)
    return query.order_by(Listing.created_at.desc(), Listing.id.desc()).all()


def get_listing(db: Session, listing_id: int) -> Listing:
    listing = db.query(Listing).filter(Listing.id == listing_id).first()
    if listing is None:
        raise NotFound("Artwork not found")
    return listing


def authorize_listing_action(listing: Listing, caller: CurrentUser) -> None:
    """Allow the listing's owner or an admin; raise Forbidden for anyone else."""
    if caller.is_admin or listing.owner_id == caller.id:
        return
    raise Forbidden("Unauthorized to modify this artwork")


def update_listing(
    db: Session,
    listing_id: int,
    caller: CurrentUser,
    changes: ListingUpdate,
    bus: EventBus,
) -> Listing:
    """Apply a partial update after existence and ownership checks."""
    listing = get_listing(db, listing_id)
    authorize_listing_action(listing, caller)

    data = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}
    if not data:
        return listing
    if "title" in data and data["title"] != listing.title:
        ensure_title_available(db, data["title"], exclude_id=listing.id)
    if "description" in data and not data["description"]:
        data["description"] = DEFAULT_DESCRIPTION
    for key in ("dimensions", "material"):
        if key in data and not data[key]:
            data[key] = NOT_SPECIFIED

    for key, value in data.items():
        setattr(listing, key, value)
    _commit(db, listing.title, exclude_id=listing.id)
    db.refresh(listing)
    logger.info("Listing updated: id=%s fields=%s by user_id=%s", listing.id, sorted(data), caller.id)
    notify_listing_event(bus, LISTING_UPDATED, listing_payload(listing))
    return listing


def delete_listing(
    db: Session,
    listing_id: int,
    caller: CurrentUser,
    blob_store: LocalBlobStore,
    bus: EventBus,
) -> int:
    """Delete one listing (owner or admin) and its stored image. Returns the deleted id."""
    listing = get_listing(db, listing_id)
    authorize_listing_action(listing, caller)

    payload = listing_payload(listing)
    image_url = listing.image_url
    db.delete(listing)
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("Database error while deleting listing id=%s", listing_id)
        raise StorageFailure("Could not delete the listing.") from e

    if not blob_store.delete(image_url):
        logger.info("No stored image removed for listing id=%s (%s)", listing_id, image_url)
    logger.info("Listing deleted: id=%s by user_id=%s", listing_id, caller.id)
    notify_listing_event(bus, LISTING_DELETED, payload)
    return listing_id
