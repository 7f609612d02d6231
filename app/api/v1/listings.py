"""Listing endpoints: multipart upload, browse, update and delete artwork listings."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session
from starlette.datastructures import FormData, UploadFile

from app.api.v1.auth import get_current_user
from app.core.config import get_settings
from app.core.database import get_db
from app.core.exceptions import PayloadTooLarge, UnsupportedMediaType
from app.schemas.auth import CurrentUser
from app.schemas.listing import ListingDeleteResponse, ListingRead, ListingStatus, ListingUpdate
from app.services.blob_store import LocalBlobStore, get_blob_store
from app.services.event_bus import EventBus, get_event_bus
from app.services import listings as listing_service
from app.services.listings import UploadedImage

logger = logging.getLogger(__name__)

router = APIRouter()

# Room for text fields and multipart boundaries on top of the image itself.
FORM_OVERHEAD_BYTES = 64 * 1024


def _is_upload_file(obj: object) -> bool:
    """True if obj is an uploaded file (UploadFile or file-like with filename and read)."""
    if isinstance(obj, UploadFile):
        return True
    return (
        hasattr(obj, "read")
        and callable(getattr(obj, "read", None))
        and hasattr(obj, "filename")
    )


async def _collect_form(form: FormData, max_bytes: int) -> tuple[dict[str, str], list[UploadedImage]]:
    """Split a parsed form into text fields (first value wins) and image parts."""
    fields: dict[str, str] = {}
    images: list[UploadedImage] = []
    for key, value in form.multi_items():
        if _is_upload_file(value):
            # One byte over the limit is enough to detect an oversized part.
            data = await value.read(max_bytes + 1)
            images.append(
                UploadedImage(
                    filename=getattr(value, "filename", None),
                    content_type=getattr(value, "content_type", None) or "",
                    data=data,
                )
            )
        elif isinstance(value, str) and key not in fields:
            fields[key] = value
    return fields, images


def _check_content_length(request: Request, max_bytes: int) -> None:
    """Reject a declared body larger than one image plus form overhead before parsing it."""
    raw = request.headers.get("content-length")
    if raw is None:
        return
    try:
        declared = int(raw)
    except ValueError:
        return
    limit = max_bytes + FORM_OVERHEAD_BYTES
    if declared > limit:
        logger.info("Upload rejected before parsing: content-length=%s limit=%s", declared, limit)
        raise PayloadTooLarge(f"Request body must not exceed {limit} bytes.")


@router.post("", response_model=ListingRead, status_code=201)
async def post_listing(
    request: Request,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    blob_store: Annotated[LocalBlobStore, Depends(get_blob_store)],
    bus: Annotated[EventBus, Depends(get_event_bus)],
) -> ListingRead:
    """
    Upload a new artwork listing.

    Send `Content-Type: multipart/form-data` with exactly one `image` part
    (JPEG or PNG, at most 2 MB by default) and text fields `title`, `price`
    and optionally `description`, `dimensions`, `material`.

    The listing owner is always the authenticated caller; an `owner` field in
    the form is ignored. Connected event subscribers receive `listing.created`.
    """
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type != "multipart/form-data":
        raise UnsupportedMediaType("Content-Type must be multipart/form-data.")

    max_bytes = get_settings().MAX_IMAGE_BYTES
    _check_content_length(request, max_bytes)
    async with request.form() as form:
        fields, images = await _collect_form(form, max_bytes)

    image = listing_service.validate_image(images, max_bytes)
    draft = listing_service.validate_listing_fields(fields)
    if fields.get("owner"):
        logger.info("Ignoring client-supplied owner field; owner is user_id=%s", current_user.id)

    # Database and disk writes block; keep them off the event loop.
    listing = await run_in_threadpool(
        listing_service.upload_listing,
        db,
        owner=current_user,
        draft=draft,
        image=image,
        blob_store=blob_store,
        bus=bus,
    )
    return ListingRead.model_validate(listing)


@router.get("", response_model=list[ListingRead])
def get_listings(
    db: Annotated[Session, Depends(get_db)],
    status: Annotated[ListingStatus | None, Query()] = None,
    owner_id: Annotated[int | None, Query(ge=1)] = None,
) -> list[ListingRead]:
    """All listings, newest first, with owner username and email."""
    listings = listing_service.list_listings(db, status=status, owner_id=owner_id)
    return [ListingRead.model_validate(item) for item in listings]


@router.get("/{listing_id}", response_model=ListingRead)
def get_listing(
    listing_id: int,
    db: Annotated[Session, Depends(get_db)],
) -> ListingRead:
    listing = listing_service.get_listing(db, listing_id)
    return ListingRead.model_validate(listing)


@router.patch("/{listing_id}", response_model=ListingRead)
def patch_listing(
    listing_id: int,
    body: ListingUpdate,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    bus: Annotated[EventBus, Depends(get_event_bus)],
) -> ListingRead:
    """Correct fields or flip status (owner or admin only)."""
    listing = listing_service.update_listing(db, listing_id, current_user, body, bus)
    return ListingRead.model_validate(listing)


@router.delete("/{listing_id}", response_model=ListingDeleteResponse)
def delete_listing(
    listing_id: int,
    db: Annotated[Session, Depends(get_db)],
    current_user: Annotated[CurrentUser, Depends(get_current_user)],
    blob_store: Annotated[LocalBlobStore, Depends(get_blob_store)],
    bus: Annotated[EventBus, Depends(get_event_bus)],
) -> ListingDeleteResponse:
    """Delete a listing (owner or admin only)."""
    deleted_id = listing_service.delete_listing(db, listing_id, current_user, blob_store, bus)
    return ListingDeleteResponse(id=deleted_id)
