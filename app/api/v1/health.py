"""Health check endpoint: database connectivity and live event subscribers."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import check_db_connected, get_db
from app.schemas.health import HealthResponse
from app.services.event_bus import EventBus, get_event_bus

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    db: Annotated[Session, Depends(get_db)],
    bus: Annotated[EventBus, Depends(get_event_bus)],
) -> HealthResponse:
    """
    Return service health, database connectivity and the number of connected
    listing-event subscribers. Used by load balancers and monitoring.
    """
    db_status = "connected" if check_db_connected(db) else "disconnected"

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database=db_status,
        event_subscribers=bus.subscriber_count,
    )
