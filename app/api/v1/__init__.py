"""API v1 routes."""

from fastapi import APIRouter

from app.api.v1 import auth, events, health, listings

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(auth.router, prefix="/auth", tags=["auth"])
router.include_router(listings.router, prefix="/listings", tags=["listings"])
router.include_router(events.router, prefix="/events", tags=["events"])
