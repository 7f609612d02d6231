"""WebSocket stream of listing events (created, updated, deleted)."""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket

from app.services.event_bus import EventBus, get_event_bus

logger = logging.getLogger(__name__)

router = APIRouter()


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Consume client frames until the client goes away; the stream is push-only."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/listings")
async def listing_events(
    websocket: WebSocket,
    bus: Annotated[EventBus, Depends(get_event_bus)],
) -> None:
    """
    Push every listing event published after the connection opened as JSON
    {"type": ..., "data": ...}. Nothing published earlier is replayed.
    """
    # Subscribe before accepting so no event published after the handshake is missed.
    subscription = bus.subscribe()
    disconnected: asyncio.Task | None = None
    try:
        await websocket.accept()
        disconnected = asyncio.create_task(_wait_for_disconnect(websocket))
        while True:
            next_event = asyncio.create_task(subscription.queue.get())
            done, _ = await asyncio.wait(
                {next_event, disconnected},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if disconnected in done:
                next_event.cancel()
                break
            event = next_event.result()
            if event is None:
                await websocket.close()
                break
            await websocket.send_json(event)
    finally:
        if disconnected is not None:
            disconnected.cancel()
        bus.unsubscribe(subscription)
        logger.debug("Listing event stream closed (dropped=%s)", subscription.dropped)
