import asyncio
import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from app.models.user import User
from app.schemas.events import BookAvailabilityEvent
from app.services.auth import get_current_user
from app.services.availability import AvailabilityNotifier, get_notifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/books", tags=["Book Streaming"])

HEARTBEAT_SECONDS = 15.0

def format_sse(event: BookAvailabilityEvent) -> str:
    """Encode one event as a Server-Sent Events frame."""
    return f"event: book-availability\ndata: {event.to_json()}\n\n"

async def availability_stream(request: Request, notifier: AvailabilityNotifier, heartbeat_seconds: float = HEARTBEAT_SECONDS):
    # Subscribed on first iteration so a response that is never streamed leaves nothing registered
    try:
        with notifier.subscribe() as subscription:
            while not subscription.closed:
                if await request.is_disconnected():
                    break
                try:
                    event = await asyncio.wait_for(subscription.get(), timeout=heartbeat_seconds)
                except asyncio.TimeoutError:
                    # Comment frame keeps proxies from closing an idle connection
                    yield ": keep-alive\n\n"
                    continue
                yield format_sse(event)
    finally:
        logger.info("Client unsubscribed from book availability stream")

@router.get("/stream")
async def stream_book_availability(
    request: Request,
    current_user: User = Depends(get_current_user),
    notifier: AvailabilityNotifier = Depends(get_notifier)
):
    """Server-Sent Events stream of book availability changes.
    New subscribers first receive the most recent events."""
    logger.info(f"Client {current_user.email} subscribed to book availability stream")
    return StreamingResponse(
        availability_stream(request, notifier),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
