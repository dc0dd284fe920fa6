"""Push notification stream (Server-Sent Events)."""

import asyncio
import logging

from fastapi import APIRouter
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from edubot.api.deps import Broker, CurrentUser
from edubot.config import get_settings
from edubot.notifications.broker import FRAME_SEPARATOR

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/stream")
async def notification_stream(user: CurrentUser, broker: Broker):
    """
    Subscribe to out-of-band events for as long as the connection stays open.

    The first frame is a ``: connected`` comment; subsequent frames are
    ``{"type": "grade_created", "student_number": "..."}``. Periodic ping
    comments keep idle proxies from closing the connection.
    """
    disconnected = asyncio.Event()
    subscriber = broker.subscribe(stop=disconnected)
    logger.info("Notification subscriber opened for user %s", user.id)

    async def frames():
        try:
            async for frame in subscriber:
                yield frame
        finally:
            subscriber.close()

    async def on_close() -> None:
        disconnected.set()

    return EventSourceResponse(
        frames(),
        sep=FRAME_SEPARATOR,
        ping=settings.notification_ping_seconds,
        background=BackgroundTask(on_close),
    )
