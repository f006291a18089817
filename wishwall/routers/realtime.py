"""
Realtime endpoints:
  GET /realtime/wishes/public — Server-Sent Events stream of changes to
                                public wishes

Clients treat each event as a signal to refetch /wishes/public.
"""
import asyncio
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from wishwall.realtime import ChangeEvent, ChangeFeed, format_sse, get_change_feed

logger = logging.getLogger(__name__)
router = APIRouter()

PUBLIC_WISHES_FILTER = {"is_public": True}


async def public_wish_events(feed: ChangeFeed) -> AsyncIterator[str]:
    """Yield SSE frames until the consumer goes away, then unsubscribe."""
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue()

    async def enqueue(event: ChangeEvent) -> None:
        await queue.put(event)

    subscription = feed.subscribe("wishes", enqueue, filter=PUBLIC_WISHES_FILTER)
    logger.info("Realtime client connected (%d subscribers)", feed.subscriber_count)
    try:
        yield ": connected\n\n"
        while True:
            event = await queue.get()
            yield format_sse(event)
    finally:
        subscription.unsubscribe()
        logger.info("Realtime client disconnected")


@router.get("/wishes/public")
async def stream_public_wishes(feed: ChangeFeed = Depends(get_change_feed)):
    return StreamingResponse(
        public_wish_events(feed),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
