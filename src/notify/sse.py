"""Server-Sent Events framing and the per-connection stream generator."""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from src.config import SSE_PING_INTERVAL_SECONDS
from src.notify.broadcaster import Broadcaster, ClientStream, StreamEvent
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.notify.sse")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse(event: StreamEvent) -> str:
    """One SSE frame: 'data: <json>\\n\\n'."""
    return f"data: {event.to_json()}\n\n"


async def event_stream(
    broadcaster: Broadcaster,
    ping_interval: float = SSE_PING_INTERVAL_SECONDS,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    stream: Optional[ClientStream] = None,
) -> AsyncIterator[str]:
    """Yield SSE frames for one client until it disconnects or is dropped.

    A ping is emitted whenever no event arrived for ping_interval seconds.
    The client is always unregistered on exit.
    """
    stream = stream or broadcaster.register()
    try:
        while True:
            try:
                event = await stream.next_event(timeout=ping_interval)
            except asyncio.TimeoutError:
                event = StreamEvent.ping()
            if event is None:
                logger.info("sse.stream_closed", client_id=stream.id)
                return
            if is_disconnected is not None and await is_disconnected():
                logger.info("sse.client_disconnected", client_id=stream.id)
                return
            yield format_sse(event)
    finally:
        broadcaster.unregister(stream)
