"""Live change notification: broadcaster, SSE framing, reconnecting client."""

from src.notify.broadcaster import Broadcaster, ClientStream, StreamEvent, StreamEventData
from src.notify.client import EventStreamClient, ReconnectPolicy, parse_sse_line
from src.notify.sse import event_stream, format_sse

__all__ = [
    "Broadcaster",
    "ClientStream",
    "StreamEvent",
    "StreamEventData",
    "EventStreamClient",
    "ReconnectPolicy",
    "parse_sse_line",
    "event_stream",
    "format_sse",
]
