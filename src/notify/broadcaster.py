"""In-process fan-out of change events to connected stream clients.

Each client owns a bounded asyncio.Queue. publish() never blocks: a client
whose queue is full is dropped (deregistered and its stream ended) while
the others keep receiving. Delivery is at-most-once per connected client;
a client that is not connected when an event is published never sees it.

The registry is local to this process. With several server instances a
client only sees events produced by the instance it is connected to.
"""

import asyncio
import threading
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.config import SSE_CLIENT_QUEUE_MAX
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.notify")

EventType = Literal["new_email", "thread_updated", "label_changed", "ping"]


class StreamEventData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    thread_id: Optional[str] = Field(None, alias="threadId")
    email_id: Optional[str] = Field(None, alias="emailId")
    label_id: Optional[str] = Field(None, alias="labelId")


class StreamEvent(BaseModel):
    """Wire shape: {type, data?: {threadId?, emailId?, labelId?}}."""

    type: EventType
    data: Optional[StreamEventData] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def new_email(cls, thread_id: str, email_id: str) -> "StreamEvent":
        return cls(type="new_email", data=StreamEventData(thread_id=thread_id, email_id=email_id))

    @classmethod
    def thread_updated(cls, thread_id: str) -> "StreamEvent":
        return cls(type="thread_updated", data=StreamEventData(thread_id=thread_id))

    @classmethod
    def label_changed(cls, thread_id: str, label_id: Optional[str] = None) -> "StreamEvent":
        return cls(type="label_changed", data=StreamEventData(thread_id=thread_id, label_id=label_id))

    @classmethod
    def ping(cls) -> "StreamEvent":
        return cls(type="ping")


class ClientStream:
    """One connected client. Events are consumed with next_event(); None means the stream ended."""

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int):
        self.id = uuid.uuid4().hex[:12]
        self._loop = loop
        self._queue: asyncio.Queue[Optional[StreamEvent]] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def _on_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def offer(self, event: StreamEvent) -> bool:
        """Enqueue without blocking. False when the queue is full (must be on the client's loop)."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def close(self) -> None:
        """End the stream: pending events are discarded and the consumer sees None."""
        if self.closed:
            return
        self.closed = True
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._queue.put_nowait(None)

    async def next_event(self, timeout: Optional[float] = None) -> Optional[StreamEvent]:
        """Wait for the next event. Raises asyncio.TimeoutError when idle for `timeout` seconds."""
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    @property
    def pending(self) -> int:
        return self._queue.qsize()


class Broadcaster:
    """Thread-safe registry of ClientStreams."""

    def __init__(self, queue_max: int = SSE_CLIENT_QUEUE_MAX):
        self._queue_max = queue_max
        self._clients: set[ClientStream] = set()
        self._lock = threading.Lock()

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def register(self) -> ClientStream:
        """Create a stream bound to the running event loop."""
        stream = ClientStream(asyncio.get_running_loop(), self._queue_max)
        with self._lock:
            self._clients.add(stream)
            count = len(self._clients)
        logger.info("notify.client_registered", client_id=stream.id, clients=count)
        return stream

    def unregister(self, stream: ClientStream) -> None:
        with self._lock:
            if stream not in self._clients:
                return
            self._clients.discard(stream)
            count = len(self._clients)
        logger.info("notify.client_unregistered", client_id=stream.id, clients=count)

    def _deliver(self, stream: ClientStream, event: StreamEvent) -> None:
        if not stream.offer(event) and not stream.closed:
            logger.warning("notify.client_dropped", client_id=stream.id, reason="queue_full")
            self.unregister(stream)
            stream.close()

    def publish(self, event: StreamEvent) -> int:
        """Fan out to every registered client. Safe from any thread; returns clients targeted."""
        with self._lock:
            clients = list(self._clients)
        for stream in clients:
            if stream._on_loop():
                self._deliver(stream, event)
            else:
                try:
                    stream._loop.call_soon_threadsafe(self._deliver, stream, event)
                except RuntimeError:
                    # Loop already closed: the client is gone
                    self.unregister(stream)
        logger.debug("notify.published", event_type=event.type, clients=len(clients))
        return len(clients)

    def close_all(self) -> None:
        """Disconnect every client (server shutdown)."""
        with self._lock:
            clients = list(self._clients)
            self._clients.clear()
        for stream in clients:
            if stream._on_loop():
                stream.close()
            else:
                try:
                    stream._loop.call_soon_threadsafe(stream.close)
                except RuntimeError:
                    pass
