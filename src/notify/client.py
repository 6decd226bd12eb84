"""Event stream consumer with exponential-backoff reconnection."""

import asyncio
import json
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import ValidationError

from src.config import SSE_RECONNECT_BASE_DELAY, SSE_RECONNECT_MAX_ATTEMPTS
from src.notify.broadcaster import StreamEvent
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.notify.client")

EventHandler = Callable[[StreamEvent], Awaitable[None] | None]


class ReconnectPolicy:
    """base_delay * 2**attempt for up to max_attempts consecutive failures, then give up."""

    def __init__(
        self,
        base_delay: float = SSE_RECONNECT_BASE_DELAY,
        max_attempts: int = SSE_RECONNECT_MAX_ATTEMPTS,
    ):
        if base_delay < 0 or max_attempts < 0:
            raise ValueError("base_delay and max_attempts must be non-negative")
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.attempts = 0

    def next_delay(self) -> Optional[float]:
        """Delay before the next reconnect, or None once attempts are exhausted."""
        if self.attempts >= self.max_attempts:
            return None
        delay = self.base_delay * (2**self.attempts)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0


def parse_sse_line(line: str) -> Optional[StreamEvent]:
    """'data: {...}' -> StreamEvent. Comments, other fields and bad JSON give None."""
    if not line.startswith("data:"):
        return None
    payload = line[len("data:"):].strip()
    if not payload:
        return None
    try:
        return StreamEvent.model_validate(json.loads(payload))
    except (json.JSONDecodeError, ValidationError):
        logger.debug("event_client.bad_frame", frame=payload[:200])
        return None


class EventStreamClient:
    """Connects to GET /events, dispatches non-ping events, reconnects on failure.

    A connection that opens successfully resets the backoff counter. Events
    published while disconnected are not replayed; callers refetch state.
    """

    def __init__(
        self,
        url: str,
        on_event: EventHandler,
        policy: Optional[ReconnectPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_connect: Optional[Callable[[], None]] = None,
    ):
        self.url = url
        self._on_event = on_event
        self.policy = policy or ReconnectPolicy()
        self._client = client
        self._sleep = sleep
        self._on_connect = on_connect
        self._stopped = False
        self.connections = 0

    def stop(self) -> None:
        self._stopped = True

    async def _dispatch(self, event: StreamEvent) -> None:
        result = self._on_event(event)
        if asyncio.iscoroutine(result):
            await result

    async def _consume(self, client: httpx.AsyncClient) -> None:
        async with client.stream("GET", self.url, headers={"Accept": "text/event-stream"}, timeout=None) as response:
            response.raise_for_status()
            self.connections += 1
            self.policy.reset()
            logger.info("event_client.connected", url=self.url, connections=self.connections)
            if self._on_connect is not None:
                self._on_connect()
            async for line in response.aiter_lines():
                if self._stopped:
                    return
                event = parse_sse_line(line)
                if event is None or event.type == "ping":
                    continue
                await self._dispatch(event)

    async def run(self) -> None:
        """Consume until stop() or until reconnect attempts are exhausted."""
        client = self._client or httpx.AsyncClient()
        try:
            while not self._stopped:
                try:
                    await self._consume(client)
                    if self._stopped:
                        return
                    logger.warning("event_client.stream_ended", url=self.url)
                except (httpx.HTTPError, OSError) as e:
                    logger.warning("event_client.stream_error", url=self.url, error=str(e) or repr(e))
                delay = self.policy.next_delay()
                if delay is None:
                    logger.error("event_client.gave_up", url=self.url, attempts=self.policy.attempts)
                    return
                logger.info("event_client.reconnecting", delay=delay, attempt=self.policy.attempts)
                await self._sleep(delay)
        finally:
            if self._client is None:
                await client.aclose()
