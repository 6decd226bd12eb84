"""Tests for the broadcaster, SSE framing and the reconnecting stream client."""

import asyncio
import json
import unittest

import httpx

import support  # noqa: F401

from src.notify.broadcaster import Broadcaster, StreamEvent
from src.notify.client import EventStreamClient, ReconnectPolicy, parse_sse_line
from src.notify.sse import event_stream, format_sse


class TestStreamEvent(unittest.TestCase):
    def test_wire_shape(self):
        event = StreamEvent.new_email("t1", "e1")
        self.assertEqual(json.loads(event.to_json()), {"type": "new_email", "data": {"threadId": "t1", "emailId": "e1"}})
        self.assertEqual(json.loads(StreamEvent.ping().to_json()), {"type": "ping"})

    def test_format_sse(self):
        frame = format_sse(StreamEvent.label_changed("t1", "L1"))
        self.assertTrue(frame.startswith("data: {"))
        self.assertTrue(frame.endswith("\n\n"))
        self.assertEqual(parse_sse_line(frame.strip()), StreamEvent.label_changed("t1", "L1"))

    def test_parse_sse_line_ignores_noise(self):
        self.assertIsNone(parse_sse_line(": keep-alive"))
        self.assertIsNone(parse_sse_line("event: message"))
        self.assertIsNone(parse_sse_line("data: {broken"))
        self.assertIsNone(parse_sse_line("data:"))


class TestBroadcaster(unittest.TestCase):
    def test_publish_reaches_every_client(self):
        async def run():
            b = Broadcaster(queue_max=10)
            one, two = b.register(), b.register()
            self.assertEqual(b.publish(StreamEvent.thread_updated("t1")), 2)
            self.assertEqual((await one.next_event(1)).type, "thread_updated")
            self.assertEqual((await two.next_event(1)).type, "thread_updated")

        asyncio.run(run())

    def test_full_queue_drops_only_that_client(self):
        async def run():
            b = Broadcaster(queue_max=2)
            slow, fast = b.register(), b.register()
            for i in range(2):
                b.publish(StreamEvent.thread_updated(f"t{i}"))
                await fast.next_event(1)
            b.publish(StreamEvent.thread_updated("t2"))
            self.assertEqual(b.client_count, 1)
            self.assertTrue(slow.closed)
            # Pending events are discarded and the stream ends
            self.assertIsNone(await slow.next_event(1))
            self.assertEqual((await fast.next_event(1)).data.thread_id, "t2")

        asyncio.run(run())

    def test_publish_from_worker_thread(self):
        async def run():
            b = Broadcaster()
            stream = b.register()
            await asyncio.to_thread(b.publish, StreamEvent.new_email("t1", "e1"))
            event = await stream.next_event(1)
            self.assertEqual(event.data.email_id, "e1")

        asyncio.run(run())

    def test_close_all(self):
        async def run():
            b = Broadcaster()
            stream = b.register()
            b.close_all()
            self.assertEqual(b.client_count, 0)
            self.assertIsNone(await stream.next_event(1))

        asyncio.run(run())


class TestEventStream(unittest.TestCase):
    def test_ping_when_idle_then_events(self):
        async def run():
            b = Broadcaster()
            frames = event_stream(b, ping_interval=0.01)
            first = await frames.__anext__()
            self.assertEqual(first, 'data: {"type":"ping"}\n\n')
            self.assertEqual(b.client_count, 1)
            b.publish(StreamEvent.new_email("t1", "e1"))
            second = await frames.__anext__()
            self.assertIn('"type":"new_email"', second)
            await frames.aclose()
            self.assertEqual(b.client_count, 0)

        asyncio.run(run())

    def test_disconnected_client_unregistered(self):
        async def run():
            b = Broadcaster()

            async def gone():
                return True

            frames = event_stream(b, ping_interval=0.01, is_disconnected=gone)
            with self.assertRaises(StopAsyncIteration):
                await frames.__anext__()
            self.assertEqual(b.client_count, 0)

        asyncio.run(run())

    def test_dropped_client_stream_ends(self):
        async def run():
            b = Broadcaster(queue_max=1)
            stream = b.register()
            frames = event_stream(b, ping_interval=5, stream=stream)
            b.publish(StreamEvent.thread_updated("t1"))
            b.publish(StreamEvent.thread_updated("t2"))
            with self.assertRaises(StopAsyncIteration):
                await frames.__anext__()

        asyncio.run(run())


class TestReconnectPolicy(unittest.TestCase):
    def test_doubling_then_give_up(self):
        policy = ReconnectPolicy(base_delay=1.0, max_attempts=3)
        self.assertEqual([policy.next_delay() for _ in range(4)], [1.0, 2.0, 4.0, None])

    def test_reset(self):
        policy = ReconnectPolicy(base_delay=0.5, max_attempts=5)
        policy.next_delay()
        policy.next_delay()
        policy.reset()
        self.assertEqual(policy.attempts, 0)
        self.assertEqual(policy.next_delay(), 0.5)


def _sse_body(*events: StreamEvent) -> bytes:
    return "".join(format_sse(e) for e in events).encode()


class TestEventStreamClient(unittest.TestCase):
    def test_reconnects_after_first_backoff_and_resets(self):
        responses = [
            httpx.Response(200, headers={"content-type": "text/event-stream"}, content=_sse_body(StreamEvent.new_email("t1", "e1"), StreamEvent.ping())),
            httpx.Response(500),
            httpx.Response(200, headers={"content-type": "text/event-stream"}, content=_sse_body(StreamEvent.thread_updated("t1"))),
        ]

        def handler(request):
            return responses.pop(0)

        received, delays, attempts_on_connect = [], [], []
        policy = ReconnectPolicy(base_delay=1.0, max_attempts=5)
        client = None

        async def fake_sleep(delay):
            delays.append(delay)
            if len(delays) == 3:
                client.stop()

        async def run():
            nonlocal client
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
                client = EventStreamClient(
                    "http://test/events",
                    on_event=received.append,
                    policy=policy,
                    client=http,
                    sleep=fake_sleep,
                    on_connect=lambda: attempts_on_connect.append(policy.attempts),
                )
                await client.run()

        asyncio.run(run())
        # First retry waits the base delay; the failed attempt doubles; a good connect resets
        self.assertEqual(delays, [1.0, 2.0, 1.0])
        self.assertEqual(attempts_on_connect, [0, 0])
        self.assertEqual([e.type for e in received], ["new_email", "thread_updated"])
        self.assertEqual(client.connections, 2)

    def test_gives_up_after_max_attempts(self):
        delays = []

        async def fake_sleep(delay):
            delays.append(delay)

        async def run():
            transport = httpx.MockTransport(lambda request: httpx.Response(503))
            async with httpx.AsyncClient(transport=transport) as http:
                client = EventStreamClient(
                    "http://test/events",
                    on_event=lambda e: None,
                    policy=ReconnectPolicy(base_delay=0.25, max_attempts=2),
                    client=http,
                    sleep=fake_sleep,
                )
                await client.run()
                return client

        client = asyncio.run(run())
        self.assertEqual(delays, [0.25, 0.5])
        self.assertEqual(client.connections, 0)


if __name__ == "__main__":
    unittest.main()
