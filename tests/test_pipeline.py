"""Tests for the ingestion pipeline outside HTTP: ingest, duplicates, outbound, enrichment hand-off."""

import asyncio
import base64
import unittest

from support import email_event, get_session, reset_db

from src.db.models.thread import Email
from src.ingest.pipeline import IngestionPipeline
from src.mail_provider.mock import MockMailProvider
from src.mail_provider.models import SendRequest
from src.notify.broadcaster import Broadcaster
from src.webhook.models import InboundEvent


class StubEnrichment:
    def __init__(self, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def enrich(self, email_id, attachments=None):
        await asyncio.sleep(0)
        self.calls.append((email_id, attachments))
        if self.fail:
            raise RuntimeError("model unavailable")


class TestIngestionPipeline(unittest.TestCase):
    def setUp(self):
        reset_db()
        self.provider = MockMailProvider()

    def run_ingest(self, pipeline, payload):
        async def run():
            result = await pipeline.ingest(InboundEvent.model_validate(payload))
            await pipeline.drain(timeout=5)
            return result

        return asyncio.run(run())

    def test_ingest_stores_and_publishes(self):
        async def run():
            broadcaster = Broadcaster()
            stream = broadcaster.register()
            pipeline = IngestionPipeline(self.provider, broadcaster)
            result = await pipeline.ingest(InboundEvent.model_validate(email_event("<m1@x.com>")))
            event = await stream.next_event(1)
            return result, event

        result, event = asyncio.run(run())
        self.assertFalse(result.duplicate)
        self.assertEqual(event.type, "new_email")
        self.assertEqual(event.data.thread_id, result.thread_id)
        self.assertEqual(event.data.email_id, result.email_id)

    def test_ignored_event_type(self):
        pipeline = IngestionPipeline(self.provider, Broadcaster())
        result = self.run_ingest(pipeline, {"type": "email.bounced", "data": {}})
        self.assertEqual(result.to_response(), {"received": True, "duplicate": False})

    def test_duplicate_returns_existing_ids(self):
        pipeline = IngestionPipeline(self.provider, Broadcaster())
        first = self.run_ingest(pipeline, email_event("<m1@x.com>"))
        second = self.run_ingest(pipeline, email_event("<m1@x.com>"))
        self.assertTrue(second.duplicate)
        self.assertEqual((second.thread_id, second.email_id), (first.thread_id, first.email_id))

    def test_provider_content_missing_keeps_payload(self):
        pipeline = IngestionPipeline(self.provider, Broadcaster())
        result = self.run_ingest(pipeline, email_event("<m1@x.com>", email_id="re_unknown", text="payload"))
        self.assertEqual(self.provider.fetch_calls, ["re_unknown"])
        with get_session() as session:
            self.assertEqual(session.get(Email, result.email_id).body_text, "payload")

    def test_provider_html_fills_missing_text(self):
        self.provider.add_received("re_1", html="<p>Rich <b>body</b></p>")
        pipeline = IngestionPipeline(self.provider, Broadcaster())
        result = self.run_ingest(pipeline, email_event("<m1@x.com>", email_id="re_1", text=None))
        with get_session() as session:
            row = session.get(Email, result.email_id)
            self.assertEqual(row.body_html, "<p>Rich <b>body</b></p>")

    def test_enrichment_scheduled_with_attachments(self):
        enrichment = StubEnrichment()
        pipeline = IngestionPipeline(self.provider, Broadcaster(), enrichment=enrichment)
        content = base64.b64encode(b"order list").decode()
        payload = email_event(
            "<m1@x.com>",
            attachments=[
                {"filename": "orders.txt", "contentType": "text/plain", "content": content},
                {"filename": "empty.bin"},
            ],
        )
        result = self.run_ingest(pipeline, payload)
        self.assertEqual(len(enrichment.calls), 1)
        email_id, attachments = enrichment.calls[0]
        self.assertEqual(email_id, result.email_id)
        self.assertEqual([a.filename for a in attachments], ["orders.txt"])
        self.assertEqual(pipeline.background_tasks, set())

    def test_enrichment_failure_does_not_affect_result(self):
        enrichment = StubEnrichment(fail=True)
        pipeline = IngestionPipeline(self.provider, Broadcaster(), enrichment=enrichment)
        result = self.run_ingest(pipeline, email_event("<m1@x.com>"))
        self.assertIsNotNone(result.email_id)
        self.assertEqual(len(enrichment.calls), 1)

    def test_no_enrichment_for_duplicates(self):
        enrichment = StubEnrichment()
        pipeline = IngestionPipeline(self.provider, Broadcaster(), enrichment=enrichment)
        self.run_ingest(pipeline, email_event("<m1@x.com>"))
        self.run_ingest(pipeline, email_event("<m1@x.com>"))
        self.assertEqual(len(enrichment.calls), 1)


class TestRecordOutbound(unittest.TestCase):
    def setUp(self):
        reset_db()

    def test_requires_provider(self):
        pipeline = IngestionPipeline(None, Broadcaster())
        request = SendRequest.model_validate({"from": "me@x.com", "to": ["a@x.com"], "subject": "Hi", "text": "x"})
        with self.assertRaises(RuntimeError):
            asyncio.run(pipeline.record_outbound(request))

    def test_outbound_stored_with_generated_message_id(self):
        provider = MockMailProvider()
        pipeline = IngestionPipeline(provider, Broadcaster())
        request = SendRequest.model_validate({"from": "Me <me@x.com>", "to": ["A@X.com"], "subject": "Hi", "text": "x"})
        result = asyncio.run(pipeline.record_outbound(request))
        with get_session() as session:
            row = session.get(Email, result["emailId"])
            self.assertEqual(row.direction, "outbound")
            self.assertEqual(row.provider_id, result["providerId"])
            self.assertEqual(row.to_addresses, ["a@x.com"])
            self.assertEqual(row.from_name, "Me")
            self.assertEqual(row.message_id, provider.sent[0]["headers"]["Message-ID"])

    def test_outbound_never_threads_by_subject(self):
        provider = MockMailProvider()
        pipeline = IngestionPipeline(provider, Broadcaster())

        async def run():
            inbound = await pipeline.ingest(
                InboundEvent.model_validate(email_event("<m1@x.com>", from_="a@x.com", to=["me@x.com"]))
            )
            request = SendRequest.model_validate({"from": "me@x.com", "to": ["a@x.com"], "subject": "Re: Hello", "text": "x"})
            outbound = await pipeline.record_outbound(request)
            return inbound, outbound

        inbound, outbound = asyncio.run(run())
        self.assertNotEqual(outbound["threadId"], inbound.thread_id)


if __name__ == "__main__":
    unittest.main()
