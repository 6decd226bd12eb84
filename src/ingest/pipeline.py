"""Ingestion pipeline: normalize -> resolve thread -> persist -> label -> notify -> enrich.

The request path ends after notification. Enrichment is submitted as a
background task with no return channel; its failures are only logged.
"""

import asyncio
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from src.agents.enrichment import EnrichmentEngine
from src.db import get_session
from src.db.base import new_id, utcnow
from src.db.models.label import INBOX_LABEL, SENT_LABEL
from src.db.models.thread import DIRECTION_INBOUND, DIRECTION_OUTBOUND, Email, Thread
from src.ingest.normalizer import (
    canonical_addresses,
    extract_display_name,
    extract_email_address,
    normalize_envelope,
    normalize_subject,
)
from src.ingest.state import DuplicateMessageError, apply_new_message, apply_system_label
from src.ingest.thread_resolver import (
    STRATEGY_IN_REPLY_TO,
    STRATEGY_REFERENCES,
    ThreadQuery,
    match_in_reply_to,
    match_references,
    resolve_thread,
)
from src.mail_provider.models import SendRequest
from src.mail_provider.protocol import MailProvider
from src.models.email import NormalizedEmail
from src.models.outputs import IngestResult
from src.notify.broadcaster import Broadcaster, StreamEvent
from src.utils.logger import bind_context, get_logger, unbind_context
from src.utils.tracing import get_tracer
from src.webhook.models import InboundEmailData, InboundEvent

logger = get_logger("inbox_ingest.pipeline")

# Outbound replies are threaded by headers or an explicit thread id, never by subject
OUTBOUND_MATCHERS = [
    (STRATEGY_IN_REPLY_TO, match_in_reply_to),
    (STRATEGY_REFERENCES, match_references),
]


def _existing_email(message_id: Optional[str], provider_id: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """(thread_id, email_id) of the stored copy, by Message-ID first and provider id second."""
    with get_session() as session:
        row = None
        if message_id:
            row = session.execute(
                select(Email.thread_id, Email.id).where(Email.message_id == message_id).limit(1)
            ).first()
        if row is None and provider_id:
            row = session.execute(
                select(Email.thread_id, Email.id).where(Email.provider_id == provider_id).limit(1)
            ).first()
        return (row[0], row[1]) if row else (None, None)


def _make_message_id(from_address: str) -> str:
    domain = from_address.rsplit("@", 1)[-1] if "@" in from_address else "localhost"
    return f"<{new_id()}@{domain}>"


class IngestionPipeline:
    """Owns the per-delivery flow and the set of in-flight enrichment tasks."""

    def __init__(
        self,
        provider: Optional[MailProvider],
        broadcaster: Broadcaster,
        enrichment: Optional[EnrichmentEngine] = None,
        background_tasks: Optional[set[asyncio.Task]] = None,
    ):
        self.provider = provider
        self.broadcaster = broadcaster
        self.enrichment = enrichment
        self.background_tasks: set[asyncio.Task] = background_tasks if background_tasks is not None else set()

    async def _fetch_content(self, data: InboundEmailData) -> InboundEmailData:
        """Merge full body from the provider when available; keep payload content otherwise."""
        if not data.email_id or self.provider is None:
            return data
        try:
            content = await self.provider.get_received_email(data.email_id)
        except Exception as e:
            logger.warning(
                "pipeline.content_fetch_failed",
                provider_email_id=data.email_id,
                error=str(e) or repr(e),
                error_type=type(e).__name__,
            )
            return data
        if content is None:
            logger.warning("pipeline.content_unavailable", provider_email_id=data.email_id)
            return data
        return data.model_copy(
            update={
                "text": content.text or data.text,
                "html": content.html or data.html,
            }
        )

    def _persist(
        self,
        email: NormalizedEmail,
        direction: str,
        sent_at: datetime,
        provider_id: Optional[str],
        system_label: str,
        matchers=None,
        thread_id: Optional[str] = None,
    ) -> tuple[str, str, str]:
        """One transaction: resolve (or use thread_id), insert, update thread, upsert contacts, label."""
        with get_session() as session:
            if thread_id is not None and session.get(Thread, thread_id) is not None:
                strategy = "explicit"
            else:
                with get_tracer().start_as_current_span("resolve_thread") as span:
                    resolution = resolve_thread(session, ThreadQuery.from_email(email), matchers=matchers, now=sent_at)
                    span.set_attribute("thread.strategy", resolution.strategy)
                thread_id, strategy = resolution.thread_id, resolution.strategy
                if resolution.created and direction == DIRECTION_OUTBOUND:
                    session.get(Thread, thread_id).is_read = True
            row = apply_new_message(session, thread_id, email, direction, sent_at, provider_id=provider_id)
            apply_system_label(session, thread_id, system_label)
            return thread_id, row.id, strategy

    def schedule_enrichment(self, email_id: str, email: NormalizedEmail) -> Optional[asyncio.Task]:
        """Fire-and-forget: the task is tracked only so it is not garbage-collected."""
        if self.enrichment is None:
            return None
        attachments = [a for a in email.attachments if a.content] or None
        task = asyncio.create_task(self.enrichment.enrich(email_id, attachments=attachments))
        self.background_tasks.add(task)
        task.add_done_callback(self._enrichment_done)
        return task

    def _enrichment_done(self, task: asyncio.Task) -> None:
        self.background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("pipeline.enrichment_failed", error=str(error), error_type=type(error).__name__)

    def _publish(self, event: StreamEvent) -> None:
        try:
            self.broadcaster.publish(event)
        except Exception:
            logger.exception("pipeline.publish_failed", event_type=event.type)

    async def ingest(self, event: InboundEvent, data: Optional[InboundEmailData] = None) -> IngestResult:
        """Process one verified delivery. Raises pydantic.ValidationError for a malformed email payload.

        data is the already-validated email payload when the caller checked it first.
        """
        if not event.is_email_received:
            logger.info("pipeline.event_ignored", event_type=event.type)
            return IngestResult(received=True)

        if data is None:
            data = event.email_data()
        bind_context(provider_email_id=data.email_id)
        tracer = get_tracer()
        try:
            with tracer.start_as_current_span("ingest", attributes={"email.provider_id": data.email_id or ""}):
                with tracer.start_as_current_span("fetch_content"):
                    data = await self._fetch_content(data)
                with tracer.start_as_current_span("normalize"):
                    email = normalize_envelope(data)
                sent_at = utcnow()
                try:
                    with tracer.start_as_current_span("persist"):
                        thread_id, email_id, strategy = await asyncio.to_thread(
                            self._persist,
                            email,
                            DIRECTION_INBOUND,
                            sent_at,
                            data.email_id,
                            INBOX_LABEL,
                        )
                except DuplicateMessageError as e:
                    thread_id, email_id = await asyncio.to_thread(_existing_email, e.message_id, e.provider_id)
                    logger.info(
                        "pipeline.duplicate",
                        message_id=e.message_id,
                        provider_email_id=e.provider_id,
                        thread_id=thread_id,
                    )
                    return IngestResult(received=True, thread_id=thread_id, email_id=email_id, duplicate=True)

                logger.info(
                    "pipeline.ingested",
                    thread_id=thread_id,
                    email_id=email_id,
                    strategy=strategy,
                    sender=email.from_address,
                )
                with tracer.start_as_current_span("notify"):
                    self._publish(StreamEvent.new_email(thread_id, email_id))
                self.schedule_enrichment(email_id, email)
                return IngestResult(received=True, thread_id=thread_id, email_id=email_id)
        finally:
            unbind_context("provider_email_id")

    async def record_outbound(
        self,
        request: SendRequest,
        reply_to_thread_id: Optional[str] = None,
        in_reply_to: Optional[str] = None,
        references: Optional[list[str]] = None,
    ) -> dict:
        """Send through the provider, then store the outbound message in its thread."""
        if self.provider is None:
            raise RuntimeError("No mail provider configured for sending")
        from_address = extract_email_address(request.from_)
        message_id = _make_message_id(from_address)
        headers = dict(request.headers)
        headers["Message-ID"] = message_id
        if in_reply_to:
            headers["In-Reply-To"] = in_reply_to
        if references:
            headers["References"] = " ".join(references)
        request = request.model_copy(update={"headers": headers})

        result = await self.provider.send_email(request)

        email = NormalizedEmail(
            message_id=message_id,
            in_reply_to=in_reply_to,
            references=list(references or []),
            from_address=from_address,
            from_name=extract_display_name(request.from_),
            to_addresses=canonical_addresses(request.to),
            cc_addresses=canonical_addresses(request.cc),
            bcc_addresses=canonical_addresses(request.bcc),
            reply_to=extract_email_address(request.reply_to) if request.reply_to else None,
            subject=request.subject,
            normalized_subject=normalize_subject(request.subject),
            body_text=request.text,
            body_html=request.html,
            headers={k.lower(): v for k, v in headers.items()},
        )
        thread_id, email_id, strategy = await asyncio.to_thread(
            self._persist,
            email,
            DIRECTION_OUTBOUND,
            utcnow(),
            result.id,
            SENT_LABEL,
            OUTBOUND_MATCHERS,
            reply_to_thread_id,
        )
        logger.info(
            "pipeline.outbound_recorded",
            thread_id=thread_id,
            email_id=email_id,
            strategy=strategy,
            recipients=len(email.recipients),
        )
        self._publish(StreamEvent.new_email(thread_id, email_id))
        return {"success": True, "emailId": email_id, "threadId": thread_id, "providerId": result.id}

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight enrichment (shutdown and tests)."""
        pending = list(self.background_tasks)
        if pending:
            await asyncio.wait(pending, timeout=timeout)
