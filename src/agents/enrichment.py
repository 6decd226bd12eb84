"""Post-persistence enrichment: labels, knowledge, attachment summaries.

Runs after the message is committed and outside its transaction. Every
stage is best-effort: a failure is logged and the remaining stages still
run. Nothing here is retried and nothing is reported back to the caller
that scheduled it (at-most-once).

Two independent gates apply to labels: the classifier discards pairs below
`classifier_min`, and only pairs at or above `label_apply` are persisted.
Knowledge at or above `knowledge_auto_apply` becomes active knowledge;
anything lower goes to the review queue.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from src.agents.attachment_summarizer import summarize_attachment
from src.agents.classifier import ClassifierInput, build_rules, classify_email
from src.agents.knowledge_extractor import extract_from_attachment, extract_knowledge
from src.config import (
    CLASSIFIER_MIN_CONFIDENCE,
    KNOWLEDGE_AUTO_APPLY_THRESHOLD,
    KNOWLEDGE_MIN_CONFIDENCE,
    LABEL_APPLY_CONFIDENCE,
)
from src.db import get_session
from src.db.models.contact import SOURCE_AI_EXTRACTED
from src.db.models.label import APPLIED_BY_AI
from src.db.models.thread import DIRECTION_INBOUND
from src.db.repositories import contact_repo, email_repo, knowledge_repo, label_repo
from src.models.email import AttachmentPayload
from src.models.outputs import AttachmentSummary, KnowledgeExtraction, LabelClassification
from src.notify.broadcaster import Broadcaster, StreamEvent
from src.utils.logger import bind_context, get_logger, unbind_context
from src.utils.tracing import get_tracer

logger = get_logger("inbox_ingest.enrichment")


@dataclass(frozen=True)
class Thresholds:
    """Confidence cutoffs (0-100). Kept as separate names so they cannot be conflated."""

    classifier_min: int = CLASSIFIER_MIN_CONFIDENCE
    label_apply: int = LABEL_APPLY_CONFIDENCE
    knowledge_min: int = KNOWLEDGE_MIN_CONFIDENCE
    knowledge_auto_apply: int = KNOWLEDGE_AUTO_APPLY_THRESHOLD

    def __post_init__(self):
        for name in ("classifier_min", "label_apply", "knowledge_min", "knowledge_auto_apply"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ValueError(f"{name} must be within 0-100, got {value}")


@dataclass
class EnrichmentOutcome:
    email_id: str
    applied_labels: list[str] = field(default_factory=list)
    knowledge_applied: int = 0
    knowledge_pending: int = 0
    attachments_summarized: int = 0
    failed_stages: list[str] = field(default_factory=list)


class EnrichmentEngine:
    """Classify, extract and summarize one stored email."""

    def __init__(self, thresholds: Optional[Thresholds] = None, broadcaster: Optional[Broadcaster] = None):
        self.thresholds = thresholds or Thresholds()
        self.broadcaster = broadcaster

    def apply_classifications(self, thread_id: str, results: list[LabelClassification]) -> list[str]:
        """Persist pairs at or above label_apply. Returns label ids that were newly applied."""
        applied: list[str] = []
        with get_session() as session:
            for c in results:
                if c.confidence < self.thresholds.label_apply:
                    logger.debug(
                        "enrichment.label_below_threshold",
                        label_id=c.label_id,
                        confidence=c.confidence,
                        threshold=self.thresholds.label_apply,
                    )
                    continue
                if not label_repo.label_exists(session, c.label_id):
                    logger.warning("enrichment.label_unknown", label_id=c.label_id)
                    continue
                if label_repo.apply_label(session, thread_id, c.label_id, APPLIED_BY_AI, c.confidence):
                    applied.append(c.label_id)
        return applied

    def record_knowledge(
        self,
        items: list[KnowledgeExtraction],
        source_reference: str,
        contact_id: Optional[str] = None,
    ) -> tuple[int, int]:
        """Route items to active knowledge or the review queue. Returns (applied, pending)."""
        applied = pending = 0
        with get_session() as session:
            for item in items:
                fields = dict(
                    category=item.category,
                    title=item.title,
                    content=item.content,
                    metadata_json={"field": item.field} if item.field else {},
                    source=SOURCE_AI_EXTRACTED,
                    source_reference=source_reference,
                    contact_id=contact_id,
                    confidence=item.confidence,
                )
                if item.confidence >= self.thresholds.knowledge_auto_apply:
                    knowledge_repo.insert_knowledge(session, **fields)
                    if item.category == "contact" and item.field and contact_id:
                        contact_repo.add_contact_knowledge(
                            session, contact_id, item.field, item.content, confidence=item.confidence
                        )
                    applied += 1
                else:
                    knowledge_repo.insert_pending(session, **fields)
                    pending += 1
        logger.info("enrichment.knowledge_recorded", applied=applied, pending=pending)
        return applied, pending

    def _publish(self, event: StreamEvent) -> None:
        if self.broadcaster is None:
            return
        try:
            self.broadcaster.publish(event)
        except Exception:
            logger.exception("enrichment.publish_failed", event_type=event.type)

    async def _classify(self, email, outcome: EnrichmentOutcome) -> None:
        rows = await asyncio.to_thread(label_repo.list_active_rules)
        rules = build_rules(rows)
        results = await classify_email(
            ClassifierInput(sender=email.from_address, subject=email.subject or "", body=email.body_text or ""),
            rules,
            self.thresholds.classifier_min,
        )
        outcome.applied_labels = await asyncio.to_thread(self.apply_classifications, email.thread_id, results)
        for label_id in outcome.applied_labels:
            self._publish(StreamEvent.label_changed(email.thread_id, label_id))

    def _contact_address(self, email) -> Optional[str]:
        if email.direction == DIRECTION_INBOUND:
            return email.from_address
        return (email.to_addresses or [None])[0]

    async def _extract(self, email, outcome: EnrichmentOutcome) -> None:
        address = self._contact_address(email)
        contact = await asyncio.to_thread(contact_repo.get_contact_by_email, address) if address else None
        items = await extract_knowledge(
            sender=email.from_address,
            sender_name=email.from_name,
            recipients=list(email.to_addresses or []),
            subject=email.subject,
            body=email.body_text or "",
            sent_at=email.sent_at,
            direction=email.direction,
            contact=contact,
            min_confidence=self.thresholds.knowledge_min,
        )
        if items:
            applied, pending = await asyncio.to_thread(
                self.record_knowledge, items, f"email:{email.id}", contact["id"] if contact else None
            )
            outcome.knowledge_applied += applied
            outcome.knowledge_pending += pending

    async def _attachments(self, email, attachments: list[AttachmentPayload], outcome: EnrichmentOutcome) -> None:
        summaries: dict[int, AttachmentSummary] = {}
        for index, att in enumerate(attachments):
            summaries[index] = await summarize_attachment(att)
        await asyncio.to_thread(
            email_repo.set_attachment_summaries, email.id, {i: s.summary for i, s in summaries.items()}
        )
        outcome.attachments_summarized = len(summaries)
        for summary in summaries.values():
            item = await extract_from_attachment(summary, email.from_address, email.subject)
            if item is None or item.confidence < self.thresholds.knowledge_min:
                continue
            applied, pending = await asyncio.to_thread(
                self.record_knowledge, [item], f"attachment:{email.id}:{summary.filename}", None
            )
            outcome.knowledge_applied += applied
            outcome.knowledge_pending += pending

    async def enrich(self, email_id: str, attachments: Optional[list[AttachmentPayload]] = None) -> EnrichmentOutcome:
        """Run every stage for one email. Never raises."""
        outcome = EnrichmentOutcome(email_id=email_id)
        bind_context(email_id=email_id)
        tracer = get_tracer()
        try:
            with tracer.start_as_current_span("enrich", attributes={"email.id": email_id}):
                email = await asyncio.to_thread(email_repo.get_email, email_id)
                if email is None:
                    logger.warning("enrichment.email_missing")
                    outcome.failed_stages.append("load")
                    return outcome
                stages = [
                    ("classify", lambda: self._classify(email, outcome)),
                    ("extract", lambda: self._extract(email, outcome)),
                ]
                if attachments:
                    stages.append(("attachments", lambda: self._attachments(email, attachments, outcome)))
                for name, run_stage in stages:
                    try:
                        await run_stage()
                    except Exception:
                        outcome.failed_stages.append(name)
                        logger.exception("enrichment.stage_failed", stage=name)
        except Exception:
            outcome.failed_stages.append("enrich")
            logger.exception("enrichment.failed")
        finally:
            unbind_context("email_id")
        logger.info(
            "enrichment.done",
            labels=outcome.applied_labels,
            knowledge_applied=outcome.knowledge_applied,
            knowledge_pending=outcome.knowledge_pending,
            attachments=outcome.attachments_summarized,
            failed=outcome.failed_stages,
        )
        return outcome
