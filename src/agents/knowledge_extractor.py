"""Knowledge extraction from email bodies and attachment summaries."""

from datetime import datetime
from typing import Any, Optional

from src.agents.base import extract_json_array, extract_json_object, run_text_agent, validate_items
from src.config import KNOWLEDGE_MIN_CONFIDENCE
from src.models.outputs import AttachmentSummary, KnowledgeExtraction
from src.utils.body_sanitizer import prepare_for_prompt
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.agents.knowledge")

EMAIL_AGENT_ID = "knowledge_extractor"
ATTACHMENT_AGENT_ID = "attachment_knowledge"
BODY_MAX_CHARS = 3000
# Summaries shorter than this are metadata descriptions, not content
MIN_SUMMARY_CHARS = 50


def _contact_block(contact: Optional[dict[str, Any]]) -> str:
    if not contact:
        return "No existing contact information"
    return (
        f"Name: {contact.get('name') or 'Unknown'}\n"
        f"Company: {contact.get('company') or 'Unknown'}\n"
        f"Role: {contact.get('role') or 'Unknown'}"
    )


def parse_extractions(text: str, min_confidence: int = KNOWLEDGE_MIN_CONFIDENCE) -> list[KnowledgeExtraction]:
    items = validate_items(extract_json_array(text), KnowledgeExtraction, EMAIL_AGENT_ID)
    return [k for k in items if k.confidence >= min_confidence]


async def extract_knowledge(
    sender: str,
    sender_name: Optional[str],
    recipients: list[str],
    subject: Optional[str],
    body: str,
    sent_at: Optional[datetime],
    direction: str,
    contact: Optional[dict[str, Any]] = None,
    min_confidence: int = KNOWLEDGE_MIN_CONFIDENCE,
) -> list[KnowledgeExtraction]:
    """Best-effort extraction. Provider errors and malformed output give []."""
    try:
        text = await run_text_agent(
            EMAIL_AGENT_ID,
            direction=direction,
            sender=f"{sender} ({sender_name})" if sender_name else sender,
            recipients=", ".join(recipients),
            subject=subject or "(no subject)",
            sent_at=sent_at.isoformat() if sent_at else "Unknown",
            body=prepare_for_prompt(body, max_chars=BODY_MAX_CHARS) or "(no content)",
            contact=_contact_block(contact),
        )
    except Exception as e:
        logger.warning("knowledge.extract_failed", error=str(e) or repr(e), error_type=type(e).__name__)
        return []
    items = parse_extractions(text, min_confidence)
    logger.info("knowledge.extracted", count=len(items))
    return items


async def extract_from_attachment(
    summary: AttachmentSummary,
    sender: str,
    subject: Optional[str],
) -> Optional[KnowledgeExtraction]:
    """One knowledge item from an attachment summary, or None."""
    if len(summary.summary) < MIN_SUMMARY_CHARS:
        return None
    try:
        text = await run_text_agent(
            ATTACHMENT_AGENT_ID,
            filename=summary.filename,
            content_type=summary.content_type,
            summary=summary.summary,
            sender=sender,
            subject=subject or "",
        )
    except Exception as e:
        logger.warning(
            "knowledge.attachment_failed",
            filename=summary.filename,
            error=str(e) or repr(e),
            error_type=type(e).__name__,
        )
        return None
    data = extract_json_object(text)
    if data is None:
        return None
    items = validate_items([data], KnowledgeExtraction, ATTACHMENT_AGENT_ID)
    return items[0] if items else None
