"""Contact enrichment: profile updates and facts from the recent emails with one contact."""

import asyncio
from typing import Any, Optional

from pydantic import ValidationError

from src.agents.base import extract_json_object, run_text_agent, validate_items
from src.config import CONTACT_ENRICH_EMAIL_LIMIT, CONTACT_FACT_MIN_CONFIDENCE
from src.db import get_session
from src.db.repositories import contact_repo, email_repo
from src.models.outputs import ContactEnrichment, ContactFact, ContactProfileUpdate
from src.utils.body_sanitizer import prepare_for_prompt
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.agents.contact_enricher")

AGENT_ID = "contact_enricher"
EMAIL_BODY_MAX_CHARS = 300


def _emails_block(emails: list[dict[str, Any]]) -> str:
    blocks = []
    for e in emails:
        body = prepare_for_prompt(e.get("body_text") or "", max_chars=EMAIL_BODY_MAX_CHARS)
        blocks.append(f"[{e['direction']}] Subject: {e.get('subject') or '(no subject)'}\n{body}")
    return "\n\n".join(blocks)


def parse_enrichment(text: str, min_confidence: int = CONTACT_FACT_MIN_CONFIDENCE) -> ContactEnrichment:
    """Updates and facts from the agent's JSON object. Malformed parts are dropped."""
    data = extract_json_object(text) or {}
    updates: dict[str, str] = {}
    raw_updates = data.get("updates")
    if isinstance(raw_updates, dict):
        try:
            updates = ContactProfileUpdate.model_validate(raw_updates).changes()
        except ValidationError as e:
            logger.debug("contact_enricher.updates_invalid", error_count=e.error_count())
    raw_facts = data.get("knowledge")
    facts = validate_items(raw_facts if isinstance(raw_facts, list) else [], ContactFact, AGENT_ID)
    return ContactEnrichment(
        updates=updates,
        knowledge=[f for f in facts if f.confidence >= min_confidence],
    )


def _apply(contact_id: str, enrichment: ContactEnrichment) -> None:
    with get_session() as session:
        contact_repo.update_profile(session, contact_id, **enrichment.updates)
        for fact in enrichment.knowledge:
            contact_repo.add_contact_knowledge(session, contact_id, fact.field, fact.value, fact.confidence)


async def enrich_contact(
    contact_id: str,
    limit: int = CONTACT_ENRICH_EMAIL_LIMIT,
    min_confidence: int = CONTACT_FACT_MIN_CONFIDENCE,
) -> Optional[ContactEnrichment]:
    """Read the newest emails from or to the contact, ask the agent, apply what it found.

    Returns None for an unknown contact. A contact without emails, a provider
    error or unusable output give an empty ContactEnrichment and change nothing.
    """
    contact = await asyncio.to_thread(contact_repo.get_contact, contact_id)
    if contact is None:
        return None
    emails = await asyncio.to_thread(email_repo.recent_for_address, contact["email"], limit)
    if not emails:
        logger.info("contact_enricher.no_emails", contact_id=contact_id)
        return ContactEnrichment()

    try:
        text = await run_text_agent(
            AGENT_ID,
            email=contact["email"],
            name=contact["name"] or "Unknown",
            company=contact["company"] or "Unknown",
            role=contact["role"] or "Unknown",
            emails=_emails_block(emails),
        )
    except Exception as e:
        logger.warning(
            "contact_enricher.failed",
            contact_id=contact_id,
            error=str(e) or repr(e),
            error_type=type(e).__name__,
        )
        return ContactEnrichment(emails_considered=len(emails))

    enrichment = parse_enrichment(text, min_confidence)
    enrichment.emails_considered = len(emails)
    if enrichment.updates or enrichment.knowledge:
        await asyncio.to_thread(_apply, contact_id, enrichment)
    logger.info(
        "contact_enricher.applied",
        contact_id=contact_id,
        emails=len(emails),
        updated_fields=sorted(enrichment.updates),
        facts=len(enrichment.knowledge),
    )
    return enrichment
