"""Contact API: profile with stored facts, and AI enrichment from recent emails."""

import asyncio
from typing import Any

from fastapi import APIRouter, HTTPException

from src.agents.contact_enricher import enrich_contact
from src.db.repositories import contact_repo
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.webhook.contacts")

router = APIRouter(prefix="/contacts", tags=["contacts"])


async def _profile(contact_id: str) -> dict[str, Any]:
    contact = await asyncio.to_thread(contact_repo.get_contact, contact_id)
    if contact is None:
        raise HTTPException(status_code=404, detail=f"Contact not found: {contact_id}")
    knowledge = await asyncio.to_thread(contact_repo.list_contact_knowledge, contact_id)
    return {"contact": contact, "knowledge": knowledge}


@router.get("/{contact_id}")
async def get_contact(contact_id: str) -> dict[str, Any]:
    return await _profile(contact_id)


@router.post("/{contact_id}/enrich")
async def enrich(contact_id: str) -> dict[str, Any]:
    """Run the contact enricher; responds with the updated profile and what was applied."""
    result = await enrich_contact(contact_id)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Contact not found: {contact_id}")
    logger.info("contacts.enriched", contact_id=contact_id, facts=len(result.knowledge))
    return {**await _profile(contact_id), **result.model_dump(by_alias=True)}
