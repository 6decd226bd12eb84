"""Knowledge API: active knowledge CRUD and the pending-review queue."""

import asyncio
from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from src.db.models.knowledge import STATUS_PENDING
from src.db.repositories import knowledge_repo
from src.db.repositories.knowledge_repo import ReviewConflictError
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.webhook.knowledge")

router = APIRouter(prefix="/knowledge", tags=["knowledge"])


class KnowledgeCreateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category: str
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)
    contact_id: Optional[str] = Field(None, alias="contactId")


class KnowledgeUpdateBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    category: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    is_active: Optional[bool] = Field(None, alias="isActive")


class ReviewBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: Literal["approve", "reject"]
    edited_content: Optional[str] = Field(None, alias="editedContent")


@router.get("")
async def list_knowledge(
    category: Optional[str] = None,
    include_inactive: bool = Query(False, alias="includeInactive"),
) -> dict[str, Any]:
    items = await asyncio.to_thread(knowledge_repo.list_knowledge, category, not include_inactive)
    return {"items": items, "count": len(items)}


@router.post("", status_code=201)
async def create_knowledge(body: KnowledgeCreateBody) -> dict[str, Any]:
    try:
        item = await asyncio.to_thread(
            knowledge_repo.create_knowledge,
            body.category,
            body.title,
            body.content,
            body.metadata,
            body.contact_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    logger.info("knowledge.created", knowledge_id=item["id"], category=item["category"])
    return item


@router.get("/pending")
async def list_pending(status: str = STATUS_PENDING) -> dict[str, Any]:
    items = await asyncio.to_thread(knowledge_repo.list_pending, status)
    return {"items": items, "count": len(items)}


@router.post("/pending/{pending_id}")
async def review_pending(pending_id: str, body: ReviewBody) -> dict[str, Any]:
    """Approve (optionally with edited content) or reject a queued item."""
    try:
        if body.action == "approve":
            item = await asyncio.to_thread(knowledge_repo.approve_pending, pending_id, body.edited_content)
            if item is None:
                raise HTTPException(status_code=404, detail=f"Pending item not found: {pending_id}")
            logger.info(
                "knowledge.approved",
                pending_id=pending_id,
                knowledge_id=item["id"],
                edited=body.edited_content is not None,
            )
            return {"success": True, "action": "approve", "item": item}
        if not await asyncio.to_thread(knowledge_repo.reject_pending, pending_id):
            raise HTTPException(status_code=404, detail=f"Pending item not found: {pending_id}")
        logger.info("knowledge.rejected", pending_id=pending_id)
        return {"success": True, "action": "reject"}
    except ReviewConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.patch("/{knowledge_id}")
async def update_knowledge(knowledge_id: str, body: KnowledgeUpdateBody) -> dict[str, Any]:
    fields = body.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        item = await asyncio.to_thread(knowledge_repo.update_knowledge, knowledge_id, **fields)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    if item is None:
        raise HTTPException(status_code=404, detail=f"Knowledge item not found: {knowledge_id}")
    return item


@router.delete("/{knowledge_id}")
async def delete_knowledge(knowledge_id: str) -> dict[str, Any]:
    if not await asyncio.to_thread(knowledge_repo.delete_knowledge, knowledge_id):
        raise HTTPException(status_code=404, detail=f"Knowledge item not found: {knowledge_id}")
    return {"success": True, "id": knowledge_id}
