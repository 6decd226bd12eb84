"""Thread API: flags, permanent delete, labels, and the outbound send path."""

import asyncio
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field

from src.config import DEFAULT_FROM_ADDRESS
from src.db.repositories import label_repo, thread_repo
from src.ingest.normalizer import is_valid_address
from src.mail_provider.models import OutboundAttachment, SendRequest
from src.mail_provider.resend import MailProviderError
from src.notify.broadcaster import StreamEvent
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.webhook.threads")

router = APIRouter(tags=["threads"])


class ThreadFlagsBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    is_read: Optional[bool] = Field(None, alias="isRead")
    is_starred: Optional[bool] = Field(None, alias="isStarred")
    is_archived: Optional[bool] = Field(None, alias="isArchived")
    is_trashed: Optional[bool] = Field(None, alias="isTrashed")


class ApplyLabelBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    label_id: str = Field(..., alias="labelId", min_length=1)


class SendEmailBody(BaseModel):
    """New message, or a reply when reply_to_thread_id / in_reply_to is set."""

    model_config = ConfigDict(populate_by_name=True)

    from_: Optional[str] = Field(None, alias="from")
    to: list[str] = Field(..., min_length=1)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    subject: str = Field(..., min_length=1)
    text: str
    html: Optional[str] = None
    reply_to: Optional[str] = Field(None, alias="replyTo")
    reply_to_thread_id: Optional[str] = Field(None, alias="replyToThreadId")
    in_reply_to: Optional[str] = Field(None, alias="inReplyTo")
    references: list[str] = Field(default_factory=list)
    attachments: list[OutboundAttachment] = Field(default_factory=list)


def _publish(request: Request, event: StreamEvent) -> None:
    try:
        request.app.state.broadcaster.publish(event)
    except Exception:
        logger.exception("threads.publish_failed", event_type=event.type)


@router.get("/threads/{thread_id}")
async def get_thread(thread_id: str) -> dict[str, Any]:
    thread = await asyncio.to_thread(thread_repo.get_thread, thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail=f"Thread not found: {thread_id}")
    return thread


@router.patch("/threads/{thread_id}")
async def update_thread(thread_id: str, body: ThreadFlagsBody, request: Request) -> dict[str, Any]:
    """Set read/starred/archived/trashed flags; broadcasts thread_updated."""
    flags = body.model_dump(exclude_none=True)
    if not flags:
        raise HTTPException(status_code=400, detail="No flags to update")
    thread = await asyncio.to_thread(thread_repo.update_flags, thread_id, **flags)
    if thread is None:
        raise HTTPException(status_code=404, detail=f"Thread not found: {thread_id}")
    logger.info("threads.updated", thread_id=thread_id, **flags)
    _publish(request, StreamEvent.thread_updated(thread_id))
    return thread


@router.delete("/threads/{thread_id}")
async def delete_thread(thread_id: str, request: Request) -> dict[str, Any]:
    """Permanent delete (emails and label rows go with it)."""
    if not await asyncio.to_thread(thread_repo.delete_thread, thread_id):
        raise HTTPException(status_code=404, detail=f"Thread not found: {thread_id}")
    logger.info("threads.deleted", thread_id=thread_id)
    _publish(request, StreamEvent.thread_updated(thread_id))
    return {"success": True, "threadId": thread_id}


@router.post("/threads/{thread_id}/labels")
async def add_thread_label(thread_id: str, body: ApplyLabelBody, request: Request) -> dict[str, Any]:
    if await asyncio.to_thread(thread_repo.get_thread, thread_id) is None:
        raise HTTPException(status_code=404, detail=f"Thread not found: {thread_id}")
    try:
        added = await asyncio.to_thread(label_repo.add_label, thread_id, body.label_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    if added:
        _publish(request, StreamEvent.label_changed(thread_id, body.label_id))
    return {"success": True, "added": added, "labelIds": await asyncio.to_thread(label_repo.list_thread_label_ids, thread_id)}


@router.delete("/threads/{thread_id}/labels/{label_id}")
async def remove_thread_label(thread_id: str, label_id: str, request: Request) -> dict[str, Any]:
    removed = await asyncio.to_thread(label_repo.remove_label, thread_id, label_id)
    if not removed:
        raise HTTPException(status_code=404, detail=f"Label {label_id} not applied to thread {thread_id}")
    _publish(request, StreamEvent.label_changed(thread_id, label_id))
    return {"success": True, "labelIds": await asyncio.to_thread(label_repo.list_thread_label_ids, thread_id)}


@router.post("/emails/send")
async def send_email(body: SendEmailBody, request: Request) -> dict[str, Any]:
    """Send via the provider, then record the outbound message and its recipients."""
    pipeline = request.app.state.pipeline
    if pipeline.provider is None:
        raise HTTPException(status_code=503, detail="Mail provider not configured")
    sender = body.from_ or DEFAULT_FROM_ADDRESS
    if not sender:
        raise HTTPException(status_code=400, detail="from is required (no DEFAULT_FROM_ADDRESS configured)")
    invalid = [a for a in [sender, *body.to, *body.cc, *body.bcc] if not is_valid_address(a)]
    if invalid:
        raise HTTPException(status_code=400, detail=f"Invalid email address(es): {invalid}")
    send_request = SendRequest(
        from_=sender,
        to=body.to,
        cc=body.cc,
        bcc=body.bcc,
        subject=body.subject,
        text=body.text,
        html=body.html,
        reply_to=body.reply_to,
        attachments=body.attachments,
    )
    try:
        return await pipeline.record_outbound(
            send_request,
            reply_to_thread_id=body.reply_to_thread_id,
            in_reply_to=body.in_reply_to,
            references=body.references,
        )
    except MailProviderError as e:
        logger.warning("threads.send_failed", status_code=e.status_code, error=str(e))
        raise HTTPException(status_code=502, detail=f"Mail provider rejected the message: {e}") from e
