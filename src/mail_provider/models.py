"""Pydantic models for the upstream mail API (subset we need)."""

from typing import Optional

from pydantic import BaseModel, Field


class ReceivedContent(BaseModel):
    """Full content of a received email from the provider's receiving API."""

    id: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    headers: dict[str, str] | list[dict[str, str]] | None = None

    model_config = {"extra": "ignore"}


class OutboundAttachment(BaseModel):
    filename: str
    content: str  # base64
    content_type: Optional[str] = None


class SendRequest(BaseModel):
    """Payload for sending a new message or a reply."""

    from_: str = Field(..., alias="from")
    to: list[str] = Field(..., min_length=1)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    subject: str
    text: str
    html: Optional[str] = None
    reply_to: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    attachments: list[OutboundAttachment] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class SendResult(BaseModel):
    """Provider acknowledgement of a send: the provider-side email id."""

    id: str
