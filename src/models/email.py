"""Normalized email model shared by the resolver, state mutator and enrichment."""

from typing import Any, Optional

from pydantic import BaseModel, Field


class AttachmentPayload(BaseModel):
    """Attachment carried through ingestion. content is base64 and never persisted."""

    filename: str
    content_type: str = "application/octet-stream"
    size: int = 0
    content: Optional[str] = None

    def metadata(self) -> dict[str, Any]:
        return {"filename": self.filename, "content_type": self.content_type, "size": self.size}


class NormalizedEmail(BaseModel):
    """Canonical envelope: lowercase addresses, parsed threading headers, text body."""

    message_id: Optional[str] = None
    in_reply_to: Optional[str] = None
    references: list[str] = Field(default_factory=list)
    from_address: str
    from_name: Optional[str] = None
    to_addresses: list[str] = Field(default_factory=list)
    cc_addresses: list[str] = Field(default_factory=list)
    bcc_addresses: list[str] = Field(default_factory=list)
    reply_to: Optional[str] = None
    subject: Optional[str] = None
    normalized_subject: str = ""
    body_text: str = ""
    body_html: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)
    attachments: list[AttachmentPayload] = Field(default_factory=list)

    @property
    def participants(self) -> list[str]:
        """from + to + cc, deduplicated in first-seen order."""
        seen: list[str] = []
        for addr in [self.from_address, *self.to_addresses, *self.cc_addresses]:
            if addr and addr not in seen:
                seen.append(addr)
        return seen

    @property
    def recipients(self) -> list[str]:
        """to + cc + bcc, deduplicated in first-seen order."""
        seen: list[str] = []
        for addr in [*self.to_addresses, *self.cc_addresses, *self.bcc_addresses]:
            if addr and addr not in seen:
                seen.append(addr)
        return seen
