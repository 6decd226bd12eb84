"""Pydantic models for the upstream provider's inbound-email webhook payload."""

from pydantic import BaseModel, Field, field_validator

EVENT_EMAIL_RECEIVED = "email.received"


class InboundHeader(BaseModel):
    """One entry of the flattened header list."""

    name: str
    value: str = ""

    model_config = {"extra": "ignore"}


class InboundAttachment(BaseModel):
    """Attachment as delivered by the provider (content is base64 when present)."""

    filename: str = "attachment"
    content_type: str = Field("application/octet-stream", alias="contentType")
    content: str | None = None
    size: int | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}


class InboundEmailData(BaseModel):
    """`data` object of an email.received event."""

    email_id: str | None = None
    from_: str = Field(..., alias="from", min_length=1)
    to: list[str] = Field(..., min_length=1)
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    reply_to: str | None = None
    subject: str | None = None
    text: str | None = None
    html: str | None = None
    message_id: str | None = None
    attachments: list[InboundAttachment] = Field(default_factory=list)
    headers: list[InboundHeader] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "extra": "ignore"}

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def _coerce_address_list(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("reply_to", mode="before")
    @classmethod
    def _first_reply_to(cls, value):
        if isinstance(value, list):
            return value[0] if value else None
        return value

    @field_validator("headers", mode="before")
    @classmethod
    def _headers_as_list(cls, value):
        # Some deliveries send headers as a {name: value} object
        if value is None:
            return []
        if isinstance(value, dict):
            return [{"name": k, "value": v} for k, v in value.items()]
        return value


class InboundEvent(BaseModel):
    """Top-level webhook envelope: {type, created_at?, data}."""

    type: str = Field(..., min_length=1)
    created_at: str | None = None
    data: dict = Field(default_factory=dict)

    model_config = {"extra": "ignore"}

    @property
    def is_email_received(self) -> bool:
        return self.type == EVENT_EMAIL_RECEIVED

    def email_data(self) -> InboundEmailData:
        """Validate data as an email.received payload. Raises pydantic.ValidationError."""
        return InboundEmailData.model_validate(self.data)
