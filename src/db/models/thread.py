"""ORM models for conversations: Thread and its Email messages."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, TimestampMixin, new_id, utcnow

DIRECTION_INBOUND = "inbound"
DIRECTION_OUTBOUND = "outbound"


class Thread(Base, TimestampMixin):
    """Conversation grouping. Flags are soft state; rows are only removed by permanent delete."""

    __tablename__ = "threads"
    __table_args__ = (
        Index("threads_last_message_at_idx", "last_message_at"),
        Index("threads_is_trashed_idx", "is_trashed"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    snippet: Mapped[str] = mapped_column(Text, nullable=False, default="")
    participant_addresses: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_starred: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_trashed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    emails: Mapped[list["Email"]] = relationship(
        "Email", back_populates="thread", cascade="all, delete-orphan", passive_deletes=True
    )


class Email(Base):
    """One delivered or sent message. Bound to exactly one thread at creation."""

    __tablename__ = "emails"
    __table_args__ = (
        Index("emails_thread_id_idx", "thread_id"),
        Index("emails_sent_at_idx", "sent_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    thread_id: Mapped[str] = mapped_column(ForeignKey("threads.id", ondelete="CASCADE"), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    provider_id: Mapped[Optional[str]] = mapped_column(String(256), unique=True, nullable=True)
    message_id: Mapped[Optional[str]] = mapped_column(String(998), unique=True, nullable=True)
    in_reply_to: Mapped[Optional[str]] = mapped_column(String(998), nullable=True)
    references: Mapped[list[str]] = mapped_column("message_references", JSON, nullable=False, default=list)
    from_address: Mapped[str] = mapped_column(String(320), nullable=False)
    from_name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    to_addresses: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    cc_addresses: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    bcc_addresses: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    reply_to: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    subject: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body_html: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    headers: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    thread: Mapped["Thread"] = relationship("Thread", back_populates="emails")
