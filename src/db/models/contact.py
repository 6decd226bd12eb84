"""ORM models for contacts: one row per lowercase address, plus per-contact facts."""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, TimestampMixin, new_id, utcnow

SOURCE_MANUAL = "manual"
SOURCE_AI_EXTRACTED = "ai_extracted"


class Contact(Base, TimestampMixin):
    """Deduplicated correspondent with interaction counters. Never deleted by ingestion."""

    __tablename__ = "contacts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    role: Mapped[Optional[str]] = mapped_column(String(256), nullable=True)
    email_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inbound_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    outbound_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    first_contacted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_contacted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    knowledge: Mapped[list["ContactKnowledge"]] = relationship(
        "ContactKnowledge", back_populates="contact", cascade="all, delete-orphan", passive_deletes=True
    )


class ContactKnowledge(Base):
    """Single structured fact about a contact (field/value), e.g. preference or phone."""

    __tablename__ = "contact_knowledge"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    contact_id: Mapped[str] = mapped_column(ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False, index=True)
    field: Mapped[str] = mapped_column(String(128), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default=SOURCE_AI_EXTRACTED)
    confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    contact: Mapped["Contact"] = relationship("Contact", back_populates="knowledge")
