"""ORM models for labels: Label, ThreadLabel join, and AI LabelRule."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.base import Base, TimestampMixin, new_id, utcnow

APPLIED_BY_SYSTEM = "system"
APPLIED_BY_AI = "ai"
APPLIED_BY_USER = "user"

# Seeded on init_db; looked up by name
INBOX_LABEL = "Inbox"
SENT_LABEL = "Sent"
SPAM_LABEL = "Spam"
SYSTEM_LABELS = {
    INBOX_LABEL: "#3b82f6",
    SENT_LABEL: "#22c55e",
    SPAM_LABEL: "#ef4444",
    "Important": "#f59e0b",
}


class Label(Base, TimestampMixin):
    """Tag applicable to threads (system-defined or user-defined)."""

    __tablename__ = "labels"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    color: Mapped[str] = mapped_column(String(16), nullable=False, default="#6b7280")
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    rules: Mapped[list["LabelRule"]] = relationship("LabelRule", back_populates="label")


class ThreadLabel(Base):
    """(thread, label) application. The composite key makes re-application a no-op."""

    __tablename__ = "thread_labels"
    __table_args__ = (Index("thread_labels_label_id_idx", "label_id"),)

    thread_id: Mapped[str] = mapped_column(ForeignKey("threads.id", ondelete="CASCADE"), primary_key=True)
    label_id: Mapped[str] = mapped_column(ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True)
    applied_by: Mapped[str] = mapped_column(String(16), nullable=False, default=APPLIED_BY_USER)
    confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class LabelRule(Base, TimestampMixin):
    """Free-text description and hints the classifier uses to decide on a label."""

    __tablename__ = "ai_label_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    label_id: Mapped[str] = mapped_column(ForeignKey("labels.id", ondelete="CASCADE"), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    examples: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    sender_patterns: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    label: Mapped["Label"] = relationship("Label", back_populates="rules")
