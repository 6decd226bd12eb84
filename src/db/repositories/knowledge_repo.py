"""Knowledge repository: approved items, pending-review queue, approve/reject/edit."""

from typing import Any, Optional

from sqlalchemy import select

from src.db import get_session
from src.db.base import as_utc, utcnow
from src.db.models.contact import SOURCE_MANUAL
from src.db.models.knowledge import (
    KNOWLEDGE_CATEGORIES,
    STATUS_APPROVED,
    STATUS_PENDING,
    STATUS_REJECTED,
    KnowledgeItem,
    PendingKnowledge,
)

EDITABLE_FIELDS = ("category", "title", "content", "is_active")


class ReviewConflictError(ValueError):
    """Raised when approving or rejecting an item that is no longer pending."""


def _check_category(category: str) -> None:
    if category not in KNOWLEDGE_CATEGORIES:
        raise ValueError(f"Unknown knowledge category: {category}")


def knowledge_to_dict(row: KnowledgeItem) -> dict[str, Any]:
    return {
        "id": row.id,
        "category": row.category,
        "title": row.title,
        "content": row.content,
        "metadata": dict(row.metadata_json or {}),
        "source": row.source,
        "source_reference": row.source_reference,
        "contact_id": row.contact_id,
        "confidence": row.confidence,
        "is_active": row.is_active,
        "created_at": as_utc(row.created_at).isoformat() if row.created_at else None,
    }


def pending_to_dict(row: PendingKnowledge) -> dict[str, Any]:
    return {
        "id": row.id,
        "category": row.category,
        "title": row.title,
        "content": row.content,
        "metadata": dict(row.metadata_json or {}),
        "source": row.source,
        "source_reference": row.source_reference,
        "contact_id": row.contact_id,
        "confidence": row.confidence,
        "status": row.status,
        "reviewed_at": as_utc(row.reviewed_at).isoformat() if row.reviewed_at else None,
        "created_at": as_utc(row.created_at).isoformat() if row.created_at else None,
    }


def insert_knowledge(session, **fields: Any) -> KnowledgeItem:
    """Add an active knowledge row inside the caller's transaction."""
    _check_category(fields.get("category", ""))
    row = KnowledgeItem(is_active=True, **fields)
    session.add(row)
    session.flush()
    return row


def insert_pending(session, **fields: Any) -> PendingKnowledge:
    """Queue an extracted item for human review inside the caller's transaction."""
    _check_category(fields.get("category", ""))
    row = PendingKnowledge(status=STATUS_PENDING, **fields)
    session.add(row)
    session.flush()
    return row


def create_knowledge(
    category: str,
    title: str,
    content: str,
    metadata: Optional[dict[str, Any]] = None,
    contact_id: Optional[str] = None,
) -> dict[str, Any]:
    """Operator-entered knowledge (source=manual)."""
    with get_session() as session:
        row = insert_knowledge(
            session,
            category=category,
            title=title,
            content=content,
            metadata_json=dict(metadata or {}),
            source=SOURCE_MANUAL,
            contact_id=contact_id,
        )
        return knowledge_to_dict(row)


def list_knowledge(category: Optional[str] = None, active_only: bool = True) -> list[dict[str, Any]]:
    with get_session() as session:
        q = select(KnowledgeItem).order_by(KnowledgeItem.created_at.desc())
        if category:
            q = q.where(KnowledgeItem.category == category)
        if active_only:
            q = q.where(KnowledgeItem.is_active.is_(True))
        return [knowledge_to_dict(row) for row in session.scalars(q).all()]


def update_knowledge(knowledge_id: str, **fields: Any) -> Optional[dict[str, Any]]:
    """Edit category/title/content/is_active. None values are ignored; None result means not found."""
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValueError(f"Fields not editable: {sorted(unknown)}")
    if fields.get("category") is not None:
        _check_category(fields["category"])
    with get_session() as session:
        row = session.get(KnowledgeItem, knowledge_id)
        if row is None:
            return None
        for name, value in fields.items():
            if value is not None:
                setattr(row, name, value)
        session.flush()
        return knowledge_to_dict(row)


def delete_knowledge(knowledge_id: str) -> bool:
    with get_session() as session:
        row = session.get(KnowledgeItem, knowledge_id)
        if row is None:
            return False
        session.delete(row)
        return True


def list_pending(status: str = STATUS_PENDING) -> list[dict[str, Any]]:
    """Review queue, newest first."""
    with get_session() as session:
        q = (
            select(PendingKnowledge)
            .where(PendingKnowledge.status == status)
            .order_by(PendingKnowledge.created_at.desc())
        )
        return [pending_to_dict(row) for row in session.scalars(q).all()]


def _load_pending(session, pending_id: str) -> Optional[PendingKnowledge]:
    row = session.get(PendingKnowledge, pending_id)
    if row is not None and row.status != STATUS_PENDING:
        raise ReviewConflictError(f"Pending item {pending_id} already {row.status}")
    return row


def approve_pending(pending_id: str, edited_content: Optional[str] = None) -> Optional[dict[str, Any]]:
    """Promote a pending item into active knowledge, optionally with operator-edited content.

    Returns the new knowledge item, or None if the pending id does not exist.
    Raises ReviewConflictError if the item was already reviewed.
    """
    with get_session() as session:
        pending = _load_pending(session, pending_id)
        if pending is None:
            return None
        item = insert_knowledge(
            session,
            category=pending.category,
            title=pending.title,
            content=edited_content or pending.content,
            metadata_json=dict(pending.metadata_json or {}),
            source=pending.source,
            source_reference=pending.source_reference,
            contact_id=pending.contact_id,
            confidence=pending.confidence,
        )
        pending.status = STATUS_APPROVED
        pending.reviewed_at = utcnow()
        session.flush()
        return knowledge_to_dict(item)


def reject_pending(pending_id: str) -> bool:
    """Mark a pending item rejected. False if the id does not exist."""
    with get_session() as session:
        pending = _load_pending(session, pending_id)
        if pending is None:
            return False
        pending.status = STATUS_REJECTED
        pending.reviewed_at = utcnow()
        return True
