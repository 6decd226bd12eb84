"""Label repository: idempotent label application, removal, active classifier rules."""

from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from src.db import get_session
from src.db.base import utcnow
from src.db.models.label import APPLIED_BY_USER, Label, LabelRule, ThreadLabel
from src.db.upsert import insert_for


def get_label_id_by_name(session: Session, name: str) -> Optional[str]:
    q = select(Label.id).where(Label.name == name).order_by(Label.is_system.desc()).limit(1)
    return session.scalars(q).first()


def label_exists(session: Session, label_id: str) -> bool:
    return session.get(Label, label_id) is not None


def apply_label(
    session: Session,
    thread_id: str,
    label_id: str,
    applied_by: str,
    confidence: Optional[int] = None,
) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING on (thread_id, label_id). True if a row was added."""
    table = ThreadLabel.__table__
    stmt = (
        insert_for(session, table)
        .values(
            thread_id=thread_id,
            label_id=label_id,
            applied_by=applied_by,
            confidence=confidence,
            applied_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=[table.c.thread_id, table.c.label_id])
    )
    result = session.execute(stmt)
    return (result.rowcount or 0) > 0


def add_label(thread_id: str, label_id: str, applied_by: str = APPLIED_BY_USER) -> bool:
    """Standalone application from the API. Raises LookupError for an unknown label."""
    with get_session() as session:
        if not label_exists(session, label_id):
            raise LookupError(f"Label not found: {label_id}")
        return apply_label(session, thread_id, label_id, applied_by)


def remove_label(thread_id: str, label_id: str) -> bool:
    with get_session() as session:
        result = session.execute(
            delete(ThreadLabel)
            .where(ThreadLabel.thread_id == thread_id)
            .where(ThreadLabel.label_id == label_id)
        )
        return (result.rowcount or 0) > 0


def list_thread_label_ids(thread_id: str) -> list[str]:
    with get_session() as session:
        q = select(ThreadLabel.label_id).where(ThreadLabel.thread_id == thread_id)
        return list(session.scalars(q).all())


def create_label(name: str, color: str = "#6b7280", description: Optional[str] = None) -> str:
    with get_session() as session:
        row = Label(name=name, color=color, description=description, is_system=False)
        session.add(row)
        session.flush()
        return row.id


def create_rule(
    label_id: str,
    description: str,
    examples: Optional[list[str]] = None,
    keywords: Optional[list[str]] = None,
    sender_patterns: Optional[list[str]] = None,
) -> str:
    with get_session() as session:
        row = LabelRule(
            label_id=label_id,
            description=description,
            examples=list(examples or []),
            keywords=list(keywords or []),
            sender_patterns=list(sender_patterns or []),
        )
        session.add(row)
        session.flush()
        return row.id


def list_active_rules() -> list[dict[str, Any]]:
    """Active classifier rules joined with their label name."""
    with get_session() as session:
        q = (
            select(LabelRule, Label.name)
            .join(Label, Label.id == LabelRule.label_id)
            .where(LabelRule.is_active.is_(True))
            .order_by(Label.name)
        )
        return [
            {
                "label_id": rule.label_id,
                "label_name": label_name,
                "description": rule.description,
                "examples": list(rule.examples or []),
                "keywords": list(rule.keywords or []),
                "sender_patterns": list(rule.sender_patterns or []),
            }
            for rule, label_name in session.execute(q).all()
        ]
