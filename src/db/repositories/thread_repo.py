"""Thread repository: lookups used by thread resolution, creation, flag updates, permanent delete."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from src.db import get_session
from src.db.base import as_utc, utcnow
from src.db.models.label import Label, ThreadLabel
from src.db.models.thread import Email, Thread

FLAG_FIELDS = ("is_read", "is_starred", "is_archived", "is_trashed")


def find_thread_by_message_id(session: Session, message_id: str) -> Optional[str]:
    """Thread id of the stored email whose Message-ID equals message_id, else None."""
    if not message_id:
        return None
    q = select(Email.thread_id).where(Email.message_id == message_id).limit(1)
    return session.scalars(q).first()


def find_thread_by_any_message_id(session: Session, message_ids: list[str]) -> Optional[str]:
    """Thread id of any stored email whose Message-ID appears in message_ids, else None."""
    ids = [m for m in message_ids if m]
    if not ids:
        return None
    q = select(Email.thread_id).where(Email.message_id.in_(ids)).limit(1)
    return session.scalars(q).first()


def subject_candidates(session: Session, normalized_subject: str, limit: int) -> list[Thread]:
    """Most recent threads whose subject contains normalized_subject (case-insensitive)."""
    q = (
        select(Thread)
        .where(Thread.subject.icontains(normalized_subject, autoescape=True))
        .order_by(Thread.last_message_at.desc())
        .limit(limit)
    )
    return list(session.scalars(q).all())


def create_thread(
    session: Session,
    subject: Optional[str],
    participants: list[str],
    now: Optional[datetime] = None,
) -> Thread:
    """Insert an empty thread (no snippet yet) and flush so its id is usable."""
    row = Thread(
        subject=subject,
        snippet="",
        participant_addresses=list(participants),
        last_message_at=now or utcnow(),
    )
    session.add(row)
    session.flush()
    return row


def get_thread_for_update(session: Session, thread_id: str) -> Optional[Thread]:
    """Load the thread row, taking a row lock on dialects that support it."""
    q = select(Thread).where(Thread.id == thread_id)
    if session.get_bind().dialect.name == "postgresql":
        q = q.with_for_update()
    return session.scalars(q).first()


def to_dict(row: Thread, labels: Optional[list[dict[str, Any]]] = None) -> dict[str, Any]:
    return {
        "id": row.id,
        "subject": row.subject,
        "snippet": row.snippet,
        "participant_addresses": list(row.participant_addresses or []),
        "last_message_at": as_utc(row.last_message_at).isoformat() if row.last_message_at else None,
        "is_read": row.is_read,
        "is_starred": row.is_starred,
        "is_archived": row.is_archived,
        "is_trashed": row.is_trashed,
        "labels": labels if labels is not None else [],
    }


def get_thread(thread_id: str) -> Optional[dict[str, Any]]:
    """Thread as a dict with its applied labels, or None."""
    with get_session() as session:
        row = session.get(Thread, thread_id)
        if row is None:
            return None
        q = (
            select(Label.id, Label.name, ThreadLabel.applied_by, ThreadLabel.confidence)
            .join(ThreadLabel, ThreadLabel.label_id == Label.id)
            .where(ThreadLabel.thread_id == thread_id)
            .order_by(Label.name)
        )
        labels = [
            {"id": lid, "name": name, "applied_by": applied_by, "confidence": confidence}
            for lid, name, applied_by, confidence in session.execute(q).all()
        ]
        return to_dict(row, labels)


def update_flags(thread_id: str, **flags: Optional[bool]) -> Optional[dict[str, Any]]:
    """Set any of is_read/is_starred/is_archived/is_trashed. None values are ignored."""
    unknown = set(flags) - set(FLAG_FIELDS)
    if unknown:
        raise ValueError(f"Unknown thread flags: {sorted(unknown)}")
    with get_session() as session:
        row = session.get(Thread, thread_id)
        if row is None:
            return None
        for name, value in flags.items():
            if value is not None:
                setattr(row, name, bool(value))
        session.flush()
        return to_dict(row)


def delete_thread(thread_id: str) -> bool:
    """Permanently remove a thread with its emails and label rows. Returns False if missing."""
    with get_session() as session:
        row = session.get(Thread, thread_id)
        if row is None:
            return False
        session.execute(delete(ThreadLabel).where(ThreadLabel.thread_id == thread_id))
        session.delete(row)
        return True
