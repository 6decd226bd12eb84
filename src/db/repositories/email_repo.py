"""Email repository: insert, duplicate checks, loads for enrichment, attachment summary updates."""

from typing import Any, Optional

from sqlalchemy import String, cast, or_, select
from sqlalchemy.orm import Session

from src.db import get_session
from src.db.models.thread import Email


def message_id_exists(session: Session, message_id: Optional[str]) -> bool:
    if not message_id:
        return False
    q = select(Email.id).where(Email.message_id == message_id).limit(1)
    return session.scalars(q).first() is not None


def provider_id_exists(session: Session, provider_id: Optional[str]) -> bool:
    if not provider_id:
        return False
    q = select(Email.id).where(Email.provider_id == provider_id).limit(1)
    return session.scalars(q).first() is not None


def insert_email(session: Session, **fields: Any) -> Email:
    """Add an Email row and flush. Raises IntegrityError on duplicate message_id or provider_id."""
    row = Email(**fields)
    session.add(row)
    session.flush()
    return row


def get_email(email_id: str) -> Optional[Email]:
    """Load one email detached from its session (attributes remain readable)."""
    with get_session() as session:
        row = session.get(Email, email_id)
        if row is None:
            return None
        session.expunge(row)
        return row


def recent_for_address(address: str, limit: int = 10) -> list[dict[str, Any]]:
    """Newest emails sent from or to address (To and Cc), as prompt-ready dicts."""
    address = (address or "").strip().lower()
    if not address:
        return []
    # Address lists are JSON arrays; match the quoted element in their text form
    quoted = f'"{address}"'
    q = (
        select(Email)
        .where(
            or_(
                Email.from_address == address,
                cast(Email.to_addresses, String).contains(quoted, autoescape=True),
                cast(Email.cc_addresses, String).contains(quoted, autoescape=True),
            )
        )
        .order_by(Email.sent_at.desc())
        .limit(limit)
    )
    with get_session() as session:
        return [
            {
                "id": row.id,
                "direction": row.direction,
                "from_address": row.from_address,
                "subject": row.subject,
                "body_text": row.body_text,
                "sent_at": row.sent_at,
            }
            for row in session.scalars(q).all()
        ]


def set_attachment_summaries(email_id: str, summaries: dict[int, str]) -> int:
    """Write AI summaries into the attachments JSON by list index. Returns count updated."""
    if not summaries:
        return 0
    with get_session() as session:
        row = session.get(Email, email_id)
        if row is None:
            return 0
        attachments = [dict(a) for a in (row.attachments or [])]
        updated = 0
        for index, summary in summaries.items():
            if 0 <= index < len(attachments):
                attachments[index]["summary"] = summary
                updated += 1
        # Reassign so the JSON column is flagged dirty
        row.attachments = attachments
        return updated
