"""Contact repository: atomic upsert keyed by lowercase email, lookups, per-contact facts."""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from src.db import get_session
from src.db.base import as_utc, new_id, utcnow
from src.db.models.contact import SOURCE_AI_EXTRACTED, Contact, ContactKnowledge
from src.db.models.thread import DIRECTION_INBOUND, DIRECTION_OUTBOUND
from src.db.upsert import insert_for

PROFILE_FIELDS = {"name", "company", "role", "summary"}


def upsert_contact(
    session: Session,
    address: str,
    direction: str,
    contacted_at: datetime,
    name: Optional[str] = None,
) -> None:
    """Create the contact or bump its counters in a single INSERT ... ON CONFLICT (email) DO UPDATE.

    The increment is evaluated by the database against the stored row, so two
    concurrent callers for the same address yield one row with both counts.
    """
    if direction not in (DIRECTION_INBOUND, DIRECTION_OUTBOUND):
        raise ValueError(f"Unknown direction: {direction}")
    address = (address or "").strip().lower()
    if not address:
        raise ValueError("Contact address is empty")
    inbound = 1 if direction == DIRECTION_INBOUND else 0
    outbound = 1 - inbound
    now = utcnow()
    table = Contact.__table__
    stmt = insert_for(session, table).values(
        id=new_id(),
        email=address,
        name=name,
        email_count=1,
        inbound_count=inbound,
        outbound_count=outbound,
        first_contacted_at=contacted_at,
        last_contacted_at=contacted_at,
        created_at=now,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c.email],
        set_={
            "email_count": table.c.email_count + 1,
            "inbound_count": table.c.inbound_count + inbound,
            "outbound_count": table.c.outbound_count + outbound,
            "name": func.coalesce(stmt.excluded.name, table.c.name),
            "last_contacted_at": stmt.excluded.last_contacted_at,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.execute(stmt)


def to_dict(row: Contact) -> dict[str, Any]:
    return {
        "id": row.id,
        "email": row.email,
        "name": row.name,
        "company": row.company,
        "role": row.role,
        "email_count": row.email_count,
        "inbound_count": row.inbound_count,
        "outbound_count": row.outbound_count,
        "first_contacted_at": as_utc(row.first_contacted_at).isoformat() if row.first_contacted_at else None,
        "last_contacted_at": as_utc(row.last_contacted_at).isoformat() if row.last_contacted_at else None,
        "summary": row.summary,
    }


def get_contact_by_email(address: str) -> Optional[dict[str, Any]]:
    with get_session() as session:
        q = select(Contact).where(Contact.email == (address or "").strip().lower())
        row = session.scalars(q).first()
        return to_dict(row) if row is not None else None


def get_contact(contact_id: str) -> Optional[dict[str, Any]]:
    with get_session() as session:
        row = session.get(Contact, contact_id)
        return to_dict(row) if row is not None else None


def update_profile(session: Session, contact_id: str, **fields: Optional[str]) -> Optional[Contact]:
    """Set name/company/role/summary. None and blank values leave the stored field alone."""
    unknown = set(fields) - PROFILE_FIELDS
    if unknown:
        raise ValueError(f"Unknown contact fields: {sorted(unknown)}")
    row = session.get(Contact, contact_id)
    if row is None:
        return None
    for field, value in fields.items():
        if value and value.strip():
            setattr(row, field, value.strip())
    session.flush()
    return row


def count_contacts(address: Optional[str] = None) -> int:
    with get_session() as session:
        q = select(func.count(Contact.id))
        if address is not None:
            q = q.where(Contact.email == address.strip().lower())
        return session.scalar(q) or 0


def add_contact_knowledge(
    session: Session,
    contact_id: str,
    field: str,
    value: str,
    confidence: Optional[int] = None,
    source: str = SOURCE_AI_EXTRACTED,
) -> ContactKnowledge:
    """Record a structured fact. Known profile fields (company, role) also update the contact."""
    row = ContactKnowledge(
        contact_id=contact_id,
        field=field,
        value=value,
        confidence=confidence,
        source=source,
    )
    session.add(row)
    if field in ("company", "role", "name"):
        contact = session.get(Contact, contact_id)
        if contact is not None:
            setattr(contact, field, value)
    session.flush()
    return row


def list_contact_knowledge(contact_id: str) -> list[dict[str, Any]]:
    with get_session() as session:
        q = (
            select(ContactKnowledge)
            .where(ContactKnowledge.contact_id == contact_id)
            .order_by(ContactKnowledge.created_at)
        )
        return [
            {
                "id": row.id,
                "field": row.field,
                "value": row.value,
                "source": row.source,
                "confidence": row.confidence,
            }
            for row in session.scalars(q).all()
        ]
