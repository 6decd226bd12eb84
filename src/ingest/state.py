"""State mutation for a resolved message: email insert, thread update, contact upsert.

All writes go through the caller's Session so one message insert, one thread
update and the contact upserts commit or roll back together.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from src.db.base import as_utc
from src.db.models.label import APPLIED_BY_SYSTEM
from src.db.models.thread import DIRECTION_INBOUND, DIRECTION_OUTBOUND, Email
from src.db.repositories import contact_repo, email_repo, label_repo, thread_repo
from src.ingest.normalizer import make_snippet
from src.models.email import NormalizedEmail
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.state")


class DuplicateMessageError(Exception):
    """The Message-ID or provider email id is already stored; the delivery was processed before."""

    def __init__(self, message_id: Optional[str], provider_id: Optional[str] = None):
        super().__init__(f"Message already ingested: {message_id or provider_id}")
        self.message_id = message_id
        self.provider_id = provider_id


def _merge_participants(existing: list[str], incoming: list[str]) -> list[str]:
    merged = list(existing or [])
    lowered = {p.lower() for p in merged}
    for addr in incoming:
        if addr and addr.lower() not in lowered:
            merged.append(addr)
            lowered.add(addr.lower())
    return merged


def apply_new_message(
    session: Session,
    thread_id: str,
    email: NormalizedEmail,
    direction: str,
    sent_at: datetime,
    provider_id: Optional[str] = None,
) -> Email:
    """Insert the email, update its thread and upsert the touched contacts.

    Raises DuplicateMessageError before any write when the Message-ID or provider id
    exists, or when a concurrent insert wins a unique constraint (the caller must roll back).
    """
    if direction not in (DIRECTION_INBOUND, DIRECTION_OUTBOUND):
        raise ValueError(f"Unknown direction: {direction}")
    if email_repo.message_id_exists(session, email.message_id):
        raise DuplicateMessageError(email.message_id, provider_id)
    if email_repo.provider_id_exists(session, provider_id):
        raise DuplicateMessageError(email.message_id, provider_id)

    try:
        row = email_repo.insert_email(
            session,
            thread_id=thread_id,
            direction=direction,
            provider_id=provider_id,
            message_id=email.message_id,
            in_reply_to=email.in_reply_to,
            references=list(email.references),
            from_address=email.from_address,
            from_name=email.from_name,
            to_addresses=list(email.to_addresses),
            cc_addresses=list(email.cc_addresses),
            bcc_addresses=list(email.bcc_addresses),
            reply_to=email.reply_to,
            subject=email.subject,
            body_text=email.body_text,
            body_html=email.body_html,
            headers=dict(email.headers),
            attachments=[a.metadata() for a in email.attachments],
            sent_at=sent_at,
        )
    except IntegrityError as exc:
        if email.message_id or provider_id:
            raise DuplicateMessageError(email.message_id, provider_id) from exc
        raise

    thread = thread_repo.get_thread_for_update(session, thread_id)
    if thread is None:
        raise LookupError(f"Thread not found: {thread_id}")
    thread.snippet = make_snippet(email.body_text)
    thread.participant_addresses = _merge_participants(thread.participant_addresses, email.participants)
    current = as_utc(thread.last_message_at)
    if current is None or as_utc(sent_at) > current:
        thread.last_message_at = sent_at
    if direction == DIRECTION_INBOUND:
        thread.is_read = False

    if direction == DIRECTION_INBOUND:
        contact_repo.upsert_contact(
            session, email.from_address, DIRECTION_INBOUND, sent_at, name=email.from_name
        )
    else:
        for recipient in email.recipients:
            contact_repo.upsert_contact(session, recipient, DIRECTION_OUTBOUND, sent_at)

    session.flush()
    logger.info(
        "state.message_applied",
        email_id=row.id,
        thread_id=thread_id,
        direction=direction,
        participants=len(thread.participant_addresses),
    )
    return row


def apply_system_label(session: Session, thread_id: str, name: str) -> Optional[str]:
    """Apply a seeded label (Inbox, Sent, ...) by name. Re-application is a no-op."""
    label_id = label_repo.get_label_id_by_name(session, name)
    if label_id is None:
        logger.warning("state.system_label_missing", label=name)
        return None
    label_repo.apply_label(session, thread_id, label_id, APPLIED_BY_SYSTEM)
    return label_id
