"""Thread resolution: ordered matcher strategies with an unconditional create at the end.

Strategies, first hit wins:
  1. in_reply_to  - a stored email's Message-ID equals In-Reply-To
  2. references   - a stored email's Message-ID appears in References
  3. subject      - recent threads containing the normalized subject that share a participant
  4. created      - new thread (always succeeds)

Stages 1-2 are exact. Stage 3 is a heuristic that prefers grouping over
fragmentation; two unrelated conversations with a generic subject and a
common participant will be merged. Concurrent deliveries that could match
each other under stage 3 are not coordinated.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from src.config import SUBJECT_MATCH_CANDIDATES
from src.db.repositories import thread_repo
from src.models.email import NormalizedEmail
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.thread_resolver")

STRATEGY_IN_REPLY_TO = "in_reply_to"
STRATEGY_REFERENCES = "references"
STRATEGY_SUBJECT = "subject_participants"
STRATEGY_CREATED = "created"


@dataclass(frozen=True)
class ThreadQuery:
    """Inputs to resolution. participants are canonical lowercase addresses."""

    in_reply_to: Optional[str] = None
    references: tuple[str, ...] = ()
    subject: Optional[str] = None
    normalized_subject: str = ""
    participants: tuple[str, ...] = ()

    @classmethod
    def from_email(cls, email: NormalizedEmail) -> "ThreadQuery":
        return cls(
            in_reply_to=email.in_reply_to,
            references=tuple(email.references),
            subject=email.subject,
            normalized_subject=email.normalized_subject,
            participants=tuple(email.participants),
        )


@dataclass(frozen=True)
class Resolution:
    thread_id: str
    strategy: str
    created: bool = field(default=False)


Matcher = Callable[[Session, ThreadQuery], Optional[str]]


def match_in_reply_to(session: Session, query: ThreadQuery) -> Optional[str]:
    if not query.in_reply_to:
        return None
    return thread_repo.find_thread_by_message_id(session, query.in_reply_to)


def match_references(session: Session, query: ThreadQuery) -> Optional[str]:
    if not query.references:
        return None
    return thread_repo.find_thread_by_any_message_id(session, list(query.references))


def match_subject_participants(
    session: Session,
    query: ThreadQuery,
    limit: int = SUBJECT_MATCH_CANDIDATES,
) -> Optional[str]:
    """First of the `limit` most recent subject candidates sharing >=1 participant."""
    if not query.normalized_subject:
        return None
    incoming = {p.lower() for p in query.participants}
    if not incoming:
        return None
    for thread in thread_repo.subject_candidates(session, query.normalized_subject, limit):
        existing = {addr.lower() for addr in (thread.participant_addresses or [])}
        if existing & incoming:
            return thread.id
    return None


MATCHERS: list[tuple[str, Matcher]] = [
    (STRATEGY_IN_REPLY_TO, match_in_reply_to),
    (STRATEGY_REFERENCES, match_references),
    (STRATEGY_SUBJECT, match_subject_participants),
]


def create_thread(session: Session, query: ThreadQuery, now: Optional[datetime] = None) -> str:
    """Create a thread with the original subject and the canonical participant set."""
    row = thread_repo.create_thread(session, query.subject, list(query.participants), now=now)
    return row.id


def resolve_thread(
    session: Session,
    query: ThreadQuery,
    matchers: Optional[list[tuple[str, Matcher]]] = None,
    now: Optional[datetime] = None,
) -> Resolution:
    """Run the matcher cascade; create a thread when nothing matches. Always returns a thread id."""
    for name, matcher in matchers if matchers is not None else MATCHERS:
        thread_id = matcher(session, query)
        if thread_id:
            logger.info("thread_resolver.match", strategy=name, thread_id=thread_id)
            return Resolution(thread_id=thread_id, strategy=name)
    thread_id = create_thread(session, query, now=now)
    logger.info(
        "thread_resolver.created",
        thread_id=thread_id,
        subject=query.subject,
        participants=len(query.participants),
    )
    return Resolution(thread_id=thread_id, strategy=STRATEGY_CREATED, created=True)
