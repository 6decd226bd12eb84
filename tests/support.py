"""Shared test setup: project root on sys.path, a throwaway SQLite file, dummy credentials.

Import this before anything from src so config picks up the environment.
"""

import base64
import os
import sys
import tempfile
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

# File-backed so worker threads share the same database
os.environ["DATABASE_URL"] = f"sqlite:///{Path(tempfile.gettempdir()) / f'inbox_ingest_test_{os.getpid()}.sqlite'}"
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ["TRACING_ENABLED"] = "false"
os.environ.pop("AGENTS_CONFIG_PATH", None)

from src.db import get_session, reset_db  # noqa: E402
from src.db.base import utcnow  # noqa: E402
from src.ingest.normalizer import normalize_envelope  # noqa: E402
from src.ingest.state import apply_new_message  # noqa: E402
from src.ingest.thread_resolver import ThreadQuery, resolve_thread  # noqa: E402
from src.webhook.models import InboundEmailData  # noqa: E402
from src.webhook.signature import sign  # noqa: E402

SECRET = "whsec_" + base64.b64encode(b"unit-test-signing-key-0123456789").decode("ascii")


def signed_headers(body: bytes, delivery_id: str = "msg_delivery_1", timestamp: int | None = None, secret: str = SECRET) -> dict[str, str]:
    ts = str(int(time.time()) if timestamp is None else timestamp)
    return {
        "svix-id": delivery_id,
        "svix-timestamp": ts,
        "svix-signature": sign(body, delivery_id, ts, secret),
        "content-type": "application/json",
    }


def email_data(
    message_id: str,
    from_: str = "Alice <a@x.com>",
    to: list[str] | None = None,
    subject: str = "Hello",
    text: str = "Hi there",
    in_reply_to: str | None = None,
    references: str | None = None,
    email_id: str | None = None,
    **extra,
) -> dict:
    headers = [{"name": "Message-ID", "value": message_id}]
    if in_reply_to:
        headers.append({"name": "In-Reply-To", "value": in_reply_to})
    if references:
        headers.append({"name": "References", "value": references})
    data = {
        "email_id": email_id,
        "from": from_,
        "to": to or ["b@x.com"],
        "subject": subject,
        "text": text,
        "message_id": message_id,
        "headers": headers,
    }
    data.update(extra)
    return data


def email_event(message_id: str, **kwargs) -> dict:
    return {"type": "email.received", "created_at": "2026-01-01T00:00:00Z", "data": email_data(message_id, **kwargs)}


def normalized(message_id: str, **kwargs):
    return normalize_envelope(InboundEmailData.model_validate(email_data(message_id, **kwargs)))


def store(email, direction: str = "inbound", sent_at=None) -> tuple[str, str, str]:
    """Resolve and persist one message in its own transaction. Returns (thread_id, email_id, strategy)."""
    sent_at = sent_at or utcnow()
    with get_session() as session:
        resolution = resolve_thread(session, ThreadQuery.from_email(email), now=sent_at)
        row = apply_new_message(session, resolution.thread_id, email, direction, sent_at)
        return resolution.thread_id, row.id, resolution.strategy


__all__ = [
    "ROOT",
    "SECRET",
    "email_data",
    "email_event",
    "get_session",
    "normalized",
    "reset_db",
    "signed_headers",
    "store",
]
