"""Mock mail provider: in-memory received content, sent messages recorded (and optionally written to JSON)."""

import json
from pathlib import Path
from typing import Any

from src.db.base import new_id, utcnow
from src.mail_provider.models import ReceivedContent, SendRequest, SendResult
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.mail_provider")


class MockMailProvider:
    """Provider stand-in for tests and local replay.

    `received` maps email_id -> content; ids listed in `failing_ids` raise on
    fetch to exercise the degraded path.
    """

    def __init__(
        self,
        received: dict[str, ReceivedContent | dict[str, Any]] | None = None,
        sent_items_path: Path | None = None,
        failing_ids: set[str] | None = None,
    ):
        self._received: dict[str, ReceivedContent] = {
            key: value if isinstance(value, ReceivedContent) else ReceivedContent.model_validate(value)
            for key, value in (received or {}).items()
        }
        self._sent_items_path = sent_items_path
        self._failing_ids = set(failing_ids or ())
        self.sent: list[dict[str, Any]] = []
        self.fetch_calls: list[str] = []
        logger.info("mail_provider.init", received=len(self._received), sent_items_path=str(sent_items_path))

    def add_received(self, email_id: str, text: str | None = None, html: str | None = None) -> None:
        self._received[email_id] = ReceivedContent(id=email_id, text=text, html=html)

    async def get_received_email(self, email_id: str) -> ReceivedContent | None:
        self.fetch_calls.append(email_id)
        if email_id in self._failing_ids:
            raise ConnectionError(f"mock fetch failure for {email_id}")
        return self._received.get(email_id)

    async def send_email(self, request: SendRequest) -> SendResult:
        result = SendResult(id=new_id())
        record = {
            "id": result.id,
            "sent_at": utcnow().isoformat(),
            **request.model_dump(by_alias=True),
        }
        self.sent.append(record)
        if self._sent_items_path is not None:
            self._sent_items_path.parent.mkdir(parents=True, exist_ok=True)
            with self._sent_items_path.open("w", encoding="utf-8") as f:
                json.dump(self.sent, f, indent=2)
        logger.info("mail_provider.sent", provider_id=result.id, to=request.to, subject=request.subject)
        return result
