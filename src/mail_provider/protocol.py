"""Mail provider protocol: full-content fetch for inbound mail and a black-box send."""

from typing import Protocol

from src.mail_provider.models import ReceivedContent, SendRequest, SendResult


class MailProvider(Protocol):
    """Abstract interface for the upstream mail service."""

    async def get_received_email(self, email_id: str) -> ReceivedContent | None:
        """Full text/html for an inbound email id. None when it could not be retrieved."""
        ...

    async def send_email(self, request: SendRequest) -> SendResult:
        """Send a message; raises on provider rejection."""
        ...
