"""Mail provider: upstream content fetch and send, with HTTP and mock implementations."""

from src.mail_provider.mock import MockMailProvider
from src.mail_provider.models import OutboundAttachment, ReceivedContent, SendRequest, SendResult
from src.mail_provider.protocol import MailProvider
from src.mail_provider.resend import MailProviderError, ResendProvider

__all__ = [
    "MailProvider",
    "MailProviderError",
    "MockMailProvider",
    "OutboundAttachment",
    "ReceivedContent",
    "ResendProvider",
    "SendRequest",
    "SendResult",
]
