"""HTTP mail provider for the Resend API (async, httpx)."""

import asyncio

import httpx

from src.config import CONTENT_FETCH_BASE_DELAY, CONTENT_FETCH_MAX_ATTEMPTS, RESEND_API_BASE, RESEND_API_KEY
from src.mail_provider.models import ReceivedContent, SendRequest, SendResult
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.resend_provider")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class MailProviderError(RuntimeError):
    """Provider rejected a request (non-retryable status or retries exhausted)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _is_transient(e: Exception) -> bool:
    """True for connection/timeout failures and retryable HTTP statuses."""
    if isinstance(e, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True
    if isinstance(e, httpx.HTTPStatusError):
        return e.response.status_code in RETRYABLE_STATUS
    return False


class ResendProvider:
    """Resend REST client.

    Received emails are read from /emails/receiving/{id}; the webhook payload
    carries metadata only, so the body has to be fetched separately.
    """

    def __init__(
        self,
        api_key: str = RESEND_API_KEY,
        base_url: str = RESEND_API_BASE,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = CONTENT_FETCH_MAX_ATTEMPTS,
        base_delay: float = CONTENT_FETCH_BASE_DELAY,
    ):
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=httpx.Timeout(15.0, connect=5.0),
        )
        self._owns_client = client is None
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        logger.info("resend_provider.init", base_url=base_url, has_key=bool(api_key))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def get_received_email(self, email_id: str) -> ReceivedContent | None:
        """Fetch full content. Retries transient errors; returns None on failure."""
        for attempt in range(self._max_attempts):
            try:
                response = await self._client.get(f"/emails/receiving/{email_id}")
                if response.status_code == 404:
                    logger.warning("resend_provider.get_received.not_found", email_id=email_id)
                    return None
                response.raise_for_status()
                content = ReceivedContent.model_validate(response.json())
                logger.debug(
                    "resend_provider.get_received.hit",
                    email_id=email_id,
                    text_len=len(content.text or ""),
                    html_len=len(content.html or ""),
                )
                return content
            except Exception as e:
                if attempt < self._max_attempts - 1 and _is_transient(e):
                    delay = self._base_delay * (2**attempt)
                    logger.debug(
                        "resend_provider.get_received.retry",
                        email_id=email_id,
                        attempt=attempt + 1,
                        delay=delay,
                        error_type=type(e).__name__,
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(
                    "resend_provider.get_received.error",
                    email_id=email_id,
                    error=str(e) or repr(e),
                    error_type=type(e).__name__,
                )
                return None
        return None

    async def send_email(self, request: SendRequest) -> SendResult:
        """POST /emails. HTML falls back to the text body."""
        payload = request.model_dump(by_alias=True, exclude_none=True)
        payload["html"] = request.html or request.text
        if not payload.get("headers"):
            payload.pop("headers", None)
        if not payload.get("attachments"):
            payload.pop("attachments", None)
        response = await self._client.post("/emails", json=payload)
        if response.status_code >= 400:
            logger.error(
                "resend_provider.send.error",
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise MailProviderError(f"Send failed: {response.status_code}", status_code=response.status_code)
        result = SendResult.model_validate(response.json())
        logger.info("resend_provider.send.ok", provider_id=result.id, to=len(request.to))
        return result
