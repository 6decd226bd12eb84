"""Inbound webhook signature verification (Svix scheme).

The provider signs "{id}.{timestamp}.{body}" with HMAC-SHA256, keyed by the
base64-decoded part of a ``whsec_...`` secret, and sends one or more
space-separated ``v1,<base64>`` signatures. Headers are accepted under both
the ``svix-*`` and the generic ``webhook-*`` names.
"""

import base64
import binascii
import hashlib
import hmac
import time
from typing import Mapping, Optional

SECRET_PREFIX = "whsec_"
SIGNATURE_VERSION = "v1"

_HEADER_NAMES = {
    "id": ("svix-id", "webhook-id"),
    "timestamp": ("svix-timestamp", "webhook-timestamp"),
    "signature": ("svix-signature", "webhook-signature"),
}


class SignatureVerificationError(ValueError):
    """Raised when a delivery cannot be authenticated."""


def _header(headers: Mapping[str, str], key: str) -> Optional[str]:
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in _HEADER_NAMES[key]:
        value = lowered.get(name)
        if value:
            return value.strip()
    return None


def _secret_bytes(secret: str) -> bytes:
    if not secret:
        raise SignatureVerificationError("Webhook secret is not configured")
    raw = secret[len(SECRET_PREFIX):] if secret.startswith(SECRET_PREFIX) else secret
    try:
        return base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as e:
        raise SignatureVerificationError("Webhook secret is not valid base64") from e


def sign(body: bytes, delivery_id: str, timestamp: str, secret: str) -> str:
    """Return the ``v1,<base64>`` signature for a body. Used by replay tooling and tests."""
    content = f"{delivery_id}.{timestamp}.".encode("utf-8") + body
    digest = hmac.new(_secret_bytes(secret), content, hashlib.sha256).digest()
    return f"{SIGNATURE_VERSION},{base64.b64encode(digest).decode('ascii')}"


def verify_signature(
    body: bytes,
    headers: Mapping[str, str],
    secret: str,
    tolerance: int = 300,
    now: Optional[float] = None,
) -> str:
    """Verify a delivery and return its id. Raises SignatureVerificationError on any failure."""
    delivery_id = _header(headers, "id")
    timestamp = _header(headers, "timestamp")
    signature_header = _header(headers, "signature")
    if not delivery_id or not timestamp or not signature_header:
        raise SignatureVerificationError("Missing signature headers")

    try:
        ts = int(timestamp)
    except ValueError as e:
        raise SignatureVerificationError("Invalid signature timestamp") from e
    current = time.time() if now is None else now
    if abs(current - ts) > tolerance:
        raise SignatureVerificationError("Signature timestamp outside tolerance")

    expected = sign(body, delivery_id, timestamp, secret).split(",", 1)[1]
    for entry in signature_header.split():
        version, _, value = entry.partition(",")
        if version != SIGNATURE_VERSION or not value:
            continue
        if hmac.compare_digest(value.encode("ascii", "ignore"), expected.encode("ascii")):
            return delivery_id
    raise SignatureVerificationError("No matching signature")

