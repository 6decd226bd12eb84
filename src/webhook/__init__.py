"""Webhook service: signed inbound deliveries, event stream and REST routes."""

from src.webhook.models import InboundEmailData, InboundEvent
from src.webhook.signature import SignatureVerificationError, verify_signature

__all__ = [
    "InboundEmailData",
    "InboundEvent",
    "SignatureVerificationError",
    "verify_signature",
]
