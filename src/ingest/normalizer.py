"""Address and header normalization for inbound envelopes.

Pure functions: no I/O, no database. Everything downstream (thread
resolution, contact upserts) relies on the canonical forms produced here:
lowercase bare addresses and whitespace-split reference ids.
"""

import re
from typing import Iterable, Optional

from email_validator import EmailNotValidError, validate_email

from src.config import SNIPPET_LENGTH
from src.models.email import AttachmentPayload, NormalizedEmail
from src.utils.body_sanitizer import collapse_whitespace, html_to_text, normalize_whitespace, strip_unsafe_html
from src.webhook.models import InboundEmailData, InboundHeader

NO_CONTENT_PLACEHOLDER = "(No content available)"

_NAME_ADDR_RE = re.compile(r"^(.+?)\s*<(.+)>$")
_BARE_ANGLE_RE = re.compile(r"^<(.+)>$")
_SUBJECT_PREFIX_RE = re.compile(r"^(re|fwd|aw|wg|fw):\s*", re.IGNORECASE)


def extract_email_address(raw: Optional[str]) -> str:
    """'Jane Doe <Jane@X.com>' -> 'jane@x.com'. Bare addresses are lowercased and trimmed."""
    value = (raw or "").strip()
    match = _NAME_ADDR_RE.match(value) or _BARE_ANGLE_RE.match(value)
    if match:
        value = match.group(match.lastindex)
    return value.strip().lower()


def extract_display_name(raw: Optional[str]) -> Optional[str]:
    """Display part of 'Name <addr>' with surrounding quotes removed, else None."""
    match = _NAME_ADDR_RE.match((raw or "").strip())
    if not match:
        return None
    name = match.group(1).strip().strip('"').strip("'").strip()
    return name or None


def is_valid_address(raw: Optional[str]) -> bool:
    """Syntax check of the bare address (no DNS lookup)."""
    addr = extract_email_address(raw)
    if not addr:
        return False
    try:
        validate_email(addr, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def canonical_addresses(values: Optional[Iterable[str]]) -> list[str]:
    """Lowercase bare addresses, empties dropped, duplicates removed in order."""
    result: list[str] = []
    for raw in values or []:
        addr = extract_email_address(raw)
        if addr and addr not in result:
            result.append(addr)
    return result


def normalize_subject(subject: Optional[str]) -> str:
    """Strip one or two reply/forward prefixes (English and German), then trim."""
    if not subject:
        return ""
    stripped = _SUBJECT_PREFIX_RE.sub("", subject)
    stripped = _SUBJECT_PREFIX_RE.sub("", stripped)
    return stripped.strip()


def header_map(headers: Optional[Iterable[InboundHeader]]) -> dict[str, str]:
    """Flattened header list -> {lowercase name: value}. Later duplicates win."""
    return {h.name.lower(): h.value for h in headers or [] if h.name}


def get_header(headers: Optional[Iterable[InboundHeader]], name: str) -> Optional[str]:
    """Case-insensitive lookup of the first header called name."""
    wanted = name.lower()
    for h in headers or []:
        if h.name.lower() == wanted:
            return h.value
    return None


def parse_references(value: Optional[str]) -> list[str]:
    """Split a References header on whitespace; empty input gives []."""
    if not value:
        return []
    return [part for part in value.split() if part]


def make_snippet(text: Optional[str], length: int = SNIPPET_LENGTH) -> str:
    """First `length` characters of the body with whitespace collapsed."""
    if not text:
        return ""
    return collapse_whitespace(text[:length])


def _body_text(text: Optional[str], html: Optional[str]) -> str:
    if text and text.strip():
        return text
    if html and html.strip():
        derived = normalize_whitespace(html_to_text(html))
        if derived:
            return derived
    return NO_CONTENT_PLACEHOLDER


def _attachments(data: InboundEmailData) -> list[AttachmentPayload]:
    result = []
    for att in data.attachments:
        size = att.size
        if size is None and att.content:
            # base64 expands by 4/3
            size = len(att.content) * 3 // 4
        result.append(
            AttachmentPayload(
                filename=att.filename,
                content_type=att.content_type,
                size=size or 0,
                content=att.content,
            )
        )
    return result


def normalize_envelope(data: InboundEmailData) -> NormalizedEmail:
    """Raw provider envelope -> NormalizedEmail."""
    headers = header_map(data.headers)
    message_id = data.message_id or headers.get("message-id") or None
    in_reply_to = headers.get("in-reply-to") or None
    reply_to = extract_email_address(data.reply_to) if data.reply_to else None
    return NormalizedEmail(
        message_id=message_id.strip() if message_id else None,
        in_reply_to=in_reply_to.strip() if in_reply_to else None,
        references=parse_references(headers.get("references")),
        from_address=extract_email_address(data.from_),
        from_name=extract_display_name(data.from_),
        to_addresses=canonical_addresses(data.to),
        cc_addresses=canonical_addresses(data.cc),
        bcc_addresses=canonical_addresses(data.bcc),
        reply_to=reply_to or None,
        subject=data.subject,
        normalized_subject=normalize_subject(data.subject),
        body_text=_body_text(data.text, data.html),
        body_html=strip_unsafe_html(data.html) if data.html else None,
        headers=headers,
        attachments=_attachments(data),
    )
