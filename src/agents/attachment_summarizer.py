"""Attachment summaries: AI summary for text, PDF and image files, metadata description for the rest."""

import base64
import binascii

from src.agents.base import run_binary_agent, run_text_agent
from src.config import ATTACHMENT_SUMMARY_MAX_BYTES, ATTACHMENT_SUMMARY_MAX_CHARS
from src.models.email import AttachmentPayload
from src.models.outputs import AttachmentSummary
from src.utils.body_sanitizer import html_to_text, truncate_smartly
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.agents.attachments")

AGENT_ID = "attachment_summarizer"
EXTRACTED_TEXT_MAX_CHARS = 10000

TEXT_TYPES = (
    "text/plain",
    "text/html",
    "text/csv",
    "text/markdown",
    "application/json",
    "application/xml",
    "text/xml",
)

# Stand-ins for {content} when the file itself travels as binary input
PDF_INSTRUCTION = (
    "The PDF document is attached. Summarize it in 2-3 sentences: what type of "
    "document it is, key information or numbers, and any important dates or deadlines."
)
IMAGE_INSTRUCTION = "The image is attached. Briefly describe in 1-2 sentences what it shows."


def is_text_based(content_type: str) -> bool:
    lowered = (content_type or "").lower()
    return any(t in lowered for t in TEXT_TYPES)


def media_type(content_type: str) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_binary_document(content_type: str) -> bool:
    """PDFs and images, which the model reads directly."""
    mt = media_type(content_type)
    return mt == "application/pdf" or mt.startswith("image/")


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def _metadata_summary(att: AttachmentPayload, prefix: str = "File attachment") -> AttachmentSummary:
    return AttachmentSummary(
        filename=att.filename,
        content_type=att.content_type,
        size=att.size,
        summary=f"{prefix}: {att.filename} ({format_file_size(att.size)}, {att.content_type})",
    )


def _decode_text(att: AttachmentPayload) -> str:
    raw = base64.b64decode(att.content or "", validate=False)
    text = raw.decode("utf-8", errors="replace")
    if "html" in att.content_type.lower():
        text = html_to_text(text)
    return text


async def _summarize_binary(att: AttachmentPayload) -> AttachmentSummary:
    mt = media_type(att.content_type)
    is_image = mt.startswith("image/")
    prefix = "Image" if is_image else "PDF document"
    try:
        raw = base64.b64decode(att.content or "", validate=True)
    except (binascii.Error, ValueError) as e:
        logger.warning("attachments.decode_failed", filename=att.filename, error=str(e))
        return _metadata_summary(att, prefix="Attachment")
    try:
        summary = await run_binary_agent(
            AGENT_ID,
            raw,
            mt,
            filename=att.filename,
            content=IMAGE_INSTRUCTION if is_image else PDF_INSTRUCTION,
        )
    except Exception as e:
        logger.warning(
            "attachments.summary_failed",
            filename=att.filename,
            media_type=mt,
            error=str(e) or repr(e),
            error_type=type(e).__name__,
        )
        return _metadata_summary(att, prefix=prefix)
    summary = summary.strip()
    if not summary:
        return _metadata_summary(att, prefix=prefix)
    logger.info("attachments.summarized", filename=att.filename, media_type=mt, summary_len=len(summary))
    return AttachmentSummary(
        filename=att.filename,
        content_type=att.content_type,
        size=att.size,
        summary=summary,
    )


async def summarize_attachment(att: AttachmentPayload, max_bytes: int = ATTACHMENT_SUMMARY_MAX_BYTES) -> AttachmentSummary:
    """Never raises: oversize, undecodable or failed summaries fall back to metadata."""
    if att.size > max_bytes:
        return AttachmentSummary(
            filename=att.filename,
            content_type=att.content_type,
            size=att.size,
            summary=(
                f"Large file ({format_file_size(att.size)}): {att.filename}. "
                "Content not summarized due to size."
            ),
        )
    if not att.content:
        return _metadata_summary(att)
    if is_binary_document(att.content_type):
        return await _summarize_binary(att)
    if not is_text_based(att.content_type):
        return _metadata_summary(att)
    try:
        text = _decode_text(att)
    except (binascii.Error, ValueError) as e:
        logger.warning("attachments.decode_failed", filename=att.filename, error=str(e))
        return _metadata_summary(att, prefix="Attachment")
    try:
        summary = await run_text_agent(
            AGENT_ID,
            filename=att.filename,
            content=truncate_smartly(text, ATTACHMENT_SUMMARY_MAX_CHARS),
        )
    except Exception as e:
        logger.warning(
            "attachments.summary_failed",
            filename=att.filename,
            error=str(e) or repr(e),
            error_type=type(e).__name__,
        )
        return _metadata_summary(att, prefix="Text document")
    summary = summary.strip() or f"Text document: {att.filename}"
    logger.info("attachments.summarized", filename=att.filename, summary_len=len(summary))
    return AttachmentSummary(
        filename=att.filename,
        content_type=att.content_type,
        size=att.size,
        summary=summary,
        extracted_text=text[:EXTRACTED_TEXT_MAX_CHARS],
    )
