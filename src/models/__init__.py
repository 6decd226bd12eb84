"""Pydantic models for inbound mail ingestion."""

from src.models.email import AttachmentPayload, NormalizedEmail
from src.models.outputs import (
    AttachmentSummary,
    IngestResult,
    KnowledgeExtraction,
    LabelClassification,
)

__all__ = [
    "AttachmentPayload",
    "NormalizedEmail",
    "AttachmentSummary",
    "IngestResult",
    "KnowledgeExtraction",
    "LabelClassification",
]
