"""Classifier, extractor, contact enrichment and ingestion result models."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

KnowledgeCategory = Literal["contact", "products", "procedures", "faq", "custom"]


class LabelClassification(BaseModel):
    """One (label, confidence) pair proposed by the classifier."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    label_id: str = Field(..., alias="labelId", min_length=1)
    label_name: Optional[str] = Field(None, alias="labelName")
    confidence: int = Field(..., ge=0, le=100)
    reason: Optional[str] = None


class KnowledgeExtraction(BaseModel):
    """Fact extracted from an email or attachment."""

    model_config = ConfigDict(extra="ignore")

    category: KnowledgeCategory
    title: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=0, le=100)
    field: Optional[str] = None


class AttachmentSummary(BaseModel):
    """Summary of one attachment (AI text or a metadata description)."""

    filename: str
    content_type: str
    size: int
    summary: str
    extracted_text: Optional[str] = None


class IngestResult(BaseModel):
    """Response body of the inbound delivery endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    received: bool = True
    thread_id: Optional[str] = Field(None, serialization_alias="threadId")
    email_id: Optional[str] = Field(None, serialization_alias="emailId")
    duplicate: bool = False

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class ContactProfileUpdate(BaseModel):
    """Profile fields the contact enricher may fill in."""

    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    summary: Optional[str] = None

    def changes(self) -> dict[str, str]:
        """Non-blank fields only, stripped."""
        return {k: v.strip() for k, v in self.model_dump().items() if isinstance(v, str) and v.strip()}


class ContactFact(BaseModel):
    """One field/value fact about a contact (interest, preference, phone, ...)."""

    model_config = ConfigDict(extra="ignore")

    field: str = Field(..., min_length=1)
    value: str = Field(..., min_length=1)
    confidence: int = Field(..., ge=0, le=100)


class ContactEnrichment(BaseModel):
    """What one enrichment run applied to a contact."""

    model_config = ConfigDict(populate_by_name=True)

    updates: dict[str, str] = Field(default_factory=dict, serialization_alias="appliedUpdates")
    knowledge: list[ContactFact] = Field(default_factory=list, serialization_alias="addedKnowledge")
    emails_considered: int = Field(0, serialization_alias="emailsConsidered")
