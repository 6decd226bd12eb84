"""Label classifier: proposes (label, confidence) pairs for an email from active rules."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.agents.base import extract_json_array, run_text_agent, validate_items
from src.config import CLASSIFIER_MIN_CONFIDENCE
from src.models.outputs import LabelClassification
from src.utils.logger import get_logger

logger = get_logger("inbox_ingest.agents.classifier")

AGENT_ID = "label_classifier"
BODY_PREVIEW_CHARS = 500


class LabelRule(BaseModel):
    """Classifier view of an active ai_label_rules row."""

    label_id: str
    label_name: str
    description: str
    examples: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    sender_patterns: list[str] = Field(default_factory=list)


class ClassifierInput(BaseModel):
    sender: str
    subject: str = ""
    body: str = ""


def build_rules(rows: list[dict[str, Any]]) -> list[LabelRule]:
    """Rows from label_repo.list_active_rules -> LabelRule models."""
    return [LabelRule.model_validate(row) for row in rows]


def format_rules(rules: list[LabelRule]) -> str:
    lines = []
    for r in rules:
        lines.append(f"- **{r.label_name}** (ID: {r.label_id})")
        lines.append(f"  Description: {r.description}")
        if r.examples:
            lines.append(f"  Examples: {', '.join(r.examples)}")
        if r.keywords:
            lines.append(f"  Keywords: {', '.join(r.keywords)}")
        if r.sender_patterns:
            lines.append(f"  Sender patterns: {', '.join(r.sender_patterns)}")
    return "\n".join(lines)


def parse_classifications(
    text: str,
    rules: list[LabelRule],
    min_confidence: int = CLASSIFIER_MIN_CONFIDENCE,
) -> list[LabelClassification]:
    """Parse model output; unknown label ids and pairs below min_confidence are dropped."""
    known = {r.label_id for r in rules}
    items = validate_items(extract_json_array(text), LabelClassification, AGENT_ID)
    return [c for c in items if c.label_id in known and c.confidence >= min_confidence]


async def classify_email(
    email: ClassifierInput,
    rules: list[LabelRule],
    min_confidence: Optional[int] = None,
) -> list[LabelClassification]:
    """Best-effort classification. Provider errors and malformed output give []."""
    if not rules:
        return []
    threshold = CLASSIFIER_MIN_CONFIDENCE if min_confidence is None else min_confidence
    try:
        text = await run_text_agent(
            AGENT_ID,
            rules=format_rules(rules),
            sender=email.sender,
            subject=email.subject,
            body=email.body[:BODY_PREVIEW_CHARS],
        )
    except Exception as e:
        logger.warning("classifier.failed", error=str(e) or repr(e), error_type=type(e).__name__)
        return []
    results = parse_classifications(text, rules, threshold)
    logger.info(
        "classifier.done",
        proposed=len(results),
        labels=[c.label_id for c in results],
        min_confidence=threshold,
    )
    return results
