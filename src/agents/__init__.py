"""Pydantic AI agents: label classification, knowledge extraction, attachment summaries, contact enrichment."""

from src.agents.registry import (
    get_agent,
    get_agent_config,
    get_all_config,
    reload_config,
)
from src.agents.classifier import classify_email
from src.agents.knowledge_extractor import extract_from_attachment, extract_knowledge
from src.agents.attachment_summarizer import summarize_attachment
from src.agents.contact_enricher import enrich_contact
from src.agents.enrichment import EnrichmentEngine, Thresholds

__all__ = [
    "get_agent",
    "get_agent_config",
    "get_all_config",
    "reload_config",
    "classify_email",
    "extract_from_attachment",
    "extract_knowledge",
    "summarize_attachment",
    "enrich_contact",
    "EnrichmentEngine",
    "Thresholds",
]
