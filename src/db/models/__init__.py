"""Re-export all ORM models so Base.metadata has all tables."""

from src.db.models.contact import Contact, ContactKnowledge
from src.db.models.knowledge import KnowledgeItem, PendingKnowledge
from src.db.models.label import Label, LabelRule, ThreadLabel
from src.db.models.thread import Email, Thread

__all__ = [
    "Thread",
    "Email",
    "Label",
    "ThreadLabel",
    "LabelRule",
    "Contact",
    "ContactKnowledge",
    "KnowledgeItem",
    "PendingKnowledge",
]
