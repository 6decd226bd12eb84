"""DB repositories: sync functions over get_session() or a caller-provided Session."""

from src.db.repositories.contact_repo import get_contact_by_email, upsert_contact
from src.db.repositories.knowledge_repo import (
    approve_pending,
    create_knowledge,
    delete_knowledge,
    list_knowledge,
    list_pending,
    reject_pending,
    update_knowledge,
)
from src.db.repositories.label_repo import apply_label, list_active_rules
from src.db.repositories.thread_repo import delete_thread, get_thread, update_flags

__all__ = [
    "upsert_contact",
    "get_contact_by_email",
    "apply_label",
    "list_active_rules",
    "get_thread",
    "update_flags",
    "delete_thread",
    "list_pending",
    "approve_pending",
    "reject_pending",
    "create_knowledge",
    "list_knowledge",
    "update_knowledge",
    "delete_knowledge",
]
