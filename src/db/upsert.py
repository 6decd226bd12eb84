"""Dialect-specific INSERT ... ON CONFLICT builder (SQLite and PostgreSQL)."""

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def insert_for(session: Session, table):
    """Return an insert() construct that supports on_conflict_do_update / do_nothing."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise ValueError(f"Unsupported dialect for atomic upsert: {dialect}")
