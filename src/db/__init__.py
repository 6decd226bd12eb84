"""Database package: engine, session factory, init_db(), get_session()."""

import threading
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker

from src.config import DATABASE_URL
from src.db.base import Base

# Import all models so Base.metadata has all tables
from src.db.models import Label  # noqa: F401
from src.db.models.label import SYSTEM_LABELS

_init_lock = threading.Lock()
_engine = None
_SessionLocal: sessionmaker | None = None


def _get_engine():
    """Create engine with check_same_thread=False for use from executor threads."""
    if DATABASE_URL.startswith("sqlite"):
        # timeout lets concurrent writers wait on the file lock instead of failing
        engine = create_engine(
            DATABASE_URL,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(DATABASE_URL, echo=False, pool_pre_ping=True)


def seed_system_labels(session: Session) -> None:
    """Insert missing system labels (Inbox, Sent, Spam, Important)."""
    existing = set(
        session.scalars(select(Label.name).where(Label.is_system.is_(True))).all()
    )
    for name, color in SYSTEM_LABELS.items():
        if name not in existing:
            session.add(Label(name=name, color=color, is_system=True))


def init_db() -> None:
    """Create engine and tables, then seed system labels. Idempotent."""
    global _engine, _SessionLocal
    with _init_lock:
        if _SessionLocal is not None:
            return
        _engine = _get_engine()
        Base.metadata.create_all(bind=_engine)
        with Session(bind=_engine) as session:
            seed_system_labels(session)
            session.commit()
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False, expire_on_commit=False)


def get_engine():
    init_db()
    return _engine


def reset_db() -> None:
    """Drop and recreate all tables. Used by tests between cases."""
    engine = get_engine()
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    with Session(bind=engine) as session:
        seed_system_labels(session)
        session.commit()


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Context manager yielding a DB session. Calls init_db() on first use."""
    init_db()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
