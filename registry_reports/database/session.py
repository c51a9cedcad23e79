"""Database session management context managers."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager, Generator

from sqlalchemy.orm import Session, sessionmaker

from registry_reports.database.base import get_session_local

# Anything that opens a unit of work, e.g. db_session or scope_for(factory)
SessionScope = Callable[[], ContextManager[Session]]


@contextmanager
def _unit_of_work(factory: sessionmaker) -> Generator[Session, None, None]:
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        try:
            db.rollback()
        except Exception:
            pass
        raise
    finally:
        try:
            db.close()
        except Exception:
            pass


@contextmanager
def db_session() -> Generator[Session, None, None]:
    """
    Context manager for database sessions with automatic cleanup.

    Commits on success, rolls back on errors and always closes the session
    to prevent connection leaks.
    """
    with _unit_of_work(get_session_local()) as db:
        yield db


def scope_for(factory: sessionmaker) -> SessionScope:
    """Build a db_session-style scope bound to an explicit session factory."""

    def _scope() -> ContextManager[Session]:
        return _unit_of_work(factory)

    return _scope
