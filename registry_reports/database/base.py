"""
Declarative base plus the lazily built engine and session factory.

One engine serves both the report_definitions table and the read-only
civil-registry tables; scheduled runs reach it from APScheduler pool threads.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from registry_reports.config import DatabaseConfig, get_config

Base = declarative_base()

_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None


def _engine_for(db_cfg: DatabaseConfig) -> Engine:
    connect_args = {}
    if db_cfg.url.startswith("sqlite"):
        # Scheduler jobs run on pool threads
        connect_args["check_same_thread"] = False
    return create_engine(db_cfg.url, echo=db_cfg.echo, connect_args=connect_args, pool_pre_ping=True)


def get_engine() -> Engine:
    """Return the process-wide engine, creating it from config on first use."""
    global _engine
    if _engine is None:
        _engine = _engine_for(get_config().database)
    return _engine


def get_session_local() -> sessionmaker:
    """Return the process-wide session factory bound to get_engine()."""
    global _SessionLocal
    if _SessionLocal is None:
        # Definitions are handed back as detached dataclasses, so keep loaded state after commit
        _SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=get_engine())
    return _SessionLocal


def reset_engine() -> None:
    """Dispose the engine and forget the session factory (config changes, tests)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def init_db(engine: Optional[Engine] = None) -> None:
    """Create every mapped table that does not exist yet."""
    from registry_reports.database import models  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
