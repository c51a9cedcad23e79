"""
Database layer for scheduled reports.

This package provides:
- SQLAlchemy models for report definitions and the records they read
- Engine and session factory management
"""

from registry_reports.database.base import Base, get_engine, get_session_local, init_db, reset_engine

# Import models to register them with Base
from registry_reports.database import models  # noqa: F401

__all__ = [
    "Base",
    "get_engine",
    "get_session_local",
    "init_db",
    "models",
    "reset_engine",
]
