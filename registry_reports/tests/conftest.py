"""
Pytest configuration and fixtures for all tests.

Provides an in-memory SQLite database seeded with civil-registry records, a
session scope bound to it, and a fake APScheduler for scheduling tests.
"""

from __future__ import annotations

import re
import zlib
from datetime import date, datetime
from typing import Any, Dict, List

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from registry_reports.database.base import Base
from registry_reports.database.models import Document, DocumentRequest, User, UserActivity
from registry_reports.database.session import scope_for
from registry_reports.records.queries import SqlActivityQuery, SqlDocumentQuery, SqlRequestQuery
from registry_reports.reports.generator import ReportGenerationEngine
from registry_reports.reports.store import SqlReportDefinitionStore

FIXED_NOW = datetime(2024, 6, 1, 12, 0, 0)

RECORD_TABLES = [User.__table__, Document.__table__, DocumentRequest.__table__, UserActivity.__table__]


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow running")


class FakeScheduler:
    """Stand-in for BackgroundScheduler recording jobs instead of running them."""

    def __init__(self, config: Any = None):
        self.config = config
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.removed: List[str] = []
        self.running = False
        self.shutdown_calls: List[bool] = []

    def start(self) -> None:
        self.running = True

    def shutdown(self, wait: bool = True) -> None:
        self.shutdown_calls.append(wait)
        self.running = False

    def get_job(self, job_id: str):
        return self.jobs.get(job_id)

    def remove_job(self, job_id: str) -> None:
        self.removed.append(job_id)
        self.jobs.pop(job_id, None)

    def add_job(self, func, trigger, args, id: str, name: str, replace_existing: bool):
        self.jobs[id] = {
            "func": func,
            "trigger": trigger,
            "args": args,
            "name": name,
            "replace_existing": replace_existing,
        }

    def fire(self, job_id: str) -> None:
        job = self.jobs[job_id]
        job["func"](*job["args"])


@pytest.fixture
def fake_schedulers():
    """Factory for SchedulingEngine plus the list of schedulers it built."""
    built: List[FakeScheduler] = []

    def factory(config):
        sched = FakeScheduler(config)
        built.append(sched)
        return sched

    factory.built = built  # type: ignore[attr-defined]
    return factory


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine, tables=RECORD_TABLES)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session_scope(session_factory):
    return scope_for(session_factory)


@pytest.fixture
def seeded(session_scope):
    """Three documents, three requests and three activities."""
    with session_scope() as db:
        db.add_all(
            [
                User(id=1, username="admin", full_name="System Administrator"),
                User(id=2, username="clerk", full_name="Registry Clerk"),
            ]
        )
        db.add_all(
            [
                Document(
                    id=1,
                    document_type="Birth Certificate",
                    registry_office="Manila",
                    certificate_number="BC-1001",
                    date_of_event=date(2024, 1, 5),
                    registration_date=date(2024, 1, 10),
                    given_name="Juan",
                    middle_name="Santos",
                    family_name="Dela Cruz",
                    barangay="Barangay 1",
                    city_municipality="Manila",
                    province="Metro Manila",
                ),
                Document(
                    id=2,
                    document_type="Marriage Certificate",
                    registry_office="Quezon City",
                    certificate_number="MC-2001",
                    date_of_event=date(2024, 2, 14),
                    registration_date=date(2024, 2, 20),
                    given_name="Maria",
                    middle_name=None,
                    family_name="Reyes",
                    barangay="Bagumbayan",
                    city_municipality="Quezon City",
                    province="Metro Manila",
                ),
                Document(
                    id=3,
                    document_type="Death Certificate",
                    registry_office="Manila",
                    certificate_number="DC-3001",
                    date_of_event=date(2024, 3, 1),
                    registration_date=date(2024, 3, 3),
                    given_name="Pedro",
                    middle_name="",
                    family_name="Garcia",
                    barangay="Barangay 2",
                    city_municipality="Manila",
                    province="Metro Manila",
                ),
            ]
        )
        db.add_all(
            [
                DocumentRequest(
                    id=1,
                    requestor_name="Ana Lopez",
                    purpose="Passport application",
                    status="Pending",
                    request_date=datetime(2024, 4, 1, 9, 0),
                    related_document_id=1,
                ),
                DocumentRequest(
                    id=2,
                    requestor_name="Ben Cruz",
                    purpose="School enrollment",
                    status="Approved",
                    request_date=datetime(2024, 4, 2, 10, 30),
                    related_document_id=2,
                ),
                DocumentRequest(
                    id=3,
                    requestor_name="Carla Diaz",
                    purpose="Employment",
                    status="pending",
                    request_date=datetime(2024, 4, 3, 11, 0),
                    related_document_id=999,
                ),
            ]
        )
        db.add_all(
            [
                UserActivity(
                    id=1,
                    user_id=1,
                    activity_type="Login",
                    description="Admin logged in",
                    timestamp=datetime(2024, 5, 1, 8, 0),
                ),
                UserActivity(
                    id=2,
                    user_id=2,
                    activity_type="Create",
                    description="Added document BC-1001",
                    timestamp=datetime(2024, 5, 2, 9, 15),
                ),
                UserActivity(
                    id=3,
                    user_id=None,
                    activity_type="Login",
                    description="Anonymous login attempt",
                    timestamp=datetime(2024, 5, 3, 7, 45),
                ),
            ]
        )
    return session_scope


@pytest.fixture
def generator(seeded):
    return ReportGenerationEngine(
        SqlDocumentQuery(seeded),
        SqlRequestQuery(seeded),
        SqlActivityQuery(seeded),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def store(session_scope):
    return SqlReportDefinitionStore(session_scope)


_STREAM = re.compile(rb"stream\r?\n(.*?)\r?\nendstream", re.S)


def extract_pdf_text(data: bytes) -> bytes:
    """Concatenate every page content stream, inflating compressed ones."""
    chunks = []
    for raw in _STREAM.findall(data):
        try:
            chunks.append(zlib.decompress(raw))
        except zlib.error:
            chunks.append(raw)
    return b"\n".join(chunks)


@pytest.fixture
def pdf_text():
    return extract_pdf_text
