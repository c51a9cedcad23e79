"""
Read-only snapshot queries over the civil-registry records.

The report engine depends only on the three Protocols below. The Sql*
implementations read the records-management tables through SQLAlchemy and
return detached row records in a stable order.
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional, Protocol

from sqlalchemy import func, select

from registry_reports.database.models import Document, DocumentRequest, UserActivity
from registry_reports.database.session import SessionScope, db_session
from registry_reports.domain.reports import (
    ActivityRecord,
    DocumentRecord,
    ReportFilter,
    RequestRecord,
)
from registry_reports.logging_utils import get_logger

logger = get_logger(__name__)


class DocumentQuery(Protocol):
    def search(self, criteria: ReportFilter) -> List[DocumentRecord]: ...


class RequestQuery(Protocol):
    def get_all(self) -> List[RequestRecord]: ...


class ActivityQuery(Protocol):
    def search(
        self,
        activity_type: Optional[str] = None,
        user_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[ActivityRecord]: ...


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time.max)


class SqlDocumentQuery:
    """Document search with equality on each given criterion, ordered by id."""

    def __init__(self, session_scope: SessionScope = db_session):
        self._session_scope = session_scope

    def search(self, criteria: ReportFilter) -> List[DocumentRecord]:
        stmt = select(Document)
        equals = [
            (Document.document_type, criteria.document_type),
            (Document.registry_office, criteria.registry_office),
            (Document.province, criteria.province),
            (Document.city_municipality, criteria.city_municipality),
            (Document.barangay, criteria.barangay),
        ]
        for column, value in equals:
            if value is not None:
                stmt = stmt.where(column == value)
        if criteria.date_from is not None:
            stmt = stmt.where(Document.date_of_event >= criteria.date_from)
        if criteria.date_to is not None:
            stmt = stmt.where(Document.date_of_event <= criteria.date_to)
        stmt = stmt.order_by(Document.id)

        with self._session_scope() as db:
            rows = db.execute(stmt).scalars().all()
            return [
                DocumentRecord(
                    document_type=d.document_type,
                    certificate_number=d.certificate_number,
                    registry_office=d.registry_office,
                    given_name=d.given_name,
                    middle_name=d.middle_name,
                    family_name=d.family_name,
                    date_of_event=d.date_of_event,
                    registration_date=d.registration_date,
                    province=d.province or "",
                    city_municipality=d.city_municipality or "",
                    barangay=d.barangay or "",
                )
                for d in rows
            ]


class SqlRequestQuery:
    """All document requests with their related document type, ordered by id."""

    def __init__(self, session_scope: SessionScope = db_session):
        self._session_scope = session_scope

    def get_all(self) -> List[RequestRecord]:
        stmt = select(DocumentRequest).order_by(DocumentRequest.id)
        with self._session_scope() as db:
            rows = db.execute(stmt).unique().scalars().all()
            return [
                RequestRecord(
                    requestor_name=r.requestor_name,
                    purpose=r.purpose,
                    status=r.status,
                    request_date=r.request_date,
                    document_type=r.related_document.document_type if r.related_document else None,
                )
                for r in rows
            ]


class SqlActivityQuery:
    """User activity search, newest first."""

    def __init__(self, session_scope: SessionScope = db_session):
        self._session_scope = session_scope

    def search(
        self,
        activity_type: Optional[str] = None,
        user_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[ActivityRecord]:
        stmt = select(UserActivity)
        if activity_type:
            stmt = stmt.where(func.lower(UserActivity.activity_type) == activity_type.lower())
        if user_id is not None:
            stmt = stmt.where(UserActivity.user_id == user_id)
        if date_from is not None:
            stmt = stmt.where(UserActivity.timestamp >= start_of_day(date_from))
        if date_to is not None:
            stmt = stmt.where(UserActivity.timestamp <= end_of_day(date_to))
        stmt = stmt.order_by(UserActivity.timestamp.desc(), UserActivity.id.desc())

        with self._session_scope() as db:
            rows = db.execute(stmt).unique().scalars().all()
            logger.debug("[RECORDS] Activity search returned %d rows", len(rows))
            return [
                ActivityRecord(
                    activity_type=a.activity_type,
                    description=a.description,
                    timestamp=a.timestamp,
                    username=a.user.username if a.user else None,
                    user_id=a.user_id,
                )
                for a in rows
            ]
