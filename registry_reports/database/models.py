"""
SQLAlchemy models for scheduled reports and the civil-registry records they read.

report_definitions is owned by this package. The remaining tables belong to the
records-management application; they are declared here so the read-only
snapshot queries can be expressed against them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, relationship

from registry_reports.database.base import Base


class ReportDefinitionRecord(Base):
    """Persisted report definition with its recurrence rule and filter."""

    __tablename__ = "report_definitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    report_kind = Column(String(50), nullable=False, index=True)  # document/request/activity
    filter_criteria = Column(JSON, nullable=False, default=dict)
    recurrence_rule = Column(String(100), nullable=False)
    export_format = Column(String(20), nullable=False)  # PDF/Excel
    output_path = Column(String(500), nullable=True)
    created_by = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False)
    last_run_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    email_recipients = Column(JSON, nullable=False, default=list)


# ============================================================================
# Records store (read-only from this package)
# ============================================================================


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)


class Document(Base):
    """A registered civil-registry document (birth, marriage, death ...)."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True)
    document_type = Column(String(50), nullable=False, index=True)
    registry_office = Column(String(100), nullable=False)
    certificate_number = Column(String(50), nullable=False)
    date_of_event = Column(Date, nullable=False)
    registration_date = Column(Date, nullable=False)
    given_name = Column(String(100), nullable=False)
    middle_name = Column(String(100), nullable=True)
    family_name = Column(String(100), nullable=False)
    barangay = Column(String(100), nullable=False, default="")
    city_municipality = Column(String(100), nullable=False, default="")
    province = Column(String(100), nullable=False, default="")


class DocumentRequest(Base):
    """A request for a certified copy of a registered document."""

    __tablename__ = "document_requests"

    id = Column(Integer, primary_key=True)
    requestor_name = Column(String(200), nullable=False)
    purpose = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default="Pending")
    request_date = Column(DateTime, nullable=False, default=datetime.now)
    # Not a hard foreign key; the related document may have been purged
    related_document_id = Column(Integer, nullable=True)

    related_document: Mapped[Optional["Document"]] = relationship(
        Document,
        primaryjoin="foreign(DocumentRequest.related_document_id) == Document.id",
        viewonly=True,
        lazy="joined",
    )


class UserActivity(Base):
    """Audit trail of user actions."""

    __tablename__ = "user_activities"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    activity_type = Column(String(50), nullable=False, index=True)
    description = Column(String(500), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=datetime.now, index=True)

    user: Mapped[Optional["User"]] = relationship(User, lazy="joined")
