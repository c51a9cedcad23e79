"""
Domain models for scheduled civil-registry reports.

Report definitions are plain dataclasses mapped to the report_definitions
table by the definition store. The filter is a pydantic model so it can be
validated and persisted as JSON in one step.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, field_validator

from registry_reports.reports.errors import UnsupportedReportConfiguration

# Choices offered by the registry UI that mean "no constraint"
ALL_SENTINELS = frozenset(
    {"all documents", "all offices", "all provinces", "all cities", "all barangays"}
)


# ============================================================================
# Enums
# ============================================================================


class ReportKind(str, Enum):
    """Supported report kinds; each selects its own query and column set."""
    DOCUMENT_INVENTORY = "document"
    REQUEST_LOG = "request"
    ACTIVITY_LOG = "activity"

    @classmethod
    def coerce(cls, value: Union["ReportKind", str]) -> "ReportKind":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            needle = value.strip().lower()
            for member in cls:
                if needle in (member.value, member.name.lower()):
                    return member
        raise UnsupportedReportConfiguration(f"Unsupported report kind: {value!r}", report_kind=value)


class ExportFormat(str, Enum):
    """Artifact container formats."""
    PDF = "PDF"
    EXCEL = "Excel"

    @property
    def extension(self) -> str:
        return "pdf" if self is ExportFormat.PDF else "xlsx"

    @classmethod
    def coerce(cls, value: Union["ExportFormat", str]) -> "ExportFormat":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            needle = value.strip().lower()
            for member in cls:
                if needle in (member.value.lower(), member.name.lower()):
                    return member
        raise UnsupportedReportConfiguration(f"Unsupported export format: {value!r}", export_format=value)


# ============================================================================
# Filter
# ============================================================================


class ReportFilter(BaseModel):
    """
    Optional criteria applied to the snapshot query.

    Every field is nullable; None means no constraint on that dimension.
    Date bounds are inclusive.
    """
    document_type: Optional[str] = None
    registry_office: Optional[str] = None
    province: Optional[str] = None
    city_municipality: Optional[str] = None
    barangay: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    # Request log only
    status: Optional[str] = None
    # Activity log only
    activity_type: Optional[str] = None
    user_id: Optional[int] = None

    @field_validator(
        "document_type",
        "registry_office",
        "province",
        "city_municipality",
        "barangay",
        "status",
        "activity_type",
        mode="before",
    )
    @classmethod
    def _blank_means_unset(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v or v.lower() in ALL_SENTINELS:
                return None
        return v

    @field_validator("date_from", "date_to", mode="before")
    @classmethod
    def _datetime_to_date(cls, v):
        if isinstance(v, datetime):
            return v.date()
        if v == "":
            return None
        return v


# ============================================================================
# Report definition
# ============================================================================


@dataclass
class ReportDefinition:
    """
    A persisted configuration describing what to generate, how often, and
    where to put it.

    Attributes:
        id: Store-assigned identifier (None until added)
        name: Human label, also the artifact file name stem
        report_kind: Which snapshot query and column set to use
        recurrence_rule: Five-field crontab expression
        export_format: Artifact container format
        filter: Snapshot criteria
        output_path: Directory receiving artifacts; None keeps them in memory only
        created_by: User id stamped at creation
        created_at: Creation timestamp, immutable
        last_run_at: Time of the last successful run
        is_active: Whether a live trigger should exist
        email_recipients: Opaque list handed to delivery collaborators
    """
    name: str
    report_kind: ReportKind
    recurrence_rule: str
    export_format: ExportFormat
    filter: ReportFilter = field(default_factory=ReportFilter)
    output_path: Optional[str] = None
    id: Optional[int] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    last_run_at: Optional[datetime] = None
    is_active: bool = True
    email_recipients: List[str] = field(default_factory=list)


# ============================================================================
# Snapshot rows returned by the records store
# ============================================================================


@dataclass(frozen=True)
class DocumentRecord:
    document_type: str
    certificate_number: str
    registry_office: str
    given_name: str
    middle_name: Optional[str]
    family_name: str
    date_of_event: date
    registration_date: date
    province: str = ""
    city_municipality: str = ""
    barangay: str = ""


@dataclass(frozen=True)
class RequestRecord:
    requestor_name: str
    purpose: str
    status: str
    request_date: datetime
    # None when the related document cannot be resolved
    document_type: Optional[str] = None


@dataclass(frozen=True)
class ActivityRecord:
    activity_type: str
    description: str
    timestamp: datetime
    # None when the acting user cannot be resolved
    username: Optional[str] = None
    user_id: Optional[int] = None
