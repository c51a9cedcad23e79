"""
Per-kind report layouts: title, column set and row projection.

Each ReportKind maps to exactly one ReportLayout. Dispatch goes through
``layout_for`` which fails loudly for anything outside the enum, so a new
kind cannot be added without also giving it a layout.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from registry_reports.domain.reports import (
    ActivityRecord,
    DocumentRecord,
    ReportKind,
    RequestRecord,
)
from registry_reports.reports.errors import UnsupportedReportConfiguration

DATE_FORMAT = "%Y-%m-%d"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
UNKNOWN = "Unknown"

Row = Tuple[str, ...]


def full_name(given: Optional[str], middle: Optional[str], family: Optional[str]) -> str:
    """Join name parts with single spaces, skipping empty ones."""
    return " ".join(part.strip() for part in (given, middle, family) if part and part.strip())


def format_date(value: Optional[date]) -> str:
    return value.strftime(DATE_FORMAT) if value else ""


def format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime(TIMESTAMP_FORMAT) if value else ""


def document_row(rec: DocumentRecord) -> Row:
    return (
        rec.document_type,
        rec.certificate_number,
        rec.registry_office,
        full_name(rec.given_name, rec.middle_name, rec.family_name),
        format_date(rec.date_of_event),
        format_date(rec.registration_date),
    )


def request_row(rec: RequestRecord) -> Row:
    return (
        rec.requestor_name,
        rec.document_type or UNKNOWN,
        rec.purpose,
        rec.status,
        format_date(rec.request_date),
    )


def activity_row(rec: ActivityRecord) -> Row:
    return (
        rec.username or UNKNOWN,
        rec.activity_type,
        rec.description,
        format_timestamp(rec.timestamp),
    )


@dataclass(frozen=True)
class ReportLayout:
    kind: ReportKind
    title: str
    sheet_name: str
    count_label: str
    columns: Tuple[str, ...]
    project: Callable[..., Row]

    def rows(self, records: Sequence) -> List[Row]:
        return [self.project(rec) for rec in records]


LAYOUTS: Dict[ReportKind, ReportLayout] = {
    ReportKind.DOCUMENT_INVENTORY: ReportLayout(
        kind=ReportKind.DOCUMENT_INVENTORY,
        title="Document Report",
        sheet_name="Documents",
        count_label="Total Documents",
        columns=(
            "Document Type",
            "Certificate Number",
            "Registry Office",
            "Name",
            "Date of Event",
            "Registration Date",
        ),
        project=document_row,
    ),
    ReportKind.REQUEST_LOG: ReportLayout(
        kind=ReportKind.REQUEST_LOG,
        title="Document Request Report",
        sheet_name="Requests",
        count_label="Total Requests",
        columns=("Requestor Name", "Document Type", "Purpose", "Status", "Request Date"),
        project=request_row,
    ),
    ReportKind.ACTIVITY_LOG: ReportLayout(
        kind=ReportKind.ACTIVITY_LOG,
        title="User Activity Report",
        sheet_name="Activities",
        count_label="Total Activities",
        columns=("User", "Activity Type", "Description", "Timestamp"),
        project=activity_row,
    ),
}


def layout_for(kind: ReportKind) -> ReportLayout:
    try:
        return LAYOUTS[kind]
    except KeyError:
        raise UnsupportedReportConfiguration(f"No layout for report kind {kind!r}", report_kind=kind) from None


@dataclass(frozen=True)
class ReportTable:
    """A rendered-ready snapshot: header lines plus a fixed grid of strings."""
    layout: ReportLayout
    generated_at: datetime
    rows: List[Row]

    @property
    def title(self) -> str:
        return self.layout.title

    @property
    def columns(self) -> Tuple[str, ...]:
        return self.layout.columns

    def info_lines(self) -> List[str]:
        return [
            self.layout.title,
            f"Generated on: {format_timestamp(self.generated_at)}",
            f"{self.layout.count_label}: {len(self.rows)}",
        ]
