"""
Report generation engine.

Turns (report kind, filter, export format) into artifact bytes: one snapshot
query against the records store, then rendering into the requested format.
The engine holds no state beyond its collaborators and returns either a
complete artifact or raises; it never returns partial output.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from registry_reports.domain.reports import (
    ExportFormat,
    ReportFilter,
    ReportKind,
    RequestRecord,
)
from registry_reports.logging_utils import get_logger
from registry_reports.records.queries import (
    ActivityQuery,
    DocumentQuery,
    RequestQuery,
    end_of_day,
    start_of_day,
)
from registry_reports.reports.errors import (
    DataAccessFailure,
    RenderFailure,
    ReportSchedulingError,
    UnsupportedReportConfiguration,
)
from registry_reports.reports.layouts import ReportTable, layout_for
from registry_reports.reports.rendering import renderer_for

logger = get_logger(__name__)

FilterLike = Union[ReportFilter, Dict[str, Any], None]


def coerce_filter(criteria: FilterLike) -> ReportFilter:
    if criteria is None:
        return ReportFilter()
    if isinstance(criteria, ReportFilter):
        return criteria
    return ReportFilter.model_validate(criteria)


def filter_requests(requests: Sequence[RequestRecord], criteria: ReportFilter) -> List[RequestRecord]:
    """Apply status and request-date bounds in memory, keeping input order."""
    selected = list(requests)
    if criteria.status:
        wanted = criteria.status.lower()
        selected = [r for r in selected if (r.status or "").lower() == wanted]
    if criteria.date_from is not None:
        lower = start_of_day(criteria.date_from)
        selected = [r for r in selected if r.request_date >= lower]
    if criteria.date_to is not None:
        upper = end_of_day(criteria.date_to)
        selected = [r for r in selected if r.request_date <= upper]
    return selected


class ReportGenerationEngine:
    """Pure transform from report configuration to artifact bytes."""

    def __init__(
        self,
        documents: DocumentQuery,
        requests: RequestQuery,
        activities: ActivityQuery,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._documents = documents
        self._requests = requests
        self._activities = activities
        self._clock = clock

    def generate(
        self,
        kind: Union[ReportKind, str],
        criteria: FilterLike,
        export_format: Union[ExportFormat, str],
        generated_at: Optional[datetime] = None,
    ) -> bytes:
        """
        Generate one report artifact.

        Args:
            kind: Report kind (enum member or its string value)
            criteria: Snapshot filter; None means no constraint
            export_format: PDF or Excel
            generated_at: Timestamp printed in the header (default: now)

        Returns:
            The complete artifact as bytes

        Raises:
            UnsupportedReportConfiguration: unknown kind or format
            DataAccessFailure: the snapshot query failed
            RenderFailure: building the artifact failed
        """
        kind = ReportKind.coerce(kind)
        fmt = ExportFormat.coerce(export_format)
        render = renderer_for(fmt)

        table = self.build_table(kind, criteria, generated_at)
        logger.info(
            "[REPORT-GEN] Rendering %s report as %s (%d rows)", kind.value, fmt.value, len(table.rows)
        )
        try:
            artifact = render(table)
        except Exception as exc:
            raise RenderFailure(f"Failed to render {kind.value} report as {fmt.value}: {exc}", report_kind=kind) from exc
        if not artifact:
            raise RenderFailure(f"Renderer produced an empty {fmt.value} artifact", report_kind=kind)
        return artifact

    def build_table(
        self,
        kind: Union[ReportKind, str],
        criteria: FilterLike,
        generated_at: Optional[datetime] = None,
    ) -> ReportTable:
        """Fetch the snapshot and project it onto the kind's column set."""
        kind = ReportKind.coerce(kind)
        layout = layout_for(kind)
        try:
            criteria = coerce_filter(criteria)
        except ValueError as exc:
            raise UnsupportedReportConfiguration(f"Invalid report filter: {exc}", report_kind=kind) from exc

        records = self._snapshot(kind, criteria)
        try:
            rows = layout.rows(records)
        except Exception as exc:
            raise RenderFailure(f"Failed to project {kind.value} rows: {exc}", report_kind=kind) from exc
        return ReportTable(layout=layout, generated_at=generated_at or self._clock(), rows=rows)

    def _snapshot(self, kind: ReportKind, criteria: ReportFilter) -> Sequence[Any]:
        try:
            if kind is ReportKind.DOCUMENT_INVENTORY:
                return self._documents.search(criteria)
            elif kind is ReportKind.REQUEST_LOG:
                return filter_requests(self._requests.get_all(), criteria)
            elif kind is ReportKind.ACTIVITY_LOG:
                return self._activities.search(
                    activity_type=criteria.activity_type,
                    user_id=criteria.user_id,
                    date_from=criteria.date_from,
                    date_to=criteria.date_to,
                )
        except ReportSchedulingError:
            raise
        except Exception as exc:
            logger.error("[REPORT-GEN] Snapshot query failed for %s report: %r", kind.value, exc)
            raise DataAccessFailure(f"Snapshot query failed for {kind.value} report: {exc}", report_kind=kind) from exc
        raise UnsupportedReportConfiguration(f"Unsupported report kind: {kind!r}", report_kind=kind)
