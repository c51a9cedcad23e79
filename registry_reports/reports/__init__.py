"""
Scheduled report generation, execution and scheduling.

Import the concrete components from their modules
(``registry_reports.reports.service`` for the wired-up service); only the
error taxonomy is re-exported here.
"""

from registry_reports.reports.errors import (
    ArtifactWriteFailure,
    DataAccessFailure,
    DefinitionInactive,
    DefinitionNotFound,
    InvalidRecurrenceRule,
    InvalidReportDefinition,
    RenderFailure,
    ReportSchedulingError,
    RunAlreadyInProgress,
    RunCancelled,
    SchedulerStateError,
    UnsupportedReportConfiguration,
)

__all__ = [
    "ArtifactWriteFailure",
    "DataAccessFailure",
    "DefinitionInactive",
    "DefinitionNotFound",
    "InvalidRecurrenceRule",
    "InvalidReportDefinition",
    "RenderFailure",
    "ReportSchedulingError",
    "RunAlreadyInProgress",
    "RunCancelled",
    "SchedulerStateError",
    "UnsupportedReportConfiguration",
]
