"""Exceptions raised by report generation, execution and scheduling."""

from __future__ import annotations

from typing import Any, Optional


class ReportSchedulingError(Exception):
    """Base exception for the scheduled-report subsystem."""

    def __init__(
        self,
        message: str,
        *,
        definition_id: Optional[int] = None,
        report_kind: Any = None,
    ):
        self.definition_id = definition_id
        self.report_kind = report_kind
        super().__init__(message)


class UnsupportedReportConfiguration(ReportSchedulingError):
    """Report kind or export format outside the supported set."""

    def __init__(self, message: str, *, export_format: Any = None, **kwargs: Any):
        self.export_format = export_format
        super().__init__(message, **kwargs)


class InvalidReportDefinition(ReportSchedulingError):
    """A definition failed validation before it was saved."""


class InvalidRecurrenceRule(InvalidReportDefinition):
    """The recurrence rule is not a usable cron expression."""

    def __init__(self, expression: str, reason: str, **kwargs: Any):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid recurrence rule {expression!r}: {reason}", **kwargs)


class DefinitionNotFound(ReportSchedulingError):
    """No report definition exists for the requested ID."""

    def __init__(self, definition_id: Any):
        super().__init__(f"Report definition {definition_id} not found", definition_id=definition_id)


class DefinitionInactive(ReportSchedulingError):
    """A scheduled firing found its definition switched off."""

    def __init__(self, definition_id: Any):
        super().__init__(f"Report definition {definition_id} is inactive", definition_id=definition_id)


class DataAccessFailure(ReportSchedulingError):
    """The snapshot query against the records store failed."""


class RenderFailure(ReportSchedulingError):
    """Building the artifact failed after the snapshot was fetched."""


class ArtifactWriteFailure(ReportSchedulingError):
    """The artifact could not be written to the output directory."""

    def __init__(self, message: str, *, path: Optional[str] = None, **kwargs: Any):
        self.path = path
        super().__init__(message, **kwargs)


class RunAlreadyInProgress(ReportSchedulingError):
    """A run for the same definition is still in flight."""

    def __init__(self, definition_id: Any):
        super().__init__(
            f"A run for report definition {definition_id} is already in progress",
            definition_id=definition_id,
        )


class RunCancelled(ReportSchedulingError):
    """The scheduling engine stopped while the run was in flight."""

    def __init__(self, definition_id: Any):
        super().__init__(f"Run for report definition {definition_id} was cancelled", definition_id=definition_id)


class SchedulerStateError(ReportSchedulingError):
    """A lifecycle operation was called from the wrong engine state."""
