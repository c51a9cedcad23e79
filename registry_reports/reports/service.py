"""
Programmatic surface for scheduled reports.

Every definition edit goes through ScheduledReportService so the live
triggers of the scheduling engine stay consistent with the store:
create schedules, an edit of the rule or active flag reschedules, and delete
unschedules before the row is removed.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional, Union

from registry_reports.config import AppConfig, get_config
from registry_reports.database.session import SessionScope, db_session
from registry_reports.domain.reports import ExportFormat, ReportDefinition, ReportKind
from registry_reports.logging_utils import get_logger
from registry_reports.records.queries import SqlActivityQuery, SqlDocumentQuery, SqlRequestQuery
from registry_reports.reports.errors import DefinitionNotFound, InvalidReportDefinition
from registry_reports.reports.generator import FilterLike, ReportGenerationEngine, coerce_filter
from registry_reports.reports.job import ReportExecutionJob
from registry_reports.reports.recurrence import RecurrenceRule
from registry_reports.reports.scheduler import (
    SchedulerFactory,
    SchedulingEngine,
    build_background_scheduler,
)
from registry_reports.reports.store import ReportDefinitionStore, SqlReportDefinitionStore

logger = get_logger(__name__)

MAX_NAME_LENGTH = 100


class ScheduledReportService:
    def __init__(
        self,
        store: ReportDefinitionStore,
        generator: ReportGenerationEngine,
        job: ReportExecutionJob,
        scheduler: SchedulingEngine,
        timezone: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self.generator = generator
        self.job = job
        self.scheduler = scheduler
        self._timezone = timezone
        self._clock = clock

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_definitions(self) -> List[ReportDefinition]:
        return self.store.get_all()

    def list_active_definitions(self) -> List[ReportDefinition]:
        return self.store.get_active()

    def list_definitions_by_user(self, user_id: int) -> List[ReportDefinition]:
        return self.store.get_by_user(user_id)

    def get_definition(self, definition_id: int) -> Optional[ReportDefinition]:
        return self.store.get_by_id(definition_id)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _normalized(self, definition: ReportDefinition) -> ReportDefinition:
        """Validate a definition and return it with coerced enum/filter values."""
        name = (definition.name or "").strip()
        if not name:
            raise InvalidReportDefinition("Report name is required", definition_id=definition.id)
        if len(name) > MAX_NAME_LENGTH:
            raise InvalidReportDefinition(
                f"Report name exceeds {MAX_NAME_LENGTH} characters", definition_id=definition.id
            )
        kind = ReportKind.coerce(definition.report_kind)
        fmt = ExportFormat.coerce(definition.export_format)
        rule = RecurrenceRule.parse(definition.recurrence_rule, self._timezone)
        try:
            criteria = coerce_filter(definition.filter)
        except ValueError as exc:
            raise InvalidReportDefinition(f"Invalid report filter: {exc}", definition_id=definition.id) from exc
        if criteria.date_from and criteria.date_to and criteria.date_from > criteria.date_to:
            raise InvalidReportDefinition("Filter date_from is after date_to", definition_id=definition.id)

        return replace(
            definition,
            name=name,
            report_kind=kind,
            export_format=fmt,
            recurrence_rule=rule.expression,
            filter=criteria,
            output_path=(definition.output_path or "").strip() or None,
            email_recipients=[str(r).strip() for r in definition.email_recipients or [] if str(r).strip()],
        )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def add_definition(self, definition: ReportDefinition, created_by: Optional[int] = None) -> ReportDefinition:
        """Validate, persist and (when active) schedule a new definition."""
        stamped = replace(
            self._normalized(definition),
            id=None,
            created_by=created_by,
            created_at=self._clock(),
            last_run_at=None,
        )
        saved = self.store.add(stamped)
        logger.info("[REPORT-SVC] Created definition %s (%s) for user %s", saved.id, saved.name, created_by)
        if saved.is_active:
            self.scheduler.schedule_one(saved.id)
        return saved

    def update_definition(self, definition: ReportDefinition) -> ReportDefinition:
        """
        Persist edits to an existing definition.

        The report kind, creator and creation time are fixed at creation.
        When the recurrence rule or active flag changes, the trigger is
        re-derived from the stored row once the edit is persisted, so an
        inactive definition never keeps a live trigger.
        """
        if definition.id is None:
            raise InvalidReportDefinition("Cannot update a definition without an id")
        current = self.store.get_by_id(definition.id)
        if current is None:
            raise DefinitionNotFound(definition.id)

        edited = self._normalized(definition)
        if edited.report_kind is not current.report_kind:
            raise InvalidReportDefinition(
                "Report kind cannot be changed after creation",
                definition_id=definition.id,
                report_kind=current.report_kind,
            )

        reschedule = (
            edited.recurrence_rule != current.recurrence_rule or edited.is_active != current.is_active
        )
        self.store.update(
            replace(
                edited,
                created_by=current.created_by,
                created_at=current.created_at,
                last_run_at=current.last_run_at,
            )
        )
        logger.info("[REPORT-SVC] Updated definition %s (reschedule=%s)", definition.id, reschedule)

        if reschedule:
            self.scheduler.schedule_one(definition.id)
        return self.store.get_by_id(definition.id) or edited

    def delete_definition(self, definition_id: int) -> bool:
        deleted = self.store.delete(definition_id)
        self.scheduler.unschedule_one(definition_id)
        if deleted:
            logger.info("[REPORT-SVC] Deleted definition %s", definition_id)
        return deleted

    def toggle_active(self, definition_id: int) -> Optional[bool]:
        """Flip is_active and arm or disarm the trigger. Returns the new flag, None if missing."""
        current = self.store.get_by_id(definition_id)
        if current is None:
            return None
        active = not current.is_active
        self.store.update(replace(current, is_active=active))
        self.scheduler.schedule_one(definition_id)
        logger.info("[REPORT-SVC] Definition %s is now %s", definition_id, "active" if active else "inactive")
        return active

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def run_now(self, definition_id: int) -> str:
        """Run the definition synchronously, bypassing its trigger."""
        return self.job.run(definition_id)

    def generate_ad_hoc(
        self,
        kind: Union[ReportKind, str],
        criteria: FilterLike,
        export_format: Union[ExportFormat, str],
    ) -> bytes:
        """Generate a one-off artifact with no persisted definition."""
        return self.generator.generate(kind, criteria, export_format)

    def start(self) -> int:
        return self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()


def create_report_service(
    config: Optional[AppConfig] = None,
    session_scope: Optional[SessionScope] = None,
    scheduler_factory: SchedulerFactory = build_background_scheduler,
    clock: Callable[[], datetime] = datetime.now,
) -> ScheduledReportService:
    """Wire store, record queries, engine, job and scheduler from configuration."""
    cfg = config or get_config()
    scope = session_scope or db_session

    store = SqlReportDefinitionStore(scope)
    generator = ReportGenerationEngine(
        SqlDocumentQuery(scope),
        SqlRequestQuery(scope),
        SqlActivityQuery(scope),
        clock=clock,
    )
    job = ReportExecutionJob(store, generator, clock=clock)
    scheduler = SchedulingEngine(store, job, cfg.scheduler, scheduler_factory=scheduler_factory)
    return ScheduledReportService(
        store,
        generator,
        job,
        scheduler,
        timezone=cfg.scheduler.timezone,
        clock=clock,
    )
