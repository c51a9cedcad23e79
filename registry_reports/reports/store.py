"""
Report definition persistence.

The store is the authoritative source for report definitions; the scheduling
engine only caches a derived view of it. Reads tolerate a database where the
report_definitions table has never been created (cold start) and return
empty results instead of raising. The table is created lazily on first write.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Protocol

from sqlalchemy import delete, inspect, or_, select, update
from sqlalchemy.orm import Session

from registry_reports.database.models import ReportDefinitionRecord
from registry_reports.database.session import SessionScope, db_session
from registry_reports.domain.reports import (
    ExportFormat,
    ReportDefinition,
    ReportFilter,
    ReportKind,
)
from registry_reports.logging_utils import get_logger
from registry_reports.reports.errors import DefinitionNotFound

logger = get_logger(__name__)

TABLE_NAME = ReportDefinitionRecord.__tablename__


class ReportDefinitionStore(Protocol):
    def get_all(self) -> List[ReportDefinition]: ...

    def get_active(self) -> List[ReportDefinition]: ...

    def get_by_user(self, user_id: int) -> List[ReportDefinition]: ...

    def get_by_id(self, definition_id: int) -> Optional[ReportDefinition]: ...

    def add(self, definition: ReportDefinition) -> ReportDefinition: ...

    def update(self, definition: ReportDefinition) -> None: ...

    def delete(self, definition_id: int) -> bool: ...

    def set_last_run_at(self, definition_id: int, when: datetime) -> bool: ...


def _to_definition(rec: ReportDefinitionRecord) -> ReportDefinition:
    return ReportDefinition(
        id=rec.id,
        name=rec.name,
        report_kind=ReportKind.coerce(rec.report_kind),
        recurrence_rule=rec.recurrence_rule,
        export_format=ExportFormat.coerce(rec.export_format),
        filter=ReportFilter.model_validate(rec.filter_criteria or {}),
        output_path=rec.output_path,
        created_by=rec.created_by,
        created_at=rec.created_at,
        last_run_at=rec.last_run_at,
        is_active=bool(rec.is_active),
        email_recipients=list(rec.email_recipients or []),
    )


def _filter_json(criteria: ReportFilter) -> dict:
    return criteria.model_dump(mode="json", exclude_none=True)


class SqlReportDefinitionStore:
    """SQLAlchemy-backed ReportDefinitionStore over the report_definitions table."""

    def __init__(self, session_scope: SessionScope = db_session):
        self._session_scope = session_scope
        self._table_seen = False

    # ------------------------------------------------------------------
    # Table presence
    # ------------------------------------------------------------------

    def _has_table(self, db: Session) -> bool:
        if not self._table_seen:
            self._table_seen = inspect(db.connection()).has_table(TABLE_NAME)
        return self._table_seen

    def _ensure_table(self, db: Session) -> None:
        if not self._table_seen:
            ReportDefinitionRecord.__table__.create(bind=db.connection(), checkfirst=True)
            self._table_seen = True
            logger.info("[REPORT-STORE] Ensured table %s exists", TABLE_NAME)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _select(self, stmt) -> List[ReportDefinition]:
        with self._session_scope() as db:
            if not self._has_table(db):
                logger.debug("[REPORT-STORE] Table %s missing; returning no definitions", TABLE_NAME)
                return []
            rows = db.execute(stmt).scalars().all()
            return [_to_definition(r) for r in rows]

    def get_all(self) -> List[ReportDefinition]:
        return self._select(select(ReportDefinitionRecord).order_by(ReportDefinitionRecord.id))

    def get_active(self) -> List[ReportDefinition]:
        return self._select(
            select(ReportDefinitionRecord)
            .where(ReportDefinitionRecord.is_active == True)  # noqa: E712
            .order_by(ReportDefinitionRecord.id)
        )

    def get_by_user(self, user_id: int) -> List[ReportDefinition]:
        return self._select(
            select(ReportDefinitionRecord)
            .where(ReportDefinitionRecord.created_by == user_id)
            .order_by(ReportDefinitionRecord.id)
        )

    def get_by_id(self, definition_id: int) -> Optional[ReportDefinition]:
        with self._session_scope() as db:
            if not self._has_table(db):
                return None
            rec = db.get(ReportDefinitionRecord, definition_id)
            return _to_definition(rec) if rec is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, definition: ReportDefinition) -> ReportDefinition:
        """Insert a new definition and return it with its assigned id."""
        created_at = definition.created_at or datetime.now()
        with self._session_scope() as db:
            self._ensure_table(db)
            rec = ReportDefinitionRecord(
                name=definition.name,
                report_kind=definition.report_kind.value,
                filter_criteria=_filter_json(definition.filter),
                recurrence_rule=definition.recurrence_rule,
                export_format=definition.export_format.value,
                output_path=definition.output_path,
                created_by=definition.created_by,
                created_at=created_at,
                last_run_at=definition.last_run_at,
                is_active=definition.is_active,
                email_recipients=list(definition.email_recipients),
            )
            db.add(rec)
            db.flush()
            new_id = rec.id
        logger.info("[REPORT-STORE] Added definition %s (%s)", new_id, definition.name)
        return replace(definition, id=new_id, created_at=created_at)

    def update(self, definition: ReportDefinition) -> None:
        """
        Persist the editable fields of an existing definition.

        created_by, created_at, report_kind and last_run_at are never written
        here; last_run_at belongs to set_last_run_at alone.
        """
        with self._session_scope() as db:
            if not self._has_table(db):
                raise DefinitionNotFound(definition.id)
            result = db.execute(
                update(ReportDefinitionRecord)
                .where(ReportDefinitionRecord.id == definition.id)
                .values(
                    name=definition.name,
                    filter_criteria=_filter_json(definition.filter),
                    recurrence_rule=definition.recurrence_rule,
                    export_format=definition.export_format.value,
                    output_path=definition.output_path,
                    is_active=definition.is_active,
                    email_recipients=list(definition.email_recipients),
                )
            )
            if result.rowcount == 0:
                raise DefinitionNotFound(definition.id)
        logger.info("[REPORT-STORE] Updated definition %s", definition.id)

    def delete(self, definition_id: int) -> bool:
        with self._session_scope() as db:
            if not self._has_table(db):
                return False
            result = db.execute(
                delete(ReportDefinitionRecord).where(ReportDefinitionRecord.id == definition_id)
            )
            deleted = result.rowcount > 0
        if deleted:
            logger.info("[REPORT-STORE] Deleted definition %s", definition_id)
        return deleted

    def set_last_run_at(self, definition_id: int, when: datetime) -> bool:
        """
        Advance last_run_at to ``when`` if that does not move it backwards.

        A single conditional UPDATE touching only last_run_at, so a concurrent
        edit of other columns is never clobbered. Returns False when nothing
        changed (row deleted mid-run, or a later run already recorded).
        """
        with self._session_scope() as db:
            if not self._has_table(db):
                logger.warning("[REPORT-STORE] Cannot stamp last run for %s: no definitions table", definition_id)
                return False
            result = db.execute(
                update(ReportDefinitionRecord)
                .where(ReportDefinitionRecord.id == definition_id)
                .where(
                    or_(
                        ReportDefinitionRecord.last_run_at.is_(None),
                        ReportDefinitionRecord.last_run_at <= when,
                    )
                )
                .values(last_run_at=when)
            )
            if result.rowcount > 0:
                return True
            exists = db.get(ReportDefinitionRecord, definition_id) is not None

        if exists:
            logger.info("[REPORT-STORE] Kept newer last run for definition %s", definition_id)
        else:
            logger.warning("[REPORT-STORE] Definition %s vanished before last run could be stamped", definition_id)
        return False
