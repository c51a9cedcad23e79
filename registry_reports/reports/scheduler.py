"""APScheduler integration for report definition schedules."""

from __future__ import annotations

import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers import SchedulerNotRunningError
from apscheduler.schedulers.background import BackgroundScheduler

from registry_reports.config import SchedulerConfig, get_config
from registry_reports.domain.reports import ReportDefinition
from registry_reports.logging_utils import get_logger
from registry_reports.reports.errors import (
    DefinitionInactive,
    DefinitionNotFound,
    ReportSchedulingError,
    RunAlreadyInProgress,
    RunCancelled,
    SchedulerStateError,
)
from registry_reports.reports.job import ReportExecutionJob
from registry_reports.reports.recurrence import RecurrenceRule, resolve_timezone
from registry_reports.reports.store import ReportDefinitionStore

logger = get_logger(__name__)

SchedulerFactory = Callable[[SchedulerConfig], Any]


class EngineState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


def job_id_for(definition_id: int) -> str:
    return f"report_{definition_id}"


def build_background_scheduler(config: SchedulerConfig) -> BackgroundScheduler:
    """
    Create a BackgroundScheduler for one engine run.

    Jobs execute on a thread pool, never on the dispatch thread. Missed
    occurrences are coalesced and dropped once past the grace time.
    """
    kwargs: Dict[str, Any] = {
        "executors": {"default": ThreadPoolExecutor(config.max_workers)},
        "job_defaults": {
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": config.misfire_grace_seconds,
        },
    }
    tz = resolve_timezone(config.timezone)
    if tz is not None:
        kwargs["timezone"] = tz
    return BackgroundScheduler(**kwargs)


class SchedulingEngine:
    """
    Owns the live triggers for active report definitions.

    The trigger table is a cache derived from the store. Mutations of it
    (schedule_one, unschedule_one, resync_all) are serialized by one lock;
    trigger firings never take that lock. A fresh APScheduler instance is
    built on every start() so the engine can be restarted after stop().
    """

    def __init__(
        self,
        store: ReportDefinitionStore,
        job: ReportExecutionJob,
        config: Optional[SchedulerConfig] = None,
        scheduler_factory: SchedulerFactory = build_background_scheduler,
    ):
        self._store = store
        self._job = job
        self._config = config or get_config().scheduler
        self._scheduler_factory = scheduler_factory
        self._timezone = resolve_timezone(self._config.timezone)

        self._lifecycle_lock = threading.Lock()
        self._table_lock = threading.RLock()
        self._state = EngineState.STOPPED
        self._scheduler: Any = None
        self._triggers: Dict[int, str] = {}
        self._cancel = threading.Event()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is EngineState.RUNNING

    def live_trigger_ids(self) -> Set[int]:
        with self._table_lock:
            return set(self._triggers)

    def next_run_time(self, definition_id: int):
        """Next fire time of the definition's trigger, or None when unarmed."""
        with self._table_lock:
            if self._scheduler is None or definition_id not in self._triggers:
                return None
            job = self._scheduler.get_job(self._triggers[definition_id])
            return getattr(job, "next_run_time", None)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> int:
        """Start the scheduler and arm every active definition. Returns the armed count."""
        with self._lifecycle_lock:
            if self._state is not EngineState.STOPPED:
                raise SchedulerStateError(f"Cannot start scheduling engine from state {self._state.value}")
            self._state = EngineState.STARTING
            self._cancel = threading.Event()
            try:
                with self._table_lock:
                    self._scheduler = self._scheduler_factory(self._config)
                    self._triggers.clear()
                self._scheduler.start()
                armed = self._resync()
            except Exception:
                logger.exception("[REPORT-SCHED] Startup failed; tearing down")
                self._teardown()
                self._state = EngineState.STOPPED
                raise
            self._state = EngineState.RUNNING
        logger.info("[REPORT-SCHED] Scheduling engine running with %d trigger(s)", armed)
        return armed

    def stop(self) -> None:
        """Disarm every trigger, cancel in-flight runs and release the scheduler."""
        with self._lifecycle_lock:
            if self._state is not EngineState.RUNNING:
                raise SchedulerStateError(f"Cannot stop scheduling engine from state {self._state.value}")
            self._state = EngineState.STOPPING
            self._cancel.set()
            try:
                self._teardown()
            finally:
                self._state = EngineState.STOPPED
        logger.info("[REPORT-SCHED] Scheduling engine stopped")

    def _teardown(self) -> None:
        with self._table_lock:
            scheduler = self._scheduler
            for definition_id in list(self._triggers):
                self._disarm(definition_id)
            self._triggers.clear()
            self._scheduler = None
        if scheduler is not None:
            try:
                scheduler.shutdown(wait=False)
            except SchedulerNotRunningError:
                pass

    def _accepting(self) -> bool:
        return self._scheduler is not None and self._state in (EngineState.STARTING, EngineState.RUNNING)

    # ------------------------------------------------------------------
    # Trigger table
    # ------------------------------------------------------------------

    def _arm(self, definition: ReportDefinition) -> None:
        rule = RecurrenceRule.parse(definition.recurrence_rule, self._timezone)
        job_id = job_id_for(definition.id)
        self._scheduler.add_job(
            self._fire,
            trigger=rule.trigger,
            args=[definition.id],
            id=job_id,
            name=f"Report: {definition.name}",
            replace_existing=True,
        )
        self._triggers[definition.id] = job_id
        logger.info(
            "[REPORT-SCHED] Scheduled definition %s (%s) with cron '%s'",
            definition.id,
            definition.name,
            rule.expression,
        )

    def _disarm(self, definition_id: int) -> bool:
        job_id = self._triggers.pop(definition_id, None) or job_id_for(definition_id)
        if self._scheduler is None:
            return False
        if self._scheduler.get_job(job_id):
            try:
                self._scheduler.remove_job(job_id)
            except JobLookupError:
                return False
            logger.info("[REPORT-SCHED] Removed trigger %s", job_id)
            return True
        return False

    def schedule_one(self, definition_id: int) -> bool:
        """
        Arm a fresh trigger for the definition, replacing any existing one.

        Returns True when a trigger is armed. Missing or inactive definitions
        end up with no trigger. Raises InvalidRecurrenceRule when the stored
        rule does not parse.
        """
        with self._table_lock:
            if not self._accepting():
                logger.warning(
                    "[REPORT-SCHED] Engine %s; not scheduling definition %s", self._state.value, definition_id
                )
                return False
            definition = self._store.get_by_id(definition_id)
            self._disarm(definition_id)
            if definition is None:
                logger.warning("[REPORT-SCHED] Definition not found: %s", definition_id)
                return False
            if not definition.is_active:
                logger.warning("[REPORT-SCHED] Definition %s is inactive, skipping", definition_id)
                return False
            self._arm(definition)
            return True

    def unschedule_one(self, definition_id: int) -> bool:
        """Disarm the definition's trigger if present. Returns True when one was removed."""
        with self._table_lock:
            return self._disarm(definition_id)

    def resync_all(self) -> int:
        """Re-derive the live trigger set from the store's active definitions."""
        with self._table_lock:
            if not self._accepting():
                logger.warning("[REPORT-SCHED] Engine %s; resync skipped", self._state.value)
                return 0
            return self._resync()

    def _resync(self) -> int:
        with self._table_lock:
            active = self._store.get_active()
            logger.info("[REPORT-SCHED] Loading %d active report definitions", len(active))
            wanted = {d.id for d in active}
            for stale in set(self._triggers) - wanted:
                self._disarm(stale)

            armed = 0
            for definition in active:
                self._disarm(definition.id)
                try:
                    self._arm(definition)
                    armed += 1
                except Exception as exc:
                    logger.error(
                        "[REPORT-SCHED] Failed to schedule definition %s (%s): %r",
                        definition.id,
                        definition.name,
                        exc,
                    )
            return armed

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _fire(self, definition_id: int) -> None:
        """Trigger callback; runs on a pool thread and never raises."""
        cancel = self._cancel
        if cancel.is_set():
            return
        try:
            file_name = self._job.run(definition_id, cancel_event=cancel, require_active=True)
        except RunAlreadyInProgress:
            logger.warning("[REPORT-SCHED] Definition %s still running; skipping this occurrence", definition_id)
        except (DefinitionNotFound, DefinitionInactive) as exc:
            logger.warning("[REPORT-SCHED] %s; disarming trigger", exc)
            self.unschedule_one(definition_id)
        except RunCancelled:
            logger.info("[REPORT-SCHED] Run for definition %s cancelled by shutdown", definition_id)
        except ReportSchedulingError as exc:
            kind = getattr(exc.report_kind, "value", exc.report_kind)
            logger.error(
                "[REPORT-SCHED] Scheduled run failed for definition %s (%s): %s", definition_id, kind, exc
            )
        except Exception as exc:
            logger.exception("[REPORT-SCHED] Unexpected failure running definition %s: %r", definition_id, exc)
        else:
            logger.info("[REPORT-SCHED] Scheduled run for definition %s produced %s", definition_id, file_name)
