"""Execution of one report definition: generate, write the artifact, stamp the run."""

from __future__ import annotations

import re
import threading
from datetime import datetime
from pathlib import Path
from typing import Callable, FrozenSet, Optional, Set

from registry_reports.domain.reports import ExportFormat
from registry_reports.logging_utils import get_logger
from registry_reports.reports.errors import (
    ArtifactWriteFailure,
    DataAccessFailure,
    DefinitionInactive,
    DefinitionNotFound,
    ReportSchedulingError,
    RunAlreadyInProgress,
    RunCancelled,
)
from registry_reports.reports.generator import ReportGenerationEngine
from registry_reports.reports.store import ReportDefinitionStore

logger = get_logger(__name__)

FILE_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def safe_file_stem(name: str) -> str:
    stem = _UNSAFE_CHARS.sub("_", name).strip().strip(".")
    return stem or "report"


def output_file_name(name: str, executed_at: datetime, export_format: ExportFormat) -> str:
    """Build ``{name}_{yyyyMMdd_HHmmss}.{ext}`` for an artifact."""
    return f"{safe_file_stem(name)}_{executed_at.strftime(FILE_TIMESTAMP_FORMAT)}.{export_format.extension}"


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("[REPORT-JOB] Could not remove partial artifact %s: %r", path, exc)


def write_artifact(directory: str, file_name: str, artifact: bytes) -> Path:
    """
    Write ``artifact`` to ``directory/file_name``, creating the directory.

    The file is opened with exclusive create so an existing file is never
    overwritten; a partially written file is removed before raising.
    """
    target_dir = Path(directory).expanduser()
    target = target_dir / file_name
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ArtifactWriteFailure(f"Cannot create output directory {target_dir}: {exc}", path=str(target_dir)) from exc

    try:
        fh = open(target, "xb")
    except FileExistsError as exc:
        raise ArtifactWriteFailure(f"Refusing to overwrite existing file {target}", path=str(target)) from exc
    except OSError as exc:
        raise ArtifactWriteFailure(f"Cannot open {target} for writing: {exc}", path=str(target)) from exc

    try:
        with fh:
            fh.write(artifact)
    except OSError as exc:
        _discard(target)
        raise ArtifactWriteFailure(f"Failed writing {target}: {exc}", path=str(target)) from exc
    return target


class ReportExecutionJob:
    """
    Runs one definition end to end.

    Shared by trigger firings and on-demand runs. At most one run per
    definition id is in flight at a time; a second concurrent request is
    rejected with RunAlreadyInProgress rather than queued.
    """

    def __init__(
        self,
        store: ReportDefinitionStore,
        generator: ReportGenerationEngine,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._store = store
        self._generator = generator
        self._clock = clock
        self._in_flight: Set[int] = set()
        self._lock = threading.Lock()

    def in_flight(self) -> FrozenSet[int]:
        with self._lock:
            return frozenset(self._in_flight)

    def run(
        self,
        definition_id: int,
        cancel_event: Optional[threading.Event] = None,
        require_active: bool = False,
    ) -> str:
        """
        Execute the definition and return the artifact file name.

        Args:
            definition_id: Definition to run
            cancel_event: Set by the scheduling engine on stop; checked before
                anything is written
            require_active: Refuse to run an inactive definition (trigger path)

        Raises:
            RunAlreadyInProgress, DefinitionNotFound, DefinitionInactive,
            DataAccessFailure, RenderFailure, ArtifactWriteFailure, RunCancelled
        """
        with self._lock:
            if definition_id in self._in_flight:
                raise RunAlreadyInProgress(definition_id)
            self._in_flight.add(definition_id)
        try:
            return self._execute(definition_id, cancel_event, require_active)
        finally:
            with self._lock:
                self._in_flight.discard(definition_id)

    def _execute(
        self,
        definition_id: int,
        cancel_event: Optional[threading.Event],
        require_active: bool,
    ) -> str:
        try:
            definition = self._store.get_by_id(definition_id)
        except ReportSchedulingError:
            raise
        except Exception as exc:
            raise DataAccessFailure(f"Failed to load report definition {definition_id}: {exc}", definition_id=definition_id) from exc
        if definition is None:
            raise DefinitionNotFound(definition_id)
        if require_active and not definition.is_active:
            raise DefinitionInactive(definition_id)

        executed_at = self._clock()
        logger.info(
            "[REPORT-JOB] Running definition %s (%s, %s report as %s)",
            definition_id,
            definition.name,
            definition.report_kind.value,
            definition.export_format.value,
        )

        try:
            artifact = self._generator.generate(
                definition.report_kind,
                definition.filter,
                definition.export_format,
                generated_at=executed_at,
            )
        except ReportSchedulingError as exc:
            if exc.definition_id is None:
                exc.definition_id = definition_id
            raise

        if cancel_event is not None and cancel_event.is_set():
            raise RunCancelled(definition_id)

        file_name = output_file_name(definition.name, executed_at, definition.export_format)
        if definition.output_path:
            try:
                path = write_artifact(definition.output_path, file_name, artifact)
            except ArtifactWriteFailure as exc:
                exc.definition_id = definition_id
                exc.report_kind = definition.report_kind
                raise
            logger.info("[REPORT-JOB] Wrote %d bytes to %s", len(artifact), path)

        try:
            self._store.set_last_run_at(definition_id, executed_at)
        except Exception as exc:
            raise DataAccessFailure(
                f"Report {definition_id} generated but last run could not be recorded: {exc}",
                definition_id=definition_id,
                report_kind=definition.report_kind,
            ) from exc

        logger.info("[REPORT-JOB] Definition %s finished: %s", definition_id, file_name)
        return file_name
