from __future__ import annotations

import threading
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from registry_reports.domain.reports import ExportFormat, ReportDefinition, ReportFilter, ReportKind
from registry_reports.reports import job as rj
from registry_reports.reports.errors import (
    ArtifactWriteFailure,
    DataAccessFailure,
    DefinitionInactive,
    DefinitionNotFound,
    RunAlreadyInProgress,
    RunCancelled,
)

RUN_AT = datetime(2024, 6, 1, 6, 30, 15)


class _StepClock:
    """Returns RUN_AT, then one second later on every call."""

    def __init__(self, start: datetime = RUN_AT):
        self._next = start

    def __call__(self) -> datetime:
        now = self._next
        self._next = now + timedelta(seconds=1)
        return now


class _StubGenerator:
    def __init__(self, artifact: bytes = b"%PDF-stub", error: Exception | None = None):
        self.artifact = artifact
        self.error = error
        self.calls: list[tuple] = []

    def generate(self, kind, criteria, export_format, generated_at=None):
        self.calls.append((kind, criteria, export_format, generated_at))
        if self.error is not None:
            raise self.error
        return self.artifact


class _BlockingGenerator:
    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def generate(self, kind, criteria, export_format, generated_at=None):
        self.calls += 1
        self.entered.set()
        assert self.release.wait(5)
        return b"artifact"


def _add(store, **overrides) -> ReportDefinition:
    values = dict(
        name="Daily births",
        report_kind=ReportKind.DOCUMENT_INVENTORY,
        recurrence_rule="0 0 * * *",
        export_format=ExportFormat.PDF,
        filter=ReportFilter(document_type="Birth Certificate"),
    )
    values.update(overrides)
    return store.add(ReportDefinition(**values))


def test_output_file_name():
    assert rj.output_file_name("Daily births", RUN_AT, ExportFormat.PDF) == "Daily births_20240601_063015.pdf"
    assert rj.output_file_name("a/b:c", RUN_AT, ExportFormat.EXCEL) == "a_b_c_20240601_063015.xlsx"
    assert rj.output_file_name("  ", RUN_AT, ExportFormat.PDF) == "report_20240601_063015.pdf"


def test_run_writes_artifact_and_stamps_last_run(store, tmp_path):
    out_dir = tmp_path / "reports" / "daily"
    definition = _add(store, output_path=str(out_dir))
    generator = _StubGenerator()
    job = rj.ReportExecutionJob(store, generator, clock=_StepClock())

    file_name = job.run(definition.id)

    assert file_name == "Daily births_20240601_063015.pdf"
    assert (out_dir / file_name).read_bytes() == b"%PDF-stub"
    assert store.get_by_id(definition.id).last_run_at == RUN_AT
    kind, criteria, fmt, generated_at = generator.calls[0]
    assert kind is ReportKind.DOCUMENT_INVENTORY
    assert criteria.document_type == "Birth Certificate"
    assert fmt is ExportFormat.PDF
    assert generated_at == RUN_AT


def test_run_without_output_path_only_stamps(store, tmp_path, monkeypatch):
    definition = _add(store)
    monkeypatch.chdir(tmp_path)
    job = rj.ReportExecutionJob(store, _StubGenerator(), clock=_StepClock())

    assert job.run(definition.id).endswith(".pdf")
    assert list(tmp_path.iterdir()) == []
    assert store.get_by_id(definition.id).last_run_at == RUN_AT


def test_run_with_real_generator(store, generator, tmp_path):
    definition = _add(store, output_path=str(tmp_path), export_format=ExportFormat.EXCEL)
    job = rj.ReportExecutionJob(store, generator, clock=_StepClock())
    file_name = job.run(definition.id)
    assert file_name.endswith(".xlsx")
    assert (tmp_path / file_name).read_bytes()[:2] == b"PK"


def test_missing_definition(store):
    job = rj.ReportExecutionJob(store, _StubGenerator())
    with pytest.raises(DefinitionNotFound):
        job.run(12345)


def test_inactive_definition_refused_on_trigger_path(store):
    definition = _add(store, is_active=False)
    generator = _StubGenerator()
    job = rj.ReportExecutionJob(store, generator, clock=_StepClock())

    with pytest.raises(DefinitionInactive):
        job.run(definition.id, require_active=True)
    assert generator.calls == []

    # on-demand runs do not require the definition to be active
    job.run(definition.id)
    assert len(generator.calls) == 1


def test_generation_failure_keeps_last_run(store):
    definition = _add(store)
    store.set_last_run_at(definition.id, datetime(2024, 5, 1))
    failure = DataAccessFailure("boom", report_kind=ReportKind.DOCUMENT_INVENTORY)
    job = rj.ReportExecutionJob(store, _StubGenerator(error=failure), clock=_StepClock())

    with pytest.raises(DataAccessFailure) as exc_info:
        job.run(definition.id)
    assert exc_info.value.definition_id == definition.id
    assert store.get_by_id(definition.id).last_run_at == datetime(2024, 5, 1)


def test_write_failure_keeps_last_run(store, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")
    definition = _add(store, output_path=str(blocker / "nested"))
    job = rj.ReportExecutionJob(store, _StubGenerator(), clock=_StepClock())

    with pytest.raises(ArtifactWriteFailure) as exc_info:
        job.run(definition.id)
    assert exc_info.value.definition_id == definition.id
    assert store.get_by_id(definition.id).last_run_at is None


def test_existing_file_is_never_overwritten(store, tmp_path):
    definition = _add(store, output_path=str(tmp_path))
    existing = tmp_path / "Daily births_20240601_063015.pdf"
    existing.write_bytes(b"keep me")
    job = rj.ReportExecutionJob(store, _StubGenerator(), clock=_StepClock())

    with pytest.raises(ArtifactWriteFailure):
        job.run(definition.id)
    assert existing.read_bytes() == b"keep me"
    assert store.get_by_id(definition.id).last_run_at is None


def test_partial_write_is_removed(tmp_path, monkeypatch):
    class _Broken:
        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def write(self, data):
            Path(tmp_path / "out.pdf").write_bytes(data[:1])
            raise OSError("disk full")

    monkeypatch.setattr(rj, "open", lambda path, mode: _Broken(), raising=False)
    with pytest.raises(ArtifactWriteFailure):
        rj.write_artifact(str(tmp_path), "out.pdf", b"abc")
    assert not (tmp_path / "out.pdf").exists()


def test_cancelled_run_writes_nothing(store, tmp_path):
    definition = _add(store, output_path=str(tmp_path))
    cancel = threading.Event()
    cancel.set()
    job = rj.ReportExecutionJob(store, _StubGenerator(), clock=_StepClock())

    with pytest.raises(RunCancelled):
        job.run(definition.id, cancel_event=cancel)
    assert list(tmp_path.iterdir()) == []
    assert store.get_by_id(definition.id).last_run_at is None


def test_at_most_one_run_in_flight(store, tmp_path):
    definition = _add(store, output_path=str(tmp_path))
    generator = _BlockingGenerator()
    job = rj.ReportExecutionJob(store, generator, clock=_StepClock())
    results: list[str] = []

    worker = threading.Thread(target=lambda: results.append(job.run(definition.id)))
    worker.start()
    assert generator.entered.wait(5)
    assert job.in_flight() == {definition.id}

    with pytest.raises(RunAlreadyInProgress):
        job.run(definition.id)

    generator.release.set()
    worker.join(5)
    assert not worker.is_alive()
    assert generator.calls == 1
    assert len(results) == 1
    assert len(list(tmp_path.iterdir())) == 1
    assert job.in_flight() == frozenset()


def test_other_definitions_run_while_one_is_in_flight(store):
    slow = _add(store, name="slow")
    fast = _add(store, name="fast")
    blocking = _BlockingGenerator()

    class _Router:
        def generate(self, kind, criteria, export_format, generated_at=None):
            if router_state["first"]:
                router_state["first"] = False
                return blocking.generate(kind, criteria, export_format, generated_at)
            return b"fast"

    router_state = {"first": True}
    job = rj.ReportExecutionJob(store, _Router(), clock=_StepClock())

    worker = threading.Thread(target=job.run, args=(slow.id,))
    worker.start()
    assert blocking.entered.wait(5)

    assert job.run(fast.id).startswith("fast_")

    blocking.release.set()
    worker.join(5)
    assert store.get_by_id(slow.id).last_run_at is not None


def test_in_flight_marker_released_after_failure(store):
    job = rj.ReportExecutionJob(store, _StubGenerator())
    with pytest.raises(DefinitionNotFound):
        job.run(7)
    assert job.in_flight() == frozenset()
