"""Operate scheduled civil-registry reports from the command line.

Subcommands:
- init-db: create the report_definitions table (and record tables when absent)
- list: print every report definition with its schedule state
- run-now ID: run one definition immediately
- generate: produce a one-off report file without a stored definition
- serve: run the scheduling engine until interrupted
"""

from __future__ import annotations

import argparse
import sys
import threading
from pathlib import Path
from typing import Optional


def _ensure_repo_on_path() -> None:
    # When executed as a script ("python scripts/xyz.py"), Python's sys.path[0]
    # is the scripts/ directory, not the repo root. Ensure repo root is importable.
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))


_ensure_repo_on_path()

from registry_reports.database.base import init_db  # noqa: E402
from registry_reports.domain.reports import ExportFormat, ReportKind  # noqa: E402
from registry_reports.reports.errors import ReportSchedulingError  # noqa: E402
from registry_reports.reports.service import ScheduledReportService, create_report_service  # noqa: E402


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Manage and run scheduled civil-registry reports.")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables.")
    sub.add_parser("list", help="List report definitions.")

    run = sub.add_parser("run-now", help="Run one report definition immediately.")
    run.add_argument("definition_id", type=int)

    gen = sub.add_parser("generate", help="Generate a one-off report file.")
    gen.add_argument("--kind", required=True, choices=[k.value for k in ReportKind])
    gen.add_argument("--format", required=True, choices=[f.value for f in ExportFormat])
    gen.add_argument("--out", required=True, help="Output file path.")
    gen.add_argument("--document-type")
    gen.add_argument("--registry-office")
    gen.add_argument("--province")
    gen.add_argument("--city-municipality")
    gen.add_argument("--barangay")
    gen.add_argument("--date-from", help="YYYY-MM-DD (inclusive).")
    gen.add_argument("--date-to", help="YYYY-MM-DD (inclusive).")
    gen.add_argument("--status", help="Request status (request reports).")
    gen.add_argument("--activity-type", help="Activity type (activity reports).")
    gen.add_argument("--user-id", type=int, help="Acting user id (activity reports).")

    sub.add_parser("serve", help="Run the scheduling engine until interrupted.")
    return p.parse_args(argv)


_FILTER_FIELDS = (
    "document_type",
    "registry_office",
    "province",
    "city_municipality",
    "barangay",
    "date_from",
    "date_to",
    "status",
    "activity_type",
    "user_id",
)


def _cmd_list(service: ScheduledReportService) -> int:
    definitions = service.list_definitions()
    if not definitions:
        print("No report definitions.")
        return 0
    for d in definitions:
        last = d.last_run_at.strftime("%Y-%m-%d %H:%M:%S") if d.last_run_at else "never"
        state = "active" if d.is_active else "inactive"
        print(
            f"{d.id:>4}  {d.name:<30}  {d.report_kind.value:<8}  {d.export_format.value:<5}  "
            f"'{d.recurrence_rule}'  {state:<8}  last run: {last}"
        )
    return 0


def _cmd_generate(service: ScheduledReportService, args: argparse.Namespace) -> int:
    criteria = {name: getattr(args, name) for name in _FILTER_FIELDS if getattr(args, name) is not None}
    artifact = service.generate_ad_hoc(args.kind, criteria, args.format)
    out_path = Path(args.out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(artifact)
    print(f"Wrote: {out_path} ({len(artifact)} bytes)")
    return 0


def _cmd_serve(service: ScheduledReportService, stop_event: Optional[threading.Event] = None) -> int:
    armed = service.start()
    print(f"Scheduling engine running with {armed} trigger(s). Press Ctrl+C to stop.")
    stop_event = stop_event or threading.Event()
    try:
        while not stop_event.wait(1.0):
            pass
    except KeyboardInterrupt:
        print("Interrupted; stopping.")
    finally:
        service.stop()
    return 0


def main(argv: Optional[list[str]] = None, service: Optional[ScheduledReportService] = None) -> int:
    args = _parse_args(argv)

    if args.command == "init-db":
        init_db()
        print("Database tables created.")
        return 0

    service = service or create_report_service()
    try:
        if args.command == "list":
            return _cmd_list(service)
        if args.command == "run-now":
            file_name = service.run_now(args.definition_id)
            print(f"Report generated: {file_name}")
            return 0
        if args.command == "generate":
            return _cmd_generate(service, args)
        if args.command == "serve":
            return _cmd_serve(service)
    except ReportSchedulingError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
