"""
cli.py — Command line for the ward rota engine

Usage:
  ward-rota --db data/rota.db init-db
  ward-rota import-config --doctors config/doctors.csv --profiles config/profiles.json
  ward-rota --user planner create-week 2024-09-02
  ward-rota validate-week 2024-09-02
  ward-rota --user head approve-week 2024-09-02
  ward-rota --user head approve-month 2024-09-01 --report outputs/2024-09_month.txt
  ward-rota --user planner copy-forward 2024-09-09 --summary outputs/copy.txt
  ward-rota export-week 2024-09-02 --format xlsx --output outputs/week.xlsx

Exit status: 0 success, 1 engine error (message printed), 2 usage error.
"""

import argparse
import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

from ward_rota.config import (
    DEFAULT_DB_PATH,
    DEFAULT_DOCTORS_PATH,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PROFILES_PATH,
    load_doctors_csv,
    load_profiles,
)
from ward_rota.errors import ApprovalPrecondition, RotaError
from ward_rota.exporter import (
    export_copy_summary,
    export_month_report,
    export_week_csv,
    export_week_excel,
    export_workload_chart,
)
from ward_rota.schedule_config import CARRY_FORWARD_DAYS
from ward_rota.service import RotaService
from ward_rota.store import SQLiteStore

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_init_db(service: RotaService, args) -> None:
    print(f"  ✓ Database ready → {service.store.db_path}")


def cmd_import_config(service: RotaService, args) -> None:
    rows = load_doctors_csv(Path(args.doctors))
    counts = service.import_roster(rows, [])
    ids_by_name = {d.name: d.id for d in service.list_doctors(active_only=False)}
    profiles = load_profiles(Path(args.profiles), ids_by_name)
    service.import_roster([], profiles)
    print(f"  ✓ Doctors added:   {counts['doctors']}")
    print(f"  ✓ Profiles loaded: {len(profiles)}")


def cmd_add_doctor(service: RotaService, args) -> None:
    doctor = service.add_doctor(args.actor, args.name)
    print(f"  ✓ {doctor.name} ({doctor.id})")


def cmd_list_doctors(service: RotaService, args) -> None:
    for d in service.list_doctors(active_only=not args.all):
        flag = "" if d.active else "  (archived)"
        print(f"  {d.id}  {d.name}{flag}")


def cmd_create_week(service: RotaService, args) -> None:
    week = service.create_week(args.actor, args.week)
    print(f"  ✓ Week {week.week_start} created ({week.status})")


def cmd_validate_week(service: RotaService, args) -> None:
    result = service.validate_week(service.require_week(args.week).id)
    print(f"  {result}")
    if not result.ok:
        raise ApprovalPrecondition(result.missing, result.week_start)


def cmd_approve_week(service: RotaService, args) -> None:
    week = service.approve_week(args.actor, service.require_week(args.week).id)
    print(f"  ✓ Week {week.week_start} approved by {week.approved_by}")


def cmd_revert_week(service: RotaService, args) -> None:
    week = service.revert_week(args.actor, service.require_week(args.week).id)
    print(f"  ✓ Week {week.week_start} back to {week.status}")


def _print_month(report, args) -> None:
    for entry in report.missing:
        print(f"  {entry}")
    if args.report:
        export_month_report(report, Path(args.report))
        print(f"  ✓ Report  → {args.report}")


def cmd_check_month(service: RotaService, args) -> None:
    report = service.check_month(args.month)
    _print_month(report, args)
    if args.chart:
        names = {d.id: d.name for d in service.list_doctors(active_only=False)}
        export_workload_chart(service.workload_counts(args.month), Path(args.chart), names)
        print(f"  ✓ Chart   → {args.chart}")
    print(f"  {'✓ ready for approval' if report.ok else f'✗ {len(report.missing)} open item(s)'}")


def cmd_approve_month(service: RotaService, args) -> Optional[int]:
    report = service.approve_month(args.actor, args.month)
    _print_month(report, args)
    if not report.ok:
        print(f"  ✗ nothing approved: {len(report.missing)} open item(s)")
        return 1
    print(f"  ✓ {len(report.approved_week_ids)} week(s) approved")
    return None


def cmd_copy_forward(service: RotaService, args) -> None:
    target = service.require_week(args.week)
    result = service.copy_week_forward(args.actor, target.id)
    print(f"  ✓ {result}")
    if args.summary:
        source_start = target.week_start - timedelta(days=CARRY_FORWARD_DAYS)
        export_copy_summary(result, Path(args.summary), source_start, target.week_start)
        print(f"  ✓ Summary → {args.summary}")


def cmd_export_week(service: RotaService, args) -> None:
    editor = service.open_week_editor(service.require_week(args.week).id)
    suffix = "xlsx" if args.format == "xlsx" else "csv"
    output = Path(args.output) if args.output else (
        DEFAULT_OUTPUT_DIR / f"week_{editor.week.week_start}.{suffix}"
    )
    if args.format == "xlsx":
        export_week_excel(editor, output)
    else:
        export_week_csv(editor, output)
    print(f"  ✓ Week    → {output}")


COMMANDS = {
    "init-db":       cmd_init_db,
    "import-config": cmd_import_config,
    "add-doctor":    cmd_add_doctor,
    "list-doctors":  cmd_list_doctors,
    "create-week":   cmd_create_week,
    "validate-week": cmd_validate_week,
    "approve-week":  cmd_approve_week,
    "revert-week":   cmd_revert_week,
    "check-month":   cmd_check_month,
    "approve-month": cmd_approve_month,
    "copy-forward":  cmd_copy_forward,
    "export-week":   cmd_export_week,
}


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ward-rota",
        description="Ward rota: weekly admissions/ward/absence slots with approval workflow",
    )
    parser.add_argument("--db",      default=str(DEFAULT_DB_PATH), help="SQLite database path")
    parser.add_argument("--user",    default=None, help="User id (profile) performing the action")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the database schema")

    p = sub.add_parser("import-config", help="Load doctors.csv and profiles.json")
    p.add_argument("--doctors",  default=str(DEFAULT_DOCTORS_PATH))
    p.add_argument("--profiles", default=str(DEFAULT_PROFILES_PATH))

    p = sub.add_parser("add-doctor", help="Register a doctor")
    p.add_argument("name")

    p = sub.add_parser("list-doctors", help="List doctors")
    p.add_argument("--all", action="store_true", help="Include archived doctors")

    for name, text in (
        ("create-week",   "Create a draft week (Monday)"),
        ("validate-week", "Check admissions coverage of a week"),
        ("approve-week",  "Approve a week"),
        ("revert-week",   "Revert an approved week to draft"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("week", help="Week start YYYY-MM-DD (Monday)")

    for name, text in (
        ("check-month",   "Report open items for a month"),
        ("approve-month", "Approve every draft week of a month (all or nothing)"),
    ):
        p = sub.add_parser(name, help=text)
        p.add_argument("month", help="First day of month YYYY-MM-01")
        p.add_argument("--report", default=None, help="Write the text report here")
        if name == "check-month":
            p.add_argument("--chart", default=None, help="Write a workload chart (.png) here")

    p = sub.add_parser("copy-forward", help="Copy last week's ward/absences into a draft week")
    p.add_argument("week", help="Target week start YYYY-MM-DD (Monday)")
    p.add_argument("--summary", default=None, help="Write the audit summary here")

    p = sub.add_parser("export-week", help="Export a week roster")
    p.add_argument("week", help="Week start YYYY-MM-DD (Monday)")
    p.add_argument("--format", choices=("csv", "xlsx"), default="csv")
    p.add_argument("--output", default=None, help="Output file (default: outputs/)")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    store = SQLiteStore(args.db)
    service = RotaService(store)
    try:
        args.actor = service.get_actor(args.user) if args.user else None
        status = COMMANDS[args.command](service, args)
    except RotaError as e:
        print(f"  ✗ {e}")
        return 1
    except (FileNotFoundError, ValueError) as e:
        print(f"  ✗ {e}")
        return 1
    finally:
        store.close()
    return status or 0


if __name__ == "__main__":
    sys.exit(main())
