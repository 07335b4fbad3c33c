"""
Command-line entry point.

    recurring-ledger sweep                  # all users, once
    recurring-ledger sweep-user USER_ID     # one user, JSON result
    recurring-ledger status USER_ID
    recurring-ledger serve                  # sweep every RECURRING_SWEEP_INTERVAL_SECONDS

--db overrides LEDGER_DB_PATH; --today pins the date for every user.
"""

import argparse
import asyncio
import json
import sys
from datetime import date
from typing import Optional, Sequence

import structlog

from recurring_ledger.audit import AuditLogger
from recurring_ledger.config import get_settings, validate_all_settings
from recurring_ledger.orchestrator import RecurringJobOrchestrator, SweepAbortedError
from recurring_ledger.services.clock import FixedClock, TimezoneClock, UserClock
from recurring_ledger.services.storage import (
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteLedgerStorage,
)

logger = structlog.get_logger(__name__)


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="recurring-ledger",
        description="Generate ledger entries and bills from recurring templates.",
    )
    ap.add_argument("--db", help="SQLite database path (default: LEDGER_DB_PATH)")
    ap.add_argument(
        "--today",
        type=_parse_date,
        help="Treat this ISO date as today for every user",
    )

    subparsers = ap.add_subparsers(dest="command", required=True)
    subparsers.add_parser("sweep", help="Run one sweep over all users")

    sweep_user = subparsers.add_parser("sweep-user", help="Run a sweep for one user")
    sweep_user.add_argument("user_id")

    status = subparsers.add_parser("status", help="Show a user's recurring status")
    status.add_argument("user_id")

    subparsers.add_parser("serve", help="Sweep periodically until interrupted")
    return ap


def build_orchestrator(
    db_path: Optional[str],
    today: Optional[date],
) -> tuple[RecurringJobOrchestrator, SQLiteDatabase]:
    settings = get_settings()
    database = SQLiteDatabase(path=db_path)
    storage = SQLiteLedgerStorage(database)

    clock: UserClock
    if today is not None:
        clock = FixedClock(today)
    else:
        clock = TimezoneClock(storage, default_timezone=settings.engine.default_timezone)

    orchestrator = RecurringJobOrchestrator(
        storage=storage,
        clock=clock,
        audit_logger=AuditLogger(SQLiteAuditStorage(database)),
        settings=settings.engine,
    )
    return orchestrator, database


async def _serve(orchestrator: RecurringJobOrchestrator, interval: int) -> None:
    while True:
        try:
            report = await orchestrator.run_full_sweep()
            print(report.summary(), flush=True)
        except SweepAbortedError as e:
            logger.error("scheduled_sweep_aborted", error=e.reason)
        await asyncio.sleep(interval)


async def _run(args: argparse.Namespace) -> int:
    orchestrator, database = build_orchestrator(args.db, args.today)
    try:
        if args.command == "sweep":
            try:
                report = await orchestrator.run_full_sweep()
            except SweepAbortedError as e:
                print(f"Sweep aborted: {e.reason}", file=sys.stderr)
                return 2
            print(report.summary())
            for error in report.errors:
                print(f"  {error.describe()}")
            return 1 if report.errors else 0

        if args.command == "sweep-user":
            result = await orchestrator.run_user_sweep(args.user_id)
            print(json.dumps(result.model_dump(by_alias=True)))
            return 0 if result.success else 2

        if args.command == "status":
            status = await orchestrator.get_status(args.user_id)
            print(status.model_dump_json(indent=2))
            return 0

        if args.command == "serve":
            await _serve(orchestrator, get_settings().engine.sweep_interval_seconds)
            return 0
    finally:
        database.close()

    return 2


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    invalid = [name for name, ok in validate_all_settings().items() if not ok]
    if invalid:
        print(f"Invalid settings: {', '.join(invalid)}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
