"""
Impact maintenance CLI

Examples:
  impact-admin audit
  impact-admin recalculate
  impact-admin create-tables
  impact-admin drop-tables --yes
"""

import argparse
import asyncio
import sys
from typing import List

import structlog

from impact_api.core.config import settings
from impact_api.core.logging_config import setup_logging
from impact_api.db.database import get_db_session, create_tables, drop_tables
from impact_api.schemas.impact import TotalCorrection
from impact_api.services.impact_ledger import ImpactLedger

logger = structlog.get_logger()


def _print_corrections(title: str, corrections: List[TotalCorrection]):
    print(title)
    for c in corrections:
        print(f"  [{c.impact_id}] {c.name}: {c.previous_value} -> {c.recalculated_value}")


async def audit(session_factory=get_db_session) -> bool:
    """Print drifted impacts; returns True when every total is consistent"""
    async with session_factory() as db:
        report = await ImpactLedger(db).audit()

    print(f"Checked {report.impacts_checked} impacts")
    if report.consistent:
        print("All impact totals are consistent")
    else:
        _print_corrections("Drifted impacts:", report.drift)
    return report.consistent


async def recalculate(session_factory=get_db_session) -> bool:
    async with session_factory() as db:
        report = await ImpactLedger(db).recalculate()

    print(f"Checked {report.impacts_checked} impacts, corrected {report.impacts_corrected}")
    if report.orphaned_contributions_removed:
        print(f"Removed {report.orphaned_contributions_removed} orphaned contributions")
    if report.corrections:
        _print_corrections("Corrections:", report.corrections)
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="impact-admin",
        description="Impact maintenance CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("audit", help="Report impacts whose totals drifted (exit code 1 on drift)")
    subparsers.add_parser("recalculate", help="Rebuild every impact total from its contributions")
    subparsers.add_parser("create-tables", help="Create all tables without Alembic")
    drop_parser = subparsers.add_parser("drop-tables", help="Drop all tables")
    drop_parser.add_argument("--yes", action="store_true", help="Confirm dropping every table")
    return parser


async def run(args: argparse.Namespace) -> int:
    if args.command == "audit":
        return 0 if await audit() else 1
    if args.command == "recalculate":
        await recalculate()
        return 0
    if args.command == "create-tables":
        settings.AUTO_CREATE_TABLES = True
        await create_tables()
        return 0
    if args.command == "drop-tables":
        if not args.yes:
            print("Refusing to drop tables without --yes")
            return 2
        await drop_tables()
        return 0
    return 2


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    setup_logging(
        log_level=settings.LOG_LEVEL,
        log_dir=settings.LOG_DIR if settings.LOG_TO_FILE else None
    )
    try:
        return asyncio.run(run(args))
    except Exception as e:
        logger.error("Maintenance command failed", command=args.command, error=str(e))
        print(f"Error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
