"""Command line entry points.

This module maps argparse commands onto the ingestion loop and the
aggregation engine. The store handle is opened once per command and
always disposed.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from collections.abc import Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from deposit_reconciler.aggregation.engine import AggregationQueryError, DepositAggregator
from deposit_reconciler.config import Settings, get_settings
from deposit_reconciler.ledger.source import FixtureLedgerSource, RetryingLedgerSource, SourceFetchError
from deposit_reconciler.pipeline import IngestionLoop, IngestResult
from deposit_reconciler.report.formatter import ReportFormatter
from deposit_reconciler.report.registry import RegistryError, load_registry
from deposit_reconciler.storage.database import DatabaseManager
from deposit_reconciler.storage.store import RecordStore, StoreWriteError

logger = logging.getLogger(__name__)

# Failures surfaced by the core; any of them ends the command with exit code 1.
CORE_ERRORS = (SourceFetchError, StoreWriteError, AggregationQueryError, RegistryError)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(
        prog="deposit-reconciler",
        description="Reconcile ledger transactions and report valid deposits",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create the database schema")

    for name, help_text in (
        ("ingest", "Page through the ledger source into the store"),
        ("run", "Ingest, then print the deposit report"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("--max-pages", type=int, help="Override INGEST_MAX_PAGES")
        command.add_argument(
            "--on-write-error",
            choices=("raise", "continue"),
            help="Override INGEST_ON_WRITE_ERROR",
        )

    subparsers.add_parser("report", help="Print the deposit report")
    return parser


def _build_loop(settings: Settings, store: RecordStore, args: argparse.Namespace) -> IngestionLoop:
    source = RetryingLedgerSource(
        FixtureLedgerSource(settings.ledger.first_page_path, settings.ledger.next_page_path),
        max_retries=settings.ledger.fetch_max_retries,
        base_delay=settings.ledger.retry_base_delay_seconds,
    )
    max_pages = args.max_pages if args.max_pages is not None else settings.ingest.max_pages
    on_write_error = args.on_write_error or settings.ingest.on_write_error
    return IngestionLoop(source, store, max_pages=max_pages, on_write_error=on_write_error)


async def _ingest(settings: Settings, db: DatabaseManager, args: argparse.Namespace) -> IngestResult:
    await db.init_schema_async()
    loop = _build_loop(settings, RecordStore(db), args)
    return await loop.run()


async def _report(settings: Settings, db: DatabaseManager) -> str:
    await db.init_schema_async()
    registry = load_registry(settings.report.known_addresses_path)
    report = await DepositAggregator(db).build_report(registry.addresses)
    return ReportFormatter(registry).format_text(report)


async def run_command(settings: Settings, args: argparse.Namespace) -> int:
    """Run one parsed command against a scoped store handle.

    Returns:
        Process exit code.
    """
    async with DatabaseManager(settings.database.url, echo=settings.database.echo) as db:
        try:
            if args.command == "init-db":
                await db.init_schema_async()
                return 0

            if args.command in ("ingest", "run"):
                result = await _ingest(settings, db, args)
                if not result.ok:
                    logger.error("%d batches failed during ingestion", len(result.write_errors))
                if args.command == "ingest":
                    return 0 if result.ok else 1

            print(await _report(settings, db))
            return 0
        except CORE_ERRORS as e:
            logger.error("%s failed: %s", args.command, e)
            return 1
        except (SQLAlchemyError, OSError) as e:
            logger.error("%s failed: database unavailable: %s", args.command, e)
            return 1


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "max_pages", None) is not None and args.max_pages < 1:
        parser.error("--max-pages must be at least 1")

    try:
        settings = get_settings()
    except ValidationError as e:
        parser.error(f"invalid configuration: {e}")

    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.debug("Settings: %s", settings.redacted_summary())

    return asyncio.run(run_command(settings, args))
