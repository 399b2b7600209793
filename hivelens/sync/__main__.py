#!/usr/bin/env python3
"""
CLI interface for the HiveLens sync pipeline.

Usage:
    python -m hivelens.sync sync --start 2024-05-01 --end 2024-05-03
    python -m hivelens.sync sync --start 2024-05-01 --yes --initiator alice
    python -m hivelens.sync dates
    python -m hivelens.sync tags
    python -m hivelens.sync check

Exits with 0 on success, 1 on error (including quota exceeded and sync in
progress), 130 when interrupted by the user.
"""

import argparse
import sys
from datetime import date, timedelta
from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm

from hivelens.config import SyncConfig
from hivelens.db import ImageStore, get_default_store
from hivelens.ingestion import UrlValidator
from hivelens.logger import setup_logging
from hivelens.source import HiveSQLSource
from .lock import get_default_registry
from .orchestrator import SyncOrchestrator
from .results import (
    ConfirmationRequired,
    QuotaExceeded,
    SyncError,
    SyncInProgress,
    SyncResult,
    SyncSuccess,
)


console = Console()


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"Invalid date (expected YYYY-MM-DD): {value}"
        ) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m hivelens.sync",
        description="Index images from Hive posts into the local HiveLens database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m hivelens.sync sync --start 2024-05-01                  # Sync one day
  python -m hivelens.sync sync --start 2024-05-01 --end 2024-05-08 # Sync one week
  python -m hivelens.sync sync --start 2024-05-01 --yes            # Skip confirmations
  python -m hivelens.sync dates                                    # Days already synced
        """,
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Detailed console output"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync a date range")
    sync_parser.add_argument(
        "--start", type=parse_date, required=True, help="First day (YYYY-MM-DD)"
    )
    sync_parser.add_argument(
        "--end",
        type=parse_date,
        default=None,
        help="Day after the last day to sync, exclusive (default: start + 1 day)",
    )
    sync_parser.add_argument(
        "--yes", action="store_true", help="Do not ask for confirmation"
    )
    sync_parser.add_argument(
        "--initiator", type=str, default=None, help="Name shown to concurrent syncs"
    )

    subparsers.add_parser("dates", help="List days that already have images")
    subparsers.add_parser("tags", help="List all indexed tags")
    subparsers.add_parser("check", help="Test HiveSQL and database connections")

    return parser


def render_result(result: SyncResult) -> None:
    """Print a sync result to the console."""
    if isinstance(result, SyncSuccess):
        counters = result.counters
        lines = [
            f"[green]✓ {result.message}[/green]",
            f"Posts fetched: {counters.posts_fetched} ({counters.posts_with_images} with images)",
            f"New images: {counters.new_images_added}",
            f"Duplicates skipped: {counters.existing_images_skipped}",
            f"Invalid/unreachable: {counters.invalid_or_inaccessible_images_skipped}",
            f"Persistence errors: {counters.persistence_errors}",
        ]
        if result.database_size_bytes is not None:
            lines.append(
                f"Database size: {result.database_size_bytes / (1024 * 1024):.2f} MB"
            )
        console.print(Panel("\n".join(lines), title="Sync completed"))
    elif isinstance(result, SyncInProgress):
        console.print(Panel(f"[yellow]{result.message}[/yellow]", title="Sync in progress"))
    elif isinstance(result, QuotaExceeded):
        console.print(Panel(f"[red]{result.message}[/red]", title="Quota exceeded"))
    elif isinstance(result, SyncError):
        console.print(
            Panel(
                f"[red]✗ {result.message}[/red]\n"
                f"Partial counters: {result.counters.to_dict()}",
                title="Sync failed",
            )
        )
    elif isinstance(result, ConfirmationRequired):
        console.print(Panel(result.message, title="Estimated duration"))


def run_sync_command(args: argparse.Namespace, store: ImageStore) -> int:
    start = args.start
    end = args.end or start + timedelta(days=1)

    store.ensure_schema()

    if not args.yes and end > start:
        existing = store.count_images_in_date_range(start, end - timedelta(days=1))
        if existing and not Confirm.ask(
            f"{existing} images are already indexed for this range. Sync anyway?"
        ):
            console.print("[dim]Sync cancelled.[/dim]")
            return 0

    config = SyncConfig.from_env()
    with UrlValidator(
        timeout=config.validation_timeout,
        max_workers=config.max_concurrent_validations,
    ) as validator:
        orchestrator = SyncOrchestrator(
            source=HiveSQLSource(),
            store=store,
            validator=validator,
            lock_registry=get_default_registry(),
            config=config,
        )

        result = orchestrator.run_sync(
            start, end, confirmed=args.yes, initiator=args.initiator
        )
        if isinstance(result, ConfirmationRequired):
            render_result(result)
            if not Confirm.ask("Start the sync?"):
                console.print("[dim]Sync cancelled.[/dim]")
                return 0
            console.print("[dim]Syncing...[/dim]")
            result = orchestrator.run_sync(
                start, end, confirmed=True, initiator=args.initiator
            )

    render_result(result)
    return 0 if isinstance(result, SyncSuccess) else 1


def run_check_command(store: ImageStore) -> int:
    ok = True

    hivesql = HiveSQLSource().test_connection()
    if hivesql is None:
        console.print("[red]✗ HiveSQL connection failed[/red]")
        ok = False
    else:
        console.print(f"[green]✓ HiveSQL reachable[/green] ({hivesql['time_ms']:.0f} ms)")

    if store.check_connection():
        info = store.get_database_info()
        console.print(
            f"[green]✓ Database reachable[/green] ({info['database_path']}, "
            f"{info.get('file_size_mb', 0)} MB)"
        )
    else:
        console.print("[red]✗ Database connection failed[/red]")
        ok = False

    return 0 if ok else 1


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logger = setup_logging(logger_name="sync", log_file="sync.log", verbose=args.verbose)
    logger.info(f"Running command: {args.command}")

    try:
        store = get_default_store()

        if args.command == "sync":
            return run_sync_command(args, store)

        if args.command == "dates":
            store.ensure_schema()
            dates = store.get_distinct_synced_dates()
            if not dates:
                console.print("[dim]No images indexed yet.[/dim]")
            for synced_date in dates:
                console.print(synced_date)
            return 0

        if args.command == "tags":
            store.ensure_schema()
            tags = store.get_unique_tags()
            console.print(", ".join(tags) if tags else "[dim]No tags indexed yet.[/dim]")
            return 0

        return run_check_command(store)

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except Exception as e:
        console.print(f"[red]✗ {args.command} failed: {e}[/red]")
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
