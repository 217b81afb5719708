"""Scan command implementation.

Runs one full crawl-and-reconcile cycle over a data root.
"""

import json
import logging
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from types import FrameType
from typing import Annotated

import typer
from pydantic import ValidationError

from fsdelta.cli.types import get_settings, open_store
from fsdelta.core.config import ScanSettings
from fsdelta.core.lifecycle import ScanCancelledError, ScanError, ScanLifecycleManager, ScanOutcome
from fsdelta.store.database import mask_database_url
from fsdelta.utils.formatting import (
    console,
    create_table,
    format_duration,
    format_size,
    print_error,
    print_info,
    print_success,
)

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Scan a directory tree and record changes.",
    invoke_without_command=True,
)

EXIT_CANCELLED = 130


@contextmanager
def _cancel_on_signals(stop_event: threading.Event) -> Iterator[None]:
    """Set ``stop_event`` on SIGINT/SIGTERM while the block runs."""

    def _handler(signum: int, _frame: FrameType | None) -> None:
        logger.warning("Received %s, stopping scan", signal.Signals(signum).name)
        stop_event.set()

    previous = {sig: signal.signal(sig, _handler) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _print_summary(outcome: ScanOutcome) -> None:
    """Print the reconciliation summary as a table."""
    run = outcome.scan_run
    summary = outcome.summary

    table = create_table(f"Scan {run.scan_id}: {run.scan_root}")
    table.add_column("Change", no_wrap=True)
    table.add_column("Files", justify="right")
    table.add_column("Volume", justify="right", style="info")
    table.add_row("[added]added[/]", f"{summary.added:,}", format_size(summary.added_bytes))
    table.add_row(
        "[modified]modified[/]", f"{summary.modified:,}", format_size(summary.modified_bytes)
    )
    table.add_row("[deleted]deleted[/]", f"{summary.deleted:,}", format_size(summary.deleted_bytes))
    table.add_row("[muted]unchanged[/]", f"{summary.unchanged:,}", "")
    console.print(table)

    walk = outcome.walk
    console.print(
        f"  Crawled [bold]{outcome.crawl.files_seen:,}[/bold] files "
        f"({format_size(outcome.crawl.bytes_seen)}) in {format_duration(walk.elapsed_seconds)} "
        f"[muted]({walk.files_per_second:.1f} f/s, {walk.skipped} skipped)[/muted]"
    )
    if outcome.batch_path is not None:
        console.print(f"  Record batch: [muted]{outcome.batch_path}[/muted]")


@app.callback(invoke_without_command=True)
def scan_tree(
    ctx: typer.Context,
    data_root: Annotated[
        Path,
        typer.Option(
            "--data-root",
            "-r",
            envvar="DATA_ROOT",
            help="Directory to scan.",
        ),
    ],
    database_url: Annotated[
        str | None,
        typer.Option(
            "--database-url",
            "-d",
            envvar="DATABASE_URL",
            help="Store connection string (sqlite:///path).",
        ),
    ] = None,
    batch_file: Annotated[
        Path | None,
        typer.Option(
            "--batch-file",
            "-b",
            help="Write the intermediate record batch here and keep it.",
        ),
    ] = None,
    progress_interval: Annotated[
        float | None,
        typer.Option(
            "--progress-interval",
            envvar="PROGRESS_INTERVAL",
            help="Seconds between progress lines.",
        ),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option(
            "--workers",
            "-w",
            help="Parallel walker threads.",
        ),
    ] = None,
    capacity: Annotated[
        int | None,
        typer.Option(
            "--capacity",
            help="Records buffered between walkers and the writer.",
        ),
    ] = None,
    ignore: Annotated[
        list[str] | None,
        typer.Option(
            "--ignore",
            "-i",
            help="Glob pattern to exclude (repeatable).",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output the result as JSON.",
        ),
    ] = False,
) -> None:
    """Scan a directory tree and record what changed since the last scan.

    Exits 0 when the scan closed successfully, 1 on failure and 130 when
    cancelled. A failed or cancelled scan stays open in 'fsdelta scans'.

    Examples:
        fsdelta scan -r /data                     # Scan with configured defaults
        fsdelta scan -r /data -w 16 --capacity 512
        fsdelta scan -r /data -i '.git' -i '*.tmp'
        fsdelta scan -r /data --json              # JSON output for scripting
    """
    if ctx.invoked_subcommand is not None:
        return

    base = get_settings(ctx)
    overrides: dict[str, object] = {}
    if database_url is not None:
        overrides["database_url"] = database_url
    if progress_interval is not None:
        overrides["progress_interval"] = progress_interval
    if workers is not None:
        overrides["workers"] = workers
    if capacity is not None:
        overrides["queue_capacity"] = capacity
    if ignore:
        overrides["ignore_patterns"] = [*base.ignore_patterns, *ignore]

    try:
        settings = ScanSettings.model_validate({**base.model_dump(), **overrides})
    except ValidationError as e:
        print_error(f"Invalid scan options: {e}")
        raise typer.Exit(code=2) from e

    logger.info("Using database %s", mask_database_url(settings.database_url))
    stop_event = threading.Event()

    with open_store(settings.database_url) as store:
        manager = ScanLifecycleManager(
            store,
            settings,
            stop_event=stop_event,
            batch_file=batch_file,
        )
        try:
            with _cancel_on_signals(stop_event):
                outcome = manager.run(data_root)
        except ScanCancelledError as e:
            print_error(str(e))
            raise typer.Exit(code=EXIT_CANCELLED) from e
        except ScanError as e:
            print_error(str(e))
            raise typer.Exit(code=1) from e

    if json_output:
        typer.echo(json.dumps(outcome.to_dict(), indent=2))
        return

    _print_summary(outcome)
    if outcome.summary.total_changes == 0:
        print_info("No changes since the last scan.")
    print_success(f"Scan {outcome.scan_id} closed.")
