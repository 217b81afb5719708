"""Scans command for listing scan runs.

Shows recent scan runs with their status and change statistics.
"""

import json
from datetime import datetime
from typing import Annotated

import typer
from rich.markup import escape

from fsdelta.cli.types import get_settings, open_store
from fsdelta.models.scan_run import ScanRun, ScanStatus
from fsdelta.store.database import StoreError
from fsdelta.utils.formatting import console, create_table, format_size, print_error, print_info

app = typer.Typer(
    help="List scan runs.",
    invoke_without_command=True,
)

_STATUS_STYLES = {
    ScanStatus.RUNNING: "status.running",
    ScanStatus.FAILED: "status.failed",
    ScanStatus.FINISHED: "status.finished",
}


@app.callback(invoke_without_command=True)
def list_scans(
    ctx: typer.Context,
    database_url: Annotated[
        str | None,
        typer.Option(
            "--database-url",
            "-d",
            envvar="DATABASE_URL",
            help="Store connection string (sqlite:///path).",
        ),
    ] = None,
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            min=1,
            help="Maximum number of scans to show.",
        ),
    ] = 20,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """List scan runs, newest first.

    A scan without a finish time is either still running or failed;
    its counts are unknown, not zero.

    Examples:
        fsdelta scans               # Last 20 scans
        fsdelta scans -n 5          # Last 5 scans
        fsdelta scans --json        # JSON output for scripting
    """
    if ctx.invoked_subcommand is not None:
        return

    url = database_url or get_settings(ctx).database_url
    with open_store(url) as store:
        try:
            runs = store.list_scans(limit=limit)
        except StoreError as e:
            print_error(str(e))
            raise typer.Exit(code=1) from e

    if json_output:
        typer.echo(json.dumps([run.to_dict() for run in runs], indent=2))
        return

    if not runs:
        print_info("No scans recorded yet.")
        return

    _print_table(runs)


def _format_timestamp(iso_timestamp: str | None) -> str:
    """Format an ISO timestamp as YYYY-MM-DD HH:MM:SS, or '-'."""
    if iso_timestamp is None:
        return "-"
    return datetime.fromisoformat(iso_timestamp).strftime("%Y-%m-%d %H:%M:%S")


def _format_count(value: int | None) -> str:
    return f"{value:,}" if value is not None else "-"


def _print_table(runs: list[ScanRun]) -> None:
    """Print scan runs as a Rich table."""
    table = create_table("Scan Runs")
    table.add_column("ID", justify="right", style="muted")
    table.add_column("Root", style="text", overflow="fold")
    table.add_column("Status", no_wrap=True)
    table.add_column("Started")
    table.add_column("Finished")
    table.add_column("Files", justify="right")
    table.add_column("Added", justify="right", style="added")
    table.add_column("Modified", justify="right", style="modified")
    table.add_column("Deleted", justify="right", style="deleted")
    table.add_column("Net", justify="right", style="info")

    for run in runs:
        style = _STATUS_STYLES[run.status]
        net = None
        if run.is_finished:
            net = (run.added_bytes or 0) + (run.modified_bytes or 0) - (run.deleted_bytes or 0)
        table.add_row(
            str(run.scan_id),
            escape(run.scan_root),
            f"[{style}]{run.status.value}[/]",
            _format_timestamp(run.started_at),
            _format_timestamp(run.finished_at),
            _format_count(run.total_paths),
            _format_count(run.added_count),
            _format_count(run.modified_count),
            _format_count(run.removed_count),
            format_size(net) if net is not None else "-",
        )

    console.print(table)

    failed = [run for run in runs if run.status == ScanStatus.FAILED]
    for run in failed:
        reason = escape(run.failure_reason or "")
        console.print(f"  [status.failed]Scan {run.scan_id}:[/] {reason}")
