"""Changes command for viewing the change log of a scan."""

import json
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape

from fsdelta.cli.types import get_settings, open_store
from fsdelta.models.changes import ChangeLogEntry, ChangeType
from fsdelta.store.database import StoreError
from fsdelta.utils.formatting import console, create_table, format_size, print_error, print_info

app = typer.Typer(
    help="Show files changed by a scan.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def list_changes(
    ctx: typer.Context,
    scan_id: Annotated[
        int,
        typer.Option(
            "--scan-id",
            "-s",
            help="Scan whose changes to show.",
        ),
    ],
    change_type: Annotated[
        ChangeType | None,
        typer.Option(
            "--type",
            "-t",
            case_sensitive=False,
            help="Only show changes of this type.",
        ),
    ] = None,
    under: Annotated[
        Path | None,
        typer.Option(
            "--under",
            "-u",
            help="Only show changes inside this directory.",
        ),
    ] = None,
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
        int | None,
        typer.Option(
            "--limit",
            "-n",
            min=1,
            help="Maximum number of entries to show.",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """Show the change log entries recorded by a scan.

    Examples:
        fsdelta changes -s 3                      # All changes of scan 3
        fsdelta changes -s 3 -t deleted           # Only deletions
        fsdelta changes -s 3 -u /data/projects    # Only inside a subtree
    """
    if ctx.invoked_subcommand is not None:
        return

    url = database_url or get_settings(ctx).database_url
    with open_store(url) as store:
        try:
            if store.get_scan(scan_id) is None:
                print_error(f"Scan {scan_id} not found.")
                raise typer.Exit(code=1)
            entries = store.list_changes(
                scan_id,
                change_type=change_type,
                under=os.path.abspath(under.expanduser()) if under is not None else None,
                limit=limit,
            )
        except StoreError as e:
            print_error(str(e))
            raise typer.Exit(code=1) from e

    if json_output:
        typer.echo(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return

    if not entries:
        print_info(f"No changes recorded for scan {scan_id}.")
        return

    _print_table(scan_id, entries)


def _format_optional_size(size_bytes: int | None) -> str:
    return format_size(size_bytes) if size_bytes is not None else "-"


def _print_table(scan_id: int, entries: list[ChangeLogEntry]) -> None:
    """Print change log entries as a Rich table."""
    table = create_table(f"Changes in Scan {scan_id}")
    table.add_column("", width=1, justify="center")
    table.add_column("Path", overflow="fold")
    table.add_column("Old Size", justify="right", style="muted")
    table.add_column("New Size", justify="right", style="info")
    table.add_column("Delta", justify="right")

    markers = {ChangeType.ADDED: "+", ChangeType.MODIFIED: "~", ChangeType.DELETED: "-"}
    for entry in entries:
        style = entry.change_type.value
        table.add_row(
            f"[{style}]{markers[entry.change_type]}[/]",
            f"[{style}]{escape(entry.path)}[/]",
            _format_optional_size(entry.old_size_bytes),
            _format_optional_size(entry.new_size_bytes),
            format_size(entry.size_delta),
        )

    console.print(table)
    console.print(f"  [muted]{len(entries)} change(s)[/muted]")
