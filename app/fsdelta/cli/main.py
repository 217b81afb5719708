"""Main CLI application entry point.

Defines the Typer application and global options.
"""

from pathlib import Path
from typing import Annotated

import typer

from fsdelta import __version__
from fsdelta.cli.commands import changes, init, scan, scans
from fsdelta.core.config import ConfigError, load_settings
from fsdelta.utils.formatting import print_error
from fsdelta.utils.logging import setup_logging

# Create main Typer app
app = typer.Typer(
    name="fsdelta",
    help="Track filesystem changes between scans.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"fsdelta version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose output.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Suppress non-essential output.",
        ),
    ] = False,
    log_file: Annotated[
        Path | None,
        typer.Option(
            "--log-file",
            envvar="LOG_FILE",
            help="Also write log records to this file.",
        ),
    ] = None,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Settings file (default: ~/.config/fsdelta/config.toml).",
        ),
    ] = None,
) -> None:
    """fsdelta - Track filesystem changes between scans.

    Crawl a directory tree, compare it with the last known state and
    record every added, modified and deleted file.
    """
    try:
        settings = load_settings(config, required=config is not None)
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    effective_log_file = log_file or settings.log_file
    try:
        setup_logging(effective_log_file, verbose=verbose, quiet=quiet)
    except OSError as e:
        print_error(f"Cannot open log file {effective_log_file}: {e}")
        raise typer.Exit(code=1) from e

    # Store options in context for subcommands
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = config
    ctx.obj["settings"] = settings


# Register commands
app.add_typer(init.app, name="init")
app.add_typer(scan.app, name="scan")
app.add_typer(scans.app, name="scans")
app.add_typer(changes.app, name="changes")


if __name__ == "__main__":
    app()
