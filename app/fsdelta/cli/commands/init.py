"""Init command implementation.

Provisions the database schema and, optionally, a default config file.
"""

from typing import Annotated

import typer

from fsdelta.cli.types import get_settings, open_store
from fsdelta.core.config import ConfigError, save_settings
from fsdelta.core.paths import get_config_path
from fsdelta.store.database import StoreError, mask_database_url
from fsdelta.utils.formatting import print_error, print_info, print_success, print_warning

app = typer.Typer(
    help="Initialize the database schema.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def init_database(
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
    reset: Annotated[
        bool,
        typer.Option(
            "--reset",
            help="Drop all tables and scan history before provisioning.",
        ),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Skip the confirmation prompt for --reset.",
        ),
    ] = False,
    write_config: Annotated[
        bool,
        typer.Option(
            "--write-config",
            help="Write a default config file if none exists.",
        ),
    ] = False,
) -> None:
    """Provision the schema for scan runs, files and the change log.

    Running init on an initialized database is a no-op.

    Examples:
        fsdelta init                                # Default database
        fsdelta init -d sqlite:///data/fsdelta.db   # Custom database
        fsdelta init --reset --yes                  # Wipe and recreate
        fsdelta init --write-config                 # Also create config.toml
    """
    if ctx.invoked_subcommand is not None:
        return

    settings = get_settings(ctx)
    url = database_url or settings.database_url
    masked = mask_database_url(url)

    if write_config:
        config_path = (ctx.obj or {}).get("config_path") or get_config_path()
        if config_path.exists():
            print_info(f"Config already exists: {config_path}")
        else:
            try:
                saved = save_settings(settings.model_copy(update={"database_url": url}), config_path)
            except ConfigError as e:
                print_error(str(e))
                raise typer.Exit(code=1) from e
            print_success(f"Config created: {saved}")

    if reset and not yes:
        confirmed = typer.confirm(f"Drop all scan data in {masked}?", default=False)
        if not confirmed:
            print_info("Aborted.")
            raise typer.Exit()

    with open_store(url, require_schema=False) as store:
        try:
            existed = store.is_initialized()
            store.initialize(reset=reset)
        except StoreError as e:
            print_error(str(e))
            raise typer.Exit(code=1) from e

    if reset:
        print_warning(f"Schema reset: {masked}")
    elif existed:
        print_info(f"Database already initialized: {masked}")
        return
    print_success(f"Database initialized: {masked}")
