"""Shared helpers for CLI commands."""

import typer

from fsdelta.core.config import ScanSettings, load_settings
from fsdelta.store.database import StoreError, mask_database_url
from fsdelta.store.repository import ScanStore
from fsdelta.utils.formatting import print_error, print_info


def get_settings(ctx: typer.Context) -> ScanSettings:
    """Get the settings loaded by the main callback.

    Falls back to the default config file when a command is invoked
    without the main app (e.g., in tests).
    """
    obj = ctx.obj if isinstance(ctx.obj, dict) else {}
    settings = obj.get("settings")
    if isinstance(settings, ScanSettings):
        return settings
    return load_settings()


def open_store(database_url: str, *, require_schema: bool = True) -> ScanStore:
    """Open the store or exit with an error message.

    Args:
        database_url: Store connection string.
        require_schema: Exit if the schema has not been provisioned.

    Returns:
        Open ScanStore; the caller closes it.

    Raises:
        typer.Exit: If the store cannot be opened or is not initialized.
    """
    try:
        store = ScanStore.open(database_url)
    except StoreError as e:
        print_error(str(e))
        raise typer.Exit(code=1) from e

    if require_schema:
        try:
            initialized = store.is_initialized()
        except StoreError as e:
            store.close()
            print_error(str(e))
            raise typer.Exit(code=1) from e
        if not initialized:
            store.close()
            print_error(f"Database is not initialized: {mask_database_url(database_url)}")
            print_info("Run 'fsdelta init' first.")
            raise typer.Exit(code=1)

    return store
