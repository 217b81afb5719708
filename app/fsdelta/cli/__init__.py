"""CLI package for fsdelta.

This package contains the Typer application and all subcommands.
"""

from fsdelta.cli.main import app

__all__ = ["app"]
