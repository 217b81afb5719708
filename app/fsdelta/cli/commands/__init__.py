"""CLI commands for fsdelta.

This package contains all subcommand implementations.
"""

from fsdelta.cli.commands import changes, init, scan, scans

__all__ = ["changes", "init", "scan", "scans"]
