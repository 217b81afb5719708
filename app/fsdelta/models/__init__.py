"""Data models for fsdelta.

This module exports the core data structures used throughout the application.
"""

from fsdelta.models.changes import ChangeLogEntry, ChangeType
from fsdelta.models.records import (
    UNKNOWN_FILE_TYPE,
    CanonicalFile,
    FileRecord,
    file_type_for,
    format_mtime,
)
from fsdelta.models.scan_run import ScanRun, ScanStatus

__all__ = [
    "UNKNOWN_FILE_TYPE",
    "CanonicalFile",
    "ChangeLogEntry",
    "ChangeType",
    "FileRecord",
    "ScanRun",
    "ScanStatus",
    "file_type_for",
    "format_mtime",
]
