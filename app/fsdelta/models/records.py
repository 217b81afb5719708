"""File metadata models for staged and canonical file state.

This module defines the record produced by the crawler for every
regular file it observes, and the canonical row kept for every
distinct file path the tracker has ever seen.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import PurePath
from typing import Any

UNKNOWN_FILE_TYPE = "unknown"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def format_mtime(mtime_ns: int) -> str:
    """Convert a nanosecond modification time to an ISO 8601 UTC string.

    Microsecond precision is kept and integer arithmetic is used so the
    same ``st_mtime_ns`` always yields the same string.

    Args:
        mtime_ns: Modification time in nanoseconds since the epoch.

    Returns:
        ISO 8601 formatted timestamp with timezone.
    """
    return (_EPOCH + timedelta(microseconds=mtime_ns // 1000)).isoformat()


def file_type_for(name: str) -> str:
    """Derive the file type from a file name.

    Args:
        name: File name (basename).

    Returns:
        Lower-cased extension without the dot, or "unknown".
    """
    suffix = PurePath(name).suffix
    if not suffix or suffix == ".":
        return UNKNOWN_FILE_TYPE
    return suffix[1:].lower()


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Metadata for one regular file observed by a crawl.

    Attributes:
        path: Absolute file path.
        name: File name (basename).
        file_type: Lower-cased extension, or "unknown".
        size_bytes: File size in bytes.
        mtime: Last modification time in ISO 8601 format.
    """

    path: str
    name: str
    file_type: str
    size_bytes: int
    mtime: str

    def __post_init__(self) -> None:
        """Validate record data after initialization."""
        if not self.path:
            msg = "File path cannot be empty"
            raise ValueError(msg)
        if self.size_bytes < 0:
            msg = f"File size cannot be negative, got {self.size_bytes}"
            raise ValueError(msg)

    @classmethod
    def from_stat(cls, path: str, stat_result: os.stat_result) -> FileRecord:
        """Build a record from a path and its stat result.

        Args:
            path: Absolute file path.
            stat_result: Result of ``os.stat`` / ``DirEntry.stat``.

        Returns:
            FileRecord for the file.
        """
        name = os.path.basename(path)
        return cls(
            path=path,
            name=name,
            file_type=file_type_for(name),
            size_bytes=stat_result.st_size,
            mtime=format_mtime(stat_result.st_mtime_ns),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "path": self.path,
            "name": self.name,
            "file_type": self.file_type,
            "size_bytes": self.size_bytes,
            "mtime": self.mtime,
        }


@dataclass(frozen=True, slots=True)
class CanonicalFile:
    """Durable "current known state" of one tracked file.

    Attributes:
        path: Absolute file path (primary key).
        name: File name (basename).
        file_type: Lower-cased extension, or "unknown".
        size_bytes: File size in bytes.
        mtime: Last modification time in ISO 8601 format.
        last_seen_scan: ID of the scan that last observed or changed the file.
        last_updated: When the row was last written (ISO 8601).
        path_key: Hierarchical key of the containing directory.
        fingerprint: Content fingerprint, filled by a separate process.
    """

    path: str
    name: str
    file_type: str
    size_bytes: int
    mtime: str
    last_seen_scan: int
    last_updated: str
    path_key: str
    fingerprint: str | None = field(default=None)

    def matches(self, record: FileRecord) -> bool:
        """Check whether a staged record has identical size and mtime."""
        return self.size_bytes == record.size_bytes and self.mtime == record.mtime

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "path": self.path,
            "name": self.name,
            "file_type": self.file_type,
            "size_bytes": self.size_bytes,
            "mtime": self.mtime,
            "fingerprint": self.fingerprint,
            "last_seen_scan": self.last_seen_scan,
            "last_updated": self.last_updated,
            "path_key": self.path_key,
        }
