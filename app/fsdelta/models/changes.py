"""Change log model for recorded file changes.

One entry is appended per (scan, path) in which a change was
detected. Entries are never updated once written.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ChangeType(str, Enum):
    """Type of change recorded in the change log.

    Attributes:
        ADDED: File observed for the first time under the scan root.
        MODIFIED: File size or modification time differs from canonical state.
        DELETED: Canonical file not observed by the scan.
    """

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True, slots=True)
class ChangeLogEntry:
    """Record of a single detected change.

    Attributes:
        scan_id: Scan in which the change was detected.
        path: Absolute file path.
        change_type: Kind of change.
        old_size_bytes: Size before the change (None for added files).
        new_size_bytes: Size after the change (None for deleted files).
        old_mtime: Modification time before the change.
        new_mtime: Modification time after the change.
        recorded_at: When the entry was written (ISO 8601).
        path_key: Hierarchical key of the containing directory.
    """

    scan_id: int
    path: str
    change_type: ChangeType
    old_size_bytes: int | None
    new_size_bytes: int | None
    old_mtime: str | None
    new_mtime: str | None
    recorded_at: str
    path_key: str

    def __post_init__(self) -> None:
        """Validate that the populated sides match the change type."""
        if self.change_type == ChangeType.ADDED and self.new_size_bytes is None:
            msg = "Added entries require a new size"
            raise ValueError(msg)
        if self.change_type == ChangeType.DELETED and self.old_size_bytes is None:
            msg = "Deleted entries require an old size"
            raise ValueError(msg)
        if self.change_type == ChangeType.MODIFIED and (
            self.old_size_bytes is None or self.new_size_bytes is None
        ):
            msg = "Modified entries require both old and new sizes"
            raise ValueError(msg)

    @property
    def size_delta(self) -> int:
        """Signed byte-volume change contributed by this entry."""
        return (self.new_size_bytes or 0) - (self.old_size_bytes or 0)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "scan_id": self.scan_id,
            "path": self.path,
            "change_type": self.change_type.value,
            "old_size_bytes": self.old_size_bytes,
            "new_size_bytes": self.new_size_bytes,
            "old_mtime": self.old_mtime,
            "new_mtime": self.new_mtime,
            "recorded_at": self.recorded_at,
        }
