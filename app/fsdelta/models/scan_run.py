"""Scan run model.

A ScanRun is created when a scan opens and is mutated exactly once
when it finalizes. A run whose finish fields are still null is
"results unknown", never "zero changes".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ScanStatus(str, Enum):
    """Derived status of a scan run.

    Attributes:
        RUNNING: Opened and not yet finalized.
        FAILED: Open, with a recorded failure reason.
        FINISHED: Finalized with statistics.
    """

    RUNNING = "running"
    FAILED = "failed"
    FINISHED = "finished"


@dataclass(frozen=True, slots=True)
class ScanRun:
    """One invocation of the scan pipeline.

    Attributes:
        scan_id: Store-assigned identifier.
        scan_root: Root path the scan covered.
        started_at: When the scan opened (ISO 8601).
        finished_at: When the scan finalized (None while open).
        total_paths: Files observed by the crawl.
        added_count: Files added.
        modified_count: Files modified.
        removed_count: Files deleted.
        added_bytes: Sum of sizes of added files.
        modified_bytes: Signed sum of size changes of modified files.
        deleted_bytes: Sum of old sizes of deleted files.
        metadata: Free-form scan metadata.
        failure_reason: Why an open scan stopped (None unless failed).
    """

    scan_id: int
    scan_root: str
    started_at: str
    finished_at: str | None = None
    total_paths: int | None = None
    added_count: int | None = None
    modified_count: int | None = None
    removed_count: int | None = None
    added_bytes: int | None = None
    modified_bytes: int | None = None
    deleted_bytes: int | None = None
    metadata: dict[str, Any] = field(default_factory=lambda: {})
    failure_reason: str | None = None

    def __post_init__(self) -> None:
        """Validate that a run is either fully open or fully closed."""
        counts = (self.total_paths, self.added_count, self.modified_count, self.removed_count)
        closed = self.finished_at is not None
        if closed and any(c is None for c in counts):
            msg = f"Scan {self.scan_id} is finished but has missing counts"
            raise ValueError(msg)
        if not closed and any(c is not None for c in counts):
            msg = f"Scan {self.scan_id} has counts but no finish time"
            raise ValueError(msg)

    @property
    def status(self) -> ScanStatus:
        """Derived status of the run."""
        if self.finished_at is not None:
            return ScanStatus.FINISHED
        if self.failure_reason is not None:
            return ScanStatus.FAILED
        return ScanStatus.RUNNING

    @property
    def is_finished(self) -> bool:
        """Check if the run was finalized."""
        return self.finished_at is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        return {
            "scan_id": self.scan_id,
            "scan_root": self.scan_root,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "total_paths": self.total_paths,
            "added_count": self.added_count,
            "modified_count": self.modified_count,
            "removed_count": self.removed_count,
            "added_bytes": self.added_bytes,
            "modified_bytes": self.modified_bytes,
            "deleted_bytes": self.deleted_bytes,
            "metadata": self.metadata,
            "failure_reason": self.failure_reason,
        }
