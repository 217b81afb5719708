"""Three-way reconciliation of a staging set against the canonical set.

Classification is a pure set operation over two collections keyed by
path. Every path in the union of staged and canonical paths is put in
exactly one of four categories:

- deleted: canonical only
- added: staged only
- modified: both, and size or modification time differ
- unchanged: both, with identical size and modification time

The mutation step then applies the classification in a single
transaction, so a reader sees either the pre-scan or the fully
reconciled canonical set and change log.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from fsdelta.models.records import CanonicalFile, FileRecord
from fsdelta.store.database import StoreError, store_errors
from fsdelta.store.repository import ScanStore

logger = logging.getLogger(__name__)


class ReconcileInvariantError(Exception):
    """Raised when a classification does not partition the path space."""


class DeltaKind(str, Enum):
    """Classification of one path in a reconciliation.

    Attributes:
        DELETED: Known to the canonical set, not observed by the scan.
        ADDED: Observed by the scan, unknown to the canonical set.
        MODIFIED: Known and observed with a different size or mtime.
        UNCHANGED: Known and observed with identical size and mtime.
    """

    DELETED = "deleted"
    ADDED = "added"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


@dataclass(frozen=True, slots=True)
class Delta:
    """Classified path with the two sides it was derived from.

    Attributes:
        path: File path.
        kind: Category the path falls in.
        staged: Record observed by the scan (None for deleted).
        current: Canonical row before reconciliation (None for added).
    """

    path: str
    kind: DeltaKind
    staged: FileRecord | None
    current: CanonicalFile | None

    @property
    def old_size(self) -> int:
        """Canonical size, 0 when the path was unknown."""
        return self.current.size_bytes if self.current is not None else 0

    @property
    def new_size(self) -> int:
        """Staged size, 0 when the path was not observed."""
        return self.staged.size_bytes if self.staged is not None else 0


def classify(
    staged: Mapping[str, FileRecord],
    canonical: Mapping[str, CanonicalFile],
) -> list[Delta]:
    """Classify every path of the staged and canonical sets.

    Categories are tested in the order deleted, added, modified,
    unchanged, and the first that applies wins.

    Args:
        staged: Staging set keyed by path.
        canonical: Canonical files under the scan root keyed by path.

    Returns:
        One Delta per path in the union of both key sets.
    """
    deltas: list[Delta] = []

    for path, current in canonical.items():
        if path not in staged:
            deltas.append(Delta(path, DeltaKind.DELETED, None, current))

    for path, record in staged.items():
        current = canonical.get(path)
        if current is None:
            kind = DeltaKind.ADDED
        elif current.matches(record):
            kind = DeltaKind.UNCHANGED
        else:
            kind = DeltaKind.MODIFIED
        deltas.append(Delta(path, kind, record, current))

    return deltas


def check_partition(
    deltas: list[Delta],
    staged: Mapping[str, FileRecord],
    canonical: Mapping[str, CanonicalFile],
) -> None:
    """Verify that deltas cover every path exactly once.

    Raises:
        ReconcileInvariantError: If a path is classified twice, a path is
            missing, or a category contradicts the sides it was built from.
    """
    seen: set[str] = set()
    for delta in deltas:
        if delta.path in seen:
            msg = f"Path classified more than once: {delta.path}"
            raise ReconcileInvariantError(msg)
        seen.add(delta.path)

        in_staged = delta.path in staged
        in_canonical = delta.path in canonical
        expected_sides = {
            DeltaKind.DELETED: (False, True),
            DeltaKind.ADDED: (True, False),
            DeltaKind.MODIFIED: (True, True),
            DeltaKind.UNCHANGED: (True, True),
        }[delta.kind]
        if (in_staged, in_canonical) != expected_sides:
            msg = f"Path {delta.path} classified as {delta.kind.value} inconsistently"
            raise ReconcileInvariantError(msg)

    universe = staged.keys() | canonical.keys()
    if seen != universe:
        missing = sorted(universe - seen)[:5]
        msg = f"{len(universe - seen)} path(s) left unclassified, e.g. {missing}"
        raise ReconcileInvariantError(msg)


@dataclass(frozen=True, slots=True)
class ReconcileSummary:
    """Aggregate result of a reconciliation.

    Byte volumes: ``added_bytes`` sums new sizes, ``modified_bytes`` sums
    ``new - old`` (signed) and ``deleted_bytes`` sums old sizes.
    """

    added: int = 0
    modified: int = 0
    deleted: int = 0
    unchanged: int = 0
    added_bytes: int = 0
    modified_bytes: int = 0
    deleted_bytes: int = 0
    duration_seconds: float = 0.0

    @property
    def total_changes(self) -> int:
        """Number of change log entries produced."""
        return self.added + self.modified + self.deleted

    @property
    def total_paths(self) -> int:
        """Number of paths classified."""
        return self.total_changes + self.unchanged

    @classmethod
    def from_deltas(cls, deltas: list[Delta], duration_seconds: float = 0.0) -> ReconcileSummary:
        """Aggregate counts and byte volumes from classified deltas."""
        counts = dict.fromkeys(DeltaKind, 0)
        added_bytes = modified_bytes = deleted_bytes = 0
        for delta in deltas:
            counts[delta.kind] += 1
            if delta.kind == DeltaKind.ADDED:
                added_bytes += delta.new_size
            elif delta.kind == DeltaKind.MODIFIED:
                modified_bytes += delta.new_size - delta.old_size
            elif delta.kind == DeltaKind.DELETED:
                deleted_bytes += delta.old_size
        return cls(
            added=counts[DeltaKind.ADDED],
            modified=counts[DeltaKind.MODIFIED],
            deleted=counts[DeltaKind.DELETED],
            unchanged=counts[DeltaKind.UNCHANGED],
            added_bytes=added_bytes,
            modified_bytes=modified_bytes,
            deleted_bytes=deleted_bytes,
            duration_seconds=duration_seconds,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "added": self.added,
            "modified": self.modified,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "added_bytes": self.added_bytes,
            "modified_bytes": self.modified_bytes,
            "deleted_bytes": self.deleted_bytes,
            "duration_seconds": round(self.duration_seconds, 3),
        }


class Reconciler:
    """Applies the delta between a scan's staging set and the canonical set.

    Args:
        store: Store holding the scan run, staging set and canonical set.
    """

    def __init__(self, store: ScanStore) -> None:
        self._store = store

    def reconcile(self, scan_id: int) -> ReconcileSummary:
        """Reconcile a fully loaded staging set.

        Deletes, inserts, updates and touches canonical rows, writes the
        change log and clears the staging set, all in one transaction.
        Any failure rolls everything back.

        Args:
            scan_id: Scan whose staging set to reconcile.

        Returns:
            Counts and byte volumes per category.

        Raises:
            ReconcileInvariantError: If the classification is inconsistent.
            StoreError: If the scan is unknown or a database operation fails.
        """
        started = time.monotonic()
        scan = self._store.get_scan(scan_id)
        if scan is None:
            msg = f"Scan {scan_id} does not exist"
            raise StoreError(msg)

        recorded_at = datetime.now(UTC).isoformat()

        with store_errors(f"reconcile scan {scan_id}"), self._store.transaction():
            staged = self._store.load_staging(scan_id)
            canonical = self._store.load_canonical_under(scan.scan_root)
            logger.debug(
                "Reconciling scan %d: %d staged, %d canonical under %s",
                scan_id,
                len(staged),
                len(canonical),
                scan.scan_root,
            )

            deltas = classify(staged, canonical)
            check_partition(deltas, staged, canonical)

            by_kind: dict[DeltaKind, list[Delta]] = {kind: [] for kind in DeltaKind}
            for delta in deltas:
                by_kind[delta.kind].append(delta)

            self._store.record_deleted(
                scan_id,
                [d.current for d in by_kind[DeltaKind.DELETED] if d.current is not None],
                recorded_at,
            )
            self._store.record_added(
                scan_id,
                [d.staged for d in by_kind[DeltaKind.ADDED] if d.staged is not None],
                recorded_at,
            )
            self._store.record_modified(
                scan_id,
                [
                    (d.current, d.staged)
                    for d in by_kind[DeltaKind.MODIFIED]
                    if d.current is not None and d.staged is not None
                ],
                recorded_at,
            )
            self._store.touch_unchanged(
                scan_id,
                [d.path for d in by_kind[DeltaKind.UNCHANGED]],
                recorded_at,
            )
            self._store.clear_staging(scan_id)

        summary = ReconcileSummary.from_deltas(deltas, time.monotonic() - started)
        logger.info(
            "Reconciled scan %d: %d added, %d modified, %d deleted, %d unchanged in %.2fs",
            scan_id,
            summary.added,
            summary.modified,
            summary.deleted,
            summary.unchanged,
            summary.duration_seconds,
        )
        return summary
