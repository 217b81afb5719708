"""Persistence for scan runs, canonical files, staging and the change log.

The ScanStore class wraps one database connection and exposes every
read and write the scan pipeline needs. Methods that mutate several
rows are meant to be called inside :meth:`ScanStore.transaction` when
they form part of a larger atomic unit (reconciliation); on their own
they run in autocommit mode.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import AbstractContextManager
from typing import Any

from fsdelta.models.changes import ChangeLogEntry, ChangeType
from fsdelta.models.records import CanonicalFile, FileRecord
from fsdelta.models.scan_run import ScanRun
from fsdelta.store.database import (
    StoreError,
    connect,
    initialize_schema,
    schema_exists,
    store_errors,
    transaction,
)
from fsdelta.store.hierarchy import path_key, subtree_bounds

logger = logging.getLogger(__name__)


def _row_to_scan_run(row: sqlite3.Row) -> ScanRun:
    metadata_raw = row["scan_metadata"]
    return ScanRun(
        scan_id=row["scan_id"],
        scan_root=row["scan_root"],
        started_at=row["started_at"],
        finished_at=row["finished_at"],
        total_paths=row["total_paths_count"],
        added_count=row["added_files_count"],
        modified_count=row["modified_files_count"],
        removed_count=row["removed_files_count"],
        added_bytes=row["added_bytes"],
        modified_bytes=row["modified_bytes"],
        deleted_bytes=row["deleted_bytes"],
        metadata=json.loads(metadata_raw) if metadata_raw else {},
        failure_reason=row["failure_reason"],
    )


def _row_to_canonical(row: sqlite3.Row) -> CanonicalFile:
    return CanonicalFile(
        path=row["file_path"],
        name=row["file_name"],
        file_type=row["file_type"],
        size_bytes=row["file_size_bytes"],
        mtime=row["file_mtime"],
        last_seen_scan=row["last_seen_scan"],
        last_updated=row["last_updated"],
        path_key=row["path_key"],
        fingerprint=row["file_fingerprint"],
    )


def _row_to_change(row: sqlite3.Row) -> ChangeLogEntry:
    return ChangeLogEntry(
        scan_id=row["scan_id"],
        path=row["file_path"],
        change_type=ChangeType(row["change_type"]),
        old_size_bytes=row["old_size_bytes"],
        new_size_bytes=row["new_size_bytes"],
        old_mtime=row["old_mtime"],
        new_mtime=row["new_mtime"],
        recorded_at=row["recorded_at"],
        path_key=row["path_key"],
    )


class ScanStore:
    """Relational store for scan state.

    Example:
        >>> with ScanStore.open("sqlite:///tmp/fsdelta.db") as store:
        ...     store.initialize()
        ...     scan_id = store.open_scan("/data", "2026-01-01T00:00:00+00:00")
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialize the store with an open connection.

        Args:
            conn: Connection created by :func:`fsdelta.store.database.connect`.
        """
        self._conn = conn

    @classmethod
    def open(cls, url: str) -> ScanStore:
        """Connect to the database at ``url``.

        Raises:
            StoreError: If the database cannot be opened.
        """
        return cls(connect(url))

    def __enter__(self) -> ScanStore:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    @property
    def connection(self) -> sqlite3.Connection:
        """Underlying database connection."""
        return self._conn

    def close(self) -> None:
        """Close the underlying connection."""
        self._conn.close()

    def transaction(self) -> AbstractContextManager[sqlite3.Connection]:
        """Open an atomic unit of work on this store."""
        return transaction(self._conn)

    # =========================================================================
    # Schema
    # =========================================================================

    def initialize(self, *, reset: bool = False) -> None:
        """Provision the schema (see :func:`initialize_schema`)."""
        initialize_schema(self._conn, reset=reset)

    def is_initialized(self) -> bool:
        """Check whether the schema has been provisioned."""
        return schema_exists(self._conn)

    # =========================================================================
    # Scan runs
    # =========================================================================

    def open_scan(self, scan_root: str, started_at: str) -> int:
        """Insert a new open scan run.

        Args:
            scan_root: Root path the scan covers.
            started_at: Start timestamp (ISO 8601).

        Returns:
            The new scan ID.
        """
        with store_errors("open scan run"):
            cursor = self._conn.execute(
                "INSERT INTO scan_runs (scan_root, started_at) VALUES (?, ?)",
                (scan_root, started_at),
            )
        scan_id = cursor.lastrowid
        if scan_id is None:
            msg = "Store did not return a scan ID"
            raise StoreError(msg)
        return scan_id

    def get_scan(self, scan_id: int) -> ScanRun | None:
        """Fetch a scan run by ID, or None if it does not exist."""
        with store_errors("read scan run"):
            row = self._conn.execute(
                "SELECT * FROM scan_runs WHERE scan_id = ?", (scan_id,)
            ).fetchone()
        return _row_to_scan_run(row) if row is not None else None

    def list_scans(self, limit: int | None = None) -> list[ScanRun]:
        """List scan runs, newest first.

        Args:
            limit: Maximum number of runs to return. None returns all.
        """
        query = "SELECT * FROM scan_runs ORDER BY scan_id DESC"
        params: tuple[Any, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        with store_errors("list scan runs"):
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_scan_run(row) for row in rows]

    def change_totals(self, scan_id: int) -> dict[ChangeType, tuple[int, int]]:
        """Aggregate the change log of a scan.

        Returns:
            Mapping of change type to ``(count, bytes)`` where bytes is the
            new size for added files, the signed size change for modified
            files and the old size for deleted files.
        """
        with store_errors("aggregate change log"):
            rows = self._conn.execute(
                """
                SELECT change_type,
                       COUNT(*) AS n,
                       COALESCE(SUM(COALESCE(new_size_bytes, 0) - COALESCE(old_size_bytes, 0)), 0)
                           AS delta
                FROM file_changes
                WHERE scan_id = ?
                GROUP BY change_type
                """,
                (scan_id,),
            ).fetchall()

        totals = {change_type: (0, 0) for change_type in ChangeType}
        for row in rows:
            change_type = ChangeType(row["change_type"])
            delta = row["delta"]
            # Deleted volume is reported as the positive size that went away
            volume = -delta if change_type == ChangeType.DELETED else delta
            totals[change_type] = (row["n"], volume)
        return totals

    def finalize_scan(
        self,
        scan_id: int,
        *,
        finished_at: str,
        total_paths: int,
        metadata: dict[str, Any],
    ) -> ScanRun:
        """Close a scan run with statistics computed from its change log.

        The run is updated exactly once: finalizing an already finished or
        missing run raises.

        Args:
            scan_id: Scan to finalize.
            finished_at: Finish timestamp (ISO 8601).
            total_paths: Number of files observed by the crawl.
            metadata: Free-form metadata stored as JSON.

        Returns:
            The finalized ScanRun.

        Raises:
            StoreError: If the run is missing, already finished, or the
                update fails.
        """
        with store_errors("finalize scan run"), self.transaction():
            totals = self.change_totals(scan_id)
            added, added_bytes = totals[ChangeType.ADDED]
            modified, modified_bytes = totals[ChangeType.MODIFIED]
            deleted, deleted_bytes = totals[ChangeType.DELETED]
            cursor = self._conn.execute(
                """
                UPDATE scan_runs
                SET finished_at = ?,
                    total_paths_count = ?,
                    added_files_count = ?,
                    modified_files_count = ?,
                    removed_files_count = ?,
                    added_bytes = ?,
                    modified_bytes = ?,
                    deleted_bytes = ?,
                    scan_metadata = ?,
                    failure_reason = NULL
                WHERE scan_id = ? AND finished_at IS NULL
                """,
                (
                    finished_at,
                    total_paths,
                    added,
                    modified,
                    deleted,
                    added_bytes,
                    modified_bytes,
                    deleted_bytes,
                    json.dumps(metadata, sort_keys=True),
                    scan_id,
                ),
            )
            if cursor.rowcount != 1:
                msg = f"Scan {scan_id} does not exist or is already finished"
                raise StoreError(msg)

        scan = self.get_scan(scan_id)
        if scan is None:
            msg = f"Scan {scan_id} disappeared during finalize"
            raise StoreError(msg)
        return scan

    def mark_failed(self, scan_id: int, reason: str) -> None:
        """Record why an open scan stopped, leaving finish fields null."""
        with store_errors("mark scan run failed"):
            self._conn.execute(
                "UPDATE scan_runs SET failure_reason = ? WHERE scan_id = ? AND finished_at IS NULL",
                (reason, scan_id),
            )

    # =========================================================================
    # Staging
    # =========================================================================

    def bulk_load_staging(self, scan_id: int, records: Iterable[FileRecord]) -> int:
        """Load a record batch into staging as a single atomic operation.

        Either every record becomes visible or none does.

        Args:
            scan_id: Scan the records belong to.
            records: Records to stage.

        Returns:
            Number of rows inserted.

        Raises:
            StoreError: If any row cannot be inserted (the load is rolled back).
        """
        loaded = 0

        def rows() -> Iterator[tuple[Any, ...]]:
            nonlocal loaded
            for record in records:
                loaded += 1
                yield (
                    scan_id,
                    record.path,
                    record.name,
                    record.file_type,
                    record.size_bytes,
                    record.mtime,
                )

        with store_errors("load staging"), self.transaction():
            self._conn.executemany(
                """
                INSERT INTO staging_files
                    (scan_id, file_path, file_name, file_type, file_size_bytes, file_mtime)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                rows(),
            )
        return loaded

    def count_staging(self, scan_id: int) -> int:
        """Count staged rows for a scan."""
        with store_errors("count staging"):
            row = self._conn.execute(
                "SELECT COUNT(*) AS n FROM staging_files WHERE scan_id = ?", (scan_id,)
            ).fetchone()
        return int(row["n"])

    def load_staging(self, scan_id: int) -> dict[str, FileRecord]:
        """Read the staging set of a scan keyed by path."""
        with store_errors("read staging"):
            rows = self._conn.execute(
                """
                SELECT file_path, file_name, file_type, file_size_bytes, file_mtime
                FROM staging_files
                WHERE scan_id = ?
                """,
                (scan_id,),
            ).fetchall()
        return {
            row["file_path"]: FileRecord(
                path=row["file_path"],
                name=row["file_name"],
                file_type=row["file_type"],
                size_bytes=row["file_size_bytes"],
                mtime=row["file_mtime"],
            )
            for row in rows
        }

    def clear_staging(self, scan_id: int) -> int:
        """Delete every staged row of a scan.

        Returns:
            Number of rows removed.
        """
        with store_errors("clear staging"):
            cursor = self._conn.execute("DELETE FROM staging_files WHERE scan_id = ?", (scan_id,))
        return cursor.rowcount

    # =========================================================================
    # Canonical files
    # =========================================================================

    def get_file(self, file_path: str) -> CanonicalFile | None:
        """Fetch the canonical row of a path, or None."""
        with store_errors("read canonical file"):
            row = self._conn.execute(
                "SELECT * FROM files WHERE file_path = ?", (file_path,)
            ).fetchone()
        return _row_to_canonical(row) if row is not None else None

    def load_canonical_under(self, root: str) -> dict[str, CanonicalFile]:
        """Read every canonical file in the subtree of ``root`` keyed by path."""
        low, high = subtree_bounds(root)
        with store_errors("read canonical files"):
            rows = self._conn.execute(
                "SELECT * FROM files WHERE path_key >= ? AND path_key < ?",
                (low, high),
            ).fetchall()
        return {row["file_path"]: _row_to_canonical(row) for row in rows}

    def count_files(self, root: str | None = None) -> int:
        """Count canonical files, optionally restricted to a subtree."""
        query = "SELECT COUNT(*) AS n FROM files"
        params: tuple[Any, ...] = ()
        if root is not None:
            query += " WHERE path_key >= ? AND path_key < ?"
            params = subtree_bounds(root)
        with store_errors("count canonical files"):
            row = self._conn.execute(query, params).fetchone()
        return int(row["n"])

    def record_deleted(self, scan_id: int, files: list[CanonicalFile], recorded_at: str) -> None:
        """Log and remove canonical files that a scan no longer observes."""
        with store_errors("apply deleted files"):
            self._conn.executemany(
                """
                INSERT INTO file_changes
                    (scan_id, file_path, change_type, old_size_bytes, old_mtime,
                     recorded_at, path_key)
                VALUES (?, ?, 'deleted', ?, ?, ?, ?)
                """,
                [(scan_id, f.path, f.size_bytes, f.mtime, recorded_at, f.path_key) for f in files],
            )
            self._conn.executemany(
                "DELETE FROM files WHERE file_path = ?",
                [(f.path,) for f in files],
            )

    def record_added(self, scan_id: int, records: list[FileRecord], recorded_at: str) -> None:
        """Insert newly observed files and log them as added."""
        rows = [(r, path_key(r.path)) for r in records]
        with store_errors("apply added files"):
            self._conn.executemany(
                """
                INSERT INTO files
                    (file_path, file_name, file_type, file_size_bytes, file_mtime,
                     file_fingerprint, last_seen_scan, last_updated, path_key)
                VALUES (?, ?, ?, ?, ?, NULL, ?, ?, ?)
                """,
                [
                    (r.path, r.name, r.file_type, r.size_bytes, r.mtime, scan_id, recorded_at, key)
                    for r, key in rows
                ],
            )
            self._conn.executemany(
                """
                INSERT INTO file_changes
                    (scan_id, file_path, change_type, new_size_bytes, new_mtime,
                     recorded_at, path_key)
                VALUES (?, ?, 'added', ?, ?, ?, ?)
                """,
                [(scan_id, r.path, r.size_bytes, r.mtime, recorded_at, key) for r, key in rows],
            )

    def record_modified(
        self,
        scan_id: int,
        changes: list[tuple[CanonicalFile, FileRecord]],
        recorded_at: str,
    ) -> None:
        """Log modified files and overwrite their canonical attributes.

        The fingerprint is reset so downstream fingerprinting recomputes it.
        """
        with store_errors("apply modified files"):
            self._conn.executemany(
                """
                INSERT INTO file_changes
                    (scan_id, file_path, change_type, old_size_bytes, new_size_bytes,
                     old_mtime, new_mtime, recorded_at, path_key)
                VALUES (?, ?, 'modified', ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        scan_id,
                        new.path,
                        old.size_bytes,
                        new.size_bytes,
                        old.mtime,
                        new.mtime,
                        recorded_at,
                        old.path_key,
                    )
                    for old, new in changes
                ],
            )
            self._conn.executemany(
                """
                UPDATE files
                SET file_name = ?,
                    file_type = ?,
                    file_size_bytes = ?,
                    file_mtime = ?,
                    file_fingerprint = NULL,
                    last_seen_scan = ?,
                    last_updated = ?
                WHERE file_path = ?
                """,
                [
                    (new.name, new.file_type, new.size_bytes, new.mtime, scan_id, recorded_at, new.path)
                    for _old, new in changes
                ],
            )

    def touch_unchanged(self, scan_id: int, paths: list[str], touched_at: str) -> None:
        """Mark unchanged files as seen by a scan without altering attributes."""
        with store_errors("touch unchanged files"):
            self._conn.executemany(
                "UPDATE files SET last_seen_scan = ?, last_updated = ? WHERE file_path = ?",
                [(scan_id, touched_at, p) for p in paths],
            )

    # =========================================================================
    # Change log
    # =========================================================================

    def list_changes(
        self,
        scan_id: int,
        *,
        change_type: ChangeType | None = None,
        under: str | None = None,
        limit: int | None = None,
    ) -> list[ChangeLogEntry]:
        """List change log entries of a scan ordered by path.

        Args:
            scan_id: Scan whose changes to list.
            change_type: Only return entries of this type.
            under: Only return entries in the subtree of this directory.
            limit: Maximum number of entries.
        """
        query = "SELECT * FROM file_changes WHERE scan_id = ?"
        params: list[Any] = [scan_id]
        if change_type is not None:
            query += " AND change_type = ?"
            params.append(change_type.value)
        if under is not None:
            low, high = subtree_bounds(under)
            query += " AND path_key >= ? AND path_key < ?"
            params.extend((low, high))
        query += " ORDER BY file_path"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with store_errors("list changes"):
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_change(row) for row in rows]
