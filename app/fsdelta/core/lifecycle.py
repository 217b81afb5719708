"""Scan lifecycle: one full crawl-and-reconcile cycle.

The manager drives a scan through its stages::

    Opening -> Crawling -> Loading -> Reconciling -> Finalizing -> Closed

Any fatal error moves the scan to Failed. A failed scan keeps its run
row open (finish fields null) with a failure reason, so callers can
tell "results unknown" apart from "no changes".
"""

from __future__ import annotations

import logging
import os
import socket
import tempfile
import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from fsdelta import __version__
from fsdelta.core.config import ScanSettings
from fsdelta.core.reconcile import Reconciler, ReconcileSummary
from fsdelta.crawler.batch import RecordBatchWriter, read_record_batch
from fsdelta.crawler.ignore import IgnoreRules
from fsdelta.crawler.progress import ProgressReporter
from fsdelta.crawler.sink import CounterSnapshot, ScanCounters, StreamSink
from fsdelta.crawler.walker import Crawler, WalkSummary
from fsdelta.models.scan_run import ScanRun
from fsdelta.store.database import StoreError
from fsdelta.store.repository import ScanStore

logger = logging.getLogger(__name__)


class ScanPhase(str, Enum):
    """Stages of a scan.

    Attributes:
        OPENING: Creating the scan run.
        CRAWLING: Walking the data root into the record batch.
        LOADING: Bulk-loading the batch into staging.
        RECONCILING: Applying the delta to the canonical set.
        FINALIZING: Clearing staging and persisting statistics.
        CLOSED: Finished successfully.
        FAILED: Stopped by an error or cancellation.
    """

    OPENING = "opening"
    CRAWLING = "crawling"
    LOADING = "loading"
    RECONCILING = "reconciling"
    FINALIZING = "finalizing"
    CLOSED = "closed"
    FAILED = "failed"


class ScanError(Exception):
    """Fatal scan failure.

    Attributes:
        phase: Stage in which the scan failed.
        scan_id: Scan run id, or None if the run was never opened.
        message: Human-readable reason.
    """

    def __init__(self, phase: ScanPhase, scan_id: int | None, message: str) -> None:
        self.phase = phase
        self.scan_id = scan_id
        self.message = message
        super().__init__(str(self))

    def __str__(self) -> str:
        scan = f"Scan {self.scan_id}" if self.scan_id is not None else "Scan"
        return f"{scan} failed during {self.phase.value}: {self.message}"


class ScanCancelledError(ScanError):
    """Scan stopped on request before it could finish."""

    def __str__(self) -> str:
        scan = f"Scan {self.scan_id}" if self.scan_id is not None else "Scan"
        return f"{scan} cancelled during {self.phase.value}: {self.message}"


@dataclass(frozen=True, slots=True)
class ScanOutcome:
    """Result of a successful scan.

    Attributes:
        scan_run: The finalized scan run.
        summary: Reconciliation counts and byte volumes.
        walk: Crawl statistics.
        crawl: Final sink counters.
        batch_path: Record batch left on disk, or None if it was removed.
    """

    scan_run: ScanRun
    summary: ReconcileSummary
    walk: WalkSummary
    crawl: CounterSnapshot
    batch_path: Path | None

    @property
    def scan_id(self) -> int:
        """Id of the scan run."""
        return self.scan_run.scan_id

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "scan": self.scan_run.to_dict(),
            "summary": self.summary.to_dict(),
            "batch_path": str(self.batch_path) if self.batch_path is not None else None,
        }


def _utc_now() -> str:
    return datetime.now(UTC).isoformat()


class ScanLifecycleManager:
    """Runs scans against one store.

    Args:
        store: Store receiving the scan.
        settings: Scan settings (workers, capacity, interval, ignores, batch).
        stop_event: Cancellation event; when set, the crawl drains and the
            scan stops before the next stage.
        batch_file: Explicit record batch path. An explicit batch is never
            removed.
    """

    def __init__(
        self,
        store: ScanStore,
        settings: ScanSettings,
        *,
        stop_event: threading.Event | None = None,
        batch_file: Path | None = None,
    ) -> None:
        self._store = store
        self._settings = settings
        self._stop = stop_event if stop_event is not None else threading.Event()
        self._batch_file = batch_file
        self._phase = ScanPhase.OPENING

    @property
    def phase(self) -> ScanPhase:
        """Current stage of the most recent scan."""
        return self._phase

    def cancel(self) -> None:
        """Request cancellation of the running scan."""
        self._stop.set()

    def run(self, data_root: Path | str) -> ScanOutcome:
        """Run one full scan of ``data_root``.

        Args:
            data_root: Directory to scan.

        Returns:
            ScanOutcome of the closed scan.

        Raises:
            ScanCancelledError: If cancellation was requested.
            ScanError: On any fatal error; the scan run stays open.
        """
        root = os.path.abspath(os.fspath(data_root))
        self._enter(ScanPhase.OPENING)
        if not os.path.isdir(root):
            self._phase = ScanPhase.FAILED
            raise ScanError(ScanPhase.OPENING, None, f"Data root is not a directory: {root}")

        try:
            scan_id = self._store.open_scan(root, _utc_now())
        except StoreError as e:
            self._phase = ScanPhase.FAILED
            raise ScanError(ScanPhase.OPENING, None, str(e)) from e

        batch_path = self._batch_path(scan_id)
        logger.info("Opened scan %d of %s", scan_id, root)

        try:
            walk, crawl = self._crawl(scan_id, root, batch_path)
            self._checkpoint(scan_id)
            load_seconds = self._load(scan_id, batch_path, crawl.files_seen)
            self._checkpoint(scan_id)
            summary = self._reconcile(scan_id)
            scan_run = self._finalize(scan_id, root, walk, crawl, summary, load_seconds)
        except ScanError as e:
            self._fail(e, batch_path)
            raise
        except Exception as e:
            error = ScanError(self._phase, scan_id, str(e))
            self._fail(error, batch_path)
            raise error from e

        kept = self._cleanup_batch(batch_path)
        self._enter(ScanPhase.CLOSED, scan_id)
        logger.info(
            "Closed scan %d: %d added, %d modified, %d deleted, %d unchanged",
            scan_id,
            summary.added,
            summary.modified,
            summary.deleted,
            summary.unchanged,
        )
        return ScanOutcome(
            scan_run=scan_run,
            summary=summary,
            walk=walk,
            crawl=crawl,
            batch_path=batch_path if kept else None,
        )

    def _enter(self, phase: ScanPhase, scan_id: int | None = None) -> None:
        self._phase = phase
        if scan_id is not None:
            logger.info("Scan %d: %s", scan_id, phase.value)

    def _checkpoint(self, scan_id: int) -> None:
        """Stop between stages if cancellation was requested."""
        if self._stop.is_set():
            raise ScanCancelledError(self._phase, scan_id, "cancellation requested")

    def _batch_path(self, scan_id: int) -> Path:
        if self._batch_file is not None:
            return self._batch_file
        directory = self._settings.batch_dir or Path(tempfile.gettempdir())
        return directory / f"scan_{scan_id}.tsv"

    def _keep_batch(self) -> bool:
        return self._settings.keep_batch or self._batch_file is not None

    def _cleanup_batch(self, batch_path: Path) -> bool:
        """Remove the record batch unless it is kept.

        Returns:
            True if the batch was kept.
        """
        if self._keep_batch():
            return True
        try:
            batch_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove record batch %s: %s", batch_path, e)
        return False

    def _crawl(
        self, scan_id: int, root: str, batch_path: Path
    ) -> tuple[WalkSummary, CounterSnapshot]:
        self._enter(ScanPhase.CRAWLING, scan_id)
        settings = self._settings
        crawler = Crawler(
            root,
            workers=settings.workers,
            ignore=IgnoreRules(settings.ignore_patterns),
            stop_event=self._stop,
        )
        counters = ScanCounters()

        with RecordBatchWriter(batch_path) as writer:
            sink = StreamSink(writer, counters)
            with ProgressReporter(counters, settings.progress_interval, until=sink.done):
                crawl = sink.consume(crawler.stream(settings.queue_capacity))

        walk = crawler.summary
        if walk is None:
            raise ScanError(ScanPhase.CRAWLING, scan_id, "crawl ended without a summary")
        if walk.cancelled:
            raise ScanCancelledError(ScanPhase.CRAWLING, scan_id, "cancellation requested")
        if walk.files != crawl.files_seen:
            msg = f"crawler emitted {walk.files} records but the sink consumed {crawl.files_seen}"
            raise ScanError(ScanPhase.CRAWLING, scan_id, msg)
        return walk, crawl

    def _load(self, scan_id: int, batch_path: Path, expected: int) -> float:
        self._enter(ScanPhase.LOADING, scan_id)
        started = time.monotonic()
        loaded = self._store.bulk_load_staging(scan_id, read_record_batch(batch_path))
        if loaded != expected:
            msg = f"loaded {loaded} records into staging, expected {expected}"
            raise ScanError(ScanPhase.LOADING, scan_id, msg)
        elapsed = time.monotonic() - started
        logger.info("Loaded %d records into staging in %.2fs", loaded, elapsed)
        return elapsed

    def _reconcile(self, scan_id: int) -> ReconcileSummary:
        self._enter(ScanPhase.RECONCILING, scan_id)
        return Reconciler(self._store).reconcile(scan_id)

    def _finalize(
        self,
        scan_id: int,
        root: str,
        walk: WalkSummary,
        crawl: CounterSnapshot,
        summary: ReconcileSummary,
        load_seconds: float,
    ) -> ScanRun:
        self._enter(ScanPhase.FINALIZING, scan_id)
        leftover = self._store.clear_staging(scan_id)
        if leftover:
            logger.debug("Cleared %d leftover staging rows", leftover)

        metadata: dict[str, Any] = {
            "data_root": root,
            "hostname": socket.gethostname(),
            "fsdelta_version": __version__,
            "crawl_duration_s": round(walk.elapsed_seconds, 3),
            "crawler_files_per_second": round(walk.files_per_second, 1),
            "total_files_processed": crawl.files_seen,
            "bytes_seen": crawl.bytes_seen,
            "skipped_entries": walk.skipped,
            "load_duration_s": round(load_seconds, 3),
            "reconcile_duration_s": round(summary.duration_seconds, 3),
            "workers": self._settings.workers,
            "queue_capacity": self._settings.queue_capacity,
        }
        return self._store.finalize_scan(
            scan_id,
            finished_at=_utc_now(),
            total_paths=crawl.files_seen,
            metadata=metadata,
        )

    def _fail(self, error: ScanError, batch_path: Path) -> None:
        """Leave the run open with a failure reason and release scan resources."""
        self._phase = ScanPhase.FAILED
        if isinstance(error, ScanCancelledError):
            logger.warning("%s", error)
        else:
            logger.error("%s", error)

        if error.scan_id is None:
            return

        try:
            self._store.mark_failed(error.scan_id, f"{error.phase.value}: {error.message}")
        except StoreError as e:
            logger.warning("Could not record failure of scan %d: %s", error.scan_id, e)
        try:
            self._store.clear_staging(error.scan_id)
        except StoreError as e:
            logger.warning("Could not clear staging of scan %d: %s", error.scan_id, e)
        self._cleanup_batch(batch_path)
