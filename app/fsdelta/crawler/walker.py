"""Parallel directory crawler.

Walks a root directory with a pool of worker threads and produces a
FileRecord for every regular file underneath it. Directories matching
the ignore rules are pruned. Unreadable entries and broken symlinks
are logged and skipped; they never abort the walk. Symlinks are not
followed.

Records reach the consumer through :meth:`Crawler.stream`, a bounded
hand-off: when it is full, workers block instead of dropping records.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from fsdelta.crawler.ignore import IgnoreRules
from fsdelta.models.records import FileRecord

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = min(32, (os.cpu_count() or 1) + 4)
DEFAULT_CAPACITY = 256

# How long a blocked producer waits before re-checking whether the consumer left.
_PUT_POLL_SECONDS = 0.1

_END = object()


class CrawlerError(Exception):
    """Raised when a crawl cannot start or fails fatally."""


class _HandoffClosed(Exception):
    """The consumer stopped reading the hand-off."""


@dataclass(frozen=True, slots=True)
class WalkSummary:
    """Outcome of a completed walk.

    Attributes:
        files: Records emitted.
        directories: Directories scanned.
        skipped: Unreadable entries and broken symlinks skipped.
        pruned: Entries excluded by ignore rules.
        cancelled: Whether the walk stopped early on request.
        elapsed_seconds: Wall-clock duration of the walk.
    """

    files: int
    directories: int
    skipped: int
    pruned: int
    cancelled: bool
    elapsed_seconds: float

    @property
    def files_per_second(self) -> float:
        """Average throughput of the walk."""
        return self.files / max(self.elapsed_seconds, 1e-9)


class _WalkStats:
    """Counters updated concurrently by walker threads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.files = 0
        self.directories = 0
        self.skipped = 0
        self.pruned = 0

    def bump(self, name: str) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + 1)


class Crawler:
    """Walks a directory tree in parallel.

    A crawler is single-use: the produced sequence is not restartable,
    and a new Crawler must be created to enumerate the tree again.

    Args:
        root: Directory to walk.
        workers: Number of parallel walker threads.
        ignore: Rules pruning directories and files.
        stop_event: When set, workers stop taking new directories and the
            walk drains and returns early.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        workers: int = DEFAULT_WORKERS,
        ignore: IgnoreRules | None = None,
        stop_event: threading.Event | None = None,
    ) -> None:
        if workers < 1:
            msg = f"Worker count must be at least 1, got {workers}"
            raise ValueError(msg)
        self._root = os.path.abspath(os.fspath(root))
        self._workers = workers
        self._ignore = ignore if ignore is not None else IgnoreRules()
        self._stop = stop_event if stop_event is not None else threading.Event()
        self._claimed = False
        self._claim_lock = threading.Lock()
        self._summary: WalkSummary | None = None

    @property
    def root(self) -> str:
        """Absolute root path."""
        return self._root

    @property
    def summary(self) -> WalkSummary | None:
        """Summary of the finished walk, None until it completes."""
        return self._summary

    def _claim(self) -> None:
        with self._claim_lock:
            if self._claimed:
                msg = "Crawler already started; create a new Crawler to walk again"
                raise RuntimeError(msg)
            self._claimed = True

    def walk(self, emit: Callable[[FileRecord], None]) -> WalkSummary:
        """Walk the tree, calling ``emit`` from worker threads per file.

        Blocks until every worker has finished. ``emit`` may block to
        apply backpressure; an exception it raises stops the walk and is
        re-raised here.

        Args:
            emit: Callback receiving each FileRecord.

        Returns:
            WalkSummary of the walk.

        Raises:
            CrawlerError: If the root is not a readable directory.
            RuntimeError: If the crawler was already used.
        """
        self._claim()
        return self._walk(emit)

    def stream(self, capacity: int = DEFAULT_CAPACITY) -> Iterator[FileRecord]:
        """Produce records lazily through a bounded hand-off.

        The walk starts on the first ``next()``. Closing the iterator
        early releases and stops the workers.

        Args:
            capacity: Maximum records buffered between workers and consumer.

        Yields:
            FileRecord per regular file, in no particular order.

        Raises:
            CrawlerError: If the walk fails.
        """
        if capacity < 1:
            msg = f"Hand-off capacity must be at least 1, got {capacity}"
            raise ValueError(msg)
        self._claim()
        return self._stream(capacity)

    def _stream(self, capacity: int) -> Iterator[FileRecord]:
        handoff: queue.Queue[object] = queue.Queue(maxsize=capacity)
        abandoned = threading.Event()
        failure: list[BaseException] = []

        def emit(record: FileRecord) -> None:
            _put(handoff, record, abandoned)

        def produce() -> None:
            try:
                self._walk(emit)
            except _HandoffClosed:
                pass
            except BaseException as exc:
                failure.append(exc)
            finally:
                try:
                    _put(handoff, _END, abandoned)
                except _HandoffClosed:
                    pass

        producer = threading.Thread(target=produce, name="fsdelta-crawler", daemon=True)
        producer.start()
        try:
            while True:
                item = handoff.get()
                if item is _END:
                    break
                yield item  # type: ignore[misc]
        finally:
            abandoned.set()
            producer.join()

        if failure:
            raise failure[0]

    def _walk(self, emit: Callable[[FileRecord], None]) -> WalkSummary:
        if not os.path.isdir(self._root):
            msg = f"Scan root is not a directory: {self._root}"
            raise CrawlerError(msg)

        started = time.monotonic()
        stats = _WalkStats()
        pending: queue.Queue[str | None] = queue.Queue()
        abort = threading.Event()
        errors: list[BaseException] = []
        errors_lock = threading.Lock()

        def worker() -> None:
            while True:
                directory = pending.get()
                try:
                    if directory is None:
                        return
                    if abort.is_set() or self._stop.is_set():
                        continue
                    self._scan_directory(directory, pending, emit, stats, abort)
                except BaseException as exc:
                    with errors_lock:
                        errors.append(exc)
                    abort.set()
                finally:
                    pending.task_done()

        logger.debug("Starting parallel walk of %s with %d workers", self._root, self._workers)
        pending.put(self._root)
        threads = [
            threading.Thread(target=worker, name=f"fsdelta-walker-{i}", daemon=True)
            for i in range(self._workers)
        ]
        for thread in threads:
            thread.start()

        pending.join()
        for _ in threads:
            pending.put(None)
        for thread in threads:
            thread.join()

        if errors:
            raise errors[0]

        summary = WalkSummary(
            files=stats.files,
            directories=stats.directories,
            skipped=stats.skipped,
            pruned=stats.pruned,
            cancelled=self._stop.is_set(),
            elapsed_seconds=time.monotonic() - started,
        )
        self._summary = summary
        logger.info(
            "Crawl finished: %d files in %.1fs (%.1f f/s), %d skipped, %d pruned%s",
            summary.files,
            summary.elapsed_seconds,
            summary.files_per_second,
            summary.skipped,
            summary.pruned,
            " [cancelled]" if summary.cancelled else "",
        )
        return summary

    def _scan_directory(
        self,
        directory: str,
        pending: queue.Queue[str | None],
        emit: Callable[[FileRecord], None],
        stats: _WalkStats,
        abort: threading.Event,
    ) -> None:
        """List one directory, queueing subdirectories and emitting files."""
        try:
            entries = os.scandir(directory)
        except OSError as exc:
            logger.warning("Skipping unreadable directory %s: %s", directory, exc)
            stats.bump("skipped")
            return

        stats.bump("directories")
        with entries:
            for entry in entries:
                if abort.is_set():
                    return
                record = self._classify_entry(entry, pending, stats)
                if record is not None:
                    emit(record)
                    stats.bump("files")

    def _classify_entry(
        self,
        entry: os.DirEntry[str],
        pending: queue.Queue[str | None],
        stats: _WalkStats,
    ) -> FileRecord | None:
        """Return a record for a regular file, queue directories, skip the rest."""
        if not _is_utf8_encodable(entry.path):
            logger.warning("Skipping entry with a non UTF-8 name: %r", entry.path)
            stats.bump("skipped")
            return None

        try:
            if entry.is_symlink():
                if not os.path.exists(entry.path):
                    logger.warning("Skipping broken symlink: %s", entry.path)
                    stats.bump("skipped")
                else:
                    logger.debug("Not following symlink: %s", entry.path)
                return None

            if entry.is_dir(follow_symlinks=False):
                if self._ignore.matches(entry.path, entry.name):
                    logger.debug("Pruned directory: %s", entry.path)
                    stats.bump("pruned")
                else:
                    pending.put(entry.path)
                return None

            if not entry.is_file(follow_symlinks=False):
                return None

            if self._ignore.matches(entry.path, entry.name):
                stats.bump("pruned")
                return None

            return FileRecord.from_stat(entry.path, entry.stat(follow_symlinks=False))
        except OSError as exc:
            logger.warning("Skipping unreadable entry %s: %s", entry.path, exc)
            stats.bump("skipped")
            return None


def _is_utf8_encodable(path: str) -> bool:
    """Whether a scandir path survives the UTF-8 batch and store.

    Undecodable bytes in names come back from ``os.scandir`` as lone
    surrogates, which UTF-8 cannot represent.
    """
    try:
        path.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _put(handoff: queue.Queue[object], item: object, abandoned: threading.Event) -> None:
    """Block until ``item`` fits in the hand-off or the consumer leaves."""
    while True:
        if abandoned.is_set():
            raise _HandoffClosed
        try:
            handoff.put(item, timeout=_PUT_POLL_SECONDS)
            return
        except queue.Full:
            continue
