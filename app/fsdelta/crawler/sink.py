"""Stream sink: the single consumer of crawler output.

The sink drains the crawler's bounded hand-off, appends every record
to the record batch and maintains the running counters that the
progress reporter samples.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from fsdelta.crawler.batch import RecordBatchError, RecordBatchWriter
from fsdelta.models.records import FileRecord

logger = logging.getLogger(__name__)


class SinkError(Exception):
    """Raised when the sink cannot persist a record."""


@dataclass(frozen=True, slots=True)
class CounterSnapshot:
    """Point-in-time view of the scan counters.

    Attributes:
        files_seen: Records consumed so far.
        bytes_seen: Sum of sizes of consumed records.
        elapsed_seconds: Time since the counters were created.
    """

    files_seen: int
    bytes_seen: int
    elapsed_seconds: float


class ScanCounters:
    """Counters shared between the sink (writer) and the reporter (reader).

    Created at scan start and read-only once closed. Updates and
    snapshots take a short lock, so a reader never observes a file
    count without its bytes and never blocks the pipeline for long.

    Args:
        clock: Monotonic time source, overridable in tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._started = clock()
        self._lock = threading.Lock()
        self._files = 0
        self._bytes = 0
        self._closed = False

    def add(self, size_bytes: int) -> None:
        """Count one consumed record.

        Raises:
            RuntimeError: If the counters were already closed.
        """
        with self._lock:
            if self._closed:
                msg = "Scan counters are closed"
                raise RuntimeError(msg)
            self._files += 1
            self._bytes += size_bytes

    def close(self) -> None:
        """Freeze the counters."""
        with self._lock:
            self._closed = True

    @property
    def closed(self) -> bool:
        """Whether the counters are frozen."""
        with self._lock:
            return self._closed

    def snapshot(self) -> CounterSnapshot:
        """Read all counters consistently."""
        with self._lock:
            files, size = self._files, self._bytes
        return CounterSnapshot(
            files_seen=files,
            bytes_seen=size,
            elapsed_seconds=self._clock() - self._started,
        )


class StreamSink:
    """Single ordered consumer of crawler records.

    Args:
        writer: Open record batch writer.
        counters: Counters updated per consumed record.
    """

    def __init__(self, writer: RecordBatchWriter, counters: ScanCounters) -> None:
        self._writer = writer
        self._counters = counters
        self._done = threading.Event()

    @property
    def done(self) -> threading.Event:
        """Set once the sink has stopped consuming, successfully or not."""
        return self._done

    @property
    def counters(self) -> ScanCounters:
        """Counters maintained by this sink."""
        return self._counters

    def consume(self, records: Iterable[FileRecord]) -> CounterSnapshot:
        """Drain ``records`` into the batch until the stream is exhausted.

        The stream is closed when consumption stops early, which releases
        any producers blocked on a full hand-off.

        Args:
            records: Record stream, typically ``Crawler.stream()``.

        Returns:
            Final counter snapshot.

        Raises:
            SinkError: If a record cannot be written to the batch.
        """
        iterator = iter(records)
        try:
            for record in iterator:
                try:
                    self._writer.write(record)
                except RecordBatchError as e:
                    raise SinkError(str(e)) from e
                self._counters.add(record.size_bytes)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()
            self._counters.close()
            self._done.set()

        snapshot = self._counters.snapshot()
        logger.debug(
            "Sink drained %d records (%d bytes) into %s",
            snapshot.files_seen,
            snapshot.bytes_seen,
            self._writer.path,
        )
        return snapshot
