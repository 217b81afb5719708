"""Time-driven progress reporting for a running crawl.

The reporter samples the shared scan counters on a fixed interval
and logs a status line with cumulative counts and throughput. It is
purely observational: its failures are logged, never raised.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable

from fsdelta.crawler.sink import CounterSnapshot, ScanCounters
from fsdelta.utils.formatting import format_duration, format_size

logger = logging.getLogger(__name__)

DEFAULT_PROGRESS_INTERVAL = 30.0

# Upper bound on how long the reporter sleeps before re-checking for shutdown.
_POLL_SECONDS = 0.25


def format_progress(
    snapshot: CounterSnapshot,
    *,
    previous: CounterSnapshot | None,
    interval: float,
) -> str:
    """Build a progress status line.

    Args:
        snapshot: Current counters.
        previous: Counters at the previous tick (None on the first tick).
        interval: Configured reporting interval in seconds.

    Returns:
        Human-readable status line.
    """
    elapsed = max(snapshot.elapsed_seconds, 1e-9)
    if previous is None:
        window_files = snapshot.files_seen
        window_secs = elapsed
    else:
        window_files = snapshot.files_seen - previous.files_seen
        window_secs = max(snapshot.elapsed_seconds - previous.elapsed_seconds, 1e-9)

    rate_now = window_files / window_secs
    rate_all = snapshot.files_seen / elapsed
    byte_rate = snapshot.bytes_seen / elapsed

    return (
        f"Progress: {snapshot.files_seen:,} files ({format_size(snapshot.bytes_seen)}) "
        f"in {format_duration(snapshot.elapsed_seconds)}, "
        f"{rate_now:.1f} f/s (last {interval:g}s), {rate_all:.1f} f/s overall, "
        f"{format_size(int(byte_rate))}/s"
    )


class ProgressReporter:
    """Background reporter that logs crawl progress.

    Use as a context manager around the crawl; the reporter also stops
    on its own once ``until`` is set (the sink's completion event).

    Args:
        counters: Counters to sample.
        interval: Seconds between status lines.
        until: Optional event that ends reporting when set.
        emit: Callback receiving each status line (defaults to logging).
        clock: Monotonic time source, overridable in tests.
    """

    def __init__(
        self,
        counters: ScanCounters,
        interval: float = DEFAULT_PROGRESS_INTERVAL,
        *,
        until: threading.Event | None = None,
        emit: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if interval <= 0:
            msg = f"Progress interval must be positive, got {interval}"
            raise ValueError(msg)
        self._counters = counters
        self._interval = interval
        self._until = until
        self._emit = emit if emit is not None else logger.info
        self._clock = clock
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._previous: CounterSnapshot | None = None
        self.ticks = 0

    def start(self) -> ProgressReporter:
        """Start the reporter thread."""
        if self._thread is not None:
            msg = "Progress reporter already started"
            raise RuntimeError(msg)
        self._thread = threading.Thread(target=self._run, name="fsdelta-progress", daemon=True)
        self._thread.start()
        return self

    def stop(self) -> None:
        """Stop the reporter thread and wait for it to exit."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()

    def __enter__(self) -> ProgressReporter:
        return self.start()

    def __exit__(self, *_exc: object) -> None:
        self.stop()

    def _finished(self) -> bool:
        return self._stop.is_set() or (self._until is not None and self._until.is_set())

    def _run(self) -> None:
        next_tick = self._clock() + self._interval
        while not self._finished():
            remaining = next_tick - self._clock()
            if remaining > 0:
                self._stop.wait(min(remaining, _POLL_SECONDS))
                continue
            if self._finished():
                break
            self.tick()
            next_tick += self._interval

    def tick(self) -> None:
        """Sample the counters and emit one status line.

        Any error raised while formatting or emitting is logged and
        discarded so that reporting can never abort a scan.
        """
        try:
            snapshot = self._counters.snapshot()
            line = format_progress(snapshot, previous=self._previous, interval=self._interval)
            self._emit(line)
            self._previous = snapshot
            self.ticks += 1
        except Exception:
            logger.warning("Progress reporting failed", exc_info=True)
