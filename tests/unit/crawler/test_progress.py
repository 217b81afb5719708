"""Unit tests for the progress reporter."""

import logging
import threading

import pytest
from fsdelta.crawler.progress import ProgressReporter, format_progress
from fsdelta.crawler.sink import CounterSnapshot, ScanCounters


class TestFormatProgress:
    """Tests for format_progress function."""

    def test_first_tick_uses_whole_run(self) -> None:
        """Without a previous snapshot the window is the whole run."""
        snapshot = CounterSnapshot(files_seen=3000, bytes_seen=3 * 1024 * 1024, elapsed_seconds=30)

        line = format_progress(snapshot, previous=None, interval=30)

        assert "3,000 files (3.0 MB)" in line
        assert "00:00:30" in line
        assert "100.0 f/s (last 30s)" in line
        assert "100.0 f/s overall" in line

    def test_window_rate(self) -> None:
        """The windowed rate only counts files since the previous tick."""
        previous = CounterSnapshot(files_seen=1000, bytes_seen=0, elapsed_seconds=10)
        snapshot = CounterSnapshot(files_seen=1500, bytes_seen=0, elapsed_seconds=20)

        line = format_progress(snapshot, previous=previous, interval=10)

        assert "50.0 f/s (last 10s)" in line
        assert "75.0 f/s overall" in line

    def test_zero_elapsed(self) -> None:
        """A zero elapsed time does not divide by zero."""
        snapshot = CounterSnapshot(files_seen=0, bytes_seen=0, elapsed_seconds=0)
        assert "0 files" in format_progress(snapshot, previous=None, interval=1)


class TestProgressReporter:
    """Tests for ProgressReporter class."""

    def test_invalid_interval(self) -> None:
        """Intervals must be positive."""
        with pytest.raises(ValueError, match="must be positive"):
            ProgressReporter(ScanCounters(), interval=0)

    def test_tick_emits_line(self) -> None:
        """A tick samples the counters and emits one line."""
        lines: list[str] = []
        counters = ScanCounters()
        counters.add(10)
        reporter = ProgressReporter(counters, interval=5, emit=lines.append)

        reporter.tick()

        assert reporter.ticks == 1
        assert lines[0].startswith("Progress: 1 files")

    def test_tick_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """Emit errors are logged and never propagate."""

        def broken(_line: str) -> None:
            raise OSError("log target gone")

        reporter = ProgressReporter(ScanCounters(), interval=5, emit=broken)

        with caplog.at_level(logging.WARNING, logger="fsdelta.crawler.progress"):
            reporter.tick()

        assert reporter.ticks == 0
        assert "Progress reporting failed" in caplog.text

    def test_reports_periodically(self) -> None:
        """The background thread emits lines on its interval."""
        emitted = threading.Event()
        lines: list[str] = []

        def emit(line: str) -> None:
            lines.append(line)
            emitted.set()

        with ProgressReporter(ScanCounters(), interval=0.01, emit=emit):
            assert emitted.wait(timeout=5)

        assert lines

    def test_stops_when_until_is_set(self) -> None:
        """Setting the completion event ends the reporter thread."""
        done = threading.Event()
        reporter = ProgressReporter(ScanCounters(), interval=60, until=done).start()

        done.set()
        reporter.stop()

        assert reporter.ticks == 0

    def test_start_twice(self) -> None:
        """A reporter can only be started once."""
        reporter = ProgressReporter(ScanCounters(), interval=60).start()
        try:
            with pytest.raises(RuntimeError, match="already started"):
                reporter.start()
        finally:
            reporter.stop()
