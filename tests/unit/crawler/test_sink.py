"""Unit tests for the stream sink and scan counters."""

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from fsdelta.crawler.batch import RecordBatchWriter, read_record_batch
from fsdelta.crawler.sink import ScanCounters, SinkError, StreamSink
from fsdelta.models.records import FileRecord


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestScanCounters:
    """Tests for ScanCounters class."""

    def test_snapshot_is_consistent(self) -> None:
        """Snapshots report files, bytes and elapsed time together."""
        clock = FakeClock()
        counters = ScanCounters(clock=clock)
        counters.add(10)
        counters.add(5)
        clock.now += 2.5

        snapshot = counters.snapshot()

        assert snapshot.files_seen == 2
        assert snapshot.bytes_seen == 15
        assert snapshot.elapsed_seconds == pytest.approx(2.5)

    def test_closed_counters_reject_updates(self) -> None:
        """Counters are read-only after close."""
        counters = ScanCounters()
        counters.close()
        assert counters.closed
        with pytest.raises(RuntimeError, match="closed"):
            counters.add(1)


class TestStreamSink:
    """Tests for StreamSink class."""

    def test_consume_writes_every_record(
        self, tmp_path: Path, record_factory: Callable[..., FileRecord]
    ) -> None:
        """Every record lands in the batch and the counters."""
        records = [record_factory(f"/data/{i}.bin", i * 10) for i in range(4)]
        counters = ScanCounters()

        with RecordBatchWriter(tmp_path / "scan.tsv") as writer:
            sink = StreamSink(writer, counters)
            snapshot = sink.consume(records)

        assert snapshot.files_seen == 4
        assert snapshot.bytes_seen == 60
        assert sink.done.is_set()
        assert counters.closed
        assert list(read_record_batch(tmp_path / "scan.tsv")) == records

    def test_write_failure_raises_sink_error(
        self, tmp_path: Path, record_factory: Callable[..., FileRecord]
    ) -> None:
        """A batch write failure surfaces as SinkError and still signals done."""
        writer = RecordBatchWriter(tmp_path / "scan.tsv")
        sink = StreamSink(writer, ScanCounters())

        with pytest.raises(SinkError, match="not open"):
            sink.consume([record_factory("/data/a.txt", 1)])

        assert sink.done.is_set()

    def test_closes_stream_on_failure(
        self, tmp_path: Path, record_factory: Callable[..., FileRecord]
    ) -> None:
        """The record stream is closed when consumption stops early."""
        closed: list[bool] = []

        def records() -> Iterator[FileRecord]:
            try:
                yield record_factory("/data/a.txt", 1)
                yield record_factory("/data/b.txt", 1)
            finally:
                closed.append(True)

        sink = StreamSink(RecordBatchWriter(tmp_path / "scan.tsv"), ScanCounters())
        with pytest.raises(SinkError):
            sink.consume(records())

        assert closed == [True]
