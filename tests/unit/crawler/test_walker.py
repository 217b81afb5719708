"""Unit tests for the parallel crawler."""

import os
import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest
from fsdelta.crawler.ignore import IgnoreRules
from fsdelta.crawler.walker import Crawler, CrawlerError
from fsdelta.models.records import FileRecord

WriteTree = Callable[[Path, dict[str, int]], list[Path]]


@pytest.fixture
def tree(tmp_path: Path, write_tree: WriteTree) -> Path:
    """A small nested tree with files at several depths."""
    root = tmp_path / "data"
    write_tree(
        root,
        {
            "a.txt": 1,
            "docs/b.md": 2,
            "docs/deep/c.csv": 3,
            "media/d.bin": 4,
            ".git/config": 5,
        },
    )
    return root


def _collect(crawler: Crawler) -> dict[str, FileRecord]:
    records: dict[str, FileRecord] = {}
    lock = threading.Lock()

    def emit(record: FileRecord) -> None:
        with lock:
            records[record.path] = record

    crawler.walk(emit)
    return records


class TestWalk:
    """Tests for Crawler.walk."""

    def test_finds_every_file(self, tree: Path) -> None:
        """All regular files are emitted exactly once."""
        crawler = Crawler(tree, workers=4)

        records = _collect(crawler)

        assert set(records) == {
            str(tree / "a.txt"),
            str(tree / "docs/b.md"),
            str(tree / "docs/deep/c.csv"),
            str(tree / "media/d.bin"),
            str(tree / ".git/config"),
        }
        assert records[str(tree / "docs/deep/c.csv")].size_bytes == 3
        assert crawler.summary is not None
        assert crawler.summary.files == 5
        assert crawler.summary.directories == 5
        assert not crawler.summary.cancelled

    def test_single_worker(self, tree: Path) -> None:
        """One worker walks the same tree."""
        assert len(_collect(Crawler(tree, workers=1))) == 5

    def test_ignore_prunes_directories(self, tree: Path) -> None:
        """Ignored directories are not descended into."""
        crawler = Crawler(tree, workers=2, ignore=IgnoreRules([".git", "*.bin"]))

        records = _collect(crawler)

        assert str(tree / ".git/config") not in records
        assert str(tree / "media/d.bin") not in records
        assert len(records) == 3
        assert crawler.summary is not None
        assert crawler.summary.pruned == 2

    def test_broken_symlink_skipped(self, tree: Path) -> None:
        """Broken symlinks are skipped and counted."""
        os.symlink(tree / "missing.txt", tree / "dangling")

        crawler = Crawler(tree, workers=2)
        records = _collect(crawler)

        assert str(tree / "dangling") not in records
        assert crawler.summary is not None
        assert crawler.summary.skipped == 1

    def test_symlinks_not_followed(self, tree: Path, tmp_path: Path, write_tree: WriteTree) -> None:
        """Symlinked directories and files are not followed."""
        outside = tmp_path / "outside"
        write_tree(outside, {"secret.txt": 1})
        os.symlink(outside, tree / "link-dir")
        os.symlink(tree / "a.txt", tree / "link-file")

        records = _collect(Crawler(tree, workers=2))

        assert len(records) == 5

    @pytest.mark.skipif(os.geteuid() == 0, reason="root can read any directory")
    def test_unreadable_directory_skipped(self, tree: Path) -> None:
        """An unreadable directory is skipped without aborting the walk."""
        locked = tree / "docs"
        locked.chmod(0)
        try:
            crawler = Crawler(tree, workers=2)
            records = _collect(crawler)
        finally:
            locked.chmod(0o755)

        assert str(tree / "a.txt") in records
        assert str(tree / "docs/b.md") not in records
        assert crawler.summary is not None
        assert crawler.summary.skipped == 1

    def test_non_utf8_names_skipped(self, tree: Path) -> None:
        """Files and directories with non UTF-8 names are skipped, not fatal."""
        raw_root = os.fsencode(tree)
        try:
            with open(os.path.join(raw_root, b"bad\xff.txt"), "wb") as f:
                f.write(b"x")
            os.mkdir(os.path.join(raw_root, b"dir\xfe"))
        except OSError:
            pytest.skip("filesystem rejects non UTF-8 names")
        with open(os.path.join(raw_root, b"dir\xfe", b"inner.txt"), "wb") as f:
            f.write(b"y")

        crawler = Crawler(tree, workers=2)
        records = _collect(crawler)

        assert len(records) == 5
        assert crawler.summary is not None
        assert crawler.summary.skipped == 2

    def test_root_must_be_directory(self, tmp_path: Path) -> None:
        """A missing root raises CrawlerError."""
        with pytest.raises(CrawlerError, match="not a directory"):
            Crawler(tmp_path / "missing").walk(lambda _record: None)

    def test_stop_event_cancels(self, tree: Path) -> None:
        """A set stop event drains the walk early and marks it cancelled."""
        stop = threading.Event()
        stop.set()
        crawler = Crawler(tree, workers=2, stop_event=stop)

        records = _collect(crawler)

        assert records == {}
        assert crawler.summary is not None
        assert crawler.summary.cancelled

    def test_emit_error_propagates(self, tree: Path) -> None:
        """An exception raised by emit stops the walk and is re-raised."""

        def emit(_record: FileRecord) -> None:
            raise OSError("disk full")

        with pytest.raises(OSError, match="disk full"):
            Crawler(tree, workers=2).walk(emit)

    def test_single_use(self, tree: Path) -> None:
        """A crawler cannot be restarted."""
        crawler = Crawler(tree)
        _collect(crawler)
        with pytest.raises(RuntimeError, match="already started"):
            crawler.walk(lambda _record: None)

    def test_invalid_worker_count(self, tree: Path) -> None:
        """At least one worker is required."""
        with pytest.raises(ValueError, match="at least 1"):
            Crawler(tree, workers=0)


class TestStream:
    """Tests for Crawler.stream."""

    def test_stream_yields_every_file(self, tree: Path) -> None:
        """The bounded hand-off delivers every record."""
        paths = {record.path for record in Crawler(tree, workers=3).stream(capacity=2)}
        assert len(paths) == 5

    def test_backpressure_does_not_drop_records(self, tmp_path: Path, write_tree: WriteTree) -> None:
        """A capacity of one with many producers still delivers everything."""
        root = tmp_path / "many"
        write_tree(root, {f"d{i % 7}/f{i}.dat": 1 for i in range(300)})

        paths = [record.path for record in Crawler(root, workers=8).stream(capacity=1)]

        assert len(paths) == 300
        assert len(set(paths)) == 300

    def test_slow_consumer_blocks_producers_without_loss(
        self, tmp_path: Path, write_tree: WriteTree
    ) -> None:
        """Producers outpacing a slow consumer block on the hand-off and lose nothing."""
        root = tmp_path / "many"
        write_tree(root, {f"d{i % 5}/f{i}.dat": 1 for i in range(60)})

        paths: list[str] = []
        for record in Crawler(root, workers=6).stream(capacity=1):
            time.sleep(0.005)
            paths.append(record.path)

        assert sorted(paths) == sorted(str(p) for p in root.rglob("*.dat"))

    def test_early_close_releases_workers(self, tmp_path: Path, write_tree: WriteTree) -> None:
        """Closing the stream stops producers blocked on a full hand-off."""
        root = tmp_path / "many"
        write_tree(root, {f"f{i}.dat": 1 for i in range(50)})
        stream = Crawler(root, workers=4).stream(capacity=1)

        first = next(stream)
        stream.close()

        assert first.path.startswith(str(root))
        live = [t for t in threading.enumerate() if t.name.startswith("fsdelta-")]
        assert live == []

    def test_stream_failure_is_raised(self, tmp_path: Path) -> None:
        """Walk failures surface from the consumer's iteration."""
        with pytest.raises(CrawlerError):
            list(Crawler(tmp_path / "missing").stream())

    def test_second_stream_rejected(self, tree: Path) -> None:
        """A crawler produces a single stream."""
        crawler = Crawler(tree)
        list(crawler.stream())
        with pytest.raises(RuntimeError, match="already started"):
            crawler.stream()

    def test_invalid_capacity(self, tree: Path) -> None:
        """Capacity must be at least one."""
        with pytest.raises(ValueError, match="at least 1"):
            Crawler(tree).stream(capacity=0)
