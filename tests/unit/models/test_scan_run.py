"""Unit tests for scan run and change log models."""

import pytest
from fsdelta.models.changes import ChangeLogEntry, ChangeType
from fsdelta.models.scan_run import ScanRun, ScanStatus


def _finished_run(**overrides: object) -> ScanRun:
    values: dict[str, object] = {
        "scan_id": 1,
        "scan_root": "/data",
        "started_at": "2026-01-01T00:00:00+00:00",
        "finished_at": "2026-01-01T00:05:00+00:00",
        "total_paths": 10,
        "added_count": 2,
        "modified_count": 1,
        "removed_count": 0,
        "added_bytes": 200,
        "modified_bytes": -5,
        "deleted_bytes": 0,
    }
    values.update(overrides)
    return ScanRun(**values)  # type: ignore[arg-type]


class TestScanRun:
    """Tests for ScanRun dataclass."""

    def test_open_run_is_running(self) -> None:
        """A run without finish fields is running."""
        run = ScanRun(scan_id=1, scan_root="/data", started_at="2026-01-01T00:00:00+00:00")
        assert run.status == ScanStatus.RUNNING
        assert not run.is_finished
        assert run.added_count is None

    def test_failure_reason_marks_failed(self) -> None:
        """An open run with a failure reason is failed, not finished."""
        run = ScanRun(
            scan_id=1,
            scan_root="/data",
            started_at="2026-01-01T00:00:00+00:00",
            failure_reason="loading: disk full",
        )
        assert run.status == ScanStatus.FAILED
        assert not run.is_finished

    def test_finished_run(self) -> None:
        """A run with finish fields is finished."""
        run = _finished_run()
        assert run.status == ScanStatus.FINISHED
        assert run.is_finished

    def test_finished_without_counts_rejected(self) -> None:
        """A finish time without counts is invalid."""
        with pytest.raises(ValueError, match="missing counts"):
            _finished_run(added_count=None)

    def test_counts_without_finish_rejected(self) -> None:
        """Counts without a finish time would fabricate statistics."""
        with pytest.raises(ValueError, match="no finish time"):
            _finished_run(finished_at=None)

    def test_to_dict_includes_status(self) -> None:
        """to_dict exposes the derived status."""
        data = _finished_run().to_dict()
        assert data["status"] == "finished"
        assert data["modified_bytes"] == -5


class TestChangeLogEntry:
    """Tests for ChangeLogEntry dataclass."""

    def test_added_requires_new_size(self) -> None:
        """Added entries carry the new size."""
        with pytest.raises(ValueError, match="new size"):
            ChangeLogEntry(1, "/a", ChangeType.ADDED, None, None, None, None, "t", "/")

    def test_deleted_requires_old_size(self) -> None:
        """Deleted entries carry the old size."""
        with pytest.raises(ValueError, match="old size"):
            ChangeLogEntry(1, "/a", ChangeType.DELETED, None, None, None, None, "t", "/")

    def test_modified_requires_both_sizes(self) -> None:
        """Modified entries carry both sizes."""
        with pytest.raises(ValueError, match="both"):
            ChangeLogEntry(1, "/a", ChangeType.MODIFIED, 10, None, "t1", None, "t", "/")

    @pytest.mark.parametrize(
        ("change_type", "old", "new", "expected"),
        [
            (ChangeType.ADDED, None, 10, 10),
            (ChangeType.DELETED, 10, None, -10),
            (ChangeType.MODIFIED, 10, 4, -6),
        ],
    )
    def test_size_delta(
        self, change_type: ChangeType, old: int | None, new: int | None, expected: int
    ) -> None:
        """size_delta is new minus old with missing sides as zero."""
        entry = ChangeLogEntry(1, "/a", change_type, old, new, None, None, "t", "/")
        assert entry.size_delta == expected
