"""Unit tests for scans command."""

import json

import pytest
from fsdelta.cli.main import app
from fsdelta.store.repository import ScanStore
from typer.testing import CliRunner

runner = CliRunner()

T0 = "2026-01-01T00:00:00+00:00"
T1 = "2026-01-01T00:10:00+00:00"


def _flat(text: str) -> str:
    return " ".join(text.split())


@pytest.fixture
def initialized_db(database_url: str) -> str:
    """Database URL with the schema provisioned."""
    with ScanStore.open(database_url) as store:
        store.initialize()
    return database_url


class TestScansCommand:
    """Tests for fsdelta scans command."""

    def test_scans_help(self) -> None:
        """Scans command shows help."""
        result = runner.invoke(app, ["scans", "--help"])
        assert result.exit_code == 0
        assert "--limit" in result.output

    def test_no_scans(self, initialized_db: str) -> None:
        """An empty history prints a message."""
        result = runner.invoke(app, ["scans", "-d", initialized_db])

        assert result.exit_code == 0
        assert "No scans recorded yet." in result.output

    def test_lists_runs_with_status(self, initialized_db: str) -> None:
        """Failed runs are listed with their failure reason."""
        with ScanStore.open(initialized_db) as store:
            finished = store.open_scan("/data", T0)
            store.finalize_scan(finished, finished_at=T1, total_paths=0, metadata={})
            failed = store.open_scan("/data", T1)
            store.mark_failed(failed, "loading: disk full")

        result = runner.invoke(app, ["scans", "-d", initialized_db])

        assert result.exit_code == 0
        output = _flat(result.output)
        assert "Scan Runs" in output
        assert f"Scan {failed}: loading: disk full" in output

    def test_json_limit(self, initialized_db: str) -> None:
        """--json honors --limit and lists newest first."""
        with ScanStore.open(initialized_db) as store:
            for _ in range(3):
                store.open_scan("/data", T0)

        result = runner.invoke(app, ["scans", "-d", initialized_db, "-n", "2", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [run["scan_id"] for run in data] == [3, 2]
        assert data[0]["status"] == "running"
        assert data[0]["added_count"] is None

    def test_uninitialized_database(self, database_url: str) -> None:
        """Listing an uninitialized database fails."""
        result = runner.invoke(app, ["scans", "-d", database_url])
        assert result.exit_code == 1
