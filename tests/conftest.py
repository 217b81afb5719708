"""Pytest configuration and shared fixtures.

This module contains fixtures used across all test modules.
"""

import os
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from fsdelta.models.records import CanonicalFile, FileRecord, file_type_for
from fsdelta.store.hierarchy import path_key
from fsdelta.store.repository import ScanStore

# 2026-01-01T00:00:00+00:00 in nanoseconds
BASE_MTIME_NS = 1_767_225_600_000_000_000


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Point XDG directories at tmp_path and clear fsdelta env overrides."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))
    for var in ("DATA_ROOT", "DATABASE_URL", "LOG_FILE", "PROGRESS_INTERVAL"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def store() -> Iterator[ScanStore]:
    """In-memory store with the schema provisioned."""
    scan_store = ScanStore.open("sqlite://:memory:")
    scan_store.initialize()
    yield scan_store
    scan_store.close()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Connection string for a file database under tmp_path."""
    return f"sqlite:///{tmp_path / 'db' / 'fsdelta.db'}"


def make_record(path: str, size: int, mtime: str = "2026-01-01T00:00:00+00:00") -> FileRecord:
    """Build a FileRecord with name and type derived from the path."""
    name = os.path.basename(path)
    return FileRecord(
        path=path,
        name=name,
        file_type=file_type_for(name),
        size_bytes=size,
        mtime=mtime,
    )


def make_canonical(
    path: str,
    size: int,
    mtime: str = "2026-01-01T00:00:00+00:00",
    last_seen_scan: int = 1,
) -> CanonicalFile:
    """Build a CanonicalFile with derived name, type and path key."""
    name = os.path.basename(path)
    return CanonicalFile(
        path=path,
        name=name,
        file_type=file_type_for(name),
        size_bytes=size,
        mtime=mtime,
        last_seen_scan=last_seen_scan,
        last_updated="2026-01-01T00:00:00+00:00",
        path_key=path_key(path),
    )


@pytest.fixture
def record_factory() -> Callable[..., FileRecord]:
    """Factory for FileRecord instances."""
    return make_record


@pytest.fixture
def canonical_factory() -> Callable[..., CanonicalFile]:
    """Factory for CanonicalFile instances."""
    return make_canonical


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, int]], list[Path]]:
    """Create files of the given sizes under a root with a fixed mtime.

    Keys are relative paths, values are sizes in bytes.
    """

    def _write(root: Path, files: dict[str, int]) -> list[Path]:
        created: list[Path] = []
        for rel, size in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(b"x" * size)
            os.utime(path, ns=(BASE_MTIME_NS, BASE_MTIME_NS))
            created.append(path)
        return created

    return _write
