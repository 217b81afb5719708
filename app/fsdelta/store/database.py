"""SQLite connection handling, schema provisioning and transactions.

Connection strings take the form ``sqlite:///path/to/file.db``,
``sqlite://:memory:`` or a bare filesystem path. Connections run in
autocommit mode; multi-statement units of work go through
:func:`transaction`, which holds a write lock for their duration.
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

SQLITE_SCHEME = "sqlite://"
MEMORY_DATABASE = ":memory:"

SCHEMA_TABLES: tuple[str, ...] = ("file_changes", "staging_files", "files", "scan_runs")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS scan_runs (
    scan_id INTEGER PRIMARY KEY AUTOINCREMENT,
    scan_root TEXT NOT NULL,
    started_at TEXT NOT NULL,
    finished_at TEXT NULL,
    total_paths_count INTEGER NULL,
    added_files_count INTEGER NULL,
    modified_files_count INTEGER NULL,
    removed_files_count INTEGER NULL,
    added_bytes INTEGER NULL,
    modified_bytes INTEGER NULL,
    deleted_bytes INTEGER NULL,
    scan_metadata TEXT NULL,
    failure_reason TEXT NULL
);

CREATE TABLE IF NOT EXISTS files (
    file_path TEXT PRIMARY KEY,
    file_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL,
    file_mtime TEXT NOT NULL,
    file_fingerprint TEXT NULL,
    last_seen_scan INTEGER NOT NULL REFERENCES scan_runs(scan_id) ON UPDATE CASCADE,
    last_updated TEXT NOT NULL,
    path_key TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_last_seen_scan ON files (last_seen_scan);
CREATE INDEX IF NOT EXISTS idx_files_path_key ON files (path_key);

CREATE TABLE IF NOT EXISTS file_changes (
    scan_id INTEGER NOT NULL REFERENCES scan_runs(scan_id) ON DELETE CASCADE,
    file_path TEXT NOT NULL,
    change_type TEXT NOT NULL CHECK (change_type IN ('added', 'modified', 'deleted')),
    old_size_bytes INTEGER NULL,
    new_size_bytes INTEGER NULL,
    old_mtime TEXT NULL,
    new_mtime TEXT NULL,
    recorded_at TEXT NOT NULL,
    path_key TEXT NOT NULL,
    PRIMARY KEY (scan_id, file_path)
);

CREATE INDEX IF NOT EXISTS idx_file_changes_change_type ON file_changes (change_type);
CREATE INDEX IF NOT EXISTS idx_file_changes_scan_type ON file_changes (scan_id, change_type);
CREATE INDEX IF NOT EXISTS idx_file_changes_path_key ON file_changes (path_key);

CREATE TABLE IF NOT EXISTS staging_files (
    scan_id INTEGER NOT NULL REFERENCES scan_runs(scan_id) ON DELETE CASCADE,
    file_path TEXT NOT NULL,
    file_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL,
    file_mtime TEXT NOT NULL,
    PRIMARY KEY (scan_id, file_path)
);
"""


class StoreError(Exception):
    """Base exception for store failures."""


class ConnectionStringError(StoreError):
    """Raised when a connection string cannot be interpreted."""


def parse_database_url(url: str) -> str:
    """Resolve a connection string to a SQLite database location.

    Args:
        url: ``sqlite:///path``, ``sqlite://:memory:`` or a bare path.

    Returns:
        Filesystem path string or ``:memory:``.

    Raises:
        ConnectionStringError: If the string is empty or uses another scheme.
    """
    if not url or not url.strip():
        msg = "Database URL cannot be empty"
        raise ConnectionStringError(msg)

    url = url.strip()
    if url.startswith(SQLITE_SCHEME):
        location = url[len(SQLITE_SCHEME) :]
        if location == MEMORY_DATABASE or location == f"/{MEMORY_DATABASE}":
            return MEMORY_DATABASE
        if not location.startswith("/"):
            msg = f"Expected sqlite:///<path>, got: {url}"
            raise ConnectionStringError(msg)
        # sqlite:///relative.db -> relative.db, sqlite:////abs.db -> /abs.db
        location = location[1:]
        if not location:
            msg = f"Database path missing in URL: {url}"
            raise ConnectionStringError(msg)
        return str(Path(location).expanduser())

    if "://" in url:
        scheme = url.split("://", 1)[0]
        msg = f"Unsupported database scheme '{scheme}' (only sqlite is supported)"
        raise ConnectionStringError(msg)

    if url == MEMORY_DATABASE:
        return MEMORY_DATABASE
    return str(Path(url).expanduser())


def mask_database_url(url: str) -> str:
    """Hide credentials in a connection string for logging."""
    if "@" not in url:
        return url
    scheme, sep, rest = url.partition("://")
    if not sep:
        return "***@" + url.rsplit("@", 1)[-1]
    return f"{scheme}://***@{rest.rsplit('@', 1)[-1]}"


def connect(url: str) -> sqlite3.Connection:
    """Open a database connection.

    Parent directories of file databases are created on demand. The
    connection runs in autocommit mode with foreign keys enforced.

    Args:
        url: Connection string (see :func:`parse_database_url`).

    Returns:
        Open sqlite3 connection with ``sqlite3.Row`` rows.

    Raises:
        ConnectionStringError: If the URL is malformed.
        StoreError: If the database cannot be opened.
    """
    location = parse_database_url(url)

    try:
        if location != MEMORY_DATABASE:
            Path(location).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(location, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        if location != MEMORY_DATABASE:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
    except (sqlite3.Error, OSError) as e:
        msg = f"Cannot open database {mask_database_url(url)}: {e}"
        raise StoreError(msg) from e

    logger.debug("Connected to database %s", mask_database_url(url))
    return conn


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block as one atomic unit of work.

    Commits when the block completes and rolls back on any exception,
    which is re-raised. Readers on other connections see either the
    state before the block or the state after it.

    Args:
        conn: Connection opened by :func:`connect`.

    Yields:
        The same connection.

    Raises:
        StoreError: If a transaction is already open on the connection.
    """
    if conn.in_transaction:
        msg = "A transaction is already in progress on this connection"
        raise StoreError(msg)

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Translate sqlite3 errors raised in a block into StoreError.

    Args:
        action: Short description used in the error message.
    """
    try:
        yield
    except sqlite3.Error as e:
        msg = f"Failed to {action}: {e}"
        raise StoreError(msg) from e


def initialize_schema(conn: sqlite3.Connection, *, reset: bool = False) -> None:
    """Provision the schema.

    Safe to run repeatedly. With ``reset`` every table is dropped first,
    discarding all tracked state.

    Args:
        conn: Open connection.
        reset: Drop existing tables before creating them.

    Raises:
        StoreError: If the schema cannot be created.
    """
    with store_errors("initialize schema"):
        if reset:
            logger.warning("Dropping all existing tables")
            conn.execute("PRAGMA foreign_keys=OFF")
            try:
                for table in SCHEMA_TABLES:
                    conn.execute(f"DROP TABLE IF EXISTS {table}")
            finally:
                conn.execute("PRAGMA foreign_keys=ON")
        conn.executescript(SCHEMA_SQL)
    logger.info("Database schema ready")


def schema_exists(conn: sqlite3.Connection) -> bool:
    """Check whether every schema table exists."""
    with store_errors("inspect schema"):
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    names = {row["name"] for row in rows}
    return all(table in names for table in SCHEMA_TABLES)
