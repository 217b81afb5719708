"""Sequential record batch written by the stream sink.

A batch is a tab-delimited file with one FileRecord per row
(path, name, type, size, mtime). It is the bulk-load payload handed
to the store once the crawl completes.
"""

from __future__ import annotations

import csv
from collections.abc import Iterator
from pathlib import Path
from typing import Any, TextIO

from fsdelta.models.records import FileRecord

BATCH_COLUMNS: tuple[str, ...] = ("path", "name", "file_type", "size_bytes", "mtime")


class RecordBatchError(Exception):
    """Raised when a record batch cannot be written or read."""


class RecordBatchWriter:
    """Append-only writer for a record batch file.

    Use as a context manager; the file is flushed and closed on exit.

    Args:
        path: Destination file. Parent directories are created.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._handle: TextIO | None = None
        self._writer: Any = None
        self._count = 0

    @property
    def path(self) -> Path:
        """Destination file."""
        return self._path

    @property
    def count(self) -> int:
        """Number of records written so far."""
        return self._count

    def open(self) -> RecordBatchWriter:
        """Create the file, truncating any previous content."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self._path.open("w", encoding="utf-8", newline="")
        except OSError as e:
            msg = f"Cannot create record batch {self._path}: {e}"
            raise RecordBatchError(msg) from e
        self._writer = csv.writer(self._handle, delimiter="\t", lineterminator="\n")
        return self

    def write(self, record: FileRecord) -> None:
        """Append one record.

        Raises:
            RecordBatchError: If the writer is closed or the write fails.
        """
        if self._writer is None:
            msg = "Record batch writer is not open"
            raise RecordBatchError(msg)
        try:
            self._writer.writerow(
                (record.path, record.name, record.file_type, record.size_bytes, record.mtime)
            )
        except (OSError, UnicodeError, csv.Error) as e:
            msg = f"Failed to write record batch {self._path}: {e}"
            raise RecordBatchError(msg) from e
        self._count += 1

    def close(self) -> None:
        """Flush and close the file."""
        if self._handle is None:
            return
        try:
            self._handle.flush()
            self._handle.close()
        except OSError as e:
            msg = f"Failed to flush record batch {self._path}: {e}"
            raise RecordBatchError(msg) from e
        finally:
            self._handle = None
            self._writer = None

    def __enter__(self) -> RecordBatchWriter:
        return self.open()

    def __exit__(self, *_exc: object) -> None:
        self.close()


def read_record_batch(path: Path) -> Iterator[FileRecord]:
    """Stream records back from a batch file.

    Args:
        path: Batch file written by RecordBatchWriter.

    Yields:
        FileRecord per row, in write order.

    Raises:
        RecordBatchError: If the file is unreadable or a row is malformed.
    """
    try:
        handle = path.open(encoding="utf-8", newline="")
    except OSError as e:
        msg = f"Cannot open record batch {path}: {e}"
        raise RecordBatchError(msg) from e

    with handle:
        reader = csv.reader(handle, delimiter="\t")
        for line_num, row in enumerate(reader, start=1):
            if len(row) != len(BATCH_COLUMNS):
                msg = f"Malformed record batch row {line_num} in {path}: {row!r}"
                raise RecordBatchError(msg)
            file_path, name, file_type, size, mtime = row
            try:
                record = FileRecord(
                    path=file_path,
                    name=name,
                    file_type=file_type,
                    size_bytes=int(size),
                    mtime=mtime,
                )
            except ValueError as e:
                msg = f"Invalid record batch row {line_num} in {path}: {e}"
                raise RecordBatchError(msg) from e
            yield record
