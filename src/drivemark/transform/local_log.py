"""Append-only log of files created, renamed, touched and removed by transforms."""

from __future__ import annotations

import csv
import io
import threading
import time
from dataclasses import dataclass
from typing import Optional

from drivemark.storage import FileStore

from .scanner import LOCAL_LOG_NAME

_HEADER = ["filePath", "mtime", "id", "type", "event"]


@dataclass(slots=True)
class LogRow:
    """One log entry.

    Attributes:
        file_path: Virtual path from the content root, e.g. ``/docs/a.md``.
        id: Drive id of the file.
        type: Logical file type (``md``, ``drawing``...).
        event: ``created``, ``renamed``, ``touched`` or ``removed``.
        mtime: Epoch milliseconds when the entry was appended.
    """

    file_path: str
    id: str
    type: str
    event: str
    mtime: Optional[int] = None


class LocalLog:
    """History of generated paths, used for redirects and link rewriting."""

    def __init__(self, store: FileStore) -> None:
        self._store = store
        self._rows: list[LogRow] = []
        self._lock = threading.Lock()

    def load(self) -> None:
        self._rows = []
        if not self._store.exists(LOCAL_LOG_NAME):
            return
        reader = csv.reader(io.StringIO(self._store.read_text(LOCAL_LOG_NAME)), delimiter=";")
        for index, cells in enumerate(reader):
            if index == 0 or len(cells) < 5:
                continue
            mtime = int(cells[1]) if cells[1].isdigit() else None
            self._rows.append(
                LogRow(file_path=cells[0], mtime=mtime, id=cells[2], type=cells[3], event=cells[4])
            )

    def append(self, row: LogRow) -> None:
        row.mtime = int(time.time() * 1000)
        with self._lock:
            self._rows.append(row)

    def get_logs(self) -> list[LogRow]:
        with self._lock:
            return list(self._rows)

    def find_last_file(self, file_id: str) -> LogRow | None:
        """Return the newest entry for ``file_id``."""
        with self._lock:
            for row in reversed(self._rows):
                if row.id == file_id:
                    return row
        return None

    def find_last_file_by_path(self, file_path: str) -> LogRow | None:
        """Return the newest entry recorded at ``file_path``."""
        with self._lock:
            for row in reversed(self._rows):
                if row.file_path == file_path:
                    return row
        return None

    def save(self) -> None:
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
        writer.writerow(_HEADER)
        with self._lock:
            for row in self._rows:
                writer.writerow([row.file_path, row.mtime or "", row.id, row.type, row.event])
        self._store.write_text(LOCAL_LOG_NAME, buffer.getvalue())


__all__ = ["LocalLog", "LogRow"]
