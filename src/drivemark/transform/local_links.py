"""Table of outgoing links per generated file."""

from __future__ import annotations

import csv
import io
import threading
from dataclasses import dataclass, field

from drivemark.storage import FileStore

from .scanner import LOCAL_LINKS_NAME

_HEADER = ["source", "name", "dest"]


@dataclass(slots=True)
class FileLinks:
    file_id: str
    file_name: str
    links: list[str] = field(default_factory=list)


class LocalLinks:
    """Remember which files link where, so back-links can be found later."""

    def __init__(self, store: FileStore) -> None:
        self._store = store
        self._entries: dict[str, FileLinks] = {}
        self._lock = threading.Lock()

    def load(self) -> None:
        self._entries = {}
        if not self._store.exists(LOCAL_LINKS_NAME):
            return
        reader = csv.reader(io.StringIO(self._store.read_text(LOCAL_LINKS_NAME)), delimiter=";")
        for index, cells in enumerate(reader):
            if index == 0 or len(cells) < 3:
                continue
            source, name, dest = cells[0], cells[1], cells[2]
            entry = self._entries.setdefault(source, FileLinks(file_id=source, file_name=name))
            entry.links.append(dest)

    def append(self, file_id: str, file_name: str, links: list[str]) -> None:
        """Replace the recorded links of ``file_id``."""
        with self._lock:
            self._entries[file_id] = FileLinks(file_id=file_id, file_name=file_name, links=list(links))

    def get_links(self, file_id: str) -> list[str]:
        with self._lock:
            entry = self._entries.get(file_id)
            return list(entry.links) if entry else []

    def get_back_links(self, file_id: str) -> list[str]:
        """Return ids of files that contain a ``gdoc:`` link to ``file_id``."""
        target = "gdoc:" + file_id
        with self._lock:
            return [
                entry.file_id
                for entry in self._entries.values()
                if any(link.split("#", 1)[0] == target for link in entry.links)
            ]

    def save(self) -> None:
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
        writer.writerow(_HEADER)
        with self._lock:
            for entry in self._entries.values():
                for link in entry.links:
                    writer.writerow([entry.file_id, entry.file_name, link])
        self._store.write_text(LOCAL_LINKS_NAME, buffer.getvalue())


__all__ = ["FileLinks", "LocalLinks"]
