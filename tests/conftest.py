"""Shared fixtures: an in-memory Drive and helpers to lay out downloaded folders."""

from __future__ import annotations

import os
from pathlib import Path
from typing import IO, Callable, Iterable

import pytest

from drivemark.drive import FOLDER_FILES, FOLDER_MANIFEST, DriveError, DriveFile, MimeTypes
from drivemark.storage import FileStore


class FakeDriveClient:
    """DriveClient holding files in memory.

    ``contents`` maps file ids to the bytes returned by downloads and exports;
    ``failures`` maps file ids to the HTTP code raised when they are fetched.
    """

    def __init__(self) -> None:
        self.files: dict[str, DriveFile] = {}
        self.contents: dict[str, bytes] = {}
        self.failures: dict[str, int] = {}
        self.exports: list[tuple[str, str]] = []
        self.downloads: list[str] = []
        self.listed: list[str] = []
        self.attempts: dict[str, int] = {}

    def add(
        self,
        file_id: str,
        name: str,
        mime_type: str,
        *,
        parent_id: str | None = None,
        content: bytes = b"",
        modified_time: str = "2024-01-01T00:00:00.000Z",
        **extra: object,
    ) -> DriveFile:
        drive_file = DriveFile(
            id=file_id,
            name=name,
            mimeType=mime_type,
            modifiedTime=modified_time,
            parentId=parent_id,
            **extra,
        )
        self.files[file_id] = drive_file
        self.contents[file_id] = content
        return drive_file

    def list_children(self, folder_id: str) -> list[DriveFile]:
        self.listed.append(folder_id)
        return [entry for entry in self.files.values() if entry.parent_id == folder_id]

    def get_file(self, file_id: str) -> DriveFile:
        if file_id not in self.files:
            raise DriveError(f"File not found: {file_id}", 404)
        return self.files[file_id]

    def download(self, file: DriveFile, stream: IO[bytes]) -> None:
        self._maybe_fail(file.id)
        self.downloads.append(file.id)
        stream.write(self.contents.get(file.id, b""))

    def export(self, file: DriveFile, mime_type: str, stream: IO[bytes]) -> None:
        self._maybe_fail(file.id)
        self.exports.append((file.id, mime_type))
        stream.write(self.contents.get(file.id, b""))

    def _maybe_fail(self, file_id: str) -> None:
        self.attempts[file_id] = self.attempts.get(file_id, 0) + 1
        code = self.failures.get(file_id)
        if code is not None:
            raise DriveError(f"Drive refused {file_id}", code)


@pytest.fixture
def fake_drive() -> FakeDriveClient:
    client = FakeDriveClient()
    client.add("root", "Root", MimeTypes.FOLDER)
    return client


def write_downloaded_folder(
    store: FileStore,
    folder: DriveFile,
    children: Iterable[tuple[DriveFile, str]],
) -> None:
    """Lay out a folder the way the download pipeline leaves it.

    ``children`` pairs each listing entry with the Markdown exported for it.
    """
    store.write_json(FOLDER_MANIFEST, folder.to_json())
    entries = []
    for drive_file, markdown in children:
        entries.append(drive_file.to_json())
        if drive_file.mime_type == MimeTypes.DOCUMENT:
            store.write_text(f"{drive_file.id}.md", markdown)
    store.write_json(FOLDER_FILES, entries)


@pytest.fixture
def downloaded_folder() -> Callable[[FileStore, DriveFile, Iterable[tuple[DriveFile, str]]], None]:
    return write_downloaded_folder


@pytest.fixture
def drive_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``~`` at a temporary directory so configs and workspaces stay isolated."""
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in list(os.environ):
        if key.startswith("DRIVEMARK__"):
            monkeypatch.delenv(key)
    return tmp_path
