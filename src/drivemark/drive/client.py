"""Port describing the Google Drive operations the pipelines need."""

from __future__ import annotations

from typing import IO, Protocol

from drivemark.queue import TaskError

from .models import DriveFile


class DriveError(TaskError):
    """Raised when a Drive call fails; ``code`` carries the HTTP status."""


class DriveClient(Protocol):
    def list_children(self, folder_id: str) -> list[DriveFile]:
        """Return the non-trashed children of a folder."""

    def get_file(self, file_id: str) -> DriveFile:
        """Return metadata for a single file or folder."""

    def download(self, file: DriveFile, stream: IO[bytes]) -> None:
        """Write the binary content of ``file`` to ``stream``."""

    def export(self, file: DriveFile, mime_type: str, stream: IO[bytes]) -> None:
        """Write ``file`` converted to ``mime_type`` to ``stream``."""


__all__ = ["DriveClient", "DriveError"]
