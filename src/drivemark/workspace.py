"""Directory layout of a mirrored drive under the configured workdir."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from drivemark.storage import FileStore

JOBS_FILE = ".jobs.json"


@dataclass(slots=True, frozen=True)
class DriveWorkspace:
    """Paths used for one drive.

    ``<workdir>/<drive_id>/`` holds ``download/`` (the Drive mirror),
    ``content/`` (the generated tree), ``.jobs.json`` and ``logs/``.
    """

    workdir: Path
    drive_id: str

    @property
    def root(self) -> Path:
        return Path(self.workdir).expanduser() / self.drive_id

    @property
    def log_dir(self) -> Path:
        return self.root / "logs"

    @property
    def jobs_path(self) -> Path:
        return self.root / JOBS_FILE

    def store(self) -> FileStore:
        return FileStore(self.root)

    def download_store(self) -> FileStore:
        return FileStore(self.root / "download")

    def content_store(self) -> FileStore:
        return FileStore(self.root / "content")


__all__ = ["DriveWorkspace", "JOBS_FILE"]
