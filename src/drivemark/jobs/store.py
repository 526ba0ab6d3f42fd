"""Per-drive job lists cached in memory and flushed to ``.jobs.json``."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, TypeVar

from drivemark.workspace import JOBS_FILE, DriveWorkspace

from .models import ARCHIVE_LIMIT, DriveJobs

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class DriveJobsStore:
    """Owner of every drive's job list.

    All mutations go through :meth:`update`, which holds a lock and persists
    the list before returning. Readers get copies.
    """

    def __init__(self, workdir: Path, *, archive_limit: int = ARCHIVE_LIMIT) -> None:
        self._workdir = Path(workdir).expanduser()
        self._archive_limit = archive_limit
        self._cache: dict[str, DriveJobs] = {}
        self._lock = threading.RLock()

    @property
    def workdir(self) -> Path:
        return self._workdir

    @property
    def archive_limit(self) -> int:
        return self._archive_limit

    def workspace(self, drive_id: str) -> DriveWorkspace:
        return DriveWorkspace(self._workdir, drive_id)

    def get(self, drive_id: str) -> DriveJobs:
        """Return a copy of the drive's jobs, loading ``.jobs.json`` on first use."""
        with self._lock:
            return self._load(drive_id).model_copy(deep=True)

    def update(self, drive_id: str, mutator: Callable[[DriveJobs], T], *, persist: bool = True) -> T:
        """Apply ``mutator`` to the drive's jobs and persist the result.

        Args:
            drive_id: Drive whose job list is changed.
            mutator: Callable editing the list in place.
            persist: Write ``.jobs.json`` afterwards. Progress updates skip this.

        Returns:
            Whatever ``mutator`` returns.
        """
        with self._lock:
            drive_jobs = self._load(drive_id)
            result = mutator(drive_jobs)
            if persist:
                self._save(drive_id, drive_jobs)
            return result

    def flush(self) -> None:
        """Persist every loaded job list, including progress-only updates."""
        with self._lock:
            for drive_id, drive_jobs in self._cache.items():
                self._save(drive_id, drive_jobs)

    def drive_ids(self) -> list[str]:
        """Return ids of drives with a loaded or persisted job list."""
        with self._lock:
            ids = set(self._cache)
        if self._workdir.is_dir():
            ids.update(path.parent.name for path in self._workdir.glob(f"*/{JOBS_FILE}"))
        return sorted(ids)

    def _load(self, drive_id: str) -> DriveJobs:
        cached = self._cache.get(drive_id)
        if cached is not None:
            return cached
        data = self.workspace(drive_id).store().read_json(JOBS_FILE)
        drive_jobs = DriveJobs.model_validate(data) if data else DriveJobs(driveId=drive_id)
        self._cache[drive_id] = drive_jobs
        LOGGER.debug("Loaded %d jobs for drive %s", len(drive_jobs.jobs), drive_id)
        return drive_jobs

    def _save(self, drive_id: str, drive_jobs: DriveJobs) -> None:
        self.workspace(drive_id).store().write_json(JOBS_FILE, drive_jobs.to_json())


__all__ = ["DriveJobsStore"]
