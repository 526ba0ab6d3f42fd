"""Job records persisted per drive in ``.jobs.json``."""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

ARCHIVE_LIMIT = 100


class JobType(str, Enum):
    SYNC = "sync"
    SYNC_ALL = "sync_all"
    TRANSFORM = "transform"
    RUN_ACTION = "run_action"
    GIT_PULL = "git_pull"
    GIT_PUSH = "git_push"
    GIT_COMMIT = "git_commit"
    GIT_RESET = "git_reset"


class JobState(str, Enum):
    WAITING = "waiting"
    RUNNING = "running"
    FAILED = "failed"
    DONE = "done"


SYNC_FAMILY = frozenset({JobType.SYNC, JobType.SYNC_ALL, JobType.TRANSFORM})
GIT_TYPES = frozenset({JobType.GIT_PULL, JobType.GIT_PUSH, JobType.GIT_COMMIT, JobType.GIT_RESET})


class _JobModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class JobProgress(_JobModel):
    total: int = 0
    completed: int = 0
    warnings: int = 0
    failed: int = 0


class JobUser(_JobModel):
    name: str
    email: str


class Job(_JobModel):
    """A unit of scheduled work for one drive.

    Timestamps are epoch milliseconds.

    Attributes:
        id: Unique job id.
        type: What the job does.
        state: Lifecycle state.
        title: Label shown to users.
        payload: Type-specific argument, e.g. comma separated file ids for ``sync``.
        trigger: Event that caused the job, used by ``run_action``.
        ts: When the job was scheduled.
        started: When the job started running.
        finished: When the job finished.
        start_after: Earliest time the job may start.
        progress: Queue counters reported while running.
        user: User on whose behalf the job runs.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: JobType
    state: JobState = JobState.WAITING
    title: str = ""
    payload: Optional[str] = None
    trigger: Optional[str] = None
    ts: Optional[int] = None
    started: Optional[int] = None
    finished: Optional[int] = None
    start_after: Optional[int] = Field(default=None, alias="startAfter")
    progress: Optional[JobProgress] = None
    user: Optional[JobUser] = None

    @property
    def is_active(self) -> bool:
        """Return ``True`` while the job is waiting or running."""
        return self.state in (JobState.WAITING, JobState.RUNNING)

    @property
    def is_finished(self) -> bool:
        return self.state in (JobState.DONE, JobState.FAILED)


class DriveJobs(_JobModel):
    """Current and archived jobs of a drive."""

    drive_id: str = Field(alias="driveId")
    jobs: List[Job] = Field(default_factory=list)
    archive: List[Job] = Field(default_factory=list)

    def find(self, job_id: str) -> Optional[Job]:
        return next((job for job in self.jobs if job.id == job_id), None)

    def archive_where(self, predicate: Callable[[Job], bool], limit: int = ARCHIVE_LIMIT) -> None:
        """Move jobs matching ``predicate`` into the archive, keeping the newest ``limit``."""
        moved = [job for job in self.jobs if predicate(job)]
        if not moved:
            return
        self.jobs = [job for job in self.jobs if not predicate(job)]
        self.archive = (self.archive + moved)[-limit:] if limit > 0 else []


__all__ = [
    "ARCHIVE_LIMIT",
    "DriveJobs",
    "GIT_TYPES",
    "Job",
    "JobProgress",
    "JobState",
    "JobType",
    "JobUser",
    "SYNC_FAMILY",
]
