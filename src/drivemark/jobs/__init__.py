"""Job scheduling for mirrored drives."""

from .errors import JobError, SchedulerError
from .events import ChangesChanged, EventBus, JobsChanged, PanicRaised, Toast, ToastAdded
from .handlers import JobHandlers, split_file_ids
from .models import ARCHIVE_LIMIT, DriveJobs, Job, JobProgress, JobState, JobType, JobUser
from .scheduler import JobHandler, JobScheduler
from .store import DriveJobsStore

__all__ = [
    "ARCHIVE_LIMIT",
    "ChangesChanged",
    "DriveJobs",
    "DriveJobsStore",
    "EventBus",
    "Job",
    "JobError",
    "JobHandler",
    "JobHandlers",
    "JobProgress",
    "JobScheduler",
    "JobState",
    "JobType",
    "JobUser",
    "JobsChanged",
    "PanicRaised",
    "SchedulerError",
    "Toast",
    "ToastAdded",
    "split_file_ids",
]
