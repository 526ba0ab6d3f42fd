"""Job handling errors."""

from __future__ import annotations


class JobError(Exception):
    """Raised by a job handler; the scheduler marks the job as failed."""


class SchedulerError(Exception):
    """Raised when scheduler bookkeeping is inconsistent, e.g. a duplicate job id."""


__all__ = ["JobError", "SchedulerError"]
