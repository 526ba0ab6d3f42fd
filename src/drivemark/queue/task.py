"""Base class for units of work executed by ``TaskQueue``."""

from __future__ import annotations

INITIAL_RETRIES = 4


class Task:
    """A retryable unit of work.

    Subclasses implement :meth:`run`. Returning tasks from ``run`` enqueues
    them on the same queue, which is how folder downloads fan out.

    Attributes:
        retries: Remaining retry budget; decremented by the queue on failure.
        warnings: Non-fatal content issues reported by the last run.
    """

    def __init__(self, *, retries: int = INITIAL_RETRIES) -> None:
        self.retries = retries
        self.warnings = 0

    def run(self) -> list["Task"]:
        """Execute the task and return follow-up tasks."""
        raise NotImplementedError

    def describe(self) -> str:
        """Return a short label used in log lines."""
        return type(self).__name__


__all__ = ["INITIAL_RETRIES", "Task"]
