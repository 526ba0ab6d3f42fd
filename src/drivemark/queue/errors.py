"""Task queue errors."""

from __future__ import annotations


class TaskError(Exception):
    """Failure raised by a queued task.

    Attributes:
        code: Optional HTTP-style status code describing the failure.
    """

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


QUOTA_EXCEEDED = 403
