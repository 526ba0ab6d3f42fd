"""Concurrent task queue shared by the download and transform pipelines."""

from .errors import QUOTA_EXCEEDED, TaskError
from .runner import (
    DOWNLOAD_CONCURRENCY,
    QueueProgress,
    TaskQueue,
    download_queue,
    transform_queue,
)
from .task import INITIAL_RETRIES, Task

__all__ = [
    "DOWNLOAD_CONCURRENCY",
    "INITIAL_RETRIES",
    "QUOTA_EXCEEDED",
    "QueueProgress",
    "Task",
    "TaskError",
    "TaskQueue",
    "download_queue",
    "transform_queue",
]
