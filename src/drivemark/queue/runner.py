"""Bounded-concurrency task runner with retries and fan-out."""

from __future__ import annotations

import logging
import os
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable

from .errors import QUOTA_EXCEEDED, TaskError
from .task import Task

LOGGER = logging.getLogger(__name__)

DOWNLOAD_CONCURRENCY = 4


@dataclass(slots=True)
class QueueProgress:
    """Counters describing a queue's work so far.

    Attributes:
        completed: Tasks that finished successfully.
        total: Tasks ever added, including fan-out.
        warnings: Sum of warnings reported by completed tasks.
        failed: Tasks that exhausted their retry budget.
    """

    completed: int = 0
    total: int = 0
    warnings: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


ProgressCallback = Callable[[QueueProgress], None]


class TaskQueue:
    """Run tasks on up to ``concurrency`` worker threads.

    Workers are started on demand and exit when the queue is empty. A task that
    raises is re-queued while it has retry budget left; a ``TaskError`` with code
    403 fails at once. Failures never propagate to callers, who read
    :attr:`progress` after :meth:`finished` returns.
    """

    def __init__(self, concurrency: int, *, task_delay: float = 0.1, name: str = "queue") -> None:
        self._concurrency = max(1, concurrency)
        self._task_delay = max(0.0, task_delay)
        self._name = name
        self._pending: deque[Task] = deque()
        self._condition = threading.Condition()
        self._in_flight = 0
        self._workers = 0
        self._progress = QueueProgress()
        self._callbacks: list[ProgressCallback] = []

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    @property
    def progress(self) -> QueueProgress:
        """Return a snapshot of the queue counters."""
        with self._condition:
            return QueueProgress(**self._progress.as_dict())

    def on_progress(self, callback: ProgressCallback) -> None:
        """Register a callback invoked with a snapshot after every change."""
        self._callbacks.append(callback)

    def add_task(self, task: Task) -> None:
        """Enqueue a task and count it towards ``total``."""
        with self._condition:
            self._pending.append(task)
            self._progress.total += 1
            self._spawn_workers()
        self._notify_progress()

    def finished(self, timeout: float | None = None) -> QueueProgress:
        """Block until no task is pending or running.

        Args:
            timeout: Optional upper bound on the wait, in seconds.

        Returns:
            QueueProgress: Counters at the time the queue drained.
        """
        with self._condition:
            self._condition.wait_for(
                lambda: not self._pending and self._in_flight == 0, timeout=timeout
            )
            return QueueProgress(**self._progress.as_dict())

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _spawn_workers(self) -> None:
        # Caller holds the condition lock.
        while self._workers < self._concurrency and self._workers < len(self._pending):
            self._workers += 1
            worker = threading.Thread(
                target=self._work, name=f"{self._name}-worker-{self._workers}", daemon=True
            )
            worker.start()

    def _work(self) -> None:
        while True:
            with self._condition:
                if not self._pending:
                    self._workers -= 1
                    self._condition.notify_all()
                    return
                task = self._pending.popleft()
                self._in_flight += 1

            try:
                self._execute(task)
            finally:
                with self._condition:
                    self._in_flight -= 1
                    self._condition.notify_all()

            if self._task_delay:
                time.sleep(self._task_delay)

    def _execute(self, task: Task) -> None:
        label = task.describe()
        try:
            follow_ups = task.run() or []
        except TaskError as exc:
            if exc.code == QUOTA_EXCEEDED:
                LOGGER.error("%s: %s failed with 403, not retrying: %s", self._name, label, exc)
                self._record_failure()
            else:
                self._retry_or_fail(task, exc)
            return
        except Exception as exc:
            self._retry_or_fail(task, exc)
            return

        with self._condition:
            self._progress.completed += 1
            self._progress.warnings += task.warnings
        for follow_up in follow_ups:
            self.add_task(follow_up)
        self._notify_progress()

    def _retry_or_fail(self, task: Task, exc: Exception) -> None:
        if task.retries > 0:
            task.retries -= 1
            LOGGER.warning(
                "%s: %s failed (%s), retries left: %d", self._name, task.describe(), exc, task.retries
            )
            with self._condition:
                self._pending.append(task)
                self._spawn_workers()
            return
        LOGGER.error("%s: %s failed: %s", self._name, task.describe(), exc, exc_info=exc)
        self._record_failure()

    def _record_failure(self) -> None:
        with self._condition:
            self._progress.failed += 1
        self._notify_progress()

    def _notify_progress(self) -> None:
        if not self._callbacks:
            return
        snapshot = self.progress
        for callback in list(self._callbacks):
            callback(snapshot)


def transform_queue(concurrency: int = 0, *, task_delay: float = 0.1) -> TaskQueue:
    """Return a queue sized for CPU-bound transform work."""
    workers = concurrency if concurrency > 0 else (os.cpu_count() or 1)
    return TaskQueue(workers, task_delay=task_delay, name="transform")


def download_queue(concurrency: int = DOWNLOAD_CONCURRENCY, *, task_delay: float = 0.1) -> TaskQueue:
    """Return a queue sized for quota-limited Drive downloads."""
    return TaskQueue(concurrency, task_delay=task_delay, name="download")


__all__ = [
    "DOWNLOAD_CONCURRENCY",
    "ProgressCallback",
    "QueueProgress",
    "TaskQueue",
    "download_queue",
    "transform_queue",
]
