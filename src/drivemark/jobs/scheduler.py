"""Per-drive job scheduling, dispatch and completion bookkeeping."""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Protocol

from drivemark.drive import DriveFile
from drivemark.logging_utils import drive_logger, job_log_handler
from drivemark.queue import QueueProgress
from drivemark.workspace import DriveWorkspace

from .errors import SchedulerError
from .events import EventBus, JobsChanged, PanicRaised, Toast, ToastAdded
from .models import GIT_TYPES, SYNC_FAMILY, DriveJobs, Job, JobProgress, JobState, JobType
from .store import DriveJobsStore

if TYPE_CHECKING:
    from drivemark.transform import MarkdownTreeProcessor

LOGGER = logging.getLogger(__name__)

INVALID_GRANT = "invalid_grant"

_TOAST_TITLES = {
    JobType.SYNC: "Sync",
    JobType.SYNC_ALL: "Sync all",
    JobType.TRANSFORM: "Transform",
    JobType.GIT_PULL: "Git pull",
    JobType.GIT_PUSH: "Git push",
    JobType.GIT_COMMIT: "Git commit",
    JobType.GIT_RESET: "Git reset",
}


class JobHandler(Protocol):
    """Executes the body of a job; raising marks the job as failed."""

    def handle(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None: ...


class JobScheduler:
    """Queue jobs per drive and run at most one of them per drive at a time.

    Dispatch happens in :meth:`tick`, either called directly or from the
    polling thread started by :meth:`start`. Each started job runs on its own
    thread; its outcome is recorded in the drive's job list, announced on the
    event bus and written to ``logs/job-<id>.log`` of the drive.

    Args:
        store: Owner of the persisted job lists.
        bus: Receives job, toast and panic events.
        handlers: Runs job bodies.
        debounce_seconds: Minimum age of a drive's newest job before dispatch.
        poll_interval: Seconds between dispatch passes of the polling thread.
        retry_delay_seconds: Delay of syncs scheduled by :meth:`schedule_retry`.
        clock: Returns the current time in seconds.
    """

    def __init__(
        self,
        store: DriveJobsStore,
        bus: Optional[EventBus],
        handlers: JobHandler,
        *,
        debounce_seconds: float = 1.0,
        poll_interval: float = 0.1,
        retry_delay_seconds: float = 10,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._bus = bus or EventBus()
        self._handlers = handlers
        self._debounce_ms = int(max(0.0, debounce_seconds) * 1000)
        self._poll_interval = max(0.01, poll_interval)
        self._retry_delay_ms = int(max(0.0, retry_delay_seconds) * 1000)
        self._clock = clock
        self._stop_event = threading.Event()
        self._loop_thread: Optional[threading.Thread] = None
        self._threads: dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

    @property
    def bus(self) -> EventBus:
        return self._bus

    @property
    def store(self) -> DriveJobsStore:
        return self._store

    def workspace(self, drive_id: str) -> DriveWorkspace:
        return self._store.workspace(drive_id)

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    def schedule(self, drive_id: str, job: Job) -> bool:
        """Add ``job`` to the drive's list unless an equivalent job is active.

        Rules:
            * ``sync`` is dropped while a ``sync_all`` or a ``sync`` with the
              same payload is waiting or running.
            * ``sync_all`` is dropped while another one is active; otherwise it
              replaces every job that is not running.
            * Every other type is single-flight per type.

        Returns:
            bool: ``True`` when the job was added.

        Raises:
            SchedulerError: If a job with the same id is already listed.
        """
        job = job.model_copy(
            update={
                "state": JobState.WAITING,
                "ts": self._now_ms(),
                "started": None,
                "finished": None,
                "progress": None,
            }
        )

        def _add(drive_jobs: DriveJobs) -> bool:
            if drive_jobs.find(job.id) is not None:
                raise SchedulerError(f"Job {job.id} is already scheduled for drive {drive_id}")
            if not _accepts(drive_jobs, job):
                return False
            if job.type == JobType.SYNC_ALL:
                drive_jobs.jobs = [item for item in drive_jobs.jobs if item.state == JobState.RUNNING]
            drive_jobs.jobs.append(job)
            return True

        accepted = self._store.update(drive_id, _add)
        log = drive_logger(__name__, drive_id)
        if not accepted:
            log.debug("Dropped duplicate %s job", job.type.value)
            return False

        log.info("Scheduled %s job %s", job.type.value, job.id)
        self._publish_jobs(drive_id)
        if job.type == JobType.TRANSFORM:
            self._toast(
                drive_id,
                Toast(
                    title=f"Scheduled: {job.title or 'transform'}",
                    type="transform:scheduled",
                    payload=job.payload or "all",
                ),
            )
        return True

    def tick(self) -> list[Job]:
        """Run one dispatch pass over every known drive.

        Returns:
            list[Job]: Copies of the jobs started by this pass.
        """
        now = self._now_ms()
        started: list[Job] = []
        for drive_id in self._store.drive_ids():
            if self._pick(self._store.get(drive_id), now) is None:
                continue
            job = self._store.update(drive_id, lambda drive_jobs: self._claim(drive_jobs, now))
            if job is None:
                continue
            self._publish_jobs(drive_id)
            thread = threading.Thread(
                target=self._run_job,
                args=(drive_id, job),
                name=f"drivemark-job-{job.id}",
                daemon=True,
            )
            with self._threads_lock:
                self._threads[job.id] = thread
            thread.start()
            started.append(job)
        return started

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for running job threads.

        Returns:
            bool: ``True`` when no job thread is alive afterwards.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._threads_lock:
                threads = list(self._threads.values())
            if not threads:
                return True
            for thread in threads:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                thread.join(remaining)
                if thread.is_alive():
                    return False

    def is_idle(self) -> bool:
        """Return ``True`` when no job is running or waiting on any drive."""
        with self._threads_lock:
            if self._threads:
                return False
        return not any(
            job.is_active for drive_id in self._store.drive_ids() for job in self._store.get(drive_id).jobs
        )

    def start(self) -> None:
        """Start the polling thread.

        Jobs left ``running`` by a previous process are marked failed first.
        """
        if self._loop_thread is not None:
            raise RuntimeError("JobScheduler is already running.")
        self._fail_stale_jobs()
        self._stop_event.clear()
        self._loop_thread = threading.Thread(target=self._run_loop, name="drivemark-scheduler", daemon=True)
        self._loop_thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop polling and wait for in-flight jobs."""
        self._stop_event.set()
        if self._loop_thread is not None:
            self._loop_thread.join(timeout)
            self._loop_thread = None
        self.join(timeout)

    def flush(self) -> None:
        """Persist job lists and the state of in-flight job bodies."""
        self._store.flush()
        flush_handlers = getattr(self._handlers, "flush", None)
        if flush_handlers is not None:
            flush_handlers()

    def inspect(self, drive_id: str) -> DriveJobs:
        return self._store.get(drive_id)

    def update_progress(self, drive_id: str, job_id: str, progress: QueueProgress) -> None:
        """Copy queue counters into a running job and announce the change."""

        def _apply(drive_jobs: DriveJobs) -> bool:
            job = drive_jobs.find(job_id)
            if job is None or job.state != JobState.RUNNING:
                return False
            job.progress = JobProgress(**progress.as_dict())
            return True

        if self._store.update(drive_id, _apply, persist=False):
            self._publish_jobs(drive_id)

    def schedule_retry(
        self,
        drive_id: str,
        changes: Iterable[DriveFile],
        tree: "MarkdownTreeProcessor",
    ) -> list[Job]:
        """Schedule delayed syncs for changes the regenerated tree does not reflect yet.

        A change is retried when its tree item carries a ``modifiedTime``
        older than the change's own.

        Returns:
            list[Job]: Jobs that were scheduled.
        """
        changes = list(changes)
        if not changes or tree.is_empty():
            return []

        start_after = self._now_ms() + self._retry_delay_ms
        scheduled: list[Job] = []
        for change in changes:
            found = tree.find_by_id(change.id)
            if found is None or change.modified_time is None:
                continue
            item = found[0]
            if item.modified_time and item.modified_time < change.modified_time:
                job = Job(
                    type=JobType.SYNC,
                    payload=change.id,
                    start_after=start_after,
                    title=f"Retry syncing file: {change.name}",
                )
                if self.schedule(drive_id, job):
                    scheduled.append(job)
        return scheduled

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _pick(self, drive_jobs: DriveJobs, now: int) -> Optional[Job]:
        if not drive_jobs.jobs:
            return None
        last_ts = drive_jobs.jobs[-1].ts or 0
        if now - last_ts < self._debounce_ms:
            return None
        if any(job.state == JobState.RUNNING for job in drive_jobs.jobs):
            return None
        return next(
            (
                job
                for job in drive_jobs.jobs
                if job.state == JobState.WAITING and (job.start_after is None or job.start_after <= now)
            ),
            None,
        )

    def _claim(self, drive_jobs: DriveJobs, now: int) -> Optional[Job]:
        job = self._pick(drive_jobs, now)
        if job is None:
            return None
        job.state = JobState.RUNNING
        job.started = now
        return job.model_copy(deep=True)

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                LOGGER.exception("Job dispatch pass failed")
            self._stop_event.wait(self._poll_interval)

    def _run_job(self, drive_id: str, job: Job) -> None:
        log = drive_logger(__name__, drive_id)
        error: Optional[Exception] = None
        try:
            with job_log_handler(self.workspace(drive_id).log_dir, drive_id, job.id):
                log.info("Running %s job %s: %s", job.type.value, job.id, job.title)
                try:
                    self._handlers.handle(self, drive_id, job)
                except Exception as exc:
                    error = exc
                    log.error("Job %s failed: %s", job.id, exc, exc_info=True)
                self._complete(drive_id, job, error)
        finally:
            with self._threads_lock:
                self._threads.pop(job.id, None)
        if isinstance(error, SchedulerError):
            raise error

    def _complete(self, drive_id: str, job: Job, error: Optional[Exception]) -> None:
        finished_at = self._now_ms()
        limit = self._store.archive_limit

        def _finish(drive_jobs: DriveJobs) -> None:
            current = drive_jobs.find(job.id)
            if current is not None:
                current.state = JobState.FAILED if error else JobState.DONE
                current.finished = finished_at
                current.progress = current.progress or job.progress
            drive_jobs.archive_where(lambda item: item.id == job.id, limit)
            if job.type in SYNC_FAMILY:
                drive_jobs.archive_where(lambda item: item.is_finished, limit)
            else:
                drive_jobs.archive_where(lambda item: item.type == job.type and item.is_finished, limit)

        self._store.update(drive_id, _finish)
        self._publish_jobs(drive_id)
        self._toast(drive_id, _completion_toast(job, error))

        if error is not None and INVALID_GRANT in str(error):
            drive_logger(__name__, drive_id).critical("Credentials rejected: %s", error)
            self._bus.publish(PanicRaised(drive_id=drive_id, message=str(error)))

    def _fail_stale_jobs(self) -> None:
        now = self._now_ms()
        limit = self._store.archive_limit

        def _fail(drive_jobs: DriveJobs) -> int:
            stale = [job for job in drive_jobs.jobs if job.state == JobState.RUNNING]
            for job in stale:
                job.state = JobState.FAILED
                job.finished = now
            drive_jobs.archive_where(lambda item: item.is_finished, limit)
            return len(stale)

        for drive_id in self._store.drive_ids():
            count = self._store.update(drive_id, _fail)
            if count:
                drive_logger(__name__, drive_id).warning("Marked %d interrupted jobs as failed", count)

    def _publish_jobs(self, drive_id: str) -> None:
        self._bus.publish(JobsChanged(drive_id=drive_id, jobs=self._store.get(drive_id)))

    def _toast(self, drive_id: str, toast: Toast) -> None:
        self._bus.publish(ToastAdded(drive_id=drive_id, toast=toast))


def _accepts(drive_jobs: DriveJobs, job: Job) -> bool:
    active = [item for item in drive_jobs.jobs if item.is_active]
    if job.type == JobType.SYNC:
        return not any(
            item.type == JobType.SYNC_ALL or (item.type == JobType.SYNC and item.payload == job.payload)
            for item in active
        )
    return not any(item.type == job.type for item in active)


def _completion_toast(job: Job, error: Optional[Exception]) -> Toast:
    outcome = "failed" if error else "done"
    if job.type == JobType.RUN_ACTION:
        title = f"{'Failed' if error else 'Done'}: {job.title}"
    else:
        title = f"{_TOAST_TITLES[job.type]} {outcome}"

    toast_type = f"{job.type.value}:{outcome}"
    payload = job.payload
    if job.type == JobType.SYNC_ALL:
        toast_type = f"sync:{outcome}"
        payload = "all"

    links: dict[str, str] = {}
    if error is not None:
        links[f"#drive_logs:job-{job.id}"] = "View logs"
    elif job.type in GIT_TYPES:
        links["#git_log"] = "View git history"

    return Toast(
        title=title,
        type=toast_type,
        err=str(error) if error is not None else None,
        links=links,
        payload=payload,
    )


__all__ = ["INVALID_GRANT", "JobHandler", "JobScheduler"]
