"""Job bodies composing the download, transform, git and action services."""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING, Callable, Optional, TypeVar

from drivemark import __version__
from drivemark.config import DrivemarkConfig
from drivemark.download import DownloadPipeline
from drivemark.logging_utils import drive_logger
from drivemark.services import GitRepository, ServiceRegistry
from drivemark.transform import MarkdownTreeProcessor, TransformPipeline

from .errors import JobError
from .events import ChangesChanged
from .models import Job, JobType

if TYPE_CHECKING:
    from .scheduler import JobScheduler

T = TypeVar("T")

SSH_AUTH_FAILURE = "Failed to retrieve list of SSH authentication methods"

HandlerFn = Callable[["JobScheduler", str, Job], None]


def split_file_ids(payload: Optional[str]) -> list[str]:
    """Return the comma separated file ids of a job payload."""
    return [part.strip() for part in (payload or "").split(",") if part.strip()]


class JobHandlers:
    """Dispatch table from :class:`JobType` to the code running the job.

    Args:
        services: Collaborators; handlers needing an absent one fail the job.
        config: Queue and transform settings passed to the pipelines.

    Raises:
        JobError: At construction when a job type has no handler.
    """

    def __init__(self, services: ServiceRegistry, config: Optional[DrivemarkConfig] = None) -> None:
        self._services = services
        self._config = config or DrivemarkConfig()
        self._active: list[TransformPipeline] = []
        self._active_lock = threading.Lock()
        self._table: dict[JobType, HandlerFn] = {
            JobType.SYNC: self._sync,
            JobType.SYNC_ALL: self._sync,
            JobType.TRANSFORM: self._transform,
            JobType.RUN_ACTION: self._run_action,
            JobType.GIT_PULL: self._git_pull,
            JobType.GIT_PUSH: self._git_push,
            JobType.GIT_COMMIT: self._git_commit,
            JobType.GIT_RESET: self._git_reset,
        }
        missing = [job_type.value for job_type in JobType if job_type not in self._table]
        if missing:
            raise JobError(f"No handler for job types: {', '.join(missing)}")

    def handle(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        handler = self._table.get(job.type)
        if handler is None:
            raise JobError(f"Unknown job type: {job.type}")
        handler(scheduler, drive_id, job)

    def flush(self) -> None:
        """Save the local log and links of transforms still running."""
        with self._active_lock:
            pipelines = list(self._active)
        for pipeline in pipelines:
            pipeline.flush()

    # ------------------------------------------------------------------ #
    # Drive                                                              #
    # ------------------------------------------------------------------ #

    def _sync(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        client = _require(self._services.drive, "Google Drive client")
        workspace = scheduler.workspace(drive_id)
        file_ids = split_file_ids(job.payload) if job.type == JobType.SYNC else []

        pipeline = DownloadPipeline(
            drive_id,
            client,
            workspace.download_store(),
            queue_settings=self._config.queue,
            progress_callback=lambda progress: scheduler.update_progress(drive_id, job.id, progress),
        )
        progress = pipeline.run(filter_file_ids=file_ids, force_download=len(file_ids) == 1)
        if progress.failed:
            raise JobError(f"Sync failed: {progress.failed} of {progress.total} tasks failed")

        scheduler.schedule(
            drive_id,
            Job(
                type=JobType.TRANSFORM,
                title="Transform markdown",
                payload=",".join(file_ids) or None,
                user=job.user,
            ),
        )

    def _transform(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        log = drive_logger(__name__, drive_id)
        workspace = scheduler.workspace(drive_id)
        file_ids = split_file_ids(job.payload)

        pipeline = TransformPipeline(
            drive_id,
            workspace.download_store(),
            workspace.content_store(),
            settings=self._config.transform,
            queue_settings=self._config.queue,
            progress_callback=lambda progress: scheduler.update_progress(drive_id, job.id, progress),
        )
        with self._active_lock:
            self._active.append(pipeline)
        try:
            result = pipeline.run(drive_id, filter_ids=file_ids or None)
        finally:
            with self._active_lock:
                self._active.remove(pipeline)
        if result.errors:
            log.warning("Transform reported %d content errors", len(result.errors))

        if self._services.change_feed is not None:
            tree = MarkdownTreeProcessor(workspace.content_store())
            tree.load()
            scheduler.schedule_retry(drive_id, self._services.change_feed.changes_for(drive_id), tree)

        if self._services.git is not None:
            self._services.git.clear_cache()
        scheduler.bus.publish(ChangesChanged(drive_id=drive_id))

        self._schedule_action(
            scheduler,
            drive_id,
            "internal/transform",
            "Run action: on transform",
            payload=json.dumps({"selectedFileId": file_ids[0] if len(file_ids) == 1 else None}),
            job=job,
        )

        if result.failed:
            raise JobError(f"Transform failed: {result.progress.failed} files could not be generated")

    def _run_action(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        runner = _require(self._services.action_runner, "action runner")
        log = drive_logger(__name__, drive_id)
        result = runner.run(drive_id, job.trigger, job.payload)
        for line in result.output.splitlines():
            log.info("%s", line)
        if result.exit_code != 0:
            raise JobError(f"Action {job.trigger or job.title} exited with code {result.exit_code}")
        if self._services.git is not None:
            self._services.git.clear_cache()

    # ------------------------------------------------------------------ #
    # Git                                                                #
    # ------------------------------------------------------------------ #

    def _git_pull(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        git = self._git()
        _git_call(git.pull_branch)
        self._after_git(scheduler, drive_id, git)
        self._schedule_action(scheduler, drive_id, "git_pull", "Run action: on git_pull", job=job)

    def _git_push(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        git = self._git()
        _git_call(git.push_branch)
        self._after_git(scheduler, drive_id, git)

    def _git_commit(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        """Commit paths listed in a JSON payload.

        The payload carries ``message``, ``added`` (or ``filePaths``) and
        ``removed``. The job's user becomes the committer.
        """
        git = self._git()
        try:
            payload = json.loads(job.payload or "{}")
        except json.JSONDecodeError as exc:
            raise JobError(f"Invalid commit payload: {exc}") from exc
        if not isinstance(payload, dict):
            raise JobError("Invalid commit payload: expected an object")

        message = str(payload.get("message") or "").strip()
        if not message:
            raise JobError("Commit message is required")
        added = list(payload.get("added") or payload.get("filePaths") or [])
        removed = list(payload.get("removed") or [])

        _git_call(lambda: git.commit(message, added, removed, job.user))
        self._after_git(scheduler, drive_id, git)
        self._schedule_action(scheduler, drive_id, "commit", "Run action: on commit", job=job)

    def _git_reset(self, scheduler: "JobScheduler", drive_id: str, job: Job) -> None:
        git = self._git()
        mode = (job.payload or "").strip()
        if mode == "local":
            _git_call(git.reset_to_local)
        elif mode == "remote":
            _git_call(git.reset_to_remote)
        else:
            raise JobError(f"Unknown reset mode: {mode or '<empty>'}")

        tree = MarkdownTreeProcessor(scheduler.workspace(drive_id).content_store())
        tree.regenerate_tree(drive_id)
        tree.save(__version__)

        self._after_git(scheduler, drive_id, git)
        self._schedule_action(scheduler, drive_id, "git_reset", "Run action: on git_reset", job=job)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _git(self) -> GitRepository:
        return _require(self._services.git, "git repository")

    def _after_git(self, scheduler: "JobScheduler", drive_id: str, git: GitRepository) -> None:
        git.clear_cache()
        scheduler.bus.publish(ChangesChanged(drive_id=drive_id))

    def _schedule_action(
        self,
        scheduler: "JobScheduler",
        drive_id: str,
        trigger: str,
        title: str,
        *,
        job: Job,
        payload: Optional[str] = None,
    ) -> None:
        if self._services.action_runner is None:
            return
        scheduler.schedule(
            drive_id,
            Job(type=JobType.RUN_ACTION, title=title, trigger=trigger, payload=payload, user=job.user),
        )


def _require(service: Optional[T], label: str) -> T:
    if service is None:
        raise JobError(f"No {label} configured")
    return service


def _git_call(operation: Callable[[], object]) -> None:
    try:
        operation()
    except JobError:
        raise
    except Exception as exc:
        if SSH_AUTH_FAILURE in str(exc):
            raise JobError(f"Failed to authenticate with remote repository: {exc}") from exc
        raise


__all__ = ["JobHandlers", "SSH_AUTH_FAILURE", "split_file_ids"]
