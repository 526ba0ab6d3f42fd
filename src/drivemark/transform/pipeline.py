"""Reconcile a downloaded Drive snapshot with the generated Markdown tree."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Optional

from drivemark import __version__
from drivemark.config import QueueSettings, TransformSettings
from drivemark.drive import FOLDER_FILES, FOLDER_MANIFEST, DriveFile, MimeTypes
from drivemark.logging_utils import TransformErrorCollector, drive_logger
from drivemark.queue import QueueProgress, TaskQueue, transform_queue
from drivemark.storage import FileStore

from .conflicts import solve_conflicts
from .frontmatter import directory_yaml
from .generator import generate_local_files
from .links import rewrite_gdoc_links
from .local_links import LocalLinks
from .local_log import LocalLog, LogRow
from .models import DirectoryFileMap, LogicalFile, RedirectFile
from .navigation import NAVIGATION_TITLE, NavigationHierarchy, generate_navigation_hierarchy
from .scanner import (
    DIRECTORY_MANIFEST,
    ERRORS_NAME,
    TOC_NAME,
    DirectoryScanner,
    parse_markdown,
    strip_conflict,
)
from .tasks import LocalFileTransformTask, RedirectFileTransformTask
from .toc import generate_toc
from .tree import MarkdownTreeProcessor

ProgressCallback = Callable[[QueueProgress], None]


@dataclass(slots=True)
class TransformResult:
    """Outcome of one transform run.

    Attributes:
        progress: Counters of the generation queue.
        errors: ``(file_name, message)`` content errors reported by documents.
        redirects: Number of redirect stubs written.
    """

    progress: QueueProgress = field(default_factory=QueueProgress)
    errors: list[tuple[str, str]] = field(default_factory=list)
    redirects: int = 0

    @property
    def failed(self) -> bool:
        return self.progress.failed > 0


def remove_with_assets(store: FileStore, real_file_name: str) -> None:
    """Remove a generated file and the ``.assets`` directory next to it."""
    store.remove(real_file_name)
    if real_file_name.endswith(".md"):
        store.remove(real_file_name[: -len(".md")] + ".assets")


def read_drive_listing(store: FileStore) -> list[DriveFile]:
    """Return the cached child listing of a downloaded folder."""
    return [DriveFile.model_validate(entry) for entry in store.read_json(FOLDER_FILES) or []]


class TransformPipeline:
    """Generate the content tree of one drive from its download directory.

    Args:
        drive_id: Drive being transformed; used to tag log records.
        source: Download directory written by the download pipeline.
        destination: Content directory holding the generated tree.
        settings: Front matter options.
        queue_settings: Concurrency and delay of the generation queue.
        progress_callback: Receives queue snapshots while tasks run.
    """

    def __init__(
        self,
        drive_id: str,
        source: FileStore,
        destination: FileStore,
        *,
        settings: Optional[TransformSettings] = None,
        queue_settings: Optional[QueueSettings] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self._drive_id = drive_id
        self._source = source
        self._destination = destination
        self._settings = settings or TransformSettings()
        self._queue_settings = queue_settings or QueueSettings()
        self._progress_callback = progress_callback
        self._logger = drive_logger(__name__, drive_id)
        self._local_log = LocalLog(destination)
        self._local_links = LocalLinks(destination)
        self._navigation: NavigationHierarchy = {}
        self._filter_ids: list[str] = []
        self._removals: list[LogRow] = []
        self._resolved_ids: set[str] = set()
        self._loaded = False
        self._is_failed = False

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    @property
    def local_log(self) -> LocalLog:
        return self._local_log

    @property
    def local_links(self) -> LocalLinks:
        return self._local_links

    def failed(self) -> bool:
        """Return whether any generation task exhausted its retries."""
        return self._is_failed

    def flush(self) -> None:
        """Write the local log and link index gathered so far.

        Does nothing before :meth:`run` has loaded them.
        """
        if not self._loaded:
            return
        self._local_log.save()
        self._local_links.save()

    def run(self, root_folder_id: str, filter_ids: Optional[Iterable[str]] = None) -> TransformResult:
        """Regenerate the content tree.

        Args:
            root_folder_id: Drive id of the mirrored root folder.
            filter_ids: Only regenerate these files, plus the files linking to
                them. Everything else is reconciled but not rewritten.

        Returns:
            TransformResult: Queue counters, content errors and redirect count.
        """
        self._logger.info("Start transforming: %s", root_folder_id)
        self._destination.mkdir()
        self._local_log.load()
        self._local_links.load()
        self._loaded = True
        self._navigation = self._load_navigation()
        self._filter_ids = list(filter_ids or [])
        self._removals = []
        self._resolved_ids = set()

        queue = self._new_queue()
        collector = TransformErrorCollector(self._drive_id)
        result = TransformResult()

        with collector.attached():
            processed: set[str] = set()
            while True:
                self.sync_dir(self._source, self._destination, queue)
                queue.finished()
                if not self._filter_ids:
                    break
                back_links = self._back_links(processed)
                if not back_links:
                    break
                self._logger.info("Regenerating %d files linking to changed files", len(back_links))
                self._filter_ids = sorted(back_links)

            self._log_removals()
            result.progress = queue.finished()
            result.errors = collector.errors
            self._write_errors(collector)
            result.redirects = self.create_redirects()

        self.write_toc()
        self.rewrite_links(self._destination)

        self._local_log.save()
        self._local_links.save()

        self._logger.info("Regenerate tree: %s to: %s", root_folder_id, self._destination.real_path)
        tree = MarkdownTreeProcessor(self._destination)
        tree.regenerate_tree(root_folder_id)
        tree.save(__version__)
        return result

    def sync_dir(self, source_store: FileStore, destination_store: FileStore, queue: TaskQueue) -> None:
        """Reconcile one directory and queue generation of its files.

        Subdirectories are handled recursively. Nothing happens when the source
        folder has not been downloaded yet. Files that disappear from the
        directory are logged as removed at the end of the run, unless they were
        generated in another directory.
        """
        if not source_store.exists(FOLDER_MANIFEST):
            return
        folder = DriveFile.model_validate(source_store.read_json(FOLDER_MANIFEST))
        drive_files = read_drive_listing(source_store)
        drive_by_id = {drive_file.id: drive_file for drive_file in drive_files}

        destination_files = DirectoryScanner().scan(destination_store)
        files_to_generate = generate_local_files(drive_files)
        resolved = solve_conflicts(files_to_generate, destination_files)

        prefix = destination_store.virtual_path
        generated_ids = {entry.id for entry in files_to_generate}
        resolved_ids = {entry.id for entry in resolved.values()}
        self._resolved_ids.update(resolved_ids)

        for real_file_name, entry in destination_files.items():
            if real_file_name.startswith("."):
                continue
            if entry.id not in resolved_ids:
                self._removals.append(
                    LogRow(file_path=prefix + real_file_name, id=entry.id, type=entry.type, event="removed")
                )
            if (
                entry.id not in generated_ids
                or entry.type in ("redirect", "conflict")
                or real_file_name not in resolved
            ):
                remove_with_assets(destination_store, real_file_name)

        for real_file_name, entry in resolved.items():
            self._log_existing(prefix, real_file_name, entry, destination_files)

            if entry.type == "directory":
                destination_store.mkdir(real_file_name)
                if entry.id in drive_by_id:
                    self.sync_dir(
                        source_store.get_sub_store(entry.id),
                        destination_store.get_sub_store(real_file_name),
                        queue,
                    )
                continue

            if self._filter_ids and entry.type != "conflict" and entry.id not in self._filter_ids:
                continue

            queue.add_task(
                LocalFileTransformTask(
                    real_file_name,
                    source_store,
                    drive_by_id.get(entry.id),
                    destination_store,
                    entry,
                    self._local_links,
                    settings=self._settings,
                    navigation=self._navigation,
                    logger=self._logger,
                    retries=self._queue_settings.retries,
                )
            )

        directory_name = strip_conflict(posixpath.basename(prefix.rstrip("/")))
        destination_store.write_text(DIRECTORY_MANIFEST, directory_yaml(directory_name, folder, resolved))

    def create_redirects(self) -> int:
        """Write stubs at logged document paths that no longer exist.

        Returns:
            int: Number of redirect stubs queued.
        """
        queue = self._new_queue()
        written: set[str] = set()
        rows = self._local_log.get_logs()
        for row in reversed(rows):
            if row.type != "md" or row.file_path in written:
                continue
            if self._destination.exists(row.file_path):
                continue
            last = self._local_log.find_last_file(row.id)
            if last is None or not self._destination.exists(last.file_path):
                continue
            target = parse_markdown(
                self._destination.read_text(last.file_path), posixpath.basename(last.file_path)
            )
            if target is None:
                continue
            at_path = self._local_log.find_last_file_by_path(row.file_path)
            if at_path is not None and at_path.event == "removed":
                continue

            directory_name, file_name = posixpath.split(row.file_path)
            directory_name = directory_name.strip("/")
            if directory_name and not self._destination.is_directory(directory_name):
                continue
            store = self._destination.get_sub_store(directory_name) if directory_name else self._destination

            redirect = RedirectFile(
                id=row.id,
                title="Redirect to: " + target.title,
                fileName=file_name,
                modifiedTime=_iso_from_millis(row.mtime),
                redirectTo=last.id,
            )
            queue.add_task(
                RedirectFileTransformTask(
                    file_name,
                    store,
                    redirect,
                    target,
                    logger=self._logger,
                    retries=self._queue_settings.retries,
                )
            )
            written.add(row.file_path)

        queue.finished()
        return len(written)

    def write_toc(self) -> None:
        self._destination.write_text(TOC_NAME, generate_toc(self._destination, __version__))

    def rewrite_links(self, store: FileStore) -> None:
        """Resolve ``gdoc:`` placeholders in every Markdown and SVG file below ``store``."""
        for name in store.list():
            if name.startswith("."):
                continue
            if store.is_directory(name):
                self.rewrite_links(store.get_sub_store(name))
                continue
            if not name.endswith((".md", ".svg")):
                continue
            content = store.read_text(name)
            rewritten = rewrite_gdoc_links(content, store.virtual_path + name, self._resolve_path)
            if rewritten != content:
                store.write_text(name, rewritten)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _new_queue(self) -> TaskQueue:
        queue = transform_queue(
            self._queue_settings.transform_concurrency,
            task_delay=self._queue_settings.task_delay_seconds,
        )
        queue.on_progress(self._on_progress)
        return queue

    def _on_progress(self, progress: QueueProgress) -> None:
        if progress.failed > 0:
            self._is_failed = True
        if self._progress_callback is not None:
            self._progress_callback(progress)

    def _resolve_path(self, file_id: str) -> Optional[str]:
        last = self._local_log.find_last_file(file_id)
        if last is None or last.event == "removed":
            return None
        return last.file_path

    def _log_existing(
        self,
        prefix: str,
        real_file_name: str,
        entry: LogicalFile,
        destination_files: DirectoryFileMap,
    ) -> None:
        previous = next(
            (
                name
                for name, existing in destination_files.items()
                if existing.id == entry.id and existing.type not in ("redirect", "conflict")
            ),
            None,
        )
        if previous is None:
            event = "created"
        elif previous != real_file_name:
            event = "renamed"
        else:
            event = "touched"
        self._local_log.append(
            LogRow(file_path=prefix + real_file_name, id=entry.id, type=entry.type, event=event)
        )

    def _log_removals(self) -> None:
        # A file that moved to another directory is still generated somewhere.
        logged: set[str] = set()
        for row in self._removals:
            if row.id in self._resolved_ids or row.file_path in logged:
                continue
            self._local_log.append(row)
            logged.add(row.file_path)
        self._removals = []

    def _back_links(self, processed: set[str]) -> set[str]:
        back_links: set[str] = set()
        for file_id in self._filter_ids:
            processed.add(file_id)
        for file_id in self._filter_ids:
            for source_id in self._local_links.get_back_links(file_id):
                if source_id not in processed:
                    back_links.add(source_id)
        return back_links

    def _write_errors(self, collector: TransformErrorCollector) -> None:
        self._destination.remove(ERRORS_NAME)
        if collector.errors:
            self._destination.write_text(ERRORS_NAME, collector.to_markdown())

    def _load_navigation(self) -> NavigationHierarchy:
        navigation = next(
            (
                drive_file
                for drive_file in read_drive_listing(self._source)
                if drive_file.name == NAVIGATION_TITLE and drive_file.mime_type == MimeTypes.DOCUMENT
            ),
            None,
        )
        if navigation is None or not self._source.exists(f"{navigation.id}.md"):
            return {}
        markdown = self._source.read_text(f"{navigation.id}.md")
        return generate_navigation_hierarchy(markdown, _walk_drive_files(self._source))


def _walk_drive_files(store: FileStore) -> Iterator[DriveFile]:
    for drive_file in read_drive_listing(store):
        yield drive_file
        if drive_file.mime_type == MimeTypes.FOLDER and store.is_directory(drive_file.id):
            yield from _walk_drive_files(store.get_sub_store(drive_file.id))


def _iso_from_millis(value: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat().replace("+00:00", "Z")


__all__ = [
    "TransformPipeline",
    "TransformResult",
    "read_drive_listing",
    "remove_with_assets",
]
