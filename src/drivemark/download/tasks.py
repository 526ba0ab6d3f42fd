"""Fetch tasks that mirror a Drive folder into the download directory."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from drivemark.drive import (
    EXPORT_FORMATS,
    FOLDER_FILES,
    FOLDER_MANIFEST,
    DriveClient,
    DriveFile,
    MimeTypes,
    mime_to_ext,
)
from drivemark.queue import Task
from drivemark.storage import FileStore

LOGGER = logging.getLogger(__name__)

Logger = Union[logging.Logger, logging.LoggerAdapter]

# Local names kept when pruning a folder's download directory.
KEEP_NAMES = frozenset(
    {
        ".logs",
        ".jobs.json",
        ".changes.json",
        ".private",
        FOLDER_MANIFEST,
        FOLDER_FILES,
        ".user_config.json",
    }
)

SLOW_LISTING_SECONDS = 1.0


@dataclass(slots=True)
class FetchFilters:
    """Restrict a fetch to some folders or files.

    Attributes:
        folder_ids: When set, folders outside the list are not listed.
        file_ids: When set, only these children are refreshed; other
            previously cached children are kept as they were.
    """

    folder_ids: list[str] = field(default_factory=list)
    file_ids: list[str] = field(default_factory=list)


class _FetchTask(Task):
    def __init__(
        self,
        client: DriveClient,
        store: FileStore,
        file: DriveFile,
        *,
        logger: Optional[Logger] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._initial_retries = self.retries
        self._client = client
        self._store = store
        self._file = file
        self._logger = logger or LOGGER

    def describe(self) -> str:
        return f"{type(self).__name__}({self._file.id} {self._file.name!r})"

    def _task_kwargs(self) -> dict[str, Any]:
        return {"logger": self._logger, "retries": self._initial_retries}


class FetchFolderTask(_FetchTask):
    """List a folder, prune stale local files and fan out per-child fetches."""

    def __init__(
        self,
        client: DriveClient,
        store: FileStore,
        file: DriveFile,
        *,
        force_download: bool = False,
        filters: Optional[FetchFilters] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(client, store, file, **kwargs)
        self._force_download = force_download
        self._filters = filters or FetchFilters()

    def run(self) -> list[Task]:
        filters = self._filters
        if filters.folder_ids and self._file.id not in filters.folder_ids:
            return []

        if self.retries < self._initial_retries:
            time.sleep(1)
            self._logger.info("Listing (retry): %s", self._file.id)
        else:
            self._logger.info("Listing: %s", self._file.id)
        started = time.monotonic()

        folder = self._client.get_file(self._file.id)
        if folder.mime_type != MimeTypes.FOLDER:
            return []

        old_files = {
            entry["id"]: DriveFile.model_validate(entry)
            for entry in self._store.read_json(FOLDER_FILES) or []
        }
        self._store.write_json(FOLDER_MANIFEST, folder.to_json())
        children = self._client.list_children(self._file.id)
        self._delete_unused(children)

        tasks: list[Task] = []
        files_to_save: list[DriveFile] = []
        for child in children:
            old_file = old_files.get(child.id)
            if filters.file_ids and child.id not in filters.file_ids and child.id not in filters.folder_ids:
                if old_file is not None:
                    files_to_save.append(old_file)
                continue

            files_to_save.append(child)
            force = self._force_download or old_file is None or old_file.modified_time != child.modified_time
            tasks.extend(self._tasks_for(child, force))

        self._store.write_json(FOLDER_FILES, [entry.to_json() for entry in files_to_save])

        elapsed = time.monotonic() - started
        if elapsed > SLOW_LISTING_SECONDS:
            self._logger.info("Slow listing: %s %.1fs", self._file.id, elapsed)
        return tasks

    def _tasks_for(self, child: DriveFile, force: bool) -> list[Task]:
        kwargs = self._task_kwargs()
        mime_type = child.mime_type
        if mime_type == MimeTypes.FOLDER:
            return [
                FetchFolderTask(
                    self._client,
                    self._store.get_sub_store(child.id),
                    child,
                    force_download=self._force_download,
                    filters=self._filters,
                    **kwargs,
                )
            ]
        if mime_type == MimeTypes.DRAWING:
            return [FetchDiagramTask(self._client, self._store, child, force=force, **kwargs)]
        if mime_type == MimeTypes.DOCUMENT:
            return [FetchDocumentTask(self._client, self._store, child, force=force, **kwargs)]
        if mime_type in EXPORT_FORMATS:
            return [
                FetchBinaryTask(
                    self._client, self._store, child, force=force, mime_type=export_mime, ext=ext, **kwargs
                )
                for export_mime, ext in EXPORT_FORMATS[mime_type]
            ]
        if mime_type == MimeTypes.SHORTCUT:
            return []
        return [FetchAssetTask(self._client, self._store, child, **kwargs)]

    def _delete_unused(self, children: list[DriveFile]) -> None:
        for local_name in self._store.list():
            if local_name in KEEP_NAMES:
                continue
            if any(local_name.startswith(child.id) for child in children):
                continue
            self._logger.info("Removing stale download: %s%s", self._store.virtual_path, local_name)
            self._store.remove(local_name)


class FetchDocumentTask(_FetchTask):
    """Export a Google document as Markdown into ``{id}.md``."""

    def __init__(
        self, client: DriveClient, store: FileStore, file: DriveFile, *, force: bool = False, **kwargs: Any
    ) -> None:
        super().__init__(client, store, file, **kwargs)
        self._force = force

    def run(self) -> list[Task]:
        target = f"{self._file.id}.md"
        if self._store.exists(target) and not self._force:
            return []
        self._logger.info("Downloading document: %s", self._file.name)
        _export(self._client, self._store, self._file, MimeTypes.MARKDOWN_EXPORT, target)
        return []


class FetchDiagramTask(_FetchTask):
    """Export a drawing as SVG and PNG."""

    def __init__(
        self, client: DriveClient, store: FileStore, file: DriveFile, *, force: bool = False, **kwargs: Any
    ) -> None:
        super().__init__(client, store, file, **kwargs)
        self._force = force

    def run(self) -> list[Task]:
        svg_path = f"{self._file.id}.svg"
        png_path = f"{self._file.id}.png"
        if self._store.exists(svg_path) and self._store.exists(png_path) and not self._force:
            return []
        self._logger.info("Downloading diagram: %s", self._file.name)
        _export(self._client, self._store, self._file, MimeTypes.SVG, svg_path)
        _export(self._client, self._store, self._file, MimeTypes.PNG, png_path)
        return []


class FetchBinaryTask(_FetchTask):
    """Export a Google-native file into ``{id}.{ext}``."""

    def __init__(
        self,
        client: DriveClient,
        store: FileStore,
        file: DriveFile,
        *,
        mime_type: str,
        ext: str,
        force: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(client, store, file, **kwargs)
        self._mime_type = mime_type
        self._ext = ext
        self._force = force

    def describe(self) -> str:
        return f"FetchBinaryTask({self._file.id}.{self._ext})"

    def run(self) -> list[Task]:
        target = f"{self._file.id}.{self._ext}"
        if self._store.exists(target) and not self._force:
            return []
        self._logger.info("Downloading %s: %s", self._ext, self._file.name)
        _export(self._client, self._store, self._file, self._mime_type, target)
        return []


class FetchAssetTask(_FetchTask):
    """Download a regular file, skipped when the cached copy has the same MD5."""

    def run(self) -> list[Task]:
        ext = mime_to_ext(self._file.mime_type, self._file.name)
        target = f"{self._file.id}.{ext}" if ext else self._file.id

        if self._file.md5_checksum and self._store.md5(target) == self._file.md5_checksum:
            return []

        self._logger.info("Downloading asset: %s", self._file.name)
        try:
            with self._store.open_write_stream(target) as stream:
                self._client.download(self._file, stream)
        except Exception:
            self._store.remove(target)
            raise
        return []


def _export(client: DriveClient, store: FileStore, file: DriveFile, mime_type: str, target: str) -> None:
    try:
        with store.open_write_stream(target) as stream:
            client.export(file, mime_type, stream)
    except Exception:
        store.remove(target)
        raise


__all__ = [
    "FetchAssetTask",
    "FetchBinaryTask",
    "FetchDiagramTask",
    "FetchDocumentTask",
    "FetchFilters",
    "FetchFolderTask",
    "KEEP_NAMES",
]
