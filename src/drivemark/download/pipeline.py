"""Mirror a Drive folder into a local download directory."""

from __future__ import annotations

from typing import Callable, Iterable, Optional

from drivemark.config import QueueSettings
from drivemark.drive import DriveClient, DriveFile, MimeTypes
from drivemark.logging_utils import drive_logger
from drivemark.queue import QueueProgress, download_queue
from drivemark.storage import FileStore

from .tasks import FetchFilters, FetchFolderTask

ProgressCallback = Callable[[QueueProgress], None]


class DownloadPipeline:
    """Fetch a folder tree through the download queue.

    Folder listings are cached in ``.folder-files.json`` so unchanged files
    are not downloaded again.
    """

    def __init__(
        self,
        drive_id: str,
        client: DriveClient,
        store: FileStore,
        *,
        queue_settings: Optional[QueueSettings] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        self._drive_id = drive_id
        self._client = client
        self._store = store
        self._queue_settings = queue_settings or QueueSettings()
        self._progress_callback = progress_callback
        self._logger = drive_logger(__name__, drive_id)

    def run(
        self,
        folder_id: Optional[str] = None,
        filter_folder_ids: Optional[Iterable[str]] = None,
        filter_file_ids: Optional[Iterable[str]] = None,
        force_download: bool = False,
    ) -> QueueProgress:
        """Download ``folder_id`` (the drive root by default).

        Args:
            folder_id: Folder to mirror.
            filter_folder_ids: Folders allowed to be listed.
            filter_file_ids: Files to refresh; their ancestor folders are added
                to the folder filter automatically.
            force_download: Re-download files even when unchanged.

        Returns:
            QueueProgress: Counters after the queue drained.
        """
        folder_id = folder_id or self._drive_id
        file_ids = list(filter_file_ids or [])
        folder_ids = list(filter_folder_ids or [])
        if file_ids and not folder_ids:
            folder_ids = [folder_id]
            self._build_folder_filter(folder_id, file_ids, folder_ids)

        queue = download_queue(
            self._queue_settings.download_concurrency,
            task_delay=self._queue_settings.task_delay_seconds,
        )
        if self._progress_callback is not None:
            queue.on_progress(self._progress_callback)

        self._logger.info("Start downloading: %s", folder_id)
        self._store.mkdir()
        root = DriveFile(id=folder_id, name=folder_id, mimeType=MimeTypes.FOLDER)
        queue.add_task(
            FetchFolderTask(
                self._client,
                self._store,
                root,
                force_download=force_download,
                filters=FetchFilters(folder_ids=folder_ids, file_ids=file_ids),
                logger=self._logger,
                retries=self._queue_settings.retries,
            )
        )
        progress = queue.finished()
        self._logger.info(
            "Downloaded %s: %d/%d tasks, %d failed",
            folder_id,
            progress.completed,
            progress.total,
            progress.failed,
        )
        return progress

    def _build_folder_filter(self, root_id: str, file_ids: Iterable[str], folder_ids: list[str]) -> None:
        for file_id in file_ids:
            parent_id = self._client.get_file(file_id).parent_id
            if not parent_id or parent_id == root_id or parent_id in folder_ids:
                continue
            folder_ids.append(parent_id)
            self._build_folder_filter(root_id, [parent_id], folder_ids)


__all__ = ["DownloadPipeline"]
