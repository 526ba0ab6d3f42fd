"""Drive download pipeline and fetch tasks."""

from .pipeline import DownloadPipeline
from .tasks import (
    FetchAssetTask,
    FetchBinaryTask,
    FetchDiagramTask,
    FetchDocumentTask,
    FetchFilters,
    FetchFolderTask,
)

__all__ = [
    "DownloadPipeline",
    "FetchAssetTask",
    "FetchBinaryTask",
    "FetchDiagramTask",
    "FetchDocumentTask",
    "FetchFilters",
    "FetchFolderTask",
]
