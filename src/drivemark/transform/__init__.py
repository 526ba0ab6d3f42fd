"""Markdown generation from downloaded Drive folders."""

from .conflicts import solve_conflicts
from .errors import TransformError
from .generator import desired_path, generate_local_files
from .local_links import LocalLinks
from .local_log import LocalLog, LogRow
from .models import (
    TO_FILL,
    BinaryFile,
    ConflictEntry,
    ConflictFile,
    DirectoryFile,
    DirectoryFileMap,
    DrawingFile,
    LogicalFile,
    MdFile,
    RedirectFile,
    ShortcutFile,
)
from .pipeline import TransformPipeline, TransformResult
from .scanner import DirectoryScanner, append_conflict, strip_conflict
from .tree import MarkdownTreeProcessor, TreeArena, TreeItem

__all__ = [
    "TO_FILL",
    "BinaryFile",
    "ConflictEntry",
    "ConflictFile",
    "DirectoryFile",
    "DirectoryFileMap",
    "DirectoryScanner",
    "DrawingFile",
    "LocalLinks",
    "LocalLog",
    "LogRow",
    "LogicalFile",
    "MarkdownTreeProcessor",
    "MdFile",
    "RedirectFile",
    "ShortcutFile",
    "TransformError",
    "TransformPipeline",
    "TransformResult",
    "TreeArena",
    "TreeItem",
    "append_conflict",
    "desired_path",
    "generate_local_files",
    "solve_conflicts",
    "strip_conflict",
]
