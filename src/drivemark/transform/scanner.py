"""Scan a generated directory back into logical files."""

from __future__ import annotations

import logging
import re
from typing import Any

from drivemark.drive import MimeTypes
from drivemark.storage import FileStore

from .errors import TransformError
from .frontmatter import parse_directory_yaml, parse_front_matter
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
)

LOGGER = logging.getLogger(__name__)

DIRECTORY_MANIFEST = ".wgd-directory.yaml"
LOCAL_LOG_NAME = ".wgd-local-log.csv"
LOCAL_LINKS_NAME = ".wgd-local-links.csv"
TREE_NAME = ".tree.json"
ERRORS_NAME = "_errors.md"
TOC_NAME = "toc.md"

RESERVED_NAMES = (
    DIRECTORY_MANIFEST,
    LOCAL_LOG_NAME,
    LOCAL_LINKS_NAME,
    TREE_NAME,
    ".private",
    ERRORS_NAME,
    TOC_NAME,
)
RESERVED_DIR_NAMES = (".git",)

_CONFLICT_SUFFIX = re.compile(r"@[0-9]+$")

_BINARY_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".json": "text/json",
    ".js": "text/javascript",
    ".sh": "text/x-sh",
    ".toml": "text/toml",
}
_TEXT_SUFFIXES = (".txt", ".gitignore", ".ts", ".css", ".md")


def strip_conflict(file_name: str) -> str:
    """Remove a ``@N`` conflict suffix from the first dot-separated part."""
    head, dot, rest = file_name.partition(".")
    return _CONFLICT_SUFFIX.sub("", head) + dot + rest


def append_conflict(file_name: str, number: int) -> str:
    """Insert ``@number`` before the first dot: ``doc.md`` becomes ``doc@2.md``."""
    head, dot, rest = file_name.partition(".")
    return f"{head}@{number}{dot}{rest}"


def binary_mime_type(file_name: str) -> str:
    for suffix, mime_type in _BINARY_MIME_TYPES.items():
        if file_name.endswith(suffix):
            return mime_type
    if file_name.endswith(_TEXT_SUFFIXES):
        return "text/plain"
    return "application/binary"


def parse_markdown(markdown: str, real_file_name: str) -> LogicalFile | None:
    """Classify a generated Markdown file by its front matter.

    Args:
        markdown: File contents.
        real_file_name: On-disk name, possibly carrying a conflict suffix.

    Returns:
        LogicalFile | None: Conflict, redirect or document entry; ``None`` when
        the file has no front matter.

    Raises:
        TransformError: If the front matter cannot be parsed.
    """
    props, _ = parse_front_matter(markdown)
    if props is None:
        return None

    common: dict[str, Any] = {
        "id": str(props.get("id") or TO_FILL),
        "title": str(props.get("title") or ""),
        "modifiedTime": _as_text(props.get("date")),
        "mimeType": props.get("mimeType") or MimeTypes.MARKDOWN,
        "fileName": strip_conflict(real_file_name),
    }
    if isinstance(props.get("conflicting"), list):
        entries = [ConflictEntry.model_validate(entry) for entry in props["conflicting"]]
        return ConflictFile(conflicting=entries, **common)
    if props.get("redirectTo"):
        return RedirectFile(redirectTo=str(props["redirectTo"]), **common)
    return MdFile(version=props.get("version"), lastAuthor=props.get("lastAuthor"), **common)


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _read_manifest(store: FileStore, path: str) -> dict[str, Any] | None:
    if not store.exists(path):
        return None
    try:
        return parse_directory_yaml(store.read_text(path))
    except TransformError as exc:
        LOGGER.warning("Ignoring manifest %s%s: %s", store.virtual_path, path, exc)
        return None


class DirectoryScanner:
    """Build a ``DirectoryFileMap`` from the files present in one directory."""

    def __init__(self) -> None:
        self._files: DirectoryFileMap = {}

    @property
    def files(self) -> DirectoryFileMap:
        return self._files

    def scan(self, store: FileStore) -> DirectoryFileMap:
        """Scan ``store`` (not recursively) and return real name to logical file.

        Subdirectories are described by their own manifest. Drawings and
        binaries do not carry metadata, so ids and versions for them come from
        this directory's manifest.
        """
        self._files = {}
        manifest = _read_manifest(store, DIRECTORY_MANIFEST) or {}
        file_map: dict[str, Any] = manifest.get("fileMap") or {}

        for real_file_name in store.list():
            if real_file_name in RESERVED_NAMES:
                continue

            if store.is_directory(real_file_name):
                entry = self._scan_directory(store, real_file_name)
                if entry is not None:
                    self._files[real_file_name] = entry
                continue

            if real_file_name.endswith(".debug.xml"):
                continue

            known = file_map.get(real_file_name) or {}
            if real_file_name.endswith(".svg"):
                self._files[real_file_name] = DrawingFile(
                    id=known.get("id") or TO_FILL,
                    fileName=strip_conflict(real_file_name),
                    modifiedTime=known.get("modifiedTime"),
                    version=known.get("version"),
                    title=strip_conflict(real_file_name).removesuffix(".svg"),
                )
            elif real_file_name.endswith(".md"):
                self._files[real_file_name] = self._scan_markdown(store, real_file_name, known)
            else:
                self._files[real_file_name] = BinaryFile(
                    id=known.get("id") or TO_FILL,
                    fileName=strip_conflict(real_file_name),
                    modifiedTime=known.get("modifiedTime"),
                    version=known.get("version"),
                    mimeType=binary_mime_type(real_file_name),
                    title=strip_conflict(real_file_name),
                )

        return self._files

    def get_file_by_id(self, file_id: str) -> LogicalFile | None:
        for entry in self._files.values():
            if entry.id == file_id:
                return entry
        return None

    def _scan_directory(self, store: FileStore, real_file_name: str) -> DirectoryFile | None:
        if real_file_name.endswith(".assets"):
            return None
        props = _read_manifest(store, f"{real_file_name}/{DIRECTORY_MANIFEST}")
        if props and props.get("type") == "directory" and props.get("id"):
            return DirectoryFile(
                id=str(props["id"]),
                fileName=strip_conflict(real_file_name),
                modifiedTime=_as_text(props.get("date")),
                title=str(props.get("title") or ""),
                version=props.get("version"),
            )
        if real_file_name in RESERVED_DIR_NAMES:
            return None
        return DirectoryFile(
            fileName=strip_conflict(real_file_name),
            title=strip_conflict(real_file_name),
        )

    def _scan_markdown(self, store: FileStore, real_file_name: str, known: dict[str, Any]) -> LogicalFile:
        try:
            parsed = parse_markdown(store.read_text(real_file_name), real_file_name)
        except TransformError as exc:
            LOGGER.warning("Unreadable front matter in %s%s: %s", store.virtual_path, real_file_name, exc)
            parsed = None

        if parsed is None:
            return MdFile(
                id=known.get("id") or TO_FILL,
                fileName=strip_conflict(real_file_name),
                modifiedTime=known.get("modifiedTime"),
                title=strip_conflict(real_file_name).removesuffix(".md"),
            )
        if parsed.modified_time is None:
            parsed.modified_time = known.get("modifiedTime")
        if isinstance(parsed, MdFile) and parsed.version is None:
            parsed.version = known.get("version")
        return parsed


__all__ = [
    "DIRECTORY_MANIFEST",
    "DirectoryScanner",
    "ERRORS_NAME",
    "LOCAL_LINKS_NAME",
    "LOCAL_LOG_NAME",
    "RESERVED_DIR_NAMES",
    "RESERVED_NAMES",
    "TOC_NAME",
    "TREE_NAME",
    "append_conflict",
    "binary_mime_type",
    "parse_markdown",
    "strip_conflict",
]
