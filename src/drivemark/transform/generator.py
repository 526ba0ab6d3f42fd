"""Turn Drive listings into the logical files the pipeline should generate."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable

from drivemark.drive import DriveFile, MimeTypes, mime_to_ext

from .models import (
    BinaryFile,
    DirectoryFile,
    DrawingFile,
    LogicalFile,
    MdFile,
    ShortcutFile,
)

MAX_FILENAME_LENGTH = 200


def slugify(value: str) -> str:
    """Lowercase ``value`` and join its words with ``-``."""
    normalized = unicodedata.normalize("NFKD", value)
    normalized = "".join(char for char in normalized if not unicodedata.combining(char))
    normalized = re.sub(r"[^\w\s$*+~.()'\"!:@-]", "", normalized)
    normalized = re.sub(r"[#*+~()'\"!:@]", "", normalized)
    normalized = normalized.strip().lower()
    return re.sub(r"\s+", "-", normalized)


def desired_path(name: str, mime_type: str | None = None) -> str:
    """Return the on-disk name a Drive file should be generated under.

    Examples:
        ``"Q&A: Setup (draft)"`` as a document becomes ``q-and-a-setup-draft.md``.
    """
    name = re.sub(r"&+", " and ", name)
    name = re.sub(r"[/,:()]+", " ", name)
    name = slugify(name.strip())

    if mime_type == MimeTypes.DOCUMENT:
        name += ".md"
    elif mime_type == MimeTypes.DRAWING:
        name += ".svg"
    elif mime_type and mime_type != MimeTypes.FOLDER and "." not in name:
        name += "." + mime_to_ext(mime_type, name)

    return name[:MAX_FILENAME_LENGTH]


def generate_local_files(drive_files: Iterable[DriveFile]) -> list[LogicalFile]:
    """Map Drive files to logical files, preserving listing order."""
    result: list[LogicalFile] = []
    for drive_file in drive_files:
        common = {
            "id": drive_file.id,
            "title": drive_file.name,
            "modifiedTime": drive_file.modified_time,
            "version": drive_file.version,
            "fileName": desired_path(drive_file.name, drive_file.mime_type),
        }
        mime_type = drive_file.mime_type
        if mime_type == MimeTypes.FOLDER:
            result.append(DirectoryFile(**common))
        elif mime_type == MimeTypes.DOCUMENT:
            result.append(MdFile(lastAuthor=drive_file.last_author, **common))
        elif mime_type == MimeTypes.DRAWING:
            result.append(DrawingFile(**common))
        elif mime_type == MimeTypes.SHORTCUT:
            result.append(ShortcutFile(**common))
        else:
            result.append(BinaryFile(mimeType=mime_type, **common))
    return result


__all__ = ["MAX_FILENAME_LENGTH", "desired_path", "generate_local_files", "slugify"]
