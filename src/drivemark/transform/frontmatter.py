"""YAML front matter parsing and the fixed documents the pipeline writes."""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

import yaml

from drivemark.drive import DriveFile, MimeTypes

from .errors import TransformError
from .models import ConflictFile, LogicalFile, MdFile, RedirectFile

DRIVE_OPEN_URL = "https://drive.google.com/open?id="

_FRONT_MATTER = re.compile(r"\A---[ \t]*\r?\n(.*?)^---[ \t]*(?:\r?\n|\Z)", re.DOTALL | re.MULTILINE)


def parse_front_matter(text: str) -> tuple[dict[str, Any] | None, str]:
    """Split a Markdown document into its front matter mapping and body.

    Returns:
        tuple: ``(data, body)``; ``data`` is ``None`` when the text has no
        front matter block.

    Raises:
        TransformError: If the block is not valid YAML or not a mapping.
    """
    match = _FRONT_MATTER.match(text)
    if match is None:
        return None, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise TransformError(f"Malformed front matter: {exc}") from exc
    if not isinstance(data, dict):
        raise TransformError("Front matter must be a mapping")
    return data, text[match.end() :]


def dump_front_matter(data: Mapping[str, Any]) -> str:
    """Render ``data`` as a front matter block, dropping ``None`` values."""
    cleaned = {key: value for key, value in data.items() if value is not None}
    body = yaml.safe_dump(cleaned, sort_keys=False, allow_unicode=True, default_flow_style=False)
    return "---\n" + body + "---\n"


def document_front_matter(
    md_file: MdFile,
    links: Iterable[str],
    *,
    without_version: bool = False,
    menu: Mapping[str, Any] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> str:
    """Front matter for a generated document."""
    data: dict[str, Any] = {
        "id": md_file.id,
        "title": md_file.title,
        "date": None if without_version else md_file.modified_time,
        "version": None if without_version else md_file.version,
        "lastAuthor": None if without_version else md_file.last_author,
        "mimeType": md_file.mime_type,
        "links": list(links),
        "source": DRIVE_OPEN_URL + md_file.id,
    }
    if menu:
        data["menu"] = {"main": dict(menu)}
    if overrides:
        data.update(overrides)
    return dump_front_matter(data)


def conflict_markdown(conflict: ConflictFile) -> str:
    """Listing written at a name claimed by several documents."""
    header = dump_front_matter(
        {
            "id": conflict.id,
            "title": conflict.title,
            "conflicting": [entry.model_dump(by_alias=True) for entry in conflict.conflicting],
            "fileName": conflict.file_name,
            "mimeType": conflict.mime_type,
            "date": conflict.modified_time,
        }
    )
    listing = "\n".join(
        f"* [{entry.title}]({entry.real_file_name})" for entry in conflict.conflicting
    )
    return header + "There were two documents with the same name in the same folder:\n\n" + listing + "\n"


def redirect_markdown(redirect: RedirectFile, target: LogicalFile) -> str:
    """Stub left at an old path pointing at the document's current location."""
    if not redirect.redirect_to:
        raise TransformError(f"No redirect target for: {redirect.id}")
    header = dump_front_matter(
        {
            "id": redirect.id,
            "title": redirect.title,
            "date": redirect.modified_time,
            "source": DRIVE_OPEN_URL + redirect.id,
            "mimeType": redirect.mime_type,
            "url": "gdoc:" + redirect.redirect_to,
            "redirectTo": redirect.redirect_to,
            "autogenerated": True,
        }
    )
    return header + f"Renamed to: [{target.title}](gdoc:{redirect.redirect_to})\n"


def directory_yaml(file_name: str, directory: DriveFile, file_map: Mapping[str, LogicalFile]) -> str:
    """Manifest stored as ``.wgd-directory.yaml`` in every generated directory."""
    data = {
        "type": "directory",
        "id": directory.id,
        "title": directory.name,
        "fileName": file_name,
        "mimeType": MimeTypes.FOLDER,
        "date": directory.modified_time,
        "version": directory.version,
        "fileMap": {name: entry.to_json() for name, entry in file_map.items()},
    }
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def parse_directory_yaml(text: str) -> dict[str, Any]:
    """Load a directory manifest.

    Raises:
        TransformError: If the manifest is not a YAML mapping.
    """
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise TransformError(f"Malformed directory manifest: {exc}") from exc
    if not isinstance(data, dict):
        raise TransformError("Directory manifest must be a mapping")
    return data


__all__ = [
    "DRIVE_OPEN_URL",
    "conflict_markdown",
    "directory_yaml",
    "document_front_matter",
    "dump_front_matter",
    "parse_directory_yaml",
    "parse_front_matter",
    "redirect_markdown",
]
