"""Drive-side file metadata."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MimeTypes:
    """Mime types used by Google Drive and the generated tree."""

    FOLDER = "application/vnd.google-apps.folder"
    DOCUMENT = "application/vnd.google-apps.document"
    DRAWING = "application/vnd.google-apps.drawing"
    SPREADSHEET = "application/vnd.google-apps.spreadsheet"
    PRESENTATION = "application/vnd.google-apps.presentation"
    FORM = "application/vnd.google-apps.form"
    APPS_SCRIPT = "application/vnd.google-apps.script"
    SHORTCUT = "application/vnd.google-apps.shortcut"
    MARKDOWN = "text/x-markdown"
    MARKDOWN_EXPORT = "text/markdown"
    SVG = "image/svg+xml"
    PNG = "image/png"
    PDF = "application/pdf"
    ZIP = "application/zip"
    CSV = "text/csv"
    XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    ODS = "application/vnd.oasis.opendocument.spreadsheet"
    PPTX = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
    ODP = "application/vnd.oasis.opendocument.presentation"
    APPS_SCRIPT_JSON = "application/vnd.google-apps.script+json"


# Cache files written next to downloaded content in every folder.
FOLDER_MANIFEST = ".folder.json"
FOLDER_FILES = ".folder-files.json"

# Formats fetched for Google-native files; the first one is copied into the
# generated tree.
EXPORT_FORMATS: dict[str, tuple[tuple[str, str], ...]] = {
    MimeTypes.SPREADSHEET: ((MimeTypes.XLSX, "xlsx"), (MimeTypes.ODS, "ods"), (MimeTypes.CSV, "csv")),
    MimeTypes.PRESENTATION: ((MimeTypes.PDF, "pdf"), (MimeTypes.PPTX, "pptx"), (MimeTypes.ODP, "odp")),
    MimeTypes.FORM: ((MimeTypes.ZIP, "zip"),),
    MimeTypes.APPS_SCRIPT: ((MimeTypes.APPS_SCRIPT_JSON, "gs"),),
}


_EXTENSIONS = {
    "image/jpeg": "jpg",
    MimeTypes.PNG: "png",
    MimeTypes.SVG: "svg",
    MimeTypes.DRAWING: "svg",
    MimeTypes.DOCUMENT: "md",
    MimeTypes.CSV: "csv",
}


def mime_to_ext(mime_type: str, file_name: str) -> str:
    """Return the extension used for cached and generated copies of a file.

    A Drive name that already carries an extension keeps it, so an empty string
    is returned for it.
    """
    if mime_type in EXPORT_FORMATS:
        return EXPORT_FORMATS[mime_type][0][1]
    if mime_type in _EXTENSIONS:
        return _EXTENSIONS[mime_type]
    if "." in file_name:
        return ""
    return "bin"


class DriveFile(BaseModel):
    """Metadata for a file or folder listed from Drive.

    Field names follow the Drive v3 API so listings validate directly and the
    cached ``.folder-files.json`` stays readable by other tools.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    mime_type: str = Field(alias="mimeType")
    modified_time: Optional[str] = Field(default=None, alias="modifiedTime")
    version: Optional[int] = None
    md5_checksum: Optional[str] = Field(default=None, alias="md5Checksum")
    size: Optional[int] = None
    last_author: Optional[str] = Field(default=None, alias="lastAuthor")
    parent_id: Optional[str] = Field(default=None, alias="parentId")

    def to_json(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


__all__ = ["EXPORT_FORMATS", "FOLDER_FILES", "FOLDER_MANIFEST", "DriveFile", "MimeTypes", "mime_to_ext"]
