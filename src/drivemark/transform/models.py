"""Logical file models describing the generated content tree."""

from __future__ import annotations

from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from drivemark.drive import MimeTypes

TO_FILL = "TO_FILL"


class _LogicalFileBase(BaseModel):
    """Fields shared by every logical file.

    Attributes:
        id: Drive id, or ``TO_FILL`` until one is known.
        title: Human readable title.
        file_name: Desired on-disk name, without any conflict suffix.
        modified_time: ISO timestamp from Drive.
        mime_type: Mime type of the generated file.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = TO_FILL
    title: str = ""
    file_name: str = Field(default="", alias="fileName")
    modified_time: Optional[str] = Field(default=None, alias="modifiedTime")
    mime_type: str = Field(default="application/binary", alias="mimeType")

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class DirectoryFile(_LogicalFileBase):
    type: Literal["directory"] = "directory"
    mime_type: str = Field(default=MimeTypes.FOLDER, alias="mimeType")
    version: Optional[int] = None


class MdFile(_LogicalFileBase):
    type: Literal["md"] = "md"
    mime_type: str = Field(default=MimeTypes.MARKDOWN, alias="mimeType")
    version: Optional[int] = None
    last_author: Optional[str] = Field(default=None, alias="lastAuthor")


class DrawingFile(_LogicalFileBase):
    type: Literal["drawing"] = "drawing"
    mime_type: str = Field(default=MimeTypes.SVG, alias="mimeType")
    version: Optional[int] = None


class BinaryFile(_LogicalFileBase):
    type: Literal["binary"] = "binary"
    version: Optional[int] = None


class ShortcutFile(_LogicalFileBase):
    type: Literal["shortcut"] = "shortcut"
    mime_type: str = Field(default=MimeTypes.SHORTCUT, alias="mimeType")
    version: Optional[int] = None


class ConflictEntry(BaseModel):
    """One member of a name collision and the slot it was given."""

    model_config = ConfigDict(populate_by_name=True)

    real_file_name: str = Field(alias="realFileName")
    id: str
    title: str


class ConflictFile(_LogicalFileBase):
    type: Literal["conflict"] = "conflict"
    mime_type: str = Field(default=MimeTypes.MARKDOWN, alias="mimeType")
    conflicting: List[ConflictEntry] = Field(default_factory=list)


class RedirectFile(_LogicalFileBase):
    type: Literal["redirect"] = "redirect"
    mime_type: str = Field(default=MimeTypes.MARKDOWN, alias="mimeType")
    redirect_to: str = Field(alias="redirectTo")


LogicalFile = Annotated[
    Union[
        DirectoryFile,
        MdFile,
        DrawingFile,
        BinaryFile,
        ShortcutFile,
        ConflictFile,
        RedirectFile,
    ],
    Field(discriminator="type"),
]

DirectoryFileMap = dict[str, LogicalFile]

_LOGICAL_FILE = TypeAdapter(LogicalFile)


def logical_file_from_json(data: dict[str, Any]) -> LogicalFile:
    """Validate a serialized logical file, dispatching on its ``type``."""
    return _LOGICAL_FILE.validate_python(data)


__all__ = [
    "TO_FILL",
    "BinaryFile",
    "ConflictEntry",
    "ConflictFile",
    "DirectoryFile",
    "DirectoryFileMap",
    "DrawingFile",
    "LogicalFile",
    "MdFile",
    "RedirectFile",
    "ShortcutFile",
    "logical_file_from_json",
]
