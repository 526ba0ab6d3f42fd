"""Queue tasks that write one generated file each."""

from __future__ import annotations

import logging
import re
import shutil
from typing import Any, Optional, Union

from drivemark.config import TransformSettings
from drivemark.drive import DriveFile, mime_to_ext
from drivemark.queue import Task
from drivemark.storage import FileStore

from .errors import TransformError
from .frontmatter import conflict_markdown, document_front_matter, redirect_markdown
from .links import GDOC_PREFIX, apply_rewrite_rules, rewrite_markdown_links, rewrite_svg_links
from .local_links import LocalLinks
from .models import (
    BinaryFile,
    ConflictFile,
    DrawingFile,
    LogicalFile,
    MdFile,
    RedirectFile,
)
from .navigation import NavigationHierarchy

LOGGER = logging.getLogger(__name__)

Logger = Union[logging.Logger, logging.LoggerAdapter]

_LETTERED_LIST = re.compile(r"^ *A. {2}", re.IGNORECASE | re.MULTILINE)
_GOOGLE_HOSTS = ("docs.google.com/", "drive.google.com/")


def content_errors(links: list[str]) -> list[str]:
    """Return messages for Google links that could not be mapped to an id."""
    return [
        f"Unrecognized Google link: {link}"
        for link in links
        if not link.startswith(GDOC_PREFIX) and any(host in link for host in _GOOGLE_HOSTS)
    ]


class LocalFileTransformTask(Task):
    """Generate ``real_file_name`` in the destination from the downloaded copy.

    Args:
        real_file_name: Name to write, possibly carrying a conflict suffix.
        source_store: Download directory holding ``{id}.*`` files.
        drive_file: Listing entry of the source file; ``None`` for synthetic
            files such as conflict listings.
        destination_store: Content directory to write into.
        local_file: Logical file being generated.
        local_links: Link table updated with the links the file contains.
        settings: Front matter options.
        navigation: Menu entries keyed by Drive id.

    Raises:
        TransformError: If ``local_file`` has no file name.
    """

    def __init__(
        self,
        real_file_name: str,
        source_store: FileStore,
        drive_file: Optional[DriveFile],
        destination_store: FileStore,
        local_file: LogicalFile,
        local_links: LocalLinks,
        *,
        settings: Optional[TransformSettings] = None,
        navigation: Optional[NavigationHierarchy] = None,
        logger: Optional[Logger] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if not local_file.file_name:
            raise TransformError(f"No fileName for: {local_file.id}")
        self._real_file_name = real_file_name
        self._source = source_store
        self._drive_file = drive_file
        self._destination = destination_store
        self._local_file = local_file
        self._local_links = local_links
        self._settings = settings or TransformSettings()
        self._navigation = navigation or {}
        self._logger = logger or LOGGER

    def describe(self) -> str:
        return f"transform {self._destination.virtual_path}{self._real_file_name}"

    def run(self) -> list[Task]:
        local_file = self._local_file
        version = f" #{local_file.version}" if getattr(local_file, "version", None) else ""

        if isinstance(local_file, ConflictFile):
            self._logger.info("Transforming conflict: %s", local_file.file_name)
            self._destination.write_text(self._real_file_name, conflict_markdown(local_file))
        elif self._drive_file is None:
            self._logger.debug("No downloaded copy of %s, skipping", local_file.file_name)
            return []
        elif isinstance(local_file, MdFile):
            self._logger.info("Transforming markdown: %s%s", local_file.file_name, version)
            self._generate_document(local_file)
        elif isinstance(local_file, DrawingFile):
            self._logger.info("Transforming drawing: %s%s", local_file.file_name, version)
            self._generate_drawing(local_file)
        elif isinstance(local_file, BinaryFile):
            self._logger.info("Transforming binary: %s%s", local_file.file_name, version)
            self._generate_binary(local_file, self._drive_file)
        else:
            self._logger.debug("Nothing to generate for %s (%s)", local_file.file_name, local_file.type)
            return []

        self._logger.info("Transformed: %s%s", local_file.file_name, version)
        return []

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _generate_document(self, md_file: MdFile) -> None:
        original = self._source.read_text(f"{md_file.id}.md")
        rewritten = apply_rewrite_rules(original, self._settings.rewrite_rules)
        markdown, links = rewrite_markdown_links(rewritten)

        overrides: dict[str, Any] = {}
        if _LETTERED_LIST.search(markdown):
            overrides["markup"] = "pandoc"

        node = self._navigation.get(md_file.id)
        front_matter = document_front_matter(
            md_file,
            links,
            without_version=self._settings.fm_without_version,
            menu=node.as_menu() if node else None,
            overrides=overrides,
        )

        errors = content_errors(links)
        self.warnings = len(errors)
        for message in errors:
            self._logger.warning(
                "Error in: [%s](%s) %s",
                md_file.file_name,
                md_file.file_name,
                message,
                extra={"error_md_file": md_file.file_name, "error_md_msg": message},
            )

        self._destination.write_text(self._real_file_name, front_matter + markdown)
        self._local_links.append(md_file.id, md_file.file_name, links)

    def _generate_drawing(self, drawing: DrawingFile) -> None:
        svg, links = rewrite_svg_links(self._source.read_text(f"{drawing.id}.svg"))
        self._destination.write_text(self._real_file_name, svg)
        self._local_links.append(drawing.id, drawing.file_name, links)

    def _generate_binary(self, binary: BinaryFile, drive_file: DriveFile) -> None:
        ext = mime_to_ext(drive_file.mime_type, drive_file.name)
        source_name = f"{binary.id}.{ext}" if ext else binary.id
        with self._source.open_read_stream(source_name) as source:
            with self._destination.open_write_stream(self._real_file_name) as target:
                shutil.copyfileobj(source, target)


class RedirectFileTransformTask(Task):
    """Write a stub at an old path that links to the file's new location."""

    def __init__(
        self,
        real_file_name: str,
        destination_store: FileStore,
        redirect: RedirectFile,
        target: LogicalFile,
        *,
        logger: Optional[Logger] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        if not target.file_name:
            raise TransformError(f"No fileName for: {target.id}")
        self._real_file_name = real_file_name
        self._destination = destination_store
        self._redirect = redirect
        self._target = target
        self._logger = logger or LOGGER

    def describe(self) -> str:
        return f"redirect {self._destination.virtual_path}{self._real_file_name}"

    def run(self) -> list[Task]:
        self._logger.info(
            "Writing redirect: %s%s", self._destination.virtual_path, self._real_file_name
        )
        self._destination.write_text(
            self._real_file_name, redirect_markdown(self._redirect, self._target)
        )
        return []


__all__ = ["LocalFileTransformTask", "RedirectFileTransformTask", "content_errors"]
