"""Menu hierarchy defined by an optional ``.navigation`` document."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from drivemark.drive import DriveFile

from .generator import desired_path
from .links import url_to_file_id

LOGGER = logging.getLogger(__name__)

NAVIGATION_TITLE = ".navigation"
FIRST_WEIGHT = 30
WEIGHT_STEP = 10

_LIST_ITEM = re.compile(r"^(\s*)(?:[*+-]|\d+\.)\s+(.*)$")
_LINK = re.compile(r"\[([^\]]+)\]\(([^)]+)\)")


@dataclass(slots=True)
class NavigationNode:
    """Menu entry emitted into a document's front matter."""

    name: str
    weight: int
    identifier: str
    parent: Optional[str] = None

    def as_menu(self) -> dict:
        menu = {"name": self.name, "identifier": self.identifier}
        if self.parent:
            menu["parent"] = self.parent
        menu["weight"] = self.weight
        return menu


NavigationHierarchy = dict[str, NavigationNode]


def generate_navigation_hierarchy(markdown: str, files: Iterable[DriveFile]) -> NavigationHierarchy:
    """Build the menu from a nested Markdown list of links.

    Each ``* [Name](url)`` item whose URL points at a known file becomes a
    node; nesting depth decides the parent. Items without a link are logged
    and skipped.
    """
    candidates = list(files)
    result: NavigationHierarchy = {}
    indents: list[int] = []
    parents: dict[int, str] = {}
    weight = FIRST_WEIGHT
    last_content = ""

    for line in markdown.splitlines():
        item = _LIST_ITEM.match(line)
        if item is None:
            continue
        width = len(item.group(1).expandtabs(4))
        while indents and indents[-1] > width:
            indents.pop()
        if not indents or indents[-1] < width:
            indents.append(width)
        level = len(indents) - 1

        link = _LINK.search(item.group(2))
        if link is None:
            LOGGER.warning(
                ".navigation menu has %s without url near: %s", item.group(2).strip(), last_content
            )
            continue

        name, url = link.group(1), link.group(2)
        last_content = name
        match = _find_file(url, candidates)
        if match is None:
            continue

        parents[level] = match.id
        result[match.id] = NavigationNode(
            name=name,
            weight=weight,
            identifier=match.id,
            parent=parents.get(level - 1) if level > 0 else None,
        )
        weight += WEIGHT_STEP

    return result


def _find_file(url: str, files: list[DriveFile]) -> DriveFile | None:
    file_id = url_to_file_id(url)
    stem = url.strip("/").split(".")[0]
    for candidate in files:
        if file_id and candidate.id == file_id:
            return candidate
        if desired_path(candidate.name, candidate.mime_type).split(".")[0] == stem:
            return candidate
    return None


__all__ = [
    "NAVIGATION_TITLE",
    "NavigationHierarchy",
    "NavigationNode",
    "generate_navigation_hierarchy",
]
