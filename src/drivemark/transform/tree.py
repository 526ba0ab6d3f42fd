"""Tree index of the generated content, persisted as ``.tree.json``."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from drivemark.drive import MimeTypes
from drivemark.storage import FileStore

from .models import ConflictEntry
from .scanner import TREE_NAME, DirectoryScanner

VERSION_KEY = "drivemark"


class TreeItem(BaseModel):
    """A generated file or directory as exposed to tree consumers."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    title: str = ""
    path: str
    file_name: str = Field(alias="fileName")
    real_file_name: str = Field(alias="realFileName")
    mime_type: str = Field(alias="mimeType")
    modified_time: Optional[str] = Field(default=None, alias="modifiedTime")
    version: Optional[int] = None
    parent_id: Optional[str] = Field(default=None, alias="parentId")
    conflicting: Optional[List[ConflictEntry]] = None
    redirect_to: Optional[str] = Field(default=None, alias="redirectTo")

    @property
    def is_directory(self) -> bool:
        return self.mime_type == MimeTypes.FOLDER

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


@dataclass(slots=True)
class _Node:
    item: TreeItem
    parent: Optional[int]
    children: list[int] = field(default_factory=list)


class TreeArena:
    """Tree nodes stored in a flat list and linked by index."""

    def __init__(self) -> None:
        self._nodes: list[_Node] = []
        self._roots: list[int] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def add(self, item: TreeItem, parent: Optional[int] = None) -> int:
        index = len(self._nodes)
        self._nodes.append(_Node(item=item, parent=parent))
        if parent is None:
            self._roots.append(index)
        else:
            self._nodes[parent].children.append(index)
        return index

    def item(self, index: int) -> TreeItem:
        return self._nodes[index].item

    def parent(self, index: int) -> Optional[int]:
        return self._nodes[index].parent

    def children(self, index: Optional[int] = None) -> list[int]:
        """Child indexes of ``index``, or the roots when ``index`` is ``None``."""
        if index is None:
            return list(self._roots)
        return list(self._nodes[index].children)

    def items(self) -> Iterator[TreeItem]:
        for node in self._nodes:
            yield node.item

    def find(self, predicate: Callable[[TreeItem], bool]) -> Optional[tuple[TreeItem, str]]:
        """Return the first matching item and its real path.

        Siblings are checked before descending into directories.
        """
        return self._find(predicate, self._roots, "")

    def _find(
        self, predicate: Callable[[TreeItem], bool], level: list[int], prefix: str
    ) -> Optional[tuple[TreeItem, str]]:
        for index in level:
            item = self._nodes[index].item
            if predicate(item):
                return item, prefix + item.real_file_name
        for index in level:
            node = self._nodes[index]
            if node.item.is_directory and node.children:
                found = self._find(predicate, node.children, prefix + node.item.real_file_name + "/")
                if found is not None:
                    return found
        return None

    def to_json(self) -> list[dict[str, Any]]:
        """Serialize as nested items with ``children`` lists on directories."""
        return [self._node_json(index) for index in self._roots]

    def _node_json(self, index: int) -> dict[str, Any]:
        node = self._nodes[index]
        data = node.item.to_json()
        if node.item.is_directory:
            data["children"] = [self._node_json(child) for child in node.children]
        return data

    @classmethod
    def from_json(cls, items: list[dict[str, Any]]) -> "TreeArena":
        arena = cls()

        def _load(entries: list[dict[str, Any]], parent: Optional[int]) -> None:
            for entry in entries:
                index = arena.add(TreeItem.model_validate(entry), parent)
                _load(entry.get("children") or [], index)

        _load(items, None)
        return arena


class MarkdownTreeProcessor:
    """Regenerate, persist and query the tree index of a content store."""

    def __init__(self, store: FileStore) -> None:
        self._store = store
        self._arena = TreeArena()
        self._version: Optional[str] = None

    @property
    def arena(self) -> TreeArena:
        return self._arena

    def load(self) -> None:
        data = self._store.read_json(TREE_NAME) or []
        self._arena = TreeArena.from_json(data)
        self._version = data[0].get(VERSION_KEY) if data else None

    def save(self, version: Optional[str] = None) -> None:
        if version is not None:
            self._version = version
        payload = self._arena.to_json()
        if payload and self._version is not None:
            payload[0][VERSION_KEY] = self._version
        self._store.write_json(TREE_NAME, payload)

    def regenerate_tree(self, root_id: str) -> None:
        """Rebuild the whole tree by scanning the content store."""
        self._arena = TreeArena()
        self._scan(self._store, None, root_id)

    def _scan(self, store: FileStore, parent: Optional[int], parent_id: str) -> None:
        files = DirectoryScanner().scan(store)
        for real_file_name, entry in files.items():
            item = TreeItem(
                id=entry.id,
                title=entry.title,
                path=store.virtual_path + real_file_name,
                fileName=entry.file_name,
                realFileName=real_file_name,
                mimeType=entry.mime_type,
                modifiedTime=entry.modified_time,
                version=getattr(entry, "version", None),
                parentId=parent_id,
                conflicting=entry.conflicting if entry.type == "conflict" else None,
                redirectTo=entry.redirect_to if entry.type == "redirect" else None,
            )
            index = self._arena.add(item, parent)
            if entry.type == "directory":
                self._scan(store.get_sub_store(real_file_name), index, entry.id)

    def find_by_id(self, file_id: str) -> Optional[tuple[TreeItem, str]]:
        """Return the item generated for ``file_id``, ahead of redirect stubs sharing its id."""
        found = self._arena.find(lambda item: item.id == file_id and item.redirect_to is None)
        return found or self._arena.find(lambda item: item.id == file_id)

    def find_by_path(self, path: str) -> Optional[tuple[TreeItem, str]]:
        return self._arena.find(lambda item: item.path == path)

    def walk_tree(self, callback: Callable[[TreeItem], bool]) -> None:
        """Visit items until ``callback`` returns ``True``."""
        self._arena.find(callback)

    def get_root_item(self, drive_id: str) -> tuple[TreeItem, list[TreeItem]]:
        """Return a synthetic root item and its top-level children."""
        root = TreeItem(
            id=drive_id,
            title="/",
            path="/",
            fileName="/",
            realFileName="/",
            mimeType=MimeTypes.FOLDER,
            parentId=drive_id,
        )
        return root, [self._arena.item(index) for index in self._arena.children()]

    def is_empty(self) -> bool:
        return len(self._arena) == 0

    def get_tree(self) -> list[dict[str, Any]]:
        return self._arena.to_json()

    def get_tree_version(self) -> Optional[str]:
        return self._version


__all__ = ["MarkdownTreeProcessor", "TreeArena", "TreeItem", "VERSION_KEY"]
