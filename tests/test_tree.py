"""Tests for the persisted tree index."""

from __future__ import annotations

from pathlib import Path

from drivemark.drive import MimeTypes
from drivemark.storage import FileStore
from drivemark.transform import MarkdownTreeProcessor, TreeArena, TreeItem
from drivemark.transform.scanner import DIRECTORY_MANIFEST, TREE_NAME


def _content_store(tmp_path: Path) -> FileStore:
    store = FileStore(tmp_path)
    store.write_text("intro.md", "---\nid: doc-intro\ntitle: Intro\n---\nHello\n")
    store.write_text(f"guides/{DIRECTORY_MANIFEST}", "type: directory\nid: folder-g\ntitle: Guides\n")
    store.write_text("guides/setup.md", "---\nid: doc-setup\ntitle: Setup\nversion: 2\n---\nSteps\n")
    return store


def _fingerprint(processor: MarkdownTreeProcessor) -> list[tuple[str, str, str]]:
    return [(item.id, item.path, item.mime_type) for item in processor.arena.items()]


def test_regenerated_tree_survives_save_and_load(tmp_path: Path) -> None:
    store = _content_store(tmp_path)
    processor = MarkdownTreeProcessor(store)
    processor.regenerate_tree("drive-1")
    before = _fingerprint(processor)

    processor.save("1.2.3")
    reloaded = MarkdownTreeProcessor(store)
    reloaded.load()

    assert store.exists(TREE_NAME)
    assert _fingerprint(reloaded) == before
    assert reloaded.get_tree_version() == "1.2.3"
    assert reloaded.get_tree() == processor.get_tree()


def test_tree_links_children_to_directories(tmp_path: Path) -> None:
    processor = MarkdownTreeProcessor(_content_store(tmp_path))
    processor.regenerate_tree("drive-1")

    tree = processor.get_tree()

    guides = next(entry for entry in tree if entry["id"] == "folder-g")
    assert guides["mimeType"] == MimeTypes.FOLDER
    assert guides["parentId"] == "drive-1"
    assert [child["id"] for child in guides["children"]] == ["doc-setup"]
    assert guides["children"][0]["parentId"] == "folder-g"
    assert guides["children"][0]["path"] == "/guides/setup.md"


def test_find_by_id_returns_real_path(tmp_path: Path) -> None:
    processor = MarkdownTreeProcessor(_content_store(tmp_path))
    processor.regenerate_tree("drive-1")

    found = processor.find_by_id("doc-setup")

    assert found is not None
    item, path = found
    assert item.title == "Setup"
    assert item.version == 2
    assert path == "guides/setup.md"
    assert processor.find_by_id("unknown") is None


def test_empty_store_yields_empty_tree(tmp_path: Path) -> None:
    processor = MarkdownTreeProcessor(FileStore(tmp_path))
    processor.load()

    assert processor.is_empty()
    assert processor.get_tree() == []
    assert processor.get_tree_version() is None


def test_arena_searches_siblings_before_descending() -> None:
    arena = TreeArena()
    folder = arena.add(
        TreeItem(id="f", path="/f", fileName="f", realFileName="f", mimeType=MimeTypes.FOLDER)
    )
    arena.add(
        TreeItem(id="dup", path="/f/a.md", fileName="a.md", realFileName="a.md", mimeType="text/x-markdown"),
        folder,
    )
    arena.add(
        TreeItem(id="dup", path="/a.md", fileName="a.md", realFileName="a.md", mimeType="text/x-markdown")
    )

    found = arena.find(lambda item: item.id == "dup")

    assert found is not None
    assert found[1] == "a.md"
    assert arena.parent(1) == folder
    assert arena.children() == [0, 2]


def test_find_by_id_prefers_the_file_over_its_redirect_stub(tmp_path: Path) -> None:
    store = _content_store(tmp_path)
    store.write_text(
        "setup.md", "---\nid: doc-setup\ntitle: 'Redirect to: Setup'\nredirectTo: doc-setup\n---\n"
    )
    processor = MarkdownTreeProcessor(store)
    processor.regenerate_tree("drive-1")

    found = processor.find_by_id("doc-setup")

    assert found is not None
    assert found[1] == "guides/setup.md"
    assert found[0].redirect_to is None
