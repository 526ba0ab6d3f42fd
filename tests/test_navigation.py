"""Tests for the menu hierarchy built from a ``.navigation`` document."""

from __future__ import annotations

from pathlib import Path

from drivemark.config import QueueSettings
from drivemark.drive import DriveFile, MimeTypes
from drivemark.storage import FileStore
from drivemark.transform import TransformPipeline
from drivemark.transform.frontmatter import parse_front_matter
from drivemark.transform.navigation import (
    FIRST_WEIGHT,
    NAVIGATION_TITLE,
    WEIGHT_STEP,
    generate_navigation_hierarchy,
)

ROOT = DriveFile(id="root", name="Root", mimeType=MimeTypes.FOLDER)
GUIDES = DriveFile(id="folderGuides", name="Guides", mimeType=MimeTypes.FOLDER)

MENU = """\
Site menu

* [Overview](https://docs.google.com/document/d/docOverview/edit)
* [Guides](guides)
    * [Setup](setup.md)
    * [Deploy](https://drive.google.com/open?id=docDeploy)
        * [Rollback](rollback)
* [FAQ](faq)
"""


def _doc(file_id: str, name: str) -> DriveFile:
    return DriveFile(id=file_id, name=name, mimeType=MimeTypes.DOCUMENT, modifiedTime="2024-01-01T00:00:00Z")


def _files() -> list[DriveFile]:
    return [
        _doc("docOverview", "Overview"),
        GUIDES,
        _doc("docSetup", "Setup"),
        _doc("docDeploy", "Deploy"),
        _doc("docRollback", "Rollback"),
        _doc("docFaq", "FAQ"),
    ]


def test_items_are_weighted_in_document_order() -> None:
    hierarchy = generate_navigation_hierarchy(MENU, _files())

    ordered = sorted(hierarchy.values(), key=lambda node: node.weight)

    assert [node.identifier for node in ordered] == [
        "docOverview",
        "folderGuides",
        "docSetup",
        "docDeploy",
        "docRollback",
        "docFaq",
    ]
    assert [node.weight for node in ordered] == [FIRST_WEIGHT + WEIGHT_STEP * step for step in range(6)]


def test_nesting_sets_the_parent_identifier() -> None:
    hierarchy = generate_navigation_hierarchy(MENU, _files())

    parents = {file_id: node.parent for file_id, node in hierarchy.items()}

    assert parents == {
        "docOverview": None,
        "folderGuides": None,
        "docSetup": "folderGuides",
        "docDeploy": "folderGuides",
        "docRollback": "docDeploy",
        "docFaq": None,
    }
    assert hierarchy["docRollback"].as_menu() == {
        "name": "Rollback",
        "identifier": "docRollback",
        "parent": "docDeploy",
        "weight": FIRST_WEIGHT + WEIGHT_STEP * 4,
    }
    assert "parent" not in hierarchy["docFaq"].as_menu()


def test_items_without_a_known_target_are_skipped() -> None:
    markdown = "* Plain heading\n* [Missing](nowhere)\n* [FAQ](faq)\n    * [Setup](setup)\n"

    hierarchy = generate_navigation_hierarchy(markdown, _files())

    assert list(hierarchy) == ["docFaq", "docSetup"]
    assert hierarchy["docFaq"].weight == FIRST_WEIGHT
    assert hierarchy["docSetup"].parent == "docFaq"


def test_pipeline_writes_menu_front_matter_for_nested_folders(tmp_path: Path, downloaded_folder) -> None:
    source, destination = FileStore(tmp_path / "download"), FileStore(tmp_path / "content")
    files = {drive_file.id: drive_file for drive_file in _files()}
    navigation = _doc("docNavigation", NAVIGATION_TITLE)
    downloaded_folder(
        source,
        ROOT,
        [
            (navigation, MENU),
            (files["docOverview"], "# Overview\n"),
            (GUIDES, ""),
            (files["docFaq"], "# FAQ\n"),
        ],
    )
    downloaded_folder(
        source.get_sub_store("folderGuides"),
        GUIDES,
        [
            (files["docSetup"], "# Setup\n"),
            (files["docDeploy"], "# Deploy\n"),
            (files["docRollback"], "# Rollback\n"),
        ],
    )

    result = TransformPipeline(
        "root",
        source,
        destination,
        queue_settings=QueueSettings(task_delay_seconds=0, retries=0),
    ).run("root")

    assert not result.failed
    setup, _ = parse_front_matter(destination.read_text("guides/setup.md"))
    rollback, _ = parse_front_matter(destination.read_text("guides/rollback.md"))
    overview, _ = parse_front_matter(destination.read_text("overview.md"))
    assert setup is not None and rollback is not None and overview is not None
    assert setup["menu"] == {
        "main": {
            "name": "Setup",
            "identifier": "docSetup",
            "parent": "folderGuides",
            "weight": FIRST_WEIGHT + WEIGHT_STEP * 2,
        }
    }
    assert rollback["menu"]["main"]["parent"] == "docDeploy"
    assert overview["menu"]["main"] == {
        "name": "Overview",
        "identifier": "docOverview",
        "weight": FIRST_WEIGHT,
    }
