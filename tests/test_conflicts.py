"""Tests for real-name assignment of colliding files."""

from __future__ import annotations

from drivemark.transform import solve_conflicts
from drivemark.transform.models import BinaryFile, ConflictFile, MdFile


def _doc(file_id: str, title: str = "Doc A", file_name: str = "doc-a.md") -> MdFile:
    return MdFile(id=file_id, title=title, fileName=file_name, modifiedTime="2024-01-01T00:00:00Z")


def test_unique_names_are_kept() -> None:
    resolved = solve_conflicts([_doc("a"), _doc("b", "Doc B", "doc-b.md")], {})

    assert list(resolved) == ["doc-a.md", "doc-b.md"]
    assert resolved["doc-a.md"].id == "a"


def test_colliding_documents_get_slots_in_input_order() -> None:
    files = [_doc("x"), _doc("y"), _doc("z")]

    resolved = solve_conflicts(files, {})

    assert resolved["doc-a@1.md"].id == "x"
    assert resolved["doc-a@2.md"].id == "y"
    assert resolved["doc-a@3.md"].id == "z"
    conflict = resolved["doc-a.md"]
    assert isinstance(conflict, ConflictFile)
    assert [(entry.real_file_name, entry.id) for entry in conflict.conflicting] == [
        ("doc-a@1.md", "x"),
        ("doc-a@2.md", "y"),
        ("doc-a@3.md", "z"),
    ]


def test_previous_slot_is_kept_on_rerun() -> None:
    previous = {
        "doc-a@1.md": _doc("y"),
        "doc-a@2.md": _doc("x"),
    }

    resolved = solve_conflicts([_doc("x"), _doc("y")], previous)

    assert resolved["doc-a@2.md"].id == "x"
    assert resolved["doc-a@1.md"].id == "y"


def test_rerun_with_resolved_output_is_stable() -> None:
    files = [_doc("x"), _doc("y"), _doc("z")]
    first = solve_conflicts(files, {})

    second = solve_conflicts(files, first)

    assert {name: entry.id for name, entry in second.items()} == {
        name: entry.id for name, entry in first.items()
    }


def test_new_member_takes_lowest_free_slot() -> None:
    previous = {"doc-a@2.md": _doc("y")}

    resolved = solve_conflicts([_doc("x"), _doc("y"), _doc("z")], previous)

    assert resolved["doc-a@2.md"].id == "y"
    assert resolved["doc-a@1.md"].id == "x"
    assert resolved["doc-a@3.md"].id == "z"


def test_document_that_held_bare_name_moves_to_a_slot() -> None:
    previous = {"doc-a.md": _doc("x")}

    resolved = solve_conflicts([_doc("x"), _doc("y")], previous)

    assert isinstance(resolved["doc-a.md"], ConflictFile)
    assert {resolved["doc-a@1.md"].id, resolved["doc-a@2.md"].id} == {"x", "y"}


def test_colliding_binaries_get_slots_without_listing() -> None:
    files = [
        BinaryFile(id="p1", title="photo.png", fileName="photo.png", mimeType="image/png"),
        BinaryFile(id="p2", title="photo.png", fileName="photo.png", mimeType="image/png"),
    ]

    resolved = solve_conflicts(files, {})

    assert "photo.png" not in resolved
    assert resolved["photo@1.png"].id == "p1"
    assert resolved["photo@2.png"].id == "p2"
