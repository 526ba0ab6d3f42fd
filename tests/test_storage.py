"""Tests for the path-scoped file store."""

from __future__ import annotations

import hashlib
from pathlib import Path

import pytest

from drivemark.storage import FileStore, StorageError


def test_sub_store_tracks_virtual_path(tmp_path: Path) -> None:
    store = FileStore(tmp_path)

    sub = store.get_sub_store("docs").get_sub_store("guides")

    assert store.virtual_path == "/"
    assert sub.virtual_path == "/docs/guides/"
    assert sub.real_path == tmp_path / "docs" / "guides"


def test_writes_create_parent_directories(tmp_path: Path) -> None:
    store = FileStore(tmp_path)

    store.write_text("a/b/c.md", "hello")

    assert store.read_text("/a/b/c.md") == "hello"
    assert store.is_directory("a/b")
    assert store.list("a") == ["b"]


def test_listing_is_sorted_and_empty_for_missing_directories(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    for name in ("zeta.md", "alpha.md", "beta"):
        store.write_text(name, "")

    assert store.list() == ["alpha.md", "beta", "zeta.md"]
    assert store.list("missing") == []


def test_read_json_returns_none_when_missing(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    store.write_json("data.json", {"key": ["value"]})

    assert store.read_json("data.json") == {"key": ["value"]}
    assert store.read_json("other.json") is None


def test_read_json_rejects_invalid_content(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    store.write_text("broken.json", "{not json")

    with pytest.raises(StorageError):
        store.read_json("broken.json")


def test_md5_matches_content_digest(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    store.write_bytes("blob.bin", b"payload")

    assert store.md5("blob.bin") == hashlib.md5(b"payload").hexdigest()
    assert store.md5("missing.bin") is None


def test_paths_escaping_the_root_are_rejected(tmp_path: Path) -> None:
    store = FileStore(tmp_path / "root")

    with pytest.raises(StorageError):
        store.resolve("../outside.txt")


def test_remove_handles_files_directories_and_missing_paths(tmp_path: Path) -> None:
    store = FileStore(tmp_path)
    store.write_text("dir/file.md", "x")
    store.write_text("single.md", "x")

    store.remove("dir")
    store.remove("single.md")
    store.remove("never-existed")

    assert store.list() == []


def test_streams_round_trip_bytes(tmp_path: Path) -> None:
    store = FileStore(tmp_path)

    with store.open_write_stream("nested/out.bin") as stream:
        stream.write(b"\x00\x01")
    with store.open_read_stream("nested/out.bin") as stream:
        assert stream.read() == b"\x00\x01"
