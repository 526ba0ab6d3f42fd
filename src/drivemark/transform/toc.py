"""Generated table of contents for the content tree."""

from __future__ import annotations

from drivemark.storage import FileStore

from .frontmatter import dump_front_matter
from .models import LogicalFile
from .scanner import DirectoryScanner


def _sort_key(item: tuple[str, LogicalFile]) -> tuple[int, str]:
    entry = item[1]
    return (0 if entry.type == "directory" else 1, entry.title.lower())


def _directory_to_markdown(store: FileStore, level: int) -> str:
    files = DirectoryScanner().scan(store)
    indent = "   " * (level + 1)
    lines: list[str] = []
    for real_file_name, entry in sorted(files.items(), key=_sort_key):
        if entry.type == "directory":
            lines.append(f"{indent}* {entry.title}\n")
            lines.append(_directory_to_markdown(store.get_sub_store(real_file_name), level + 1))
        elif entry.type == "md":
            lines.append(f"{indent}* [{entry.title}](gdoc:{entry.id})\n")
    return "".join(lines)


def generate_toc(store: FileStore, version: str | None = None) -> str:
    """Render ``toc.md``: directories first, then documents by title."""
    header = dump_front_matter({"type": "page", "title": "TOC", "drivemark": version})
    return header + _directory_to_markdown(store, 0)


__all__ = ["generate_toc"]
