"""Deterministic real-name assignment for files that share a desired name."""

from __future__ import annotations

from typing import Iterable, Mapping

from .models import ConflictEntry, ConflictFile, DirectoryFileMap, LogicalFile
from .scanner import append_conflict, strip_conflict


def solve_conflicts(
    files_to_generate: Iterable[LogicalFile],
    destination_files: Mapping[str, LogicalFile],
) -> DirectoryFileMap:
    """Map every file to generate onto a unique real file name.

    Files whose desired ``file_name`` is unique keep it. When several files
    want the same name:

    * a conflict listing is placed at the bare name if the first member is a
      document;
    * a member that already occupied a ``name@N`` slot in
      ``destination_files`` (matched by id) keeps that slot;
    * every other member takes the lowest free ``@N`` in input order.

    The result depends only on the inputs and their order.

    Args:
        files_to_generate: Desired files, in a stable order.
        destination_files: Real name to logical file map of the previous run.

    Returns:
        DirectoryFileMap: Real file name to the logical file written there.
    """
    groups: dict[str, list[LogicalFile]] = {}
    for entry in files_to_generate:
        groups.setdefault(entry.file_name, []).append(entry)

    previous_names: dict[str, list[str]] = {}
    for real_file_name, entry in destination_files.items():
        previous_names.setdefault(entry.id, []).append(real_file_name)

    resolved: DirectoryFileMap = {}
    for file_name, group in groups.items():
        if len(group) == 1:
            resolved[file_name] = group[0]
            continue

        conflict: ConflictFile | None = None
        if group[0].type == "md":
            conflict = ConflictFile(
                id="conflict:" + file_name,
                title="Conflict: " + group[0].title,
                fileName=file_name,
                modifiedTime=group[0].modified_time,
            )
            resolved[file_name] = conflict

        slots: dict[str, LogicalFile] = {}
        unassigned: list[LogicalFile] = []
        for entry in group:
            kept = _previous_slot(entry, file_name, previous_names, resolved, slots, conflict)
            if kept is None:
                unassigned.append(entry)
            else:
                slots[kept] = entry

        counter = 1
        for entry in unassigned:
            candidate = append_conflict(file_name, counter)
            while candidate in slots or candidate in resolved:
                counter += 1
                candidate = append_conflict(file_name, counter)
            slots[candidate] = entry
            counter += 1

        for real_file_name, entry in slots.items():
            resolved[real_file_name] = entry
            if conflict is not None:
                conflict.conflicting.append(
                    ConflictEntry(realFileName=real_file_name, id=entry.id, title=entry.title)
                )

    return resolved


def _previous_slot(
    entry: LogicalFile,
    file_name: str,
    previous_names: Mapping[str, list[str]],
    resolved: DirectoryFileMap,
    slots: Mapping[str, LogicalFile],
    conflict: ConflictFile | None,
) -> str | None:
    for real_file_name in previous_names.get(entry.id, []):
        if strip_conflict(real_file_name) != file_name:
            continue
        # The bare name belongs to the conflict listing when there is one.
        if real_file_name == file_name and conflict is not None:
            continue
        if real_file_name in slots or real_file_name in resolved:
            continue
        return real_file_name
    return None


__all__ = ["solve_conflicts"]
