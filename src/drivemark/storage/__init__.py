"""Path-scoped file storage used by the download and transform pipelines."""

from __future__ import annotations

import hashlib
import json
import shutil
from pathlib import Path
from typing import IO, Any

from .errors import StorageError


class FileStore:
    """Scoped view over a directory on the local filesystem.

    Every path handed to a store is relative to its root. A store also tracks a
    virtual path (``/`` for the content root, ``/docs/`` for a sub-store) used
    when building links and tree entries.

    The store performs no locking. Callers rely on the scheduler running at
    most one job per drive.
    """

    def __init__(self, root: Path, virtual_path: str = "/") -> None:
        self._root = Path(root).expanduser()
        if not virtual_path.endswith("/"):
            virtual_path += "/"
        self._virtual_path = virtual_path

    # ------------------------------------------------------------------ #
    # Paths                                                              #
    # ------------------------------------------------------------------ #

    @property
    def real_path(self) -> Path:
        """Return the directory backing this store."""
        return self._root

    @property
    def virtual_path(self) -> str:
        """Return the store location relative to the content root."""
        return self._virtual_path

    def resolve(self, path: str = "") -> Path:
        """Map a store-relative path onto the filesystem.

        Raises:
            StorageError: If the path escapes the store root.
        """
        relative = path.lstrip("/")
        if not relative:
            return self._root
        candidate = self._root / relative
        if ".." in Path(relative).parts:
            raise StorageError(f"Path escapes store root: {path}")
        return candidate

    def get_sub_store(self, relative: str) -> "FileStore":
        """Return a store scoped to ``relative``."""
        relative = relative.strip("/")
        return FileStore(self.resolve(relative), self._virtual_path + relative + "/")

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def exists(self, path: str) -> bool:
        return self.resolve(path).exists()

    def is_directory(self, path: str) -> bool:
        return self.resolve(path).is_dir()

    def list(self, path: str = "") -> list[str]:
        """Return sorted entry names of a directory, or ``[]`` when missing."""
        target = self.resolve(path)
        if not target.is_dir():
            return []
        return sorted(entry.name for entry in target.iterdir())

    def md5(self, path: str) -> str | None:
        """Return the hex MD5 digest of a file, or ``None`` when missing."""
        target = self.resolve(path)
        if not target.is_file():
            return None
        digest = hashlib.md5()
        with target.open("rb") as handle:
            for chunk in iter(lambda: handle.read(65536), b""):
                digest.update(chunk)
        return digest.hexdigest()

    # ------------------------------------------------------------------ #
    # Reads                                                              #
    # ------------------------------------------------------------------ #

    def read_bytes(self, path: str) -> bytes:
        try:
            return self.resolve(path).read_bytes()
        except OSError as exc:
            raise StorageError(f"Unable to read {self._virtual_path}{path}: {exc}") from exc

    def read_text(self, path: str) -> str:
        return self.read_bytes(path).decode("utf-8")

    def read_json(self, path: str) -> Any:
        """Return decoded JSON, or ``None`` when the file does not exist.

        Raises:
            StorageError: If the file exists but is not valid JSON.
        """
        target = self.resolve(path)
        if not target.is_file():
            return None
        try:
            return json.loads(target.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StorageError(f"Invalid JSON in {self._virtual_path}{path}: {exc}") from exc

    def open_read_stream(self, path: str) -> IO[bytes]:
        try:
            return self.resolve(path).open("rb")
        except OSError as exc:
            raise StorageError(f"Unable to open {self._virtual_path}{path}: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Writes                                                             #
    # ------------------------------------------------------------------ #

    def mkdir(self, path: str = "") -> None:
        self.resolve(path).mkdir(parents=True, exist_ok=True)

    def write_bytes(self, path: str, data: bytes) -> None:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def write_text(self, path: str, text: str) -> None:
        self.write_bytes(path, text.encode("utf-8"))

    def write_json(self, path: str, payload: Any) -> None:
        self.write_text(path, json.dumps(payload, indent=2, ensure_ascii=False))

    def open_write_stream(self, path: str) -> IO[bytes]:
        target = self.resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        return target.open("wb")

    def remove(self, path: str) -> None:
        """Delete a file or directory tree. Missing paths are ignored."""
        target = self.resolve(path)
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        elif target.exists() or target.is_symlink():
            target.unlink()


__all__ = ["FileStore", "StorageError"]
