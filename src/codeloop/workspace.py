"""
Workspace - the isolated, quota-bounded file store tools operate on.

Everything lives in memory. Nothing a tool does can reach the host
filesystem: paths are normalized so that leading separators and leading
".." segments are stripped before lookup, and anything that still
escapes the root is rejected.

Two quotas are enforced on every write:
- a per-file maximum
- an aggregate maximum over all files

A rejected write leaves the workspace unchanged.

Binary files are tracked explicitly. A file is binary if it was written
as bytes or if its extension is a known image format; binary files read
back as data: URLs and serialize with a sentinel prefix so snapshots
stay a flat map of strings.
"""

from __future__ import annotations

import base64
import logging
import posixpath
import threading
from dataclasses import dataclass
from typing import Any

from codeloop.config import WorkspaceConfig
from codeloop.errors import PathTraversalRejected, QuotaExceededError, WorkspaceError, WorkspaceFileNotFound

logger = logging.getLogger(__name__)

BINARY_SNAPSHOT_PREFIX = "__BINARY__:"
TEXT_SNAPSHOT_PREFIX = "__TEXT__:"

BINARY_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".ico", ".avif",
})

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".webp": "image/webp",
    ".ico": "image/x-icon",
    ".avif": "image/avif",
}


def normalize_path(path: str) -> str:
    """
    Normalize a user-supplied path to a root-relative POSIX path.

    Backslashes become slashes, leading separators and leading ".."
    segments are dropped, and "." / inner ".." segments are collapsed.

    Raises:
        PathTraversalRejected: if the path is empty or still escapes the root
    """
    if "\x00" in path:
        raise PathTraversalRejected(f"Invalid path: {path!r}")

    cleaned = posixpath.normpath(path.replace("\\", "/"))
    cleaned = cleaned.lstrip("/")
    while cleaned == ".." or cleaned.startswith("../"):
        cleaned = cleaned[3:]
    cleaned = cleaned.lstrip("/")

    if cleaned in ("", "."):
        raise PathTraversalRejected(f"Path does not name a file in the workspace: {path!r}")
    if ".." in cleaned.split("/"):
        raise PathTraversalRejected(f"Path escapes the workspace: {path!r}")
    return cleaned


def mime_type_for(path: str) -> str:
    """MIME type used for data: URLs of binary entries."""
    return _MIME_TYPES.get(posixpath.splitext(path)[1].lower(), "image/png")


@dataclass
class FileInfo:
    """A listed workspace entry. Directories have size 0."""
    name: str
    path: str
    size: int
    is_directory: bool
    extension: str | None = None
    is_binary: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "is_directory": self.is_directory,
            "extension": self.extension,
            "is_binary": self.is_binary,
        }


class Workspace:
    """
    In-memory file store for one conversation or project.

    Mutations are serialized by an internal lock, so the tool calls of a
    parallel batch cannot interleave one write's quota check with another
    write.
    """

    def __init__(self, config: WorkspaceConfig | None = None) -> None:
        self.config = config or WorkspaceConfig()
        self._files: dict[str, bytes] = {}
        self._binary: set[str] = set()
        self._dirs: set[str] = set()
        self._lock = threading.RLock()

    @property
    def max_file_bytes(self) -> int:
        return self.config.max_file_bytes

    @property
    def max_total_bytes(self) -> int:
        return self.config.max_total_bytes

    def write(self, path: str, content: str | bytes) -> FileInfo:
        """
        Create or overwrite a file.

        Text is stored as UTF-8. Bytes mark the file as binary. Text sent
        to a binary-extension path is decoded if it is a base64 data: URL.

        Raises:
            QuotaExceededError: if either quota would be exceeded
            PathTraversalRejected: if the path cannot be normalized
        """
        normalized = normalize_path(path)
        is_binary = isinstance(content, (bytes, bytearray))
        if is_binary:
            data = bytes(content)
        elif self._has_binary_extension(normalized) and content.startswith("data:") and ";base64," in content:
            data = base64.b64decode(content.split(";base64,", 1)[1])
            is_binary = True
        else:
            data = content.encode("utf-8")

        size = len(data)
        with self._lock:
            if normalized in self._dirs:
                raise WorkspaceError(f"Cannot write {normalized}: it is a directory")
            if size > self.config.max_file_bytes:
                raise QuotaExceededError(
                    f"File too large: {size} bytes (max {self.config.max_file_bytes} bytes)."
                )
            current = self._total_size() - len(self._files.get(normalized, b""))
            if current + size > self.config.max_total_bytes:
                raise QuotaExceededError(
                    f"Workspace full: writing {normalized} would exceed {self.config.max_total_bytes} bytes."
                )

            self._make_parents(normalized)
            self._files[normalized] = data
            if is_binary:
                self._binary.add(normalized)
            else:
                self._binary.discard(normalized)

        logger.debug(f"Wrote {normalized} ({size} bytes, binary={is_binary})")
        return self._info(normalized)

    def read(self, path: str) -> str:
        """Read a file: UTF-8 text, or a data: URL for binary entries."""
        normalized = normalize_path(path)
        with self._lock:
            data = self._get(normalized)
            if self.is_binary(normalized):
                encoded = base64.b64encode(data).decode("ascii")
                return f"data:{mime_type_for(normalized)};base64,{encoded}"
            return data.decode("utf-8", errors="replace")

    def read_bytes(self, path: str) -> bytes:
        """Read a file's raw bytes."""
        normalized = normalize_path(path)
        with self._lock:
            return self._get(normalized)

    def delete(self, path: str) -> None:
        """Remove a file. Parent directories are kept."""
        normalized = normalize_path(path)
        with self._lock:
            if normalized not in self._files:
                raise WorkspaceFileNotFound(f"Can't delete what doesn't exist: {normalized}")
            del self._files[normalized]
            self._binary.discard(normalized)
        logger.debug(f"Deleted {normalized}")

    def exists(self, path: str) -> bool:
        try:
            normalized = normalize_path(path)
        except PathTraversalRejected:
            return False
        with self._lock:
            return normalized in self._files or normalized in self._dirs

    def is_binary(self, path: str) -> bool:
        normalized = normalize_path(path)
        return normalized in self._binary or self._has_binary_extension(normalized)

    def list(self, directory: str = "") -> list[FileInfo]:
        """
        List every entry below directory (recursively), sorted by path.

        An unknown directory lists as empty.
        """
        with self._lock:
            if directory.strip("/\\. "):
                prefix = normalize_path(directory)
                if prefix not in self._dirs:
                    return []
                prefix += "/"
            else:
                prefix = ""

            entries = [
                FileInfo(name=posixpath.basename(d), path=d, size=0, is_directory=True)
                for d in self._dirs
                if d.startswith(prefix)
            ]
            entries.extend(self._info(p) for p in self._files if p.startswith(prefix))
        return sorted(entries, key=lambda e: e.path)

    def reset(self) -> None:
        """Drop every file and directory."""
        with self._lock:
            self._files.clear()
            self._binary.clear()
            self._dirs.clear()
        logger.info("Workspace reset")

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "file_count": len(self._files),
                "total_bytes": self._total_size(),
                "max_file_bytes": self.config.max_file_bytes,
                "max_total_bytes": self.config.max_total_bytes,
            }

    def file_paths(self) -> list[str]:
        with self._lock:
            return sorted(self._files)

    # =========================================================================
    # Snapshots
    # =========================================================================

    def serialize(self, path: str) -> str:
        """
        Raw text, or the binary prefix plus base64 for binary entries.

        Text that itself starts with either snapshot prefix is escaped with
        TEXT_SNAPSHOT_PREFIX so it reads back as the same text.
        """
        normalized = normalize_path(path)
        with self._lock:
            data = self._get(normalized)
            if self.is_binary(normalized):
                return BINARY_SNAPSHOT_PREFIX + base64.b64encode(data).decode("ascii")
            text = data.decode("utf-8")
            if text.startswith((BINARY_SNAPSHOT_PREFIX, TEXT_SNAPSHOT_PREFIX)):
                return TEXT_SNAPSHOT_PREFIX + text
            return text

    def write_from_serialized(self, path: str, value: str) -> FileInfo:
        """Inverse of serialize()."""
        if value.startswith(TEXT_SNAPSHOT_PREFIX):
            return self.write(path, value[len(TEXT_SNAPSHOT_PREFIX):])
        if value.startswith(BINARY_SNAPSHOT_PREFIX):
            return self.write(path, base64.b64decode(value[len(BINARY_SNAPSHOT_PREFIX):]))
        return self.write(path, value)

    def export_snapshot(self) -> dict[str, str]:
        """Flat {path: text-or-sentinel+base64} map of every file."""
        with self._lock:
            return {path: self.serialize(path) for path in sorted(self._files)}

    def import_snapshot(self, snapshot: dict[str, str]) -> None:
        """Write every entry of a snapshot into this workspace."""
        for path, value in snapshot.items():
            if isinstance(value, str):
                self.write_from_serialized(path, value)
            else:
                logger.warning(f"Skipping snapshot entry {path}: not a string")

    # =========================================================================
    # Internals
    # =========================================================================

    def _get(self, normalized: str) -> bytes:
        try:
            return self._files[normalized]
        except KeyError:
            raise WorkspaceFileNotFound(f"File not found: {normalized}") from None

    def _info(self, normalized: str) -> FileInfo:
        extension = posixpath.splitext(normalized)[1]
        return FileInfo(
            name=posixpath.basename(normalized),
            path=normalized,
            size=len(self._files[normalized]),
            is_directory=False,
            extension=extension or None,
            is_binary=self.is_binary(normalized),
        )

    def _make_parents(self, normalized: str) -> None:
        parents = []
        parent = posixpath.dirname(normalized)
        while parent:
            if parent in self._files:
                raise WorkspaceError(f"Cannot create directory {parent}: a file has that name")
            parents.append(parent)
            parent = posixpath.dirname(parent)
        self._dirs.update(parents)

    def _total_size(self) -> int:
        return sum(len(data) for data in self._files.values())

    @staticmethod
    def _has_binary_extension(normalized: str) -> bool:
        return posixpath.splitext(normalized)[1].lower() in BINARY_EXTENSIONS
