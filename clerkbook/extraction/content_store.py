"""Storage for uploaded file bytes, addressed by opaque keys."""

import re
from pathlib import Path
from typing import Protocol

import structlog

from clerkbook.extraction.errors import ContentNotFoundError


logger = structlog.get_logger()

MAX_FILENAME_CHARS = 200
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(name: str) -> str:
    """Replace characters outside ``[A-Za-z0-9._-]`` and cap the length.

    Args:
        name: Client-supplied filename (any directory part is dropped).

    Returns:
        A filename safe to use as a single path segment.
    """
    base = re.split(r"[\\/]", name)[-1]
    safe = _UNSAFE_CHARS.sub("_", base)[:MAX_FILENAME_CHARS].strip(".")
    return safe or "file"


class ContentStore(Protocol):
    """Blob storage for uploaded files."""

    def save(self, owner_id: str, content_hash: str, filename: str, content: bytes) -> str:
        """Store bytes and return their key."""
        ...

    def read(self, key: str) -> bytes:
        """Read stored bytes.

        Raises:
            ContentNotFoundError: If the key is unknown.
        """
        ...

    def delete(self, key: str) -> None:
        """Remove stored bytes if present."""
        ...


class LocalContentStore:
    """``ContentStore`` on the local filesystem.

    Keys have the form ``<owner>/<content hash>/<filename>``, so saving the
    same upload twice writes the same file.
    """

    def __init__(self, root: Path | str) -> None:
        """Initialize the store.

        Args:
            root: Directory holding all stored files (created on demand).
        """
        self._root = Path(root).resolve()
        self._log = logger.bind(component="content_store")

    @property
    def root(self) -> Path:
        """Get the storage root directory."""
        return self._root

    def save(self, owner_id: str, content_hash: str, filename: str, content: bytes) -> str:
        """Write bytes under a key derived from owner, hash and filename.

        Args:
            owner_id: Upload owner.
            content_hash: SHA-256 hex digest of ``content``.
            filename: Client-supplied filename.
            content: File bytes.

        Returns:
            The storage key.
        """
        segments = (owner_id, content_hash, filename)
        key = "/".join(sanitize_filename(segment) for segment in segments)
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + ".tmp")
        tmp_path.write_bytes(content)
        tmp_path.replace(path)
        self._log.info("content_saved", key=key, bytes=len(content))
        return key

    def read(self, key: str) -> bytes:
        """Read bytes for a key.

        Raises:
            ContentNotFoundError: If the key is unknown or escapes the root.
        """
        try:
            return self._resolve(key).read_bytes()
        except (FileNotFoundError, IsADirectoryError, ValueError) as e:
            self._log.warning("content_missing", key=key)
            raise ContentNotFoundError(key) from e

    def delete(self, key: str) -> None:
        """Remove bytes for a key if present."""
        try:
            self._resolve(key).unlink(missing_ok=True)
        except ValueError:
            self._log.warning("content_delete_rejected", key=key)

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root):
            msg = f"Content key escapes storage root: {key}"
            raise ValueError(msg)
        return path
