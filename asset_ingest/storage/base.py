"""Base storage driver interface."""

from abc import ABC, abstractmethod
from contextlib import nullcontext
from datetime import datetime
from typing import Any, ContextManager, Dict, List


class FileInfo(Dict[str, Any]):
    """File information dict with typed access."""

    @property
    def name(self) -> str:
        return self["name"]

    @property
    def path(self) -> str:
        return self["path"]

    @property
    def size_bytes(self) -> int:
        return self["size_bytes"]

    @property
    def modified_at(self) -> datetime:
        return self["modified_at"]


class StoredFile(Dict[str, Any]):
    """Result of ``store``: what the caller persists in the registry."""

    @property
    def path(self) -> str:
        return self["path"]

    @property
    def size(self) -> int:
        return self["size"]

    @property
    def hash(self) -> str:
        return self["hash"]

    @property
    def mime_type(self) -> str:
        return self["mime_type"]

    @property
    def created(self) -> bool:
        """False when identical bytes were already present at the path."""
        return self["created"]


class BaseStorageDriver(ABC):
    """Base class for content storage drivers.

    Every path argument is relative to the driver's storage root. Drivers
    must reject paths that resolve outside the root with ``PathTraversal``
    before touching the filesystem.
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize storage driver with configuration.

        Args:
            config: Storage configuration dict with provider-specific settings
        """
        self.config = config

    @abstractmethod
    async def store(
        self,
        content: bytes,
        relative_path: str,
        mime_type: str = "application/octet-stream",
        replace: bool = False,
    ) -> StoredFile:
        """Write ``content`` at ``relative_path`` and hash it.

        With ``replace=False`` an existing file is never overwritten.
        ``replace=True`` swaps it atomically; callers only do that for files
        no committed revision references, while holding ``revision_lock``.

        Returns:
            StoredFile with path, size, hash (SHA-256 hex), mime_type, created

        Raises:
            PathTraversal: If the path escapes the storage root
            PathOccupied: If different bytes already live at the path
            StorageIOError: If the write fails
        """
        pass

    def revision_lock(self, relative_path: str) -> ContextManager[None]:
        """Exclusive lock on one revision path, held from store until commit.

        The default is a no-op for drivers without concurrent writers.
        """
        return nullcontext()

    @abstractmethod
    async def read(self, relative_path: str) -> bytes:
        """Return the bytes stored at ``relative_path``.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, relative_path: str) -> None:
        """Delete the file at ``relative_path``."""
        pass

    @abstractmethod
    async def exists(self, relative_path: str) -> bool:
        """Check whether a file exists at ``relative_path``."""
        pass

    @abstractmethod
    async def list_files(self, path: str = "", pattern: str = "*") -> List[FileInfo]:
        """List files below ``path`` matching a glob pattern."""
        pass

    @abstractmethod
    async def get_file_info(self, relative_path: str) -> FileInfo:
        """Get file metadata without reading it."""
        pass

    @abstractmethod
    async def test_connection(self) -> bool:
        """Test if storage is accessible."""
        pass
