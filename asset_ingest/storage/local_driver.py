"""Local filesystem content store."""

import fcntl
import hashlib
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from datetime import datetime
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Dict, Iterator, List
from urllib.parse import unquote

import aiofiles

from asset_ingest.errors import PathOccupied, PathTraversal, StorageIOError
from asset_ingest.storage.base import BaseStorageDriver, FileInfo, StoredFile

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024


class LocalStorageDriver(BaseStorageDriver):
    """Local filesystem storage driver.

    Revision files are write-once: ``store`` publishes a fully written temp
    file with a hard link, which fails if the target exists, so a stored
    revision is never overwritten in place. The only exception is
    ``replace=True``, used under ``revision_lock`` for files left behind
    by an upload that died before committing.

    Configuration:
        base_path: Path to the storage root

    Example:
        >>> driver = LocalStorageDriver({"base_path": "/data/assets"})
        >>> stored = await driver.store(b"...", "sprites/player/v1/player.png", "image/png")
    """

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        # Resolve once so containment checks compare canonical paths
        self.base_path = Path(config["base_path"]).resolve()

    def _validate_path(self, file_path: str) -> Path:
        """Validate path is within base_path (prevent directory traversal).

        The raw path is sanitized first (``..`` stripped, slashes collapsed,
        leading slashes removed), then percent-escapes are decoded and the
        result is resolved. Anything that still lands outside the root, such
        as ``%2e%2e/`` or ``%2fetc``, is rejected.

        Args:
            file_path: Relative file path

        Returns:
            Absolute Path object

        Raises:
            PathTraversal: If path tries to escape base_path
        """
        sanitized = file_path.replace("\\", "/").replace("..", "")
        sanitized = re.sub(r"/+", "/", sanitized).lstrip("/")
        decoded = unquote(sanitized)

        if "\x00" in decoded:
            raise PathTraversal(f"Path {file_path!r} contains a NUL byte")

        full_path = (self.base_path / decoded).resolve()

        # Ensure path is within base_path
        try:
            full_path.relative_to(self.base_path)
        except ValueError:
            raise PathTraversal(f"Path {file_path!r} attempts to escape base directory")

        return full_path

    def _relative(self, full_path: Path) -> str:
        return full_path.relative_to(self.base_path).as_posix()

    async def _hash_file(self, full_path: Path) -> str:
        digest = hashlib.sha256()
        async with aiofiles.open(full_path, "rb") as f:
            while True:
                chunk = await f.read(HASH_CHUNK_SIZE)
                if not chunk:
                    break
                digest.update(chunk)
        return digest.hexdigest()

    async def store(
        self,
        content: bytes,
        relative_path: str,
        mime_type: str = "application/octet-stream",
        replace: bool = False,
    ) -> StoredFile:
        """Store bytes at a relative path.

        Args:
            content: Full file content
            relative_path: Destination path
            mime_type: MIME type recorded in the result
            replace: Atomically overwrite an existing file instead of refusing

        Returns:
            StoredFile with path, size, hash, mime_type and created flag
        """
        full_path = self._validate_path(relative_path)
        file_hash = hashlib.sha256(content).hexdigest()

        try:
            # Create parent directories if they don't exist
            full_path.parent.mkdir(parents=True, exist_ok=True)

            fd, tmp_name = tempfile.mkstemp(dir=full_path.parent, prefix=f".{full_path.name}.", suffix=".tmp")
            os.close(fd)
            try:
                async with aiofiles.open(tmp_name, "wb") as f:
                    await f.write(content)
                if replace:
                    os.replace(tmp_name, full_path)
                    created = True
                else:
                    try:
                        os.link(tmp_name, full_path)
                        created = True
                    except FileExistsError:
                        created = False
            finally:
                try:
                    os.unlink(tmp_name)
                except FileNotFoundError:
                    pass

            if not created:
                existing_hash = await self._hash_file(full_path)
        except OSError as e:
            raise StorageIOError(f"Failed to store {relative_path}: {e}") from e

        if not created and existing_hash != file_hash:
            raise PathOccupied(f"Path {relative_path} already holds different content")

        stored_path = self._relative(full_path)
        if replace:
            logger.warning(f"File replaced: {stored_path} ({len(content)} bytes, {file_hash})")
        elif created:
            logger.info(f"File stored: {stored_path} ({len(content)} bytes, {file_hash})")
        else:
            logger.info(f"File already present with same content: {stored_path} ({file_hash})")

        return StoredFile(
            {
                "path": stored_path,
                "size": len(content),
                "hash": file_hash,
                "mime_type": mime_type,
                "created": created,
            }
        )

    @contextmanager
    def revision_lock(self, relative_path: str) -> Iterator[None]:
        """Hold an exclusive ``flock`` on ``.<name>.lock`` beside the revision file.

        The kernel drops the lock when its holder dies, so a file found
        without a committed revision while the lock is held was left by an
        interrupted upload, never by one still in flight.
        """
        full_path = self._validate_path(relative_path)
        lock_path = full_path.parent / f".{full_path.name}.lock"
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(lock_path, "a+b")
        except OSError as e:
            raise StorageIOError(f"Failed to open lock for {relative_path}: {e}") from e

        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            lock_file.close()

    async def read(self, relative_path: str) -> bytes:
        """Read file from local filesystem.

        Args:
            relative_path: Relative path to file

        Returns:
            File content as bytes
        """
        full_path = self._validate_path(relative_path)

        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {relative_path}")

        try:
            async with aiofiles.open(full_path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise StorageIOError(f"Failed to read {relative_path}: {e}") from e

    async def delete(self, relative_path: str) -> None:
        """Delete file from local filesystem."""
        full_path = self._validate_path(relative_path)

        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {relative_path}")

        try:
            full_path.unlink()
        except OSError as e:
            raise StorageIOError(f"Failed to delete {relative_path}: {e}") from e

        logger.info(f"File deleted: {relative_path}")

    async def exists(self, relative_path: str) -> bool:
        """Check if a file exists at the path."""
        return self._validate_path(relative_path).is_file()

    async def ensure_directory(self, relative_path: str) -> None:
        """Create a directory (and parents) below the root."""
        full_path = self._validate_path(relative_path)
        try:
            full_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError(f"Failed to create directory {relative_path}: {e}") from e

    async def list_files(self, path: str = "", pattern: str = "*") -> List[FileInfo]:
        """List files in local directory.

        Args:
            path: Relative path from base_path
            pattern: Glob pattern (default: "*" for all files)

        Returns:
            List of FileInfo dicts
        """
        search_path = self._validate_path(path) if path else self.base_path

        if not search_path.exists():
            return []

        files = []
        for root, _, filenames in os.walk(search_path):
            for filename in filenames:
                # Skip in-flight temp files and revision locks
                if filename.startswith(".") and filename.endswith((".tmp", ".lock")):
                    continue
                if fnmatch(filename, pattern):
                    full_path = Path(root) / filename
                    stat = full_path.stat()
                    files.append(
                        FileInfo(
                            {
                                "name": filename,
                                "path": self._relative(full_path),
                                "size_bytes": stat.st_size,
                                "modified_at": datetime.fromtimestamp(stat.st_mtime),
                            }
                        )
                    )

        return files

    async def get_file_info(self, relative_path: str) -> FileInfo:
        """Get file metadata.

        Args:
            relative_path: Path to file

        Returns:
            FileInfo with metadata
        """
        full_path = self._validate_path(relative_path)

        if not full_path.is_file():
            raise FileNotFoundError(f"File not found: {relative_path}")

        stat = full_path.stat()
        return FileInfo(
            {
                "name": full_path.name,
                "path": self._relative(full_path),
                "size_bytes": stat.st_size,
                "modified_at": datetime.fromtimestamp(stat.st_mtime),
            }
        )

    async def test_connection(self) -> bool:
        """Test if base path exists and is writable.

        Returns:
            True if base_path exists and is writable
        """
        try:
            return self.base_path.is_dir() and os.access(self.base_path, os.W_OK)
        except OSError:
            return False
