"""File storage on the local filesystem.

Stored names are ``<base>_<timestamp><ext>`` where the timestamp is epoch
microseconds. Files are created exclusively, so a name is never reused even
when two uploads of the same file land in the same microsecond.
"""
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiofiles

from filevault.errors import NotFound, StorageFailure

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_MAX_NAME_ATTEMPTS = 20


class FileStorageService:
    """Handles file read/write under a single storage root."""

    def __init__(self, root: str | Path, url_prefix: str = "/files"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def _ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create storage root {self.root}: {e}")
            raise StorageFailure("Storage unavailable") from e

    def _path_for(self, stored_name: str) -> Path:
        """Map a stored name to its path, refusing anything outside the root."""
        if (
            not stored_name
            or stored_name in (".", "..")
            or "/" in stored_name
            or "\\" in stored_name
            or "\x00" in stored_name
        ):
            raise NotFound("File not found")
        return self.root / stored_name

    @staticmethod
    def make_stored_name(original_name: str, timestamp: int | None = None) -> str:
        """Build ``<base>_<timestamp><ext>`` from an uploaded filename."""
        clean = Path(original_name.replace("\\", "/")).name or "unnamed"
        suffix = Path(clean).suffix
        base = clean[: -len(suffix)] if suffix else clean
        if timestamp is None:
            timestamp = time.time_ns() // 1000
        return f"{base or 'unnamed'}_{timestamp}{suffix}"

    async def store(self, data: bytes, original_name: str) -> str:
        """Write bytes under a fresh stored name and return that name."""
        self._ensure_root()
        last_ts = 0
        for _ in range(_MAX_NAME_ATTEMPTS):
            ts = max(time.time_ns() // 1000, last_ts + 1)
            last_ts = ts
            stored_name = self.make_stored_name(original_name, ts)
            path = self.root / stored_name
            try:
                async with aiofiles.open(path, "xb") as f:
                    await f.write(data)
            except FileExistsError:
                logger.debug(f"Stored name {stored_name} taken, retrying")
                continue
            except OSError as e:
                logger.error(f"Failed to write {stored_name}: {e}")
                raise StorageFailure("Storage unavailable") from e
            logger.info(f"Stored {len(data)} bytes as {stored_name}")
            return stored_name
        raise StorageFailure("Could not allocate a unique stored name")

    def resolve_url(self, stored_name: str) -> str:
        return f"{self.url_prefix}/{stored_name}"

    def exists(self, stored_name: str) -> bool:
        try:
            return self._path_for(stored_name).is_file()
        except NotFound:
            return False

    def size_of(self, stored_name: str) -> int:
        path = self._require(stored_name)
        return path.stat().st_size

    def modified_at(self, stored_name: str) -> datetime:
        path = self._require(stored_name)
        return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)

    def _require(self, stored_name: str) -> Path:
        path = self._path_for(stored_name)
        if not path.is_file():
            raise NotFound("File not found")
        return path

    async def read_bytes(self, stored_name: str) -> bytes:
        """Read a stored object fully."""
        path = self._require(stored_name)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise StorageFailure("Error reading file") from e

    def open_for_read(self, stored_name: str, chunk_size: int = _CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Return an async iterator over the stored bytes.

        Existence is checked here, before any byte is produced, so callers can
        turn a missing object into a 404 before response headers go out.
        """
        path = self._require(stored_name)
        return self._iter_chunks(path, chunk_size)

    @staticmethod
    async def _iter_chunks(path: Path, chunk_size: int) -> AsyncIterator[bytes]:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    async def delete(self, stored_name: str) -> bool:
        """Delete a stored object. Returns False when it was not there."""
        try:
            path = self._path_for(stored_name)
        except NotFound:
            return False
        if not path.is_file():
            logger.info(f"Delete requested for missing object {stored_name}")
            return False
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageFailure("Error deleting file") from e
        logger.info(f"Deleted stored object {stored_name}")
        return True
