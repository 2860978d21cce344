"""Filesystem record store: one JSON file per key.

Keys are percent-encoded into filenames so arbitrary cache keys
(``astronauts:all``, ``iss/now``) map to safe, reversible file names.
Writes go to a uniquely named temporary sibling file first and are moved
into place with ``os.replace`` so a crash never leaves a half-written
record behind.  The ``*_async`` methods run the same calls in a worker
thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
import errno
import os
import uuid
from pathlib import Path
from urllib.parse import quote, unquote

from spaceboard.interfaces.storage_backend import IStorageBackend
from spaceboard.utils.errors import StorageError, StorageQuotaError

_QUOTA_ERRNOS = {errno.ENOSPC, errno.EDQUOT}
_TMP_SUFFIX = ".tmp"


class FilesystemStorageBackend(IStorageBackend):
    """Record store backed by a directory of ``<key>.json`` files.

    Parameters
    ----------
    directory:
        Where records live.  Created lazily on first write.
    suffix:
        File suffix for records.
    """

    blocking_io = True

    def __init__(self, directory: str | Path, suffix: str = ".json") -> None:
        self._dir = Path(directory)
        self._suffix = suffix

    @property
    def directory(self) -> Path:
        return self._dir

    def _path(self, key: str) -> Path:
        return self._dir / f"{quote(key, safe='')}{self._suffix}"

    def read(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}", provider_name="filesystem") from exc

    def write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = path.with_name(f"{path.name}.{uuid.uuid4().hex}{_TMP_SUFFIX}")
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            if exc.errno in _QUOTA_ERRNOS:
                raise StorageQuotaError(
                    f"No space left writing {path}", provider_name="filesystem"
                ) from exc
            raise StorageError(f"Failed to write {path}: {exc}", provider_name="filesystem") from exc

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete {path}: {exc}", provider_name="filesystem") from exc

    def keys(self) -> list[str]:
        if not self._dir.is_dir():
            return []
        try:
            names = [p.name for p in self._dir.iterdir() if p.is_file()]
        except OSError as exc:
            raise StorageError(
                f"Failed to list {self._dir}: {exc}", provider_name="filesystem"
            ) from exc
        return [
            unquote(name[: -len(self._suffix)])
            for name in names
            if name.endswith(self._suffix)
        ]

    def size_of(self, key: str) -> int:
        try:
            return self._path(key).stat().st_size
        except OSError:
            return 0

    async def read_async(self, key: str) -> str | None:
        return await asyncio.to_thread(self.read, key)

    async def write_async(self, key: str, value: str) -> None:
        await asyncio.to_thread(self.write, key, value)

    async def delete_async(self, key: str) -> bool:
        return await asyncio.to_thread(self.delete, key)

    async def keys_async(self) -> list[str]:
        return await asyncio.to_thread(self.keys)

    async def clear_async(self) -> int:
        return await asyncio.to_thread(self.clear)
