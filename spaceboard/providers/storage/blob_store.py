"""Durable asset byte stores with derived ephemeral handles.

``FilesystemBlobStore``
    Server-side: bytes are files under a directory, the handle is the file
    path, and liveness is a plain existence probe.  File I/O runs in a
    worker thread (``asyncio.to_thread``) because assets can be megabytes.

``MemoryBlobStore``
    Browser-style: bytes are persisted base64-encoded in a record store
    (the localStorage equivalent) and handles are process-local ``blob:``
    references minted from those bytes.  Handles live only as long as this
    object and are never persisted; after a restart they are simply
    re-minted from the durable records.
"""

from __future__ import annotations

import asyncio
import base64
import json
import uuid
from pathlib import Path

from spaceboard.interfaces.storage_backend import IBlobStore, IStorageBackend
from spaceboard.providers.storage.memory_storage import MemoryStorageBackend
from spaceboard.utils.errors import StorageError

_BLOB_SCHEME = "blob:spaceboard/"
_MEMORY_SCHEME = "memory://"


class FilesystemBlobStore(IBlobStore):
    """Asset bytes stored as files; handles are file paths."""

    def __init__(self, directory: str | Path) -> None:
        self._dir = Path(directory)

    def _path(self, filename: str) -> Path:
        return self._dir / filename

    def _write_sync(self, filename: str, data: bytes) -> str:
        self._dir.mkdir(parents=True, exist_ok=True)
        path = self._path(filename)
        path.write_bytes(data)
        return str(path)

    async def write(self, filename: str, data: bytes, mime_type: str) -> str:
        try:
            return await asyncio.to_thread(self._write_sync, filename, data)
        except OSError as exc:
            raise StorageError(
                f"Failed to write asset {filename}: {exc}", provider_name="filesystem"
            ) from exc

    async def read(self, filename: str) -> bytes | None:
        path = self._path(filename)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(
                f"Failed to read asset {filename}: {exc}", provider_name="filesystem"
            ) from exc

    def exists(self, filename: str) -> bool:
        return self._path(filename).is_file()

    async def delete(self, filename: str) -> None:
        await asyncio.to_thread(self._path(filename).unlink, missing_ok=True)

    def _clear_sync(self) -> None:
        if not self._dir.is_dir():
            return
        for path in self._dir.iterdir():
            if path.is_file():
                path.unlink(missing_ok=True)

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear_sync)

    async def open_handle(self, filename: str) -> str | None:
        return str(self._path(filename)) if self.exists(filename) else None

    async def is_live(self, handle: str) -> bool:
        return Path(handle).is_file()

    def release(self, handle: str) -> None:
        # File paths stay valid until the file is deleted.
        return None


class MemoryBlobStore(IBlobStore):
    """Asset bytes persisted as base64 records; handles are ``blob:`` refs.

    Parameters
    ----------
    records:
        Durable record store for the encoded bytes.  An unbounded private
        in-memory store when omitted.
    """

    def __init__(self, records: IStorageBackend | None = None) -> None:
        self._records = records or MemoryStorageBackend(prefix="asset_data_")
        # handle -> filename; the in-process equivalent of object URLs
        self._handles: dict[str, str] = {}

    def _decode(self, filename: str) -> tuple[bytes, str] | None:
        raw = self._records.read(filename)
        if raw is None:
            return None
        try:
            record = json.loads(raw)
            return base64.b64decode(record["data"]), record["mime_type"]
        except (ValueError, KeyError, TypeError) as exc:
            raise StorageError(
                f"Corrupt asset record {filename}: {exc}", provider_name="memory"
            ) from exc

    async def write(self, filename: str, data: bytes, mime_type: str) -> str:
        record = {"data": base64.b64encode(data).decode("ascii"), "mime_type": mime_type}
        self._records.write(filename, json.dumps(record))
        return f"{_MEMORY_SCHEME}{filename}"

    async def read(self, filename: str) -> bytes | None:
        decoded = self._decode(filename)
        return decoded[0] if decoded else None

    def exists(self, filename: str) -> bool:
        return self._records.read(filename) is not None

    def resolve(self, handle: str) -> tuple[bytes, str] | None:
        """Return ``(bytes, mime_type)`` behind a live handle."""
        filename = self._handles.get(handle)
        return self._decode(filename) if filename else None

    async def delete(self, filename: str) -> None:
        for handle in [h for h, f in self._handles.items() if f == filename]:
            self.release(handle)
        self._records.delete(filename)

    async def clear(self) -> None:
        self._handles.clear()
        self._records.clear()

    async def open_handle(self, filename: str) -> str | None:
        if not self.exists(filename):
            return None
        handle = f"{_BLOB_SCHEME}{uuid.uuid4()}"
        self._handles[handle] = filename
        return handle

    async def is_live(self, handle: str) -> bool:
        filename = self._handles.get(handle)
        return filename is not None and self.exists(filename)

    def release(self, handle: str) -> None:
        self._handles.pop(handle, None)
