"""Abstract storage primitives underneath the cache tiers.

Two contracts live here:

``IStorageBackend``
    A string record store, the equivalent of a browser's ``localStorage``
    or a directory of JSON files.  Key-value cache tiers, the asset index
    and the rate limiter's state map all persist through it.  The
    synchronous methods are for construction-time loads and in-memory
    stores; code running on the event loop uses the ``*_async`` variants,
    which disk-backed stores run in a worker thread.

``IBlobStore``
    Durable bytes plus *ephemeral handles*.  The durable store is the
    source of truth.  A handle (a file path, a ``blob:`` reference) is
    derived from the durable bytes on demand, may die at any time, and
    must be probed with :meth:`IBlobStore.is_live` before it is reused.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class IStorageBackend(ABC):
    """Contract for a namespaced string record store.

    Implementations raise :class:`~spaceboard.utils.errors.StorageError`
    on I/O failure and
    :class:`~spaceboard.utils.errors.StorageQuotaError` when a write would
    exceed their capacity.
    """

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Return the record stored under *key*, or ``None`` if absent."""

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any existing record."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove *key*.  Returns ``True`` if a record existed."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return every key in this backend's namespace."""

    @abstractmethod
    def size_of(self, key: str) -> int:
        """Approximate stored size of *key* in bytes (``0`` if absent)."""

    def total_size(self) -> int:
        """Approximate stored size of the whole namespace in bytes."""
        return sum(self.size_of(key) for key in self.keys())

    def clear(self) -> int:
        """Remove every record in the namespace.  Returns the count removed."""
        removed = 0
        for key in self.keys():
            if self.delete(key):
                removed += 1
        return removed

    # ------------------------------------------------------------------
    # Event-loop variants
    # ------------------------------------------------------------------

    #: ``True`` when the synchronous methods block on I/O.
    blocking_io: bool = False

    async def read_async(self, key: str) -> str | None:
        return self.read(key)

    async def write_async(self, key: str, value: str) -> None:
        self.write(key, value)

    async def delete_async(self, key: str) -> bool:
        return self.delete(key)

    async def keys_async(self) -> list[str]:
        return self.keys()

    async def clear_async(self) -> int:
        return self.clear()


class IBlobStore(ABC):
    """Contract for durable asset bytes with derived ephemeral handles.

    Byte operations are async because they may move megabytes through the
    filesystem.  Handle operations are cheap and synchronous.
    """

    @abstractmethod
    async def write(self, filename: str, data: bytes, mime_type: str) -> str:
        """Persist *data* and return its durable reference."""

    @abstractmethod
    async def read(self, filename: str) -> bytes | None:
        """Return the durable bytes for *filename*, or ``None`` if missing."""

    @abstractmethod
    def exists(self, filename: str) -> bool:
        """Return ``True`` if durable bytes exist for *filename*."""

    @abstractmethod
    async def delete(self, filename: str) -> None:
        """Remove the durable bytes and any live handle for *filename*."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove all durable bytes and release all handles."""

    @abstractmethod
    async def open_handle(self, filename: str) -> str | None:
        """Create a usable handle from the durable bytes, or ``None`` if missing."""

    @abstractmethod
    async def is_live(self, handle: str) -> bool:
        """Lightweight existence probe for a previously issued handle."""

    @abstractmethod
    def release(self, handle: str) -> None:
        """Invalidate *handle*.  A no-op for handles that are not releasable."""
