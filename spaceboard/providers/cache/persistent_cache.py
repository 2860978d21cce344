"""Durable key-value tier: one JSON record per key on disk.

Survives restarts, so it is the tier the stale fallback reads from when an
origin is down.  Sits behind the volatile tier in the read path.
"""

from __future__ import annotations

from pathlib import Path

from spaceboard.interfaces.storage_backend import IStorageBackend
from spaceboard.models.cache import CacheTier
from spaceboard.providers.cache.key_value_cache import KeyValueCache
from spaceboard.providers.storage.filesystem_storage import FilesystemStorageBackend
from spaceboard.utils.clock import Clock, now_ms

_DEFAULT_TTL_MS = 6 * 60 * 60 * 1000


class PersistentKeyValueCache(KeyValueCache):
    """Persistent tier, filesystem-backed unless another backend is given.

    Parameters
    ----------
    directory:
        Cache directory used when *backend* is omitted.
    default_ttl:
        TTL in milliseconds for entries written without one.
    backend:
        Explicit record store, e.g. a ``MemoryStorageBackend`` in tests.
    clock:
        Epoch-millisecond time source.
    """

    def __init__(
        self,
        directory: str | Path = "./cache/api",
        default_ttl: int = _DEFAULT_TTL_MS,
        backend: IStorageBackend | None = None,
        clock: Clock = now_ms,
    ) -> None:
        super().__init__(
            backend=backend or FilesystemStorageBackend(directory),
            tier=CacheTier.PERSISTENT,
            default_ttl=default_ttl,
            clock=clock,
        )
