"""Fast, small key-value tier checked before the persistent tier.

Backed by a quota-bounded in-memory record store, the server-side stand-in
for a browser's ``localStorage``.  Entries are stored serialized, so a hit
returns a fresh copy rather than a shared mutable object.
"""

from __future__ import annotations

from spaceboard.interfaces.storage_backend import IStorageBackend
from spaceboard.models.cache import CacheTier
from spaceboard.providers.cache.key_value_cache import KeyValueCache
from spaceboard.providers.storage.memory_storage import MemoryStorageBackend
from spaceboard.utils.clock import Clock, now_ms

_DEFAULT_TTL_MS = 24 * 60 * 60 * 1000
_DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class VolatileKeyValueCache(KeyValueCache):
    """Volatile tier with its own quota and the 25% oldest-first eviction."""

    def __init__(
        self,
        default_ttl: int = _DEFAULT_TTL_MS,
        quota_bytes: int | None = _DEFAULT_QUOTA_BYTES,
        backend: IStorageBackend | None = None,
        clock: Clock = now_ms,
    ) -> None:
        super().__init__(
            backend=backend or MemoryStorageBackend(prefix="spaceboard_cache_", quota_bytes=quota_bytes),
            tier=CacheTier.VOLATILE,
            default_ttl=default_ttl,
            clock=clock,
        )
