"""TTL key-value cache over an ``IStorageBackend``.

Every entry is stored as a serialized :class:`CacheEntry` record carrying
its write timestamp, TTL and content fingerprint.  Expiry is checked on
read; an expired or corrupt record found on read is deleted and counted as
a miss.

Size pressure: when the backend raises ``StorageQuotaError`` the oldest
quarter of entries (by write timestamp) is evicted and the write retried
once.  If the retry also fails the write is dropped and the failure is
returned as a ``TierWriteResult`` rather than raised, so a full tier can
never break the read path above it.

All backend access goes through the ``*_async`` record-store methods, so a
disk-backed tier never blocks the event loop.
"""

from __future__ import annotations

import math
from typing import Any

import structlog
from pydantic import ValidationError

from spaceboard.interfaces.cache_provider import IKeyValueCache
from spaceboard.interfaces.storage_backend import IStorageBackend
from spaceboard.models.cache import CacheEntry, CacheStats, CacheTier, TierWriteResult
from spaceboard.utils.clock import Clock, now_ms
from spaceboard.utils.errors import StorageError, StorageQuotaError
from spaceboard.utils.hashing import fingerprint
from spaceboard.utils.logging import get_logger

_QUOTA_EVICTION_FRACTION = 0.25


class KeyValueCache(IKeyValueCache):
    """Key-value tier with TTL expiry, change detection and quota eviction.

    Parameters
    ----------
    backend:
        Record store holding the serialized entries.
    tier:
        Which tier this instance plays; used in results and log events.
    default_ttl:
        TTL in milliseconds applied when ``set`` is called without one.
    clock:
        Epoch-millisecond time source.
    """

    def __init__(
        self,
        backend: IStorageBackend,
        tier: CacheTier,
        default_ttl: int,
        clock: Clock = now_ms,
    ) -> None:
        self._backend = backend
        self.tier = tier
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self._last_cleanup = 0
        self._logger: structlog.BoundLogger = get_logger(__name__, tier=tier.value)

    @property
    def backend(self) -> IStorageBackend:
        return self._backend

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _parse(self, key: str, raw: str) -> CacheEntry | None:
        """Decode a record; corrupt records are removed and read as absent."""
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError:
            self._logger.warning("cache_corrupt_entry_removed", key=key)
            await self._discard(key)
            return None

    async def _read_entry(self, key: str) -> CacheEntry | None:
        raw = await self._backend.read_async(key)
        if raw is None:
            return None
        return await self._parse(key, raw)

    async def _discard(self, key: str) -> bool:
        try:
            return await self._backend.delete_async(key)
        except StorageError as exc:
            self._logger.warning("cache_delete_failed", key=key, error=str(exc))
            return False

    def _result(self, key: str, error: Exception | None = None) -> TierWriteResult:
        return TierWriteResult(
            tier=self.tier,
            key=key,
            ok=error is None,
            error=str(error) if error is not None else None,
        )

    async def _evict_oldest(self, fraction: float = _QUOTA_EVICTION_FRACTION) -> int:
        """Delete the oldest *fraction* of entries by write timestamp."""
        aged: list[tuple[int, str]] = []
        for key in await self._backend.keys_async():
            raw = await self._backend.read_async(key)
            if raw is None:
                continue
            entry = await self._parse(key, raw)
            if entry is not None:
                aged.append((entry.timestamp, key))

        aged.sort()
        to_remove = math.ceil(len(aged) * fraction)
        for _, key in aged[:to_remove]:
            await self._backend.delete_async(key)
        self._logger.info("cache_quota_eviction", evicted=to_remove)
        return to_remove

    async def _write(self, key: str, serialized: str) -> TierWriteResult:
        try:
            await self._backend.write_async(key, serialized)
            return self._result(key)
        except StorageQuotaError as exc:
            self._logger.warning("cache_quota_exceeded", key=key, error=str(exc))
        except StorageError as exc:
            self._logger.error("cache_write_failed", key=key, error=str(exc))
            return self._result(key, exc)

        try:
            await self._evict_oldest()
            await self._backend.write_async(key, serialized)
            return self._result(key)
        except StorageError as exc:
            self._logger.error("cache_write_retry_failed", key=key, error=str(exc))
            return self._result(key, exc)

    # ------------------------------------------------------------------
    # IKeyValueCache implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        try:
            entry = await self._read_entry(key)
        except StorageError as exc:
            self._logger.warning("cache_read_failed", key=key, error=str(exc))
            self._misses += 1
            return None

        if entry is None:
            self._misses += 1
            self._logger.debug("cache_miss", key=key)
            return None

        now = self._clock()
        if entry.is_expired(now):
            await self._discard(key)
            self._misses += 1
            self._logger.debug("cache_expired", key=key, age_ms=entry.age(now))
            return None

        self._hits += 1
        self._logger.debug("cache_hit", key=key)
        return entry.data

    async def set(
        self,
        key: str,
        data: Any,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TierWriteResult:
        try:
            entry = CacheEntry(
                data=data,
                timestamp=self._clock(),
                ttl=ttl if ttl is not None else self._default_ttl,
                hash=fingerprint(data),
                metadata=metadata,
            )
            serialized = entry.model_dump_json()
        except (TypeError, ValueError) as exc:
            self._logger.error("cache_serialize_failed", key=key, error=str(exc))
            return self._result(key, exc)

        result = await self._write(key, serialized)
        if result.ok:
            self._logger.debug("cache_set", key=key, ttl_ms=entry.ttl)
        return result

    async def has(self, key: str) -> bool:
        try:
            entry = await self._read_entry(key)
        except StorageError as exc:
            self._logger.warning("cache_read_failed", key=key, error=str(exc))
            return False
        return entry is not None and not entry.is_expired(self._clock())

    async def delete(self, key: str) -> TierWriteResult:
        try:
            await self._backend.delete_async(key)
        except StorageError as exc:
            self._logger.warning("cache_delete_failed", key=key, error=str(exc))
            return self._result(key, exc)
        self._logger.debug("cache_delete", key=key)
        return self._result(key)

    async def clear(self) -> int:
        try:
            removed = await self._backend.clear_async()
        except StorageError as exc:
            self._logger.error("cache_clear_failed", error=str(exc))
            return 0
        self._hits = 0
        self._misses = 0
        self._last_cleanup = self._clock()
        self._logger.info("cache_cleared", removed=removed)
        return removed

    async def cleanup(self) -> int:
        now = self._clock()
        removed = 0
        try:
            for key in await self._backend.keys_async():
                raw = await self._backend.read_async(key)
                if raw is None:
                    continue
                entry = await self._parse(key, raw)
                if entry is None:
                    removed += 1
                elif entry.is_expired(now) and await self._discard(key):
                    removed += 1
        except StorageError as exc:
            self._logger.error("cache_cleanup_failed", error=str(exc))
        self._last_cleanup = now
        self._logger.info("cache_cleanup_complete", removed=removed)
        return removed

    async def compare_and_update(
        self,
        key: str,
        data: Any,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        try:
            existing = await self._read_entry(key)
        except StorageError as exc:
            # An unreadable record cannot be compared against; overwrite it.
            self._logger.warning("cache_read_failed", key=key, error=str(exc))
            existing = None

        if (
            existing is not None
            and not existing.is_expired(self._clock())
            and existing.hash == fingerprint(data)
        ):
            self._logger.debug("cache_unchanged", key=key)
            return False

        result = await self.set(key, data, ttl=ttl, metadata=metadata)
        return result.ok

    async def get_stale(self, key: str) -> CacheEntry | None:
        try:
            return await self._read_entry(key)
        except StorageError as exc:
            self._logger.warning("cache_stale_read_failed", key=key, error=str(exc))
            return None

    def keys(self) -> list[str]:
        try:
            return self._backend.keys()
        except StorageError as exc:
            self._logger.warning("cache_keys_failed", error=str(exc))
            return []

    def get_stats(self) -> CacheStats:
        lookups = self._hits + self._misses
        try:
            total_entries = len(self._backend.keys())
            total_size = self._backend.total_size()
        except StorageError as exc:
            self._logger.warning("cache_stats_failed", error=str(exc))
            total_entries, total_size = 0, 0
        return CacheStats(
            total_entries=total_entries,
            total_size=total_size,
            hit_rate=self._hits / lookups if lookups else 0.0,
            miss_rate=self._misses / lookups if lookups else 0.0,
            last_cleanup=self._last_cleanup,
        )
