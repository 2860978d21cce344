"""Asset (image) cache with LRU eviction and stable handles.

Assets are keyed by the fingerprint of their *URL* plus the URL's file
extension, never by their bytes.  Three layers of state:

* **Durable bytes** in an :class:`IBlobStore` (files on disk, or base64
  records in a browser-style store).  The source of truth.
* **The index**, one ``AssetEntry`` per cached file, persisted as a single
  record in an :class:`IStorageBackend` and reloaded at construction.
* **Handles**, the references callers actually render (file paths,
  ``blob:`` refs).  Derived from the durable bytes on demand and checked
  with :meth:`IBlobStore.is_live` before reuse, so repeated lookups of the
  same URL keep returning the same reference while it is still valid.

Total resident size never exceeds ``max_cache_size``: before a download is
stored the least-recently-accessed entries are evicted until it fits.  The
evict, write and index steps run under one lock, so concurrent downloads
are admitted one at a time.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog
from cachetools import LRUCache
from pydantic import TypeAdapter, ValidationError

from spaceboard.interfaces.storage_backend import IBlobStore, IStorageBackend
from spaceboard.models.cache import AssetCacheStats, AssetEntry
from spaceboard.utils.clock import Clock, now_ms
from spaceboard.utils.errors import (
    AssetTooLargeError,
    FetchTimeoutError,
    OriginError,
    SpaceBoardError,
    StorageError,
)
from spaceboard.utils.hashing import asset_key, extension_from_url, fingerprint, mime_type_for

logger = structlog.get_logger(logger_name=__name__)

INDEX_KEY = "asset-index"

_MB = 1024 * 1024
_DEFAULT_TTL_MS = 24 * 60 * 60 * 1000
_INDEX = TypeAdapter(dict[str, AssetEntry])


def _is_cacheable_url(url: str) -> bool:
    return url.startswith(("http://", "https://"))


class AssetCache:
    """Downloads, stores and serves binary assets under a size budget.

    Parameters
    ----------
    blob_store:
        Durable byte store that also mints handles.
    index_store:
        Record store holding the asset index.
    http_client:
        Shared client used for downloads.
    max_cache_size:
        Byte budget for all resident assets together.
    max_asset_size:
        Per-asset download ceiling in bytes.
    default_ttl:
        TTL in milliseconds for assets cached without one.
    stable_handle_limit:
        How many URL -> handle mappings :meth:`get_cached_asset_url` keeps.
    user_agent:
        ``User-Agent`` sent with downloads.
    clock:
        Epoch-millisecond time source.
    """

    def __init__(
        self,
        blob_store: IBlobStore,
        index_store: IStorageBackend,
        http_client: httpx.AsyncClient,
        max_cache_size: int = 100 * _MB,
        max_asset_size: int = 5 * _MB,
        default_ttl: int = _DEFAULT_TTL_MS,
        stable_handle_limit: int = 512,
        user_agent: str = "SpaceBoard/1.0",
        clock: Clock = now_ms,
    ) -> None:
        self._blobs = blob_store
        self._index_store = index_store
        self._client = http_client
        self._max_cache_size = max_cache_size
        self._max_asset_size = max_asset_size
        self._default_ttl = default_ttl
        self._user_agent = user_agent
        self._clock = clock

        self._hits = 0
        self._misses = 0
        self._last_cleanup = 0
        # filename -> the handle currently issued for it
        self._handles: dict[str, str] = {}
        # original URL -> handle last returned by get_cached_asset_url
        self._stable: LRUCache[str, str] = LRUCache(maxsize=stable_handle_limit)
        self._index: dict[str, AssetEntry] = self._load_index()
        # Serializes eviction, blob write and index insert.
        self._write_lock = asyncio.Lock()
        # Keeps index snapshots landing in the order they were taken.
        self._index_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Index persistence
    # ------------------------------------------------------------------

    def _load_index(self) -> dict[str, AssetEntry]:
        try:
            raw = self._index_store.read(INDEX_KEY)
            if raw is None:
                return {}
            index = _INDEX.validate_json(raw)
        except (StorageError, ValidationError) as exc:
            logger.error("asset_index_load_failed", error=str(exc))
            return {}
        logger.debug("asset_index_loaded", assets=len(index))
        return index

    async def _save_index(self) -> None:
        async with self._index_lock:
            snapshot = _INDEX.dump_json(self._index).decode("utf-8")
            try:
                await self._index_store.write_async(INDEX_KEY, snapshot)
            except StorageError as exc:
                logger.error("asset_index_save_failed", error=str(exc))

    @property
    def total_size(self) -> int:
        return sum(entry.size for entry in self._index.values())

    def urls(self) -> list[str]:
        """Original URLs of every indexed asset."""
        return [entry.url for entry in self._index.values()]

    # ------------------------------------------------------------------
    # Handles
    # ------------------------------------------------------------------

    async def _read_asset(self, filename: str) -> str | None:
        """Return a live handle for *filename*, minting a new one if needed."""
        existing = self._handles.get(filename)
        if existing is not None and await self._blobs.is_live(existing):
            return existing

        handle = await self._blobs.open_handle(filename)
        if existing is not None and existing != handle:
            self._blobs.release(existing)
        if handle is None:
            self._handles.pop(filename, None)
            return None
        self._handles[filename] = handle
        logger.debug("asset_handle_issued", filename=filename)
        return handle

    async def _remove(self, key: str) -> AssetEntry | None:
        entry = self._index.pop(key, None)
        if entry is None:
            return None
        handle = self._handles.pop(entry.filename, None)
        if handle is not None:
            self._blobs.release(handle)
        self._stable.pop(entry.url, None)
        try:
            await self._blobs.delete(entry.filename)
        except StorageError as exc:
            logger.warning("asset_delete_failed", filename=entry.filename, error=str(exc))
        return entry

    # ------------------------------------------------------------------
    # Download
    # ------------------------------------------------------------------

    async def _download(self, url: str) -> tuple[bytes, str]:
        """Fetch *url* enforcing the byte ceiling; returns ``(data, mime_type)``."""
        try:
            async with self._client.stream(
                "GET", url, headers={"User-Agent": self._user_agent}
            ) as response:
                if response.status_code >= 400:
                    raise OriginError(
                        message=f"HTTP {response.status_code} downloading {url}",
                        provider_name="assets",
                        status_code=response.status_code,
                    )

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self._max_asset_size:
                    raise AssetTooLargeError(
                        message=f"Asset too large: {declared} bytes",
                        provider_name="assets",
                        size=int(declared),
                    )

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self._max_asset_size:
                        raise AssetTooLargeError(
                            message=f"Asset too large: over {self._max_asset_size} bytes",
                            provider_name="assets",
                            size=received,
                        )
                    chunks.append(chunk)

                content_type = response.headers.get("content-type", "")
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(
                message=f"Timeout downloading {url}: {exc}", provider_name="assets"
            ) from exc
        except httpx.HTTPError as exc:
            raise OriginError(
                message=f"HTTP error downloading {url}: {exc}", provider_name="assets"
            ) from exc

        mime_type = content_type.split(";", 1)[0].strip() or mime_type_for(extension_from_url(url))
        return b"".join(chunks), mime_type

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    async def ensure_space(self, required_size: int) -> int:
        """Evict least-recently-accessed assets until *required_size* fits.

        Returns the number of assets evicted.

        Raises
        ------
        AssetTooLargeError
            If *required_size* alone exceeds the cache budget.
        """
        async with self._write_lock:
            return await self._make_room(required_size)

    async def _make_room(self, required_size: int) -> int:
        """Eviction body of :meth:`ensure_space`; the caller holds the write lock."""
        if required_size > self._max_cache_size:
            raise AssetTooLargeError(
                message=(
                    f"Asset of {required_size} bytes exceeds cache size {self._max_cache_size}"
                ),
                provider_name="assets",
                size=required_size,
            )

        total = self.total_size
        if total + required_size <= self._max_cache_size:
            return 0

        evicted = 0
        by_access = sorted(self._index.items(), key=lambda item: item[1].last_accessed)
        for key, entry in by_access:
            if total + required_size <= self._max_cache_size:
                break
            await self._remove(key)
            total -= entry.size
            evicted += 1
            logger.info("asset_evicted", url=entry.url, size=entry.size)

        await self._save_index()
        return evicted

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, url: str) -> str | None:
        """Return a handle for a cached, unexpired asset, touching its access time."""
        key = asset_key(url)
        entry = self._index.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            await self._remove(key)
            await self._save_index()
            self._misses += 1
            logger.debug("asset_expired", url=url)
            return None

        try:
            handle = await self._read_asset(entry.filename)
        except StorageError as exc:
            logger.warning("asset_read_failed", url=url, error=str(exc))
            handle = None
        if handle is None:
            # Bytes vanished underneath the index.
            await self._remove(key)
            await self._save_index()
            self._misses += 1
            logger.warning("asset_bytes_missing", url=url, filename=entry.filename)
            return None

        entry.last_accessed = now
        await self._save_index()
        self._hits += 1
        logger.debug("asset_cache_hit", url=url)
        return handle

    async def set(
        self,
        url: str,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str | None:
        """Download *url* into the cache and return a handle, or ``None`` on failure.

        An unexpired cached copy is returned without downloading.
        """
        key = asset_key(url)
        try:
            existing = self._index.get(key)
            if existing is not None and not existing.is_expired(self._clock()):
                handle = await self._read_asset(existing.filename)
                if handle is not None:
                    return handle

            data, mime_type = await self._download(url)
            size = len(data)
            if size > self._max_asset_size:
                raise AssetTooLargeError(
                    message=f"Asset too large: {size} bytes", provider_name="assets", size=size
                )

            async with self._write_lock:
                if key in self._index:
                    await self._remove(key)
                await self._make_room(size)
                local_path = await self._blobs.write(key, data, mime_type)

                now = self._clock()
                self._index[key] = AssetEntry(
                    url=url,
                    local_path=local_path,
                    filename=key,
                    size=size,
                    mime_type=mime_type,
                    timestamp=now,
                    last_accessed=now,
                    ttl=ttl if ttl is not None else self._default_ttl,
                    hash=fingerprint(url),
                    metadata=metadata,
                )
                await self._save_index()
                logger.info("asset_cached", url=url, size=size, mime_type=mime_type)
                return await self._read_asset(key)
        except SpaceBoardError as exc:
            logger.warning("asset_cache_set_failed", url=url, error=str(exc))
            return None

    async def read_bytes(self, url: str) -> tuple[bytes, str] | None:
        """Return ``(bytes, mime_type)`` of a cached, unexpired asset."""
        entry = self._index.get(asset_key(url))
        if entry is None or entry.is_expired(self._clock()):
            return None
        try:
            data = await self._blobs.read(entry.filename)
        except StorageError as exc:
            logger.warning("asset_read_failed", url=url, error=str(exc))
            return None
        return (data, entry.mime_type) if data is not None else None

    async def has(self, url: str) -> bool:
        entry = self._index.get(asset_key(url))
        if entry is None or entry.is_expired(self._clock()):
            return False
        return self._blobs.exists(entry.filename)

    async def delete(self, url: str) -> bool:
        entry = await self._remove(asset_key(url))
        if entry is None:
            return False
        await self._save_index()
        logger.debug("asset_deleted", url=url)
        return True

    async def clear(self) -> int:
        """Remove every asset, handle and stable mapping.  Returns the count removed."""
        removed = len(self._index)
        for handle in self._handles.values():
            self._blobs.release(handle)
        self._handles.clear()
        self._stable.clear()
        self._index.clear()
        try:
            await self._blobs.clear()
        except StorageError as exc:
            logger.error("asset_clear_failed", error=str(exc))
        await self._save_index()

        self._hits = 0
        self._misses = 0
        self._last_cleanup = self._clock()
        logger.info("asset_cache_cleared", removed=removed)
        return removed

    async def cleanup(self) -> int:
        """Remove TTL-expired assets only.  Returns the count removed."""
        now = self._clock()
        expired = [key for key, entry in self._index.items() if entry.is_expired(now)]
        for key in expired:
            await self._remove(key)
        await self._save_index()
        self._last_cleanup = now
        logger.info("asset_cleanup_complete", removed=len(expired))
        return len(expired)

    async def get_cached_asset_url(self, url: str, ttl: int | None = None) -> str:
        """Return a stable handle for *url*, caching it first if necessary.

        Falls back to *url* itself when it cannot be cached (not HTTP(S),
        already a ``blob:`` ref, download failure, oversized asset).

        Every call goes through :meth:`get`, so expiry and missing bytes are
        honoured and a reused handle still counts as an access for LRU
        eviction.  The handle stays the same for as long as it is live.
        """
        if not _is_cacheable_url(url):
            return url

        handle = await self.get(url)
        if handle is None:
            handle = await self.set(url, ttl=ttl)
        if handle is None:
            self._stable.pop(url, None)
            return url

        if self._stable.get(url) == handle:
            logger.debug("asset_stable_handle_reused", url=url)
        self._stable[url] = handle
        return handle

    def get_stats(self) -> AssetCacheStats:
        lookups = self._hits + self._misses
        total = self.total_size
        return AssetCacheStats(
            total_assets=len(self._index),
            total_size=total,
            hit_rate=self._hits / lookups if lookups else 0.0,
            miss_rate=self._misses / lookups if lookups else 0.0,
            last_cleanup=self._last_cleanup,
            available_space=self._max_cache_size - total,
        )
