"""Explicit wiring of the cache subsystem.

Everything stateful (rate limiter, tiers, asset cache, HTTP client) is
built once here and handed to consumers, instead of living in module
globals.  Tests build as many independent contexts as they like.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import httpx

from spaceboard.config.settings import Settings
from spaceboard.providers.assets.asset_cache import AssetCache
from spaceboard.providers.cache.persistent_cache import PersistentKeyValueCache
from spaceboard.providers.cache.volatile_cache import VolatileKeyValueCache
from spaceboard.providers.storage.blob_store import FilesystemBlobStore
from spaceboard.providers.storage.filesystem_storage import FilesystemStorageBackend
from spaceboard.services.cache_manager import CacheManager
from spaceboard.services.rate_limiter import RateLimiter
from spaceboard.utils.clock import Clock, now_ms


@dataclass
class CacheContext:
    """The cache subsystem for one process (or one test)."""

    settings: Settings
    http_client: httpx.AsyncClient
    rate_limiter: RateLimiter
    volatile: VolatileKeyValueCache
    persistent: PersistentKeyValueCache
    assets: AssetCache
    manager: CacheManager
    #: False when the caller supplied ``http_client`` and still owns it.
    owns_http_client: bool = True

    async def aclose(self) -> None:
        """Stop the rate limiter and close the HTTP client if this context built it."""
        await self.rate_limiter.stop()
        if self.owns_http_client:
            await self.http_client.aclose()


def build_http_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout_s),
        headers={"User-Agent": settings.http_user_agent, "Accept": "application/json"},
        follow_redirects=True,
        transport=transport,
    )


def build_cache_context(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
    clock: Clock = now_ms,
) -> CacheContext:
    """Construct every cache component from *settings*.

    Durable state lives under the configured directories: cache entries in
    ``api_cache_dir``, the asset index and bytes in ``assets_cache_dir``,
    and the rate limiter state in ``cache_dir``.  An injected *http_client*
    is left open by :meth:`CacheContext.aclose`.
    """
    client = http_client or build_http_client(settings)
    assets_dir = Path(settings.assets_cache_dir)

    rate_limiter = RateLimiter(
        policy=settings.rate_limit_policy(),
        backend=FilesystemStorageBackend(settings.cache_dir),
        clock=clock,
        sweep_interval_s=settings.rate_limit_sweep_interval_s,
    )
    volatile = VolatileKeyValueCache(
        default_ttl=settings.volatile_default_ttl_ms,
        quota_bytes=settings.volatile_quota_bytes,
        clock=clock,
    )
    persistent = PersistentKeyValueCache(
        directory=settings.api_cache_dir,
        default_ttl=settings.default_ttl_ms,
        clock=clock,
    )
    assets = AssetCache(
        blob_store=FilesystemBlobStore(assets_dir / "files"),
        index_store=FilesystemStorageBackend(assets_dir),
        http_client=client,
        max_cache_size=settings.max_cache_size,
        max_asset_size=settings.max_asset_size,
        default_ttl=settings.asset_ttl_ms,
        stable_handle_limit=settings.stable_handle_limit,
        user_agent=settings.http_user_agent,
        clock=clock,
    )
    manager = CacheManager(
        volatile=volatile,
        persistent=persistent,
        assets=assets,
        rate_limiter=rate_limiter,
        default_ttl=settings.default_ttl_ms,
        asset_ttl=settings.asset_ttl_ms,
        fetch_timeout_ms=settings.fetch_timeout_ms,
        fetch_retries=settings.fetch_retries,
        dedupe_fetches=settings.dedupe_fetches,
    )
    return CacheContext(
        settings=settings,
        http_client=client,
        rate_limiter=rate_limiter,
        volatile=volatile,
        persistent=persistent,
        assets=assets,
        manager=manager,
        owns_http_client=http_client is None,
    )
