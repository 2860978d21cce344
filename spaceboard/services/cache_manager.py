"""Multi-tier cache orchestration in front of the origin APIs.

The manager is the single entry point route handlers use for cached,
rate-limited, fallback-aware data retrieval.

Read path of :meth:`CacheManager.fetch_with_cache_status`::

    volatile tier --hit--> HIT
        | miss
    persistent tier --hit--> backfill volatile, HIT
        | miss
    origin (timeout + RateLimiter.with_rate_limit) --ok--> write both tiers, MISS
        | failed after retries
    persistent/volatile entry regardless of TTL --found--> STALE / RATE_LIMITED
        | none
    raise the origin error

Only origin failures ever reach the caller, and only when no stale entry
exists.  Tier failures are logged and degrade to misses; tier writes
report a :class:`WriteOutcome` instead of raising.

Concurrent misses for the same key share one origin call (per-key
in-flight registry), and so do concurrent asset fetches for the same URL.
Origin work always runs as a task of its own that callers await through
``asyncio.shield``: cancelling or abandoning a caller never stops an origin
call or tier write that is already under way.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

import structlog

from spaceboard.interfaces.cache_provider import IKeyValueCache
from spaceboard.models.cache import (
    CachedResult,
    CacheEntry,
    CacheManagerStats,
    CacheStatus,
    CacheTier,
    HealthReport,
    TierWriteResult,
    WriteOutcome,
)
from spaceboard.providers.assets.asset_cache import AssetCache
from spaceboard.services.rate_limiter import RateLimiter, RetryCallback
from spaceboard.utils.concurrency import InFlightRegistry
from spaceboard.utils.errors import FetchTimeoutError, RateLimitError
from spaceboard.utils.logging import get_logger

_T = TypeVar("_T")

_HOUR_MS = 60 * 60 * 1000
_TOO_MANY_REQUESTS = 429
# In-flight asset fetches stay shareable briefly after they resolve.
_ASSET_DEDUPE_LINGER_S = 0.1

# Health thresholds
_MIN_HEALTHY_HIT_RATE = 0.5
_MIN_ENTRIES_FOR_HIT_RATE = 10
_ASSET_CAPACITY_WARNING = 0.9

Fetcher = Callable[[], Awaitable[_T]]


def _is_rate_limited(exc: BaseException) -> bool:
    return isinstance(exc, RateLimitError) or getattr(exc, "status_code", None) == _TOO_MANY_REQUESTS


class CacheManager:
    """Read-through, write-through cache over two key-value tiers and an asset cache.

    Parameters
    ----------
    volatile:
        Fast tier consulted first.
    persistent:
        Durable tier consulted second and used for stale fallbacks.
    assets:
        Binary asset cache behind :meth:`fetch_asset`.
    rate_limiter:
        Guards every origin call.
    default_ttl:
        TTL in milliseconds for data fetched without one.
    asset_ttl:
        TTL in milliseconds for assets fetched without one.
    fetch_timeout_ms:
        Per-attempt deadline for a fetcher.
    fetch_retries:
        Rate limiter retries per origin call.
    dedupe_fetches:
        Share one origin call between concurrent misses for the same key.
    """

    def __init__(
        self,
        volatile: IKeyValueCache,
        persistent: IKeyValueCache,
        assets: AssetCache,
        rate_limiter: RateLimiter,
        default_ttl: int = 6 * _HOUR_MS,
        asset_ttl: int = 24 * _HOUR_MS,
        fetch_timeout_ms: int = 10_000,
        fetch_retries: int = 3,
        dedupe_fetches: bool = True,
    ) -> None:
        self._volatile = volatile
        self._persistent = persistent
        self._assets = assets
        self._rate_limiter = rate_limiter
        self._default_ttl = default_ttl
        self._asset_ttl = asset_ttl
        self._fetch_timeout_ms = fetch_timeout_ms
        self._fetch_retries = fetch_retries
        self._dedupe_fetches = dedupe_fetches
        self._fetches: InFlightRegistry[CachedResult[Any]] = InFlightRegistry()
        self._asset_fetches: InFlightRegistry[str] = InFlightRegistry(
            linger_s=_ASSET_DEDUPE_LINGER_S
        )
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def assets(self) -> AssetCache:
        return self._assets

    # ------------------------------------------------------------------
    # Tier helpers
    # ------------------------------------------------------------------

    async def _guarded_write(
        self, tier: IKeyValueCache, key: str, write: Awaitable[TierWriteResult]
    ) -> TierWriteResult:
        try:
            return await write
        except Exception as exc:
            self._logger.warning(
                "cache_tier_write_error", tier=tier.tier.value, key=key, error=str(exc)
            )
            return TierWriteResult(tier=tier.tier, key=key, ok=False, error=str(exc))

    async def _guarded_get(self, tier: IKeyValueCache, key: str) -> Any | None:
        try:
            return await tier.get(key)
        except Exception as exc:
            self._logger.warning("cache_tier_read_error", tier=tier.tier.value, key=key, error=str(exc))
            return None

    async def _get_stale(self, key: str) -> CacheEntry | None:
        for tier in (self._persistent, self._volatile):
            try:
                entry = await tier.get_stale(key)
            except Exception as exc:
                self._logger.warning(
                    "cache_stale_read_error", tier=tier.tier.value, key=key, error=str(exc)
                )
                continue
            if entry is not None:
                return entry
        return None

    async def _backfill_volatile(self, key: str, data: Any, ttl: int | None) -> None:
        result = await self._guarded_write(
            self._volatile, key, self._volatile.set(key, data, ttl=ttl)
        )
        if not result.ok:
            self._logger.warning("cache_backfill_failed", key=key, error=result.error)

    async def store_in_all_layers(
        self,
        key: str,
        data: Any,
        ttl: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> WriteOutcome:
        """Write *data* to both tiers.  Failures are reported, not raised."""
        results = await asyncio.gather(
            self._guarded_write(
                self._persistent, key, self._persistent.set(key, data, ttl=ttl, metadata=metadata)
            ),
            self._guarded_write(
                self._volatile, key, self._volatile.set(key, data, ttl=ttl, metadata=metadata)
            ),
        )
        outcome = WriteOutcome(results=list(results))
        if not outcome.ok:
            self._logger.warning(
                "cache_write_incomplete",
                key=key,
                failed_tiers=[r.tier.value for r in outcome.failures],
            )
        return outcome

    # ------------------------------------------------------------------
    # Origin calls
    # ------------------------------------------------------------------

    async def _call_origin(
        self,
        endpoint: str,
        fetcher: Fetcher[_T],
        timeout_ms: int,
        retries: int,
        on_retry: RetryCallback | None,
    ) -> _T:
        async def _attempt() -> _T:
            try:
                return await asyncio.wait_for(fetcher(), timeout=timeout_ms / 1000)
            except asyncio.TimeoutError as exc:
                raise FetchTimeoutError(
                    message=f"Request timeout after {timeout_ms}ms", provider_name=endpoint
                ) from exc

        return await self._rate_limiter.with_rate_limit(
            endpoint, _attempt, max_retries=retries, on_retry=on_retry
        )

    async def _fetch_from_origin(
        self,
        key: str,
        fetcher: Fetcher[_T],
        ttl: int,
        timeout_ms: int,
        retries: int,
        on_retry: RetryCallback | None,
        endpoint: str,
        metadata: dict[str, Any] | None,
        fallback: CacheEntry | None,
    ) -> CachedResult[_T]:
        self._logger.info("cache_miss_fetching", key=key, endpoint=endpoint)
        try:
            data = await self._call_origin(endpoint, fetcher, timeout_ms, retries, on_retry)
        except Exception as exc:
            self._logger.error("origin_fetch_failed", key=key, endpoint=endpoint, error=str(exc))
            stale = await self._get_stale(key) or fallback
            if stale is None:
                raise
            status = CacheStatus.RATE_LIMITED if _is_rate_limited(exc) else CacheStatus.STALE
            self._logger.warning(
                "serving_stale_data", key=key, status=status.value, timestamp=stale.timestamp
            )
            return CachedResult(data=stale.data, status=status)

        writes = await self.store_in_all_layers(key, data, ttl=ttl, metadata=metadata)
        return CachedResult(data=data, status=CacheStatus.MISS, writes=writes)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_with_cache_status(
        self,
        key: str,
        fetcher: Fetcher[_T],
        *,
        ttl: int | None = None,
        force_refresh: bool = False,
        timeout: int | None = None,
        retries: int | None = None,
        on_retry: RetryCallback | None = None,
        endpoint: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CachedResult[_T]:
        """Return the value for *key* and where it was served from.

        Parameters
        ----------
        key:
            Cache key shared by both tiers.
        fetcher:
            Zero-argument coroutine function producing fresh JSON-compatible
            data from the origin.
        ttl:
            TTL in milliseconds for freshly fetched data.
        force_refresh:
            Drop the key from both tiers and go straight to the origin.
            A forced refresh never joins an in-flight fetch.  The dropped
            entry still serves as the stale fallback if the origin fails.
        timeout:
            Per-attempt fetcher deadline in milliseconds.
        retries:
            Rate limiter retries for the origin call.
        on_retry:
            Called with ``(attempt, retry_after_ms)`` before each wait.
        endpoint:
            Rate limiter endpoint name; defaults to *key*.
        metadata:
            Stored alongside the entry in both tiers.

        Raises
        ------
        Exception
            The origin error, only when the origin failed and no stale
            entry exists.

        Cancelling the awaiting task does not cancel the origin call or
        the tier writes that follow it.
        """
        if force_refresh:
            fallback = await self._get_stale(key)
            await self.clear_key(key)
        else:
            data = await self._guarded_get(self._volatile, key)
            if data is not None:
                self._logger.debug("cache_hit", key=key, tier=CacheTier.VOLATILE.value)
                return CachedResult(data=data, status=CacheStatus.HIT)

            # Taken before the TTL-checked read, which deletes an expired entry.
            fallback = await self._get_stale(key)
            data = await self._guarded_get(self._persistent, key)
            if data is not None:
                self._logger.debug("cache_hit", key=key, tier=CacheTier.PERSISTENT.value)
                await self._backfill_volatile(key, data, ttl)
                return CachedResult(data=data, status=CacheStatus.HIT)

        def _factory() -> Awaitable[CachedResult[_T]]:
            return self._fetch_from_origin(
                key,
                fetcher,
                ttl=ttl if ttl is not None else self._default_ttl,
                timeout_ms=timeout if timeout is not None else self._fetch_timeout_ms,
                retries=retries if retries is not None else self._fetch_retries,
                on_retry=on_retry,
                endpoint=endpoint or key,
                metadata=metadata,
                fallback=fallback,
            )

        share = self._dedupe_fetches and not force_refresh
        return await self._fetches.run(key, _factory, share=share)

    async def fetch_with_cache(self, key: str, fetcher: Fetcher[_T], **options: Any) -> _T:
        """Like :meth:`fetch_with_cache_status` but returns only the data."""
        result = await self.fetch_with_cache_status(key, fetcher, **options)
        return result.data

    async def fetch_asset(
        self,
        url: str,
        ttl: int | None = None,
        force_refresh: bool = False,
        use_asset_cache: bool = True,
    ) -> str:
        """Return a usable reference to *url*'s bytes, or *url* itself on failure.

        Concurrent calls for the same URL share one download.
        """
        if not use_asset_cache:
            return url

        async def _load() -> str:
            try:
                if force_refresh:
                    await self._assets.delete(url)
                return await self._assets.get_cached_asset_url(
                    url, ttl=ttl if ttl is not None else self._asset_ttl
                )
            except Exception as exc:
                self._logger.warning("asset_fetch_failed", url=url, error=str(exc))
                return url

        if url in self._asset_fetches and not force_refresh:
            self._logger.debug("asset_fetch_joined", url=url)
        return await self._asset_fetches.run(url, _load, share=not force_refresh)

    async def compare_and_update(
        self,
        key: str,
        fetcher: Fetcher[_T],
        *,
        ttl: int | None = None,
        timeout: int | None = None,
        retries: int | None = None,
        endpoint: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[_T, bool]:
        """Fetch fresh data and write it through only if it changed.

        Returns ``(data, was_updated)``.  If the fetch fails, cached data
        (if any) is returned with ``was_updated=False``.
        """
        effective_ttl = ttl if ttl is not None else self._default_ttl
        try:
            data = await self._call_origin(
                endpoint or key,
                fetcher,
                timeout if timeout is not None else self._fetch_timeout_ms,
                retries if retries is not None else self._fetch_retries,
                None,
            )
        except Exception as exc:
            self._logger.error("compare_and_update_failed", key=key, error=str(exc))
            existing = await self.get(key)
            if existing is not None:
                return existing, False
            raise

        try:
            was_updated = await self._persistent.compare_and_update(
                key, data, ttl=effective_ttl, metadata=metadata
            )
        except Exception as exc:
            self._logger.warning("compare_and_update_tier_error", key=key, error=str(exc))
            was_updated = True

        if was_updated:
            result = await self._guarded_write(
                self._volatile,
                key,
                self._volatile.set(key, data, ttl=effective_ttl, metadata=metadata),
            )
            if not result.ok:
                self._logger.warning("cache_backfill_failed", key=key, error=result.error)
            self._logger.info("cache_data_updated", key=key)
        else:
            self._logger.debug("cache_data_unchanged", key=key)
        return data, was_updated

    async def get(self, key: str) -> Any | None:
        """Read *key* from either tier without touching the origin."""
        data = await self._guarded_get(self._volatile, key)
        if data is not None:
            return data
        data = await self._guarded_get(self._persistent, key)
        if data is not None:
            await self._backfill_volatile(key, data, None)
        return data

    async def clear_key(self, key: str) -> WriteOutcome:
        results = await asyncio.gather(
            self._guarded_write(self._persistent, key, self._persistent.delete(key)),
            self._guarded_write(self._volatile, key, self._volatile.delete(key)),
        )
        outcome = WriteOutcome(results=list(results))
        if not outcome.ok:
            self._logger.warning(
                "cache_clear_incomplete",
                key=key,
                failed_tiers=[r.tier.value for r in outcome.failures],
            )
        return outcome

    async def clear_all(self) -> dict[str, int]:
        """Empty every tier and the asset cache, and reset the rate limiter."""
        removed = await asyncio.gather(
            self._persistent.clear(),
            self._volatile.clear(),
            self._assets.clear(),
            return_exceptions=True,
        )
        counts: dict[str, int] = {}
        for tier, result in zip(
            (CacheTier.PERSISTENT, CacheTier.VOLATILE, CacheTier.ASSETS), removed
        ):
            if isinstance(result, BaseException):
                self._logger.warning("cache_clear_all_error", tier=tier.value, error=str(result))
                counts[tier.value] = 0
            else:
                counts[tier.value] = result
        self._rate_limiter.reset_all()
        self._logger.info("cache_cleared_all", **counts)
        return counts

    async def cleanup(self) -> dict[str, int]:
        """Remove expired entries from every tier.  Returns counts per tier."""
        removed = await asyncio.gather(
            self._persistent.cleanup(),
            self._volatile.cleanup(),
            self._assets.cleanup(),
            return_exceptions=True,
        )
        counts: dict[str, int] = {}
        for tier, result in zip(
            (CacheTier.PERSISTENT, CacheTier.VOLATILE, CacheTier.ASSETS), removed
        ):
            if isinstance(result, BaseException):
                self._logger.warning("cache_cleanup_error", tier=tier.value, error=str(result))
                counts[tier.value] = 0
            else:
                counts[tier.value] = result
        self._logger.info("cache_cleanup_complete", **counts)
        return counts

    def get_stats(self) -> CacheManagerStats:
        return CacheManagerStats(
            persistent=self._persistent.get_stats(),
            volatile=self._volatile.get_stats(),
            assets=self._assets.get_stats(),
            rate_limiting=self._rate_limiter.get_stats(),
        )

    def health_check(self) -> HealthReport:
        """Flag low hit rates, a nearly full asset cache and open circuit breakers."""
        issues: list[str] = []
        recommendations: list[str] = []
        try:
            stats = self.get_stats()
        except Exception as exc:
            self._logger.error("health_check_failed", error=str(exc))
            return HealthReport(
                healthy=False,
                issues=["Failed to perform health check"],
                recommendations=["Check cache system configuration"],
            )

        persistent = stats.persistent
        if (
            persistent.hit_rate < _MIN_HEALTHY_HIT_RATE
            and persistent.total_entries > _MIN_ENTRIES_FOR_HIT_RATE
        ):
            issues.append("Low persistent cache hit rate")
            recommendations.append("Consider adjusting TTL settings")

        assets = stats.assets
        capacity = assets.total_size + assets.available_space
        if capacity > 0 and assets.total_size > capacity * _ASSET_CAPACITY_WARNING:
            issues.append("Asset cache near capacity")
            recommendations.append("Run cleanup or increase cache size limit")

        open_circuits = sorted(
            endpoint for endpoint, state in stats.rate_limiting.items() if state.circuit_breaker_open
        )
        if open_circuits:
            issues.append(f"Circuit breakers open for: {', '.join(open_circuits)}")
            recommendations.append("Check API availability and consider manual reset")

        return HealthReport(healthy=not issues, issues=issues, recommendations=recommendations)

    async def preload_assets(self, urls: list[str]) -> list[str]:
        """Warm the asset cache.  Returns the reference obtained for each URL."""
        refs = await asyncio.gather(*(self.fetch_asset(url) for url in urls))
        cached = sum(1 for url, ref in zip(urls, refs) if ref != url)
        self._logger.info("assets_preloaded", requested=len(urls), cached=cached)
        return list(refs)
