"""Pydantic models for the cache layer and the space-data domain."""

from spaceboard.models.cache import (
    AssetCacheStats,
    AssetEntry,
    CachedResult,
    CacheEntry,
    CacheManagerStats,
    CacheStats,
    CacheStatus,
    CacheTier,
    HealthReport,
    RateLimitPolicy,
    RateLimitResult,
    RateLimitState,
    TierWriteResult,
    WriteOutcome,
)
from spaceboard.models.space import (
    Agency,
    Astronaut,
    AstronautRoster,
    CrewMember,
    ISSPosition,
    LaunchLibraryAstronaut,
    OpenNotifyResponse,
)

__all__ = [
    "Agency",
    "AssetCacheStats",
    "AssetEntry",
    "Astronaut",
    "AstronautRoster",
    "CacheEntry",
    "CacheManagerStats",
    "CacheStats",
    "CacheStatus",
    "CacheTier",
    "CachedResult",
    "CrewMember",
    "HealthReport",
    "ISSPosition",
    "LaunchLibraryAstronaut",
    "OpenNotifyResponse",
    "RateLimitPolicy",
    "RateLimitResult",
    "RateLimitState",
    "TierWriteResult",
    "WriteOutcome",
]
